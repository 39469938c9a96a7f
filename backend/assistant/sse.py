"""Incremental parser for the assistant's Server-Sent Events stream.

The parser has two states. In AwaitingLine the buffer holds no complete
line and the parser waits for the next chunk. In HaveLine a newline-terminated
line sits at the head of the buffer and is consumed. A ``data:`` line whose
JSON does not parse is pushed back and retried once after the next chunk
arrives; if it fails again it is dropped.
"""

import codecs
import json
import logging

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


def extract_delta(payload: dict) -> str | None:
    """The text fragment in ``choices[0].delta.content``, if any."""
    try:
        content = payload["choices"][0]["delta"].get("content")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None
    return content if isinstance(content, str) and content else None


class SSEDeltaParser:
    """Feed raw chunks in arrival order; collect text deltas as they complete."""

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._retrying = False
        self.done = False

    def feed(self, chunk: bytes | str) -> list[str]:
        """Add a network chunk and return every delta completed by it."""
        if self.done:
            return []
        text = chunk if isinstance(chunk, str) else self._decoder.decode(chunk)
        self._buffer += text
        return self._drain(final=False)

    def finish(self) -> list[str]:
        """Flush at end of stream, including a trailing line with no newline."""
        if self.done:
            return []
        self._buffer += self._decoder.decode(b"", final=True)
        if self._buffer and not self._buffer.endswith("\n"):
            self._buffer += "\n"
        self._retrying = True  # nothing more will arrive
        return self._drain(final=True)

    def _drain(self, final: bool) -> list[str]:
        deltas: list[str] = []
        while not self.done:
            newline = self._buffer.find("\n")
            if newline == -1:
                break  # AwaitingLine

            line = self._buffer[:newline]
            rest = self._buffer[newline + 1:]
            if line.endswith("\r"):
                line = line[:-1]

            if not line.strip() or line.startswith(":") or not line.startswith("data:"):
                self._buffer = rest
                continue

            data = line[5:].strip()
            if data == DONE_SENTINEL:
                self._buffer = rest
                self.done = True
                break

            try:
                payload = json.loads(data)
            except json.JSONDecodeError:
                if self._retrying:
                    logger.warning("Dropping unparseable SSE line: %r", line[:200])
                    self._retrying = final
                    self._buffer = rest
                    continue
                # Push back and wait for more data before trying again
                self._retrying = True
                break

            self._retrying = final
            self._buffer = rest
            if isinstance(payload, dict):
                delta = extract_delta(payload)
                if delta:
                    deltas.append(delta)
        return deltas


def parse_sse_text(text: str) -> list[str]:
    """Parse a complete SSE body in one go."""
    parser = SSEDeltaParser()
    return parser.feed(text) + parser.finish()
