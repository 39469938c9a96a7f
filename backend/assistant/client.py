"""
RedPaw Assistant client

Async HTTP client for the ai-assistant endpoint. Posts a transcript and
yields the reply's text fragments as they stream in.
"""

import json
import logging
from typing import Any, AsyncIterator

import httpx

from assistant.sse import SSEDeltaParser

logger = logging.getLogger(__name__)

ASSISTANT_PATH = "/functions/v1/ai-assistant"


class AssistantAPIError(Exception):
    """Raised when the assistant endpoint answers with a non-200 status."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"Assistant API error {status_code}: {message}")


class AssistantClient:
    """Streams assistant replies over Server-Sent Events."""

    def __init__(
        self,
        base_url: str,
        access_token: str | None = None,
        timeout: float = 60.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "text/event-stream"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def stream_reply(self, messages: list[dict[str, Any]]) -> AsyncIterator[str]:
        """Yield text deltas of the assistant's reply in order.

        Raises:
            AssistantAPIError: If the endpoint rejects the request.
        """
        url = f"{self.base_url}{ASSISTANT_PATH}"
        logger.info(f"Assistant request: POST {url} ({len(messages)} messages)")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            async with client.stream(
                "POST", url, headers=self._headers(), json={"messages": messages},
            ) as response:
                if response.status_code != 200:
                    body = await response.aread()
                    try:
                        message = json.loads(body).get("error") or body.decode(errors="replace")
                    except (ValueError, AttributeError):
                        message = body.decode(errors="replace")
                    logger.error(f"Assistant error {response.status_code}: {message}")
                    raise AssistantAPIError(response.status_code, message)

                parser = SSEDeltaParser()
                async for chunk in response.aiter_bytes():
                    for delta in parser.feed(chunk):
                        yield delta
                    if parser.done:
                        break
                for delta in parser.finish():
                    yield delta

    async def ask(self, messages: list[dict[str, Any]]) -> str:
        """Collect the whole streamed reply into one string."""
        parts = [delta async for delta in self.stream_reply(messages)]
        return "".join(parts)
