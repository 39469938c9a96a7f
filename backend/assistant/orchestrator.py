"""One assistant turn: tool-enabled first call, tool execution, streamed answer."""

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from assistant.gateway import CompletionStream, create_completion, open_completion_stream
from assistant.prompts import SYSTEM_PROMPT
from assistant.tools import TOOLS, execute_tool, parse_arguments, serialize_result

logger = logging.getLogger(__name__)


def assistant_tool_call_message(message) -> dict:
    """Echo the model's tool-call message for the follow-up request.

    Provider-specific fields (e.g. thought signatures on each tool call) must
    survive unchanged, so the SDK object is dumped rather than rebuilt.
    """
    echoed = message.model_dump(exclude_none=True)
    echoed["role"] = "assistant"
    for tc in echoed.get("tool_calls", []):
        function = tc.setdefault("function", {})
        function["arguments"] = function.get("arguments") or "{}"
    return echoed


async def run_tool_calls(
    tool_calls, user_id: uuid.UUID, db: AsyncSession,
) -> list[dict]:
    """Execute calls sequentially, in model order; one tool message per call."""
    results = []
    for tc in tool_calls:
        args = parse_arguments(tc.function.arguments)
        result = await execute_tool(db, user_id, tc.function.name, args)
        results.append({
            "role": "tool",
            "tool_call_id": tc.id,
            "content": serialize_result(result),
        })
    return results


async def run_assistant_turn(
    messages: list[dict],
    user_id: uuid.UUID | None,
    db: AsyncSession | None,
) -> CompletionStream:
    """Answer a transcript and return the upstream SSE byte stream.

    Tools are offered only when a user is resolved; anonymous callers get a
    plain streamed answer.

    Raises:
        GatewayError: Any upstream failure, already mapped to a client status.
    """
    conversation = [{"role": "system", "content": SYSTEM_PROMPT}, *messages]
    tools_enabled = user_id is not None and db is not None

    logger.info(
        "Assistant turn: messages=%d, user=%s, tools=%s",
        len(messages), user_id, tools_enabled,
    )
    first = await create_completion(conversation, tools=TOOLS if tools_enabled else None)

    if tools_enabled and first.tool_calls:
        logger.info("Processing %d tool calls", len(first.tool_calls))
        tool_messages = await run_tool_calls(first.tool_calls, user_id, db)
        conversation = [*conversation, assistant_tool_call_message(first), *tool_messages]
    else:
        logger.info("No tool calls, streaming response directly")

    return await open_completion_stream(conversation)
