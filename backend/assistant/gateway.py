"""OpenAI-compatible LLM gateway calls with HTTP-status error mapping."""

import logging
from contextlib import AsyncExitStack
from typing import AsyncIterator

from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from config import settings

logger = logging.getLogger(__name__)

RATE_LIMITED_MESSAGE = "Rate limit exceeded. Please try again in a moment."
PAYMENT_REQUIRED_MESSAGE = "AI service requires payment. Please contact support."
UNAVAILABLE_MESSAGE = "AI service temporarily unavailable"
NOT_CONFIGURED_MESSAGE = "AI service not configured"


class GatewayError(Exception):
    """An upstream failure already mapped to the status returned to clients."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"LLM gateway error {status_code}: {message}")


def map_upstream_status(status_code: int) -> GatewayError:
    """429 and 402 pass through; every other upstream failure becomes 500."""
    if status_code == 429:
        return GatewayError(429, RATE_LIMITED_MESSAGE)
    if status_code == 402:
        return GatewayError(402, PAYMENT_REQUIRED_MESSAGE)
    return GatewayError(500, UNAVAILABLE_MESSAGE)


_llm_client: AsyncOpenAI | None = None


def _get_llm_client() -> AsyncOpenAI:
    global _llm_client
    if _llm_client is None:
        try:
            api_key = settings.llm_api_key
        except ValueError:
            logger.error("LLM_API_KEY is not configured")
            raise GatewayError(500, NOT_CONFIGURED_MESSAGE)
        # No SDK retries: a 429 must reach the client immediately
        _llm_client = AsyncOpenAI(
            api_key=api_key,
            base_url=settings.llm_base_url,
            max_retries=0,
            timeout=settings.llm_timeout,
        )
    return _llm_client


async def create_completion(messages: list[dict], tools: list[dict] | None = None):
    """Non-streaming call; returns the first choice's message object.

    Tools are attached with tool_choice="auto" only when given.
    """
    client = _get_llm_client()
    kwargs: dict = {"model": settings.llm_model, "messages": messages}
    if tools:
        kwargs["tools"] = tools
        kwargs["tool_choice"] = "auto"
    try:
        completion = await client.chat.completions.create(**kwargs)
    except APIStatusError as e:
        logger.error("AI gateway error: %s %s", e.status_code, e.message)
        raise map_upstream_status(e.status_code)
    except APIConnectionError as e:
        logger.error("AI gateway unreachable: %s", e)
        raise GatewayError(500, UNAVAILABLE_MESSAGE)

    if not completion.choices:
        logger.error("AI gateway returned no choices")
        raise GatewayError(500, UNAVAILABLE_MESSAGE)
    return completion.choices[0].message


class CompletionStream:
    """Raw SSE bytes from a streaming call, holding the upstream response open.

    Iterating relays every chunk and then releases the response. aclose() is
    safe before iteration starts and when repeated.
    """

    def __init__(self, response, stack: AsyncExitStack):
        self.response = response
        self._stack = stack

    async def __aiter__(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.response.iter_bytes():
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        await self._stack.aclose()


async def open_completion_stream(messages: list[dict]) -> CompletionStream:
    """Start a streaming call and return the upstream SSE byte stream.

    The upstream status is checked before this returns, so errors surface as
    GatewayError rather than as a half-written stream.
    """
    client = _get_llm_client()
    stack = AsyncExitStack()
    try:
        response = await stack.enter_async_context(
            client.chat.completions.with_streaming_response.create(
                model=settings.llm_model,
                messages=messages,
                stream=True,
            )
        )
    except APIStatusError as e:
        logger.error("AI gateway error on streaming call: %s %s", e.status_code, e.message)
        raise map_upstream_status(e.status_code)
    except APIConnectionError as e:
        logger.error("AI gateway unreachable on streaming call: %s", e)
        raise GatewayError(500, UNAVAILABLE_MESSAGE)

    return CompletionStream(response, stack)
