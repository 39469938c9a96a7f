"""AI assistant endpoint: tool-backed answers streamed as Server-Sent Events."""

import logging
import uuid
from typing import Literal

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from starlette.background import BackgroundTask
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from assistant.gateway import GatewayError, UNAVAILABLE_MESSAGE
from assistant.orchestrator import run_assistant_turn
from auth.jwt import get_optional_user_id
from models import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions/v1", tags=["assistant"])


class ImageURL(BaseModel):
    model_config = ConfigDict(extra="allow")

    url: str


class ContentPart(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["text", "image_url"]
    text: str | None = None
    image_url: ImageURL | None = None


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: Literal["user", "assistant", "tool", "system"]
    content: str | list[ContentPart] | None = None


class AssistantRequest(BaseModel):
    messages: list[ChatMessage] = Field(min_length=1)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


@router.options("/ai-assistant")
async def ai_assistant_preflight():
    return PlainTextResponse("ok")


@router.post("/ai-assistant")
async def ai_assistant(
    request: Request,
    user_id: uuid.UUID | None = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Answer a chat transcript, streaming the reply as text/event-stream.

    A valid bearer token enables tools over the caller's own records; without
    one the assistant still answers, with no personal-data access.
    """
    try:
        payload = await request.json()
        body = AssistantRequest.model_validate(payload)
    except (ValueError, ValidationError) as e:
        logger.info("Rejected assistant request: %s", e)
        return _error(400, "Messages array is required")

    messages = [m.model_dump(exclude_none=True) for m in body.messages]

    try:
        stream = await run_assistant_turn(
            messages, user_id, db if user_id is not None else None,
        )
    except GatewayError as e:
        return _error(e.status_code, e.message)
    except Exception as e:
        logger.error("AI assistant error: %s", e, exc_info=True)
        return _error(500, UNAVAILABLE_MESSAGE)

    return StreamingResponse(
        stream, media_type="text/event-stream", background=BackgroundTask(stream.aclose),
    )
