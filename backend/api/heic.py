"""Server-side HEIC conversion, invoked when a client cannot decode HEIC itself.

POST /functions/v1/convert-heic {tempPath, userId} → {url}

The original lives at tempPath in the dog-photos bucket. It is converted,
compressed, stored as {userId}/<id>.jpg, and the temp object is removed.
"""

import asyncio
import hmac
import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from auth.jwt import decode_token
from config import settings
from images.compress import compress_to_target
from images.heic import HEIC_TEMP_BUCKET, convert_heic_to_jpeg
from storage.client import StorageAPIError, StorageClient, get_storage_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/functions/v1", tags=["heic"])

_bearer_scheme = HTTPBearer()


class ConvertHeicRequest(BaseModel):
    tempPath: str | None = None
    userId: str | None = None


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status_code)


def _caller_may_convert(token: str, user_id: str) -> bool:
    """Service-role callers may convert anything; users only their own uploads."""
    try:
        service_key = settings.supabase_service_role_key
    except ValueError:
        logger.warning("[convert-heic] SUPABASE_SERVICE_ROLE_KEY is not configured")
        service_key = None
    if service_key and hmac.compare_digest(token.encode(), service_key.encode()):
        return True
    try:
        return str(decode_token(token)) == user_id
    except HTTPException:
        return False


async def _remove_temp(storage: StorageClient, temp_path: str) -> None:
    try:
        await storage.remove(HEIC_TEMP_BUCKET, [temp_path])
    except StorageAPIError as e:
        logger.warning("[convert-heic] Failed to remove %s: %s", temp_path, e)


@router.options("/convert-heic")
async def convert_heic_preflight():
    return PlainTextResponse("ok")


@router.post("/convert-heic")
async def convert_heic(
    body: ConvertHeicRequest,
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
    storage: StorageClient = Depends(get_storage_client),
):
    if not body.tempPath or not body.userId:
        return _error(400, "Missing tempPath or userId")
    if not body.tempPath.startswith(f"temp/{body.userId}/") or ".." in body.tempPath:
        return _error(400, "tempPath does not belong to userId")
    if not _caller_may_convert(credentials.credentials, body.userId):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")

    logger.info(f"[convert-heic] Processing: {body.tempPath}")
    try:
        original = await storage.download(HEIC_TEMP_BUCKET, body.tempPath)
    except StorageAPIError as e:
        logger.error(f"[convert-heic] Download failed: {e}")
        return _error(500, "Failed to download file")
    logger.info(f"[convert-heic] Downloaded file, size: {len(original)}")

    loop = asyncio.get_running_loop()
    converted = await loop.run_in_executor(None, convert_heic_to_jpeg, original)
    if converted is None:
        await _remove_temp(storage, body.tempPath)
        return _error(
            422,
            "Server-side HEIC conversion failed. Please use a JPG or PNG image.",
            requiresClientConversion=True,
        )

    blob = await loop.run_in_executor(
        None, compress_to_target, converted, settings.image_target_bytes,
    )
    path = f"{body.userId}/{uuid.uuid4().hex}.jpg"
    try:
        await storage.upload(HEIC_TEMP_BUCKET, path, blob, content_type="image/jpeg")
    except StorageAPIError as e:
        logger.error(f"[convert-heic] Upload failed: {e}")
        await _remove_temp(storage, body.tempPath)
        return _error(500, "Failed to store converted file")

    await _remove_temp(storage, body.tempPath)
    url = storage.get_public_url(HEIC_TEMP_BUCKET, path)
    logger.info(f"[convert-heic] Converted {body.tempPath} -> {path} ({len(blob)} bytes)")
    return {"url": url, "path": path}
