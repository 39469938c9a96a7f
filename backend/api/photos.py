"""Photo upload endpoint: normalize to JPEG, then store in a media bucket."""

import uuid
import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from pydantic import BaseModel

from auth.jwt import get_current_user_id
from config import settings
from images.errors import ImageConversionError, ImageDecodeError
from images.formats import is_valid_image_type
from images.pipeline import ServerConvertedImage, process_image_for_upload
from storage.client import StorageAPIError, StorageClient, get_storage_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/photos", tags=["photos"])

PHOTO_BUCKETS = frozenset({
    "dog-photos",
    "post-photos",
    "chat-images",
    "sitter-log-media",
    "sighting-media",
})

MAX_FILE_SIZE = 30 * 1024 * 1024  # 30 MB, large enough for raw phone photos


class PhotoUploadResponse(BaseModel):
    url: str
    path: str | None = None
    filename: str | None = None
    size: int | None = None


@router.post("/{bucket}", response_model=PhotoUploadResponse)
async def upload_photo(
    bucket: str,
    file: UploadFile = File(...),
    user_id: uuid.UUID = Depends(get_current_user_id),
    storage: StorageClient = Depends(get_storage_client),
):
    """Upload a photo of any supported format; it is stored as a JPEG."""
    if bucket not in PHOTO_BUCKETS:
        raise HTTPException(status_code=404, detail=f"Unknown bucket: {bucket}")

    filename = file.filename or "photo.jpg"
    content_type = file.content_type or ""
    if not is_valid_image_type(filename, content_type):
        raise HTTPException(
            status_code=400,
            detail="Unsupported file type. Please upload a JPG, PNG, WebP, GIF, or HEIC image.",
        )

    content = await file.read()
    if len(content) > MAX_FILE_SIZE:
        raise HTTPException(
            status_code=400,
            detail=f"File too large. Maximum size is {MAX_FILE_SIZE // (1024 * 1024)}MB.",
        )
    if len(content) == 0:
        raise HTTPException(status_code=400, detail="File is empty.")

    try:
        result = await process_image_for_upload(
            content,
            filename,
            content_type,
            target_bytes=settings.image_target_bytes,
            user_id=user_id,
            storage=storage,
        )
    except ImageConversionError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ImageDecodeError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if isinstance(result, ServerConvertedImage):
        logger.info("Photo for user %s converted server-side: %s", user_id, result.server_url)
        return PhotoUploadResponse(url=result.server_url)

    path = f"{user_id}/{uuid.uuid4().hex}.jpg"
    try:
        await storage.upload(bucket, path, result.blob, content_type=result.content_type)
    except StorageAPIError as e:
        logger.error("Photo upload to %s failed: %s", bucket, e)
        raise HTTPException(status_code=502, detail="Failed to upload photo")

    logger.info(
        "Stored photo %s/%s for user %s (%d bytes)", bucket, path, user_id, len(result.blob),
    )
    return PhotoUploadResponse(
        url=storage.get_public_url(bucket, path),
        path=path,
        filename=result.filename,
        size=len(result.blob),
    )
