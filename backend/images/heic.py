"""HEIC/HEIF to JPEG conversion: local decode first, remote function second."""

import io
import logging
import re
import uuid

import httpx
from PIL import Image
from pillow_heif import register_heif_opener

from storage.client import StorageAPIError, StorageClient

register_heif_opener()

logger = logging.getLogger(__name__)

HEIC_QUALITY_LADDER = (0.92, 0.85, 0.70, 0.50)

HEIC_TEMP_BUCKET = "dog-photos"
CONVERT_HEIC_FUNCTION = "convert-heic"

_UNSAFE_PATH_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def _encode(img: Image.Image, quality: float | None) -> bytes:
    buf = io.BytesIO()
    if quality is None:
        img.save(buf, format="JPEG")
    else:
        img.save(buf, format="JPEG", quality=max(1, min(95, round(quality * 100))))
    return buf.getvalue()


def convert_heic_to_jpeg(data: bytes) -> bytes | None:
    """Decode a HEIC/HEIF photo and re-encode it as JPEG.

    Qualities in HEIC_QUALITY_LADDER are tried in order, then one last pass at
    the encoder default. The first non-empty result wins.

    Returns:
        JPEG bytes, or None if the photo could not be decoded or encoded.
    """
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
        if img.mode != "RGB":
            img = img.convert("RGB")
    except Exception as e:
        logger.warning("HEIC decode failed: %s", e)
        return None

    for quality in (*HEIC_QUALITY_LADDER, None):
        try:
            blob = _encode(img, quality)
        except Exception as e:
            logger.warning("HEIC conversion at quality %s failed: %s", quality, e)
            continue
        if blob:
            logger.info("HEIC conversion succeeded at quality %s: %d bytes", quality, len(blob))
            return blob

    logger.error("All HEIC conversion attempts failed")
    return None


def temp_upload_path(user_id: uuid.UUID | str, filename: str) -> str:
    """Storage path for an original HEIC awaiting server-side conversion."""
    safe_name = _UNSAFE_PATH_CHARS.sub("_", filename or "photo.heic").strip("_") or "photo.heic"
    return f"temp/{user_id}/{uuid.uuid4().hex}-{safe_name}"


async def convert_heic_server_side(
    data: bytes,
    filename: str,
    user_id: uuid.UUID | str,
    storage: StorageClient,
) -> str | None:
    """Fallback conversion through the remote convert-heic function.

    Uploads the original to a temporary path, asks the function to convert it,
    and returns the converted photo's URL. The temporary object is removed if
    the function fails.

    Returns:
        Public URL of the converted JPEG, or None on any failure.
    """
    temp_path = temp_upload_path(user_id, filename)
    try:
        await storage.upload(HEIC_TEMP_BUCKET, temp_path, data, content_type="image/heic")
    except (StorageAPIError, httpx.HTTPError) as e:
        logger.error("Temp upload for server HEIC conversion failed: %s", e)
        return None

    try:
        result = await storage.invoke(
            CONVERT_HEIC_FUNCTION, {"tempPath": temp_path, "userId": str(user_id)},
        )
        url = result.get("url")
        if url:
            logger.info("Server-side HEIC conversion succeeded for %s", temp_path)
            return url
        logger.warning("convert-heic returned no url: %s", result)
    except (StorageAPIError, httpx.HTTPError) as e:
        logger.error("Server-side HEIC conversion failed: %s", e)

    try:
        await storage.remove(HEIC_TEMP_BUCKET, [temp_path])
    except (StorageAPIError, httpx.HTTPError) as e:
        logger.warning("Failed to clean up temp HEIC %s: %s", temp_path, e)
    return None
