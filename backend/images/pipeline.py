"""Top-level photo normalization used before every upload."""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Callable

from config import DEFAULT_IMAGE_TARGET_BYTES
from images.compress import compress_to_target
from images.errors import ImageConversionError
from images.formats import is_heic_file, jpeg_filename
from images.heic import convert_heic_server_side, convert_heic_to_jpeg
from storage.client import StorageClient

logger = logging.getLogger(__name__)

HEIC_FAILURE_MESSAGE = "Could not convert HEIC file. Please try a JPG or PNG image instead."


@dataclass
class ProcessedImage:
    """A JPEG ready for the caller to upload."""
    blob: bytes
    filename: str
    content_type: str = "image/jpeg"


@dataclass
class ServerConvertedImage:
    """The remote converter already stored a suitable JPEG at server_url."""
    server_url: str


async def process_image_for_upload(
    data: bytes,
    filename: str,
    content_type: str | None = None,
    *,
    target_bytes: int = DEFAULT_IMAGE_TARGET_BYTES,
    user_id: uuid.UUID | str | None = None,
    storage: StorageClient | None = None,
    on_progress: Callable[[str], None] | None = None,
) -> ProcessedImage | ServerConvertedImage:
    """Normalize a user photo to a JPEG at or under target_bytes.

    HEIC input is converted locally first. If that fails and a storage client
    and user id are supplied, the remote converter is tried; its URL is
    returned as-is since the server already produced the final artifact.

    Raises:
        ImageConversionError: HEIC input that no conversion path could handle.
        ImageDecodeError: Non-HEIC input that is not a decodable image.
    """
    loop = asyncio.get_running_loop()
    source = data
    if is_heic_file(filename, content_type):
        if on_progress:
            on_progress("Converting photo format...")
        converted = await loop.run_in_executor(None, convert_heic_to_jpeg, data)
        if converted is None:
            if storage is not None and user_id is not None:
                server_url = await convert_heic_server_side(data, filename, user_id, storage)
                if server_url:
                    return ServerConvertedImage(server_url=server_url)
            raise ImageConversionError(HEIC_FAILURE_MESSAGE)
        source = converted

    if on_progress:
        on_progress("Optimizing photo...")
    blob = await loop.run_in_executor(None, compress_to_target, source, target_bytes)
    logger.info("Processed %r: %d -> %d bytes", filename, len(data), len(blob))
    return ProcessedImage(blob=blob, filename=jpeg_filename(filename))
