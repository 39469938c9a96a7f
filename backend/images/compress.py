"""JPEG re-encoding with a best-effort size target.

All functions are synchronous and CPU-bound. Call them via run_in_executor from
async code.
"""

import io
import logging

from PIL import Image, ImageOps

from images.errors import ImageDecodeError

logger = logging.getLogger(__name__)

# Ladder tried from least to most aggressive; first result under target wins.
LADDER_DIMENSIONS = (1600, 1280, 1024, 800)
LADDER_QUALITIES = (0.85, 0.75, 0.65, 0.55, 0.45)

LAST_RESORT_DIMENSION = 640
LAST_RESORT_QUALITY = 0.3


def compression_ladder() -> list[tuple[int, float]]:
    """All (max_dimension, quality) steps in the order they are tried."""
    return [(dim, q) for dim in LADDER_DIMENSIONS for q in LADDER_QUALITIES]


def _pillow_quality(quality: float) -> int:
    # Pillow takes 1-95; values above 95 disable JPEG quantization tables
    return max(1, min(95, round(quality * 100)))


def load_image(data: bytes) -> Image.Image:
    """Decode bytes into an upright RGB image.

    Raises:
        ImageDecodeError: If the bytes are not a decodable image.
    """
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"Failed to load image for compression: {e}")

    img = ImageOps.exif_transpose(img)
    if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
        # JPEG has no alpha; flatten onto white like a canvas export would
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[-1])
        return background
    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def scaled_size(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """Fit (width, height) inside a max_dimension square, never upscaling."""
    longest = max(width, height)
    if longest <= max_dimension:
        return width, height
    scale = max_dimension / longest
    return max(1, round(width * scale)), max(1, round(height * scale))


def encode_jpeg(img: Image.Image, max_dimension: int, quality: float) -> bytes:
    """Resize an already-decoded image and encode it as JPEG."""
    size = scaled_size(img.width, img.height, max_dimension)
    if size != img.size:
        img = img.resize(size, Image.Resampling.LANCZOS)
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=_pillow_quality(quality), optimize=True)
    return buf.getvalue()


def resize_and_compress(data: bytes, max_dimension: int, quality: float) -> bytes:
    """Decode, scale so the longer edge is at most max_dimension, encode JPEG.

    Args:
        data: Raw image bytes in any format Pillow can open.
        max_dimension: Longest allowed edge in pixels.
        quality: JPEG quality in the 0-1 range.

    Returns:
        JPEG bytes.
    """
    return encode_jpeg(load_image(data), max_dimension, quality)


def compress_to_target(data: bytes, target_bytes: int) -> bytes:
    """Walk the ladder until an encode fits target_bytes.

    If no step fits, a 640px / 0.3 encode is returned regardless of its size.
    The target is a soft limit; this function never gives up on a decodable
    image.
    """
    img = load_image(data)
    attempts = 0
    for max_dimension, quality in compression_ladder():
        attempts += 1
        blob = encode_jpeg(img, max_dimension, quality)
        if len(blob) <= target_bytes:
            logger.info(
                "Compressed %dx%d to %d bytes at %dpx/q%.2f after %d attempts",
                img.width, img.height, len(blob), max_dimension, quality, attempts,
            )
            return blob

    blob = encode_jpeg(img, LAST_RESORT_DIMENSION, LAST_RESORT_QUALITY)
    logger.warning(
        "No ladder step met %d bytes; last resort %dpx/q%.1f produced %d bytes",
        target_bytes, LAST_RESORT_DIMENSION, LAST_RESORT_QUALITY, len(blob),
    )
    return blob
