"""Upload format classification by filename and reported MIME type.

Both checks are pure functions of (filename, content_type). Mobile Safari
sometimes sends HEIC photos with an empty MIME type, so the extension is the
more reliable signal.
"""

HEIC_EXTENSIONS = (".heic", ".heif")
HEIC_MIME_TYPES = frozenset({"image/heic", "image/heif"})

VALID_MIME_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
    "image/heic",
    "image/heif",
    "",  # iOS omits the MIME type for some HEIC uploads
})
VALID_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp", ".gif", ".heic", ".heif")


def is_heic_file(filename: str, content_type: str | None) -> bool:
    """True if the upload looks like a HEIC/HEIF photo."""
    name = (filename or "").lower()
    mime = (content_type or "").lower()
    if name.endswith(HEIC_EXTENSIONS):
        return True
    if mime in HEIC_MIME_TYPES:
        return True
    return False


def is_valid_image_type(filename: str, content_type: str | None) -> bool:
    """True if the upload is a raster format the pipeline accepts."""
    name = (filename or "").lower()
    mime = (content_type or "").lower()
    return mime in VALID_MIME_TYPES or name.endswith(VALID_EXTENSIONS)


def jpeg_filename(filename: str) -> str:
    """Swap the extension for .jpg, keeping the stem.

    A bare extension such as ".heic" counts as an extension, not a stem.
    """
    name = filename or "photo"
    stem, dot, ext = name.rpartition(".")
    if not dot:
        return f"{name}.jpg"
    return f"{stem}.jpg"
