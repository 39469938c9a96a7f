"""Image pipeline exceptions."""


class ImageProcessingError(Exception):
    """Base class for failures while normalizing an uploaded photo."""


class ImageDecodeError(ImageProcessingError):
    """The input bytes could not be decoded as an image."""


class ImageConversionError(ImageProcessingError):
    """A HEIC/HEIF photo could not be converted by any available path."""
