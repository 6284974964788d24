"""Errors raised by the transform pipeline and its raster backend."""


class PixelAlchemyError(Exception):
    """Base error for this package."""


class MetadataReadError(PixelAlchemyError):
    """Raised when a source image is corrupt or cannot be identified."""


class RasterOperationError(PixelAlchemyError):
    """Raised when a primitive operation rejects its arguments."""


class UnsupportedFormatError(PixelAlchemyError):
    """Raised for an output format the backend cannot write, or a source it cannot decode."""
