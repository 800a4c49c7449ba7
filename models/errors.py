"""Error taxonomy shared by the gallery services and routes."""

from __future__ import annotations

from typing import Optional


class GalleryError(Exception):
    """Base class for errors raised by the gallery pipeline."""


class ValidationError(GalleryError, ValueError):
    """A request is missing a field or carries an invalid value (HTTP 400)."""


class UpstreamError(GalleryError, RuntimeError):
    """Storage, database, or model API failure (HTTP 500)."""


class ParseError(UpstreamError):
    """An upstream response could not be parsed into the expected shape."""


class AnalysisParseError(ParseError):
    """The vision model returned something that is not a usable analysis.

    Attributes:
        raw: The untouched model output, kept for diagnostics.
    """

    def __init__(self, message: str, raw: Optional[str] = None) -> None:
        super().__init__(message)
        self.raw = raw


class ProcessingError(GalleryError):
    """Local file handling failed (unsupported type, decode, or encode).

    Processing errors are returned to the caller instead of raised so a batch
    can continue with the next file.
    """

    def __init__(self, message: str, filename: Optional[str] = None) -> None:
        super().__init__(message)
        self.filename = filename


class StorageError(UpstreamError):
    """One of the ordered storage steps failed.

    Attributes:
        step: ``"original"``, ``"thumbnail"`` or ``"record"``.
    """

    def __init__(self, step: str, message: str) -> None:
        super().__init__(f"{step} upload failed: {message}")
        self.step = step


class BlobExistsError(UpstreamError):
    """An object already exists at the requested bucket path."""


class BlobNotFoundError(UpstreamError):
    """No object exists at the requested bucket path."""
