"""Image processor service.

Provides a small OOP wrapper around Pillow that turns one uploaded
JPEG/PNG file into everything the upload pipeline needs:

- a thumbnail that fits within `max_edge` x `max_edge` pixels, saved in the
  same format as the source;
- the base64 encoding of the original bytes, sent to the analysis model;
- a stored filename prefixed with a strictly increasing millisecond
  timestamp so two uploads never collide.

Public class: `ImageProcessor`

Example:
    processor = ImageProcessor(max_edge=300)
    result = await processor.process(source_file, on_progress=print)
    if isinstance(result, ProcessingError):
        ...
"""
from __future__ import annotations

import asyncio
import base64
import io
import logging
import os
import threading
import time
from typing import Callable, Optional, Union

from PIL import Image

from models.errors import ProcessingError
from models.upload_models import ProcessedImage, SourceFile
from utils.media_validation import is_supported_image_type, normalize_content_type

LOGGER = logging.getLogger(__name__)
DEFAULT_MAX_EDGE = int(os.getenv("THUMBNAIL_MAX_EDGE", "300"))

_PIL_FORMATS = {"image/jpeg": "JPEG", "image/png": "PNG"}

ProgressCallback = Callable[[float], None]


class _TimestampSource:
    """Millisecond timestamps that never repeat within the process."""

    def __init__(self) -> None:
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            now = time.time_ns() // 1_000_000
            self._last = now if now > self._last else self._last + 1
            return self._last


_TIMESTAMPS = _TimestampSource()


class ImageProcessor:
    """Derive a thumbnail, base64 payload, and stored filename from a raw file.

    Args:
        max_edge: Maximum width and height for the thumbnail. Defaults to 300.
        jpeg_quality: Quality used when re-encoding JPEG thumbnails.
    """

    def __init__(self, max_edge: int = DEFAULT_MAX_EDGE, jpeg_quality: int = 80) -> None:
        self.max_edge = max_edge
        self.jpeg_quality = jpeg_quality

    @staticmethod
    def derive_filename(original_name: str) -> str:
        """Return ``<timestamp-ms>-<basename>`` for `original_name`."""
        basename = os.path.basename((original_name or "").replace("\\", "/")) or "upload"
        return f"{_TIMESTAMPS.next()}-{basename}"

    async def process(
        self,
        source: SourceFile,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Union[ProcessedImage, ProcessingError]:
        """Process one file; errors are returned, not raised.

        The progress callback is invoked with 0.5 once the thumbnail is ready
        and 1.0 once the base64 payload is ready.
        """
        content_type = normalize_content_type(source.content_type)
        if not is_supported_image_type(content_type):
            return ProcessingError(
                f"Unsupported content type {source.content_type!r}; only JPEG/PNG allowed",
                filename=source.filename,
            )
        if not source.data:
            return ProcessingError("Uploaded file is empty", filename=source.filename)

        try:
            thumbnail = await asyncio.to_thread(self.create_thumbnail, source.data, content_type)
        except Exception as exc:
            LOGGER.error("Thumbnail generation failed for %s: %s", source.filename, exc)
            return ProcessingError(f"Thumbnail generation failed: {exc}", filename=source.filename)
        if on_progress:
            on_progress(0.5)

        try:
            payload = await asyncio.to_thread(self.encode_base64, source.data)
        except Exception as exc:
            LOGGER.error("Base64 encoding failed for %s: %s", source.filename, exc)
            return ProcessingError(f"Encoding failed: {exc}", filename=source.filename)
        if on_progress:
            on_progress(1.0)

        return ProcessedImage(
            stored_filename=self.derive_filename(source.filename),
            thumbnail_bytes=thumbnail,
            thumbnail_content_type=content_type,
            base64_payload=payload,
        )

    def create_thumbnail(self, data: bytes, content_type: str) -> bytes:
        """Return thumbnail bytes for an image, preserving aspect ratio.

        Raises:
            ValueError: If the bytes cannot be opened as an image.
        """
        try:
            src = Image.open(io.BytesIO(data))
            src.load()
        except Exception as exc:
            raise ValueError("Decoded bytes are not a supported image format") from exc

        fmt = _PIL_FORMATS[content_type]
        if fmt == "JPEG" and src.mode not in ("RGB", "L"):
            src = src.convert("RGB")

        src.thumbnail((self.max_edge, self.max_edge), Image.LANCZOS)

        out_io = io.BytesIO()
        if fmt == "JPEG":
            src.save(out_io, format="JPEG", quality=self.jpeg_quality, optimize=True)
        else:
            src.save(out_io, format="PNG", optimize=True)
        return out_io.getvalue()

    @staticmethod
    def encode_base64(data: bytes) -> str:
        return base64.b64encode(data).decode("utf-8")
