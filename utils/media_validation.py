"""Validation helpers for uploaded images."""

import base64
from typing import Optional

from fastapi import HTTPException, UploadFile

ALLOWED_IMAGE_TYPES = {
    "image/jpeg",
    "image/png",
}


def normalize_content_type(content_type: Optional[str]) -> str:
    """Lower-case a content type and drop any parameters (``; charset=...``)."""
    return (content_type or "").lower().split(";", 1)[0].strip()


def is_supported_image_type(content_type: Optional[str]) -> bool:
    """Return True for the two accepted upload types (JPEG, PNG)."""
    return normalize_content_type(content_type) in ALLOWED_IMAGE_TYPES


def ensure_base64_image(raw: bytes) -> str:
    """Return base64 text for an image, encoding binary input when necessary.

    Data URLs (``data:image/png;base64,...``) are stripped to their payload.
    """
    try:
        text = raw.decode("utf-8").strip()
    except UnicodeDecodeError:
        return base64.b64encode(raw).decode("utf-8")
    if text.startswith("data:") and "," in text:
        text = text.split(",", 1)[1]
    return text


async def read_upload_bytes(upload: UploadFile) -> bytes:
    """Read a multipart upload, rejecting files without a name."""
    if not upload.filename:
        raise HTTPException(status_code=400, detail="Uploaded file must have a filename.")
    return await upload.read()
