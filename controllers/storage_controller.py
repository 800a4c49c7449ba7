"""Signed URL issuing and object serving for the blob store."""

from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.responses import FileResponse

from dal.blob_store import LocalBlobStore
from models.errors import BlobNotFoundError, UpstreamError, ValidationError
from services.storage_uploader import THUMBNAILS_BUCKET

PUBLIC_BUCKETS = {THUMBNAILS_BUCKET}


def _get_blob_store(request: Request) -> LocalBlobStore:
    blob_store = getattr(request.app.state, "blob_store", None)
    if blob_store is None:
        raise UpstreamError("Blob storage not initialized.")
    return blob_store


async def create_signed_url(request: Request, bucket: Optional[str], path: Optional[str], expires: int = 3600) -> Dict[str, Any]:
    """Return ``{"url": ...}`` for an existing object.

    Raises:
        ValidationError: If bucket or path is missing.
        UpstreamError: If signing is not configured or the object is missing.
    """
    if not bucket or not path:
        raise ValidationError("Missing bucket or path")
    blob_store = _get_blob_store(request)
    if not blob_store.can_sign:
        raise UpstreamError("Server not configured with a storage signing secret")
    url = await blob_store.create_signed_url(bucket, path, expires=int(expires))
    return {"url": url}


async def serve_object(
    request: Request,
    bucket: str,
    path: str,
    expires: Optional[int] = None,
    signature: Optional[str] = None,
) -> FileResponse:
    """Stream an object; non-public buckets require a valid signature."""
    blob_store = _get_blob_store(request)
    try:
        if bucket not in PUBLIC_BUCKETS:
            if expires is None or not signature or not blob_store.verify_signature(bucket, path, int(expires), signature):
                raise HTTPException(status_code=403, detail="Invalid or expired signature")
        if not await blob_store.exists(bucket, path):
            raise BlobNotFoundError(f"Object not found: {bucket}/{path}")
        target = blob_store.local_path(bucket, path)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except BlobNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return FileResponse(target)
