"""FastAPI routes for signed URLs and stored objects."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from controllers.storage_controller import create_signed_url, serve_object
from models.errors import ValidationError

router = APIRouter(tags=["storage"])


class SignedUrlPayload(BaseModel):
	bucket: Optional[str] = None
	path: Optional[str] = None
	expires: int = 3600


@router.post("/api/signed-url")
async def signed_url_route(request: Request, payload: SignedUrlPayload):
	try:
		return await create_signed_url(request, payload.bucket, payload.path, payload.expires)
	except ValidationError as exc:
		return JSONResponse({"error": str(exc)}, status_code=400)
	except Exception as exc:
		return JSONResponse({"error": str(exc)}, status_code=500)


@router.get("/storage/{bucket}/{path:path}", include_in_schema=False)
async def storage_object_route(
	request: Request,
	bucket: str,
	path: str,
	expires: Optional[int] = None,
	signature: Optional[str] = None,
):
	"""Return the bytes of a stored object."""
	try:
		return await serve_object(request, bucket, path, expires, signature)
	except HTTPException:
		raise
	except Exception as exc:
		raise HTTPException(status_code=500, detail=str(exc))
