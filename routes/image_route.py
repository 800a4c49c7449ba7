from typing import List, Optional

from fastapi import APIRouter, File, Form, HTTPException, Request, UploadFile

from controllers.analysis_controller import reanalyze_image
from controllers.upload_controller import end_session, list_images, list_previews, upload_batch
from utils.responses import exception_response

router = APIRouter(prefix="/api", tags=["images"])


@router.post("/uploads", summary="Upload a batch of JPEG/PNG images")
async def upload_images_route(
	request: Request,
	files: Optional[List[UploadFile]] = File(None),
	user_id: Optional[str] = Form(None),
):
	"""Process, store, and analyze each file in order."""
	try:
		return await upload_batch(request, files or [], user_id)
	except HTTPException:
		raise
	except Exception as exc:
		return exception_response(exc)


@router.get("/uploads/previews")
async def previews_route(request: Request, user_id: str):
	"""Return previews still waiting for their persisted asset."""
	return await list_previews(request, user_id)


@router.delete("/uploads/previews")
async def end_session_route(request: Request, user_id: str):
	"""Release the user's preview state (session ended)."""
	return await end_session(request, user_id)


@router.get("/images")
async def list_images_route(request: Request, user_id: Optional[str] = None, limit: int = 100, offset: int = 0):
	"""List stored images newest first with display URLs."""
	try:
		return await list_images(request, user_id, limit=limit, offset=offset)
	except HTTPException:
		raise
	except Exception as exc:
		return exception_response(exc)


@router.post("/images/{image_id}/analyze")
async def reanalyze_route(request: Request, image_id: int):
	"""Analyze a stored image again from its original."""
	try:
		return await reanalyze_image(request, image_id)
	except HTTPException:
		raise
	except Exception as exc:
		return exception_response(exc)
