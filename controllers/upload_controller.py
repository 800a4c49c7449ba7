"""Upload batches, gallery listing, and per-user preview state."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request, UploadFile

from dal.image_dal import ImageDAL
from dal.metadata_dal import MetadataDAL
from models.errors import ValidationError
from models.upload_models import BatchState, SourceFile
from services.gallery_events import GalleryChannel, PreviewRegistry
from services.image_processor import ImageProcessor
from services.metadata_search import display_url
from services.openai.analysis_client import AnalysisClient
from services.storage_uploader import StorageUploader
from services.upload_orchestrator import DEFAULT_RESET_DELAY, UploadOrchestrator
from utils.media_validation import read_upload_bytes

LOGGER = logging.getLogger(__name__)


def _preview_registry(request: Request, user_id: str) -> PreviewRegistry:
    registries: Dict[str, PreviewRegistry] = request.app.state.preview_registries
    registry = registries.get(user_id)
    if registry is None:
        registry = PreviewRegistry()
        registries[user_id] = registry
    return registry


def _orchestrator(request: Request, user_id: str) -> UploadOrchestrator:
    """Return the user's orchestrator, creating it on first use.

    One orchestrator per user keeps batches for the same user from overlapping.
    """
    orchestrators: Dict[str, UploadOrchestrator] = request.app.state.upload_orchestrators
    orchestrator = orchestrators.get(user_id)
    if orchestrator is not None:
        return orchestrator

    state = request.app.state
    image_dal = ImageDAL(state.db_initializer)
    analysis_client = None
    if getattr(state, "openai_client", None) is not None:
        analysis_client = AnalysisClient(state.openai_client, image_dal, MetadataDAL(state.db_initializer))

    channel = GalleryChannel()
    channel.subscribe(_preview_registry(request, user_id))
    orchestrator = UploadOrchestrator(
        ImageProcessor(),
        StorageUploader(state.blob_store, image_dal),
        analysis_client,
        channel,
        reset_delay=getattr(state, "upload_reset_delay", DEFAULT_RESET_DELAY),
    )
    orchestrators[user_id] = orchestrator
    return orchestrator


async def upload_batch(request: Request, files: List[UploadFile], user_id: Optional[str]) -> Dict[str, Any]:
    """Run one batch of uploaded files through the pipeline.

    Returns:
        ``{"success": True, "progress": 100, "files": [...]}`` with one entry per file.

    Raises:
        ValidationError: If no files or no user id were sent.
        HTTPException(409): If a batch for this user is still running.
    """
    if not user_id:
        raise ValidationError("user_id is required")
    if not files:
        raise ValidationError("At least one file is required")

    sources = []
    for upload in files:
        data = await read_upload_bytes(upload)
        sources.append(
            SourceFile(filename=upload.filename, content_type=upload.content_type or "", data=data)
        )

    orchestrator = _orchestrator(request, user_id)
    try:
        summary = await orchestrator.run(sources, user_id)
    except RuntimeError as exc:
        if orchestrator.state != BatchState.IDLE:
            raise HTTPException(status_code=409, detail=str(exc)) from exc
        raise

    return {
        "success": True,
        "progress": summary.progress,
        "files": [f.to_dict() for f in summary.files],
    }


async def list_images(request: Request, user_id: Optional[str], limit: int = 100, offset: int = 0) -> Dict[str, Any]:
    """List a user's gallery newest first; persisted assets retire their previews."""
    image_dal = ImageDAL(request.app.state.db_initializer)
    assets = await image_dal.list_images(owner_id=user_id or None, limit=limit, offset=offset)
    if user_id and user_id in request.app.state.preview_registries:
        request.app.state.preview_registries[user_id].observe_assets(assets)

    images = []
    for asset in assets:
        row = asset.to_row()
        row["public_url"] = display_url(request.app.state.blob_store, asset)
        images.append(row)
    return {"success": True, "images": images}


async def list_previews(request: Request, user_id: str) -> Dict[str, Any]:
    """Return the user's pending previews and any analyses reported for them."""
    registry = request.app.state.preview_registries.get(user_id)
    if registry is None:
        return {"success": True, "previews": []}

    previews = []
    for item in registry.previews:
        analysis = registry.analysis_for(item.stored_filename)
        previews.append(
            {
                "preview_url": item.preview_url,
                "filename": item.original_filename,
                "stored_filename": item.stored_filename,
                "created_at": item.created_at,
                "tags": analysis.tags if analysis else [],
                "description": analysis.description if analysis else None,
            }
        )
    return {"success": True, "previews": previews}


async def end_session(request: Request, user_id: str) -> Dict[str, Any]:
    """Release all preview state held for the user.

    When no batch is running the user's registry and orchestrator are dropped
    as well; a running batch keeps publishing into its (now empty) registry.
    """
    state = request.app.state
    registry = state.preview_registries.get(user_id)
    if registry is not None:
        registry.end_session()
        LOGGER.info("Released preview state for %s", user_id)

    orchestrator = state.upload_orchestrators.get(user_id)
    if orchestrator is None or orchestrator.state == BatchState.IDLE:
        state.upload_orchestrators.pop(user_id, None)
        state.preview_registries.pop(user_id, None)
    return {"success": True}
