from fastapi import HTTPException, Request
from typing import Any, Dict, Optional, Union

from dal.image_dal import ImageDAL
from dal.metadata_dal import MetadataDAL
from models.errors import ValidationError
from services.image_processor import ImageProcessor
from services.openai.analysis_client import AnalysisClient
from services.storage_uploader import ORIGINALS_BUCKET
from utils.media_validation import ensure_base64_image


def build_analysis_client(request: Request) -> AnalysisClient:
    """Wire an AnalysisClient from the shared clients on app.state."""
    openai_client = getattr(request.app.state, "openai_client", None)
    if openai_client is None:
        raise HTTPException(status_code=500, detail="OpenAI client not initialized.")
    db_initializer = request.app.state.db_initializer
    return AnalysisClient(openai_client, ImageDAL(db_initializer), MetadataDAL(db_initializer))


async def analyze_image(
    request: Request,
    image_b64: Optional[str],
    image_id: Optional[Union[int, str]] = None,
) -> Dict[str, Any]:
    """Analyze a base64 image and persist the annotation when an id is given.

    Args:
        request: FastAPI Request object (used to access app.state for shared clients).
        image_b64: Base64 image payload; a data URL prefix is tolerated.
        image_id: Optional id of the asset row to annotate.

    Returns:
        ``{"success": True, "analysis": {...}, "data": metadata row or None}``

    Raises:
        ValidationError: If the payload is missing.
    """
    if not image_b64 or not isinstance(image_b64, str):
        raise ValidationError("imageBase64 is required")

    payload = ensure_base64_image(image_b64.encode("utf-8"))
    client = build_analysis_client(request)
    return await client.analyze_and_persist(payload, image_id)


async def reanalyze_image(request: Request, image_id: int) -> Dict[str, Any]:
    """Run analysis again for a stored asset, reading its original from storage.

    Raises:
        HTTPException(404) if the asset does not exist.
    """
    db_initializer = request.app.state.db_initializer
    asset = await ImageDAL(db_initializer).get_image_by_id(int(image_id))
    if asset is None:
        raise HTTPException(status_code=404, detail="Image not found")

    blob_store = request.app.state.blob_store
    original = await blob_store.download(ORIGINALS_BUCKET, asset.original_path)
    payload = ImageProcessor.encode_base64(original)

    client = build_analysis_client(request)
    return await client.analyze_and_persist(payload, asset.id)
