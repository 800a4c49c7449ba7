"""FastAPI routes for image analysis."""

import logging
from typing import Optional, Union

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.analysis_controller import analyze_image
from utils.responses import exception_response

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["analysis"])


class AnalyzePayload(BaseModel):
    imageBase64: Optional[str] = None
    imageId: Optional[Union[int, str]] = None


@router.post("/analyze", summary="Describe, tag, and color-profile an image")
async def analyze_route(request: Request, payload: AnalyzePayload):
    """Analyze a base64 image and persist the annotation for `imageId`."""
    try:
        return await analyze_image(request, payload.imageBase64, payload.imageId)
    except HTTPException:
        raise
    except Exception as exc:
        LOGGER.error("Analyze request failed: %s", exc)
        return exception_response(exc)
