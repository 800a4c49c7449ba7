"""FastAPI routes for metadata search."""

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from controllers.search_controller import search_images
from utils.responses import error_response, exception_response

router = APIRouter(prefix="/api", tags=["search"])


class SearchPayload(BaseModel):
    q: Optional[Any] = None
    userId: Optional[str] = None


@router.post("/search", summary="Search image descriptions, tags, and colors")
async def search_route(request: Request, payload: SearchPayload):
    """Return images whose metadata contains the query text."""
    if payload.q is None or not isinstance(payload.q, str):
        return error_response(400, "q (query) is required")
    try:
        result = await search_images(request, payload.q, payload.userId)
    except HTTPException:
        raise
    except Exception as exc:
        return exception_response(exc)
    if not result.get("success"):
        return error_response(500, result.get("error") or "Search failed")
    return result
