"""Controller for metadata search requests."""

from typing import Any, Dict, Optional

from fastapi import Request

from dal.image_dal import ImageDAL
from dal.metadata_dal import MetadataDAL
from services.metadata_search import MetadataSearch


async def search_images(request: Request, query: str, user_id: Optional[str] = None) -> Dict[str, Any]:
    """Run a metadata search scoped to `user_id` when provided."""
    db_initializer = request.app.state.db_initializer
    search = MetadataSearch(
        MetadataDAL(db_initializer),
        ImageDAL(db_initializer),
        request.app.state.blob_store,
    )
    return await search.search(query, owner_id=user_id or None)
