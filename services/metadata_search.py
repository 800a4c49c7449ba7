"""Free-text search over analysis metadata.

Loads the newest metadata rows (optionally for one owner), keeps the rows
whose description, tags, or colors contain the query, then returns the
matching assets in metadata order with a display URL attached.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from dal.blob_store import LocalBlobStore, strip_bucket_prefix
from dal.image_dal import ImageDAL
from dal.metadata_dal import MetadataDAL
from models.image_asset import ImageAsset, normalize_string_list
from services.storage_uploader import THUMBNAILS_BUCKET

LOGGER = logging.getLogger(__name__)
SCAN_LIMIT = 1000


def row_matches(row: Dict[str, Any], needle: str) -> bool:
    """Return True when description, any tag, or any color contains `needle`.

    `needle` must already be trimmed and lower-cased. Fields are checked in
    that order and the first hit wins.
    """
    description = row.get("description")
    if isinstance(description, str) and needle in description.lower():
        return True
    if any(needle in tag.lower() for tag in normalize_string_list(row.get("tags"))):
        return True
    return any(needle in color.lower() for color in normalize_string_list(row.get("colors")))


def display_url(blob_store: LocalBlobStore, asset: ImageAsset) -> str:
    """Best-effort public URL for an asset, always in the public thumbnails bucket.

    Originals and thumbnails share the same object key, so a row without a
    thumbnail path falls back to its original path inside the thumbnails bucket.
    """
    raw_path = asset.thumbnail_path or asset.original_path
    if not raw_path:
        return ""
    try:
        return blob_store.public_url(THUMBNAILS_BUCKET, strip_bucket_prefix(raw_path, THUMBNAILS_BUCKET))
    except Exception as exc:
        LOGGER.warning("Could not resolve display URL for image %s: %s", asset.id, exc)
        return ""


class MetadataSearch:
    """Substring search across description, tags, and colors."""

    def __init__(
        self,
        metadata_dal: MetadataDAL,
        image_dal: ImageDAL,
        blob_store: LocalBlobStore,
        *,
        scan_limit: int = SCAN_LIMIT,
    ) -> None:
        self.metadata_dal = metadata_dal
        self.image_dal = image_dal
        self.blob_store = blob_store
        self.scan_limit = scan_limit

    async def search(self, text: str, owner_id: Optional[str] = None) -> Dict[str, Any]:
        """Return ``{"success": True, "images": [...]}`` or ``{"success": False, "error": ...}``.

        An empty or blank query yields no images rather than every image.
        """
        needle = (text or "").strip().lower()
        if not needle:
            return {"success": True, "images": []}

        try:
            rows = await self.metadata_dal.list_recent(owner_id=owner_id, limit=self.scan_limit)
            LOGGER.debug("Scanning %d metadata row(s) for %r (owner=%s)", len(rows), needle, owner_id)

            ordered_ids: List[int] = [r["image_id"] for r in rows if r and r.get("image_id") and row_matches(r, needle)]
            if not ordered_ids:
                return {"success": True, "images": []}

            assets = await self.image_dal.get_images_by_ids(ordered_ids, owner_id=owner_id)
        except Exception as exc:
            LOGGER.error("Metadata search failed for %r: %s", needle, exc)
            return {"success": False, "error": str(exc) or exc.__class__.__name__}

        by_id = {asset.id: asset for asset in assets}
        images = []
        for image_id in ordered_ids:
            asset = by_id.get(image_id)
            if asset is None:
                continue
            row = asset.to_row()
            row["public_url"] = display_url(self.blob_store, asset)
            images.append(row)

        LOGGER.info("Search %r matched %d image(s)", needle, len(images))
        return {"success": True, "images": images}
