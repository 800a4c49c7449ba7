"""Persist an uploaded image: original blob, thumbnail blob, then the asset row.

The three steps run in order and are not transactional. If the row insert
fails after both blobs were written the blobs stay orphaned.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Union

from dal.blob_store import LocalBlobStore
from dal.image_dal import ImageDAL
from models.errors import StorageError
from models.image_asset import ImageAsset

LOGGER = logging.getLogger(__name__)

ORIGINALS_BUCKET = "originals"
THUMBNAILS_BUCKET = "thumbnails"


def object_path(owner_id: str, filename: str) -> str:
    """Return the deterministic object path for a user's file in any bucket."""
    return f"{owner_id}/{filename}"


class StorageUploader:
    """Coordinate blob writes and the asset insert for a single file."""

    def __init__(self, blob_store: LocalBlobStore, image_dal: ImageDAL) -> None:
        self.blob_store = blob_store
        self.image_dal = image_dal

    async def upload(
        self,
        *,
        original: bytes,
        thumbnail: bytes,
        owner_id: str,
        filename: str,
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> Union[ImageAsset, StorageError]:
        """Upload both blobs and insert the row.

        Args:
            original: Raw bytes of the original image.
            thumbnail: Thumbnail bytes from the image processor.
            owner_id: Owning user id; first segment of both object paths.
            filename: Timestamp-prefixed stored filename.
            on_progress: Receives 60, 80 and 90 (percent of this file) as
                each step completes.

        Returns:
            The inserted `ImageAsset`, or a `StorageError` naming the failed step.
        """
        path = object_path(owner_id, filename)

        try:
            original_path = await self.blob_store.upload(ORIGINALS_BUCKET, path, original, upsert=False)
        except Exception as exc:
            LOGGER.error("Original upload failed for %s: %s", path, exc)
            return StorageError("original", str(exc))
        if on_progress:
            on_progress(60)

        try:
            thumbnail_path = await self.blob_store.upload(THUMBNAILS_BUCKET, path, thumbnail, upsert=False)
        except Exception as exc:
            LOGGER.error("Thumbnail upload failed for %s: %s", path, exc)
            return StorageError("thumbnail", str(exc))
        if on_progress:
            on_progress(80)

        try:
            asset = await self.image_dal.create_image(
                ImageAsset(
                    id=None,
                    owner_id=owner_id,
                    filename=filename,
                    original_path=original_path,
                    thumbnail_path=thumbnail_path,
                )
            )
        except Exception as exc:
            LOGGER.error("Image row insert failed for %s (blobs left in place): %s", path, exc)
            return StorageError("record", str(exc))
        if on_progress:
            on_progress(90)

        LOGGER.info("Stored image %s as id %s", path, asset.id)
        return asset
