"""Async Data Access Layer for the ``image_metadata`` table."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

from models.image_asset import ImageMetadata, normalize_string_list
from utils.database_init import AsyncDatabaseInitializer


class MetadataDAL:
    """Read and upsert analysis metadata rows, one per image id."""

    _COLUMNS = (
        "image_id",
        "user_id",
        "description",
        "tags",
        "colors",
        "ai_processing_status",
        "created_at",
    )
    _COLUMN_LIST = ", ".join(_COLUMNS)

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def upsert_metadata(self, metadata: ImageMetadata) -> ImageMetadata:
        """Insert or replace the metadata row keyed on `image_id`."""
        async with self._db.connection() as conn:
            await conn.execute(
                f"INSERT INTO image_metadata ({self._COLUMN_LIST}) VALUES (?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(image_id) DO UPDATE SET "
                "user_id = excluded.user_id, "
                "description = excluded.description, "
                "tags = excluded.tags, "
                "colors = excluded.colors, "
                "ai_processing_status = excluded.ai_processing_status, "
                "created_at = excluded.created_at",
                (
                    metadata.image_id,
                    metadata.user_id,
                    metadata.description,
                    json.dumps(list(metadata.tags)),
                    json.dumps(list(metadata.colors)),
                    metadata.ai_processing_status,
                    metadata.created_at,
                ),
            )
            await conn.commit()
        return metadata

    async def get_metadata(self, image_id: int) -> Optional[ImageMetadata]:
        """Return the metadata row for `image_id`, or None."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM image_metadata WHERE image_id = ?",
                (image_id,),
            )
            row = await cur.fetchone()
        if not row:
            return None
        return ImageMetadata(
            image_id=row[0],
            user_id=row[1],
            description=row[2] or "",
            tags=normalize_string_list(row[3]),
            colors=normalize_string_list(row[4]),
            ai_processing_status=row[5],
            created_at=row[6],
        )

    async def count_for_image(self, image_id: int) -> int:
        async with self._db.connection() as conn:
            cur = await conn.execute(
                "SELECT COUNT(*) FROM image_metadata WHERE image_id = ?", (image_id,)
            )
            row = await cur.fetchone()
            return int(row[0]) if row else 0

    async def list_recent(self, owner_id: Optional[str] = None, limit: int = 1000) -> List[Dict[str, Any]]:
        """Return raw metadata rows newest first.

        Tags and colors are returned as stored so the search layer owns
        their normalization.
        """
        sql = f"SELECT {self._COLUMN_LIST} FROM image_metadata"
        params: list = []
        if owner_id:
            sql += " WHERE user_id = ?"
            params.append(owner_id)
        sql += " ORDER BY created_at DESC LIMIT ?"
        params.append(limit)

        async with self._db.connection() as conn:
            cur = await conn.execute(sql, tuple(params))
            rows = await cur.fetchall()
        return [self._row_to_dict(r) for r in rows]

    @classmethod
    def _row_to_dict(cls, row: Sequence[object]) -> Dict[str, Any]:
        return dict(zip(cls._COLUMNS, row))
