"""Async Data Access Layer for the ``images`` table.

Provides ImageDAL class with async operations compatible with
`utils.database_init.AsyncDatabaseInitializer`.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from models.image_asset import ImageAsset, normalize_string_list
from utils.database_init import AsyncDatabaseInitializer


def utc_now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


class ImageDAL:
    """Data access layer for image asset rows.

    The constructor accepts an `AsyncDatabaseInitializer` (or any object
    exposing an async `connection()` context manager that yields an
    `aiosqlite.Connection`).
    """

    _COLUMNS = (
        "id",
        "user_id",
        "filename",
        "original_path",
        "thumbnail_path",
        "uploaded_at",
        "description",
        "tags",
        "dominant_colors",
        "analyzed_at",
    )
    _COLUMN_LIST = ", ".join(_COLUMNS)

    def __init__(self, db_initializer: AsyncDatabaseInitializer) -> None:
        self._db = db_initializer

    async def create_image(self, asset: ImageAsset) -> ImageAsset:
        """Insert a new row and return the asset with its id and timestamp.

        Args:
            asset: ImageAsset with `id=None`.
        """
        uploaded_at = asset.uploaded_at or utc_now_iso()

        async with self._db.connection() as conn:
            cur = await conn.execute(
                "INSERT INTO images (user_id, filename, original_path, thumbnail_path, uploaded_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    asset.owner_id,
                    asset.filename,
                    asset.original_path,
                    asset.thumbnail_path,
                    uploaded_at,
                ),
            )
            await conn.commit()
            image_id = cur.lastrowid

        return ImageAsset(
            id=image_id,
            owner_id=asset.owner_id,
            filename=asset.filename,
            original_path=asset.original_path,
            thumbnail_path=asset.thumbnail_path,
            uploaded_at=uploaded_at,
        )

    async def get_image_by_id(self, image_id: int) -> Optional[ImageAsset]:
        """Return the asset for `image_id`, or None if not found."""
        async with self._db.connection() as conn:
            cur = await conn.execute(
                f"SELECT {self._COLUMN_LIST} FROM images WHERE id = ?",
                (image_id,),
            )
            row = await cur.fetchone()
            return self._row_to_asset(row) if row else None

    async def get_images_by_ids(
        self, image_ids: Iterable[int], owner_id: Optional[str] = None
    ) -> List[ImageAsset]:
        """Return assets whose id is in `image_ids`, optionally scoped to one owner.

        Row order is unspecified; callers re-order as needed.
        """
        ids = list(dict.fromkeys(image_ids))
        if not ids:
            return []

        placeholders = ", ".join("?" for _ in ids)
        sql = f"SELECT {self._COLUMN_LIST} FROM images WHERE id IN ({placeholders})"
        params: list = list(ids)
        if owner_id:
            sql += " AND user_id = ?"
            params.append(owner_id)

        async with self._db.connection() as conn:
            cur = await conn.execute(sql, tuple(params))
            rows = await cur.fetchall()
            return [self._row_to_asset(r) for r in rows]

    async def list_images(
        self, owner_id: Optional[str] = None, limit: int = 100, offset: int = 0
    ) -> List[ImageAsset]:
        """List assets newest first.

        Args:
            owner_id: Only return this user's assets when given.
            limit: Maximum number of rows to return.
            offset: Rows to skip.
        """
        sql = f"SELECT {self._COLUMN_LIST} FROM images"
        params: list = []
        if owner_id:
            sql += " WHERE user_id = ?"
            params.append(owner_id)
        sql += " ORDER BY uploaded_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        async with self._db.connection() as conn:
            cur = await conn.execute(sql, tuple(params))
            rows = await cur.fetchall()
            return [self._row_to_asset(r) for r in rows]

    async def update_analysis(
        self,
        image_id: int,
        *,
        description: str,
        tags: Sequence[str],
        dominant_colors: Sequence[str],
        analyzed_at: Optional[str] = None,
    ) -> Optional[ImageAsset]:
        """Store analysis results on a row and return the updated asset.

        Returns None when no row has `image_id`.
        """
        analyzed_at = analyzed_at or utc_now_iso()
        async with self._db.connection() as conn:
            cur = await conn.execute(
                "UPDATE images SET description = ?, tags = ?, dominant_colors = ?, analyzed_at = ? "
                "WHERE id = ?",
                (
                    description,
                    json.dumps(list(tags)),
                    json.dumps(list(dominant_colors)),
                    analyzed_at,
                    image_id,
                ),
            )
            await conn.commit()
            if cur.rowcount == 0:
                return None
        return await self.get_image_by_id(image_id)

    @staticmethod
    def _row_to_asset(row: Sequence[object]) -> ImageAsset:
        """Convert a DB row tuple into an ImageAsset."""
        return ImageAsset(
            id=row[0],
            owner_id=row[1],
            filename=row[2],
            original_path=row[3],
            thumbnail_path=row[4],
            uploaded_at=row[5],
            description=row[6],
            tags=normalize_string_list(row[7]),
            dominant_colors=normalize_string_list(row[8]),
            analyzed_at=row[9],
        )
