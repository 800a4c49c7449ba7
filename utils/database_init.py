import os
import asyncio
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiosqlite


class AsyncDatabaseInitializer:
    """
    Manage the gallery's async SQLite database.

    - The database file is located at: <database_dir>/app.db
    - `database_dir` falls back to the DATABASE_DIR environment variable.
      A RuntimeError is raised if neither is given or the path is invalid
      (not a directory and cannot be created).
    - On the first call to `ensure_database()` for a given instance the
      `images` and `image_metadata` tables are created. When `reset` is true
      (or DATABASE_RESET=1) any existing database file is deleted first.
    - Subsequent calls to `ensure_database()` on the same instance are no-ops,
      so it is safe for `connection()` to call it.
    """

    def __init__(self, database_dir: Optional[Path | str] = None, reset: Optional[bool] = None) -> None:
        env_dir = str(database_dir) if database_dir is not None else os.getenv("DATABASE_DIR")

        if env_dir is None or not env_dir.strip():
            raise RuntimeError(
                "DATABASE_DIR environment variable must be set to a writable "
                "directory path where the SQLite database file will be stored."
            )

        db_dir = Path(env_dir).expanduser()

        # If the path exists but is not a directory, that's a configuration error.
        if db_dir.exists() and not db_dir.is_dir():
            raise RuntimeError(
                f"DATABASE_DIR={env_dir!r} points to a file, not a directory "
                f"({db_dir}). Please set DATABASE_DIR to a directory path."
            )

        try:
            db_dir.mkdir(parents=True, exist_ok=True)
        except Exception as exc:
            raise RuntimeError(
                f"Failed to create or access database directory at {db_dir}"
            ) from exc

        if reset is None:
            reset = os.getenv("DATABASE_RESET", "").strip().lower() in ("1", "true", "yes")

        self.db_dir = db_dir
        self.db_path = self.db_dir / "app.db"
        self.reset = reset

        self._initialized = False

    async def ensure_database(self) -> None:
        """
        Ensure the SQLite database exists at `self.db_path` with the gallery schema.

        Subsequent calls on the same instance are no-ops.
        """
        if self._initialized:
            return

        if self.reset and self.db_path.exists():
            try:
                self.db_path.unlink()
            except Exception as exc:
                raise RuntimeError(
                    f"Failed to delete existing database at {self.db_path}"
                ) from exc

        max_attempts = 3
        for attempt in range(1, max_attempts + 1):
            try:
                async with aiosqlite.connect(self.db_path) as db:
                    await db.execute(
                        """
                        CREATE TABLE IF NOT EXISTS images (
                            id INTEGER PRIMARY KEY AUTOINCREMENT,
                            user_id TEXT NOT NULL,
                            filename TEXT NOT NULL,
                            original_path TEXT NOT NULL,
                            thumbnail_path TEXT NOT NULL,
                            uploaded_at TEXT NOT NULL,
                            description TEXT,
                            tags TEXT,
                            dominant_colors TEXT,
                            analyzed_at TEXT
                        )
                        """
                    )
                    # image_id is the upsert key: one metadata row per image.
                    await db.execute(
                        """
                        CREATE TABLE IF NOT EXISTS image_metadata (
                            image_id INTEGER PRIMARY KEY,
                            user_id TEXT NOT NULL,
                            description TEXT,
                            tags TEXT,
                            colors TEXT,
                            ai_processing_status TEXT NOT NULL,
                            created_at TEXT NOT NULL
                        )
                        """
                    )
                    await db.execute(
                        "CREATE INDEX IF NOT EXISTS idx_images_user_id ON images(user_id)"
                    )
                    await db.execute(
                        "CREATE INDEX IF NOT EXISTS idx_image_metadata_created_at "
                        "ON image_metadata(created_at)"
                    )
                    await db.commit()
                break
            except FileNotFoundError:
                # On some platforms a transient missing file error may occur; retry a few times.
                if attempt >= max_attempts:
                    raise
                await asyncio.sleep(0.1 * attempt)

        self._initialized = True

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Async context manager yielding an `aiosqlite.Connection`.

        The schema is created on the first use via `ensure_database()`.
        """
        await self.ensure_database()
        conn = await aiosqlite.connect(self.db_path)
        try:
            yield conn
        finally:
            await conn.close()
