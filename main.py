import inspect
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles
from openai import AsyncOpenAI

from dal.blob_store import LocalBlobStore
from routes.analysis_route import router as analysis_router
from routes.image_route import router as image_router
from routes.search_route import router as search_router
from routes.storage_route import router as storage_router
from utils.database_init import AsyncDatabaseInitializer
from utils.responses import request_validation_handler

BASE_DIR = Path(__file__).resolve().parent
PUBLIC_DIR = BASE_DIR / "public"

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file if present

LOGGER = logging.getLogger(__name__)


async def _close_client(client: Any) -> None:
    """Close a client exposing aclose()/close(), sync or async."""
    aclose = getattr(client, "aclose", None) or getattr(client, "close", None)
    if aclose is None:
        return
    try:
        if inspect.iscoroutinefunction(aclose):
            await aclose()
        else:
            result = aclose()
            if inspect.isawaitable(result):
                await result
    except Exception as exc:
        # Shutdown errors must not mask the original exit reason.
        LOGGER.warning("Error while closing %r: %s", client, exc)


def _build_lifespan(
    db_initializer: Optional[AsyncDatabaseInitializer],
    blob_store: Optional[LocalBlobStore],
    openai_client: Optional[Any],
):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Lifespan manager to initialize:
          - the SQLite database (at DATABASE_DIR/app.db unless injected)
          - the blob store (under STORAGE_DIR unless injected)
          - the OpenAI async client (from OPENAI_API_KEY unless injected)
        and attach them to `app.state`.
        """
        initializer = db_initializer or AsyncDatabaseInitializer()
        await initializer.ensure_database()
        app.state.db_initializer = initializer

        app.state.blob_store = blob_store or LocalBlobStore()

        client = openai_client
        owns_client = False
        if client is None:
            if not os.getenv("OPENAI_API_KEY"):
                raise RuntimeError("OPENAI_API_KEY environment variable is not set")
            try:
                client = AsyncOpenAI()
            except Exception as exc:
                raise RuntimeError("Failed to initialize OpenAI Async client") from exc
            owns_client = True
        app.state.openai_client = client

        app.state.preview_registries = {}
        app.state.upload_orchestrators = {}

        try:
            yield
        finally:
            for registry in app.state.preview_registries.values():
                registry.end_session()
            if owns_client:
                await _close_client(app.state.openai_client)

    return lifespan


def create_app(
    *,
    db_initializer: Optional[AsyncDatabaseInitializer] = None,
    blob_store: Optional[LocalBlobStore] = None,
    openai_client: Optional[Any] = None,
    upload_reset_delay: Optional[float] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Clients passed in are used as-is; missing ones are built from the
    environment when the application starts.
    """
    app = FastAPI(
        title="AI Image Gallery",
        lifespan=_build_lifespan(db_initializer, blob_store, openai_client),
    )
    if upload_reset_delay is not None:
        app.state.upload_reset_delay = upload_reset_delay
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Serve static assets from the public directory, if it exists.
    if PUBLIC_DIR.exists():
        app.mount("/public", StaticFiles(directory=PUBLIC_DIR), name="public")

    @app.get("/", include_in_schema=False)
    async def serve_index():
        """
        Serve the frontend index page from the public directory.
        """
        index_path = PUBLIC_DIR / "index.html"
        if not index_path.exists():
            raise HTTPException(status_code=404, detail="Frontend not found")
        return FileResponse(index_path)

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that verifies DB initializer, blob store and OpenAI client presence.
        """
        state = request.app.state
        return {
            "ok": True,
            "db_initialized": hasattr(state, "db_initializer"),
            "storage_available": getattr(state, "blob_store", None) is not None,
            "openai_available": getattr(state, "openai_client", None) is not None,
        }

    app.include_router(analysis_router)
    app.include_router(search_router)
    app.include_router(storage_router)
    app.include_router(image_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
