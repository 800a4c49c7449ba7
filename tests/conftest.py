import io
import json
from types import SimpleNamespace

import pytest
from PIL import Image

from dal.blob_store import LocalBlobStore
from utils.database_init import AsyncDatabaseInitializer

ANALYSIS_JSON = json.dumps(
    {
        "description": "A sunset over calm water with a small boat.",
        "tags": ["sunset", "water", "boat", "evening", "sky"],
        "colors": ["#FF7F50", "#1E3A5F"],
    }
)


def make_image_bytes(fmt="JPEG", size=(800, 600), mode="RGB", color=(200, 80, 40)):
    """Return encoded image bytes of the given format and size."""
    if mode == "RGBA" and len(color) == 3:
        color = color + (128,)
    img = Image.new(mode, size, color)
    buf = io.BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


class FakeCompletions:
    def __init__(self, content=ANALYSIS_JSON, error=None):
        self.content = content
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=self.content))],
            usage=SimpleNamespace(prompt_tokens=120, completion_tokens=40),
        )


class FakeOpenAI:
    """Stand-in for AsyncOpenAI exposing chat.completions.create."""

    def __init__(self, content=ANALYSIS_JSON, error=None):
        self.completions = FakeCompletions(content, error)
        self.chat = SimpleNamespace(completions=self.completions)


async def insert_metadata(db, image_id, user_id, description, tags, colors, created_at):
    """Insert a metadata row with tags/colors stored exactly as given."""
    async with db.connection() as conn:
        await conn.execute(
            "INSERT INTO image_metadata (image_id, user_id, description, tags, colors, "
            "ai_processing_status, created_at) VALUES (?, ?, ?, ?, ?, 'completed', ?)",
            (image_id, user_id, description, tags, colors, created_at),
        )
        await conn.commit()


@pytest.fixture
def db(tmp_path):
    return AsyncDatabaseInitializer(tmp_path / "db")


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(
        tmp_path / "storage",
        public_base_url="http://testserver",
        signing_secret="test-secret",
    )


@pytest.fixture
def fake_openai():
    return FakeOpenAI()


@pytest.fixture
def jpeg_bytes():
    return make_image_bytes("JPEG")


@pytest.fixture
def png_bytes():
    return make_image_bytes("PNG", size=(400, 900), mode="RGBA")
