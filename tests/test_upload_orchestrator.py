import asyncio

import pytest

from conftest import FakeOpenAI, make_image_bytes
from dal.image_dal import ImageDAL
from dal.metadata_dal import MetadataDAL
from models.errors import StorageError
from models.upload_models import BatchState, SourceFile
from services.gallery_events import GalleryChannel, GalleryObserver
from services.image_processor import ImageProcessor
from services.openai.analysis_client import AnalysisClient
from services.storage_uploader import StorageUploader
from services.upload_orchestrator import UploadOrchestrator


class Recorder(GalleryObserver):
    def __init__(self):
        self.previews = []
        self.analyses = []

    def on_preview_ready(self, event):
        self.previews.append(event)

    def on_analysis_complete(self, event):
        self.analyses.append(event)


class FirstCallFailsUploader:
    """Returns a storage error for the first file, then delegates."""

    def __init__(self, inner):
        self.inner = inner
        self.calls = 0

    async def upload(self, **kwargs):
        self.calls += 1
        if self.calls == 1:
            return StorageError("original", "bucket unavailable")
        return await self.inner.upload(**kwargs)


def _orchestrator(db, blob_store, openai_client, progress, recorder, uploader=None):
    image_dal = ImageDAL(db)
    channel = GalleryChannel()
    channel.subscribe(recorder)
    return UploadOrchestrator(
        ImageProcessor(),
        uploader or StorageUploader(blob_store, image_dal),
        AnalysisClient(openai_client, image_dal, MetadataDAL(db)),
        channel,
        on_progress=progress.append,
        reset_delay=0,
    )


def test_unsupported_file_is_skipped_and_batch_completes(db, blob_store, fake_openai, jpeg_bytes):
    progress, recorder = [], Recorder()
    orchestrator = _orchestrator(db, blob_store, fake_openai, progress, recorder)
    files = [
        SourceFile("anim.gif", "image/gif", make_image_bytes("GIF", mode="P", color=1)),
        SourceFile("beach.jpg", "image/jpeg", jpeg_bytes),
    ]

    async def scenario():
        summary = await orchestrator.run(files, "user-1")
        return summary, await ImageDAL(db).list_images(owner_id="user-1")

    summary, assets = asyncio.run(scenario())

    assert [f.status for f in summary.files] == ["rejected", "uploaded"]
    assert summary.progress == 100
    assert len(assets) == 1
    assert assets[0].filename.endswith("-beach.jpg")
    assert assets[0].tags[0] == "sunset"
    assert len(fake_openai.completions.calls) == 1
    assert progress == [45, 55, 60, 80, 90, 95, 100, 0]
    assert orchestrator.state == BatchState.IDLE
    assert orchestrator.progress == 0


def test_preview_then_analysis_events_correlate_by_stored_filename(db, blob_store, fake_openai, png_bytes):
    progress, recorder = [], Recorder()
    orchestrator = _orchestrator(db, blob_store, fake_openai, progress, recorder)

    summary = asyncio.run(orchestrator.run([SourceFile("logo.png", "image/png", png_bytes)], "user-1"))

    stored_filename = summary.files[0].stored_filename
    assert len(recorder.previews) == 1
    preview = recorder.previews[0]
    assert preview.filename == "logo.png"
    assert preview.stored_filename == stored_filename
    assert preview.preview_url.startswith("data:image/png;base64,")
    assert len(recorder.analyses) == 1
    assert recorder.analyses[0].stored_filename == stored_filename
    assert recorder.analyses[0].tags == ["sunset", "water", "boat", "evening", "sky"]
    assert summary.files[0].annotated is True


def test_analysis_failure_is_swallowed(db, blob_store, jpeg_bytes):
    progress, recorder = [], Recorder()
    failing = FakeOpenAI(error=RuntimeError("model unavailable"))
    orchestrator = _orchestrator(db, blob_store, failing, progress, recorder)

    async def scenario():
        summary = await orchestrator.run([SourceFile("a.jpg", "image/jpeg", jpeg_bytes)], "user-1")
        return summary, await ImageDAL(db).list_images(owner_id="user-1")

    summary, assets = asyncio.run(scenario())

    assert summary.files[0].status == "uploaded"
    assert summary.files[0].annotated is False
    assert recorder.analyses == []
    assert len(assets) == 1 and assets[0].description is None
    assert 100 in progress


def test_storage_failure_advances_to_ninety_percent_and_continues(db, blob_store, fake_openai, jpeg_bytes):
    progress, recorder = [], Recorder()
    uploader = FirstCallFailsUploader(StorageUploader(blob_store, ImageDAL(db)))
    orchestrator = _orchestrator(db, blob_store, fake_openai, progress, recorder, uploader=uploader)
    files = [SourceFile("one.jpg", "image/jpeg", jpeg_bytes), SourceFile("two.jpg", "image/jpeg", jpeg_bytes)]

    summary = asyncio.run(orchestrator.run(files, "user-1"))

    assert [f.status for f in summary.files] == ["failed", "uploaded"]
    assert "bucket unavailable" in summary.files[0].error
    assert progress[:3] == [5, 10, 45]
    assert summary.progress == 100
    # The failed file still produced a preview before its upload failed.
    assert len(recorder.previews) == 2


def test_three_files_use_floor_slices(db, blob_store, fake_openai, jpeg_bytes):
    progress, recorder = [], Recorder()
    orchestrator = _orchestrator(db, blob_store, fake_openai, progress, recorder)
    files = [SourceFile(f"{i}.jpg", "image/jpeg", jpeg_bytes) for i in range(3)]

    summary = asyncio.run(orchestrator.run(files, "user-1"))

    assert len(summary.uploaded) == 3
    # Each slice is 33 wide; the last one ends at 99 before the final jump to 100.
    assert progress[-3:] == [99, 100, 0]


def test_batch_is_not_reentrant(db, blob_store, fake_openai, jpeg_bytes):
    orchestrator = _orchestrator(db, blob_store, fake_openai, [], Recorder())
    orchestrator.state = BatchState.UPLOADING

    with pytest.raises(RuntimeError):
        asyncio.run(orchestrator.run([SourceFile("a.jpg", "image/jpeg", jpeg_bytes)], "user-1"))
