"""Drive a batch of files through processing, storage, and analysis.

Files run strictly one after another. File ``i`` of ``N`` owns the progress
slice starting at ``floor(i*100/N)`` with width ``floor(100/N)``. Within a
slice processing covers the first 20%, the storage steps report 60/80/90%,
and a settled analysis completes the slice. A file that is rejected or fails
to process or store jumps to 90% of its slice and the batch moves on.
"""

from __future__ import annotations

import asyncio
import logging
import math
import os
import time
from typing import Callable, Optional, Sequence

from models.errors import ProcessingError, StorageError, ValidationError
from models.upload_models import (
    AnalysisComplete,
    Annotated,
    BatchState,
    BatchSummary,
    FileOutcome,
    PreviewReady,
    SourceFile,
    UploadTask,
)
from services.gallery_events import GalleryChannel, make_preview_url
from services.image_processor import ImageProcessor
from services.openai.analysis_client import AnalysisClient
from services.storage_uploader import StorageUploader
from utils.media_validation import is_supported_image_type

LOGGER = logging.getLogger(__name__)
DEFAULT_RESET_DELAY = float(os.getenv("UPLOAD_RESET_DELAY", "0.7"))

PROCESSING_SHARE = 0.2
FAILURE_MARK = 0.9


class UploadOrchestrator:
    """Sequential upload pipeline for one user's batches.

    Not re-entrant: starting a batch while another is in flight raises
    RuntimeError.
    """

    def __init__(
        self,
        processor: ImageProcessor,
        uploader: StorageUploader,
        analysis_client: Optional[AnalysisClient] = None,
        channel: Optional[GalleryChannel] = None,
        *,
        on_progress: Optional[Callable[[int], None]] = None,
        reset_delay: float = DEFAULT_RESET_DELAY,
    ) -> None:
        self.processor = processor
        self.uploader = uploader
        self.analysis_client = analysis_client
        self.channel = channel or GalleryChannel()
        self.on_progress = on_progress
        self.reset_delay = reset_delay

        self.state = BatchState.IDLE
        self.current_index: Optional[int] = None
        self.progress = 0

    def _set_progress(self, value: int) -> None:
        value = max(0, min(100, int(value)))
        if value == self.progress:
            return
        self.progress = value
        if self.on_progress:
            self.on_progress(value)

    async def run(self, files: Sequence[SourceFile], owner_id: str) -> BatchSummary:
        """Upload every file in order and return what happened to each.

        Progress ends at 100, then after `reset_delay` seconds the
        orchestrator returns to IDLE with progress 0.
        """
        if self.state != BatchState.IDLE:
            raise RuntimeError("An upload batch is already in progress.")
        if not owner_id:
            raise ValidationError("owner id is required to upload")

        summary = BatchSummary()
        total = len(files)
        self.progress = 0
        LOGGER.info("Starting upload batch of %d file(s) for %s", total, owner_id)

        try:
            for idx, source in enumerate(files):
                self.current_index = idx
                summary.files.append(await self._run_file(idx, total, source, owner_id))

            self._set_progress(100)
            self.state = BatchState.COMPLETE
            summary.progress = self.progress
            summary.finished_at = time.time()
            LOGGER.info(
                "Upload batch finished: %d of %d file(s) stored",
                len(summary.uploaded),
                total,
            )
            await asyncio.sleep(self.reset_delay)
        finally:
            self.state = BatchState.IDLE
            self.current_index = None
            self._set_progress(0)

        return summary

    async def _run_file(self, idx: int, total: int, source: SourceFile, owner_id: str) -> FileOutcome:
        base = (idx * 100) // total
        width = 100 // total
        task = UploadTask(source_file=source)

        def advance(fraction: float) -> None:
            task.progress_within_slice = fraction
            self._set_progress(min(100, base + math.floor(width * fraction + 1e-9)))

        self.state = BatchState.PROCESSING
        if not is_supported_image_type(source.content_type):
            LOGGER.error("Rejected %s: only JPEG/PNG allowed (got %r)", source.filename, source.content_type)
            advance(FAILURE_MARK)
            return FileOutcome(
                filename=source.filename,
                status="rejected",
                error=f"Unsupported content type {source.content_type!r}",
            )

        try:
            return await self._process_store_analyze(task, source, owner_id, advance)
        except Exception as exc:
            LOGGER.exception("Upload failed for %s", source.filename)
            advance(FAILURE_MARK)
            return FileOutcome(
                filename=source.filename,
                status="failed",
                stored_filename=task.stored_filename,
                error=str(exc),
            )

    async def _process_store_analyze(
        self,
        task: UploadTask,
        source: SourceFile,
        owner_id: str,
        advance: Callable[[float], None],
    ) -> FileOutcome:
        processed = await self.processor.process(source, on_progress=lambda f: advance(PROCESSING_SHARE * f))
        if isinstance(processed, ProcessingError):
            LOGGER.error("Processing failed for %s: %s", source.filename, processed)
            advance(FAILURE_MARK)
            return FileOutcome(filename=source.filename, status="failed", error=str(processed))

        task.stored_filename = processed.stored_filename
        task.thumbnail_bytes = processed.thumbnail_bytes
        task.base64_payload = processed.base64_payload
        self.channel.publish_preview(
            PreviewReady(
                preview_url=make_preview_url(processed.thumbnail_bytes, processed.thumbnail_content_type),
                filename=source.filename,
                stored_filename=processed.stored_filename,
            )
        )

        self.state = BatchState.UPLOADING
        stored = await self.uploader.upload(
            original=source.data,
            thumbnail=processed.thumbnail_bytes,
            owner_id=owner_id,
            filename=processed.stored_filename,
            on_progress=lambda pct: advance(pct / 100.0),
        )
        if isinstance(stored, StorageError):
            LOGGER.error("Storage failed for %s at step %s: %s", source.filename, stored.step, stored)
            advance(FAILURE_MARK)
            return FileOutcome(
                filename=source.filename,
                status="failed",
                stored_filename=task.stored_filename,
                error=str(stored),
            )

        annotated = False
        if self.analysis_client is not None:
            self.state = BatchState.ANALYZING
            outcome = await self.analysis_client.analyze(task.base64_payload, stored.id)
            if isinstance(outcome, Annotated):
                annotated = True
                self.channel.publish_analysis(
                    AnalysisComplete(
                        stored_filename=processed.stored_filename,
                        tags=list(outcome.analysis.get("tags", [])),
                        description=outcome.analysis.get("description"),
                    )
                )
            else:
                LOGGER.warning("Analysis skipped for %s: %s", processed.stored_filename, outcome.reason)

        advance(1.0)
        self.state = BatchState.ADVANCING
        return FileOutcome(
            filename=source.filename,
            status="uploaded",
            stored_filename=processed.stored_filename,
            image_id=stored.id,
            annotated=annotated,
        )
