"""In-process notification channel between the upload pipeline and the gallery view.

The orchestrator publishes two typed events on a `GalleryChannel`:
`PreviewReady` as soon as a thumbnail exists and `AnalysisComplete` once an
asset is annotated. `PreviewRegistry` is the display-side subscriber that
keeps the preview/analysis correlation map keyed by stored filename.
"""

from __future__ import annotations

import base64
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from models.image_asset import ImageAsset
from models.upload_models import AnalysisComplete, PreviewReady

LOGGER = logging.getLogger(__name__)


def make_preview_url(thumbnail: bytes, content_type: str) -> str:
    """Return a data URL that renders `thumbnail` without a network round trip."""
    encoded = base64.b64encode(thumbnail).decode("utf-8")
    return f"data:{content_type};base64,{encoded}"


class GalleryObserver:
    """Subscriber interface; override the events you care about."""

    def on_preview_ready(self, event: PreviewReady) -> None:
        pass

    def on_analysis_complete(self, event: AnalysisComplete) -> None:
        pass


class GalleryChannel:
    """Fan events out to subscribed observers in subscription order."""

    def __init__(self) -> None:
        self._observers: List[GalleryObserver] = []

    def subscribe(self, observer: GalleryObserver) -> None:
        if observer not in self._observers:
            self._observers.append(observer)

    def unsubscribe(self, observer: GalleryObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def publish_preview(self, event: PreviewReady) -> None:
        for observer in list(self._observers):
            try:
                observer.on_preview_ready(event)
            except Exception:
                LOGGER.exception("Observer %r failed handling preview for %s", observer, event.stored_filename)

    def publish_analysis(self, event: AnalysisComplete) -> None:
        for observer in list(self._observers):
            try:
                observer.on_analysis_complete(event)
            except Exception:
                LOGGER.exception("Observer %r failed handling analysis for %s", observer, event.stored_filename)


@dataclass
class PreviewItem:
    """Local preview shown until the persisted asset appears."""

    preview_url: str
    original_filename: str
    stored_filename: str
    created_at: float = field(default_factory=lambda: time.time())
    released: bool = False

    def release(self) -> bool:
        """Drop the preview payload. Returns False if it was already released."""
        if self.released:
            return False
        self.released = True
        self.preview_url = ""
        return True


class PreviewRegistry(GalleryObserver):
    """Correlation map of pending previews and finished analyses.

    Args:
        on_release: Optional hook called once with each released preview.
    """

    def __init__(self, on_release: Optional[Callable[[PreviewItem], None]] = None) -> None:
        self._previews: Dict[str, PreviewItem] = {}
        self._analyses: Dict[str, AnalysisComplete] = {}
        self._on_release = on_release

    def on_preview_ready(self, event: PreviewReady) -> None:
        previous = self._previews.get(event.stored_filename)
        if previous is not None:
            self._release(previous)
        self._previews[event.stored_filename] = PreviewItem(
            preview_url=event.preview_url,
            original_filename=event.filename,
            stored_filename=event.stored_filename,
        )

    def on_analysis_complete(self, event: AnalysisComplete) -> None:
        self._analyses[event.stored_filename] = event

    @property
    def previews(self) -> List[PreviewItem]:
        """Pending previews, newest first."""
        return sorted(self._previews.values(), key=lambda p: p.created_at, reverse=True)

    def analysis_for(self, stored_filename: str) -> Optional[AnalysisComplete]:
        return self._analyses.get(stored_filename)

    def observe_assets(self, assets: Iterable[ImageAsset]) -> int:
        """Forget previews and analyses whose persisted asset is now visible.

        Returns the number of previews released.
        """
        removed = 0
        for asset in assets:
            self._analyses.pop(asset.filename, None)
            item = self._previews.pop(asset.filename, None)
            if item is not None:
                self._release(item)
                removed += 1
        return removed

    def end_session(self) -> None:
        """Release every preview and forget all state for the ended session."""
        items = list(self._previews.values())
        self._previews.clear()
        self._analyses.clear()
        for item in items:
            self._release(item)

    def _release(self, item: PreviewItem) -> None:
        if item.release() and self._on_release is not None:
            self._on_release(item)
