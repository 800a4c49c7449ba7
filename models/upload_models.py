"""Upload pipeline domain models: batch tasks, previews, and notifications."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from models.image_asset import ImageAsset, ImageMetadata


@dataclass
class SourceFile:
	"""A raw file selected by the user for upload."""

	filename: str
	content_type: str
	data: bytes


@dataclass
class ProcessedImage:
	"""Output of the image processor for one source file."""

	stored_filename: str
	thumbnail_bytes: bytes
	thumbnail_content_type: str
	base64_payload: str


@dataclass
class UploadTask:
	"""Per-file working state; discarded once its slice reaches 100%."""

	source_file: SourceFile
	stored_filename: Optional[str] = None
	thumbnail_bytes: Optional[bytes] = None
	base64_payload: Optional[str] = None
	progress_within_slice: float = 0.0


class BatchState(str, Enum):
	IDLE = "idle"
	PROCESSING = "processing"
	UPLOADING = "uploading"
	ANALYZING = "analyzing"
	ADVANCING = "advancing"
	COMPLETE = "complete"


@dataclass
class PreviewReady:
	"""Emitted as soon as a thumbnail exists, before the upload finishes."""

	preview_url: str
	filename: str
	stored_filename: str


@dataclass
class AnalysisComplete:
	"""Emitted after an asset was annotated successfully."""

	stored_filename: str
	tags: List[str]
	description: Optional[str]


@dataclass
class Annotated:
	"""Successful analysis of one asset."""

	image_id: Optional[Union[int, str]]
	analysis: Dict[str, Any]
	asset: Optional[ImageAsset] = None
	metadata: Optional[ImageMetadata] = None


@dataclass
class Unannotated:
	"""Analysis was skipped or failed; the asset stays un-annotated."""

	image_id: Optional[Union[int, str]]
	reason: str


AnalysisOutcome = Union[Annotated, Unannotated]


@dataclass
class FileOutcome:
	"""What happened to one file of a batch."""

	filename: str
	status: str
	stored_filename: Optional[str] = None
	image_id: Optional[int] = None
	annotated: bool = False
	error: Optional[str] = None

	def to_dict(self) -> Dict[str, Any]:
		return {
			"filename": self.filename,
			"status": self.status,
			"stored_filename": self.stored_filename,
			"image_id": self.image_id,
			"annotated": self.annotated,
			"error": self.error,
		}


@dataclass
class BatchSummary:
	"""Result of one orchestrator run."""

	files: List[FileOutcome] = field(default_factory=list)
	progress: int = 0
	started_at: float = field(default_factory=lambda: time.time())
	finished_at: Optional[float] = None

	@property
	def uploaded(self) -> List[FileOutcome]:
		return [f for f in self.files if f.image_id is not None]
