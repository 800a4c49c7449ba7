from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


def normalize_string_list(value: Any) -> List[str]:
    """Coerce a stored tags/colors value into a list of strings.

    Accepts a native sequence, JSON-encoded text, or comma-separated text.
    JSON text that decodes to something other than a list yields ``[]``.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        try:
            decoded = json.loads(text)
        except ValueError:
            return [part.strip() for part in text.split(",")]
        if isinstance(decoded, list):
            return [str(item) for item in decoded]
        return []
    return []


@dataclass
class ImageAsset:
    """In-memory representation of a row in the ``images`` table.

    Attributes:
        id: Primary key (None for rows not yet inserted).
        owner_id: Id of the owning user.
        filename: Timestamp-prefixed stored filename.
        original_path: Object path inside the ``originals`` bucket.
        thumbnail_path: Object path inside the ``thumbnails`` bucket.
        uploaded_at: ISO-8601 timestamp of the insert.
        description: Model-provided description, once analyzed.
        tags: Model-provided tags.
        dominant_colors: Model-provided hex colors.
        analyzed_at: ISO-8601 timestamp of the last analysis.
    """

    id: Optional[int]
    owner_id: str
    filename: str
    original_path: str
    thumbnail_path: str
    uploaded_at: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    dominant_colors: List[str] = field(default_factory=list)
    analyzed_at: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        """Return the persisted row shape used in API responses."""
        return {
            "id": self.id,
            "user_id": self.owner_id,
            "filename": self.filename,
            "original_path": self.original_path,
            "thumbnail_path": self.thumbnail_path,
            "uploaded_at": self.uploaded_at,
            "description": self.description,
            "tags": list(self.tags),
            "dominant_colors": list(self.dominant_colors),
            "analyzed_at": self.analyzed_at,
        }


@dataclass
class ImageMetadata:
    """Row in ``image_metadata``; exactly one per analyzed image."""

    image_id: int
    user_id: str
    description: str
    tags: List[str] = field(default_factory=list)
    colors: List[str] = field(default_factory=list)
    ai_processing_status: str = "completed"
    created_at: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        return asdict(self)
