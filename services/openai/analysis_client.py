"""Description, tag, and color analysis of gallery images using OpenAI Chat Completions."""

import logging
import os
import time
from typing import Any, Dict, Optional, Tuple, Union

from openai import AsyncOpenAI

from dal.image_dal import ImageDAL, utc_now_iso
from dal.metadata_dal import MetadataDAL
from models.errors import AnalysisParseError, UpstreamError, ValidationError
from models.image_asset import ImageAsset, ImageMetadata
from models.upload_models import AnalysisOutcome, Annotated, Unannotated
from services.openai.analysis_prompts import build_messages
from services.openai.response_parser import extract_message_text, extract_usage, parse_analysis

LOGGER = logging.getLogger(__name__)
DEFAULT_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")


def coerce_image_id(image_id: Union[int, str]) -> int:
    """Accept numeric ids given as int or string."""
    try:
        return int(image_id)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"imageId must be numeric, got {image_id!r}") from exc


class AnalysisClient:
    """Send one image to the vision model and store the normalized result."""

    def __init__(
        self,
        client: AsyncOpenAI,
        image_dal: ImageDAL,
        metadata_dal: MetadataDAL,
        *,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 700,
    ) -> None:
        """Initialize the client with its collaborators."""
        if client is None:
            raise ValueError("OpenAI client must be provided.")
        self.client = client
        self.image_dal = image_dal
        self.metadata_dal = metadata_dal
        self.model = model
        self.max_tokens = max_tokens

    async def request_analysis(self, image_b64: str) -> Dict[str, Any]:
        """Return ``{description, tags, colors}`` for a base64 image.

        Exactly one request is sent. Parse failures raise
        `AnalysisParseError` with the raw model output attached.
        """
        if not image_b64:
            raise ValidationError("imageBase64 is required")

        start_time = time.time()
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=build_messages(image_b64),
                max_tokens=self.max_tokens,
                temperature=0.0,
            )
        except Exception as exc:
            logging.error("Error during OpenAI Chat Completions call: %s", exc)
            raise UpstreamError(f"OpenAI error: {exc}") from exc

        raw_content = extract_message_text(response)
        try:
            analysis = parse_analysis(raw_content)
        except AnalysisParseError as exc:
            LOGGER.error("Could not parse analysis response: %s", exc)
            LOGGER.error("Raw model output: %r", exc.raw)
            raise

        usage = extract_usage(response)
        LOGGER.info(
            "Analysis received in %.2fs (input_tokens=%s, output_tokens=%s)",
            time.time() - start_time,
            usage["input_tokens"],
            usage["output_tokens"],
        )
        return analysis

    async def analyze_and_persist(
        self, image_b64: str, image_id: Optional[Union[int, str]] = None
    ) -> Dict[str, Any]:
        """Analyze an image and, when `image_id` is given, store the results.

        Updates the asset's description/tags/dominant_colors/analyzed_at and
        upserts its metadata row keyed on the image id.

        Returns:
            ``{"success": True, "analysis": {...}, "data": metadata row or None}``

        Raises:
            ValidationError: If the payload or id is malformed.
            AnalysisParseError: If the model output is unusable.
            UpstreamError: If the model call or a database step fails.
        """
        numeric_id = None if image_id is None or image_id == "" else coerce_image_id(image_id)
        analysis = await self.request_analysis(image_b64)
        if numeric_id is None:
            return {"success": True, "analysis": analysis, "data": None}

        metadata, _ = await self._persist(numeric_id, analysis)
        return {"success": True, "analysis": analysis, "data": metadata.to_row()}

    async def analyze(self, image_b64: str, image_id: Union[int, str]) -> AnalysisOutcome:
        """Best-effort variant of `analyze_and_persist` for the upload pipeline.

        Never raises; failures come back as `Unannotated` with a reason.
        """
        try:
            numeric_id = coerce_image_id(image_id)
            analysis = await self.request_analysis(image_b64)
            metadata, asset = await self._persist(numeric_id, analysis)
        except Exception as exc:
            LOGGER.warning("Image %s left un-annotated: %s", image_id, exc)
            return Unannotated(image_id=image_id, reason=str(exc))

        return Annotated(image_id=numeric_id, analysis=analysis, asset=asset, metadata=metadata)

    async def _persist(self, image_id: int, analysis: Dict[str, Any]) -> Tuple[ImageMetadata, ImageAsset]:
        """Update the asset row and upsert its metadata; return both."""
        asset = await self.image_dal.get_image_by_id(image_id)
        if asset is None:
            raise UpstreamError(f"Image with id {image_id} not found")

        analyzed_at = utc_now_iso()
        updated = await self.image_dal.update_analysis(
            image_id,
            description=analysis["description"],
            tags=analysis["tags"],
            dominant_colors=analysis["colors"],
            analyzed_at=analyzed_at,
        )
        if updated is None:
            raise UpstreamError("Failed to update image record")

        metadata = ImageMetadata(
            image_id=image_id,
            user_id=asset.owner_id,
            description=analysis["description"],
            tags=list(analysis["tags"]),
            colors=list(analysis["colors"]),
            ai_processing_status="completed",
            created_at=analyzed_at,
        )
        try:
            saved = await self.metadata_dal.upsert_metadata(metadata)
        except Exception as exc:
            LOGGER.warning("Failed to save metadata for image %s: %s", image_id, exc)
            raise UpstreamError(f"Failed to save metadata: {exc}") from exc
        return saved, updated
