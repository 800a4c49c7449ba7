"""Helpers to parse Chat Completions outputs into gallery analyses."""

import json
import re
from typing import Any, Dict, List, Optional

from models.errors import AnalysisParseError

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_DECODER = json.JSONDecoder()


def extract_message_text(response: Any) -> str:
    """Return the text of the first choice, falling back to a dump of the response."""
    choices = getattr(response, "choices", None) or []
    if choices:
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None) if message is not None else None
        if content:
            return content
        text = getattr(choices[0], "text", None)
        if text:
            return text
    if hasattr(response, "model_dump_json"):
        return response.model_dump_json()
    return str(response)


def extract_json_object(raw: str) -> Optional[Dict[str, Any]]:
    """Return the first well-formed JSON object in `raw`, or None.

    A fenced code block takes precedence over the surrounding prose.
    """
    fence = _FENCE_RE.search(raw or "")
    text = fence.group(1) if fence else (raw or "")

    start = text.find("{")
    while start != -1:
        try:
            obj, _ = _DECODER.raw_decode(text, start)
        except ValueError:
            start = text.find("{", start + 1)
            continue
        if isinstance(obj, dict):
            return obj
        start = text.find("{", start + 1)
    return None


def _as_string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(item) for item in value]
    return [str(value)]


def parse_analysis(raw: str) -> Dict[str, Any]:
    """Parse model output into ``{description, tags, colors}``.

    Raises:
        AnalysisParseError: If no object is found or required fields are missing.
    """
    parsed = extract_json_object(raw)
    if parsed is None:
        raise AnalysisParseError("Failed to parse AI response", raw=raw)
    if not isinstance(parsed.get("description"), str) or not isinstance(parsed.get("tags"), list):
        raise AnalysisParseError("AI response missing required fields", raw=raw)

    return {
        "description": parsed["description"],
        "tags": _as_string_list(parsed["tags"]),
        "colors": _as_string_list(parsed.get("colors")),
    }


def extract_usage(response: Any) -> Dict[str, Optional[int]]:
    """Return token usage information from the response, if present."""
    usage = getattr(response, "usage", None)
    return {
        "input_tokens": getattr(usage, "prompt_tokens", None) if usage else None,
        "output_tokens": getattr(usage, "completion_tokens", None) if usage else None,
    }
