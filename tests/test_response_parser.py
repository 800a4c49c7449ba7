from types import SimpleNamespace

import pytest

from models.errors import AnalysisParseError
from services.openai.response_parser import (
    extract_json_object,
    extract_message_text,
    extract_usage,
    parse_analysis,
)

BARE = '{"description": "A red barn in snow.", "tags": ["barn", "snow"], "colors": ["#AA0000"]}'


def test_fenced_json_parses_like_bare_json():
    fenced = f"Here is the analysis:\n```json\n{BARE}\n```\nHope that helps!"

    assert parse_analysis(fenced) == parse_analysis(BARE)


def test_plain_fence_without_language():
    assert parse_analysis(f"```\n{BARE}\n```")["tags"] == ["barn", "snow"]


def test_object_surrounded_by_prose():
    raw = f"Sure! {BARE} Let me know if you need more."

    assert parse_analysis(raw)["description"] == "A red barn in snow."


def test_first_well_formed_object_wins():
    raw = 'Format: {description, tags}. Result: ' + BARE

    assert extract_json_object(raw)["colors"] == ["#AA0000"]


def test_scalar_colors_become_a_list_and_values_are_strings():
    result = parse_analysis('{"description": "d", "tags": ["a", 3], "colors": "#FFFFFF"}')

    assert result == {"description": "d", "tags": ["a", "3"], "colors": ["#FFFFFF"]}


def test_missing_colors_default_to_empty():
    assert parse_analysis('{"description": "d", "tags": []}')["colors"] == []


def test_unparseable_output_carries_raw_payload():
    with pytest.raises(AnalysisParseError) as excinfo:
        parse_analysis("I cannot analyze this image.")

    assert excinfo.value.raw == "I cannot analyze this image."


def test_missing_required_fields_rejected():
    with pytest.raises(AnalysisParseError):
        parse_analysis('{"description": "only a description"}')


def test_message_text_and_usage_extraction():
    response = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=BARE))],
        usage=SimpleNamespace(prompt_tokens=11, completion_tokens=7),
    )

    assert extract_message_text(response) == BARE
    assert extract_usage(response) == {"input_tokens": 11, "output_tokens": 7}


def test_legacy_text_choice_fallback():
    response = SimpleNamespace(choices=[SimpleNamespace(message=None, text=BARE)])

    assert extract_message_text(response) == BARE
