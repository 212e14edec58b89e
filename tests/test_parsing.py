"""Tests for extracting and validating vision model replies."""

import json

import pytest

from analysis.parsing import (
    build_outfit_details,
    extract_json,
    parse_suggestion_lines,
    parse_suggestions,
    validate_basic_scores,
)
from conftest import BASIC_SCORES, ITEMIZED
from shared.errors import InvalidShapeError

RAW = json.dumps(BASIC_SCORES)


@pytest.mark.parametrize(
    "reply",
    [
        RAW,
        f"```json\n{RAW}\n```",
        f"Here is the analysis you asked for:\n{RAW}\nLet me know if you need more.",
    ],
    ids=["pure", "fenced", "prose"],
)
def test_extract_json_handles_all_reply_styles(reply):
    assert validate_basic_scores(extract_json(reply)) == validate_basic_scores(BASIC_SCORES)


def test_extract_json_ignores_braces_inside_strings():
    reply = 'Result: {"note": "use {curly} braces", "ok": true} trailing }'
    assert extract_json(reply) == {"note": "use {curly} braces", "ok": True}


@pytest.mark.parametrize("reply", ["", "   ", "no json here at all", "{broken"])
def test_extract_json_raises_when_nothing_parses(reply):
    with pytest.raises(InvalidShapeError):
        extract_json(reply)


def test_validate_basic_scores_rejects_missing_field():
    data = {k: v for k, v in BASIC_SCORES.items() if k != "comfort"}
    with pytest.raises(InvalidShapeError, match="comfort"):
        validate_basic_scores(data)


def test_validate_basic_scores_rejects_string_scores():
    with pytest.raises(InvalidShapeError):
        validate_basic_scores({**BASIC_SCORES, "fitConfidence": "90"})


def test_validate_basic_scores_rejects_non_object_containers():
    with pytest.raises(InvalidShapeError):
        validate_basic_scores({**BASIC_SCORES, "styleAttributes": ["formal"]})


def test_build_outfit_details_fills_defaults():
    basic = validate_basic_scores(BASIC_SCORES)

    details = build_outfit_details(basic, {"clothingItems": [{"type": "shirt"}]}).to_wire()

    assert details["season"] == "Unknown"
    assert details["accessories"] == []
    assert details["hasBottomGarment"] is False
    assert details["clothingItems"][0]["type"] == "shirt"
    assert details["clothingItems"][0]["pattern"] == "solid"
    assert details["comfort"] == 80
    assert details["fitConfidence"] == 90


def test_build_outfit_details_only_literal_true_counts():
    basic = validate_basic_scores(BASIC_SCORES)
    details = build_outfit_details(basic, {"hasBottomGarment": "yes"})
    assert details.has_bottom_garment is False

    details = build_outfit_details(basic, ITEMIZED)
    assert details.has_bottom_garment is True


def test_build_outfit_details_rejects_non_list_items():
    basic = validate_basic_scores(BASIC_SCORES)
    with pytest.raises(InvalidShapeError):
        build_outfit_details(basic, {"clothingItems": {"type": "shirt"}})


def test_parse_suggestions_from_json_array():
    reply = 'Sure!\n```json\n["Add a belt", "Consider darker shoes"]\n```'
    assert parse_suggestions(reply).suggestions == ["Add a belt", "Consider darker shoes"]


def test_parse_suggestions_falls_back_to_bullets():
    reply = "1. Add a slim leather belt\n- Swap sneakers for loafers\n* ok\n• Roll the sleeves once"

    assert parse_suggestions(reply).suggestions == [
        "Add a slim leather belt",
        "Swap sneakers for loafers",
        "Roll the sleeves once",
    ]


def test_parse_suggestion_lines_drops_short_lines():
    assert parse_suggestion_lines("- hat\n- Wear a structured blazer") == ["Wear a structured blazer"]


@pytest.mark.parametrize("reply", ["[]", "[1, 2]", "- no", ""])
def test_parse_suggestions_rejects_empty_or_non_string(reply):
    with pytest.raises(InvalidShapeError):
        parse_suggestions(reply)
