"""
Tolerant extraction and validation of vision model output.

Model replies are free text that usually, but not always, contain the JSON
that was asked for. Extraction tries, in order: the whole reply, a fenced
code block, and the first balanced ``{...}`` or ``[...]`` span. Validation
then turns the parsed value into a typed shape or raises ``InvalidShapeError``.
"""

import json
import re
from typing import Any, Optional

from pydantic import ValidationError

from shared.errors import InvalidShapeError
from shared.schemas import BasicScores, OutfitDetails, StyleSuggestions

_FENCE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_BULLET = re.compile(r"^[-*•\d]+\.?\s*")
_MIN_SUGGESTION_LENGTH = 5

_CLOSERS = {"{": "}", "[": "]"}


def _balanced_span(text: str, opener: str) -> Optional[str]:
    """Return the first balanced span starting at ``opener``, ignoring brackets in strings."""
    closer = _CLOSERS[opener]
    start = text.find(opener)
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
            elif char == '"':
                in_string = True
            elif char == opener:
                depth += 1
            elif char == closer:
                depth -= 1
                if depth == 0:
                    return text[start:index + 1]
        start = text.find(opener, start + 1)
    return None


def extract_json(text: str, prefer: str = "{") -> Any:
    """
    Parse JSON out of a model reply.

    Args:
        text: Raw reply content
        prefer: Which bracket to look for first when scanning for a span

    Returns:
        The parsed JSON value

    Raises:
        InvalidShapeError: If no strategy yields valid JSON
    """
    if not isinstance(text, str) or not text.strip():
        raise InvalidShapeError("Empty response from vision model")

    try:
        return json.loads(text)
    except ValueError:
        pass

    for match in _FENCE.finditer(text):
        try:
            return json.loads(match.group(1))
        except ValueError:
            continue

    openers = [prefer] + [o for o in _CLOSERS if o != prefer]
    for opener in openers:
        span = _balanced_span(text, opener)
        if span is None:
            continue
        try:
            return json.loads(span)
        except ValueError:
            continue

    raise InvalidShapeError("No JSON found in vision model response")


def parse_suggestion_lines(text: str) -> list[str]:
    """Fallback for suggestion replies that are a bullet or numbered list."""
    lines = []
    for raw in text.splitlines():
        line = _BULLET.sub("", raw.strip()).strip()
        if len(line) > _MIN_SUGGESTION_LENGTH:
            lines.append(line)
    return lines


def validate_basic_scores(data: Any) -> BasicScores:
    if not isinstance(data, dict):
        raise InvalidShapeError("Basic scores must be a JSON object")
    try:
        return BasicScores.model_validate(data)
    except ValidationError as e:
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
        raise InvalidShapeError(f"Basic scores are missing or mistyped: {', '.join(fields)}") from e


def build_outfit_details(basic: BasicScores, data: Any) -> OutfitDetails:
    """
    Combine basic scores with an itemized analysis.

    Missing itemized fields fall back to defaults (season ``Unknown``,
    empty lists, ``hasBottomGarment`` false). Item lists that are present
    but not lists are rejected.
    """
    if not isinstance(data, dict):
        raise InvalidShapeError("Itemized analysis must be a JSON object")

    for key in ("clothingItems", "accessories"):
        value = data.get(key)
        if value is not None and not isinstance(value, list):
            raise InvalidShapeError("Invalid data structure in itemized analysis")

    combined = {
        **data,
        "comfort": basic.comfort,
        "fitConfidence": basic.fit_confidence,
        "colorHarmony": basic.color_harmony,
    }
    try:
        return OutfitDetails.model_validate(combined)
    except ValidationError as e:
        raise InvalidShapeError("Invalid data structure in itemized analysis") from e


def parse_suggestions(text: str) -> StyleSuggestions:
    """Extract a non-empty list of suggestion strings from a model reply."""
    try:
        data = extract_json(text, prefer="[")
    except InvalidShapeError:
        data = parse_suggestion_lines(text or "")

    if isinstance(data, dict) and "suggestions" in data:
        data = data["suggestions"]

    if not isinstance(data, list):
        raise InvalidShapeError("Style suggestions must be a list of strings")
    try:
        return StyleSuggestions(suggestions=data)
    except ValidationError as e:
        raise InvalidShapeError("Style suggestions must be a non-empty list of strings") from e
