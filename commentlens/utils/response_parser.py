"""Utilities for validating generative analysis payloads."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from commentlens.models.analysis import (
    DEFAULT_CATEGORY_SCORE,
    TOXICITY_CATEGORIES,
    CommentScore,
    KeywordEntry,
    TopicEntry,
    ToxicityCategories,
    ToxicityScore,
)
from commentlens.utils.llm_json import ParseError, extract_balanced_json, parse_json_safe
from commentlens.utils.text import clean_model_output, strip_markup

TOXIC_TAG_THRESHOLD = 0.3


def _clamp(value: Any, low: float, high: float, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(low, min(high, number))


def category_tags(overall: float) -> List[str]:
    return ["potentially_toxic"] if overall > TOXIC_TAG_THRESHOLD else ["general"]


def parse_toxicity_payload(payload: Any) -> ToxicityScore:
    """Coerce a model toxicity entry, given as a number or an object."""

    if not isinstance(payload, dict):
        overall = _clamp(payload, 0.0, 1.0, DEFAULT_CATEGORY_SCORE)
        return ToxicityScore(overall=overall, categories=ToxicityCategories(toxicity=overall))

    overall = _clamp(payload.get("overall"), 0.0, 1.0, DEFAULT_CATEGORY_SCORE)
    raw_categories = payload.get("categories")
    if not isinstance(raw_categories, dict):
        raw_categories = {}
    categories = {
        name: _clamp(raw_categories.get(name), 0.0, 1.0, DEFAULT_CATEGORY_SCORE)
        for name in TOXICITY_CATEGORIES
    }
    return ToxicityScore(
        overall=overall,
        categories=ToxicityCategories(**categories),
        confidence=_clamp(payload.get("confidence"), 0.0, 1.0, 0.5),
    )


def parse_comment_payload(payload: Any) -> CommentScore:
    """Coerce one entry of the model's ``comments`` array into a score.

    Malformed entries become a neutral default instead of failing the batch.
    """

    if not isinstance(payload, dict):
        return CommentScore()

    toxicity = parse_toxicity_payload(payload.get("toxicity"))
    tags = payload.get("categories")
    if isinstance(tags, list) and tags:
        categories = [str(tag) for tag in tags]
    else:
        categories = category_tags(toxicity.overall)
    return CommentScore(
        text=strip_markup(payload.get("text", "")),
        sentiment=_clamp(payload.get("sentiment"), -1.0, 1.0, 0.0),
        toxicity=toxicity,
        categories=categories,
    )


def _parse_entries(payload: Any, model) -> Optional[List]:
    if not isinstance(payload, list):
        return None
    entries = []
    for item in payload:
        try:
            entries.append(model.model_validate(item))
        except ValidationError:
            continue
    return entries or None


def parse_analysis_payload(payload: Any) -> Dict[str, Any]:
    """Validate a parsed analysis object and extract its usable parts."""

    if not isinstance(payload, dict) or not isinstance(payload.get("comments"), list):
        raise ParseError("Invalid response structure: missing comments array", str(payload))

    return {
        "scores": [parse_comment_payload(item) for item in payload["comments"]],
        "topics": _parse_entries(payload.get("topics"), TopicEntry),
        "keywords": _parse_entries(payload.get("keywords"), KeywordEntry),
    }


def parse_model_text(text: str) -> Dict[str, Any]:
    """Clean, extract and parse the analysis object from raw model text."""

    cleaned = clean_model_output(text)
    candidate = extract_balanced_json(cleaned)
    if candidate is None:
        raise ParseError("No JSON object found in model output", cleaned)
    return parse_analysis_payload(parse_json_safe(candidate))
