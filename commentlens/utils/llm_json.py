"""Extract and parse the JSON object embedded in generative model output."""
from __future__ import annotations

import json
import re
from typing import Any, Optional

import json5

CODE_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
TRAILING_COMMA_RE = re.compile(r",\s*(?=[}\]])")
CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f-\x9f]+")

DIAGNOSTIC_LENGTH = 200


class ParseError(RuntimeError):
    """Raised when model output cannot be parsed as JSON."""

    def __init__(self, reason: str, text: str = "") -> None:
        self.reason = reason
        self.snippet = text[:DIAGNOSTIC_LENGTH]
        super().__init__(f"{reason}: {self.snippet!r}")


def extract_balanced_json(text: str) -> Optional[str]:
    """Return the first complete top-level ``{...}`` object in ``text``.

    Braces inside double-quoted strings are ignored. Returns ``None`` when
    there is no opening brace or the object never closes.
    """

    start = text.find("{")
    if start == -1:
        return None

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
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]
    return None


def clean_json_text(text: str) -> str:
    """Drop code fences, trailing commas and control characters."""

    text = CODE_FENCE_RE.sub("", text)
    text = TRAILING_COMMA_RE.sub("", text)
    return CONTROL_CHARS_RE.sub("", text)


def parse_json_safe(text: str) -> Any:
    """Parse strictly, then after cleanup, then with the lenient JSON5 grammar."""

    cleaned = clean_json_text(text)
    for candidate in (text, cleaned):
        try:
            return json.loads(candidate)
        except (ValueError, RecursionError):
            continue
    try:
        return json5.loads(cleaned)
    except (ValueError, RecursionError) as exc:
        raise ParseError("Unable to parse JSON", text) from exc
