"""Utility functions for text processing."""
from __future__ import annotations

import re
from typing import List

CONTROL_CHARS_RE = re.compile(r"[\x00-\x1f\x7f-\x9f]")
HTML_TAG_RE = re.compile(r"<[^>]*>")
URL_RE = re.compile(r"https?://\S+")
# Inside model output a URL must not swallow the quote or bracket closing its JSON string.
JSON_SAFE_URL_RE = re.compile(r"https?://[^\s\"'<>{}\[\]]*")
ESCAPED_NEWLINE_RE = re.compile(r"\\n")
TOKEN_RE = re.compile(r"[^\W_]+")

URL_TOKEN = "[URL]"


def _unescape_amp(text: str) -> str:
    while "&amp;" in text:
        text = text.replace("&amp;", "&")
    return text


def sanitize_text(text: str) -> str:
    """Strip control characters, markup and links from a raw comment."""

    if not isinstance(text, str):
        return ""
    text = CONTROL_CHARS_RE.sub("", text)
    text = _unescape_amp(text)
    text = HTML_TAG_RE.sub(" ", text)
    text = URL_RE.sub(URL_TOKEN, text)
    return text.strip()


def clean_model_output(text: str) -> str:
    """Prepare generative model output for JSON extraction."""

    text = CONTROL_CHARS_RE.sub("", text)
    text = ESCAPED_NEWLINE_RE.sub(" ", text)
    text = _unescape_amp(text)
    text = HTML_TAG_RE.sub("", text)
    return JSON_SAFE_URL_RE.sub(URL_TOKEN, text)


def strip_markup(text: str) -> str:
    """Remove entities and tags left in comment text echoed by the model."""

    text = _unescape_amp(str(text))
    text = text.replace("<br>", " ")
    text = HTML_TAG_RE.sub("", text)
    return text.strip()


def tokenize(text: str) -> List[str]:
    """Lowercase word tokens, punctuation dropped."""

    return TOKEN_RE.findall(text.lower())
