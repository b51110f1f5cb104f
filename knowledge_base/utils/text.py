"""Small text helpers shared by the extractor, chunker and ingestion service."""

from __future__ import annotations

import math
import re

_WHITESPACE_RE = re.compile(r"\s+")

# Heuristic used throughout the pipeline; no tokenizer dependency.
CHARS_PER_TOKEN = 4


def clean_text(text: str) -> str:
    """Collapse every run of whitespace to a single space and trim the ends."""
    return _WHITESPACE_RE.sub(" ", text).strip()


def estimate_tokens(text: str) -> int:
    """Approximate token count at four characters per token."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def generate_summary(text: str, max_length: int = 200) -> str:
    """Build a short preview of *text* for document listings.

    Short text is returned whole.  Longer text is cut after the last full
    stop inside the limit, provided that keeps more than half of it;
    otherwise it is hard-truncated and marked with an ellipsis.
    """
    cleaned = clean_text(text)
    if len(cleaned) <= max_length:
        return cleaned

    truncated = cleaned[:max_length]
    last_period = truncated.rfind(".")
    if last_period > max_length * 0.5:
        return truncated[: last_period + 1]
    return truncated + "..."
