"""
Text normalization applied before fingerprinting and synthesis.

Normalization is deliberately light so that the provider hears what the
caller wrote, while trivially different spellings of the same request
("Hello ,  world" vs "Hello, world") share a cache entry:

    1. Strip leading/trailing whitespace
    2. Collapse runs of whitespace to one space
    3. Remove space before , . ! ? ; :
    4. Remove space just inside brackets

Case, quotes and digits are left untouched.
"""
from __future__ import annotations

import re
from typing import Dict

from tts_relay.core.logging import get_logger, verbose
from tts_relay.utils.timeit import timeit

_LOG = get_logger("tts-relay.text")

_WS_RE = re.compile(r"\s+")
_SPACE_BEFORE_PUNCT = re.compile(r"\s+([,.!?;:])")
_SPACE_AFTER_OPEN = re.compile(r"([(\[{])\s+")
_SPACE_BEFORE_CLOSE = re.compile(r"\s+([)\]}])")


def normalize_text(text: str) -> tuple[str, Dict[str, float]]:
    """
    Normalize text for synthesis.

    Args:
        text: Raw request text.

    Returns:
        Tuple of (normalized_text, timing_dict) where timing_dict has a
        'normalize' key in seconds.

    Example:
        >>> normalize_text("  Hello ,   world  ( again ) ")[0]
        'Hello, world (again)'
    """
    timings: Dict[str, float] = {}

    with timeit("normalize") as t:
        s = text.strip()
        s = _WS_RE.sub(" ", s)
        s = _SPACE_BEFORE_PUNCT.sub(r"\1", s)
        s = _SPACE_AFTER_OPEN.sub(r"\1", s)
        s = _SPACE_BEFORE_CLOSE.sub(r"\1", s)

    timings["normalize"] = t.seconds
    verbose(_LOG, "normalized", chars_in=len(text), chars_out=len(s), seconds=round(t.seconds, 4))
    return s, timings
