"""
Provider-sized text chunking.

The speech provider rejects requests whose input exceeds a byte limit
(5000 UTF-8 bytes). Longer texts are split at sentence boundaries into
chunks that each stay under a smaller budget (4500 bytes), synthesized in
order and concatenated.

Strategy:
    1. Split on runs of . ! ? and drop blank pieces
    2. Append each sentence with a "." terminator to the current chunk
    3. Start a new chunk when the next sentence would push the current
       one past the budget
    4. A single sentence larger than the budget is cut at word
       boundaries (or mid-word as a last resort) so no chunk exceeds it

Example:
    >>> result = split_for_provider("One. Two! Three?", max_bytes=8)
    >>> result.chunks
    ['One.', 'Two.', 'Three.']
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List

from tts_relay.core.config import Defaults
from tts_relay.core.logging import get_logger, verbose
from tts_relay.utils.timeit import timeit

_LOG = get_logger("tts-relay.chunker")

_SENT_SPLIT = re.compile(r"[.!?]+")


@dataclass
class ChunkResult:
    """
    Result of chunking.

    Attributes:
        chunks: Text pieces in playback order.
        timings_s: Timing measurements in seconds.
    """
    chunks: List[str]
    timings_s: Dict[str, float]


def utf8_len(text: str) -> int:
    return len(text.encode("utf-8"))


def needs_chunking(text: str, max_request_bytes: int = Defaults.PROVIDER_MAX_REQUEST_BYTES) -> bool:
    """True when text is too large for a single provider request."""
    return utf8_len(text) > max_request_bytes


def _hard_split(sentence: str, max_bytes: int) -> List[str]:
    """Cut an oversize sentence into pieces of at most max_bytes."""
    out: List[str] = []
    current = ""
    for word in sentence.split():
        candidate = f"{current} {word}" if current else word
        if utf8_len(candidate) <= max_bytes:
            current = candidate
            continue
        if current:
            out.append(current)
        # A single word over budget: cut by characters
        while utf8_len(word) > max_bytes:
            cut = max_bytes
            while utf8_len(word[:cut]) > max_bytes:
                cut -= 1
            out.append(word[:cut])
            word = word[cut:]
        current = word
    if current:
        out.append(current)
    return out


def split_for_provider(text: str, max_bytes: int = Defaults.PROVIDER_CHUNK_BYTES) -> ChunkResult:
    """
    Split text into sentence-bounded chunks of at most max_bytes bytes.

    Args:
        text: Normalized input text.
        max_bytes: Per-chunk UTF-8 byte budget.

    Returns:
        ChunkResult. Text without any sentence content yields no chunks.
    """
    if max_bytes <= 0:
        raise ValueError("max_bytes must be positive")

    timings: Dict[str, float] = {}

    with timeit("chunk") as t:
        sentences = [s.strip() for s in _SENT_SPLIT.split(text) if s.strip()]
        chunks: List[str] = []
        current = ""

        for sentence in sentences:
            piece = sentence + "."
            if utf8_len(piece) > max_bytes:
                if current:
                    chunks.append(current)
                    current = ""
                chunks.extend(_hard_split(sentence, max_bytes))
                continue

            candidate = f"{current} {piece}" if current else piece
            if current and utf8_len(candidate) > max_bytes:
                chunks.append(current)
                current = piece
            else:
                current = candidate

        if current:
            chunks.append(current)

    timings["chunk"] = t.seconds
    verbose(_LOG, "chunked", chunks=len(chunks), max_bytes=max_bytes, seconds=round(t.seconds, 4))
    return ChunkResult(chunks=chunks, timings_s=timings)
