"""
Input validation for synthesis requests.

Validation runs before the core so that bad input never reaches the cache
or the provider. Pydantic schemas (api/schemas.py) check types and
numeric ranges; these functions apply the remaining rules and are shared
with the CLI.

Validation Rules:
    - Text: required, max 100,000 characters
    - Voice: canonical token or legacy provider name
    - Language: en-US or en
    - Audio config: rate 0.25-4.0, pitch -20-20, gain -96-16
    - Conversation: 1-50 segments of 1-1000 characters, max 10,000 total,
      pause 0.1-3.0 seconds

Error codes follow the pattern {FIELD}_REQUIRED, {FIELD}_TOO_LONG,
{FIELD}_INVALID, {FIELD}_OUT_OF_RANGE.

Usage:
    try:
        text = validate_text(body.text)
        voice = validate_voice(body.voice)
    except ValidationError as e:
        return error_response(e.code, e.message)
"""
from __future__ import annotations

from typing import Optional, Sequence, Tuple

from tts_relay.core.config import Defaults
from tts_relay.core.logging import get_logger, verbose
from tts_relay.tts.voices import DEFAULT_VOICE, is_known_voice

_LOG = get_logger("tts-relay.validators")

SUPPORTED_LANGUAGES = ("en-US", "en")

SPEAKING_RATE_RANGE = (0.25, 4.0)
PITCH_RANGE = (-20.0, 20.0)
VOLUME_GAIN_RANGE = (-96.0, 16.0)


class ValidationError(Exception):
    """
    Input rejected before synthesis.

    Attributes:
        message: Human-readable description.
        code: Machine-readable code (e.g. "TEXT_TOO_LONG").
    """

    def __init__(self, message: str, code: str = "VALIDATION_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


def validate_text(text: Optional[str], max_length: int = Defaults.TEXT_MAX_CHARS) -> str:
    """
    Require non-blank text within the length limit.

    Returns the text unchanged; normalization happens in the service.
    """
    if not text or not text.strip():
        raise ValidationError("Text is required", "TEXT_REQUIRED")

    if len(text) > max_length:
        raise ValidationError(
            f"Text exceeds maximum length ({len(text)} > {max_length})",
            "TEXT_TOO_LONG",
        )
    return text


def validate_voice(voice: Optional[str]) -> str:
    """Accept canonical tokens and legacy provider names; empty means default."""
    if not voice:
        return DEFAULT_VOICE
    if not is_known_voice(voice):
        verbose(_LOG, "voice_rejected", voice=voice)
        raise ValidationError(f"Unsupported voice: {voice}", "VOICE_INVALID")
    return voice


def validate_language(language: Optional[str]) -> str:
    if not language:
        return Defaults.PROVIDER_LANGUAGE
    if language not in SUPPORTED_LANGUAGES:
        raise ValidationError(
            f"Unsupported language code: {language} (expected one of {', '.join(SUPPORTED_LANGUAGES)})",
            "LANGUAGE_INVALID",
        )
    return language


def _check_range(name: str, code: str, value: float, bounds: Tuple[float, float]) -> float:
    low, high = bounds
    if not (low <= value <= high):
        raise ValidationError(f"{name} must be between {low} and {high}, got {value}", code)
    return float(value)


def validate_audio_config(
    speaking_rate: float = 1.0,
    pitch: float = 0.0,
    volume_gain_db: float = 0.0,
) -> Tuple[float, float, float]:
    return (
        _check_range("speakingRate", "SPEAKING_RATE_OUT_OF_RANGE", speaking_rate, SPEAKING_RATE_RANGE),
        _check_range("pitch", "PITCH_OUT_OF_RANGE", pitch, PITCH_RANGE),
        _check_range("volumeGainDb", "VOLUME_GAIN_OUT_OF_RANGE", volume_gain_db, VOLUME_GAIN_RANGE),
    )


def validate_conversation(
    segments: Sequence[Tuple[str, Optional[str]]],
    pause_seconds: float = Defaults.CONVERSATION_PAUSE_SECONDS,
    max_segments: int = Defaults.CONVERSATION_MAX_SEGMENTS,
    segment_max_chars: int = Defaults.CONVERSATION_SEGMENT_MAX_CHARS,
    max_total_chars: int = Defaults.CONVERSATION_MAX_TOTAL_CHARS,
) -> None:
    """
    Check a conversation's shape.

    Args:
        segments: (text, voice) pairs in order.
        pause_seconds: Pause between segments.
    """
    if not segments:
        raise ValidationError("Conversation requires at least one segment", "SEGMENTS_REQUIRED")
    if len(segments) > max_segments:
        raise ValidationError(
            f"Too many segments ({len(segments)} > {max_segments})",
            "TOO_MANY_SEGMENTS",
        )

    total = 0
    for i, (text, voice) in enumerate(segments):
        if not text or not text.strip():
            raise ValidationError(f"Segment {i} text is required", "SEGMENT_TEXT_REQUIRED")
        if len(text) > segment_max_chars:
            raise ValidationError(
                f"Segment {i} exceeds maximum length ({len(text)} > {segment_max_chars})",
                "SEGMENT_TOO_LONG",
            )
        validate_voice(voice)
        total += len(text)

    if total > max_total_chars:
        raise ValidationError(
            f"Conversation exceeds maximum total length ({total} > {max_total_chars})",
            "CONVERSATION_TOO_LONG",
        )

    _check_range(
        "pauseDuration", "PAUSE_OUT_OF_RANGE", pause_seconds,
        (Defaults.CONVERSATION_PAUSE_MIN_SECONDS, Defaults.CONVERSATION_PAUSE_MAX_SECONDS),
    )
