"""
API Request Schemas.

Pydantic models for the /api/tts endpoints. Field names follow the JSON
bodies clients already send (camelCase), so no aliasing is needed.

Pydantic checks types, lengths and numeric ranges; the remaining rules
(voice names, language codes, whitespace-only text) live in
services/validators.py and are applied by the route handlers.

Example Request (generate):
    {
        "text": "Hello world",
        "voiceName": "female",
        "languageCode": "en-US",
        "audioConfig": {"speakingRate": 1.0, "pitch": 0.0, "volumeGainDb": 0.0}
    }

Example Request (conversation):
    {
        "conversationSegments": [
            {"text": "Hi", "voiceName": "female"},
            {"text": "Hello", "voiceName": "neural-male"}
        ],
        "speakerPauseDuration": 0.5
    }
"""
from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field

from tts_relay.core.config import Defaults


class AudioConfigIn(BaseModel):
    """Prosody parameters; every field is optional."""
    speakingRate: float = Field(
        default=1.0,
        ge=0.25,
        le=4.0,
        description="Speaking rate multiplier (0.25-4.0)"
    )
    pitch: float = Field(
        default=0.0,
        ge=-20.0,
        le=20.0,
        description="Pitch shift in semitones (-20 to 20)"
    )
    volumeGainDb: float = Field(
        default=0.0,
        ge=-96.0,
        le=16.0,
        description="Volume gain in dB (-96 to 16)"
    )


class GenerateRequest(BaseModel):
    """
    Single-segment synthesis request for /api/tts/generate and
    /api/tts/synthesize.

    Attributes:
        text: Text to synthesize, 1-100,000 characters.
        languageCode: "en-US" or "en"; defaults to en-US.
        voiceName: Voice token (female, male, neural-female, neural-male)
            or a legacy provider voice name such as "en-US-Standard-B".
            Defaults to "female".
        audioConfig: Optional prosody parameters.
    """
    text: str = Field(
        ...,
        min_length=1,
        max_length=Defaults.TEXT_MAX_CHARS,
        description="Text to synthesize (1-100000 characters)"
    )
    languageCode: str | None = Field(
        default=None,
        description="Language code ('en-US' or 'en')"
    )
    voiceName: str | None = Field(
        default=None,
        description="Voice token or legacy provider voice name"
    )
    audioConfig: AudioConfigIn | None = Field(
        default=None,
        description="Prosody parameters"
    )


class ConversationSegmentIn(BaseModel):
    text: str = Field(
        ...,
        min_length=1,
        max_length=Defaults.CONVERSATION_SEGMENT_MAX_CHARS,
        description="Segment text (1-1000 characters)"
    )
    voiceName: str | None = Field(
        default=None,
        description="Voice for this segment"
    )


class ConversationRequestIn(BaseModel):
    """
    Multi-segment request for /api/tts/conversation.

    Segments are rendered in order with ``speakerPauseDuration`` seconds
    of silence between consecutive segments.
    """
    conversationSegments: List[ConversationSegmentIn] = Field(
        ...,
        min_length=1,
        max_length=Defaults.CONVERSATION_MAX_SEGMENTS,
        description="Ordered segments (1-50)"
    )
    speakerPauseDuration: float = Field(
        default=Defaults.CONVERSATION_PAUSE_SECONDS,
        ge=Defaults.CONVERSATION_PAUSE_MIN_SECONDS,
        le=Defaults.CONVERSATION_PAUSE_MAX_SECONDS,
        description="Pause between segments in seconds (0.1-3.0)"
    )
    title: str | None = Field(
        default=None,
        max_length=200,
        description="Label stored with the conversation history record"
    )
