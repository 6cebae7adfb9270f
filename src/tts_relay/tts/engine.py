"""
Speech provider adapters: base class and factory.

An engine turns (text, provider voice id, language, audio config) into
audio bytes. The relay treats those bytes as opaque; the engine reports
the container so the cache can name the file.

Engines:
    - google: Google Cloud Text-to-Speech (MP3, 24000 Hz)
    - tone: local 440 Hz tone, the same generator used for fallback (WAV)

Engine selection comes from ``provider.engine`` in settings, or the
TTS_RELAY_PROVIDER environment variable.

Errors:
    Engines raise ProviderError with a ProviderErrorKind. QUOTA,
    AUTHENTICATION and BILLING are surfaced to the caller; OTHER lets the
    service degrade to the local tone.

Implementing a New Engine:
    1. Create engines/<name>_engine.py
    2. Inherit from BaseTTSEngine
    3. Implement load() and synthesize()
    4. Register in _create_engine()
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from tts_relay.core.config import Settings
from tts_relay.core.logging import get_logger, warn


@dataclass(frozen=True)
class AudioConfig:
    """
    Prosody parameters passed to the provider.

    Attributes:
        speaking_rate: 0.25-4.0, 1.0 is normal speed.
        pitch: -20.0 to 20.0 semitones.
        volume_gain_db: -96.0 to 16.0 dB.
    """
    speaking_rate: float = 1.0
    pitch: float = 0.0
    volume_gain_db: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "speaking_rate": float(self.speaking_rate),
            "pitch": float(self.pitch),
            "volume_gain_db": float(self.volume_gain_db),
        }


@dataclass
class SynthResult:
    """
    Audio produced by one provider call.

    Attributes:
        audio_bytes: Encoded audio.
        encoding: File extension of the container ("mp3", "wav").
        sample_rate: Sample rate requested from or produced by the engine.
        timings_s: Per-stage timing breakdown in seconds.
    """
    audio_bytes: bytes
    encoding: str
    sample_rate: int
    timings_s: Dict[str, float] = field(default_factory=dict)


class ProviderErrorKind(str, Enum):
    QUOTA = "quota"
    AUTHENTICATION = "authentication"
    BILLING = "billing"
    OTHER = "other"


class ProviderError(Exception):
    """Failure reported by a speech provider, classified by kind."""

    def __init__(self, message: str, kind: ProviderErrorKind = ProviderErrorKind.OTHER):
        super().__init__(message)
        self.message = message
        self.kind = kind


class BaseTTSEngine:
    """
    Base class for speech provider engines.

    Subclasses implement:
        - load(): acquire clients/credentials, set self._loaded
        - synthesize(): return a SynthResult

    Attributes:
        name: Engine identifier used in settings and metrics.
        audio_extension: Container of synthesize() output.
    """
    name: str = "base"
    audio_extension: str = "wav"

    def __init__(self, settings: Settings):
        self.settings = settings
        self.logger = get_logger(f"tts-relay.engine.{self.name}")
        self._loaded = False

    def load(self) -> None:
        """
        Prepare the engine for synthesis.

        Raises:
            ProviderError: If credentials are rejected.
            RuntimeError: If the provider SDK is missing or misconfigured.
        """
        raise NotImplementedError

    def is_loaded(self) -> bool:
        return bool(self._loaded)

    def synthesize(
        self,
        text: str,
        voice_id: str,
        language_code: str,
        audio_config: Optional[AudioConfig] = None,
    ) -> SynthResult:
        """
        Synthesize one provider-sized piece of text.

        Raises:
            ProviderError: On provider failure.
        """
        raise NotImplementedError

    def describe(self) -> Dict[str, Any]:
        return {"name": self.name, "loaded": self.is_loaded(), "audio_extension": self.audio_extension}


# =============================================================================
# Engine Factory (Singleton Pattern)
# =============================================================================

_ENGINE: Optional[BaseTTSEngine] = None
_ENGINE_TYPE: Optional[str] = None
_ENGINE_LOCK = threading.Lock()


def _create_engine(engine_type: str, settings: Settings) -> BaseTTSEngine:
    """
    Create an engine instance. Imports are lazy so that the Google SDK is
    only needed when the google engine is selected.

    Raises:
        ValueError: If engine_type is unknown.
    """
    if engine_type == "google":
        from tts_relay.tts.engines.google_engine import GoogleTTSEngine
        return GoogleTTSEngine(settings)

    if engine_type == "tone":
        from tts_relay.tts.engines.tone_engine import ToneEngine
        return ToneEngine(settings)

    raise ValueError(f"Unknown engine type: {engine_type}")


def get_engine(settings: Settings) -> BaseTTSEngine:
    """
    Get or create the global engine instance.

    A changed ``provider.engine`` replaces the existing instance.
    """
    global _ENGINE
    global _ENGINE_TYPE

    engine_type = settings.engine_type

    if _ENGINE is None or _ENGINE_TYPE != engine_type:
        with _ENGINE_LOCK:
            if _ENGINE is None or _ENGINE_TYPE != engine_type:
                _ENGINE = _create_engine(engine_type, settings)
                _ENGINE_TYPE = engine_type

    if _ENGINE.name != engine_type:
        warn(get_logger("tts-relay.engine"), "engine_name_mismatch",
             expected=engine_type, actual=_ENGINE.name)

    return _ENGINE


def reset_engine() -> None:
    """Drop the global engine (for testing)."""
    global _ENGINE
    global _ENGINE_TYPE
    with _ENGINE_LOCK:
        _ENGINE = None
        _ENGINE_TYPE = None
