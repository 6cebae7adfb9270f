"""
Local tone engine.

Produces the same deterministic 440 Hz tone as the fallback path. Select
it with ``provider.engine: tone`` for development and tests where no
provider credentials are available.
"""
from __future__ import annotations

import math
from typing import Optional

from tts_relay.core.config import Settings
from tts_relay.core.logging import verbose
from tts_relay.tts.engine import AudioConfig, BaseTTSEngine, SynthResult
from tts_relay.utils.audio import tone_wav
from tts_relay.utils.timeit import timeit


class ToneEngine(BaseTTSEngine):
    """Sine-tone engine; duration is max(1, ceil(chars / chars_per_second))."""

    name = "tone"
    audio_extension = "wav"

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self._config = settings.get_service_config().fallback

    def load(self) -> None:
        self._loaded = True

    def synthesize(
        self,
        text: str,
        voice_id: str,
        language_code: str,
        audio_config: Optional[AudioConfig] = None,
    ) -> SynthResult:
        cfg = self._config
        seconds = max(1, math.ceil(len(text) / cfg.chars_per_second))
        with timeit("tone") as t:
            audio = tone_wav(seconds, cfg.sample_rate, cfg.frequency_hz, cfg.amplitude)
        verbose(self.logger, "tone_synth", chars=len(text), audio_seconds=seconds,
                seconds=round(t.seconds, 4))
        return SynthResult(audio_bytes=audio, encoding="wav", sample_rate=cfg.sample_rate,
                           timings_s={"tone": t.seconds})
