"""Tests for the engine factory and the local tone engine."""
import math

import pytest

from tts_relay.core.config import Settings
from tts_relay.tts.engine import BaseTTSEngine, _create_engine, get_engine, reset_engine
from tts_relay.tts.engines.google_engine import GoogleTTSEngine
from tts_relay.tts.engines.tone_engine import ToneEngine
from tts_relay.utils.audio import read_wav


@pytest.fixture(autouse=True)
def fresh_engine():
    reset_engine()
    yield
    reset_engine()


class TestFactory:
    def test_google(self):
        engine = _create_engine("google", Settings(raw={}))
        assert isinstance(engine, GoogleTTSEngine)
        assert engine.audio_extension == "mp3"
        assert not engine.is_loaded()

    def test_tone(self):
        assert isinstance(_create_engine("tone", Settings(raw={})), ToneEngine)

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown engine type"):
            _create_engine("espeak", Settings(raw={}))

    def test_singleton(self):
        settings = Settings(raw={"provider": {"engine": "tone"}})
        assert get_engine(settings) is get_engine(settings)

    def test_engine_type_change_replaces_instance(self):
        tone = get_engine(Settings(raw={"provider": {"engine": "tone"}}))
        google = get_engine(Settings(raw={"provider": {"engine": "google"}}))
        assert tone is not google
        assert google.name == "google"

    def test_base_is_abstract(self):
        engine = BaseTTSEngine(Settings(raw={}))
        with pytest.raises(NotImplementedError):
            engine.load()
        with pytest.raises(NotImplementedError):
            engine.synthesize("x", "v", "en-US")


class TestToneEngine:
    def test_duration_follows_characters(self):
        engine = ToneEngine(Settings(raw={}))
        engine.load()
        assert engine.is_loaded()

        for chars in (1, 100, 101, 250):
            result = engine.synthesize("a" * chars, "en-US-Standard-C", "en-US")
            samples, sr = read_wav(result.audio_bytes)
            assert sr == 22050
            assert len(samples) == 22050 * max(1, math.ceil(chars / 100))
            assert result.encoding == "wav"

    def test_uses_fallback_settings(self):
        engine = ToneEngine(Settings(raw={"fallback": {"sample_rate": 8000, "chars_per_second": 10}}))
        samples, sr = read_wav(engine.synthesize("a" * 25, "v", "en-US").audio_bytes)
        assert sr == 8000
        assert len(samples) == 8000 * 3

    def test_describe(self):
        assert ToneEngine(Settings(raw={})).describe() == {
            "name": "tone", "loaded": False, "audio_extension": "wav",
        }
