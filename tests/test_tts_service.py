"""
Tests for TTSService - the single-segment pipeline.

Tests cover:
- Cache miss then hit, cost and duration
- Fingerprint sensitivity end to end
- Provider unavailable / generic failure -> fallback tone
- Quota, authentication and billing errors surfaced as typed TTSErrors
- Chunking of oversize text
- Usage accounting (misses only) and history (authenticated only)
- Storage failure -> SynthesisError
- get_health_info() structure
"""
from unittest.mock import MagicMock, patch

import pytest

from tts_relay.core.config import Settings
from tts_relay.services.history import InMemoryHistoryRecorder
from tts_relay.services.tts_service import (
    BillingRequiredError,
    ErrorCode,
    InvalidInputError,
    ProviderAuthError,
    QuotaExceededError,
    SynthesisError,
    SynthesizeRequest,
    TTSService,
    get_service,
    reset_service,
)
from tts_relay.tts.engine import AudioConfig, ProviderError, ProviderErrorKind, SynthResult, reset_engine

MP3_BYTES = b"ID3\x04fake-mp3"


@pytest.fixture
def settings(tmp_path):
    return Settings(raw={
        "storage": {"base_dir": str(tmp_path / "cache")},
        "provider": {"engine": "google"},
        "logging": {"level": 1, "text_preview_chars": 20},
    })


@pytest.fixture
def mock_engine():
    engine = MagicMock()
    engine.name = "google"
    engine.audio_extension = "mp3"
    engine.synthesize.return_value = SynthResult(audio_bytes=MP3_BYTES, encoding="mp3", sample_rate=24000)
    return engine


@pytest.fixture
def history():
    return InMemoryHistoryRecorder()


@pytest.fixture
def service(settings, mock_engine, history):
    svc = TTSService(settings, engine=mock_engine, history=history)
    assert svc.initialize() is True
    return svc


class TestInitialization:
    def test_provider_available_after_load(self, service, mock_engine):
        mock_engine.load.assert_called_once()
        assert service.provider_available

    @pytest.mark.parametrize("exc", [
        RuntimeError("Google TTS not configured"),
        ProviderError("bad key", ProviderErrorKind.AUTHENTICATION),
        OSError("disk"),
    ])
    def test_failed_load_is_not_fatal(self, settings, mock_engine, exc):
        mock_engine.load.side_effect = exc
        svc = TTSService(settings, engine=mock_engine)
        assert svc.initialize() is False
        assert not svc.provider_available
        health = svc.get_health_info()
        assert health["status"] == "degraded"
        assert health["fallback_active"] is True
        assert str(exc) in health["provider_error"]

    def test_estimate_duration(self):
        assert TTSService.estimate_duration(0) == 0
        assert TTSService.estimate_duration(1) == 1
        assert TTSService.estimate_duration(10) == 1
        assert TTSService.estimate_duration(11) == 2


class TestSynthesize:
    def test_miss_then_hit(self, service, mock_engine):
        first = service.synthesize(SynthesizeRequest(text="Hello world", voice="female"))
        assert first.cache_hit is False
        assert first.character_count == 11
        assert first.estimated_cost_usd == pytest.approx(0.000044)
        assert first.duration == 2
        assert first.voice_used == "en-US-Standard-C"
        assert first.filename.startswith("tts-female-")
        assert first.filename.endswith(".mp3")
        assert first.audio_url == f"http://localhost:5000/tts-cache/{first.filename}"
        assert (service.store.base_dir / first.filename).read_bytes() == MP3_BYTES

        second = service.synthesize(SynthesizeRequest(text="Hello world", voice="female"))
        assert second.cache_hit is True
        assert second.estimated_cost_usd == 0.0
        assert second.filename == first.filename
        assert second.provider == "cache"
        assert mock_engine.synthesize.call_count == 1

    def test_response_dict(self, service):
        body = service.synthesize(SynthesizeRequest(text="Hello world")).to_dict()
        assert body["success"] is True
        assert set(body) == {"success", "audioUrl", "characterCount", "estimatedCostUSD",
                             "duration", "voiceUsed", "cacheHit"}

    @pytest.mark.parametrize("changed", [
        {"text": "Hello there"},
        {"voice": "neural-female"},
        {"audio_config": AudioConfig(speaking_rate=1.5)},
        {"audio_config": AudioConfig(pitch=2.0)},
        {"audio_config": AudioConfig(volume_gain_db=-3.0)},
    ])
    def test_any_field_change_misses(self, service, mock_engine, changed):
        service.synthesize(SynthesizeRequest(text="Hello world"))
        params = {"text": "Hello world"}
        params.update(changed)
        result = service.synthesize(SynthesizeRequest(**params))
        assert result.cache_hit is False
        assert mock_engine.synthesize.call_count == 2

    def test_normalized_variants_share_cache(self, service, mock_engine):
        service.synthesize(SynthesizeRequest(text="Hello ,  world"))
        result = service.synthesize(SynthesizeRequest(text="  Hello, world "))
        assert result.cache_hit is True
        assert mock_engine.synthesize.call_count == 1
        mock_engine.synthesize.assert_called_with("Hello, world", "en-US-Standard-C", "en-US", AudioConfig())

    def test_unknown_voice_uses_default(self, service):
        result = service.synthesize(SynthesizeRequest(text="Hi", voice="xyz"))
        assert result.voice_used == "en-US-Standard-C"

    def test_premium_cost(self, service):
        result = service.synthesize(SynthesizeRequest(text="a" * 1000, voice="neural-male"))
        assert result.estimated_cost_usd == pytest.approx(0.016)
        assert result.filename.startswith("tts-neural-male-")

    def test_blank_text_rejected(self, service):
        with pytest.raises(InvalidInputError) as exc_info:
            service.synthesize(SynthesizeRequest(text="   "))
        assert exc_info.value.code == ErrorCode.INVALID_INPUT


class TestFallback:
    def test_unavailable_provider_serves_tone(self, settings, mock_engine):
        svc = TTSService(settings, engine=mock_engine)  # never initialized
        result = svc.synthesize(SynthesizeRequest(text="Hello world"))
        assert result.provider == "fallback"
        assert result.filename.endswith(".wav")
        data = (svc.store.base_dir / result.filename).read_bytes()
        assert data[:4] == b"RIFF"
        mock_engine.synthesize.assert_not_called()

    def test_generic_provider_error_degrades(self, service, mock_engine):
        mock_engine.synthesize.side_effect = ProviderError("503 backend", ProviderErrorKind.OTHER)
        result = service.synthesize(SynthesizeRequest(text="Hello world"))
        assert result.provider == "fallback"
        assert result.cache_hit is False

    @pytest.mark.parametrize("kind,error_cls,code", [
        (ProviderErrorKind.QUOTA, QuotaExceededError, ErrorCode.QUOTA_EXCEEDED),
        (ProviderErrorKind.AUTHENTICATION, ProviderAuthError, ErrorCode.AUTH_FAILED),
        (ProviderErrorKind.BILLING, BillingRequiredError, ErrorCode.BILLING_REQUIRED),
    ])
    def test_refusals_surface(self, service, mock_engine, kind, error_cls, code):
        mock_engine.synthesize.side_effect = ProviderError("refused", kind)
        with pytest.raises(error_cls) as exc_info:
            service.synthesize(SynthesizeRequest(text="Hello world"))
        assert exc_info.value.code == code
        assert service.store.get_storage_info()["file_count"] == 0
        assert service.usage.query("anonymous", "day").total_requests == 0

    def test_unexpected_engine_exception(self, service, mock_engine):
        mock_engine.synthesize.side_effect = ValueError("bug")
        with pytest.raises(SynthesisError):
            service.synthesize(SynthesizeRequest(text="Hello world"))

    def test_storage_failure(self, service):
        with patch.object(service.store, "store", side_effect=OSError("disk full")):
            with pytest.raises(SynthesisError) as exc_info:
                service.synthesize(SynthesizeRequest(text="Hello world"))
        assert exc_info.value.details["error_type"] == "OSError"


class TestChunking:
    def test_oversize_text_is_chunked(self, tmp_path, mock_engine):
        settings = Settings(raw={
            "storage": {"base_dir": str(tmp_path / "cache")},
            "provider": {"max_request_bytes": 40, "chunk_bytes": 30},
        })
        svc = TTSService(settings, engine=mock_engine)
        svc.initialize()
        text = "First sentence here. Second sentence here. Third one."
        result = svc.synthesize(SynthesizeRequest(text=text))
        assert result.chunk_count == mock_engine.synthesize.call_count
        assert result.chunk_count >= 2
        data = (svc.store.base_dir / result.filename).read_bytes()
        assert data == MP3_BYTES * result.chunk_count
        # Billed on the whole text, not per chunk
        assert result.character_count == len(text)

    def test_short_text_single_call(self, service, mock_engine):
        result = service.synthesize(SynthesizeRequest(text="Short."))
        assert result.chunk_count == 1

    def test_oversize_text_without_content_rejected(self, service, mock_engine):
        """Punctuation-only text over the byte limit yields no chunks."""
        with pytest.raises(InvalidInputError) as exc_info:
            service.synthesize(SynthesizeRequest(text="!" * 6000))
        assert exc_info.value.code == ErrorCode.INVALID_INPUT
        mock_engine.synthesize.assert_not_called()
        assert service.store.get_storage_info()["file_count"] == 0
        assert service.usage.query("anonymous", "day").total_requests == 0


class TestAccounting:
    def test_usage_recorded_on_miss_only(self, service):
        service.synthesize(SynthesizeRequest(text="Hello world"))
        service.synthesize(SynthesizeRequest(text="Hello world"))
        summary = service.usage.query("anonymous", "day")
        assert summary.total_requests == 1
        assert summary.total_characters == 11
        assert summary.total_cost_usd == pytest.approx(0.000044)

    def test_history_for_authenticated_subject(self, service, history):
        service.synthesize(SynthesizeRequest(text="Hello world", subject="user-1"))
        service.synthesize(SynthesizeRequest(text="Hello world", subject="user-1"))
        assert [r.cache_hit for r in history.generations] == [False, True]
        record = history.generations[0]
        assert record.subject_id == "user-1"
        assert record.voice_used == "en-US-Standard-C"
        assert record.speaking_rate == 1.0

    def test_no_history_for_anonymous(self, service, history):
        service.synthesize(SynthesizeRequest(text="Hello world"))
        assert history.generations == []

    def test_history_text_truncated(self, service, history):
        service.synthesize(SynthesizeRequest(text="a" * 800, subject="user-2"))
        assert len(history.generations[0].text) == 500


class TestHealth:
    def test_structure(self, service):
        health = service.get_health_info()
        assert health["ok"] is True
        assert health["status"] == "ok"
        assert health["provider"] == "google"
        assert health["provider_available"] is True
        assert health["fallback_active"] is False
        assert "file_count" in health["storage"]
        assert "indexed_entries" in health["cache"]
        assert "ram_used_mb" in health["resources"]


class TestSingleton:
    def test_get_service_returns_same_instance(self, tmp_path):
        reset_service()
        reset_engine()
        settings = Settings(raw={
            "storage": {"base_dir": str(tmp_path / "cache")},
            "provider": {"engine": "tone"},
        })
        try:
            assert get_service(settings) is get_service(settings)
            assert get_service(settings).engine.name == "tone"
        finally:
            reset_service()
            reset_engine()
