"""
TTSService - the single-segment synthesis pipeline.

Both HTTP endpoints (/api/tts/generate and /api/tts/synthesize), the
conversation assembler and the CLI go through this service.

Architecture:
    Request -> Normalize -> Resolve voice -> Fingerprint -> Cache lookup
            -> (miss) Provider, chunked if needed, or fallback tone
            -> Store -> Cost -> Usage -> History -> Response

Fallback:
    When the provider is unavailable (not configured, SDK missing,
    initialization failed) or raises a generic error, the request is served
    with the local 440 Hz tone instead. Quota, authentication and billing
    errors are not masked; they propagate as typed TTSErrors so the caller
    can act on them.

Error Handling:
    - TTSError: base exception with a code from ErrorCode
    - SynthesisError: storage or unexpected pipeline failure
    - InvalidInputError: input rejected by the core
    - QuotaExceededError / ProviderAuthError / BillingRequiredError:
      provider refusals

Example:
    >>> settings = load_settings("config/settings.yaml")
    >>> service = TTSService(settings)
    >>> service.initialize()
    >>> result = service.synthesize(SynthesizeRequest(text="Hello world"))
    >>> result.audio_url, result.cache_hit
"""
from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from tts_relay.core.config import Defaults, Settings, TTSServiceConfig
from tts_relay.core.logging import debug, fail, get_logger, info, success, verbose, warn
from tts_relay.core.metrics import metrics
from tts_relay.core.resources import get_sampler
from tts_relay.services.history import (
    GenerationRecord,
    HistoryRecorder,
    NullHistoryRecorder,
    is_authenticated,
    truncate_text,
)
from tts_relay.services.usage import ANONYMOUS_SUBJECT, InMemoryUsageTracker, UsageTracker
from tts_relay.tts.chunker import needs_chunking, split_for_provider
from tts_relay.tts.engine import (
    AudioConfig,
    BaseTTSEngine,
    ProviderError,
    ProviderErrorKind,
    get_engine,
)
from tts_relay.tts.pricing import CostModel
from tts_relay.tts.storage import CacheStore, make_fingerprint
from tts_relay.tts.voices import VoiceResolver
from tts_relay.utils.audio import tone_wav
from tts_relay.utils.text import normalize_text
from tts_relay.utils.timeit import timeit

_LOG = get_logger("tts-relay.service")


# =============================================================================
# Error Codes and Exceptions
# =============================================================================

class ErrorCode:
    """
    Error codes returned in API error responses.
    """
    VALIDATION_FAILED = "VALIDATION_FAILED"   # Rejected by request validation
    INVALID_INPUT = "INVALID_INPUT"           # Rejected by the core
    SYNTHESIS_FAILED = "SYNTHESIS_FAILED"     # Storage or pipeline failure
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"         # Provider quota exhausted
    AUTH_FAILED = "AUTH_FAILED"               # Provider rejected credentials
    BILLING_REQUIRED = "BILLING_REQUIRED"     # Provider billing not enabled
    GENERATION_FAILED = "GENERATION_FAILED"   # Anything else at the HTTP edge
    INTERNAL_ERROR = "INTERNAL_ERROR"


class TTSError(Exception):
    """
    Base exception for relay errors.

    Attributes:
        message: Human-readable error message.
        code: Error code from ErrorCode.
        details: Optional extra context.
    """
    def __init__(self, message: str, code: str = ErrorCode.INTERNAL_ERROR, details: Optional[Dict] = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "success": False,
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class SynthesisError(TTSError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.SYNTHESIS_FAILED, details)


class InvalidInputError(TTSError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.INVALID_INPUT, details)


class QuotaExceededError(TTSError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.QUOTA_EXCEEDED, details)


class ProviderAuthError(TTSError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.AUTH_FAILED, details)


class BillingRequiredError(TTSError):
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(message, ErrorCode.BILLING_REQUIRED, details)


_PROVIDER_ERRORS = {
    ProviderErrorKind.QUOTA: (QuotaExceededError, "TTS quota exceeded. Please try again later."),
    ProviderErrorKind.AUTHENTICATION: (ProviderAuthError, "Authentication failed with Google Cloud TTS."),
    ProviderErrorKind.BILLING: (BillingRequiredError, "Billing account required for TTS service."),
}


def error_for_provider(exc: ProviderError) -> TTSError:
    """Typed TTSError for a quota/authentication/billing ProviderError."""
    cls, message = _PROVIDER_ERRORS.get(exc.kind, (SynthesisError, "TTS generation failed."))
    return cls(message, {"provider_message": exc.message})


# =============================================================================
# Request/Response Dataclasses
# =============================================================================

@dataclass(frozen=True)
class SynthesizeRequest:
    """
    Single-segment synthesis request.

    Attributes:
        text: Text to synthesize.
        voice: Voice token or legacy provider voice name.
        language_code: Provider language code.
        audio_config: Prosody parameters.
        subject: Accounting identity; "anonymous" when unauthenticated.
    """
    text: str
    voice: str = "female"
    language_code: str = "en-US"
    audio_config: AudioConfig = field(default_factory=AudioConfig)
    subject: str = ANONYMOUS_SUBJECT


@dataclass
class SynthesizeResult:
    """
    Result of a single-segment synthesis.

    Attributes:
        audio_url: Public URL of the cached artifact.
        filename: Artifact filename in the cache directory.
        character_count: Characters of the normalized text.
        estimated_cost_usd: Exact cost, 0 on a cache hit.
        voice_used: Provider voice id.
        duration: Estimated playback seconds (ceil(chars / 10)).
        cache_hit: True when served from the cache.
        chunk_count: Provider calls made (0 on hit or fallback).
        provider: Engine that produced the audio ("cache" on hit).
        timings: Per-stage timings in seconds.
    """
    audio_url: str
    filename: str
    character_count: int
    estimated_cost_usd: float
    voice_used: str
    duration: float
    cache_hit: bool
    chunk_count: int = 0
    provider: str = ""
    timings: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "audioUrl": self.audio_url,
            "characterCount": self.character_count,
            "estimatedCostUSD": self.estimated_cost_usd,
            "duration": self.duration,
            "voiceUsed": self.voice_used,
            "cacheHit": self.cache_hit,
        }


@dataclass
class SegmentAudio:
    """Audio for one piece of text, before caching."""
    audio_bytes: bytes
    extension: str
    provider: str
    chunk_count: int = 0
    fallback_reason: Optional[str] = None


# =============================================================================
# Main Service Class
# =============================================================================

class TTSService:
    """
    Cache-and-cost engine around a speech provider.

    Thread-safe: cache index, usage tracker and metrics are all guarded;
    concurrent identical misses may both synthesize (each writes its own
    timestamped file).

    Args:
        settings: Application settings.
        engine: Provider engine (default: from settings via get_engine).
        store: Cache store (default: built from storage settings).
        usage: Usage tracker (default: in-memory).
        history: History recorder (default: drops records).
    """

    def __init__(
        self,
        settings: Settings,
        engine: Optional[BaseTTSEngine] = None,
        store: Optional[CacheStore] = None,
        usage: Optional[UsageTracker] = None,
        history: Optional[HistoryRecorder] = None,
    ):
        self._settings = settings
        self._config: TTSServiceConfig = settings.get_service_config()
        cfg = self._config

        self._engine = engine if engine is not None else get_engine(settings)
        self._store = store if store is not None else CacheStore(
            base_dir=cfg.storage.base_dir,
            base_url=cfg.server.base_url,
            ttl_seconds=cfg.storage.ttl_seconds,
            max_size_mb=cfg.storage.max_size_mb,
            write_sweep_interval_seconds=cfg.storage.write_sweep_interval_seconds,
        )
        self._resolver = VoiceResolver(settings.default_voice)
        self._cost_model = CostModel.from_config(cfg.pricing)
        self._usage = usage if usage is not None else InMemoryUsageTracker(
            cost_model=self._cost_model,
            free_quota_per_month=cfg.pricing.free_quota_per_month,
            track_anonymous=cfg.usage.track_anonymous,
        )
        self._history = history if history is not None else NullHistoryRecorder()

        self._provider_available = False
        self._init_error: Optional[str] = None
        self._init_lock = threading.Lock()

        info(_LOG, "service_created", provider=self._engine.name, cache_dir=str(self._store.base_dir))

    # ─────────────────────────────────────────────────────────────────────
    # Accessors
    # ─────────────────────────────────────────────────────────────────────

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def config(self) -> TTSServiceConfig:
        return self._config

    @property
    def engine(self) -> BaseTTSEngine:
        return self._engine

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def resolver(self) -> VoiceResolver:
        return self._resolver

    @property
    def cost_model(self) -> CostModel:
        return self._cost_model

    @property
    def usage(self) -> UsageTracker:
        return self._usage

    @property
    def history(self) -> HistoryRecorder:
        return self._history

    @property
    def provider_available(self) -> bool:
        return self._provider_available

    # ─────────────────────────────────────────────────────────────────────
    # Provider lifecycle
    # ─────────────────────────────────────────────────────────────────────

    def initialize(self) -> bool:
        """
        Load the provider engine.

        A failure is not fatal: the service keeps running on the fallback
        tone. Returns whether the provider is available.
        """
        with self._init_lock:
            try:
                with timeit("provider_init") as t:
                    self._engine.load()
            except (ProviderError, RuntimeError, OSError) as e:
                self._provider_available = False
                self._init_error = str(e)
                warn(_LOG, "provider_unavailable", provider=self._engine.name,
                     error=str(e), fallback=True)
            else:
                self._provider_available = True
                self._init_error = None
                success(_LOG, "provider_initialized", provider=self._engine.name,
                        seconds=round(t.seconds, 3))

        metrics.set_provider_available(self._engine.name, self._provider_available)
        return self._provider_available

    # ─────────────────────────────────────────────────────────────────────
    # Building blocks shared with the conversation assembler
    # ─────────────────────────────────────────────────────────────────────

    @staticmethod
    def estimate_duration(characters: int) -> int:
        """Playback estimate used in responses: ceil(chars / 10) seconds."""
        return math.ceil(characters / Defaults.ESTIMATE_CHARS_PER_SECOND)

    def fallback_audio(self, text: str) -> bytes:
        """Deterministic tone for text: max(1, ceil(chars / 100)) seconds."""
        fb = self._config.fallback
        seconds = max(1, math.ceil(len(text) / fb.chars_per_second))
        return tone_wav(seconds, fb.sample_rate, fb.frequency_hz, fb.amplitude)

    def _fallback(self, text: str, reason: str) -> SegmentAudio:
        metrics.record_fallback(reason)
        return SegmentAudio(
            audio_bytes=self.fallback_audio(text),
            extension="wav",
            provider="fallback",
            fallback_reason=reason,
        )

    def synthesize_segment(
        self,
        text: str,
        voice_id: str,
        language_code: str,
        audio_config: AudioConfig,
        allow_chunking: bool = True,
        strict: bool = True,
    ) -> SegmentAudio:
        """
        Produce audio for one piece of normalized text.

        Args:
            text: Normalized text.
            voice_id: Resolved provider voice id.
            language_code: Provider language code.
            audio_config: Prosody parameters.
            allow_chunking: Split text over the provider byte limit.
            strict: Propagate quota/authentication/billing errors. When
                False every provider error degrades to the fallback tone.

        Raises:
            InvalidInputError: Oversize text that splits into no chunks.
            QuotaExceededError, ProviderAuthError, BillingRequiredError:
                Only when strict.
        """
        if not self._provider_available:
            return self._fallback(text, "provider_unavailable")

        provider_cfg = self._config.provider
        if allow_chunking and needs_chunking(text, provider_cfg.max_request_bytes):
            pieces = split_for_provider(text, provider_cfg.chunk_bytes).chunks
            if not pieces:
                raise InvalidInputError("Text has no speakable content")
        else:
            pieces = [text]

        try:
            parts = []
            for piece in pieces:
                result = self._engine.synthesize(piece, voice_id, language_code, audio_config)
                parts.append(result.audio_bytes)
        except ProviderError as e:
            if strict and e.kind != ProviderErrorKind.OTHER:
                fail(_LOG, "provider_refused", kind=e.kind.value, error=e.message)
                raise error_for_provider(e) from e
            warn(_LOG, "provider_failed", kind=e.kind.value, error=e.message, fallback=True)
            return self._fallback(text, f"provider_{e.kind.value}")

        if len(pieces) > 1:
            verbose(_LOG, "chunks_joined", chunks=len(pieces))
        return SegmentAudio(
            audio_bytes=b"".join(parts),
            extension=self._engine.audio_extension,
            provider=self._engine.name,
            chunk_count=len(pieces),
        )

    # ─────────────────────────────────────────────────────────────────────
    # Public API: synthesize()
    # ─────────────────────────────────────────────────────────────────────

    def synthesize(self, request: SynthesizeRequest) -> SynthesizeResult:
        """
        Synthesize a single segment, from cache when possible.

        Raises:
            InvalidInputError: Text is empty after normalization.
            QuotaExceededError, ProviderAuthError, BillingRequiredError:
                Provider refusals.
            SynthesisError: Storage or unexpected failure.
        """
        timings: Dict[str, float] = {}
        preview_len = self._config.logging.text_preview_chars
        info(_LOG, "request", chars=len(request.text), voice=request.voice,
             text_preview=request.text[:preview_len] if preview_len > 0 else "")

        try:
            with timeit("request_total") as total_t:
                text, norm_timings = normalize_text(request.text)
                timings.update(norm_timings)
                if not text:
                    raise InvalidInputError("Text is required")

                voice_id = self._resolver.resolve(request.voice)
                tag = self._resolver.simplify(voice_id)
                fingerprint = make_fingerprint(text, voice_id, request.language_code, request.audio_config)
                characters = len(text)
                duration = self.estimate_duration(characters)
                debug(_LOG, "resolved", voice_id=voice_id, tag=tag, fingerprint=fingerprint)

                with timeit("cache_lookup") as t_cache:
                    cached = self._store.lookup(fingerprint, tag)
                timings["cache_lookup"] = t_cache.seconds

                if cached is not None:
                    metrics.record_cache("hit", kind="single")
                    result = SynthesizeResult(
                        audio_url=cached.url,
                        filename=cached.filename,
                        character_count=characters,
                        estimated_cost_usd=0.0,
                        voice_used=voice_id,
                        duration=duration,
                        cache_hit=True,
                        provider="cache",
                        timings=timings,
                    )
                else:
                    metrics.record_cache("miss", kind="single")

                    with timeit("synth") as t_synth:
                        segment = self.synthesize_segment(
                            text, voice_id, request.language_code, request.audio_config,
                        )
                    timings["synth"] = t_synth.seconds
                    verbose(_LOG, "stage", event="synth", provider=segment.provider,
                            seconds=round(t_synth.seconds, 4))

                    with timeit("cache_store") as t_store:
                        stored = self._store.store(fingerprint, segment.audio_bytes, tag, ext=segment.extension)
                    timings["cache_store"] = t_store.seconds

                    quote = self._cost_model.quote(characters, voice_id)
                    self._usage.record(request.subject, characters, voice_id, cost_usd=quote.cost_usd)
                    metrics.record_usage(characters, quote.cost_usd, quote.tier.value)

                    result = SynthesizeResult(
                        audio_url=stored.url,
                        filename=stored.filename,
                        character_count=characters,
                        estimated_cost_usd=quote.cost_usd,
                        voice_used=voice_id,
                        duration=duration,
                        cache_hit=False,
                        chunk_count=segment.chunk_count,
                        provider=segment.provider,
                        timings=timings,
                    )
                    self._store.maybe_evict()

                self._record_history(request, text, result)

        except TTSError:
            metrics.record_request("single", self._engine.name, "error", -1)
            raise
        except OSError as e:
            fail(_LOG, "cache_write_failed", error=str(e))
            metrics.record_request("single", self._engine.name, "error", -1)
            raise SynthesisError("Failed to store generated audio", {"error_type": type(e).__name__}) from e
        except Exception as e:
            fail(_LOG, "request_failed", error=str(e), error_type=type(e).__name__)
            metrics.record_request("single", self._engine.name, "error", -1)
            raise SynthesisError(f"Unexpected error: {e}", {"error_type": type(e).__name__}) from e

        timings["total"] = total_t.seconds
        metrics.record_request("single", result.provider, "success", total_t.seconds,
                               cache="hit" if result.cache_hit else "miss")
        success(_LOG, "done", cache_hit=result.cache_hit, chars=result.character_count,
                cost_usd=result.estimated_cost_usd, file=result.filename,
                seconds=round(total_t.seconds, 3))
        return result

    def _record_history(self, request: SynthesizeRequest, text: str, result: SynthesizeResult) -> None:
        if not is_authenticated(request.subject):
            return
        self._history.record_generation(GenerationRecord(
            subject_id=request.subject,
            text=truncate_text(text, self._config.history.text_preview_chars),
            voice_used=result.voice_used,
            speaking_rate=request.audio_config.speaking_rate,
            audio_url=result.audio_url,
            filename=result.filename,
            character_count=result.character_count,
            cost_usd=result.estimated_cost_usd,
            duration=result.duration,
            cache_hit=result.cache_hit,
        ))

    # =========================================================================
    # Health Check
    # =========================================================================

    def get_health_info(self) -> Dict[str, Any]:
        """
        Service status for /health.

        Returns provider state, cache directory usage and index stats, and
        process resources.
        """
        metrics.set_provider_available(self._engine.name, self._provider_available)
        return {
            "ok": True,
            "status": "ok" if self._provider_available else "degraded",
            "provider": self._engine.name,
            "provider_available": self._provider_available,
            "provider_error": self._init_error,
            "fallback_active": not self._provider_available,
            "storage": self._store.get_storage_info(),
            "cache": self._store.get_stats(),
            "resources": get_sampler().sample().to_dict(),
        }


# =============================================================================
# Global Service Singleton
# =============================================================================

_service: Optional[TTSService] = None
_service_lock = threading.Lock()


def get_service(settings: Settings) -> TTSService:
    """Get or create the global TTSService."""
    global _service
    if _service is None:
        with _service_lock:
            if _service is None:
                _service = TTSService(settings)
    return _service


def reset_service() -> None:
    """Drop the global service (for testing)."""
    global _service
    with _service_lock:
        _service = None
