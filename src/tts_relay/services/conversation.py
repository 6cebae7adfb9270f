"""
Conversation assembly.

A conversation is an ordered list of (text, voice) segments rendered into
one artifact: each segment is synthesized in turn and a silence pause is
placed between consecutive segments (never after the last).

    seg1 | pause | seg2 | pause | ... | segN

Segments are short (at most 1000 characters) so they are never chunked.
One failing segment never aborts the others: any provider error, quota
included, degrades that segment alone to the fallback tone.

The whole conversation is cached as a single ``conversation-...wav``
file keyed by the ordered segments and the pause length.

Example:
    assembler = ConversationAssembler(service)
    result = assembler.synthesize(ConversationRequest(
        segments=(ConversationSegment("Hi", "female"),
                  ConversationSegment("Hello", "neural-male")),
        pause_seconds=0.5,
    ))
    result.total_characters, result.duration   # 7, 2.5
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from tts_relay.core.config import Defaults, Settings
from tts_relay.core.logging import debug, fail, get_logger, info, success, verbose
from tts_relay.core.metrics import metrics
from tts_relay.services.history import ConversationRecord, is_authenticated
from tts_relay.services.tts_service import (
    InvalidInputError,
    SynthesisError,
    TTSService,
    get_service,
)
from tts_relay.services.usage import ANONYMOUS_SUBJECT
from tts_relay.tts.engine import AudioConfig
from tts_relay.tts.storage import CONVERSATION_TAG, make_conversation_fingerprint
from tts_relay.utils.audio import silence_wav
from tts_relay.utils.text import normalize_text
from tts_relay.utils.timeit import timeit

_LOG = get_logger("tts-relay.conversation")

TITLE_MAX_CHARS = 50
CONVERSATION_LANGUAGE = "en-US"


@dataclass(frozen=True)
class ConversationSegment:
    text: str
    voice: str = "female"

    def to_dict(self) -> Dict[str, str]:
        return {"text": self.text, "voiceName": self.voice}


@dataclass(frozen=True)
class ConversationRequest:
    """
    Multi-segment request.

    Attributes:
        segments: Segments in playback order.
        pause_seconds: Silence between consecutive segments.
        title: Label for the history record; defaults to the start of the
            first segment.
        subject: Accounting identity.
    """
    segments: Sequence[ConversationSegment]
    pause_seconds: float = Defaults.CONVERSATION_PAUSE_SECONDS
    title: Optional[str] = None
    subject: str = ANONYMOUS_SUBJECT


@dataclass
class ConversationResult:
    audio_url: str
    filename: str
    total_characters: int
    estimated_cost_usd: float
    duration: float
    cache_hit: bool
    segments: List[ConversationSegment] = field(default_factory=list)
    fallback_segments: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "audioUrl": self.audio_url,
            "totalCharacterCount": self.total_characters,
            "estimatedCostUSD": self.estimated_cost_usd,
            "duration": self.duration,
            "cacheHit": self.cache_hit,
            "conversationSegments": [s.to_dict() for s in self.segments],
        }


class ConversationAssembler:
    """
    Builds conversation artifacts on top of a TTSService.

    Uses the service's cache store, voice resolver, cost model, usage
    tracker and history recorder, so single and multi-segment requests
    share accounting.
    """

    def __init__(self, service: TTSService):
        self._service = service

    @property
    def service(self) -> TTSService:
        return self._service

    def _check_limits(self, request: ConversationRequest) -> None:
        limits = self._service.config.conversation
        if not request.segments:
            raise InvalidInputError("Conversation requires at least one segment")
        if len(request.segments) > limits.max_segments:
            raise InvalidInputError(
                f"Too many segments ({len(request.segments)} > {limits.max_segments})")
        total = sum(len(s.text) for s in request.segments)
        if total > limits.max_total_chars:
            raise InvalidInputError(
                f"Conversation exceeds maximum total length ({total} > {limits.max_total_chars})",
                {"total_characters": total, "max_total_characters": limits.max_total_chars},
            )

    def synthesize(self, request: ConversationRequest) -> ConversationResult:
        """
        Render a conversation, from cache when possible.

        Raises:
            InvalidInputError: Empty conversation, too many segments, or
                aggregate text over the limit. Checked before any synthesis.
            SynthesisError: The artifact could not be stored.
        """
        self._check_limits(request)

        service = self._service
        resolver = service.resolver
        pause = float(request.pause_seconds)

        texts = [normalize_text(s.text)[0] for s in request.segments]
        if any(not t for t in texts):
            raise InvalidInputError("Segment text is required")
        voice_ids = [resolver.resolve(s.voice) for s in request.segments]
        characters = [len(t) for t in texts]
        total_characters = sum(characters)

        fingerprint = make_conversation_fingerprint(zip(texts, voice_ids), pause)
        info(_LOG, "conversation_request", segments=len(texts), chars=total_characters, pause=pause)
        debug(_LOG, "conversation_resolved", fingerprint=fingerprint, voices=",".join(voice_ids))

        with timeit("conversation_total") as total_t:
            cached = service.store.lookup(fingerprint, CONVERSATION_TAG)
            if cached is not None:
                metrics.record_cache("hit", kind="conversation")
                result = ConversationResult(
                    audio_url=cached.url,
                    filename=cached.filename,
                    total_characters=total_characters,
                    estimated_cost_usd=0.0,
                    duration=service.estimate_duration(total_characters),
                    cache_hit=True,
                    segments=list(request.segments),
                )
            else:
                metrics.record_cache("miss", kind="conversation")
                result = self._assemble(request, texts, voice_ids, characters, fingerprint, pause)

        metrics.record_request("conversation", service.engine.name, "success", total_t.seconds,
                               cache="hit" if result.cache_hit else "miss")
        success(_LOG, "conversation_done", cache_hit=result.cache_hit, chars=result.total_characters,
                cost_usd=result.estimated_cost_usd, fallback=result.fallback_segments,
                seconds=round(total_t.seconds, 3))
        return result

    def _assemble(
        self,
        request: ConversationRequest,
        texts: List[str],
        voice_ids: List[str],
        characters: List[int],
        fingerprint: str,
        pause: float,
    ) -> ConversationResult:
        service = self._service
        cost_model = service.cost_model
        default_config = AudioConfig()

        parts: List[bytes] = []
        cost = Decimal(0)
        duration = 0.0
        fallback_segments = 0
        last = len(texts) - 1

        for i, (text, voice_id) in enumerate(zip(texts, voice_ids)):
            segment = service.synthesize_segment(
                text, voice_id, CONVERSATION_LANGUAGE, default_config,
                allow_chunking=False, strict=False,
            )
            if segment.fallback_reason:
                fallback_segments += 1
            parts.append(segment.audio_bytes)
            if i < last:
                parts.append(silence_wav(pause))

            cost += cost_model.cost_decimal(characters[i], voice_id)
            duration += service.estimate_duration(characters[i])
            verbose(_LOG, "segment_done", index=i, voice=voice_id, provider=segment.provider)

        duration += last * pause
        total_characters = sum(characters)
        total_cost = float(cost)

        try:
            stored = service.store.store(fingerprint, b"".join(parts), CONVERSATION_TAG, ext="wav")
        except OSError as e:
            fail(_LOG, "conversation_store_failed", error=str(e))
            raise SynthesisError("Failed to store conversation audio",
                                 {"error_type": type(e).__name__}) from e

        service.usage.record(request.subject, total_characters, CONVERSATION_TAG, cost_usd=total_cost)
        for voice_id, n in zip(voice_ids, characters):
            metrics.record_usage(n, cost_model.cost(n, voice_id), cost_model.tier(voice_id).value)

        if is_authenticated(request.subject):
            title = request.title or texts[0][:TITLE_MAX_CHARS]
            service.history.record_conversation(ConversationRecord(
                subject_id=request.subject,
                title=title,
                segments=[s.to_dict() for s in request.segments],
                total_characters=total_characters,
                total_cost_usd=total_cost,
                total_duration=duration,
                audio_url=stored.url,
                filename=stored.filename,
            ))

        service.store.maybe_evict()

        return ConversationResult(
            audio_url=stored.url,
            filename=stored.filename,
            total_characters=total_characters,
            estimated_cost_usd=total_cost,
            duration=duration,
            cache_hit=False,
            segments=list(request.segments),
            fallback_segments=fallback_segments,
        )


_assembler: Optional[ConversationAssembler] = None
_assembler_lock = threading.Lock()


def get_assembler(settings: Settings) -> ConversationAssembler:
    """Get or create the global ConversationAssembler over the global service."""
    global _assembler
    if _assembler is None:
        with _assembler_lock:
            if _assembler is None:
                _assembler = ConversationAssembler(get_service(settings))
    return _assembler


def reset_assembler() -> None:
    global _assembler
    with _assembler_lock:
        _assembler = None
