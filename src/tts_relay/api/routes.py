"""
TTS API Routes.

Endpoints:
    POST /api/tts/generate       - Single-segment synthesis (cached)
    POST /api/tts/synthesize     - Alias of /generate
    POST /api/tts/conversation   - Multi-voice conversation
    GET  /api/tts/usage          - Usage summary (?period=day|week|month)
    GET  /api/tts/pricing        - Per-tier rates and free quota
    GET  /api/tts/voices         - Voice catalog
    GET  /health                 - Provider, cache and process status
    GET  /metrics                - Prometheus metrics

Synthesis endpoints return a JSON document pointing at the cached audio
file (served from /tts-cache), never the audio itself.

Error Handling:
    Every error body carries ``success: false``:
    {
        "success": false,
        "error": "<ERROR_CODE>",
        "message": "<human readable message>"
    }

    Validation failures return 400 with an ``errors`` list. TTSError codes
    map to HTTP status codes:
        - INVALID_INPUT -> 400 Bad Request
        - AUTH_FAILED -> 401 Unauthorized
        - BILLING_REQUIRED -> 402 Payment Required
        - QUOTA_EXCEEDED -> 429 Too Many Requests
        - anything else -> 500 with GENERATION_FAILED

Example:
    curl -X POST http://localhost:5000/api/tts/generate \\
        -H "Content-Type: application/json" \\
        -d '{"text": "Hello world", "voiceName": "female"}'
"""
from __future__ import annotations

import uuid
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from tts_relay.api.dependencies import (
    get_conversation_assembler,
    get_subject,
    get_tts_service,
)
from tts_relay.api.schemas import ConversationRequestIn, GenerateRequest
from tts_relay.core.logging import fail, get_logger, set_request_id, warn
from tts_relay.core.metrics import metrics
from tts_relay.services.conversation import (
    ConversationAssembler,
    ConversationRequest,
    ConversationSegment,
)
from tts_relay.services.tts_service import (
    ErrorCode,
    SynthesizeRequest,
    TTSError,
    TTSService,
)
from tts_relay.services.usage import PERIODS
from tts_relay.services.validators import (
    ValidationError,
    validate_audio_config,
    validate_conversation,
    validate_language,
    validate_text,
    validate_voice,
)
from tts_relay.tts.engine import AudioConfig
from tts_relay.tts.pricing import QUALITY_LEVEL
from tts_relay.tts.voices import DEFAULT_VOICE, VOICE_CATALOG

router = APIRouter()

_LOG = get_logger("tts-relay.api")

GENERATION_FAILED_MESSAGE = "Failed to generate TTS audio. Please try again."
CONVERSATION_FAILED_MESSAGE = "Failed to generate conversation audio. Please try again."

_STATUS_MAP = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.AUTH_FAILED: 401,
    ErrorCode.BILLING_REQUIRED: 402,
    ErrorCode.QUOTA_EXCEEDED: 429,
}


def validation_error_response(errors: List[Dict[str, Any]]) -> JSONResponse:
    """400 response for input rejected before synthesis."""
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": ErrorCode.VALIDATION_FAILED,
            "message": "Validation failed",
            "errors": errors,
        },
    )


def _error_response(error: TTSError, rid: str, failed_message: str) -> JSONResponse:
    """
    Map a TTSError to its HTTP response.

    Codes without a dedicated status collapse to 500 GENERATION_FAILED;
    the underlying message is logged, not returned.
    """
    status_code = _STATUS_MAP.get(error.code)
    if status_code is None:
        fail(_LOG, "request_error", code=error.code, error=error.message)
        return _internal_error(rid, failed_message)
    warn(_LOG, "request_rejected", code=error.code, status=status_code)
    return JSONResponse(status_code=status_code, content=error.to_dict())


def _internal_error(rid: str, failed_message: str) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": ErrorCode.GENERATION_FAILED,
            "message": failed_message,
            "request_id": rid,
        },
    )


@router.post("/api/tts/generate")
def generate(
    req: GenerateRequest,
    service: TTSService = Depends(get_tts_service),
    subject: str = Depends(get_subject),
):
    """
    Synthesize text, reusing the cached file when the same request was
    seen before.

    Returns:
        {success, audioUrl, characterCount, estimatedCostUSD, duration,
         voiceUsed, cacheHit}
    """
    rid = str(uuid.uuid4())[:12]
    set_request_id(rid)

    audio = req.audioConfig
    try:
        text = validate_text(req.text)
        voice = validate_voice(req.voiceName)
        language = validate_language(req.languageCode)
        rate, pitch, gain = validate_audio_config(
            audio.speakingRate if audio else 1.0,
            audio.pitch if audio else 0.0,
            audio.volumeGainDb if audio else 0.0,
        )
    except ValidationError as e:
        return validation_error_response([{"code": e.code, "message": e.message}])

    try:
        result = service.synthesize(SynthesizeRequest(
            text=text,
            voice=voice,
            language_code=language,
            audio_config=AudioConfig(speaking_rate=rate, pitch=pitch, volume_gain_db=gain),
            subject=subject,
        ))
        return result.to_dict()

    except TTSError as e:
        return _error_response(e, rid, GENERATION_FAILED_MESSAGE)

    except Exception as e:
        fail(_LOG, "unhandled_error", error=str(e), error_type=type(e).__name__)
        return _internal_error(rid, GENERATION_FAILED_MESSAGE)


router.add_api_route("/api/tts/synthesize", generate, methods=["POST"])


@router.post("/api/tts/conversation")
def conversation(
    req: ConversationRequestIn,
    assembler: ConversationAssembler = Depends(get_conversation_assembler),
    subject: str = Depends(get_subject),
):
    """
    Render an ordered list of (text, voice) segments into one audio file
    with a pause between speakers.

    Returns:
        {success, audioUrl, totalCharacterCount, estimatedCostUSD,
         duration, cacheHit, conversationSegments}
    """
    rid = str(uuid.uuid4())[:12]
    set_request_id(rid)

    limits = assembler.service.config.conversation
    pairs = [(s.text, s.voiceName) for s in req.conversationSegments]
    try:
        validate_conversation(
            pairs,
            req.speakerPauseDuration,
            max_segments=limits.max_segments,
            segment_max_chars=limits.segment_max_chars,
            max_total_chars=limits.max_total_chars,
        )
    except ValidationError as e:
        return validation_error_response([{"code": e.code, "message": e.message}])

    try:
        result = assembler.synthesize(ConversationRequest(
            segments=tuple(ConversationSegment(text, voice or DEFAULT_VOICE) for text, voice in pairs),
            pause_seconds=req.speakerPauseDuration,
            title=req.title,
            subject=subject,
        ))
        return result.to_dict()

    except TTSError as e:
        return _error_response(e, rid, CONVERSATION_FAILED_MESSAGE)

    except Exception as e:
        fail(_LOG, "unhandled_error", error=str(e), error_type=type(e).__name__)
        return _internal_error(rid, CONVERSATION_FAILED_MESSAGE)


@router.get("/api/tts/usage")
def usage(
    period: str = "month",
    service: TTSService = Depends(get_tts_service),
    subject: str = Depends(get_subject),
):
    """Usage summary for the caller over the current day, week or month."""
    if period not in PERIODS:
        return validation_error_response([{
            "code": "PERIOD_INVALID",
            "message": f"Unsupported period: {period} (expected one of {', '.join(PERIODS)})",
        }])
    summary = service.usage.query(subject, period)
    return {"success": True, "usage": summary.to_dict()}


@router.get("/api/tts/pricing")
def pricing(service: TTSService = Depends(get_tts_service)):
    return {"success": True, "pricing": service.cost_model.pricing_info()}


@router.get("/api/tts/voices")
def voices():
    """Voice catalog with the provider voice behind each token."""
    catalog = [
        {
            "value": v.value,
            "label": v.label,
            "gender": v.gender,
            "description": v.description,
            "googleVoice": v.google_voice,
            "sampleRate": v.sample_rate,
        }
        for v in VOICE_CATALOG
    ]
    return {
        "success": True,
        "voices": catalog,
        "recommendedVoice": DEFAULT_VOICE,
        "totalVoices": len(catalog),
        "quality": QUALITY_LEVEL,
    }


@router.get("/health")
def health(service: TTSService = Depends(get_tts_service)):
    """
    Health check for load balancers and probes.

    Always 200; ``status`` is "degraded" while the fallback tone is
    serving requests.
    """
    return service.get_health_info()


@router.get("/metrics")
def prometheus_metrics():
    content, content_type = metrics.get_metrics_response()
    return Response(content=content, media_type=content_type)
