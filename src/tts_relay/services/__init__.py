"""
Service layer.

    - tts_service.py: TTSService, single-segment pipeline and errors
    - conversation.py: ConversationAssembler for multi-segment audio
    - usage.py: UsageTracker interface and in-memory tracker
    - history.py: HistoryRecorder hook
    - validators.py: input validation shared by API and CLI
"""
from tts_relay.services.tts_service import (
    ErrorCode,
    SynthesizeRequest,
    SynthesizeResult,
    TTSError,
    TTSService,
    get_service,
    reset_service,
)

__all__ = [
    "ErrorCode",
    "SynthesizeRequest",
    "SynthesizeResult",
    "TTSError",
    "TTSService",
    "get_service",
    "reset_service",
]
