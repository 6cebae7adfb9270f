"""
FastAPI dependency providers.

Shared resources for the route handlers, injected with ``Depends()``:

    get_settings()               - settings file, loaded once
    get_tts_service()            - singleton TTSService
    get_conversation_assembler() - singleton ConversationAssembler
    get_subject()                - accounting identity of the caller

Lifecycle:
    startup   -> start_service() (app lifespan): provider init + eviction scheduler
    requests  -> handlers receive the same service instance
    shutdown  -> stop_service() (app lifespan): scheduler thread stopped

The settings path is ``config/settings.yaml`` unless TTS_RELAY_SETTINGS
points elsewhere; a missing file means defaults.
"""
from __future__ import annotations

import threading
from functools import lru_cache
from typing import Optional

from tts_relay.core.config import Settings, load_settings, settings_path
from tts_relay.core.logging import get_logger, info
from tts_relay.services.conversation import ConversationAssembler, get_assembler
from tts_relay.services.tts_service import TTSService, get_service
from tts_relay.services.usage import ANONYMOUS_SUBJECT
from tts_relay.tts.storage import EvictionScheduler

_LOG = get_logger("tts-relay.api")

_scheduler: Optional[EvictionScheduler] = None
_scheduler_lock = threading.Lock()


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load and cache application settings."""
    return load_settings(settings_path(), missing_ok=True)


def get_tts_service() -> TTSService:
    return get_service(get_settings())


def get_conversation_assembler() -> ConversationAssembler:
    return get_assembler(get_settings())


def get_subject() -> str:
    """
    Accounting identity for the current request.

    The relay has no authentication layer of its own, so every caller is
    the anonymous subject. Usage is tracked for it; history is not.
    """
    return ANONYMOUS_SUBJECT


def start_service() -> None:
    """
    Initialize the provider and start the periodic eviction sweep.

    Provider failure is not fatal: the service stays up on the fallback
    tone and /health reports "degraded".
    """
    global _scheduler
    service = get_tts_service()
    service.initialize()

    with _scheduler_lock:
        if _scheduler is None:
            _scheduler = EvictionScheduler(
                service.store,
                interval_seconds=service.config.storage.sweep_interval_seconds,
            )
        _scheduler.start()
    info(_LOG, "service_started", provider=service.engine.name,
         provider_available=service.provider_available)


def stop_service() -> None:
    global _scheduler
    with _scheduler_lock:
        if _scheduler is not None:
            _scheduler.stop()
            _scheduler = None
    info(_LOG, "service_stopped")
