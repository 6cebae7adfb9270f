"""
History hook.

Authenticated generations are reported to a HistoryRecorder so that an
outer application can persist them. The service ships two recorders:
NullHistoryRecorder (default, drops everything) and
InMemoryHistoryRecorder (keeps records in a list, for tests and the CLI).
"""
from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from tts_relay.services.usage import ANONYMOUS_SUBJECT


@dataclass(frozen=True)
class GenerationRecord:
    """One single-segment generation. Text is already truncated."""
    subject_id: str
    text: str
    voice_used: str
    speaking_rate: float
    audio_url: str
    filename: str
    character_count: int
    cost_usd: float
    duration: float
    cache_hit: bool = False


@dataclass(frozen=True)
class ConversationRecord:
    """One conversation generation (misses only)."""
    subject_id: str
    title: str
    segments: List[Dict[str, str]] = field(default_factory=list)
    total_characters: int = 0
    total_cost_usd: float = 0.0
    total_duration: float = 0.0
    audio_url: str = ""
    filename: str = ""


class HistoryRecorder:
    """Receiver of generation records."""

    def record_generation(self, record: GenerationRecord) -> None:
        raise NotImplementedError

    def record_conversation(self, record: ConversationRecord) -> None:
        raise NotImplementedError


class NullHistoryRecorder(HistoryRecorder):
    def record_generation(self, record: GenerationRecord) -> None:
        return None

    def record_conversation(self, record: ConversationRecord) -> None:
        return None


class InMemoryHistoryRecorder(HistoryRecorder):
    """Keeps records in memory, newest last."""

    def __init__(self):
        self._lock = threading.Lock()
        self.generations: List[GenerationRecord] = []
        self.conversations: List[ConversationRecord] = []

    def record_generation(self, record: GenerationRecord) -> None:
        with self._lock:
            self.generations.append(record)

    def record_conversation(self, record: ConversationRecord) -> None:
        with self._lock:
            self.conversations.append(record)

    def for_subject(self, subject_id: str) -> Dict[str, List[Dict[str, Any]]]:
        with self._lock:
            return {
                "generations": [asdict(r) for r in self.generations if r.subject_id == subject_id],
                "conversations": [asdict(r) for r in self.conversations if r.subject_id == subject_id],
            }


def truncate_text(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit]


def is_authenticated(subject: Optional[str]) -> bool:
    return bool(subject) and subject != ANONYMOUS_SUBJECT
