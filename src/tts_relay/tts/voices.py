"""
Voice token resolution.

Callers address voices with short tokens (``female``, ``neural-male``);
the provider wants full voice names (``en-US-Standard-C``). The resolver
maps one to the other, lets legacy provider names through unchanged, and
maps back to a token for cache filename tags.

Resolution never fails: anything unrecognized resolves to the default
voice.

Example:
    >>> resolve_voice("neural-male")
    'en-US-Neural2-D'
    >>> resolve_voice("xyz")
    'en-US-Standard-C'
    >>> simplify_voice("en-US-Neural2-D")
    'neural-male'
"""
from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Optional

DEFAULT_VOICE = "female"
VOICE_SAMPLE_RATE = 24000

VOICE_MAP: Mapping[str, str] = {
    "female": "en-US-Standard-C",
    "male": "en-US-Standard-B",
    "neural-female": "en-US-Neural2-F",
    "neural-male": "en-US-Neural2-D",
}

LEGACY_VOICE_RE = re.compile(r"^en-US-(Standard|Wavenet|Neural2)-(A|B|C|D|F)$")


@dataclass(frozen=True)
class VoiceInfo:
    """One entry of the supported-voice catalog."""
    value: str
    label: str
    gender: str
    description: str
    google_voice: str
    sample_rate: int = VOICE_SAMPLE_RATE

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


VOICE_CATALOG: tuple[VoiceInfo, ...] = (
    VoiceInfo(
        value="female",
        label="Female (Standard)",
        gender="FEMALE",
        description="English female voice (Standard quality)",
        google_voice=VOICE_MAP["female"],
    ),
    VoiceInfo(
        value="male",
        label="Male (Standard)",
        gender="MALE",
        description="English male voice (Standard quality)",
        google_voice=VOICE_MAP["male"],
    ),
    VoiceInfo(
        value="neural-female",
        label="Female (Neural2)",
        gender="FEMALE",
        description="English female voice (Neural2 quality)",
        google_voice=VOICE_MAP["neural-female"],
    ),
    VoiceInfo(
        value="neural-male",
        label="Male (Neural2)",
        gender="MALE",
        description="English male voice (Neural2 quality)",
        google_voice=VOICE_MAP["neural-male"],
    ),
)


class VoiceResolver:
    """
    Maps voice tokens to provider voice ids and back.

    Args:
        default_token: Token used for unknown or empty input. Must be a
            key of VOICE_MAP; anything else falls back to "female".
    """

    def __init__(self, default_token: str = DEFAULT_VOICE):
        if default_token not in VOICE_MAP:
            default_token = DEFAULT_VOICE
        self._default_token = default_token
        self._reverse = {voice_id: token for token, voice_id in VOICE_MAP.items()}

    @property
    def default_token(self) -> str:
        return self._default_token

    def resolve(self, token: Optional[str]) -> str:
        """Provider voice id for a token or legacy provider name."""
        if token:
            if token in VOICE_MAP:
                return VOICE_MAP[token]
            if LEGACY_VOICE_RE.match(token):
                return token
        return VOICE_MAP[self._default_token]

    def simplify(self, voice: Optional[str]) -> str:
        """
        Token for a provider voice id, used as the cache filename tag.

        Tokens map to themselves; provider ids outside VOICE_MAP (legacy
        Wavenet names, unknown strings) collapse to "female".
        """
        if voice in VOICE_MAP:
            return voice
        return self._reverse.get(voice or "", DEFAULT_VOICE)

    @staticmethod
    def is_known(token: Optional[str]) -> bool:
        """True for canonical tokens and legacy provider names."""
        if not token:
            return False
        return token in VOICE_MAP or bool(LEGACY_VOICE_RE.match(token))


_resolver = VoiceResolver()


def resolve_voice(token: Optional[str]) -> str:
    return _resolver.resolve(token)


def simplify_voice(voice: Optional[str]) -> str:
    return _resolver.simplify(voice)


def is_known_voice(token: Optional[str]) -> bool:
    return VoiceResolver.is_known(token)


def voice_catalog() -> List[Dict[str, Any]]:
    """Catalog entries as plain dictionaries."""
    return [v.to_dict() for v in VOICE_CATALOG]
