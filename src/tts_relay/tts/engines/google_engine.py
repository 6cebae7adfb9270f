"""
Google Cloud Text-to-Speech engine.

Credentials come from the environment:

    GOOGLE_CLOUD_PROJECT_ID               project billed for the calls
    GOOGLE_APPLICATION_CREDENTIALS_JSON   service-account key as JSON text

The key must contain type, project_id, private_key and client_email.
``load()`` builds the client and probes ``list_voices`` for the configured
language; an empty voice list counts as a failed initialization.

Output is MP3 at 24000 Hz with the request's speaking rate, pitch and
volume gain.

Installation:
    pip install google-cloud-texttospeech
"""
from __future__ import annotations

import json
import os
from typing import Any, Dict, Optional

from tts_relay.core.config import Defaults, Settings
from tts_relay.core.logging import debug, info, verbose
from tts_relay.tts.engine import (
    AudioConfig,
    BaseTTSEngine,
    ProviderError,
    ProviderErrorKind,
    SynthResult,
)
from tts_relay.utils.timeit import timeit

PROJECT_ENV = "GOOGLE_CLOUD_PROJECT_ID"
CREDENTIALS_ENV = "GOOGLE_APPLICATION_CREDENTIALS_JSON"
REQUIRED_CREDENTIAL_FIELDS = ("type", "project_id", "private_key", "client_email")


def parse_credentials(raw: str) -> Dict[str, Any]:
    """
    Parse and check a service-account key.

    Raises:
        ProviderError: (AUTHENTICATION) for malformed JSON or missing fields.
    """
    try:
        creds = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ProviderError(f"Invalid credentials JSON: {exc.msg}", ProviderErrorKind.AUTHENTICATION) from exc
    if not isinstance(creds, dict):
        raise ProviderError("Credentials JSON must be an object", ProviderErrorKind.AUTHENTICATION)
    for name in REQUIRED_CREDENTIAL_FIELDS:
        if not creds.get(name):
            raise ProviderError(
                f"Missing required field in credentials: {name}", ProviderErrorKind.AUTHENTICATION
            )
    return creds


def classify_provider_error(exc: BaseException) -> ProviderErrorKind:
    """
    Map a Google client exception to a ProviderErrorKind.

    Typed google.api_core exceptions are checked first; anything else is
    classified by keywords in its message.
    """
    from google.api_core import exceptions as gexc

    message = str(exc).lower()

    if isinstance(exc, gexc.ResourceExhausted):
        return ProviderErrorKind.QUOTA
    if isinstance(exc, gexc.Unauthenticated):
        return ProviderErrorKind.AUTHENTICATION
    if isinstance(exc, gexc.PermissionDenied):
        if "billing" in message:
            return ProviderErrorKind.BILLING
        return ProviderErrorKind.AUTHENTICATION

    if "quota" in message:
        return ProviderErrorKind.QUOTA
    if "billing" in message:
        return ProviderErrorKind.BILLING
    if "authentication" in message or "unauthenticated" in message:
        return ProviderErrorKind.AUTHENTICATION
    return ProviderErrorKind.OTHER


class GoogleTTSEngine(BaseTTSEngine):
    """Google Cloud Text-to-Speech over the official client library."""

    name = "google"
    audio_extension = "mp3"

    def __init__(self, settings: Settings):
        super().__init__(settings)
        provider = settings.raw.get("provider", {}) or {}
        self._language = settings.default_language
        self._sample_rate = int(provider.get("sample_rate", Defaults.PROVIDER_SAMPLE_RATE))
        self._client = None
        self._tts = None
        self.voice_count = 0

    def load(self) -> None:
        if self._loaded:
            return

        project_id = os.getenv(PROJECT_ENV)
        raw_creds = os.getenv(CREDENTIALS_ENV)
        if not project_id or not raw_creds:
            raise RuntimeError(f"Google TTS not configured: set {PROJECT_ENV} and {CREDENTIALS_ENV}")

        creds_info = parse_credentials(raw_creds)

        try:
            from google.cloud import texttospeech
            from google.oauth2 import service_account
        except ImportError as exc:
            raise RuntimeError(
                "Google TTS dependency missing. Install: pip install google-cloud-texttospeech"
            ) from exc

        with timeit("load_client") as t:
            try:
                credentials = service_account.Credentials.from_service_account_info(creds_info)
            except ValueError as exc:
                raise ProviderError(f"Invalid service account: {exc}", ProviderErrorKind.AUTHENTICATION) from exc

            client = texttospeech.TextToSpeechClient(
                credentials=credentials,
                client_options={"quota_project_id": project_id},
            )
            try:
                response = client.list_voices(language_code=self._language)
            except Exception as exc:
                raise ProviderError(f"Voice probe failed: {exc}", classify_provider_error(exc)) from exc

        voices = list(response.voices)
        if not voices:
            raise RuntimeError(f"Google TTS returned no voices for {self._language}")

        self._tts = texttospeech
        self._client = client
        self.voice_count = len(voices)
        self._loaded = True
        info(self.logger, "provider_ready", provider=self.name, voices=self.voice_count,
             project=project_id, seconds=round(t.seconds, 3))

    def synthesize(
        self,
        text: str,
        voice_id: str,
        language_code: str,
        audio_config: Optional[AudioConfig] = None,
    ) -> SynthResult:
        if not self._loaded:
            self.load()

        cfg = audio_config or AudioConfig()
        tts = self._tts
        timings: Dict[str, float] = {}

        with timeit("provider") as t:
            try:
                response = self._client.synthesize_speech(
                    input=tts.SynthesisInput(text=text),
                    voice=tts.VoiceSelectionParams(language_code=language_code, name=voice_id),
                    audio_config=tts.AudioConfig(
                        audio_encoding=tts.AudioEncoding.MP3,
                        speaking_rate=cfg.speaking_rate,
                        pitch=cfg.pitch,
                        volume_gain_db=cfg.volume_gain_db,
                        sample_rate_hertz=self._sample_rate,
                    ),
                )
            except Exception as exc:
                kind = classify_provider_error(exc)
                debug(self.logger, "provider_error", kind=kind.value, error=str(exc))
                raise ProviderError(str(exc), kind) from exc

        audio = bytes(response.audio_content)
        if not audio:
            raise ProviderError("Provider returned empty audio")

        timings["provider"] = t.seconds
        verbose(self.logger, "provider_synth", voice=voice_id, chars=len(text),
                bytes=len(audio), seconds=round(t.seconds, 3))
        return SynthResult(audio_bytes=audio, encoding="mp3", sample_rate=self._sample_rate, timings_s=timings)
