"""
tts-relay: caching and cost-accounting relay for cloud text-to-speech.

A small FastAPI service that sits in front of Google Cloud Text-to-Speech
and makes repeated synthesis requests cheap:

    - Content-addressed file cache (identical requests are served from disk)
    - Per-tier cost model (Standard vs Neural2 voices)
    - Abstract voice tokens ("female", "neural-male", ...)
    - Multi-speaker "conversation" assembly with pauses between speakers
    - In-memory usage accounting per subject and time window
    - Local tone fallback so the pipeline always returns playable audio

Example Usage:
    >>> from tts_relay.core.config import Settings
    >>> from tts_relay.services import TTSService, SynthesizeRequest
    >>>
    >>> service = TTSService(Settings(raw={"provider": {"engine": "tone"}}))
    >>> result = service.synthesize(SynthesizeRequest(text="Hello world"))
    >>> result.audio_url
    'http://localhost:5000/tts-cache/tts-female-...wav'
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
