"""
Local audio generation.

The relay never decodes provider audio; it only produces WAV bytes itself
in two places:

    - tone_wav: the deterministic fallback used when the speech provider
      is unavailable (440 Hz sine, 22050 Hz mono, PCM 16-bit)
    - silence_wav: the pause inserted between conversation segments
      (24000 Hz mono, PCM 16-bit zeros)

Both are encoded with soundfile into an in-memory buffer.

Example:
    >>> wav = tone_wav(seconds=2)
    >>> samples, sr = read_wav(wav)
    >>> sr, len(samples)
    (22050, 44100)
"""
from __future__ import annotations

import io

import numpy as np
import soundfile as sf

from tts_relay.core.logging import debug, get_logger

_LOG = get_logger("tts-relay.audio")

TONE_SAMPLE_RATE = 22050
TONE_FREQUENCY_HZ = 440.0
TONE_AMPLITUDE = 0.3
SILENCE_SAMPLE_RATE = 24000
MIN_SILENCE_SECONDS = 0.1


def pcm16_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """
    Encode float samples in [-1, 1] as a mono PCM 16-bit WAV.

    Multi-dimensional input is flattened to mono.
    """
    wav = np.asarray(samples, dtype=np.float32)
    if wav.ndim > 1:
        wav = wav.reshape(-1)

    buf = io.BytesIO()
    sf.write(buf, wav, sample_rate, format="WAV", subtype="PCM_16")
    return buf.getvalue()


def tone_wav(
    seconds: float,
    sample_rate: int = TONE_SAMPLE_RATE,
    frequency: float = TONE_FREQUENCY_HZ,
    amplitude: float = TONE_AMPLITUDE,
) -> bytes:
    """
    Sine tone WAV. Identical arguments always give identical bytes.

    Args:
        seconds: Tone length.
        sample_rate: Output sample rate.
        frequency: Tone frequency in Hz.
        amplitude: Peak amplitude in [0, 1].
    """
    n = int(round(sample_rate * seconds))
    t = np.arange(n, dtype=np.float64) / sample_rate
    samples = amplitude * np.sin(2.0 * np.pi * frequency * t)
    out = pcm16_wav(samples, sample_rate)
    debug(_LOG, "tone_generated", seconds=seconds, sr=sample_rate, bytes=len(out))
    return out


def silence_wav(seconds: float, sample_rate: int = SILENCE_SAMPLE_RATE) -> bytes:
    """Silent WAV of ``max(0.1, seconds)`` seconds."""
    duration = max(MIN_SILENCE_SECONDS, seconds)
    n = int(round(sample_rate * duration))
    return pcm16_wav(np.zeros(n, dtype=np.float32), sample_rate)


def read_wav(wav_bytes: bytes) -> tuple[np.ndarray, int]:
    """
    Decode WAV bytes to a float32 mono array and its sample rate.

    Stereo input is averaged to mono.
    """
    wav, sr = sf.read(io.BytesIO(wav_bytes), dtype="float32")
    if wav.ndim > 1:
        wav = wav.mean(axis=1)
    return np.asarray(wav, dtype=np.float32), int(sr)
