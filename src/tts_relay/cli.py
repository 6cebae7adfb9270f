"""
Command-Line Interface for tts-relay.

Runs the same cached synthesis pipeline as the HTTP service without a
server, and exposes a few maintenance operations.

Usage Examples:
    # Single text synthesis (artifact lands in the cache dir, copied to --out)
    tts-relay --text "Hello world" --out hello.mp3

    # Positional text, premium voice, slower speech
    tts-relay "Hello world" --voice neural-female --rate 0.8

    # Batch processing from file (one text per line)
    tts-relay --file inputs.txt --json

    # Dry-run: fingerprint, voice, tier, cost and chunking, no provider call
    tts-relay --text "Hello world" --dry-run --json

    # Pricing table and a one-off eviction sweep
    tts-relay --pricing
    tts-relay --sweep

Environment Variables:
    TTS_RELAY_SETTINGS: Settings file (default config/settings.yaml)
    TTS_RELAY_PROVIDER: Provider engine override (google, tone)
    TTS_RELAY_CACHE_DIR: Cache directory override
"""

from __future__ import annotations

import argparse
import json
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from tts_relay.core.config import Settings, load_settings, settings_path
from tts_relay.core.logging import configure_logging, get_logger, info, set_request_id
from tts_relay.services.validators import (
    ValidationError,
    validate_audio_config,
    validate_language,
    validate_text,
    validate_voice,
)
from tts_relay.tts.chunker import needs_chunking, split_for_provider
from tts_relay.tts.engine import AudioConfig
from tts_relay.tts.pricing import CostModel
from tts_relay.tts.storage import CacheStore, make_fingerprint
from tts_relay.tts.voices import VoiceResolver
from tts_relay.utils.text import normalize_text


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="tts-relay CLI (cached synthesis without a server)")

    parser.add_argument("text_pos", nargs="?", help="Text to synthesize (positional)")
    parser.add_argument("--text", help="Text to synthesize")
    parser.add_argument("--file", help="Batch input file (1 line = 1 item)")
    parser.add_argument("--out", help="Copy the artifact here (file, or dir in batch mode)")

    parser.add_argument("--voice", help="Voice token or legacy provider voice name")
    parser.add_argument("--language", help="Language code (en-US, en)")
    parser.add_argument("--rate", type=float, default=1.0, help="Speaking rate (0.25-4.0)")
    parser.add_argument("--pitch", type=float, default=0.0, help="Pitch (-20 to 20)")
    parser.add_argument("--gain", type=float, default=0.0, help="Volume gain in dB (-96 to 16)")

    parser.add_argument("--dry-run", action="store_true",
                        help="Resolve and price without synthesis")
    parser.add_argument("--json", action="store_true", help="Print JSON summary")
    parser.add_argument("--pricing", action="store_true", help="Print pricing information")
    parser.add_argument("--sweep", action="store_true", help="Run one cache eviction sweep")

    return parser.parse_args(argv)


def _load_texts(args: argparse.Namespace) -> List[str]:
    text = args.text or args.text_pos

    if args.file:
        if text:
            raise SystemExit("Use --file without --text or positional text.")
        lines = Path(args.file).read_text(encoding="utf-8").splitlines()
        items = [line.strip() for line in lines if line.strip()]
        if not items:
            raise SystemExit("Input file is empty.")
        return items

    if not text:
        raise SystemExit("Provide --text or a positional text.")
    return [text]


def _output_path(args: argparse.Namespace, index: int, filename: str) -> Optional[Path]:
    """Where to copy an artifact, keeping the artifact's extension."""
    if not args.out:
        return None
    ext = Path(filename).suffix
    if args.file:
        out_dir = Path(args.out)
        out_dir.mkdir(parents=True, exist_ok=True)
        return out_dir / f"item_{index + 1:03d}{ext}"
    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    return out_path


def _summary_for_text(
    text: str,
    voice: str,
    language: str,
    audio_config: AudioConfig,
    settings: Settings,
) -> Dict[str, Any]:
    """What a synthesis would do for ``text``, without calling the provider."""
    cfg = settings.get_service_config()
    norm, _ = normalize_text(text)
    voice_id = VoiceResolver(settings.default_voice).resolve(voice)
    quote = CostModel.from_config(cfg.pricing).quote(len(norm), voice_id)

    if needs_chunking(norm, cfg.provider.max_request_bytes):
        chunks = len(split_for_provider(norm, cfg.provider.chunk_bytes).chunks)
    else:
        chunks = 1

    return {
        "text_len": len(text),
        "characters": len(norm),
        "fingerprint": make_fingerprint(norm, voice_id, language, audio_config),
        "voice_id": voice_id,
        "tier": quote.tier.value,
        "cost_usd": quote.cost_usd,
        "quote_usd": quote.rounded_usd,
        "chunks": chunks,
    }


def _emit(payload: Dict[str, Any], as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        print(payload)


def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point.

    Returns:
        Exit code: 0 on success, 2 on invalid input, 1 on synthesis failure.
    """
    args = _parse_args(argv)

    configure_logging()
    log = get_logger("tts-relay.cli")
    set_request_id(str(uuid4())[:12])

    settings = load_settings(settings_path(), missing_ok=True)
    cfg = settings.get_service_config()

    if args.pricing:
        _emit({"ok": True, "pricing": CostModel.from_config(cfg.pricing).pricing_info()}, args.json)
        return 0

    if args.sweep:
        store = CacheStore(
            base_dir=cfg.storage.base_dir,
            base_url=cfg.server.base_url,
            ttl_seconds=cfg.storage.ttl_seconds,
            max_size_mb=cfg.storage.max_size_mb,
        )
        result = store.evict()
        _emit({"ok": True, "sweep": result, "storage": store.get_storage_info()}, args.json)
        return 0

    texts = _load_texts(args)
    try:
        texts = [validate_text(t) for t in texts]
        voice = validate_voice(args.voice or settings.default_voice)
        language = validate_language(args.language or settings.default_language)
        rate, pitch, gain = validate_audio_config(args.rate, args.pitch, args.gain)
    except ValidationError as e:
        print(f"{e.code}: {e.message}")
        return 2
    audio_config = AudioConfig(speaking_rate=rate, pitch=pitch, volume_gain_db=gain)

    if args.dry_run:
        summaries = [_summary_for_text(t, voice, language, audio_config, settings) for t in texts]
        payload = {"ok": True, "dry_run": True, "items": summaries}
        if not args.json:
            info(log, "dry_run", items=len(texts), voice=voice, language=language)
        _emit(payload, args.json)
        print("DRY_RUN_OK")
        return 0

    from tts_relay.services.tts_service import SynthesizeRequest, TTSError, TTSService

    service = TTSService(settings)
    service.initialize()

    results = []
    for i, text in enumerate(texts):
        info(log, "synth_start", chars=len(text), voice=voice)
        try:
            res = service.synthesize(SynthesizeRequest(
                text=text,
                voice=voice,
                language_code=language,
                audio_config=audio_config,
            ))
        except TTSError as e:
            print(f"{e.code}: {e.message}")
            return 1

        item = res.to_dict()
        item["file"] = str(service.store.base_dir / res.filename)
        item["provider"] = res.provider
        out_path = _output_path(args, i, res.filename)
        if out_path is not None:
            shutil.copyfile(service.store.base_dir / res.filename, out_path)
            item["out"] = str(out_path)
        results.append(item)

    _emit({"ok": True, "dry_run": False, "items": results}, args.json)
    print("CLI_OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
