"""
Content-addressed file cache for synthesized audio.

Every synthesis request is reduced to a fingerprint (SHA-256 over its
semantic fields). Audio is written into a flat directory with filenames
that carry a 12-character fragment of that fingerprint:

    {base_dir}/
        tts-female-3f2a9c01d4e5-1741000000000.mp3
        tts-neural-male-77b0e1aa93c2-1741000000123.wav
        conversation-0c9d1e2f3a4b-1741000000456.wav

The files are served as static content under ``/tts-cache`` so the
fragment-plus-tag lookup has to stay compatible with this grammar.

Lookup goes through an in-memory index {(hash12, tag) -> filename} built
by scanning the directory at construction and after every sweep. An entry
whose file has disappeared is dropped and reported as a miss.

Eviction is age based: a sweep deletes every file whose mtime is older
than the retention window. Sweeps run on a fixed schedule
(EvictionScheduler) and opportunistically after writes, at most once per
``write_sweep_interval_seconds`` (maybe_evict).

Usage:
    store = CacheStore("./public/tts-cache", base_url="http://localhost:5000")
    fp = make_fingerprint("Hello world", "en-US-Standard-C", "en-US", config)

    cached = store.lookup(fp, tag="female")
    if cached is None:
        cached = store.store(fp, audio_bytes, tag="female", ext="mp3")
    print(cached.url)
"""
from __future__ import annotations

import hashlib
import json
import re
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple
from uuid import uuid4

from tts_relay.core.config import Defaults
from tts_relay.core.logging import debug, fail, get_logger, info, verbose, warn
from tts_relay.core.metrics import metrics
from tts_relay.utils.timeit import timeit

_LOG = get_logger("tts-relay.storage")

HASH_FRAGMENT_LEN = 12
CONVERSATION_TAG = "conversation"
URL_PREFIX = "/tts-cache"

_FILENAME_RE = re.compile(
    r"^(?:(?P<conv>conversation)|tts-(?P<tag>.+))"
    r"-(?P<hash>[0-9a-f]{12})-(?P<ts>\d+)\.(?P<ext>[A-Za-z0-9]+)$"
)


def hash_bytes(data: bytes) -> str:
    """SHA-256 of raw bytes as 64 lowercase hex characters."""
    return hashlib.sha256(data).hexdigest()


def hash_dict(data: Mapping[str, Any]) -> str:
    """
    SHA-256 of a JSON-serializable mapping.

    Serialized with sorted keys and no whitespace so that key order never
    changes the hash.
    """
    payload = json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=True)
    return hash_bytes(payload.encode("utf-8"))


def _audio_params(audio_config: Any) -> Dict[str, float]:
    if isinstance(audio_config, Mapping):
        raw = audio_config
    else:
        raw = audio_config.to_dict()
    # Floats so that 1 and 1.0 hash alike
    return {
        "speaking_rate": float(raw.get("speaking_rate", 1.0)),
        "pitch": float(raw.get("pitch", 0.0)),
        "volume_gain_db": float(raw.get("volume_gain_db", 0.0)),
    }


def make_fingerprint(text: str, voice_id: str, language_code: str, audio_config: Any) -> str:
    """
    Fingerprint of a single-segment request.

    Args:
        text: Normalized text.
        voice_id: Resolved provider voice id.
        language_code: Requested language code.
        audio_config: AudioConfig or a mapping with speaking_rate, pitch
            and volume_gain_db.

    Returns:
        64-character hex digest. Any change to any field changes it.
    """
    return hash_dict({
        "text": text,
        "voice": voice_id,
        "language": language_code,
        "audio_config": _audio_params(audio_config),
    })


def make_conversation_fingerprint(segments: Iterable[Tuple[str, str]], pause_seconds: float) -> str:
    """
    Fingerprint of an ordered conversation.

    Args:
        segments: (text, resolved voice id) pairs in playback order.
        pause_seconds: Pause inserted between segments.
    """
    return hash_dict({
        "segments": [{"text": text, "voice": voice_id} for text, voice_id in segments],
        "pause_seconds": float(pause_seconds),
    })


def make_filename(fingerprint: str, tag: str, ext: str, timestamp_ms: Optional[int] = None) -> str:
    """Cache filename for a fingerprint, following the served grammar."""
    ts = int(time.time() * 1000) if timestamp_ms is None else timestamp_ms
    fragment = fingerprint[:HASH_FRAGMENT_LEN]
    if tag == CONVERSATION_TAG:
        return f"{CONVERSATION_TAG}-{fragment}-{ts}.{ext}"
    return f"tts-{tag}-{fragment}-{ts}.{ext}"


def parse_filename(filename: str) -> Optional[Tuple[str, str, int]]:
    """
    Split a cache filename into (hash12, tag, timestamp_ms).

    Returns None for files that do not follow the grammar (temp files,
    stray uploads); those are never served as hits.
    """
    m = _FILENAME_RE.match(filename)
    if not m:
        return None
    tag = CONVERSATION_TAG if m.group("conv") else m.group("tag")
    return m.group("hash"), tag, int(m.group("ts"))


@dataclass(frozen=True)
class CachedAudio:
    """A cache entry on disk and the URL it is served under."""
    filename: str
    path: Path
    url: str
    size_bytes: int


class CacheStore:
    """
    Flat-directory audio cache with a fingerprint index.

    Thread-safe: the index is guarded by a lock, writes are atomic
    (temp file + rename), and sweeps never run concurrently.

    Args:
        base_dir: Cache directory, created if missing.
        base_url: Public prefix for artifact URLs (no trailing slash).
        ttl_seconds: Retention window for eviction.
        max_size_mb: Size ceiling reported by get_storage_info().
        write_sweep_interval_seconds: Minimum gap between sweeps
            triggered by maybe_evict().

    Raises:
        OSError: If the directory cannot be created.
    """

    def __init__(
        self,
        base_dir: str,
        base_url: str = Defaults.SERVER_BASE_URL,
        ttl_seconds: int = Defaults.STORAGE_TTL_SECONDS,
        max_size_mb: int = Defaults.STORAGE_MAX_SIZE_MB,
        write_sweep_interval_seconds: int = Defaults.STORAGE_WRITE_SWEEP_INTERVAL_SECONDS,
    ):
        self._base_dir = Path(base_dir)
        self._base_url = base_url.rstrip("/")
        self._ttl_seconds = ttl_seconds
        self._max_size_mb = max_size_mb
        self._write_sweep_interval = write_sweep_interval_seconds

        self._index: Dict[Tuple[str, str], str] = {}
        self._index_lock = threading.Lock()

        self._sweep_lock = threading.Lock()
        self._sweep_running = False
        self._last_sweep = 0.0

        self._stats_lock = threading.Lock()
        self._total_removed = 0
        self._total_bytes_freed = 0

        self.ensure_dir()
        self.rebuild_index()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def ensure_dir(self) -> None:
        self._base_dir.mkdir(parents=True, exist_ok=True)

    def url_for(self, filename: str) -> str:
        return f"{self._base_url}{URL_PREFIX}/{filename}"

    def _entry(self, filename: str, size: int) -> CachedAudio:
        return CachedAudio(
            filename=filename,
            path=self._base_dir / filename,
            url=self.url_for(filename),
            size_bytes=size,
        )

    # ─────────────────────────────────────────────────────────────────────
    # Index
    # ─────────────────────────────────────────────────────────────────────

    def rebuild_index(self) -> int:
        """
        Rescan the directory and replace the index.

        When several files share a (hash12, tag), the newest timestamp
        wins. Returns the number of indexed entries.
        """
        newest: Dict[Tuple[str, str], Tuple[int, str]] = {}
        if self._base_dir.exists():
            for path in self._base_dir.iterdir():
                parsed = parse_filename(path.name)
                if parsed is None or not path.is_file():
                    continue
                fragment, tag, ts = parsed
                current = newest.get((fragment, tag))
                if current is None or ts > current[0]:
                    newest[(fragment, tag)] = (ts, path.name)

        with self._index_lock:
            # Keep entries written while the scan was running
            for key, name in self._index.items():
                parsed = parse_filename(name)
                current = newest.get(key)
                if parsed is None or (current is not None and current[0] >= parsed[2]):
                    continue
                if (self._base_dir / name).exists():
                    newest[key] = (parsed[2], name)
            self._index = {key: name for key, (_, name) in newest.items()}
            count = len(self._index)

        debug(_LOG, "index_rebuilt", entries=count)
        return count

    def lookup(self, fingerprint: str, tag: str) -> Optional[CachedAudio]:
        """
        Find the cached artifact for a fingerprint and tag.

        Args:
            fingerprint: Request fingerprint (only the first 12 chars are
                significant).
            tag: Voice tag, or CONVERSATION_TAG.

        Returns:
            CachedAudio on hit, None on miss.
        """
        key = (fingerprint[:HASH_FRAGMENT_LEN], tag)
        with timeit("cache_lookup") as t:
            with self._index_lock:
                filename = self._index.get(key)

            entry = None
            if filename is not None:
                try:
                    size = (self._base_dir / filename).stat().st_size
                    entry = self._entry(filename, size)
                except FileNotFoundError:
                    # Swept (or deleted by hand) since indexing
                    with self._index_lock:
                        if self._index.get(key) == filename:
                            del self._index[key]
                    verbose(_LOG, "stale_index_entry", file=filename)

        debug(_LOG, "cache_lookup", key=key[0], tag=tag, hit=entry is not None,
              seconds=round(t.seconds, 4))
        return entry

    # ─────────────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────────────

    def store(
        self,
        fingerprint: str,
        data: bytes,
        tag: str,
        ext: str = "mp3",
        timestamp_ms: Optional[int] = None,
    ) -> CachedAudio:
        """
        Persist audio and index it.

        Writes to a hidden temp file and renames it into place, so a
        crash never leaves a truncated file under a servable name.

        Raises:
            OSError: If the directory or file cannot be written.
        """
        filename = make_filename(fingerprint, tag, ext, timestamp_ms)
        path = self._base_dir / filename
        # Unique per writer; identical misses can land on the same filename
        tmp = self._base_dir / f".{filename}.{uuid4().hex[:8]}.tmp"

        self.ensure_dir()
        with timeit("cache_write") as t:
            try:
                tmp.write_bytes(data)
                tmp.replace(path)
            except OSError:
                tmp.unlink(missing_ok=True)
                raise

        with self._index_lock:
            self._index[(fingerprint[:HASH_FRAGMENT_LEN], tag)] = filename

        verbose(_LOG, "cache_saved", file=filename, bytes=len(data), seconds=round(t.seconds, 4))
        return self._entry(filename, len(data))

    # ─────────────────────────────────────────────────────────────────────
    # Eviction
    # ─────────────────────────────────────────────────────────────────────

    def evict(self, now: Optional[float] = None) -> Dict[str, int]:
        """
        Delete every cache file older than the retention window (blocking).

        Per-file errors are logged and skipped. The index is rebuilt
        afterwards.

        Args:
            now: Reference time (epoch seconds), defaults to time.time().

        Returns:
            Dict with 'files_removed', 'bytes_freed' and 'errors'.
        """
        with self._sweep_lock:
            if self._sweep_running:
                return {"files_removed": 0, "bytes_freed": 0, "errors": 0}
            self._sweep_running = True
        try:
            return self._do_evict(now)
        finally:
            with self._sweep_lock:
                self._sweep_running = False
                self._last_sweep = time.time()

    def _do_evict(self, now: Optional[float]) -> Dict[str, int]:
        cutoff = (time.time() if now is None else now) - self._ttl_seconds
        files_removed = 0
        bytes_freed = 0
        errors = 0

        try:
            paths = list(self._base_dir.iterdir()) if self._base_dir.exists() else []
        except OSError as e:
            warn(_LOG, "eviction_scan_error", error=str(e))
            paths = []

        for path in paths:
            try:
                if not path.is_file():
                    continue
                st = path.stat()
                if st.st_mtime < cutoff:
                    path.unlink()
                    files_removed += 1
                    bytes_freed += st.st_size
            except OSError as e:
                errors += 1
                verbose(_LOG, "eviction_file_error", file=path.name, error=str(e))

        try:
            self.rebuild_index()
        except OSError as e:
            errors += 1
            warn(_LOG, "eviction_reindex_error", error=str(e))

        with self._stats_lock:
            self._total_removed += files_removed
            self._total_bytes_freed += bytes_freed
        metrics.record_eviction(files_removed, bytes_freed)

        if files_removed > 0 or errors > 0:
            info(_LOG, "cache_evicted", files_removed=files_removed,
                 bytes_freed=bytes_freed, errors=errors)
        else:
            verbose(_LOG, "cache_sweep_clean")

        return {"files_removed": files_removed, "bytes_freed": bytes_freed, "errors": errors}

    def maybe_evict(self) -> bool:
        """
        Start a background sweep if the post-write interval has elapsed.

        Non-blocking. Returns True when a sweep thread was started.
        """
        now = time.time()
        with self._sweep_lock:
            if self._sweep_running or now - self._last_sweep < self._write_sweep_interval:
                return False
            # Claim the slot now so concurrent writers don't all start sweeps
            self._last_sweep = now

        threading.Thread(target=self.evict, daemon=True, name="cache-evict").start()
        return True

    # ─────────────────────────────────────────────────────────────────────
    # Reporting
    # ─────────────────────────────────────────────────────────────────────

    def get_stats(self) -> Dict[str, int]:
        with self._stats_lock:
            removed, freed = self._total_removed, self._total_bytes_freed
        with self._index_lock:
            indexed = len(self._index)
        return {
            "indexed_entries": indexed,
            "total_files_evicted": removed,
            "total_bytes_freed": freed,
        }

    def get_storage_info(self) -> Dict[str, Any]:
        """
        Current disk usage of the cache directory.

        Returns:
            Dict with file_count, total_bytes, oldest_file_age (seconds),
            max_size_mb and over_limit.
        """
        file_count = 0
        total_bytes = 0
        now = time.time()
        oldest_mtime = now

        try:
            for path in self._base_dir.iterdir():
                if parse_filename(path.name) is None:
                    continue
                try:
                    st = path.stat()
                except OSError:
                    continue
                file_count += 1
                total_bytes += st.st_size
                oldest_mtime = min(oldest_mtime, st.st_mtime)
        except OSError as e:
            warn(_LOG, "storage_info_error", error=str(e))

        return {
            "file_count": file_count,
            "total_bytes": total_bytes,
            "oldest_file_age": int(now - oldest_mtime) if file_count else 0,
            "ttl_seconds": self._ttl_seconds,
            "max_size_mb": self._max_size_mb,
            "over_limit": total_bytes > self._max_size_mb * 1024 * 1024,
        }


class EvictionScheduler:
    """
    Periodic cache sweeps on a daemon thread.

    ``start()`` sweeps once synchronously, then every ``interval_seconds``
    until ``stop()``.
    """

    def __init__(self, store: CacheStore, interval_seconds: int = Defaults.STORAGE_SWEEP_INTERVAL_SECONDS):
        self._store = store
        self._interval = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, sweep_now: bool = True) -> None:
        if self.running:
            return
        if sweep_now:
            self._sweep()
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="cache-eviction-scheduler")
        self._thread.start()
        info(_LOG, "eviction_scheduler_started", interval_seconds=self._interval)

    def _sweep(self) -> None:
        # One failed sweep must not stop startup or end the schedule
        try:
            self._store.evict()
        except Exception as e:
            fail(_LOG, "eviction_sweep_failed", error=str(e), error_type=type(e).__name__)

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            self._sweep()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
