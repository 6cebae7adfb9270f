"""
Process resource sampling for health reporting.

A thin psutil wrapper that reports CPU, resident memory and thread count
of the running service. Used by /health and the CLI's --json summary.

Usage:
    from tts_relay.core.resources import get_sampler

    snapshot = get_sampler().sample()
    print(snapshot.to_dict())
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

import psutil


@dataclass
class ResourceSnapshot:
    """
    Point-in-time process resource usage.

    Attributes:
        cpu_percent: Process CPU utilization since the previous sample
            (can exceed 100 on multi-core hosts).
        ram_used_mb: Resident set size in megabytes.
        ram_available_mb: System-wide available memory in megabytes.
        threads: Number of OS threads in the process.
    """
    cpu_percent: float = 0.0
    ram_used_mb: float = 0.0
    ram_available_mb: float = 0.0
    threads: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cpu_percent": round(self.cpu_percent, 1),
            "ram_used_mb": round(self.ram_used_mb, 1),
            "ram_available_mb": round(self.ram_available_mb, 1),
            "threads": self.threads,
        }


class ResourceSampler:
    """Thread-safe sampler bound to the current process."""

    def __init__(self):
        self._process = psutil.Process()
        self._lock = threading.Lock()
        # Prime cpu_percent; the first call always returns 0.0
        self._process.cpu_percent(interval=None)

    def sample(self) -> ResourceSnapshot:
        with self._lock:
            try:
                cpu_percent = self._process.cpu_percent(interval=None)
                mem = self._process.memory_info()
                threads = self._process.num_threads()
                available = psutil.virtual_memory().available
            except psutil.Error:
                return ResourceSnapshot()

        return ResourceSnapshot(
            cpu_percent=cpu_percent,
            ram_used_mb=mem.rss / (1024 * 1024),
            ram_available_mb=available / (1024 * 1024),
            threads=threads,
        )


_sampler: Optional[ResourceSampler] = None
_sampler_lock = threading.Lock()


def get_sampler() -> ResourceSampler:
    """Get or create the global ResourceSampler."""
    global _sampler
    if _sampler is None:
        with _sampler_lock:
            if _sampler is None:
                _sampler = ResourceSampler()
    return _sampler


def reset_sampler() -> None:
    """Drop the global sampler (for testing)."""
    global _sampler
    with _sampler_lock:
        _sampler = None
