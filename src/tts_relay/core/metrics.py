"""
Prometheus metrics for tts-relay.

All metrics live on a private CollectorRegistry so that tests can build
fresh TTSMetrics instances without "duplicated timeseries" errors.

Metrics Exposed:
    tts_relay_requests_total              - Requests by kind/provider/status
    tts_relay_request_duration_seconds    - Latency histogram by kind
    tts_relay_cache_lookups_total         - Cache hits/misses by kind
    tts_relay_characters_total            - Billed characters by tier
    tts_relay_cost_usd_total              - Estimated spend by tier
    tts_relay_fallbacks_total             - Tone fallbacks by reason
    tts_relay_evicted_files_total         - Files removed by sweeps
    tts_relay_evicted_bytes_total         - Bytes freed by sweeps
    tts_relay_provider_available          - 1 when the provider initialized

Usage:
    from tts_relay.core.metrics import metrics

    metrics.record_cache("hit", kind="single")
    metrics.record_request("single", provider="google", status="success", duration=0.4)
    content, content_type = metrics.get_metrics_response()
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


class TTSMetrics:
    """
    Prometheus collectors for the synthesis pipeline.

    The module-level ``metrics`` instance is what the service records to;
    all collector operations are thread-safe.
    """

    def __init__(self):
        self._registry = CollectorRegistry()

        self._requests_total = Counter(
            "tts_relay_requests_total",
            "Synthesis requests",
            ["kind", "provider", "status"],
            registry=self._registry,
        )
        self._request_duration = Histogram(
            "tts_relay_request_duration_seconds",
            "Synthesis request duration in seconds",
            ["kind", "cache"],
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=self._registry,
        )
        self._cache_lookups = Counter(
            "tts_relay_cache_lookups_total",
            "Cache lookups by result",
            ["result", "kind"],
            registry=self._registry,
        )
        self._characters = Counter(
            "tts_relay_characters_total",
            "Characters billed to the provider",
            ["tier"],
            registry=self._registry,
        )
        self._cost = Counter(
            "tts_relay_cost_usd_total",
            "Estimated provider cost in USD",
            ["tier"],
            registry=self._registry,
        )
        self._fallbacks = Counter(
            "tts_relay_fallbacks_total",
            "Synthesis served by the local tone generator",
            ["reason"],
            registry=self._registry,
        )
        self._evicted_files = Counter(
            "tts_relay_evicted_files_total",
            "Cache files removed by eviction sweeps",
            registry=self._registry,
        )
        self._evicted_bytes = Counter(
            "tts_relay_evicted_bytes_total",
            "Bytes freed by eviction sweeps",
            registry=self._registry,
        )
        self._provider_available = Gauge(
            "tts_relay_provider_available",
            "Whether the speech provider is initialized (1) or not (0)",
            ["provider"],
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def record_request(self, kind: str, provider: str, status: str, duration: float, cache: str = "miss") -> None:
        """
        Record a finished request.

        Args:
            kind: "single" or "conversation".
            provider: Engine that served the miss ("google", "tone").
            status: "success" or "error".
            duration: Wall time in seconds (ignored when negative).
            cache: "hit" or "miss".
        """
        self._requests_total.labels(kind=kind, provider=provider, status=status).inc()
        if duration >= 0:
            self._request_duration.labels(kind=kind, cache=cache).observe(duration)

    def record_cache(self, result: str, kind: str = "single") -> None:
        self._cache_lookups.labels(result=result, kind=kind).inc()

    def record_usage(self, characters: int, cost_usd: float, tier: str) -> None:
        """Account billed characters and estimated cost for a tier."""
        if characters > 0:
            self._characters.labels(tier=tier).inc(characters)
        if cost_usd > 0:
            self._cost.labels(tier=tier).inc(cost_usd)

    def record_fallback(self, reason: str) -> None:
        self._fallbacks.labels(reason=reason).inc()

    def record_eviction(self, files_removed: int, bytes_freed: int) -> None:
        if files_removed > 0:
            self._evicted_files.inc(files_removed)
        if bytes_freed > 0:
            self._evicted_bytes.inc(bytes_freed)

    def set_provider_available(self, provider: str, available: bool) -> None:
        self._provider_available.labels(provider=provider).set(1 if available else 0)

    def get_metrics_response(self) -> tuple[bytes, str]:
        """Prometheus exposition payload and its content type."""
        return generate_latest(self._registry), CONTENT_TYPE_LATEST


metrics = TTSMetrics()
