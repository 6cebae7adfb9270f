"""
Core infrastructure for tts-relay.

    - config.py: settings loading, defaults and validation
    - logging/: numeric-level structured logging
    - metrics.py: Prometheus counters for requests, cache and cost
    - resources.py: process CPU/RAM sampling for /health
"""
