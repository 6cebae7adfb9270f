"""
Configuration Management for tts-relay.

Configuration is read from a YAML file into an immutable ``Settings``
container, then turned into typed, validated section objects by
``TTSServiceConfig.from_settings()``.

Priority (highest first):
    1. Environment variables (TTS_RELAY_BASE_URL, TTS_RELAY_PROVIDER, ...)
    2. YAML config file (config/settings.yaml, or $TTS_RELAY_SETTINGS)
    3. Defaults class values

Example settings.yaml:
    provider:
      engine: google
      language: en-US

    storage:
      base_dir: ./public/tts-cache
      ttl_seconds: 604800

    pricing:
      standard_per_char_usd: 0.000004
      premium_per_char_usd: 0.000016

    logging:
      level: 2  # NORMAL
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict
import os
import yaml


DEFAULT_SETTINGS_PATH = "config/settings.yaml"


class ConfigValidationError(Exception):
    """Raised when a configuration value is out of bounds or malformed."""
    pass


class Defaults:
    """
    Centralized default configuration values.

    Every tunable used by the service has its default here so that the
    YAML file can stay short and tests can reason about one source.
    """

    # ─────────────────────────────────────────────────────────────────────────
    # Server
    # ─────────────────────────────────────────────────────────────────────────
    SERVER_BASE_URL = "http://localhost:5000"   # Prefix of artifact URIs

    # ─────────────────────────────────────────────────────────────────────────
    # Storage (file cache)
    # ─────────────────────────────────────────────────────────────────────────
    STORAGE_BASE_DIR = "./public/tts-cache"
    STORAGE_TTL_SECONDS = 86400 * 7             # 7 days retention
    STORAGE_MAX_SIZE_MB = 1000                  # Reported, not enforced
    STORAGE_SWEEP_INTERVAL_SECONDS = 6 * 3600   # Scheduled sweep
    STORAGE_WRITE_SWEEP_INTERVAL_SECONDS = 3600 # Min gap for post-write sweeps

    # ─────────────────────────────────────────────────────────────────────────
    # Provider
    # ─────────────────────────────────────────────────────────────────────────
    PROVIDER_ENGINE = "google"                  # google | tone
    PROVIDER_LANGUAGE = "en-US"
    PROVIDER_SAMPLE_RATE = 24000
    PROVIDER_MAX_REQUEST_BYTES = 5000           # Per-call input limit
    PROVIDER_CHUNK_BYTES = 4500                 # Chunk size under the limit

    # ─────────────────────────────────────────────────────────────────────────
    # Fallback tone generator
    # ─────────────────────────────────────────────────────────────────────────
    FALLBACK_SAMPLE_RATE = 22050
    FALLBACK_FREQUENCY_HZ = 440.0
    FALLBACK_AMPLITUDE = 0.3
    FALLBACK_CHARS_PER_SECOND = 100

    # ─────────────────────────────────────────────────────────────────────────
    # Pricing
    # ─────────────────────────────────────────────────────────────────────────
    PRICING_STANDARD_PER_CHAR_USD = 0.000004    # $4 per 1M characters
    PRICING_PREMIUM_PER_CHAR_USD = 0.000016     # $16 per 1M characters
    PRICING_FREE_QUOTA_PER_MONTH = 1_000_000

    # ─────────────────────────────────────────────────────────────────────────
    # Voices and request limits
    # ─────────────────────────────────────────────────────────────────────────
    VOICE_DEFAULT = "female"
    TEXT_MAX_CHARS = 100_000
    ESTIMATE_CHARS_PER_SECOND = 10              # Duration estimate divisor

    # ─────────────────────────────────────────────────────────────────────────
    # Conversations
    # ─────────────────────────────────────────────────────────────────────────
    CONVERSATION_MAX_SEGMENTS = 50
    CONVERSATION_SEGMENT_MAX_CHARS = 1000
    CONVERSATION_MAX_TOTAL_CHARS = 10_000
    CONVERSATION_PAUSE_SECONDS = 0.5
    CONVERSATION_PAUSE_MIN_SECONDS = 0.1
    CONVERSATION_PAUSE_MAX_SECONDS = 3.0

    # ─────────────────────────────────────────────────────────────────────────
    # Usage and history
    # ─────────────────────────────────────────────────────────────────────────
    USAGE_TRACK_ANONYMOUS = True
    HISTORY_TEXT_PREVIEW_CHARS = 500

    # ─────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────
    LOGGING_TEXT_PREVIEW_CHARS = 80
    LOGGING_LEVEL = 2                           # 1=MINIMAL .. 4=DEBUG


@dataclass
class ServerConfig:
    """Public addressing of cached artifacts."""
    base_url: str = Defaults.SERVER_BASE_URL


@dataclass
class StorageConfig:
    """
    File cache configuration.

    Files older than ``ttl_seconds`` are removed by the eviction sweep.
    ``max_size_mb`` is surfaced in storage info but eviction is purely
    age based.
    """
    base_dir: str = Defaults.STORAGE_BASE_DIR
    ttl_seconds: int = Defaults.STORAGE_TTL_SECONDS
    max_size_mb: int = Defaults.STORAGE_MAX_SIZE_MB
    sweep_interval_seconds: int = Defaults.STORAGE_SWEEP_INTERVAL_SECONDS
    write_sweep_interval_seconds: int = Defaults.STORAGE_WRITE_SWEEP_INTERVAL_SECONDS


@dataclass
class ProviderConfig:
    """Speech provider selection and request limits."""
    engine: str = Defaults.PROVIDER_ENGINE
    language: str = Defaults.PROVIDER_LANGUAGE
    sample_rate: int = Defaults.PROVIDER_SAMPLE_RATE
    max_request_bytes: int = Defaults.PROVIDER_MAX_REQUEST_BYTES
    chunk_bytes: int = Defaults.PROVIDER_CHUNK_BYTES


@dataclass
class FallbackConfig:
    """Local tone generator used when the provider is unavailable."""
    sample_rate: int = Defaults.FALLBACK_SAMPLE_RATE
    frequency_hz: float = Defaults.FALLBACK_FREQUENCY_HZ
    amplitude: float = Defaults.FALLBACK_AMPLITUDE
    chars_per_second: int = Defaults.FALLBACK_CHARS_PER_SECOND


@dataclass
class PricingConfig:
    """Per-character rates for the two voice tiers."""
    standard_per_char_usd: float = Defaults.PRICING_STANDARD_PER_CHAR_USD
    premium_per_char_usd: float = Defaults.PRICING_PREMIUM_PER_CHAR_USD
    free_quota_per_month: int = Defaults.PRICING_FREE_QUOTA_PER_MONTH


@dataclass
class ConversationConfig:
    """Limits applied to multi-segment requests."""
    max_segments: int = Defaults.CONVERSATION_MAX_SEGMENTS
    segment_max_chars: int = Defaults.CONVERSATION_SEGMENT_MAX_CHARS
    max_total_chars: int = Defaults.CONVERSATION_MAX_TOTAL_CHARS
    pause_seconds: float = Defaults.CONVERSATION_PAUSE_SECONDS


@dataclass
class UsageConfig:
    track_anonymous: bool = Defaults.USAGE_TRACK_ANONYMOUS


@dataclass
class HistoryConfig:
    text_preview_chars: int = Defaults.HISTORY_TEXT_PREVIEW_CHARS


@dataclass
class LoggingConfig:
    """
    Logging configuration.

    Log levels:
        1 = MINIMAL: Startup, shutdown, critical errors only
        2 = NORMAL: Request lifecycle, cache status (default)
        3 = VERBOSE: Per-stage timing, provider calls
        4 = DEBUG: Internal state, full tracing
    """
    text_preview_chars: int = Defaults.LOGGING_TEXT_PREVIEW_CHARS
    level: int = Defaults.LOGGING_LEVEL


@dataclass
class TTSServiceConfig:
    """
    Validated configuration for TTSService.

    Usage:
        settings = load_settings("config/settings.yaml")
        config = TTSServiceConfig.from_settings(settings)
        print(config.storage.ttl_seconds)
    """
    server: ServerConfig = field(default_factory=ServerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    provider: ProviderConfig = field(default_factory=ProviderConfig)
    fallback: FallbackConfig = field(default_factory=FallbackConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)
    conversation: ConversationConfig = field(default_factory=ConversationConfig)
    usage: UsageConfig = field(default_factory=UsageConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_settings(cls, settings: "Settings") -> "TTSServiceConfig":
        """
        Create TTSServiceConfig from Settings with validation.

        Args:
            settings: Raw Settings object loaded from YAML.

        Returns:
            Validated TTSServiceConfig instance.

        Raises:
            ConfigValidationError: If any value fails validation.
        """
        raw = settings.raw

        # ─────────────────────────────────────────────────────────────────────
        # Server
        # ─────────────────────────────────────────────────────────────────────
        server = ServerConfig(base_url=settings.base_url)
        if not server.base_url:
            raise ConfigValidationError("server.base_url must not be empty")

        # ─────────────────────────────────────────────────────────────────────
        # Storage
        # ─────────────────────────────────────────────────────────────────────
        storage_raw = raw.get("storage", {}) or {}
        storage = StorageConfig(
            base_dir=settings.cache_dir,
            ttl_seconds=int(storage_raw.get("ttl_seconds", Defaults.STORAGE_TTL_SECONDS)),
            max_size_mb=int(storage_raw.get("max_size_mb", Defaults.STORAGE_MAX_SIZE_MB)),
            sweep_interval_seconds=int(storage_raw.get(
                "sweep_interval_seconds", Defaults.STORAGE_SWEEP_INTERVAL_SECONDS)),
            write_sweep_interval_seconds=int(storage_raw.get(
                "write_sweep_interval_seconds", Defaults.STORAGE_WRITE_SWEEP_INTERVAL_SECONDS)),
        )
        cls._validate_positive("storage.ttl_seconds", storage.ttl_seconds)
        cls._validate_positive("storage.max_size_mb", storage.max_size_mb)
        cls._validate_positive("storage.sweep_interval_seconds", storage.sweep_interval_seconds)
        cls._validate_non_negative("storage.write_sweep_interval_seconds",
                                   storage.write_sweep_interval_seconds)

        # ─────────────────────────────────────────────────────────────────────
        # Provider
        # ─────────────────────────────────────────────────────────────────────
        provider_raw = raw.get("provider", {}) or {}
        provider = ProviderConfig(
            engine=settings.engine_type,
            language=settings.default_language,
            sample_rate=int(provider_raw.get("sample_rate", Defaults.PROVIDER_SAMPLE_RATE)),
            max_request_bytes=int(provider_raw.get(
                "max_request_bytes", Defaults.PROVIDER_MAX_REQUEST_BYTES)),
            chunk_bytes=int(provider_raw.get("chunk_bytes", Defaults.PROVIDER_CHUNK_BYTES)),
        )
        cls._validate_positive("provider.sample_rate", provider.sample_rate)
        cls._validate_positive("provider.max_request_bytes", provider.max_request_bytes)
        cls._validate_range("provider.chunk_bytes", provider.chunk_bytes, 1, provider.max_request_bytes)

        # ─────────────────────────────────────────────────────────────────────
        # Fallback tone
        # ─────────────────────────────────────────────────────────────────────
        fallback_raw = raw.get("fallback", {}) or {}
        fallback = FallbackConfig(
            sample_rate=int(fallback_raw.get("sample_rate", Defaults.FALLBACK_SAMPLE_RATE)),
            frequency_hz=float(fallback_raw.get("frequency_hz", Defaults.FALLBACK_FREQUENCY_HZ)),
            amplitude=float(fallback_raw.get("amplitude", Defaults.FALLBACK_AMPLITUDE)),
            chars_per_second=int(fallback_raw.get(
                "chars_per_second", Defaults.FALLBACK_CHARS_PER_SECOND)),
        )
        cls._validate_positive("fallback.sample_rate", fallback.sample_rate)
        cls._validate_positive("fallback.frequency_hz", fallback.frequency_hz)
        cls._validate_range("fallback.amplitude", fallback.amplitude, 0.0, 1.0)
        cls._validate_positive("fallback.chars_per_second", fallback.chars_per_second)

        # ─────────────────────────────────────────────────────────────────────
        # Pricing
        # ─────────────────────────────────────────────────────────────────────
        pricing_raw = raw.get("pricing", {}) or {}
        pricing = PricingConfig(
            standard_per_char_usd=float(pricing_raw.get(
                "standard_per_char_usd", Defaults.PRICING_STANDARD_PER_CHAR_USD)),
            premium_per_char_usd=float(pricing_raw.get(
                "premium_per_char_usd", Defaults.PRICING_PREMIUM_PER_CHAR_USD)),
            free_quota_per_month=int(pricing_raw.get(
                "free_quota_per_month", Defaults.PRICING_FREE_QUOTA_PER_MONTH)),
        )
        cls._validate_non_negative("pricing.standard_per_char_usd", pricing.standard_per_char_usd)
        cls._validate_non_negative("pricing.premium_per_char_usd", pricing.premium_per_char_usd)
        cls._validate_non_negative("pricing.free_quota_per_month", pricing.free_quota_per_month)

        # ─────────────────────────────────────────────────────────────────────
        # Conversation
        # ─────────────────────────────────────────────────────────────────────
        conv_raw = raw.get("conversation", {}) or {}
        conversation = ConversationConfig(
            max_segments=int(conv_raw.get("max_segments", Defaults.CONVERSATION_MAX_SEGMENTS)),
            segment_max_chars=int(conv_raw.get(
                "segment_max_chars", Defaults.CONVERSATION_SEGMENT_MAX_CHARS)),
            max_total_chars=int(conv_raw.get(
                "max_total_chars", Defaults.CONVERSATION_MAX_TOTAL_CHARS)),
            pause_seconds=float(conv_raw.get("pause_seconds", Defaults.CONVERSATION_PAUSE_SECONDS)),
        )
        cls._validate_positive("conversation.max_segments", conversation.max_segments)
        cls._validate_positive("conversation.segment_max_chars", conversation.segment_max_chars)
        cls._validate_positive("conversation.max_total_chars", conversation.max_total_chars)
        cls._validate_range(
            "conversation.pause_seconds", conversation.pause_seconds,
            Defaults.CONVERSATION_PAUSE_MIN_SECONDS, Defaults.CONVERSATION_PAUSE_MAX_SECONDS,
        )

        # ─────────────────────────────────────────────────────────────────────
        # Usage / history
        # ─────────────────────────────────────────────────────────────────────
        usage_raw = raw.get("usage", {}) or {}
        usage = UsageConfig(
            track_anonymous=bool(usage_raw.get("track_anonymous", Defaults.USAGE_TRACK_ANONYMOUS)),
        )

        history_raw = raw.get("history", {}) or {}
        history = HistoryConfig(
            text_preview_chars=int(history_raw.get(
                "text_preview_chars", Defaults.HISTORY_TEXT_PREVIEW_CHARS)),
        )
        cls._validate_positive("history.text_preview_chars", history.text_preview_chars)

        # ─────────────────────────────────────────────────────────────────────
        # Logging
        # ─────────────────────────────────────────────────────────────────────
        logging_raw = raw.get("logging", {}) or {}
        level_raw = logging_raw.get("level", Defaults.LOGGING_LEVEL)
        if isinstance(level_raw, str):
            named = {"MINIMAL": 1, "NORMAL": 2, "INFO": 2, "VERBOSE": 3, "DEBUG": 4, "TRACE": 4}
            level = int(level_raw) if level_raw.isdigit() else named.get(
                level_raw.upper(), Defaults.LOGGING_LEVEL)
        else:
            level = int(level_raw)

        logging_cfg = LoggingConfig(
            text_preview_chars=int(logging_raw.get(
                "text_preview_chars", Defaults.LOGGING_TEXT_PREVIEW_CHARS)),
            level=level,
        )
        cls._validate_non_negative("logging.text_preview_chars", logging_cfg.text_preview_chars)
        cls._validate_range("logging.level", logging_cfg.level, 1, 4)

        return cls(
            server=server,
            storage=storage,
            provider=provider,
            fallback=fallback,
            pricing=pricing,
            conversation=conversation,
            usage=usage,
            history=history,
            logging=logging_cfg,
        )

    @staticmethod
    def _validate_positive(name: str, value: int | float) -> None:
        if value <= 0:
            raise ConfigValidationError(f"{name} must be positive, got {value}")

    @staticmethod
    def _validate_non_negative(name: str, value: int | float) -> None:
        if value < 0:
            raise ConfigValidationError(f"{name} must be non-negative, got {value}")

    @staticmethod
    def _validate_range(name: str, value: int | float, min_val: int | float, max_val: int | float) -> None:
        if not (min_val <= value <= max_val):
            raise ConfigValidationError(f"{name} must be between {min_val} and {max_val}, got {value}")


@dataclass(frozen=True)
class Settings:
    """
    Immutable settings container loaded from YAML.

    Holds the raw dictionary; properties give typed access to the values
    read in more than one place. Use get_service_config() for the full,
    validated view.
    """
    raw: Dict[str, Any]

    @property
    def engine_type(self) -> str:
        """Provider engine name (google, tone)."""
        engine = (self.raw.get("provider", {}) or {}).get("engine", Defaults.PROVIDER_ENGINE)
        return str(engine).strip().lower()

    @property
    def default_language(self) -> str:
        return str((self.raw.get("provider", {}) or {}).get("language", Defaults.PROVIDER_LANGUAGE))

    @property
    def default_voice(self) -> str:
        return str((self.raw.get("voices", {}) or {}).get("default", Defaults.VOICE_DEFAULT))

    @property
    def base_url(self) -> str:
        """Public base URL used to build artifact URIs (no trailing slash)."""
        url = (self.raw.get("server", {}) or {}).get("base_url", Defaults.SERVER_BASE_URL)
        return str(url).rstrip("/")

    @property
    def cache_dir(self) -> str:
        return str((self.raw.get("storage", {}) or {}).get("base_dir", Defaults.STORAGE_BASE_DIR))

    def get_service_config(self) -> TTSServiceConfig:
        """
        Get validated TTSServiceConfig from these settings.

        Raises:
            ConfigValidationError: If validation fails.
        """
        return TTSServiceConfig.from_settings(self)


def _apply_env_overrides(raw: Dict[str, Any]) -> None:
    """Fold TTS_RELAY_* environment overrides into a raw settings dict."""
    base_url = os.getenv("TTS_RELAY_BASE_URL")
    if base_url:
        raw.setdefault("server", {})["base_url"] = base_url

    provider = os.getenv("TTS_RELAY_PROVIDER")
    if provider:
        raw.setdefault("provider", {})["engine"] = provider

    cache_dir = os.getenv("TTS_RELAY_CACHE_DIR")
    if cache_dir:
        raw.setdefault("storage", {})["base_dir"] = cache_dir


def settings_path() -> str:
    """Settings file location, honoring TTS_RELAY_SETTINGS."""
    return os.getenv("TTS_RELAY_SETTINGS", DEFAULT_SETTINGS_PATH)


def load_settings(path: str = DEFAULT_SETTINGS_PATH, missing_ok: bool = False) -> Settings:
    """
    Load settings from a YAML configuration file.

    Environment variable overrides:
        - TTS_RELAY_BASE_URL: server.base_url
        - TTS_RELAY_PROVIDER: provider.engine
        - TTS_RELAY_CACHE_DIR: storage.base_dir

    Args:
        path: Path to the YAML configuration file.
        missing_ok: Return defaults (plus env overrides) when the file
            does not exist instead of raising.

    Returns:
        Settings object with loaded configuration.

    Raises:
        FileNotFoundError: If the file doesn't exist and missing_ok is False.
    """
    p = Path(path)
    raw: Dict[str, Any] = {}
    if p.exists():
        with p.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    elif not missing_ok:
        raise FileNotFoundError(f"settings file not found: {p.resolve()}")

    _apply_env_overrides(raw)
    return Settings(raw=raw)
