"""
Logging state: request correlation and process-wide configuration.

The request id lives in a ContextVar so it follows a request through
FastAPI's threadpool and any asyncio tasks. Level and file settings are
plain module state shared by the whole process.

Environment Variables:
    - TTS_RELAY_LOG_LEVEL: Log level (1-4 or name)
    - TTS_RELAY_LOG_DIR: Directory for the JSONL log file
    - TTS_RELAY_JSONL_FILE: JSONL filename (default tts-relay.jsonl)
    - TTS_RELAY_LOG_ROTATE_BYTES: Max file size before rotation
    - TTS_RELAY_LOG_ROTATE_BACKUP: Rotated files to keep
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

import yaml

from .levels import LEVEL_NAMES, LogLevel

_request_id: ContextVar[str] = ContextVar("request_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_request_id() -> str:
    """Request id of the current context, "-" outside a request."""
    return _request_id.get()


def set_request_id(rid: str) -> None:
    _request_id.set(rid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    return LEVEL_NAMES.get(int(_current_level), "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def get_log_config() -> Dict[str, Any]:
    return _log_config


def set_log_config(config: Dict[str, Any]) -> None:
    global _log_config
    _log_config = config


def _int_env(name: str) -> int | None:
    value = os.getenv(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def read_logging_config() -> Dict[str, Any]:
    """
    Resolve logging options from the settings file and environment.

    Reads the ``logging`` section of the YAML settings file directly
    (this runs before the rest of the config layer is imported), then
    applies TTS_RELAY_* environment overrides.

    Returns:
        Dictionary with keys level, log_dir, jsonl_file,
        rotate_max_bytes and rotate_backup_count (only those set).
    """
    cfg: Dict[str, Any] = {}

    settings_path = os.getenv("TTS_RELAY_SETTINGS", "config/settings.yaml")
    try:
        with open(settings_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        cfg.update(raw.get("logging", {}) or {})
    except (OSError, yaml.YAMLError, AttributeError):
        # Missing or unreadable settings file: environment and defaults only
        pass

    if os.getenv("TTS_RELAY_LOG_LEVEL"):
        cfg["level"] = os.environ["TTS_RELAY_LOG_LEVEL"]
    if os.getenv("TTS_RELAY_LOG_DIR"):
        cfg["log_dir"] = os.environ["TTS_RELAY_LOG_DIR"]
    if os.getenv("TTS_RELAY_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["TTS_RELAY_JSONL_FILE"]

    rotate_bytes = _int_env("TTS_RELAY_LOG_ROTATE_BYTES")
    if rotate_bytes is not None:
        cfg["rotate_max_bytes"] = rotate_bytes
    rotate_backup = _int_env("TTS_RELAY_LOG_ROTATE_BACKUP")
    if rotate_backup is not None:
        cfg["rotate_backup_count"] = rotate_backup

    return cfg
