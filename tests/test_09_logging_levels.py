"""Tests for the numeric logging level system."""
from __future__ import annotations

import logging

import pytest

from tts_relay.core.logging import (
    LEVEL_MAP,
    LogLevel,
    coerce_level,
    configure_logging,
    get_level,
    get_level_name,
    get_logger,
    info,
    verbose,
)


@pytest.fixture
def restore_logging(monkeypatch):
    yield monkeypatch
    for var in ("TTS_RELAY_LOG_LEVEL", "TTS_RELAY_LOG_DIR", "TTS_RELAY_JSONL_FILE"):
        monkeypatch.delenv(var, raising=False)
    configure_logging(force=True)


class TestLogLevelEnum:
    def test_level_enum_values(self):
        assert LogLevel.MINIMAL == 1
        assert LogLevel.NORMAL == 2
        assert LogLevel.VERBOSE == 3
        assert LogLevel.DEBUG == 4

    def test_level_enum_ordering(self):
        assert LogLevel.MINIMAL < LogLevel.NORMAL < LogLevel.VERBOSE < LogLevel.DEBUG

    def test_stdlib_mapping(self):
        assert LEVEL_MAP[LogLevel.MINIMAL] == logging.WARNING
        assert LEVEL_MAP[LogLevel.NORMAL] == logging.INFO
        assert LEVEL_MAP[LogLevel.VERBOSE] == logging.DEBUG
        assert LEVEL_MAP[LogLevel.DEBUG] < logging.DEBUG


class TestLevelCoercion:
    @pytest.mark.parametrize("value,expected", [
        (1, LogLevel.MINIMAL),
        (4, LogLevel.DEBUG),
        ("3", LogLevel.VERBOSE),
        ("minimal", LogLevel.MINIMAL),
        ("VERBOSE", LogLevel.VERBOSE),
        (" debug ", LogLevel.DEBUG),
        ("INFO", LogLevel.NORMAL),
        ("WARNING", LogLevel.MINIMAL),
        (logging.ERROR, LogLevel.MINIMAL),
        (logging.INFO, LogLevel.NORMAL),
        (LogLevel.VERBOSE, LogLevel.VERBOSE),
    ])
    def test_valid(self, value, expected):
        assert coerce_level(value) == expected

    @pytest.mark.parametrize("value", ["invalid", None, True, 2.5])
    def test_invalid_defaults_to_normal(self, value):
        assert coerce_level(value) == LogLevel.NORMAL


class TestConfigureLogging:
    def test_env_level(self, restore_logging):
        restore_logging.setenv("TTS_RELAY_LOG_LEVEL", "3")
        configure_logging(force=True)
        assert get_level() == LogLevel.VERBOSE
        assert get_level_name() == "VERBOSE"

    def test_explicit_level_wins(self, restore_logging):
        restore_logging.setenv("TTS_RELAY_LOG_LEVEL", "4")
        configure_logging(level=1, force=True)
        assert get_level() == LogLevel.MINIMAL

    def test_not_reconfigured_without_force(self, restore_logging):
        configure_logging(level=2, force=True)
        configure_logging(level=4)
        assert get_level() == LogLevel.NORMAL

    def test_messages_above_level_are_dropped(self, restore_logging, tmp_path):
        restore_logging.setenv("TTS_RELAY_LOG_DIR", str(tmp_path))
        restore_logging.setenv("TTS_RELAY_JSONL_FILE", "levels.jsonl")
        configure_logging(level=2, force=True)

        log = get_logger("tts-relay.test")
        info(log, "kept")
        verbose(log, "dropped")
        for handler in logging.getLogger().handlers:
            handler.flush()

        text = (tmp_path / "levels.jsonl").read_text(encoding="utf-8")
        assert "kept" in text
        assert "dropped" not in text
