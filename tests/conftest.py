"""Shared fixtures: an isolated relay app on the tone engine."""
from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
import yaml


def _reset_singletons() -> None:
    from tts_relay.api.dependencies import get_settings, stop_service
    from tts_relay.services.conversation import reset_assembler
    from tts_relay.services.tts_service import reset_service
    from tts_relay.tts.engine import reset_engine

    stop_service()
    get_settings.cache_clear()
    reset_assembler()
    reset_service()
    reset_engine()


@pytest.fixture
def relay_env(tmp_path, monkeypatch) -> Generator[Path, None, None]:
    """
    Point the app at a settings file under tmp_path: tone engine, cache
    directory in tmp_path, base URL matching the TestClient host.
    """
    settings_file = tmp_path / "settings.yaml"
    settings_file.write_text(yaml.safe_dump({
        "server": {"base_url": "http://testserver"},
        "storage": {"base_dir": str(tmp_path / "cache")},
        "provider": {"engine": "tone"},
    }), encoding="utf-8")

    monkeypatch.setenv("TTS_RELAY_SETTINGS", str(settings_file))
    for var in ("TTS_RELAY_PROVIDER", "TTS_RELAY_CACHE_DIR", "TTS_RELAY_BASE_URL"):
        monkeypatch.delenv(var, raising=False)

    _reset_singletons()
    yield tmp_path
    _reset_singletons()


@pytest.fixture
def client(relay_env):
    from fastapi.testclient import TestClient

    from tts_relay.main import create_app

    with TestClient(create_app()) as c:
        yield c
