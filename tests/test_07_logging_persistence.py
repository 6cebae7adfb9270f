import json
import logging


def test_logging_jsonl_persistence(monkeypatch, tmp_path):
    from tts_relay.core.logging import configure_logging, get_logger, info, set_request_id

    monkeypatch.setenv("TTS_RELAY_LOG_DIR", str(tmp_path))
    monkeypatch.setenv("TTS_RELAY_JSONL_FILE", "test.jsonl")

    try:
        configure_logging(force=True)
        log = get_logger("tts-relay.test")
        set_request_id("rid-1")
        info(log, "cache_hit", event="logging_test", tag="female", seconds=0.002)

        for handler in logging.getLogger().handlers:
            handler.flush()

        log_path = tmp_path / "test.jsonl"
        assert log_path.exists()

        line = log_path.read_text(encoding="utf-8").strip().splitlines()[-1]
        payload = json.loads(line)
        assert payload["message"] == "cache_hit"
        assert payload["request_id"] == "rid-1"
        assert payload["event"] == "logging_test"
        assert payload["level"] == 2
        assert payload["tag"] == "INFO"
        assert payload["seconds"] == 0.002
        assert payload["logger"] == "tts-relay.test"
        assert payload["extra"] == {"tag": "female"}
    finally:
        set_request_id("-")
        monkeypatch.delenv("TTS_RELAY_LOG_DIR")
        monkeypatch.delenv("TTS_RELAY_JSONL_FILE")
        configure_logging(force=True)
