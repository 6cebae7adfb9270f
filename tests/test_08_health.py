def test_health_endpoint(client):
    r = client.get("/health")
    assert r.status_code == 200
    j = r.json()
    assert j["ok"] is True
    assert j["status"] == "ok"
    assert j["provider"] == "tone"
    assert j["provider_available"] is True
    assert j["fallback_active"] is False
    assert j["provider_error"] is None
    assert "file_count" in j["storage"]
    assert "indexed_entries" in j["cache"]
    assert "threads" in j["resources"]


def test_health_reports_cache_usage(client):
    client.post("/api/tts/generate", json={"text": "Health check"})
    j = client.get("/health").json()
    assert j["storage"]["file_count"] == 1
    assert j["storage"]["over_limit"] is False
    assert j["cache"]["indexed_entries"] == 1


def test_health_degraded_without_provider(relay_env, monkeypatch):
    from fastapi.testclient import TestClient

    from tts_relay.main import create_app
    from tts_relay.tts.engines.tone_engine import ToneEngine

    def broken_load(self):
        raise RuntimeError("provider not configured")

    monkeypatch.setattr(ToneEngine, "load", broken_load)
    with TestClient(create_app()) as c:
        j = c.get("/health").json()
        assert j["status"] == "degraded"
        assert j["fallback_active"] is True
        assert "not configured" in j["provider_error"]

        # Requests still succeed on the fallback tone
        r = c.post("/api/tts/generate", json={"text": "Still works"})
        assert r.status_code == 200
        assert r.json()["audioUrl"].endswith(".wav")


def test_lifespan_starts_and_stops_scheduler(relay_env):
    from fastapi.testclient import TestClient

    from tts_relay.api import dependencies
    from tts_relay.main import create_app

    app = create_app()
    assert dependencies._scheduler is None
    with TestClient(app) as c:
        assert dependencies._scheduler is not None
        assert dependencies._scheduler.running
        assert c.get("/health").json()["provider_available"] is True
    assert dependencies._scheduler is None
