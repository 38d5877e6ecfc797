import pytest
from fastapi.testclient import TestClient

from nursery.core.config import Settings
from nursery.main import create_app
from nursery.services.monitor import build_monitor

from .fakes import ScriptedSource


def _client(tmp_path, source=None) -> TestClient:
    cfg = Settings(sqlite_path=str(tmp_path / "api.db"), log_file=None, source_mode="sim")
    return TestClient(create_app(cfg, monitor=build_monitor(cfg, source=source)))


@pytest.fixture
def client(tmp_path):
    with _client(tmp_path, source=ScriptedSource()) as c:
        yield c


@pytest.fixture
def sim_client(tmp_path):
    with _client(tmp_path) as c:
        yield c


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_live_after_cloud_update(client):
    r = client.put("/api/cloud", json={"refresh_interval_ms": 60000})
    assert r.status_code == 200
    assert r.json()["refresh_interval_ms"] == 60000

    live = client.get("/api/live").json()
    assert live["snapshot"]["temperature"]["value"] == 24.0
    assert live["snapshot"]["connection_status"] == "connected"
    assert live["refresh_interval_ms"] == 60000
    assert live["error"] is None
    assert live["dispatch_state"] == "idle"


def test_invalid_cloud_config_is_rejected(client):
    r = client.put("/api/cloud", json={"refresh_interval_ms": 10})
    assert r.status_code == 422
    assert client.get("/api/cloud").json()["refresh_interval_ms"] == 5000


def test_threshold_update_and_reset(client):
    assert client.get("/api/thresholds").json()["sound"] == {"max": 50.0}

    r = client.put("/api/thresholds", json={"temperature": {"max": 28}})
    assert r.status_code == 200
    assert r.json()["temperature"] == {"min": 18.0, "max": 28.0}

    r = client.put("/api/thresholds", json={"humidity": {"min": 65}})
    assert r.status_code == 422
    assert client.get("/api/thresholds").json()["humidity"] == {"min": 30.0, "max": 60.0}

    r = client.post("/api/thresholds/reset")
    assert r.json()["temperature"] == {"min": 18.0, "max": 30.0}


def test_history_view(client):
    client.put("/api/cloud", json={"refresh_interval_ms": 60000})
    body = client.get("/api/history", params={"fresh": True}).json()
    assert body["capacity"] == 144
    assert set(body["sensors"]) == {"temperature", "humidity", "sound"}
    assert body["sensors"]["humidity"]["summary"]["count"] >= 1

    summary = client.get("/api/history/summary").json()
    assert summary["sound"]["average"] == "30.0"


def test_notification_settings_validation(client):
    r = client.put("/api/notifications/settings", json={"channel": "email"})
    assert r.status_code == 422

    r = client.put(
        "/api/notifications/settings",
        json={"enabled": True, "channel": "sms", "contact": "+60123456789", "cooldown_minutes": 5},
    )
    assert r.status_code == 200
    body = client.get("/api/notifications/settings").json()
    assert body["channel"] == "sms"
    assert body["cooldown_minutes"] == 5


def test_send_test_and_active_notifications(client):
    r = client.post("/api/notifications/test")
    assert r.status_code == 200
    assert r.json() == {"ok": True, "channel": "app", "error": None}

    logs = client.get("/api/notifications/logs").json()["rows"]
    assert len(logs) == 1
    assert logs[0]["sensor"] == "temperature"

    active = client.get("/api/notifications/active").json()
    assert active["total"] == 1
    nid = active["visible"][0]["id"]
    assert active["dismiss_after_ms"] == {nid: 5000}

    assert client.delete(f"/api/notifications/active/{nid}").status_code == 200
    assert client.delete(f"/api/notifications/active/{nid}").status_code == 404


def test_send_test_needs_contact(client):
    r = client.post("/api/notifications/test", json={"channel": "email"})
    assert r.status_code == 409
    assert "email address" in r.json()["detail"]


def test_trigger_and_clear_logs(client):
    r = client.post("/api/notifications/trigger", json={"sensor": "sound", "value": 72})
    assert r.json()["outcome"] == "disabled"

    client.put("/api/notifications/settings", json={"enabled": True})
    r = client.post("/api/notifications/trigger", json={"sensor": "sound", "value": 72})
    body = r.json()
    assert body["outcome"] == "dispatched"
    assert body["entries"][0]["threshold"] == 50.0

    assert client.delete("/api/notifications/logs").json() == {"ok": True}
    assert client.get("/api/notifications/logs").json()["rows"] == []
    assert client.get("/api/notifications/active").json()["total"] == 0


def test_browser_permission_flow(client):
    assert client.get("/api/notifications/browser/permission").json() == {"permission": "default"}
    assert client.post("/api/notifications/test", json={"channel": "browser"}).status_code == 409

    assert client.post("/api/notifications/browser/permission").json() == {"permission": "granted"}
    r = client.post("/api/notifications/test", json={"channel": "browser"})
    assert r.json()["ok"] is True


def test_sim_routes_need_simulated_source(client):
    assert client.get("/api/sim/status").status_code == 404


def test_sim_controls(sim_client):
    status = sim_client.get("/api/sim/status").json()
    assert status["enabled"] is True

    r = sim_client.post("/api/sim/manual", json={"temperature": 33.3})
    assert r.json()["manual"] == {"temperature": 33.3}
    live = sim_client.put("/api/cloud", json={"refresh_interval_ms": 60000})
    assert live.status_code == 200
    snap = sim_client.get("/api/live").json()["snapshot"]
    assert snap["temperature"]["value"] == 33.3
    assert snap["temperature"]["is_alert"] is True

    r = sim_client.post("/api/sim/pattern", json={"sensor": "sound", "type": "sine", "baseline": 40, "amplitude": 5})
    assert r.json()["pattern"]["type"] == "sine"

    assert sim_client.post("/api/sim/disable").json() == {"ok": True, "enabled": False}
    sim_client.put("/api/cloud", json={"refresh_interval_ms": 30000})
    live = sim_client.get("/api/live").json()
    assert live["consecutive_failures"] == 1
    assert live["snapshot"]["connection_status"] == "disconnected"
    assert live["snapshot"]["temperature"]["value"] == 33.3
