import pytest
import yaml
from fastapi.testclient import TestClient

from backend.api import create_app
from backend.db import Database
from focus.actuator import LoggingActuator
from focus.config import FocusSettings, LoopConfig


@pytest.fixture
def client(tmp_path):
    settings = FocusSettings(loop=LoopConfig(tick_seconds=3600.0))
    app = create_app(
        settings,
        Database(str(tmp_path / "api.db")),
        actuator=LoggingActuator(),
        config_path=str(tmp_path / "config.yaml"),
    )
    yield TestClient(app)
    app.state.service.stop()


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_session_lifecycle(client):
    response = client.post("/api/session/start", json={"mode": "strict"})
    assert response.status_code == 200
    assert response.json()["active"] is True
    assert response.json()["mode"] == "strict"

    assert client.post("/api/session/mode", json={"mode": "gentle"}).json()["mode"] == "gentle"
    assert client.post("/api/session/mode", json={"mode": "turbo"}).status_code == 400
    assert client.post("/api/session/start", json={"mode": "turbo"}).status_code == 400

    state = client.get("/api/state").json()
    assert state["session"]["active"] is True
    assert state["policy_state"] in ("monitoring", "cooling_down")

    assert client.post("/api/session/stop").json()["active"] is False
    assert client.get("/api/state").json()["policy_state"] == "idle"


def test_events_and_tick(client):
    assert client.post("/api/events/tab", json={"hostname": "reddit.com"}).json()["accepted"] is False

    client.post("/api/session/start", json={"mode": "normal"})
    assert client.post("/api/events/tab", json={"url": "https://www.reddit.com/r/all"}).json()["accepted"] is True
    assert client.post("/api/events/activity", json={"hostname": "www.reddit.com", "scroll_count": 12}).json()["accepted"]
    assert client.post("/api/events/attention", json={"present": True, "confidence": 0.9}).json()["accepted"]
    assert client.post("/api/events/activity", json={"scroll_count": -1}).status_code == 422

    result = client.post("/api/tick").json()
    assert result["ran"] is True
    assert 0 <= result["metrics"]["focus_score"] < 100
    assert any(item["type"] == "site_category" for item in result["metrics"]["penalties"])

    history = client.get("/api/history").json()
    assert len(history["metrics"]) == 1
    assert any(event["type"] == "SESSION_START" for event in history["events"])

    export = client.get("/api/export")
    assert export.status_code == 200
    assert export.text.startswith("timestamp,focus_score")


def test_policy_reset(client):
    arms = client.post("/api/policy/reset").json()["arms"]
    assert arms["BOOST_ENERGY"] == {"value": 0.5, "n": 1}
    assert arms["NUCLEAR"]["value"] == 0.2


def test_settings_are_persisted(client, tmp_path):
    current = client.get("/api/settings").json()
    assert current["loop"]["tick_seconds"] == 3600.0

    current["features"]["nuclear_enabled"] = True
    current["sites"]["blocked"] = ["youtube.com"]
    response = client.post("/api/settings", json=current)
    assert response.status_code == 200

    saved = yaml.safe_load((tmp_path / "config.yaml").read_text())
    assert saved["features"]["nuclear_enabled"] is True
    assert client.get("/api/settings").json()["sites"]["blocked"] == ["youtube.com"]
