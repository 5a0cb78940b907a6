"""Tests for the REST API and WebSocket bridge."""

import time

import pytest
from fastapi.testclient import TestClient

from cogcycle.loop import CognitiveLoop
from cogcycle.renderer import TextRenderer
from cogcycle.server import create_app

SETTINGS = {
    "wake_interval_seconds": 300,
    "max_tasks_per_cycle": 2,
    "consolidation_threshold": 0.5,
    "working_memory_capacity": 50,
    "review_delay_seconds": 0,
    "history_limit": 10,
    "liveness_window_seconds": 5,
    "worker_mode": "thread",
    "insight_strategy": "pattern",
    "task_strategy": "goals",
    "consolidation_gate": "threshold",
    "proposals_per_cycle": 3,
    "random_seed": 0,
    "goals": ["goal-research", "goal-learning"],
}


@pytest.fixture
def client():
    loop = CognitiveLoop.from_config(dict(SETTINGS))
    app = create_app(loop, TextRenderer(), auto_start=False)
    with TestClient(app) as client:
        yield client


def wait_for_cycles(client, count, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        status = client.get("/api/status").json()
        if status["total_cycles"] >= count:
            return status
        time.sleep(0.02)
    raise AssertionError(f"{count} cycle(s) did not complete in time")


def test_ping(client):
    assert client.get("/api/ping", params={"timeout": 2}).json() == {"alive": True}


def test_wake_runs_a_cycle(client):
    """POST /api/wake posts a cycle; it shows up in history with its tasks."""
    cycle_id = client.post("/api/wake").json()["cycle_id"]
    status = wait_for_cycles(client, 1)
    assert status["last_cycle"]["id"] == cycle_id
    assert status["current_state"] == "idle"

    cycles = client.get("/api/cycles").json()
    assert [c["id"] for c in cycles] == [cycle_id]
    # The goal strategy already honours maxTasks, so nothing was dropped
    assert cycles[0]["tasksCompleted"] == 2
    assert cycles[0]["errors"] == []

    tasks = client.get("/api/tasks").json()
    assert [t["parentGoal"] for t in tasks] == ["goal-research", "goal-learning"]
    types = [e["type"] for e in client.get("/api/events").json()]
    assert types[0] == "STATUS_UPDATE"
    assert types[-1] == "CYCLE_COMPLETE"


def test_memory_feeds_insights(client):
    """Items added over HTTP are reviewed by the next cycle."""
    for i in range(4):
        resp = client.post("/api/memory", json={"content": f"note {i}", "topic": "ai"})
        assert resp.json()["ok"] is True
    assert client.post("/api/memory", json={"content": "  "}).json()["ok"] is False

    client.post("/api/wake")
    wait_for_cycles(client, 1)
    insights = client.get("/api/insights").json()
    assert any(i["content"].startswith("Recurring topic: ai") for i in insights)


def test_config_roundtrip(client):
    """Known keys update; bad values and unknown keys are refused."""
    assert client.get("/api/config").json()["max_tasks_per_cycle"] == 2

    assert client.post("/api/config", json={"max_tasks_per_cycle": 5}).json() == {"ok": True}
    assert client.get("/api/config").json()["max_tasks_per_cycle"] == 5

    bad = client.post("/api/config", json={"consolidation_threshold": 1.5}).json()
    assert bad["ok"] is False
    assert "consolidation_threshold" in bad["error"]

    unknown = client.post("/api/config", json={"provider": "openrouter"}).json()
    assert unknown["ok"] is False


def test_pause_without_run_loop(client):
    """Pause/resume only toggle the timer; resume needs a running loop."""
    assert client.post("/api/pause").json() == {"ok": True, "is_active": False}
    assert client.post("/api/resume").json() == {"ok": True, "is_active": False}


def test_render_endpoint(client):
    body = client.post("/api/render", json={"content": "plain text"}).json()
    assert body == {
        "html": "plain text",
        "plainText": "plain text",
        "hasMath": False,
        "hasCode": False,
        "hasTables": False,
    }
    assert client.post("/api/render", json={"content": "`x`"}).json()["hasCode"] is True


def test_websocket_ping_and_unknown(client):
    """Commands sent over the socket reach the orchestrator; replies come back."""
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "PING"})
        assert ws.receive_json() == {"type": "PONG"}

        ws.send_json({"type": "SING"})
        reply = ws.receive_json()
        assert reply["type"] == "ERROR"
        assert "SING" in reply["data"]["error"]

        ws.send_text("not json")
        assert ws.receive_json()["data"]["error"] == "Malformed command: not JSON"
