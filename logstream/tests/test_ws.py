"""End-to-end tests for the /api/ws/logs WebSocket endpoint."""

from __future__ import annotations

import sys
import time
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from logstream.config import settings
from logstream.main import app

# Stand-in for `docker logs -f <source>`: prints a few lines, then keeps following
FAKE_TAIL = """
import sys, time
source = sys.argv[1]
if source == "broken":
    print("1:M 02 Sep 2025 10:16:01.123 # ERROR disk full", flush=True)
while True:
    print(source + " tick", flush=True)
    time.sleep(0.02)
"""


def _fake_tail_command(source_id: str, backlog_lines: int | None = None) -> list[str]:
    return [sys.executable, "-u", "-c", FAKE_TAIL, source_id]


def _wait_idle(timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while app.state.subscriptions.active_count:
        if time.monotonic() > deadline:
            raise AssertionError("subscription still active after close")
        time.sleep(0.02)


@pytest.fixture
def missing_docker(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "tail_binary", "logstream-no-such-binary-xyz")


@pytest.fixture
def fast_synthetic(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "synthetic_min_interval_ms", 5)
    monkeypatch.setattr(settings, "synthetic_max_interval_ms", 20)


@pytest.fixture
def fake_tail(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        "logstream.services.source_process.build_tail_command", _fake_tail_command,
    )


def test_connected_ack_on_open() -> None:
    with TestClient(app) as client:
        with client.websocket_connect("/api/ws/logs") as ws:
            assert ws.receive_json() == {"type": "connected"}


def test_malformed_message_is_answered_without_state_change() -> None:
    with TestClient(app) as client:
        with client.websocket_connect("/api/ws/logs") as ws:
            ws.receive_json()
            ws.send_text("this is not json")
            assert ws.receive_json() == {"type": "error", "message": "Invalid message format"}
            ws.send_json({"type": "follow", "sourceId": "redis"})
            assert ws.receive_json()["type"] == "error"
            assert app.state.subscriptions.active_count == 0


@pytest.mark.usefixtures("missing_docker", "fast_synthetic")
def test_unknown_source_degrades_to_synthetic() -> None:
    with TestClient(app) as client:
        with client.websocket_connect("/api/ws/logs") as ws:
            ws.receive_json()
            ws.send_json({"type": "subscribe", "sourceId": "ghost"})

            first = ws.receive_json()
            assert first["type"] == "error"
            assert "Using simulated logs" in first["message"]

            for _ in range(5):
                msg = ws.receive_json()
                assert msg["type"] == "log"
                assert msg["data"]["service"] == "ghost"
                assert msg["data"]["level"] in {"INFO", "DEBUG", "WARN", "ERROR"}
                assert isinstance(msg["data"]["message"], str)
        _wait_idle()


@pytest.mark.usefixtures("missing_docker")
def test_synthetic_records_arrive_at_irregular_intervals() -> None:
    with TestClient(app) as client:
        with client.websocket_connect("/api/ws/logs") as ws:
            ws.receive_json()
            ws.send_json({"type": "subscribe", "sourceId": "ghost"})
            assert ws.receive_json()["type"] == "error"

            stamps = []
            for _ in range(3):
                msg = ws.receive_json()
                stamps.append(datetime.fromisoformat(msg["data"]["timestamp"].replace("Z", "+00:00")))
        _wait_idle()

    gaps = [(b - a).total_seconds() for a, b in zip(stamps, stamps[1:])]
    assert all(0.49 <= gap <= 1.6 for gap in gaps)


@pytest.mark.usefixtures("missing_docker", "fast_synthetic")
def test_default_source_when_omitted() -> None:
    with TestClient(app) as client:
        with client.websocket_connect("/api/ws/logs") as ws:
            ws.receive_json()
            ws.send_json({"type": "subscribe"})
            assert ws.receive_json()["type"] == "error"
            msg = ws.receive_json()
            assert msg["data"]["service"] == settings.default_source_id


@pytest.mark.usefixtures("fake_tail")
def test_error_line_is_classified_and_verbatim() -> None:
    with TestClient(app) as client:
        with client.websocket_connect("/api/ws/logs") as ws:
            ws.receive_json()
            ws.send_json({"type": "subscribe", "sourceId": "broken"})
            msg = ws.receive_json()
            assert msg["type"] == "log"
            assert msg["data"]["level"] == "ERROR"
            assert msg["data"]["service"] == "broken"
            assert "# ERROR disk full" in msg["data"]["message"]
        _wait_idle()


@pytest.mark.usefixtures("fake_tail")
def test_switching_sources_stops_old_stream() -> None:
    with TestClient(app) as client:
        with client.websocket_connect("/api/ws/logs") as ws:
            ws.receive_json()
            ws.send_json({"type": "subscribe", "sourceId": "a"})
            assert ws.receive_json()["data"]["service"] == "a"

            ws.send_json({"type": "subscribe", "sourceId": "b"})
            services = []
            while services.count("b") < 10:
                services.append(ws.receive_json()["data"]["service"])

            # Once "b" starts, "a" never shows up again
            first_b = services.index("b")
            assert "a" not in services[first_b:]
            assert app.state.subscriptions.stats == {"active": 1, "process": 1, "synthetic": 0}
        _wait_idle()


@pytest.mark.usefixtures("fake_tail")
def test_unsubscribe_then_close_is_clean() -> None:
    with TestClient(app) as client:
        with client.websocket_connect("/api/ws/logs") as ws:
            ws.receive_json()
            ws.send_json({"type": "subscribe", "sourceId": "a"})
            ws.receive_json()
            ws.send_json({"type": "unsubscribe"})
            ws.send_json({"type": "unsubscribe"})
        _wait_idle()
        assert app.state.subscriptions.stats == {"active": 0, "process": 0, "synthetic": 0}
