"""
Service Tests
=============

HTTP endpoints of the FastAPI app, with the camera swapped for fakes.
"""

import pytest
from fastapi.testclient import TestClient

from camstream import main
from camstream.stream.camera import CameraStream
from camstream.stream.frame import Frame
from camstream.stream.source_config import StreamConfig

from conftest import FakeConnector


@pytest.fixture
def camera(monkeypatch):
    """Install a never-started CameraStream as the service camera."""
    stream = CameraStream(StreamConfig.create(url=""), connector=FakeConnector())
    monkeypatch.setattr(main, "_camera", stream)
    monkeypatch.setattr(main, "_latest_frame", None)
    yield stream
    stream.close()


@pytest.fixture
def client():
    # No context manager: the lifespan (and the real camera) stays off
    return TestClient(main.app)


class TestProbes:
    """Liveness and readiness."""

    def test_health(self, client, camera):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_not_ready_without_frames(self, client, camera):
        response = client.get("/ready")

        assert response.status_code == 503
        assert response.json()["running"] is False
        assert response.json()["stream_status"] == "IDLE"

    def test_root(self, client, camera):
        body = client.get("/").json()

        assert body["service"] == "camstream"
        assert body["running"] is False


class TestSnapshot:
    """Latest frame endpoint."""

    def test_no_frame_yet(self, client, camera):
        assert client.get("/snapshot").status_code == 503

    def test_returns_latest_jpeg(self, client, camera, monkeypatch):
        data = b"\xff\xd8jpeg\xff\xd9"
        monkeypatch.setattr(main, "_latest_frame", Frame(data=data, sequence=12, timestamp=0.0))

        response = client.get("/snapshot")

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/jpeg"
        assert response.headers["x-frame-sequence"] == "12"
        assert response.content == data


class TestStreamControl:
    """Start / stop / restart endpoints."""

    def test_start_without_url_is_bad_request(self, client, camera):
        response = client.post("/stream/start")

        assert response.status_code == 400
        assert "not specified" in response.json()["error"]

    def test_stop(self, client, camera):
        response = client.post("/stream/stop")

        assert response.status_code == 200
        assert camera.last_reason.value == "STOPPED_BY_USER"

    def test_restart_when_idle(self, client, camera):
        response = client.post("/stream/restart")

        assert response.status_code == 200
        assert response.json() == {"restarting": False}

    def test_control_without_camera(self, client, monkeypatch):
        monkeypatch.setattr(main, "_camera", None)

        assert client.post("/stream/start").status_code == 503


class TestMetrics:
    """Metrics endpoint."""

    def test_metrics_shape(self, client, camera):
        body = client.get("/metrics").json()

        assert body["running"] is False
        assert body["frames_emitted"] == 0
        assert body["restarts"] == 0
        assert body["buffer"]["maxsize"] == 50


class TestLifespan:
    """Startup and shutdown with settings."""

    def test_starts_without_camera_url(self, monkeypatch):
        monkeypatch.setattr(main.settings.camera, "url", "")

        with TestClient(main.app) as client:
            assert client.get("/health").status_code == 200
            assert client.get("/ready").status_code == 503
            assert main.get_camera() is not None

        assert main.get_camera().closed
