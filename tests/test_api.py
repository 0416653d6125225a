"""
API Tests
=========

HTTP control surface, with the global session swapped for a test double.
"""

import pytest
from fastapi.testclient import TestClient

from rewind_recorder import main
from rewind_recorder.capture import CaptureMode
from rewind_recorder.models import RecorderStatus


class StubSession:
    """Minimal RecorderSession surface used by the endpoints."""

    class _Capture:
        segment_count = 3
        error_count = 1

    class _Buffer:
        def metrics(self):
            return {"size": 12, "max_frames": 1800}

    def __init__(self) -> None:
        self.capture = self._Capture()
        self.buffer = self._Buffer()
        self.message = "Device: emulator-5554"
        self.is_recording = False
        self.saved = []
        self.settings = []
        self.show_timestamp_overlay = True

    def status(self):
        return RecorderStatus(
            recording=self.is_recording,
            saving=False,
            device="emulator-5554",
            capture_mode=CaptureMode.SCREENRECORD,
            fps=30,
            buffer_duration_seconds=60,
            frame_count=12,
            buffered_seconds=0,
            memory_mb=1,
            output_directory="/tmp/out",
            message=self.message,
        )

    async def refresh_device(self):
        return "emulator-5554"

    async def start_recording(self):
        self.is_recording = True
        self.message = "Recording..."
        return True

    async def stop_recording(self):
        self.is_recording = False
        self.message = "Stopped"

    async def save_recording(self, duration_seconds):
        self.saved.append(duration_seconds)
        self.message = "Saved: recording.mp4"
        return "/tmp/out/recording.mp4"

    async def take_screenshot(self):
        self.message = "Failed to capture screenshot"
        return None

    def update_settings(self, duration=None, fps=None):
        self.settings.append((duration, fps))

    def set_output_directory(self, path):
        self.message = f"Output directory not writable: {path}"
        return False

    async def set_show_touch_pointer(self, enabled):
        self.settings.append(("pointer", enabled))


@pytest.fixture
def session(monkeypatch):
    stub = StubSession()
    monkeypatch.setattr(main, "_session", stub)
    return stub


@pytest.fixture
def client():
    # No context manager: the lifespan would spawn adb
    return TestClient(main.app)


class TestInfo:

    def test_root(self, client):
        body = client.get("/").json()
        assert body["service"] == "RewindRecorder"
        assert body["status"] == "running"

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_not_ready(self, client, monkeypatch):
        monkeypatch.setattr(main, "_session", None)
        assert client.get("/status").status_code == 503
        assert client.post("/recording/start").status_code == 503

    def test_status(self, client, session):
        body = client.get("/status").json()
        assert body["device"] == "emulator-5554"
        assert body["capture_mode"] == "screenrecord"
        assert body["frame_count"] == 12

    def test_metrics(self, client, session):
        body = client.get("/metrics").json()
        assert body["buffer_size"] == 12
        assert body["buffer_max_frames"] == 1800
        assert body["capture_segments"] == 3
        assert body["capture_errors"] == 1


class TestActions:

    def test_start_and_stop(self, client, session):
        body = client.post("/recording/start").json()
        assert body == {"ok": True, "message": "Recording...", "path": None}
        assert session.is_recording

        body = client.post("/recording/stop").json()
        assert body["message"] == "Stopped"
        assert not session.is_recording

    def test_save(self, client, session):
        body = client.post("/recording/save", json={"duration_seconds": 30}).json()
        assert body["ok"] is True
        assert body["path"] == "/tmp/out/recording.mp4"
        assert session.saved == [30]

    def test_save_validates_duration(self, client, session):
        assert client.post("/recording/save", json={"duration_seconds": 0}).status_code == 422
        assert session.saved == []

    def test_screenshot_failure(self, client, session):
        body = client.post("/screenshot").json()
        assert body["ok"] is False
        assert body["message"] == "Failed to capture screenshot"

    def test_device_refresh(self, client, session):
        assert client.post("/device/refresh").json()["ok"] is True

    def test_settings(self, client, session):
        body = client.post("/settings", json={
            "fps": 15,
            "show_touch_pointer": False,
            "show_timestamp_overlay": False,
        }).json()
        assert body["ok"] is True
        assert session.settings == [(None, 15), ("pointer", False)]
        assert session.show_timestamp_overlay is False

    def test_settings_bad_directory(self, client, session):
        body = client.post("/settings", json={"output_directory": "/readonly"}).json()
        assert body["ok"] is False
        assert body["message"] == "Output directory not writable: /readonly"

    def test_settings_validation(self, client, session):
        assert client.post("/settings", json={"fps": 120}).status_code == 422


class TestStatusStream:

    def test_pushes_status(self, client, session):
        with client.websocket_connect("/ws/status") as ws:
            assert ws.receive_json()["message"] == "Device: emulator-5554"
