"""
Configuration Tests
===================

YAML loading, environment overrides and external tool discovery.
"""

import pytest
from pydantic import ValidationError

from rewind_recorder.config import (
    Settings,
    ToolsConfig,
    find_executable,
    load_config,
    resolve_tool_paths,
)

from conftest import requires_posix, write_script


ENV_VARS = [
    "REWIND_BUFFER_DURATION",
    "REWIND_FPS",
    "REWIND_CAPTURE_MODE",
    "REWIND_OUTPUT_DIR",
    "REWIND_ADB_PATH",
    "REWIND_FFMPEG_PATH",
    "REWIND_PORT",
    "REWIND_LOG_LEVEL",
    "PORT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoadConfig:

    def test_defaults(self):
        settings = Settings()
        assert settings.recorder.buffer_duration_seconds == 60
        assert settings.recorder.fps == 30
        assert settings.recorder.capture_mode == "screenrecord"
        assert settings.capture.record_duration_ms == 60_000
        assert settings.capture.overlap_start_ms == 50_000
        assert settings.server.port == 8765

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "recorder:\n"
            "  buffer_duration_seconds: 30\n"
            "  fps: 15\n"
            "output:\n"
            "  directory: /tmp/rewind\n"
        )
        settings = load_config(str(path))
        assert settings.recorder.buffer_duration_seconds == 30
        assert settings.recorder.fps == 15
        assert settings.output.directory == "/tmp/rewind"
        assert settings.recorder.capture_mode == "screenrecord"

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yaml"
        path.write_text("recorder:\n  fps: 15\n")
        monkeypatch.setenv("REWIND_FPS", "24")
        monkeypatch.setenv("REWIND_CAPTURE_MODE", "screencap")
        monkeypatch.setenv("REWIND_ADB_PATH", "/opt/adb")
        monkeypatch.setenv("REWIND_PORT", "9000")

        settings = load_config(str(path))

        assert settings.recorder.fps == 24
        assert settings.recorder.capture_mode == "screencap"
        assert settings.tools.adb_path == "/opt/adb"
        assert settings.server.port == 9000

    def test_port_takes_precedence(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PORT", "7000")
        monkeypatch.setenv("REWIND_PORT", "9000")
        assert load_config(str(tmp_path / "missing.yaml")).server.port == 7000

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(str(path)).recorder.fps == 30

    def test_invalid_values_rejected(self, monkeypatch, tmp_path):
        monkeypatch.setenv("REWIND_FPS", "0")
        with pytest.raises(ValidationError):
            load_config(str(tmp_path / "missing.yaml"))

    def test_invalid_mode_rejected(self):
        with pytest.raises(ValidationError):
            Settings.model_validate({"recorder": {"capture_mode": "mirror"}})


class TestToolDiscovery:

    def test_override_wins(self):
        assert find_executable("adb", [], override="/custom/adb") == "/custom/adb"

    def test_falls_back_to_bare_name(self, monkeypatch):
        monkeypatch.setattr("shutil.which", lambda name: None)
        assert find_executable("adb", ["/nonexistent/adb"]) == "adb"

    @requires_posix
    def test_common_path_used_when_not_on_path(self, monkeypatch, tmp_path):
        monkeypatch.setattr("shutil.which", lambda name: None)
        candidate = write_script(tmp_path / "adb", "#!/bin/sh\n")
        assert find_executable("adb", ["/nonexistent/adb", candidate]) == candidate

    def test_path_lookup_before_common_paths(self, monkeypatch):
        monkeypatch.setattr("shutil.which", lambda name: f"/usr/bin/{name}")
        assert find_executable("ffmpeg", ["/opt/ffmpeg"]) == "/usr/bin/ffmpeg"

    def test_resolve_tool_paths(self, monkeypatch):
        monkeypatch.setattr("shutil.which", lambda name: None)
        tools = resolve_tool_paths(ToolsConfig(adb_path="/sdk/adb"))
        assert tools.adb == "/sdk/adb"
        assert tools.ffmpeg
