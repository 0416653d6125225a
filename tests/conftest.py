"""
Test Configuration
==================

Pytest fixtures and test doubles for Rewind Recorder.
"""

import asyncio
import stat
import sys
from typing import List, Optional

import pytest

from rewind_recorder.config import ToolPaths
from rewind_recorder.stream.scanner import PNG_END, PNG_SIGNATURE


def make_png(body: bytes) -> bytes:
    """Wrap a body in PNG start/end markers (not a decodable image)."""
    return PNG_SIGNATURE + body + PNG_END


def write_script(path, content: str) -> str:
    """Write an executable shell script and return its path."""
    path.write_text(content)
    path.chmod(path.stat().st_mode | stat.S_IEXEC)
    return str(path)


requires_posix = pytest.mark.skipif(
    sys.platform == "win32", reason="uses POSIX shell scripts as fake tools"
)


@pytest.fixture
def sample_pngs() -> List[bytes]:
    """Five small fake PNG frames with distinct bodies."""
    return [make_png(f"frame-{i}-".encode() * (i + 1)) for i in range(5)]


@pytest.fixture
def fake_tools() -> ToolPaths:
    """Tool paths that must never actually be executed."""
    return ToolPaths(adb="/nonexistent/adb", ffmpeg="/nonexistent/ffmpeg")


class FakeDecoder:
    """In-process stand-in for StreamDecoder that emits its name as frames."""

    def __init__(self, name: str, events: list, interval: float = 0.002) -> None:
        self.name = name
        self.events = events
        self.interval = interval
        self._active = False
        self._task: Optional[asyncio.Task] = None
        self.start_calls = 0
        self.stop_calls = 0
        self.cleaned_up = False

    @property
    def is_active(self) -> bool:
        return self._active

    def start_decoding(self, fps=30, resolution="1280x720", on_frame=None, on_error=None):
        self.start_calls += 1
        if self._active:
            return
        self._active = True
        self.events.append((asyncio.get_running_loop().time(), self.name, "start"))
        self._task = asyncio.create_task(self._emit(on_frame))

    async def _emit(self, on_frame):
        while True:
            on_frame(self.name.encode())
            await asyncio.sleep(self.interval)

    async def stop_decoding(self):
        self.stop_calls += 1
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._active:
            self.events.append((asyncio.get_running_loop().time(), self.name, "stop"))
        self._active = False

    async def cleanup(self):
        await self.stop_decoding()
        self.cleaned_up = True


class FakeDevice:
    """DeviceBridge stand-in with canned results."""

    def __init__(
        self,
        device: Optional[str] = "emulator-5554",
        sdk: int = 30,
        screenshot: Optional[bytes] = None,
        capture_delay: float = 0.0,
    ) -> None:
        self.device = device
        self.sdk = sdk
        self.screenshot = screenshot if screenshot is not None else make_png(b"shot")
        self.capture_delay = capture_delay
        self.capture_calls = 0
        self.pointer_calls: List[bool] = []
        self.fail_captures = 0

    async def get_connected_device(self):
        return self.device

    async def is_screenrecord_supported(self):
        return self.sdk >= 19

    async def set_pointer_location(self, enabled):
        self.pointer_calls.append(enabled)
        return True

    async def capture_screen(self):
        self.capture_calls += 1
        if self.capture_delay:
            await asyncio.sleep(self.capture_delay)
        if self.fail_captures > 0:
            self.fail_captures -= 1
            raise OSError("adb went away")
        return self.screenshot
