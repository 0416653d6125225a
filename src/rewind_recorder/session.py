"""
Recorder Session
================

Ties capture, buffering and encoding together for one device.

A session owns one FrameBuffer for its whole lifetime; every capture slot
feeds that same buffer. Outcomes are reported as a status message and
None/False results, never as raised exceptions.

Example:
    session = RecorderSession.from_settings(settings, get_tool_paths())
    await session.refresh_device()
    await session.start_recording()
    ...
    path = await session.save_recording(30)
    print(session.message)
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from rewind_recorder.config import Settings, ToolPaths
from rewind_recorder.capture import CaptureMode, DeviceBridge, ScreenCapture
from rewind_recorder.models import RecorderStatus
from rewind_recorder.output import VideoEncoder
from rewind_recorder.stream import FrameBuffer


logger = logging.getLogger(__name__)


class RecorderSession:
    """
    Recording session state machine: idle -> recording -> idle, with saves
    and screenshots allowed in either state (one at a time).

    Attributes:
        buffer: Frame ring buffer shared by all capture slots
        capture: Capture scheduler
        encoder: Video/screenshot writer
        fps: Capture frame rate
        capture_mode: Preferred capture mode
        show_touch_pointer: Show the pointer overlay while recording
        show_timestamp_overlay: Burn capture time into saved videos
    """

    def __init__(
        self,
        buffer: FrameBuffer,
        capture: ScreenCapture,
        encoder: VideoEncoder,
        capture_mode: CaptureMode = CaptureMode.SCREENRECORD,
        show_touch_pointer: bool = True,
        show_timestamp_overlay: bool = True,
    ) -> None:
        self.buffer = buffer
        self.capture = capture
        self.encoder = encoder
        self.capture_mode = capture_mode
        self.show_touch_pointer = show_touch_pointer
        self.show_timestamp_overlay = show_timestamp_overlay

        self.device: Optional[str] = None
        self.message: str = "No device connected"
        self._recording: bool = False
        self._saving: bool = False
        self._save_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, tools: ToolPaths) -> "RecorderSession":
        """Build a session and its components from loaded settings."""
        device = DeviceBridge(tools, min_screenrecord_sdk=settings.capture.min_screenrecord_sdk)
        capture = ScreenCapture(
            tools,
            device=device,
            resolution=settings.capture.resolution,
            bit_rate=settings.capture.bit_rate,
            read_chunk_size=settings.capture.read_chunk_size,
            record_duration_ms=settings.capture.record_duration_ms,
            overlap_start_ms=settings.capture.overlap_start_ms,
        )
        encoder = VideoEncoder(
            tools,
            output_dir=settings.output.directory,
            font_path=settings.output.font_path,
        )
        buffer = FrameBuffer(
            max_duration_seconds=settings.recorder.buffer_duration_seconds,
            fps=settings.recorder.fps,
        )
        return cls(
            buffer=buffer,
            capture=capture,
            encoder=encoder,
            capture_mode=CaptureMode(settings.recorder.capture_mode),
            show_touch_pointer=settings.recorder.show_touch_pointer,
            show_timestamp_overlay=settings.recorder.show_timestamp_overlay,
        )

    @property
    def fps(self) -> int:
        return self.buffer.fps

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def is_saving(self) -> bool:
        return self._saving

    # -------------------------------------------------------------------------
    # Device
    # -------------------------------------------------------------------------

    async def refresh_device(self) -> Optional[str]:
        """Look up the connected device and update the status line."""
        self.device = await self.capture.get_connected_device()
        if self.device is not None:
            self.message = f"Device: {self.device}"
        else:
            self.message = "No device connected"
        return self.device

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    async def start_recording(self) -> bool:
        """
        Clear the buffer and start capturing into it.

        Returns:
            True if capture is running afterwards.
        """
        if self._recording:
            return True

        if self.device is None and await self.refresh_device() is None:
            return False

        mode = self.capture_mode
        if mode == CaptureMode.SCREENRECORD and not await self.capture.is_screenrecord_supported():
            logger.warning("screenrecord not supported on this device, falling back to screencap")
            mode = CaptureMode.SCREENCAP

        self.buffer.clear()
        await self.capture.set_pointer_location(self.show_touch_pointer)
        await self.capture.start_capturing(self.fps, mode, self._on_frame)

        self._recording = True
        self.message = "Recording..."
        return True

    async def stop_recording(self) -> None:
        """Stop capturing. Buffered frames are kept for saving."""
        await self.capture.stop_capturing()
        was_recording = self._recording
        self._recording = False

        # A save in progress still needs the device; it resets the pointer itself
        if not self._saving:
            if was_recording:
                await self.capture.set_pointer_location(False)
            self.message = "Stopped" if self.device is not None else "No device connected"

    def _on_frame(self, data: bytes) -> None:
        self.buffer.add_frame(data)

    # -------------------------------------------------------------------------
    # Saving
    # -------------------------------------------------------------------------

    async def save_recording(self, duration_seconds: int) -> Optional[str]:
        """
        Encode the last N seconds of the buffer.

        Returns:
            Path of the saved video, or None (see message for why).
        """
        if self._save_lock.locked():
            return None

        async with self._save_lock:
            if self.buffer.get_frame_count() == 0:
                self.message = "No frames to save"
                return None

            self._saving = True
            self.message = f"Saving {duration_seconds}s..."
            path: Optional[str] = None
            try:
                frames = self.buffer.get_frames_with_timestamp(duration_seconds)
                if not frames:
                    self.message = "No frames in range"
                    return None

                actual_fps = self.buffer.calculate_actual_fps(frames)
                path = await self.encoder.encode_with_timestamp(
                    frames,
                    actual_fps,
                    show_timestamp=self.show_timestamp_overlay,
                )
                if path is not None:
                    self.message = f"Saved: {Path(path).name}"
                else:
                    self.message = "Failed to save"
            except Exception as e:
                logger.exception("Save failed")
                self.message = f"Error: {e}"
            finally:
                await self._finish_saving()

            return path

    async def take_screenshot(self) -> Optional[str]:
        """
        Capture and save a single screenshot.

        Returns:
            Path of the saved PNG, or None (see message for why).
        """
        if self._save_lock.locked():
            return None
        if self.device is None:
            self.message = "No device connected"
            return None

        async with self._save_lock:
            self._saving = True
            self.message = "Taking screenshot..."
            path: Optional[str] = None
            try:
                data = await self.capture.capture_screen()
                if data:
                    path = await self.encoder.save_screenshot(data)
                    if path is not None:
                        self.message = f"Screenshot: {Path(path).name}"
                    else:
                        self.message = "Failed to save screenshot"
                else:
                    self.message = "Failed to capture screenshot"
            except Exception as e:
                logger.exception("Screenshot failed")
                self.message = f"Error: {e}"
            finally:
                await self._finish_saving()

            return path

    async def _finish_saving(self) -> None:
        self._saving = False
        if not self._recording:
            await self.capture.set_pointer_location(False)

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    def update_settings(self, duration: Optional[int] = None, fps: Optional[int] = None) -> None:
        """
        Change buffer window and/or frame rate.

        A new fps applies to the next start_recording().
        """
        self.buffer.update_settings(
            duration if duration is not None else self.buffer.max_duration_seconds,
            fps if fps is not None else self.buffer.fps,
        )

    async def set_show_touch_pointer(self, enabled: bool) -> None:
        self.show_touch_pointer = enabled
        if self._recording:
            await self.capture.set_pointer_location(enabled)

    def set_output_directory(self, path: str) -> bool:
        ok = self.encoder.set_output_directory(path)
        if not ok:
            self.message = f"Output directory not writable: {path}"
        return ok

    def status(self) -> RecorderStatus:
        """Snapshot for the control surface."""
        frame_count = self.buffer.get_frame_count()
        return RecorderStatus(
            recording=self._recording,
            saving=self._saving,
            device=self.device,
            capture_mode=self.capture.current_mode if self._recording else self.capture_mode,
            fps=self.buffer.fps,
            buffer_duration_seconds=self.buffer.max_duration_seconds,
            frame_count=frame_count,
            buffered_seconds=frame_count // self.buffer.fps,
            memory_mb=self.buffer.get_total_memory_mb(),
            output_directory=str(self.encoder.configured_directory),
            message=self.message,
        )

    async def shutdown(self) -> None:
        """Stop everything and release capture resources."""
        if self._recording:
            await self.stop_recording()
        await self.capture.cleanup()
