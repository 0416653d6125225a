"""
Screen Capture Scheduler
========================

Delivers an unbroken stream of frames from the device to a caller sink.

screenrecord only runs for a bounded time per invocation, so streaming
mode alternates two StreamDecoder slots on an overlapping schedule:

    t=0s    slot A starts
    t=50s   slot B starts (A still running, both feed the sink)
    t=60s   slot A stops, B is now the active slot
    t=110s  slot A starts again ...

Duplicate frames produced during the overlap are absorbed by the
FrameBuffer's timestamp deduplication.

Polling mode instead grabs one screencap per 1/fps seconds.

Design Rules:
    - At most one capture (polling or streaming) runs at a time
    - Both slots always feed the same sink
    - stop_capturing() is idempotent and raises nothing of its own;
      a cancel of the calling task still propagates
    - Errors inside the background tasks are logged, never propagated
"""

import asyncio
import logging
from typing import Callable, Optional

from rewind_recorder.config import ToolPaths
from rewind_recorder.capture.device import DeviceBridge
from rewind_recorder.capture.modes import CaptureMode
from rewind_recorder.stream.decoder import (
    DEFAULT_BIT_RATE,
    DEFAULT_READ_CHUNK_SIZE,
    DEFAULT_RESOLUTION,
    StreamDecoder,
)


logger = logging.getLogger(__name__)


FrameSink = Callable[[bytes], None]
DecoderFactory = Callable[[str], StreamDecoder]

RECORD_DURATION_MS = 60_000
OVERLAP_START_MS = 50_000

# Pause after an unexpected scheduler error before the next cycle
ERROR_BACKOFF_SEC = 1.0


class ScreenCapture:
    """
    Capture scheduler for one device.

    Attributes:
        device: adb bridge used for polling captures and device queries
        resolution: screenrecord size for streaming mode
        record_duration_ms: Segment length
        overlap_start_ms: Offset into a segment at which the next one starts

    Example:
        capture = ScreenCapture(get_tool_paths())
        await capture.start_capturing(30, CaptureMode.SCREENRECORD, buffer.add_frame)
        ...
        await capture.stop_capturing()
    """

    def __init__(
        self,
        tools: ToolPaths,
        device: Optional[DeviceBridge] = None,
        decoder_factory: Optional[DecoderFactory] = None,
        resolution: str = DEFAULT_RESOLUTION,
        bit_rate: int = DEFAULT_BIT_RATE,
        read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE,
        record_duration_ms: int = RECORD_DURATION_MS,
        overlap_start_ms: int = OVERLAP_START_MS,
    ) -> None:
        if not 0 < overlap_start_ms < record_duration_ms:
            raise ValueError("overlap_start_ms must be between 0 and record_duration_ms")

        self.tools = tools
        self.device = device or DeviceBridge(tools)
        self.resolution = resolution
        self.record_duration_ms = record_duration_ms
        self.overlap_start_ms = overlap_start_ms

        if decoder_factory is None:
            def decoder_factory(name: str) -> StreamDecoder:
                return StreamDecoder(
                    tools,
                    bit_rate=bit_rate,
                    read_chunk_size=read_chunk_size,
                    name=name,
                )
        self._decoder_factory = decoder_factory

        self._current_mode = CaptureMode.SCREENCAP
        self._capture_task: Optional[asyncio.Task] = None

        # Dual-stream state
        self._decoder_a: Optional[StreamDecoder] = None
        self._decoder_b: Optional[StreamDecoder] = None
        self._scheduler_task: Optional[asyncio.Task] = None
        self._streaming: bool = False

        self.segment_count: int = 0
        self.error_count: int = 0

    @property
    def current_mode(self) -> CaptureMode:
        return self._current_mode

    @property
    def is_capturing(self) -> bool:
        """Whether a polling or streaming capture is running."""
        if self._streaming:
            return True
        return self._capture_task is not None and not self._capture_task.done()

    # -------------------------------------------------------------------------
    # Start / stop
    # -------------------------------------------------------------------------

    async def start_capturing(
        self,
        fps: int,
        mode: CaptureMode = CaptureMode.SCREENRECORD,
        on_frame: Optional[FrameSink] = None,
    ) -> None:
        """
        Start capturing, replacing any capture already running.

        Args:
            fps: Target frames per second
            mode: SCREENCAP (polling) or SCREENRECORD (dual stream)
            on_frame: Sink called with every captured PNG
        """
        if fps < 1:
            raise ValueError("fps must be >= 1")
        if on_frame is None:
            raise ValueError("on_frame sink is required")

        await self.stop_capturing()
        self._current_mode = mode

        if mode == CaptureMode.SCREENCAP:
            self._start_screencap_mode(fps, on_frame)
        else:
            await self._start_screenrecord_mode(fps, on_frame)

        logger.info(f"Capture started: mode={mode.value} fps={fps}")

    async def stop_capturing(self) -> None:
        """
        Stop polling and streaming, killing every decoder process.

        Safe to call repeatedly or when nothing is running.
        """
        was_capturing = self.is_capturing

        task, self._capture_task = self._capture_task, None
        await _cancel_task(task)

        self._streaming = False
        task, self._scheduler_task = self._scheduler_task, None
        await _cancel_task(task)

        for decoder in (self._decoder_a, self._decoder_b):
            if decoder is None:
                continue
            try:
                await decoder.stop_decoding()
            except Exception as e:
                logger.warning(f"Error stopping decoder {decoder.name}: {e}")

        if was_capturing:
            logger.info("Capture stopped")

    async def cleanup(self) -> None:
        """Stop capturing and release both decoder slots."""
        await self.stop_capturing()
        await self._release_decoders()

    # -------------------------------------------------------------------------
    # Polling mode
    # -------------------------------------------------------------------------

    def _start_screencap_mode(self, fps: int, on_frame: FrameSink) -> None:
        self._capture_task = asyncio.create_task(
            self._poll_loop(fps, on_frame),
            name="screencap_poll",
        )

    async def _poll_loop(self, fps: int, on_frame: FrameSink) -> None:
        """One screencap per 1/fps seconds, minus the time the capture took."""
        interval = 1.0 / fps
        loop = asyncio.get_running_loop()

        while True:
            started = loop.time()

            try:
                frame = await self.device.capture_screen()
                if frame:
                    on_frame(frame)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.error_count += 1
                logger.error(f"Capture error: {e}")

            remaining = interval - (loop.time() - started)
            await asyncio.sleep(max(0.0, remaining))

    # -------------------------------------------------------------------------
    # Dual-stream mode
    # -------------------------------------------------------------------------

    async def _start_screenrecord_mode(self, fps: int, on_frame: FrameSink) -> None:
        await self._release_decoders()

        self._decoder_a = self._decoder_factory("A")
        self._decoder_b = self._decoder_factory("B")
        self._streaming = True
        self._scheduler_task = asyncio.create_task(
            self._stream_schedule(fps, on_frame),
            name="screenrecord_scheduler",
        )

    async def _stream_schedule(self, fps: int, on_frame: FrameSink) -> None:
        """Alternate slots A and B on the overlapping segment schedule."""
        overlap_sec = self.overlap_start_ms / 1000.0
        handoff_sec = (self.record_duration_ms - self.overlap_start_ms) / 1000.0
        use_a = True

        while self._streaming:
            current = self._decoder_a if use_a else self._decoder_b
            standby = self._decoder_b if use_a else self._decoder_a

            try:
                # No-op when this slot was already started as standby
                self._start_slot(current, fps, on_frame)

                await asyncio.sleep(overlap_sec)
                if not self._streaming:
                    break

                self._start_slot(standby, fps, on_frame)

                await asyncio.sleep(handoff_sec)

                await current.stop_decoding()
                self.segment_count += 1
                logger.debug(f"Handoff {current.name} -> {standby.name}")

                use_a = not use_a

            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.error_count += 1
                logger.error(f"Stream scheduler error: {e}")
                await asyncio.sleep(ERROR_BACKOFF_SEC)

    def _start_slot(self, decoder: StreamDecoder, fps: int, on_frame: FrameSink) -> None:
        decoder.start_decoding(
            fps=fps,
            resolution=self.resolution,
            on_frame=on_frame,
            on_error=self._on_stream_error,
        )

    def _on_stream_error(self, message: str) -> None:
        self.error_count += 1
        logger.error(f"Stream error: {message}")

    async def _release_decoders(self) -> None:
        for decoder in (self._decoder_a, self._decoder_b):
            if decoder is None:
                continue
            try:
                await decoder.cleanup()
            except Exception as e:
                logger.warning(f"Error releasing decoder {decoder.name}: {e}")
        self._decoder_a = None
        self._decoder_b = None

    # -------------------------------------------------------------------------
    # Device queries
    # -------------------------------------------------------------------------

    async def get_connected_device(self) -> Optional[str]:
        return await self.device.get_connected_device()

    async def is_screenrecord_supported(self) -> bool:
        return await self.device.is_screenrecord_supported()

    async def set_pointer_location(self, enabled: bool) -> bool:
        return await self.device.set_pointer_location(enabled)

    async def capture_screen(self) -> Optional[bytes]:
        return await self.device.capture_screen()


async def _cancel_task(task: Optional[asyncio.Task]) -> None:
    """
    Cancel a task and wait for it to finish.

    Errors from the task are logged. A cancel aimed at the caller while
    waiting still propagates, since wait() does not absorb it.
    """
    if task is None:
        return
    if not task.done():
        task.cancel()
        await asyncio.wait({task})
    if not task.cancelled() and task.exception() is not None:
        logger.warning(f"Task {task.get_name()} ended with error: {task.exception()}")
