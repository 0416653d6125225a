"""
Stream Decoder
==============

Turns a live screenrecord H.264 stream into discrete PNG frames.

Pipeline:
    adb exec-out screenrecord (P1) --stdout--> relay --stdin--> ffmpeg (P2)
    ffmpeg stdout --> PngFrameScanner --> on_frame(png_bytes)

Design Rules:
    - One decoder owns exactly one process pair; nothing is shared
    - The relay closes ffmpeg's stdin when screenrecord's stdout closes
    - Setup and read failures reach on_error once and stop the pipeline
    - stop_decoding() kills both processes and raises nothing of its own;
      a cancel of the calling task still propagates
    - A run clears is_active only after its processes are reaped
    - Callbacks run on the event loop and must not block
"""

import asyncio
import logging
from asyncio.subprocess import Process
from typing import Callable, List, Optional

from rewind_recorder.config import ToolPaths
from rewind_recorder.stream.scanner import PngFrameScanner


logger = logging.getLogger(__name__)


FrameCallback = Callable[[bytes], None]
ErrorCallback = Callable[[str], None]

DEFAULT_RESOLUTION = "1280x720"
DEFAULT_BIT_RATE = 8_000_000
DEFAULT_READ_CHUNK_SIZE = 8192


class StreamDecoder:
    """
    Decodes one screenrecord segment into PNG frames.

    Attributes:
        tools: Resolved adb/ffmpeg locations
        bit_rate: screenrecord bit rate
        read_chunk_size: Bytes per read from ffmpeg stdout
        name: Label used in logs (e.g. "A" / "B")

    Example:
        decoder = StreamDecoder(get_tool_paths(), name="A")
        decoder.start_decoding(fps=30, resolution="1280x720", on_frame=buffer.add_frame)
        ...
        await decoder.stop_decoding()
    """

    def __init__(
        self,
        tools: ToolPaths,
        bit_rate: int = DEFAULT_BIT_RATE,
        read_chunk_size: int = DEFAULT_READ_CHUNK_SIZE,
        name: str = "decoder",
    ) -> None:
        self.tools = tools
        self.bit_rate = bit_rate
        self.read_chunk_size = read_chunk_size
        self.name = name

        self._running: bool = False
        self._closed: bool = False
        self._task: Optional[asyncio.Task] = None
        self._producer: Optional[Process] = None
        self._extractor: Optional[Process] = None

        self.frames_decoded: int = 0

    @property
    def is_active(self) -> bool:
        """True between a successful start and a stop or error."""
        return self._running

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def build_producer_command(self, resolution: str) -> List[str]:
        """screenrecord writing raw H.264 to stdout."""
        return [
            self.tools.adb, "exec-out", "screenrecord",
            "--output-format=h264",
            "--size", resolution,
            "--bit-rate", str(self.bit_rate),
            "-",
        ]

    def build_extractor_command(self, fps: int) -> List[str]:
        """ffmpeg reading H.264 on stdin and writing PNGs at a constant rate."""
        return [
            self.tools.ffmpeg,
            "-hide_banner",
            "-loglevel", "error",
            "-f", "h264",
            "-i", "pipe:0",
            # cfr keeps frames coming while the screen is static
            "-vf", f"fps={fps}",
            "-vsync", "cfr",
            "-f", "image2pipe",
            "-vcodec", "png",
            "pipe:1",
        ]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start_decoding(
        self,
        fps: int = 30,
        resolution: str = DEFAULT_RESOLUTION,
        on_frame: Optional[FrameCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        """
        Launch the process pair and start emitting frames.

        No-op if already running. Must be called from a running event loop.

        Args:
            fps: Frames per second extracted from the stream
            resolution: screenrecord size, e.g. "1280x720"
            on_frame: Called with each complete PNG
            on_error: Called once with a message if the pipeline fails
        """
        if self._closed:
            raise RuntimeError(f"StreamDecoder {self.name} has been cleaned up")
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(
            self._run(fps, resolution, on_frame, on_error),
            name=f"stream_decoder_{self.name}",
        )
        logger.info(f"Decoder {self.name} starting: fps={fps} resolution={resolution}")

    async def stop_decoding(self) -> None:
        """
        Stop the pipeline and kill both processes.

        Safe to call repeatedly or when nothing is running.
        """
        was_running = self._running
        self._running = False

        task, self._task = self._task, None
        if task is not None:
            # The task reaps its own processes; wait() never absorbs a cancel of the caller
            if not task.done():
                task.cancel()
                await asyncio.wait({task})
            if not task.cancelled() and task.exception() is not None:
                logger.warning(f"Decoder {self.name} task ended with error: {task.exception()}")

        if was_running:
            logger.info(f"Decoder {self.name} stopped ({self.frames_decoded} frames)")

    async def cleanup(self) -> None:
        """Stop and release the decoder. It cannot be started again."""
        await self.stop_decoding()
        self._closed = True

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    async def _run(
        self,
        fps: int,
        resolution: str,
        on_frame: Optional[FrameCallback],
        on_error: Optional[ErrorCallback],
    ) -> None:
        producer: Optional[Process] = None
        extractor: Optional[Process] = None
        relay: Optional[asyncio.Task] = None
        try:
            producer = await asyncio.create_subprocess_exec(
                *self.build_producer_command(resolution),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
            self._producer = producer
            extractor = await asyncio.create_subprocess_exec(
                *self.build_extractor_command(fps),
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
            self._extractor = extractor

            relay = asyncio.create_task(
                self._relay(producer, extractor),
                name=f"stream_relay_{self.name}",
            )

            await self._read_frames(extractor, PngFrameScanner(), on_frame)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Decoder {self.name} error: {e}")
            if on_error is not None:
                try:
                    on_error(f"Stream decode error: {e}")
                except Exception as cb_err:
                    logger.error(f"Decoder {self.name} error callback failed: {cb_err}")
        finally:
            if relay is not None and not relay.done():
                relay.cancel()
            await self._destroy_processes(producer, extractor)
            if relay is not None:
                await asyncio.wait({relay})

            if self._producer is producer:
                self._producer = None
            if self._extractor is extractor:
                self._extractor = None
            # Only now may start_decoding() launch the next run
            if self._task is asyncio.current_task():
                self._running = False

    async def _relay(self, producer: Process, extractor: Process) -> None:
        """Copy screenrecord stdout into ffmpeg stdin until either side closes."""
        assert producer.stdout is not None and extractor.stdin is not None
        try:
            while True:
                chunk = await producer.stdout.read(self.read_chunk_size)
                if not chunk:
                    break
                extractor.stdin.write(chunk)
                await extractor.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            logger.debug(f"Decoder {self.name} relay closed: {e}")
        finally:
            # Lets ffmpeg flush its last frames and exit
            try:
                extractor.stdin.close()
            except Exception:
                pass

    async def _read_frames(
        self,
        extractor: Process,
        scanner: PngFrameScanner,
        on_frame: Optional[FrameCallback],
    ) -> None:
        """Scan ffmpeg stdout and emit complete PNG frames."""
        assert extractor.stdout is not None
        while True:
            chunk = await extractor.stdout.read(self.read_chunk_size)
            if not chunk:
                break

            for png in scanner.feed(chunk):
                self.frames_decoded += 1
                if on_frame is None:
                    continue
                try:
                    on_frame(png)
                except Exception as e:
                    logger.error(f"Decoder {self.name} frame callback failed: {e}")

        logger.debug(f"Decoder {self.name} stream ended")

    async def _destroy_processes(self, *processes: Optional[Process]) -> None:
        """Kill the given processes and reap them. Never raises."""
        for process in processes:
            if process is None:
                continue
            try:
                if process.returncode is None:
                    process.kill()
                await process.wait()
            except ProcessLookupError:
                pass
            except Exception as e:
                logger.warning(f"Decoder {self.name} failed to reap process: {e}")
