"""
Video Encoder
=============

Writes buffered frames to an MP4 file with ffmpeg.

Frames are dumped as numbered PNGs into a temporary directory and encoded
with libx264. An optional drawtext filter burns the capture wall-clock time
into the video.

Design Rules:
    - Returns the output path, or None on any failure (never raises)
    - The temporary frame directory is always removed
    - Output directory problems are reported as False from set_output_directory
"""

import asyncio
import logging
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from rewind_recorder.config import ToolPaths
from rewind_recorder.stream.frame import TimestampedFrame


logger = logging.getLogger(__name__)


FRAME_PATTERN = "frame_%05d.png"
FILE_TIMESTAMP_FORMAT = "%Y-%m-%d_%H-%M-%S"

# ':' separates drawtext options, so the clock uses '.'
OVERLAY_TIME_FORMAT = "%Y-%m-%d %H.%M.%S"

EVEN_SCALE_FILTER = "scale=trunc(iw/2)*2:trunc(ih/2)*2"


def build_video_filter(
    start_epoch_s: int,
    show_timestamp: bool = True,
    font_path: Optional[str] = None,
) -> str:
    """
    Build the -vf filter chain.

    Always scales to even dimensions (required by yuv420p). With
    show_timestamp, adds a yellow clock starting at start_epoch_s.

    Args:
        start_epoch_s: Epoch seconds of the first frame
        show_timestamp: Whether to draw the clock
        font_path: Font file for drawtext; skipped if None or missing
    """
    if not show_timestamp:
        return EVEN_SCALE_FILTER

    options = []
    if font_path and os.path.exists(font_path):
        options.append(f"fontfile={font_path}")
    options.extend([
        f"text='%{{pts\\:localtime\\:{start_epoch_s}\\:{OVERLAY_TIME_FORMAT}}}'",
        "fontsize=36",
        "fontcolor=yellow",
        "borderw=3",
        "bordercolor=black",
        # Below the status bar
        "x=20:y=100",
    ])
    return f"{EVEN_SCALE_FILTER},drawtext=" + ":".join(options)


class VideoEncoder:
    """
    ffmpeg-backed encoder for saved recordings and screenshots.

    Attributes:
        tools: Resolved adb/ffmpeg locations
        font_path: Font for the timestamp overlay

    Example:
        encoder = VideoEncoder(get_tool_paths(), output_dir="~/Recordings")
        frames = buffer.get_frames_with_timestamp(10)
        path = await encoder.encode_with_timestamp(frames, buffer.calculate_actual_fps(frames))
    """

    def __init__(
        self,
        tools: ToolPaths,
        output_dir: Optional[str] = None,
        font_path: Optional[str] = None,
    ) -> None:
        self.tools = tools
        self.font_path = font_path
        self._output_dir = Path(output_dir).expanduser() if output_dir else (
            Path.home() / "Desktop" / "AndroidRecordings"
        )

    @property
    def configured_directory(self) -> Path:
        """Output directory as configured, without creating it."""
        return self._output_dir

    @property
    def output_directory(self) -> Path:
        """Current output directory, created on first access."""
        self._output_dir.mkdir(parents=True, exist_ok=True)
        return self._output_dir

    def set_output_directory(self, path: str) -> bool:
        """
        Switch the output directory.

        Returns:
            True if the directory exists (or was created) and is writable.
            The previous directory is kept otherwise.
        """
        try:
            directory = Path(path).expanduser()
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Cannot create output directory {path}: {e}")
            return False

        if not directory.is_dir() or not os.access(directory, os.W_OK):
            logger.warning(f"Output directory not writable: {path}")
            return False

        self._output_dir = directory
        logger.info(f"Output directory set to {directory}")
        return True

    async def encode(self, frames: List[bytes], fps: int) -> Optional[str]:
        """Encode raw PNG payloads without an overlay."""
        if not frames:
            logger.warning("No frames to encode")
            return None
        logger.info(f"Encoding {len(frames)} frames at {fps}fps")
        return await self._encode(frames, fps, EVEN_SCALE_FILTER)

    async def encode_with_timestamp(
        self,
        frames: List[TimestampedFrame],
        fps: int,
        show_timestamp: bool = True,
    ) -> Optional[str]:
        """
        Encode timestamped frames, optionally burning in the capture time.

        Args:
            frames: Frames in ascending timestamp order
            fps: Output frame rate (use FrameBuffer.calculate_actual_fps)
            show_timestamp: Draw the wall-clock overlay

        Returns:
            Path of the written MP4, or None on failure.
        """
        if not frames:
            logger.warning("No frames to encode")
            return None

        video_filter = build_video_filter(
            frames[0].timestamp // 1000,
            show_timestamp=show_timestamp,
            font_path=self.font_path,
        )
        logger.info(
            f"Encoding {len(frames)} frames at {fps}fps "
            f"(timestamp overlay: {show_timestamp})"
        )
        return await self._encode([frame.data for frame in frames], fps, video_filter)

    async def save_screenshot(self, data: bytes) -> Optional[str]:
        """Write a PNG screenshot to the output directory."""
        if not data:
            return None
        stamp = datetime.now().strftime(FILE_TIMESTAMP_FORMAT)
        try:
            path = self.output_directory / f"screenshot_{stamp}.png"
            await asyncio.to_thread(path.write_bytes, data)
        except OSError as e:
            logger.error(f"Failed to save screenshot: {e}")
            return None
        logger.info(f"Screenshot saved: {path}")
        return str(path)

    async def is_ffmpeg_available(self) -> bool:
        """Whether ffmpeg runs and exits cleanly."""
        try:
            process = await asyncio.create_subprocess_exec(
                self.tools.ffmpeg, "-version",
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
            return await process.wait() == 0
        except OSError:
            return False

    def build_encode_command(self, frame_dir: str, fps: int, video_filter: str, output: str) -> List[str]:
        return [
            self.tools.ffmpeg,
            "-y",
            "-framerate", str(fps),
            "-i", os.path.join(frame_dir, FRAME_PATTERN),
            "-c:v", "libx264",
            "-preset", "fast",
            "-crf", "23",
            "-pix_fmt", "yuv420p",
            "-vf", video_filter,
            output,
        ]

    async def _encode(self, payloads: List[bytes], fps: int, video_filter: str) -> Optional[str]:
        temp_dir = tempfile.mkdtemp(prefix="rewind_recorder_")
        try:
            await asyncio.to_thread(_write_frames, temp_dir, payloads)

            stamp = datetime.now().strftime(FILE_TIMESTAMP_FORMAT)
            output_file = self.output_directory / f"recording_{stamp}.mp4"

            process = await asyncio.create_subprocess_exec(
                *self.build_encode_command(temp_dir, fps, video_filter, str(output_file)),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
            output, _ = await process.communicate()

            if process.returncode == 0 and output_file.exists():
                logger.info(f"Video saved: {output_file}")
                return str(output_file)

            logger.error(
                f"FFmpeg failed with exit code {process.returncode}: "
                f"{output.decode('utf-8', errors='replace')[-800:]}"
            )
            return None

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Encoding error: {e}")
            return None
        finally:
            await asyncio.to_thread(shutil.rmtree, temp_dir, ignore_errors=True)


def _write_frames(directory: str, payloads: List[bytes]) -> None:
    for index, payload in enumerate(payloads):
        with open(os.path.join(directory, FRAME_PATTERN % index), "wb") as f:
            f.write(payload)
