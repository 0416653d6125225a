"""
Frame Buffer
=============

Thread-safe, time-ordered ring buffer of recent frames.

This module provides the FrameBuffer class, which keeps the trailing
window of captured frames in memory until a save is requested.

Design Rules:
    - Bounded to max_duration_seconds * fps frames (evicts oldest first)
    - Frames closer than DEDUPE_THRESHOLD_MS to a stored frame are dropped
    - Keys are timestamps; reads always come back in ascending order
    - Reads return snapshots, never live views
    - Does NOT decode or modify frames
"""

import bisect
import logging
import threading
from typing import Dict, List, Optional

from rewind_recorder.stream.frame import TimestampedFrame, now_ms


logger = logging.getLogger(__name__)


DEDUPE_THRESHOLD_MS = 30

MIN_ACTUAL_FPS = 1
MAX_ACTUAL_FPS = 60


class FrameBuffer:
    """
    Bounded, deduplicating store of timestamped frames.

    Writers (capture callbacks) and readers (save requests, status
    queries) may run on different threads. A sorted key list plus a dict,
    guarded by a single lock, gives atomic insert/evict and point-in-time
    reads.

    Attributes:
        max_duration_seconds: Trailing window kept in memory
        fps: Configured frame rate (also the fallback for actual fps)
        max_frames: Capacity, max_duration_seconds * fps

    Example:
        buffer = FrameBuffer(max_duration_seconds=60, fps=30)

        # Capture callback
        buffer.add_frame(png_bytes)

        # Save the last 10 seconds
        frames = buffer.get_frames_with_timestamp(10)
        fps = buffer.calculate_actual_fps(frames)
    """

    def __init__(self, max_duration_seconds: int = 60, fps: int = 30) -> None:
        """
        Initialize frame buffer.

        Args:
            max_duration_seconds: Window length in seconds. Must be >= 1.
            fps: Frame rate. Must be >= 1.
        """
        _validate_settings(max_duration_seconds, fps)

        self._max_duration_seconds = max_duration_seconds
        self._fps = fps
        self._lock = threading.Lock()
        self._timestamps: List[int] = []
        self._frames: Dict[int, TimestampedFrame] = {}
        self._total_added: int = 0
        self._duplicate_count: int = 0
        self._evicted_count: int = 0

    @property
    def max_duration_seconds(self) -> int:
        return self._max_duration_seconds

    @property
    def fps(self) -> int:
        return self._fps

    @property
    def max_frames(self) -> int:
        """Maximum number of frames retained."""
        return self._max_duration_seconds * self._fps

    def add_frame(self, data: bytes, timestamp: Optional[int] = None) -> bool:
        """
        Store a frame unless another frame sits within the dedup threshold.

        After insertion the oldest frames are evicted until the buffer is
        back within capacity.

        Args:
            data: Encoded frame bytes
            timestamp: Capture time in ms. Defaults to now.

        Returns:
            True if the frame was stored, False if it was a duplicate.
        """
        ts = now_ms() if timestamp is None else int(timestamp)

        with self._lock:
            idx = bisect.bisect_left(self._timestamps, ts)

            # Nearest neighbours on both sides
            if idx < len(self._timestamps) and self._timestamps[idx] - ts < DEDUPE_THRESHOLD_MS:
                self._duplicate_count += 1
                return False
            if idx > 0 and ts - self._timestamps[idx - 1] < DEDUPE_THRESHOLD_MS:
                self._duplicate_count += 1
                return False

            self._timestamps.insert(idx, ts)
            self._frames[ts] = TimestampedFrame(data=data, timestamp=ts)
            self._total_added += 1
            self._evict_locked()

        return True

    def get_frames(self, duration_seconds: int) -> List[bytes]:
        """
        Frames from the last N seconds of wall-clock time.

        Args:
            duration_seconds: Window length, anchored at now

        Returns:
            Frame payloads in ascending timestamp order.
        """
        cutoff = now_ms() - duration_seconds * 1000
        with self._lock:
            start = bisect.bisect_left(self._timestamps, cutoff)
            return [self._frames[ts].data for ts in self._timestamps[start:]]

    def get_frames_with_timestamp(self, duration_seconds: int) -> List[TimestampedFrame]:
        """
        Frames from the last N seconds, anchored at the newest stored frame.

        Anchoring at the newest frame instead of now keeps the latency
        between the last capture and the save request out of the window.

        Args:
            duration_seconds: Window length in seconds

        Returns:
            Frames in ascending timestamp order. Empty if the buffer is empty.
        """
        with self._lock:
            if not self._timestamps:
                return []
            cutoff = self._timestamps[-1] - duration_seconds * 1000
            start = bisect.bisect_left(self._timestamps, cutoff)
            return [self._frames[ts] for ts in self._timestamps[start:]]

    def get_all_frames(self) -> List[bytes]:
        """All stored payloads in ascending timestamp order."""
        with self._lock:
            return [self._frames[ts].data for ts in self._timestamps]

    def get_all_frames_with_timestamp(self) -> List[TimestampedFrame]:
        """All stored frames in ascending timestamp order."""
        with self._lock:
            return [self._frames[ts] for ts in self._timestamps]

    def calculate_actual_fps(self, frames: List[TimestampedFrame]) -> int:
        """
        Frame rate actually achieved by a list of frames.

        Args:
            frames: Frames in ascending timestamp order

        Returns:
            frames / elapsed seconds, clamped to [1, 60]. The configured fps
            when there are fewer than 2 frames or no elapsed time.
        """
        if len(frames) < 2:
            return self._fps

        duration_ms = frames[-1].timestamp - frames[0].timestamp
        if duration_ms <= 0:
            return self._fps

        actual = int(len(frames) * 1000.0 / duration_ms)
        return max(MIN_ACTUAL_FPS, min(MAX_ACTUAL_FPS, actual))

    def update_settings(self, duration: int, fps: int) -> None:
        """
        Change the window length and frame rate.

        Evicts immediately if the new capacity is smaller than the current
        frame count.
        """
        _validate_settings(duration, fps)

        with self._lock:
            self._max_duration_seconds = duration
            self._fps = fps
            self._evict_locked()

        logger.info(f"Buffer settings updated: duration={duration}s fps={fps}")

    def get_frame_count(self) -> int:
        """Current number of stored frames."""
        with self._lock:
            return len(self._timestamps)

    def get_total_memory_mb(self) -> int:
        """Total payload size in whole MiB."""
        with self._lock:
            total = sum(len(frame.data) for frame in self._frames.values())
        return total // (1024 * 1024)

    def get_buffered_duration_ms(self) -> int:
        """Span between the oldest and newest stored frame."""
        with self._lock:
            if not self._timestamps:
                return 0
            return self._timestamps[-1] - self._timestamps[0]

    def get_status(self) -> str:
        """Human-readable buffer summary."""
        duration_s = self.get_buffered_duration_ms() // 1000
        return (
            f"Frames: {self.get_frame_count()}, "
            f"Duration: {duration_s}s, "
            f"Max: {self._max_duration_seconds}s"
        )

    def clear(self) -> None:
        """Drop all stored frames."""
        with self._lock:
            self._timestamps.clear()
            self._frames.clear()

    def metrics(self) -> dict:
        """
        Get buffer metrics for observability.

        Returns:
            Dict with size, max_frames, memory_mb, duplicate and eviction counts
        """
        with self._lock:
            size = len(self._timestamps)
            total_bytes = sum(len(frame.data) for frame in self._frames.values())
            buffered_ms = self._timestamps[-1] - self._timestamps[0] if size else 0
            max_frames = self._max_duration_seconds * self._fps
            counters = (self._total_added, self._duplicate_count, self._evicted_count)

        return {
            "size": size,
            "max_frames": max_frames,
            "memory_mb": total_bytes // (1024 * 1024),
            "buffered_ms": buffered_ms,
            "total_added": counters[0],
            "duplicate_count": counters[1],
            "evicted_count": counters[2],
        }

    def _evict_locked(self) -> None:
        """Drop oldest frames until within capacity. Caller holds the lock."""
        overflow = len(self._timestamps) - self.max_frames
        if overflow <= 0:
            return

        for ts in self._timestamps[:overflow]:
            del self._frames[ts]
        del self._timestamps[:overflow]
        self._evicted_count += overflow


def _validate_settings(duration: int, fps: int) -> None:
    if duration < 1:
        raise ValueError("max_duration_seconds must be >= 1")
    if fps < 1:
        raise ValueError("fps must be >= 1")
