"""
Frame Data Model
=================

Internal frame representation for the capture pipeline.

This module defines the TimestampedFrame class that is stored in the
FrameBuffer and handed to the video encoder.

Design Rules:
    - Payload is an opaque encoded image (PNG); it is never decoded here
    - Timestamps are wall-clock milliseconds since the epoch
    - Two frames are equal only if payload and timestamp both match
"""

import time
from dataclasses import dataclass, field


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class TimestampedFrame:
    """
    Encoded frame captured at a point in time.

    Immutable (frozen) so snapshots handed to readers can't be modified.

    Attributes:
        data: Encoded image bytes (PNG)
        timestamp: Capture time in milliseconds since the epoch
    """

    data: bytes
    timestamp: int = field(default_factory=now_ms)

    @property
    def size(self) -> int:
        """Payload size in bytes."""
        return len(self.data)

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the full image."""
        return (
            f"TimestampedFrame(timestamp={self.timestamp}, "
            f"size={len(self.data)})"
        )
