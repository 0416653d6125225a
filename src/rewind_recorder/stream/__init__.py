"""
Stream Module
=============

Frame storage and stream decoding components.

This module provides the ingestion layer for Rewind Recorder:
    - TimestampedFrame: Immutable (payload, timestamp) frame value
    - FrameBuffer: Thread-safe ring buffer with timestamp deduplication
    - PngFrameScanner: Splits a PNG byte stream into frames
    - StreamDecoder: screenrecord -> ffmpeg process pair emitting PNG frames

Example:
    from rewind_recorder.stream import FrameBuffer, StreamDecoder
    from rewind_recorder.config import get_tool_paths

    buffer = FrameBuffer(max_duration_seconds=60, fps=30)
    decoder = StreamDecoder(get_tool_paths())
    decoder.start_decoding(fps=30, on_frame=buffer.add_frame)
"""

from rewind_recorder.stream.frame import TimestampedFrame
from rewind_recorder.stream.buffer import FrameBuffer
from rewind_recorder.stream.scanner import PngFrameScanner
from rewind_recorder.stream.decoder import StreamDecoder


__all__ = [
    "TimestampedFrame",
    "FrameBuffer",
    "PngFrameScanner",
    "StreamDecoder",
]
