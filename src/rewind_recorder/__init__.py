"""
Rewind Recorder
===============

Always-on screen recorder for Android devices that keeps only the most
recent window of frames in memory and saves a trailing slice on demand.

This package provides:
    - stream: Frame ring buffer, PNG frame scanner and H.264 stream decoder
    - capture: adb device bridge and dual-stream capture scheduler
    - output: FFmpeg video encoder and screenshot writer
    - session: Recording session glue (start/stop/save)

Example:
    from rewind_recorder.config import settings
    from rewind_recorder.session import RecorderSession

    # The session is created by the FastAPI application
    # See main.py for entry point
"""

__version__ = "0.1.0"
__author__ = "Rewind Recorder Project"

__all__ = [
    "__version__",
]
