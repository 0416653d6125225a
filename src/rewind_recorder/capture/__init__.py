"""
Capture Module
==============

Device-side capture for Rewind Recorder:
    - CaptureMode: SCREENCAP polling or SCREENRECORD streaming
    - DeviceBridge: adb device discovery and one-shot commands
    - ScreenCapture: Scheduler running polling or dual-stream capture
"""

from rewind_recorder.capture.modes import CaptureMode
from rewind_recorder.capture.device import DeviceBridge
from rewind_recorder.capture.scheduler import ScreenCapture


__all__ = [
    "CaptureMode",
    "DeviceBridge",
    "ScreenCapture",
]
