"""
Capture Modes
=============

How frames are pulled from the device.
"""

from enum import Enum


class CaptureMode(str, Enum):
    """
    Capture strategy.

    Attributes:
        SCREENCAP: One screenshot per tick (low fps, works everywhere)
        SCREENRECORD: Continuous H.264 stream via two overlapping decoders
            (high fps, Android 4.4+)
    """

    SCREENCAP = "screencap"
    SCREENRECORD = "screenrecord"
