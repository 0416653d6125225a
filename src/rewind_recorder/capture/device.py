"""
Device Bridge
=============

adb helpers for device discovery, capability checks and one-shot actions.

Every call runs adb as an asyncio subprocess. Failures are logged and
turned into None/False results; nothing here raises to the caller.
"""

import asyncio
import logging
import re
from typing import Optional, Tuple

from rewind_recorder.config import ToolPaths


logger = logging.getLogger(__name__)


# Android 4.4 (KitKat) introduced screenrecord
MIN_SCREENRECORD_SDK = 19


def parse_devices_output(output: str) -> Optional[str]:
    """
    Pick the first ready device from `adb devices` output.

    The "List of devices attached" header and adb daemon notices
    ("* daemon not running; starting now ...") are skipped. A device is
    ready when its line says "device" and not "unauthorized".

    Returns:
        Device serial, or None if no ready device is listed.
    """
    for line in output.splitlines():
        line = line.strip()
        if not line or line.startswith(("List of devices", "*")):
            continue
        if "device" in line and "unauthorized" not in line:
            return re.split(r"\s+", line)[0]
    return None


def parse_sdk_version(output: str) -> int:
    """Parse `getprop ro.build.version.sdk` output. 0 if not a number."""
    lines = output.strip().splitlines()
    if not lines:
        return 0
    try:
        return int(lines[0].strip())
    except ValueError:
        return 0


class DeviceBridge:
    """
    Thin async wrapper around the adb command line.

    Attributes:
        tools: Resolved adb/ffmpeg locations
        min_screenrecord_sdk: Lowest API level that supports screenrecord
    """

    def __init__(
        self,
        tools: ToolPaths,
        min_screenrecord_sdk: int = MIN_SCREENRECORD_SDK,
    ) -> None:
        self.tools = tools
        self.min_screenrecord_sdk = min_screenrecord_sdk

    async def _run_adb(self, *args: str, merge_stderr: bool = True) -> Tuple[int, bytes]:
        """Run adb to completion and return (exit code, stdout)."""
        process = await asyncio.create_subprocess_exec(
            self.tools.adb, *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT if merge_stderr else asyncio.subprocess.DEVNULL,
        )
        stdout, _ = await process.communicate()
        return process.returncode, stdout

    async def get_connected_device(self) -> Optional[str]:
        """Serial of the first authorized device, or None."""
        try:
            _, output = await self._run_adb("devices", merge_stderr=False)
        except Exception as e:
            logger.warning(f"Error getting device: {e}")
            return None
        return parse_devices_output(output.decode("utf-8", errors="replace"))

    async def get_sdk_version(self) -> int:
        """Android API level of the connected device, 0 if unknown."""
        try:
            _, output = await self._run_adb("shell", "getprop", "ro.build.version.sdk")
        except Exception as e:
            logger.warning(f"Error reading SDK version: {e}")
            return 0
        return parse_sdk_version(output.decode("utf-8", errors="replace"))

    async def is_screenrecord_supported(self) -> bool:
        """Whether the device can stream via screenrecord."""
        return await self.get_sdk_version() >= self.min_screenrecord_sdk

    async def set_pointer_location(self, enabled: bool) -> bool:
        """
        Toggle the on-screen pointer location overlay.

        Returns:
            True if adb reported success.
        """
        value = "1" if enabled else "0"
        try:
            code, _ = await self._run_adb(
                "shell", "settings", "put", "system", "pointer_location", value
            )
        except Exception as e:
            logger.warning(f"Failed to set pointer location: {e}")
            return False
        return code == 0

    async def capture_screen(self) -> Optional[bytes]:
        """
        Grab a single PNG screenshot.

        Returns:
            PNG bytes, or None on failure or empty output.
        """
        try:
            code, data = await self._run_adb("exec-out", "screencap", "-p", merge_stderr=False)
        except Exception as e:
            logger.warning(f"Screenshot error: {e}")
            return None

        if code == 0 and data:
            return data
        return None
