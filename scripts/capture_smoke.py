#!/usr/bin/env python3
"""
Live Capture Smoke Test
=======================

Standalone script to exercise the capture pipeline against a real device.

This script:
    1. Detects the connected Android device via adb
    2. Captures into a FrameBuffer for a configurable duration
       (long enough to cross at least one segment handoff by default)
    3. Logs buffer stats every few seconds, flagging delivery gaps
    4. Optionally saves the last N seconds to MP4

Prerequisites:
    - adb and ffmpeg installed, one device connected and authorized
    - Install the package: pip install -e .

Usage:
    python scripts/capture_smoke.py --duration 75
    python scripts/capture_smoke.py --mode screencap --fps 5 --save 10
"""

import argparse
import asyncio
import logging
import sys
import time

from rewind_recorder.capture import CaptureMode, ScreenCapture
from rewind_recorder.config import get_tool_paths
from rewind_recorder.output import VideoEncoder
from rewind_recorder.stream import FrameBuffer


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


# Delivery pauses longer than this are reported as gaps
GAP_WARNING_MS = 500


async def run_smoke(
    mode: CaptureMode,
    fps: int,
    duration: int,
    report_interval: int,
    save_seconds: int,
) -> dict:
    """
    Run the live capture check.

    Returns:
        Final metrics dict
    """
    tools = get_tool_paths()
    capture = ScreenCapture(tools)

    device = await capture.get_connected_device()
    if device is None:
        logger.error("No device connected")
        return {"frames": 0, "max_gap_ms": 0, "saved": None}

    logger.info("=" * 60)
    logger.info(f"Device: {device}")
    logger.info(f"Mode: {mode.value}, fps: {fps}, duration: {duration}s")
    logger.info("=" * 60)

    buffer = FrameBuffer(max_duration_seconds=max(duration, 1), fps=fps)
    last_arrival = [0.0]
    max_gap_ms = [0.0]

    def on_frame(data: bytes) -> None:
        now = time.monotonic()
        if last_arrival[0]:
            gap = (now - last_arrival[0]) * 1000
            if gap > GAP_WARNING_MS:
                logger.warning(f"Delivery gap of {gap:.0f} ms")
            max_gap_ms[0] = max(max_gap_ms[0], gap)
        last_arrival[0] = now
        buffer.add_frame(data)

    start_time = time.time()
    await capture.start_capturing(fps, mode, on_frame)

    try:
        while time.time() - start_time < duration:
            await asyncio.sleep(report_interval)
            logger.info(f"[{time.time() - start_time:.0f}s] {buffer.get_status()}, "
                        f"{buffer.get_total_memory_mb()} MB, "
                        f"segments={capture.segment_count} errors={capture.error_count}")
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        await capture.cleanup()

    saved = None
    if save_seconds > 0:
        frames = buffer.get_frames_with_timestamp(save_seconds)
        encoder = VideoEncoder(tools)
        saved = await encoder.encode_with_timestamp(frames, buffer.calculate_actual_fps(frames))

    metrics = buffer.metrics()
    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Frames buffered: {metrics['size']}")
    logger.info(f"Duplicates dropped: {metrics['duplicate_count']}")
    logger.info(f"Evicted: {metrics['evicted_count']}")
    logger.info(f"Largest delivery gap: {max_gap_ms[0]:.0f} ms")
    if saved:
        logger.info(f"Saved: {saved}")
    logger.info("=" * 60)

    return {"frames": metrics["size"], "max_gap_ms": max_gap_ms[0], "saved": saved}


def main():
    parser = argparse.ArgumentParser(description="Live capture smoke test")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in CaptureMode],
        default=CaptureMode.SCREENRECORD.value,
        help="Capture mode (default: screenrecord)",
    )
    parser.add_argument("--fps", type=int, default=30, help="Frames per second (default: 30)")
    parser.add_argument(
        "--duration",
        type=int,
        default=75,
        help="Capture duration in seconds (default: 75, crosses one handoff)",
    )
    parser.add_argument(
        "--report-interval",
        type=int,
        default=5,
        help="Seconds between progress reports (default: 5)",
    )
    parser.add_argument(
        "--save",
        type=int,
        default=0,
        help="Save the last N seconds to MP4 at the end (default: off)",
    )

    args = parser.parse_args()

    result = asyncio.run(run_smoke(
        mode=CaptureMode(args.mode),
        fps=args.fps,
        duration=args.duration,
        report_interval=args.report_interval,
        save_seconds=args.save,
    ))

    sys.exit(0 if result["frames"] > 0 else 1)


if __name__ == "__main__":
    main()
