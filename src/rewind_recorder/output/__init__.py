"""
Output Module
=============

Persisting frames to disk:
    - VideoEncoder: ffmpeg MP4 encoding with optional timestamp overlay
    - build_video_filter: ffmpeg -vf chain builder
"""

from rewind_recorder.output.encoder import VideoEncoder, build_video_filter


__all__ = [
    "VideoEncoder",
    "build_video_filter",
]
