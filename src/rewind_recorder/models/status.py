"""
Status and Request Schemas
==========================

Pydantic models exchanged over the HTTP control surface.

Example:
    from rewind_recorder.models import RecorderStatus

    status = session.status()
    payload = status.model_dump(mode="json")
"""

from typing import Optional

from pydantic import BaseModel, Field

from rewind_recorder.capture.modes import CaptureMode


class RecorderStatus(BaseModel):
    """
    Snapshot of the recording session.

    Attributes:
        recording: Whether capture is running
        saving: Whether a save or screenshot is in progress
        device: Serial of the connected device, if any
        frame_count: Frames currently buffered
        buffered_seconds: Approximate seconds of video buffered (frames / fps)
        memory_mb: Buffered payload size in MiB
        message: Human-readable status line
    """

    recording: bool = Field(..., description="Capture running")
    saving: bool = Field(..., description="Save or screenshot in progress")
    device: Optional[str] = Field(default=None, description="Connected device serial")
    capture_mode: CaptureMode = Field(..., description="Active capture mode")
    fps: int = Field(..., ge=1, description="Configured frames per second")
    buffer_duration_seconds: int = Field(..., ge=1, description="Buffer window length")
    frame_count: int = Field(..., ge=0, description="Frames currently buffered")
    buffered_seconds: int = Field(..., ge=0, description="Seconds of video buffered")
    memory_mb: int = Field(..., ge=0, description="Buffered payload size in MiB")
    output_directory: str = Field(..., description="Where recordings are written")
    message: str = Field(..., description="Status line")


class SaveRequest(BaseModel):
    """Request to save the trailing N seconds of the buffer."""

    duration_seconds: int = Field(..., ge=1, le=3600, description="Seconds to save")


class SettingsRequest(BaseModel):
    """Runtime settings change."""

    buffer_duration_seconds: Optional[int] = Field(default=None, ge=1)
    fps: Optional[int] = Field(default=None, ge=1, le=60)
    output_directory: Optional[str] = Field(default=None)
    show_touch_pointer: Optional[bool] = Field(default=None)
    show_timestamp_overlay: Optional[bool] = Field(default=None)


class ActionResult(BaseModel):
    """Outcome of a session action."""

    ok: bool = Field(..., description="Whether the action succeeded")
    message: str = Field(..., description="Status line after the action")
    path: Optional[str] = Field(default=None, description="File written, if any")
