"""
Data Models
===========

Pydantic models for the Rewind Recorder control surface.

Models:
    - RecorderStatus: Session snapshot returned by /status
    - SaveRequest: Body of /recording/save
    - SettingsRequest: Body of /settings
    - ActionResult: Outcome of a session action
"""

from rewind_recorder.models.status import (
    ActionResult,
    RecorderStatus,
    SaveRequest,
    SettingsRequest,
)

__all__ = [
    "RecorderStatus",
    "SaveRequest",
    "SettingsRequest",
    "ActionResult",
]
