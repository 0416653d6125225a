"""
Rewind Recorder Configuration
=============================

This module handles configuration loading for the recorder.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    REWIND_BUFFER_DURATION -> recorder.buffer_duration_seconds
    REWIND_FPS             -> recorder.fps
    REWIND_CAPTURE_MODE    -> recorder.capture_mode
    REWIND_OUTPUT_DIR      -> output.directory
    REWIND_ADB_PATH        -> tools.adb_path
    REWIND_FFMPEG_PATH     -> tools.ffmpeg_path
    REWIND_PORT            -> server.port
    REWIND_LOG_LEVEL       -> logging.level
    PORT                   -> server.port

External tool locations are resolved once per process by get_tool_paths()
and passed into components as a ToolPaths value.

Example:
    from rewind_recorder.config import settings, get_tool_paths

    print(settings.recorder.fps)
    print(get_tool_paths().adb)
"""

import os
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import List, Literal, Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class RecorderConfig(BaseModel):
    """Recording session configuration."""

    buffer_duration_seconds: int = Field(
        default=60,
        ge=1,
        description="Trailing window of frames kept in memory (seconds)",
    )
    fps: int = Field(default=30, ge=1, le=60, description="Capture frame rate")
    capture_mode: Literal["screenrecord", "screencap"] = Field(
        default="screenrecord",
        description="Capture mode: 'screenrecord' or 'screencap'",
    )
    show_touch_pointer: bool = Field(
        default=True,
        description="Show the pointer location overlay on the device while recording",
    )
    show_timestamp_overlay: bool = Field(
        default=True,
        description="Burn a wall-clock timestamp into saved videos",
    )


class CaptureConfig(BaseModel):
    """Device capture configuration."""

    resolution: str = Field(
        default="1280x720",
        description="screenrecord output size (WIDTHxHEIGHT)",
    )
    bit_rate: int = Field(
        default=8_000_000,
        gt=0,
        description="screenrecord bit rate (bits per second)",
    )
    read_chunk_size: int = Field(
        default=8192,
        ge=512,
        description="Bytes read from the frame extractor per read call",
    )
    record_duration_ms: int = Field(
        default=60_000,
        gt=0,
        description="Length of one screenrecord segment",
    )
    overlap_start_ms: int = Field(
        default=50_000,
        gt=0,
        description="Offset into a segment at which the next segment starts",
    )
    min_screenrecord_sdk: int = Field(
        default=19,
        ge=1,
        description="Minimum Android API level for screenrecord streaming",
    )


class OutputConfig(BaseModel):
    """Saved video and screenshot configuration."""

    directory: str = Field(
        default=str(Path.home() / "Desktop" / "AndroidRecordings"),
        description="Directory where videos and screenshots are written",
    )
    font_path: str = Field(
        default="/System/Library/Fonts/Helvetica.ttc",
        description="Font used for the timestamp overlay (ignored if missing)",
    )


class ToolsConfig(BaseModel):
    """External tool overrides. Empty means auto-discover."""

    adb_path: Optional[str] = Field(default=None, description="Path to adb")
    ffmpeg_path: Optional[str] = Field(default=None, description="Path to ffmpeg")


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="127.0.0.1", description="Bind host")
    port: int = Field(default=8765, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for Rewind Recorder.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    recorder: RecorderConfig = Field(default_factory=RecorderConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path.home() / ".config" / "rewind-recorder" / "config.yaml",
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Recorder settings
    if env_duration := os.environ.get("REWIND_BUFFER_DURATION"):
        config_data.setdefault("recorder", {})["buffer_duration_seconds"] = int(env_duration)
    if env_fps := os.environ.get("REWIND_FPS"):
        config_data.setdefault("recorder", {})["fps"] = int(env_fps)
    if env_mode := os.environ.get("REWIND_CAPTURE_MODE"):
        config_data.setdefault("recorder", {})["capture_mode"] = env_mode

    # Output settings
    if env_output := os.environ.get("REWIND_OUTPUT_DIR"):
        config_data.setdefault("output", {})["directory"] = env_output

    # Tool overrides
    if env_adb := os.environ.get("REWIND_ADB_PATH"):
        config_data.setdefault("tools", {})["adb_path"] = env_adb
    if env_ffmpeg := os.environ.get("REWIND_FFMPEG_PATH"):
        config_data.setdefault("tools", {})["ffmpeg_path"] = env_ffmpeg

    # Server settings
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("REWIND_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("REWIND_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# External Tool Discovery
# =============================================================================

ADB_COMMON_PATHS = [
    "/opt/homebrew/bin/adb",
    "/usr/local/bin/adb",
    str(Path.home() / "Library" / "Android" / "sdk" / "platform-tools" / "adb"),
    str(Path.home() / "Android" / "Sdk" / "platform-tools" / "adb"),
]

FFMPEG_COMMON_PATHS = [
    "/opt/homebrew/bin/ffmpeg",
    "/usr/local/bin/ffmpeg",
    "/usr/bin/ffmpeg",
]


@dataclass(frozen=True, slots=True)
class ToolPaths:
    """
    Resolved locations of the external tools.

    Attributes:
        adb: adb executable (path or bare name for PATH lookup)
        ffmpeg: ffmpeg executable (path or bare name for PATH lookup)
    """

    adb: str = "adb"
    ffmpeg: str = "ffmpeg"


def find_executable(
    name: str,
    common_paths: List[str],
    override: Optional[str] = None,
) -> str:
    """
    Locate an executable.

    Order: explicit override, PATH lookup, common install locations.
    Falls back to the bare name so the OS can still try PATH at spawn time.
    """
    if override:
        return override

    found = shutil.which(name)
    if found:
        return found

    for candidate in common_paths:
        if os.path.isfile(candidate) and os.access(candidate, os.X_OK):
            return candidate

    logger.warning(f"{name} not found on PATH or in common locations")
    return name


def resolve_tool_paths(tools: ToolsConfig) -> ToolPaths:
    """Resolve adb and ffmpeg locations from config and the environment."""
    return ToolPaths(
        adb=find_executable("adb", ADB_COMMON_PATHS, tools.adb_path),
        ffmpeg=find_executable("ffmpeg", FFMPEG_COMMON_PATHS, tools.ffmpeg_path),
    )


_tool_paths: Optional[ToolPaths] = None


def get_tool_paths() -> ToolPaths:
    """Process-wide cached tool paths, resolved on first use."""
    global _tool_paths
    if _tool_paths is None:
        _tool_paths = resolve_tool_paths(settings.tools)
        logger.info(f"Using adb={_tool_paths.adb} ffmpeg={_tool_paths.ffmpeg}")
    return _tool_paths


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
