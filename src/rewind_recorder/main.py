"""
Rewind Recorder Main Application
================================

FastAPI entry point for the recorder control surface.

The recorder runs headless; any front end (desktop shell, browser page,
hotkey daemon) drives it through these endpoints.

Endpoints:
    GET  /                 - Service information
    GET  /health           - Liveness probe
    GET  /status           - Session status snapshot
    GET  /metrics          - Buffer and capture counters
    POST /device/refresh   - Re-detect the connected device
    POST /recording/start  - Clear the buffer and start capturing
    POST /recording/stop   - Stop capturing (buffer is kept)
    POST /recording/save   - Encode the last N seconds to MP4
    POST /screenshot       - Save a single screenshot
    POST /settings         - Change buffer window, fps, output directory
    WS   /ws/status        - Status pushed once per second
"""

import asyncio
import logging
import os
import signal
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, WebSocket
from fastapi.responses import JSONResponse

from rewind_recorder import __version__
from rewind_recorder.config import get_tool_paths, settings
from rewind_recorder.models import ActionResult, SaveRequest, SettingsRequest
from rewind_recorder.session import RecorderSession


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_shutdown_flag: bool = False
_session: Optional[RecorderSession] = None
_startup_time: float = 0.0


def get_session() -> Optional[RecorderSession]:
    return _session


def _handle_sigterm(signum, frame):
    """Handle SIGTERM for graceful shutdown."""
    global _shutdown_flag
    logger.info("Received SIGTERM, initiating graceful shutdown...")
    _shutdown_flag = True


def _not_ready() -> JSONResponse:
    return JSONResponse({"error": "Session not initialized"}, status_code=503)


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _session, _startup_time, _shutdown_flag

    signal.signal(signal.SIGTERM, _handle_sigterm)

    _startup_time = time.time()
    logger.info(f"Starting Rewind Recorder {__version__}")

    _session = RecorderSession.from_settings(settings, get_tool_paths())
    device = await _session.refresh_device()
    logger.info(f"Connected device: {device or 'none'}")

    yield

    logger.info("Shutting down gracefully...")
    _shutdown_flag = True

    if _session is not None:
        await _session.shutdown()

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Rewind Recorder",
    description="Always-on Android screen recorder with on-demand rewind saves",
    version=__version__,
    lifespan=lifespan,
)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": "RewindRecorder",
        "version": __version__,
        "status": "running",
        "capture_mode": settings.recorder.capture_mode,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """Liveness probe. Always 200 while the process is up."""
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/status")
async def status() -> JSONResponse:
    session = get_session()
    if session is None:
        return _not_ready()
    return JSONResponse(session.status().model_dump(mode="json"))


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Buffer and capture counters."""
    session = get_session()
    if session is None:
        return _not_ready()

    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "recording": session.is_recording,
        "capture_segments": session.capture.segment_count,
        "capture_errors": session.capture.error_count,
        **{f"buffer_{key}": value for key, value in session.buffer.metrics().items()},
    })


@app.post("/device/refresh")
async def refresh_device() -> JSONResponse:
    session = get_session()
    if session is None:
        return _not_ready()
    device = await session.refresh_device()
    return _result(device is not None, session)


@app.post("/recording/start")
async def start_recording() -> JSONResponse:
    session = get_session()
    if session is None:
        return _not_ready()
    ok = await session.start_recording()
    return _result(ok, session)


@app.post("/recording/stop")
async def stop_recording() -> JSONResponse:
    session = get_session()
    if session is None:
        return _not_ready()
    await session.stop_recording()
    return _result(True, session)


@app.post("/recording/save")
async def save_recording(request: SaveRequest) -> JSONResponse:
    session = get_session()
    if session is None:
        return _not_ready()
    path = await session.save_recording(request.duration_seconds)
    return _result(path is not None, session, path)


@app.post("/screenshot")
async def screenshot() -> JSONResponse:
    session = get_session()
    if session is None:
        return _not_ready()
    path = await session.take_screenshot()
    return _result(path is not None, session, path)


@app.post("/settings")
async def update_settings(request: SettingsRequest) -> JSONResponse:
    session = get_session()
    if session is None:
        return _not_ready()

    ok = True
    if request.buffer_duration_seconds is not None or request.fps is not None:
        session.update_settings(request.buffer_duration_seconds, request.fps)
    if request.output_directory is not None:
        ok = session.set_output_directory(request.output_directory)
    if request.show_touch_pointer is not None:
        await session.set_show_touch_pointer(request.show_touch_pointer)
    if request.show_timestamp_overlay is not None:
        session.show_timestamp_overlay = request.show_timestamp_overlay

    return _result(ok, session)


def _result(ok: bool, session: RecorderSession, path: Optional[str] = None) -> JSONResponse:
    body = ActionResult(ok=ok, message=session.message, path=path)
    return JSONResponse(body.model_dump(mode="json"))


# =============================================================================
# WebSocket Endpoints
# =============================================================================

@app.websocket("/ws/status")
async def status_stream(websocket: WebSocket) -> None:
    """WebSocket endpoint pushing the session status every second."""
    await websocket.accept()
    logger.info("Client connected to /ws/status")

    try:
        while not _shutdown_flag:
            session = get_session()
            if session is not None:
                await websocket.send_json(session.status().model_dump(mode="json"))
            await asyncio.sleep(1.0)

    except Exception as e:
        logger.warning(f"WebSocket error: {e}")
    finally:
        logger.info("Client disconnected from /ws/status")


# =============================================================================
# Main Entry Point
# =============================================================================

def run() -> None:
    """Console entry point."""
    import uvicorn

    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "rewind_recorder.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run()
