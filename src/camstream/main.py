"""
camstream Service
=================

FastAPI entry point exposing one camera stream over HTTP.

The lifespan builds a CameraStream from settings and (optionally)
starts it. Frames are taken from the stream's FrameBuffer by a small
drain task, so the ingestion thread never waits on the event loop.

Endpoints:
    GET  /                - Service information
    GET  /health          - Liveness probe
    GET  /ready           - Readiness probe (a frame has been received)
    GET  /metrics         - Ingestion and buffer metrics
    GET  /snapshot        - Latest frame as image/jpeg
    POST /stream/start    - Start ingesting
    POST /stream/stop     - Stop ingesting
    POST /stream/restart  - Reconnect with a fresh worker
"""

import asyncio
import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Response
from fastapi.responses import JSONResponse

from camstream.config import settings, setup_logging
from camstream.models.status import TerminationReason
from camstream.stream import CameraStream, ConfigError, Frame


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_camera: Optional[CameraStream] = None
_drain_task: Optional[asyncio.Task] = None
_latest_frame: Optional[Frame] = None
_startup_time: float = 0.0


def get_camera() -> Optional[CameraStream]:
    return _camera

def get_latest_frame() -> Optional[Frame]:
    return _latest_frame


def _on_terminated(reason: TerminationReason) -> None:
    if reason is TerminationReason.DEVICE_LOST:
        logger.error("Camera lost; POST /stream/start to try again")
    else:
        logger.info(f"Camera run finished: {reason.value}")


async def drain_frames(camera: CameraStream) -> None:
    """Keep the newest frame from the stream's buffer in the latest-frame slot."""
    global _latest_frame

    while True:
        frame = await asyncio.to_thread(camera.frames.get_latest, 0.5)
        if frame is not None:
            _latest_frame = frame


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _camera, _drain_task, _startup_time, _latest_frame

    setup_logging(settings)
    _startup_time = time.time()
    _latest_frame = None
    logger.info(f"Starting {settings.service.name} {settings.service.version}")

    _camera = CameraStream.from_settings(settings, on_terminated=_on_terminated)
    _drain_task = asyncio.create_task(drain_frames(_camera), name="frame_drain")

    if settings.ingestion.auto_start:
        try:
            _camera.start()
        except ConfigError as e:
            logger.warning(f"Camera not started: {e}")

    yield

    logger.info("Shutting down gracefully...")

    _drain_task.cancel()
    try:
        await _drain_task
    except asyncio.CancelledError:
        pass

    await asyncio.to_thread(_camera.close)
    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="camstream",
    description="HTTP camera stream ingestion",
    version=settings.service.version,
    lifespan=lifespan,
)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    camera = get_camera()
    return JSONResponse({
        "service": settings.service.name,
        "version": settings.service.version,
        "mode": settings.camera.mode,
        "running": camera.is_running if camera else False,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """Liveness probe - always 200 while the process is up."""
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Readiness probe.

    Returns 200 once the stream is running and has delivered a frame,
    503 otherwise.
    """
    camera = get_camera()
    running = camera.is_running if camera else False
    has_frame = get_latest_frame() is not None

    body = {
        "status": "ready" if running and has_frame else "not_ready",
        "running": running,
        "stream_status": camera.status.value if camera else None,
        "has_frame": has_frame,
    }
    return JSONResponse(body, status_code=200 if running and has_frame else 503)


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    camera = get_camera()
    if camera is None:
        return JSONResponse({"error": "Stream not initialized"}, status_code=503)

    last_reason = camera.last_reason
    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "running": camera.is_running,
        "stream_status": camera.status.value,
        "last_termination": last_reason.value if last_reason else None,
        "restarts": camera.restarts,
        **camera.metrics.to_dict(),
        "buffer": camera.frames.metrics(),
    })


@app.get("/snapshot")
async def snapshot() -> Response:
    """Latest frame as JPEG."""
    frame = get_latest_frame()
    if frame is None:
        return JSONResponse({"error": "No frame available yet"}, status_code=503)

    return Response(
        content=frame.data,
        media_type="image/jpeg",
        headers={"X-Frame-Sequence": str(frame.sequence)},
    )


@app.post("/stream/start")
async def start_stream() -> JSONResponse:
    camera = get_camera()
    if camera is None:
        return JSONResponse({"error": "Stream not initialized"}, status_code=503)

    try:
        camera.start()
    except ConfigError as e:
        return JSONResponse({"error": str(e)}, status_code=400)
    return JSONResponse({"running": camera.is_running})


@app.post("/stream/stop")
async def stop_stream() -> JSONResponse:
    camera = get_camera()
    if camera is None:
        return JSONResponse({"error": "Stream not initialized"}, status_code=503)

    camera.stop()
    return JSONResponse({"stopping": True})


@app.post("/stream/restart")
async def restart_stream() -> JSONResponse:
    camera = get_camera()
    if camera is None:
        return JSONResponse({"error": "Stream not initialized"}, status_code=503)

    camera.restart()
    return JSONResponse({"restarting": camera.is_running})


# =============================================================================
# Main Entry Point
# =============================================================================

def run() -> None:
    """Run the service with uvicorn."""
    import uvicorn

    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "camstream.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run()
