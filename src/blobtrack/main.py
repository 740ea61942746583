"""
BlobTrack HUD Main Application
==============================

FastAPI entry point for the real-time motion overlay pipeline.

Lifecycle:
    Startup builds the video source, loads the presence detector,
    constructs the driver, sinks and runner, and starts the tick loop.
    Shutdown stops the loop and closes the source.

Endpoints:
    GET  /          - Service information
    GET  /health    - Liveness check
    GET  /ready     - Readiness check (503 until a tick has run)
    GET  /metrics   - Loop, stage and source counters
    GET  /output    - Latest tick summary and gate state
    GET  /config    - Active pipeline configuration
    PUT  /config    - Partial configuration update (422 if invalid)
    WS   /ws/output - Tick summaries pushed once per second
"""

import asyncio
import logging
import os
import signal
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from blobtrack.config import ConfigStore, ConfigurationError, settings
from blobtrack.models.geometry import Dimensions
from blobtrack.models.output import TickReport
from blobtrack.perception import load_detector
from blobtrack.pipeline import OutputSink, PipelineDriver, PipelineRunner, WindowSink
from blobtrack.stream import StreamVideoSource, VideoSource, create_video_source


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_shutdown_flag: bool = False
_startup_time: float = time.time()

_config_store: Optional[ConfigStore] = None
_source: Optional[VideoSource] = None
_driver: Optional[PipelineDriver] = None
_runner: Optional[PipelineRunner] = None


# =============================================================================
# Getters
# =============================================================================

def get_config_store() -> ConfigStore:
    """Active ConfigStore, created from settings on first use."""
    global _config_store
    if _config_store is None:
        _config_store = ConfigStore(settings.pipeline)
    return _config_store

def get_driver() -> Optional[PipelineDriver]:
    return _driver

def get_runner() -> Optional[PipelineRunner]:
    return _runner

def is_ready() -> bool:
    return (
        _runner is not None
        and _runner.running
        and _driver is not None
        and _driver.last_result is not None
    )


# =============================================================================
# Signal Handlers
# =============================================================================

def _handle_sigterm(signum, frame):
    """Handle SIGTERM for graceful shutdown."""
    global _shutdown_flag
    logger.info("Received SIGTERM, initiating graceful shutdown...")
    _shutdown_flag = True


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _source, _driver, _runner, _startup_time, _shutdown_flag

    signal.signal(signal.SIGTERM, _handle_sigterm)

    _startup_time = time.time()
    _shutdown_flag = False
    logger.info(f"Starting {settings.app.name} {settings.app.version}")

    store = get_config_store()

    # Source: fails fast when it cannot be opened
    _source = create_video_source(settings.source)
    await _source.open()

    # Detector capability is decided once, at boot
    detector = load_detector(
        backend=settings.detector.backend,
        scale_factor=settings.detector.scale_factor,
        min_neighbors=settings.detector.min_neighbors,
        min_size=settings.detector.min_size,
        max_faces=settings.detector.max_faces,
    )

    _driver = PipelineDriver(detector=detector, seed=store.current.jitter_seed)

    sinks: List[OutputSink] = []
    if settings.runner.preview_window:
        sinks.append(
            WindowSink(
                window_name=settings.runner.window_name,
                screen=Dimensions(
                    width=settings.runner.screen_width,
                    height=settings.runner.screen_height,
                ),
            )
        )

    _runner = PipelineRunner(
        source=_source,
        driver=_driver,
        store=store,
        sinks=sinks,
        target_fps=settings.runner.target_fps,
    )
    _runner.start()

    logger.info("All components started")

    yield

    logger.info("Shutting down gracefully...")
    _shutdown_flag = True

    if _runner is not None:
        await _runner.stop()
    if _source is not None:
        await _source.close()

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="BlobTrack HUD",
    description="Real-time motion-point overlay pipeline",
    version=settings.app.version,
    lifespan=lifespan,
)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": "BlobTrack HUD",
        "version": settings.app.version,
        "name": settings.app.name,
        "status": "running",
        "source_kind": settings.source.kind,
        "detector_backend": settings.detector.backend,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness check - is the process alive?

    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Readiness check.

    Returns 200 once the tick loop is running and has completed a tick,
    503 otherwise.
    """
    runner = get_runner()
    driver = get_driver()
    body = {
        "runner_running": runner.running if runner else False,
        "ticks": driver.ticks if driver else 0,
    }

    if is_ready():
        return JSONResponse({"status": "ready", **body})
    return JSONResponse({"status": "not_ready", **body}, status_code=503)


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    runner = get_runner()
    driver = get_driver()

    runner_metrics = runner.metrics.to_dict() if runner else {}

    driver_metrics: Dict[str, Any] = {}
    if driver:
        driver_metrics = {
            "driver_state": driver.state.value,
            "stage_errors": driver.stage_errors,
            "replans": driver.planner.replan_count,
            "gate_evaluations": driver.gate.evaluations,
            "detection_failures": driver.gate.detection_failures,
        }

    source_metrics: Dict[str, Any] = {}
    if isinstance(_source, StreamVideoSource):
        source_metrics = {"stream": _source.metrics()}

    return JSONResponse({
        "uptime_seconds": round(time.time() - _startup_time, 1),
        "config_revision": get_config_store().revision,
        "frames_published": runner.metrics.published if runner else 0,
        **runner_metrics,
        **driver_metrics,
        **source_metrics,
    })


def _current_report() -> Optional[TickReport]:
    driver = get_driver()
    if driver is None or driver.last_result is None:
        return None
    return TickReport.from_result(
        driver.last_result,
        hold_frames_remaining=driver.gate_state.hold_frames_remaining,
    )


@app.get("/output")
async def output() -> JSONResponse:
    """Latest tick summary."""
    report = _current_report()
    if report is None:
        return JSONResponse({"error": "No output available yet"}, status_code=503)
    return JSONResponse(report.model_dump(mode="json"))


@app.get("/config")
async def get_config() -> JSONResponse:
    """Active pipeline configuration."""
    store = get_config_store()
    return JSONResponse({
        "revision": store.revision,
        "config": store.current.model_dump(mode="json"),
    })


@app.put("/config")
async def put_config(updates: Dict[str, Any]) -> JSONResponse:
    """
    Apply a partial configuration update.

    Returns 422 with the validation message when the update is rejected;
    the previous configuration stays active.
    """
    store = get_config_store()
    try:
        config = store.apply(updates)
    except ConfigurationError as e:
        return JSONResponse({"error": str(e)}, status_code=422)

    driver = get_driver()
    if driver is not None:
        driver.selector.reseed(config.jitter_seed)

    return JSONResponse({
        "revision": store.revision,
        "config": config.model_dump(mode="json"),
    })


# =============================================================================
# WebSocket Endpoints
# =============================================================================

@app.websocket("/ws/output")
async def output_stream(websocket: WebSocket) -> None:
    """Push the latest tick summary once per second."""
    await websocket.accept()
    logger.info("Client connected to /ws/output")

    try:
        while not _shutdown_flag:
            report = _current_report()
            if report is not None:
                await websocket.send_json(report.model_dump(mode="json"))
            await asyncio.sleep(1.0)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning(f"WebSocket error: {e}")
    finally:
        logger.info("Client disconnected from /ws/output")


# =============================================================================
# Main Entry Point
# =============================================================================

def run() -> None:
    """Run the service with uvicorn."""
    import uvicorn

    port = int(os.environ.get("PORT", settings.server.port))

    uvicorn.run(
        "blobtrack.main:app",
        host=settings.server.host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run()
