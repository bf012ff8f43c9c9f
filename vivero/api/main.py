"""
Vivero Backend API - Main Entry Point

FastAPI application that ingests zone sensor readings from field devices,
drives the irrigation valves and pushes live updates to dashboards.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path

import redis.asyncio as redis
from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore[import-untyped]
from fastapi import FastAPI, Request, Response, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from vivero.api.dependencies import set_session_service, set_zone_context
from vivero.api.middleware import RateLimitMiddleware
from vivero.api.routes import api_router
from vivero.api.websocket import GENERAL_CHANNEL, ConnectionManager
from vivero.config import Settings, get_settings
from vivero.core.context import ZoneContext
from vivero.core.errors import (
    InvalidRequestError,
    StorageError,
    UnauthorizedError,
    UnknownZoneError,
    ViveroError,
)
from vivero.core.event_bus import EventBus
from vivero.core.zones import ZoneConfigTable
from vivero.integrations.kv_store import KeyValueBackend, MemoryBackend, RedisBackend
from vivero.services.session_service import SessionService

# Configure logging
settings_instance = get_settings()
logging.basicConfig(
    level=settings_instance.logging_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


# ============================================================================
# Application State
# ============================================================================


class AppState:
    """Centralized application state container."""

    def __init__(self) -> None:
        self.redis_client: redis.Redis | None = None
        self.scheduler: AsyncIOScheduler | None = None
        self.ws_manager: ConnectionManager = ConnectionManager()
        self.context: ZoneContext | None = None
        self.sessions: SessionService | None = None
        self.startup_time: datetime | None = None
        self.is_healthy: bool = False


app_state = AppState()


# ============================================================================
# Background Tasks
# ============================================================================


async def cleanup_stale_connections() -> None:
    """Drop dashboard sockets that no longer answer a ping."""
    try:
        removed = await app_state.ws_manager.cleanup_stale()
        if removed:
            logger.info("Removed %d stale WebSocket connections", removed)
    except Exception as e:
        logger.error(f"Error cleaning up WebSocket connections: {e}")


async def purge_expired_sessions() -> None:
    """Forget operator sessions whose TTL has passed."""
    if app_state.sessions is None:
        return
    try:
        await app_state.sessions.purge_expired()
    except Exception as e:
        logger.error(f"Error purging expired sessions: {e}")


# ============================================================================
# Startup helpers
# ============================================================================


async def init_redis(settings: Settings) -> redis.Redis | None:
    """Connect to Redis; required when it backs the zone store."""
    try:
        redis_client = redis.from_url(
            str(settings.redis_url),
            decode_responses=True,
            socket_connect_timeout=5,
            socket_keepalive=True,
            health_check_interval=30,
        )
        await redis_client.ping()
        logger.info("Redis connection established")
        return redis_client
    except Exception as e:
        if settings.store_backend == "redis":
            raise StorageError(f"Redis is required for the zone store: {e}") from e
        logger.warning(f"Redis connection failed (cross-instance fan-out disabled): {e}")
        return None


def build_backend(settings: Settings, redis_client: redis.Redis | None) -> KeyValueBackend:
    if settings.store_backend == "redis" and redis_client is not None:
        return RedisBackend(redis_client, namespace=settings.store_namespace)
    logger.warning("Zone state is kept in process memory and will not survive a restart")
    return MemoryBackend()


def init_scheduler() -> AsyncIOScheduler:
    """Initialize the background task scheduler."""
    scheduler = AsyncIOScheduler(
        timezone="UTC",
        job_defaults={
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": 60,
        },
    )

    # Connection cleanup - every 5 minutes
    scheduler.add_job(
        cleanup_stale_connections,
        IntervalTrigger(minutes=5),
        id="cleanup_connections",
        name="Cleanup Stale Connections",
        replace_existing=True,
    )

    # Session expiry - every 10 minutes
    scheduler.add_job(
        purge_expired_sessions,
        IntervalTrigger(minutes=10),
        id="purge_expired_sessions",
        name="Purge Expired Sessions",
        replace_existing=True,
    )

    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager for startup and shutdown.
    """
    settings = settings_instance
    logger.info("Starting %s API...", settings.app_name)

    app_state.redis_client = await init_redis(settings)
    backend = build_backend(settings, app_state.redis_client)

    zones = ZoneConfigTable.from_settings(settings.zones)
    bus = EventBus(handler_timeout=settings.event_handler_timeout_seconds)
    app_state.context = ZoneContext.build(zones, backend, bus=bus)
    logger.info("Zone engine ready for zones: %s", ", ".join(zones))

    app_state.ws_manager = ConnectionManager(app_state.redis_client)
    app_state.context.bus.subscribe(app_state.ws_manager.handle_event)
    await app_state.ws_manager.subscribe_redis()

    app_state.sessions = SessionService.from_settings(settings, app_state.redis_client)
    if not app_state.sessions.enabled:
        logger.warning("Operator credentials not configured; dashboard login disabled")
    if not settings.api_key:
        logger.warning("VIVERO_API_KEY not set; device readings will be rejected")

    set_zone_context(app_state.context)
    set_session_service(app_state.sessions)

    app_state.scheduler = init_scheduler()
    app_state.scheduler.start()

    app_state.startup_time = datetime.now(UTC)
    app_state.is_healthy = True
    logger.info("%s API started", settings.app_name)

    yield

    logger.info("Shutting down %s API...", settings.app_name)
    app_state.is_healthy = False

    if app_state.scheduler:
        app_state.scheduler.shutdown(wait=False)

    # Let pending auto-close writes land before the store goes away
    if app_state.context:
        await app_state.context.close()

    logger.info("Closing WebSocket connections...")
    await app_state.ws_manager.broadcast(
        {"type": "server_shutdown", "message": "Server is shutting down"}
    )
    await app_state.ws_manager.shutdown()

    set_zone_context(None)
    set_session_service(None)

    if app_state.redis_client:
        logger.info("Closing Redis connection...")
        await app_state.redis_client.aclose()

    logger.info("%s API shutdown complete", settings.app_name)


# ============================================================================
# FastAPI Application
# ============================================================================

settings = settings_instance

app = FastAPI(
    title=f"{settings.app_name} API",
    description="""
    Vivero Backend API for zone irrigation control.

    ## Features

    * **Telemetry ingest** - Field devices post soil/temperature readings per zone
    * **Automatic irrigation** - Threshold valve control with re-close hysteresis
    * **Manual override** - Authenticated operators open or close valves
    * **Real-time Updates** - WebSocket push of sensor and control events
    """,
    version="1.0.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan,
)


# ============================================================================
# Middleware (applied in reverse order - last added = outermost)
# ============================================================================

app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(RateLimitMiddleware, requests_per_minute=settings.rate_limit_per_minute)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Process-Time"],
    max_age=600,
)


@app.middleware("http")
async def request_logging_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """Log all requests with timing and correlation IDs."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    start_time = time.perf_counter()

    request.state.request_id = request_id

    try:
        response = await call_next(request)
        process_time = time.perf_counter() - start_time

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{process_time:.4f}"

        logger.info(
            f"{request.method} {request.url.path} "
            f"status={response.status_code} "
            f"duration={process_time:.4f}s"
        )

        return response
    except Exception as e:
        logger.error(f"Request failed: {e}", exc_info=True)
        raise


# ============================================================================
# Route Registration
# ============================================================================

app.include_router(api_router)


# ============================================================================
# WebSocket Endpoints
# ============================================================================


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """Live zone events. ``?channel=<zone_id>`` narrows the feed to one zone."""
    channel = websocket.query_params.get("channel", GENERAL_CHANNEL)

    await app_state.ws_manager.connect(websocket, channel)

    try:
        await websocket.send_json(
            {
                "type": "connected",
                "channel": channel,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

        while True:
            try:
                data = await websocket.receive_json()

                if data.get("type") == "subscribe":
                    new_channel = data.get("channel") or GENERAL_CHANNEL
                    await app_state.ws_manager.switch_channel(websocket, channel, new_channel)
                    channel = new_channel
                    await websocket.send_json(
                        {
                            "type": "subscribed",
                            "channel": channel,
                            "timestamp": datetime.now(UTC).isoformat(),
                        }
                    )

                elif data.get("type") == "ping":
                    await websocket.send_json({"type": "pong"})

            except WebSocketDisconnect:
                raise
            except Exception as e:
                logger.warning(f"WebSocket message error: {e}")

    except WebSocketDisconnect:
        await app_state.ws_manager.disconnect(websocket, channel)
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
        await app_state.ws_manager.disconnect(websocket, channel)


# ============================================================================
# Health Check Endpoints
# ============================================================================


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Basic health check endpoint."""
    return {
        "status": "healthy" if app_state.is_healthy else "unhealthy",
        "timestamp": datetime.now(UTC).isoformat(),
    }


@app.get("/health/ready", tags=["Health"], response_model=None)
async def readiness_check() -> Response:
    """Readiness probe: the zone store must answer."""
    context = app_state.context
    if not app_state.is_healthy or context is None or not await context.store.backend.ping():
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready"},
        )
    return JSONResponse(content={"status": "ready"})


@app.get("/health/live", tags=["Health"])
async def liveness_check() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "alive"}


# ============================================================================
# Dashboard Static Files
# ============================================================================

_PUBLIC_DIR = Path(__file__).resolve().parents[2] / "public"

if _PUBLIC_DIR.is_dir():
    app.mount("/", StaticFiles(directory=_PUBLIC_DIR, html=True), name="dashboard")
else:

    @app.get("/", tags=["Root"])
    async def root_fallback() -> dict[str, object]:
        """API root endpoint (no dashboard bundle available)."""
        return {
            "name": f"{settings.app_name} API",
            "documentation": "/docs" if settings.debug else None,
            "health": "/health",
            "websocket": "/ws",
        }


# ============================================================================
# Exception Handlers
# ============================================================================


def _error_response(request: Request, status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "ok": False,
            "error": {
                "code": status_code,
                "message": message,
                "request_id": getattr(request.state, "request_id", None),
            },
        },
    )


_ERROR_STATUS: dict[type[ViveroError], int] = {
    UnknownZoneError: status.HTTP_400_BAD_REQUEST,
    InvalidRequestError: status.HTTP_400_BAD_REQUEST,
    UnauthorizedError: status.HTTP_401_UNAUTHORIZED,
    StorageError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


@app.exception_handler(ViveroError)
async def vivero_exception_handler(request: Request, exc: ViveroError) -> JSONResponse:
    """Map zone engine errors onto HTTP responses."""
    for error_type, status_code in _ERROR_STATUS.items():
        if isinstance(exc, error_type):
            if isinstance(exc, StorageError):
                logger.error(f"Storage failure: {exc}", exc_info=exc)
                return _error_response(request, status_code, "Zone storage unavailable")
            return _error_response(request, status_code, str(exc))

    logger.error(f"Zone engine failure: {exc}", exc_info=exc)
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An internal error occurred" if not settings.debug else str(exc),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An internal error occurred" if not settings.debug else str(exc),
    )


# ============================================================================
# CLI Entry Point
# ============================================================================


def run() -> None:
    import uvicorn

    uvicorn.run(
        "vivero.api.main:app",
        host=settings.host,
        port=settings.port,
        loop="asyncio",
        reload=settings.debug,
        log_level="debug" if settings.debug else settings.log_level,
        access_log=True,
    )


if __name__ == "__main__":
    run()
