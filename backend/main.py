"""
FastAPI application entry point for the Nest camera HomeKit bridge

Initializes logging and the accessory cache, starts the bridge on the
application's event loop, and registers the status/control routers.
"""
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Response

from nestcam.core.config import settings
from nestcam.core.database import engine, Base
from nestcam.core.logging_config import setup_logging, get_logger
from nestcam.core.metrics import get_metrics, get_content_type
from nestcam.api.v1.bridge import router as bridge_router
from nestcam.api.v1.cameras import router as cameras_router
from nestcam.services.bridge_service import (
    APP_VERSION,
    BridgeService,
    get_bridge_service,
    initialize_bridge_service,
    shutdown_bridge_service,
)
import nestcam.models  # noqa: F401  registers tables on Base.metadata

# Initialize structured JSON logging
setup_logging(app_version=APP_VERSION)
logger = get_logger(__name__)


def _ensure_sqlite_dir(url: str) -> None:
    if url.startswith("sqlite:///") and ":memory:" not in url:
        directory = os.path.dirname(url[len("sqlite:///"):])
        if directory:
            os.makedirs(directory, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    - Startup: creates the accessory cache table and starts the bridge
    - Shutdown: stops polling and the HomeKit server
    """
    logger.info(
        "Application starting",
        extra={
            "event_type": "app_startup",
            "version": APP_VERSION,
            "log_level": settings.LOG_LEVEL,
            "debug_mode": settings.DEBUG,
        }
    )

    _ensure_sqlite_dir(settings.DATABASE_URL)
    Base.metadata.create_all(bind=engine)
    logger.info(
        "Database initialized",
        extra={"event_type": "database_init", "status": "success"}
    )

    started = await initialize_bridge_service()
    if not started:
        logger.warning(
            "Bridge core not running; status API only",
            extra={"event_type": "bridge_not_started", "error": get_bridge_service().error}
        )

    yield

    logger.info("Application shutting down", extra={"event_type": "app_shutdown"})
    await shutdown_bridge_service()
    logger.info(
        "Application shutdown complete",
        extra={"event_type": "app_shutdown_complete", "version": APP_VERSION}
    )


app = FastAPI(
    title="Nest Cam Bridge API",
    description="Status and control API for the Nest camera HomeKit bridge",
    version=APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.include_router(bridge_router, prefix=settings.API_V1_PREFIX)
app.include_router(cameras_router, prefix=settings.API_V1_PREFIX)


@app.get("/")
async def root():
    return {
        "name": "Nest Cam Bridge",
        "version": APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health_check(service: BridgeService = Depends(get_bridge_service)):
    """Health check endpoint"""
    return {
        "status": "healthy" if service.is_running else "degraded",
        "camera_count": len(service.list_cameras()),
    }


@app.get("/metrics")
async def prometheus_metrics():
    """Prometheus metrics endpoint"""
    return Response(
        content=get_metrics(),
        media_type=get_content_type()
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
