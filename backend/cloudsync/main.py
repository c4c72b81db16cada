from cloudsync.config import get_settings

_settings = get_settings()

import logging

from dotenv import load_dotenv

# Load environment variables FIRST - before any other imports
load_dotenv()

# fmt: off
# ruff: noqa: E402
# fmt: on
# --------------------------------------------------------------------------
# LOGGING CONFIGURATION:
# --------------------------------------------------------------------------
#
# - Default log level: INFO
# - Can be set at runtime with LOG_LEVEL env (e.g. LOG_LEVEL=WARNING for CI)
# - The watch socket logs every connect, so it is held at WARNING
#
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi import Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cloudsync.constants import API_PREFIX
from cloudsync.constants import SYNC_PREFIX
from cloudsync.database import initialize_database
from cloudsync.events.observers import register_observers
from cloudsync.events.observers import unregister_observers
from cloudsync.events.publisher import shutdown_event_publisher
from cloudsync.routers.metrics import router as metrics_router
from cloudsync.routers.sync import router as sync_router
from cloudsync.routers.websocket import router as websocket_router

# The GC scheduler keeps the event loop busy; tests skip it (``TESTING``).
from cloudsync.services.gc_scheduler import gc_service

_log_level = getattr(logging, _settings.log_level.upper(), logging.INFO)
logging.basicConfig(level=_log_level, format="%(levelname)s - %(message)s", handlers=[logging.StreamHandler()])

for _noisy_mod in ("cloudsync.routers.websocket",):
    logging.getLogger(_noisy_mod).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown lifecycle."""
    # Startup phase
    try:
        initialize_database()
        logger.info("Database tables initialized")

        register_observers()

        if not _settings.testing:
            await gc_service.start()
            logger.info("Background services initialised (retention GC scheduler)")
    except Exception as e:
        logger.error(f"Error during startup: {e}")

    yield  # Application is running

    # Shutdown phase
    try:
        if not _settings.testing:
            await gc_service.stop()
        await shutdown_event_publisher()
        unregister_observers()
        logger.info("Background services stopped")
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")


# Create FastAPI APP with lifespan handler
app = FastAPI(title="cloudsync", redirect_slashes=True, lifespan=lifespan)


# ------------------------------------------------------------------
# CORS – open wildcard in dev/tests, restricted in production unless env
# overrides it.  `ALLOWED_CORS_ORIGINS` can contain a comma-separated list.
# ------------------------------------------------------------------

if _settings.auth_disabled:
    cors_origins = ["*"]
else:
    cors_origins = [o.strip() for o in _settings.allowed_cors_origins.split(",") if o.strip()]


@app.exception_handler(Exception)
async def ensure_cors_on_errors(request: Request, exc: Exception):
    """Log unexpected errors and return a generic 500 that still carries CORS headers."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    origin = request.headers.get("origin")
    headers = {"Vary": "Origin"}
    if origin and ("*" in cors_origins or origin in cors_origins):
        headers.update(
            {
                "Access-Control-Allow-Origin": origin if "*" not in cors_origins else "*",
                "Access-Control-Allow-Credentials": "false",
                "Access-Control-Allow-Methods": "*",
                "Access-Control-Allow-Headers": "*",
            }
        )

    return JSONResponse(
        status_code=500,
        content={"detail": {"error": "Internal server error", "code": "SERVER_ERROR"}},
        headers=headers,
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include our API routers with centralized prefixes
app.include_router(sync_router, prefix=f"{API_PREFIX}{SYNC_PREFIX}")
app.include_router(websocket_router, prefix=f"{API_PREFIX}{SYNC_PREFIX}")
app.include_router(metrics_router)  # no prefix – Prometheus expects /metrics


@app.get("/health")
async def health_check():
    """Liveness check."""
    return {"status": "healthy"}
