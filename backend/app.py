"""
MoneyVerse FastAPI Backend
Main application entry point for the sidecar backend.

Production features:
- Real health check with subsystem status
- Request correlation IDs for log tracing
- Structured JSON logging with a rolling file in the app-data directory
- Rate limiting per endpoint
- Background price refresh driving stop-loss/take-profit orders
- Graceful shutdown with in-flight request draining
"""
import asyncio
import os
import sys
import threading
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
import logging
import uvicorn

from api.routes import (
    router as api_router,
    close_coordinator,
    get_coordinator,
    start_price_scheduler,
    stop_price_scheduler,
)
from api.middleware import (
    PUBLIC_PATHS,
    api_key_middleware,
    correlation_id_middleware,
    configure_structured_logging,
    limiter,
    rate_limit_exceeded_handler,
)
from api.health import build_health_response, mark_startup
from config.settings import get_settings
from services.errors import MoneyVerseError
from services.logging_service import apply_retention, configure_file_logging
from storage.database import init_db, backup_sqlite_database

logger = logging.getLogger(__name__)

# ── Graceful Shutdown State ──────────────────────────────────────────────────
_shutdown_event = threading.Event()


def _is_shutting_down() -> bool:
    return _shutdown_event.is_set()


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    """Manage background service lifecycle with graceful shutdown."""
    settings = get_settings()
    _shutdown_event.clear()
    try:
        configure_file_logging(settings.log_directory)
    except OSError:
        logger.warning("File logging unavailable; continuing with console only", exc_info=True)
    configure_structured_logging(settings.log_level)
    mark_startup()
    logger.info("MoneyVerse backend starting up (env=%s)", settings.environment)

    # ── Database init ────────────────────────────────────────────────────
    try:
        init_db()
        logger.info("Database initialized successfully")
    except (RuntimeError, ValueError, TypeError):
        logger.exception("Failed to initialize database schema")
        raise

    try:
        backup_path = backup_sqlite_database()
        logger.info("Startup database backup created: %s", backup_path)
    except (RuntimeError, OSError):
        logger.warning("Database backup on startup failed (non-blocking)", exc_info=True)

    # ── Startup validation ───────────────────────────────────────────────
    if settings.environment == "production" and not settings.api_auth_key:
        logger.warning(
            "Production environment detected but MONEYVERSE_API_KEY is not set. "
            "API authentication is disabled."
        )

    # ── Load state + start background services ───────────────────────────
    try:
        coordinator = get_coordinator()
    except MoneyVerseError:
        logger.exception("Failed to load saved game state")
        raise
    apply_retention(coordinator.store, settings.log_directory, settings.log_retention_days)
    try:
        started = start_price_scheduler()
        if started:
            logger.info("Price refresh scheduler started")
    except (RuntimeError, ValueError, TypeError):
        logger.exception("Failed to start price refresh scheduler")

    try:
        yield
    finally:
        # ── Graceful shutdown sequence ───────────────────────────────────
        logger.info("Initiating graceful shutdown...")
        _shutdown_event.set()

        # 1. Stop the scheduler so no price cycle runs mid-shutdown
        try:
            stopped = stop_price_scheduler()
            if stopped:
                logger.info("Price refresh scheduler stopped")
        except (RuntimeError, ValueError, TypeError):
            logger.exception("Failed to stop price refresh scheduler")

        # 2. Allow in-flight requests to drain
        await asyncio.sleep(0.5)

        # 3. Retry queued writes one last time
        try:
            coordinator = get_coordinator()
            if not coordinator.store.flush_pending():
                logger.error("Unsaved changes remain after shutdown flush")
        except MoneyVerseError:
            logger.exception("Final state flush failed")
        close_coordinator()
        logger.info("Graceful shutdown complete")


app = FastAPI(
    title="MoneyVerse API",
    description="Gamified teen finance tracker backend service",
    version="0.1.0",
    lifespan=_lifespan,
    openapi_tags=[
        {"name": "Profile", "description": "Player profile, streaks and badges"},
        {"name": "Quests", "description": "Quests, lessons and quizzes"},
        {"name": "Ledger", "description": "Real-money income and expenses"},
        {"name": "Portfolio", "description": "Simulated trading"},
        {"name": "Orders", "description": "Stop-loss and take-profit orders"},
        {"name": "Goals", "description": "Savings goals"},
        {"name": "Market", "description": "Market quotes"},
        {"name": "Content", "description": "AI advice and news"},
        {"name": "Activity", "description": "Game and trading event feed"},
        {"name": "Maintenance", "description": "Data reset"},
    ],
)

# ── Rate Limiter ─────────────────────────────────────────────────────────────
app.state.limiter = limiter
app.add_exception_handler(429, rate_limit_exceeded_handler)

# Compress responses >= 500 bytes (applied first, outermost middleware)
app.add_middleware(GZipMiddleware, minimum_size=500)

# Configure CORS for the desktop and dev frontends
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:1420", "http://localhost:5173", "tauri://localhost"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Correlation ID middleware (outermost - wraps everything) ─────────────────
@app.middleware("http")
async def _correlation_id(request: Request, call_next):
    return await correlation_id_middleware(request, call_next)


@app.middleware("http")
async def _api_key(request: Request, call_next):
    return await api_key_middleware(request, call_next)


# ── Shutdown rejection middleware ────────────────────────────────────────────
@app.middleware("http")
async def shutdown_rejection_middleware(request: Request, call_next):
    """Reject new write requests during graceful shutdown."""
    if _is_shutting_down() and request.method in {"POST", "PUT", "PATCH", "DELETE"}:
        if request.url.path not in PUBLIC_PATHS:
            return JSONResponse(
                status_code=503,
                content={"detail": "Server is shutting down. Please retry shortly."},
            )
    return await call_next(request)


@app.get("/")
async def root():
    """Root endpoint."""
    return {"message": "MoneyVerse API"}


@app.get("/status")
def status():
    """
    Production health check endpoint.
    Reports real subsystem status: database, market feed, scheduler, pending writes.
    """
    return build_health_response()


# Include API routes
app.include_router(api_router)


if __name__ == "__main__":
    # Frozen binary (PyInstaller): pass app object directly
    if getattr(sys, "frozen", False):
        logger.info("Backend bootstrap: frozen binary mode")
        uvicorn.run(app, host="127.0.0.1", port=8000, reload=False)
    else:
        reload_enabled = os.getenv("MONEYVERSE_BACKEND_RELOAD", "").strip().lower() in {"1", "true", "yes", "on"}
        logger.info("Backend bootstrap: uvicorn reload=%s", reload_enabled)
        uvicorn.run("app:app", host="127.0.0.1", port=int(os.getenv("MONEYVERSE_PORT", "8000")), reload=reload_enabled)
