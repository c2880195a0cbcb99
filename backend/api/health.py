"""
Production health check endpoint.

Reports real subsystem status instead of a static response:
- Database connectivity
- Market data feed freshness
- Background price scheduler status
- Queued state writes awaiting retry
"""
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from services.errors import PersistenceError
from storage.database import SessionLocal

logger = logging.getLogger(__name__)

# Track startup time for uptime reporting
_startup_time: float = time.monotonic()
_startup_utc: str = datetime.now(timezone.utc).isoformat()

_APP_VERSION = "0.1.0"


def mark_startup() -> None:
    """Call once at startup to record the process start time."""
    global _startup_time, _startup_utc
    _startup_time = time.monotonic()
    _startup_utc = datetime.now(timezone.utc).isoformat()


def build_health_response() -> Dict[str, Any]:
    """
    Build a comprehensive health check payload.

    Returns a dict with:
      status: "healthy" | "degraded" | "unhealthy"
      checks: per-subsystem status
      uptime_seconds: process uptime
      version: app version
    """
    from api.routes import get_coordinator, price_scheduler_status

    checks: Dict[str, Dict[str, Any]] = {}
    overall_healthy = True
    degraded = False

    # ── Database ─────────────────────────────────────────────────────────
    db_ok = False
    db_error = ""
    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
            db_ok = True
        finally:
            db.close()
    except SQLAlchemyError as exc:
        db_error = str(exc)[:200]
        overall_healthy = False

    checks["database"] = {
        "status": "up" if db_ok else "down",
        "error": db_error or None,
    }

    # ── Market feed & pending writes ─────────────────────────────────────
    market: Dict[str, Any] = {"status": "unknown"}
    pending_writes = False
    try:
        coordinator = get_coordinator()
        feed = coordinator.market.status()
        pending_writes = coordinator.store.has_pending
        market = {
            "status": "degraded" if feed["last_error"] else "up",
            **feed,
        }
        if feed["last_error"]:
            degraded = True
    except (PersistenceError, SQLAlchemyError) as exc:
        market = {"status": "unknown", "error": str(exc)[:200]}
        degraded = True

    checks["market_data"] = market
    checks["state_writes"] = {"status": "retrying" if pending_writes else "ok"}
    if pending_writes:
        degraded = True

    # ── Price Scheduler ──────────────────────────────────────────────────
    scheduler = price_scheduler_status()
    checks["price_scheduler"] = scheduler
    if scheduler.get("last_error"):
        degraded = True

    # ── Overall status ───────────────────────────────────────────────────
    if not overall_healthy:
        status = "unhealthy"
    elif degraded:
        status = "degraded"
    else:
        status = "healthy"

    return {
        "status": status,
        "service": "MoneyVerse Backend",
        "version": _APP_VERSION,
        "uptime_seconds": round(time.monotonic() - _startup_time, 1),
        "started_at": _startup_utc,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }
