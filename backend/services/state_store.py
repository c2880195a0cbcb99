"""
Key-value state persistence for the game services.

Each aggregate (profile, transactions, portfolio, quests, goals, orders) is
stored as one JSON document under a stable key. Every operation opens its own
short-lived database session, so the store can be shared between request
handlers and the price scheduler thread.

Failed writes raise PersistenceError to the caller and stay queued; the queue
is retried ahead of the next write and by ``flush_pending``.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from services.errors import PersistenceError
from storage.models import StateKey
from storage.service import StorageService

logger = logging.getLogger(__name__)

KeyLike = Union[StateKey, str]


def _key_name(key: KeyLike) -> str:
    return key.value if isinstance(key, StateKey) else str(key)


class StateStore:
    """Session-per-operation facade over StorageService."""

    def __init__(self, session_factory: Callable[[], Session]):
        """
        Args:
            session_factory: Callable returning a new SQLAlchemy session
        """
        self._session_factory = session_factory
        self._pending: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def load(self, key: KeyLike, default: Any = None) -> Any:
        """
        Load the value stored under key.

        Raises:
            PersistenceError: If the store cannot be read
        """
        name = _key_name(key)
        with self._lock:
            if name in self._pending:
                return self._pending[name]
        db = self._session_factory()
        try:
            return StorageService(db).get_state(name, default)
        except SQLAlchemyError as exc:
            logger.error("Failed to load state %s: %s", name, exc)
            raise PersistenceError(f"Could not read saved data ({name})") from exc
        finally:
            db.close()

    def save(self, values: Mapping[KeyLike, Any]) -> None:
        """
        Persist one or more aggregates atomically, together with any queued
        writes from earlier failures.

        Raises:
            PersistenceError: If the write failed (values remain queued)
        """
        with self._lock:
            batch = dict(self._pending)
            batch.update({_key_name(k): v for k, v in values.items()})
            db = self._session_factory()
            try:
                StorageService(db).save_state(batch)
            except SQLAlchemyError as exc:
                self._pending = batch
                logger.error("Failed to save state %s: %s", sorted(batch), exc)
                raise PersistenceError("Changes may not be saved; they will be retried") from exc
            finally:
                db.close()
            self._pending.clear()

    def flush_pending(self) -> bool:
        """
        Retry queued writes.

        Returns:
            True if nothing is left queued
        """
        with self._lock:
            if not self._pending:
                return True
        try:
            self.save({})
        except PersistenceError:
            return False
        logger.info("Queued state writes flushed")
        return True

    @property
    def has_pending(self) -> bool:
        with self._lock:
            return bool(self._pending)

    def clear(self) -> None:
        """Delete every persisted aggregate and the activity feed."""
        with self._lock:
            self._pending.clear()
            db = self._session_factory()
            try:
                storage = StorageService(db)
                storage.clear_state()
                storage.clear_activity()
            except SQLAlchemyError as exc:
                db.rollback()
                raise PersistenceError("Could not reset saved data") from exc
            finally:
                db.close()

    # Activity feed

    def record_activity(
        self,
        event_type: str,
        description: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Append to the activity feed. Failures are logged, never raised."""
        db = self._session_factory()
        try:
            StorageService(db).create_activity(event_type, description, details)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Activity log write failed (%s): %s", event_type, exc)
        finally:
            db.close()

    def get_activity(
        self,
        limit: int = 100,
        offset: int = 0,
        event_type: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Read the activity feed, newest first."""
        db = self._session_factory()
        try:
            rows = StorageService(db).get_activity(limit=limit, offset=offset, event_type=event_type)
            return [
                {
                    "id": row.id,
                    "event_type": row.event_type.value,
                    "description": row.description,
                    "details": row.details or {},
                    "timestamp": row.timestamp,
                }
                for row in rows
            ]
        except SQLAlchemyError as exc:
            raise PersistenceError("Could not read activity feed") from exc
        finally:
            db.close()

    def count_activity(self, event_type: Optional[str] = None) -> int:
        db = self._session_factory()
        try:
            return StorageService(db).count_activity(event_type)
        except SQLAlchemyError as exc:
            raise PersistenceError("Could not count activity feed") from exc
        finally:
            db.close()

    def prune_activity(self, retention_days: int) -> int:
        db = self._session_factory()
        try:
            return StorageService(db).prune_activity(retention_days)
        except SQLAlchemyError as exc:
            db.rollback()
            raise PersistenceError("Could not prune activity feed") from exc
        finally:
            db.close()


class StateTracker:
    """
    Collects aggregates changed by one operation and saves them together.

    Services call ``mark`` after mutating in-memory state. Outside a ``batch``
    the change is saved immediately; inside one, all marked aggregates are
    saved in a single transaction when the outermost batch exits normally.
    """

    def __init__(self, store: StateStore):
        self.store = store
        self._dirty: Dict[str, Callable[[], Any]] = {}
        self._depth = 0

    def mark(self, key: KeyLike, serialize: Callable[[], Any]) -> None:
        self._dirty[_key_name(key)] = serialize
        if self._depth == 0:
            self.flush()

    @contextmanager
    def batch(self) -> Iterator[None]:
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1
        if self._depth == 0:
            self.flush()

    def flush(self) -> None:
        """Serialize and save every marked aggregate."""
        if not self._dirty:
            return
        values = {key: serialize() for key, serialize in self._dirty.items()}
        self._dirty.clear()
        self.store.save(values)

    def activity(self, event_type: str, description: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.store.record_activity(event_type, description, details)
