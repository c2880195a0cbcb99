"""
Storage service - High-level interface for storage operations.
Provides business logic on top of repositories.
"""
from typing import Any, Dict, List, Mapping, Optional
from sqlalchemy.orm import Session

from storage.repositories import StateRecordRepository, ActivityLogRepository
from storage.models import ActivityLog, ActivityEventTypeEnum
from storage.database import Base


class StorageService:
    """
    Main storage service coordinating all repository operations.
    This is the primary interface for backend services to interact with storage.
    """

    def __init__(self, db: Session):
        """Initialize storage service with database session."""
        self.db = db
        # Ensure schema exists for the active DB bind.
        # This keeps behavior stable across different test DB overrides.
        Base.metadata.create_all(bind=self.db.get_bind())
        self.state = StateRecordRepository(db)
        self.activity = ActivityLogRepository(db)

    # State operations

    def get_state(self, key: str, default: Any = None) -> Any:
        """Get the value stored under key, or default when absent."""
        record = self.state.get_by_key(key)
        if record is None or record.value is None:
            return default
        return record.value

    def save_state(self, values: Mapping[str, Any]) -> None:
        """
        Persist several keys in a single transaction.

        Args:
            values: Mapping of key -> JSON-serializable value
        """
        try:
            for key, value in values.items():
                self.state.upsert(key, value, commit=False)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def clear_state(self) -> int:
        """Delete all state records."""
        return self.state.delete_all()

    # Activity log operations

    def create_activity(
        self,
        event_type: str,
        description: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> ActivityLog:
        """Create a new activity log entry."""
        return self.activity.create(
            event_type=ActivityEventTypeEnum(event_type),
            description=description,
            details=details,
        )

    def get_activity(
        self,
        limit: int = 100,
        offset: int = 0,
        event_type: Optional[str] = None,
    ) -> List[ActivityLog]:
        """Get activity logs with filtering and pagination."""
        event_type_enum = ActivityEventTypeEnum(event_type) if event_type else None
        return self.activity.get_all(limit=limit, offset=offset, event_type=event_type_enum)

    def count_activity(self, event_type: Optional[str] = None) -> int:
        """Count activity logs with optional filtering."""
        event_type_enum = ActivityEventTypeEnum(event_type) if event_type else None
        return self.activity.count(event_type=event_type_enum)

    def clear_activity(self) -> int:
        return self.activity.delete_all()

    def prune_activity(self, retention_days: int) -> int:
        """Delete activity older than retention_days."""
        return self.activity.delete_old_logs(days=retention_days)
