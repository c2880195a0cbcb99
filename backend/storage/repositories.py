"""
Repository classes for database CRUD operations.
Provides abstraction layer between services and database models.
"""
from typing import Any, Dict, List, Optional
from datetime import datetime, timedelta
from sqlalchemy.orm import Session

from storage.models import StateRecord, ActivityLog, ActivityEventTypeEnum


class StateRecordRepository:
    """Repository for StateRecord CRUD operations."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_key(self, key: str) -> Optional[StateRecord]:
        """Get state record by key."""
        return self.db.query(StateRecord).filter(StateRecord.key == key).first()

    def upsert(self, key: str, value: Any, commit: bool = True) -> StateRecord:
        """
        Create or replace the value stored under key.

        Args:
            key: Record key
            value: JSON-serializable value
            commit: Commit immediately (False lets callers batch several keys)
        """
        record = self.get_by_key(key)
        if record is None:
            record = StateRecord(key=key, value=value)
            self.db.add(record)
        else:
            record.value = value
            record.updated_at = datetime.now()
        if commit:
            self.db.commit()
            self.db.refresh(record)
        return record

    def delete_all(self) -> int:
        """Delete every state record."""
        deleted = self.db.query(StateRecord).delete()
        self.db.commit()
        return deleted


class ActivityLogRepository:
    """Repository for ActivityLog CRUD operations."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        event_type: ActivityEventTypeEnum,
        description: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> ActivityLog:
        """Create a new activity log entry."""
        entry = ActivityLog(
            event_type=event_type,
            description=description,
            details=details,
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(entry)
        return entry

    def get_all(
        self,
        limit: int = 100,
        offset: int = 0,
        event_type: Optional[ActivityEventTypeEnum] = None,
    ) -> List[ActivityLog]:
        """Get activity logs with filtering and pagination, newest first."""
        query = self.db.query(ActivityLog)
        if event_type:
            query = query.filter(ActivityLog.event_type == event_type)
        query = query.order_by(ActivityLog.timestamp.desc(), ActivityLog.id.desc())
        return query.offset(offset).limit(limit).all()

    def count(self, event_type: Optional[ActivityEventTypeEnum] = None) -> int:
        """Count activity logs with optional filtering."""
        query = self.db.query(ActivityLog)
        if event_type:
            query = query.filter(ActivityLog.event_type == event_type)
        return query.count()

    def delete_all(self) -> int:
        deleted = self.db.query(ActivityLog).delete()
        self.db.commit()
        return deleted

    def delete_old_logs(self, days: int = 90) -> int:
        """Delete activity logs older than specified days."""
        cutoff_date = datetime.now() - timedelta(days=days)
        deleted = self.db.query(ActivityLog).filter(
            ActivityLog.timestamp < cutoff_date
        ).delete()
        self.db.commit()
        return deleted
