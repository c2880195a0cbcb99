"""
Storage module - Database persistence layer.
Provides models, repositories, and services for data storage.
"""
from storage.database import Base, init_db, SessionLocal
from storage.models import StateRecord, ActivityLog, StateKey, ActivityEventTypeEnum
from storage.repositories import StateRecordRepository, ActivityLogRepository
from storage.service import StorageService

__all__ = [
    # Database
    "Base",
    "init_db",
    "SessionLocal",
    # Models
    "StateRecord",
    "ActivityLog",
    # Enums
    "StateKey",
    "ActivityEventTypeEnum",
    # Repositories
    "StateRecordRepository",
    "ActivityLogRepository",
    # Service
    "StorageService",
]
