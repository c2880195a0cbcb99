"""
Database models for MoneyVerse.
Defines the key-value state table and the activity log.
"""
from sqlalchemy import (
    Column, Integer, String, DateTime, Enum as SQLEnum, Text, JSON
)
from sqlalchemy.sql import func
import enum

from storage.database import Base


class StateKey(str, enum.Enum):
    """Stable keys of the persisted aggregates, one record per key."""
    USER = "mv_user"
    TRANSACTIONS = "mv_transactions"
    PORTFOLIO = "mv_portfolio"
    QUESTS = "mv_quests"
    GOALS = "mv_goals"
    ORDERS = "mv_orders"


class ActivityEventTypeEnum(str, enum.Enum):
    """Activity event type enumeration."""
    QUEST_COMPLETED = "quest_completed"
    QUEST_UNLOCKED = "quest_unlocked"
    BADGE_UNLOCKED = "badge_unlocked"
    LEVEL_UP = "level_up"
    ORDER_CREATED = "order_created"
    ORDER_EXECUTED = "order_executed"
    ORDER_INVALIDATED = "order_invalidated"
    ORDER_CANCELLED = "order_cancelled"
    GOAL_COMPLETED = "goal_completed"
    DATA_RESET = "data_reset"


class StateRecord(Base):
    """
    StateRecord model - one JSON document per aggregate.
    Key-value store for the player's state.
    """
    __tablename__ = "state_records"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), nullable=False, unique=True, index=True)
    value = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=func.now(), nullable=False)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)


class ActivityLog(Base):
    """
    ActivityLog model - game and trading events shown in the activity feed.
    """
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    event_type = Column(SQLEnum(ActivityEventTypeEnum), nullable=False, index=True)
    description = Column(Text, nullable=False)
    details = Column(JSON, nullable=True)

    timestamp = Column(DateTime, default=func.now(), nullable=False, index=True)
