"""
Game engine module.

Core components:
- Domain models (profile, ledger entries, holdings, quests, orders)
- Quest and badge catalogs
- Quest unlock engine
"""

from engine.models import (
    Asset,
    AssetType,
    Badge,
    Goal,
    Order,
    OrderKind,
    PortfolioItem,
    Quest,
    QuestCategory,
    QuestTemplate,
    Transaction,
    TransactionType,
    UserProfile,
    level_for_xp,
)
from engine.quest_catalog import QuestCatalog, BadgeCatalog, QUEST_TEMPLATES, BADGES
from engine.quest_unlocks import compute_unlocks

__all__ = [
    "Asset",
    "AssetType",
    "Badge",
    "Goal",
    "Order",
    "OrderKind",
    "PortfolioItem",
    "Quest",
    "QuestCategory",
    "QuestTemplate",
    "Transaction",
    "TransactionType",
    "UserProfile",
    "level_for_xp",
    "QuestCatalog",
    "BadgeCatalog",
    "QUEST_TEMPLATES",
    "BADGES",
    "compute_unlocks",
]
