"""
Progression Store.

Owns the player profile (xp, level, streak, badges, preferences) and the
unlocked quest list. Wallet balance and simulated cash live on the profile
but are written only by the ledger and portfolio services.
"""

import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from engine.models import (
    CURRENCY_SYMBOLS,
    DEFAULT_CATEGORIES,
    Quest,
    QuestCategory,
    UserProfile,
)
from engine.quest_catalog import BADGE_NEWBIE, BADGE_STREAK_MASTER, BadgeCatalog, QuestCatalog
from engine.quest_unlocks import compute_unlocks
from services.errors import NotFoundError
from services.state_store import StateTracker
from storage.models import ActivityEventTypeEnum, StateKey

logger = logging.getLogger(__name__)

NEW_PLAYER_XP = 120
STREAK_BADGE_DAYS = 7
THEMES = ("light", "dark")


class ProgressionStore:
    """
    Profile and quest state holder.

    Not thread-safe on its own; callers serialize access (see GameCoordinator).
    """

    def __init__(
        self,
        tracker: StateTracker,
        quest_catalog: Optional[QuestCatalog] = None,
        badge_catalog: Optional[BadgeCatalog] = None,
        starting_cash: float = 10000.0,
    ):
        self.tracker = tracker
        self.quest_catalog = quest_catalog or QuestCatalog()
        self.badge_catalog = badge_catalog or BadgeCatalog()
        self.starting_cash = float(starting_cash)
        self.profile = self.default_profile()
        self._quests: List[Quest] = []

    def default_profile(self) -> UserProfile:
        return UserProfile(
            xp=NEW_PLAYER_XP,
            simulated_cash=self.starting_cash,
            unlocked_badges=[BADGE_NEWBIE],
        )

    def load(self, profile_data: Optional[Dict[str, Any]], quest_data: Optional[List[Dict[str, Any]]]) -> None:
        """
        Restore from persisted records; absent records fall back to a new player.

        Unlocks are refreshed once after loading so a catalog change surfaces
        newly reachable quests.
        """
        if profile_data:
            self.profile = UserProfile.from_dict(profile_data)
        else:
            self.profile = self.default_profile()
            self._save_profile()
        self._quests = [Quest.from_dict(row) for row in (quest_data or [])]
        self.refresh_unlocks()

    # Profile

    @property
    def level(self) -> int:
        return self.profile.level

    def award_xp(self, amount: int) -> int:
        """
        Add experience points.

        Args:
            amount: Positive number of points

        Returns:
            The level after the award
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise ValueError("XP award must be a positive integer")
        old_level = self.profile.level
        self.profile.xp += amount
        new_level = self.profile.level
        self._save_profile()
        if new_level > old_level:
            logger.info("Level up: %s -> %s (xp=%s)", old_level, new_level, self.profile.xp)
            self.tracker.activity(
                ActivityEventTypeEnum.LEVEL_UP.value,
                f"Reached level {new_level}",
                {"from_level": old_level, "to_level": new_level, "xp": self.profile.xp},
            )
        return new_level

    def unlock_badge(self, badge_id: str) -> bool:
        """
        Unlock a badge.

        Returns:
            True if the badge was newly unlocked, False if already owned
        """
        badge = self.badge_catalog.get(badge_id)
        if badge is None:
            raise NotFoundError(f"Unknown badge: {badge_id}")
        if badge_id in self.profile.unlocked_badges:
            return False
        self.profile.unlocked_badges.append(badge_id)
        self._save_profile()
        logger.info("Badge unlocked: %s", badge.name)
        self.tracker.activity(
            ActivityEventTypeEnum.BADGE_UNLOCKED.value,
            f"Unlocked badge {badge.icon} {badge.name}",
            {"badge_id": badge_id},
        )
        return True

    def has_badge(self, badge_id: str) -> bool:
        return badge_id in self.profile.unlocked_badges

    def record_login(self, today: date) -> bool:
        """
        Update the daily login streak.

        Returns:
            False when already recorded for ``today``, True otherwise
        """
        today_iso = today.isoformat()
        last = self.profile.last_login_date
        if last == today_iso:
            return False

        if last == (today - timedelta(days=1)).isoformat():
            self.profile.streak += 1
        else:
            self.profile.streak = 1
        self.profile.last_login_date = today_iso
        self._save_profile()
        logger.info("Login recorded for %s (streak=%s)", today_iso, self.profile.streak)

        if self.profile.streak >= STREAK_BADGE_DAYS:
            self.unlock_badge(BADGE_STREAK_MASTER)
        return True

    def update_profile(
        self,
        name: Optional[str] = None,
        avatar: Optional[str] = None,
        currency: Optional[str] = None,
        theme: Optional[str] = None,
    ) -> UserProfile:
        """Edit display preferences. Unknown currencies and themes raise ValueError."""
        if name is not None:
            name = name.strip()
            if not name:
                raise ValueError("Name cannot be empty")
            self.profile.name = name
        if avatar is not None:
            self.profile.avatar = avatar
        if currency is not None:
            code = currency.upper()
            if code not in CURRENCY_SYMBOLS:
                raise ValueError(f"Unsupported currency: {currency}")
            self.profile.currency = code
        if theme is not None:
            if theme not in THEMES:
                raise ValueError(f"Unsupported theme: {theme}")
            self.profile.theme = theme
        self._save_profile()
        return self.profile

    def categories(self) -> List[str]:
        return DEFAULT_CATEGORIES + [c for c in self.profile.custom_categories if c not in DEFAULT_CATEGORIES]

    def add_custom_category(self, name: str) -> bool:
        """Add a ledger category; returns False if it already exists."""
        name = name.strip()
        if not name:
            raise ValueError("Category name cannot be empty")
        if name in self.categories():
            return False
        self.profile.custom_categories.append(name)
        self._save_profile()
        return True

    def set_wallet_balance(self, balance: float) -> None:
        self.profile.wallet_balance = balance
        self._save_profile()

    def set_simulated_cash(self, cash: float) -> None:
        self.profile.simulated_cash = cash
        self._save_profile()

    # Quests

    def list_quests(self) -> List[Quest]:
        return list(self._quests)

    def get_quest(self, quest_id: str) -> Optional[Quest]:
        return next((q for q in self._quests if q.id == quest_id), None)

    def is_open(self, quest_id: str) -> bool:
        """True when the quest is unlocked and not yet completed."""
        quest = self.get_quest(quest_id)
        return quest is not None and not quest.completed

    def completed_count(self, category: Optional[QuestCategory] = None) -> int:
        return sum(1 for q in self._quests if q.completed and (category is None or q.category == category))

    def complete_quest(self, quest_id: str) -> List[Quest]:
        """
        Mark a quest completed, award its XP and unlock follow-up quests.

        Args:
            quest_id: Id of an unlocked quest

        Returns:
            Quests newly unlocked by this completion (empty when the quest was
            already completed)

        Raises:
            NotFoundError: If the quest is not unlocked
        """
        quest = self.get_quest(quest_id)
        if quest is None:
            raise NotFoundError(f"Quest {quest_id} is not unlocked")
        if quest.completed:
            return []

        quest.completed = True
        self._save_quests()
        logger.info("Quest completed: %s (+%s XP)", quest.title, quest.xp_reward)
        self.tracker.activity(
            ActivityEventTypeEnum.QUEST_COMPLETED.value,
            f"Completed quest {quest.title}",
            {"quest_id": quest.id, "xp_reward": quest.xp_reward},
        )
        if quest.xp_reward > 0:
            self.award_xp(quest.xp_reward)
        return self.refresh_unlocks()

    def refresh_unlocks(self) -> List[Quest]:
        """Run the unlock engine and append the quests it returns."""
        unlocked = compute_unlocks(self._quests, self.quest_catalog.templates())
        if not unlocked:
            return []
        self._quests.extend(unlocked)
        self._save_quests()
        for quest in unlocked:
            self.tracker.activity(
                ActivityEventTypeEnum.QUEST_UNLOCKED.value,
                f"New quest: {quest.title}",
                {"quest_id": quest.id},
            )
        return unlocked

    def _save_profile(self) -> None:
        self.tracker.mark(StateKey.USER, lambda: self.profile.to_dict())

    def _save_quests(self) -> None:
        self.tracker.mark(StateKey.QUESTS, lambda: [q.to_dict() for q in self._quests])
