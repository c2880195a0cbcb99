"""
Reward rules.

Observes ledger, portfolio and goal events and turns them into XP, badge
unlocks and quest completions. Each hook is called explicitly by the
coordinator after the corresponding mutation.
"""

import logging
from typing import List

from engine.models import Quest, QuestCategory, Transaction, TransactionType
from engine.quest_catalog import (
    BADGE_BIG_SPENDER,
    BADGE_GOAL_GETTER,
    BADGE_INVESTOR,
    BADGE_SAVER,
    BADGE_SCHOLAR,
    QUEST_CATEGORY_PRO,
    QUEST_DIVERSIFICATION,
    QUEST_EXPENSE_LOGGER,
    QUEST_FIRST_INVESTMENT,
    QUEST_GOAL_SETTER,
    QUEST_INCOME_TRACKER,
    QUEST_WEALTH_BUILDER,
)
from services.goals import GoalDeposit, GoalService
from services.ledger import LedgerService
from services.portfolio import PortfolioService
from services.progression import ProgressionStore

logger = logging.getLogger(__name__)

TRANSACTION_XP = 20
TRADE_XP = 50
GOAL_CREATED_XP = 50
GOAL_COMPLETION_XP = 500

BIG_SPENDER_TRANSACTIONS = 50
DIVERSIFICATION_HOLDINGS = 2
SAVER_THRESHOLD = 100.0
SCHOLAR_LESSONS = 5
WEALTH_BUILDER_BALANCE = 500.0


class RewardRules:
    """Applies the game's reward table."""

    def __init__(
        self,
        progression: ProgressionStore,
        ledger: LedgerService,
        portfolio: PortfolioService,
        goals: GoalService,
    ):
        self.progression = progression
        self.ledger = ledger
        self.portfolio = portfolio
        self.goals = goals

    def complete_quest(self, quest_id: str) -> List[Quest]:
        """Complete a quest and apply the follow-up checks it can satisfy."""
        unlocked = self.progression.complete_quest(quest_id)
        quest = self.progression.get_quest(quest_id)
        if quest is not None and quest.category == QuestCategory.LEARNING:
            if self.progression.completed_count(QuestCategory.LEARNING) >= SCHOLAR_LESSONS:
                self.progression.unlock_badge(BADGE_SCHOLAR)
        return unlocked

    def _complete_if_open(self, quest_id: str) -> List[Quest]:
        if not self.progression.is_open(quest_id):
            return []
        return self.complete_quest(quest_id)

    def _check_wealth_builder(self) -> List[Quest]:
        # Ledger hooks only; unlocking the quest does not re-check the wallet.
        if self.ledger.wallet_balance >= WEALTH_BUILDER_BALANCE:
            return self._complete_if_open(QUEST_WEALTH_BUILDER)
        return []

    def on_transaction_added(self, tx: Transaction) -> None:
        self.progression.award_xp(TRANSACTION_XP)
        self._complete_if_open(QUEST_EXPENSE_LOGGER)
        if tx.type == TransactionType.INCOME:
            self._complete_if_open(QUEST_INCOME_TRACKER)
        if self.ledger.count() >= BIG_SPENDER_TRANSACTIONS:
            self.progression.unlock_badge(BADGE_BIG_SPENDER)
        self._check_wealth_builder()

    def on_ledger_changed(self) -> None:
        """Edits and deletions can also push the wallet over the threshold."""
        self._check_wealth_builder()

    def on_category_added(self) -> None:
        self._complete_if_open(QUEST_CATEGORY_PRO)

    def on_asset_bought(self) -> None:
        self.progression.award_xp(TRADE_XP)
        self._complete_if_open(QUEST_FIRST_INVESTMENT)
        if len(self.portfolio.get_positions()) >= DIVERSIFICATION_HOLDINGS:
            self._complete_if_open(QUEST_DIVERSIFICATION)
        self.progression.unlock_badge(BADGE_INVESTOR)

    def on_asset_sold(self) -> None:
        self.progression.award_xp(TRADE_XP)

    def on_goal_created(self) -> None:
        self.progression.award_xp(GOAL_CREATED_XP)
        self._complete_if_open(QUEST_GOAL_SETTER)

    def on_goal_deposit(self, deposit: GoalDeposit) -> None:
        self.on_transaction_added(deposit.transaction)
        if deposit.just_completed:
            self.progression.award_xp(GOAL_COMPLETION_XP)
            self.progression.unlock_badge(BADGE_GOAL_GETTER)
        if self.goals.total_saved >= SAVER_THRESHOLD:
            self.progression.unlock_badge(BADGE_SAVER)
