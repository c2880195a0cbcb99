"""
Savings Goals Service.

Deposits into a goal are recorded as EXPENSE transactions in the "Savings"
category, so saving money reduces the real-money wallet.
"""

import logging
import math
import uuid
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from engine.models import Goal, Transaction, TransactionType
from services.errors import NotFoundError
from services.ledger import LedgerService
from services.state_store import StateTracker
from storage.models import ActivityEventTypeEnum, StateKey

logger = logging.getLogger(__name__)

SAVINGS_CATEGORY = "Savings"


@dataclass
class GoalDeposit:
    """Result of a deposit into a goal."""
    goal: Goal
    transaction: Transaction
    just_completed: bool


class GoalService:
    """
    Tracks savings goals.

    Features:
    - Goal creation and deletion
    - Deposits backed by ledger transactions
    - One-time completion when the target is reached
    """

    def __init__(self, tracker: StateTracker, ledger: LedgerService):
        self.tracker = tracker
        self.ledger = ledger
        self._goals: List[Goal] = []

    def load(self, data: Optional[List[Dict[str, Any]]]) -> None:
        self._goals = [Goal.from_dict(row) for row in (data or [])]

    def list_goals(self) -> List[Goal]:
        return list(self._goals)

    def get_goal(self, goal_id: str) -> Goal:
        for goal in self._goals:
            if goal.id == goal_id:
                return goal
        raise NotFoundError(f"Goal {goal_id} not found")

    @property
    def total_saved(self) -> float:
        return sum(goal.current_amount for goal in self._goals)

    def add_goal(self, title: str, target_amount: float, emoji: Optional[str] = None) -> Goal:
        """
        Create a goal.

        Args:
            title: Goal name
            target_amount: Positive savings target
            emoji: Display icon

        Returns:
            The new goal
        """
        title = title.strip()
        if not title:
            raise ValueError("Goal title cannot be empty")
        target_amount = float(target_amount)
        if not math.isfinite(target_amount) or target_amount <= 0:
            raise ValueError("Goal target must be positive")
        goal = Goal(id=uuid.uuid4().hex, title=title, target_amount=target_amount)
        if emoji:
            goal.emoji = emoji
        self._goals.append(goal)
        self._save()
        logger.info("Goal created: %s (target %.2f)", title, target_amount)
        return goal

    def delete_goal(self, goal_id: str) -> Goal:
        """Remove a goal. Transactions already recorded for it are kept."""
        goal = self.get_goal(goal_id)
        self._goals.remove(goal)
        self._save()
        return goal

    def add_funds_to_goal(self, goal_id: str, amount: float) -> GoalDeposit:
        """
        Deposit into a goal.

        The goal completes the first time its current amount reaches the
        target; later deposits keep adding but never complete it again.
        """
        goal = self.get_goal(goal_id)
        transaction = self.ledger.add_transaction(
            amount=amount,
            description=f"Saved for {goal.title}",
            category=SAVINGS_CATEGORY,
            type=TransactionType.EXPENSE,
        )
        goal.current_amount += transaction.amount
        just_completed = False
        if not goal.completed and goal.current_amount >= goal.target_amount:
            goal.completed = True
            just_completed = True
            logger.info("Goal completed: %s", goal.title)
            self.tracker.activity(
                ActivityEventTypeEnum.GOAL_COMPLETED.value,
                f"Reached goal {goal.emoji} {goal.title}",
                {"goal_id": goal.id, "target_amount": goal.target_amount},
            )
        self._save()
        return GoalDeposit(goal=goal, transaction=transaction, just_completed=just_completed)

    def _save(self) -> None:
        self.tracker.mark(StateKey.GOALS, lambda: [goal.to_dict() for goal in self._goals])
