"""
Ledger Service.

Real-money transaction log. The wallet balance on the profile is always the
full signed sum of the current transactions, recomputed after each mutation.
"""

import logging
import math
import uuid
from typing import Any, Dict, List, Optional

from engine.models import Transaction, TransactionType, utc_now_iso
from services.errors import NotFoundError
from services.progression import ProgressionStore
from services.state_store import StateTracker
from storage.models import StateKey

logger = logging.getLogger(__name__)


def _validate_amount(amount: float) -> float:
    amount = float(amount)
    if not math.isfinite(amount) or amount <= 0:
        raise ValueError("Transaction amount must be positive")
    return amount


class LedgerService:
    """Transaction CRUD bound to the profile's wallet balance."""

    def __init__(self, tracker: StateTracker, progression: ProgressionStore):
        self.tracker = tracker
        self.progression = progression
        self._transactions: List[Transaction] = []

    def load(self, data: Optional[List[Dict[str, Any]]]) -> None:
        self._transactions = [Transaction.from_dict(row) for row in (data or [])]
        self._recompute_wallet()

    def list_transactions(self) -> List[Transaction]:
        """Transactions, newest first."""
        return list(self._transactions)

    def count(self) -> int:
        return len(self._transactions)

    def get_transaction(self, transaction_id: str) -> Transaction:
        for tx in self._transactions:
            if tx.id == transaction_id:
                return tx
        raise NotFoundError(f"Transaction {transaction_id} not found")

    @property
    def wallet_balance(self) -> float:
        return sum(tx.signed_amount for tx in self._transactions)

    def add_transaction(
        self,
        amount: float,
        description: str,
        category: str,
        type: TransactionType,
        date: Optional[str] = None,
    ) -> Transaction:
        """
        Record a transaction.

        Args:
            amount: Positive amount
            description: Free text
            category: Ledger category
            type: INCOME or EXPENSE
            date: ISO timestamp (defaults to now)

        Returns:
            The stored transaction
        """
        tx = Transaction(
            id=uuid.uuid4().hex,
            amount=_validate_amount(amount),
            description=description.strip(),
            category=category.strip() or "Other",
            type=TransactionType(type),
            date=date or utc_now_iso(),
        )
        self._transactions.insert(0, tx)
        self._save()
        logger.info("Transaction added: %s %.2f (%s)", tx.type.value, tx.amount, tx.category)
        return tx

    def edit_transaction(
        self,
        transaction_id: str,
        amount: Optional[float] = None,
        description: Optional[str] = None,
        category: Optional[str] = None,
        type: Optional[TransactionType] = None,
        date: Optional[str] = None,
    ) -> Transaction:
        """Update fields of an existing transaction."""
        tx = self.get_transaction(transaction_id)
        # Validate everything before mutating.
        new_amount = _validate_amount(amount) if amount is not None else tx.amount
        new_type = TransactionType(type) if type is not None else tx.type
        tx.amount = new_amount
        tx.type = new_type
        if description is not None:
            tx.description = description.strip()
        if category is not None:
            tx.category = category.strip() or tx.category
        if date is not None:
            tx.date = date
        self._save()
        return tx

    def delete_transaction(self, transaction_id: str) -> Transaction:
        tx = self.get_transaction(transaction_id)
        self._transactions.remove(tx)
        self._save()
        logger.info("Transaction deleted: %s", transaction_id)
        return tx

    def _recompute_wallet(self) -> None:
        self.progression.set_wallet_balance(self.wallet_balance)

    def _save(self) -> None:
        self.tracker.mark(StateKey.TRANSACTIONS, lambda: [tx.to_dict() for tx in self._transactions])
        self._recompute_wallet()
