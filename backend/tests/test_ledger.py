"""
Tests for the real-money ledger.
"""

import math

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from engine.models import TransactionType
from services.errors import NotFoundError
from services.ledger import LedgerService
from services.progression import ProgressionStore
from services.state_store import StateStore, StateTracker
from storage.database import Base
from storage.models import StateKey


@pytest.fixture
def store():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return StateStore(sessionmaker(bind=engine))


@pytest.fixture
def ledger(store):
    tracker = StateTracker(store)
    progression = ProgressionStore(tracker)
    progression.load(None, None)
    service = LedgerService(tracker, progression)
    service.load([])
    return service


def _wallet(ledger):
    return ledger.progression.profile.wallet_balance


def test_income_and_expense_update_wallet(ledger):
    ledger.add_transaction(50.0, "Allowance", "Allowance", TransactionType.INCOME)
    ledger.add_transaction(12.5, "Pizza", "Food", TransactionType.EXPENSE)
    assert _wallet(ledger) == pytest.approx(37.5)
    assert ledger.wallet_balance == pytest.approx(37.5)


def test_transactions_listed_newest_first(ledger):
    first = ledger.add_transaction(10, "one", "Other", TransactionType.INCOME)
    second = ledger.add_transaction(20, "two", "Other", TransactionType.INCOME)
    assert [tx.id for tx in ledger.list_transactions()] == [second.id, first.id]


def test_wallet_can_go_negative(ledger):
    ledger.add_transaction(30, "Shoes", "Shopping", TransactionType.EXPENSE)
    assert _wallet(ledger) == pytest.approx(-30.0)


@pytest.mark.parametrize("amount", [0, -1, math.inf, math.nan])
def test_rejects_non_positive_amounts(ledger, amount):
    with pytest.raises(ValueError):
        ledger.add_transaction(amount, "bad", "Other", TransactionType.INCOME)
    assert ledger.count() == 0


def test_edit_recomputes_wallet(ledger):
    tx = ledger.add_transaction(40, "Gift", "Other", TransactionType.INCOME)
    ledger.edit_transaction(tx.id, amount=25, type=TransactionType.EXPENSE)
    assert _wallet(ledger) == pytest.approx(-25.0)
    assert ledger.get_transaction(tx.id).description == "Gift"


def test_edit_with_invalid_amount_changes_nothing(ledger):
    tx = ledger.add_transaction(40, "Gift", "Other", TransactionType.INCOME)
    with pytest.raises(ValueError):
        ledger.edit_transaction(tx.id, amount=-3, type=TransactionType.EXPENSE)
    assert ledger.get_transaction(tx.id).type == TransactionType.INCOME
    assert _wallet(ledger) == pytest.approx(40.0)


def test_delete_recomputes_wallet(ledger):
    keep = ledger.add_transaction(100, "Job", "Side Hustle", TransactionType.INCOME)
    drop = ledger.add_transaction(60, "Game", "Entertainment", TransactionType.EXPENSE)
    ledger.delete_transaction(drop.id)
    assert [tx.id for tx in ledger.list_transactions()] == [keep.id]
    assert _wallet(ledger) == pytest.approx(100.0)


def test_unknown_transaction(ledger):
    with pytest.raises(NotFoundError):
        ledger.delete_transaction("nope")
    with pytest.raises(NotFoundError):
        ledger.edit_transaction("nope", amount=5)


def test_persisted_and_reloaded(ledger, store):
    ledger.add_transaction(75, "Allowance", "Allowance", TransactionType.INCOME)
    rows = store.load(StateKey.TRANSACTIONS)
    assert rows[0]["amount"] == 75
    assert rows[0]["type"] == "INCOME"
    assert store.load(StateKey.USER)["walletBalance"] == pytest.approx(75.0)

    tracker = StateTracker(store)
    progression = ProgressionStore(tracker)
    progression.load(store.load(StateKey.USER), store.load(StateKey.QUESTS))
    reloaded = LedgerService(tracker, progression)
    reloaded.load(rows)
    assert reloaded.count() == 1
    assert progression.profile.wallet_balance == pytest.approx(75.0)


def test_wallet_is_recomputed_on_load(store):
    """A stale stored balance is replaced by the ledger sum."""
    tracker = StateTracker(store)
    progression = ProgressionStore(tracker)
    progression.load({"name": "Alex", "xp": 120, "walletBalance": 999.0}, [])
    ledger = LedgerService(tracker, progression)
    ledger.load([
        {"id": "a", "amount": 10, "description": "", "category": "Other", "type": "INCOME"},
        {"id": "b", "amount": 4, "description": "", "category": "Food", "type": "EXPENSE"},
    ])
    assert progression.profile.wallet_balance == pytest.approx(6.0)
