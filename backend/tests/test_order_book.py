"""
Tests for stop-loss and take-profit orders.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from engine.models import OrderKind
from services.errors import NotFoundError
from services.order_book import OrderBookService, OrderOutcomeStatus, coerce_targets
from services.portfolio import PortfolioService
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
def portfolio(store):
    tracker = StateTracker(store)
    progression = ProgressionStore(tracker, starting_cash=10000.0)
    progression.load(None, None)
    service = PortfolioService(tracker, progression)
    service.load([])
    return service


@pytest.fixture
def order_book(portfolio):
    book = OrderBookService(portfolio.tracker, portfolio)
    book.load([])
    return book


def _buy_with_bracket(portfolio, order_book, symbol, price, quantity, stop_loss=None, take_profit=None):
    portfolio.buy_asset(symbol, price, quantity)
    return order_book.create_bracket_orders(symbol, price, quantity, stop_loss=stop_loss, take_profit=take_profit)


def test_stop_loss_sells_at_trigger_price(portfolio, order_book):
    _buy_with_bracket(portfolio, order_book, "BTC", 100.0, 10, stop_loss=90.0)
    assert portfolio.cash == pytest.approx(9000.0)

    outcomes = order_book.evaluate({"BTC": 85.0})

    assert len(outcomes) == 1
    assert outcomes[0].status == OrderOutcomeStatus.EXECUTED
    assert outcomes[0].proceeds == pytest.approx(850.0)
    assert portfolio.cash == pytest.approx(9850.0)
    assert portfolio.get_position("BTC") is None
    assert order_book.list_orders() == []


def test_take_profit_triggers_at_or_above_target(portfolio, order_book):
    _buy_with_bracket(portfolio, order_book, "ETH", 100.0, 2, take_profit=120.0)
    assert order_book.evaluate({"ETH": 119.99}) == []
    outcomes = order_book.evaluate({"ETH": 120.0})
    assert outcomes[0].status == OrderOutcomeStatus.EXECUTED
    assert portfolio.cash == pytest.approx(10000.0 - 200.0 + 240.0)


def test_untriggered_and_unquoted_orders_stay_pending(portfolio, order_book):
    _buy_with_bracket(portfolio, order_book, "SOL", 150.0, 1, stop_loss=140.0, take_profit=170.0)
    assert order_book.evaluate({"SOL": 150.0}) == []
    assert order_book.evaluate({"BTC": 1.0}) == []
    assert len(order_book.list_orders("SOL")) == 2


def test_invalidated_when_holding_shrank(portfolio, order_book):
    _buy_with_bracket(portfolio, order_book, "SOL", 100.0, 5, stop_loss=90.0)
    portfolio.sell_asset("SOL", 100.0, 3)
    cash_before = portfolio.cash

    outcomes = order_book.evaluate({"SOL": 80.0})

    assert outcomes[0].status == OrderOutcomeStatus.INVALIDATED
    assert outcomes[0].proceeds == 0.0
    assert portfolio.get_quantity("SOL") == pytest.approx(2)
    assert portfolio.cash == pytest.approx(cash_before)
    assert order_book.list_orders() == []


def test_same_symbol_orders_never_oversell(portfolio, order_book):
    # Two buys each with a stop; the second stop has a higher target so both trigger.
    _buy_with_bracket(portfolio, order_book, "BTC", 100.0, 5, stop_loss=90.0)
    _buy_with_bracket(portfolio, order_book, "BTC", 100.0, 5, stop_loss=95.0)
    portfolio.sell_asset("BTC", 100.0, 4)  # 6 left

    outcomes = order_book.evaluate({"BTC": 85.0})

    statuses = [o.status for o in outcomes]
    assert statuses == [OrderOutcomeStatus.EXECUTED, OrderOutcomeStatus.INVALIDATED]
    assert portfolio.get_quantity("BTC") == pytest.approx(1)


def test_wrong_side_targets_are_skipped(portfolio, order_book):
    result = _buy_with_bracket(portfolio, order_book, "ETH", 100.0, 1, stop_loss=110.0, take_profit=90.0)
    assert result.created == []
    assert [s["type"] for s in result.skipped] == ["STOP_LOSS", "TAKE_PROFIT"]
    assert result.skipped[0]["targetPrice"] == 110.0
    assert order_book.list_orders() == []


def test_mixed_bracket_keeps_valid_side(portfolio, order_book):
    result = _buy_with_bracket(portfolio, order_book, "ETH", 100.0, 1, stop_loss=90.0, take_profit=100.0)
    assert [o.type for o in result.created] == [OrderKind.STOP_LOSS]
    assert len(result.skipped) == 1


def test_cancel_order(portfolio, order_book, store):
    result = _buy_with_bracket(portfolio, order_book, "DOT", 7.0, 10, stop_loss=6.0)
    order_id = result.created[0].id
    cancelled = order_book.cancel_order(order_id)
    assert cancelled.id == order_id
    assert order_book.list_orders() == []
    assert store.load(StateKey.ORDERS) == []
    assert portfolio.get_quantity("DOT") == 10
    with pytest.raises(NotFoundError):
        order_book.cancel_order(order_id)


def test_orders_persist_and_log_activity(portfolio, order_book, store):
    _buy_with_bracket(portfolio, order_book, "BTC", 100.0, 1, stop_loss=90.0)
    rows = store.load(StateKey.ORDERS)
    assert rows[0]["assetSymbol"] == "BTC"
    assert rows[0]["type"] == "STOP_LOSS"

    order_book.evaluate({"BTC": 80.0})
    executed = store.get_activity(event_type="order_executed")
    assert len(executed) == 1
    assert executed[0]["details"]["proceeds"] == pytest.approx(80.0)


@pytest.mark.parametrize("price", [float("inf"), float("nan"), 0.0, -5.0])
def test_unusable_prices_never_trigger(portfolio, order_book, price):
    _buy_with_bracket(portfolio, order_book, "BTC", 100.0, 1, stop_loss=90.0, take_profit=120.0)
    assert order_book.evaluate({"BTC": price}) == []
    assert len(order_book.list_orders()) == 2
    assert portfolio.get_quantity("BTC") == pytest.approx(1)


def test_failed_sell_keeps_order_pending(portfolio, order_book, monkeypatch):
    _buy_with_bracket(portfolio, order_book, "BTC", 100.0, 1, take_profit=120.0)

    def rejecting_sell(symbol, price, quantity):
        raise ValueError("price rejected")

    monkeypatch.setattr(portfolio, "sell_asset", rejecting_sell)
    with pytest.raises(ValueError):
        order_book.evaluate({"BTC": 130.0})
    assert [o.type for o in order_book.list_orders()] == [OrderKind.TAKE_PROFIT]


def test_non_finite_target_is_skipped(portfolio, order_book):
    result = _buy_with_bracket(portfolio, order_book, "ETH", 100.0, 1, take_profit=float("inf"))
    assert result.created == []
    assert result.skipped[0]["type"] == "TAKE_PROFIT"


def test_coerce_targets():
    assert coerce_targets("90", None) == (90.0, None)
    assert coerce_targets(None, 120) == (None, 120.0)
    with pytest.raises(ValueError):
        coerce_targets(stop_loss="cheap")
    with pytest.raises(ValueError):
        coerce_targets(take_profit=[120])
