"""
Tests for the simulated portfolio.
"""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from services.errors import InsufficientFundsError, InsufficientHoldingsError
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


def test_buy_deducts_cash(portfolio):
    item = portfolio.buy_asset("btc", 100.0, 10)
    assert item.symbol == "BTC"
    assert item.quantity == 10
    assert portfolio.cash == pytest.approx(9000.0)


def test_buy_more_than_cash_changes_nothing(portfolio):
    with pytest.raises(InsufficientFundsError) as exc_info:
        portfolio.buy_asset("ETH", 3200.0, 4)
    assert exc_info.value.required == pytest.approx(12800.0)
    assert portfolio.cash == pytest.approx(10000.0)
    assert portfolio.get_positions() == []


def test_repeat_buy_uses_latest_price(portfolio):
    portfolio.buy_asset("SOL", 100.0, 2)
    item = portfolio.buy_asset("SOL", 150.0, 1)
    assert item.quantity == 3
    assert item.avg_buy_price == 150.0
    assert len(portfolio.get_positions()) == 1


def test_sell_credits_cash(portfolio):
    portfolio.buy_asset("SOL", 100.0, 5)
    proceeds = portfolio.sell_asset("SOL", 120.0, 2)
    assert proceeds == pytest.approx(240.0)
    assert portfolio.get_quantity("SOL") == pytest.approx(3)
    assert portfolio.cash == pytest.approx(9740.0)


def test_sell_more_than_held(portfolio):
    portfolio.buy_asset("SOL", 100.0, 1)
    with pytest.raises(InsufficientHoldingsError):
        portfolio.sell_asset("SOL", 100.0, 2)
    with pytest.raises(InsufficientHoldingsError):
        portfolio.sell_asset("DOGE", 0.15, 1)
    assert portfolio.get_quantity("SOL") == 1


def test_full_sell_removes_holding(portfolio):
    portfolio.buy_asset("ADA", 0.5, 10)
    portfolio.sell_asset("ADA", 0.5, 10)
    assert portfolio.get_position("ADA") is None


def test_float_residue_does_not_leave_dust(portfolio):
    portfolio.buy_asset("ETH", 10.0, 0.3)
    portfolio.sell_asset("ETH", 10.0, 0.1)
    portfolio.sell_asset("ETH", 10.0, 0.2)
    assert portfolio.get_position("ETH") is None


@pytest.mark.parametrize("price,quantity", [(0, 1), (-1, 1), (10, 0), (10, -2)])
def test_rejects_non_positive_inputs(portfolio, price, quantity):
    with pytest.raises(ValueError):
        portfolio.buy_asset("BTC", price, quantity)


def test_portfolio_summary(portfolio):
    portfolio.buy_asset("BTC", 100.0, 10)
    portfolio.buy_asset("ETH", 50.0, 2)
    summary = portfolio.get_portfolio_summary({"BTC": 110.0})
    btc = next(p for p in summary["positions"] if p["symbol"] == "BTC")
    eth = next(p for p in summary["positions"] if p["symbol"] == "ETH")
    assert btc["marketValue"] == pytest.approx(1100.0)
    assert btc["unrealizedPnl"] == pytest.approx(100.0)
    assert btc["unrealizedPnlPercent"] == pytest.approx(10.0)
    # No quote: valued at the buy price.
    assert eth["currentPrice"] == pytest.approx(50.0)
    assert summary["cash_balance"] == pytest.approx(8900.0)
    assert summary["net_worth"] == pytest.approx(8900.0 + 1100.0 + 100.0)
    assert portfolio.calculate_portfolio_value({"BTC": 110.0}) == pytest.approx(summary["net_worth"])


def test_holdings_and_cash_persist(portfolio, store):
    portfolio.buy_asset("DOT", 7.0, 3)
    assert store.load(StateKey.PORTFOLIO) == [{"symbol": "DOT", "quantity": 3.0, "avgBuyPrice": 7.0}]
    assert store.load(StateKey.USER)["simulatedCash"] == pytest.approx(9979.0)


def test_load_drops_empty_holdings(store):
    tracker = StateTracker(store)
    progression = ProgressionStore(tracker)
    progression.load(None, None)
    service = PortfolioService(tracker, progression)
    service.load([
        {"symbol": "btc", "quantity": 1.5, "avgBuyPrice": 100.0},
        {"symbol": "ETH", "quantity": 0.0, "avgBuyPrice": 50.0},
    ])
    assert [p.symbol for p in service.get_positions()] == ["BTC"]
