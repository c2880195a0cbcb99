"""
Portfolio Service.
Simulated holdings bought and sold with the profile's play-money cash,
plus valuation and P&L reporting.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Mapping, Optional

from engine.models import QUANTITY_EPSILON, PortfolioItem
from services.errors import InsufficientFundsError, InsufficientHoldingsError
from services.progression import ProgressionStore
from services.state_store import StateTracker
from storage.models import StateKey

logger = logging.getLogger(__name__)


class PortfolioService:
    """
    Simulated portfolio.

    Responsible for:
    - Buying and selling against simulated cash
    - Keeping one holding per symbol, never zero or negative
    - Portfolio value and unrealized P&L
    """

    def __init__(self, tracker: StateTracker, progression: ProgressionStore):
        self.tracker = tracker
        self.progression = progression
        self._items: Dict[str, PortfolioItem] = {}

    def load(self, data: Optional[List[Dict[str, Any]]]) -> None:
        self._items = {}
        for row in data or []:
            item = PortfolioItem.from_dict(row)
            if item.quantity > QUANTITY_EPSILON:
                self._items[item.symbol] = item

    @property
    def cash(self) -> float:
        return self.progression.profile.simulated_cash

    def get_positions(self) -> List[PortfolioItem]:
        return list(self._items.values())

    def get_position(self, symbol: str) -> Optional[PortfolioItem]:
        return self._items.get(symbol.upper())

    def get_quantity(self, symbol: str) -> float:
        item = self.get_position(symbol)
        return item.quantity if item else 0.0

    def buy_asset(self, symbol: str, price: float, quantity: float) -> PortfolioItem:
        """
        Buy at the given price.

        Repeated buys overwrite avg_buy_price with the latest price rather
        than computing a weighted average.

        Raises:
            InsufficientFundsError: If cost exceeds simulated cash (nothing changes)
        """
        symbol = symbol.upper()
        price = self._validate_price(price)
        quantity = self._validate_quantity(quantity)
        cost = price * quantity
        if cost > self.cash:
            raise InsufficientFundsError(required=cost, available=self.cash)

        item = self._items.get(symbol)
        if item is None:
            item = PortfolioItem(symbol=symbol, quantity=quantity, avg_buy_price=price)
            self._items[symbol] = item
        else:
            item.quantity += quantity
            item.avg_buy_price = price
        self.progression.set_simulated_cash(self.cash - cost)
        self._save()
        logger.info("Bought %g %s @ %.4f (cost %.2f)", quantity, symbol, price, cost)
        return item

    def sell_asset(self, symbol: str, price: float, quantity: float) -> float:
        """
        Sell at the given price.

        Returns:
            Proceeds credited to simulated cash

        Raises:
            InsufficientHoldingsError: If more than the held quantity is requested
        """
        symbol = symbol.upper()
        price = self._validate_price(price)
        quantity = self._validate_quantity(quantity)
        held = self.get_quantity(symbol)
        if quantity > held + QUANTITY_EPSILON:
            raise InsufficientHoldingsError(symbol=symbol, requested=quantity, held=held)

        proceeds = price * quantity
        remaining = held - quantity
        if remaining <= QUANTITY_EPSILON:
            del self._items[symbol]
        else:
            self._items[symbol].quantity = remaining
        self.progression.set_simulated_cash(self.cash + proceeds)
        self._save()
        logger.info("Sold %g %s @ %.4f (proceeds %.2f)", quantity, symbol, price, proceeds)
        return proceeds

    def calculate_portfolio_value(self, current_prices: Mapping[str, float]) -> float:
        """Simulated cash plus the market value of all holdings."""
        return self.cash + sum(
            item.quantity * self._resolve_price(item, current_prices) for item in self._items.values()
        )

    def get_portfolio_summary(self, current_prices: Mapping[str, float]) -> Dict[str, Any]:
        """
        Get portfolio summary.

        Args:
            current_prices: Dict of symbol -> current price; holdings without a
                quote are valued at their buy price

        Returns:
            Portfolio summary dict with enriched positions
        """
        positions = [self._enrich_position(item, current_prices) for item in self._items.values()]
        positions_value = sum(p["marketValue"] for p in positions)
        cost_basis = sum(p["costBasis"] for p in positions)
        unrealized_pnl = positions_value - cost_basis
        return {
            "positions": positions,
            "cash_balance": self.cash,
            "positions_value": positions_value,
            "cost_basis": cost_basis,
            "unrealized_pnl": unrealized_pnl,
            "unrealized_pnl_percent": (unrealized_pnl / cost_basis * 100.0) if cost_basis > 0 else 0.0,
            "net_worth": self.cash + positions_value,
        }

    def _enrich_position(self, item: PortfolioItem, current_prices: Mapping[str, float]) -> Dict[str, Any]:
        """Attach valuation fields expected by dashboard consumers."""
        current_price = self._resolve_price(item, current_prices)
        cost_basis = item.quantity * item.avg_buy_price
        market_value = item.quantity * current_price
        unrealized_pnl = market_value - cost_basis
        position = item.to_dict()
        position.update({
            "currentPrice": current_price,
            "marketValue": market_value,
            "costBasis": cost_basis,
            "unrealizedPnl": unrealized_pnl,
            "unrealizedPnlPercent": (unrealized_pnl / cost_basis * 100.0) if cost_basis > 0 else 0.0,
        })
        return position

    def _resolve_price(self, item: PortfolioItem, current_prices: Mapping[str, float]) -> float:
        price = self._safe_float(current_prices.get(item.symbol), 0.0)
        return price if price > 0 else item.avg_buy_price

    def _save(self) -> None:
        self.tracker.mark(StateKey.PORTFOLIO, lambda: [item.to_dict() for item in self._items.values()])

    @staticmethod
    def _validate_price(price: float) -> float:
        price = float(price)
        if not math.isfinite(price) or price <= 0:
            raise ValueError("Price must be positive")
        return price

    @staticmethod
    def _validate_quantity(quantity: float) -> float:
        quantity = float(quantity)
        if not math.isfinite(quantity) or quantity <= 0:
            raise ValueError("Quantity must be positive")
        return quantity

    @staticmethod
    def _safe_float(value: Any, default: float = 0.0) -> float:
        try:
            parsed = float(value)
        except (TypeError, ValueError):
            return default
        if not math.isfinite(parsed):
            return default
        return parsed
