"""
Order Book Service.

Pending stop-loss and take-profit sell orders attached to buys. Every price
observation runs one evaluation pass; a triggered order either sells its
full quantity at the triggering price or, when the holding has since shrunk,
is invalidated without touching the portfolio.
"""

import logging
import math
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from engine.models import QUANTITY_EPSILON, Order, OrderKind
from services.errors import NotFoundError
from services.portfolio import PortfolioService
from services.state_store import StateTracker
from storage.models import ActivityEventTypeEnum, StateKey

logger = logging.getLogger(__name__)


class OrderOutcomeStatus(str, Enum):
    """Terminal state reached by a triggered order."""
    EXECUTED = "EXECUTED"
    INVALIDATED = "INVALIDATED"


@dataclass
class OrderOutcome:
    """Result of one triggered order."""
    order: Order
    status: OrderOutcomeStatus
    price: float
    proceeds: float = 0.0


@dataclass
class BracketResult:
    """Orders created alongside a buy, and the requested targets that were dropped."""
    created: List[Order] = field(default_factory=list)
    skipped: List[Dict[str, Any]] = field(default_factory=list)


def coerce_targets(
    stop_loss: Optional[Any] = None,
    take_profit: Optional[Any] = None,
) -> Tuple[Optional[float], Optional[float]]:
    """
    Convert requested bracket targets to floats.

    Raises:
        ValueError: If a target is not a number
    """
    coerced = []
    for name, target in (("stop_loss", stop_loss), ("take_profit", take_profit)):
        if target is None:
            coerced.append(None)
            continue
        try:
            coerced.append(float(target))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{name} must be a number, got {target!r}") from exc
    return coerced[0], coerced[1]


class OrderBookService:
    """
    Service for conditional sell orders.

    This service:
    1. Creates bracket orders at buy time, dropping targets on the wrong side
       of the current price
    2. Evaluates pending orders against new prices
    3. Executes triggered orders through the portfolio service
    4. Cancels pending orders on request
    """

    def __init__(self, tracker: StateTracker, portfolio: PortfolioService):
        self.tracker = tracker
        self.portfolio = portfolio
        self._orders: List[Order] = []

    def load(self, data: Optional[List[Dict[str, Any]]]) -> None:
        self._orders = [Order.from_dict(row) for row in (data or [])]

    def list_orders(self, symbol: Optional[str] = None) -> List[Order]:
        if symbol is None:
            return list(self._orders)
        symbol = symbol.upper()
        return [o for o in self._orders if o.asset_symbol == symbol]

    def create_bracket_orders(
        self,
        symbol: str,
        price: float,
        quantity: float,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> BracketResult:
        """
        Attach stop-loss and/or take-profit orders to a fresh buy.

        Args:
            symbol: Asset symbol
            price: Buy price at creation time
            quantity: Quantity each order will sell
            stop_loss: Target below price
            take_profit: Target above price

        Returns:
            BracketResult listing created orders and skipped targets
        """
        result = BracketResult()
        symbol = symbol.upper()
        stop_loss, take_profit = coerce_targets(stop_loss, take_profit)
        requested = [(OrderKind.STOP_LOSS, stop_loss), (OrderKind.TAKE_PROFIT, take_profit)]
        for kind, target in requested:
            if target is None:
                continue
            valid = math.isfinite(target) and target > 0 and (target < price if kind == OrderKind.STOP_LOSS else target > price)
            if not valid:
                logger.info(
                    "Skipping %s for %s: target %.4f on wrong side of price %.4f",
                    kind.value, symbol, target, price,
                )
                result.skipped.append({"type": kind.value, "targetPrice": target, "price": price})
                continue
            order = Order(
                id=uuid.uuid4().hex,
                asset_symbol=symbol,
                type=kind,
                target_price=target,
                quantity=float(quantity),
            )
            self._orders.append(order)
            result.created.append(order)
            self.tracker.activity(
                ActivityEventTypeEnum.ORDER_CREATED.value,
                f"{kind.value} order for {quantity:g} {symbol} @ {target:g}",
                order.to_dict(),
            )
        if result.created:
            self._save()
        return result

    def cancel_order(self, order_id: str) -> Order:
        """Remove a pending order. No ledger effect."""
        order = next((o for o in self._orders if o.id == order_id), None)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        self._orders.remove(order)
        self._save()
        logger.info("Order cancelled: %s %s", order.type.value, order.asset_symbol)
        self.tracker.activity(
            ActivityEventTypeEnum.ORDER_CANCELLED.value,
            f"Cancelled {order.type.value} order for {order.asset_symbol}",
            order.to_dict(),
        )
        return order

    def evaluate(self, prices: Mapping[str, float]) -> List[OrderOutcome]:
        """
        Run one evaluation pass over a snapshot of pending orders.

        Holdings are re-read for each triggered order, so two orders on the
        same symbol can never sell more than is held between them.

        Args:
            prices: Dict of symbol -> observed price

        Returns:
            Outcomes of the orders that triggered
        """
        outcomes: List[OrderOutcome] = []
        for order in list(self._orders):
            price = prices.get(order.asset_symbol)
            if price is None or not math.isfinite(price) or price <= 0:
                continue
            if not order.is_triggered_by(price):
                continue

            held = self.portfolio.get_quantity(order.asset_symbol)
            if held + QUANTITY_EPSILON >= order.quantity:
                proceeds = self.portfolio.sell_asset(order.asset_symbol, price, order.quantity)
                self._orders.remove(order)
                outcomes.append(OrderOutcome(order, OrderOutcomeStatus.EXECUTED, price, proceeds))
                logger.info(
                    "%s executed: sold %g %s @ %.4f",
                    order.type.value, order.quantity, order.asset_symbol, price,
                    extra={"symbol": order.asset_symbol, "order_id": order.id},
                )
                self.tracker.activity(
                    ActivityEventTypeEnum.ORDER_EXECUTED.value,
                    f"{order.type.value} sold {order.quantity:g} {order.asset_symbol} @ {price:g}",
                    {**order.to_dict(), "price": price, "proceeds": proceeds},
                )
            else:
                self._orders.remove(order)
                outcomes.append(OrderOutcome(order, OrderOutcomeStatus.INVALIDATED, price))
                logger.warning(
                    "%s invalidated: holds %g %s, order needs %g",
                    order.type.value, held, order.asset_symbol, order.quantity,
                    extra={"symbol": order.asset_symbol, "order_id": order.id},
                )
                self.tracker.activity(
                    ActivityEventTypeEnum.ORDER_INVALIDATED.value,
                    f"{order.type.value} for {order.asset_symbol} dropped: not enough held",
                    {**order.to_dict(), "price": price, "held": held},
                )
        if outcomes:
            self._save()
        return outcomes

    def _save(self) -> None:
        self.tracker.mark(StateKey.ORDERS, lambda: [o.to_dict() for o in self._orders])
