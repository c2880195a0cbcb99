"""
Game Coordinator.

Single in-process owner of all player state. Every public operation takes
one re-entrant lock, so request handlers and the price scheduler never
observe a half-applied mutation. Aggregates changed by one operation are
saved in a single database transaction when the operation finishes.

Network work (market quotes, AI content) runs outside the lock; only the
application of its results is serialized.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence

from engine.models import (
    Asset,
    Goal,
    Order,
    PortfolioItem,
    Quest,
    QuestCategory,
    Transaction,
    TransactionType,
    UserProfile,
)
from engine.quest_catalog import BadgeCatalog, QuestCatalog
from services.content import ContentService, Lesson, NewsItem, QuizResult, grade_quiz
from services.errors import (
    MoneyVerseError,
    NotFoundError,
    PersistenceError,
    ProviderUnavailableError,
    QuizRequiredError,
)
from services.goals import GoalDeposit, GoalService
from services.ledger import LedgerService
from services.market_data import MarketFeed
from services.order_book import (
    BracketResult,
    OrderBookService,
    OrderOutcome,
    OrderOutcomeStatus,
    coerce_targets,
)
from services.portfolio import PortfolioService
from services.progression import ProgressionStore
from services.rewards import RewardRules
from services.state_store import StateStore, StateTracker
from storage.models import ActivityEventTypeEnum, StateKey

logger = logging.getLogger(__name__)


@dataclass
class TradeResult:
    """Outcome of a manual buy or sell."""
    symbol: str
    quantity: float
    price: float
    simulated_cash: float
    position: Optional[PortfolioItem] = None
    orders: BracketResult = field(default_factory=BracketResult)


@dataclass
class QuizSubmission:
    result: QuizResult
    unlocked: List[Quest] = field(default_factory=list)


@dataclass
class MarketRefresh:
    """Result of one price refresh; ``error`` is set when the provider failed."""
    assets: List[Asset]
    outcomes: List[OrderOutcome] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class GameCoordinator:
    """
    Serialized facade over the progression, ledger, portfolio, goal and
    order book services.
    """

    def __init__(
        self,
        store: StateStore,
        market: MarketFeed,
        content: Optional[ContentService] = None,
        starting_cash: float = 10000.0,
        quest_catalog: Optional[QuestCatalog] = None,
        badge_catalog: Optional[BadgeCatalog] = None,
        clock: Callable[[], date] = date.today,
    ):
        self.store = store
        self.market = market
        self.content = content or ContentService()
        self.clock = clock
        self._lock = threading.RLock()

        self.tracker = StateTracker(store)
        self.progression = ProgressionStore(self.tracker, quest_catalog, badge_catalog, starting_cash)
        self.ledger = LedgerService(self.tracker, self.progression)
        self.portfolio = PortfolioService(self.tracker, self.progression)
        self.goals = GoalService(self.tracker, self.ledger)
        self.orders = OrderBookService(self.tracker, self.portfolio)
        self.rewards = RewardRules(self.progression, self.ledger, self.portfolio, self.goals)

    @contextmanager
    def _mutation(self) -> Iterator[None]:
        with self._lock, self.tracker.batch():
            yield

    # Lifecycle

    def load(self) -> None:
        """Restore all aggregates from the store, falling back to a new player."""
        with self._mutation():
            self.progression.load(self.store.load(StateKey.USER), self.store.load(StateKey.QUESTS, []))
            self.ledger.load(self.store.load(StateKey.TRANSACTIONS, []))
            self.portfolio.load(self.store.load(StateKey.PORTFOLIO, []))
            self.goals.load(self.store.load(StateKey.GOALS, []))
            self.orders.load(self.store.load(StateKey.ORDERS, []))
        logger.info(
            "Game state loaded: level %s, %s transactions, %s holdings, %s pending orders",
            self.progression.level,
            self.ledger.count(),
            len(self.portfolio.get_positions()),
            len(self.orders.list_orders()),
        )

    def reset(self) -> None:
        """Wipe all saved data and start over as a new player."""
        with self._lock:
            self.store.clear()
            self.content.clear()
            self.load()
        self.store.record_activity(ActivityEventTypeEnum.DATA_RESET.value, "All data reset")
        logger.warning("Game state reset")

    # Profile & progression

    def get_profile(self) -> UserProfile:
        with self._lock:
            return UserProfile.from_dict(self.progression.profile.to_dict())

    def update_profile(self, **fields: Any) -> UserProfile:
        with self._mutation():
            self.progression.update_profile(**fields)
        return self.get_profile()

    def add_custom_category(self, name: str) -> bool:
        with self._mutation():
            added = self.progression.add_custom_category(name)
            if added:
                self.rewards.on_category_added()
            return added

    def categories(self) -> List[str]:
        with self._lock:
            return self.progression.categories()

    def record_login(self, today: Optional[date] = None) -> bool:
        with self._mutation():
            return self.progression.record_login(today or self.clock())

    def list_badges(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                {**badge.to_dict(), "unlocked": self.progression.has_badge(badge.id)}
                for badge in self.progression.badge_catalog.badges()
            ]

    def list_quests(self) -> List[Quest]:
        with self._lock:
            return [Quest.from_dict(q.to_dict()) for q in self.progression.list_quests()]

    def complete_quest(self, quest_id: str) -> List[Quest]:
        """
        Complete a non-learning quest.

        Raises:
            NotFoundError: If the quest is not unlocked
            QuizRequiredError: If the quest is a LEARNING quest
        """
        with self._mutation():
            quest = self._require_quest(quest_id)
            if quest.category == QuestCategory.LEARNING:
                raise QuizRequiredError(f"Pass the quiz to complete '{quest.title}'")
            return self.rewards.complete_quest(quest_id)

    def start_lesson(self, quest_id: str, refresh: bool = False) -> Lesson:
        with self._lock:
            quest = self._require_quest(quest_id)
            topic = quest.title
        return self.content.lesson_for(quest_id, topic, refresh=refresh)

    def submit_quiz(self, quest_id: str, answers: Sequence[int]) -> QuizSubmission:
        """
        Grade answers against the lesson last shown for this quest. A perfect
        score completes the quest.
        """
        lesson = self.content.cached_lesson(quest_id)
        if lesson is None:
            raise NotFoundError(f"No lesson loaded for quest {quest_id}")
        result = grade_quiz(lesson, answers)
        unlocked: List[Quest] = []
        if result.passed:
            with self._mutation():
                self._require_quest(quest_id)
                if self.progression.is_open(quest_id):
                    unlocked = self.rewards.complete_quest(quest_id)
            self.content.forget_lesson(quest_id)
        logger.info("Quiz for quest %s: %s/%s", quest_id, result.correct, result.total)
        return QuizSubmission(result=result, unlocked=unlocked)

    # Ledger

    def list_transactions(self) -> List[Transaction]:
        with self._lock:
            return [Transaction.from_dict(tx.to_dict()) for tx in self.ledger.list_transactions()]

    def add_transaction(
        self,
        amount: float,
        description: str,
        category: str,
        type: TransactionType,
        date: Optional[str] = None,
    ) -> Transaction:
        with self._mutation():
            tx = self.ledger.add_transaction(amount, description, category, type, date)
            self.rewards.on_transaction_added(tx)
            return tx

    def edit_transaction(self, transaction_id: str, **fields: Any) -> Transaction:
        with self._mutation():
            tx = self.ledger.edit_transaction(transaction_id, **fields)
            self.rewards.on_ledger_changed()
            return tx

    def delete_transaction(self, transaction_id: str) -> Transaction:
        with self._mutation():
            tx = self.ledger.delete_transaction(transaction_id)
            self.rewards.on_ledger_changed()
            return tx

    # Portfolio & orders

    def buy_asset(
        self,
        symbol: str,
        quantity: float,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> TradeResult:
        """
        Buy at the last known price, optionally with bracket orders.

        Raises:
            NotFoundError: If there is no quote for the symbol
            InsufficientFundsError: If cost exceeds simulated cash
            ValueError: If quantity or a bracket target is not a valid number
        """
        stop_loss, take_profit = coerce_targets(stop_loss, take_profit)
        with self._mutation():
            asset = self._require_quote(symbol)
            item = self.portfolio.buy_asset(asset.symbol, asset.price, quantity)
            orders = self.orders.create_bracket_orders(
                asset.symbol, asset.price, quantity, stop_loss=stop_loss, take_profit=take_profit,
            )
            self.rewards.on_asset_bought()
            return TradeResult(
                symbol=asset.symbol,
                quantity=float(quantity),
                price=asset.price,
                simulated_cash=self.portfolio.cash,
                position=PortfolioItem.from_dict(item.to_dict()),
                orders=orders,
            )

    def sell_asset(self, symbol: str, quantity: float) -> TradeResult:
        """
        Sell at the last known price.

        Raises:
            NotFoundError: If there is no quote for the symbol
            InsufficientHoldingsError: If more than the held quantity is requested
        """
        with self._mutation():
            asset = self._require_quote(symbol)
            self.portfolio.sell_asset(asset.symbol, asset.price, quantity)
            self.rewards.on_asset_sold()
            position = self.portfolio.get_position(asset.symbol)
            return TradeResult(
                symbol=asset.symbol,
                quantity=float(quantity),
                price=asset.price,
                simulated_cash=self.portfolio.cash,
                position=PortfolioItem.from_dict(position.to_dict()) if position else None,
            )

    def portfolio_summary(self) -> Dict[str, Any]:
        prices = self.market.prices()
        with self._lock:
            return self.portfolio.get_portfolio_summary(prices)

    def list_orders(self) -> List[Order]:
        with self._lock:
            return [Order.from_dict(o.to_dict()) for o in self.orders.list_orders()]

    def cancel_order(self, order_id: str) -> Order:
        with self._mutation():
            return self.orders.cancel_order(order_id)

    def apply_prices(self, prices: Mapping[str, float]) -> List[OrderOutcome]:
        """Run one order evaluation pass against observed prices."""
        with self._mutation():
            outcomes = self.orders.evaluate(prices)
            for outcome in outcomes:
                if outcome.status == OrderOutcomeStatus.EXECUTED:
                    self.rewards.on_asset_sold()
            return outcomes

    def refresh_market(self) -> MarketRefresh:
        """
        Fetch quotes and evaluate pending orders once.

        A provider failure keeps the cached quotes and leaves orders pending.
        """
        self.store.flush_pending()
        with self._lock:
            currency = self.progression.profile.currency
        try:
            assets = self.market.fetch(currency)
        except ProviderUnavailableError as exc:
            return MarketRefresh(assets=self.market.assets(), error=str(exc))
        outcomes = self.apply_prices({asset.symbol: asset.price for asset in assets})
        return MarketRefresh(assets=assets, outcomes=outcomes)

    def market_assets(self) -> List[Asset]:
        return self.market.assets()

    # Goals

    def list_goals(self) -> List[Goal]:
        with self._lock:
            return [Goal.from_dict(g.to_dict()) for g in self.goals.list_goals()]

    def add_goal(self, title: str, target_amount: float, emoji: Optional[str] = None) -> Goal:
        with self._mutation():
            goal = self.goals.add_goal(title, target_amount, emoji)
            self.rewards.on_goal_created()
            return goal

    def delete_goal(self, goal_id: str) -> Goal:
        with self._mutation():
            return self.goals.delete_goal(goal_id)

    def add_funds_to_goal(self, goal_id: str, amount: float) -> GoalDeposit:
        with self._mutation():
            deposit = self.goals.add_funds_to_goal(goal_id, amount)
            self.rewards.on_goal_deposit(deposit)
            return deposit

    # AI content & activity

    def advice(self) -> str:
        transactions = self.list_transactions()
        return self.content.advice(transactions)

    def news(self) -> List[NewsItem]:
        return self.content.news()

    def activity(self, limit: int = 100, offset: int = 0, event_type: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.store.get_activity(limit=limit, offset=offset, event_type=event_type)

    def activity_count(self, event_type: Optional[str] = None) -> int:
        return self.store.count_activity(event_type)

    # Background

    def run_background_cycle(self) -> MarketRefresh:
        """
        One scheduler tick: retry queued writes, refresh prices, check the
        login streak. Game errors in one step are logged and the next step
        still runs; anything else propagates to the scheduler.
        """
        refresh = MarketRefresh(assets=self.market.assets())
        try:
            refresh = self.refresh_market()
        except PersistenceError as exc:
            logger.error("Price-triggered changes not saved: %s", exc)
        except MoneyVerseError as exc:
            logger.error("Price refresh failed: %s", exc)
            refresh = MarketRefresh(assets=self.market.assets(), error=str(exc))
        if refresh.error:
            logger.warning("Price refresh skipped: %s", refresh.error)
        try:
            self.record_login()
        except MoneyVerseError as exc:
            logger.error("Login streak not saved: %s", exc)
        return refresh

    def _require_quest(self, quest_id: str) -> Quest:
        quest = self.progression.get_quest(quest_id)
        if quest is None:
            raise NotFoundError(f"Quest {quest_id} is not unlocked")
        return quest

    def _require_quote(self, symbol: str) -> Asset:
        asset = self.market.get_asset(symbol)
        if asset is None:
            raise NotFoundError(f"No market quote for {symbol.upper()}")
        return asset
