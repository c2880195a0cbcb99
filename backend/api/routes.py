"""
API Routes.
Defines all REST API endpoints for MoneyVerse.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from config.settings import Settings, get_settings, has_gemini_credentials
from engine.models import CURRENCY_SYMBOLS, Goal, Order, Quest, Transaction
from services.content import ContentProvider, ContentService, OfflineContentProvider
from services.coordinator import GameCoordinator, TradeResult
from services.errors import (
    InsufficientFundsError,
    InsufficientHoldingsError,
    NotFoundError,
    PersistenceError,
    ProviderUnavailableError,
    QuizRequiredError,
)
from services.market_data import MarketDataProvider, MarketFeed, PaperMarketData
from services.price_scheduler import PriceScheduler
from services.state_store import StateStore
from storage.database import SessionLocal

from .middleware import CONTENT_RATE_LIMIT, MARKET_REFRESH_RATE_LIMIT, limiter
from .models import (
    ActivityItem,
    ActivityResponse,
    AdviceResponse,
    AssetItem,
    BadgeItem,
    BadgesResponse,
    BuyRequest,
    CategoryRequest,
    CategoryResponse,
    GoalCreateRequest,
    GoalDepositRequest,
    GoalDepositResponse,
    GoalItem,
    GoalsResponse,
    HoldingItem,
    LessonResponse,
    LoginResponse,
    MarketAssetsResponse,
    MarketRefreshResponse,
    NewsItemModel,
    NewsResponse,
    OrderItem,
    OrderOutcomeItem,
    OrdersResponse,
    PortfolioPosition,
    PortfolioResponse,
    ProfileResponse,
    ProfileUpdateRequest,
    QuestCompletionResponse,
    QuestItem,
    QuestsResponse,
    QuizQuestionItem,
    QuizSubmitRequest,
    QuizSubmitResponse,
    ResetResponse,
    SellRequest,
    SkippedOrderItem,
    TradeResponse,
    TransactionCreateRequest,
    TransactionItem,
    TransactionsResponse,
    TransactionUpdateRequest,
)

router = APIRouter()
logger = logging.getLogger(__name__)

# ============================================================================
# Coordinator Initialization
# ============================================================================

_coordinator_instance: Optional[GameCoordinator] = None
_coordinator_lock = threading.Lock()
_price_scheduler: Optional[PriceScheduler] = None
_price_scheduler_lock = threading.Lock()


def build_market_provider(settings: Settings) -> MarketDataProvider:
    """Create the configured market data provider."""
    if settings.market_provider == "coingecko":
        from integrations.coingecko import CoinGeckoMarketData
        return CoinGeckoMarketData(
            base_url=settings.coingecko_base_url,
            api_key=settings.coingecko_api_key,
            timeout=settings.http_timeout_seconds,
        )
    return PaperMarketData()


def build_content_provider(settings: Settings) -> ContentProvider:
    """Create the AI content provider, or the offline one without credentials."""
    if has_gemini_credentials():
        from integrations.gemini import GeminiContentClient
        return GeminiContentClient(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            base_url=settings.gemini_base_url,
            timeout=settings.ai_timeout_seconds,
        )
    logger.info("GEMINI_API_KEY not set; AI content runs in offline mode")
    return OfflineContentProvider()


def create_coordinator(settings: Optional[Settings] = None, session_factory=SessionLocal) -> GameCoordinator:
    """Build a coordinator wired to the configured providers, load state and prime quotes."""
    settings = settings or get_settings()
    coordinator = GameCoordinator(
        store=StateStore(session_factory),
        market=MarketFeed(build_market_provider(settings), settings.asset_ids),
        content=ContentService(build_content_provider(settings)),
        starting_cash=settings.starting_cash,
    )
    coordinator.load()
    coordinator.refresh_market()
    return coordinator


def get_coordinator() -> GameCoordinator:
    """
    Get or create the coordinator instance.

    Returns:
        GameCoordinator owning all player state
    """
    global _coordinator_instance
    with _coordinator_lock:
        if _coordinator_instance is None:
            _coordinator_instance = create_coordinator()
            logger.info("Game coordinator initialized")
        return _coordinator_instance


def close_coordinator() -> None:
    """Release provider resources and drop the cached coordinator."""
    global _coordinator_instance
    with _coordinator_lock:
        coordinator = _coordinator_instance
        _coordinator_instance = None
    if coordinator is not None:
        coordinator.market.provider.close()
        coordinator.content.provider.close()


def start_price_scheduler() -> bool:
    """Start the background price refresh scheduler (idempotent)."""
    global _price_scheduler
    settings = get_settings()
    if not settings.price_scheduler_enabled:
        return False
    with _price_scheduler_lock:
        if _price_scheduler is None:
            _price_scheduler = PriceScheduler(get_coordinator, settings.price_refresh_seconds)
        return _price_scheduler.start()


def stop_price_scheduler() -> bool:
    """Stop the background price refresh scheduler (idempotent)."""
    with _price_scheduler_lock:
        if _price_scheduler is None:
            return False
        return _price_scheduler.stop()


def price_scheduler_status() -> Dict[str, Any]:
    with _price_scheduler_lock:
        if _price_scheduler is None:
            return {"status": "stopped"}
        return _price_scheduler.status()


@contextmanager
def _service_errors() -> Iterator[None]:
    """Translate service exceptions into HTTP errors."""
    try:
        yield
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (InsufficientFundsError, InsufficientHoldingsError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except QuizRequiredError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except PersistenceError as exc:
        logger.error("Persistence failure: %s", exc)
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except ProviderUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


# ============================================================================
# Converters
# ============================================================================

def _profile_response(coordinator: GameCoordinator) -> ProfileResponse:
    profile = coordinator.get_profile()
    return ProfileResponse(
        name=profile.name,
        avatar=profile.avatar,
        xp=profile.xp,
        level=profile.level,
        streak=profile.streak,
        last_login_date=profile.last_login_date,
        wallet_balance=profile.wallet_balance,
        simulated_cash=profile.simulated_cash,
        unlocked_badges=profile.unlocked_badges,
        currency=profile.currency,
        currency_symbol=CURRENCY_SYMBOLS.get(profile.currency, "$"),
        custom_categories=profile.custom_categories,
        categories=coordinator.categories(),
        theme=profile.theme,
    )


def _quest_item(coordinator: GameCoordinator, quest: Quest) -> QuestItem:
    template = coordinator.progression.quest_catalog.get(quest.id)
    return QuestItem(
        id=quest.id,
        title=quest.title,
        description=quest.description,
        xp_reward=quest.xp_reward,
        category=quest.category,
        completed=quest.completed,
        action_path=template.action_path if template else None,
    )


def _transaction_item(tx: Transaction) -> TransactionItem:
    return TransactionItem(
        id=tx.id,
        amount=tx.amount,
        description=tx.description,
        category=tx.category,
        type=tx.type,
        date=tx.date,
    )


def _order_item(order: Order) -> OrderItem:
    return OrderItem(
        id=order.id,
        asset_symbol=order.asset_symbol,
        type=order.type,
        target_price=order.target_price,
        quantity=order.quantity,
    )


def _goal_item(goal: Goal) -> GoalItem:
    return GoalItem(
        id=goal.id,
        title=goal.title,
        target_amount=goal.target_amount,
        current_amount=goal.current_amount,
        emoji=goal.emoji,
        completed=goal.completed,
    )


def _asset_items(assets) -> List[AssetItem]:
    return [
        AssetItem(
            id=a.id,
            symbol=a.symbol,
            name=a.name,
            price=a.price,
            type=a.type.value,
            change_24h=a.change_24h,
            image=a.image,
        )
        for a in assets
    ]


def _trade_response(result: TradeResult) -> TradeResponse:
    position = None
    if result.position is not None:
        position = HoldingItem(
            symbol=result.position.symbol,
            quantity=result.position.quantity,
            avg_buy_price=result.position.avg_buy_price,
        )
    return TradeResponse(
        symbol=result.symbol,
        quantity=result.quantity,
        price=result.price,
        simulated_cash=result.simulated_cash,
        position=position,
        orders_created=[_order_item(o) for o in result.orders.created],
        orders_skipped=[
            SkippedOrderItem(type=s["type"], target_price=s["targetPrice"], price=s["price"])
            for s in result.orders.skipped
        ],
    )


# ============================================================================
# Profile & Progression Endpoints
# ============================================================================

@router.get("/profile", response_model=ProfileResponse, tags=["Profile"])
def get_profile(coordinator: GameCoordinator = Depends(get_coordinator)):
    """Get the player profile."""
    return _profile_response(coordinator)


@router.patch("/profile", response_model=ProfileResponse, tags=["Profile"])
def update_profile(request: ProfileUpdateRequest, coordinator: GameCoordinator = Depends(get_coordinator)):
    """Update name, avatar, currency or theme."""
    with _service_errors():
        coordinator.update_profile(**request.model_dump(exclude_none=True))
    return _profile_response(coordinator)


@router.post("/profile/login", response_model=LoginResponse, tags=["Profile"])
def record_login(coordinator: GameCoordinator = Depends(get_coordinator)):
    """Count today's login toward the streak."""
    with _service_errors():
        recorded = coordinator.record_login()
    profile = _profile_response(coordinator)
    return LoginResponse(recorded=recorded, streak=profile.streak, profile=profile)


@router.post("/profile/categories", response_model=CategoryResponse, tags=["Profile"])
def add_category(request: CategoryRequest, coordinator: GameCoordinator = Depends(get_coordinator)):
    """Add a custom ledger category."""
    with _service_errors():
        added = coordinator.add_custom_category(request.name)
    return CategoryResponse(added=added, categories=coordinator.categories())


@router.get("/badges", response_model=BadgesResponse, tags=["Profile"])
def get_badges(coordinator: GameCoordinator = Depends(get_coordinator)):
    """Badge catalog with unlocked flags."""
    return BadgesResponse(badges=[BadgeItem(**row) for row in coordinator.list_badges()])


@router.get("/quests", response_model=QuestsResponse, tags=["Quests"])
def get_quests(coordinator: GameCoordinator = Depends(get_coordinator)):
    """Unlocked quests."""
    profile = coordinator.get_profile()
    return QuestsResponse(
        quests=[_quest_item(coordinator, q) for q in coordinator.list_quests()],
        xp=profile.xp,
        level=profile.level,
    )


@router.post("/quests/{quest_id}/complete", response_model=QuestCompletionResponse, tags=["Quests"])
def complete_quest(quest_id: str, coordinator: GameCoordinator = Depends(get_coordinator)):
    """
    Complete a quest. Learning quests are completed through their quiz and
    answer 409 here.
    """
    with _service_errors():
        unlocked = coordinator.complete_quest(quest_id)
    profile = coordinator.get_profile()
    return QuestCompletionResponse(
        quest_id=quest_id,
        unlocked=[_quest_item(coordinator, q) for q in unlocked],
        xp=profile.xp,
        level=profile.level,
    )


@router.get("/quests/{quest_id}/lesson", response_model=LessonResponse, tags=["Quests"])
@limiter.limit(CONTENT_RATE_LIMIT)
def get_lesson(
    request: Request,
    quest_id: str,
    refresh: bool = Query(False, description="Fetch a new lesson instead of the cached one"),
    coordinator: GameCoordinator = Depends(get_coordinator),
):
    """Lesson and quiz for a quest."""
    with _service_errors():
        lesson = coordinator.start_lesson(quest_id, refresh=refresh)
    return LessonResponse(
        quest_id=quest_id,
        topic=lesson.topic,
        content=lesson.content,
        quiz=[QuizQuestionItem(**row) for row in lesson.to_dict()["quiz"]],
    )


@router.post("/quests/{quest_id}/quiz", response_model=QuizSubmitResponse, tags=["Quests"])
def submit_quiz(
    quest_id: str,
    request: QuizSubmitRequest,
    coordinator: GameCoordinator = Depends(get_coordinator),
):
    """Grade quiz answers; a perfect score completes the quest."""
    with _service_errors():
        submission = coordinator.submit_quiz(quest_id, request.answers)
    return QuizSubmitResponse(
        correct=submission.result.correct,
        total=submission.result.total,
        passed=submission.result.passed,
        unlocked=[_quest_item(coordinator, q) for q in submission.unlocked],
    )


# ============================================================================
# Ledger Endpoints
# ============================================================================

@router.get("/transactions", response_model=TransactionsResponse, tags=["Ledger"])
def get_transactions(coordinator: GameCoordinator = Depends(get_coordinator)):
    """Transactions, newest first."""
    return TransactionsResponse(
        transactions=[_transaction_item(tx) for tx in coordinator.list_transactions()],
        wallet_balance=coordinator.get_profile().wallet_balance,
    )


@router.post("/transactions", response_model=TransactionItem, status_code=201, tags=["Ledger"])
def create_transaction(request: TransactionCreateRequest, coordinator: GameCoordinator = Depends(get_coordinator)):
    """Record income or an expense."""
    with _service_errors():
        tx = coordinator.add_transaction(
            amount=request.amount,
            description=request.description,
            category=request.category,
            type=request.type,
            date=request.date.isoformat() if request.date else None,
        )
    return _transaction_item(tx)


@router.put("/transactions/{transaction_id}", response_model=TransactionItem, tags=["Ledger"])
def update_transaction(
    transaction_id: str,
    request: TransactionUpdateRequest,
    coordinator: GameCoordinator = Depends(get_coordinator),
):
    """Edit a transaction."""
    fields = request.model_dump(exclude_none=True)
    if "date" in fields:
        fields["date"] = fields["date"].isoformat()
    with _service_errors():
        tx = coordinator.edit_transaction(transaction_id, **fields)
    return _transaction_item(tx)


@router.delete("/transactions/{transaction_id}", response_model=TransactionItem, tags=["Ledger"])
def delete_transaction(transaction_id: str, coordinator: GameCoordinator = Depends(get_coordinator)):
    """Delete a transaction."""
    with _service_errors():
        tx = coordinator.delete_transaction(transaction_id)
    return _transaction_item(tx)


# ============================================================================
# Portfolio & Order Endpoints
# ============================================================================

@router.get("/portfolio", response_model=PortfolioResponse, tags=["Portfolio"])
def get_portfolio(coordinator: GameCoordinator = Depends(get_coordinator)):
    """Holdings valued at the last known prices."""
    summary = coordinator.portfolio_summary()
    return PortfolioResponse(
        positions=[
            PortfolioPosition(
                symbol=p["symbol"],
                quantity=p["quantity"],
                avg_buy_price=p["avgBuyPrice"],
                current_price=p["currentPrice"],
                market_value=p["marketValue"],
                cost_basis=p["costBasis"],
                unrealized_pnl=p["unrealizedPnl"],
                unrealized_pnl_percent=p["unrealizedPnlPercent"],
            )
            for p in summary["positions"]
        ],
        cash_balance=summary["cash_balance"],
        positions_value=summary["positions_value"],
        cost_basis=summary["cost_basis"],
        unrealized_pnl=summary["unrealized_pnl"],
        unrealized_pnl_percent=summary["unrealized_pnl_percent"],
        net_worth=summary["net_worth"],
    )


@router.post("/trades/buy", response_model=TradeResponse, tags=["Portfolio"])
def buy(request: BuyRequest, coordinator: GameCoordinator = Depends(get_coordinator)):
    """Buy with simulated cash, optionally attaching stop-loss/take-profit orders."""
    with _service_errors():
        result = coordinator.buy_asset(
            request.symbol,
            request.quantity,
            stop_loss=request.stop_loss,
            take_profit=request.take_profit,
        )
    return _trade_response(result)


@router.post("/trades/sell", response_model=TradeResponse, tags=["Portfolio"])
def sell(request: SellRequest, coordinator: GameCoordinator = Depends(get_coordinator)):
    """Sell a holding at the last known price."""
    with _service_errors():
        result = coordinator.sell_asset(request.symbol, request.quantity)
    return _trade_response(result)


@router.get("/orders", response_model=OrdersResponse, tags=["Orders"])
def get_orders(coordinator: GameCoordinator = Depends(get_coordinator)):
    """Pending stop-loss and take-profit orders."""
    return OrdersResponse(orders=[_order_item(o) for o in coordinator.list_orders()])


@router.delete("/orders/{order_id}", response_model=OrderItem, tags=["Orders"])
def cancel_order(order_id: str, coordinator: GameCoordinator = Depends(get_coordinator)):
    """Cancel a pending order."""
    with _service_errors():
        order = coordinator.cancel_order(order_id)
    return _order_item(order)


# ============================================================================
# Goal Endpoints
# ============================================================================

@router.get("/goals", response_model=GoalsResponse, tags=["Goals"])
def get_goals(coordinator: GameCoordinator = Depends(get_coordinator)):
    goals = coordinator.list_goals()
    return GoalsResponse(
        goals=[_goal_item(g) for g in goals],
        total_saved=sum(g.current_amount for g in goals),
    )


@router.post("/goals", response_model=GoalItem, status_code=201, tags=["Goals"])
def create_goal(request: GoalCreateRequest, coordinator: GameCoordinator = Depends(get_coordinator)):
    """Create a savings goal."""
    with _service_errors():
        goal = coordinator.add_goal(request.title, request.target_amount, request.emoji)
    return _goal_item(goal)


@router.delete("/goals/{goal_id}", response_model=GoalItem, tags=["Goals"])
def delete_goal(goal_id: str, coordinator: GameCoordinator = Depends(get_coordinator)):
    with _service_errors():
        goal = coordinator.delete_goal(goal_id)
    return _goal_item(goal)


@router.post("/goals/{goal_id}/deposit", response_model=GoalDepositResponse, tags=["Goals"])
def deposit_to_goal(
    goal_id: str,
    request: GoalDepositRequest,
    coordinator: GameCoordinator = Depends(get_coordinator),
):
    """Move money into a goal (recorded as a Savings expense)."""
    with _service_errors():
        deposit = coordinator.add_funds_to_goal(goal_id, request.amount)
    return GoalDepositResponse(
        goal=_goal_item(deposit.goal),
        transaction=_transaction_item(deposit.transaction),
        just_completed=deposit.just_completed,
    )


# ============================================================================
# Market Endpoints
# ============================================================================

@router.get("/market/assets", response_model=MarketAssetsResponse, tags=["Market"])
def get_market_assets(coordinator: GameCoordinator = Depends(get_coordinator)):
    """Last known quotes."""
    status = coordinator.market.status()
    return MarketAssetsResponse(
        assets=_asset_items(coordinator.market_assets()),
        last_error=status["last_error"],
        last_updated=status["last_updated"],
    )


@router.post("/market/refresh", response_model=MarketRefreshResponse, tags=["Market"])
@limiter.limit(MARKET_REFRESH_RATE_LIMIT)
def refresh_market(request: Request, coordinator: GameCoordinator = Depends(get_coordinator)):
    """Fetch fresh quotes and evaluate pending orders once."""
    with _service_errors():
        refresh = coordinator.refresh_market()
    return MarketRefreshResponse(
        ok=refresh.ok,
        assets=_asset_items(refresh.assets),
        outcomes=[
            OrderOutcomeItem(
                order=_order_item(o.order),
                status=o.status.value,
                price=o.price,
                proceeds=o.proceeds,
            )
            for o in refresh.outcomes
        ],
        error=refresh.error,
    )


# ============================================================================
# AI Content & Activity Endpoints
# ============================================================================

@router.get("/advice", response_model=AdviceResponse, tags=["Content"])
@limiter.limit(CONTENT_RATE_LIMIT)
def get_advice(request: Request, coordinator: GameCoordinator = Depends(get_coordinator)):
    """AI advice on recent transactions (placeholder text when offline)."""
    return AdviceResponse(advice=coordinator.advice())


@router.get("/news", response_model=NewsResponse, tags=["Content"])
@limiter.limit(CONTENT_RATE_LIMIT)
def get_news(request: Request, coordinator: GameCoordinator = Depends(get_coordinator)):
    """Finance news explained for teens (placeholder items when offline)."""
    return NewsResponse(items=[NewsItemModel(**item.to_dict()) for item in coordinator.news()])


@router.get("/activity", response_model=ActivityResponse, tags=["Activity"])
def get_activity(
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    event_type: Optional[str] = Query(None),
    coordinator: GameCoordinator = Depends(get_coordinator),
):
    """Game and trading events, newest first."""
    with _service_errors():
        rows = coordinator.activity(limit=limit, offset=offset, event_type=event_type)
        total = coordinator.activity_count(event_type)
    return ActivityResponse(events=[ActivityItem(**row) for row in rows], total=total)


@router.post("/reset", response_model=ResetResponse, tags=["Maintenance"])
def reset_data(coordinator: GameCoordinator = Depends(get_coordinator)):
    """Delete all saved data and start over."""
    with _service_errors():
        coordinator.reset()
    return ResetResponse(reset=True, profile=_profile_response(coordinator))
