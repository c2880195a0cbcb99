"""
API Data Models and Contracts.
Defines Pydantic models for request/response validation.
"""
from typing import Optional, List, Dict, Any
from datetime import datetime
from pydantic import BaseModel, Field, field_validator

from engine.models import OrderKind, QuestCategory, TransactionType


# ============================================================================
# Profile & Progression Models
# ============================================================================

class ProfileResponse(BaseModel):
    """Player profile."""
    name: str
    avatar: str = ""
    xp: int = Field(..., ge=0)
    level: int = Field(..., ge=1, description="Derived from xp: xp // 1000 + 1")
    streak: int = Field(..., ge=0, description="Consecutive daily logins")
    last_login_date: Optional[str] = None
    wallet_balance: float = Field(..., description="Signed sum of all ledger transactions")
    simulated_cash: float = Field(..., description="Play money available to the simulator")
    unlocked_badges: List[str] = Field(default_factory=list)
    currency: str = "USD"
    currency_symbol: str = "$"
    custom_categories: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list, description="Default plus custom categories")
    theme: str = "dark"


class ProfileUpdateRequest(BaseModel):
    """Profile update request. Omitted fields are left unchanged."""
    name: Optional[str] = Field(None, min_length=1, max_length=60)
    avatar: Optional[str] = Field(None, max_length=500)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    theme: Optional[str] = Field(None, pattern="^(light|dark)$")


class LoginResponse(BaseModel):
    """Daily login check result."""
    recorded: bool = Field(..., description="False when today's login was already counted")
    streak: int
    profile: ProfileResponse


class CategoryRequest(BaseModel):
    """Custom ledger category."""
    name: str = Field(..., min_length=1, max_length=40)


class CategoryResponse(BaseModel):
    added: bool
    categories: List[str]


class BadgeItem(BaseModel):
    id: str
    name: str
    description: str
    icon: str
    unlocked: bool


class BadgesResponse(BaseModel):
    badges: List[BadgeItem]


class QuestItem(BaseModel):
    """Unlocked quest."""
    id: str
    title: str
    description: str
    xp_reward: int
    category: QuestCategory
    completed: bool
    action_path: Optional[str] = None


class QuestsResponse(BaseModel):
    quests: List[QuestItem]
    xp: int
    level: int


class QuestCompletionResponse(BaseModel):
    """Quest completion result."""
    quest_id: str
    unlocked: List[QuestItem] = Field(default_factory=list, description="Quests unlocked by this completion")
    xp: int
    level: int


class QuizQuestionItem(BaseModel):
    question: str
    options: List[str]


class LessonResponse(BaseModel):
    """Lesson content and quiz (answers withheld)."""
    quest_id: str
    topic: str
    content: str
    quiz: List[QuizQuestionItem] = Field(default_factory=list)


class QuizSubmitRequest(BaseModel):
    """Chosen option index per quiz question, in order."""
    answers: List[int] = Field(..., min_length=1)

    @field_validator("answers")
    @classmethod
    def validate_answers(cls, v: List[int]) -> List[int]:
        if any(a < 0 for a in v):
            raise ValueError("Answer indexes must be non-negative")
        return v


class QuizSubmitResponse(BaseModel):
    correct: int
    total: int
    passed: bool = Field(..., description="True only for a perfect score")
    unlocked: List[QuestItem] = Field(default_factory=list)


# ============================================================================
# Ledger Models
# ============================================================================

class TransactionItem(BaseModel):
    id: str
    amount: float
    description: str
    category: str
    type: TransactionType
    date: str


class TransactionCreateRequest(BaseModel):
    """New ledger transaction."""
    amount: float = Field(..., gt=0)
    description: str = Field("", max_length=200)
    category: str = Field("Other", min_length=1, max_length=40)
    type: TransactionType
    date: Optional[datetime] = Field(None, description="Defaults to now")


class TransactionUpdateRequest(BaseModel):
    """Transaction edit. Omitted fields are left unchanged."""
    amount: Optional[float] = Field(None, gt=0)
    description: Optional[str] = Field(None, max_length=200)
    category: Optional[str] = Field(None, min_length=1, max_length=40)
    type: Optional[TransactionType] = None
    date: Optional[datetime] = None


class TransactionsResponse(BaseModel):
    transactions: List[TransactionItem]
    wallet_balance: float


# ============================================================================
# Portfolio & Order Models
# ============================================================================

class PortfolioPosition(BaseModel):
    """Holding with valuation."""
    symbol: str
    quantity: float
    avg_buy_price: float
    current_price: float
    market_value: float
    cost_basis: float
    unrealized_pnl: float
    unrealized_pnl_percent: float


class PortfolioResponse(BaseModel):
    positions: List[PortfolioPosition]
    cash_balance: float
    positions_value: float
    cost_basis: float
    unrealized_pnl: float
    unrealized_pnl_percent: float
    net_worth: float


class BuyRequest(BaseModel):
    """Simulated buy at the last known price, with optional bracket orders."""
    symbol: str = Field(..., min_length=1, max_length=10)
    quantity: float = Field(..., gt=0)
    stop_loss: Optional[float] = Field(None, gt=0, description="Sell everything bought if price falls to this")
    take_profit: Optional[float] = Field(None, gt=0, description="Sell everything bought if price rises to this")

    @field_validator("symbol")
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        return v.strip().upper()


class SellRequest(BaseModel):
    """Simulated sell at the last known price."""
    symbol: str = Field(..., min_length=1, max_length=10)
    quantity: float = Field(..., gt=0)

    @field_validator("symbol")
    @classmethod
    def normalize_symbol(cls, v: str) -> str:
        return v.strip().upper()


class OrderItem(BaseModel):
    """Pending conditional sell order."""
    id: str
    asset_symbol: str
    type: OrderKind
    target_price: float
    quantity: float


class SkippedOrderItem(BaseModel):
    """Bracket target dropped because it was on the wrong side of the price."""
    type: OrderKind
    target_price: float
    price: float


class OrdersResponse(BaseModel):
    orders: List[OrderItem]


class HoldingItem(BaseModel):
    symbol: str
    quantity: float
    avg_buy_price: float


class TradeResponse(BaseModel):
    """Trade result."""
    symbol: str
    quantity: float
    price: float
    simulated_cash: float
    position: Optional[HoldingItem] = None
    orders_created: List[OrderItem] = Field(default_factory=list)
    orders_skipped: List[SkippedOrderItem] = Field(default_factory=list)


# ============================================================================
# Goal Models
# ============================================================================

class GoalItem(BaseModel):
    id: str
    title: str
    target_amount: float
    current_amount: float
    emoji: str
    completed: bool


class GoalCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=80)
    target_amount: float = Field(..., gt=0)
    emoji: Optional[str] = Field(None, max_length=8)


class GoalDepositRequest(BaseModel):
    amount: float = Field(..., gt=0)


class GoalDepositResponse(BaseModel):
    goal: GoalItem
    transaction: TransactionItem
    just_completed: bool


class GoalsResponse(BaseModel):
    goals: List[GoalItem]
    total_saved: float


# ============================================================================
# Market Models
# ============================================================================

class AssetItem(BaseModel):
    """Market quote."""
    id: str
    symbol: str
    name: str
    price: float
    type: str
    change_24h: float
    image: Optional[str] = None


class MarketAssetsResponse(BaseModel):
    assets: List[AssetItem]
    last_error: Optional[str] = None
    last_updated: Optional[str] = None


class OrderOutcomeItem(BaseModel):
    order: OrderItem
    status: str = Field(..., description="EXECUTED or INVALIDATED")
    price: float
    proceeds: float


class MarketRefreshResponse(BaseModel):
    """Refresh result. On provider failure, cached quotes and the error are returned."""
    ok: bool
    assets: List[AssetItem]
    outcomes: List[OrderOutcomeItem] = Field(default_factory=list)
    error: Optional[str] = None


# ============================================================================
# AI Content & Activity Models
# ============================================================================

class AdviceResponse(BaseModel):
    advice: str


class NewsItemModel(BaseModel):
    id: str
    title: str
    summary: str
    tag: str


class NewsResponse(BaseModel):
    items: List[NewsItemModel]


class ActivityItem(BaseModel):
    """Activity feed entry."""
    id: int
    event_type: str
    description: str
    details: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime


class ActivityResponse(BaseModel):
    events: List[ActivityItem]
    total: int = Field(..., description="Matching events across all pages")


class ResetResponse(BaseModel):
    reset: bool
    profile: ProfileResponse
