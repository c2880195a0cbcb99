"""
Domain models for the MoneyVerse game engine.

Plain dataclasses holding the state of the single local player. Every model
round-trips through JSON-compatible dicts using the camelCase keys of the
persisted records.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


XP_PER_LEVEL = 1000

# Tolerance for float residue on holdings (0.3 - 0.1 - 0.2 != 0).
QUANTITY_EPSILON = 1e-9

DEFAULT_CATEGORIES = [
    "Food",
    "Transport",
    "Entertainment",
    "Shopping",
    "Savings",
    "Allowance",
    "Side Hustle",
    "Other",
]

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "INR": "₹",
    "JPY": "¥",
    "CAD": "C$",
    "AUD": "A$",
}


class TransactionType(str, Enum):
    """Ledger transaction direction."""
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class QuestCategory(str, Enum):
    """Quest category."""
    LEARNING = "LEARNING"
    FINANCE = "FINANCE"
    INVESTING = "INVESTING"


class OrderKind(str, Enum):
    """Conditional sell order kind."""
    STOP_LOSS = "STOP_LOSS"
    TAKE_PROFIT = "TAKE_PROFIT"


class AssetType(str, Enum):
    """Market asset type."""
    CRYPTO = "CRYPTO"
    STOCK = "STOCK"
    ETF = "ETF"


def level_for_xp(xp: int) -> int:
    """Level derived from experience points."""
    return xp // XP_PER_LEVEL + 1


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class UserProfile:
    """
    The player's profile.

    ``level`` and ``wallet_balance`` are derived values: level from xp, wallet
    balance from the transaction ledger. Neither is read back from storage.
    """
    name: str = "Alex"
    avatar: str = ""
    xp: int = 0
    streak: int = 0
    last_login_date: Optional[str] = None
    wallet_balance: float = 0.0
    simulated_cash: float = 10000.0
    unlocked_badges: List[str] = field(default_factory=list)
    currency: str = "USD"
    custom_categories: List[str] = field(default_factory=list)
    theme: str = "dark"

    @property
    def level(self) -> int:
        return level_for_xp(self.xp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "avatar": self.avatar,
            "xp": self.xp,
            "level": self.level,
            "streak": self.streak,
            "lastLoginDate": self.last_login_date,
            "walletBalance": self.wallet_balance,
            "simulatedCash": self.simulated_cash,
            "unlockedBadges": list(self.unlocked_badges),
            "currency": self.currency,
            "customCategories": list(self.custom_categories),
            "theme": self.theme,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        defaults = cls()
        return cls(
            name=str(data.get("name", defaults.name)),
            avatar=str(data.get("avatar") or ""),
            xp=max(0, int(data.get("xp", defaults.xp))),
            streak=max(0, int(data.get("streak", defaults.streak))),
            last_login_date=data.get("lastLoginDate") or None,
            wallet_balance=float(data.get("walletBalance", 0.0)),
            simulated_cash=float(data.get("simulatedCash", defaults.simulated_cash)),
            unlocked_badges=list(dict.fromkeys(str(b) for b in data.get("unlockedBadges", []))),
            currency=str(data.get("currency", defaults.currency)),
            custom_categories=[str(c) for c in data.get("customCategories", [])],
            theme=str(data.get("theme", defaults.theme)),
        )


@dataclass
class Transaction:
    """A real-money ledger entry."""
    id: str
    amount: float
    description: str
    category: str
    type: TransactionType
    date: str = field(default_factory=utc_now_iso)

    @property
    def signed_amount(self) -> float:
        return self.amount if self.type == TransactionType.INCOME else -self.amount

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "amount": self.amount,
            "description": self.description,
            "category": self.category,
            "type": self.type.value,
            "date": self.date,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        return cls(
            id=str(data["id"]),
            amount=float(data["amount"]),
            description=str(data.get("description", "")),
            category=str(data.get("category", "Other")),
            type=TransactionType(data["type"]),
            date=str(data.get("date") or utc_now_iso()),
        )


@dataclass
class PortfolioItem:
    """A simulated holding."""
    symbol: str
    quantity: float
    avg_buy_price: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "quantity": self.quantity,
            "avgBuyPrice": self.avg_buy_price,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PortfolioItem":
        return cls(
            symbol=str(data["symbol"]).upper(),
            quantity=float(data["quantity"]),
            avg_buy_price=float(data.get("avgBuyPrice", 0.0)),
        )


@dataclass
class Goal:
    """A savings goal."""
    id: str
    title: str
    target_amount: float
    current_amount: float = 0.0
    emoji: str = "🎯"
    completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "targetAmount": self.target_amount,
            "currentAmount": self.current_amount,
            "emoji": self.emoji,
            "completed": self.completed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Goal":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            target_amount=float(data["targetAmount"]),
            current_amount=float(data.get("currentAmount", 0.0)),
            emoji=str(data.get("emoji", "🎯")),
            completed=bool(data.get("completed", False)),
        )


@dataclass(frozen=True)
class QuestTemplate:
    """Static quest definition. ``prerequisite_id`` forms a forest."""
    id: str
    title: str
    description: str
    xp_reward: int
    category: QuestCategory
    prerequisite_id: Optional[str] = None
    action_path: Optional[str] = None


@dataclass
class Quest:
    """A quest instance unlocked for the player."""
    id: str
    title: str
    description: str
    xp_reward: int
    category: QuestCategory
    completed: bool = False

    @classmethod
    def from_template(cls, template: QuestTemplate) -> "Quest":
        return cls(
            id=template.id,
            title=template.title,
            description=template.description,
            xp_reward=template.xp_reward,
            category=template.category,
            completed=False,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "xpReward": self.xp_reward,
            "completed": self.completed,
            "category": self.category.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Quest":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            description=str(data.get("description", "")),
            xp_reward=int(data.get("xpReward", 0)),
            category=QuestCategory(data["category"]),
            completed=bool(data.get("completed", False)),
        )


@dataclass
class Order:
    """Pending conditional sell order."""
    id: str
    asset_symbol: str
    type: OrderKind
    target_price: float
    quantity: float

    def is_triggered_by(self, price: float) -> bool:
        if self.type == OrderKind.STOP_LOSS:
            return price <= self.target_price
        return price >= self.target_price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "assetSymbol": self.asset_symbol,
            "type": self.type.value,
            "targetPrice": self.target_price,
            "quantity": self.quantity,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Order":
        return cls(
            id=str(data["id"]),
            asset_symbol=str(data["assetSymbol"]).upper(),
            type=OrderKind(data["type"]),
            target_price=float(data["targetPrice"]),
            quantity=float(data["quantity"]),
        )


@dataclass(frozen=True)
class Badge:
    """Static badge catalog entry."""
    id: str
    name: str
    description: str
    icon: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "icon": self.icon,
        }


@dataclass
class Asset:
    """A market quote as returned by a market data provider."""
    id: str
    symbol: str
    name: str
    price: float
    type: AssetType = AssetType.CRYPTO
    change_24h: float = 0.0
    image: Optional[str] = None
