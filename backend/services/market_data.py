"""
Market Data Service Interface.
Abstract interface for price providers, an offline paper provider, and the
feed cache that keeps the last known quotes across failed refreshes.
"""

import logging
import math
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from engine.models import Asset, AssetType
from services.errors import ProviderUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_ASSET_IDS = (
    "bitcoin",
    "ethereum",
    "solana",
    "dogecoin",
    "ripple",
    "cardano",
    "polkadot",
)


class MarketDataProvider(ABC):
    """
    Abstract market data provider.

    All provider implementations must inherit from this interface.
    """

    @abstractmethod
    def fetch_assets(self, currency: str, asset_ids: Sequence[str]) -> List[Asset]:
        """
        Fetch current quotes.

        Args:
            currency: Quote currency code (e.g. "USD")
            asset_ids: Provider asset identifiers

        Returns:
            One Asset per known identifier

        Raises:
            ProviderUnavailableError: On network, HTTP, parse or rate-limit failure
        """
        pass

    def close(self) -> None:
        """Release provider resources."""
        return None


class PaperMarketData(MarketDataProvider):
    """
    Offline market data provider for development and tests.

    Quotes are deterministic. With ``volatility_pct`` above zero, prices
    drift within +/- that percentage in 30 second buckets.
    """

    _CATALOG: Dict[str, tuple] = {
        "bitcoin": ("BTC", "Bitcoin", 65000.0),
        "ethereum": ("ETH", "Ethereum", 3200.0),
        "solana": ("SOL", "Solana", 150.0),
        "dogecoin": ("DOGE", "Dogecoin", 0.15),
        "ripple": ("XRP", "XRP", 0.6),
        "cardano": ("ADA", "Cardano", 0.45),
        "polkadot": ("DOT", "Polkadot", 7.0),
    }

    def __init__(self, volatility_pct: float = 0.0):
        self.volatility_pct = max(0.0, float(volatility_pct))
        self._overrides: Dict[str, float] = {}
        self._lock = threading.Lock()

    def set_price(self, symbol: str, price: float) -> None:
        """Pin the price of a symbol."""
        if not math.isfinite(price) or price <= 0:
            raise ValueError("Price must be positive")
        with self._lock:
            self._overrides[symbol.upper()] = float(price)

    def fetch_assets(self, currency: str, asset_ids: Sequence[str]) -> List[Asset]:
        assets = []
        for asset_id in asset_ids:
            entry = self._CATALOG.get(asset_id)
            if entry is None:
                symbol, name, base = asset_id.upper()[:5], asset_id.title(), self._baseline_price(asset_id)
            else:
                symbol, name, base = entry
            with self._lock:
                override = self._overrides.get(symbol)
            price = override if override is not None else self._simulated_price(symbol, base)
            assets.append(Asset(
                id=asset_id,
                symbol=symbol,
                name=name,
                price=price,
                type=AssetType.CRYPTO,
                change_24h=round((price - base) / base * 100.0, 2) if base > 0 else 0.0,
            ))
        return assets

    def _simulated_price(self, symbol: str, base: float) -> float:
        if self.volatility_pct <= 0:
            return base
        bucket = int(datetime.now().timestamp() // 30)
        drift_seed = (sum(ord(ch) for ch in symbol) + bucket) % 17 - 8
        drift_pct = drift_seed / 8.0 * self.volatility_pct / 100.0
        return max(0.0001, round(base * (1.0 + drift_pct), 6))

    @staticmethod
    def _baseline_price(asset_id: str) -> float:
        """Deterministic baseline for identifiers outside the catalog."""
        seed = sum((idx + 1) * ord(ch) for idx, ch in enumerate(asset_id))
        return float((seed % 400) + 1)


class MarketFeed:
    """
    Last-known quote cache in front of a provider.

    A failed refresh keeps the previous quotes and records the error.
    """

    def __init__(self, provider: MarketDataProvider, asset_ids: Optional[Iterable[str]] = None):
        self.provider = provider
        self.asset_ids: List[str] = list(asset_ids or DEFAULT_ASSET_IDS)
        self._assets: List[Asset] = []
        self._lock = threading.Lock()
        self.last_error: Optional[str] = None
        self.last_updated: Optional[datetime] = None

    def fetch(self, currency: str) -> List[Asset]:
        """
        Fetch fresh quotes and cache them.

        Raises:
            ProviderUnavailableError: If the provider failed; cached quotes are kept
        """
        try:
            assets = self.provider.fetch_assets(currency, self.asset_ids)
        except ProviderUnavailableError as exc:
            with self._lock:
                self.last_error = str(exc)
            logger.warning("Market refresh failed, keeping %s cached quotes: %s", len(self._assets), exc)
            raise
        with self._lock:
            self._assets = list(assets)
            self.last_error = None
            self.last_updated = datetime.now(timezone.utc)
        logger.debug("Market refreshed: %s quotes", len(assets))
        return list(assets)

    def assets(self) -> List[Asset]:
        with self._lock:
            return list(self._assets)

    def prices(self) -> Dict[str, float]:
        """Dict of symbol -> last known price."""
        with self._lock:
            return {asset.symbol: asset.price for asset in self._assets}

    def get_asset(self, symbol: str) -> Optional[Asset]:
        symbol = symbol.upper()
        with self._lock:
            return next((a for a in self._assets if a.symbol == symbol), None)

    def status(self) -> Dict[str, object]:
        with self._lock:
            return {
                "asset_count": len(self._assets),
                "last_error": self.last_error,
                "last_updated": self.last_updated.isoformat() if self.last_updated else None,
            }
