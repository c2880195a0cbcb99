"""
CoinGecko Market Data Integration.

Implements the MarketDataProvider interface over the public CoinGecko REST
API (``/coins/markets``).
"""

from typing import Any, Dict, List, Optional, Sequence
import logging
import math

import httpx

from engine.models import Asset, AssetType
from services.errors import ProviderUnavailableError
from services.market_data import MarketDataProvider

logger = logging.getLogger(__name__)


class CoinGeckoMarketData(MarketDataProvider):
    """
    CoinGecko provider.

    Configuration:
        - base_url: API root (default public v3 endpoint)
        - api_key: Optional demo/pro key sent as ``x-cg-demo-api-key``
        - timeout: Request timeout in seconds
    """

    def __init__(
        self,
        base_url: str = "https://api.coingecko.com/api/v3",
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.Client] = None,
    ):
        """
        Initialize CoinGecko provider.

        Args:
            base_url: API root URL
            api_key: Optional API key
            timeout: Request timeout in seconds
            client: Preconfigured httpx client (tests pass one with a mock transport)
        """
        headers = {"Accept": "application/json"}
        if api_key:
            headers["x-cg-demo-api-key"] = api_key
        self._owns_client = client is None
        self.client = client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout, headers=headers)

    def fetch_assets(self, currency: str, asset_ids: Sequence[str]) -> List[Asset]:
        if not asset_ids:
            return []
        params = {
            "vs_currency": currency.lower(),
            "ids": ",".join(asset_ids),
            "order": "market_cap_desc",
            "sparkline": "false",
        }
        try:
            response = self.client.get("/coins/markets", params=params)
        except httpx.HTTPError as exc:
            logger.warning("CoinGecko request failed: %s", exc)
            raise ProviderUnavailableError(f"Market data unreachable: {exc}") from exc

        if response.status_code == 429:
            raise ProviderUnavailableError("Market data rate limit exceeded")
        if response.status_code != 200:
            logger.error("CoinGecko error: %s - %s", response.status_code, response.text[:300])
            raise ProviderUnavailableError(f"Market data error (HTTP {response.status_code})")

        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderUnavailableError("Market data response was not JSON") from exc
        if not isinstance(payload, list):
            raise ProviderUnavailableError("Unexpected market data response shape")

        assets = []
        for row in payload:
            asset = self._parse_coin(row)
            if asset is not None:
                assets.append(asset)
        return assets

    @staticmethod
    def _parse_coin(row: Dict[str, Any]) -> Optional[Asset]:
        try:
            price = float(row["current_price"])
        except (KeyError, TypeError, ValueError):
            logger.debug("Skipping coin without price: %s", row.get("id") if isinstance(row, dict) else row)
            return None
        if not math.isfinite(price) or price <= 0:
            return None
        change = row.get("price_change_percentage_24h")
        return Asset(
            id=str(row.get("id", "")),
            symbol=str(row.get("symbol", "")).upper(),
            name=str(row.get("name", "")),
            price=price,
            type=AssetType.CRYPTO,
            change_24h=float(change) if isinstance(change, (int, float)) else 0.0,
            image=row.get("image"),
        )

    def close(self) -> None:
        if self._owns_client:
            self.client.close()
