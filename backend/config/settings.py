"""
Application Settings and Configuration.

Loads configuration from environment variables and config files.
Covers market data and AI content providers, the price refresh scheduler
and other app settings.
"""

from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from .paths import default_log_directory


DEFAULT_MARKET_ASSET_IDS = "bitcoin,ethereum,solana,dogecoin,ripple,cardano,polkadot"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables:
        DATABASE_URL: Database connection URL (default: sqlite in app-data dir)
        MONEYVERSE_MARKET_PROVIDER: "paper" (offline quotes) or "coingecko"
        MONEYVERSE_PRICE_REFRESH_SECONDS: Price feed polling interval
        GEMINI_API_KEY: Key for AI advice, lessons and news
    """

    # Application Configuration
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_directory: str = Field(default=default_log_directory(), alias="MONEYVERSE_LOG_DIRECTORY")
    log_retention_days: int = Field(default=30, alias="MONEYVERSE_LOG_RETENTION_DAYS")

    # API authentication (optional for local desktop dev/test)
    api_auth_enabled: bool = Field(default=False, alias="MONEYVERSE_API_KEY_AUTH_ENABLED")
    api_auth_key: Optional[str] = Field(default=None, alias="MONEYVERSE_API_KEY")

    # Simulator
    starting_cash: float = Field(default=10000.0, alias="MONEYVERSE_STARTING_CASH")

    # Market data
    market_provider: str = Field(default="paper", alias="MONEYVERSE_MARKET_PROVIDER")
    coingecko_base_url: str = Field(
        default="https://api.coingecko.com/api/v3",
        alias="MONEYVERSE_COINGECKO_BASE_URL",
    )
    coingecko_api_key: Optional[str] = Field(default=None, alias="MONEYVERSE_COINGECKO_API_KEY")
    market_asset_ids: str = Field(default=DEFAULT_MARKET_ASSET_IDS, alias="MONEYVERSE_MARKET_ASSET_IDS")
    price_refresh_seconds: int = Field(default=60, alias="MONEYVERSE_PRICE_REFRESH_SECONDS")
    price_scheduler_enabled: bool = Field(default=True, alias="MONEYVERSE_PRICE_SCHEDULER_ENABLED")
    http_timeout_seconds: float = Field(default=10.0, alias="MONEYVERSE_HTTP_TIMEOUT_SECONDS")

    # AI content
    gemini_api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-2.5-flash", alias="MONEYVERSE_GEMINI_MODEL")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        alias="MONEYVERSE_GEMINI_BASE_URL",
    )
    ai_timeout_seconds: float = Field(default=30.0, alias="MONEYVERSE_AI_TIMEOUT_SECONDS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
    )

    @field_validator("gemini_api_key", "coingecko_api_key", "api_auth_key")
    @classmethod
    def _strip_secret(cls, v: Optional[str]) -> Optional[str]:
        """Strip whitespace from keys to prevent authentication failures."""
        return v.strip() if v else v

    @field_validator("market_provider")
    @classmethod
    def _normalize_provider(cls, v: str) -> str:
        provider = (v or "paper").strip().lower()
        if provider not in {"paper", "coingecko"}:
            raise ValueError(f"Unsupported market provider: {v}")
        return provider

    @property
    def asset_ids(self) -> List[str]:
        """Configured market asset ids as a list."""
        return [part.strip() for part in self.market_asset_ids.split(",") if part.strip()]


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns:
        Settings instance
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def has_gemini_credentials() -> bool:
    """
    Check if the AI content provider is configured.

    Returns:
        True if a Gemini API key is set
    """
    settings = get_settings()
    return bool(settings.gemini_api_key)
