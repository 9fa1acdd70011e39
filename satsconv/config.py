"""
Configuration management using Pydantic Settings.
Loads environment variables and provides centralized constants.
"""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

_DEFAULT_RATE_API_URL: str = (
    "https://data-api.cryptocompare.com/spot/v1/latest/tick/asset"
    "?base_asset=BTC&groups=ID%2CMAPPING%2CVALUE%2CMOVING_24_HOUR&page=1"
    "&page_size=10&sort_by=MARKET_BENCHMARK_TIER_AND_MOVING_24_HOUR_VOLUME"
    "&sort_direction=DESC&apply_mapping=true"
)

# Approximate USD value of one unit of each currency
_DEFAULT_USD_FACTORS: dict[str, float] = {
    "USD": 1.00,
    "CAD": 0.73,
    "AUD": 0.65,
    "NZD": 0.60,
    "SGD": 0.74,
    "EUR": 1.08,
    "GBP": 1.25,
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Master switch: when off the conversion pass never runs
    enabled: bool = Field(
        default=True,
        description="Whether price rewriting is enabled",
    )

    # Rate source
    rate_api_url: str = Field(
        default=_DEFAULT_RATE_API_URL,
        description="Ticker endpoint returning BTC spot prices",
    )
    rate_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Maximum number of rate fetch attempts per run",
    )
    rate_backoff_base: float = Field(
        default=2.0,
        ge=0.0,
        description="Delay in seconds after the first failed attempt; doubles each retry",
    )
    rate_request_timeout: float = Field(
        default=10.0,
        gt=0.0,
        description="HTTP timeout for a single rate request in seconds",
    )
    fallback_btc_usd_rate: float = Field(
        default=70000.0,
        gt=0.0,
        description="BTC/USD rate used when every fetch attempt fails",
    )
    rate_exhausted_policy: Literal["fallback", "abort"] = Field(
        default="fallback",
        description="What to do once all attempts fail: use the fallback rate or abort the run",
    )
    accepted_quote_currencies: list[str] = Field(
        default_factory=lambda: ["USD", "USDT", "FDUSD"],
        description="Quote currencies treated as USD-equivalent when picking a ticker entry",
    )

    # Currency factors (USD per one unit of the currency)
    currency_usd_factors: dict[str, float] = Field(
        default_factory=lambda: dict(_DEFAULT_USD_FACTORS),
        description="Static approximate USD value of one unit of each currency",
    )

    # Application Constants
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    @field_validator("rate_api_url")
    @classmethod
    def validate_rate_api_url(cls, v: str) -> str:
        """Ensure the rate URL is properly formatted."""
        v = v.strip().rstrip("/")
        if not v.startswith(("http://", "https://")):
            raise ValueError("RATE_API_URL must start with http:// or https://")
        return v

    @field_validator("accepted_quote_currencies")
    @classmethod
    def validate_quote_currencies(cls, v: list[str]) -> list[str]:
        """Normalise quote currencies to upper case and reject an empty set."""
        cleaned = [code.strip().upper() for code in v if code and code.strip()]
        if not cleaned:
            raise ValueError("ACCEPTED_QUOTE_CURRENCIES must not be empty")
        return cleaned

    @field_validator("currency_usd_factors")
    @classmethod
    def validate_usd_factors(cls, v: dict[str, float]) -> dict[str, float]:
        """Upper-case currency codes, require USD, and reject non-positive factors."""
        factors = {code.strip().upper(): float(factor) for code, factor in v.items()}
        for code, factor in factors.items():
            if factor <= 0:
                raise ValueError(f"USD factor for {code} must be positive")
        if "USD" not in factors:
            raise ValueError("CURRENCY_USD_FACTORS must include USD")
        return factors


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings singleton

    Raises:
        ValidationError: If environment variables are present but invalid
    """
    return Settings()


# Singleton instance for import
settings = get_settings()
