import os
from pydantic import BaseModel, Field
from typing import Dict, Literal, Optional


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_optional_float(name: str) -> Optional[float]:
    value = os.getenv(name)
    return float(value) if value else None


def _env_rates(name: str) -> Dict[str, float]:
    """Parses "BTC=65000,ETH=3000" into {"BTC": 65000.0, "ETH": 3000.0}."""
    rates: Dict[str, float] = {}
    for entry in (os.getenv(name) or "").split(","):
        if not entry.strip():
            continue
        quote, _, rate = entry.partition("=")
        rates[quote.strip().upper()] = float(rate)
    return rates


class Settings(BaseModel):
    """Runtime settings. Everything comes from the environment; nothing is read from files."""
    database_url: Optional[str] = None
    redis_url: Optional[str] = None
    position_strategy: str = "conservative"
    min_usd_value: float = 0.10
    exclude_dust: bool = True
    max_age_hours: Optional[float] = None
    # quote currency -> USD rate for quotes that are not dollar stablecoins
    quote_usd_rates: Dict[str, float] = Field(default_factory=dict)
    cache_ttl_seconds: float = 300
    discovery_threshold: int = 5
    hyperliquid_backend: Literal["ccxt", "sdk"] = "ccxt"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL"),
            redis_url=os.getenv("REDIS_URL"),
            position_strategy=os.getenv("TRADESYNC_POSITION_STRATEGY", "conservative"),
            min_usd_value=float(os.getenv("TRADESYNC_MIN_USD_VALUE", "0.10")),
            exclude_dust=_env_bool("TRADESYNC_EXCLUDE_DUST", True),
            max_age_hours=_env_optional_float("TRADESYNC_MAX_AGE_HOURS"),
            quote_usd_rates=_env_rates("TRADESYNC_QUOTE_USD_RATES"),
            cache_ttl_seconds=float(os.getenv("TRADESYNC_CACHE_TTL_SECONDS", "300")),
            discovery_threshold=int(os.getenv("TRADESYNC_DISCOVERY_THRESHOLD", "5")),
            hyperliquid_backend=os.getenv("TRADESYNC_HYPERLIQUID_BACKEND", "ccxt").lower(),
            log_level=os.getenv("TRADESYNC_LOG_LEVEL", "INFO").upper(),
        )
