"""
Static registry of per-exchange trade-history characteristics.

The fetch client reads this table to pick between one bulk call (then cache)
and one rate-limited call per symbol.
"""
import logging
from typing import Dict, List

from tradesync.core.entities.exchange import ExchangeCapabilities

logger = logging.getLogger(__name__)

EXCHANGE_CAPABILITIES: Dict[str, ExchangeCapabilities] = {
    "hyperliquid": ExchangeCapabilities(
        fetches_all_trades_at_once=True,
        supports_symbol_filtering=False,
        requires_symbol_specific_calls=False,
        supports_time_filtering=True,
        supports_pagination=False,
        rate_limit_ms=100,
        max_trades_per_call=None,  # returns everything
    ),
    "binance": ExchangeCapabilities(
        fetches_all_trades_at_once=False,
        supports_symbol_filtering=True,
        requires_symbol_specific_calls=True,
        supports_time_filtering=True,
        supports_pagination=True,
        rate_limit_ms=100,
        max_trades_per_call=1000,
    ),
    "kraken": ExchangeCapabilities(
        fetches_all_trades_at_once=False,
        supports_symbol_filtering=True,
        requires_symbol_specific_calls=True,
        supports_time_filtering=True,
        supports_pagination=True,
        rate_limit_ms=1000,
        max_trades_per_call=50,
    ),
    "kucoin": ExchangeCapabilities(
        fetches_all_trades_at_once=False,
        supports_symbol_filtering=True,
        requires_symbol_specific_calls=True,
        supports_time_filtering=True,
        supports_pagination=True,
        rate_limit_ms=200,
        max_trades_per_call=500,
    ),
    "bybit": ExchangeCapabilities(
        fetches_all_trades_at_once=False,
        supports_symbol_filtering=True,
        requires_symbol_specific_calls=True,
        supports_time_filtering=True,
        supports_pagination=True,
        rate_limit_ms=120,
        max_trades_per_call=200,
    ),
    "okx": ExchangeCapabilities(
        fetches_all_trades_at_once=False,
        supports_symbol_filtering=True,
        requires_symbol_specific_calls=True,
        supports_time_filtering=True,
        supports_pagination=True,
        rate_limit_ms=100,
        max_trades_per_call=100,
    ),
}

DEFAULT_EXCHANGE_CAPABILITIES = ExchangeCapabilities(
    fetches_all_trades_at_once=False,
    supports_symbol_filtering=True,
    requires_symbol_specific_calls=True,
    supports_time_filtering=True,
    supports_pagination=True,
    rate_limit_ms=1000,
    max_trades_per_call=100,
)


def get_exchange_capabilities(exchange_id: str) -> ExchangeCapabilities:
    return EXCHANGE_CAPABILITIES.get(exchange_id, DEFAULT_EXCHANGE_CAPABILITIES)


def supports_bulk_fetch(exchange_id: str) -> bool:
    return get_exchange_capabilities(exchange_id).fetches_all_trades_at_once


def get_bulk_fetch_exchanges() -> List[str]:
    return [name for name in EXCHANGE_CAPABILITIES if supports_bulk_fetch(name)]


def requires_symbol_specific_calls(exchange_id: str) -> bool:
    return get_exchange_capabilities(exchange_id).requires_symbol_specific_calls


def get_optimal_rate_limit(exchange_id: str) -> int:
    """Delay in milliseconds to leave between two calls to the exchange."""
    return get_exchange_capabilities(exchange_id).rate_limit_ms


def log_exchange_capabilities(exchange_id: str) -> None:
    caps = get_exchange_capabilities(exchange_id)
    logger.info(
        f"Exchange capabilities for {exchange_id}: bulkFetch={caps.fetches_all_trades_at_once} "
        f"symbolFiltering={caps.supports_symbol_filtering} timeFiltering={caps.supports_time_filtering} "
        f"rateLimit={caps.rate_limit_ms}ms maxTrades={caps.max_trades_per_call}"
    )
