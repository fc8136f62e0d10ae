"""
Filter pipeline applied to raw ccxt trades before they become `Trade` entities.

Stages run in a fixed order, each one consuming the previous stage's output:
time cursor, structural validation, per-exchange config filter, business
filter (dust and age).
"""
import logging
import time
from pydantic import BaseModel, Field
from typing import Any, Callable, Dict, List, Optional, Tuple

from tradesync.core.filter_config import ExchangeFilterConfig, get_exchange_filter_config
from tradesync.core.use_cases.trade_validation import validate_raw_trade

logger = logging.getLogger(__name__)

USD_LIKE_QUOTES = {"USD", "USDT", "USDC", "BUSD", "FDUSD", "TUSD", "DAI", "USDE"}


class BusinessFilterOptions(BaseModel):
    min_usd_value: float = Field(0.10, ge=0)
    exclude_dust_trades: bool = True
    max_age_hours: Optional[float] = None
    # quote currency -> USD rate, for quotes that are not dollar stablecoins
    quote_usd_rates: Dict[str, float] = Field(default_factory=dict)


class FilterStats(BaseModel):
    received: int = 0
    after_time: int = 0
    after_validation: int = 0
    after_config: int = 0
    after_business: int = 0

    def dropped(self) -> Dict[str, int]:
        return {
            "time": self.received - self.after_time,
            "validation": self.after_time - self.after_validation,
            "config": self.after_validation - self.after_config,
            "business": self.after_config - self.after_business,
        }


def quote_currency(symbol: str) -> str:
    """'SOL/USDC:USDC' -> 'USDC'"""
    base_quote = symbol.split(":")[0]
    return base_quote.split("/")[-1].upper() if "/" in base_quote else ""


def trade_notional_usd(trade: Dict[str, Any], quote_usd_rates: Optional[Dict[str, float]] = None) -> Optional[float]:
    """USD value of a trade, or None when its quote currency has no known rate."""
    cost = trade.get("cost")
    if cost is None:
        cost = float(trade.get("price") or 0) * float(trade.get("amount") or 0)
    quote = quote_currency(trade.get("symbol") or "")
    if quote in USD_LIKE_QUOTES:
        rate = 1.0
    else:
        rate = (quote_usd_rates or {}).get(quote)
        if rate is None:
            return None
    return float(cost) * rate


def is_dust(trade: Dict[str, Any], options: BusinessFilterOptions) -> bool:
    notional = trade_notional_usd(trade, options.quote_usd_rates)
    # a trade that cannot be priced is never dust
    return notional is not None and notional < options.min_usd_value


def apply_config_filter(trade: Dict[str, Any], config: ExchangeFilterConfig) -> bool:
    if config.require_timestamp and not trade.get("timestamp"):
        return False
    if config.require_trade_id and not trade.get("id"):
        return False
    if float(trade.get("amount") or 0) < config.min_trade_amount:
        return False
    if config.custom_filter is not None and not config.custom_filter(trade.get("info") or {}):
        return False
    return True


def filter_trades_by_business_logic(
    trades: List[Dict[str, Any]],
    options: BusinessFilterOptions,
    now_ms: Optional[int] = None
) -> List[Dict[str, Any]]:
    filtered = trades
    if options.exclude_dust_trades:
        filtered = [t for t in filtered if not is_dust(t, options)]
    if options.max_age_hours is not None:
        now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
        cutoff = now_ms - int(options.max_age_hours * 3600 * 1000)
        filtered = [t for t in filtered if (t.get("timestamp") or 0) > cutoff]
    return filtered


def log_filtering_stats(exchange_id: str, original_count: int, filtered_count: int, filter_type: str) -> None:
    filtered_out = original_count - filtered_count
    percentage = (filtered_out / original_count * 100) if original_count > 0 else 0.0
    logger.info(
        f"{exchange_id} {filter_type} filtering: {original_count} -> {filtered_count} trades "
        f"({filtered_out} filtered out, {percentage:.1f}%)"
    )


class TradeFilterPipeline:
    def __init__(
        self,
        exchange_id: str,
        filter_config: Optional[ExchangeFilterConfig] = None,
        business_options: Optional[BusinessFilterOptions] = None,
        clock_ms: Optional[Callable[[], int]] = None
    ):
        self.exchange_id = exchange_id
        self.filter_config = filter_config or get_exchange_filter_config(exchange_id)
        self.business_options = business_options or BusinessFilterOptions()
        self.clock_ms = clock_ms or (lambda: int(time.time() * 1000))

    def run(self, trades: List[Dict[str, Any]], since: Optional[int] = None) -> Tuple[List[Dict[str, Any]], FilterStats]:
        stats = FilterStats(received=len(trades))

        # the cursor is re-applied even when the exchange honoured it
        if since is not None:
            trades = [t for t in trades if (t.get("timestamp") or 0) > since]
        stats.after_time = len(trades)

        trades = [t for t in trades if validate_raw_trade(self.exchange_id, t)]
        stats.after_validation = len(trades)

        trades = [t for t in trades if apply_config_filter(t, self.filter_config)]
        stats.after_config = len(trades)

        trades = filter_trades_by_business_logic(trades, self.business_options, self.clock_ms())
        stats.after_business = len(trades)

        if stats.received:
            self._log(stats)
        return trades, stats

    def _log(self, stats: FilterStats) -> None:
        log_filtering_stats(self.exchange_id, stats.received, stats.after_time, "time")
        log_filtering_stats(self.exchange_id, stats.after_time, stats.after_validation, "validation")
        log_filtering_stats(self.exchange_id, stats.after_validation, stats.after_config, "config")
        log_filtering_stats(self.exchange_id, stats.after_config, stats.after_business, "business")
