"""
Per-exchange trade filter settings.

`custom_filter` receives the exchange's raw record (ccxt `info`), so its keys
follow each exchange's native naming.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional


def _positive(value: Any) -> bool:
    try:
        return float(value) > 0
    except (TypeError, ValueError):
        return False


@dataclass(frozen=True)
class ExchangeFilterConfig:
    min_trade_amount: float
    require_timestamp: bool = True
    require_trade_id: bool = True
    custom_filter: Optional[Callable[[Dict[str, Any]], bool]] = None


EXCHANGE_FILTER_CONFIGS: Dict[str, ExchangeFilterConfig] = {
    "hyperliquid": ExchangeFilterConfig(
        min_trade_amount=0,
        custom_filter=lambda raw: _positive(raw.get("sz")) and bool(raw.get("coin")) and bool(raw.get("px")),
    ),
    "binance": ExchangeFilterConfig(
        min_trade_amount=0.000001,  # dust
        custom_filter=lambda raw: bool(raw.get("symbol")) and bool(raw.get("price")) and bool(raw.get("qty")),
    ),
    "kraken": ExchangeFilterConfig(
        min_trade_amount=0.00000001,
        custom_filter=lambda raw: bool(raw.get("pair")) and bool(raw.get("price")) and bool(raw.get("vol")),
    ),
    "kucoin": ExchangeFilterConfig(min_trade_amount=0.000001),
    "bybit": ExchangeFilterConfig(min_trade_amount=0.000001),
    "okx": ExchangeFilterConfig(min_trade_amount=0.000001),
    "default": ExchangeFilterConfig(min_trade_amount=0.000001),
}


def get_exchange_filter_config(exchange_id: str) -> ExchangeFilterConfig:
    return EXCHANGE_FILTER_CONFIGS.get(exchange_id, EXCHANGE_FILTER_CONFIGS["default"])
