"""Supported exchanges and how to instantiate their ccxt clients."""
from typing import Any, Dict, List, Optional

from tradesync.core.entities.exchange import ExchangeConfiguration, RequiredCredentials

EXCHANGES: List[ExchangeConfiguration] = [
    ExchangeConfiguration(
        id="binance",
        name="Binance",
        ccxt_id="binance",
        default_pairs=[
            "DOT/USDT",
            "COTI/USD",
            "JUP/USDT",
            "INJ/USDT",
            "ALGO/USDT",
            "AGIX/USDT",
            "ATOM/USDT",
            "FIL/USDT",
        ],
    ),
    ExchangeConfiguration(id="okx", name="Okx", ccxt_id="myokx"),
    ExchangeConfiguration(id="kucoin", name="Kucoin", ccxt_id="kucoin"),
    ExchangeConfiguration(
        id="bybit",
        name="Bybit",
        ccxt_id="bybit",
        fetch_config={"defaultType": "spot"},
    ),
    ExchangeConfiguration(
        id="kraken",
        name="Kraken",
        ccxt_id="kraken",
        default_pairs=["BTC/USDT", "OP/USD", "LINK/USD"],
    ),
    ExchangeConfiguration(
        id="hyperliquid",
        name="Hyperliquid",
        ccxt_id="hyperliquid",
        fetch_config={"type": ["spot", "swap"]},
        required_credentials=RequiredCredentials(api_key=True, secret=True, wallet_address=True),
    ),
]


def get_exchange_by_id(exchange_id: str) -> Optional[ExchangeConfiguration]:
    return next((ex for ex in EXCHANGES if ex.id == exchange_id), None)


def get_enabled_exchanges() -> List[ExchangeConfiguration]:
    return [ex for ex in EXCHANGES if ex.enabled]


def get_exchange_fetch_config(exchange_id: str) -> Dict[str, Any]:
    config = get_exchange_by_id(exchange_id)
    return dict(config.fetch_config) if config else {}
