"""
Structural validation of raw exchange trades.

Exchanges with a known native format are checked on their raw record (the
ccxt `info` payload); everything else is checked on the unified ccxt dict.
Every validator also requires the id of the order that produced the fill,
since fills without one cannot be aggregated.
"""
import logging
from typing import Any, Callable, Dict

logger = logging.getLogger(__name__)

Validator = Callable[[Dict[str, Any]], bool]


def _present(record: Dict[str, Any], *fields: str) -> bool:
    return all(record.get(f) not in (None, "") for f in fields)


def _positive(record: Dict[str, Any], *fields: str) -> bool:
    return all(float(record[f]) > 0 for f in fields)


def validate_hyperliquid_trade(trade: Dict[str, Any]) -> bool:
    raw = trade.get("info") or {}
    return (
        _present(raw, "coin", "px", "sz", "side", "time", "tid", "oid")
        and _positive(raw, "sz", "px")
    )


def validate_binance_trade(trade: Dict[str, Any]) -> bool:
    raw = trade.get("info") or {}
    return (
        _present(raw, "symbol", "id", "price", "qty", "time", "orderId")
        and _positive(raw, "qty", "price")
    )


def validate_kraken_trade(trade: Dict[str, Any]) -> bool:
    raw = trade.get("info") or {}
    return (
        _present(raw, "pair", "price", "vol", "time", "ordertxid")
        and _positive(raw, "vol", "price")
    )


def validate_generic_trade(trade: Dict[str, Any]) -> bool:
    return (
        _present(trade, "symbol", "price", "amount", "timestamp", "id", "order")
        and _positive(trade, "price", "amount")
    )


TRADE_VALIDATORS: Dict[str, Validator] = {
    "hyperliquid": validate_hyperliquid_trade,
    "binance": validate_binance_trade,
    "kraken": validate_kraken_trade,
}


def get_trade_validator(exchange_id: str) -> Validator:
    return TRADE_VALIDATORS.get(exchange_id, validate_generic_trade)


def validate_raw_trade(exchange_id: str, trade: Dict[str, Any]) -> bool:
    """True when the trade is structurally usable. Malformed numerics count as invalid."""
    try:
        return get_trade_validator(exchange_id)(trade)
    except (TypeError, ValueError) as e:
        logger.debug(f"Trade validation failed for {exchange_id}: {e}")
        return False
