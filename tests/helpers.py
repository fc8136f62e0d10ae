"""Factories and fakes shared by the test modules."""
from typing import Any, Dict, List, Optional

from tradesync.core.entities.order import Order
from tradesync.core.entities.trade import Trade


class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def raw_trade(
    trade_id: Any,
    symbol: str = "BTC/USDT",
    side: str = "buy",
    price: float = 100.0,
    amount: float = 1.0,
    timestamp: int = 1_700_000_000_000,
    order: Optional[str] = None,
    fee: float = 0.0,
    info: Optional[Dict[str, Any]] = None,
    cost: Optional[float] = None,
) -> Dict[str, Any]:
    """A ccxt unified trade dict."""
    return {
        "id": str(trade_id),
        "order": order if order is not None else f"o{trade_id}",
        "symbol": symbol,
        "side": side,
        "price": price,
        "amount": amount,
        "cost": cost if cost is not None else price * amount,
        "fee": {"cost": fee, "currency": "USDT"},
        "timestamp": timestamp,
        "type": "limit",
        "info": info if info is not None else {},
    }


def hl_raw_trade(
    tid: int,
    coin: str = "SOL",
    side: str = "B",
    px: str = "150.0",
    sz: str = "1.0",
    time: int = 1_700_000_000_000,
    oid: Optional[int] = None,
    direction: str = "Open Long",
    closed_pnl: str = "0.0",
) -> Dict[str, Any]:
    """A ccxt trade as returned for Hyperliquid, with the native fill in `info`."""
    info = {
        "coin": coin,
        "px": px,
        "sz": sz,
        "side": side,
        "time": time,
        "tid": tid,
        "oid": oid if oid is not None else tid * 10,
        "dir": direction,
        "closedPnl": closed_pnl,
        "hash": f"0xhash{tid}",
        "fee": "0.01",
        "feeToken": "USDC",
    }
    return {
        "id": str(tid),
        "order": str(info["oid"]),
        "symbol": f"{coin}/USDC:USDC",
        "side": "buy" if side == "B" else "sell",
        "price": float(px),
        "amount": float(sz),
        "cost": float(px) * float(sz),
        "fee": {"cost": 0.01, "currency": "USDC"},
        "timestamp": time,
        "type": None,
        "info": info,
    }


def make_trade(
    trade_id: str,
    order_id: str,
    side: str = "buy",
    price: float = 100.0,
    amount: float = 1.0,
    timestamp: int = 1_000,
    pair: str = "BTC/USDT",
    exchange: str = "binance",
    fee: float = 0.0,
    realized_pnl: Optional[float] = None,
    direction: Optional[str] = None,
) -> Trade:
    return Trade(
        trade_id=trade_id,
        order_id=order_id,
        pair=pair,
        side=side,
        price=price,
        amount=amount,
        cost=price * amount,
        fee=fee,
        exchange=exchange,
        timestamp=timestamp,
        realized_pnl=realized_pnl,
        direction=direction,
    )


def make_order(
    order_id: str,
    side: str,
    amount: float,
    price: float,
    time: int,
    pair: str = "BTC/USDT",
    exchange: str = "binance",
    direction: Optional[str] = None,
    realized_pnl: float = 0.0,
) -> Order:
    trade = make_trade(
        f"t-{order_id}",
        order_id,
        side=side,
        price=price,
        amount=amount,
        timestamp=time,
        pair=pair,
        exchange=exchange,
        realized_pnl=realized_pnl,
        direction=direction,
    )
    return Order.from_trade(trade)

