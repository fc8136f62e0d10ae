from collections import Counter
from typing import Any, Dict, List, Optional

from tradesync.core.interfaces.trading_client import ITradingClient


class MockTradingClient(ITradingClient):
    """
    In-memory trading client for tests and local runs.

    Trades are ccxt-shaped dicts. `fetch_my_trades` honours symbol, since and
    limit the way a paginating exchange would, and every call is counted.
    Symbols listed in `failing_symbols` raise on fetch.
    """

    def __init__(
        self,
        exchange_id: str = "mock",
        trades: Optional[List[Dict[str, Any]]] = None,
        symbols: Optional[List[str]] = None,
        rate_limit_ms: int = 0,
        failing_symbols: Optional[List[str]] = None,
        fail_all: bool = False
    ):
        self.id = exchange_id
        self.trades = list(trades or [])
        self._symbols = symbols
        self._rate_limit_ms = rate_limit_ms
        self.failing_symbols = set(failing_symbols or [])
        self.fail_all = fail_all
        self.calls: Counter = Counter()
        self.trade_calls: List[Dict[str, Any]] = []
        self.closed = False

    @property
    def symbols(self) -> List[str]:
        if self._symbols is not None:
            return list(self._symbols)
        return sorted({t["symbol"] for t in self.trades})

    @property
    def rate_limit_ms(self) -> int:
        return self._rate_limit_ms

    async def load_markets(self) -> Dict[str, Any]:
        self.calls["load_markets"] += 1
        return {s: {"symbol": s} for s in self.symbols}

    async def fetch_my_trades(
        self,
        symbol: Optional[str] = None,
        since: Optional[int] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        self.calls["fetch_my_trades"] += 1
        self.trade_calls.append({"symbol": symbol, "since": since, "limit": limit})
        if self.fail_all or symbol in self.failing_symbols:
            raise ConnectionError(f"mock exchange unavailable for {symbol}")

        trades = [t for t in self.trades if symbol is None or t["symbol"] == symbol]
        if since is not None:
            trades = [t for t in trades if t["timestamp"] >= since]
        trades.sort(key=lambda t: t["timestamp"])
        return trades[:limit] if limit is not None else trades

    async def fetch_orders(
        self,
        symbol: Optional[str] = None,
        since: Optional[int] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        self.calls["fetch_orders"] += 1
        return []

    async def fetch_positions(self, symbols: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        self.calls["fetch_positions"] += 1
        return []

    async def fetch_balance(self) -> Dict[str, Any]:
        self.calls["fetch_balance"] += 1
        return {"total": {}, "free": {}, "used": {}}

    async def close(self) -> None:
        self.closed = True
