"""
Per-exchange trade fetching on top of an ITradingClient.

Two strategies, chosen from the exchange's capabilities:

* bulk: one unscoped `fetch_my_trades` returns the whole account history. The
  result is partitioned by pair into a TradeCache and every pair is served
  from it until the TTL runs out or the cache is cleared.
* per-symbol: one rate-limited call per pair, following pages while full
  pages come back.

Raw ccxt dicts run through the TradeFilterPipeline on every call, so a
cursor (`since`) always applies even to cache-served trades.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set

from tradesync.core.capabilities import get_exchange_capabilities
from tradesync.core.entities.exchange import ExchangeCapabilities
from tradesync.core.entities.trade import Trade
from tradesync.core.errors import CacheRepopulationError
from tradesync.core.interfaces.datasource import ITradeSource
from tradesync.core.interfaces.trading_client import ITradingClient
from tradesync.core.use_cases.trade_filters import FilterStats, TradeFilterPipeline
from tradesync.infrastructure.cache.trade_cache import TradeCache

logger = logging.getLogger(__name__)

MAX_PAGES_PER_SYMBOL = 200


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


class TradeFetchClient(ITradeSource):
    def __init__(
        self,
        client: ITradingClient,
        exchange_id: Optional[str] = None,
        capabilities: Optional[ExchangeCapabilities] = None,
        pipeline: Optional[TradeFilterPipeline] = None,
        cache: Optional[TradeCache] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        delay_ms: Optional[int] = None
    ):
        self.client = client
        self.exchange_id = exchange_id or client.id
        self.capabilities = capabilities or get_exchange_capabilities(self.exchange_id)
        self.pipeline = pipeline or TradeFilterPipeline(self.exchange_id)
        self.cache = cache or TradeCache()
        self._sleep = sleep
        self.delay_ms = delay_ms if delay_ms is not None else self.capabilities.rate_limit_ms
        self._calls_made = 0
        self.last_stats: Optional[FilterStats] = None

    @property
    def is_bulk(self) -> bool:
        return self.capabilities.fetches_all_trades_at_once

    async def fetch_trades(self, pair: str, since: Optional[int] = None) -> Dict[str, Trade]:
        if self.is_bulk:
            raw_trades = await self._cached_trades(pair)
        else:
            try:
                raw_trades = await self._fetch_symbol_trades(pair, since)
            except Exception as e:
                logger.error(f"Failed to fetch trades for {pair} on {self.exchange_id}: {e}")
                return {}

        filtered, self.last_stats = self.pipeline.run(raw_trades, since)

        trades: Dict[str, Trade] = {}
        for raw in filtered:
            trade = self._to_trade(raw)
            if trade is not None:
                trades[trade.trade_id] = trade
        logger.debug(f"{self.exchange_id} {pair}: {len(trades)} trades since {since}")
        return trades

    async def fetch_trade_pairs(
        self,
        since: Optional[int] = None,
        candidates: Optional[Iterable[str]] = None
    ) -> Set[str]:
        active: Set[str] = set()

        if self.is_bulk:
            symbols = self.cache.pairs()
            if symbols is None:
                await self._repopulate()
                symbols = self.cache.pairs() or set()
            if candidates is not None:
                symbols = symbols & set(candidates)
            for symbol in sorted(symbols):
                if await self.fetch_trades(symbol, since):
                    active.add(symbol)
            return active

        await self.client.load_markets()
        symbols = list(candidates) if candidates is not None else self.client.symbols
        if not symbols:
            logger.warning(f"No symbols found for {self.exchange_id}")
            return active

        for symbol in symbols:
            if ":" in symbol:
                # derivative markets are not probed
                logger.debug(f"Skipping {symbol} on {self.exchange_id}")
                continue
            trades = await self.fetch_trades(symbol, since)
            if trades:
                logger.info(f"Found trades for {symbol} on {self.exchange_id}")
                active.add(symbol)

        return active

    def clear_cache(self) -> None:
        self.cache.clear()

    async def close(self) -> None:
        await self.client.close()

    async def _cached_trades(self, pair: str) -> List[Dict[str, Any]]:
        cached = self.cache.get(pair)
        if cached is None:
            await self._repopulate()
            cached = self.cache.get(pair)
        return cached or []

    async def _repopulate(self) -> None:
        logger.info(f"Bulk fetching all trades for {self.exchange_id}")
        try:
            await self._throttle()
            raw_trades = await self.client.fetch_my_trades()
        except Exception as e:
            self.cache.clear()
            logger.error(f"Bulk trade fetch failed for {self.exchange_id}: {e}")
            raise CacheRepopulationError(self.exchange_id, e) from e
        self.cache.populate(raw_trades)

    async def _fetch_symbol_trades(self, pair: str, since: Optional[int]) -> List[Dict[str, Any]]:
        caps = self.capabilities
        limit = caps.max_trades_per_call if caps.supports_pagination else None
        cursor = since if caps.supports_time_filtering else None
        paginate = caps.supports_pagination and caps.supports_time_filtering and limit is not None

        collected: List[Dict[str, Any]] = []
        seen: Set[str] = set()
        for _ in range(MAX_PAGES_PER_SYMBOL):
            await self._throttle()
            page = await self.client.fetch_my_trades(pair, cursor, limit)
            added = 0
            for raw in page:
                trade_id = raw.get("id")
                if trade_id is not None:
                    if str(trade_id) in seen:
                        continue
                    seen.add(str(trade_id))
                    added += 1
                collected.append(raw)

            if not paginate or len(page) < limit or added == 0:
                break
            timestamps = [int(t["timestamp"]) for t in page if t.get("timestamp")]
            if not timestamps:
                break
            # restart at the last millisecond seen; a page may end inside a burst of fills
            next_cursor = max(timestamps)
            if cursor is not None and next_cursor <= cursor:
                # the whole page sits in one millisecond
                next_cursor = cursor + 1
            cursor = next_cursor
        else:
            logger.warning(f"Reached maximum pagination depth for {pair} on {self.exchange_id}")

        return collected

    async def _throttle(self) -> None:
        if self._calls_made > 0 and self.delay_ms > 0:
            await self._sleep(self.delay_ms / 1000)
        self._calls_made += 1

    def _to_trade(self, raw: Dict[str, Any]) -> Optional[Trade]:
        info = raw.get("info") or {}
        fee = raw.get("fee") or {}
        try:
            price = float(raw["price"])
            amount = float(raw["amount"])
            cost = raw.get("cost")
            order_id = raw.get("order") or info.get("oid") or info.get("orderId") or info.get("ordertxid")
            pnl = info.get("closedPnl")
            if pnl is None:
                pnl = info.get("realizedPnl")
            return Trade(
                trade_id=str(raw["id"]),
                order_id=str(order_id) if order_id is not None else "",
                pair=raw["symbol"],
                side=raw["side"],
                price=price,
                amount=amount,
                cost=float(cost) if cost is not None else price * amount,
                fee=float(fee.get("cost") or 0),
                exchange=self.exchange_id,
                timestamp=int(raw["timestamp"]),
                order_type=raw.get("type"),
                realized_pnl=_optional_float(pnl),
                margin=_optional_float(raw.get("margin")),
                leverage=_optional_float(raw.get("leverage")),
                direction=info.get("dir"),
                transaction_id=info.get("hash"),
            )
        except (KeyError, TypeError, ValueError) as map_err:
            logger.warning(f"Skipping malformed trade from {self.exchange_id}: {map_err}")
            return None
