import logging
from pydantic import BaseModel, Field
from typing import Dict, Iterable, List, Optional

from tradesync.core.entities.trade import Trade
from tradesync.core.errors import CacheRepopulationError
from tradesync.core.interfaces.datasource import ITradeSource
from tradesync.core.interfaces.repositories import ISyncStateStore

logger = logging.getLogger(__name__)


class TradeBatch(BaseModel):
    trades: List[Trade] = Field(default_factory=list)
    # exchange -> pair -> newest trade timestamp seen in this batch
    cursors: Dict[str, Dict[str, int]] = Field(default_factory=dict)
    failed_exchanges: List[str] = Field(default_factory=list)

    @property
    def synced_exchanges(self) -> List[str]:
        return [ex for ex in self.cursors if ex not in self.failed_exchanges]


class UserExchange:
    """One user's set of exchange trade sources plus their sync bookkeeping."""

    def __init__(self, user_id: str, sources: Dict[str, ITradeSource], state_store: ISyncStateStore):
        self.user_id = user_id
        self.sources = sources
        self.state_store = state_store
        self.pairs: Dict[str, List[str]] = {}

    async def load_user_pairs(self) -> Dict[str, List[str]]:
        self.pairs = await self.state_store.find_user_pairs(self.user_id)
        return self.pairs

    async def update_last_sync_times(self, exchanges: List[str]) -> None:
        await self.state_store.update_last_sync_times(self.user_id, exchanges)

    async def _cursor_for(self, exchange: str, pair: str, since: Optional[int]) -> Optional[int]:
        cursor = await self.state_store.get_most_recent_trade_time(self.user_id, exchange, pair)
        if cursor is not None:
            return cursor
        # no stored history for this pair; None fetches all of it
        return since

    async def get_trades(
        self,
        pairs: Optional[Dict[str, Iterable[str]]] = None,
        since: Optional[int] = None,
        incremental: bool = False
    ) -> TradeBatch:
        """
        Fetches trades for every (exchange, pair). A full fetch pulls complete
        history; an incremental one starts each pair at its stored cursor, or
        at `since` when the pair has none.

        A failing pair yields no trades. A failed bulk refresh skips the rest of
        that exchange.
        """
        pairs = pairs if pairs is not None else self.pairs
        batch = TradeBatch()

        for exchange, source in self.sources.items():
            exchange_pairs = sorted(pairs.get(exchange, []))
            batch.cursors.setdefault(exchange, {})
            if not exchange_pairs:
                logger.info(f"No pairs known for {exchange}, skipping")
                continue

            logger.info(f"Fetching trades for {len(exchange_pairs)} pairs on {exchange}")
            for pair in exchange_pairs:
                cursor = None
                if incremental:
                    cursor = await self._cursor_for(exchange, pair, since)
                try:
                    trades = await source.fetch_trades(pair, cursor)
                except CacheRepopulationError as e:
                    logger.error(f"Skipping remaining pairs on {exchange}: {e}")
                    batch.failed_exchanges.append(exchange)
                    break

                if not trades:
                    logger.info(f"No trades found for {pair} on {exchange} since {cursor}")
                    continue
                batch.trades.extend(trades.values())
                batch.cursors[exchange][pair] = max(t.timestamp for t in trades.values())

        logger.info(f"Fetched {len(batch.trades)} trades across {len(self.sources)} exchanges")
        return batch

    async def close(self) -> None:
        for exchange, source in self.sources.items():
            try:
                await source.close()
            except Exception as e:
                logger.warning(f"Failed to close client for {exchange}: {e}")
