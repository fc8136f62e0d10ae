"""
Entry point for syncing one user's trading history.

The first sync (or any sync without known pairs or a previous sync time) is a
full one: discover every traded pair, fetch complete history. Later syncs are
incremental: reuse known pairs (rediscovering only while the user has few) and
fetch trades newer than each pair's cursor. Both paths end in the same
aggregate-and-persist step.
"""
import logging
import time
from typing import Callable, Dict, List, Optional, Tuple, Union

from tradesync.config import Settings
from tradesync.core.entities.exchange import ExchangeCredentials
from tradesync.core.entities.sync import SyncMode, SyncResult
from tradesync.core.entities.trade import Trade
from tradesync.core.errors import CredentialError, ExchangeInitError
from tradesync.core.interfaces.credentials import ICredentialDecryptor
from tradesync.core.interfaces.datasource import ITradeSource
from tradesync.core.interfaces.repositories import IOrderRepository, IPositionRepository, ISyncStateStore
from tradesync.core.services import UserExchange
from tradesync.core.use_cases.pair_discovery import PairDiscoveryService
from tradesync.core.use_cases.position_aggregator import PositionAggregator
from tradesync.core.use_cases.trade_aggregator import TradeAggregator

logger = logging.getLogger(__name__)

SourceFactory = Callable[[ExchangeCredentials, Settings], ITradeSource]


def _count(pairs: Dict[str, List[str]]) -> int:
    return sum(len(p) for p in pairs.values())


class TradeSyncService:
    def __init__(
        self,
        decryptor: ICredentialDecryptor,
        state_store: ISyncStateStore,
        order_repo: IOrderRepository,
        position_repo: IPositionRepository,
        source_factory: SourceFactory,
        settings: Optional[Settings] = None
    ):
        self.decryptor = decryptor
        self.state_store = state_store
        self.order_repo = order_repo
        self.position_repo = position_repo
        self.source_factory = source_factory
        self.settings = settings or Settings()
        self.pair_discovery = PairDiscoveryService(state_store)

    async def sync_trades(
        self,
        user_id: str,
        encrypted_keys: str,
        mode: Optional[Union[SyncMode, str]] = None,
        since: Optional[int] = None
    ) -> SyncResult:
        try:
            credentials = self.decryptor.decrypt(encrypted_keys)
        except Exception as e:
            logger.error(f"Credential decryption raised for {user_id}: {e}")
            credentials = None
        if not credentials:
            return SyncResult.failure("initial", "Failed to decrypt exchange credentials")

        sources: Dict[str, ITradeSource] = {}
        user_exchange = UserExchange(user_id, sources, self.state_store)
        sync_type = "initial"
        try:
            for creds in credentials:
                sources[creds.exchange] = self.source_factory(creds, self.settings)

            sync_mode = SyncMode(mode) if mode else await self.detect_sync_mode(user_id)
            if sync_mode == SyncMode.FULL:
                return await self._perform_initial_sync(user_exchange)
            sync_type = "incremental"
            return await self._perform_incremental_sync(user_exchange, since)
        except (CredentialError, ExchangeInitError) as e:
            logger.error(f"Failed to initialize exchanges for {user_id}: {e}")
            return SyncResult.failure(sync_type, str(e))
        except Exception as e:
            logger.exception(f"Sync failed for {user_id}")
            label = "Initial" if sync_type == "initial" else "Quick"
            return SyncResult.failure(sync_type, f"{label} sync failed: {e}")
        finally:
            await user_exchange.close()

    async def detect_sync_mode(self, user_id: str) -> SyncMode:
        existing_pairs = await self.state_store.find_user_pairs(user_id)
        last_sync = await self.state_store.get_last_sync_times(user_id)
        if _count(existing_pairs) == 0 or not last_sync:
            return SyncMode.FULL
        return SyncMode.INCREMENTAL

    async def _perform_initial_sync(self, user_exchange: UserExchange) -> SyncResult:
        started = time.monotonic()
        user_id = user_exchange.user_id
        logger.info(f"Initial sync started for {user_id}")

        pairs = await self.pair_discovery.discover_all_pairs(user_id, user_exchange.sources)
        pairs_found = _count(pairs)

        batch = await user_exchange.get_trades(pairs)
        orders_saved, positions_saved = await self._persist(user_id, batch.trades, rebuild_all=True)
        await self._record_progress(user_exchange, batch.synced_exchanges, batch.cursors)

        logger.info(
            f"Initial sync finished for {user_id} in {time.monotonic() - started:.1f}s: "
            f"{pairs_found} pairs, {len(batch.trades)} trades"
        )
        return SyncResult(
            success=True,
            type="initial",
            pairs_found=pairs_found,
            trades_found=len(batch.trades),
            orders_saved=orders_saved,
            positions_saved=positions_saved,
            message=f"Successfully discovered {pairs_found} trading pairs and {len(batch.trades)} trades",
        )

    async def _perform_incremental_sync(self, user_exchange: UserExchange, since: Optional[int]) -> SyncResult:
        started = time.monotonic()
        user_id = user_exchange.user_id
        logger.info(f"Quick sync started for {user_id}")

        current = await user_exchange.load_user_pairs()
        current_count = _count(current)

        rediscovered = current_count < self.settings.discovery_threshold
        if rediscovered:
            logger.info("Few pairs known, checking for new trading pairs...")
            await self.pair_discovery.check_for_new_pairs(user_id, user_exchange.sources, since)
            pairs = await user_exchange.load_user_pairs()
        else:
            logger.info("Using existing pairs (use Full Sync to rediscover)")
            pairs = current

        batch = await user_exchange.get_trades(pairs, since=since, incremental=True)
        orders_saved, positions_saved = await self._persist(user_id, batch.trades)
        await self._record_progress(user_exchange, batch.synced_exchanges, batch.cursors)

        pair_count = _count(pairs)
        new_pairs = max(0, pair_count - current_count)
        trades_found = len(batch.trades)

        if not rediscovered:
            message = f"Quick sync completed: {trades_found} trades from {current_count} known pairs"
        elif new_pairs > 0:
            message = f"Found {new_pairs} new trading pairs and {trades_found} trades"
        else:
            message = f"Synced {trades_found} trades from existing pairs"

        logger.info(
            f"Quick sync finished for {user_id} in {time.monotonic() - started:.1f}s: "
            f"{new_pairs} new pairs, {trades_found} trades"
        )
        return SyncResult(
            success=True,
            type="incremental",
            pairs_found=pair_count,
            trades_found=trades_found,
            new_pairs=new_pairs,
            orders_saved=orders_saved,
            positions_saved=positions_saved,
            message=message,
        )

    async def _persist(self, user_id: str, trades: List[Trade], rebuild_all: bool = False) -> Tuple[int, int]:
        """
        Aggregates trades into orders, folds in stored orders that no closed
        position claimed yet, rebuilds positions and saves both.

        With `rebuild_all` every stored position is dropped first, so a full
        sync replaces the user's positions instead of adding to them.
        Otherwise orders already sealed into a closed position stay there.
        """
        aggregator = PositionAggregator.create_for_strategy(self.settings.position_strategy)

        fresh_orders = TradeAggregator.aggregate(trades)
        if rebuild_all:
            released = await self.position_repo.delete_all(user_id)
            if released:
                logger.info(f"Replacing {released} positions for {user_id}")
        else:
            released = await self.position_repo.delete_partial(user_id)
            if released:
                logger.info(f"Rebuilding {released} partial positions for {user_id}")

        settled = await self.order_repo.find_linked_keys(user_id)
        if settled:
            kept = [o for o in fresh_orders if (o.exchange, o.order_id) not in settled]
            if len(kept) < len(fresh_orders):
                logger.info(f"Skipping {len(fresh_orders) - len(kept)} orders already in closed positions")
            fresh_orders = kept
        stored_orders = await self.order_repo.find_unlinked(user_id)
        orders = TradeAggregator.merge(stored_orders, fresh_orders)

        positions = aggregator.aggregate(orders)
        logger.info(
            f"Aggregated {len(trades)} trades into {len(fresh_orders)} new orders "
            f"and {len(positions)} positions ({len(stored_orders)} stored orders reused)"
        )

        saved_orders = await self.order_repo.save_all(orders, user_id)
        saved_positions = await self.position_repo.save_all(positions, user_id)
        return len(saved_orders), len(saved_positions)

    async def _record_progress(
        self,
        user_exchange: UserExchange,
        exchanges: List[str],
        cursors: Dict[str, Dict[str, int]]
    ) -> None:
        await user_exchange.update_last_sync_times(exchanges)
        for exchange in exchanges:
            if cursors.get(exchange):
                await self.state_store.update_trade_cursors(user_exchange.user_id, exchange, cursors[exchange])
