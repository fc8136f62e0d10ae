import logging
from typing import Dict, List, Optional

from tradesync.core.interfaces.datasource import ITradeSource
from tradesync.core.interfaces.repositories import ISyncStateStore

logger = logging.getLogger(__name__)


class PairDiscoveryService:
    """Finds the pairs a user has traded and records them in the state store."""

    def __init__(self, state_store: ISyncStateStore):
        self.state_store = state_store

    async def discover_all_pairs(self, user_id: str, sources: Dict[str, ITradeSource]) -> Dict[str, List[str]]:
        all_pairs: Dict[str, List[str]] = {}

        for exchange, source in sources.items():
            logger.info(f"Discovering pairs for {exchange}...")
            try:
                active = await source.fetch_trade_pairs()
            except Exception as e:
                logger.error(f"Pair discovery failed for {exchange}: {e}")
                all_pairs[exchange] = []
                continue

            pairs = sorted(active)
            all_pairs[exchange] = pairs
            await self.state_store.update_user_pairs(user_id, exchange, pairs)
            logger.info(f"Found {len(pairs)} active pairs for {exchange}")

        return all_pairs

    async def check_for_new_pairs(
        self,
        user_id: str,
        sources: Dict[str, ITradeSource],
        since: Optional[int] = None
    ) -> Dict[str, List[str]]:
        """
        Returns, per exchange, the pairs with activity since `since` that were
        not known before. Known pairs are kept in the store.
        """
        existing = await self.state_store.find_user_pairs(user_id)
        new_pairs: Dict[str, List[str]] = {}

        for exchange, source in sources.items():
            logger.info(f"Checking for new pairs on {exchange}...")
            known = set(existing.get(exchange, []))
            try:
                active = await source.fetch_trade_pairs(since)
            except Exception as e:
                logger.error(f"Pair discovery failed for {exchange}: {e}")
                new_pairs[exchange] = []
                continue

            found = sorted(active - known)
            new_pairs[exchange] = found
            if found:
                logger.info(f"Found {len(found)} new pairs for {exchange}")
                await self.state_store.update_user_pairs(user_id, exchange, sorted(known | active))
            else:
                logger.info(f"No new pairs found for {exchange}")

        return new_pairs
