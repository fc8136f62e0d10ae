import logging
import time
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


class TradeCache:
    """
    Holds one bulk-fetched trade set, partitioned by pair symbol.

    Scoped to a single fetch client. A lookup is a miss when the cache was
    never populated, has expired or was cleared; a pair that is simply absent
    from a fresh population has no trades. The generation counter moves on
    every populate and clear so callers can tell populations apart.
    """

    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, List[Dict[str, Any]]] = {}
        self._fetched_at: Optional[float] = None
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def fetched_at(self) -> Optional[float]:
        return self._fetched_at

    def is_valid(self) -> bool:
        if self._fetched_at is None:
            return False
        return self._clock() - self._fetched_at < self.ttl_seconds

    def populate(self, trades: List[Dict[str, Any]]) -> None:
        entries: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        for trade in trades:
            symbol = trade.get("symbol")
            if symbol:
                entries[symbol].append(trade)
        self._entries = dict(entries)
        self._fetched_at = self._clock()
        self._generation += 1
        logger.info(f"Trade cache populated: {len(trades)} trades across {len(self._entries)} pairs")

    def get(self, pair: str) -> Optional[List[Dict[str, Any]]]:
        """None on a miss, otherwise the pair's trades (possibly empty)."""
        if not self.is_valid():
            return None
        return list(self._entries.get(pair, []))

    def pairs(self) -> Optional[Set[str]]:
        if not self.is_valid():
            return None
        return set(self._entries)

    def clear(self) -> None:
        self._entries = {}
        self._fetched_at = None
        self._generation += 1
