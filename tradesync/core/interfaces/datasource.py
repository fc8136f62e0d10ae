from abc import ABC, abstractmethod
from typing import Dict, Iterable, Optional, Set
from tradesync.core.entities.trade import Trade


class ITradeSource(ABC):
    """Per-exchange source of validated account trades."""

    exchange_id: str

    @abstractmethod
    async def fetch_trades(self, pair: str, since: Optional[int] = None) -> Dict[str, Trade]:
        """
        Returns the account's trades on `pair` keyed by trade id.
        Only trades strictly newer than `since` (epoch ms) are returned.
        """
        pass

    @abstractmethod
    async def fetch_trade_pairs(
        self,
        since: Optional[int] = None,
        candidates: Optional[Iterable[str]] = None
    ) -> Set[str]:
        """Returns every pair symbol the account has traded."""
        pass

    @abstractmethod
    def clear_cache(self) -> None:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass
