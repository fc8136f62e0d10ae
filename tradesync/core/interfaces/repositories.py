from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Set, Tuple
from tradesync.core.entities.order import Order
from tradesync.core.entities.position import Position


class IOrderRepository(ABC):
    @abstractmethod
    async def save_all(self, orders: List[Order], user_id: str) -> List[Order]:
        """
        Persists orders and returns the ones that were saved, with ids assigned.
        A failing order is logged and left out of the result.
        """
        pass

    @abstractmethod
    async def find_unlinked(self, user_id: str) -> List[Order]:
        """Orders saved earlier that no position claimed yet."""
        pass

    @abstractmethod
    async def find_linked_keys(self, user_id: str) -> Set[Tuple[str, str]]:
        """(exchange, order_id) of every stored order that belongs to a position."""
        pass


class IPositionRepository(ABC):
    @abstractmethod
    async def save_all(self, positions: List[Position], user_id: str) -> List[Position]:
        """Persists positions and links their member orders to them."""
        pass

    @abstractmethod
    async def delete_partial(self, user_id: str) -> int:
        """
        Drops the user's partial positions and unlinks their orders, so the
        next aggregation can rebuild them. Returns how many were removed.
        """
        pass

    @abstractmethod
    async def delete_all(self, user_id: str) -> int:
        """Drops every position of the user and unlinks all their orders."""
        pass


class ISyncStateStore(ABC):
    """Per-user sync bookkeeping: known pairs, last sync times, per-pair cursors."""

    @abstractmethod
    async def find_user_pairs(self, user_id: str) -> Dict[str, List[str]]:
        pass

    @abstractmethod
    async def update_user_pairs(self, user_id: str, exchange: str, pairs: List[str]) -> None:
        pass

    @abstractmethod
    async def get_last_sync_times(self, user_id: str) -> Dict[str, int]:
        pass

    @abstractmethod
    async def update_last_sync_times(self, user_id: str, exchanges: List[str]) -> None:
        pass

    @abstractmethod
    async def get_most_recent_trade_time(self, user_id: str, exchange: str, pair: str) -> Optional[int]:
        pass

    @abstractmethod
    async def update_trade_cursors(self, user_id: str, exchange: str, cursors: Dict[str, int]) -> None:
        pass
