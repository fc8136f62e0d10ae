"""In-memory repositories for tests and local runs without a database."""
import itertools
import logging
import time
from typing import Callable, Dict, List, Optional, Set, Tuple

from tradesync.core.entities.order import Order
from tradesync.core.entities.position import Position
from tradesync.core.errors import InvalidNumericValue
from tradesync.core.interfaces.repositories import IOrderRepository, IPositionRepository, ISyncStateStore
from tradesync.infrastructure.persistence.coercion import to_decimal, to_epoch_ms

logger = logging.getLogger(__name__)


def normalize_symbol(symbol: str) -> str:
    """'SOL/USDC:USDC' -> 'SOL/USDC'"""
    return symbol.split(":")[0]


class InMemoryOrderRepository(IOrderRepository):
    def __init__(self):
        self._ids = itertools.count(1)
        self._pair_ids = itertools.count(1)
        self.pairs: Dict[str, int] = {}
        # (user_id, exchange, order_id) -> Order
        self.orders: Dict[Tuple[str, str, str], Order] = {}

    def ensure_pair(self, symbol: str) -> int:
        normalized = normalize_symbol(symbol)
        if normalized not in self.pairs:
            self.pairs[normalized] = next(self._pair_ids)
        return self.pairs[normalized]

    async def save_all(self, orders: List[Order], user_id: str) -> List[Order]:
        saved = []
        for order in orders:
            try:
                to_decimal(order.amount, "amount")
                to_decimal(order.average_price, "average_price")
                to_decimal(order.total_cost, "total_cost")
                to_epoch_ms(order.time, "time")
            except InvalidNumericValue as e:
                logger.error(f"Failed to save order {order.order_id}: {e}")
                continue

            self.ensure_pair(order.pair)
            key = (user_id, order.exchange, order.order_id)
            existing = self.orders.get(key)
            if order.id is None:
                order.id = existing.id if existing else next(self._ids)
            if existing is not None and order.position_id is None:
                order.position_id = existing.position_id
            self.orders[key] = order
            saved.append(order)
        return saved

    async def find_unlinked(self, user_id: str) -> List[Order]:
        return [
            o.model_copy(deep=True)
            for (uid, _, _), o in self.orders.items()
            if uid == user_id and o.position_id is None
        ]

    async def find_linked_keys(self, user_id: str) -> Set[Tuple[str, str]]:
        return {
            (exchange, order_id)
            for (uid, exchange, order_id), o in self.orders.items()
            if uid == user_id and o.position_id is not None
        }

    def link(self, user_id: str, order: Order, position_id: Optional[int]) -> None:
        key = (user_id, order.exchange, order.order_id)
        if key in self.orders:
            self.orders[key].position_id = position_id
        order.position_id = position_id


class InMemoryPositionRepository(IPositionRepository):
    def __init__(self, order_repo: InMemoryOrderRepository):
        self.order_repo = order_repo
        self._ids = itertools.count(1)
        self.positions: Dict[int, Tuple[str, Position]] = {}

    async def save_all(self, positions: List[Position], user_id: str) -> List[Position]:
        saved = []
        for position in positions:
            try:
                to_decimal(position.quantity, "quantity")
                to_decimal(position.profit_loss, "profit_loss")
            except InvalidNumericValue as e:
                logger.error(f"Failed to save position on {position.pair}: {e}")
                continue

            position_id = next(self._ids)
            stored = position.model_copy(update={"id": position_id})
            self.positions[position_id] = (user_id, stored)
            for order in stored.orders:
                self.order_repo.link(user_id, order, position_id)
            saved.append(stored)
        return saved

    async def delete_partial(self, user_id: str) -> int:
        return self._delete(user_id, lambda p: p.status == "partial")

    async def delete_all(self, user_id: str) -> int:
        return self._delete(user_id, lambda p: True)

    def _delete(self, user_id: str, matches: Callable[[Position], bool]) -> int:
        doomed = [
            pid for pid, (uid, p) in self.positions.items()
            if uid == user_id and matches(p)
        ]
        for pid in doomed:
            _, position = self.positions.pop(pid)
            for order in position.orders:
                self.order_repo.link(user_id, order, None)
        return len(doomed)

    def for_user(self, user_id: str) -> List[Position]:
        return [p for uid, p in self.positions.values() if uid == user_id]


class InMemorySyncStateStore(ISyncStateStore):
    def __init__(self, clock_ms: Callable[[], int] = lambda: int(time.time() * 1000)):
        self.clock_ms = clock_ms
        self.pairs: Dict[str, Dict[str, List[str]]] = {}
        self.last_sync: Dict[str, Dict[str, int]] = {}
        self.cursors: Dict[str, Dict[str, Dict[str, int]]] = {}

    async def find_user_pairs(self, user_id: str) -> Dict[str, List[str]]:
        return {ex: list(p) for ex, p in self.pairs.get(user_id, {}).items()}

    async def update_user_pairs(self, user_id: str, exchange: str, pairs: List[str]) -> None:
        self.pairs.setdefault(user_id, {})[exchange] = sorted(set(pairs))

    async def get_last_sync_times(self, user_id: str) -> Dict[str, int]:
        return dict(self.last_sync.get(user_id, {}))

    async def update_last_sync_times(self, user_id: str, exchanges: List[str]) -> None:
        now = self.clock_ms()
        user_times = self.last_sync.setdefault(user_id, {})
        for exchange in exchanges:
            user_times[exchange] = now

    async def get_most_recent_trade_time(self, user_id: str, exchange: str, pair: str) -> Optional[int]:
        return self.cursors.get(user_id, {}).get(exchange, {}).get(pair)

    async def update_trade_cursors(self, user_id: str, exchange: str, cursors: Dict[str, int]) -> None:
        exchange_cursors = self.cursors.setdefault(user_id, {}).setdefault(exchange, {})
        for pair, ts in cursors.items():
            exchange_cursors[pair] = max(ts, exchange_cursors.get(pair, ts))
