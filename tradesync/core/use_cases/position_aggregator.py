"""
Reconstructs positions from a pair's time-ordered orders.

A position boundary is found by volume matching: once accumulated buy and sell
volume agree within a tolerance the group is sealed as a closed position.
A change of net direction (long to short or back) also seals the group, which
then counts as a partial position. The heuristics are tunable through
`AggregationConfig`; there is no canonical ground truth to match.
"""
import logging
from collections import defaultdict
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, Iterable, List, Optional, Tuple

from tradesync.core.entities.order import Order
from tradesync.core.entities.position import Position, PositionShape

logger = logging.getLogger(__name__)


class AggregationConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = "default"
    volume_threshold_percent: float = Field(5.0, ge=0)
    min_orders_for_position: int = Field(1, ge=1)
    allow_partial_positions: bool = True


PRESETS: Dict[str, AggregationConfig] = {
    "conservative": AggregationConfig(
        name="conservative", volume_threshold_percent=2, min_orders_for_position=2, allow_partial_positions=False
    ),
    "aggressive": AggregationConfig(
        name="aggressive", volume_threshold_percent=10, min_orders_for_position=1, allow_partial_positions=True
    ),
    "dca": AggregationConfig(
        name="dca", volume_threshold_percent=15, min_orders_for_position=3, allow_partial_positions=True
    ),
}


def _volumes(orders: Iterable[Order]) -> Tuple[float, float]:
    buy = sell = 0.0
    for o in orders:
        if o.side == "buy":
            buy += o.amount
        else:
            sell += o.amount
    return buy, sell


def classify_shape(orders: List[Order]) -> PositionShape:
    buys = sum(1 for o in orders if o.side == "buy")
    sells = len(orders) - buys
    if buys > 1 and sells > 1:
        return PositionShape.MIXED
    if buys > 1:
        return PositionShape.DCA
    if sells > 1:
        return PositionShape.SCALING
    return PositionShape.SIMPLE


class PositionAggregator:
    def __init__(self, config: Optional[AggregationConfig] = None):
        self.config = config or AggregationConfig()
        self.orphans_skipped = 0

    @classmethod
    def create_for_strategy(cls, strategy: str) -> "PositionAggregator":
        if strategy not in PRESETS:
            raise ValueError(f"Unknown position strategy '{strategy}'. Expected one of: {', '.join(PRESETS)}")
        return cls(PRESETS[strategy])

    def aggregate(self, orders: Iterable[Order]) -> List[Position]:
        by_pair: Dict[Tuple[str, str], List[Order]] = defaultdict(list)
        for order in orders:
            by_pair[(order.exchange, order.pair)].append(order)

        positions: List[Position] = []
        for key in sorted(by_pair):
            positions.extend(self._aggregate_pair(by_pair[key]))
        return positions

    def _aggregate_pair(self, orders: List[Order]) -> List[Position]:
        sorted_orders = sorted(orders, key=lambda o: (o.time, o.order_id))
        positions: List[Position] = []

        group: List[Order] = []
        buy_volume = sell_volume = 0.0

        for order in sorted_orders:
            if not group and order.is_closing:
                # the opening side predates the fetched history
                self.orphans_skipped += 1
                logger.info(f"Skipping orphaned closing order {order.order_id} on {order.exchange} {order.pair}")
                continue

            group.append(order)
            if order.side == "buy":
                buy_volume += order.amount
            else:
                sell_volume += order.amount

            boundary = self._detect_boundary(buy_volume, sell_volume, group)
            if boundary is None:
                continue

            position = self._build_position(group, balanced=(boundary == "balanced"))
            if position is not None:
                positions.append(position)
            group = []
            buy_volume = sell_volume = 0.0

        if group and len(group) >= self.config.min_orders_for_position:
            position = self._build_position(group, balanced=False)
            if position is not None:
                positions.append(position)

        return positions

    def _is_balanced(self, buy_volume: float, sell_volume: float) -> bool:
        total = buy_volume + sell_volume
        if buy_volume <= 0 or sell_volume <= 0:
            return False
        return abs(buy_volume - sell_volume) / total * 100 <= self.config.volume_threshold_percent

    def _detect_boundary(self, buy_volume: float, sell_volume: float, group: List[Order]) -> Optional[str]:
        if len(group) < self.config.min_orders_for_position:
            return None

        if self._is_balanced(buy_volume, sell_volume):
            return "balanced"

        if len(group) >= 2:
            last = group[-1]
            prior_buy = buy_volume - last.amount if last.side == "buy" else buy_volume
            prior_sell = sell_volume - last.amount if last.side == "sell" else sell_volume
            was_long, was_short = prior_buy > prior_sell, prior_sell > prior_buy
            now_long, now_short = buy_volume > sell_volume, sell_volume > buy_volume
            if (was_long and now_short) or (was_short and now_long):
                return "flip"

        return None

    def _build_position(self, orders: List[Order], balanced: bool) -> Optional[Position]:
        if not balanced and not self.config.allow_partial_positions:
            logger.debug(f"Discarding unbalanced group of {len(orders)} orders on {orders[0].pair}")
            return None

        buy_orders = [o for o in orders if o.side == "buy"]
        sell_orders = [o for o in orders if o.side == "sell"]
        buy_volume = sum(o.amount for o in buy_orders)
        sell_volume = sum(o.amount for o in sell_orders)
        buy_cost = sum(o.total_cost for o in buy_orders)
        sell_cost = sum(o.total_cost for o in sell_orders)

        first, last = orders[0], orders[-1]

        if balanced:
            quantity = min(buy_volume, sell_volume)
            profit_loss = sell_cost - buy_cost
        else:
            # exchange-reported realized PnL only
            quantity = max(buy_volume, sell_volume)
            profit_loss = sum(o.realized_pnl for o in orders)

        return Position(
            pair=first.pair,
            exchange=first.exchange,
            direction="long" if first.side == "buy" else "short",
            status="closed" if balanced else "partial",
            shape=classify_shape(orders),
            quantity=quantity,
            buy_cost=buy_cost,
            sell_cost=sell_cost,
            buy_volume=buy_volume,
            sell_volume=sell_volume,
            profit_loss=profit_loss,
            total_fee=sum(o.fee for o in orders),
            open_time=first.time,
            close_time=last.time,
            orders=list(orders),
        )
