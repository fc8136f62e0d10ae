from enum import Enum
from pydantic import BaseModel, ConfigDict
from typing import List, Literal, Optional

from tradesync.core.entities.order import Order


class PositionShape(str, Enum):
    SIMPLE = "simple"
    DCA = "dca"  # more than one buy
    SCALING = "scaling"  # more than one sell
    MIXED = "mixed"


class Position(BaseModel):
    """
    A bounded run of orders on one pair forming one long/short cycle.
    Built once from a sealed order group; recomputation replaces it.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    pair: str
    exchange: str
    direction: Literal["long", "short"]
    status: Literal["closed", "partial"]
    shape: PositionShape
    quantity: float  # peak size, never the sum of order amounts
    buy_cost: float
    sell_cost: float
    buy_volume: float
    sell_volume: float
    profit_loss: float
    total_fee: float
    open_time: int
    close_time: int
    orders: List[Order]

    @property
    def duration(self) -> int:
        return self.close_time - self.open_time

    @property
    def average_entry_price(self) -> float:
        if self.direction == "long":
            return self.buy_cost / self.buy_volume if self.buy_volume > 0 else 0.0
        return self.sell_cost / self.sell_volume if self.sell_volume > 0 else 0.0

    @property
    def average_exit_price(self) -> float:
        if self.direction == "long":
            return self.sell_cost / self.sell_volume if self.sell_volume > 0 else 0.0
        return self.buy_cost / self.buy_volume if self.buy_volume > 0 else 0.0


def format_duration(duration_ms: int) -> str:
    minutes = duration_ms // 60_000
    hours = minutes // 60
    days = hours // 24
    if days > 0:
        return f"{days}d {hours % 24}h"
    if hours > 0:
        return f"{hours}h {minutes % 60}m"
    return f"{minutes}m"
