from pydantic import BaseModel, Field
from typing import List, Optional

from tradesync.core.entities.trade import Side, Trade


class Order(BaseModel):
    """
    Aggregation of the fills that share one originating order id.
    Not a resting order: only filled volume is represented.
    """
    id: Optional[int] = None  # assigned by the repository
    order_id: str
    pair: str
    side: Side
    exchange: str
    time: int  # earliest fill, epoch ms
    amount: float
    average_price: float
    total_cost: float
    fee: float = 0.0
    highest_price: float
    lowest_price: float
    realized_pnl: float = 0.0
    direction: Optional[str] = None
    trades: List[Trade] = Field(default_factory=list)
    position_id: Optional[int] = None

    @classmethod
    def from_trade(cls, trade: Trade) -> "Order":
        return cls(
            order_id=trade.order_id,
            pair=trade.pair,
            side=trade.side,
            exchange=trade.exchange,
            time=trade.timestamp,
            amount=trade.amount,
            average_price=trade.price,
            total_cost=trade.price * trade.amount,
            fee=trade.fee,
            highest_price=trade.price,
            lowest_price=trade.price,
            realized_pnl=trade.realized_pnl or 0.0,
            direction=trade.direction,
            trades=[trade],
        )

    def add_trade(self, trade: Trade) -> None:
        """Fold another fill of the same order into the running totals."""
        self.trades.append(trade)
        self.amount += trade.amount
        self.total_cost += trade.price * trade.amount
        self.average_price = self.total_cost / self.amount
        self.fee += trade.fee
        self.realized_pnl += trade.realized_pnl or 0.0
        self.highest_price = max(self.highest_price, trade.price)
        self.lowest_price = min(self.lowest_price, trade.price)
        self.time = min(self.time, trade.timestamp)
        if self.direction is None:
            self.direction = trade.direction

    @property
    def is_closing(self) -> bool:
        """True when the exchange tagged this order as closing an existing position."""
        return bool(self.direction) and self.direction.lower().startswith("close")
