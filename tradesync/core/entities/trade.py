from pydantic import BaseModel, ConfigDict
from typing import Literal, Optional

Side = Literal["buy", "sell"]


class Trade(BaseModel):
    """
    One fill as reported by an exchange, after validation.
    Immutable; identified by (exchange, trade_id).
    """
    model_config = ConfigDict(frozen=True)

    trade_id: str
    order_id: str
    pair: str
    side: Side
    price: float
    amount: float
    cost: float
    fee: float = 0.0
    exchange: str
    timestamp: int  # epoch ms
    order_type: Optional[str] = None
    realized_pnl: Optional[float] = None
    margin: Optional[float] = None
    leverage: Optional[float] = None
    # Hyperliquid "dir" field, e.g. "Open Long", "Close Short"
    direction: Optional[str] = None
    transaction_id: Optional[str] = None

    @property
    def key(self) -> tuple:
        return (self.exchange, self.trade_id)
