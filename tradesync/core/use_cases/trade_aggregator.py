from typing import Dict, Iterable, List, Tuple
from tradesync.core.entities.order import Order
from tradesync.core.entities.trade import Trade


class TradeAggregator:
    @staticmethod
    def aggregate(trades: Iterable[Trade]) -> List[Order]:
        """
        Groups fills into orders by (exchange, originating order id).

        Fills are folded in time order so each order's trade list is
        chronological. Returned orders are sorted by their earliest fill.
        """
        orders: Dict[Tuple[str, str], Order] = {}

        for trade in sorted(trades, key=lambda t: (t.timestamp, t.trade_id)):
            if not trade.order_id:
                raise ValueError(f"Trade {trade.trade_id} on {trade.exchange} has no order id")

            key = (trade.exchange, trade.order_id)
            order = orders.get(key)
            if order is None:
                orders[key] = Order.from_trade(trade)
            else:
                order.add_trade(trade)

        return sorted(orders.values(), key=lambda o: (o.time, o.order_id))

    @staticmethod
    def merge(existing: Iterable[Order], fresh: Iterable[Order]) -> List[Order]:
        """
        Combines stored orders with newly aggregated ones. Fills of an order
        already stored are folded into it, skipping fills it already holds.
        """
        merged: Dict[Tuple[str, str], Order] = {(o.exchange, o.order_id): o for o in existing}

        for order in fresh:
            key = (order.exchange, order.order_id)
            stored = merged.get(key)
            if stored is None:
                merged[key] = order
                continue
            known = {t.trade_id for t in stored.trades}
            for trade in order.trades:
                if trade.trade_id not in known:
                    stored.add_trade(trade)

        return sorted(merged.values(), key=lambda o: (o.time, o.order_id))
