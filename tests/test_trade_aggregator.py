"""
Tests for grouping fills into orders.
"""
import itertools

import pytest

from tradesync.core.use_cases.trade_aggregator import TradeAggregator
from helpers import make_trade


def test_fills_of_one_order_are_folded():
    """Two fills sharing an order id become one order with weighted averages."""
    trades = [
        make_trade("t1", "o1", price=100.0, amount=1.0, timestamp=1000, fee=0.1),
        make_trade("t2", "o1", price=110.0, amount=3.0, timestamp=2000, fee=0.2),
    ]

    orders = TradeAggregator.aggregate(trades)

    assert len(orders) == 1
    order = orders[0]
    assert order.amount == pytest.approx(4.0)
    assert order.total_cost == pytest.approx(430.0)
    assert order.average_price == pytest.approx(107.5)
    assert order.fee == pytest.approx(0.3)
    assert order.highest_price == 110.0
    assert order.lowest_price == 100.0
    assert order.time == 1000
    assert [t.trade_id for t in order.trades] == ["t1", "t2"]


def test_every_trade_lands_in_exactly_one_order():
    trades = [
        make_trade("t1", "o1", timestamp=1000),
        make_trade("t2", "o2", side="sell", timestamp=1500),
        make_trade("t3", "o1", timestamp=1200),
        make_trade("t4", "o3", timestamp=900),
    ]

    orders = TradeAggregator.aggregate(trades)

    flattened = sorted(t.trade_id for o in orders for t in o.trades)
    assert flattened == ["t1", "t2", "t3", "t4"]
    assert [o.order_id for o in orders] == ["o3", "o1", "o2"]


def test_average_price_is_independent_of_fill_order():
    """avg * amount stays equal to the total cost for any permutation of fills."""
    trades = [
        make_trade("t1", "o1", price=101.5, amount=0.3, timestamp=1000),
        make_trade("t2", "o1", price=99.25, amount=1.7, timestamp=1000),
        make_trade("t3", "o1", price=100.0, amount=2.0, timestamp=1000),
    ]

    for permutation in itertools.permutations(trades):
        order = TradeAggregator.aggregate(list(permutation))[0]
        assert order.average_price * order.amount == pytest.approx(order.total_cost)
        assert order.total_cost == pytest.approx(101.5 * 0.3 + 99.25 * 1.7 + 200.0)


def test_same_order_id_on_different_exchanges_stays_separate():
    trades = [
        make_trade("t1", "o1", exchange="binance"),
        make_trade("t2", "o1", exchange="kraken"),
    ]

    orders = TradeAggregator.aggregate(trades)

    assert len(orders) == 2


def test_trade_without_order_id_is_rejected():
    with pytest.raises(ValueError):
        TradeAggregator.aggregate([make_trade("t1", "")])


def test_realized_pnl_is_summed_across_fills():
    trades = [
        make_trade("t1", "o1", side="sell", timestamp=1000, realized_pnl=2.5, direction="Close Long"),
        make_trade("t2", "o1", side="sell", timestamp=1001, realized_pnl=1.5),
    ]

    order = TradeAggregator.aggregate(trades)[0]

    assert order.realized_pnl == pytest.approx(4.0)
    assert order.direction == "Close Long"
    assert order.is_closing


def test_merge_adds_new_fills_to_stored_orders():
    stored = TradeAggregator.aggregate([make_trade("t1", "o1", price=100.0, amount=1.0, timestamp=1000)])
    fresh = TradeAggregator.aggregate([
        make_trade("t1", "o1", price=100.0, amount=1.0, timestamp=1000),
        make_trade("t2", "o1", price=120.0, amount=1.0, timestamp=2000),
        make_trade("t3", "o2", side="sell", timestamp=3000),
    ])

    merged = TradeAggregator.merge(stored, fresh)

    assert [o.order_id for o in merged] == ["o1", "o2"]
    assert merged[0].amount == pytest.approx(2.0)
    assert merged[0].average_price == pytest.approx(110.0)
    assert len(merged[0].trades) == 2
