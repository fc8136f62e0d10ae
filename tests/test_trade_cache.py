"""
Tests for the TTL-bound bulk trade cache.
"""
from tradesync.infrastructure.cache.trade_cache import TradeCache
from helpers import raw_trade


def test_empty_cache_is_a_miss(clock):
    cache = TradeCache(ttl_seconds=60, clock=clock)

    assert not cache.is_valid()
    assert cache.get("BTC/USDT") is None
    assert cache.pairs() is None


def test_populate_partitions_by_symbol(clock):
    cache = TradeCache(ttl_seconds=60, clock=clock)
    cache.populate([
        raw_trade(1, symbol="BTC/USDT"),
        raw_trade(2, symbol="ETH/USDT"),
        raw_trade(3, symbol="BTC/USDT"),
    ])

    assert [t["id"] for t in cache.get("BTC/USDT")] == ["1", "3"]
    assert cache.pairs() == {"BTC/USDT", "ETH/USDT"}
    assert cache.fetched_at == clock.now


def test_absent_pair_in_fresh_cache_has_no_trades(clock):
    cache = TradeCache(ttl_seconds=60, clock=clock)
    cache.populate([raw_trade(1, symbol="BTC/USDT")])

    assert cache.get("DOGE/USDT") == []


def test_entries_expire_after_ttl(clock):
    cache = TradeCache(ttl_seconds=60, clock=clock)
    cache.populate([raw_trade(1)])

    clock.advance(59)
    assert cache.is_valid()
    clock.advance(1)
    assert not cache.is_valid()
    assert cache.get("BTC/USDT") is None


def test_generation_moves_on_populate_and_clear(clock):
    cache = TradeCache(clock=clock)
    assert cache.generation == 0

    cache.populate([raw_trade(1)])
    assert cache.generation == 1

    cache.clear()
    assert cache.generation == 2
    assert cache.get("BTC/USDT") is None
    assert cache.fetched_at is None


def test_get_returns_a_copy(clock):
    cache = TradeCache(clock=clock)
    cache.populate([raw_trade(1)])

    cache.get("BTC/USDT").clear()

    assert len(cache.get("BTC/USDT")) == 1
