"""
Tests for traded-pair discovery.
"""
import pytest

from tradesync.core.use_cases.pair_discovery import PairDiscoveryService
from tradesync.infrastructure.gateways.local_mock import MockTradingClient
from tradesync.infrastructure.gateways.trade_fetch_client import TradeFetchClient
from helpers import raw_trade


def source(exchange_id, trades, **kwargs):
    return TradeFetchClient(MockTradingClient(exchange_id, trades=trades, **kwargs), delay_ms=0)


@pytest.mark.asyncio
async def test_discover_all_pairs_stores_active_pairs(state_store):
    sources = {
        "bybit": source("bybit", [raw_trade(1, symbol="BTC/USDT"), raw_trade(2, symbol="ETH/USDT")]),
        "okx": source("okx", [raw_trade(3, symbol="SOL/USDT")]),
    }

    pairs = await PairDiscoveryService(state_store).discover_all_pairs("u1", sources)

    assert pairs == {"bybit": ["BTC/USDT", "ETH/USDT"], "okx": ["SOL/USDT"]}
    assert await state_store.find_user_pairs("u1") == pairs


@pytest.mark.asyncio
async def test_discovery_failure_is_not_stored(state_store):
    sources = {"hyperliquid": source("hyperliquid", [], fail_all=True)}

    pairs = await PairDiscoveryService(state_store).discover_all_pairs("u1", sources)

    assert pairs == {"hyperliquid": []}
    assert await state_store.find_user_pairs("u1") == {}


@pytest.mark.asyncio
async def test_check_for_new_pairs_keeps_known_pairs(state_store):
    await state_store.update_user_pairs("u1", "bybit", ["BTC/USDT", "XRP/USDT"])
    sources = {
        "bybit": source("bybit", [
            raw_trade(1, symbol="BTC/USDT", timestamp=5000),
            raw_trade(2, symbol="ETH/USDT", timestamp=6000),
        ]),
    }

    new_pairs = await PairDiscoveryService(state_store).check_for_new_pairs("u1", sources, since=1000)

    assert new_pairs == {"bybit": ["ETH/USDT"]}
    assert (await state_store.find_user_pairs("u1"))["bybit"] == ["BTC/USDT", "ETH/USDT", "XRP/USDT"]


@pytest.mark.asyncio
async def test_check_for_new_pairs_respects_since(state_store):
    await state_store.update_user_pairs("u1", "bybit", ["BTC/USDT"])
    sources = {"bybit": source("bybit", [raw_trade(2, symbol="ETH/USDT", timestamp=500)])}

    new_pairs = await PairDiscoveryService(state_store).check_for_new_pairs("u1", sources, since=1000)

    assert new_pairs == {"bybit": []}
    assert (await state_store.find_user_pairs("u1"))["bybit"] == ["BTC/USDT"]
