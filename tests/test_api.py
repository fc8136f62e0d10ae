"""
Tests for the HTTP API:
- /health
- /v1/exchanges/capabilities
- /v1/sync
- /v1/positions/preview
"""
import pytest
from httpx import AsyncClient

from tradesync.api.main import app, get_sync_service
from tradesync.core.entities.sync import SyncResult


class StubSyncService:
    def __init__(self, result: SyncResult):
        self.result = result
        self.calls = []

    async def sync_trades(self, user_id, encrypted_keys, mode=None, since=None):
        self.calls.append((user_id, encrypted_keys, mode, since))
        return self.result


def order_payload(order_id, side, amount, price, time):
    return {
        "order_id": order_id,
        "pair": "BTC/USDT",
        "side": side,
        "exchange": "binance",
        "time": time,
        "amount": amount,
        "average_price": price,
        "total_cost": amount * price,
        "highest_price": price,
        "lowest_price": price,
    }


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/health")

    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_capabilities_lists_enabled_exchanges(client: AsyncClient):
    resp = await client.get("/v1/exchanges/capabilities")
    assert resp.status_code == 200

    data = {entry["id"]: entry for entry in resp.json()}
    assert data["hyperliquid"]["bulk_fetch"] is True
    assert data["kraken"]["rate_limit_ms"] == 1000
    assert data["binance"]["max_trades_per_call"] == 1000


@pytest.mark.asyncio
async def test_sync_without_database_is_unavailable(client: AsyncClient):
    app.dependency_overrides[get_sync_service] = lambda: None

    resp = await client.post("/v1/sync", json={"user_id": "u1", "encrypted_keys": "abc"})

    assert resp.status_code == 503


@pytest.mark.asyncio
async def test_sync_returns_camel_case_result(client: AsyncClient):
    service = StubSyncService(SyncResult(
        success=True, type="incremental", pairs_found=3, trades_found=12, new_pairs=1, message="Found 1 new trading pairs and 12 trades"
    ))
    app.dependency_overrides[get_sync_service] = lambda: service

    resp = await client.post("/v1/sync", json={"user_id": "u1", "encrypted_keys": "abc", "mode": "incremental", "since": 1000})

    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["pairsFound"] == 3
    assert data["tradesFound"] == 12
    assert data["newPairs"] == 1
    assert service.calls[0][3] == 1000


@pytest.mark.asyncio
async def test_sync_failure_is_a_result_not_an_error(client: AsyncClient):
    service = StubSyncService(SyncResult.failure("initial", "Failed to decrypt exchange credentials"))
    app.dependency_overrides[get_sync_service] = lambda: service

    resp = await client.post("/v1/sync", json={"user_id": "u1", "encrypted_keys": "abc"})

    assert resp.status_code == 200
    assert resp.json()["success"] is False


@pytest.mark.asyncio
async def test_sync_rejects_empty_user(client: AsyncClient):
    app.dependency_overrides[get_sync_service] = lambda: None

    resp = await client.post("/v1/sync", json={"user_id": "", "encrypted_keys": "abc"})

    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_preview_positions_from_orders(client: AsyncClient):
    payload = {
        "strategy": "conservative",
        "orders": [
            order_payload("o1", "buy", 143.1, 10.0, 1000),
            order_payload("o2", "buy", 428.9, 9.0, 2000),
            order_payload("o3", "sell", 572.0, 11.0, 3000),
        ],
    }

    resp = await client.post("/v1/positions/preview", json=payload)

    assert resp.status_code == 200
    positions = resp.json()
    assert len(positions) == 1
    assert positions[0]["quantity"] == pytest.approx(572.0)
    assert positions[0]["shape"] == "dca"


@pytest.mark.asyncio
async def test_preview_positions_from_trades(client: AsyncClient):
    trade = {"pair": "BTC/USDT", "price": 100.0, "amount": 1.0, "cost": 100.0, "exchange": "binance"}
    payload = {
        "strategy": "aggressive",
        "trades": [
            {**trade, "trade_id": "t1", "order_id": "o1", "side": "buy", "timestamp": 1000},
            {**trade, "trade_id": "t2", "order_id": "o1", "side": "buy", "timestamp": 1100},
        ],
    }

    resp = await client.post("/v1/positions/preview", json=payload)

    assert resp.status_code == 200
    positions = resp.json()
    assert positions[0]["status"] == "partial"
    assert positions[0]["quantity"] == 2.0


@pytest.mark.asyncio
async def test_preview_unknown_strategy(client: AsyncClient):
    resp = await client.post("/v1/positions/preview", json={"strategy": "positionByDirection"})

    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_preview_trade_without_order_id(client: AsyncClient):
    trade = {
        "trade_id": "t1", "order_id": "", "pair": "BTC/USDT", "side": "buy", "price": 1.0,
        "amount": 1.0, "cost": 1.0, "exchange": "binance", "timestamp": 1,
    }

    resp = await client.post("/v1/positions/preview", json={"strategy": "aggressive", "trades": [trade]})

    assert resp.status_code == 422
