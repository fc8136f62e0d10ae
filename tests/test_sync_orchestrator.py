"""
End-to-end sync tests against mock exchanges and in-memory storage.
"""
import pytest

from tradesync.config import Settings
from tradesync.core.entities.exchange import ExchangeCredentials
from tradesync.core.entities.sync import SyncMode, SyncResult
from tradesync.core.errors import CredentialError
from tradesync.core.use_cases.sync_orchestrator import TradeSyncService
from tradesync.infrastructure.credentials.base64_decryptor import Base64JsonDecryptor
from tradesync.infrastructure.gateways.local_mock import MockTradingClient
from tradesync.infrastructure.gateways.trade_fetch_client import TradeFetchClient
from helpers import raw_trade

BYBIT_KEYS = Base64JsonDecryptor.encode([ExchangeCredentials(exchange="bybit", api_key="k", api_secret="s")])


@pytest.fixture
def bybit():
    return MockTradingClient("bybit", trades=[
        raw_trade(1, symbol="BTC/USDT", side="buy", price=100.0, timestamp=1000),
        raw_trade(2, symbol="BTC/USDT", side="sell", price=110.0, timestamp=2000),
    ])


def make_service(clients, state_store, order_repo, position_repo, **settings):
    def source_factory(credentials, _settings):
        if credentials.exchange not in clients:
            raise CredentialError(f"Missing credentials for {credentials.exchange}", exchange=credentials.exchange)
        return TradeFetchClient(clients[credentials.exchange], delay_ms=0)

    return TradeSyncService(
        decryptor=Base64JsonDecryptor(),
        state_store=state_store,
        order_repo=order_repo,
        position_repo=position_repo,
        source_factory=source_factory,
        settings=Settings(**settings),
    )


@pytest.mark.asyncio
async def test_first_sync_is_full(bybit, state_store, order_repo, position_repo):
    service = make_service({"bybit": bybit}, state_store, order_repo, position_repo)

    result = await service.sync_trades("u1", BYBIT_KEYS)

    assert result.success
    assert result.type == "initial"
    assert result.pairs_found == 1
    assert result.trades_found == 2
    assert result.orders_saved == 2
    assert result.positions_saved == 1
    assert result.message == "Successfully discovered 1 trading pairs and 2 trades"

    assert state_store.pairs["u1"] == {"bybit": ["BTC/USDT"]}
    assert state_store.last_sync["u1"] == {"bybit": 1_800_000_000_000}
    assert state_store.cursors["u1"]["bybit"] == {"BTC/USDT": 2000}

    position = position_repo.for_user("u1")[0]
    assert position.status == "closed"
    assert position.profit_loss == pytest.approx(10.0)
    assert all(o.position_id == position.id for o in order_repo.orders.values())
    assert bybit.closed


@pytest.mark.asyncio
async def test_second_sync_is_incremental(bybit, state_store, order_repo, position_repo):
    service = make_service({"bybit": bybit}, state_store, order_repo, position_repo)
    await service.sync_trades("u1", BYBIT_KEYS)

    assert await service.detect_sync_mode("u1") == SyncMode.INCREMENTAL
    result = await service.sync_trades("u1", BYBIT_KEYS)

    assert result.success
    assert result.type == "incremental"
    assert result.trades_found == 0
    assert result.new_pairs == 0
    assert result.message == "Synced 0 trades from existing pairs"
    # resumes from the newest stored trade
    assert bybit.trade_calls[-1] == {"symbol": "BTC/USDT", "since": 2000, "limit": 200}


@pytest.mark.asyncio
async def test_incremental_sync_finds_new_pairs(bybit, state_store, order_repo, position_repo):
    service = make_service({"bybit": bybit}, state_store, order_repo, position_repo)
    await service.sync_trades("u1", BYBIT_KEYS)
    bybit.trades.append(raw_trade(3, symbol="ETH/USDT", timestamp=5000))

    result = await service.sync_trades("u1", BYBIT_KEYS, since=4000)

    assert result.new_pairs == 1
    assert result.pairs_found == 2
    assert result.trades_found == 1
    assert result.message == "Found 1 new trading pairs and 1 trades"
    assert state_store.pairs["u1"]["bybit"] == ["BTC/USDT", "ETH/USDT"]


@pytest.mark.asyncio
async def test_many_known_pairs_skip_rediscovery(bybit, state_store, order_repo, position_repo):
    service = make_service({"bybit": bybit}, state_store, order_repo, position_repo, discovery_threshold=1)
    await service.sync_trades("u1", BYBIT_KEYS)
    markets_loaded = bybit.calls["load_markets"]

    result = await service.sync_trades("u1", BYBIT_KEYS)

    assert bybit.calls["load_markets"] == markets_loaded
    assert result.message == "Quick sync completed: 0 trades from 1 known pairs"


@pytest.mark.asyncio
async def test_unlinked_orders_close_on_a_later_sync(state_store, order_repo, position_repo):
    """An opening order stored without a position is matched by a closing order fetched later."""
    bybit = MockTradingClient("bybit", trades=[raw_trade(1, symbol="BTC/USDT", side="buy", timestamp=1000)])
    service = make_service({"bybit": bybit}, state_store, order_repo, position_repo)

    first = await service.sync_trades("u1", BYBIT_KEYS)
    assert first.orders_saved == 1
    assert first.positions_saved == 0

    bybit.trades.append(raw_trade(2, symbol="BTC/USDT", side="sell", price=120.0, timestamp=3000))
    second = await service.sync_trades("u1", BYBIT_KEYS)

    assert second.trades_found == 1
    assert second.positions_saved == 1
    position = position_repo.for_user("u1")[0]
    assert [o.order_id for o in position.orders] == ["o1", "o2"]
    assert position.profit_loss == pytest.approx(20.0)


@pytest.mark.asyncio
async def test_partial_positions_are_rebuilt(state_store, order_repo, position_repo):
    bybit = MockTradingClient("bybit", trades=[raw_trade(1, symbol="BTC/USDT", side="buy", timestamp=1000)])
    service = make_service({"bybit": bybit}, state_store, order_repo, position_repo, position_strategy="aggressive")

    await service.sync_trades("u1", BYBIT_KEYS)
    assert [p.status for p in position_repo.for_user("u1")] == ["partial"]

    bybit.trades.append(raw_trade(2, symbol="BTC/USDT", side="sell", timestamp=3000))
    await service.sync_trades("u1", BYBIT_KEYS)

    assert [p.status for p in position_repo.for_user("u1")] == ["closed"]


@pytest.mark.asyncio
async def test_repeated_full_sync_replaces_positions(bybit, state_store, order_repo, position_repo):
    service = make_service({"bybit": bybit}, state_store, order_repo, position_repo)
    await service.sync_trades("u1", BYBIT_KEYS)
    assert len(position_repo.for_user("u1")) == 1

    result = await service.sync_trades("u1", BYBIT_KEYS, mode="full")

    assert result.type == "initial"
    assert result.positions_saved == 1
    positions = position_repo.for_user("u1")
    assert len(positions) == 1
    assert positions[0].profit_loss == pytest.approx(10.0)
    assert all(o.position_id == positions[0].id for o in order_repo.orders.values())


@pytest.mark.asyncio
async def test_refetched_orders_stay_in_their_closed_position(bybit, state_store, order_repo, position_repo):
    service = make_service({"bybit": bybit}, state_store, order_repo, position_repo, discovery_threshold=1)
    await service.sync_trades("u1", BYBIT_KEYS)
    closed = position_repo.for_user("u1")[0]
    state_store.cursors["u1"] = {}

    result = await service.sync_trades("u1", BYBIT_KEYS)

    assert result.trades_found == 2
    assert result.positions_saved == 0
    assert [p.id for p in position_repo.for_user("u1")] == [closed.id]


@pytest.mark.asyncio
async def test_known_pair_without_cursor_is_fetched_from_the_start(bybit, state_store, order_repo, position_repo):
    state_store.pairs["u1"] = {"bybit": ["BTC/USDT"]}
    state_store.last_sync["u1"] = {"bybit": 5000}
    service = make_service({"bybit": bybit}, state_store, order_repo, position_repo, discovery_threshold=1)

    result = await service.sync_trades("u1", BYBIT_KEYS)

    assert result.type == "incremental"
    assert result.trades_found == 2
    assert result.message == "Quick sync completed: 2 trades from 1 known pairs"
    assert bybit.trade_calls == [{"symbol": "BTC/USDT", "since": None, "limit": 200}]
    assert position_repo.for_user("u1")[0].status == "closed"


@pytest.mark.asyncio
async def test_undecryptable_keys_fail_cleanly(state_store, order_repo, position_repo):
    service = make_service({}, state_store, order_repo, position_repo)

    result = await service.sync_trades("u1", "%%% not base64 %%%")

    assert not result.success
    assert result.message == "Failed to decrypt exchange credentials"


@pytest.mark.asyncio
async def test_credential_error_aborts_and_closes_clients(bybit, state_store, order_repo, position_repo):
    keys = Base64JsonDecryptor.encode([
        ExchangeCredentials(exchange="bybit", api_key="k", api_secret="s"),
        ExchangeCredentials(exchange="kraken", api_key="k"),
    ])
    service = make_service({"bybit": bybit}, state_store, order_repo, position_repo)

    result = await service.sync_trades("u1", keys)

    assert not result.success
    assert result.message == "Missing credentials for kraken"
    assert bybit.closed
    assert order_repo.orders == {}


@pytest.mark.asyncio
async def test_unexpected_error_becomes_failed_result(bybit, order_repo, position_repo, state_store):
    async def broken(user_id):
        raise RuntimeError("store offline")

    state_store.find_user_pairs = broken
    service = make_service({"bybit": bybit}, state_store, order_repo, position_repo)

    result = await service.sync_trades("u1", BYBIT_KEYS)

    assert not result.success
    assert result.type == "initial"
    assert result.message == "Initial sync failed: store offline"
    assert bybit.closed


@pytest.mark.asyncio
async def test_failing_pair_does_not_abort_sync(state_store, order_repo, position_repo):
    bybit = MockTradingClient(
        "bybit",
        trades=[
            raw_trade(1, symbol="BTC/USDT", timestamp=1000),
            raw_trade(2, symbol="ETH/USDT", timestamp=1000),
        ],
        failing_symbols=["ETH/USDT"],
    )
    service = make_service({"bybit": bybit}, state_store, order_repo, position_repo)

    result = await service.sync_trades("u1", BYBIT_KEYS)

    assert result.success
    assert result.pairs_found == 1
    assert result.trades_found == 1


def test_sync_result_serializes_camel_case():
    payload = SyncResult(success=True, type="incremental", new_pairs=2, message="ok").model_dump(by_alias=True)

    assert payload["newPairs"] == 2
    assert "pairsFound" in payload
    assert "tradesFound" in payload
