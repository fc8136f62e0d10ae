import logging
from functools import lru_cache
from typing import Dict, List, Optional

import psycopg2
from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from tradesync.config import Settings
from tradesync.core.capabilities import get_exchange_capabilities
from tradesync.core.entities.order import Order
from tradesync.core.entities.position import Position
from tradesync.core.entities.sync import SyncMode, SyncResult
from tradesync.core.entities.trade import Trade
from tradesync.core.exchanges import get_enabled_exchanges
from tradesync.core.use_cases.position_aggregator import PositionAggregator
from tradesync.core.use_cases.sync_orchestrator import TradeSyncService
from tradesync.core.use_cases.trade_aggregator import TradeAggregator
from tradesync.infrastructure.cache.redis_service import RedisSyncStateStore
from tradesync.infrastructure.credentials.base64_decryptor import Base64JsonDecryptor
from tradesync.infrastructure.gateways.factory import create_trade_source
from tradesync.infrastructure.persistence.postgres_repo import (
    PostgresOrderRepository,
    PostgresPositionRepository,
    PostgresSyncStateStore,
)

settings = Settings.from_env()

logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
logger = logging.getLogger("TradeSync")

app = FastAPI(title="TradeSync API", version="1.0.0", description="Exchange trade sync & position reconstruction API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Request Models ---

class SyncRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    encrypted_keys: str
    mode: Optional[SyncMode] = None
    since: Optional[int] = Field(None, ge=0)


class PreviewRequest(BaseModel):
    strategy: str = "conservative"
    orders: List[Order] = Field(default_factory=list)
    # raw fills are aggregated into orders first
    trades: List[Trade] = Field(default_factory=list)


class ExchangeCapabilitiesResponse(BaseModel):
    id: str
    name: str
    bulk_fetch: bool
    supports_time_filtering: bool
    supports_pagination: bool
    rate_limit_ms: int
    max_trades_per_call: Optional[int] = None


# --- Dependency Injection ---

def get_settings() -> Settings:
    return settings


@lru_cache(maxsize=4)
def _build_sync_service(database_url: str, redis_url: Optional[str]) -> TradeSyncService:
    order_repo = PostgresOrderRepository(database_url)
    position_repo = PostgresPositionRepository(database_url, init_schema=False)
    state_store = RedisSyncStateStore.connect(redis_url) or PostgresSyncStateStore(database_url, init_schema=False)
    return TradeSyncService(
        decryptor=Base64JsonDecryptor(),
        state_store=state_store,
        order_repo=order_repo,
        position_repo=position_repo,
        source_factory=create_trade_source,
        settings=settings,
    )


def get_sync_service(app_settings: Settings = Depends(get_settings)) -> Optional[TradeSyncService]:
    if not app_settings.database_url:
        return None
    try:
        return _build_sync_service(app_settings.database_url, app_settings.redis_url)
    except psycopg2.Error as e:
        logger.error(f"Failed to connect to DB: {e}")
        return None


# --- Endpoints ---

@app.get("/health")
async def health():
    return {"status": "healthy", "mode": "ccxt trade sync"}


@app.get("/v1/exchanges/capabilities", response_model=List[ExchangeCapabilitiesResponse])
async def exchange_capabilities():
    entries = []
    for exchange in get_enabled_exchanges():
        caps = get_exchange_capabilities(exchange.id)
        entries.append(ExchangeCapabilitiesResponse(
            id=exchange.id,
            name=exchange.name,
            bulk_fetch=caps.fetches_all_trades_at_once,
            supports_time_filtering=caps.supports_time_filtering,
            supports_pagination=caps.supports_pagination,
            rate_limit_ms=caps.rate_limit_ms,
            max_trades_per_call=caps.max_trades_per_call,
        ))
    return entries


@app.post("/v1/sync")
async def sync_trades(
    request: SyncRequest,
    service: Optional[TradeSyncService] = Depends(get_sync_service)
) -> Dict:
    """
    Fetches the user's trades from every configured exchange, rebuilds
    orders and positions and persists them. Failures come back as a
    SyncResult with success=false, not as HTTP errors.
    """
    if not service:
        raise HTTPException(status_code=503, detail="Database not configured or unavailable")

    result: SyncResult = await service.sync_trades(
        request.user_id,
        request.encrypted_keys,
        mode=request.mode,
        since=request.since,
    )
    return result.model_dump(by_alias=True)


@app.post("/v1/positions/preview", response_model=List[Position])
async def preview_positions(request: PreviewRequest):
    """Runs position aggregation on the posted orders/trades without persisting anything."""
    try:
        aggregator = PositionAggregator.create_for_strategy(request.strategy)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        orders = TradeAggregator.merge(request.orders, TradeAggregator.aggregate(request.trades))
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return aggregator.aggregate(orders)
