import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Optional

import redis

from tradesync.core.interfaces.repositories import ISyncStateStore

logger = logging.getLogger(__name__)


class RedisSyncStateStore(ISyncStateStore):
    """
    Sync bookkeeping in Redis hashes:

        tradesync:pairs:{user}               exchange -> JSON list of symbols
        tradesync:last_sync:{user}           exchange -> epoch ms
        tradesync:cursors:{user}:{exchange}  symbol -> epoch ms of newest trade
    """

    def __init__(self, client: Any, prefix: str = "tradesync"):
        self.client = client
        self.prefix = prefix

    @classmethod
    def connect(cls, redis_url: Optional[str]) -> Optional["RedisSyncStateStore"]:
        if not redis_url:
            logger.info("REDIS_URL not set. Redis sync state disabled.")
            return None
        try:
            client = redis.from_url(redis_url, decode_responses=True)
            client.ping()
            logger.info("Connected to Redis for sync state.")
            return cls(client)
        except redis.RedisError as e:
            logger.warning(f"Failed to connect to Redis: {e}. Redis sync state disabled.")
            return None

    def _key(self, *parts: str) -> str:
        return ":".join((self.prefix,) + parts)

    async def find_user_pairs(self, user_id: str) -> Dict[str, List[str]]:
        raw = await asyncio.to_thread(self.client.hgetall, self._key("pairs", user_id))
        return {exchange: json.loads(symbols) for exchange, symbols in (raw or {}).items()}

    async def update_user_pairs(self, user_id: str, exchange: str, pairs: List[str]) -> None:
        serialized = json.dumps(sorted(set(pairs)))
        await asyncio.to_thread(self.client.hset, self._key("pairs", user_id), exchange, serialized)

    async def get_last_sync_times(self, user_id: str) -> Dict[str, int]:
        raw = await asyncio.to_thread(self.client.hgetall, self._key("last_sync", user_id))
        return {exchange: int(ms) for exchange, ms in (raw or {}).items()}

    async def update_last_sync_times(self, user_id: str, exchanges: List[str]) -> None:
        if not exchanges:
            return
        now = int(time.time() * 1000)
        mapping = {exchange: now for exchange in exchanges}
        await asyncio.to_thread(self.client.hset, self._key("last_sync", user_id), mapping=mapping)

    async def get_most_recent_trade_time(self, user_id: str, exchange: str, pair: str) -> Optional[int]:
        value = await asyncio.to_thread(self.client.hget, self._key("cursors", user_id, exchange), pair)
        return int(value) if value is not None else None

    async def update_trade_cursors(self, user_id: str, exchange: str, cursors: Dict[str, int]) -> None:
        if not cursors:
            return
        key = self._key("cursors", user_id, exchange)
        existing = await asyncio.to_thread(self.client.hgetall, key) or {}
        mapping = {
            pair: max(ts, int(existing[pair])) if pair in existing else ts
            for pair, ts in cursors.items()
        }
        await asyncio.to_thread(self.client.hset, key, mapping=mapping)
