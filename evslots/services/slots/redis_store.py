# evslots/services/slots/redis_store.py
"""
Redis storage for slots.

Key format:
    {key}          JSON list, the current collection
    {key}:backup   JSON list, the collection before the last replace

replace() runs WATCH/MULTI on {key}: a write that lands between our read
and our EXEC aborts the transaction and surfaces as Conflict.
"""

import logging
from typing import Iterable

import redis.asyncio as aioredis
from redis.exceptions import RedisError, WatchError

from ...errors import BackendUnreachable, Conflict
from ...models.slots import DEFAULT_SLOT_IDS, SlotCollection
from .store import SlotStore, check_expected

logger = logging.getLogger(__name__)


class RedisSlotStore(SlotStore):
    """Redis storage wrapper for the slot document."""

    name = "redis"
    supports_conflict_detection = True

    def __init__(
        self,
        redis: aioredis.Redis,
        key: str = "slots:current",
        slot_ids: Iterable[str] = DEFAULT_SLOT_IDS,
    ):
        super().__init__(slot_ids)
        self.redis = redis
        self.key = key
        self.backup_key = f"{key}:backup"

    @classmethod
    def from_url(cls, redis_url: str, **kwargs) -> "RedisSlotStore":
        return cls(aioredis.from_url(redis_url, decode_responses=True), **kwargs)

    # ── Read ─────────────────────────────────────────────────────────────

    async def fetch(self) -> SlotCollection:
        try:
            raw = await self.redis.get(self.key)
            if raw is None:
                defaults = self.default_collection()
                # NX: another process may have initialised it meanwhile
                if await self.redis.set(self.key, defaults.to_json(), nx=True):
                    logger.info(f"Initialised default slots in {self.key} ({len(defaults)})")
                    return defaults
                raw = await self.redis.get(self.key)
        except RedisError as e:
            raise BackendUnreachable(f"Redis read failed: {e}") from e
        return SlotCollection.from_json(raw)

    async def fetch_backup(self) -> SlotCollection | None:
        try:
            raw = await self.redis.get(self.backup_key)
        except RedisError as e:
            raise BackendUnreachable(f"Redis read failed: {e}") from e
        return None if raw is None else SlotCollection.from_json(raw)

    # ── Write ────────────────────────────────────────────────────────────

    async def replace(self, collection: SlotCollection, expected: str | None = None) -> None:
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                await pipe.watch(self.key)
                raw = await pipe.get(self.key)
                if expected is not None and raw is not None:
                    check_expected(SlotCollection.from_json(raw), expected)

                pipe.multi()
                if raw is not None:
                    pipe.set(self.backup_key, raw)
                pipe.set(self.key, collection.to_json())
                await pipe.execute()
        except WatchError as e:
            raise Conflict("Slots were modified concurrently, fetch and retry") from e
        except RedisError as e:
            raise BackendUnreachable(f"Redis write failed: {e}") from e

        logger.info(f"Slots saved to {self.key} ({len(collection)} slots)")

    async def close(self) -> None:
        await self.redis.aclose()
