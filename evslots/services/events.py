"""
evslots/services/events.py

Event emitter: pushes slot events to a Redis list for other consumers
(notification workers, dashboards).

Queue: events:slots, one JSON object per event:
    {"type": "slot_booked", "slot_id": "A1", ..., "ts": 1700000000}

Emission is best-effort: without REDIS_URL nothing is sent,
and a Redis failure is logged, never raised into the booking flow.
"""

import json
import time
import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

EVENTS_QUEUE = "events:slots"


class EventEmitter:

    def __init__(self, redis: aioredis.Redis | None = None, queue: str = EVENTS_QUEUE):
        self.redis = redis
        self.queue = queue

    @classmethod
    def from_url(cls, redis_url: str | None) -> "EventEmitter":
        if not redis_url:
            return cls(None)
        return cls(aioredis.from_url(redis_url, decode_responses=True))

    async def emit(self, event_type: str, payload: dict) -> None:
        if self.redis is None:
            return

        event = {
            "type": event_type,
            **payload,
            "ts": int(time.time()),
        }
        try:
            await self.redis.rpush(self.queue, json.dumps(event))
            logger.info(f"Event emitted: {event_type} → {self.queue}")
        except RedisError as e:
            logger.error(f"Failed to emit event {event_type}: {e}")

    async def close(self) -> None:
        if self.redis is not None:
            await self.redis.aclose()
