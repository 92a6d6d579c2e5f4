# evslots/services/slots/store.py
"""
SlotStore contract and the reference in-memory implementation.

A store owns the authoritative SlotCollection of one backend.

    fetch()                      -> current collection | BackendUnreachable
    replace(collection, expected) -> None | Conflict | BackendUnreachable

replace() overwrites the whole collection. `expected` is the fingerprint of
the snapshot the new collection was derived from; stores that can detect a
concurrent write raise Conflict on mismatch and write nothing, the others
are last-write-wins.

Each replace keeps a best-effort backup of the previous collection
(fetch_backup) for manual recovery.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Iterable

from ...errors import BackendUnreachable, Conflict
from ...models.slots import DEFAULT_SLOT_IDS, SlotCollection

logger = logging.getLogger(__name__)


def check_expected(current: SlotCollection | None, expected: str | None) -> None:
    """Raise Conflict when the authoritative collection moved on since `expected`."""
    if expected is None or current is None:
        return
    if current.fingerprint != expected:
        raise Conflict("Slots were modified concurrently, fetch and retry")


class SlotStore(ABC):
    """Backend-abstracted persistence for one slot collection."""

    name = "abstract"
    supports_conflict_detection = False

    def __init__(self, slot_ids: Iterable[str] = DEFAULT_SLOT_IDS):
        self.slot_ids = tuple(slot_ids)
        self.last_modified: datetime | None = None

    def default_collection(self) -> SlotCollection:
        return SlotCollection.defaults(self.slot_ids)

    @abstractmethod
    async def fetch(self) -> SlotCollection:
        ...

    @abstractmethod
    async def replace(self, collection: SlotCollection, expected: str | None = None) -> None:
        ...

    async def fetch_backup(self) -> SlotCollection | None:
        return None

    async def close(self) -> None:
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class MemorySlotStore(SlotStore):
    """
    Process-local store.

    `latency` inserts a suspension point into every call so concurrent
    tasks interleave the way they would against a remote backend.
    Setting `online = False` makes every call fail with BackendUnreachable.
    """

    name = "memory"
    supports_conflict_detection = True

    def __init__(
        self,
        collection: SlotCollection | None = None,
        slot_ids: Iterable[str] = DEFAULT_SLOT_IDS,
        latency: float = 0.0,
    ):
        super().__init__(collection.ids if collection is not None else slot_ids)
        self._collection = collection
        self._backup: SlotCollection | None = None
        self.latency = latency
        self.online = True
        self.writes = 0

    async def _io(self) -> None:
        await asyncio.sleep(self.latency)
        if not self.online:
            raise BackendUnreachable("Memory store is offline")

    async def fetch(self) -> SlotCollection:
        await self._io()
        if self._collection is None:
            self._collection = self.default_collection()
            logger.info(f"Initialised default slots ({len(self._collection)})")
        return self._collection

    async def replace(self, collection: SlotCollection, expected: str | None = None) -> None:
        await self._io()
        check_expected(self._collection, expected)
        self._backup = self._collection
        self._collection = collection
        self.writes += 1
        self.last_modified = datetime.now(timezone.utc)

    async def fetch_backup(self) -> SlotCollection | None:
        await self._io()
        return self._backup
