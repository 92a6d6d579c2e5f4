from datetime import datetime, timezone
from itertools import count

import pytest

from evslots.models.slots import Occupancy, Slot, SlotCollection
from evslots.services.slots import BookingService, MemorySlotStore, SessionKeeper, SyncConfig, SyncEngine


FIXED_NOW = datetime(2026, 10, 18, 8, 30, tzinfo=timezone.utc)


@pytest.fixture
def store() -> MemorySlotStore:
    return MemorySlotStore()


@pytest.fixture
def tokens():
    seq = count(1)
    return lambda: f"T{next(seq)}"


@pytest.fixture
def booking(store, tokens) -> BookingService:
    return BookingService(
        store,
        sessions=SessionKeeper(),
        clock=lambda: FIXED_NOW,
        token_factory=tokens,
    )


@pytest.fixture
def engine(store) -> SyncEngine:
    return SyncEngine(store, SyncConfig(poll_interval=0.01, stale_grace=None))


def occupied_slot(slot_id: str, token: str = "tok", email: str = "a@x.com") -> Slot:
    return Slot.available(slot_id).occupy(Occupancy(
        email=email,
        phone="555-1",
        start_time=FIXED_NOW,
        session_id=token,
    ))


def collection_with(*occupied: str) -> SlotCollection:
    collection = SlotCollection.defaults()
    for slot_id in occupied:
        collection = collection.with_slot(occupied_slot(slot_id, token=f"tok-{slot_id}"))
    return collection
