# evslots/models/slots.py
"""
Slot data model.

Persisted snapshot format (one JSON list, insertion order preserved):

    [
      {"id": "A1", "status": "available"},
      {"id": "A2", "status": "occupied",
       "user": {"email": ..., "phone": ..., "startTime": "2026-01-01T08:00:00Z",
                "sessionId": ..., "deviceId": ..., "userAgent": ...}}
    ]

Invariant: status == occupied  <=>  user is present (with a non-empty sessionId).
"""

import json
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Iterable, Iterator

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, model_validator

from ..errors import InvalidSnapshot, SlotNotFound
from ..utils.hashing import fingerprint


DEFAULT_SLOT_IDS = ("A1", "A2", "A3", "A4", "A5", "B1", "B2", "B3", "B4", "B5")


class SlotStatus(str, Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"


class Occupancy(BaseModel):
    """Who holds a slot and since when."""
    email: str
    phone: str
    start_time: datetime = Field(alias="startTime")
    session_id: str = Field(alias="sessionId", min_length=1)
    device_id: str | None = Field(default=None, alias="deviceId")
    user_agent: str | None = Field(default=None, alias="userAgent")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class Slot(BaseModel):
    id: str = Field(min_length=1)
    status: SlotStatus = SlotStatus.AVAILABLE
    user: Occupancy | None = None

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_occupancy(self) -> "Slot":
        if self.status is SlotStatus.AVAILABLE and self.user is not None:
            raise ValueError(f"available slot {self.id} must not carry an occupant")
        if self.status is SlotStatus.OCCUPIED and self.user is None:
            raise ValueError(f"occupied slot {self.id} has no occupant")
        return self

    @property
    def is_occupied(self) -> bool:
        return self.status is SlotStatus.OCCUPIED

    @classmethod
    def available(cls, slot_id: str) -> "Slot":
        return cls(id=slot_id, status=SlotStatus.AVAILABLE)

    def occupy(self, occupancy: Occupancy) -> "Slot":
        return Slot(id=self.id, status=SlotStatus.OCCUPIED, user=occupancy)

    def vacate(self) -> "Slot":
        return Slot.available(self.id)


class SlotStats(BaseModel):
    available: int
    occupied: int
    total: int
    utilization_percent: int = Field(alias="utilizationPercent")

    model_config = ConfigDict(populate_by_name=True)


def utilization(occupied: int, total: int) -> int:
    """Occupied share in percent, rounded half-up. 0 for an empty collection."""
    if total <= 0:
        return 0
    ratio = Decimal(occupied) * 100 / Decimal(total)
    return int(ratio.quantize(Decimal(1), rounding=ROUND_HALF_UP))


_slot_list = TypeAdapter(list[Slot])


class SlotCollection:
    """
    Ordered, immutable collection of slots with unique ids.

    Mutating helpers return a new collection; stores and observers
    can share instances safely.
    """

    __slots__ = ("_slots", "_index", "_fingerprint")

    def __init__(self, slots: Iterable[Slot] = ()):
        self._slots: tuple[Slot, ...] = tuple(slots)
        self._index: dict[str, int] = {}
        for i, slot in enumerate(self._slots):
            if slot.id in self._index:
                raise InvalidSnapshot(f"Duplicate slot id {slot.id}", slot.id)
            self._index[slot.id] = i
        self._fingerprint: str | None = None

    # ── Construction ─────────────────────────────────────────────────────

    @classmethod
    def defaults(cls, slot_ids: Iterable[str] = DEFAULT_SLOT_IDS) -> "SlotCollection":
        return cls(Slot.available(slot_id) for slot_id in slot_ids)

    @classmethod
    def from_snapshot(cls, data) -> "SlotCollection":
        """Build from the persisted list format. Raises InvalidSnapshot."""
        try:
            slots = _slot_list.validate_python(data)
        except ValidationError as e:
            raise InvalidSnapshot(f"Invalid slot data structure: {e.error_count()} error(s)") from e
        return cls(slots)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "SlotCollection":
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidSnapshot(f"Invalid JSON data: {e}") from e
        return cls.from_snapshot(data)

    # ── Serialization ────────────────────────────────────────────────────

    def to_snapshot(self) -> list[dict]:
        return [
            slot.model_dump(mode="json", by_alias=True, exclude_none=True)
            for slot in self._slots
        ]

    def to_json(self, indent: int | None = None) -> str:
        return json.dumps(self.to_snapshot(), indent=indent, ensure_ascii=False)

    @property
    def fingerprint(self) -> str:
        if self._fingerprint is None:
            self._fingerprint = fingerprint(self.to_snapshot())
        return self._fingerprint

    # ── Access ───────────────────────────────────────────────────────────

    @property
    def ids(self) -> list[str]:
        return [slot.id for slot in self._slots]

    def get(self, slot_id: str) -> Slot | None:
        i = self._index.get(slot_id)
        return None if i is None else self._slots[i]

    def require(self, slot_id: str) -> Slot:
        slot = self.get(slot_id)
        if slot is None:
            raise SlotNotFound(slot_id)
        return slot

    def with_slot(self, slot: Slot) -> "SlotCollection":
        """Copy with one slot replaced in place. The id must already exist."""
        i = self._index.get(slot.id)
        if i is None:
            raise SlotNotFound(slot.id)
        slots = list(self._slots)
        slots[i] = slot
        return SlotCollection(slots)

    def stats(self) -> SlotStats:
        occupied = sum(1 for slot in self._slots if slot.is_occupied)
        total = len(self._slots)
        return SlotStats(
            available=total - occupied,
            occupied=occupied,
            total=total,
            utilization_percent=utilization(occupied, total),
        )

    def __iter__(self) -> Iterator[Slot]:
        return iter(self._slots)

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, slot_id: object) -> bool:
        return slot_id in self._index

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SlotCollection):
            return NotImplemented
        return self._slots == other._slots

    def __hash__(self) -> int:
        return hash(self.fingerprint)

    def __repr__(self) -> str:
        stats = self.stats()
        return f"SlotCollection(total={stats.total}, occupied={stats.occupied})"
