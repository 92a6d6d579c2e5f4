# evslots/errors.py
"""
Error taxonomy for slot booking and synchronization.

Domain errors (SlotNotFound, SlotUnavailable, NotAuthorized, InvalidBooking)
are always surfaced to the caller and never retried.
Transport errors (BackendUnreachable) are absorbed by SyncEngine
and surfaced by BookingService so the caller can retry.
"""


class SlotError(Exception):
    """Base class for every slot error."""

    status_code = 400

    def __init__(self, message: str, slot_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.slot_id = slot_id


class SlotNotFound(SlotError):
    status_code = 404

    def __init__(self, slot_id: str):
        super().__init__(f"Slot {slot_id} not found", slot_id)


class SlotUnavailable(SlotError):
    """Slot is already occupied (booking race lost)."""

    status_code = 409

    def __init__(self, slot_id: str, message: str | None = None):
        super().__init__(message or f"Slot {slot_id} not available", slot_id)


class SlotNotOccupied(SlotUnavailable):
    """Release requested for a slot that is not occupied."""

    def __init__(self, slot_id: str):
        super().__init__(slot_id, f"Slot {slot_id} not occupied")


class NotAuthorized(SlotError):
    status_code = 403

    def __init__(self, slot_id: str):
        super().__init__(f"Not authorized to release slot {slot_id}", slot_id)


class InvalidBooking(SlotError):
    """Booking request is missing contact details."""


class InvalidSnapshot(SlotError):
    """Persisted document does not describe a valid slot collection."""


class BackendUnreachable(SlotError):
    """The store could not be contacted (I/O failure or timeout)."""

    status_code = 503


class Conflict(SlotError):
    """The store detected a concurrent write since the last fetch."""

    status_code = 409


class NoBackup(SlotError):
    """The store holds no backup to restore from."""

    status_code = 404

    def __init__(self):
        super().__init__("No backup available")
