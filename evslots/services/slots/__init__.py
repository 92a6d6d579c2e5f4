# evslots/services/slots/__init__.py
"""
Slot synchronization core.

SlotStore      : authoritative collection for one backend (memory/file/http/redis/sql)
SyncEngine     : polls a store, detects change by fingerprint, notifies observers
BookingService : book / release / admin_release against a store
"""

from .config import SyncConfig
from .store import SlotStore, MemorySlotStore
from .factory import build_store
from .session import ClientSession, SessionKeeper, FileSessionKeeper
from .sync import SyncEngine, PendingWrite
from .booking import BookingService

__all__ = [
    "SyncConfig",
    "SlotStore",
    "MemorySlotStore",
    "build_store",
    "ClientSession",
    "SessionKeeper",
    "FileSessionKeeper",
    "SyncEngine",
    "PendingWrite",
    "BookingService",
]
