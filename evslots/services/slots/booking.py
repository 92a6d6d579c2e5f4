# evslots/services/slots/booking.py
"""
BookingService: the slot state machine.

    available --book--> occupied --release / admin_release--> available

No hold state, no expiry, no transfer. Every mutation is a
read-modify-write of the whole collection:

    fetch → validate → derive → replace(derived, expected=fingerprint(fetched))

A Conflict from the store restarts the operation from a fresh fetch, so a
lost booking race surfaces as SlotUnavailable. A second fetch right before
the write narrows the window on stores that cannot detect conflicts.
Within one process operations are serialized.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable

from ...errors import (
    BackendUnreachable,
    Conflict,
    InvalidBooking,
    NoBackup,
    NotAuthorized,
    SlotNotOccupied,
    SlotUnavailable,
)
from ...models.slots import Occupancy, SlotCollection, SlotStats
from .config import SyncConfig
from .session import ClientSession, SessionKeeper, generate_id
from .store import SlotStore
from .sync import SyncEngine

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_session_token() -> str:
    return generate_id("session")


class BookingService:

    def __init__(
        self,
        store: SlotStore,
        sessions: SessionKeeper | None = None,
        sync: SyncEngine | None = None,
        config: SyncConfig | None = None,
        client_info: str | None = None,
        clock: Callable[[], datetime] = _utcnow,
        token_factory: Callable[[], str] = new_session_token,
    ):
        self.store = store
        self.sessions = sessions
        self.sync = sync
        self.config = config or SyncConfig()
        self.client_info = client_info
        self.clock = clock
        self.token_factory = token_factory
        self._lock = asyncio.Lock()

    # ── Commit ───────────────────────────────────────────────────────────

    async def _commit(
        self,
        derive: Callable[[SlotCollection], SlotCollection],
        action: str,
    ) -> SlotCollection:
        attempts = self.config.commit_attempts

        async with self._lock:
            for attempt in range(1, attempts + 1):
                current = await self.store.fetch()
                derive(current)

                # re-validate against the freshest state right before writing
                current = await self.store.fetch()
                updated = derive(current)

                try:
                    await self.store.replace(updated, expected=current.fingerprint)
                except Conflict:
                    logger.warning(f"{action}: concurrent write detected (attempt {attempt}/{attempts})")
                    continue
                break
            else:
                raise Conflict(f"{action}: store kept changing, gave up after {attempts} attempts")

        if self.sync is not None:
            await self.sync.force_sync()
        return updated

    # ── Transitions ──────────────────────────────────────────────────────

    async def book(
        self,
        slot_id: str,
        email: str,
        phone: str,
        device_id: str | None = None,
        client_info: str | None = None,
    ) -> str:
        """
        Occupy an available slot. Returns the new session token.

        Raises SlotNotFound, SlotUnavailable, InvalidBooking, BackendUnreachable.
        """
        email = (email or "").strip()
        phone = (phone or "").strip()
        if not email or not phone:
            raise InvalidBooking("Email and phone are required", slot_id)

        token = self.token_factory()
        if device_id is None and self.sessions is not None:
            device_id = self.sessions.device_id

        def derive(collection: SlotCollection) -> SlotCollection:
            slot = collection.require(slot_id)
            if slot.is_occupied:
                raise SlotUnavailable(slot_id)
            occupancy = Occupancy(
                email=email,
                phone=phone,
                start_time=self.clock(),
                session_id=token,
                device_id=device_id,
                user_agent=client_info or self.client_info,
            )
            return collection.with_slot(slot.occupy(occupancy))

        logger.info(f"BOOKING ATTEMPT: slot {slot_id} for {email}")
        await self._commit(derive, f"book {slot_id}")

        if self.sessions is not None:
            try:
                self.sessions.set(ClientSession(email=email, phone=phone, session_id=token))
            except OSError as e:
                # the slot is already booked; the caller still gets the token
                logger.error(f"Could not save client session for slot {slot_id}: {e}")

        logger.info(f"BOOKING SUCCESS: slot {slot_id} booked for {email}")
        return token

    async def release(self, slot_id: str, session_token: str) -> None:
        """
        Release a slot on behalf of its occupant.

        The token must match the one issued by book().
        Raises SlotNotFound, SlotNotOccupied, NotAuthorized, BackendUnreachable.
        """

        def derive(collection: SlotCollection) -> SlotCollection:
            slot = collection.require(slot_id)
            if not slot.is_occupied:
                raise SlotNotOccupied(slot_id)
            if not session_token or slot.user.session_id != session_token:
                logger.info(f"RELEASE FAILED: session mismatch for slot {slot_id}")
                raise NotAuthorized(slot_id)
            return collection.with_slot(slot.vacate())

        await self._commit(derive, f"release {slot_id}")

        if self.sessions is not None:
            self.sessions.clear(session_token)
        logger.info(f"RELEASE SUCCESS: slot {slot_id} is now available")

    async def release_own(self, slot_id: str) -> None:
        """Release with the token of this client's current session."""
        session = self.sessions.get() if self.sessions is not None else None
        if session is None:
            raise NotAuthorized(slot_id)
        await self.release(slot_id, session.session_id)

    async def admin_release(self, slot_id: str) -> None:
        """
        Administrative release: no token check at all.

        Only admin surfaces may call this. The slot must still be occupied.
        """

        def derive(collection: SlotCollection) -> SlotCollection:
            slot = collection.require(slot_id)
            if not slot.is_occupied:
                raise SlotNotOccupied(slot_id)
            logger.warning(f"ADMIN RELEASE: slot {slot_id} held by {slot.user.email}")
            return collection.with_slot(slot.vacate())

        await self._commit(derive, f"admin release {slot_id}")
        logger.info(f"RELEASE SUCCESS: slot {slot_id} is now available (admin override)")

    async def reset(self) -> SlotCollection:
        """Admin: every configured slot back to available."""
        defaults = self.store.default_collection()
        await self._commit(lambda _: defaults, "reset")
        logger.warning(f"RESET - System reset to default slots ({len(defaults)})")
        return defaults

    async def restore_backup(self) -> SlotCollection:
        """Admin: put the store's backup copy back as the current collection."""
        backup = await self.store.fetch_backup()
        if backup is None:
            raise NoBackup()
        await self._commit(lambda _: backup, "restore backup")
        logger.warning(f"RESTORE - Slots restored from backup ({len(backup)})")
        return backup

    # ── Queries ──────────────────────────────────────────────────────────

    async def stats(self) -> SlotStats:
        """Stats of a fresh fetch; falls back to the sync cache when the store is unreachable."""
        try:
            collection = await self.store.fetch()
        except BackendUnreachable:
            if self.sync is None or self.sync.snapshot is None:
                raise
            collection = self.sync.snapshot
        return collection.stats()

    def can_release(self, slot_id: str, collection: SlotCollection | None = None) -> bool:
        """Whether this client's session owns `slot_id` (UI hint, not authorization)."""
        if collection is None and self.sync is not None:
            collection = self.sync.snapshot
        session = self.sessions.get() if self.sessions is not None else None
        if collection is None or session is None:
            return False
        slot = collection.get(slot_id)
        return bool(
            slot is not None
            and slot.is_occupied
            and slot.user.session_id == session.session_id
        )
