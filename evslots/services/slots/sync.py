# evslots/services/slots/sync.py
"""
SyncEngine: propagates authoritative store state to local observers.

Every poll:
1. fetch() from the store (skipped while offline)
2. fingerprint the snapshot; unchanged since the last delivery → no-op
3. changed (or first success) → swap the cached snapshot and call every
   observer synchronously, in registration order
4. on failure keep the cached snapshot; if observers were not notified
   for `stale_grace` seconds, re-deliver the stale snapshot

force_sync() runs a poll immediately (after a local write, on
offline → online, when the host surface becomes visible).

Consistency across processes is eventual: observers converge within
about one poll interval while the store stays reachable.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable

from ...errors import BackendUnreachable, SlotError
from ...models.slots import SlotCollection
from .config import SyncConfig
from .store import SlotStore

logger = logging.getLogger(__name__)

Observer = Callable[[SlotCollection], None]


@dataclass
class PendingWrite:
    """A write deferred while the store was unreachable."""
    label: str
    action: Callable[[], Awaitable[object]]
    queued_at: float = field(default_factory=time.time)
    done: bool = False
    error: SlotError | None = None


class SyncEngine:

    def __init__(
        self,
        store: SlotStore,
        config: SyncConfig | None = None,
        initial: SlotCollection | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.config = config or SyncConfig()
        self.clock = clock

        self._snapshot = initial
        self._delivered_fingerprint: str | None = None
        self._last_notified_at: float | None = None
        self._observers: list[Observer] = []
        self._pending: deque[PendingWrite] = deque()
        self._draining = False
        self._poll_lock = asyncio.Lock()
        self._task: asyncio.Task | None = None

        self.online = True
        self.last_sync_at: datetime | None = None
        self.last_error: str | None = None

    # ── State ────────────────────────────────────────────────────────────

    @property
    def snapshot(self) -> SlotCollection | None:
        """Last good snapshot (possibly stale)."""
        return self._snapshot

    @property
    def fingerprint(self) -> str | None:
        return self._delivered_fingerprint

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def status(self) -> dict:
        return {
            "online": self.online,
            "store": self.store.name,
            "running": self.running,
            "lastSync": self.last_sync_at.isoformat() if self.last_sync_at else None,
            "lastError": self.last_error,
            "fingerprint": self._delivered_fingerprint,
            "listeners": len(self._observers),
            "pendingWrites": len(self._pending),
        }

    # ── Observers ────────────────────────────────────────────────────────

    def subscribe(self, callback: Observer) -> Callable[[], None]:
        """
        Register an observer; returns its unsubscribe function.

        The observer receives the cached snapshot right away when there is one,
        then every changed snapshot.
        """
        self._observers.append(callback)
        logger.debug(f"Listener added. Total listeners: {len(self._observers)}")

        if self._snapshot is not None:
            self._call(callback, self._snapshot)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _notify(self, collection: SlotCollection) -> None:
        self._last_notified_at = self.clock()
        for callback in list(self._observers):
            self._call(callback, collection)

    def _call(self, callback: Observer, collection: SlotCollection) -> None:
        try:
            callback(collection)
        except Exception:
            logger.exception(f"Error in listener {callback!r}")

    # ── Polling ──────────────────────────────────────────────────────────

    async def poll_once(self) -> bool:
        """Fetch and deliver if changed. Returns True when observers were notified with new data."""
        async with self._poll_lock:
            if not self.online:
                self._deliver_stale()
                return False

            try:
                collection = await self.store.fetch()
            except SlotError as e:
                self.last_error = e.message
                logger.warning(f"Fetch from {self.store.name} failed, using cached snapshot: {e.message}")
                self._deliver_stale()
                return False

            self.last_sync_at = datetime.now(timezone.utc)
            self.last_error = None
            changed = self._accept(collection)

        await self._drain_pending()
        return changed

    def _accept(self, collection: SlotCollection) -> bool:
        fingerprint = collection.fingerprint
        if fingerprint == self._delivered_fingerprint:
            return False

        self._snapshot = collection
        self._delivered_fingerprint = fingerprint
        logger.info(f"Slots changed ({fingerprint[:12]}), notifying {len(self._observers)} listeners")
        self._notify(collection)
        return True

    def _deliver_stale(self) -> None:
        grace = self.config.stale_grace
        if grace is None or self._snapshot is None:
            return
        if self._last_notified_at is not None and self.clock() - self._last_notified_at < grace:
            return
        logger.info("Store unreachable, delivering cached snapshot")
        self._notify(self._snapshot)

    async def force_sync(self) -> bool:
        logger.debug("Force sync requested")
        return await self.poll_once()

    # ── Connectivity / visibility ────────────────────────────────────────

    async def set_online(self, online: bool) -> None:
        was_online = self.online
        self.online = online
        if online and not was_online:
            logger.info("Back online - syncing")
            await self.force_sync()
        elif not online and was_online:
            logger.info("Offline mode - using cached snapshot")

    async def notify_visible(self) -> None:
        """Host surface regained focus/visibility."""
        await self.force_sync()

    # ── Pending writes ───────────────────────────────────────────────────

    @property
    def pending(self) -> list[PendingWrite]:
        return list(self._pending)

    def enqueue(self, label: str, action: Callable[[], Awaitable[object]]) -> PendingWrite:
        """
        Defer a write until the store is reachable again.

        The action runs against fresh state after the next successful fetch,
        so it re-validates like any direct call.
        """
        item = PendingWrite(label=label, action=action)
        self._pending.append(item)
        logger.info(f"Queued pending write: {label} ({len(self._pending)} pending)")
        return item

    async def _drain_pending(self) -> None:
        # actions may call force_sync() themselves
        if self._draining or not self._pending:
            return

        self._draining = True
        try:
            while self._pending:
                item = self._pending[0]
                try:
                    await item.action()
                except BackendUnreachable as e:
                    logger.warning(f"Pending write {item.label} still unreachable: {e.message}")
                    break
                except SlotError as e:
                    item.error = e
                    logger.warning(f"Pending write {item.label} dropped: {e.message}")
                except Exception:
                    logger.exception(f"Pending write {item.label} failed")
                else:
                    logger.info(f"Pending write {item.label} applied")

                item.done = True
                self._pending.popleft()
        finally:
            self._draining = False

    # ── Background loop ──────────────────────────────────────────────────

    async def run(self) -> None:
        logger.info(
            f"sync loop started (store={self.store.name}, "
            f"interval={self.config.poll_interval}s)"
        )
        try:
            while True:
                try:
                    await self.poll_once()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("sync loop error")

                await asyncio.sleep(self.config.poll_interval)
        except asyncio.CancelledError:
            logger.info("sync loop cancelled")
            raise

    def start(self) -> asyncio.Task:
        """Spawn the polling task on the running loop."""
        if not self.running:
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
