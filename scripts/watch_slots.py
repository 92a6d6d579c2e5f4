"""
Debug watcher: follows the configured store (SLOT_STORE) and prints
the slot table every time it changes.
With SESSION_FILE set, the slot held by that client session is marked with *.

    python scripts/watch_slots.py
"""

import asyncio
import logging
from datetime import datetime, timezone

from evslots.config import get_settings
from evslots.models.slots import SlotCollection
from evslots.services.slots import FileSessionKeeper, SessionKeeper, SyncConfig, SyncEngine, build_store


def format_duration(start: datetime, now: datetime) -> str:
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    minutes = max(0, int((now - start).total_seconds() // 60))
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m" if hours else f"{minutes}m"


def dump(collection: SlotCollection, sessions: SessionKeeper | None = None) -> None:
    now = datetime.now(timezone.utc)
    stats = collection.stats()
    session = sessions.get() if sessions is not None else None
    print(
        f"\n[{now:%H:%M:%S}] available={stats.available} occupied={stats.occupied} "
        f"total={stats.total} utilization={stats.utilization_percent}%"
    )
    for slot in collection:
        if slot.is_occupied:
            user = slot.user
            mine = "*" if session is not None and user.session_id == session.session_id else " "
            print(
                f" {mine}{slot.id:<4} OCCUPIED  {user.email:<28} {user.phone:<14} "
                f"{format_duration(user.start_time, now)}"
            )
        else:
            print(f"  {slot.id:<4} available")


async def main() -> None:
    settings = get_settings()
    store = build_store(settings)
    sessions = FileSessionKeeper(settings.session_file) if settings.session_file else None
    engine = SyncEngine(store, SyncConfig.from_settings(settings))
    engine.subscribe(lambda collection: dump(collection, sessions))

    engine.start()
    try:
        await asyncio.Event().wait()
    finally:
        await engine.stop()
        await store.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
