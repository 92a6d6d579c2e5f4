"""
Reset the configured store (SLOT_STORE) to the default slots,
or restore the backup taken before the last write.

    python scripts/reset_slots.py
    python scripts/reset_slots.py --restore
"""

import argparse
import asyncio
import logging

from evslots.config import get_settings
from evslots.errors import SlotError
from evslots.services.slots import BookingService, build_store


async def main(restore: bool) -> int:
    settings = get_settings()
    store = build_store(settings)
    booking = BookingService(store)
    try:
        if restore:
            collection = await booking.restore_backup()
            print(f"Restored {len(collection)} slots from backup")
        else:
            collection = await booking.reset()
            print(f"Reset {len(collection)} slots: {', '.join(collection.ids)}")
        stats = await booking.stats()
        print(f"available={stats.available} occupied={stats.occupied} total={stats.total}")
        return 0
    except SlotError as e:
        print(f"Failed: {e.message}")
        return 1
    finally:
        await store.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--restore", action="store_true", help="restore the backup instead of resetting")
    args = parser.parse_args()
    raise SystemExit(asyncio.run(main(args.restore)))
