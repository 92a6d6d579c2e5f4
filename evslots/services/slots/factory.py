# evslots/services/slots/factory.py
"""Select the SlotStore adapter at startup."""

import logging

from ...config import Settings
from .store import MemorySlotStore, SlotStore

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> SlotStore:
    kind = settings.slot_store
    slot_ids = settings.slot_id_list

    if kind == "memory":
        store = MemorySlotStore(slot_ids=slot_ids)

    elif kind == "file":
        from .file_store import FileSlotStore
        store = FileSlotStore(settings.data_dir, slot_ids=slot_ids)

    elif kind == "http":
        from .http_store import HttpSlotStore
        store = HttpSlotStore(
            settings.slots_url,
            slot_ids=slot_ids,
            write_method=settings.slots_write_method,
            timeout=settings.http_timeout,
            client_name=settings.client_name,
            backup_url=settings.slots_backup_url,
            admin_token=settings.admin_token,
            send_if_match=settings.slots_if_match,
        )

    elif kind == "redis":
        if not settings.redis_url:
            raise RuntimeError("REDIS_URL not set in .env")
        from .redis_store import RedisSlotStore
        store = RedisSlotStore.from_url(settings.redis_url, key=settings.redis_key, slot_ids=slot_ids)

    elif kind == "sql":
        from ...database import make_engine, make_session_factory
        from .sql_store import SqlSlotStore
        engine = make_engine(settings.resolved_database_url)
        store = SqlSlotStore(make_session_factory(engine), slot_ids=slot_ids)

    else:
        raise ValueError(f"Unknown SLOT_STORE: {kind}")

    logger.info(f"Using {store.name} slot store ({len(slot_ids)} slots)")
    return store
