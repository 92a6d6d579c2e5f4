# evslots/services/slots/file_store.py
"""
JSON file storage for slots.

Layout under data_dir:
    ev-slots.json          current collection (pretty-printed list)
    ev-slots-backup.json   collection before the last replace

A missing data file is initialised with the default slots on first fetch.
The expected-fingerprint check is atomic only within one process;
separate processes writing the same file are last-write-wins.
"""

import asyncio
import logging
import os
import shutil
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from ...errors import BackendUnreachable
from ...models.slots import DEFAULT_SLOT_IDS, SlotCollection
from .store import SlotStore, check_expected

logger = logging.getLogger(__name__)


DATA_FILE = "ev-slots.json"
BACKUP_FILE = "ev-slots-backup.json"


class FileSlotStore(SlotStore):

    name = "file"
    supports_conflict_detection = True

    def __init__(self, data_dir: Path | str, slot_ids: Iterable[str] = DEFAULT_SLOT_IDS):
        super().__init__(slot_ids)
        self.data_dir = Path(data_dir)
        self.data_file = self.data_dir / DATA_FILE
        self.backup_file = self.data_dir / BACKUP_FILE
        self._lock = threading.Lock()

    # ── Read ─────────────────────────────────────────────────────────────

    async def fetch(self) -> SlotCollection:
        return await asyncio.to_thread(self._fetch_sync)

    def _fetch_sync(self) -> SlotCollection:
        with self._lock:
            try:
                if not self.data_file.exists():
                    collection = self.default_collection()
                    self._write(collection)
                    logger.info(f"INIT - Created default slots data file (slots: {len(collection)})")
                    return collection
                return self._read(self.data_file)
            except OSError as e:
                raise BackendUnreachable(f"Could not read slots data: {e}") from e

    def _read(self, path: Path) -> SlotCollection:
        raw = path.read_text(encoding="utf-8")
        self.last_modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
        return SlotCollection.from_json(raw)

    async def fetch_backup(self) -> SlotCollection | None:
        return await asyncio.to_thread(self._fetch_backup_sync)

    def _fetch_backup_sync(self) -> SlotCollection | None:
        with self._lock:
            if not self.backup_file.exists():
                return None
            try:
                raw = self.backup_file.read_text(encoding="utf-8")
            except OSError as e:
                raise BackendUnreachable(f"Could not read backup: {e}") from e
            return SlotCollection.from_json(raw)

    # ── Write ────────────────────────────────────────────────────────────

    async def replace(self, collection: SlotCollection, expected: str | None = None) -> None:
        await asyncio.to_thread(self._replace_sync, collection, expected)

    def _replace_sync(self, collection: SlotCollection, expected: str | None) -> None:
        with self._lock:
            try:
                if self.data_file.exists():
                    if expected is not None:
                        check_expected(self._read(self.data_file), expected)
                    shutil.copyfile(self.data_file, self.backup_file)
                self._write(collection)
            except OSError as e:
                raise BackendUnreachable(f"Failed to save data to file: {e}") from e

        logger.info(
            f"SAVE - Data saved (slots: {len(collection)}, "
            f"occupied: {collection.stats().occupied})"
        )

    def _write(self, collection: SlotCollection) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        tmp = self.data_file.with_suffix(".json.tmp")
        tmp.write_text(collection.to_json(indent=4), encoding="utf-8")
        os.replace(tmp, self.data_file)
        self.last_modified = datetime.now(timezone.utc)
