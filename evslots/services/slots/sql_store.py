# evslots/services/slots/sql_store.py
"""
SQL storage for slots (SQLAlchemy, one row per named document).

The row keeps the fingerprint of its data; replace() with an expected
fingerprint is a conditional UPDATE, so a concurrent writer makes it
match zero rows and the write surfaces as Conflict.
The previous document is copied into the `backup` column by the same UPDATE.

Queries are synchronous and run via asyncio.to_thread.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ...errors import BackendUnreachable, Conflict
from ...models.generated import SlotDocuments
from ...models.slots import DEFAULT_SLOT_IDS, SlotCollection
from .store import SlotStore

logger = logging.getLogger(__name__)


class SqlSlotStore(SlotStore):

    name = "sql"
    supports_conflict_detection = True

    def __init__(
        self,
        session_factory: sessionmaker,
        document: str = "default",
        slot_ids: Iterable[str] = DEFAULT_SLOT_IDS,
    ):
        super().__init__(slot_ids)
        self.session_factory = session_factory
        self.document = document

    def _load(self, db: Session) -> SlotDocuments | None:
        return db.execute(
            select(SlotDocuments).where(SlotDocuments.name == self.document)
        ).scalar_one_or_none()

    def _insert(self, db: Session, collection: SlotCollection) -> None:
        db.add(SlotDocuments(
            name=self.document,
            data=collection.to_json(),
            fingerprint=collection.fingerprint,
            updated_at=_now(),
        ))
        db.commit()

    # ── Read ─────────────────────────────────────────────────────────────

    async def fetch(self) -> SlotCollection:
        return await asyncio.to_thread(self._fetch_sync)

    def _fetch_sync(self) -> SlotCollection:
        db = self.session_factory()
        try:
            row = self._load(db)
            if row is None:
                defaults = self.default_collection()
                try:
                    self._insert(db, defaults)
                    logger.info(f"Initialised default slots document '{self.document}'")
                    return defaults
                except IntegrityError:
                    # lost the race to another initialiser
                    db.rollback()
                    row = self._load(db)
            self.last_modified = _parse_ts(row.updated_at)
            return SlotCollection.from_json(row.data)
        except SQLAlchemyError as e:
            raise BackendUnreachable(f"Database read failed: {e}") from e
        finally:
            db.close()

    async def fetch_backup(self) -> SlotCollection | None:
        return await asyncio.to_thread(self._fetch_backup_sync)

    def _fetch_backup_sync(self) -> SlotCollection | None:
        db = self.session_factory()
        try:
            row = self._load(db)
            if row is None or row.backup is None:
                return None
            return SlotCollection.from_json(row.backup)
        except SQLAlchemyError as e:
            raise BackendUnreachable(f"Database read failed: {e}") from e
        finally:
            db.close()

    # ── Write ────────────────────────────────────────────────────────────

    async def replace(self, collection: SlotCollection, expected: str | None = None) -> None:
        await asyncio.to_thread(self._replace_sync, collection, expected)

    def _replace_sync(self, collection: SlotCollection, expected: str | None) -> None:
        db = self.session_factory()
        try:
            stmt = update(SlotDocuments).where(SlotDocuments.name == self.document)
            if expected is not None:
                stmt = stmt.where(SlotDocuments.fingerprint == expected)
            stmt = stmt.values(
                backup=SlotDocuments.data,
                data=collection.to_json(),
                fingerprint=collection.fingerprint,
                updated_at=_now(),
            )
            result = db.execute(stmt.execution_options(synchronize_session=False))

            if result.rowcount == 0:
                if self._load(db) is not None:
                    db.rollback()
                    raise Conflict("Slots were modified concurrently, fetch and retry")
                self._insert(db, collection)
            else:
                db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise BackendUnreachable(f"Database write failed: {e}") from e
        finally:
            db.close()

        self.last_modified = datetime.now(timezone.utc)
        logger.info(f"Slots saved to document '{self.document}' ({len(collection)} slots)")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None
