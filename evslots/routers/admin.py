# evslots/routers/admin.py
"""
Admin endpoints. Guarded by X-Admin-Token when ADMIN_TOKEN is set.

POST /admin/slots/{id}/release   release without a session token
GET  /admin/slots/backup         collection before the last write
POST /admin/slots/restore        make the backup current again
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from ..dependencies import get_booking, get_events, get_store, require_admin
from ..errors import NoBackup
from ..schemas.slots import ActionResponse
from ..services.events import EventEmitter
from ..services.slots import BookingService, SlotStore


router = APIRouter(
    prefix="/admin/slots",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


@router.post("/{slot_id}/release", response_model=ActionResponse)
async def admin_release_slot(
    slot_id: str,
    booking: BookingService = Depends(get_booking),
    events: EventEmitter = Depends(get_events),
):
    await booking.admin_release(slot_id)
    await events.emit("slot_released", {"slot_id": slot_id, "admin": True})
    return ActionResponse(
        message=f"Slot {slot_id} released by admin",
        timestamp=datetime.now(timezone.utc),
    )


@router.get("/backup")
async def get_backup(store: SlotStore = Depends(get_store)):
    backup = await store.fetch_backup()
    if backup is None:
        raise NoBackup()
    return {"success": True, "data": backup.to_snapshot(), "fingerprint": backup.fingerprint}


@router.post("/restore", response_model=ActionResponse)
async def restore_backup(
    booking: BookingService = Depends(get_booking),
    events: EventEmitter = Depends(get_events),
):
    restored = await booking.restore_backup()
    await events.emit("slots_replaced", {"fingerprint": restored.fingerprint, "restored": True})
    return ActionResponse(
        message="Slots restored from backup",
        timestamp=datetime.now(timezone.utc),
    )
