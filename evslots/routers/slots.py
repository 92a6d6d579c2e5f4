# evslots/routers/slots.py
"""
Slots API endpoints.

GET    /slots                  current collection + stats (ETag = fingerprint)
POST   /slots, PUT /slots      replace the whole collection (admin, If-Match guards)
DELETE /slots                  reset to defaults (admin)
GET    /slots/stats
POST   /slots/{id}/book
POST   /slots/{id}/release     token required
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request, Response, status

from ..dependencies import get_booking, get_events, get_store, require_admin
from ..errors import InvalidSnapshot
from ..models.slots import SlotCollection, SlotStats
from ..schemas.slots import (
    ActionResponse,
    BookRequest,
    BookResponse,
    ReleaseRequest,
    SlotsResponse,
    SlotsSaveResponse,
)
from ..services.events import EventEmitter
from ..services.slots import BookingService, SlotStore


router = APIRouter(prefix="/slots", tags=["slots"])


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _if_match(request: Request) -> str | None:
    value = request.headers.get("If-Match")
    if not value or value.strip() == "*":
        return None
    return value.strip().removeprefix("W/").strip('"')


@router.get("", response_model=SlotsResponse)
async def get_slots(response: Response, store: SlotStore = Depends(get_store)):
    """Current slots with stats."""
    collection = await store.fetch()
    response.headers["ETag"] = f'"{collection.fingerprint}"'
    response.headers["Cache-Control"] = "no-cache"

    return SlotsResponse(
        data=collection.to_snapshot(),
        timestamp=_now(),
        last_modified=store.last_modified,
        fingerprint=collection.fingerprint,
        stats=collection.stats(),
    )


@router.api_route(
    "",
    methods=["POST", "PUT"],
    response_model=SlotsSaveResponse,
    dependencies=[Depends(require_admin)],
)
async def save_slots(
    request: Request,
    store: SlotStore = Depends(get_store),
    events: EventEmitter = Depends(get_events),
):
    """Replace the whole collection (admin). The set of slot ids cannot change."""
    collection = SlotCollection.from_json(await request.body())

    current = await store.fetch()
    if set(collection.ids) != set(current.ids):
        raise InvalidSnapshot("Slot ids do not match the deployed slots")

    await store.replace(collection, expected=_if_match(request))

    stats = collection.stats()
    await events.emit("slots_replaced", {
        "fingerprint": collection.fingerprint,
        "occupied": stats.occupied,
    })

    return SlotsSaveResponse(
        message="Slots data saved successfully",
        timestamp=_now(),
        slots_count=stats.total,
        occupied_count=stats.occupied,
    )


@router.delete("", response_model=ActionResponse, dependencies=[Depends(require_admin)])
async def reset_slots(
    booking: BookingService = Depends(get_booking),
    events: EventEmitter = Depends(get_events),
):
    """Reset every slot to available (admin)."""
    defaults = await booking.reset()
    await events.emit("slots_reset", {"total": len(defaults)})
    return ActionResponse(message="Slots data reset to defaults", timestamp=_now())


@router.get("/stats", response_model=SlotStats)
async def get_stats(booking: BookingService = Depends(get_booking)):
    return await booking.stats()


@router.post("/{slot_id}/book", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
async def book_slot(
    slot_id: str,
    data: BookRequest,
    request: Request,
    booking: BookingService = Depends(get_booking),
    events: EventEmitter = Depends(get_events),
):
    token = await booking.book(
        slot_id,
        data.email,
        data.phone,
        device_id=data.device_id,
        client_info=data.user_agent or request.headers.get("User-Agent"),
    )
    await events.emit("slot_booked", {"slot_id": slot_id, "email": data.email})
    return BookResponse(slot_id=slot_id, session_id=token)


@router.post("/{slot_id}/release", response_model=ActionResponse)
async def release_slot(
    slot_id: str,
    data: ReleaseRequest,
    booking: BookingService = Depends(get_booking),
    events: EventEmitter = Depends(get_events),
):
    await booking.release(slot_id, data.session_id)
    await events.emit("slot_released", {"slot_id": slot_id, "admin": False})
    return ActionResponse(message=f"Slot {slot_id} is now available", timestamp=_now())
