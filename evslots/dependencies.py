# Dependencies for FastAPI routers (instances live on app.state)

import hmac

from fastapi import Header, HTTPException, Request

from .services.events import EventEmitter
from .services.slots import BookingService, SlotStore


def get_store(request: Request) -> SlotStore:
    return request.app.state.store


def get_booking(request: Request) -> BookingService:
    return request.app.state.booking


def get_events(request: Request) -> EventEmitter:
    return request.app.state.events


def require_admin(
    request: Request,
    x_admin_token: str | None = Header(None),
) -> None:
    """Admin routes: X-Admin-Token must match ADMIN_TOKEN when one is configured."""
    expected = request.app.state.settings.admin_token
    if not expected:
        return
    if not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise HTTPException(status_code=403, detail="Admin token required")
