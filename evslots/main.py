"""
evslots/main.py

HTTP API over one SlotStore.

Remote clients (HttpSlotStore + SyncEngine) and the booking/admin UIs
share the collection through these endpoints.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .errors import SlotError
from .middleware.audit import audit_middleware
from .routers import admin, slots
from .services.events import EventEmitter
from .services.slots import BookingService, SlotStore, build_store

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    store: SlotStore | None = None,
    events: EventEmitter | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    store = store or build_store(settings)
    events = events or EventEmitter.from_url(settings.redis_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await store.close()
        await events.close()

    app = FastAPI(title="EV Slots API", lifespan=lifespan)

    app.state.settings = settings
    app.state.store = store
    app.state.booking = BookingService(store)
    app.state.events = events

    # ===== Middleware =====
    app.middleware("http")(audit_middleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "If-Match", "X-Slots-Client", "X-Admin-Token"],
        expose_headers=["ETag"],
    )

    @app.exception_handler(SlotError)
    async def slot_error_handler(request: Request, exc: SlotError):
        logger.info(f"{request.method} {request.url.path} -> {type(exc).__name__}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.message},
        )

    @app.get("/health")
    async def health():
        try:
            await store.fetch()
            reachable = True
        except SlotError:
            reachable = False
        return {"store": store.name, "reachable": reachable}

    app.include_router(slots.router)
    app.include_router(admin.router)

    return app


app = create_app()
