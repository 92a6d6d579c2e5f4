import json

import fakeredis
import httpx
import pytest
from fastapi.testclient import TestClient

from evslots.config import Settings
from evslots.errors import BackendUnreachable, Conflict, InvalidSnapshot, SlotUnavailable
from evslots.main import create_app
from evslots.models.slots import SlotCollection
from evslots.services.events import EVENTS_QUEUE, EventEmitter
from evslots.services.slots import BookingService, MemorySlotStore, SyncEngine
from evslots.services.slots.http_store import HttpSlotStore

from .conftest import collection_with

ADMIN = {"X-Admin-Token": "secret"}


@pytest.fixture
def store():
    return MemorySlotStore()


@pytest.fixture
def app(store):
    settings = Settings(slot_store="memory", admin_token="secret")
    return create_app(settings=settings, store=store, events=EventEmitter(None))


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def book(client, slot_id, email="a@x.com", phone="555-1", **extra):
    return client.post(f"/slots/{slot_id}/book", json={"email": email, "phone": phone, **extra})


# ── Reads ────────────────────────────────────────────────────────────────

def test_get_slots(client):
    resp = client.get("/slots")

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert [slot["id"] for slot in body["data"]][:3] == ["A1", "A2", "A3"]
    assert body["stats"] == {"available": 10, "occupied": 0, "total": 10, "utilizationPercent": 0}
    assert resp.headers["ETag"] == f'"{body["fingerprint"]}"'


def test_stats(client):
    book(client, "A1")

    assert client.get("/slots/stats").json() == {
        "available": 9, "occupied": 1, "total": 10, "utilizationPercent": 10,
    }


def test_health(client, store):
    assert client.get("/health").json() == {"store": "memory", "reachable": True}

    store.online = False
    assert client.get("/health").json() == {"store": "memory", "reachable": False}


# ── Book / release ───────────────────────────────────────────────────────

def test_book_and_release(client):
    resp = book(client, "A1", userAgent="Android")
    assert resp.status_code == 201
    token = resp.json()["sessionId"]
    assert resp.json()["slotId"] == "A1"

    slot = client.get("/slots").json()["data"][0]
    assert slot["status"] == "occupied"
    assert slot["user"]["userAgent"] == "Android"

    resp = client.post("/slots/A1/release", json={"sessionId": "nope"})
    assert resp.status_code == 403
    assert resp.json() == {"success": False, "error": "Not authorized to release slot A1"}

    resp = client.post("/slots/A1/release", json={"sessionId": token})
    assert resp.status_code == 200

    resp = client.post("/slots/A1/release", json={"sessionId": token})
    assert resp.status_code == 409


def test_book_occupied_slot(client):
    book(client, "B2")

    resp = book(client, "B2", email="b@x.com")

    assert resp.status_code == 409
    assert resp.json()["success"] is False


def test_book_unknown_slot(client, store):
    resp = book(client, "Z9")

    assert resp.status_code == 404
    assert store.writes == 0


def test_book_requires_contact_details(client):
    assert book(client, "A1", email="").status_code == 422


def test_user_agent_header_used_as_client_info(client):
    client.post(
        "/slots/A2/book",
        json={"email": "a@x.com", "phone": "1"},
        headers={"User-Agent": "kiosk/1.0"},
    )

    assert client.get("/slots").json()["data"][1]["user"]["userAgent"] == "kiosk/1.0"


def test_unreachable_store(client, store):
    store.online = False

    resp = book(client, "A1")

    assert resp.status_code == 503


# ── Whole-collection writes ──────────────────────────────────────────────

def test_save_slots(client):
    snapshot = collection_with("A1").to_snapshot()

    resp = client.post("/slots", json=snapshot, headers=ADMIN)

    assert resp.status_code == 200
    assert resp.json()["occupiedCount"] == 1
    assert resp.json()["slotsCount"] == 10
    assert client.get("/slots").json()["data"][0]["status"] == "occupied"


def test_put_slots(client):
    resp = client.put("/slots", json=collection_with("B5").to_snapshot(), headers=ADMIN)

    assert resp.status_code == 200


@pytest.mark.parametrize("payload", [
    "{not json",
    json.dumps({"id": "A1"}),
    json.dumps([{"id": "A1", "status": "occupied"}]),
    json.dumps(SlotCollection.defaults(["A1", "A2"]).to_snapshot()),
])
def test_save_rejects_bad_payloads(client, store, payload):
    resp = client.post("/slots", content=payload, headers={"Content-Type": "application/json", **ADMIN})

    assert resp.status_code == 400
    assert resp.json()["success"] is False
    assert store.writes == 0


def test_save_with_stale_if_match(client):
    etag = client.get("/slots").headers["ETag"]
    book(client, "A1")

    resp = client.post(
        "/slots",
        json=collection_with("B1").to_snapshot(),
        headers={"If-Match": etag, **ADMIN},
    )

    assert resp.status_code == 409


def test_save_with_current_if_match(client):
    etag = client.get("/slots").headers["ETag"]

    resp = client.post(
        "/slots",
        json=collection_with("B1").to_snapshot(),
        headers={"If-Match": etag, **ADMIN},
    )

    assert resp.status_code == 200


@pytest.mark.parametrize("method", ["POST", "PUT"])
def test_save_without_admin_token_keeps_occupancy(client, method):
    book(client, "A1")

    resp = client.request(method, "/slots", json=SlotCollection.defaults().to_snapshot())

    assert resp.status_code == 403
    assert client.get("/slots").json()["data"][0]["status"] == "occupied"


# ── Admin ────────────────────────────────────────────────────────────────

def test_admin_routes_require_token(client):
    book(client, "A1")

    assert client.post("/admin/slots/A1/release").status_code == 403
    assert client.post("/admin/slots/A1/release", headers={"X-Admin-Token": "x"}).status_code == 403
    assert client.delete("/slots").status_code == 403

    resp = client.post("/admin/slots/A1/release", headers=ADMIN)
    assert resp.status_code == 200
    assert client.get("/slots").json()["stats"]["occupied"] == 0


def test_admin_release_of_available_slot(client):
    assert client.post("/admin/slots/A1/release", headers=ADMIN).status_code == 409


def test_reset_backup_restore(client):
    assert client.get("/admin/slots/backup", headers=ADMIN).status_code == 404
    assert client.post("/admin/slots/restore", headers=ADMIN).status_code == 404

    book(client, "A1")
    book(client, "A2")
    assert client.delete("/slots", headers=ADMIN).status_code == 200
    assert client.get("/slots").json()["stats"]["occupied"] == 0

    backup = client.get("/admin/slots/backup", headers=ADMIN).json()
    assert [slot["status"] for slot in backup["data"][:3]] == ["occupied", "occupied", "available"]

    assert client.post("/admin/slots/restore", headers=ADMIN).status_code == 200
    assert client.get("/slots").json()["stats"]["occupied"] == 2


def test_admin_open_without_configured_token(store):
    app = create_app(settings=Settings(slot_store="memory", admin_token=None), store=store,
                     events=EventEmitter(None))
    with TestClient(app) as client:
        assert client.delete("/slots").status_code == 200


# ── Remote clients over HTTP ─────────────────────────────────────────────

def remote_store(app, **kwargs) -> HttpSlotStore:
    # whole-document writes are an admin operation on the API
    kwargs.setdefault("admin_token", "secret")
    return HttpSlotStore(
        "http://testserver/slots",
        client_name="test-client",
        transport=httpx.ASGITransport(app=app),
        **kwargs,
    )


async def test_remote_booking_through_api(app, store):
    remote = remote_store(app)
    booking = BookingService(remote)

    token = await booking.book("A3", "r@x.com", "555-3")

    slot = (await store.fetch()).get("A3")
    assert slot.user.session_id == token
    assert slot.user.email == "r@x.com"


async def test_remote_write_conflict(app, store):
    remote = remote_store(app)
    seen = await remote.fetch()

    await store.replace(collection_with("B1"))

    with pytest.raises(Conflict):
        await remote.replace(collection_with("A1"), expected=seen.fingerprint)


async def test_two_remote_clients_race_for_one_slot(app, store):
    a = BookingService(remote_store(app))
    b = BookingService(remote_store(app))

    await a.book("A1", "a@x.com", "555-1")
    with pytest.raises(SlotUnavailable):
        await b.book("A1", "b@x.com", "555-2")


async def test_remote_sync_engine_sees_api_changes(app, store):
    engine = SyncEngine(remote_store(app))
    seen = []
    engine.subscribe(seen.append)
    await engine.poll_once()

    await store.replace(collection_with("A4"))
    await engine.poll_once()

    assert seen[-1].get("A4").is_occupied


async def test_remote_backup_and_admin_token(app, store):
    remote = remote_store(
        app,
        backup_url="http://testserver/admin/slots/backup",
        admin_token="secret",
    )

    assert await remote.fetch_backup() is None

    original = await remote.fetch()
    await remote.replace(collection_with("A1"))
    assert await remote.fetch_backup() == original


def mock_store(handler) -> HttpSlotStore:
    return HttpSlotStore("https://blob.test/slots.json", transport=httpx.MockTransport(handler))


async def test_hosted_blob_bare_list():
    requests = []

    def handler(request):
        requests.append(request)
        if request.method == "GET":
            return httpx.Response(200, json=collection_with("A2").to_snapshot())
        return httpx.Response(200, json=json.loads(request.content))

    blob = mock_store(handler)
    collection = await blob.fetch()
    await blob.replace(collection, expected=collection.fingerprint)

    assert collection.get("A2").is_occupied
    assert "_" in requests[0].url.params
    assert requests[0].headers["X-Slots-Client"] == "evslots"
    assert requests[1].headers["If-Match"] == collection.fingerprint


async def test_hosted_blob_never_written():
    blob = mock_store(lambda request: httpx.Response(200, content=b"null"))

    assert await blob.fetch() == SlotCollection.defaults()


async def test_unexpected_object_body_is_invalid_and_never_overwritten():
    methods = []

    def handler(request):
        methods.append(request.method)
        if request.method == "GET":
            return httpx.Response(200, json={"slots": collection_with("A2").to_snapshot()})
        return httpx.Response(200, json={"success": True})

    blob = mock_store(handler)

    with pytest.raises(InvalidSnapshot):
        await blob.fetch()
    with pytest.raises(InvalidSnapshot):
        await BookingService(blob).book("A1", "a@x.com", "555-1")
    assert "POST" not in methods


async def test_if_match_can_be_disabled_for_hosted_blobs():
    def handler(request):
        if request.method == "GET":
            return httpx.Response(200, json=SlotCollection.defaults().to_snapshot())
        # conditional writes only accept the blob's own ETag
        if "If-Match" in request.headers:
            return httpx.Response(412)
        return httpx.Response(200, json=json.loads(request.content))

    blob = HttpSlotStore(
        "https://blob.test/slots.json",
        send_if_match=False,
        transport=httpx.MockTransport(handler),
    )

    token = await BookingService(blob).book("A1", "a@x.com", "555-1")

    assert token.startswith("session_")


async def test_network_failure_is_unreachable():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(BackendUnreachable):
        await mock_store(handler).fetch()


async def test_server_error_is_unreachable():
    blob = mock_store(lambda request: httpx.Response(502, text="bad gateway"))

    with pytest.raises(BackendUnreachable):
        await blob.fetch()
    with pytest.raises(BackendUnreachable):
        await blob.replace(SlotCollection.defaults())


async def test_precondition_failed_is_conflict():
    def handler(request):
        if request.method == "GET":
            return httpx.Response(200, json=SlotCollection.defaults().to_snapshot())
        return httpx.Response(412)

    with pytest.raises(Conflict):
        await mock_store(handler).replace(SlotCollection.defaults(), expected="old")


# ── Events ───────────────────────────────────────────────────────────────

async def test_events_are_queued(store):
    redis = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    app = create_app(
        settings=Settings(slot_store="memory", admin_token="secret"),
        store=store,
        events=EventEmitter(redis),
    )
    transport = httpx.ASGITransport(app=app)

    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        resp = await client.post("/slots/A1/book", json={"email": "a@x.com", "phone": "1"})
        token = resp.json()["sessionId"]
        await client.post("/slots/A1/release", json={"sessionId": token})
        await client.post("/slots/A1/release", json={"sessionId": token})

    events = [json.loads(raw) for raw in await redis.lrange(EVENTS_QUEUE, 0, -1)]
    assert [event["type"] for event in events] == ["slot_booked", "slot_released"]
    assert events[0]["slot_id"] == "A1"
    assert events[1]["admin"] is False
    assert "ts" in events[0]


async def test_event_failure_does_not_break_booking(store):
    class BrokenRedis:
        async def rpush(self, *args):
            from redis.exceptions import ConnectionError
            raise ConnectionError("down")

    app = create_app(
        settings=Settings(slot_store="memory"),
        store=store,
        events=EventEmitter(BrokenRedis()),
    )

    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://t") as client:
        resp = await client.post("/slots/A1/book", json={"email": "a@x.com", "phone": "1"})

    assert resp.status_code == 201
