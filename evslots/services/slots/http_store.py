# evslots/services/slots/http_store.py
"""
Remote JSON document over HTTP.

Works against:
- the evslots API (GET /slots returns {"success": true, "data": [...]},
  POST/PUT /slots accepts the bare list, If-Match guards concurrent writes)
- a hosted JSON blob (Firebase RTDB `.../slots.json`, raw file hosting)
  that returns and accepts the bare list; with send_if_match off
  (SLOTS_IF_MATCH=false) the write is last-write-wins.

Every network failure, timeout or 5xx is reported as BackendUnreachable.
"""

import logging
import time
from typing import Iterable

import httpx

from ...errors import BackendUnreachable, Conflict, InvalidSnapshot
from ...models.slots import DEFAULT_SLOT_IDS, SlotCollection
from .store import SlotStore

logger = logging.getLogger(__name__)

CLIENT_HEADER = "X-Slots-Client"


class HttpSlotStore(SlotStore):

    name = "http"

    def __init__(
        self,
        url: str,
        slot_ids: Iterable[str] = DEFAULT_SLOT_IDS,
        write_method: str = "POST",
        timeout: float = 10.0,
        client_name: str = "evslots",
        backup_url: str | None = None,
        admin_token: str | None = None,
        send_if_match: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(slot_ids)
        self.url = url
        self.write_method = write_method.upper()
        self.timeout = timeout
        self.client_name = client_name
        self.backup_url = backup_url
        self.admin_token = admin_token
        self.supports_conflict_detection = send_if_match
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {
            CLIENT_HEADER: self.client_name,
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
        }
        if self.admin_token:
            headers["X-Admin-Token"] = self.admin_token
        return headers

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                resp = await client.request(method, url, **kwargs)
            except httpx.HTTPError as e:
                logger.warning(f"Slots request failed: {method} {url} -> {e!r}")
                raise BackendUnreachable(f"{method} {url} failed: {e!r}") from e

        if resp.status_code >= 500:
            logger.warning(f"Slots backend error: {method} {url} -> {resp.status_code}")
            raise BackendUnreachable(f"{method} {url} -> {resp.status_code}")
        return resp

    # ── Read ─────────────────────────────────────────────────────────────

    async def fetch(self) -> SlotCollection:
        resp = await self._request(
            "GET",
            self.url,
            headers=self._headers(),
            # cache-busting for hosted blobs behind a CDN
            params={"_": int(time.time() * 1000)},
        )
        if resp.status_code >= 400:
            raise BackendUnreachable(f"GET {self.url} -> {resp.status_code}")
        return self._parse(resp)

    async def fetch_backup(self) -> SlotCollection | None:
        if not self.backup_url:
            return None
        resp = await self._request("GET", self.backup_url, headers=self._headers())
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise BackendUnreachable(f"GET {self.backup_url} -> {resp.status_code}")
        return self._parse(resp, missing_ok=True)

    def _parse(self, resp: httpx.Response, missing_ok: bool = False) -> SlotCollection | None:
        try:
            body = resp.json()
        except ValueError as e:
            raise InvalidSnapshot(f"Invalid JSON from {resp.request.url}") from e

        if isinstance(body, dict):
            if body.get("success") is False:
                raise BackendUnreachable(body.get("error") or "Backend reported failure")
            if not isinstance(body.get("data"), list):
                raise InvalidSnapshot(f"Unexpected response shape from {resp.request.url}")
            body = body["data"]

        if body is None:
            # Hosted blob that was never written (literal null)
            return None if missing_ok else self.default_collection()
        return SlotCollection.from_snapshot(body)

    # ── Write ────────────────────────────────────────────────────────────

    async def replace(self, collection: SlotCollection, expected: str | None = None) -> None:
        headers = self._headers()
        if expected is not None and self.supports_conflict_detection:
            headers["If-Match"] = expected

        resp = await self._request(
            self.write_method,
            self.url,
            headers=headers,
            json=collection.to_snapshot(),
        )

        if resp.status_code in (409, 412):
            raise Conflict("Slots were modified concurrently, fetch and retry")
        if resp.status_code == 400:
            raise InvalidSnapshot(_error_message(resp))
        if resp.status_code >= 400:
            raise BackendUnreachable(f"{self.write_method} {self.url} -> {resp.status_code}")

        logger.info(f"Slots saved to {self.url} ({len(collection)} slots)")


def _error_message(resp: httpx.Response) -> str:
    try:
        return resp.json().get("error") or resp.text
    except (ValueError, AttributeError):
        return resp.text
