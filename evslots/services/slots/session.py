# evslots/services/slots/session.py
"""
Client-local session: "the booking this client believes it owns".

Never validated against the store; the token is compared only when the
client releases a slot. Persists until cleared or superseded by the next
booking.
"""

import json
import logging
import secrets
import time
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class ClientSession(BaseModel):
    email: str
    phone: str
    session_id: str = Field(alias="sessionId")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


def generate_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(6)}"


class SessionKeeper:
    """In-memory session keeper (one per client process)."""

    def __init__(self):
        self._session: ClientSession | None = None
        self._device_id: str | None = None

    def get(self) -> ClientSession | None:
        return self._session

    def set(self, session: ClientSession) -> None:
        self._session = session
        self._save()
        logger.info(f"Current user set: {session.email}")

    def clear(self, session_id: str | None = None) -> None:
        """Forget the session; with `session_id`, only if it is the current one."""
        if self._session is None:
            return
        if session_id is not None and self._session.session_id != session_id:
            return
        self._session = None
        self._save()

    @property
    def device_id(self) -> str:
        """Stable per-client id. Informational only."""
        if self._device_id is None:
            self._device_id = generate_id("device")
            self._save()
        return self._device_id

    def _save(self) -> None:
        pass


class FileSessionKeeper(SessionKeeper):
    """Session keeper that survives restarts (JSON file)."""

    def __init__(self, path: Path | str):
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            self._device_id = data.get("deviceId")
            if data.get("currentUser"):
                self._session = ClientSession.model_validate(data["currentUser"])
        except (OSError, ValueError, ValidationError) as e:
            # start without a session
            logger.warning(f"Ignoring unreadable session file {self.path}: {e}")

    def _save(self) -> None:
        data = {
            "deviceId": self._device_id,
            "currentUser": self._session.model_dump(by_alias=True) if self._session else None,
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
