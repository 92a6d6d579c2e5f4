# evslots/config.py

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

from .models.slots import DEFAULT_SLOT_IDS

BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    # Which SlotStore adapter serves the authoritative collection
    slot_store: Literal["memory", "file", "http", "redis", "sql"] = "file"
    slot_ids: str = ",".join(DEFAULT_SLOT_IDS)

    # file
    data_dir: Path = BASE_DIR / "data"

    # http
    slots_url: str = "http://localhost:8000/slots"
    slots_backup_url: str | None = None
    slots_write_method: Literal["POST", "PUT"] = "POST"
    # off for hosted blobs that answer 412 to a foreign If-Match (last-write-wins)
    slots_if_match: bool = True
    http_timeout: float = 10.0

    # redis (store backend and event queue)
    redis_url: str | None = None
    redis_key: str = "slots:current"

    # sql
    database_url: str = "sqlite:///./data/slots.db"

    # sync
    poll_interval: float = 3.0
    stale_grace: float | None = 30.0

    admin_token: str | None = None
    client_name: str = "evslots"
    session_file: Path | None = None

    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        extra="ignore",
    )

    @property
    def slot_id_list(self) -> list[str]:
        """SLOT_IDS=A1,A2,B1"""
        return [part.strip() for part in self.slot_ids.split(",") if part.strip()]

    @property
    def resolved_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///./"):
            relative_path = url.replace("sqlite:///./", "")
            absolute_path = BASE_DIR / relative_path
            return f"sqlite:///{absolute_path}"
        return url


@lru_cache
def get_settings() -> Settings:
    return Settings()
