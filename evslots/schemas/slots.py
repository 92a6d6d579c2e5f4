# evslots/schemas/slots.py
"""
Pydantic schemas for slots API.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from ..models.slots import SlotStats


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SlotsResponse(ApiModel):
    """Current collection with stats (GET /slots)."""
    success: bool = True
    data: list[dict]
    timestamp: datetime
    last_modified: Optional[datetime] = Field(default=None, alias="lastModified")
    fingerprint: str
    stats: SlotStats


class SlotsSaveResponse(ApiModel):
    success: bool = True
    message: str
    timestamp: datetime
    slots_count: int = Field(alias="slotsCount")
    occupied_count: int = Field(alias="occupiedCount")


class BookRequest(ApiModel):
    email: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    device_id: Optional[str] = Field(default=None, alias="deviceId")
    user_agent: Optional[str] = Field(default=None, alias="userAgent")


class BookResponse(ApiModel):
    success: bool = True
    slot_id: str = Field(alias="slotId")
    session_id: str = Field(alias="sessionId")


class ReleaseRequest(ApiModel):
    session_id: str = Field(alias="sessionId", min_length=1)


class ActionResponse(ApiModel):
    success: bool = True
    message: str
    timestamp: datetime
