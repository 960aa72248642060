"""Slot domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from ...models import SlotStatus


class SlotCreate(BaseModel):
    """Schema for creating a new slot"""

    title: str
    start_time: datetime
    end_time: datetime
    status: Optional[SlotStatus] = None


class SlotUpdate(BaseModel):
    """
    Partial update of a slot.

    Every field is independently optional; only fields present in the
    request are applied. Use ``model_dump(exclude_unset=True)`` to get them.
    """

    title: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: Optional[SlotStatus] = None


class SlotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    title: str
    start_time: datetime
    end_time: datetime
    status: SlotStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ExchangeableSlotResponse(SlotResponse):
    """A slot offered by another user, with its owner's display data"""

    owner_name: str
    owner_email: str


class SlotEnvelope(BaseModel):
    slot: SlotResponse


class SlotListResponse(BaseModel):
    slots: list[SlotResponse]


class ExchangeableSlotListResponse(BaseModel):
    slots: list[ExchangeableSlotResponse]


class MessageResponse(BaseModel):
    message: str
