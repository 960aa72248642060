"""Swap domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from ...models import ProposalStatus


class SwapRequestCreate(BaseModel):
    """Schema for proposing a swap"""

    offered_slot_id: int
    requested_slot_id: int


class SwapResponseRequest(BaseModel):
    accepted: bool


class SlotSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    start_time: datetime
    end_time: datetime


class ProposalResponse(BaseModel):
    """A proposal with denormalized participant and slot data for display"""

    id: int
    status: ProposalStatus
    created_at: datetime
    responded_at: Optional[datetime] = None
    proposer_id: int
    proposer_name: str
    proposer_email: str
    receiver_id: int
    receiver_name: str
    receiver_email: str
    offered_slot_id: Optional[int] = None
    requested_slot_id: Optional[int] = None
    # None once the slot has been deleted after the proposal was resolved
    offered_slot: Optional[SlotSummary] = None
    requested_slot: Optional[SlotSummary] = None


class ProposalEnvelope(BaseModel):
    message: Optional[str] = None
    proposal: ProposalResponse


class ProposalListResponse(BaseModel):
    incoming: list[ProposalResponse]
    outgoing: list[ProposalResponse]
