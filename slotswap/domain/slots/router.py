"""Slot router - FastAPI endpoints for a user's own slots"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import (
    MessageResponse,
    SlotCreate,
    SlotEnvelope,
    SlotListResponse,
    SlotResponse,
    SlotUpdate,
)
from .service import SlotRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/slots", tags=["Slots"])


def get_slot_registry(db: Session = Depends(get_db)) -> SlotRegistry:
    """Dependency injection for SlotRegistry"""
    return SlotRegistry(db)


@router.get("", response_model=SlotListResponse)
def list_slots(
    current_user: User = Depends(get_current_user),
    registry: SlotRegistry = Depends(get_slot_registry),
):
    """Get all slots owned by the current user, earliest first"""
    slots = registry.list_owned_by(current_user.id)
    return SlotListResponse(slots=[SlotResponse.model_validate(s) for s in slots])


@router.get("/{slot_id}", response_model=SlotEnvelope)
def get_slot(
    slot_id: int,
    current_user: User = Depends(get_current_user),
    registry: SlotRegistry = Depends(get_slot_registry),
):
    slot = registry.get(current_user.id, slot_id)
    return SlotEnvelope(slot=SlotResponse.model_validate(slot))


@router.post("", response_model=SlotEnvelope, status_code=201)
def create_slot(
    data: SlotCreate,
    current_user: User = Depends(get_current_user),
    registry: SlotRegistry = Depends(get_slot_registry),
):
    """Create a new slot"""
    slot = registry.create(
        current_user.id,
        data.title,
        data.start_time,
        data.end_time,
        status=data.status,
    )
    return SlotEnvelope(slot=SlotResponse.model_validate(slot))


@router.patch("/{slot_id}", response_model=SlotEnvelope)
@router.put("/{slot_id}", response_model=SlotEnvelope)
def update_slot(
    slot_id: int,
    data: SlotUpdate,
    current_user: User = Depends(get_current_user),
    registry: SlotRegistry = Depends(get_slot_registry),
):
    """Update title, times or status of a slot that is not locked by a swap"""
    slot = registry.update(current_user.id, slot_id, data)
    return SlotEnvelope(slot=SlotResponse.model_validate(slot))


@router.delete("/{slot_id}", response_model=MessageResponse)
def delete_slot(
    slot_id: int,
    current_user: User = Depends(get_current_user),
    registry: SlotRegistry = Depends(get_slot_registry),
):
    registry.delete(current_user.id, slot_id)
    return MessageResponse(message="Slot deleted successfully")
