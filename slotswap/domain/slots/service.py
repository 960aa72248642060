"""Slot service - the slot registry"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...database import unit_of_work
from ...locking import slot_locks
from ...models import Slot, SlotStatus, User
from ...shared.validators import validate_interval, validate_title
from ..errors import InvalidInputError, LockedResourceError, NotFoundError
from .repository import SlotRepository
from .schemas import SlotUpdate

logger = logging.getLogger(__name__)

# Statuses an owner may set directly; SWAP_LOCKED belongs to the negotiator
OWNER_SETTABLE_STATUSES = (SlotStatus.BUSY, SlotStatus.EXCHANGEABLE)


def _owner_status(value) -> str:
    if value is None:
        raise InvalidInputError("status cannot be null")
    try:
        status = SlotStatus(value)
    except ValueError as e:
        raise InvalidInputError(f"Unknown slot status: {value}") from e
    if status not in OWNER_SETTABLE_STATUSES:
        raise InvalidInputError("Status must be BUSY or EXCHANGEABLE")
    return status.value


class SlotRegistry:
    """
    Owns slot records and their lifecycle status.

    Every user-facing operation is scoped to the owning identity. The only
    unscoped writer is ``set_status_and_owner``, reserved for the swap
    negotiator while it holds its own transaction.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = SlotRepository()

    def _get_owned(self, owner_id: int, slot_id: int, for_update: bool = False) -> Slot:
        slot = self.repo.get_slot_for_owner(self.db, slot_id, owner_id, for_update=for_update)
        if not slot:
            raise NotFoundError("Slot not found")
        return slot

    def create(
        self,
        owner_id: int,
        title: Optional[str],
        start_time: datetime,
        end_time: datetime,
        status: Optional[SlotStatus] = None,
    ) -> Slot:
        """Create a slot; status defaults to BUSY"""
        title = validate_title(title)
        start_time, end_time = validate_interval(start_time, end_time)
        status_value = _owner_status(status) if status is not None else SlotStatus.BUSY.value

        with unit_of_work(self.db):
            slot = self.repo.create_slot(
                self.db,
                owner_id,
                title=title,
                start_time=start_time,
                end_time=end_time,
                status=status_value,
            )
        logger.info(f"📅 Slot {slot.id} created for user {owner_id} ({status_value})")
        return slot

    def update(self, owner_id: int, slot_id: int, changes: SlotUpdate) -> Slot:
        """Apply the fields present in ``changes``; a locked slot cannot be edited"""
        fields = changes.model_dump(exclude_unset=True)
        if not fields:
            raise InvalidInputError("No valid fields to update")

        with slot_locks.hold(slot_id):
            with unit_of_work(self.db):
                slot = self._get_owned(owner_id, slot_id, for_update=True)
                if slot.status == SlotStatus.SWAP_LOCKED.value:
                    logger.warning(f"⚠️ User {owner_id} tried to edit locked slot {slot_id}")
                    raise LockedResourceError("Slot is part of a pending swap and cannot be edited")

                updates = {}
                if "title" in fields:
                    updates["title"] = validate_title(fields["title"])
                if "status" in fields:
                    updates["status"] = _owner_status(fields["status"])
                for key in ("start_time", "end_time"):
                    if key in fields and fields[key] is None:
                        raise InvalidInputError(f"{key} cannot be null")

                if "start_time" in fields or "end_time" in fields:
                    start_time, end_time = validate_interval(
                        fields.get("start_time", slot.start_time),
                        fields.get("end_time", slot.end_time),
                    )
                    updates["start_time"] = start_time
                    updates["end_time"] = end_time

                self.repo.update_slot(self.db, slot, **updates)
        return slot

    def delete(self, owner_id: int, slot_id: int) -> None:
        with slot_locks.hold(slot_id):
            with unit_of_work(self.db):
                slot = self._get_owned(owner_id, slot_id, for_update=True)
                if slot.status == SlotStatus.SWAP_LOCKED.value:
                    logger.warning(f"⚠️ User {owner_id} tried to delete locked slot {slot_id}")
                    raise LockedResourceError("Slot is part of a pending swap and cannot be deleted")
                self.repo.delete_slot(self.db, slot)
        logger.info(f"🗑️ Slot {slot_id} deleted by user {owner_id}")

    def get(self, owner_id: int, slot_id: int) -> Slot:
        return self._get_owned(owner_id, slot_id)

    def list_owned_by(self, owner_id: int) -> list[Slot]:
        return self.repo.get_slots_by_owner(self.db, owner_id)

    def list_exchangeable_excluding(self, owner_id: int) -> list[tuple[Slot, User]]:
        """Exchangeable slots owned by anyone else, ordered by start ascending"""
        return self.repo.get_exchangeable_slots(self.db, owner_id)

    def set_status_and_owner(
        self, slot_id: int, status: SlotStatus, owner_id: Optional[int] = None
    ) -> Slot:
        """
        Privileged transition used by the swap negotiator.

        Must be called inside the negotiator's unit of work; it neither
        commits nor takes slot locks itself.
        """
        slot = self.repo.get_slot(self.db, slot_id, for_update=True)
        if not slot:
            raise NotFoundError("Slot not found")
        updates = {"status": SlotStatus(status).value}
        if owner_id is not None:
            updates["owner_id"] = owner_id
        return self.repo.update_slot(self.db, slot, **updates)
