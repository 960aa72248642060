"""Slot repository - Database operations for slots"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Slot, SlotStatus, User


class SlotRepository:
    """
    Repository for slot database operations.

    Methods only flush; the calling service owns the transaction.
    """

    @staticmethod
    def get_slot(db: Session, slot_id: int, for_update: bool = False) -> Optional[Slot]:
        """Get a slot by id regardless of owner"""
        query = db.query(Slot).filter(Slot.id == slot_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    @staticmethod
    def get_slot_for_owner(
        db: Session, slot_id: int, owner_id: int, for_update: bool = False
    ) -> Optional[Slot]:
        """Get a slot only if it belongs to owner_id"""
        query = db.query(Slot).filter(Slot.id == slot_id, Slot.owner_id == owner_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    @staticmethod
    def get_slots_by_owner(db: Session, owner_id: int) -> list[Slot]:
        return (
            db.query(Slot)
            .filter(Slot.owner_id == owner_id)
            .order_by(Slot.start_time.asc(), Slot.id.asc())
            .all()
        )

    @staticmethod
    def get_exchangeable_slots(db: Session, exclude_owner_id: int) -> list[tuple[Slot, User]]:
        """Exchangeable slots of everyone but exclude_owner_id, earliest first"""
        return (
            db.query(Slot, User)
            .join(User, Slot.owner_id == User.id)
            .filter(
                Slot.status == SlotStatus.EXCHANGEABLE.value,
                Slot.owner_id != exclude_owner_id,
            )
            .order_by(Slot.start_time.asc(), Slot.id.asc())
            .all()
        )

    @staticmethod
    def create_slot(db: Session, owner_id: int, **slot_data) -> Slot:
        slot = Slot(owner_id=owner_id, **slot_data)
        db.add(slot)
        db.flush()
        return slot

    @staticmethod
    def update_slot(db: Session, slot: Slot, **updates) -> Slot:
        """Update a slot with provided fields"""
        for key, value in updates.items():
            setattr(slot, key, value)
        db.flush()
        return slot

    @staticmethod
    def delete_slot(db: Session, slot: Slot) -> None:
        db.delete(slot)
        db.flush()
