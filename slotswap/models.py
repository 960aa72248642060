import enum
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from .database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every instant is stored in"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SlotStatus(str, enum.Enum):
    BUSY = "BUSY"  # default, not offered for swapping
    EXCHANGEABLE = "EXCHANGEABLE"  # owner opted in to swapping
    SWAP_LOCKED = "SWAP_LOCKED"  # engaged in exactly one pending proposal


class ProposalStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=False)
    hashed_password = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    slots = relationship("Slot", back_populates="owner")


class Slot(Base):
    __tablename__ = "slots"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_slots_interval"),
        Index("ix_slots_status_start", "status", "start_time"),
    )

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String(20), default=SlotStatus.BUSY.value, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    owner = relationship("User", back_populates="slots")


class SwapProposal(Base):
    __tablename__ = "swap_proposals"
    __table_args__ = (
        CheckConstraint("offered_slot_id <> requested_slot_id", name="ck_swap_proposals_distinct_slots"),
    )

    id = Column(Integer, primary_key=True, index=True)
    proposer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    receiver_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    # Proposals are kept as an audit trail, so a later slot deletion only clears the link
    offered_slot_id = Column(Integer, ForeignKey("slots.id", ondelete="SET NULL"), nullable=True)
    requested_slot_id = Column(Integer, ForeignKey("slots.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), default=ProposalStatus.PENDING.value, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    responded_at = Column(DateTime, nullable=True)

    proposer = relationship("User", foreign_keys=[proposer_id])
    receiver = relationship("User", foreign_keys=[receiver_id])
    offered_slot = relationship("Slot", foreign_keys=[offered_slot_id])
    requested_slot = relationship("Slot", foreign_keys=[requested_slot_id])


class PendingSwapSlot(Base):
    """
    One row per slot held by a PENDING proposal.

    The primary key on slot_id lets the store itself reject a second pending
    proposal touching the same slot, whichever role the slot plays in it.
    """

    __tablename__ = "pending_swap_slots"

    slot_id = Column(Integer, ForeignKey("slots.id"), primary_key=True)
    proposal_id = Column(Integer, ForeignKey("swap_proposals.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
