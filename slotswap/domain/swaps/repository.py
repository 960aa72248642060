"""Swap repository - Database operations for swap proposals"""

from datetime import datetime
from typing import NamedTuple, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, aliased

from ...models import PendingSwapSlot, ProposalStatus, Slot, SwapProposal, User


class ProposalRow(NamedTuple):
    """A proposal joined with the display data of its participants and slots"""

    proposal: SwapProposal
    proposer: User
    receiver: User
    offered_slot: Optional[Slot]
    requested_slot: Optional[Slot]


class SwapRepository:
    """
    Repository for swap proposal database operations.

    Write methods only flush; the negotiator owns the transaction.
    """

    @staticmethod
    def get_proposal(db: Session, proposal_id: int, for_update: bool = False) -> Optional[SwapProposal]:
        query = db.query(SwapProposal).filter(SwapProposal.id == proposal_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()

    @staticmethod
    def get_slots_for_update(db: Session, slot_ids: list[int]) -> dict[int, Slot]:
        """Row-lock the given slots in ascending id order and return them by id"""
        slots = (
            db.query(Slot)
            .filter(Slot.id.in_(slot_ids))
            .order_by(Slot.id.asc())
            .with_for_update()
            .populate_existing()
            .all()
        )
        return {slot.id: slot for slot in slots}

    @staticmethod
    def has_pending_claim(db: Session, slot_ids: list[int]) -> bool:
        """True if any of the slots is held by a pending proposal"""
        return (
            db.query(PendingSwapSlot.slot_id)
            .filter(PendingSwapSlot.slot_id.in_(slot_ids))
            .first()
            is not None
        )

    @staticmethod
    def create_proposal(db: Session, **proposal_data) -> SwapProposal:
        proposal = SwapProposal(status=ProposalStatus.PENDING.value, **proposal_data)
        db.add(proposal)
        db.flush()
        return proposal

    @staticmethod
    def claim_slots(db: Session, proposal_id: int, slot_ids: list[int]) -> None:
        """Record the slots as held by proposal_id; raises IntegrityError if one is already held"""
        for slot_id in slot_ids:
            db.add(PendingSwapSlot(slot_id=slot_id, proposal_id=proposal_id))
        db.flush()

    @staticmethod
    def release_slots(db: Session, proposal_id: int) -> int:
        released = (
            db.query(PendingSwapSlot)
            .filter(PendingSwapSlot.proposal_id == proposal_id)
            .delete(synchronize_session=False)
        )
        db.flush()
        return released

    @staticmethod
    def resolve_proposal(
        db: Session, proposal: SwapProposal, status: ProposalStatus, responded_at: datetime
    ) -> SwapProposal:
        proposal.status = status.value
        proposal.responded_at = responded_at
        db.flush()
        return proposal

    # Read-side joins
    @staticmethod
    def _proposal_rows_query(db: Session):
        proposer = aliased(User)
        receiver = aliased(User)
        offered = aliased(Slot)
        requested = aliased(Slot)
        return (
            db.query(SwapProposal, proposer, receiver, offered, requested)
            .join(proposer, SwapProposal.proposer_id == proposer.id)
            .join(receiver, SwapProposal.receiver_id == receiver.id)
            .outerjoin(offered, SwapProposal.offered_slot_id == offered.id)
            .outerjoin(requested, SwapProposal.requested_slot_id == requested.id)
        )

    @staticmethod
    def get_proposal_row(db: Session, proposal_id: int, user_id: int) -> Optional[ProposalRow]:
        """A proposal with its display data, if user_id takes part in it"""
        row = (
            SwapRepository._proposal_rows_query(db)
            .filter(
                SwapProposal.id == proposal_id,
                or_(SwapProposal.proposer_id == user_id, SwapProposal.receiver_id == user_id),
            )
            .first()
        )
        return ProposalRow(*row) if row else None

    @staticmethod
    def get_incoming_rows(db: Session, user_id: int) -> list[ProposalRow]:
        """Proposals user_id was asked to answer, newest first"""
        rows = (
            SwapRepository._proposal_rows_query(db)
            .filter(SwapProposal.receiver_id == user_id)
            .order_by(SwapProposal.created_at.desc(), SwapProposal.id.desc())
            .all()
        )
        return [ProposalRow(*row) for row in rows]

    @staticmethod
    def get_outgoing_rows(db: Session, user_id: int) -> list[ProposalRow]:
        """Proposals user_id made, newest first"""
        rows = (
            SwapRepository._proposal_rows_query(db)
            .filter(SwapProposal.proposer_id == user_id)
            .order_by(SwapProposal.created_at.desc(), SwapProposal.id.desc())
            .all()
        )
        return [ProposalRow(*row) for row in rows]
