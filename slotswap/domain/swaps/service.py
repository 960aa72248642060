"""Swap service - the swap negotiation protocol"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...config import TX_RETRY_ATTEMPTS
from ...database import run_in_transaction
from ...locking import SlotLockTable, slot_locks
from ...models import ProposalStatus, SlotStatus, SwapProposal, utcnow
from ..errors import (
    AlreadyLockedError,
    ForbiddenError,
    NotEligibleError,
    NotFoundError,
    NotPendingError,
    SelfSwapError,
)
from ..slots.service import SlotRegistry
from .repository import ProposalRow, SwapRepository

logger = logging.getLogger(__name__)


class SwapNegotiator:
    """
    Drives the per-proposal state machine::

        [none] --propose--> PENDING --accept--> ACCEPTED
                                    --reject--> REJECTED

    Both transitions run as one transaction: eligibility checks and writes
    see the same rows, and nothing is written unless everything succeeds.
    This is the only writer that moves slots into or out of SWAP_LOCKED.
    """

    def __init__(
        self,
        db: Session,
        registry: Optional[SlotRegistry] = None,
        locks: SlotLockTable = slot_locks,
        retry_attempts: int = TX_RETRY_ATTEMPTS,
    ):
        self.db = db
        self.repo = SwapRepository()
        self.slots = registry or SlotRegistry(db)
        self.locks = locks
        self.retry_attempts = retry_attempts

    # ------------------------------------------------------------------
    # propose
    # ------------------------------------------------------------------

    def propose(self, proposer_id: int, offered_slot_id: int, requested_slot_id: int) -> SwapProposal:
        """Offer one of proposer's exchangeable slots for someone else's"""
        with self.locks.hold(offered_slot_id, requested_slot_id):
            proposal = run_in_transaction(
                self.db,
                lambda: self._propose(proposer_id, offered_slot_id, requested_slot_id),
                attempts=self.retry_attempts,
            )

        logger.info(
            f"🔁 Swap proposal {proposal.id} created: user {proposer_id} offers slot {offered_slot_id} "
            f"for slot {requested_slot_id}"
        )
        return proposal

    def _propose(self, proposer_id: int, offered_slot_id: int, requested_slot_id: int) -> SwapProposal:
        slots = self.repo.get_slots_for_update(self.db, [offered_slot_id, requested_slot_id])

        offered = slots.get(offered_slot_id)
        if not offered or offered.owner_id != proposer_id:
            raise NotFoundError("Your slot not found")
        if offered.status != SlotStatus.EXCHANGEABLE.value:
            raise NotEligibleError("Your slot must be EXCHANGEABLE")

        requested = slots.get(requested_slot_id)
        if not requested:
            raise NotFoundError("Requested slot not found")
        if requested.owner_id == proposer_id:
            raise SelfSwapError("Cannot swap with your own slot")
        if requested.status != SlotStatus.EXCHANGEABLE.value:
            raise NotEligibleError("Requested slot must be EXCHANGEABLE")

        slot_ids = [offered.id, requested.id]
        if self.repo.has_pending_claim(self.db, slot_ids):
            raise AlreadyLockedError()

        proposal = self.repo.create_proposal(
            self.db,
            proposer_id=proposer_id,
            receiver_id=requested.owner_id,
            offered_slot_id=offered.id,
            requested_slot_id=requested.id,
        )
        try:
            self.repo.claim_slots(self.db, proposal.id, slot_ids)
        except IntegrityError as e:
            # Another transaction claimed one of the slots after our check
            logger.warning(f"⚠️ Pending-slot constraint rejected proposal on slots {slot_ids}")
            raise AlreadyLockedError() from e

        self.slots.set_status_and_owner(offered.id, SlotStatus.SWAP_LOCKED)
        self.slots.set_status_and_owner(requested.id, SlotStatus.SWAP_LOCKED)
        return proposal

    # ------------------------------------------------------------------
    # respond
    # ------------------------------------------------------------------

    def respond(self, responder_id: int, proposal_id: int, accept: bool) -> SwapProposal:
        """
        Accept or reject a pending proposal addressed to responder_id.

        Accepting exchanges the owners of the two slots and leaves both BUSY.
        Rejecting returns both slots to EXCHANGEABLE. A resolved proposal is
        never applied twice; responding again fails with NotPendingError.
        """
        proposal = self.repo.get_proposal(self.db, proposal_id)
        if not proposal:
            raise NotFoundError("Swap request not found")
        slot_ids = (proposal.offered_slot_id, proposal.requested_slot_id)

        with self.locks.hold(*slot_ids):
            proposal = run_in_transaction(
                self.db,
                lambda: self._respond(responder_id, proposal_id, accept),
                attempts=self.retry_attempts,
            )

        logger.info(f"✅ Swap proposal {proposal_id} {proposal.status.lower()} by user {responder_id}")
        return proposal

    def _respond(self, responder_id: int, proposal_id: int, accept: bool) -> SwapProposal:
        proposal = self.repo.get_proposal(self.db, proposal_id, for_update=True)
        if not proposal:
            raise NotFoundError("Swap request not found")
        if proposal.receiver_id != responder_id:
            raise ForbiddenError("You can only respond to swap requests sent to you")
        if proposal.status != ProposalStatus.PENDING.value:
            raise NotPendingError()

        if accept:
            self.slots.set_status_and_owner(
                proposal.offered_slot_id, SlotStatus.BUSY, owner_id=proposal.receiver_id
            )
            self.slots.set_status_and_owner(
                proposal.requested_slot_id, SlotStatus.BUSY, owner_id=proposal.proposer_id
            )
            outcome = ProposalStatus.ACCEPTED
        else:
            self.slots.set_status_and_owner(proposal.offered_slot_id, SlotStatus.EXCHANGEABLE)
            self.slots.set_status_and_owner(proposal.requested_slot_id, SlotStatus.EXCHANGEABLE)
            outcome = ProposalStatus.REJECTED

        self.repo.release_slots(self.db, proposal.id)
        return self.repo.resolve_proposal(self.db, proposal, outcome, utcnow())

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    def get(self, user_id: int, proposal_id: int) -> ProposalRow:
        """A proposal the user takes part in, with display data"""
        row = self.repo.get_proposal_row(self.db, proposal_id, user_id)
        if not row:
            raise NotFoundError("Swap request not found")
        return row

    def list_for(self, user_id: int) -> dict[str, list[ProposalRow]]:
        """Incoming and outgoing proposals of user_id, newest first"""
        return {
            "incoming": self.repo.get_incoming_rows(self.db, user_id),
            "outgoing": self.repo.get_outgoing_rows(self.db, user_id),
        }
