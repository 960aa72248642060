"""Swap router - FastAPI endpoints for the exchange marketplace and swap requests"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from ..slots.schemas import ExchangeableSlotListResponse, ExchangeableSlotResponse, SlotResponse
from ..slots.service import SlotRegistry
from .repository import ProposalRow
from .schemas import (
    ProposalEnvelope,
    ProposalListResponse,
    ProposalResponse,
    SlotSummary,
    SwapRequestCreate,
    SwapResponseRequest,
)
from .service import SwapNegotiator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/swaps", tags=["Swaps"])


def get_swap_negotiator(db: Session = Depends(get_db)) -> SwapNegotiator:
    """Dependency injection for SwapNegotiator"""
    return SwapNegotiator(db)


def get_slot_registry(db: Session = Depends(get_db)) -> SlotRegistry:
    return SlotRegistry(db)


def _proposal_response(row: ProposalRow) -> ProposalResponse:
    proposal = row.proposal
    return ProposalResponse(
        id=proposal.id,
        status=proposal.status,
        created_at=proposal.created_at,
        responded_at=proposal.responded_at,
        proposer_id=proposal.proposer_id,
        proposer_name=row.proposer.full_name,
        proposer_email=row.proposer.email,
        receiver_id=proposal.receiver_id,
        receiver_name=row.receiver.full_name,
        receiver_email=row.receiver.email,
        offered_slot_id=proposal.offered_slot_id,
        requested_slot_id=proposal.requested_slot_id,
        offered_slot=SlotSummary.model_validate(row.offered_slot) if row.offered_slot else None,
        requested_slot=SlotSummary.model_validate(row.requested_slot) if row.requested_slot else None,
    )


# ============================================================================
# MARKETPLACE
# ============================================================================


@router.get("/exchangeable-slots", response_model=ExchangeableSlotListResponse)
def list_exchangeable_slots(
    current_user: User = Depends(get_current_user),
    registry: SlotRegistry = Depends(get_slot_registry),
):
    """Exchangeable slots of all other users, earliest first"""
    rows = registry.list_exchangeable_excluding(current_user.id)
    return ExchangeableSlotListResponse(
        slots=[
            ExchangeableSlotResponse(
                **SlotResponse.model_validate(slot).model_dump(),
                owner_name=owner.full_name,
                owner_email=owner.email,
            )
            for slot, owner in rows
        ]
    )


# ============================================================================
# SWAP REQUESTS
# ============================================================================


@router.post("/requests", response_model=ProposalEnvelope, status_code=201)
def create_swap_request(
    data: SwapRequestCreate,
    current_user: User = Depends(get_current_user),
    negotiator: SwapNegotiator = Depends(get_swap_negotiator),
):
    """Propose swapping one of my exchangeable slots for another user's"""
    proposal = negotiator.propose(current_user.id, data.offered_slot_id, data.requested_slot_id)
    row = negotiator.get(current_user.id, proposal.id)
    return ProposalEnvelope(
        message="Swap request created successfully",
        proposal=_proposal_response(row),
    )


@router.get("/requests", response_model=ProposalListResponse)
def list_swap_requests(
    current_user: User = Depends(get_current_user),
    negotiator: SwapNegotiator = Depends(get_swap_negotiator),
):
    """Incoming and outgoing swap requests, newest first"""
    proposals = negotiator.list_for(current_user.id)
    return ProposalListResponse(
        incoming=[_proposal_response(row) for row in proposals["incoming"]],
        outgoing=[_proposal_response(row) for row in proposals["outgoing"]],
    )


@router.get("/requests/{proposal_id}", response_model=ProposalEnvelope)
def get_swap_request(
    proposal_id: int,
    current_user: User = Depends(get_current_user),
    negotiator: SwapNegotiator = Depends(get_swap_negotiator),
):
    row = negotiator.get(current_user.id, proposal_id)
    return ProposalEnvelope(proposal=_proposal_response(row))


@router.post("/requests/{proposal_id}/respond", response_model=ProposalEnvelope)
def respond_to_swap_request(
    proposal_id: int,
    data: SwapResponseRequest,
    current_user: User = Depends(get_current_user),
    negotiator: SwapNegotiator = Depends(get_swap_negotiator),
):
    """Accept or reject a swap request sent to me"""
    negotiator.respond(current_user.id, proposal_id, data.accepted)
    row = negotiator.get(current_user.id, proposal_id)
    return ProposalEnvelope(
        message="Swap request accepted" if data.accepted else "Swap request rejected",
        proposal=_proposal_response(row),
    )
