"""Swap negotiation protocol: propose, respond, listing and slot locking"""

import threading

import pytest
from sqlalchemy import or_

from slotswap.domain.errors import (
    AlreadyLockedError,
    ForbiddenError,
    InternalError,
    NotEligibleError,
    NotFoundError,
    NotPendingError,
    SelfSwapError,
    SlotSwapError,
)
from slotswap.domain.swaps.service import SwapNegotiator
from slotswap.locking import SlotLockTable
from slotswap.models import (
    PendingSwapSlot,
    ProposalStatus,
    Slot,
    SlotStatus,
    SwapProposal,
)


@pytest.fixture
def negotiator(db):
    return SwapNegotiator(db)


def assert_locked_iff_pending(db):
    """SWAP_LOCKED iff exactly one PENDING proposal references the slot"""
    db.expire_all()
    for slot in db.query(Slot).all():
        pending = (
            db.query(SwapProposal)
            .filter(
                SwapProposal.status == ProposalStatus.PENDING.value,
                or_(
                    SwapProposal.offered_slot_id == slot.id,
                    SwapProposal.requested_slot_id == slot.id,
                ),
            )
            .count()
        )
        assert pending <= 1
        assert (slot.status == SlotStatus.SWAP_LOCKED.value) == (pending == 1), slot.id


def reload(db, model, pk):
    db.expire_all()
    return db.get(model, pk)


@pytest.fixture
def s1(alice, make_slot):
    """Alice's 09:00-10:00, exchangeable"""
    return make_slot(alice, 9)


@pytest.fixture
def s2(bob, make_slot):
    """Bob's 14:00-15:00, exchangeable"""
    return make_slot(bob, 14)


class TestPropose:
    def test_locks_both_slots(self, negotiator, db, alice, bob, s1, s2):
        proposal = negotiator.propose(alice.id, s1.id, s2.id)

        proposal = reload(db, SwapProposal, proposal.id)
        assert proposal.status == ProposalStatus.PENDING.value
        assert proposal.proposer_id == alice.id
        assert proposal.receiver_id == bob.id
        assert proposal.offered_slot_id == s1.id
        assert proposal.requested_slot_id == s2.id
        assert proposal.responded_at is None
        assert reload(db, Slot, s1.id).status == SlotStatus.SWAP_LOCKED.value
        assert reload(db, Slot, s2.id).status == SlotStatus.SWAP_LOCKED.value
        assert {c.slot_id for c in db.query(PendingSwapSlot).all()} == {s1.id, s2.id}
        assert_locked_iff_pending(db)

    def test_offered_slot_not_owned_is_not_found(self, negotiator, db, alice, carol, s2, make_slot):
        carols = make_slot(carol, 11)
        with pytest.raises(NotFoundError):
            negotiator.propose(alice.id, carols.id, s2.id)
        assert db.query(SwapProposal).count() == 0

    def test_missing_offered_slot_is_not_found(self, negotiator, alice, s2):
        with pytest.raises(NotFoundError):
            negotiator.propose(alice.id, 9999, s2.id)

    def test_missing_requested_slot_is_not_found(self, negotiator, alice, s1):
        with pytest.raises(NotFoundError):
            negotiator.propose(alice.id, s1.id, 9999)

    def test_requesting_own_slot_is_self_swap(self, negotiator, db, alice, s1, make_slot):
        other_own = make_slot(alice, 12)
        with pytest.raises(SelfSwapError):
            negotiator.propose(alice.id, s1.id, other_own.id)
        assert reload(db, Slot, s1.id).status == SlotStatus.EXCHANGEABLE.value

    def test_offering_own_slot_for_itself_is_self_swap(self, negotiator, db, alice, s1):
        with pytest.raises(SelfSwapError):
            negotiator.propose(alice.id, s1.id, s1.id)
        assert reload(db, Slot, s1.id).status == SlotStatus.EXCHANGEABLE.value
        assert db.query(SwapProposal).count() == 0

    def test_same_foreign_slot_twice_is_not_found(self, negotiator, db, alice, s2):
        with pytest.raises(NotFoundError):
            negotiator.propose(alice.id, s2.id, s2.id)
        assert reload(db, Slot, s2.id).status == SlotStatus.EXCHANGEABLE.value

    @pytest.mark.parametrize("status", [SlotStatus.BUSY, SlotStatus.SWAP_LOCKED])
    def test_offered_slot_must_be_exchangeable(self, negotiator, alice, s2, make_slot, status):
        offered = make_slot(alice, 9, status=status)
        with pytest.raises(NotEligibleError):
            negotiator.propose(alice.id, offered.id, s2.id)

    @pytest.mark.parametrize("status", [SlotStatus.BUSY, SlotStatus.SWAP_LOCKED])
    def test_requested_slot_must_be_exchangeable(self, negotiator, db, alice, bob, s1, make_slot, status):
        requested = make_slot(bob, 14, status=status)
        with pytest.raises(NotEligibleError):
            negotiator.propose(alice.id, s1.id, requested.id)
        assert reload(db, Slot, s1.id).status == SlotStatus.EXCHANGEABLE.value
        assert db.query(SwapProposal).count() == 0

    def test_slot_in_pending_proposal_cannot_be_requested_again(
        self, negotiator, db, alice, carol, s1, s2, make_slot
    ):
        negotiator.propose(alice.id, s1.id, s2.id)
        carols = make_slot(carol, 16)

        with pytest.raises(NotEligibleError):
            negotiator.propose(carol.id, carols.id, s2.id)

        assert reload(db, Slot, carols.id).status == SlotStatus.EXCHANGEABLE.value
        assert_locked_iff_pending(db)

    def test_stale_claim_is_already_locked(self, negotiator, db, alice, bob, s1, s2):
        # A claim row without a locked slot; the store constraint still wins
        stale = SwapProposal(
            proposer_id=bob.id,
            receiver_id=alice.id,
            offered_slot_id=s2.id,
            requested_slot_id=s1.id,
            status=ProposalStatus.PENDING.value,
        )
        db.add(stale)
        db.flush()
        db.add(PendingSwapSlot(slot_id=s2.id, proposal_id=stale.id))
        db.commit()

        with pytest.raises(AlreadyLockedError):
            negotiator.propose(alice.id, s1.id, s2.id)

        assert db.query(SwapProposal).count() == 1
        assert reload(db, Slot, s1.id).status == SlotStatus.EXCHANGEABLE.value


class TestRespond:
    def test_accept_exchanges_owners(self, negotiator, db, alice, bob, s1, s2):
        proposal = negotiator.propose(alice.id, s1.id, s2.id)

        negotiator.respond(bob.id, proposal.id, accept=True)

        s1_after = reload(db, Slot, s1.id)
        s2_after = reload(db, Slot, s2.id)
        proposal = reload(db, SwapProposal, proposal.id)
        assert (s1_after.owner_id, s1_after.status) == (bob.id, SlotStatus.BUSY.value)
        assert (s2_after.owner_id, s2_after.status) == (alice.id, SlotStatus.BUSY.value)
        assert proposal.status == ProposalStatus.ACCEPTED.value
        assert proposal.responded_at is not None
        assert db.query(PendingSwapSlot).count() == 0
        assert_locked_iff_pending(db)

    def test_reject_restores_exchangeable(self, negotiator, db, alice, bob, s1, s2):
        proposal = negotiator.propose(alice.id, s1.id, s2.id)

        negotiator.respond(bob.id, proposal.id, accept=False)

        s1_after = reload(db, Slot, s1.id)
        s2_after = reload(db, Slot, s2.id)
        proposal = reload(db, SwapProposal, proposal.id)
        assert (s1_after.owner_id, s1_after.status) == (alice.id, SlotStatus.EXCHANGEABLE.value)
        assert (s2_after.owner_id, s2_after.status) == (bob.id, SlotStatus.EXCHANGEABLE.value)
        assert proposal.status == ProposalStatus.REJECTED.value
        assert proposal.responded_at is not None
        assert_locked_iff_pending(db)

    def test_rejected_slots_can_be_proposed_again(self, negotiator, db, alice, bob, s1, s2):
        first = negotiator.propose(alice.id, s1.id, s2.id)
        negotiator.respond(bob.id, first.id, accept=False)

        second = negotiator.propose(alice.id, s1.id, s2.id)

        assert reload(db, SwapProposal, second.id).status == ProposalStatus.PENDING.value
        assert_locked_iff_pending(db)

    def test_missing_proposal_is_not_found(self, negotiator, bob):
        with pytest.raises(NotFoundError):
            negotiator.respond(bob.id, 12345, accept=True)

    @pytest.mark.parametrize("who", ["alice", "carol"])
    def test_only_receiver_may_respond(self, negotiator, db, alice, bob, carol, s1, s2, who):
        proposal = negotiator.propose(alice.id, s1.id, s2.id)
        responder = {"alice": alice, "carol": carol}[who]

        with pytest.raises(ForbiddenError):
            negotiator.respond(responder.id, proposal.id, accept=True)

        assert reload(db, SwapProposal, proposal.id).status == ProposalStatus.PENDING.value
        assert reload(db, Slot, s1.id).owner_id == alice.id

    @pytest.mark.parametrize("first, second", [(True, True), (True, False), (False, True), (False, False)])
    def test_second_response_is_not_pending(self, negotiator, db, alice, bob, s1, s2, first, second):
        proposal = negotiator.propose(alice.id, s1.id, s2.id)
        negotiator.respond(bob.id, proposal.id, accept=first)
        before = [(s.id, s.owner_id, s.status) for s in db.query(Slot).order_by(Slot.id)]
        db.expire_all()

        with pytest.raises(NotPendingError):
            negotiator.respond(bob.id, proposal.id, accept=second)

        db.expire_all()
        after = [(s.id, s.owner_id, s.status) for s in db.query(Slot).order_by(Slot.id)]
        assert after == before
        expected = ProposalStatus.ACCEPTED if first else ProposalStatus.REJECTED
        assert reload(db, SwapProposal, proposal.id).status == expected.value

    def test_swapped_slot_can_be_deleted_without_losing_history(
        self, negotiator, db, alice, bob, s1, s2
    ):
        from slotswap.domain.slots.service import SlotRegistry

        proposal = negotiator.propose(alice.id, s1.id, s2.id)
        negotiator.respond(bob.id, proposal.id, accept=True)

        SlotRegistry(db).delete(bob.id, s1.id)

        proposal = reload(db, SwapProposal, proposal.id)
        assert proposal.offered_slot_id is None
        assert proposal.status == ProposalStatus.ACCEPTED.value


class TestListFor:
    def test_incoming_and_outgoing_newest_first(self, negotiator, alice, bob, carol, s1, s2, make_slot):
        a2 = make_slot(alice, 17)
        c1 = make_slot(carol, 11)
        first = negotiator.propose(alice.id, s1.id, s2.id)  # alice -> bob
        second = negotiator.propose(carol.id, c1.id, a2.id)  # carol -> alice

        alice_view = negotiator.list_for(alice.id)
        bob_view = negotiator.list_for(bob.id)

        assert [row.proposal.id for row in alice_view["outgoing"]] == [first.id]
        assert [row.proposal.id for row in alice_view["incoming"]] == [second.id]
        assert [row.proposal.id for row in bob_view["incoming"]] == [first.id]
        assert bob_view["outgoing"] == []

    def test_rows_carry_display_data(self, negotiator, alice, bob, s1, s2):
        negotiator.propose(alice.id, s1.id, s2.id)

        row = negotiator.list_for(bob.id)["incoming"][0]

        assert row.proposer.full_name == "Alice"
        assert row.receiver.email == "bob@example.com"
        assert row.offered_slot.title == s1.title
        assert row.requested_slot.start_time == s2.start_time

    def test_ordering_is_by_creation_descending(self, negotiator, alice, bob, make_slot):
        ids = []
        for hour in (8, 10, 12):
            offered = make_slot(alice, hour)
            requested = make_slot(bob, hour + 1)
            ids.append(negotiator.propose(alice.id, offered.id, requested.id).id)

        outgoing = negotiator.list_for(alice.id)["outgoing"]
        assert [row.proposal.id for row in outgoing] == list(reversed(ids))

    def test_get_is_limited_to_participants(self, negotiator, alice, bob, carol, s1, s2):
        proposal = negotiator.propose(alice.id, s1.id, s2.id)

        assert negotiator.get(alice.id, proposal.id).proposal.id == proposal.id
        assert negotiator.get(bob.id, proposal.id).proposal.id == proposal.id
        with pytest.raises(NotFoundError):
            negotiator.get(carol.id, proposal.id)


class TestConcurrency:
    def _race(self, session_factory, attempts, locks=None):
        """Run propose() calls from separate threads/sessions at the same moment"""
        barrier = threading.Barrier(len(attempts))
        results = [None] * len(attempts)

        def worker(index, proposer_id, offered_id, requested_id):
            session = session_factory()
            try:
                kwargs = {"locks": locks} if locks is not None else {}
                negotiator = SwapNegotiator(session, **kwargs)
                barrier.wait()
                try:
                    results[index] = negotiator.propose(proposer_id, offered_id, requested_id).id
                except SlotSwapError as e:
                    results[index] = e
            finally:
                session.close()

        threads = [
            threading.Thread(target=worker, args=(i, *attempt)) for i, attempt in enumerate(attempts)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)
        return results

    def _assert_one_winner(self, results):
        winners = [r for r in results if isinstance(r, int)]
        losers = [r for r in results if not isinstance(r, int)]
        assert len(winners) == 1, results
        assert all(isinstance(e, (AlreadyLockedError, NotEligibleError)) for e in losers), results

    def test_two_proposals_for_same_slot(self, session_factory, db, alice, carol, s1, s2, make_slot):
        c1 = make_slot(carol, 11)

        results = self._race(session_factory, [(alice.id, s1.id, s2.id), (carol.id, c1.id, s2.id)])

        self._assert_one_winner(results)
        assert db.query(SwapProposal).count() == 1
        assert_locked_iff_pending(db)

    def test_store_constraint_holds_without_process_locks(
        self, session_factory, db, alice, carol, s1, s2, make_slot
    ):
        c1 = make_slot(carol, 11)

        results = self._race(
            session_factory,
            [(alice.id, s1.id, s2.id), (carol.id, c1.id, s2.id)],
            locks=SlotLockTable(enabled=False),
        )

        self._assert_one_winner(results)
        assert db.query(SwapProposal).count() == 1
        assert_locked_iff_pending(db)

    def test_many_proposers(self, session_factory, db, bob, make_user, make_slot, s2):
        attempts = []
        for i in range(6):
            user = make_user(f"User{i}")
            attempts.append((user.id, make_slot(user, 8 + i).id, s2.id))

        results = self._race(session_factory, attempts)

        self._assert_one_winner(results)
        assert_locked_iff_pending(db)


def test_storage_conflict_after_retries_is_internal(db, alice, bob, s1, s2, monkeypatch):
    from sqlalchemy.exc import OperationalError

    negotiator = SwapNegotiator(db, retry_attempts=2)
    calls = []

    def always_conflicting(*args, **kwargs):
        calls.append(args)
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(negotiator, "_propose", always_conflicting)

    with pytest.raises(InternalError):
        negotiator.propose(alice.id, s1.id, s2.id)

    assert len(calls) == 2
    assert reload(db, Slot, s1.id).status == SlotStatus.EXCHANGEABLE.value
