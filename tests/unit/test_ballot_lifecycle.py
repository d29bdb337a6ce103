"""Tests for the ballot lifecycle: NO_BALLOT -> OPEN -> FINAL.

Finalization is irreversible and happens at most once per user.
"""

import asyncio

import pytest

from services.shared import (
    BallotState,
    StateConflictError,
    VoteErrorCode,
    VoteItem,
    VoteValidationError,
)

from .conftest import AFTER_DEADLINE, DURING_LIVE


@pytest.mark.asyncio
class TestBallotLifecycle:
    """End-to-end ballot state transitions through VotingService."""

    async def test_new_user_has_no_ballot(self, service, alice):
        ballot, state = await service.get_ballot_status(alice)

        assert ballot is None
        assert state == BallotState.NO_BALLOT

    async def test_finalize_freezes_all_votes(self, service, store, alice):
        await service.submit_vote(alice, "cat-goty", "nom-goty-1", now=DURING_LIVE)
        await service.submit_vote(alice, "cat-indie", "nom-indie-1", now=DURING_LIVE)
        await service.submit_vote(alice, "cat-creator", "nom-creator-2", now=DURING_LIVE)

        ballot, votes_count = await service.finalize_ballot(alice, now=DURING_LIVE)

        assert votes_count == 3
        assert ballot.is_final is True
        assert ballot.submitted_at == DURING_LIVE
        assert all(v.is_final for v in await service.get_votes(alice))

        _, state = await service.get_ballot_status(alice)
        assert state == BallotState.FINAL

    async def test_second_finalize_is_already_finalized(self, service, alice):
        await service.submit_vote(alice, "cat-goty", "nom-goty-1", now=DURING_LIVE)
        await service.finalize_ballot(alice, now=DURING_LIVE)

        with pytest.raises(StateConflictError) as exc_info:
            await service.finalize_ballot(alice, now=DURING_LIVE)
        assert exc_info.value.code == VoteErrorCode.ALREADY_FINALIZED
        assert exc_info.value.status_code == 409

    async def test_finalize_without_votes(self, service, store, alice):
        with pytest.raises(VoteValidationError) as exc_info:
            await service.finalize_ballot(alice, now=DURING_LIVE)
        assert exc_info.value.code == VoteErrorCode.NO_VOTES
        assert alice.user_id not in store.ballots

    async def test_votes_rejected_after_finalization(self, service, store, alice):
        await service.submit_vote(alice, "cat-goty", "nom-goty-1", now=DURING_LIVE)
        await service.finalize_ballot(alice, now=DURING_LIVE)

        with pytest.raises(StateConflictError) as exc_info:
            await service.submit_vote(alice, "cat-goty", "nom-goty-2", now=DURING_LIVE)
        assert exc_info.value.code == VoteErrorCode.BALLOT_FINALIZED

        # New categories are frozen too
        with pytest.raises(StateConflictError):
            await service.submit_vote(alice, "cat-indie", "nom-indie-1", now=DURING_LIVE)

        votes = await service.get_votes(alice)
        assert [(v.category_id, v.nominee_id) for v in votes] == [("cat-goty", "nom-goty-1")]

    async def test_batch_after_finalization_reports_every_item(self, service, alice):
        await service.submit_vote(alice, "cat-goty", "nom-goty-1", now=DURING_LIVE)
        await service.finalize_ballot(alice, now=DURING_LIVE)

        result = await service.submit_votes_batch(
            alice,
            [VoteItem("cat-goty", "nom-goty-2"), VoteItem("cat-indie", "nom-indie-1")],
            now=DURING_LIVE
        )

        assert result.successes == []
        assert {f.code for f in result.failures} == {"BALLOT_FINALIZED"}

    async def test_finalize_is_allowed_after_deadline(self, service, alice):
        # The deadline stops new votes, not finalization of existing ones
        await service.submit_vote(alice, "cat-goty", "nom-goty-1", now=DURING_LIVE)

        ballot, votes_count = await service.finalize_ballot(alice, now=AFTER_DEADLINE)

        assert ballot.is_final is True
        assert votes_count == 1

    async def test_concurrent_finalize_succeeds_once(self, service, alice):
        await service.submit_vote(alice, "cat-goty", "nom-goty-1", now=DURING_LIVE)

        outcomes = await asyncio.gather(
            service.finalize_ballot(alice, now=DURING_LIVE),
            service.finalize_ballot(alice, now=DURING_LIVE),
            return_exceptions=True
        )

        successes = [o for o in outcomes if not isinstance(o, Exception)]
        errors = [o for o in outcomes if isinstance(o, Exception)]
        assert len(successes) == 1
        assert len(errors) == 1
        assert errors[0].code == VoteErrorCode.ALREADY_FINALIZED

    async def test_other_users_are_unaffected(self, service, alice, bob):
        await service.submit_vote(alice, "cat-goty", "nom-goty-1", now=DURING_LIVE)
        await service.finalize_ballot(alice, now=DURING_LIVE)

        vote = await service.submit_vote(bob, "cat-goty", "nom-goty-3", now=DURING_LIVE)

        assert vote.is_final is False
        _, state = await service.get_ballot_status(bob)
        assert state == BallotState.OPEN

    async def test_voting_data_reflects_ballot(self, service, alice):
        await service.submit_vote(alice, "cat-indie", "nom-indie-2", now=DURING_LIVE)

        data = await service.get_voting_data(alice, "best-indie")

        assert data['category'].slug == "best-indie"
        assert [n.id for n in data['category'].nominees] == ["nom-indie-1", "nom-indie-2"]
        assert len(data['categories']) == 3
        assert data['vote'].nominee_id == "nom-indie-2"
        assert data['ballot_state'] == BallotState.OPEN
