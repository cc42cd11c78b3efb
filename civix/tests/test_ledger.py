"""
Vote/signature ledger tests: uniqueness under concurrent attempts, tallies,
rounding and the poll expiry boundary.
"""

import asyncio
import uuid
from datetime import timedelta

import pytest
from pymongo.errors import PyMongoError

from civix.errors import NotFound, InvalidOption, Expired, DuplicateVote, DuplicateSignature, NotSignable
from civix.ledger import Ledger, percentage, poll_expires_at, poll_is_active
from civix.lifecycle import Lifecycle
from civix.models import PollCreate, PetitionCreate


@pytest.fixture
def ledger(store, clock):
    return Ledger(store, clock=clock)


@pytest.fixture
def lifecycle(store, clock):
    return Lifecycle(store, clock=clock)


async def _poll(lifecycle, identities, options=("A", "B"), hours=1):
    data = PollCreate(title="Library hours", options=list(options), duration_hours=hours)
    return await lifecycle.create_poll(identities["official"], data)


async def _petition(lifecycle, identities):
    data = PetitionCreate(title="Crosswalk on 5th", description="Kids cross here daily.",
                          category="roads", location="Riverside", target_authority="Roads Dept")
    return await lifecycle.create_petition(identities["citizen"], data)


# ═══════════════════════════════════════════════════════════════════════════════
# PERCENTAGES
# ═══════════════════════════════════════════════════════════════════════════════

class TestPercentage:
    def test_zero_total(self):
        assert percentage(0, 0) == 0

    def test_half_rounds_up(self):
        assert percentage(1, 8) == 13
        assert percentage(5, 8) == 63

    def test_thirds(self):
        assert percentage(1, 3) == 33
        assert percentage(2, 3) == 67


# ═══════════════════════════════════════════════════════════════════════════════
# VOTES
# ═══════════════════════════════════════════════════════════════════════════════

class TestVotes:
    async def test_concurrent_votes_same_voter(self, ledger, lifecycle, identities, store):
        poll = await _poll(lifecycle, identities)
        voter = identities["citizen"].user_id
        results = await asyncio.gather(
            *(ledger.cast_vote(poll["_id"], voter, "A") for _ in range(10)), return_exceptions=True)
        successes = [r for r in results if isinstance(r, dict)]
        conflicts = [r for r in results if isinstance(r, DuplicateVote)]
        assert len(successes) == 1
        assert len(conflicts) == 9
        assert store.db.votes.count_documents({"poll_id": poll["_id"]}) == 1

    async def test_concurrent_votes_different_voters(self, ledger, lifecycle, identities):
        poll = await _poll(lifecycle, identities)
        voters = ["citizen", "citizen2", "citizen3", "volunteer"]
        await asyncio.gather(*(ledger.cast_vote(poll["_id"], identities[v].user_id, "B") for v in voters))
        tally = await ledger.tally(poll["_id"])
        assert tally.counts == {"A": 0, "B": 4}

    async def test_unknown_poll(self, ledger, identities):
        with pytest.raises(NotFound):
            await ledger.cast_vote(str(uuid.uuid4()), identities["citizen"].user_id, "A")

    async def test_invalid_option(self, ledger, lifecycle, identities):
        poll = await _poll(lifecycle, identities)
        with pytest.raises(InvalidOption):
            await ledger.cast_vote(poll["_id"], identities["citizen"].user_id, "a")

    async def test_boundary_is_inclusive(self, ledger, lifecycle, identities, clock):
        poll = await _poll(lifecycle, identities)
        clock.advance(hours=1)
        assert poll_is_active(poll, clock())
        await ledger.cast_vote(poll["_id"], identities["citizen"].user_id, "A")
        clock.advance(seconds=1)
        with pytest.raises(Expired):
            await ledger.cast_vote(poll["_id"], identities["citizen2"].user_id, "A")

    async def test_expiry_wins_over_bad_option(self, ledger, lifecycle, identities, clock):
        poll = await _poll(lifecycle, identities)
        clock.advance(days=1)
        with pytest.raises(Expired):
            await ledger.cast_vote(poll["_id"], identities["citizen"].user_id, "nonsense")

    async def test_expires_at(self, lifecycle, identities, clock):
        poll = await _poll(lifecycle, identities, hours=6)
        assert poll_expires_at(poll) == clock() + timedelta(hours=6)

    async def test_vote_of(self, ledger, lifecycle, identities):
        poll = await _poll(lifecycle, identities)
        await ledger.cast_vote(poll["_id"], identities["citizen"].user_id, "B")
        assert await ledger.vote_of(poll["_id"], identities["citizen"].user_id) == "B"
        assert await ledger.vote_of(poll["_id"], identities["citizen2"].user_id) is None


# ═══════════════════════════════════════════════════════════════════════════════
# TALLY
# ═══════════════════════════════════════════════════════════════════════════════

class TestTally:
    async def test_empty_poll_lists_every_option(self, ledger, lifecycle, identities):
        poll = await _poll(lifecycle, identities, options=("Yes", "No", "Undecided"))
        tally = await ledger.tally(poll["_id"])
        assert tally.total == 0
        assert [o.option for o in tally.options] == ["Yes", "No", "Undecided"]
        assert all(o.count == 0 and o.percentage == 0 for o in tally.options)

    async def test_independent_rounding(self, ledger, lifecycle, identities):
        poll = await _poll(lifecycle, identities, options=("X", "Y", "Z"))
        for name, option in (("citizen", "X"), ("citizen2", "Y"), ("citizen3", "Z")):
            await ledger.cast_vote(poll["_id"], identities[name].user_id, option)
        tally = await ledger.tally(poll["_id"])
        assert tally.total == 3
        assert sum(tally.counts.values()) == tally.total
        assert tally.percentages == {"X": 33, "Y": 33, "Z": 33}

    async def test_unknown_poll(self, ledger):
        with pytest.raises(NotFound):
            await ledger.tally(str(uuid.uuid4()))


# ═══════════════════════════════════════════════════════════════════════════════
# SIGNATURES
# ═══════════════════════════════════════════════════════════════════════════════

class TestSignatures:
    async def test_concurrent_signatures_same_signer(self, ledger, lifecycle, identities, store):
        petition = await _petition(lifecycle, identities)
        signer = identities["citizen2"].user_id
        results = await asyncio.gather(
            *(ledger.sign_petition(petition["_id"], signer) for _ in range(8)), return_exceptions=True)
        assert len([r for r in results if isinstance(r, dict)]) == 1
        assert len([r for r in results if isinstance(r, DuplicateSignature)]) == 7
        assert store.db.petitions.find_one({"_id": petition["_id"]})["signatures_count"] == 1
        assert await ledger.signature_count(petition["_id"]) == 1

    async def test_count_follows_signers(self, ledger, lifecycle, identities):
        petition = await _petition(lifecycle, identities)
        for name in ("citizen", "citizen2", "volunteer"):
            result = await ledger.sign_petition(petition["_id"], identities[name].user_id)
        assert result["signatures_count"] == 3
        assert await ledger.has_signed(petition["_id"], identities["volunteer"].user_id)
        assert not await ledger.has_signed(petition["_id"], identities["citizen3"].user_id)

    async def test_only_active_petitions(self, ledger, lifecycle, identities):
        petition = await _petition(lifecycle, identities)
        await lifecycle.respond(petition["_id"], identities["official"], "Withdrawn", "closed")
        with pytest.raises(NotSignable):
            await ledger.sign_petition(petition["_id"], identities["citizen2"].user_id)
        assert await ledger.signature_count(petition["_id"]) == 0

    async def test_storage_failure_takes_signature_back(self, ledger, lifecycle, identities, store, storage_fault):
        petition = await _petition(lifecycle, identities)
        signer = identities["citizen2"].user_id
        storage_fault.fail("petitions", "find_one_and_update")
        with pytest.raises(PyMongoError):
            await ledger.sign_petition(petition["_id"], signer)
        storage_fault.heal()

        assert not await ledger.has_signed(petition["_id"], signer)
        assert store.db.petitions.find_one({"_id": petition["_id"]})["signatures_count"] == 0
        result = await ledger.sign_petition(petition["_id"], signer)
        assert result["signatures_count"] == 1

    async def test_unknown_petition(self, ledger, identities):
        with pytest.raises(NotFound):
            await ledger.sign_petition(str(uuid.uuid4()), identities["citizen"].user_id)
