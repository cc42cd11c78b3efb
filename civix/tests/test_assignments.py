"""
Assignment coordinator tests: exclusive hand-off of petitions and complaints
to volunteers, and assignment status following its subject.
"""

import asyncio
import uuid

import pytest
from pymongo.errors import PyMongoError

from civix.assignments import AssignmentCoordinator
from civix.errors import NotFound, RoleMismatch, AlreadyAssigned, InvalidTransition
from civix.lifecycle import Lifecycle
from civix.models import ComplaintCreate, PetitionCreate, SubjectKind
from civix.store import lock_key

pytestmark = pytest.mark.asyncio


@pytest.fixture
def assignments(store, clock):
    return AssignmentCoordinator(store, clock=clock)


@pytest.fixture
def lifecycle(store, assignments, clock):
    return Lifecycle(store, assignments=assignments, clock=clock)


async def _petition(lifecycle, identities):
    data = PetitionCreate(title="Skate park", description="Somewhere for teenagers to skate.",
                          category="parks", location="Riverside", target_authority="Youth Council")
    return await lifecycle.create_petition(identities["citizen"], data)


async def _complaint(lifecycle, identities):
    data = ComplaintCreate(title="Graffiti", description="Graffiti on the underpass.",
                           category="vandalism", location="Riverside")
    return await lifecycle.create_complaint(identities["citizen"], data)


# ═══════════════════════════════════════════════════════════════════════════════
# PETITIONS
# ═══════════════════════════════════════════════════════════════════════════════

class TestAssignPetition:
    async def test_assign(self, assignments, lifecycle, identities, users, store):
        petition = await _petition(lifecycle, identities)
        assignment, updated = await assignments.assign(
            SubjectKind.PETITION, petition["_id"], users["volunteer"]["_id"], identities["official"],
            note="Collect quotes", notify_by_email=False)
        assert assignment["status"] == "assigned"
        assert assignment["assigned_by"] == identities["official"].user_id
        assert updated["status"] == "assigned"
        assert updated["assigned_to"] == users["volunteer"]["_id"]
        assert [(h["status"], h["note"]) for h in updated["status_history"]] == [("assigned", "Collect quotes")]
        assert store.db.active_assignments.find_one({"_id": lock_key("petition", petition["_id"])})

    async def test_concurrent_assignments(self, assignments, lifecycle, identities, users, store):
        petition = await _petition(lifecycle, identities)
        results = await asyncio.gather(
            assignments.assign(SubjectKind.PETITION, petition["_id"], users["volunteer"]["_id"],
                               identities["official"]),
            assignments.assign(SubjectKind.PETITION, petition["_id"], users["volunteer2"]["_id"],
                               identities["admin"]),
            return_exceptions=True)
        assert len([r for r in results if isinstance(r, tuple)]) == 1
        assert len([r for r in results if isinstance(r, AlreadyAssigned)]) == 1
        assert store.db.assignments.count_documents({"subject_id": petition["_id"]}) == 1
        stored = store.db.petitions.find_one({"_id": petition["_id"]})
        assert len(stored["status_history"]) == 1

    async def test_second_assignment_conflicts(self, assignments, lifecycle, identities, users):
        petition = await _petition(lifecycle, identities)
        await assignments.assign(SubjectKind.PETITION, petition["_id"], users["volunteer"]["_id"],
                                 identities["official"])
        with pytest.raises(AlreadyAssigned):
            await assignments.assign(SubjectKind.PETITION, petition["_id"], users["volunteer"]["_id"],
                                     identities["official"])

    async def test_assignee_must_be_volunteer(self, assignments, lifecycle, identities, users):
        petition = await _petition(lifecycle, identities)
        with pytest.raises(RoleMismatch):
            await assignments.assign(SubjectKind.PETITION, petition["_id"], users["official"]["_id"],
                                     identities["admin"])

    async def test_unknown_parties(self, assignments, lifecycle, identities, users):
        petition = await _petition(lifecycle, identities)
        with pytest.raises(NotFound):
            await assignments.assign(SubjectKind.PETITION, petition["_id"], str(uuid.uuid4()),
                                     identities["official"])
        with pytest.raises(NotFound):
            await assignments.assign(SubjectKind.PETITION, str(uuid.uuid4()), users["volunteer"]["_id"],
                                     identities["official"])

    async def test_closed_petition_not_assignable(self, assignments, lifecycle, identities, users):
        petition = await _petition(lifecycle, identities)
        await lifecycle.respond(petition["_id"], identities["official"], None, "closed")
        with pytest.raises(InvalidTransition):
            await assignments.assign(SubjectKind.PETITION, petition["_id"], users["volunteer"]["_id"],
                                     identities["official"])

    async def test_assignment_follows_petition(self, assignments, lifecycle, identities, users, store):
        petition = await _petition(lifecycle, identities)
        assignment, _ = await assignments.assign(
            SubjectKind.PETITION, petition["_id"], users["volunteer"]["_id"], identities["official"])
        await lifecycle.volunteer_update(petition["_id"], identities["volunteer"], "under_review")
        assert store.db.assignments.find_one({"_id": assignment["_id"]})["status"] == "in_progress"
        assert await assignments.active_assignment(SubjectKind.PETITION, petition["_id"])

        await lifecycle.volunteer_update(petition["_id"], identities["volunteer"], "resolved")
        assert store.db.assignments.find_one({"_id": assignment["_id"]})["status"] == "completed"
        assert store.db.active_assignments.count_documents({}) == 0
        assert await assignments.active_assignment(SubjectKind.PETITION, petition["_id"]) is None

    @pytest.mark.parametrize("collection,method", [
        ("assignments", "insert_one"),
        ("petitions", "find_one_and_update"),
    ])
    async def test_storage_failure_releases_lock(self, assignments, lifecycle, identities, users, store,
                                                 storage_fault, collection, method):
        petition = await _petition(lifecycle, identities)
        storage_fault.fail(collection, method)
        with pytest.raises(PyMongoError):
            await assignments.assign(SubjectKind.PETITION, petition["_id"], users["volunteer"]["_id"],
                                     identities["official"])
        storage_fault.heal()

        assert store.db.active_assignments.count_documents({}) == 0
        assert store.db.assignments.count_documents({"subject_id": petition["_id"]}) == 0
        stored = store.db.petitions.find_one({"_id": petition["_id"]})
        assert stored["status"] == "active"
        assert stored.get("assigned_to") is None

        _, updated = await assignments.assign(SubjectKind.PETITION, petition["_id"],
                                              users["volunteer"]["_id"], identities["official"])
        assert updated["status"] == "assigned"


# ═══════════════════════════════════════════════════════════════════════════════
# COMPLAINTS
# ═══════════════════════════════════════════════════════════════════════════════

class TestAssignComplaint:
    async def test_assign_moves_to_review(self, assignments, lifecycle, identities, users):
        complaint = await _complaint(lifecycle, identities)
        _, updated = await assignments.assign(
            SubjectKind.COMPLAINT, complaint["_id"], users["volunteer"]["_id"], identities["official"])
        assert updated["status"] == "in_review"
        assert len(updated["status_history"]) == 1

    async def test_already_in_review_keeps_history(self, assignments, lifecycle, identities, users):
        complaint = await _complaint(lifecycle, identities)
        await lifecycle.update_complaint_status(complaint["_id"], identities["official"], "in_review")
        _, updated = await assignments.assign(
            SubjectKind.COMPLAINT, complaint["_id"], users["volunteer"]["_id"], identities["official"])
        assert updated["status"] == "in_review"
        assert len(updated["status_history"]) == 1

    async def test_resolved_complaint_not_assignable(self, assignments, lifecycle, identities, users):
        complaint = await _complaint(lifecycle, identities)
        await lifecycle.update_complaint_status(complaint["_id"], identities["official"], "resolved")
        with pytest.raises(InvalidTransition):
            await assignments.assign(SubjectKind.COMPLAINT, complaint["_id"], users["volunteer"]["_id"],
                                     identities["official"])

    async def test_resolving_completes_assignment(self, assignments, lifecycle, identities, users, store):
        complaint = await _complaint(lifecycle, identities)
        assignment, _ = await assignments.assign(
            SubjectKind.COMPLAINT, complaint["_id"], users["volunteer"]["_id"], identities["official"])
        await lifecycle.update_complaint_status(complaint["_id"], identities["volunteer"], "resolved")
        assert store.db.assignments.find_one({"_id": assignment["_id"]})["status"] == "completed"
        assert store.db.active_assignments.count_documents({}) == 0


# ═══════════════════════════════════════════════════════════════════════════════
# LISTING
# ═══════════════════════════════════════════════════════════════════════════════

class TestAssignmentsFor:
    async def test_lists_with_subject_details(self, assignments, lifecycle, identities, users, clock):
        petition = await _petition(lifecycle, identities)
        complaint = await _complaint(lifecycle, identities)
        volunteer_id = users["volunteer"]["_id"]
        await assignments.assign(SubjectKind.PETITION, petition["_id"], volunteer_id, identities["official"])
        clock.advance(minutes=5)
        await assignments.assign(SubjectKind.COMPLAINT, complaint["_id"], volunteer_id, identities["official"])

        rows = await assignments.assignments_for(volunteer_id)
        assert [r["subject_kind"] for r in rows] == ["complaint", "petition"]
        assert rows[0]["subject_title"] == "Graffiti"
        assert rows[0]["subject_status"] == "in_review"

        only_petitions = await assignments.assignments_for(volunteer_id, SubjectKind.PETITION)
        assert [r["subject_id"] for r in only_petitions] == [petition["_id"]]
        assert await assignments.assignments_for(users["volunteer2"]["_id"]) == []
