# Assignment coordinator: hands a petition or complaint to exactly one volunteer

import logging
from datetime import datetime
from typing import Callable, List, Optional

from pymongo import ReturnDocument, DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from .config import new_id, now_utc
from .errors import NotFound, RoleMismatch, AlreadyAssigned, InvalidTransition
from .lifecycle import history_entry
from .models import (
    AssignmentStatus, ComplaintStatus, PetitionStatus, SubjectKind, Identity, UserRole,
)
from .store import Store, lock_key

logger = logging.getLogger(__name__)

# Subject status -> status of the assignment that covers it
_FOLLOW = {
    SubjectKind.PETITION: {
        PetitionStatus.UNDER_REVIEW.value: AssignmentStatus.IN_PROGRESS,
        PetitionStatus.RESOLVED.value: AssignmentStatus.COMPLETED,
        PetitionStatus.CLOSED.value: AssignmentStatus.COMPLETED,
    },
    SubjectKind.COMPLAINT: {
        ComplaintStatus.RESOLVED.value: AssignmentStatus.COMPLETED,
    },
}


class AssignmentCoordinator:
    def __init__(self, store: Store, clock: Callable[[], datetime] = now_utc):
        self.store = store
        self.clock = clock

    @property
    def db(self):
        return self.store.db

    def _collection(self, kind: SubjectKind):
        return self.db.petitions if kind == SubjectKind.PETITION else self.db.complaints

    async def assign(self, kind: SubjectKind, subject_id: str, assignee_id: str, assigner: Identity, *,
                     note: Optional[str] = None, due_date: Optional[datetime] = None,
                     notify_by_email: bool = True) -> tuple:
        """Returns ``(assignment, subject)`` after the hand-off is committed."""
        collection = self._collection(kind)
        subject = await self.store.run(collection.find_one, {"_id": subject_id})
        if not subject:
            raise NotFound(kind.value.capitalize())
        assignee = await self.store.run(self.db.users.find_one, {"_id": assignee_id})
        if not assignee:
            raise NotFound("Volunteer")
        if assignee["role"] != UserRole.VOLUNTEER.value:
            raise RoleMismatch()
        if subject.get("assigned_to"):
            raise AlreadyAssigned()

        current = subject["status"]
        if kind == SubjectKind.PETITION:
            if current != PetitionStatus.ACTIVE.value:
                raise InvalidTransition(f"Cannot assign a petition that is {current}")
            target = PetitionStatus.ASSIGNED.value
        else:
            if current == ComplaintStatus.RESOLVED.value:
                raise InvalidTransition("Cannot assign a resolved complaint")
            target = ComplaintStatus.IN_REVIEW.value

        now = self.clock()
        key = lock_key(kind.value, subject_id)
        assignment = {
            "_id": new_id(), "subject_id": subject_id, "subject_kind": kind.value,
            "assignee_id": assignee_id, "assigned_by": assigner.user_id,
            "status": AssignmentStatus.ASSIGNED.value, "notify_by_email": notify_by_email,
            "due_date": due_date, "assigned_at": now, "updated_at": now,
        }
        update = {"$set": {"assigned_to": assignee_id, "status": target, "updated_at": now}}
        if target != current:
            update["$push"] = {"status_history": history_entry(target, assigner.user_id, note, now)}

        def release():
            self.db.assignments.delete_one({"_id": assignment["_id"]})
            self.db.active_assignments.delete_one({"_id": key})

        def write():
            # The lock insert is the exclusivity check; everything after it
            # runs only for the single request that won the key.
            self.db.active_assignments.insert_one(
                {"_id": key, "assignment_id": assignment["_id"], "created_at": now})
            try:
                self.db.assignments.insert_one(assignment)
                updated = collection.find_one_and_update(
                    {"_id": subject_id, "status": current, "assigned_to": None},
                    update, return_document=ReturnDocument.AFTER)
            except PyMongoError:
                release()
                raise
            if updated is None:
                release()
            return updated

        try:
            updated = await self.store.run(write)
        except DuplicateKeyError:
            raise AlreadyAssigned()
        if updated is None:
            raise InvalidTransition(f"{kind.value.capitalize()} changed while being assigned")
        logger.info("%s %s assigned to %s by %s", kind.value, subject_id,
                    assignee["username"], assigner.username)
        return assignment, updated

    async def follow_subject(self, kind: SubjectKind, subject_id: str, subject_status: str):
        new_status = _FOLLOW[kind].get(subject_status)
        if new_status is None:
            return
        now = self.clock()

        def write():
            result = self.db.assignments.update_many(
                {"subject_kind": kind.value, "subject_id": subject_id,
                 "status": {"$ne": AssignmentStatus.COMPLETED.value}},
                {"$set": {"status": new_status.value, "updated_at": now}})
            if new_status == AssignmentStatus.COMPLETED:
                self.db.active_assignments.delete_one({"_id": lock_key(kind.value, subject_id)})
            return result.modified_count

        modified = await self.store.run(write)
        if modified:
            logger.info("Assignment for %s %s is now %s", kind.value, subject_id, new_status.value)

    async def active_assignment(self, kind: SubjectKind, subject_id: str) -> Optional[dict]:
        return await self.store.run(
            self.db.assignments.find_one,
            {"subject_kind": kind.value, "subject_id": subject_id,
             "status": {"$ne": AssignmentStatus.COMPLETED.value}})

    async def assignments_for(self, assignee_id: str, kind: Optional[SubjectKind] = None) -> List[dict]:
        fq = {"assignee_id": assignee_id}
        if kind:
            fq["subject_kind"] = kind.value

        def fetch():
            rows = list(self.db.assignments.find(fq).sort("assigned_at", DESCENDING))
            for row in rows:
                subject = self._collection(SubjectKind(row["subject_kind"])).find_one(
                    {"_id": row["subject_id"]}, {"title": 1, "status": 1})
                row["subject_title"] = (subject or {}).get("title")
                row["subject_status"] = (subject or {}).get("status")
            return rows
        return await self.store.run(fetch)
