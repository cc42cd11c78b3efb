# Entity lifecycle engine: complaint, petition and poll status rules.
#
# Status changes are compare-and-set updates guarded on the status that was
# read, and every change pushes one entry onto status_history. The history
# list is only ever appended to.

import logging
from datetime import datetime
from typing import Callable, Dict, FrozenSet, List, Optional

from pymongo import ReturnDocument, DESCENDING

from .config import new_id, now_utc
from .errors import NotFound, Forbidden, InvalidInput, InvalidStatus, InvalidTransition
from .ledger import poll_expires_at
from .models import (
    ComplaintStatus, PetitionStatus, SubjectKind, Identity, STAFF_ROLES,
    ComplaintCreate, PetitionCreate, PetitionEdit, PollCreate,
)
from .store import Store

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Transition tables
# ---------------------------------------------------------------------------
COMPLAINT_ORDER: List[ComplaintStatus] = [
    ComplaintStatus.RECEIVED, ComplaintStatus.IN_REVIEW, ComplaintStatus.RESOLVED,
]

PETITION_TRANSITIONS: Dict[PetitionStatus, FrozenSet[PetitionStatus]] = {
    PetitionStatus.ACTIVE: frozenset({PetitionStatus.ASSIGNED, PetitionStatus.CLOSED}),
    PetitionStatus.ASSIGNED: frozenset({PetitionStatus.UNDER_REVIEW, PetitionStatus.RESOLVED,
                                        PetitionStatus.CLOSED}),
    PetitionStatus.UNDER_REVIEW: frozenset({PetitionStatus.RESOLVED, PetitionStatus.CLOSED}),
    PetitionStatus.RESOLVED: frozenset({PetitionStatus.CLOSED}),
    PetitionStatus.CLOSED: frozenset(),
}

VOLUNTEER_PETITION_TARGETS = frozenset({PetitionStatus.UNDER_REVIEW, PetitionStatus.RESOLVED})


def parse_status(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidStatus(f"Invalid status: {value}")


def complaint_can_move(current: ComplaintStatus, target: ComplaintStatus) -> bool:
    return COMPLAINT_ORDER.index(target) > COMPLAINT_ORDER.index(current)


def petition_can_move(current: PetitionStatus, target: PetitionStatus) -> bool:
    return target in PETITION_TRANSITIONS[current]


def history_entry(status: str, actor_id: str, note: Optional[str], at: datetime) -> dict:
    return {"status": status, "by": actor_id, "note": note, "at": at}


class Lifecycle:
    """Creates entities and moves them through their status machines.

    ``assignments`` is the assignment coordinator; it is told about every
    status change so the matching assignment record follows its subject.
    """

    def __init__(self, store: Store, assignments=None, clock: Callable[[], datetime] = now_utc):
        self.store = store
        self.assignments = assignments
        self.clock = clock

    @property
    def db(self):
        return self.store.db

    # ------------------------------------------------------------------
    # Complaints
    # ------------------------------------------------------------------
    async def create_complaint(self, identity: Identity, data: ComplaintCreate) -> dict:
        now = self.clock()
        doc = {
            "_id": new_id(), "title": data.title, "description": data.description,
            "category": data.category, "location": data.location,
            "latitude": data.latitude, "longitude": data.longitude,
            "photo_url": data.photo_url,
            "status": ComplaintStatus.RECEIVED.value,
            "created_by": identity.user_id, "assigned_to": None,
            "status_history": [],
            "created_at": now, "updated_at": now,
        }
        await self.store.run(self.db.complaints.insert_one, doc)
        logger.info("Complaint %s filed by %s", doc["_id"], identity.username)
        return doc

    async def get_complaint(self, complaint_id: str) -> dict:
        doc = await self.store.run(self.db.complaints.find_one, {"_id": complaint_id})
        if not doc:
            raise NotFound("Complaint")
        return doc

    async def list_complaints(self, *, category: Optional[str] = None, status: Optional[str] = None,
                              assigned_to: Optional[str] = None, created_by: Optional[str] = None,
                              limit: int = 100, skip: int = 0) -> List[dict]:
        fq = {}
        if category: fq["category"] = category
        if status: fq["status"] = status
        if assigned_to: fq["assigned_to"] = assigned_to
        if created_by: fq["created_by"] = created_by
        def fetch():
            return list(self.db.complaints.find(fq).sort("created_at", DESCENDING).skip(skip).limit(limit))
        return await self.store.run(fetch)

    async def update_complaint_status(self, complaint_id: str, actor: Identity,
                                      status: str, note: Optional[str] = None) -> dict:
        target = parse_status(ComplaintStatus, status)
        complaint = await self.get_complaint(complaint_id)
        if actor.role.value not in STAFF_ROLES and complaint.get("assigned_to") != actor.user_id:
            raise Forbidden("Not assigned to you")
        current = ComplaintStatus(complaint["status"])
        if not complaint_can_move(current, target):
            raise InvalidTransition(f"Cannot move complaint from {current.value} to {target.value}")
        updated = await self._compare_and_set(
            self.db.complaints, complaint_id, current.value, target.value, actor.user_id, note)
        if updated is None:
            raise InvalidTransition("Complaint status changed concurrently")
        logger.info("Complaint %s: %s -> %s by %s", complaint_id, current.value, target.value, actor.username)
        if self.assignments is not None:
            await self.assignments.follow_subject(SubjectKind.COMPLAINT, complaint_id, target.value)
        return updated

    # ------------------------------------------------------------------
    # Petitions
    # ------------------------------------------------------------------
    async def create_petition(self, identity: Identity, data: PetitionCreate,
                              default_location: Optional[str] = None) -> dict:
        location = data.location or default_location
        if not location:
            raise InvalidInput("Location is required")
        now = self.clock()
        doc = {
            "_id": new_id(), "title": data.title, "summary": data.summary,
            "description": data.description, "category": data.category,
            "location": location, "latitude": data.latitude, "longitude": data.longitude,
            "target_authority": data.target_authority, "signature_goal": data.signature_goal,
            "signatures_count": 0, "status": PetitionStatus.ACTIVE.value,
            "creator": identity.user_id, "assigned_to": None, "official_response": None,
            "status_history": [],
            "comments": [], "created_at": now, "updated_at": now,
        }
        await self.store.run(self.db.petitions.insert_one, doc)
        logger.info("Petition %s started by %s", doc["_id"], identity.username)
        return doc

    async def get_petition(self, petition_id: str) -> dict:
        doc = await self.store.run(self.db.petitions.find_one, {"_id": petition_id})
        if not doc:
            raise NotFound("Petition")
        return doc

    async def list_petitions(self, *, category: Optional[str] = None, status: Optional[str] = None,
                             location: Optional[str] = None, creator: Optional[str] = None,
                             assigned_to: Optional[str] = None,
                             limit: int = 100, skip: int = 0) -> List[dict]:
        fq = {}
        if category: fq["category"] = category
        if status: fq["status"] = status
        if location: fq["location"] = location
        if creator: fq["creator"] = creator
        if assigned_to: fq["assigned_to"] = assigned_to
        def fetch():
            return list(self.db.petitions.find(fq).sort("created_at", DESCENDING).skip(skip).limit(limit))
        return await self.store.run(fetch)

    async def edit_petition(self, petition_id: str, actor: Identity, edit: PetitionEdit) -> dict:
        petition = await self.get_petition(petition_id)
        if petition["creator"] != actor.user_id:
            raise Forbidden("Only the creator can edit this petition")
        fields = edit.model_dump(exclude_none=True)
        if not fields:
            raise InvalidInput("No fields to update")
        fields["updated_at"] = self.clock()
        updated = await self.store.run(
            self.db.petitions.find_one_and_update,
            {"_id": petition_id, "status": PetitionStatus.ACTIVE.value},
            {"$set": fields}, return_document=ReturnDocument.AFTER)
        if updated is None:
            raise InvalidTransition("Petition cannot be edited once under review or closed")
        return updated

    async def add_comment(self, petition_id: str, actor: Identity, text: str) -> dict:
        comment = {"id": new_id(), "by": actor.user_id, "text": text, "at": self.clock()}
        updated = await self.store.run(
            self.db.petitions.find_one_and_update, {"_id": petition_id},
            {"$push": {"comments": comment}}, return_document=ReturnDocument.AFTER)
        if updated is None:
            raise NotFound("Petition")
        return updated

    async def volunteer_update(self, petition_id: str, actor: Identity,
                               status: Optional[str] = None, note: Optional[str] = None) -> dict:
        petition = await self.get_petition(petition_id)
        if not petition.get("assigned_to") or petition["assigned_to"] != actor.user_id:
            raise Forbidden("Not assigned to you")
        target = parse_status(PetitionStatus, status) if status else PetitionStatus.UNDER_REVIEW
        if target not in VOLUNTEER_PETITION_TARGETS:
            raise InvalidTransition(f"Volunteers cannot set status {target.value}")
        return await self._move_petition(petition, target, actor, note)

    async def respond(self, petition_id: str, actor: Identity,
                      response: Optional[str] = None, status: Optional[str] = None) -> dict:
        petition = await self.get_petition(petition_id)
        current = PetitionStatus(petition["status"])
        target = parse_status(PetitionStatus, status) if status else current
        if target == PetitionStatus.ASSIGNED and current != PetitionStatus.ASSIGNED:
            raise InvalidTransition("Use the assign endpoint to assign a petition")
        if target == current and not response:
            raise InvalidInput("Nothing to update")
        extra = {"official_response": response} if response else None
        return await self._move_petition(petition, target, actor, response, extra)

    async def _move_petition(self, petition: dict, target: PetitionStatus, actor: Identity,
                             note: Optional[str], extra: Optional[dict] = None) -> dict:
        current = PetitionStatus(petition["status"])
        if target == current:
            # Re-stating the status records a progress note
            if current == PetitionStatus.CLOSED or not note:
                raise InvalidTransition(f"Petition is already {current.value}")
        elif not petition_can_move(current, target):
            raise InvalidTransition(f"Cannot move petition from {current.value} to {target.value}")
        updated = await self._compare_and_set(
            self.db.petitions, petition["_id"], current.value, target.value, actor.user_id, note, extra)
        if updated is None:
            raise InvalidTransition("Petition status changed concurrently")
        logger.info("Petition %s: %s -> %s by %s", petition["_id"], current.value, target.value, actor.username)
        if target != current and self.assignments is not None:
            await self.assignments.follow_subject(SubjectKind.PETITION, petition["_id"], target.value)
        return updated

    async def _compare_and_set(self, collection, entity_id: str, current: str, target: str,
                               actor_id: str, note: Optional[str], extra: Optional[dict] = None):
        now = self.clock()
        fields = {"status": target, "updated_at": now, **(extra or {})}
        return await self.store.run(
            collection.find_one_and_update,
            {"_id": entity_id, "status": current},
            {"$set": fields, "$push": {"status_history": history_entry(target, actor_id, note, now)}},
            return_document=ReturnDocument.AFTER)

    # ------------------------------------------------------------------
    # Polls
    # ------------------------------------------------------------------
    async def create_poll(self, identity: Identity, data: PollCreate) -> dict:
        doc = {
            "_id": new_id(), "title": data.title, "description": data.description,
            "category": data.category, "options": list(data.options),
            "duration_hours": data.duration_hours, "target_location": data.target_location,
            "created_by": identity.user_id, "created_at": self.clock(),
        }
        await self.store.run(self.db.polls.insert_one, doc)
        logger.info("Poll %s opened by %s for %dh", doc["_id"], identity.username, data.duration_hours)
        return doc

    async def list_polls(self, *, target_location: Optional[str] = None,
                         active_only: bool = False) -> List[dict]:
        fq = {"target_location": target_location} if target_location else {}
        def fetch():
            return list(self.db.polls.find(fq).sort("created_at", DESCENDING))
        polls = await self.store.run(fetch)
        if active_only:
            now = self.clock()
            polls = [p for p in polls if now <= poll_expires_at(p)]
        return polls
