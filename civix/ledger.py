# Vote/signature ledger: one ballot per (subject, actor), plus poll tallies

import logging
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from .config import now_utc
from .errors import NotFound, InvalidOption, Expired, DuplicateVote, DuplicateSignature, NotSignable
from .models import PetitionStatus, TallyResponse, OptionTally
from .store import Store, as_utc, ballot_key

logger = logging.getLogger(__name__)


def poll_expires_at(poll: dict) -> datetime:
    return as_utc(poll["created_at"]) + timedelta(hours=poll["duration_hours"])


def poll_is_active(poll: dict, now: datetime) -> bool:
    # Inclusive: a ballot cast at exactly created_at + duration still counts
    return now <= poll_expires_at(poll)


def percentage(count: int, total: int) -> int:
    """Half-up rounding of count/total*100, computed per option.

    Independent rounding means the percentages of one poll can add up to
    99 or 101; callers must not rescale them.
    """
    if total <= 0:
        return 0
    share = Decimal(count) * 100 / Decimal(total)
    return int(share.quantize(Decimal(1), rounding=ROUND_HALF_UP))


class Ledger:
    def __init__(self, store: Store, clock: Callable[[], datetime] = now_utc):
        self.store = store
        self.clock = clock

    @property
    def db(self):
        return self.store.db

    async def get_poll(self, poll_id: str) -> dict:
        poll = await self.store.run(self.db.polls.find_one, {"_id": poll_id})
        if not poll:
            raise NotFound("Poll")
        return poll

    # ------------------------------------------------------------------
    # Votes
    # ------------------------------------------------------------------
    async def cast_vote(self, poll_id: str, voter_id: str, option: str) -> dict:
        poll = await self.get_poll(poll_id)
        now = self.clock()
        if not poll_is_active(poll, now):
            raise Expired()
        if option not in poll["options"]:
            raise InvalidOption()
        vote = {
            "_id": ballot_key(poll_id, voter_id),
            "poll_id": poll_id, "voter_id": voter_id,
            "selected_option": option, "cast_at": now,
        }
        try:
            await self.store.run(self.db.votes.insert_one, vote)
        except DuplicateKeyError:
            raise DuplicateVote()
        logger.info("Vote recorded on poll %s", poll_id)
        return vote

    async def vote_of(self, poll_id: str, voter_id: str) -> Optional[str]:
        vote = await self.store.run(self.db.votes.find_one, {"_id": ballot_key(poll_id, voter_id)})
        return vote["selected_option"] if vote else None

    async def tally(self, poll_id: str) -> TallyResponse:
        poll = await self.get_poll(poll_id)
        pipeline = [
            {"$match": {"poll_id": poll_id}},
            {"$group": {"_id": "$selected_option", "count": {"$sum": 1}}},
        ]
        rows = await self.store.run(lambda: list(self.db.votes.aggregate(pipeline)))
        grouped = {r["_id"]: r["count"] for r in rows}
        total = sum(grouped.values())
        counts: Dict[str, int] = {opt: grouped.get(opt, 0) for opt in poll["options"]}
        options = [OptionTally(option=opt, count=n, percentage=percentage(n, total))
                   for opt, n in counts.items()]
        return TallyResponse(
            poll_id=poll_id, total=total, counts=counts,
            percentages={o.option: o.percentage for o in options}, options=options)

    # ------------------------------------------------------------------
    # Signatures
    # ------------------------------------------------------------------
    async def sign_petition(self, petition_id: str, signer_id: str) -> dict:
        petition = await self.store.run(self.db.petitions.find_one, {"_id": petition_id})
        if not petition:
            raise NotFound("Petition")
        if petition["status"] != PetitionStatus.ACTIVE.value:
            raise NotSignable()
        now = self.clock()
        signature = {
            "_id": ballot_key(petition_id, signer_id),
            "petition_id": petition_id, "signer_id": signer_id, "signed_at": now,
        }

        def write():
            self.db.signatures.insert_one(signature)
            # The count only moves while the petition is still open; a petition
            # that left "active" after the read above takes the signature back.
            try:
                updated = self.db.petitions.find_one_and_update(
                    {"_id": petition_id, "status": PetitionStatus.ACTIVE.value},
                    {"$inc": {"signatures_count": 1}},
                    return_document=ReturnDocument.AFTER)
            except PyMongoError:
                self.db.signatures.delete_one({"_id": signature["_id"]})
                raise
            if updated is None:
                self.db.signatures.delete_one({"_id": signature["_id"]})
            return updated

        try:
            updated = await self.store.run(write)
        except DuplicateKeyError:
            raise DuplicateSignature()
        if updated is None:
            raise NotSignable()
        logger.info("Petition %s signed (%d signatures)", petition_id, updated["signatures_count"])
        return {**signature, "signatures_count": updated["signatures_count"]}

    async def has_signed(self, petition_id: str, signer_id: str) -> bool:
        sig = await self.store.run(self.db.signatures.find_one, {"_id": ballot_key(petition_id, signer_id)})
        return sig is not None

    async def signature_count(self, petition_id: str) -> int:
        return await self.store.run(self.db.signatures.count_documents, {"petition_id": petition_id})
