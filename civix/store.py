# MongoDB document store and the executor bridge for blocking pymongo calls

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from functools import partial
from typing import Optional

from pymongo import MongoClient, ASCENDING, DESCENDING

from .config import MONGODB_URL, MONGODB_DB, EXECUTOR_WORKERS

logger = logging.getLogger(__name__)

COLLECTIONS = [
    "users", "complaints", "petitions", "signatures", "polls", "votes",
    "assignments", "active_assignments", "notification_logs", "revoked_tokens",
]


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """MongoDB hands back naive UTC datetimes unless the client is tz-aware."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def ballot_key(subject_id: str, actor_id: str) -> str:
    return f"{subject_id}:{actor_id}"


def lock_key(kind: str, subject_id: str) -> str:
    return f"{kind}:{subject_id}"


class Store:
    """Holds the database handle and the pool that blocking calls run on.

    Votes, signatures and active assignments are keyed by their natural key
    (``_id``), so the uniqueness check and the insert are one server-side
    operation. The compound unique indexes below mirror the same keys for
    queries.
    """

    def __init__(self, db, executor: Optional[ThreadPoolExecutor] = None, client=None):
        self.db = db
        self.client = client
        self.executor = executor or ThreadPoolExecutor(max_workers=EXECUTOR_WORKERS)

    @classmethod
    def connect(cls, url: str = MONGODB_URL, name: str = MONGODB_DB) -> "Store":
        client = MongoClient(url, tz_aware=True)
        return cls(client[name], client=client)

    async def run(self, fn, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, partial(fn, *args, **kwargs))

    def ensure_indexes(self):
        db = self.db
        db.users.create_index([("username", ASCENDING)], unique=True)
        db.users.create_index("role")
        db.complaints.create_index("created_by")
        db.complaints.create_index("assigned_to")
        db.complaints.create_index("status")
        db.complaints.create_index("category")
        db.petitions.create_index([("created_at", DESCENDING)])
        db.petitions.create_index("status")
        db.petitions.create_index("location")
        db.petitions.create_index("assigned_to")
        db.signatures.create_index(
            [("petition_id", ASCENDING), ("signer_id", ASCENDING)], unique=True)
        db.polls.create_index("target_location")
        db.votes.create_index(
            [("poll_id", ASCENDING), ("voter_id", ASCENDING)], unique=True)
        db.assignments.create_index("assignee_id")
        db.assignments.create_index([("subject_kind", ASCENDING), ("subject_id", ASCENDING)])
        db.revoked_tokens.create_index("token")
        logger.info("Database indexes ensured on %s", db.name)

    async def startup(self):
        await self.run(self.ensure_indexes)

    def close(self):
        if self.client is not None:
            self.client.close()
        self.executor.shutdown(wait=False)
