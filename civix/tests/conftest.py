"""
Shared pytest fixtures for the Civix portal test suite.

Runs everything in-process: a mongomock database behind the real Store, an
httpx AsyncClient over ASGITransport, a controllable clock, and fakes for the
notification and sentiment collaborators. No MongoDB or OpenAI needed.
"""

import os
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

os.environ.setdefault("JWT_SECRET", "civix-test-secret-0123456789abcdefghijklmnop")

import httpx
import mongomock
import pytest
import pytest_asyncio
from pymongo.errors import PyMongoError

from civix.config import new_id
from civix.identity import create_access_token, hash_password
from civix.models import Identity, Sentiment
from civix.portal import app, limiter
from civix.store import Store

PASSWORD = "secret123"
_hashed = {}


class FakeClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self):
        self.notices = []

    async def notify(self, notice):
        self.notices.append(notice)


class KeywordAnalyzer:
    """Stands in for the OpenAI-backed analyzer."""

    async def analyze(self, text: str) -> Sentiment:
        lowered = text.lower()
        if any(w in lowered for w in ("broken", "dangerous", "dark", "overflowing")):
            return Sentiment.NEGATIVE
        if any(w in lowered for w in ("thank", "great", "love")):
            return Sentiment.POSITIVE
        return Sentiment.NEUTRAL


class FailingCollection:
    """Proxies a collection but raises on one method."""

    def __init__(self, collection, method: str):
        self._collection = collection
        self._method = method

    def __getattr__(self, name):
        if name == self._method:
            return self._fail
        return getattr(self._collection, name)

    def _fail(self, *args, **kwargs):
        raise PyMongoError(f"{self._collection.name}.{self._method} unavailable")


class StorageFault:
    """Swaps ``store.db`` for a view where one collection method fails."""

    def __init__(self, store: Store):
        self.store = store
        self.db = store.db

    def fail(self, collection: str, method: str):
        real, broken = self.db, FailingCollection(self.db[collection], method)

        class _Database:
            def __getattr__(self, name):
                return broken if name == collection else getattr(real, name)

            def __getitem__(self, name):
                return self.__getattr__(name)

        self.store.db = _Database()

    def heal(self):
        self.store.db = self.db


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc))


@pytest_asyncio.fixture
async def store():
    """Real Store over mongomock.

    One worker, so executor jobs run one at a time in submission order. The
    concurrent ledger and assignment tests therefore interleave the async
    steps of competing requests (read, check, write) rather than running two
    storage jobs in parallel; parallel safety rests on the unique ``_id``
    keys, which MongoDB enforces server-side.
    """
    db = mongomock.MongoClient()["civix_test"]
    s = Store(db, executor=ThreadPoolExecutor(max_workers=1))
    await s.startup()
    yield s
    s.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


def make_user(store: Store, username: str, role: str, location="Riverside") -> dict:
    """Insert a user straight into the store (bcrypt hash computed once per run)."""
    if PASSWORD not in _hashed:
        _hashed[PASSWORD] = hash_password(PASSWORD)
    doc = {
        "_id": new_id(), "username": username, "hashed_password": _hashed[PASSWORD],
        "full_name": username.title(), "email": f"{username}@example.com",
        "location": location, "role": role,
        "created_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
    }
    store.db.users.insert_one(doc)
    return doc


def identity_of(user: dict) -> Identity:
    return Identity(user_id=user["_id"], role=user["role"], username=user["username"])


def auth(user: dict) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user)}"}


@pytest.fixture
def users(store):
    return {
        "citizen": make_user(store, "citizen1", "citizen"),
        "citizen2": make_user(store, "citizen2", "citizen"),
        "citizen3": make_user(store, "citizen3", "citizen", location="Old Town"),
        "volunteer": make_user(store, "volunteer_w", "volunteer"),
        "volunteer2": make_user(store, "volunteer_x", "volunteer"),
        "official": make_user(store, "official1", "official"),
        "admin": make_user(store, "admin", "admin", location=None),
    }


@pytest.fixture
def headers(users):
    return {name: auth(user) for name, user in users.items()}


@pytest.fixture
def identities(users):
    return {name: identity_of(user) for name, user in users.items()}


@pytest_asyncio.fixture
async def client(store, clock, notifier):
    """In-process httpx AsyncClient wired to the mongomock store and fakes."""
    # Disable rate limiting during tests so login fixtures aren't throttled
    limiter.enabled = False
    app.state.store = store
    app.state.clock = clock
    app.state.notifier = notifier
    app.state.sentiment = KeywordAnalyzer()

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c

    app.state.store = None
    app.state.clock = None
    app.state.notifier = None
    app.state.sentiment = None


@pytest.fixture
def storage_fault(store):
    fault = StorageFault(store)
    yield fault
    fault.heal()
