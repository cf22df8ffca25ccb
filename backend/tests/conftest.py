# shared fixtures for backend api tests
# provides mock db, test users, a fake inference collaborator, and httpx test clients

import pytest
import pytest_asyncio
from unittest.mock import MagicMock
from datetime import datetime, timezone, timedelta
from bson import ObjectId

from httpx import AsyncClient, ASGITransport

from journey.main import app
from journey.services.db import get_db
from journey.services.auth_service import create_access_token
from journey.services.inference import get_inference_client
from journey.services.rate_limiter import InMemoryRateLimitStore, RateLimiter, get_rate_limiter
from journey.services.tasks import TaskQueue, get_task_queue
from journey.dependencies import get_current_user
from journey.errors import CollaboratorError, CollaboratorTimeoutError


# test ids (fixed so tests.conftest and the pytest-loaded conftest agree)
USER_OID = ObjectId("665f1c2ab8e4f2a1c3d4e5f6")
USER_2_OID = ObjectId("665f1c2ab8e4f2a1c3d4e5f7")
USER_ID = str(USER_OID)
USER_2_ID = str(USER_2_OID)

NOW = datetime(2025, 6, 15, 16, 0, tzinfo=timezone.utc)


# test user documents (as they'd appear from mongodb)

USER_DOC = {
    "_id": USER_OID,
    "email": "alex.rivera@email.com",
    "name": "Alex Rivera",
    "created_at": "2025-05-01T00:00:00+00:00",
    "profile": {
        "nickname": "Alex",
        "communication_style": "casual",
        "primary_goals": ["sleep better", "less work stress"],
    },
}

USER_2_DOC = {
    "_id": USER_2_OID,
    "email": "jordan.kim@email.com",
    "name": "Jordan Kim",
    "created_at": "2025-05-15T00:00:00+00:00",
    "profile": None,
}


def iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat()


def days_ago(days: float, base: datetime = NOW) -> str:
    return iso(base - timedelta(days=days))


def make_journal(user_id: str = USER_ID, days: float = 0, base: datetime = NOW, **overrides) -> dict:
    created = base - timedelta(days=days)
    doc = {
        "_id": ObjectId(),
        "journal_id": str(ObjectId())[-12:],
        "user_id": user_id,
        "title": "Long day at work",
        "content": "Meetings all afternoon, went for a walk after dinner which helped.",
        "mood_rating": 6,
        "activities": ["work", "exercise"],
        "sentiment": 0.1,
        "sentiment_label": "neutral",
        "feedback": "Sounds like the walk helped you reset.",
        "analysis_status": "complete",
        "created_at": iso(created),
    }
    doc.update(overrides)
    return doc


def make_snapshot(user_id: str = USER_ID, days: float = 0, score: int = 6, base: datetime = NOW, **overrides) -> dict:
    doc = {
        "_id": ObjectId(),
        "user_id": user_id,
        "score": score,
        "type": "pulse-check",
        "context": None,
        "activity_type": None,
        "improvement": None,
        "timestamp": iso(base - timedelta(days=days)),
    }
    doc.update(overrides)
    return doc


def make_pattern(user_id: str = USER_ID, days: float = 1, base: datetime = NOW, **overrides) -> dict:
    doc = {
        "_id": ObjectId(),
        "pattern_id": str(ObjectId())[-12:],
        "user_id": user_id,
        "type": "activity",
        "name": "Exercise-Mood Link",
        "description": "Your mood is noticeably higher on days when you go for a walk or exercise.",
        "confidence": 0.85,
        "evidence": {},
        "insights": "Movement seems to lift your mood.",
        "suggestions": "Try a short walk before lunch.",
        "is_active": True,
        "dismissed": False,
        "dismissed_at": None,
        "created_at": iso(base - timedelta(days=days)),
    }
    doc.update(overrides)
    return doc


# async cursor mock

class AsyncCursorMock:
    """mock for motor's async cursor: supports async for and chained methods"""

    def __init__(self, data=None):
        self._data = list(data or [])
        self._index = 0

    def sort(self, key_or_list, direction=None):
        keys = key_or_list if isinstance(key_or_list, list) else [(key_or_list, direction or 1)]
        self._data = _sorted(self._data, keys)
        return self

    def skip(self, n):
        self._data = self._data[n:]
        return self

    def limit(self, n):
        if n:
            self._data = self._data[:n]
        return self

    def __aiter__(self):
        self._index = 0
        return self

    async def __anext__(self):
        if self._index >= len(self._data):
            raise StopAsyncIteration
        item = self._data[self._index]
        self._index += 1
        return item

    async def to_list(self, length=None):
        if length is not None:
            return self._data[:length]
        return self._data


def _sorted(docs, keys):
    # apply keys last to first so the first key wins (sort is stable)
    result = list(docs)
    for key, direction in reversed(keys):
        present = [d for d in result if d.get(key) is not None]
        missing = [d for d in result if d.get(key) is None]
        present.sort(key=lambda d: d[key], reverse=direction == -1)
        result = present + missing
    return result


class MockCollection:
    """mock for a motor collection with async methods"""

    def __init__(self, data=None):
        self._data = data or []
        self.inserted = []
        self.fail_inserts = False

    def find(self, query=None, projection=None):
        results = self._data
        if query:
            results = [d for d in results if self._matches(d, query)]
        return AsyncCursorMock(results)

    async def find_one(self, query=None, projection=None, sort=None):
        results = [d for d in self._data if not query or self._matches(d, query)]
        if sort:
            results = _sorted(results, sort)
        return results[0] if results else None

    async def insert_one(self, doc):
        if self.fail_inserts:
            raise RuntimeError("insert failed")
        oid = doc.get("_id", ObjectId())
        doc["_id"] = oid
        self._data.append(doc)
        self.inserted.append(doc)
        result = MagicMock()
        result.inserted_id = oid
        return result

    async def count_documents(self, query=None):
        if not query:
            return len(self._data)
        return len([d for d in self._data if self._matches(d, query)])

    async def update_one(self, query, update, upsert=False):
        result = MagicMock()
        result.matched_count = 0
        result.modified_count = 0
        for doc in self._data:
            if self._matches(doc, query):
                doc.update(update.get("$set", {}))
                result.matched_count = 1
                result.modified_count = 1
                break
        return result

    async def update_many(self, query, update):
        result = MagicMock()
        matched = [d for d in self._data if self._matches(d, query)]
        for doc in matched:
            doc.update(update.get("$set", {}))
        result.matched_count = len(matched)
        result.modified_count = len(matched)
        return result

    async def delete_one(self, query):
        result = MagicMock()
        result.deleted_count = 0
        for i, doc in enumerate(self._data):
            if self._matches(doc, query):
                del self._data[i]
                result.deleted_count = 1
                break
        return result

    async def delete_many(self, query):
        result = MagicMock()
        keep = [d for d in self._data if not self._matches(d, query)]
        result.deleted_count = len(self._data) - len(keep)
        self._data[:] = keep
        return result

    def _matches(self, doc, query):
        """basic mongodb query matching for tests"""
        for key, value in query.items():
            if key == "$or":
                if not any(self._matches(doc, cond) for cond in value):
                    return False
                continue
            doc_val = doc.get(key)
            if isinstance(value, dict) and any(k.startswith("$") for k in value):
                for op, operand in value.items():
                    if not _compare(op, doc_val, operand, key in doc):
                        return False
            elif doc_val != value:
                return False
        return True


def _compare(op, doc_val, operand, present):
    if op == "$in":
        return doc_val in operand
    if op == "$ne":
        return doc_val != operand
    if op == "$exists":
        return present == bool(operand)
    if doc_val is None:
        return False
    if op == "$gte":
        return doc_val >= operand
    if op == "$gt":
        return doc_val > operand
    if op == "$lte":
        return doc_val <= operand
    if op == "$lt":
        return doc_val < operand
    raise ValueError(f"unsupported operator {op}")


class MockDatabase:
    """mock database that mimics the Database class"""

    def __init__(self):
        self.users = MockCollection([USER_DOC.copy(), USER_2_DOC.copy()])
        self.journals = MockCollection([])
        self.mood_snapshots = MockCollection([])
        self.mood_entries = MockCollection([])
        self.patterns = MockCollection([])
        self.therapy_exercises = MockCollection([])
        self.weekly_reflections = MockCollection([])
        self.chat_messages = MockCollection([])
        self.dead_letters = MockCollection([])

    async def connect(self):
        pass

    async def close(self):
        pass


class FakeInference:
    """stands in for InferenceClient; records calls and returns canned replies"""

    def __init__(self):
        self.reply = "That sounds like a lot. What part of today felt heaviest?"
        self.sentiment = {"sentiment": 0.6, "sentimentLabel": "positive", "feedback": "Love that the walk helped!"}
        self.patterns = []
        self.prompt = "You said you want to sleep better. What helped you wind down last night?"
        self.error = None
        self.calls = []

    def _maybe_fail(self):
        if self.error == "timeout":
            raise CollaboratorTimeoutError("timed out")
        if self.error == "error":
            raise CollaboratorError("failed")

    async def chat_reply(self, message, history, user_summary, journey_context, profile=None):
        self.calls.append(("chat_reply", message, history, user_summary, journey_context))
        self._maybe_fail()
        return self.reply

    async def analyze_sentiment(self, title, content, activities):
        self.calls.append(("analyze_sentiment", title))
        self._maybe_fail()
        return self.sentiment

    async def propose_patterns(self, data_summary, profile=None):
        self.calls.append(("propose_patterns", data_summary))
        self._maybe_fail()
        return self.patterns

    async def smart_prompt(self, prompt_context, profile=None):
        self.calls.append(("smart_prompt", prompt_context))
        self._maybe_fail()
        return self.prompt

    def called(self, name):
        return [c for c in self.calls if c[0] == name]


@pytest.fixture
def mock_db():
    """create a fresh mock database for each test"""
    return MockDatabase()


@pytest.fixture
def fake_inference():
    return FakeInference()


@pytest.fixture
def rate_limiter():
    """fresh limiter per test, sweeping disabled"""
    return RateLimiter(InMemoryRateLimitStore(sweep_probability=0.0))


@pytest.fixture
def task_queue(mock_db):
    return TaskQueue(database=mock_db, retry_delay=0)


def _user_dict():
    """return user dict as get_current_user would return"""
    doc = USER_DOC.copy()
    doc["id"] = USER_ID
    del doc["_id"]
    return doc


@pytest.fixture
def user_token():
    """jwt access token for the test user"""
    return create_access_token({"sub": USER_ID})


def _override(mock_db, fake_inference, rate_limiter, task_queue):
    async def override_get_db():
        return mock_db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_inference_client] = lambda: fake_inference
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    app.dependency_overrides[get_task_queue] = lambda: task_queue


@pytest_asyncio.fixture
async def client(mock_db, fake_inference, rate_limiter, task_queue):
    """httpx async test client with mocked dependencies, no user override"""
    _override(mock_db, fake_inference, rate_limiter, task_queue)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def user_client(mock_db, fake_inference, rate_limiter, task_queue):
    """client authenticated as the test user"""
    _override(mock_db, fake_inference, rate_limiter, task_queue)

    async def override_get_current_user():
        return _user_dict()

    app.dependency_overrides[get_current_user] = override_get_current_user

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
