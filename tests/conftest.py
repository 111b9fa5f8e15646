"""Shared fixtures for the classboard test suite."""

import os
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest

from classboard.audit import AuditRecorder, InMemoryAuditSink
from classboard.config import Settings, reset_settings
from classboard.models import (
    Audience,
    AuthorRole,
    NotificationAction,
    Post,
    PostStatus,
    PostType,
)
from classboard.outbox import Outbox
from classboard.persistence import InMemoryPostRepository
from classboard.store import PostStore
from classboard.utils import generate_id


# ---------------------------------------------------------------------------
# Ensure we don't hit real services or pick up local overrides during tests
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def _block_env_keys(monkeypatch):
    """Clear Supabase keys and every settings override from the environment."""
    keys = ["SUPABASE_URL", "SUPABASE_SERVICE_KEY", "LOG_LEVEL"]
    keys += [key for key in os.environ if key.startswith("CLASSBOARD_")]
    for key in keys:
        monkeypatch.delenv(key, raising=False)
    reset_settings()
    yield
    reset_settings()


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------
class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def sample_utc_now():
    """A fixed UTC datetime for deterministic tests (Wednesday 2024-03-13 12:00)."""
    return datetime(2024, 3, 13, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock(sample_utc_now):
    return FakeClock(sample_utc_now)


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------
class RecordingNotificationGenerator:
    """NotificationGenerator that records calls and can be told to fail."""

    def __init__(self):
        self.calls: List[Tuple[Post, NotificationAction, Optional[Post]]] = []
        self.fail_with: Optional[Exception] = None

    async def generate(self, post, action, previous=None):
        if self.fail_with is not None:
            raise self.fail_with
        self.calls.append((post, action, previous))

    def actions_for(self, post_id: str) -> List[NotificationAction]:
        return [action for post, action, _ in self.calls if post.id == post_id]


@pytest.fixture
def settings():
    return Settings(outbox_max_attempts=2, outbox_base_delay=0.0)


@pytest.fixture
def repository():
    return InMemoryPostRepository()


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def notifier():
    return RecordingNotificationGenerator()


@pytest.fixture
def outbox():
    return Outbox(max_attempts=2, base_delay=0.0)


@pytest.fixture
def recorder(audit_sink, clock):
    return AuditRecorder(audit_sink, clock=clock)


@pytest.fixture
def store(repository, recorder, notifier, outbox, settings, clock):
    """A PostStore wired to in-memory collaborators and the fake clock."""
    return PostStore(
        repository=repository,
        audit=recorder,
        notifications=notifier,
        outbox=outbox,
        settings=settings,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# Post factory
# ---------------------------------------------------------------------------
@pytest.fixture
def make_post(sample_utc_now):
    """Build a Post with sensible defaults; keyword arguments override."""

    def _make(**overrides) -> Post:
        values = dict(
            id=generate_id(),
            type=PostType.NOTICE,
            title="School notice",
            audience=Audience.GLOBAL,
            author_id="teacher-1",
            author_name="Ana Souza",
            author_role=AuthorRole.TEACHER,
            status=PostStatus.PUBLISHED,
            created_at=sample_utc_now,
            updated_at=sample_utc_now,
        )
        values.update(overrides)
        return Post(**values)

    return _make


# ---------------------------------------------------------------------------
# Mock Supabase client
# ---------------------------------------------------------------------------
@pytest.fixture
def mock_supabase_client():
    """A mock Supabase async client.

    ``client.table(...)`` returns one chainable query mock whose
    ``execute`` is an ``AsyncMock`` returning an empty result.
    """
    client = MagicMock()
    table_mock = MagicMock()
    for method in (
        "select", "insert", "update", "delete", "eq", "neq", "gte", "lte",
        "order", "limit", "range", "contains", "or_",
    ):
        getattr(table_mock, method).return_value = table_mock
    table_mock.execute = AsyncMock(return_value=MagicMock(data=[], count=0))
    client.table.return_value = table_mock
    client.functions.invoke = AsyncMock(return_value=b"{}")
    return client
