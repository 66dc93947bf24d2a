"""Shared fixtures for all bot tests."""

from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path
from unittest.mock import AsyncMock

# Ensure the project root is on sys.path
_root_dir = str(Path(__file__).resolve().parent)
if _root_dir not in sys.path:
    sys.path.insert(0, _root_dir)

import fakeredis
from fakeredis import aioredis as fake_aioredis
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
import models  # noqa: F401  register all models with Base

# In-memory SQLite; StaticPool keeps one shared connection across threads
TEST_ENGINE = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSession = sessionmaker(bind=TEST_ENGINE, autoflush=False, expire_on_commit=False)

NOW = datetime(2026, 10, 18, 12, 0, 0)


@pytest.fixture(autouse=True)
def _setup_db():
    """Create all tables before each test, drop after."""
    Base.metadata.create_all(bind=TEST_ENGINE)
    yield
    Base.metadata.drop_all(bind=TEST_ENGINE)


@pytest.fixture
def db():
    """Yield a test database session."""
    session = TestSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def repository():
    from services.repository import TaskRepository

    return TaskRepository(TestSession)


@pytest.fixture
def fake_redis():
    # Fresh server per test so keys never leak between tests
    return fake_aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def sessions(fake_redis):
    from services.session_store import SessionStore

    return SessionStore(fake_redis, ttl=3600)


@pytest.fixture
def gateway():
    from services.gateway import MessagingGateway

    mock = AsyncMock(spec=MessagingGateway)
    mock.send_text.return_value = {"ok": True}
    mock.send_file.return_value = {"ok": True}
    mock.answer_callback_query.return_value = {"ok": True}
    mock.get_events.return_value = {"ok": True, "events": []}
    return mock


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def conversation(gateway, sessions, repository, clock):
    from services.conversation import ConversationEngine

    return ConversationEngine(gateway, sessions, repository, clock=clock)


@pytest.fixture
def make_user(db):
    from models.user import User

    def _make(vk_id: str, first_name: str = "Bob", last_name: str = "Smith") -> User:
        user = User(vk_id=vk_id, first_name=first_name, last_name=last_name)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_task(db):
    from models.task import Task, TaskStatus

    def _make(**overrides) -> Task:
        values = {
            "assignee_id": "bob@example.com",
            "chat_id": "alice@example.com",
            "first_name": "Alice",
            "last_name": "Jones",
            "text": "Fix bug",
            "status": TaskStatus.PENDING.value,
            "remind_interval": 30,
            "last_remind": NOW,
            "created_at": NOW,
        }
        values.update(overrides)
        task = Task(**values)
        db.add(task)
        db.commit()
        db.refresh(task)
        return task

    return _make
