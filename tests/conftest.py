"""Pytest fixtures and configuration for tasklanes tests."""

import pytest
from datetime import datetime, timedelta, timezone
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient
import uuid

from tasklanes.database.database import Base, make_session_factory
from tasklanes.database.document_store import SqlDocumentStore
from tasklanes.models.task import Task, TaskStatus
from tasklanes.models.user import CurrentUser
from tasklanes.store.memory import InMemoryDocumentStore


# One shared in-memory SQLite connection per sql_store fixture
TEST_DATABASE_URL = "sqlite:///:memory:"

BASE_TIME = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def test_user_id():
    """Owner id of the signed-in test user."""
    return "test-user-123"


@pytest.fixture
def test_user(test_user_id):
    """Signed-in user used by controller and API tests."""
    return CurrentUser(
        id=test_user_id,
        display_name="Test User",
        email="test@example.com",
        photo_url=None,
    )


@pytest.fixture
def other_user():
    """A second user, for owner scoping tests."""
    return CurrentUser(id="other-user-456", display_name="Other User", email="other@example.com")


@pytest.fixture
def store():
    """Fresh in-memory document store."""
    return InMemoryDocumentStore()


@pytest.fixture
def sql_store():
    """SQL document store over an in-memory SQLite database.

    StaticPool keeps the single in-memory connection alive across the store's
    worker thread.
    """
    import tasklanes.database.models  # noqa: F401

    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )
    Base.metadata.create_all(bind=engine)
    sql_store = SqlDocumentStore(make_session_factory(engine))
    try:
        yield sql_store
    finally:
        sql_store.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def sample_task_base(test_user_id):
    """Base task data for building Task objects directly.

    Returns a dict with default task attributes that can be overridden.
    """
    return {
        "id": str(uuid.uuid4()),
        "user_id": test_user_id,
        "title": "Test Task",
        "description": "Test description",
        "status": TaskStatus.TODO,
        "created_at": BASE_TIME,
        "updated_at": BASE_TIME,
        "order": 0,
    }


@pytest.fixture
def make_task(sample_task_base):
    """Factory for Task objects: ``make_task("A", status="todo", order=2)``."""
    counter = {"n": 0}

    def _make(title: str = "Test Task", **overrides) -> Task:
        counter["n"] += 1
        data = {
            **sample_task_base,
            "id": overrides.pop("id", f"task-{title.lower().replace(' ', '-')}-{counter['n']}"),
            "title": title,
            "created_at": BASE_TIME + timedelta(minutes=counter["n"]),
            "updated_at": BASE_TIME + timedelta(minutes=counter["n"]),
        }
        data.update(overrides)
        return Task(**data)

    return _make


@pytest.fixture
def test_client(test_user):
    """FastAPI test client over an in-memory store with authentication overridden."""
    from tasklanes.api.app import create_app
    from tasklanes.auth.dependencies import get_current_user

    app = create_app(store=InMemoryDocumentStore())

    # Every request authenticates as test_user
    def override_get_current_user():
        return test_user

    app.dependency_overrides[get_current_user] = override_get_current_user

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()
