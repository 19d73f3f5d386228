import os
import tempfile
from datetime import datetime

import pytest

# Throwaway database and test host. Must be set before any app module reads config.
_DB_DIR = tempfile.mkdtemp(prefix="task-tracker-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test_tasks.db')}"
os.environ["ALLOWED_HOSTS"] = "testserver,localhost,127.0.0.1"
os.environ["SCHEDULER_ENABLED"] = "0"

from fastapi.testclient import TestClient  # noqa: E402

from main import app  # noqa: E402
from auth_utils import create_access_token, hash_password  # noqa: E402
from database import Base, SessionLocal, engine  # noqa: E402
from dependencies import get_notifier, limiter  # noqa: E402
from models import Category, User  # noqa: E402
from notifier import Notifier, broker  # noqa: E402
from task_models import CategoryTask, TaskDB  # noqa: E402
from fakes import FakeReminders  # noqa: E402

PASSWORD = "correct-horse-battery"
_PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture(autouse=True)
def clean_db():
    """Fresh schema for every test."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def reminders():
    return FakeReminders()


@pytest.fixture
def notifier(reminders):
    return Notifier(broker, reminders)


@pytest.fixture
def client(notifier):
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.pop(get_notifier, None)


# --- factories ---

@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    def _make(name=None, email=None):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            name=name or f"User {n}",
            email=email or f"user{n}@example.com",
            hashed_password=_PASSWORD_HASH,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_category(db_session):
    def _make(name, deleted=False):
        category = Category(name=name, deleted_at=datetime.utcnow() if deleted else None)
        db_session.add(category)
        db_session.commit()
        db_session.refresh(category)
        return category

    return _make


@pytest.fixture
def make_task(db_session):
    def _make(owner, categories=(), deleted=False, **fields):
        values = {"title": "Task", "priority": "normal", "status": "pending"}
        values.update(fields)
        task = TaskDB(owner_id=owner.id, deleted_at=datetime.utcnow() if deleted else None, **values)
        db_session.add(task)
        db_session.flush()
        for category in categories:
            db_session.add(CategoryTask(task_id=task.id, category_id=category.id))
        db_session.commit()
        db_session.refresh(task)
        return task

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id, user.email)}"}

    return _headers
