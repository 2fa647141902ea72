import os

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from typing import Any, Dict, List, Tuple

import pytest
from sqlmodel import create_engine, SQLModel, Session
from sqlalchemy.pool import StaticPool

from taskboard.models import User

# --- Test Database Setup ---
# Use an in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(name="test_engine")
def test_engine_fixture():
    # StaticPool hands every session the same connection, so they all see one in-memory DB
    test_engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(test_engine)
    yield test_engine
    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="session")
def session_fixture(test_engine):
    with Session(test_engine) as session:
        yield session


class RecordingNotifier:
    """Stands in for NotificationHub and remembers every event handed to it."""

    def __init__(self) -> None:
        self.events: List[Tuple[int, Dict[str, Any]]] = []

    def notify(self, user_id: int, event: Dict[str, Any]) -> int:
        self.events.append((user_id, event))
        return 1

    def named(self, name: str) -> List[Tuple[int, Dict[str, Any]]]:
        return [(user_id, event) for user_id, event in self.events if event["event"] == name]


@pytest.fixture(name="notifier")
def notifier_fixture() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture(name="make_user")
def make_user_fixture(session: Session):
    """
    Inserts users straight into the database. The password hash is a
    placeholder since service tests never log in.
    """
    def _make_user(name: str, email: str = None) -> User:
        user = User(name=name, email=email or f"{name.lower()}@example.com", hashed_password="not-a-real-hash")
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make_user
