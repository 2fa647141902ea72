from typing import Optional
from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class Priority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class TaskStatus(str, Enum):
    pending = "Pending"
    completed = "Completed"


class EdgeStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"


class User(SQLModel, table=True):
    """
    A registered account. `points` only ever grows, and only through task completion.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(nullable=False)
    email: str = Field(unique=True, index=True, nullable=False)
    hashed_password: str = Field(nullable=False)
    avatar: Optional[str] = Field(default=None)
    points: int = Field(default=0, nullable=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), nullable=False)


class Task(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True, nullable=False, foreign_key="user.id")
    title: str = Field(max_length=200, nullable=False)
    description: str = Field(default="", max_length=1000)
    # Kept as the client sent it; only the reminder job tries to parse it
    deadline: str = Field(nullable=False)
    priority: str = Field(default=Priority.low.value, nullable=False)
    status: str = Field(default=TaskStatus.pending.value, index=True, nullable=False)


class FriendEdge(SQLModel, table=True):
    """
    One directed row per (user_id -> friend_id). A friendship is two accepted
    rows pointing at each other; an open request is a single pending row.
    """
    __tablename__ = "friends"
    __table_args__ = (UniqueConstraint("user_id", "friend_id", name="uq_friends_pair"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True, nullable=False, foreign_key="user.id")
    friend_id: int = Field(index=True, nullable=False, foreign_key="user.id")
    status: str = Field(default=EdgeStatus.pending.value, nullable=False)
