from dataclasses import dataclass, asdict
from enum import Enum
from typing import List, Optional, Tuple

from sqlalchemy import case, func
from sqlmodel import Session, select

from taskboard.database import storage_errors
from taskboard.errors import ValidationError
from taskboard.models import EdgeStatus, FriendEdge, Task, TaskStatus, User


class Scope(str, Enum):
    global_ = "global"
    friends = "friends"


@dataclass(frozen=True)
class LeaderboardEntry:
    name: str
    email: str
    completed: int
    incomplete: int

    def to_dict(self) -> dict:
        return asdict(self)


def parse_scope(scope: Optional[str]) -> Scope:
    try:
        return Scope((scope or Scope.global_.value).strip().lower())
    except ValueError:
        raise ValidationError("Scope must be 'global' or 'friends'")


def _counts():
    completed = func.coalesce(func.sum(case((Task.status == TaskStatus.completed.value, 1), else_=0)), 0)
    incomplete = func.coalesce(func.sum(case((Task.status != TaskStatus.completed.value, 1), else_=0)), 0)
    return completed.label("completed"), incomplete.label("incomplete")


def rank(session: Session, scope, viewer_id: int) -> List[LeaderboardEntry]:
    """
    Ranks users by completed task count, most first, ties by name.

    `global` covers every user; `friends` covers the viewer's accepted friends
    (not the viewer). Users without tasks are listed with zero counts.
    """
    scope = scope if isinstance(scope, Scope) else parse_scope(scope)
    completed, incomplete = _counts()

    statement = select(User.name, User.email, completed, incomplete)
    if scope is Scope.friends:
        statement = statement.join(FriendEdge, FriendEdge.friend_id == User.id).where(
            FriendEdge.user_id == viewer_id, FriendEdge.status == EdgeStatus.accepted.value
        )
    statement = (
        statement.outerjoin(Task, Task.user_id == User.id)
        .group_by(User.id, User.name, User.email)
        .order_by(completed.desc(), User.name.asc())
    )

    with storage_errors(session, "build the leaderboard"):
        rows = session.exec(statement).all()
    return [LeaderboardEntry(name, email, int(done), int(todo)) for name, email, done, todo in rows]


def task_stats(session: Session, user_id: int) -> Tuple[int, int]:
    """Returns (completed, pending) task counts for one user."""
    completed, incomplete = _counts()
    statement = select(completed, incomplete).where(Task.user_id == user_id)
    with storage_errors(session, "count tasks"):
        done, todo = session.exec(statement).one()
    return int(done), int(todo)
