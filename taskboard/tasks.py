"""Task lifecycle: CRUD scoped to the owner, plus the completion side effects.

Marking a task Completed awards the owner COMPLETION_REWARD points in the
same transaction as the status change and then pushes a `taskCompleted`
event to the owner (and `friendActivity` to their friends). The award is
repeated on every update that sets Completed, including a task that was
already Completed.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional
import logging

from sqlalchemy import func, update
from sqlmodel import Session, select

from taskboard.config import COMPLETION_REWARD
from taskboard.database import storage_errors
from taskboard.errors import NotFoundError, ValidationError
from taskboard.friends import friend_ids
from taskboard.models import Priority, Task, TaskStatus, User
from taskboard.notifications import FRIEND_ACTIVITY, TASK_COMPLETED, make_event

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("title", "description", "deadline", "priority", "status")


@dataclass(frozen=True)
class TaskUpdateResult:
    matched: bool
    completed: bool = False
    message: str = "Task updated successfully"


def _normalize_priority(priority: Optional[str]) -> str:
    value = (priority or Priority.low.value).strip().lower()
    if value not in {p.value for p in Priority}:
        raise ValidationError(f"Priority must be one of: low, medium, high (got {priority!r})")
    return value


def _normalize_status(status: Any) -> str:
    value = status.value if isinstance(status, TaskStatus) else status
    if value not in {s.value for s in TaskStatus}:
        raise ValidationError(f"Status must be Pending or Completed (got {status!r})")
    return value


def _require(value: Optional[str], field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field.capitalize()} is required")
    return value


def create_task(
    session: Session,
    owner_id: int,
    title: Optional[str],
    deadline: Optional[str],
    description: Optional[str] = None,
    priority: Optional[str] = None,
) -> int:
    if not title or not deadline:
        raise ValidationError("Title and deadline are required")

    task = Task(
        user_id=owner_id,
        title=_require(title, "title"),
        description=description or "",
        deadline=_require(deadline, "deadline"),
        priority=_normalize_priority(priority),
    )
    with storage_errors(session, "create a task"):
        session.add(task)
        session.commit()
        session.refresh(task)
    logger.info("User %s created task %s", owner_id, task.id)
    return task.id


def list_tasks(session: Session, owner_id: int) -> List[Task]:
    with storage_errors(session, "list tasks"):
        return list(session.exec(select(Task).where(Task.user_id == owner_id).order_by(Task.id.desc())).all())


def search_tasks(session: Session, owner_id: int, query: Optional[str]) -> List[Task]:
    needle = (query or "").lower()
    statement = (
        select(Task)
        .where(Task.user_id == owner_id, func.lower(Task.title).contains(needle, autoescape=True))
        .order_by(Task.id.desc())
    )
    with storage_errors(session, "search tasks"):
        return list(session.exec(statement).all())


def filter_tasks(session: Session, owner_id: int, status: Optional[str] = None) -> List[Task]:
    wanted = status or TaskStatus.pending.value
    statement = select(Task).where(Task.user_id == owner_id, Task.status == wanted).order_by(Task.id.desc())
    with storage_errors(session, "filter tasks"):
        return list(session.exec(statement).all())


def get_task(session: Session, owner_id: int, task_id: int) -> Task:
    with storage_errors(session, "load a task"):
        task = session.exec(select(Task).where(Task.id == task_id, Task.user_id == owner_id)).first()
    if task is None:
        raise NotFoundError("Task not found")
    return task


def _clean_changes(fields: Mapping[str, Any]) -> Dict[str, Any]:
    changes = {key: value for key, value in fields.items() if key in UPDATABLE_FIELDS}
    if "title" in changes:
        _require(changes["title"], "title")
    if "deadline" in changes:
        _require(changes["deadline"], "deadline")
    if "description" in changes and changes["description"] is None:
        changes["description"] = ""
    if "priority" in changes:
        changes["priority"] = _normalize_priority(changes["priority"])
    if "status" in changes:
        changes["status"] = _normalize_status(changes["status"])
    return changes


def update_task(
    session: Session,
    owner_id: int,
    task_id: int,
    fields: Mapping[str, Any],
    notifier=None,
) -> TaskUpdateResult:
    """
    Applies the given subset of fields to an owned task.

    A task that does not exist or belongs to someone else is left alone and
    reported with matched=False. Setting status to Completed adds
    COMPLETION_REWARD points to the owner and notifies listeners through
    `notifier` (anything with a `notify(user_id, event)` method).
    """
    changes = _clean_changes(fields)
    if not changes:
        return TaskUpdateResult(matched=True, message="Nothing to update")

    completing = changes.get("status") == TaskStatus.completed.value

    with storage_errors(session, "update a task"):
        task = session.exec(select(Task).where(Task.id == task_id, Task.user_id == owner_id)).first()
        if task is None:
            logger.info("User %s tried to update task %s they do not own", owner_id, task_id)
            return TaskUpdateResult(matched=False, message="No matching task")

        for key, value in changes.items():
            setattr(task, key, value)
        session.add(task)

        if completing:
            session.exec(
                update(User).where(User.id == owner_id).values(points=User.points + COMPLETION_REWARD)
            )
        session.commit()

    if completing:
        logger.info("User %s completed task %s (+%d points)", owner_id, task_id, COMPLETION_REWARD)
        if notifier is not None:
            _announce_completion(session, notifier, owner_id, task_id)

    return TaskUpdateResult(matched=True, completed=completing)


def _announce_completion(session: Session, notifier, owner_id: int, task_id: int) -> None:
    # Delivery is best-effort; the update has already been committed
    try:
        notifier.notify(owner_id, make_event(TASK_COMPLETED, taskId=task_id))
        for friend_id in friend_ids(session, owner_id):
            notifier.notify(friend_id, make_event(FRIEND_ACTIVITY, userId=owner_id, taskId=task_id))
    except Exception:
        logger.warning("Could not publish completion of task %s", task_id, exc_info=True)


def delete_task(session: Session, owner_id: int, task_id: int) -> bool:
    """Returns False when nothing owned by `owner_id` had that id."""
    with storage_errors(session, "delete a task"):
        task = session.exec(select(Task).where(Task.id == task_id, Task.user_id == owner_id)).first()
        if task is None:
            return False
        session.delete(task)
        session.commit()
    logger.info("User %s deleted task %s", owner_id, task_id)
    return True
