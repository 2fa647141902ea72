from pathlib import Path
from typing import Optional
from uuid import uuid4
import logging
import re

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from taskboard.database import storage_errors
from taskboard.errors import ConflictError, NotFoundError, ValidationError
from taskboard.leaderboard import task_stats
from taskboard.models import User
from taskboard.security import get_password_hash, verify_password

logger = logging.getLogger(__name__)


def _email_taken(session: Session, email: str, exclude_id: Optional[int] = None) -> bool:
    statement = select(User.id).where(User.email == email)
    if exclude_id is not None:
        statement = statement.where(User.id != exclude_id)
    return session.exec(statement).first() is not None


def _commit_user(session: Session, user: User, action: str) -> None:
    with storage_errors(session, action):
        session.add(user)
        try:
            session.commit()
        except IntegrityError:
            # Unique index on email caught a concurrent registration
            session.rollback()
            raise ConflictError("Email already registered")
        session.refresh(user)


def register_user(session: Session, name: str, email: str, password: str) -> User:
    if not (name and name.strip()) or not email or not password:
        raise ValidationError("All fields are required")

    with storage_errors(session, "check for an existing email"):
        if _email_taken(session, email):
            logger.info("Registration refused, email already in use: %s", email)
            raise ConflictError("Email already registered")

    user = User(name=name.strip(), email=email, hashed_password=get_password_hash(password))
    _commit_user(session, user, "register a user")
    logger.info("Registered user %s (%s)", user.id, user.email)
    return user


def authenticate(session: Session, email: str, password: str) -> Optional[User]:
    with storage_errors(session, "look up a user"):
        user = session.exec(select(User).where(User.email == email)).first()
    if user is None or not verify_password(password, user.hashed_password):
        logger.info("Failed login for %s", email)
        return None
    return user


def get_user(session: Session, user_id: int) -> User:
    with storage_errors(session, "load a user"):
        user = session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def get_profile(session: Session, user_id: int) -> dict:
    user = get_user(session, user_id)
    completed, pending = task_stats(session, user_id)
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "profilePic": user.avatar,
        "points": user.points,
        "completed": completed,
        "pending": pending,
    }


def update_profile(
    session: Session,
    user_id: int,
    name: Optional[str] = None,
    email: Optional[str] = None,
    password: Optional[str] = None,
) -> bool:
    """Returns False when there was nothing to change."""
    if name is not None and not name.strip():
        raise ValidationError("Name cannot be blank")
    if not (name or email or password):
        return False

    user = get_user(session, user_id)
    if name:
        user.name = name.strip()
    if email and email != user.email:
        with storage_errors(session, "check for an existing email"):
            if _email_taken(session, email, exclude_id=user_id):
                raise ConflictError("Email already in use")
        user.email = email
    if password:
        user.hashed_password = get_password_hash(password)
    _commit_user(session, user, "update a profile")
    logger.info("User %s updated their profile", user_id)
    return True


def _safe_filename(filename: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "_", Path(filename).name) or "upload"


def set_avatar(session: Session, user_id: int, filename: str, content: bytes, upload_dir: str) -> str:
    """
    Stores an uploaded picture under `upload_dir` and records its public path.
    """
    if not content:
        raise ValidationError("No file uploaded")

    user = get_user(session, user_id)
    stored_name = f"{uuid4().hex}-{_safe_filename(filename)}"
    target = Path(upload_dir)
    target.mkdir(parents=True, exist_ok=True)
    (target / stored_name).write_bytes(content)

    user.avatar = f"/uploads/{stored_name}"
    _commit_user(session, user, "store a profile picture")
    return user.avatar
