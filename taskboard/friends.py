"""Friend requests and the two-row friendship they turn into.

A request from A to B is a single pending edge A->B. Accepting it flips that
edge to accepted and makes sure B->A exists and is accepted too, all in one
commit, so friend lists read the same from either side.
"""

from typing import List
import logging

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from taskboard.database import storage_errors
from taskboard.errors import NotFoundError, ValidationError
from taskboard.models import EdgeStatus, FriendEdge, User

logger = logging.getLogger(__name__)


def _edge(session: Session, user_id: int, friend_id: int):
    return session.exec(
        select(FriendEdge).where(FriendEdge.user_id == user_id, FriendEdge.friend_id == friend_id)
    ).first()


def send_request(session: Session, requester_id: int, target_email: str) -> None:
    """
    Opens a pending request towards the user registered under `target_email`.
    Asking twice, or asking someone already befriended, changes nothing.
    """
    if not target_email or not target_email.strip():
        raise ValidationError("toEmail required")

    with storage_errors(session, "look up a user by email"):
        target = session.exec(select(User).where(User.email == target_email.strip())).first()
    if target is None:
        raise NotFoundError("User not found")
    if target.id == requester_id:
        raise ValidationError("Cannot add yourself")

    with storage_errors(session, "send a friend request"):
        if _edge(session, requester_id, target.id) is not None:
            logger.debug("Friend request %s -> %s already exists", requester_id, target.id)
            return
        session.add(FriendEdge(user_id=requester_id, friend_id=target.id, status=EdgeStatus.pending.value))
        try:
            session.commit()
        except IntegrityError:
            # Lost a race with an identical request
            session.rollback()
            return
    logger.info("User %s sent a friend request to %s", requester_id, target.id)


def accept_request(session: Session, accepter_id: int, requester_id: int) -> None:
    with storage_errors(session, "accept a friend request"):
        forward = session.exec(
            select(FriendEdge).where(
                FriendEdge.user_id == requester_id,
                FriendEdge.friend_id == accepter_id,
                FriendEdge.status == EdgeStatus.pending.value,
            )
        ).first()
        if forward is None:
            raise NotFoundError("No pending request")

        forward.status = EdgeStatus.accepted.value
        session.add(forward)

        reverse = _edge(session, accepter_id, requester_id)
        if reverse is None:
            reverse = FriendEdge(user_id=accepter_id, friend_id=requester_id)
        # A crossing request in the other direction is settled here as well
        reverse.status = EdgeStatus.accepted.value
        session.add(reverse)
        session.commit()
    logger.info("User %s accepted the friend request from %s", accepter_id, requester_id)


def list_friends(session: Session, user_id: int) -> List[User]:
    statement = (
        select(User)
        .join(FriendEdge, FriendEdge.friend_id == User.id)
        .where(FriendEdge.user_id == user_id, FriendEdge.status == EdgeStatus.accepted.value)
        .order_by(User.name)
    )
    with storage_errors(session, "list friends"):
        return list(session.exec(statement).all())


def list_incoming_requests(session: Session, user_id: int) -> List[User]:
    """Users whose request to `user_id` is still waiting for an answer."""
    statement = (
        select(User)
        .join(FriendEdge, FriendEdge.user_id == User.id)
        .where(FriendEdge.friend_id == user_id, FriendEdge.status == EdgeStatus.pending.value)
        .order_by(FriendEdge.id)
    )
    with storage_errors(session, "list friend requests"):
        return list(session.exec(statement).all())


def friend_ids(session: Session, user_id: int) -> List[int]:
    statement = select(FriendEdge.friend_id).where(
        FriendEdge.user_id == user_id, FriendEdge.status == EdgeStatus.accepted.value
    )
    with storage_errors(session, "list friend ids"):
        return list(session.exec(statement).all())


def is_mutual(session: Session, user_id: int, other_id: int) -> bool:
    with storage_errors(session, "check a friendship"):
        forward = _edge(session, user_id, other_id)
        reverse = _edge(session, other_id, user_id)
    return all(edge is not None and edge.status == EdgeStatus.accepted.value for edge in (forward, reverse))
