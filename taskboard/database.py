from typing import Generator, Iterator
from contextlib import contextmanager
import logging

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import create_engine, Session, SQLModel

from taskboard.config import DATABASE_URL, SQL_ECHO
from taskboard.errors import StorageError

# Make sure to import models to register them with SQLModel.metadata
from taskboard import models  # noqa: F401

logger = logging.getLogger(__name__)


def build_engine(url: str = DATABASE_URL, echo: bool = SQL_ECHO) -> Engine:
    connect_args = {}
    if url.startswith("sqlite"):
        # Requests are served from FastAPI's threadpool
        connect_args["check_same_thread"] = False
    # Log a redacted version for verification, not the whole URL
    logger.info("Database URL format check: %s...", url[:15])
    return create_engine(url, echo=echo, connect_args=connect_args)


def create_db_and_tables(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)


def get_session(request: Request) -> Generator[Session, None, None]:
    with Session(request.app.state.engine) as session:
        yield session


@contextmanager
def storage_errors(session: Session, action: str) -> Iterator[None]:
    """
    Rolls back and re-raises database failures as StorageError.
    The original exception is logged, never shown to the client.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Storage failure while trying to %s", action)
        raise StorageError() from exc
