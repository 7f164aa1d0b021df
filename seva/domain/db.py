"""Database initialization, sessions and the transaction boundary."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from seva.errors import ConcurrencyConflict, SchedulingError, StorageError

from .models import Base

logger = logging.getLogger(__name__)

DEFAULT_DB_URL = "sqlite:///seva.db"


def create_db_engine(db_url: str = DEFAULT_DB_URL, echo: bool = False):
    """Create SQLAlchemy engine."""
    return create_engine(db_url, echo=echo)


def init_database(db_url: str = DEFAULT_DB_URL) -> None:
    """Initialize database and create all tables."""
    engine = create_db_engine(db_url)
    Base.metadata.create_all(engine)
    logger.info("Database initialized: %s", db_url)


def get_session_factory(db_url: str = DEFAULT_DB_URL):
    """Get a session factory for the database."""
    engine = create_db_engine(db_url)
    return sessionmaker(bind=engine)


def get_session(db_url: str = DEFAULT_DB_URL) -> Session:
    """Get a new database session."""
    SessionFactory = get_session_factory(db_url)
    return SessionFactory()


@contextmanager
def transaction(session: Session, operation: str = "operation") -> Iterator[Session]:
    """
    Run one externally triggered operation as a single atomic unit.

    Commits when the block finishes. Any exception rolls back everything
    written in the block. A uniqueness violation is the store telling us a
    concurrent edit won the race; it surfaces as ConcurrencyConflict so the
    caller can re-read and retry. Other database failures are logged and
    surface as StorageError.
    """
    try:
        yield session
        session.commit()
    except SchedulingError:
        session.rollback()
        raise
    except IntegrityError as exc:
        session.rollback()
        logger.info("%s hit a uniqueness conflict: %s", operation, exc.orig)
        raise ConcurrencyConflict(
            f"{operation} conflicted with a concurrent change; refresh and retry"
        ) from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("%s failed in storage", operation)
        raise StorageError(f"{operation} failed") from exc
    except Exception:
        session.rollback()
        logger.exception("%s failed unexpectedly", operation)
        raise
