"""
Database engine, session management, base model and unit of work.

Every model inherits from Base. Every request gets a session
from get_db(). Every write the engine performs happens inside
unit_of_work(), which either commits all of it or none of it.
"""

import logging
from contextlib import contextmanager
from collections.abc import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker, DeclarativeBase

from ledger_engine.config import get_settings
from ledger_engine.exceptions import DatabaseError

logger = logging.getLogger(__name__)

settings = get_settings()

# --- Engine ---
# pool_pre_ping=True tests connections before using them,
# which handles cases where the database restarted or a
# connection went stale.
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
)

# --- Session Factory ---
# autocommit=False: unit_of_work() decides when changes are saved.
# autoflush=False: SQL is only sent on explicit flush or commit.
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


# --- Base Model Class ---
class Base(DeclarativeBase):
    pass


# --- Dependency for FastAPI ---
def get_db():
    """
    Provide a database session for a single request.

    The try/finally pattern ensures the session is always
    closed, preventing connection leaks.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def unit_of_work(db: Session) -> Iterator[Session]:
    """
    Run a block of writes as one atomic database transaction.

    Commits when the block finishes, rolls back when it raises.
    Domain errors propagate unchanged; SQLAlchemy errors are
    wrapped in DatabaseError after the rollback so the caller
    sees a stable DB_ERROR code.

        with unit_of_work(self.db):
            ...  # flush-only service calls

    Events must be published after this block exits, never
    inside it.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Rolled back unit of work: %s", e)
        raise DatabaseError(f"Database error: {e.__class__.__name__}") from e
    except Exception:
        db.rollback()
        raise
