"""
Database engine, session factory and declarative base.

The session is the transaction boundary: service functions only flush,
and the outermost caller (a request handler or session_scope) commits
or rolls back.
"""

import logging
import os
from contextlib import contextmanager
from typing import Generator, Iterator

from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)


DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./taskboard.db")

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Columns never carried over when a row is copied
NON_COPYABLE_COLUMNS = {"created_at", "updated_at"}


class _ModelBase:
    def clone(self, **overrides):
        """
        Build a new, transient instance of the same model from this row's columns.

        The primary key and timestamps are left unset so the database assigns
        fresh ones on insert. Keyword arguments override individual columns.
        The source instance is never modified.
        """
        mapper = inspect(type(self))
        primary_keys = {column.key for column in mapper.primary_key}
        values = {}
        for attr in mapper.column_attrs:
            if attr.key in primary_keys or attr.key in NON_COPYABLE_COLUMNS:
                continue
            values[attr.key] = getattr(self, attr.key)
        values.update(overrides)
        return type(self)(**values)


Base = declarative_base(cls=_ModelBase)


def get_db() -> Generator[Session, None, None]:
    """FastAPI dependency yielding one session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()



@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Transactional scope for code running outside a request.

    Commits on success, rolls back on any error and always closes the session.
    A rollback also removes file content written in the transaction.

    Example:
        >>> with session_scope() as db:
        ...     duplicate_project(db, 3, 7, user)
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        logger.error("Rolling back session after error")
        db.rollback()
        raise
    finally:
        db.close()
