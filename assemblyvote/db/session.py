"""SQLAlchemy session management."""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TypeVar

from sqlalchemy import create_engine, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from assemblyvote.core.config import get_settings
from assemblyvote.core.errors import TransactionConflict
from assemblyvote.obs import instrument_sqlalchemy_engine

settings = get_settings()
engine = create_engine(settings.database_url, pool_pre_ping=True)
if settings.enable_tracing:
    instrument_sqlalchemy_engine(engine)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@contextmanager
def get_session() -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


_RETRYABLE_SQLSTATES = {"40001", "40P01"}


def is_serialization_failure(exc: DBAPIError) -> bool:
    """True for PostgreSQL serialization failures and deadlocks."""
    original = exc.orig
    sqlstate = getattr(original, "sqlstate", None) or getattr(original, "pgcode", None)
    return sqlstate in _RETRYABLE_SQLSTATES


@contextmanager
def serializable_transaction(session: Session) -> Iterator[None]:
    """Run the enclosed block as one SERIALIZABLE unit, committing on exit.

    Ledger transfers and proxy status changes must land together or not at
    all; any exception rolls the whole block back. Reads made before the
    block run in their own transaction, which is ended here so the isolation
    level applies from the first statement of the block.
    """

    bind = session.get_bind()
    if bind is None:
        raise RuntimeError("Session is not bound to an engine")

    if session.in_transaction():
        session.commit()

    if bind.dialect.name == "sqlite":
        session.execute(text("BEGIN IMMEDIATE"))
    else:
        session.connection(execution_options={"isolation_level": "SERIALIZABLE"})

    try:
        yield
        session.commit()
    except DBAPIError as exc:
        session.rollback()
        if is_serialization_failure(exc):
            raise TransactionConflict("A concurrent update won; retry the operation") from exc
        raise
    except Exception:
        session.rollback()
        raise


def retry_on_conflict(operation: Callable[[], T], *, attempts: int = 3) -> T:
    """Re-run ``operation`` while it loses serialization races, up to ``attempts`` times."""

    attempt = 1
    while True:
        try:
            return operation()
        except TransactionConflict:
            if attempt >= attempts:
                raise
            logger.warning("serializable transaction retried", extra={"attempt": attempt})
            attempt += 1


__all__ = [
    "SessionLocal",
    "engine",
    "get_session",
    "is_serialization_failure",
    "retry_on_conflict",
    "serializable_transaction",
]
