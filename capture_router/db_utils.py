"""
Database utilities for resilient transaction management.

This module provides:
- session_scope: Context manager that opens a session, commits on success,
  rolls back on failure and retries the commit on SQLite BUSY errors
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Generator

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


def _is_busy_error(exc: Exception) -> bool:
    error_msg = str(exc).lower()
    return (
        "database is locked" in error_msg
        or "busy" in error_msg
        or "unable to open database file" in error_msg
    )


def _commit_with_retry(session: Session, max_retries: int) -> None:
    attempt = 0
    while True:
        try:
            session.commit()
            return
        except OperationalError as e:
            attempt += 1
            if not _is_busy_error(e) or attempt > max_retries:
                raise
            # Exponential backoff: 0.1s, 0.2s, 0.4s, 0.8s, 1.6s
            delay = 0.1 * (2 ** (attempt - 1))
            logger.warning(
                f"Database locked, retrying commit in {delay:.2f}s (attempt {attempt}/{max_retries})",
                extra={
                    "component": "database",
                    "error_type": "db_locked",
                    "attempt": attempt,
                    "retry_count": max_retries,
                },
            )
            time.sleep(delay)


@contextmanager
def session_scope(
    session_factory: Callable[[], Session],
    max_retries: int = 5,
) -> Generator[Session, None, None]:
    """
    Provide a transactional session around a block of store operations.

    Usage:
        with session_scope(SessionLocal) as db:
            db.add(row)
            # Commit on exit, rollback on exception

    Raises:
        Any exception from within the block or from the final commit
    """
    session = session_factory()
    try:
        yield session
        _commit_with_retry(session, max_retries)
    except Exception as e:
        session.rollback()
        logger.error(
            "Database transaction failed",
            extra={"component": "database", "error_type": type(e).__name__},
        )
        raise
    finally:
        session.close()
