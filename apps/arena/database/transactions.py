"""
Atomic sections for ledger operations.

``run_in_transaction`` opens a session, runs the operation, and commits. Rows
that guard money (users, tournaments, withdrawals) carry a version counter, so
a concurrent writer turns our UPDATE into a zero-row match and SQLAlchemy raises
StaleDataError. That, serialization failures and deadlocks are the only errors
retried; everything else rolls back and propagates unchanged.
"""

import asyncio
import logging
import os
import random
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from arena.services.errors import TransientConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_TRANSACTION_ATTEMPTS = int(os.getenv("TRANSACTION_MAX_ATTEMPTS", "5"))

# Base delay between attempts; doubled per attempt, with jitter
RETRY_BACKOFF_SECONDS = 0.02

# SQLSTATE codes PostgreSQL uses for serialization failure and deadlock
TRANSIENT_SQLSTATES = {"40001", "40P01"}


def is_transient_error(error: BaseException) -> bool:
    """
    Decide whether a failed transaction can be retried with a fresh read.

    Args:
        error: Exception raised while running or committing the transaction

    Returns:
        True for optimistic-concurrency conflicts
    """
    if isinstance(error, (StaleDataError, TransientConflict)):
        return True
    if isinstance(error, DBAPIError):
        orig = error.orig
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if sqlstate in TRANSIENT_SQLSTATES:
            return True
        # SQLite reports write contention as a locked database
        if "database is locked" in str(orig).lower():
            return True
    return False


async def run_in_transaction(
    database,
    operation: Callable[[AsyncSession], Awaitable[T]],
    *,
    max_attempts: int = MAX_TRANSACTION_ATTEMPTS,
    description: str = "transaction",
) -> T:
    """
    Run ``operation`` as one atomic unit, retrying on conflicts.

    The operation must do all its reads through the session it is given, since
    it may run more than once. Validation errors raised inside it roll back the
    whole unit.

    Args:
        database: Storage client (Database or UnavailableDatabase)
        operation: Async callable receiving the session
        max_attempts: Attempts before the conflict is surfaced
        description: Label for log lines

    Returns:
        Whatever the operation returns, after a successful commit

    Raises:
        TransientConflict: If every attempt hit a conflict
        ConfigurationError: If the database is unavailable
    """
    for attempt in range(1, max_attempts + 1):
        async with database.session() as session:
            try:
                result = await operation(session)
                await session.commit()
                return result
            except Exception as e:
                await session.rollback()
                if not is_transient_error(e):
                    raise
                if attempt >= max_attempts:
                    logger.warning(
                        f"{description} still conflicting after {attempt} attempts: {e}"
                    )
                    raise TransientConflict(
                        "The operation conflicted with concurrent updates. Please try again."
                    ) from e
                logger.info(f"{description} conflicted (attempt {attempt}/{max_attempts}), retrying")
        delay = RETRY_BACKOFF_SECONDS * (2 ** (attempt - 1))
        await asyncio.sleep(delay + random.uniform(0, delay))

    # max_attempts < 1
    raise TransientConflict(f"{description} was not attempted")
