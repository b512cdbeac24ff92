"""Atomic unit-of-work helper used by the order and payment workflows.

``run_in_transaction`` runs a coroutine against the session and commits once
at the end. Any error rolls the whole unit back, so callers never observe a
partial write. Transient store conflicts (serialization failures, deadlocks,
SQLite lock contention) are retried a few times and are invisible to the
caller; every other store error is translated into the domain taxonomy.
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar

from libs.common.config import get_settings
from libs.common.errors import ConflictError, MarketplaceError, StoreUnavailableError
from libs.common.logging import get_logger
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected
TRANSIENT_SQLSTATES = frozenset({"40001", "40P01"})
RETRY_BACKOFF_SECONDS = 0.05


def is_transient_conflict(exc: DBAPIError) -> bool:
    """True if retrying the same transaction may succeed."""
    orig = exc.orig
    sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if sqlstate in TRANSIENT_SQLSTATES:
        return True
    return "database is locked" in str(orig).lower()


async def run_in_transaction(
    db: AsyncSession,
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    operation: str,
    max_attempts: Optional[int] = None,
) -> T:
    """Run ``work(db)`` and commit it as a single transaction.

    ``work`` may be invoked more than once when a transient conflict forces a
    retry, so it must derive everything it writes from what it reads inside
    the attempt.
    """
    if max_attempts is None:
        max_attempts = get_settings().TRANSACTION_MAX_ATTEMPTS

    attempt = 0
    while True:
        attempt += 1
        try:
            result = await work(db)
            await db.commit()
            return result
        except MarketplaceError:
            await db.rollback()
            raise
        except IntegrityError as exc:
            await db.rollback()
            logger.warning("Integrity violation during %s: %s", operation, exc.orig)
            raise ConflictError(
                f"Could not complete {operation}: conflicting data"
            ) from exc
        except DBAPIError as exc:
            await db.rollback()
            if is_transient_conflict(exc) and attempt < max_attempts:
                logger.warning(
                    "Transient store conflict during %s (attempt %d/%d), retrying",
                    operation,
                    attempt,
                    max_attempts,
                )
                await asyncio.sleep(RETRY_BACKOFF_SECONDS * attempt)
                continue
            logger.error("Store error during %s: %s", operation, exc.orig)
            raise StoreUnavailableError(
                f"Could not complete {operation}; no changes were applied"
            ) from exc
        except Exception:
            await db.rollback()
            raise
