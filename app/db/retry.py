"""Store error translation and bounded retry for idempotent calls."""

import logging
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from app.core.config import settings
from app.core.errors import TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    """True for connection/operational failures; integrity violations are not transient."""
    if isinstance(exc, IntegrityError):
        return False
    return isinstance(exc, (OperationalError, DBAPIError))


def translate_store_error(exc: BaseException, operation: str) -> TransientStoreError:
    logger.warning("Store call failed: operation=%s error=%s", operation, exc)
    return TransientStoreError(f"Store unavailable during {operation}")


def with_retry(
    fn: Callable[[], T],
    *,
    operation: str,
    attempts: int | None = None,
    backoff_seconds: float | None = None,
    on_retry: Callable[[], None] | None = None,
) -> T:
    """
    Run an idempotent store call, retrying transient failures with exponential backoff.

    Only use for reads or explicitly idempotent writes (room provisioning). Raises
    TransientStoreError once attempts are exhausted. on_retry runs before each new
    attempt (typically session.rollback).
    """
    max_attempts = attempts if attempts is not None else settings.store_retry_attempts
    delay = backoff_seconds if backoff_seconds is not None else settings.store_retry_backoff_seconds
    max_attempts = max(1, max_attempts)

    for attempt in range(1, max_attempts + 1):
        try:
            return fn()
        except TransientStoreError:
            if attempt >= max_attempts:
                raise
        except (OperationalError, DBAPIError) as e:
            if not is_transient(e):
                raise
            if attempt >= max_attempts:
                raise translate_store_error(e, operation) from e
        logger.warning(
            "Retrying %s after transient store failure (attempt %d/%d, sleeping %.2fs)",
            operation,
            attempt,
            max_attempts,
            delay,
        )
        if on_retry is not None:
            on_retry()
        if delay > 0:
            time.sleep(delay)
        delay *= 2
    raise TransientStoreError(f"Store unavailable during {operation}")
