# Overview: Service-layer helpers for row locking, retries and atomic units.

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import LockTimeout
from .events import publish_events

logger = logging.getLogger(__name__)

# Deadlocks, serialization failures, optimistic version conflicts, lock timeouts
RETRYABLE_ERRORS = (OperationalError, StaleDataError, LockTimeout)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    backoff_base: float = 0.1

    @classmethod
    def from_config(cls, config) -> "RetryPolicy":
        return cls(
            attempts=int(config.get("RETRY_ATTEMPTS", 3)),
            backoff_base=float(config.get("RETRY_BACKOFF_SECONDS", 0.1)),
        )


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, retry_on=RETRYABLE_ERRORS):
    """
    Execute a unit with retry on concurrency-related failures.

    The unit must be re-executable from scratch: the store has already rolled
    back by the time the exception reaches here.
    """
    attempts = max(1, attempts)
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            logger.warning(
                "Retrying unit after %s (attempt %d of %d)",
                type(exc).__name__,
                attempt + 1,
                attempts,
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def run_atomic(store, func, *, publisher=None, retry: RetryPolicy | None = None):
    """
    Run func(uow) inside one atomic unit of store, retrying transient failures.

    Events the unit emitted are published only after it committed; a unit that
    aborts publishes nothing.
    """
    retry = retry or RetryPolicy()

    def _op():
        with store.atomic() as uow:
            result = func(uow)
        return result, list(uow.events)

    result, events = run_with_retry(_op, attempts=retry.attempts, backoff_base=retry.backoff_base)
    publish_events(publisher, events)
    return result
