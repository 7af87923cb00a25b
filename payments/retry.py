"""Bounded retry of transactional units of work.

Each attempt runs in a fresh `transaction.atomic()` block; only failures the
classifier deems transient (serialization failures, deadlocks, SQLite lock
errors) are retried.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from django.db import OperationalError, transaction
from tenacity import (
    RetryError,
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_random_exponential,
)

from .exceptions import RetriesExhausted

logger = logging.getLogger("elixa.payments")

T = TypeVar("T")

# serialization_failure, deadlock_detected
TRANSIENT_SQLSTATES = frozenset({"40001", "40P01"})
TRANSIENT_MESSAGES = (
    "database is locked",
    "database table is locked",
    "could not serialize access",
    "deadlock detected",
    "lock wait timeout exceeded",
)


def is_transient_conflict(exc: BaseException) -> bool:
    """Return True when `exc` signals a lost optimistic race worth retrying."""

    if not isinstance(exc, OperationalError):
        return False
    cause = exc.__cause__
    sqlstate = getattr(cause, "sqlstate", None) or getattr(cause, "pgcode", None)
    if sqlstate in TRANSIENT_SQLSTATES:
        return True
    message = str(exc).lower()
    return any(fragment in message for fragment in TRANSIENT_MESSAGES)


@dataclass
class RetryPolicy:
    """Run a unit of work transactionally, retrying transient conflicts.

    Non-transient exceptions propagate unchanged on the first occurrence.
    When every attempt fails transiently, `RetriesExhausted` is raised with
    the last conflict as its cause.
    """

    max_attempts: int = 3
    is_transient: Callable[[BaseException], bool] = is_transient_conflict
    wait: Any = field(default_factory=lambda: wait_random_exponential(multiplier=0.05, max=0.5))

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def run(self, unit_of_work: Callable[[], T]) -> T:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.wait,
            retry=retry_if_exception(self.is_transient),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=False,
        )
        try:
            return retrying(self._in_transaction, unit_of_work)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            logger.error(
                "payment.retry_exhausted",
                extra={"event": "payment.retry_exhausted", "attempts": self.max_attempts, "error": str(last)},
            )
            raise RetriesExhausted() from last

    @staticmethod
    def _in_transaction(unit_of_work: Callable[[], T]) -> T:
        with transaction.atomic():
            return unit_of_work()
