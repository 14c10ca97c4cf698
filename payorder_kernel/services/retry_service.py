"""
Retry policy for transient store failures.

Responsibility:
    ``run_with_retry`` re-runs a whole unit-of-work operation when the data
    store reports a transient failure (lost connection, lock timeout,
    deadlock).  Each attempt must open its own UnitOfWork so a retry never
    reuses a rolled-back session.

Architecture position:
    Kernel > Services -- infrastructure.  Used by the presentation facade.

Invariants enforced:
    - Business-rule errors (every PaymentOrderError except a transient
      PersistenceError) are never retried.
    - Attempts are bounded; the last failure is re-raised unchanged.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import OperationalError
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from payorder_kernel.exceptions import PersistenceError
from payorder_kernel.logging_config import get_logger

logger = get_logger("services.retry")

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_MIN_WAIT = 0.1
DEFAULT_MAX_WAIT = 2.0


def is_transient(error: BaseException) -> bool:
    if isinstance(error, PersistenceError):
        return error.transient
    return isinstance(error, OperationalError)


def run_with_retry(
    operation: Callable[[], T],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    min_wait: float = DEFAULT_MIN_WAIT,
    max_wait: float = DEFAULT_MAX_WAIT,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``operation`` until it succeeds, a non-transient error is raised,
    or ``max_attempts`` is reached.

    Args:
        operation: Zero-argument callable that opens and closes its own
            unit of work.
        max_attempts: Total attempts including the first.
        min_wait: Lower bound of the exponential backoff, in seconds.
        max_wait: Upper bound of the exponential backoff, in seconds.
        sleep: Injectable sleep function (tests pass a no-op).
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    retrying = Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=min_wait, min=min_wait, max=max_wait),
        retry=retry_if_exception(is_transient),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
        reraise=True,
    )
    return retrying(operation)
