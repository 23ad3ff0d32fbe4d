"""Bounded retry with pluggable backoff, shared by both fetch paths."""
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")

Backoff = Callable[[int], float]


class RetryExhausted(Exception):
    """Raised when every attempt failed; carries the last error."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"Failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def exponential_backoff(base_seconds: float = 1.0, cap_seconds: float = 5.0) -> Backoff:
    """Delay after failed attempt ``n``: ``min(base * 2**(n-1), cap)``."""
    def delay(attempt: int) -> float:
        return min(base_seconds * 2 ** (attempt - 1), cap_seconds)
    return delay


def linear_backoff(step_seconds: float = 2.0, cap_seconds: float = 5.0) -> Backoff:
    """Delay after failed attempt ``n``: ``min(step * n, cap)``."""
    def delay(attempt: int) -> float:
        return min(step_seconds * attempt, cap_seconds)
    return delay


def retry_call(
    operation: Callable[[int], T],
    *,
    max_attempts: int,
    backoff: Backoff,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
    name: str = "operation",
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
) -> T:
    """
    Run ``operation(attempt)`` until it succeeds or ``max_attempts`` is reached.

    ``attempt`` is 1-based. Between failed attempts the caller's ``sleep`` is
    invoked with ``backoff(attempt)`` seconds. Exceptions outside ``retry_on``
    propagate immediately.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        try:
            return operation(attempt)
        except retry_on as exc:
            logger.warning(
                "retry.attempt_failed",
                operation=name,
                attempt=attempt,
                max_attempts=max_attempts,
                error=str(exc),
            )
            if attempt == max_attempts:
                raise RetryExhausted(max_attempts, exc) from exc
            wait = backoff(attempt)
            if on_retry:
                on_retry(attempt, exc, wait)
            logger.info("retry.wait", operation=name, seconds=wait)
            sleep(wait)

    raise AssertionError("unreachable")  # pragma: no cover
