"""
Bounded retry with exponential backoff for store I/O.

Only the client boundary (MongoClient / MySQLClient) calls this. Schema
decisions and translation never retry.

Strategy:
- attempt 1 runs immediately
- attempt n waits min(max_backoff, min_backoff * 2**(n-2)) plus up to 10% jitter
- only exceptions matched by `is_transient` are retried
- on exhaustion the last error is wrapped in StoreConnectionError
"""

import random
import time
from typing import Callable, Optional, TypeVar

from loguru import logger

from docsync.config import RetryConfig
from docsync.errors import StoreConnectionError


T = TypeVar("T")


def backoff_delay(attempt: int, min_backoff_s: float, max_backoff_s: float) -> float:
    """Delay before retry number `attempt` (1-based count of failures so far)."""
    base = min(max_backoff_s, min_backoff_s * (2 ** (attempt - 1)))
    return base + random.uniform(0, base * 0.1)


def call_with_retry(
    operation: Callable[[], T],
    *,
    description: str,
    is_transient: Callable[[BaseException], bool],
    policy: Optional[RetryConfig] = None,
    on_retry: Optional[Callable[[], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run `operation`, retrying transient failures.

    Args:
        operation: Zero-argument callable doing the I/O
        description: Human readable label for log lines
        is_transient: Predicate deciding which exceptions are retried
        policy: Attempts and backoff bounds (defaults to RetryConfig())
        on_retry: Hook run before each retry, e.g. to reconnect
        sleep: Injected for tests

    Returns:
        Whatever `operation` returns

    Raises:
        StoreConnectionError: transient failures exhausted every attempt
        Exception: any non-transient error, unchanged
    """
    policy = policy or RetryConfig()
    attempt = 0
    while True:
        attempt += 1
        try:
            return operation()
        except Exception as e:
            if not is_transient(e):
                raise
            if attempt >= policy.max_attempts:
                raise StoreConnectionError(
                    f"{description} failed after {attempt} attempts: {e}",
                    details={"attempts": attempt},
                ) from e
            delay = backoff_delay(attempt, policy.min_backoff_seconds, policy.max_backoff_seconds)
            logger.warning(
                f"{description} failed ({e}); retry {attempt}/{policy.max_attempts - 1} in {delay:.2f}s"
            )
            sleep(delay)
            if on_retry is not None:
                try:
                    on_retry()
                except Exception as hook_error:
                    if not is_transient(hook_error):
                        raise
                    logger.warning(f"{description}: reconnect attempt failed ({hook_error})")
