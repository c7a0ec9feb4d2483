"""
Retry policy for transient database failures.

Serverless Postgres drops idle connections and wakes up slowly, so
startup probes and short operations retry connection-class failures
with capped exponential backoff. Anything else propagates at once.
"""

import logging
import random
import re
import time
from typing import Any, Callable, TypeVar

from masterymap.infrastructure.database.pool import ConnectionPool
from masterymap.shared.errors.types import get_error_code

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_DATABASE_CODES = frozenset(
    {
        "57P01",  # admin shutdown
        "57P02",  # crash shutdown
        "57P03",  # cannot connect now
        "08000",
        "08001",
        "08003",
        "08004",
        "08006",
        "08007",
        "08P01",
        "ETIMEDOUT",
        "ECONNRESET",
        "ECONNREFUSED",
        "EPIPE",
    }
)

TRANSIENT_DATABASE_MESSAGE_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"terminating connection due to administrator command",
        r"connection terminated unexpectedly",
        r"fetch failed",
        r"websocket",
        r"socket hang up",
        r"connection .*closed",
        r"timeout",
        r"failed to connect",
        r"database .*waking",
    )
]

MAX_JITTER_SECONDS = 0.12

STARTUP_RETRY_OPTIONS = {
    "max_retries": 4,
    "base_delay": 0.4,
    "max_delay": 4.0,
    "context": "database.startup",
}


def is_transient_database_error(exc: BaseException) -> bool:
    """Return True if the failure is worth retrying."""
    code = get_error_code(exc)
    if code and code in TRANSIENT_DATABASE_CODES:
        return True
    message = str(exc)
    return any(pattern.search(message) for pattern in TRANSIENT_DATABASE_MESSAGE_PATTERNS)


def with_database_retry(
    operation: Callable[[], T],
    max_retries: int = 2,
    base_delay: float = 0.4,
    max_delay: float = 3.0,
    context: str = "database.operation",
    sleep: Callable[[float], None] = time.sleep,
    log: logging.Logger | None = None,
) -> T:
    """Call ``operation`` until it succeeds or fails non-transiently.

    Args:
        operation: Zero-argument callable to run.
        max_retries: Retries after the first attempt.
        base_delay: Initial backoff in seconds.
        max_delay: Upper bound on the backoff before jitter.
        context: Label used in log lines.
        sleep: Sleep function, injectable for tests.
        log: Optional logger override.

    Returns:
        Whatever ``operation`` returns.

    Raises:
        The last error, unchanged, when it is not transient or the
        attempts are exhausted.
    """
    log = log or logger
    attempt = 0
    while True:
        try:
            return operation()
        except Exception as exc:
            if attempt >= max_retries or not is_transient_database_error(exc):
                raise
            delay = min(base_delay * 2**attempt, max_delay)
            delay += random.uniform(0, MAX_JITTER_SECONDS)
            log.warning(
                "%s failed (attempt %d/%d). Retrying in %.0fms.",
                context,
                attempt + 1,
                max_retries + 1,
                delay * 1000,
            )
            sleep(delay)
            attempt += 1


def warm_database_connection(pool: ConnectionPool, **retry_options: Any) -> None:
    """Open a connection and run ``SELECT 1`` under the retry policy."""
    options = {
        "max_retries": 2,
        "base_delay": 0.3,
        "max_delay": 2.5,
        "context": "database.warmup",
        **retry_options,
    }

    def ping() -> None:
        connection = pool.connect()
        try:
            connection.query("SELECT 1")
        finally:
            connection.release()

    with_database_retry(ping, **options)


def probe_database_connection(pool: ConnectionPool, **retry_options: Any) -> bool:
    """Startup probe: True when the database answers, never raises."""
    try:
        warm_database_connection(pool, **{**STARTUP_RETRY_OPTIONS, **retry_options})
        return True
    except Exception:
        logger.error("Database connection failed", exc_info=True)
        return False
