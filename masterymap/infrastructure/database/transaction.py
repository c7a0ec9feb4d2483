"""
Transaction and query helpers over a pooled connection.

Every helper acquires its own connection and releases it exactly once
on every exit path. Failures are never swallowed: they are classified
into the error taxonomy and re-raised to the caller.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, Sequence, TypeVar, Union

from masterymap.infrastructure.database.pool import (
    ConnectionPool,
    Params,
    PooledConnection,
    QueryResult,
)
from masterymap.shared.errors.types import (
    AppError,
    BatchOperationError,
    DatabaseError,
    parse_database_error,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

QUERY_PREVIEW_LEN = 100
HEALTH_CHECK_QUERY = "SELECT 1"


class TransactionStatus(str, Enum):
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class BatchStatement:
    """One parameterized statement of a batch."""

    sql: str
    params: Params = None


BatchItem = Union[BatchStatement, tuple]


class DatabaseTransaction:
    """A transaction handle bound to one pooled connection.

    Once committed, the handle rejects queries and rollback. Once
    rolled back, it rejects queries and commit. Rejections never touch
    the connection.
    """

    def __init__(
        self, connection: PooledConnection, log: logging.Logger | None = None
    ) -> None:
        self._connection = connection
        self._status = TransactionStatus.ACTIVE
        self._log = log or logger

    @property
    def status(self) -> TransactionStatus:
        return self._status

    @property
    def is_active(self) -> bool:
        return self._status is TransactionStatus.ACTIVE

    def begin(self) -> None:
        try:
            self._connection.query("BEGIN")
        except Exception as exc:
            raise parse_database_error(exc, "transaction.begin") from exc

    def commit(self) -> None:
        if self._status is TransactionStatus.ROLLED_BACK:
            raise DatabaseError(
                "Cannot commit: transaction was rolled back",
                context="transaction.commit",
            )
        if self._status is TransactionStatus.COMMITTED:
            raise DatabaseError(
                "Cannot commit: transaction was already committed",
                context="transaction.commit",
            )
        try:
            self._connection.query("COMMIT")
        except Exception as exc:
            self._safe_rollback()
            raise parse_database_error(exc, "transaction.commit") from exc
        self._status = TransactionStatus.COMMITTED

    def rollback(self) -> None:
        if self._status is TransactionStatus.COMMITTED:
            raise DatabaseError(
                "Cannot rollback: transaction was already committed",
                context="transaction.rollback",
            )
        self._safe_rollback()

    def query(self, sql: str, params: Params = None) -> QueryResult:
        """Run a statement inside the transaction.

        A failing statement rolls the transaction back before the
        classified error is raised.
        """
        if not self.is_active:
            raise DatabaseError(
                "Cannot query: transaction is closed", context="transaction.query"
            )
        try:
            return self._connection.query(sql, params)
        except Exception as exc:
            self._safe_rollback()
            raise parse_database_error(exc, "transaction.query") from exc

    def _safe_rollback(self) -> None:
        # The handle is closed even when ROLLBACK itself fails.
        try:
            self._connection.query("ROLLBACK")
        except Exception:
            self._log.error("Failed to rollback transaction", exc_info=True)
        finally:
            self._status = TransactionStatus.ROLLED_BACK


@contextmanager
def transaction(
    pool: ConnectionPool,
    context: str | None = None,
    log: logging.Logger | None = None,
) -> Iterator[DatabaseTransaction]:
    """Scope a transaction to a ``with`` block.

    Commits when the block exits normally; rolls back, logs, and
    re-raises a taxonomy error otherwise. The connection is released
    exactly once either way.

    Usage:
        with transaction(pool, "project.create") as tx:
            tx.query("INSERT INTO projects (title) VALUES (:title)", {"title": t})
    """
    log = log or logger
    try:
        connection = pool.connect()
    except Exception as exc:
        log.error(
            "Failed to acquire connection: %s",
            exc,
            extra={"context": context or "unknown", "error_type": type(exc).__name__},
        )
        raise parse_database_error(exc, context) from exc
    tx = DatabaseTransaction(connection, log=log)
    try:
        tx.begin()
        yield tx
        if tx.is_active:
            tx.commit()
    except Exception as exc:
        if tx.is_active:
            tx.rollback()
        log.error(
            "Transaction failed: %s",
            exc,
            extra={
                "context": context or "unknown",
                "transaction_status": tx.status.value,
                "error_type": type(exc).__name__,
            },
        )
        if isinstance(exc, AppError):
            raise
        raise parse_database_error(exc, context) from exc
    finally:
        connection.release()


def with_transaction(
    pool: ConnectionPool,
    operation: Callable[[DatabaseTransaction], T],
    context: str | None = None,
    log: logging.Logger | None = None,
) -> T:
    """Run ``operation`` in a transaction and return its result."""
    with transaction(pool, context, log=log) as tx:
        return operation(tx)


def safe_query(
    pool: ConnectionPool,
    sql: str,
    params: Params = None,
    context: str | None = None,
    log: logging.Logger | None = None,
) -> list[dict[str, Any]]:
    """Run one statement on its own connection and return its rows."""
    log = log or logger
    connection = None
    try:
        connection = pool.connect()
        return connection.query(sql, params).rows
    except Exception as exc:
        preview = sql[:QUERY_PREVIEW_LEN] + ("..." if len(sql) > QUERY_PREVIEW_LEN else "")
        log.error(
            "Query execution failed: %s",
            exc,
            extra={
                "context": context or "unknown",
                "query": preview,
                "params_count": len(params or {}),
            },
        )
        raise parse_database_error(exc, context) from exc
    finally:
        if connection is not None:
            connection.release()


def _as_statement(item: BatchItem) -> BatchStatement:
    if isinstance(item, BatchStatement):
        return item
    sql, *rest = item
    return BatchStatement(sql, rest[0] if rest else None)


def batch_operation(
    pool: ConnectionPool,
    operations: Sequence[BatchItem],
    context: str | None = None,
    log: logging.Logger | None = None,
) -> list[list[dict[str, Any]]]:
    """Run statements in order inside one transaction.

    Args:
        pool: Connection pool.
        operations: ``BatchStatement`` items or ``(sql, params)`` tuples.
        context: Context prefix for the step that fails.
        log: Optional logger override.

    Returns:
        The rows of each statement, in order.

    Raises:
        BatchOperationError: naming the 1-indexed failing step. Nothing
            after that step runs and the whole batch is rolled back.
    """
    statements = [_as_statement(item) for item in operations]
    total = len(statements)

    def run(tx: DatabaseTransaction) -> list[list[dict[str, Any]]]:
        results = []
        for step, statement in enumerate(statements, start=1):
            try:
                results.append(tx.query(statement.sql, statement.params).rows)
            except Exception as exc:
                raise BatchOperationError(
                    step,
                    total,
                    original=exc,
                    context=f"{context or 'batch'}.step{step}",
                ) from exc
        return results

    return with_transaction(pool, run, context, log=log)


def safe_migration(
    pool: ConnectionPool,
    migration: Callable[[DatabaseTransaction], Any],
    name: str,
    log: logging.Logger | None = None,
) -> None:
    """Apply a migration atomically, logging its outcome."""
    log = log or logger
    log.info("Running migration: %s", name)
    try:
        with_transaction(pool, migration, f"migration.{name}", log=log)
    except AppError as exc:
        log.error("Migration failed: %s (%s)", name, exc.message)
        raise
    log.info("Migration completed: %s", name)


def check_database_health(
    pool: ConnectionPool,
    max_retries: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
    log: logging.Logger | None = None,
) -> bool:
    """Report whether the database answers a trivial query.

    Retries with exponential backoff (``base_delay * 2**attempt``
    after failed attempt ``attempt``). Never raises.
    """
    log = log or logger
    for attempt in range(1, max_retries + 1):
        try:
            safe_query(pool, HEALTH_CHECK_QUERY, context="health-check", log=log)
            return True
        except Exception as exc:
            log.warning(
                "Database health check failed (attempt %d/%d): %s",
                attempt,
                max_retries,
                exc,
            )
            if attempt < max_retries:
                sleep(base_delay * 2**attempt)
    return False
