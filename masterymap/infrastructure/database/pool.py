"""
Adapter: pooled database connections.

The transaction helpers only need a pool exposing ``connect()`` and
connections exposing ``query(text, params)`` and ``release()``.
``SqlAlchemyPool`` provides that shape on top of a SQLAlchemy engine.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine

logger = logging.getLogger(__name__)

Params = Optional[Mapping[str, Any]]


@dataclass
class QueryResult:
    """Rows returned by a statement plus the affected row count."""

    rows: list[dict[str, Any]] = field(default_factory=list)
    rowcount: int = 0


class PooledConnection(Protocol):
    """A connection checked out of a pool."""

    def query(self, sql: str, params: Params = None) -> QueryResult: ...

    def release(self) -> None: ...


class ConnectionPool(Protocol):
    """Anything that hands out pooled connections."""

    def connect(self) -> PooledConnection: ...


class SqlAlchemyConnection:
    """PooledConnection backed by a SQLAlchemy connection.

    The connection runs in driver autocommit mode so that explicit
    ``BEGIN`` / ``COMMIT`` / ``ROLLBACK`` statements reach the server
    instead of SQLAlchemy's implicit transaction.
    """

    def __init__(self, connection: Connection) -> None:
        self._connection = connection
        self._released = False

    def query(self, sql: str, params: Params = None) -> QueryResult:
        result = self._connection.execute(text(sql), dict(params or {}))
        rows = [dict(row) for row in result.mappings()] if result.returns_rows else []
        return QueryResult(rows=rows, rowcount=result.rowcount)

    def release(self) -> None:
        """Return the connection to the pool. Safe to call twice."""
        if self._released:
            return
        self._released = True
        self._connection.close()


class SqlAlchemyPool:
    """ConnectionPool over a SQLAlchemy engine."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @property
    def engine(self) -> Engine:
        return self._engine

    def connect(self) -> SqlAlchemyConnection:
        connection = self._engine.connect().execution_options(
            isolation_level="AUTOCOMMIT"
        )
        return SqlAlchemyConnection(connection)

    def dispose(self) -> None:
        """Close every pooled connection."""
        self._engine.dispose()
        logger.info("Database pool disposed")


def create_pool(
    url: str,
    pool_size: int = 20,
    timeout: float = 10.0,
    recycle: int = 1800,
) -> SqlAlchemyPool:
    """Build a SqlAlchemyPool with pre-ping enabled.

    Args:
        url: SQLAlchemy database URL.
        pool_size: Maximum number of pooled connections.
        timeout: Seconds to wait for a free connection.
        recycle: Seconds after which idle connections are recycled.

    Returns:
        A ready-to-use pool. No connection is opened yet.
    """
    engine = create_engine(
        url,
        pool_pre_ping=True,
        pool_size=pool_size,
        pool_timeout=timeout,
        pool_recycle=recycle,
    )
    return SqlAlchemyPool(engine)
