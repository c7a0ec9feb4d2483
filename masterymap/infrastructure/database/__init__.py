"""
Database access package.

Exposes the pooled-connection adapter, the transaction wrapper and
its helpers, and the transient-failure retry policy.
"""

from masterymap.infrastructure.database.pool import (
    ConnectionPool,
    PooledConnection,
    QueryResult,
    SqlAlchemyPool,
    create_pool,
)
from masterymap.infrastructure.database.retry import (
    is_transient_database_error,
    probe_database_connection,
    warm_database_connection,
    with_database_retry,
)
from masterymap.infrastructure.database.transaction import (
    BatchStatement,
    DatabaseTransaction,
    TransactionStatus,
    batch_operation,
    check_database_health,
    safe_migration,
    safe_query,
    transaction,
    with_transaction,
)

__all__ = [
    "BatchStatement",
    "ConnectionPool",
    "DatabaseTransaction",
    "PooledConnection",
    "QueryResult",
    "SqlAlchemyPool",
    "TransactionStatus",
    "batch_operation",
    "check_database_health",
    "create_pool",
    "is_transient_database_error",
    "probe_database_connection",
    "safe_migration",
    "safe_query",
    "transaction",
    "warm_database_connection",
    "with_database_retry",
    "with_transaction",
]
