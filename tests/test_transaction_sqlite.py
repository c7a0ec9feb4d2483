"""
Integration tests for the transaction helpers on a real database.

Uses a throwaway SQLite file through the SQLAlchemy pool adapter so
commit and rollback effects can be observed from a fresh connection.
"""

import pytest
from sqlalchemy import create_engine

from masterymap.infrastructure.database.pool import SqlAlchemyPool
from masterymap.infrastructure.database.transaction import (
    batch_operation,
    check_database_health,
    safe_query,
    with_transaction,
)
from masterymap.shared.errors.types import BatchOperationError, DatabaseError

CREATE_PROJECTS = """
CREATE TABLE projects (
    id INTEGER PRIMARY KEY,
    title TEXT NOT NULL UNIQUE
)
"""
INSERT_PROJECT = "INSERT INTO projects (id, title) VALUES (:id, :title)"
SELECT_TITLES = "SELECT title FROM projects ORDER BY id"


@pytest.fixture
def pool(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'masterymap.db'}")
    pool = SqlAlchemyPool(engine)
    safe_query(pool, CREATE_PROJECTS)
    yield pool
    pool.dispose()


def _titles(pool) -> list[str]:
    return [row["title"] for row in safe_query(pool, SELECT_TITLES)]


class TestTransactionOnSqlite:
    """Commit and rollback are visible to later connections."""

    def test_committed_insert_is_visible(self, pool):
        with_transaction(
            pool, lambda tx: tx.query(INSERT_PROJECT, {"id": 1, "title": "Bridges"})
        )
        assert _titles(pool) == ["Bridges"]

    def test_failed_operation_leaves_no_rows(self, pool):
        def operation(tx):
            tx.query(INSERT_PROJECT, {"id": 1, "title": "Bridges"})
            raise RuntimeError("grading service unavailable")

        with pytest.raises(DatabaseError):
            with_transaction(pool, operation, "project.create")
        assert _titles(pool) == []

    def test_batch_failure_commits_nothing(self, pool):
        operations = [
            (INSERT_PROJECT, {"id": 1, "title": "Bridges"}),
            (INSERT_PROJECT, {"id": 2, "title": "Bridges"}),
            (INSERT_PROJECT, {"id": 3, "title": "Rockets"}),
        ]
        with pytest.raises(BatchOperationError) as excinfo:
            batch_operation(pool, operations, "project.import")

        assert excinfo.value.step == 2
        assert excinfo.value.context == "project.import.step2"
        assert _titles(pool) == []

    def test_batch_success_commits_all(self, pool):
        batch_operation(
            pool,
            [
                (INSERT_PROJECT, {"id": 1, "title": "Bridges"}),
                (INSERT_PROJECT, {"id": 2, "title": "Rockets"}),
            ],
        )
        assert _titles(pool) == ["Bridges", "Rockets"]

    def test_health_check(self, pool):
        assert check_database_health(pool, max_retries=1) is True
