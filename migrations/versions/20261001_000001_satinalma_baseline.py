"""Initial schema baseline from satinalma.db

Revision ID: 20261001_000001
Revises:
Create Date: 2026-10-01 00:00:01
"""

from __future__ import annotations

from typing import Iterable, Sequence, Union

from alembic import op
from sqlalchemy.engine import Connection

from satinalma.db import _convert_qmark_to_pg, _init_db_postgres, _init_db_sqlite, schema_table_names


# revision identifiers, used by Alembic.
revision: str = "20261001_000001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


class _ResultAdapter:
    def __init__(self, result):
        self._result = result

    @staticmethod
    def _map_row(row):
        if row is None:
            return None
        mapping = getattr(row, "_mapping", None)
        if mapping is not None:
            return dict(mapping)
        return row

    def fetchone(self):
        return self._map_row(self._result.fetchone())

    def fetchall(self):
        return [self._map_row(row) for row in self._result.fetchall()]


class _AlembicDbAdapter:
    def __init__(self, connection: Connection, backend: str):
        self._connection = connection
        self.backend = backend

    def execute(self, sql: str, params: Iterable | None = None):
        if params is None:
            return _ResultAdapter(self._connection.exec_driver_sql(sql))
        statement = _convert_qmark_to_pg(sql) if self.backend == "postgres" else sql
        return _ResultAdapter(self._connection.exec_driver_sql(statement, tuple(params)))

    def commit(self):
        # transactions belong to the migration context
        return None

    def close(self):
        return None


def _resolve_backend(connection: Connection) -> str:
    dialect = (connection.dialect.name or "").lower()
    return "postgres" if dialect.startswith("postgres") else "sqlite"


def upgrade() -> None:
    connection = op.get_bind()
    backend = _resolve_backend(connection)
    adapter = _AlembicDbAdapter(connection, backend)
    if backend == "postgres":
        _init_db_postgres(adapter)
        return
    _init_db_sqlite(adapter)


def downgrade() -> None:
    for table in reversed(schema_table_names()):
        op.execute(f"DROP TABLE IF EXISTS {table}")
