import logging
from typing import Any, Mapping, Sequence

import sqlalchemy as sa
from sqlalchemy import make_url, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from db.config import settings
from db.schema import RowPolicy, build_sa_table, get_table
from db.schema.types import quote

logger = logging.getLogger(__name__)

# asyncpg accepts at most 32767 bind parameters per statement
MAX_BIND_PARAMS = 32000

DEFAULT = sa.literal_column("DEFAULT")


def _create_engine(postgres_uri: str, pool_size: int) -> AsyncEngine:
    return create_async_engine(
        postgres_uri,
        echo=False,
        pool_size=pool_size,
        max_overflow=pool_size * 2,
        pool_pre_ping=True,
        pool_recycle=3600,
    )


class PostgresTarget:
    """Destination store: DDL execution, batch inserts and lookups over one async engine."""

    def __init__(self, postgres_uri: str | None = None, pool_size: int | None = None):
        self.postgres_uri = postgres_uri or settings.postgres_uri
        self.pool_size = pool_size or settings.postgres_pool_size
        self._engine: AsyncEngine | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = _create_engine(self.postgres_uri, self.pool_size)
        return self._engine

    async def ensure_database(self):
        """Create the target database when it does not exist yet."""
        postgres_url = make_url(self.postgres_uri)
        database_name = postgres_url.database
        admin_engine = create_async_engine(postgres_url.set(database="postgres"), isolation_level="AUTOCOMMIT")
        try:
            async with admin_engine.connect() as conn:
                result = await conn.execute(
                    text("SELECT 1 FROM pg_database WHERE datname = :name"), {"name": database_name}
                )
                if not result.scalar():
                    await conn.exec_driver_sql(f"CREATE DATABASE {quote(database_name)}")
                    logger.info(f"Database '{database_name}' created.")
        finally:
            await admin_engine.dispose()

    async def close(self):
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None

    async def execute_ddl(self, sql: str):
        async with self.engine.begin() as conn:
            await conn.exec_driver_sql(sql)

    async def bulk_insert(self, table_name: str, rows: Sequence[Mapping[str, Any]]) -> int:
        """Insert every row or none of them.

        Rows may carry different column subsets; columns a row does not carry are sent
        as ``DEFAULT`` so the destination default applies.
        """
        if not rows:
            return 0
        definition = get_table(table_name)
        if definition is None:
            raise ValueError(f"Unknown destination table: {table_name}")
        table = build_sa_table(definition)

        present = set().union(*(row.keys() for row in rows))
        columns = [name for name in definition.column_names if name in present]
        unknown = present - set(columns)
        if unknown:
            raise ValueError(f"Table {table_name} has no columns {sorted(unknown)}")

        values = [{name: row.get(name, DEFAULT) for name in columns} for row in rows]
        rows_per_statement = max(1, MAX_BIND_PARAMS // max(1, len(columns)))

        async with self.engine.begin() as conn:
            for start in range(0, len(values), rows_per_statement):
                chunk = values[start : start + rows_per_statement]
                await conn.execute(pg_insert(table).values(chunk))
        return len(rows)

    async def enable_row_policy(self, table_name: str, policy: RowPolicy):
        async with self.engine.begin() as conn:
            await conn.exec_driver_sql(policy.render_drop())
            await conn.exec_driver_sql(policy.render())

    async def list_tables(self) -> set[str]:
        async with self.engine.connect() as conn:
            result = await conn.execute(
                text(
                    "SELECT table_name FROM information_schema.tables "
                    "WHERE table_schema = current_schema() AND table_type = 'BASE TABLE'"
                )
            )
            return {row[0] for row in result}

    async def list_foreign_keys(self) -> set[tuple[str, str, str]]:
        """``(table, column, referenced_table)`` for every foreign key in the current schema."""
        async with self.engine.connect() as conn:
            result = await conn.execute(
                text(
                    "SELECT tc.table_name, kcu.column_name, ccu.table_name "
                    "FROM information_schema.table_constraints tc "
                    "JOIN information_schema.key_column_usage kcu "
                    "ON tc.constraint_name = kcu.constraint_name AND tc.table_schema = kcu.table_schema "
                    "JOIN information_schema.constraint_column_usage ccu "
                    "ON tc.constraint_name = ccu.constraint_name AND tc.table_schema = ccu.table_schema "
                    "WHERE tc.constraint_type = 'FOREIGN KEY' AND tc.table_schema = current_schema()"
                )
            )
            return {(table, column, referenced) for table, column, referenced in result}

    async def count_rows(self, table_name: str) -> int:
        async with self.engine.connect() as conn:
            result = await conn.execute(text(f"SELECT COUNT(*) FROM {quote(table_name)}"))
            return result.scalar() or 0

    async def fetch_key_map(self, table_name: str, key_column: str) -> dict[str, str]:
        """Map a table's source identifier column to its destination ``id``."""
        async with self.engine.connect() as conn:
            result = await conn.execute(
                text(
                    f"SELECT {quote(key_column)}, id::text FROM {quote(table_name)} "
                    f"WHERE {quote(key_column)} IS NOT NULL"
                )
            )
            return {str(key): row_id for key, row_id in result}
