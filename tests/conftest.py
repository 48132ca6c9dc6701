"""
Pytest configuration and shared fixtures for the migration tests.

FakeSource and FakeTarget stand in for the document store and PostgreSQL. The fake
target keeps just enough relational behavior to exercise the pipeline: CREATE TABLE
fails when a referenced table does not exist, and inserts honor the catalog's
single-column UNIQUE constraints atomically per batch.
"""

import re
import uuid
from datetime import datetime

import pytest
import pytz
from sqlalchemy import exc as sa_exc

from db.config import settings
from db.schema import TABLES, get_table

CREATE_TABLE = re.compile(r'CREATE TABLE IF NOT EXISTS "?(\w+)"?')
REFERENCES = re.compile(r'REFERENCES "?(\w+)"?')
COLUMN_REFERENCE = re.compile(r'^\s*"?(\w+)"?\s[^\n]*?REFERENCES "?(\w+)"?', re.MULTILINE)

FIXED_NOW = datetime(2024, 5, 17, 12, 0, tzinfo=pytz.utc)


class FakeSource:
    def __init__(self, collections: dict[str, list[dict]] | None = None, errors: dict[str, Exception] | None = None):
        self.collections = collections or {}
        self.errors = errors or {}
        self.reads: list[str] = []
        self.closed = False

    async def list_collections(self) -> list[str]:
        return sorted(self.collections)

    async def read_all(self, name: str, limit: int | None = None) -> list[dict]:
        self.reads.append(name)
        if name in self.errors:
            raise self.errors[name]
        documents = [dict(document) for document in self.collections.get(name, [])]
        return documents[:limit] if limit else documents

    async def count(self, name: str) -> int:
        return len(self.collections.get(name, []))

    def close(self):
        self.closed = True


class FakeTarget:
    def __init__(self, tables: set[str] | None = None):
        self.tables: set[str] = set(tables or ())
        self.rows: dict[str, list[dict]] = {}
        self.statements: list[str] = []
        self.foreign_keys: set[tuple[str, str, str]] = set()
        self.policies: list[tuple[str, str]] = []
        self.insert_calls: list[tuple[str, int]] = []
        self.fail_ddl: dict[str, Exception] = {}
        self.fail_batches: dict[int, Exception] = {}
        self.closed = False

    @classmethod
    def provisioned(cls) -> "FakeTarget":
        """A target holding every catalog table and foreign key."""
        target = cls({table.name for table in TABLES})
        target.foreign_keys = {
            (table.name, column.name, fk.table) for table in TABLES for column, fk in table.foreign_keys
        }
        return target

    async def execute_ddl(self, sql: str):
        self.statements.append(sql)
        match = CREATE_TABLE.search(sql)
        if not match:
            return
        name = match.group(1)
        if name in self.fail_ddl:
            raise self.fail_ddl[name]
        for referenced in REFERENCES.findall(sql):
            if referenced != name and referenced not in self.tables:
                raise sa_exc.ProgrammingError(sql, {}, Exception(f'relation "{referenced}" does not exist'))
        self.tables.add(name)
        self.foreign_keys.update((name, column, referenced) for column, referenced in COLUMN_REFERENCE.findall(sql))

    async def bulk_insert(self, table: str, rows: list[dict]) -> int:
        call_number = len(self.insert_calls) + 1
        self.insert_calls.append((table, len(rows)))
        if call_number in self.fail_batches:
            raise self.fail_batches[call_number]

        existing = self.rows.setdefault(table, [])
        definition = get_table(table)
        for column in definition.columns:
            if not column.unique:
                continue
            seen = {row.get(column.name) for row in existing}
            for row in rows:
                value = row.get(column.name)
                if value is not None and value in seen:
                    raise sa_exc.IntegrityError(
                        "INSERT", {}, Exception(f"duplicate key value violates unique constraint on {column.name}")
                    )
                seen.add(value)

        existing.extend({"id": str(uuid.uuid4()), **row} for row in rows)
        return len(rows)

    async def enable_row_policy(self, table: str, policy):
        self.policies.append((table, policy.render()))

    async def list_tables(self) -> set[str]:
        return set(self.tables)

    async def list_foreign_keys(self) -> set[tuple[str, str, str]]:
        return set(self.foreign_keys)

    async def count_rows(self, table: str) -> int:
        return len(self.rows.get(table, []))

    async def fetch_key_map(self, table: str, key_column: str) -> dict[str, str]:
        return {str(row[key_column]): row["id"] for row in self.rows.get(table, []) if row.get(key_column)}

    async def close(self):
        self.closed = True


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    """No inter-batch delay and no backoff waits in tests."""
    monkeypatch.setattr(settings, "delay_between_batches", 0)
    monkeypatch.setattr(settings, "retry_wait_min", 0)
    monkeypatch.setattr(settings, "retry_wait_max", 0)
    monkeypatch.setattr(settings, "max_retries", 3)


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def fake_target():
    return FakeTarget()


@pytest.fixture
def sample_users():
    """Three user documents, one without an email."""
    return [
        {"_id": "uid-1", "email": "ada@example.com", "displayName": "Ada", "emailVerified": True},
        {"_id": "uid-2", "email": "grace@example.com", "name": "Grace", "isActive": False},
        {"_id": "uid-3", "displayName": "No Mail"},
    ]
