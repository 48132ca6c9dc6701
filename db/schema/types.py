"""
Declarative table definitions for the destination schema.

A TableDefinition is a plain value (name, columns, constraints, phase). The DDL for a
table is rendered from it by ``render_ddl`` and the SQLAlchemy Core table used for
bulk inserts is built from the same value, so the column kinds that drive DDL also
drive bind types and transform coercion.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from functools import lru_cache

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

_DIALECT = postgresql.dialect()


def quote(identifier: str) -> str:
    """Quote an identifier only when PostgreSQL needs it (reserved words, casing)."""
    return _DIALECT.identifier_preparer.quote(identifier)


def sql_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class ColumnKind(StrEnum):
    UUID = "uuid"
    TEXT = "text"
    VARCHAR = "varchar"
    NUMERIC = "numeric"
    INTEGER = "integer"
    BIGINT = "bigint"
    BOOLEAN = "boolean"
    TIMESTAMPTZ = "timestamptz"
    DATE = "date"
    JSONB = "jsonb"
    TEXT_ARRAY = "text_array"
    INET = "inet"

    @property
    def is_numeric(self) -> bool:
        return self in (ColumnKind.NUMERIC, ColumnKind.INTEGER, ColumnKind.BIGINT)

    @property
    def is_textual(self) -> bool:
        return self in (ColumnKind.TEXT, ColumnKind.VARCHAR, ColumnKind.INET, ColumnKind.UUID)

    @property
    def is_temporal(self) -> bool:
        return self in (ColumnKind.TIMESTAMPTZ, ColumnKind.DATE)


@dataclass(frozen=True)
class ForeignKey:
    table: str
    column: str = "id"
    on_delete: str | None = "CASCADE"

    def render(self) -> str:
        sql = f"REFERENCES {quote(self.table)}({quote(self.column)})"
        if self.on_delete:
            sql += f" ON DELETE {self.on_delete}"
        return sql


@dataclass(frozen=True)
class Column:
    name: str
    kind: ColumnKind
    length: int | None = None
    precision: tuple[int, int] | None = None
    nullable: bool = True
    unique: bool = False
    primary_key: bool = False
    default_sql: str | None = None
    references: ForeignKey | None = None
    choices: tuple[str, ...] = ()
    json_object: bool = False

    @property
    def sql_type(self) -> str:
        match self.kind:
            case ColumnKind.VARCHAR:
                return f"VARCHAR({self.length})" if self.length else "VARCHAR"
            case ColumnKind.NUMERIC:
                if self.precision:
                    return f"NUMERIC({self.precision[0]},{self.precision[1]})"
                return "NUMERIC"
            case ColumnKind.TEXT_ARRAY:
                return "TEXT[]"
            case _:
                return self.kind.value.upper()

    @property
    def sa_type(self) -> sa.types.TypeEngine:
        match self.kind:
            case ColumnKind.UUID:
                return postgresql.UUID(as_uuid=False)
            case ColumnKind.TEXT:
                return sa.Text()
            case ColumnKind.VARCHAR:
                return sa.String(self.length)
            case ColumnKind.NUMERIC:
                if self.precision:
                    return sa.Numeric(*self.precision)
                return sa.Numeric()
            case ColumnKind.INTEGER:
                return sa.Integer()
            case ColumnKind.BIGINT:
                return sa.BigInteger()
            case ColumnKind.BOOLEAN:
                return sa.Boolean()
            case ColumnKind.TIMESTAMPTZ:
                return sa.DateTime(timezone=True)
            case ColumnKind.DATE:
                return sa.Date()
            case ColumnKind.JSONB:
                return postgresql.JSONB()
            case ColumnKind.TEXT_ARRAY:
                return postgresql.ARRAY(sa.Text())
            case ColumnKind.INET:
                return postgresql.INET()
        raise ValueError(f"Unsupported column kind: {self.kind}")

    @property
    def has_default(self) -> bool:
        return self.default_sql is not None or self.primary_key

    @property
    def is_required(self) -> bool:
        """A value must be supplied on insert: NOT NULL and no database default."""
        return not self.nullable and not self.has_default

    def render(self) -> str:
        parts = [quote(self.name), self.sql_type]
        if self.primary_key:
            parts.append("PRIMARY KEY")
        if self.default_sql is not None:
            parts.append(f"DEFAULT {self.default_sql}")
        if not self.nullable and not self.primary_key:
            parts.append("NOT NULL")
        if self.unique:
            parts.append("UNIQUE")
        if self.references:
            parts.append(self.references.render())
        if self.choices:
            options = ", ".join(sql_literal(choice) for choice in self.choices)
            parts.append(f"CHECK ({quote(self.name)} IN ({options}))")
        if self.json_object:
            parts.append(f"CHECK (jsonb_typeof({quote(self.name)}) = 'object')")
        return " ".join(parts)


@dataclass(frozen=True)
class TableDefinition:
    name: str
    phase: int
    columns: tuple[Column, ...]
    unique_together: tuple[tuple[str, ...], ...] = ()
    source_key: str | None = None
    description: str = ""

    def __post_init__(self):
        names = [column.name for column in self.columns]
        duplicates = {name for name in names if names.count(name) > 1}
        if duplicates:
            raise ValueError(f"Table {self.name} declares duplicate columns: {sorted(duplicates)}")
        for group in self.unique_together:
            missing = set(group) - set(names)
            if missing:
                raise ValueError(f"Table {self.name} unique constraint references unknown columns: {sorted(missing)}")

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.columns)

    @property
    def foreign_keys(self) -> list[tuple[Column, ForeignKey]]:
        return [(column, column.references) for column in self.columns if column.references]

    @property
    def referenced_tables(self) -> set[str]:
        return {fk.table for _, fk in self.foreign_keys if fk.table != self.name}

    def column(self, name: str) -> Column | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def has_column(self, name: str) -> bool:
        return self.column(name) is not None

    @property
    def ddl_body(self) -> str:
        lines = [column.render() for column in self.columns]
        for group in self.unique_together:
            lines.append(f"UNIQUE ({', '.join(quote(name) for name in group)})")
        return ",\n    ".join(lines)

    @property
    def ddl(self) -> str:
        return render_ddl(self)


def render_ddl(table: TableDefinition) -> str:
    """Render one idempotent CREATE TABLE statement for a table definition."""
    return f"CREATE TABLE IF NOT EXISTS {quote(table.name)} (\n    {table.ddl_body}\n);"


@lru_cache(maxsize=None)
def build_sa_table(table: TableDefinition) -> sa.Table:
    """Lightweight Core table carrying bind types for inserts (not used for DDL)."""
    return sa.Table(
        table.name,
        sa.MetaData(),
        *(sa.Column(column.name, column.sa_type, primary_key=column.primary_key) for column in table.columns),
    )


@dataclass(frozen=True)
class MigrationPhase:
    number: int
    name: str
    tables: tuple[TableDefinition, ...] = field(default_factory=tuple)

    @property
    def table_names(self) -> list[str]:
        return [table.name for table in self.tables]


@dataclass(frozen=True)
class IndexDefinition:
    table: str
    columns: tuple[str, ...]
    name: str | None = None

    @property
    def index_name(self) -> str:
        return self.name or f"idx_{self.table}_{'_'.join(self.columns)}"

    def render(self) -> str:
        columns = ", ".join(quote(column) for column in self.columns)
        return f"CREATE INDEX IF NOT EXISTS {quote(self.index_name)} ON {quote(self.table)} ({columns});"


@dataclass(frozen=True)
class RowPolicy:
    name: str
    table: str
    command: str = "SELECT"
    using: str | None = None
    with_check: str | None = None

    def render(self) -> str:
        sql = f"CREATE POLICY {quote(self.name)} ON {quote(self.table)} FOR {self.command}"
        if self.using:
            sql += f" USING ({self.using})"
        if self.with_check:
            sql += f" WITH CHECK ({self.with_check})"
        return sql + ";"

    def render_drop(self) -> str:
        return f"DROP POLICY IF EXISTS {quote(self.name)} ON {quote(self.table)};"
