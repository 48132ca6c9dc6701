"""Column factories shared by the table catalog."""

from db.schema.types import Column, ColumnKind, ForeignKey


def uuid_pk() -> Column:
    return Column("id", ColumnKind.UUID, primary_key=True, nullable=False, default_sql="gen_random_uuid()")


def owner(name: str = "user_id", table: str = "users", on_delete: str | None = "CASCADE") -> Column:
    return Column(name, ColumnKind.UUID, references=ForeignKey(table, on_delete=on_delete))


def text(name: str, length: int | None = None, *, nullable: bool = True, unique: bool = False, default: str | None = None) -> Column:
    kind = ColumnKind.VARCHAR if length else ColumnKind.TEXT
    return Column(
        name,
        kind,
        length=length,
        nullable=nullable,
        unique=unique,
        default_sql=None if default is None else f"'{default}'",
    )


def status(name: str, choices: tuple[str, ...], *, default: str | None = None, nullable: bool = True) -> Column:
    return Column(
        name,
        ColumnKind.TEXT,
        choices=choices,
        nullable=nullable,
        default_sql=None if default is None else f"'{default}'",
    )


def money(name: str, *, nullable: bool = True, default: int | None = None) -> Column:
    return Column(
        name,
        ColumnKind.NUMERIC,
        precision=(15, 2),
        nullable=nullable,
        default_sql=None if default is None else str(default),
    )


def rate(name: str, *, nullable: bool = True, default: int | None = None) -> Column:
    return Column(
        name,
        ColumnKind.NUMERIC,
        precision=(5, 2),
        nullable=nullable,
        default_sql=None if default is None else str(default),
    )


def integer(name: str, *, default: int | None = None, big: bool = False, nullable: bool = True) -> Column:
    return Column(
        name,
        ColumnKind.BIGINT if big else ColumnKind.INTEGER,
        nullable=nullable,
        default_sql=None if default is None else str(default),
    )


def flag(name: str, default: bool = False) -> Column:
    return Column(name, ColumnKind.BOOLEAN, default_sql="TRUE" if default else "FALSE")


def timestamp(name: str, *, default_now: bool = False, nullable: bool = True) -> Column:
    return Column(
        name,
        ColumnKind.TIMESTAMPTZ,
        nullable=nullable,
        default_sql="NOW()" if default_now else None,
    )


def json_object(name: str, *, nullable: bool = True) -> Column:
    return Column(name, ColumnKind.JSONB, nullable=nullable, json_object=True)


def text_array(name: str) -> Column:
    return Column(name, ColumnKind.TEXT_ARRAY)


def source_id(name: str = "firebase_id", *, unique: bool = False, nullable: bool = True) -> Column:
    """Native identifier of the source document, kept for traceability."""
    return Column(name, ColumnKind.VARCHAR, length=128, unique=unique, nullable=nullable)


def created_at() -> Column:
    return timestamp("created_at", default_now=True)


def updated_at() -> Column:
    return timestamp("updated_at", default_now=True)


def audit_columns() -> tuple[Column, ...]:
    """Soft-delete and optimistic-version columns carried by every table."""
    return (
        flag("is_deleted", default=False),
        timestamp("deleted_at"),
        Column("deleted_by", ColumnKind.UUID),
        integer("version", default=1),
    )
