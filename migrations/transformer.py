"""
Record transformation: source documents to destination rows.

Coercion is driven by the destination column kind declared in the table catalog:
numbers are parsed (0 when missing or unparsable), store-native timestamps become
aware UTC instants (the call's execution time when missing), json/array columns
fall back to empty values and foreign keys are resolved from source identifiers
to destination ids. A record that cannot be converted is dropped with its reason;
a single record never aborts the call.
"""

import ipaddress
import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation, ROUND_DOWN, ROUND_HALF_UP
from typing import Any, Callable, Mapping

import pytz
from bson.timestamp import Timestamp as BsonTimestamp
from dateutil.parser import isoparse

from db.schema import Column, ColumnKind, TableDefinition, get_table
from migrations.collections import CollectionMapper
from migrations.exceptions import TransformDropError
from migrations.records import RawRecord, TransformDrop, TransformedRecord, TransformOutcome
from migrations.transform_rules import SOURCE_ID, TRANSFORM_RULES, UNSET, FieldRule, RuleRegistry, TransformRule

logger = logging.getLogger(__name__)

OMIT: Any = object()
INVALID: Any = object()

INT32_MAX = 2**31 - 1
INT64_MAX = 2**63 - 1


def utc_now() -> datetime:
    return datetime.now(pytz.utc)


def snake_case(name: str) -> str:
    name = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", name)
    name = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name)
    return re.sub(r"[\s\-]+", "_", name).lower()


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------


def to_instant(value: Any) -> datetime | None:
    """Convert a store-native timestamp to an aware UTC datetime, or None."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return pytz.utc.localize(value)
        return value.astimezone(pytz.utc)
    if isinstance(value, date):
        return pytz.utc.localize(datetime.combine(value, time()))
    if isinstance(value, BsonTimestamp):
        return value.as_datetime().astimezone(pytz.utc)
    if isinstance(value, Mapping):
        seconds = value.get("seconds", value.get("_seconds"))
        nanos = value.get("nanoseconds", value.get("_nanoseconds", 0)) or 0
        if seconds is None:
            return None
        try:
            return datetime.fromtimestamp(int(seconds) + int(nanos) / 1_000_000_000, tz=pytz.utc)
        except (TypeError, ValueError, OverflowError, OSError):
            return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        # Epoch values above 1e11 can only be milliseconds.
        seconds = value / 1000 if abs(value) > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=pytz.utc)
        except (ValueError, OverflowError, OSError):
            return None
    if isinstance(value, str):
        try:
            return to_instant(isoparse(value.strip()))
        except (ValueError, OverflowError):
            return None
    return None


def to_number(value: Any) -> Decimal | None:
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, (int, float, Decimal, str)):
        try:
            number = Decimal(str(value).strip())
        except InvalidOperation:
            return None
        return number if number.is_finite() else None
    return None


def to_jsonable(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key): to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(item) for item in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date, BsonTimestamp)):
        instant = to_instant(value)
        return instant.isoformat() if instant else str(value)
    return str(value)


def render_scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def to_text(column: Column, value: Any) -> str:
    if isinstance(value, (Mapping, list, tuple, set)):
        raise TransformDropError(None, f"column {column.name} cannot hold a {type(value).__name__}")
    text = render_scalar(value)
    if column.length and len(text) > column.length:
        raise TransformDropError(None, f"column {column.name} exceeds {column.length} characters")
    return text


def coerce(column: Column, value: Any) -> Any:
    """Coerce a present, non-null source value; INVALID when it cannot be used."""
    kind = column.kind
    if kind.is_numeric:
        number = to_number(value)
        if number is None:
            return INVALID
        if kind == ColumnKind.NUMERIC:
            if column.precision:
                digits, scale = column.precision
                bound = Decimal(10) ** (digits - scale)
                if abs(number) < bound:
                    # The server rounds to the column scale before its own bound check.
                    number = number.quantize(Decimal(1).scaleb(-scale), rounding=ROUND_HALF_UP)
                if abs(number) >= bound:
                    raise TransformDropError(None, f"column {column.name} overflows NUMERIC({digits},{scale})")
            return number
        integer = int(number.to_integral_value(rounding=ROUND_DOWN))
        limit = INT32_MAX if kind == ColumnKind.INTEGER else INT64_MAX
        if abs(integer) > limit:
            raise TransformDropError(None, f"column {column.name} overflows {kind.value}")
        return integer
    if kind == ColumnKind.BOOLEAN:
        return value if isinstance(value, bool) else INVALID
    if kind.is_temporal:
        instant = to_instant(value)
        if instant is None:
            return INVALID
        return instant.date() if kind == ColumnKind.DATE else instant
    if kind == ColumnKind.JSONB:
        return to_jsonable(value) if isinstance(value, Mapping) else INVALID
    if kind == ColumnKind.TEXT_ARRAY:
        if not isinstance(value, (list, tuple)):
            return INVALID
        return [
            json.dumps(to_jsonable(item)) if isinstance(item, (Mapping, list, tuple)) else render_scalar(item)
            for item in value
            if item is not None
        ]
    if kind == ColumnKind.UUID:
        try:
            return str(uuid.UUID(str(value)))
        except ValueError:
            return INVALID
    if kind == ColumnKind.INET:
        try:
            return str(ipaddress.ip_address(str(value)))
        except ValueError:
            return INVALID
    return to_text(column, value)


def kind_default(column: Column, now: datetime) -> Any:
    """Value substituted when a column's source value is missing or unusable."""
    kind = column.kind
    if kind == ColumnKind.NUMERIC:
        return Decimal(0)
    if kind in (ColumnKind.INTEGER, ColumnKind.BIGINT):
        return 0
    if kind == ColumnKind.TIMESTAMPTZ:
        return now
    if kind == ColumnKind.DATE:
        return now.date()
    if kind == ColumnKind.JSONB:
        return {}
    if kind == ColumnKind.TEXT_ARRAY:
        return []
    return OMIT


# ---------------------------------------------------------------------------
# References
# ---------------------------------------------------------------------------


class ReferenceResolver:
    """Source identifier to destination ``id`` maps, one per referenced table."""

    def __init__(self, maps: dict[str, dict[str, str]] | None = None):
        self._maps: dict[str, dict[str, str]] = {table: dict(mapping) for table, mapping in (maps or {}).items()}

    def register(self, table: str, mapping: dict[str, str]):
        self._maps[table] = dict(mapping)

    def has(self, table: str) -> bool:
        return table in self._maps

    def resolve(self, table: str, source_id: Any) -> str | None:
        if source_id is None or isinstance(source_id, (Mapping, list)):
            return None
        return self._maps.get(table, {}).get(str(source_id))

    async def load(self, target, tables: set[str] | list[str]):
        """Refresh maps for the given tables from the destination."""
        for table in sorted(tables):
            definition = get_table(table)
            if definition is None or not definition.source_key:
                continue
            self.register(table, await target.fetch_key_map(table, definition.source_key))
            logger.debug(f"Loaded {len(self._maps[table]):,} references for {table}")


def references_for(rule: TransformRule, table: TableDefinition) -> set[str]:
    """Destination tables whose id maps a transform into ``table`` needs."""
    if rule.copy_matching:
        return {fk.table for _, fk in table.foreign_keys}
    return set(rule.references)


# ---------------------------------------------------------------------------
# Transformer
# ---------------------------------------------------------------------------


@dataclass
class _RowBuilder:
    table: TableDefinition
    resolver: ReferenceResolver
    now: datetime
    columns: dict[str, Any] = field(default_factory=dict)

    def set(self, column: Column, value: Any):
        if value is OMIT:
            return
        if value is not None and column.choices and value not in column.choices:
            raise TransformDropError(None, f"value {value!r} is not allowed for {column.name}")
        self.columns[column.name] = value

    def set_reference(self, column: Column, table: str, value: Any):
        self.columns[column.name] = self.resolver.resolve(table, value)

    def set_timestamps(self, fields: Mapping[str, Any]):
        for name, source in (("created_at", "createdAt"), ("updated_at", "updatedAt")):
            column = self.table.column(name)
            if column is None or name in self.columns:
                continue
            instant = to_instant(fields.get(source, fields.get(name)))
            self.columns[name] = instant or self.now

    def check_required(self):
        for column in self.table.columns:
            if column.is_required and self.columns.get(column.name) is None:
                raise TransformDropError(None, f"missing required column {column.name}")


class Transformer:
    def __init__(
        self,
        mapper: CollectionMapper | None = None,
        rules: RuleRegistry = TRANSFORM_RULES,
        resolver: ReferenceResolver | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.mapper = mapper or CollectionMapper()
        self.rules = rules
        self.resolver = resolver or ReferenceResolver()
        self.clock = clock

    def table_for(self, source_collection: str) -> TableDefinition:
        table_name = self.mapper.resolve(source_collection)
        definition = get_table(table_name)
        if definition is None:
            raise ValueError(f"Table {table_name} is not part of the schema catalog")
        return definition

    def required_references(self, source_collection: str) -> set[str]:
        return references_for(self.rules.get(source_collection), self.table_for(source_collection))

    def transform(self, source_collection: str, records: list[RawRecord]) -> TransformOutcome:
        table = self.table_for(source_collection)
        rule = self.rules.get(source_collection)
        now = self.clock()
        outcome = TransformOutcome()

        for record in records:
            try:
                outcome.records.append(self.transform_record(table, rule, record, now))
            except TransformDropError as e:
                outcome.dropped.append(TransformDrop(source_id=record.source_id, reason=e.reason))

        if outcome.dropped:
            logger.warning(f"⚠️ Dropped {len(outcome.dropped):,} of {len(records):,} records from {source_collection}")
        logger.info(f"🔄 Transformed {len(outcome.records):,} records for {table.name}")
        return outcome

    def transform_record(self, table: TableDefinition, rule: TransformRule, record: RawRecord, now: datetime):
        if not isinstance(record.fields, Mapping):
            raise TransformDropError(record.source_id, "record is not a mapping")
        if not record.source_id:
            raise TransformDropError(None, "record has no source identifier")

        row = _RowBuilder(table=table, resolver=self.resolver, now=now)
        if rule.copy_matching:
            self._copy_matching(row, record)
        for field_rule in rule.fields:
            self._apply_field_rule(row, field_rule, record)

        if table.source_key:
            row.columns[table.source_key] = record.source_id
        if rule.timestamps:
            row.set_timestamps(record.fields)
        row.check_required()
        return TransformedRecord(source_id=record.source_id, columns=row.columns)

    def _apply_field_rule(self, row: _RowBuilder, field_rule: FieldRule, record: RawRecord):
        column = row.table.column(field_rule.column)
        if column is None:
            raise ValueError(f"Rule column {field_rule.column} does not exist in {row.table.name}")

        value = None
        for source in field_rule.sources:
            candidate = record.source_id if source == SOURCE_ID else record.fields.get(source)
            if candidate is not None:
                value = candidate
                break

        if field_rule.reference:
            row.set_reference(column, field_rule.reference, value)
            return

        coerced = INVALID if value is None else coerce(column, value)
        if coerced is INVALID:
            default = field_rule.resolve_default()
            if default is UNSET:
                coerced = kind_default(column, row.now)
            elif default is None:
                coerced = None
            else:
                coerced = coerce(column, default)
            if coerced is INVALID:
                coerced = kind_default(column, row.now)
        row.set(column, coerced)

    def _copy_matching(self, row: _RowBuilder, record: RawRecord):
        for name, value in record.fields.items():
            column = row.table.column(name) or row.table.column(snake_case(name))
            if column is None or column.primary_key or column.name == row.table.source_key:
                continue
            if column.name in row.columns:
                continue
            if column.references:
                row.set_reference(column, column.references.table, value)
                continue
            if value is None:
                if column.nullable:
                    row.columns[column.name] = None
                continue
            coerced = coerce(column, value)
            row.set(column, kind_default(column, row.now) if coerced is INVALID else coerced)
