from db.schema.indexes import INDEXES
from db.schema.policies import (
    ROW_SECURED_TABLES,
    UPDATED_AT_FUNCTION,
    build_row_policies,
    render_enable_row_security,
    render_trigger,
    trigger_tables,
)
from db.schema.tables import PHASES, TABLES, TABLES_BY_NAME, build_phases, get_table
from db.schema.types import (
    Column,
    ColumnKind,
    ForeignKey,
    IndexDefinition,
    MigrationPhase,
    RowPolicy,
    TableDefinition,
    build_sa_table,
    render_ddl,
)

__all__ = [
    "INDEXES",
    "PHASES",
    "ROW_SECURED_TABLES",
    "TABLES",
    "TABLES_BY_NAME",
    "UPDATED_AT_FUNCTION",
    "Column",
    "ColumnKind",
    "ForeignKey",
    "IndexDefinition",
    "MigrationPhase",
    "RowPolicy",
    "TableDefinition",
    "build_phases",
    "build_row_policies",
    "build_sa_table",
    "get_table",
    "render_ddl",
    "render_enable_row_security",
    "render_trigger",
    "trigger_tables",
]
