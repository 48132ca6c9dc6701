"""
Document store to PostgreSQL migration.

Collections are extracted from the source store, transformed into destination rows
and loaded in batches; each collection yields a MigrationResult and the run a
RunSummary.

CLI Usage:
    python -m migrations schema provision
    python -m migrations migrate run
    python -m migrations migrate status
"""
