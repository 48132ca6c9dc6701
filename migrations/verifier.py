import logging
from dataclasses import dataclass

from db.schema import TABLES
from migrations.collections import CollectionMapper
from migrations.stats import CollectionStatus

logger = logging.getLogger(__name__)


class MigrationStatusChecker:
    """Compare source document counts with destination row counts per mapped collection"""

    def __init__(self, source, target, mapper: CollectionMapper | None = None):
        self.source = source
        self.target = target
        self.mapper = mapper or CollectionMapper()

    async def collection_status(self) -> dict[str, CollectionStatus]:
        existing = await self.target.list_tables()
        statuses = {}
        for collection, table in self.mapper.items():
            source_count = await self.source.count(collection)
            destination_count = await self.target.count_rows(table) if table in existing else 0
            statuses[collection] = CollectionStatus(collection, table, source_count, destination_count)
        return statuses

    def log_status_summary(self, statuses: dict[str, CollectionStatus]):
        logger.info("\n" + "=" * 86)
        logger.info("📊 MIGRATION STATUS CHECK")
        logger.info("=" * 86)
        logger.info(f"{'Collection':<24} {'Table':<24} {'Source':<10} {'Dest':<10} {'Progress':<8} {'Status':<10}")
        logger.info("-" * 86)
        for status in statuses.values():
            status_icon = "✅ DONE" if status.is_complete else "⏳ PENDING"
            progress = f"{status.progress_pct:.1f}%"
            logger.info(
                f"{status.name:<24} {status.table:<24} {status.source_count:<10} "
                f"{status.destination_count:<10} {progress:<8} {status_icon:<10}"
            )
        logger.info("=" * 86 + "\n")


@dataclass(frozen=True)
class Relation:
    table: str
    column: str
    referenced_table: str

    def __str__(self) -> str:
        return f"{self.table}.{self.column} → {self.referenced_table}"


class SchemaValidator:
    def __init__(self, target):
        self.target = target

    async def missing_tables(self) -> list[str]:
        """Catalog tables absent from the destination, in creation order."""
        existing = await self.target.list_tables()
        return [table.name for table in TABLES if table.name not in existing]

    async def invalid_relations(self) -> list[Relation]:
        """Catalog foreign keys with no matching constraint in the destination."""
        existing = await self.target.list_foreign_keys()
        return [
            Relation(table.name, column.name, fk.table)
            for table in TABLES
            for column, fk in table.foreign_keys
            if (table.name, column.name, fk.table) not in existing
        ]
