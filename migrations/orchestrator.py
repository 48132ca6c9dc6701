import asyncio
import logging
from datetime import datetime
from typing import Callable

from migrations.collections import CollectionMapper
from migrations.exceptions import ExtractionError, NotMappedError
from migrations.extractor import Extractor
from migrations.loader import Loader
from migrations.stats import CollectionState, MigrationResult, RunSummary
from migrations.transformer import Transformer, utc_now

logger = logging.getLogger(__name__)


class MigrationOrchestrator:
    """Runs extract, transform and load for one collection at a time.

    Per collection: PENDING -> EXTRACTING -> TRANSFORMING -> LOADING -> DONE, with the
    terminal states SKIPPED (no destination table), FAILED (extraction or unexpected error) and
    CANCELLED (cancellation requested before the collection started).
    """

    def __init__(
        self,
        source,
        target,
        mapper: CollectionMapper | None = None,
        extractor: Extractor | None = None,
        transformer: Transformer | None = None,
        loader: Loader | None = None,
        cancel_event: asyncio.Event | None = None,
        report_path: str | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.source = source
        self.target = target
        self.cancel_event = cancel_event or asyncio.Event()
        self.mapper = mapper or CollectionMapper()
        self.extractor = extractor or Extractor(source)
        self.transformer = transformer or Transformer(mapper=self.mapper, clock=clock)
        self.loader = loader or Loader(target, cancel_event=self.cancel_event)
        self.report_path = report_path
        self.clock = clock
        self.states: dict[str, CollectionState] = {}

    def _advance(self, collection: str, state: CollectionState):
        self.states[collection] = state
        logger.debug(f"{collection}: {state.value}")

    def cancel(self):
        self.cancel_event.set()

    def _finish(self, collection: str, table: str | None, state: CollectionState, started_at: datetime, **counts):
        self._advance(collection, state)
        return MigrationResult(
            source_collection=collection,
            target_table=table,
            state=state,
            started_at=started_at,
            finished_at=self.clock(),
            **counts,
        )

    async def run_collection(self, collection: str) -> MigrationResult:
        started_at = self.clock()
        self._advance(collection, CollectionState.PENDING)

        try:
            table = self.mapper.resolve(collection)
        except NotMappedError as e:
            logger.info(f"⏭️  Skipping {collection}: {e}")
            return self._finish(collection, None, CollectionState.SKIPPED, started_at)

        if self.cancel_event.is_set():
            logger.info(f"🛑 Not starting {collection}: run cancelled")
            return self._finish(collection, table, CollectionState.CANCELLED, started_at)

        logger.info(f"📦 Migrating {collection} → {table}")
        self._advance(collection, CollectionState.EXTRACTING)
        try:
            records = await self.extractor.extract(collection)
        except ExtractionError as e:
            logger.error(f"❌ {collection} failed: {e}")
            return self._finish(collection, table, CollectionState.FAILED, started_at, errors=(str(e),))

        self._advance(collection, CollectionState.TRANSFORMING)
        errors: list[str] = []
        references = self.transformer.required_references(collection)
        if references:
            try:
                await self.transformer.resolver.load(self.target, references)
            except Exception as e:
                # Unresolved references are stored as NULL.
                logger.warning(f"⚠️ Could not load references {sorted(references)} for {collection}: {e}")
                errors.append(f"Reference lookup failed: {e}")
        outcome = self.transformer.transform(collection, records)
        errors.extend(f"Dropped {drop.source_id or '<unknown>'}: {drop.reason}" for drop in outcome.dropped)

        self._advance(collection, CollectionState.LOADING)
        batch = await self.loader.load(table, outcome.records)
        errors.extend(batch.errors)

        return self._finish(
            collection,
            table,
            CollectionState.DONE,
            started_at,
            total_extracted=len(records),
            dropped=len(outcome.dropped),
            inserted=batch.inserted,
            failed=batch.failed,
            errors=tuple(errors),
        )

    async def run_all(self, collections: list[str] | None = None) -> RunSummary:
        """Migrate the given collections (all mapped collections by default) in order."""
        names = collections if collections is not None else self.mapper.collections()
        summary = RunSummary()

        for collection in names:
            started_at = self.clock()
            try:
                result = await self.run_collection(collection)
            except Exception as e:
                logger.exception(f"❌ {collection} failed unexpectedly: {str(e)}")
                table = self.mapper.resolve(collection) if self.mapper.is_mapped(collection) else None
                result = self._finish(collection, table, CollectionState.FAILED, started_at, errors=(str(e),))
            summary.results.append(result)
            if result.state == CollectionState.CANCELLED or self.cancel_event.is_set():
                summary.cancelled = True

        summary.log_summary()
        if self.report_path:
            summary.write_jsonl(self.report_path)
        return summary
