"""
Result values threaded back from the loader and the orchestrator.

Counts always satisfy ``inserted + failed == attempted``; logging is applied to the
returned values, it never carries the outcome itself.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_PARTIAL = 2


@dataclass
class BatchResult:
    attempted: int = 0
    inserted: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    cancelled: bool = False

    def __post_init__(self):
        if self.inserted + self.failed != self.attempted:
            raise ValueError(
                f"Inconsistent batch counts: {self.inserted} inserted + {self.failed} failed != {self.attempted}"
            )

    def __add__(self, other: "BatchResult") -> "BatchResult":
        return BatchResult(
            attempted=self.attempted + other.attempted,
            inserted=self.inserted + other.inserted,
            failed=self.failed + other.failed,
            errors=self.errors + other.errors,
            cancelled=self.cancelled or other.cancelled,
        )


class CollectionState(StrEnum):
    PENDING = "PENDING"
    EXTRACTING = "EXTRACTING"
    TRANSFORMING = "TRANSFORMING"
    LOADING = "LOADING"
    DONE = "DONE"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (
            CollectionState.DONE,
            CollectionState.SKIPPED,
            CollectionState.FAILED,
            CollectionState.CANCELLED,
        )


@dataclass(frozen=True)
class MigrationResult:
    source_collection: str
    target_table: str | None
    state: CollectionState
    total_extracted: int = 0
    dropped: int = 0
    inserted: int = 0
    failed: int = 0
    errors: tuple[str, ...] = ()
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def __post_init__(self):
        if self.inserted + self.failed != self.attempted:
            raise ValueError(
                f"Inconsistent counts for {self.source_collection}: "
                f"{self.inserted} inserted + {self.failed} failed != {self.attempted} attempted"
            )

    @property
    def attempted(self) -> int:
        return self.total_extracted - self.dropped

    @property
    def is_failure(self) -> bool:
        """Collection failed outright, or nothing landed although records were expected."""
        if self.state == CollectionState.FAILED:
            return True
        return self.state == CollectionState.DONE and self.total_extracted > 0 and self.inserted == 0

    @property
    def is_partial(self) -> bool:
        return self.state == CollectionState.DONE and self.inserted > 0 and (self.failed > 0 or self.dropped > 0)

    def to_record(self) -> "RunRecord":
        return RunRecord(
            collection=self.source_collection,
            table=self.target_table,
            state=self.state,
            extracted=self.total_extracted,
            dropped=self.dropped,
            inserted=self.inserted,
            failed=self.failed,
            started_at=self.started_at,
            finished_at=self.finished_at,
        )


class RunRecord(BaseModel):
    """One line of the persisted run artifact."""

    collection: str
    table: str | None
    state: CollectionState
    extracted: int
    dropped: int
    inserted: int
    failed: int
    started_at: datetime | None = None
    finished_at: datetime | None = None


@dataclass
class RunSummary:
    results: list[MigrationResult] = field(default_factory=list)
    cancelled: bool = False

    @property
    def total_extracted(self) -> int:
        return sum(result.total_extracted for result in self.results)

    @property
    def total_dropped(self) -> int:
        return sum(result.dropped for result in self.results)

    @property
    def total_inserted(self) -> int:
        return sum(result.inserted for result in self.results)

    @property
    def total_failed(self) -> int:
        return sum(result.failed for result in self.results)

    @property
    def exit_code(self) -> int:
        if self.cancelled or any(result.is_failure for result in self.results):
            return EXIT_FAILED
        if any(result.is_partial for result in self.results):
            return EXIT_PARTIAL
        return EXIT_OK

    def write_jsonl(self, path: str | Path):
        """Append one JSON line per collection to the run artifact."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as handle:
            for result in self.results:
                handle.write(result.to_record().model_dump_json() + "\n")
        logger.info(f"📝 Run record appended to {path}")

    def log_summary(self):
        logger.info("\n" + "=" * 80)
        logger.info("📊 MIGRATION SUMMARY")
        logger.info("=" * 80)
        logger.info(
            f"{'Collection':<24} {'Table':<24} {'State':<10} {'Extracted':>9} {'Dropped':>8} "
            f"{'Inserted':>9} {'Failed':>7}"
        )
        logger.info("-" * 80)
        for result in self.results:
            logger.info(
                f"{result.source_collection:<24} {result.target_table or '-':<24} {result.state.value:<10} "
                f"{result.total_extracted:>9,} {result.dropped:>8,} {result.inserted:>9,} {result.failed:>7,}"
            )
        logger.info("-" * 80)
        logger.info(
            f"{'TOTAL':<60} {self.total_extracted:>9,} {self.total_dropped:>8,} "
            f"{self.total_inserted:>9,} {self.total_failed:>7,}"
        )

        errored = [result for result in self.results if result.errors]
        if errored:
            logger.info("\n📋 Errors by Collection:")
            for result in errored:
                logger.info(f"  {result.source_collection}: {len(result.errors):,} errors")
                for error in result.errors[:5]:
                    logger.info(f"    - {error}")
                if len(result.errors) > 5:
                    logger.info(f"    ... and {len(result.errors) - 5} more")
        if self.cancelled:
            logger.info("\n🛑 Run was cancelled before all collections finished")
        logger.info("=" * 80 + "\n")


@dataclass
class CollectionStatus:
    """Source document count compared with destination row count"""

    name: str
    table: str
    source_count: int
    destination_count: int

    @property
    def is_complete(self) -> bool:
        return self.destination_count >= self.source_count

    @property
    def remaining(self) -> int:
        return max(0, self.source_count - self.destination_count)

    @property
    def progress_pct(self) -> float:
        if self.source_count == 0:
            return 100.0
        return (self.destination_count / self.source_count) * 100


def read_run_records(path: str | Path) -> list[RunRecord]:
    path = Path(path)
    if not path.exists():
        return []
    with path.open(encoding="utf-8") as handle:
        return [RunRecord.model_validate(json.loads(line)) for line in handle if line.strip()]
