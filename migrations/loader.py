import asyncio
import logging
from typing import Callable, Sequence

from tqdm.asyncio import tqdm

from db.config import settings
from migrations.exceptions import BatchInsertError
from migrations.records import TransformedRecord
from migrations.retry import call_with_retry, is_transient_target_error
from migrations.stats import BatchResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class Loader:
    """Insert transformed records in fixed-size batches, one bulk insert per batch.

    A failing batch marks all of its records failed and loading moves on to the next
    batch. Batches are submitted one at a time with a pause in between to stay under
    the destination's write-rate tolerance.
    """

    def __init__(
        self,
        target,
        batch_size: int | None = None,
        delay_seconds: float | None = None,
        cancel_event: asyncio.Event | None = None,
        show_progress: bool = True,
    ):
        self.target = target
        self.batch_size = settings.batch_size if batch_size is None else batch_size
        if self.batch_size <= 0:
            raise ValueError(f"Batch size must be positive, got {self.batch_size}")
        self.delay_seconds = settings.delay_between_batches_seconds if delay_seconds is None else delay_seconds
        self.cancel_event = cancel_event
        self.show_progress = show_progress

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    async def load(
        self,
        target_table: str,
        records: Sequence[TransformedRecord],
        batch_size: int | None = None,
        progress: ProgressCallback | None = None,
    ) -> BatchResult:
        size = self.batch_size if batch_size is None else batch_size
        if size <= 0:
            raise ValueError(f"Batch size must be positive, got {size}")

        total = len(records)
        batches = [records[start : start + size] for start in range(0, total, size)]
        result = BatchResult()

        with tqdm(total=total, desc=f"Loading {target_table}", disable=not self.show_progress) as pbar:
            for number, batch in enumerate(batches, start=1):
                if self.cancelled:
                    remaining = total - result.attempted
                    logger.warning(f"🛑 Cancelled loading {target_table}: {remaining:,} records not submitted")
                    result += BatchResult(
                        attempted=remaining,
                        failed=remaining,
                        errors=[f"Cancelled before batch {number}: {remaining} records not submitted"],
                        cancelled=True,
                    )
                    break

                result += await self._insert_batch(target_table, number, batch)
                pbar.update(len(batch))
                if progress:
                    progress(result.attempted, total)

                if number < len(batches) and self.delay_seconds > 0:
                    await asyncio.sleep(self.delay_seconds)

        if result.failed:
            logger.warning(f"⚠️ {target_table}: {result.inserted:,} inserted, {result.failed:,} failed")
        else:
            logger.info(f"✅ {target_table}: {result.inserted:,} inserted")
        return result

    async def _insert_batch(self, target_table: str, number: int, batch: Sequence[TransformedRecord]) -> BatchResult:
        rows = [record.columns for record in batch]
        try:
            await call_with_retry(
                self.target.bulk_insert,
                target_table,
                rows,
                is_transient=is_transient_target_error,
            )
        except Exception as e:
            # The whole batch is rejected; the error is kept for the run summary.
            error = BatchInsertError(target_table, number, len(batch), str(e))
            logger.error(f"❌ {error}")
            return BatchResult(attempted=len(batch), failed=len(batch), errors=[str(error)])
        return BatchResult(attempted=len(batch), inserted=len(batch))
