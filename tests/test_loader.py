"""
Tests for migrations/loader.py

Covers:
- Fixed-size batching and batch-granularity failure
- Unique-key collisions rejecting a whole batch
- Retry of transient errors only
- Inter-batch delay, progress reporting and cooperative cancellation
"""

import asyncio

import pytest
from sqlalchemy import exc as sa_exc

from migrations import loader as loader_module
from migrations.loader import Loader
from migrations.records import TransformedRecord
from tests.conftest import FakeTarget

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_transactions(count: int, duplicate: str | None = None) -> list[TransformedRecord]:
    records = []
    for index in range(count):
        transfer_id = f"T-{index}"
        if duplicate and index in (0, count - 1):
            transfer_id = duplicate
        records.append(
            TransformedRecord(
                source_id=f"tx-{index}",
                columns={"transfer_id": transfer_id, "amount": 10, "wallet": "w-1", "firebase_id": f"tx-{index}"},
            )
        )
    return records


def make_loader(target, **kwargs) -> Loader:
    kwargs.setdefault("delay_seconds", 0)
    return Loader(target, show_progress=False, **kwargs)


def operational_error() -> sa_exc.OperationalError:
    return sa_exc.OperationalError("INSERT", {}, Exception("connection reset by peer"))


# ---------------------------------------------------------------------------
# Batching
# ---------------------------------------------------------------------------


class TestBatching:
    @pytest.mark.asyncio
    async def test_fixed_size_batches(self, fake_target):
        result = await make_loader(fake_target).load("transactions_mangopay", make_transactions(5), batch_size=2)

        assert [size for _, size in fake_target.insert_calls] == [2, 2, 1]
        assert (result.attempted, result.inserted, result.failed) == (5, 5, 0)
        assert len(fake_target.rows["transactions_mangopay"]) == 5

    @pytest.mark.asyncio
    async def test_failed_batch_is_isolated(self, fake_target):
        fake_target.fail_batches[2] = sa_exc.IntegrityError("INSERT", {}, Exception("violates check constraint"))

        result = await make_loader(fake_target).load("transactions_mangopay", make_transactions(5), batch_size=2)

        assert result.inserted == 3
        assert result.failed == 2
        assert result.inserted + result.failed == result.attempted == 5
        assert len(result.errors) == 1
        assert "Batch 2" in result.errors[0]

    @pytest.mark.asyncio
    async def test_duplicate_unique_key_fails_whole_batch(self, fake_target):
        records = make_transactions(50, duplicate="T-dup")

        result = await make_loader(fake_target).load("transactions_mangopay", records, batch_size=50)

        assert (result.attempted, result.inserted, result.failed) == (50, 0, 50)
        assert fake_target.rows["transactions_mangopay"] == []
        assert len(fake_target.insert_calls) == 1

    @pytest.mark.asyncio
    async def test_default_batch_size_from_settings(self, fake_target):
        result = await make_loader(fake_target).load("transactions_mangopay", make_transactions(3))
        assert fake_target.insert_calls == [("transactions_mangopay", 3)]
        assert result.inserted == 3

    @pytest.mark.asyncio
    async def test_empty_input(self, fake_target):
        result = await make_loader(fake_target).load("transactions_mangopay", [])
        assert (result.attempted, result.inserted, result.failed) == (0, 0, 0)
        assert fake_target.insert_calls == []

    @pytest.mark.asyncio
    async def test_invalid_batch_size(self, fake_target):
        with pytest.raises(ValueError):
            await make_loader(fake_target).load("transactions_mangopay", make_transactions(1), batch_size=0)

    @pytest.mark.parametrize("batch_size", [0, -5])
    def test_invalid_constructor_batch_size(self, fake_target, batch_size):
        with pytest.raises(ValueError):
            make_loader(fake_target, batch_size=batch_size)


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


class TestRetry:
    @pytest.mark.asyncio
    async def test_transient_error_retried(self):
        class FlakyTarget(FakeTarget):
            async def bulk_insert(self, table, rows):
                if not self.insert_calls:
                    self.insert_calls.append((table, len(rows)))
                    raise operational_error()
                return await super().bulk_insert(table, rows)

        target = FlakyTarget()
        result = await make_loader(target).load("transactions_mangopay", make_transactions(2), batch_size=2)

        assert result.inserted == 2
        assert len(target.insert_calls) == 2

    @pytest.mark.asyncio
    async def test_transient_error_gives_up(self, fake_target):
        for call in range(1, 4):
            fake_target.fail_batches[call] = operational_error()

        result = await make_loader(fake_target).load("transactions_mangopay", make_transactions(2), batch_size=2)

        assert result.failed == 2
        assert len(fake_target.insert_calls) == 3
        assert "connection reset" in result.errors[0]

    @pytest.mark.asyncio
    async def test_constraint_error_not_retried(self, fake_target):
        fake_target.fail_batches[1] = sa_exc.IntegrityError("INSERT", {}, Exception("duplicate key"))

        result = await make_loader(fake_target).load("transactions_mangopay", make_transactions(2), batch_size=2)

        assert result.failed == 2
        assert len(fake_target.insert_calls) == 1


# ---------------------------------------------------------------------------
# Delay, progress and cancellation
# ---------------------------------------------------------------------------


class TestPacing:
    @pytest.mark.asyncio
    async def test_no_delay_after_last_batch(self, fake_target, monkeypatch):
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        monkeypatch.setattr(loader_module.asyncio, "sleep", fake_sleep)
        loader = make_loader(fake_target, delay_seconds=0.5)
        await loader.load("transactions_mangopay", make_transactions(5), batch_size=2)

        assert delays == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_progress_callback(self, fake_target):
        calls = []
        await make_loader(fake_target).load(
            "transactions_mangopay",
            make_transactions(5),
            batch_size=2,
            progress=lambda done, total: calls.append((done, total)),
        )
        assert calls == [(2, 5), (4, 5), (5, 5)]

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, fake_target):
        event = asyncio.Event()
        event.set()

        result = await make_loader(fake_target, cancel_event=event).load(
            "transactions_mangopay", make_transactions(5), batch_size=2
        )

        assert result.cancelled
        assert (result.attempted, result.inserted, result.failed) == (5, 0, 5)
        assert fake_target.insert_calls == []

    @pytest.mark.asyncio
    async def test_cancelled_between_batches(self, fake_target):
        event = asyncio.Event()

        result = await make_loader(fake_target, cancel_event=event).load(
            "transactions_mangopay",
            make_transactions(5),
            batch_size=2,
            progress=lambda done, total: event.set(),
        )

        assert result.cancelled
        assert (result.inserted, result.failed) == (2, 3)
        assert len(fake_target.insert_calls) == 1
        assert "not submitted" in result.errors[-1]
