"""
Tests for migrations/orchestrator.py

Covers:
- Extract, transform, load for one collection
- SKIPPED, FAILED and CANCELLED terminal states
- run_all resilience, reference loading across collections and the run artifact
"""

import asyncio

import pytest
from bson.errors import InvalidBSON
from pymongo.errors import OperationFailure

from migrations.extractor import Extractor
from migrations.loader import Loader
from migrations.orchestrator import MigrationOrchestrator
from migrations.stats import EXIT_FAILED, EXIT_OK, EXIT_PARTIAL, CollectionState, read_run_records
from migrations.transformer import Transformer
from tests.conftest import FakeSource, FakeTarget


def make_orchestrator(source, target, **kwargs) -> MigrationOrchestrator:
    cancel_event = kwargs.pop("cancel_event", None) or asyncio.Event()
    batch_size = kwargs.pop("batch_size", 1000)
    return MigrationOrchestrator(
        source,
        target,
        loader=Loader(target, batch_size=batch_size, delay_seconds=0, cancel_event=cancel_event, show_progress=False),
        cancel_event=cancel_event,
        clock=kwargs.pop("clock"),
        **kwargs,
    )


class TestRunCollection:
    @pytest.mark.asyncio
    async def test_users_end_to_end(self, sample_users, fixed_clock):
        source = FakeSource({"users": sample_users})
        target = FakeTarget()
        orchestrator = make_orchestrator(source, target, clock=fixed_clock)

        result = await orchestrator.run_collection("users")

        assert result.state == CollectionState.DONE
        assert (result.total_extracted, result.inserted, result.failed, result.dropped) == (3, 3, 0, 0)
        assert target.insert_calls == [("users", 3)]
        emails = sorted(row["email"] for row in target.rows["users"])
        assert emails == ["", "ada@example.com", "grace@example.com"]
        assert orchestrator.states["users"] == CollectionState.DONE

    @pytest.mark.asyncio
    async def test_unmapped_collection_skipped_without_side_effects(self, fixed_clock):
        source = FakeSource({"sessions": [{"_id": "s-1"}]})
        target = FakeTarget()

        result = await make_orchestrator(source, target, clock=fixed_clock).run_collection("sessions")

        assert result.state == CollectionState.SKIPPED
        assert result.target_table is None
        assert source.reads == []
        assert target.insert_calls == []

    @pytest.mark.asyncio
    async def test_extraction_error_fails_collection(self, fixed_clock):
        source = FakeSource(errors={"wallets": OperationFailure("not authorized on platform")})
        target = FakeTarget()

        result = await make_orchestrator(source, target, clock=fixed_clock).run_collection("wallets")

        assert result.state == CollectionState.FAILED
        assert "not authorized" in result.errors[0]
        assert target.insert_calls == []

    @pytest.mark.asyncio
    async def test_dropped_records_counted_separately(self, fixed_clock):
        source = FakeSource({"users": [{"_id": "uid-1", "email": "a@example.com"}, {"_id": "uid-2", "profileType": "x"}]})
        target = FakeTarget()

        result = await make_orchestrator(source, target, clock=fixed_clock).run_collection("users")

        assert (result.total_extracted, result.dropped, result.inserted, result.failed) == (2, 1, 1, 0)
        assert result.attempted == 1
        assert result.errors[0].startswith("Dropped uid-2")

    @pytest.mark.asyncio
    async def test_sample_limits_extraction(self, sample_users, fixed_clock):
        source = FakeSource({"users": sample_users})
        target = FakeTarget()
        orchestrator = make_orchestrator(source, target, clock=fixed_clock, extractor=Extractor(source, sample_size=2))

        result = await orchestrator.run_collection("users")

        assert result.total_extracted == 2

    @pytest.mark.asyncio
    async def test_references_resolved_from_earlier_collections(self, fixed_clock):
        source = FakeSource(
            {
                "users": [{"_id": "uid-1", "email": "a@example.com"}],
                "investments": [{"_id": "inv-1", "title": "Solar", "amountToSell": "1000", "priceToken": "1"}],
                "user-investments": [
                    {"_id": "ui-1", "userId": "uid-1", "investmentId": "inv-1", "totalAmount": "100", "tokenQuantity": 100}
                ],
            }
        )
        target = FakeTarget()

        summary = await make_orchestrator(source, target, clock=fixed_clock).run_all(
            ["users", "investments", "user-investments"]
        )

        assert summary.exit_code == EXIT_OK
        holding = target.rows["user_investments"][0]
        assert holding["user_id"] == target.rows["users"][0]["id"]
        assert holding["investment_id"] == target.rows["investments"][0]["id"]


class TestRunAll:
    @pytest.mark.asyncio
    async def test_continues_past_failed_collection(self, sample_users, fixed_clock):
        source = FakeSource(
            {"users": sample_users},
            errors={"investments": OperationFailure("authentication failed")},
        )
        target = FakeTarget()

        summary = await make_orchestrator(source, target, clock=fixed_clock).run_all(["investments", "users", "sessions"])

        states = [result.state for result in summary.results]
        assert states == [CollectionState.FAILED, CollectionState.DONE, CollectionState.SKIPPED]
        assert summary.total_inserted == 3
        assert summary.exit_code == EXIT_FAILED

    @pytest.mark.asyncio
    async def test_undecodable_document_fails_only_its_collection(self, sample_users, fixed_clock, tmp_path):
        report = tmp_path / "runs.jsonl"
        source = FakeSource(
            {"users": sample_users},
            errors={"investments": InvalidBSON("invalid utf-8 in field 'title'")},
        )
        target = FakeTarget()

        summary = await make_orchestrator(source, target, clock=fixed_clock, report_path=str(report)).run_all(
            ["investments", "users"]
        )

        assert [result.state for result in summary.results] == [CollectionState.FAILED, CollectionState.DONE]
        assert "invalid utf-8" in summary.results[0].errors[0]
        assert len(target.rows["users"]) == 3
        assert [record.collection for record in read_run_records(report)] == ["investments", "users"]

    @pytest.mark.asyncio
    async def test_unexpected_error_recorded_as_failed(self, sample_users, fixed_clock):
        class CrashingTransformer(Transformer):
            def transform(self, source_collection, records):
                if source_collection == "investments":
                    raise RuntimeError("transform crashed")
                return super().transform(source_collection, records)

        source = FakeSource({"users": sample_users, "investments": [{"_id": "inv-1", "title": "Solar"}]})
        target = FakeTarget()
        orchestrator = make_orchestrator(
            source, target, clock=fixed_clock, transformer=CrashingTransformer(clock=fixed_clock)
        )

        summary = await orchestrator.run_all(["investments", "users"])

        failed = summary.results[0]
        assert failed.state == CollectionState.FAILED
        assert failed.target_table == "investments"
        assert failed.errors == ("transform crashed",)
        assert orchestrator.states["investments"] == CollectionState.FAILED
        assert summary.results[1].state == CollectionState.DONE
        assert summary.exit_code == EXIT_FAILED

    @pytest.mark.asyncio
    async def test_defaults_to_all_mapped_collections(self, fixed_clock):
        source = FakeSource()
        target = FakeTarget()

        summary = await make_orchestrator(source, target, clock=fixed_clock).run_all()

        assert len(summary.results) == 15
        assert all(result.state == CollectionState.DONE for result in summary.results)
        assert summary.total_extracted == 0
        assert summary.exit_code == EXIT_OK

    @pytest.mark.asyncio
    async def test_partial_batch_failure_exit_code(self, fixed_clock):
        documents = [
            {"_id": f"tx-{index}", "transferId": "T-dup" if index in (2, 3) else f"T-{index}", "amount": 1, "wallet": "w"}
            for index in range(6)
        ]
        source = FakeSource({"transactions-mangopay": documents})
        target = FakeTarget()

        summary = await make_orchestrator(source, target, clock=fixed_clock, batch_size=2).run_all(
            ["transactions-mangopay"]
        )

        result = summary.results[0]
        assert (result.inserted, result.failed) == (4, 2)
        assert summary.exit_code == EXIT_PARTIAL

    @pytest.mark.asyncio
    async def test_cancellation_between_collections(self, sample_users, fixed_clock):
        event = asyncio.Event()
        source = FakeSource({"users": sample_users})
        target = FakeTarget()
        orchestrator = make_orchestrator(source, target, clock=fixed_clock, cancel_event=event)

        original = orchestrator.run_collection

        async def run_then_cancel(collection):
            result = await original(collection)
            event.set()
            return result

        orchestrator.run_collection = run_then_cancel
        summary = await orchestrator.run_all(["users", "investments"])

        assert summary.results[0].state == CollectionState.DONE
        assert summary.results[1].state == CollectionState.CANCELLED
        assert summary.cancelled
        assert summary.exit_code == EXIT_FAILED
        assert source.reads == ["users"]

    @pytest.mark.asyncio
    async def test_run_artifact_written(self, sample_users, fixed_clock, tmp_path):
        report = tmp_path / "runs" / "migration.jsonl"
        source = FakeSource({"users": sample_users})
        target = FakeTarget()

        await make_orchestrator(source, target, clock=fixed_clock, report_path=str(report)).run_all(["users", "sessions"])

        records = read_run_records(report)
        assert [record.collection for record in records] == ["users", "sessions"]
        assert records[0].table == "users"
        assert (records[0].extracted, records[0].inserted, records[0].failed) == (3, 3, 0)
        assert records[1].state == CollectionState.SKIPPED
