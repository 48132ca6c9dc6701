from datetime import datetime

import pytest
import pytz

from migrations.stats import (
    EXIT_FAILED,
    EXIT_OK,
    EXIT_PARTIAL,
    BatchResult,
    CollectionState,
    CollectionStatus,
    MigrationResult,
    RunSummary,
    read_run_records,
)


def make_result(state=CollectionState.DONE, **counts) -> MigrationResult:
    return MigrationResult(source_collection="users", target_table="users", state=state, **counts)


class TestBatchResult:
    def test_addition(self):
        total = BatchResult(2, 2, 0) + BatchResult(2, 0, 2, ["Batch 2 failed"]) + BatchResult(1, 1, 0)
        assert (total.attempted, total.inserted, total.failed) == (5, 3, 2)
        assert total.errors == ["Batch 2 failed"]
        assert not total.cancelled

    def test_cancelled_is_sticky(self):
        assert (BatchResult(1, 1, 0) + BatchResult(1, 0, 1, cancelled=True)).cancelled

    def test_inconsistent_counts_rejected(self):
        with pytest.raises(ValueError):
            BatchResult(attempted=3, inserted=1, failed=1)


class TestMigrationResult:
    def test_attempted_excludes_dropped(self):
        result = make_result(total_extracted=5, dropped=1, inserted=3, failed=1)
        assert result.attempted == 4

    def test_inconsistent_counts_rejected(self):
        with pytest.raises(ValueError):
            make_result(total_extracted=5, inserted=3, failed=1)

    def test_frozen(self):
        result = make_result()
        with pytest.raises(AttributeError):
            result.inserted = 1

    def test_run_record(self):
        started = datetime(2024, 5, 17, 12, 0, tzinfo=pytz.utc)
        record = make_result(total_extracted=2, inserted=2, started_at=started, finished_at=started).to_record()
        assert record.collection == "users"
        assert record.extracted == 2
        assert record.started_at == started


class TestExitCode:
    @pytest.mark.parametrize(
        "results,expected",
        [
            ([make_result(total_extracted=3, inserted=3)], EXIT_OK),
            ([make_result(total_extracted=0)], EXIT_OK),
            ([make_result(state=CollectionState.SKIPPED)], EXIT_OK),
            ([make_result(total_extracted=3, inserted=2, failed=1)], EXIT_PARTIAL),
            ([make_result(total_extracted=3, dropped=1, inserted=2)], EXIT_PARTIAL),
            ([make_result(total_extracted=3, failed=3)], EXIT_FAILED),
            ([make_result(total_extracted=2, dropped=2)], EXIT_FAILED),
            ([make_result(state=CollectionState.FAILED)], EXIT_FAILED),
            (
                [make_result(total_extracted=3, inserted=2, failed=1), make_result(state=CollectionState.FAILED)],
                EXIT_FAILED,
            ),
        ],
    )
    def test_exit_codes(self, results, expected):
        assert RunSummary(results=results).exit_code == expected

    def test_cancelled_run_is_failure(self):
        assert RunSummary(results=[make_result(total_extracted=1, inserted=1)], cancelled=True).exit_code == EXIT_FAILED

    def test_totals(self):
        summary = RunSummary(
            results=[
                make_result(total_extracted=3, inserted=2, failed=1),
                make_result(total_extracted=4, dropped=1, inserted=3),
            ]
        )
        assert (summary.total_extracted, summary.total_dropped, summary.total_inserted, summary.total_failed) == (
            7,
            1,
            5,
            1,
        )


class TestRunArtifact:
    def test_appends_json_lines(self, tmp_path):
        path = tmp_path / "runs.jsonl"
        summary = RunSummary(results=[make_result(total_extracted=1, inserted=1)])

        summary.write_jsonl(path)
        summary.write_jsonl(path)

        records = read_run_records(path)
        assert len(records) == 2
        assert records[0].state == CollectionState.DONE
        assert path.read_text().count("\n") == 2

    def test_missing_file_reads_empty(self, tmp_path):
        assert read_run_records(tmp_path / "absent.jsonl") == []


class TestCollectionStatus:
    def test_progress(self):
        status = CollectionStatus("users", "users", source_count=4, destination_count=1)
        assert status.remaining == 3
        assert status.progress_pct == 25.0
        assert not status.is_complete

    def test_empty_source_is_complete(self):
        status = CollectionStatus("users", "users", source_count=0, destination_count=0)
        assert status.is_complete
        assert status.progress_pct == 100.0
