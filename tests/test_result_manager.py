"""Unit tests for RunRecord and TaskRecord bookkeeping."""

import csv
import json
from datetime import UTC, datetime, timedelta

import pytest

from taskweave.errors import ActionFault
from taskweave.orchestrator.result_manager import (
    RunNotCompleteError,
    RunRecord,
    StepRecord,
    TaskRecord,
    TaskStatus,
)


def make_record(name, status=TaskStatus.SUCCEEDED, **kwargs):
    return TaskRecord(name=name, status=status, **kwargs)


@pytest.fixture
def completed_run():
    """A finished run with one task of each terminal status."""
    run = RunRecord(["Release"], {"Configuration": "Release"}, run_id="abc123")
    run.start_time = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)
    run.add_record(make_record("Version", warnings=["using VERSION file"]))
    run.add_record(make_record("Push", TaskStatus.SKIPPED, reason="guard evaluated false"))
    run.add_record(
        make_record("Test", TaskStatus.FAILED, error="1 difference", error_type="AssertionFailure"),
        ActionFault("Test", RuntimeError("1 difference")),
    )
    run.add_record(make_record("Release", TaskStatus.ABORTED, reason="dependency 'Test' failed"))
    run.mark_completed(run.start_time + timedelta(seconds=2.5))
    return run


class TestTaskStatus:
    """Tests for status classification."""

    @pytest.mark.parametrize(
        ("status", "terminal"),
        [
            (TaskStatus.PENDING, False),
            (TaskStatus.RUNNING, False),
            (TaskStatus.SUCCEEDED, True),
            (TaskStatus.FAILED, True),
            (TaskStatus.SKIPPED, True),
            (TaskStatus.ABORTED, True),
        ],
    )
    def test_is_terminal(self, status, terminal):
        assert status.is_terminal is terminal


class TestAddRecord:
    """Tests for appending task records."""

    def test_rejects_non_terminal(self):
        run = RunRecord(["A"])

        with pytest.raises(ValueError, match="running"):
            run.add_record(make_record("A", TaskStatus.RUNNING))

    def test_rejects_duplicates(self):
        run = RunRecord(["A"])
        run.add_record(make_record("A"))

        with pytest.raises(ValueError, match="already recorded"):
            run.add_record(make_record("A"))

    def test_failed_record_adds_error(self):
        run = RunRecord(["A"])
        run.add_record(make_record("A", TaskStatus.FAILED, error="boom", error_type="RuntimeError"))

        assert len(run.errors) == 1
        assert run.errors[0].task == "A"
        assert run.errors[0].error_type == "RuntimeError"

    def test_status_of_unrecorded_task_is_pending(self):
        assert RunRecord(["A"]).status_of("A") is TaskStatus.PENDING


class TestSummary:
    """Tests for the run summary."""

    def test_summary_before_completion_raises(self):
        with pytest.raises(RunNotCompleteError):
            RunRecord(["A"]).get_summary()

    def test_summary_counts(self, completed_run):
        summary = completed_run.get_summary()

        assert summary["target"] == ["Release"]
        assert summary["success"] is False
        assert summary["executed"] == 2
        assert summary["succeeded"] == 1
        assert summary["skipped"] == 1
        assert summary["failed"] == 1
        assert summary["aborted"] == 1
        assert summary["warnings"] == 1
        assert summary["errors"] == 1
        assert summary["duration_seconds"] == pytest.approx(2.5)
        assert summary["order"] == ["Version", "Push", "Test", "Release"]
        assert summary["failed_tasks"] == ["Test"]

    def test_success_requires_completion(self):
        run = RunRecord(["A"])
        run.add_record(make_record("A"))

        assert run.success is False
        run.mark_completed(datetime.now(UTC))
        assert run.success is True

    def test_summary_line(self, completed_run):
        line = completed_run.summary_line()

        assert line == (
            "Build FAILED. 4 tasks, 1 succeeded, 1 skipped, 1 failed, 1 aborted, 1 warnings"
        )

    def test_faults_kept(self, completed_run):
        assert set(completed_run.faults) == {"Test"}


class TestExport:
    """Tests for JSON and CSV export."""

    def test_export_json(self, completed_run, tmp_path):
        output = tmp_path / "reports" / "run.json"

        completed_run.export_json(output)

        data = json.loads(output.read_text())
        assert data["run_id"] == "abc123"
        assert data["parameters"] == {"Configuration": "Release"}
        assert data["summary"]["failed"] == 1
        assert [task["status"] for task in data["tasks"]] == ["succeeded", "skipped", "failed", "aborted"]
        assert data["errors"][0]["task"] == "Test"
        assert data["warnings"][0]["message"] == "using VERSION file"

    def test_export_csv(self, completed_run, tmp_path):
        output = tmp_path / "run.csv"

        completed_run.export_csv(output)

        with output.open() as f:
            rows = list(csv.DictReader(f))
        assert [row["name"] for row in rows] == ["Version", "Push", "Test", "Release"]
        assert rows[2]["error"] == "1 difference"
        assert rows[1]["reason"] == "guard evaluated false"

    def test_export_csv_empty_run_writes_nothing(self, tmp_path):
        output = tmp_path / "run.csv"

        RunRecord(["A"]).export_csv(output)

        assert not output.exists()

    def test_task_record_to_dict(self):
        record = make_record("A", steps=[StepRecord("copy", True, 0.1)])

        data = record.to_dict()

        assert data["status"] == "succeeded"
        assert data["start_time"] is None
        assert data["steps"][0]["name"] == "copy"
