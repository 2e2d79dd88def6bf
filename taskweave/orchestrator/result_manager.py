"""Run bookkeeping: per-task records, errors, warnings and the run summary.

The orchestrator is the only writer of a RunRecord. Workers hand back a
finished TaskRecord and the orchestrator appends it, together with the
errors and warnings it carries, under a single lock acquisition.
"""

import csv
import json
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from taskweave.errors import ActionFault, TaskweaveError


class TaskStatus(Enum):
    """Lifecycle state of a task within one run."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self not in (TaskStatus.PENDING, TaskStatus.RUNNING)


class RunNotCompleteError(TaskweaveError):
    """Raised when a summary is requested before the run has completed."""

    def __init__(self, message: str = "Run has not completed yet"):
        super().__init__(message)


@dataclass
class StepRecord:
    """Execution of one named or anonymous step inside a task."""

    name: str | None
    succeeded: bool
    duration_seconds: float
    error: str | None = None


@dataclass
class TaskRecord:
    """Outcome of one task in a run.

    Attributes:
        name: Task name
        status: Terminal status once the orchestrator has recorded it
        start_time: When the guard started evaluating
        end_time: When the action (or guard) finished
        duration_seconds: Elapsed time between start and end
        steps: Steps executed, inline steps first then those declared by the action
        warnings: Warnings emitted by the task
        error: Fault detail for failed tasks
        error_type: Exception class name of the fault
        reason: Why a task was skipped or aborted
    """

    name: str
    status: TaskStatus = TaskStatus.PENDING
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_seconds: float = 0.0
    steps: list[StepRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    error: str | None = None
    error_type: str | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["start_time"] = self.start_time.isoformat() if self.start_time else None
        data["end_time"] = self.end_time.isoformat() if self.end_time else None
        return data


@dataclass(frozen=True)
class RunError:
    """A fault captured at a task boundary."""

    task: str
    error_type: str
    message: str


@dataclass(frozen=True)
class RunWarning:
    """A warning emitted by a task action."""

    task: str
    message: str


class RunRecord:
    """Ledger of one run: task records in invocation order, errors and warnings.

    Thread-safe: add_record() may be called from the thread collecting worker
    results while summary readers wait on the same lock.
    """

    def __init__(
        self,
        target: list[str],
        parameters: dict[str, Any] | None = None,
        run_id: str | None = None,
    ) -> None:
        self.target = target
        self.parameters = dict(parameters or {})
        self.run_id = run_id
        self.records: list[TaskRecord] = []
        self.errors: list[RunError] = []
        self.warnings: list[RunWarning] = []
        self.faults: dict[str, ActionFault] = {}
        self.start_time: datetime | None = None
        self.end_time: datetime | None = None
        self.completed = False
        self._lock = threading.Lock()

    def add_record(self, record: TaskRecord, fault: ActionFault | None = None) -> None:
        """Append a terminal task record together with its errors and warnings.

        Args:
            record: TaskRecord whose status is terminal
            fault: The ActionFault of a failed task, kept for callers that re-raise

        Raises:
            ValueError: If the record is not terminal or the task was already recorded
        """
        if not record.status.is_terminal:
            msg = f"Cannot record task '{record.name}' in state {record.status.value}"
            raise ValueError(msg)

        with self._lock:
            if any(existing.name == record.name for existing in self.records):
                msg = f"Task '{record.name}' already recorded in this run"
                raise ValueError(msg)
            self.records.append(record)
            self.warnings.extend(RunWarning(record.name, message) for message in record.warnings)
            if record.status is TaskStatus.FAILED:
                self.errors.append(
                    RunError(record.name, record.error_type or "Exception", record.error or ""),
                )
            if fault is not None:
                self.faults[record.name] = fault

    def get_record(self, name: str) -> TaskRecord | None:
        with self._lock:
            for record in self.records:
                if record.name == name:
                    return record
        return None

    def status_of(self, name: str) -> TaskStatus:
        record = self.get_record(name)
        return record.status if record else TaskStatus.PENDING

    def names_with_status(self, status: TaskStatus) -> list[str]:
        with self._lock:
            return [record.name for record in self.records if record.status is status]

    @property
    def order(self) -> list[str]:
        """Names of tasks in the order they were recorded."""
        with self._lock:
            return [record.name for record in self.records]

    @property
    def success(self) -> bool:
        """True when the run completed without errors."""
        return self.completed and not self.errors

    def mark_completed(self, end_time: datetime) -> None:
        self.end_time = end_time
        self.completed = True

    @property
    def duration_seconds(self) -> float:
        if self.start_time is None or self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    def get_summary(self) -> dict[str, Any]:
        """Counts and name lists of the finished run.

        Returns:
            Dictionary with executed, succeeded, skipped, failed, aborted,
            warnings and errors counts, the matching name lists, and success

        Raises:
            RunNotCompleteError: If the run has not completed
        """
        if not self.completed:
            raise RunNotCompleteError

        succeeded = self.names_with_status(TaskStatus.SUCCEEDED)
        failed = self.names_with_status(TaskStatus.FAILED)

        return {
            "target": self.target,
            "success": self.success,
            "executed": len(succeeded) + len(failed),
            "succeeded": len(succeeded),
            "skipped": len(self.names_with_status(TaskStatus.SKIPPED)),
            "failed": len(failed),
            "aborted": len(self.names_with_status(TaskStatus.ABORTED)),
            "warnings": len(self.warnings),
            "errors": len(self.errors),
            "duration_seconds": self.duration_seconds,
            "order": self.order,
            "succeeded_tasks": succeeded,
            "skipped_tasks": self.names_with_status(TaskStatus.SKIPPED),
            "failed_tasks": failed,
            "aborted_tasks": self.names_with_status(TaskStatus.ABORTED),
        }

    def summary_line(self) -> str:
        """One-line human summary, e.g. for the end of a CLI run."""
        summary = self.get_summary()
        outcome = "succeeded" if summary["success"] else "FAILED"
        return (
            f"Build {outcome}. {len(summary['order'])} tasks, "
            f"{summary['succeeded']} succeeded, {summary['skipped']} skipped, "
            f"{summary['failed']} failed, {summary['aborted']} aborted, "
            f"{summary['warnings']} warnings"
        )

    def export_json(self, filepath: str | Path) -> None:
        """Export summary, task records, errors and warnings to a JSON file.

        Args:
            filepath: Path to output JSON file
        """
        filepath = Path(filepath)

        data = {
            "run_id": self.run_id,
            "parameters": self.parameters,
            "summary": self.get_summary(),
            "tasks": [record.to_dict() for record in self.records],
            "errors": [asdict(error) for error in self.errors],
            "warnings": [asdict(warning) for warning in self.warnings],
        }

        filepath.parent.mkdir(parents=True, exist_ok=True)

        with filepath.open("w") as f:
            json.dump(data, f, indent=2, default=str)

    def export_csv(self, filepath: str | Path) -> None:
        """Export task records to a CSV file, one row per task.

        Args:
            filepath: Path to output CSV file
        """
        filepath = Path(filepath)

        if not self.records:
            return

        filepath.parent.mkdir(parents=True, exist_ok=True)

        fieldnames = [
            "name",
            "status",
            "start_time",
            "end_time",
            "duration_seconds",
            "steps",
            "warnings",
            "error",
            "reason",
        ]

        with filepath.open("w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()

            for record in self.records:
                writer.writerow(
                    {
                        "name": record.name,
                        "status": record.status.value,
                        "start_time": record.start_time.isoformat() if record.start_time else "",
                        "end_time": record.end_time.isoformat() if record.end_time else "",
                        "duration_seconds": record.duration_seconds,
                        "steps": len(record.steps),
                        "warnings": len(record.warnings),
                        "error": record.error or "",
                        "reason": record.reason or "",
                    },
                )
