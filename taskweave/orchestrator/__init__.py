"""Orchestrator module for build task registration, execution and reporting.

This module contains the TaskRegistry holding task definitions, the
TaskExecutor running a single task at its boundary, the RunRecord ledger and
the BuildOrchestrator coordinating a whole run.
"""

from taskweave.orchestrator.context import BuildState, TaskContext
from taskweave.orchestrator.orchestrator import BuildOrchestrator, OrchestrationError
from taskweave.orchestrator.registry import (
    AnonymousStep,
    DuplicateTaskError,
    NamedStep,
    Task,
    TaskRegistry,
)
from taskweave.orchestrator.result_manager import (
    RunError,
    RunNotCompleteError,
    RunRecord,
    RunWarning,
    StepRecord,
    TaskRecord,
    TaskStatus,
)
from taskweave.orchestrator.task_executor import TaskExecutor

__all__ = [
    "AnonymousStep",
    "BuildOrchestrator",
    "BuildState",
    "DuplicateTaskError",
    "NamedStep",
    "OrchestrationError",
    "RunError",
    "RunNotCompleteError",
    "RunRecord",
    "RunWarning",
    "StepRecord",
    "Task",
    "TaskContext",
    "TaskExecutor",
    "TaskRecord",
    "TaskRegistry",
    "TaskStatus",
]
