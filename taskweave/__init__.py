"""taskweave - dependency-ordered build task runner.

Register named tasks with dependencies, guards and actions, then run a target
and its dependency closure with each task executed at most once.
"""

__version__ = "0.1.0"

from taskweave.errors import ActionFault, AssertionFailure, TaskweaveError
from taskweave.external import ExternalProcessError, ExternalResult, run_external
from taskweave.graph import CyclicDependencyError, TaskNotFoundError
from taskweave.orchestrator import (
    BuildOrchestrator,
    BuildState,
    DuplicateTaskError,
    RunNotCompleteError,
    RunRecord,
    TaskContext,
    TaskStatus,
)

__all__ = [
    "__version__",
    "ActionFault",
    "AssertionFailure",
    "BuildOrchestrator",
    "BuildState",
    "CyclicDependencyError",
    "DuplicateTaskError",
    "ExternalProcessError",
    "ExternalResult",
    "RunNotCompleteError",
    "RunRecord",
    "TaskContext",
    "TaskNotFoundError",
    "TaskStatus",
    "TaskweaveError",
    "run_external",
]
