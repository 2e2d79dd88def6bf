"""Task Executor: guard, steps and action of a single task.

This module implements the TaskExecutor class. It runs one task to a terminal
state and returns the resulting TaskRecord; every fault raised by the task
body is caught here, at the task boundary, and wrapped in an ActionFault. It
never touches the RunRecord, which is the orchestrator's job.
"""

import time
from datetime import UTC, datetime
from typing import Any

from taskweave.errors import ActionFault
from taskweave.log_config import bound_context, get_logger
from taskweave.orchestrator.context import BuildState, TaskContext
from taskweave.orchestrator.registry import Task
from taskweave.orchestrator.result_manager import TaskRecord, TaskStatus

logger = get_logger(__name__)


class TaskExecutor:
    """Runs individual tasks against the shared build state.

    Safe to call from several worker threads at once: all per-task data lives
    in the TaskContext and TaskRecord created for that call.

    Example:
        >>> executor = TaskExecutor()
        >>> record, fault = executor.execute(task, params={}, state=BuildState())
        >>> record.status
        <TaskStatus.SUCCEEDED: 'succeeded'>
    """

    def execute(
        self,
        task: Task,
        params: dict[str, Any],
        state: BuildState,
    ) -> tuple[TaskRecord, ActionFault | None]:
        """Execute one task: evaluate its guard, run inline steps then its action.

        Args:
            task: Task definition to execute
            params: Run parameters
            state: Shared build state of the run

        Returns:
            Tuple of the terminal TaskRecord and the ActionFault if the task failed
        """
        record = TaskRecord(name=task.name, start_time=datetime.now(UTC))
        ctx = TaskContext(task.name, params, state)
        started = time.monotonic()
        fault: ActionFault | None = None

        with bound_context(task=task.name):
            try:
                if not self._guard_allows(task, ctx):
                    record.status = TaskStatus.SKIPPED
                    record.reason = "guard evaluated false"
                    logger.info("task_skipped", reason=record.reason)
                else:
                    record.status = TaskStatus.RUNNING
                    logger.info("task_started")

                    # Inline steps run after dependencies and before the action
                    for step in task.steps:
                        ctx.run_step(step, ctx)

                    if task.action is not None:
                        task.action(ctx)

                    record.status = TaskStatus.SUCCEEDED
            except Exception as e:
                fault = ActionFault(task.name, e)
                fault.__cause__ = e
                record.status = TaskStatus.FAILED
                record.error = str(e) or type(e).__name__
                record.error_type = type(e).__name__
                logger.exception("task_failed", error=record.error, error_type=record.error_type)
            finally:
                record.end_time = datetime.now(UTC)
                record.duration_seconds = time.monotonic() - started
                record.steps = list(ctx.steps)
                record.warnings = list(ctx.warnings)

            if record.status is TaskStatus.SUCCEEDED:
                logger.info(
                    "task_succeeded",
                    duration_seconds=round(record.duration_seconds, 3),
                    steps=len(record.steps),
                )

        return record, fault

    def _guard_allows(self, task: Task, ctx: TaskContext) -> bool:
        if task.guard is None:
            return True
        if callable(task.guard):
            return bool(task.guard(ctx))
        return bool(task.guard)
