"""Build orchestration: plan resolution, execution policy and run bookkeeping.

This module implements the BuildOrchestrator class. It owns the task registry
and the record of the last run, resolves a requested task into a post-order
plan, and executes that plan either sequentially or, in parallel mode, by
dispatching ready tasks to worker threads as their dependencies finish.
"""

import asyncio
import uuid
from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime
from typing import Any

from taskweave.config import DEFAULT_TASK_NAME, RunnerConfig
from taskweave.errors import TaskweaveError
from taskweave.graph.dependency_graph import DependencyGraph
from taskweave.graph.validator import GraphValidator, ValidationReport
from taskweave.log_config import bind_run_id, get_logger, unbind_run_id
from taskweave.orchestrator.context import BuildState
from taskweave.orchestrator.registry import Action, Guard, Task, TaskRegistry
from taskweave.orchestrator.result_manager import (
    RunNotCompleteError,
    RunRecord,
    TaskRecord,
    TaskStatus,
)
from taskweave.orchestrator.task_executor import TaskExecutor

logger = get_logger(__name__)

# Alias accepted for the default task on the command line and in run()
DEFAULT_TASK_ALIAS = "."


class OrchestrationError(TaskweaveError):
    """Raised when the scheduler cannot make progress through a plan."""


class BuildOrchestrator:
    """Dependency-ordered build task runner.

    Key Features:
        - Each task runs at most once per run, after all its dependencies
        - Guards skip tasks at run time without failing the build
        - A failed task aborts its dependents; unrelated branches keep going
        - Fail-fast mode stops scheduling after the first failure
        - Optional parallel execution of independent tasks on worker threads

    Example:
        >>> build = BuildOrchestrator()
        >>> build.register("A", action=lambda ctx: None)
        >>> build.register("B", depends_on=["A"])
        >>> build.register("C", depends_on=["A", "B"])
        >>> build.run("C").order
        ['A', 'B', 'C']

    Attributes:
        config: Runner behaviour (fail-fast, overwrite, parallelism)
        registry: Registered task definitions
        executor: Executes individual tasks
    """

    def __init__(
        self,
        config: RunnerConfig | None = None,
        executor: TaskExecutor | None = None,
        **overrides: Any,
    ):
        """Initialize the orchestrator.

        Args:
            config: Runner configuration; defaults to RunnerConfig()
            executor: TaskExecutor to use; defaults to a new one
            **overrides: Individual RunnerConfig fields, e.g. fail_fast=True

        Raises:
            TypeError: If an override names no RunnerConfig field
            pydantic.ValidationError: If an override value is out of range
        """
        base = config or RunnerConfig()
        if overrides:
            unknown = sorted(set(overrides) - set(RunnerConfig.model_fields))
            if unknown:
                msg = f"Unknown runner settings: {', '.join(unknown)}"
                raise TypeError(msg)
            # Re-validate so overrides obey the same bounds as configured values
            base = RunnerConfig.model_validate({**base.model_dump(), **overrides})
        self.config = base
        self.registry = TaskRegistry(allow_overwrite=self.config.allow_overwrite)
        self.executor = executor or TaskExecutor()
        self._last_run: RunRecord | None = None

        logger.debug(
            "build_orchestrator_initialized",
            fail_fast=self.config.fail_fast,
            parallel=self.config.parallel,
            max_workers=self.config.max_workers,
        )

    def register(
        self,
        name: str,
        depends_on: Iterable[str | Callable[..., Any]] = (),
        guard: Guard | None = None,
        action: Action | None = None,
        synopsis: str | None = None,
        requires: Iterable[str] = (),
    ) -> Task:
        """Add or overwrite a task definition. See TaskRegistry.register()."""
        return self.registry.register(
            name,
            depends_on=depends_on,
            guard=guard,
            action=action,
            synopsis=synopsis,
            requires=requires,
        )

    def task(
        self,
        name: str | None = None,
        depends_on: Iterable[str | Callable[..., Any]] = (),
        guard: Guard | None = None,
        synopsis: str | None = None,
        requires: Iterable[str] = (),
    ) -> Callable[[Action], Action]:
        """Decorator registering the decorated function as a task action."""
        return self.registry.task(
            name,
            depends_on=depends_on,
            guard=guard,
            synopsis=synopsis,
            requires=requires,
        )

    def resolve_targets(self, target: str | Sequence[str] | None) -> list[str]:
        """Normalise a run target into a list of task names."""
        if target is None:
            names = [self.config.default_task]
        elif isinstance(target, str):
            names = [target]
        else:
            names = list(target) or [self.config.default_task]
        return [self.config.default_task if name == DEFAULT_TASK_ALIAS else name for name in names]

    def plan(self, target: str | Sequence[str] | None = None) -> list[str]:
        """Resolve the execution plan without running anything.

        Raises:
            CyclicDependencyError: If a reachable task depends on itself
            TaskNotFoundError: If a task in the closure is not registered
        """
        return self.registry.build_graph().resolve(*self.resolve_targets(target))

    def run(
        self,
        target: str | Sequence[str] | None = None,
        parameters: dict[str, Any] | None = None,
    ) -> RunRecord:
        """Run the requested task(s) and their dependency closure.

        The plan is resolved before any action runs, so cycles and missing
        tasks fail the call with nothing executed. Task faults never raise
        from here; they are recorded in the returned RunRecord.

        Args:
            target: Task name, list of names, or None for the default task
            parameters: Named parameters seeded into the build state

        Returns:
            The completed RunRecord

        Raises:
            CyclicDependencyError: If a reachable task depends on itself
            TaskNotFoundError: If a task in the closure is not registered
        """
        targets = self.resolve_targets(target)
        graph = self.registry.build_graph()
        plan = graph.resolve(*targets)

        params = dict(parameters or {})
        run = RunRecord(targets, params, run_id=uuid.uuid4().hex[:12])
        state = BuildState(params)
        self._last_run = run

        bind_run_id(run.run_id)
        try:
            logger.info(
                "run_started",
                targets=targets,
                plan=plan,
                fail_fast=self.config.fail_fast,
                parallel=self.config.parallel,
            )
            run.start_time = datetime.now(UTC)

            if self.config.parallel and self.config.max_workers > 1 and len(plan) > 1:
                asyncio.run(self._execute_parallel(plan, graph, run, state))
            else:
                self._execute_sequential(plan, graph, run, state)

            run.mark_completed(datetime.now(UTC))
            summary = run.get_summary()
            log = logger.info if run.success else logger.error
            log(
                "run_completed",
                success=run.success,
                succeeded=summary["succeeded"],
                skipped=summary["skipped"],
                failed=summary["failed"],
                aborted=summary["aborted"],
                warnings=summary["warnings"],
                duration_seconds=round(summary["duration_seconds"], 3),
            )
        finally:
            unbind_run_id()

        return run

    def summary(self) -> dict[str, Any]:
        """Summary of the last run.

        Raises:
            RunNotCompleteError: If no run has completed yet
        """
        if self._last_run is None:
            raise RunNotCompleteError("No run has been started")
        return self._last_run.get_summary()

    @property
    def last_run(self) -> RunRecord | None:
        return self._last_run

    def validate(self) -> ValidationReport:
        """Validate the whole registry: cycles, missing tasks, unreachable tasks."""
        return GraphValidator().validate(
            self.registry.build_graph(),
            default_task=self.config.default_task,
        )

    def _blocked(self, task: Task, run: RunRecord) -> TaskRecord | None:
        """Return a terminal record if upstream outcomes prevent the task from running."""
        for dependency in task.depends_on:
            status = run.status_of(dependency)
            if status in (TaskStatus.FAILED, TaskStatus.ABORTED):
                return TaskRecord(
                    name=task.name,
                    status=TaskStatus.ABORTED,
                    reason=f"dependency '{dependency}' {status.value}",
                )
            if status is TaskStatus.SKIPPED and dependency in task.requires:
                return TaskRecord(
                    name=task.name,
                    status=TaskStatus.SKIPPED,
                    reason=f"required task '{dependency}' was skipped",
                )
        return None

    def _record_blocked(self, record: TaskRecord, run: RunRecord) -> None:
        run.add_record(record)
        logger.warning("task_not_run", task=record.name, status=record.status.value, reason=record.reason)

    def _log_failure(self, name: str, graph: DependencyGraph, plan: list[str]) -> None:
        if self.config.fail_fast:
            return
        affected = sorted(graph.dependents_of(name) & set(plan))
        if affected:
            logger.warning("dependents_will_abort", failed_task=name, dependents=affected)

    def _execute_sequential(
        self,
        plan: list[str],
        graph: DependencyGraph,
        run: RunRecord,
        state: BuildState,
    ) -> None:
        for name in plan:
            if self.config.fail_fast and run.errors:
                logger.warning("run_stopped_fail_fast", remaining=plan[plan.index(name):])
                break

            task = self.registry.get(name)
            blocked = self._blocked(task, run)
            if blocked is not None:
                self._record_blocked(blocked, run)
                continue

            record, fault = self.executor.execute(task, run.parameters, state)
            run.add_record(record, fault)
            if record.status is TaskStatus.FAILED:
                self._log_failure(name, graph, plan)

    async def _execute_parallel(
        self,
        plan: list[str],
        graph: DependencyGraph,
        run: RunRecord,
        state: BuildState,
    ) -> None:
        """Dispatch ready tasks to worker threads as their dependencies finish.

        A task is handed out only after every dependency is terminal. When
        fail-fast stops the run, tasks already in flight are awaited but no
        new task is started.
        """
        scheduler = graph.subgraph(plan)
        scheduler.build()
        semaphore = asyncio.Semaphore(self.config.max_workers)
        in_flight: dict[asyncio.Task, str] = {}
        stopping = False

        while scheduler.is_active():
            progressed = False

            if not stopping:
                for name in scheduler.get_ready_tasks():
                    progressed = True
                    task = self.registry.get(name)
                    blocked = self._blocked(task, run)
                    if blocked is not None:
                        self._record_blocked(blocked, run)
                        scheduler.mark_completed(name)
                        continue

                    worker = asyncio.create_task(self._execute_in_worker(task, run, state, semaphore))
                    in_flight[worker] = name

            if not in_flight:
                if stopping:
                    break
                if progressed:
                    continue
                msg = "Scheduler stalled with tasks remaining and none in flight"
                raise OrchestrationError(msg)

            done, _ = await asyncio.wait(in_flight, return_when=asyncio.FIRST_COMPLETED)
            for worker in done:
                name = in_flight.pop(worker)
                record, fault = worker.result()
                run.add_record(record, fault)
                scheduler.mark_completed(name)

                if record.status is TaskStatus.FAILED:
                    self._log_failure(name, graph, plan)
                if record.status is TaskStatus.FAILED and self.config.fail_fast and not stopping:
                    stopping = True
                    logger.warning(
                        "run_stopped_fail_fast",
                        failed_task=name,
                        in_flight=sorted(in_flight.values()),
                    )

    async def _execute_in_worker(
        self,
        task: Task,
        run: RunRecord,
        state: BuildState,
        semaphore: asyncio.Semaphore,
    ) -> tuple[TaskRecord, Any]:
        async with semaphore:
            return await asyncio.to_thread(self.executor.execute, task, run.parameters, state)


__all__ = [
    "DEFAULT_TASK_ALIAS",
    "DEFAULT_TASK_NAME",
    "BuildOrchestrator",
    "OrchestrationError",
]
