"""Dependency graph of build tasks with plan resolution and ready-set scheduling.

This module provides the DependencyGraph class. It resolves a requested task
into a post-order execution plan using a three-color depth-first walk, and
wraps graphlib.TopologicalSorter to hand out ready tasks when a plan is
executed in parallel.
"""

from enum import Enum
from graphlib import TopologicalSorter

import structlog

from taskweave.errors import TaskweaveError

logger = structlog.get_logger(__name__)


class CyclicDependencyError(TaskweaveError):
    """Exception raised when a task transitively depends on itself.

    Attributes:
        cycle: Task names on the cycle, in dependency order, with the first
            name repeated at the end (e.g. ["A", "B", "A"])
    """

    def __init__(self, cycle: list[str]):
        message = f"Cyclic dependency detected: {' -> '.join(cycle)}"
        super().__init__(message)
        self.cycle = cycle


class TaskNotFoundError(TaskweaveError):
    """Exception raised when a requested or referenced task is not registered.

    Attributes:
        task_name: The missing task name
        referenced_by: Task whose dependency list names it, None for a
            requested target
    """

    def __init__(self, task_name: str, referenced_by: str | None = None):
        if referenced_by is None:
            message = f"Missing task '{task_name}'"
        else:
            message = f"Missing task '{task_name}' referenced by '{referenced_by}'"
        super().__init__(message)
        self.task_name = task_name
        self.referenced_by = referenced_by


class _Mark(Enum):
    UNVISITED = "unvisited"
    VISITING = "visiting"
    DONE = "done"


class DependencyGraph:
    """Directed graph of task names and their ordered dependency lists.

    Dependency order is preserved as declared, so a resolved plan is
    deterministic: dependencies are visited left to right and each task is
    emitted after everything it depends on.

    Thread-safety:
        This class is NOT thread-safe. The orchestrator only touches it from
        the thread driving the run; worker threads never see it.

    Example:
        >>> graph = DependencyGraph()
        >>> graph.add_task("A", [])
        >>> graph.add_task("B", ["A"])
        >>> graph.add_task("C", ["A", "B"])
        >>> graph.resolve("C")
        ['A', 'B', 'C']
    """

    def __init__(self):
        """Initialize an empty dependency graph."""
        self.graph: dict[str, list[str]] = {}
        self.sorter: TopologicalSorter | None = None
        self._is_built = False

    def add_task(self, task_name: str, dependencies: list[str]) -> None:
        """Add or replace a task and its dependencies.

        Args:
            task_name: Unique task name
            dependencies: Names of tasks this task depends on, in order

        Note:
            Modifying a built graph invalidates the built state; call build()
            again before get_ready_tasks() or mark_completed().
        """
        if self._is_built:
            logger.warning("adding_task_to_built_graph", task=task_name)
            self._is_built = False
            self.sorter = None

        # Duplicates within one list would make the sorter count an edge twice
        self.graph[task_name] = list(dict.fromkeys(dependencies))

    def resolve(self, *targets: str) -> list[str]:
        """Resolve targets into a post-order execution plan.

        Every task reachable from the targets appears exactly once, after all
        of its dependencies. Targets are processed in the order given.

        Args:
            *targets: Task names to resolve

        Returns:
            Ordered list of task names to execute

        Raises:
            CyclicDependencyError: If a reachable task depends on itself
            TaskNotFoundError: If a target or a dependency is not in the graph
        """
        marks: dict[str, _Mark] = {}
        plan: list[str] = []

        for target in targets:
            if marks.get(target) is _Mark.DONE:
                continue
            if target not in self.graph:
                raise TaskNotFoundError(target)

            # path holds the VISITING tasks, stack their unvisited dependencies
            marks[target] = _Mark.VISITING
            path = [target]
            stack = [iter(self.graph[target])]
            while stack:
                for dependency in stack[-1]:
                    mark = marks.get(dependency, _Mark.UNVISITED)
                    if mark is _Mark.DONE:
                        continue
                    if mark is _Mark.VISITING:
                        start = path.index(dependency)
                        raise CyclicDependencyError([*path[start:], dependency])
                    if dependency not in self.graph:
                        raise TaskNotFoundError(dependency, referenced_by=path[-1])

                    marks[dependency] = _Mark.VISITING
                    path.append(dependency)
                    stack.append(iter(self.graph[dependency]))
                    break
                else:
                    stack.pop()
                    name = path.pop()
                    marks[name] = _Mark.DONE
                    plan.append(name)

        logger.debug("plan_resolved", targets=list(targets), plan=plan)
        return plan

    def subgraph(self, task_names: list[str]) -> "DependencyGraph":
        """Create a graph restricted to the given tasks.

        Args:
            task_names: Tasks to keep, typically a resolved plan

        Returns:
            A new, unbuilt DependencyGraph containing only edges between kept tasks
        """
        keep = set(task_names)
        sub = DependencyGraph()
        for name in task_names:
            sub.graph[name] = [dep for dep in self.graph.get(name, []) if dep in keep]
        return sub

    def dependents_of(self, task_name: str) -> set[str]:
        """All tasks that depend on task_name, directly or transitively."""
        direct: dict[str, list[str]] = {}
        for name, deps in self.graph.items():
            for dep in deps:
                direct.setdefault(dep, []).append(name)

        found: set[str] = set()
        pending = list(direct.get(task_name, []))
        while pending:
            name = pending.pop()
            if name not in found:
                found.add(name)
                pending.extend(direct.get(name, []))
        return found

    def build(self) -> None:
        """Prepare the topological sorter used for ready-set scheduling.

        Raises:
            CyclicDependencyError: If the graph contains a cycle
        """
        try:
            self.sorter = TopologicalSorter(self.graph)
            self.sorter.prepare()
        except ValueError as e:
            # graphlib reports the cycle as args[1], last node repeated
            cycle = list(e.args[1]) if len(e.args) > 1 else []
            logger.exception("cycle_detected_in_graph", cycle=cycle)
            raise CyclicDependencyError(cycle) from e

        self._is_built = True
        logger.debug("dependency_graph_built", task_count=len(self.graph))

    def get_ready_tasks(self) -> tuple[str, ...]:
        """Get tasks whose dependencies have all been marked completed.

        Returns:
            Tuple of ready task names, empty if none or if not built
        """
        if not self._is_built or self.sorter is None:
            logger.warning("get_ready_tasks_called_before_build")
            return ()

        if not self.sorter.is_active():
            return ()

        return self.sorter.get_ready()

    def mark_completed(self, *task_names: str) -> None:
        """Mark tasks as finished so their dependents may become ready.

        Args:
            *task_names: One or more task names

        Raises:
            ValueError: If the graph hasn't been built or a name is invalid
        """
        if not self._is_built or self.sorter is None:
            error_msg = "Cannot mark tasks completed before building graph"
            raise ValueError(error_msg)

        if not task_names:
            return

        self.sorter.done(*task_names)

    def is_active(self) -> bool:
        """Check whether any task still has to be handed out or completed."""
        if not self._is_built or self.sorter is None:
            return False

        return self.sorter.is_active()

    def get_stats(self) -> dict[str, int]:
        """Get statistics about the graph.

        Returns:
            Dictionary with total_tasks, total_dependencies, is_built, is_active
        """
        return {
            "total_tasks": len(self.graph),
            "total_dependencies": sum(len(deps) for deps in self.graph.values()),
            "is_built": self._is_built,
            "is_active": self.is_active(),
        }

    @property
    def is_built(self) -> bool:
        """Whether build() has been called since the last modification."""
        return self._is_built
