"""Task definitions and the task registry.

A build script declares tasks against a TaskRegistry. Each task has an ordered
dependency list that may mix task names with anonymous callables; the
callables become anonymous steps folded into the task's own execution record.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union

import structlog

from taskweave.errors import TaskweaveError
from taskweave.graph.dependency_graph import DependencyGraph

if TYPE_CHECKING:
    from taskweave.orchestrator.context import TaskContext

logger = structlog.get_logger(__name__)

Action = Callable[["TaskContext"], Any]
Guard = Union[bool, Callable[["TaskContext"], bool]]


class DuplicateTaskError(TaskweaveError):
    """Raised when a task name is registered twice and overwriting is disabled."""

    def __init__(self, task_name: str):
        super().__init__(f"Task '{task_name}' is already registered")
        self.task_name = task_name


@dataclass(frozen=True)
class NamedStep:
    """A sub-step with a label, recorded under the owning task."""

    name: str
    body: Callable[[], Any]


@dataclass(frozen=True)
class AnonymousStep:
    """A fire-and-forget sub-step with no independent name."""

    body: Callable[..., Any]


Step = Union[NamedStep, AnonymousStep]


@dataclass
class Task:
    """A named unit of build work.

    Attributes:
        name: Unique task name
        depends_on: Names of tasks that must run first, in declaration order
        steps: Anonymous steps declared inline in the dependency list; they
            run after the dependencies and before the action
        guard: Bool or predicate; when false the task is skipped
        action: Callable receiving the TaskContext
        synopsis: One-line description shown by task listings
        requires: Dependencies whose success (not just completion) this task
            needs; a skipped required dependency skips this task too
    """

    name: str
    depends_on: list[str] = field(default_factory=list)
    steps: list[AnonymousStep] = field(default_factory=list)
    guard: Guard | None = None
    action: Action | None = None
    synopsis: str = ""
    requires: frozenset[str] = frozenset()


def _synopsis_from(action: Action | None) -> str:
    doc = getattr(action, "__doc__", None) if action is not None else None
    if not doc:
        return ""
    return doc.strip().splitlines()[0].strip()


class TaskRegistry:
    """Registry of task definitions for one build script.

    Example:
        >>> registry = TaskRegistry()
        >>> registry.register("Clean", action=lambda ctx: None)
        >>> @registry.task("Build", depends_on=["Clean"])
        ... def build(ctx):
        ...     '''Compile everything.'''
        >>> registry.get("Build").synopsis
        'Compile everything.'
    """

    def __init__(self, allow_overwrite: bool = True):
        """Initialize an empty registry.

        Args:
            allow_overwrite: If False, registering an existing name raises
                DuplicateTaskError; otherwise the last registration wins
        """
        self.allow_overwrite = allow_overwrite
        self._tasks: dict[str, Task] = {}

    def register(
        self,
        name: str,
        depends_on: Iterable[str | Callable[..., Any]] = (),
        guard: Guard | None = None,
        action: Action | None = None,
        synopsis: str | None = None,
        requires: Iterable[str] = (),
    ) -> Task:
        """Add or overwrite a task definition.

        Args:
            name: Unique task name
            depends_on: Task names and anonymous callables, in order
            guard: Bool or predicate deciding at run time whether the task runs
            action: Callable invoked with the TaskContext
            synopsis: Description; defaults to the action's docstring first line
            requires: Subset of the named dependencies that must succeed

        Returns:
            The registered Task

        Raises:
            DuplicateTaskError: If the name exists and overwriting is disabled
            ValueError: If the name is empty or requires names a non-dependency
        """
        if not isinstance(name, str) or not name.strip():
            msg = f"Task name must be a non-empty string, got {name!r}"
            raise ValueError(msg)

        if name in self._tasks:
            if not self.allow_overwrite:
                raise DuplicateTaskError(name)
            logger.debug("task_redefined", task=name)

        dependency_names: list[str] = []
        steps: list[AnonymousStep] = []
        for entry in depends_on:
            if isinstance(entry, str):
                dependency_names.append(entry)
            elif callable(entry):
                steps.append(AnonymousStep(entry))
            else:
                msg = f"Task '{name}': dependency entries must be names or callables, got {entry!r}"
                raise TypeError(msg)

        required = frozenset(requires)
        unknown = required - set(dependency_names)
        if unknown:
            msg = f"Task '{name}' requires tasks it does not depend on: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        task = Task(
            name=name,
            depends_on=dependency_names,
            steps=steps,
            guard=guard,
            action=action,
            synopsis=synopsis if synopsis is not None else _synopsis_from(action),
            requires=required,
        )
        self._tasks[name] = task
        return task

    def task(
        self,
        name: str | None = None,
        depends_on: Iterable[str | Callable[..., Any]] = (),
        guard: Guard | None = None,
        synopsis: str | None = None,
        requires: Iterable[str] = (),
    ) -> Callable[[Action], Action]:
        """Decorator form of register(); the task name defaults to the function name."""

        def decorator(func: Action) -> Action:
            self.register(
                name or func.__name__,
                depends_on=depends_on,
                guard=guard,
                action=func,
                synopsis=synopsis,
                requires=requires,
            )
            return func

        return decorator

    def get(self, name: str) -> Task | None:
        return self._tasks.get(name)

    def names(self) -> list[str]:
        """Registered task names in registration order."""
        return list(self._tasks)

    def tasks(self) -> list[Task]:
        return list(self._tasks.values())

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def build_graph(self) -> DependencyGraph:
        """Build a DependencyGraph from the current definitions."""
        graph = DependencyGraph()
        for task in self._tasks.values():
            graph.add_task(task.name, task.depends_on)
        return graph
