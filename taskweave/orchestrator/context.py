"""Build state and the per-task context handed to every action.

BuildState is created at the start of a run, seeded with the run parameters
and discarded when the run ends. TaskContext is a per-task view over it that
also collects the task's warnings and steps; the executor copies those into
the task record once the task is done.
"""

import threading
import time
from collections.abc import Callable, Iterator, Mapping, Sequence
from pathlib import Path
from typing import Any

from taskweave.errors import AssertionFailure
from taskweave.external import ExternalResult, run_external
from taskweave.log_config import get_logger
from taskweave.orchestrator.registry import AnonymousStep, NamedStep, Step
from taskweave.orchestrator.result_manager import StepRecord

logger = get_logger(__name__)


class BuildState:
    """Lock-protected key/value store shared by all actions of one run.

    Supports mapping-style access. Use update_with() for read-modify-write
    sequences that must be atomic under parallel execution.

    Example:
        >>> state = BuildState({"configuration": "Release"})
        >>> state["version"] = "1.2.3"
        >>> state.get("version")
        '1.2.3'
    """

    def __init__(self, initial: Mapping[str, Any] | None = None):
        self._data: dict[str, Any] = dict(initial or {})
        self._lock = threading.RLock()

    def __getitem__(self, key: str) -> Any:
        with self._lock:
            return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def __delitem__(self, key: str) -> None:
        with self._lock:
            del self._data[key]

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def setdefault(self, key: str, default: Any) -> Any:
        with self._lock:
            return self._data.setdefault(key, default)

    def update_with(self, key: str, func: Callable[[Any], Any], default: Any = None) -> Any:
        """Atomically replace a value with func(current value).

        Returns:
            The new value
        """
        with self._lock:
            value = func(self._data.get(key, default))
            self._data[key] = value
            return value

    def snapshot(self) -> dict[str, Any]:
        """Shallow copy of the current state."""
        with self._lock:
            return dict(self._data)


class TaskContext:
    """What a task action sees while it runs.

    Attributes:
        name: Name of the running task
        params: Run parameters (read-only by convention)
        state: Shared BuildState of the run
        warnings: Warnings emitted so far by this task
        steps: Steps executed so far by this task
    """

    def __init__(self, name: str, params: Mapping[str, Any], state: BuildState):
        self.name = name
        self.params = params
        self.state = state
        self.warnings: list[str] = []
        self.steps: list[StepRecord] = []

    def warn(self, message: str) -> None:
        """Record a warning against this task without failing it."""
        self.warnings.append(message)
        logger.warning("task_warning", message=message)

    def check(self, condition: object, message: str) -> None:
        """Assert an invariant inside an action.

        Raises:
            AssertionFailure: If condition is falsy
        """
        if not condition:
            raise AssertionFailure(message)

    def step(self, body: Callable[[], Any], name: str | None = None) -> Any:
        """Run a sub-step and fold it into this task's record.

        A step that raises is recorded as failed and the exception propagates,
        failing the task.

        Args:
            body: Zero-argument callable
            name: Optional label; None records an anonymous step

        Returns:
            Whatever body returns
        """
        step = NamedStep(name, body) if name else AnonymousStep(body)
        return self.run_step(step)

    def run_step(self, step: Step, *args: Any) -> Any:
        """Execute a Step variant, passing args to its body, and record it."""
        name = step.name if isinstance(step, NamedStep) else None
        started = time.monotonic()
        try:
            value = step.body(*args)
        except Exception as e:
            self.steps.append(
                StepRecord(name, False, time.monotonic() - started, f"{type(e).__name__}: {e}"),
            )
            raise
        self.steps.append(StepRecord(name, True, time.monotonic() - started))
        logger.debug("step_completed", step=name)
        return value

    def run(
        self,
        command: str | Path,
        args: Sequence[str | Path] = (),
        **kwargs: Any,
    ) -> ExternalResult:
        """Run an external tool; a non-zero exit fails the task.

        Keyword arguments are passed through to run_external().
        """
        return run_external(command, args, **kwargs)
