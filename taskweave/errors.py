"""Exception hierarchy shared across taskweave.

Errors that belong to one component (cycle detection, registration, the run
record) are defined next to that component and derive from TaskweaveError.
The faults defined here can be raised from inside any task action.
"""


class TaskweaveError(Exception):
    """Base class for every error raised by taskweave."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AssertionFailure(TaskweaveError):
    """An explicit invariant check inside an action did not hold.

    Raised by TaskContext.check() and the artifact helpers, e.g. when a
    staging directory does not contain the expected number of files.
    """


class ActionFault(TaskweaveError):
    """A guard, step or action raised while a task was executing.

    The original exception is kept as ``original_error`` and chained as
    ``__cause__``.

    Attributes:
        task_name: Task whose body raised
        original_error: The exception raised by the task body
    """

    def __init__(self, task_name: str, original_error: BaseException):
        message = f"Task '{task_name}' failed: {type(original_error).__name__}: {original_error}"
        super().__init__(message)
        self.task_name = task_name
        self.original_error = original_error
