"""Structured logging for taskweave, built on structlog.

Log events go to stderr through the standard library so that stdout stays
free for build output (task listings, graphs, the summary line). Every event
carries the ID of the run it belongs to and, while a task executes, the
task's name.

Example:
    >>> from taskweave.log_config import configure_logging, get_logger
    >>> configure_logging(level="INFO", json_logs=False)
    >>> get_logger(__name__).info("task_started", task="Build")
"""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import structlog


def configure_logging(level: str = "INFO", json_logs: bool = True) -> None:
    """Route structlog through stdlib logging on stderr.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL (case-insensitive)
        json_logs: One JSON object per line if True, plain console lines otherwise

    Raises:
        ValueError: If the level name is unknown
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        msg = f"Invalid log level: {level}"
        raise ValueError(msg)

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=numeric_level, force=True)

    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False, exception_formatter=structlog.dev.plain_traceback)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_run_id(run_id: str) -> None:
    """Attach a run ID to every event logged until unbind_run_id()."""
    structlog.contextvars.bind_contextvars(run_id=run_id)


def unbind_run_id() -> None:
    structlog.contextvars.unbind_contextvars("run_id")


def bind_context(**kwargs: Any) -> None:
    """Attach extra key/value pairs to subsequent events in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


@contextmanager
def bound_context(**kwargs: Any) -> Iterator[None]:
    """Bind key/value pairs for the duration of a with-block.

    Example:
        >>> with bound_context(task="Module"):
        ...     logger.info("step_completed", step="copy")
    """
    bind_context(**kwargs)
    try:
        yield
    finally:
        unbind_context(*kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
