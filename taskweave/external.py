"""External process invocation with exit-code failure semantics.

Every build action that touches an outside tool (markdown converter, help
compiler, source control, package registry, file mirroring) goes through
run_external(). A non-zero exit, a missing executable or a timeout all
surface as ExternalProcessError, which the executor records as a task fault.
"""

import os
import subprocess
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from taskweave.errors import TaskweaveError
from taskweave.log_config import get_logger

logger = get_logger(__name__)

# Characters of captured output kept in error messages
OUTPUT_EXCERPT_CHARS = 2000


@dataclass
class ExternalResult:
    """Outcome of an external process.

    Attributes:
        command: Full argument vector that was executed
        returncode: Process exit code
        stdout: Captured standard output
        stderr: Captured standard error
        duration_seconds: Wall-clock time of the process
    """

    command: list[str]
    returncode: int
    stdout: str
    stderr: str
    duration_seconds: float

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ExternalProcessError(TaskweaveError):
    """An external process could not run or exited non-zero.

    Attributes:
        command: Argument vector of the failed process
        returncode: Exit code, None if the process never ran or timed out
        stdout: Captured standard output, if any
        stderr: Captured standard error, if any
    """

    def __init__(
        self,
        message: str,
        command: list[str],
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ):
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def _excerpt(text: str) -> str:
    text = text.strip()
    if len(text) <= OUTPUT_EXCERPT_CHARS:
        return text
    return "..." + text[-OUTPUT_EXCERPT_CHARS:]


def run_external(
    command: str | os.PathLike,
    args: Sequence[str | os.PathLike] = (),
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    check: bool = True,
    timeout: float | None = None,
) -> ExternalResult:
    """Run an external program and capture its output.

    Args:
        command: Executable name or path
        args: Arguments passed to the executable
        cwd: Working directory for the process
        env: Extra environment variables, merged over the current environment
        check: If True, a non-zero exit raises ExternalProcessError
        timeout: Seconds before the process is killed, None for no limit

    Returns:
        ExternalResult with exit code and captured output

    Raises:
        ExternalProcessError: If the executable is missing, times out, or
            exits non-zero while check is True

    Example:
        >>> result = run_external("git", ["status", "--short"])
        >>> result.stdout
    """
    argv = [os.fspath(command), *(os.fspath(arg) for arg in args)]
    process_env = {**os.environ, **env} if env else None

    logger.info("external_process_started", command=argv, cwd=str(cwd) if cwd else None)
    started = time.monotonic()

    try:
        completed = subprocess.run(
            argv,
            cwd=cwd,
            env=process_env,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as e:
        logger.error("external_process_not_found", command=argv)
        msg = f"Executable not found: {argv[0]}"
        raise ExternalProcessError(msg, command=argv) from e
    except subprocess.TimeoutExpired as e:
        logger.error("external_process_timeout", command=argv, timeout=timeout)
        msg = f"Command timed out after {timeout}s: {' '.join(argv)}"
        raise ExternalProcessError(msg, command=argv) from e

    result = ExternalResult(
        command=argv,
        returncode=completed.returncode,
        stdout=completed.stdout,
        stderr=completed.stderr,
        duration_seconds=time.monotonic() - started,
    )

    logger.info(
        "external_process_finished",
        command=argv,
        returncode=result.returncode,
        duration_seconds=round(result.duration_seconds, 3),
    )

    if check and not result.ok:
        detail = _excerpt(result.stderr) or _excerpt(result.stdout)
        msg = f"Command exited with code {result.returncode}: {' '.join(argv)}"
        if detail:
            msg = f"{msg}\n{detail}"
        raise ExternalProcessError(
            msg,
            command=argv,
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )

    return result
