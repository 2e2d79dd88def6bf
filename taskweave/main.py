#!/usr/bin/env python3
"""Main Entry Point and CLI Integration.

This module provides the command line interface of taskweave. It loads the
configuration and the build script, then lists tasks, renders the build
graph, or runs the requested tasks and reports the result through the exit
code.
"""

import argparse
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from taskweave.config import TaskweaveConfig, load_config
from taskweave.errors import TaskweaveError
from taskweave.graph.dependency_graph import CyclicDependencyError, TaskNotFoundError
from taskweave.graph.validator import GraphValidator
from taskweave.loader import load_build_script
from taskweave.log_config import configure_logging, get_logger
from taskweave.orchestrator.orchestrator import BuildOrchestrator

logger = get_logger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_BUILD_FAILED = 1
EXIT_USAGE_ERROR = 2


def parse_parameter(raw: str) -> tuple[str, Any]:
    """Parse a KEY=VALUE parameter; 'true'/'false' become booleans.

    Raises:
        argparse.ArgumentTypeError: If there is no '=' or the key is empty
    """
    key, sep, value = raw.partition("=")
    key = key.strip()
    if not sep or not key:
        msg = f"Parameters must look like KEY=VALUE, got {raw!r}"
        raise argparse.ArgumentTypeError(msg)

    lowered = value.strip().lower()
    if lowered == "true":
        return key, True
    if lowered == "false":
        return key, False
    return key, value


def format_task_list(build: BuildOrchestrator) -> str:
    """Render task names, dependencies and synopses, one task per line."""
    tasks = build.registry.tasks()
    if not tasks:
        return "No tasks registered."

    width = max(len(task.name) for task in tasks)
    lines = []
    for task in tasks:
        deps = f" ({', '.join(task.depends_on)})" if task.depends_on else ""
        lines.append(f"{task.name.ljust(width)}  {task.synopsis}{deps}".rstrip())
    return "\n".join(lines)


def build_orchestrator(config: TaskweaveConfig, args: argparse.Namespace) -> BuildOrchestrator:
    """Create the orchestrator from configuration plus command line overrides."""
    overrides: dict[str, Any] = {}
    if args.fail_fast:
        overrides["fail_fast"] = True
    if args.jobs is not None:
        overrides["parallel"] = args.jobs > 1
        overrides["max_workers"] = max(args.jobs, 1)
    return BuildOrchestrator(config.runner, **overrides)


def run_cli(args: argparse.Namespace) -> int:
    """Execute the command described by parsed arguments.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 success, 1 build failed, 2 usage or resolution error)
    """
    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        configure_logging("INFO", json_logs=False)
        logger.error("configuration_error", error=str(e))
        return EXIT_USAGE_ERROR

    configure_logging(args.log_level or config.logging_level, json_logs=config.json_logs and not args.console_logs)

    for warning in config.validate_config():
        logger.warning("configuration_warning", message=warning)

    try:
        build = build_orchestrator(config, args)
    except ValidationError as e:
        logger.error("configuration_error", error=str(e))
        return EXIT_USAGE_ERROR

    build_file = Path(args.file or config.build_file)

    try:
        load_build_script(build_file, build)
    except (FileNotFoundError, TaskweaveError) as e:
        logger.error("build_script_error", path=str(build_file), error=str(e))
        return EXIT_USAGE_ERROR

    if args.list:
        print(format_task_list(build))
        return EXIT_SUCCESS

    if args.graph:
        print(GraphValidator().generate_visualization(build.registry.build_graph(), args.graph))
        return EXIT_SUCCESS

    parameters = dict(args.parameters or [])

    try:
        run = build.run(args.tasks or None, parameters)
    except (CyclicDependencyError, TaskNotFoundError) as e:
        logger.error("plan_resolution_failed", error=str(e))
        print(f"Build FAILED. {e}")
        return EXIT_USAGE_ERROR

    for error in run.errors:
        print(f"ERROR: Task '{error.task}': {error.error_type}: {error.message}")
    for warning in run.warnings:
        print(f"WARNING: Task '{warning.task}': {warning.message}")
    print(run.summary_line())

    if args.summary_json:
        run.export_json(args.summary_json)
        logger.info("summary_exported", path=args.summary_json)

    return EXIT_SUCCESS if run.success else EXIT_BUILD_FAILED


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="taskweave",
        description="taskweave - dependency-ordered build task runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the default task of taskweave_build.py
  taskweave

  # Run a task from another build script with parameters
  taskweave Release -f release.build.py -p Configuration=Release -p NoTestDiff=true

  # List tasks, or print the graph as Mermaid
  taskweave --list
  taskweave --graph mermaid

  # Stop at the first failure, run independent tasks on 4 workers
  taskweave Test --fail-fast --jobs 4
        """,
    )

    parser.add_argument("tasks", nargs="*", help="Tasks to run (default: the configured default task)")
    parser.add_argument("-f", "--file", type=str, default=None, help="Path to the build script")
    parser.add_argument(
        "-c",
        "--config",
        type=str,
        default=None,
        help="Path to configuration YAML file (default: taskweave.yaml if present)",
    )
    parser.add_argument(
        "-p",
        "--param",
        dest="parameters",
        action="append",
        type=parse_parameter,
        metavar="KEY=VALUE",
        help="Build parameter forwarded to the build state (repeatable)",
    )
    parser.add_argument("--fail-fast", action="store_true", help="Stop scheduling after the first failure")
    parser.add_argument("-j", "--jobs", type=int, default=None, help="Run independent tasks on N workers")
    parser.add_argument("--list", action="store_true", help="List tasks with their synopsis and exit")
    parser.add_argument("--graph", choices=["mermaid", "dot"], default=None, help="Print the build graph and exit")
    parser.add_argument("--summary-json", type=str, default=None, help="Write the run record to a JSON file")
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Set logging level (default: from configuration)",
    )
    parser.add_argument("--console-logs", action="store_true", help="Render logs for humans instead of JSON")

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Main entry point: parse arguments, run, and exit with the resulting code."""
    args = parse_args(argv)

    try:
        exit_code = run_cli(args)
    except KeyboardInterrupt:
        exit_code = EXIT_BUILD_FAILED

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
