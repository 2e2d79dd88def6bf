"""Tests for the command line interface and its exit codes."""

import argparse
import json
import textwrap
from pathlib import Path

import pytest
from pydantic import ValidationError

from taskweave.config import TaskweaveConfig
from taskweave.log_config import configure_logging
from taskweave.main import (
    EXIT_BUILD_FAILED,
    EXIT_SUCCESS,
    EXIT_USAGE_ERROR,
    build_orchestrator,
    format_task_list,
    main,
    parse_args,
    parse_parameter,
    run_cli,
)
from taskweave.orchestrator.orchestrator import BuildOrchestrator

BUILD_SCRIPT = """
def register_tasks(build):
    @build.task("Clean")
    def clean(ctx):
        '''Remove output.'''

    @build.task("Compile", depends_on=["Clean"])
    def compile_(ctx):
        '''Compile sources.'''
        ctx.state["compiled"] = ctx.params.get("Configuration", "Debug")

    @build.task("Broken", depends_on=["Clean"])
    def broken(ctx):
        raise RuntimeError("compiler crashed")

    @build.task("Params")
    def params(ctx):
        ctx.check(ctx.params["Configuration"] == "Release", "wrong configuration")
        ctx.check(ctx.params["Verbose"] is True, "flag not parsed")

    @build.task("Noisy")
    def noisy(ctx):
        ctx.warn("something odd")

    build.register("default", depends_on=["Compile"])
"""


@pytest.fixture(autouse=True)
def restore_logging():
    """run_cli() reconfigures logging; put the JSON setup back afterwards."""
    yield
    configure_logging(level="DEBUG", json_logs=True)


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """A directory holding the default build script, used as the working directory."""
    (tmp_path / "taskweave_build.py").write_text(textwrap.dedent(BUILD_SCRIPT))
    monkeypatch.chdir(tmp_path)
    for key in ("TASKWEAVE_BUILD_FILE", "TASKWEAVE_RUNNER_DEFAULT_TASK", "TASKWEAVE_RUNNER_FAIL_FAST"):
        monkeypatch.delenv(key, raising=False)
    return tmp_path


def cli(*argv: str) -> int:
    return run_cli(parse_args(list(argv)))


class TestParseParameter:
    """Tests for KEY=VALUE parsing."""

    def test_string_value(self):
        assert parse_parameter("Configuration=Release") == ("Configuration", "Release")

    @pytest.mark.parametrize(("raw", "expected"), [("Push=true", True), ("Push=FALSE", False)])
    def test_boolean_values(self, raw, expected):
        assert parse_parameter(raw) == ("Push", expected)

    def test_value_may_contain_equals(self):
        assert parse_parameter("Filter=a=b") == ("Filter", "a=b")

    @pytest.mark.parametrize("raw", ["NoEquals", "=value"])
    def test_invalid(self, raw):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_parameter(raw)

    def test_invalid_on_command_line_is_usage_error(self):
        with pytest.raises(SystemExit) as exc_info:
            parse_args(["-p", "NoEquals"])

        assert exc_info.value.code == EXIT_USAGE_ERROR


class TestBuildOrchestrator:
    """Tests for command line overrides of the runner configuration."""

    def test_jobs_enables_parallel(self):
        build = build_orchestrator(TaskweaveConfig(), parse_args(["--jobs", "3"]))

        assert build.config.parallel is True
        assert build.config.max_workers == 3

    def test_single_job_is_sequential(self):
        build = build_orchestrator(TaskweaveConfig(), parse_args(["-j", "1"]))

        assert build.config.parallel is False

    def test_fail_fast_flag(self):
        build = build_orchestrator(TaskweaveConfig(), parse_args(["--fail-fast"]))

        assert build.config.fail_fast is True

    def test_jobs_above_limit_rejected(self):
        with pytest.raises(ValidationError, match="max_workers"):
            build_orchestrator(TaskweaveConfig(), parse_args(["--jobs", "500"]))


class TestExitCodes:
    """Tests for run_cli() outcomes."""

    def test_default_task_succeeds(self, workspace, capsys):
        assert cli() == EXIT_SUCCESS

        out = capsys.readouterr().out
        assert out.strip().splitlines()[-1].startswith("Build succeeded. 3 tasks, 3 succeeded")

    def test_failed_task_exit_code(self, workspace, capsys):
        assert cli("Broken") == EXIT_BUILD_FAILED

        out = capsys.readouterr().out
        assert "ERROR: Task 'Broken': RuntimeError: compiler crashed" in out
        assert "Build FAILED." in out

    def test_warnings_are_printed(self, workspace, capsys):
        assert cli("Noisy") == EXIT_SUCCESS

        assert "WARNING: Task 'Noisy': something odd" in capsys.readouterr().out

    def test_parameters_reach_tasks(self, workspace):
        assert cli("Params", "-p", "Configuration=Release", "-p", "Verbose=true") == EXIT_SUCCESS

    def test_unknown_task_is_usage_error(self, workspace, capsys):
        assert cli("Nope") == EXIT_USAGE_ERROR

        assert "Build FAILED." in capsys.readouterr().out

    def test_cycle_is_usage_error(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        script = tmp_path / "cycle.py"
        script.write_text('build.register("A", depends_on=["B"])\nbuild.register("B", depends_on=["A"])\n')

        assert cli("A", "-f", str(script)) == EXIT_USAGE_ERROR

        out = capsys.readouterr().out
        assert "A" in out
        assert "B" in out

    def test_missing_build_script(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert cli() == EXIT_USAGE_ERROR

    def test_broken_build_script(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "taskweave_build.py").write_text("import not_a_real_module_xyz\n")

        assert cli() == EXIT_USAGE_ERROR

    def test_invalid_config_file(self, workspace):
        config = workspace / "bad.yaml"
        config.write_text("runner:\n  max_workers: 0\n")

        assert cli("-c", str(config)) == EXIT_USAGE_ERROR

    def test_config_file_selects_default_task(self, workspace, capsys):
        (workspace / "taskweave.yaml").write_text("runner:\n  default_task: Noisy\n")

        assert cli() == EXIT_SUCCESS
        assert "WARNING: Task 'Noisy'" in capsys.readouterr().out

    def test_dot_alias(self, workspace, capsys):
        assert cli(".") == EXIT_SUCCESS

    def test_parallel_run(self, workspace):
        assert cli("--jobs", "2") == EXIT_SUCCESS

    def test_too_many_jobs_is_usage_error(self, workspace):
        assert cli("--jobs", "500") == EXIT_USAGE_ERROR


class TestOutputs:
    """Tests for listing, graph rendering and summary export."""

    def test_list(self, workspace, capsys):
        assert cli("--list") == EXIT_SUCCESS

        out = capsys.readouterr().out
        assert "Compile" in out
        assert "Compile sources. (Clean)" in out

    def test_graph_mermaid(self, workspace, capsys):
        assert cli("--graph", "mermaid") == EXIT_SUCCESS

        out = capsys.readouterr().out
        assert out.startswith("graph TD")
        assert "Clean --> Compile" in out

    def test_graph_dot(self, workspace, capsys):
        assert cli("--graph", "dot") == EXIT_SUCCESS

        assert '"Clean" -> "Compile";' in capsys.readouterr().out

    def test_summary_json(self, workspace):
        output = workspace / "out" / "summary.json"

        assert cli("Broken", "--summary-json", str(output)) == EXIT_BUILD_FAILED

        data = json.loads(output.read_text())
        assert data["summary"]["failed"] == 1
        assert data["summary"]["succeeded"] == 1

    def test_format_task_list_empty(self):
        assert format_task_list(BuildOrchestrator()) == "No tasks registered."


class TestMain:
    """Tests for the main() entry point."""

    def test_main_exits_with_code(self, workspace):
        with pytest.raises(SystemExit) as exc_info:
            main(["Broken"])

        assert exc_info.value.code == EXIT_BUILD_FAILED

    def test_main_success(self, workspace):
        with pytest.raises(SystemExit) as exc_info:
            main([])

        assert exc_info.value.code == EXIT_SUCCESS

    def test_build_file_from_environment(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        script = Path(tmp_path / "ci.build.py")
        script.write_text('build.register("default")\n')
        monkeypatch.setenv("TASKWEAVE_BUILD_FILE", str(script))

        assert cli() == EXIT_SUCCESS
