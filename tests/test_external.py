"""Unit tests for external process invocation.

The current interpreter stands in for external tools so the tests do not
depend on anything installed on the machine.
"""

import sys
from pathlib import Path

import pytest

from taskweave.external import OUTPUT_EXCERPT_CHARS, ExternalProcessError, run_external


class TestRunExternal:
    """Tests for run_external()."""

    def test_captures_output(self):
        result = run_external(sys.executable, ["-c", "import sys; print('out'); print('err', file=sys.stderr)"])

        assert result.ok
        assert result.returncode == 0
        assert result.stdout.strip() == "out"
        assert result.stderr.strip() == "err"
        assert result.command[0] == sys.executable
        assert result.duration_seconds >= 0

    def test_non_zero_exit_raises(self):
        with pytest.raises(ExternalProcessError) as exc_info:
            run_external(sys.executable, ["-c", "import sys; print('bad input', file=sys.stderr); sys.exit(2)"])

        error = exc_info.value
        assert error.returncode == 2
        assert "exited with code 2" in str(error)
        assert "bad input" in str(error)

    def test_non_zero_exit_without_check(self):
        result = run_external(sys.executable, ["-c", "import sys; sys.exit(5)"], check=False)

        assert not result.ok
        assert result.returncode == 5

    def test_missing_executable(self):
        with pytest.raises(ExternalProcessError, match="Executable not found") as exc_info:
            run_external("definitely-not-a-real-tool-xyz")

        assert exc_info.value.returncode is None

    def test_timeout(self):
        with pytest.raises(ExternalProcessError, match="timed out"):
            run_external(sys.executable, ["-c", "import time; time.sleep(5)"], timeout=0.2)

    def test_cwd_and_env(self, tmp_path):
        result = run_external(
            sys.executable,
            ["-c", "import os; print(os.getcwd()); print(os.environ['TASKWEAVE_TEST_VALUE'])"],
            cwd=tmp_path,
            env={"TASKWEAVE_TEST_VALUE": "42"},
        )

        lines = result.stdout.splitlines()
        assert Path(lines[0]).resolve() == tmp_path.resolve()
        assert lines[1] == "42"

    def test_long_output_is_truncated_in_message(self):
        script = f"import sys; sys.stderr.write('x' * {OUTPUT_EXCERPT_CHARS * 2}); sys.exit(1)"

        with pytest.raises(ExternalProcessError) as exc_info:
            run_external(sys.executable, ["-c", script])

        assert len(str(exc_info.value)) < OUTPUT_EXCERPT_CHARS + 500
        assert len(exc_info.value.stderr) == OUTPUT_EXCERPT_CHARS * 2
