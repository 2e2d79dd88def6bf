"""Unit tests for BuildState and TaskContext."""

import sys
import threading

import pytest

from taskweave.errors import AssertionFailure
from taskweave.external import ExternalProcessError
from taskweave.orchestrator.context import BuildState, TaskContext
from taskweave.orchestrator.registry import AnonymousStep, NamedStep


@pytest.fixture
def ctx():
    return TaskContext("Module", {"Configuration": "Release"}, BuildState())


class TestBuildState:
    """Tests for the shared key/value store."""

    def test_mapping_access(self):
        state = BuildState({"a": 1})
        state["b"] = 2

        assert state["a"] == 1
        assert "b" in state
        assert len(state) == 2
        assert sorted(state) == ["a", "b"]

        del state["a"]
        assert "a" not in state

    def test_missing_key_raises(self):
        with pytest.raises(KeyError):
            BuildState()["nope"]

    def test_get_and_setdefault(self):
        state = BuildState()

        assert state.get("x", 5) == 5
        assert state.setdefault("x", []) == []
        state.setdefault("x", ["other"]).append(1)
        assert state["x"] == [1]

    def test_snapshot_is_a_copy(self):
        state = BuildState({"a": 1})
        snapshot = state.snapshot()
        snapshot["a"] = 99

        assert state["a"] == 1

    def test_initial_mapping_not_shared(self):
        initial = {"a": 1}
        state = BuildState(initial)
        state["a"] = 2

        assert initial == {"a": 1}

    def test_update_with_is_atomic(self):
        state = BuildState()

        def bump():
            for _ in range(1000):
                state.update_with("n", lambda v: v + 1, default=0)

        threads = [threading.Thread(target=bump) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert state["n"] == 4000


class TestTaskContext:
    """Tests for warnings, checks and steps."""

    def test_warn_collects(self, ctx):
        ctx.warn("first")
        ctx.warn("second")

        assert ctx.warnings == ["first", "second"]

    def test_check_passes(self, ctx):
        ctx.check(True, "never raised")

    def test_check_fails(self, ctx):
        with pytest.raises(AssertionFailure, match="expected 7 files"):
            ctx.check(0, "expected 7 files")

    def test_named_step(self, ctx):
        result = ctx.step(lambda: 42, name="copy")

        assert result == 42
        assert ctx.steps[0].name == "copy"
        assert ctx.steps[0].succeeded

    def test_anonymous_step(self, ctx):
        ctx.step(lambda: None)

        assert ctx.steps[0].name is None

    def test_failing_step_recorded_and_raised(self, ctx):
        def body():
            raise OSError("no space")

        with pytest.raises(OSError, match="no space"):
            ctx.step(body, name="copy")

        assert ctx.steps[0].succeeded is False
        assert ctx.steps[0].error == "OSError: no space"

    def test_run_step_passes_arguments(self, ctx):
        seen = []

        ctx.run_step(AnonymousStep(seen.append), "payload")
        ctx.run_step(NamedStep("label", lambda: seen.append("named")))

        assert seen == ["payload", "named"]
        assert [s.name for s in ctx.steps] == [None, "label"]


class TestContextRun:
    """Tests for external tool invocation through the context."""

    def test_run_success(self, ctx):
        result = ctx.run(sys.executable, ["-c", "print('hello')"])

        assert result.ok
        assert result.stdout.strip() == "hello"

    def test_run_failure_raises(self, ctx):
        with pytest.raises(ExternalProcessError):
            ctx.run(sys.executable, ["-c", "import sys; sys.exit(3)"])
