"""Whole-registry checks and graph rendering.

Plan resolution only looks at the closure of the requested targets. The
GraphValidator looks at every registered task instead: it reports each cycle
with its full path, dependencies naming tasks that were never registered,
and tasks the default task never reaches. It also renders the graph as
Mermaid or Graphviz DOT for ``taskweave --graph``.
"""

from collections import deque
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from taskweave.graph.dependency_graph import DependencyGraph

logger = structlog.get_logger(__name__)

Edges = dict[str, list[str]]


@dataclass
class ValidationReport:
    """Outcome of validating a build graph.

    Attributes:
        is_valid: False once any error has been added
        errors: Cycles and missing tasks, one message each
        warnings: Non-fatal findings such as unreachable tasks
        cycles: Each detected cycle, first task repeated at the end
        missing_refs: Dependency names with no registered task
        unreachable_tasks: Tasks outside the default task's closure
    """

    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    cycles: list[list[str]] = field(default_factory=list)
    missing_refs: set[str] = field(default_factory=set)
    unreachable_tasks: set[str] = field(default_factory=set)

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def summary(self) -> str:
        """Multi-line text form, errors first."""
        status = "PASS" if self.is_valid else "FAIL"
        lines = [f"Validation Status: {status} ({len(self.errors)} errors, {len(self.warnings)} warnings)"]
        for title, messages in (("Errors", self.errors), ("Warnings", self.warnings)):
            if messages:
                lines.append(f"{title}:")
                lines.extend(f"  - {message}" for message in messages)
        return "\n".join(lines)


def _find_cycles(edges: Edges) -> list[list[str]]:
    """Iterative depth-first search reporting every distinct cycle it closes.

    Two cycles over the same set of tasks are reported once.
    """
    done: set[str] = set()
    seen_members: set[frozenset[str]] = set()
    cycles: list[list[str]] = []

    for root in edges:
        if root in done:
            continue

        path: list[str] = [root]
        on_path: set[str] = {root}
        stack: list[Iterator[str]] = [iter(edges[root])]

        while stack:
            dep = next(stack[-1], None)
            if dep is None:
                finished = path.pop()
                on_path.discard(finished)
                done.add(finished)
                stack.pop()
                continue

            if dep in on_path:
                cycle = [*path[path.index(dep):], dep]
                members = frozenset(cycle)
                if members not in seen_members:
                    seen_members.add(members)
                    cycles.append(cycle)
            elif dep not in done and dep in edges:
                path.append(dep)
                on_path.add(dep)
                stack.append(iter(edges[dep]))

    return cycles


def _reachable_from(edges: Edges, root: str) -> set[str]:
    reached = {root}
    queue = deque([root])
    while queue:
        for dep in edges.get(queue.popleft(), []):
            if dep not in reached:
                reached.add(dep)
                queue.append(dep)
    return reached


def _sorted_edges(edges: Edges) -> Iterator[tuple[str, str]]:
    """Yield (dependency, dependent) pairs in a stable order."""
    for name in sorted(edges):
        for dep in edges[name]:
            yield dep, name


def _mermaid_id(name: str) -> str:
    return "".join(ch if ch.isalnum() else "_" for ch in name)


def _render_mermaid(edges: Edges) -> str:
    lines = ["graph TD"]
    if not edges:
        lines.append("    Empty[Empty Graph]")
        return "\n".join(lines)

    lines.extend(f"    {_mermaid_id(name)}[{name}]" for name in sorted(edges))
    lines.extend(f"    {_mermaid_id(dep)} --> {_mermaid_id(name)}" for dep, name in _sorted_edges(edges))
    return "\n".join(lines)


def _dot_quote(name: str) -> str:
    escaped = name.replace('"', '\\"')
    return f'"{escaped}"'


def _render_dot(edges: Edges) -> str:
    lines = [
        "digraph BuildGraph {",
        "    rankdir=LR;",
        "    node [shape=box, style=rounded];",
    ]
    if not edges:
        lines.append('    Empty [label="Empty Graph"];')
    else:
        lines.extend(f"    {_dot_quote(name)};" for name in sorted(edges))
        lines.extend(f"    {_dot_quote(dep)} -> {_dot_quote(name)};" for dep, name in _sorted_edges(edges))
    lines.append("}")
    return "\n".join(lines)


class GraphValidator:
    """Validate a whole DependencyGraph and render it.

    Example:
        >>> report = GraphValidator().validate(graph, default_task="default")
        >>> print(report.summary())
    """

    renderers: dict[str, Callable[[Edges], str]] = {
        "mermaid": _render_mermaid,
        "dot": _render_dot,
    }

    def validate(
        self,
        graph: "DependencyGraph",
        default_task: str | None = None,
    ) -> ValidationReport:
        """Check the graph for cycles, missing tasks and unreachable tasks.

        Args:
            graph: Graph built from every registered task
            default_task: When registered, tasks outside its closure are
                reported as warnings

        Returns:
            ValidationReport with all findings
        """
        edges = graph.graph
        report = ValidationReport()

        report.cycles = _find_cycles(edges)
        for cycle in report.cycles:
            report.add_error(f"Cycle detected: {' -> '.join(cycle)}")

        referrers: dict[str, list[str]] = {}
        for name, deps in edges.items():
            for dep in deps:
                if dep not in edges:
                    referrers.setdefault(dep, []).append(name)
        report.missing_refs = set(referrers)
        for missing in sorted(referrers):
            report.add_error(f"Missing task '{missing}' referenced by: {', '.join(sorted(referrers[missing]))}")

        if default_task is not None and default_task in edges:
            report.unreachable_tasks = set(edges) - _reachable_from(edges, default_task)
            if report.unreachable_tasks:
                report.add_warning(
                    f"Tasks not reached by '{default_task}': {', '.join(sorted(report.unreachable_tasks))}",
                )

        logger.info(
            "graph_validated",
            is_valid=report.is_valid,
            cycles=len(report.cycles),
            missing=len(report.missing_refs),
            unreachable=len(report.unreachable_tasks),
        )
        return report

    def generate_visualization(
        self,
        graph: "DependencyGraph",
        output_format: str = "mermaid",
    ) -> str:
        """Render the graph with edges pointing from dependency to dependent.

        Args:
            graph: Graph to render
            output_format: 'mermaid' or 'dot', case-insensitive

        Raises:
            ValueError: If the format is not supported
        """
        key = output_format.strip().lower()
        renderer = self.renderers.get(key)
        if renderer is None:
            msg = f"Unsupported format: {output_format!r}. Use one of: {', '.join(sorted(self.renderers))}"
            raise ValueError(msg)
        return renderer(graph.graph)
