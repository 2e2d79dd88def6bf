"""Graph module for build task dependencies.

This module resolves execution plans, detects cycles and renders the build
graph, using Python's built-in graphlib for ready-set scheduling.
"""

from taskweave.graph.dependency_graph import (
    CyclicDependencyError,
    DependencyGraph,
    TaskNotFoundError,
)
from taskweave.graph.validator import GraphValidator, ValidationReport

__all__ = [
    "CyclicDependencyError",
    "DependencyGraph",
    "GraphValidator",
    "TaskNotFoundError",
    "ValidationReport",
]
