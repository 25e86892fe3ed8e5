"""Data structures for the resource dependency graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class EdgeType(StrEnum):
    """Why one resource depends on another."""

    REFERENCE = "reference"
    EXPLICIT = "explicit"


@dataclass(frozen=True)
class GraphNode:
    """A node in the dependency graph representing a declared resource."""

    kind: str
    name: str

    @property
    def key(self) -> str:
        """Return the unique key for this node."""
        return self.name


@dataclass(frozen=True)
class GraphEdge:
    """A typed edge from a dependent resource to its dependency."""

    source: GraphNode
    target: GraphNode
    edge_type: EdgeType
    source_field: str = ""  # attribute the reference was found in, empty for depends_on


@dataclass
class DependencyResult:
    """Result of a graph traversal query."""

    resources: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)
    depth_reached: int = 0
    truncated: bool = False  # True if max_depth hit before exhausting graph
