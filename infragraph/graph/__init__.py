"""Resource dependency graph.

Builds a directed acyclic graph from resource declarations.  Edges point
from a dependent resource to the resource it depends on and come from
attribute references (Ref values) and explicit depends_on entries.
"""

from infragraph.graph.dependency_graph import DependencyGraph, build_graph
from infragraph.graph.models import DependencyResult, EdgeType, GraphEdge, GraphNode

__all__ = [
    "DependencyGraph",
    "DependencyResult",
    "EdgeType",
    "GraphEdge",
    "GraphNode",
    "build_graph",
]
