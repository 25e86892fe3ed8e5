"""In-memory dependency graph over declared resources.

Nodes are keyed by resource name.  An edge ``a -> b`` means *a depends on
b*, so b must be materialized before a and destroyed after it.
"""

from __future__ import annotations

import heapq
from collections import deque
from collections.abc import Iterable, Iterator
from typing import Any

from infragraph.errors import CycleError, UnknownReferenceError
from infragraph.graph.models import DependencyResult, EdgeType, GraphEdge, GraphNode
from infragraph.models.resources import Ref, ResourceDeclaration
from infragraph.observability.logging import get_logger

_logger = get_logger("graph")

_DEFAULT_MAX_DEPTH = 10


class DependencyGraph:
    """Directed graph of resources and their dependencies."""

    def __init__(self) -> None:
        self._nodes: dict[str, GraphNode] = {}
        # name -> edges leaving this node (towards its dependencies)
        self._outgoing: dict[str, list[GraphEdge]] = {}
        # name -> edges arriving at this node (from its dependents)
        self._incoming: dict[str, list[GraphEdge]] = {}

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_resource(self, kind: str, name: str) -> GraphNode:
        node = GraphNode(kind=str(kind), name=name)
        self._nodes[name] = node
        self._outgoing.setdefault(name, [])
        self._incoming.setdefault(name, [])
        return node

    def add_dependency(
        self,
        source: str,
        target: str,
        edge_type: EdgeType,
        source_field: str = "",
    ) -> None:
        """Record that *source* depends on *target*.

        Raises:
            UnknownReferenceError: if either end is not in the graph.
        """
        if source not in self._nodes:
            raise UnknownReferenceError(source, source)
        if target not in self._nodes:
            raise UnknownReferenceError(source, target)
        for existing in self._outgoing[source]:
            if (
                existing.target.name == target
                and existing.edge_type == edge_type
                and existing.source_field == source_field
            ):
                return
        edge = GraphEdge(
            source=self._nodes[source],
            target=self._nodes[target],
            edge_type=edge_type,
            source_field=source_field,
        )
        self._outgoing[source].append(edge)
        self._incoming[target].append(edge)

    def remove_resource(self, name: str) -> None:
        """Remove a node and every edge touching it.  Unknown names are ignored."""
        if name not in self._nodes:
            return
        for edge in self._outgoing.pop(name, []):
            self._incoming[edge.target.name] = [
                e for e in self._incoming[edge.target.name] if e.source.name != name
            ]
        for edge in self._incoming.pop(name, []):
            if edge.source.name in self._outgoing:
                self._outgoing[edge.source.name] = [
                    e for e in self._outgoing[edge.source.name] if e.target.name != name
                ]
        del self._nodes[name]

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def edge_count(self) -> int:
        return sum(len(edges) for edges in self._outgoing.values())

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def node(self, name: str) -> GraphNode | None:
        return self._nodes.get(name)

    def nodes(self) -> list[GraphNode]:
        return [self._nodes[n] for n in sorted(self._nodes)]

    def edges(self) -> list[GraphEdge]:
        return [e for name in sorted(self._outgoing) for e in self._outgoing[name]]

    def dependencies(self, name: str) -> set[str]:
        """Direct dependencies of *name*."""
        return {e.target.name for e in self._outgoing.get(name, [])}

    def dependents(self, name: str) -> set[str]:
        """Resources that directly depend on *name*."""
        return {e.source.name for e in self._incoming.get(name, [])}

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def topological_order(self) -> list[str]:
        """Return resource names with dependencies before dependents.

        Ties are broken alphabetically so the order is stable across runs.

        Raises:
            CycleError: if the graph is not acyclic.
        """
        remaining = {name: len(self.dependencies(name)) for name in self._nodes}
        ready = [name for name, count in remaining.items() if count == 0]
        heapq.heapify(ready)
        order: list[str] = []

        while ready:
            name = heapq.heappop(ready)
            order.append(name)
            for dependent in self.dependents(name):
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    heapq.heappush(ready, dependent)

        if len(order) != len(self._nodes):
            cycle = self.find_cycle() or sorted(set(self._nodes) - set(order))
            _logger.warning("dependency_cycle_detected", cycle=cycle)
            raise CycleError(cycle)
        return order

    def levels(self) -> list[list[str]]:
        """Group resources into waves that can be materialized together.

        Every resource in wave n depends only on resources in earlier waves.
        """
        depth: dict[str, int] = {}
        for name in self.topological_order():
            deps = self.dependencies(name)
            depth[name] = 1 + max((depth[d] for d in deps), default=-1)
        waves: list[list[str]] = [[] for _ in range(max(depth.values(), default=-1) + 1)]
        for name, level in depth.items():
            waves[level].append(name)
        return [sorted(wave) for wave in waves]

    def find_cycle(self) -> list[str] | None:
        """Return one cycle as a closed path (first == last), or None."""
        white, grey, black = 0, 1, 2
        colour = dict.fromkeys(self._nodes, white)
        stack: list[str] = []

        def visit(name: str) -> list[str] | None:
            colour[name] = grey
            stack.append(name)
            for dep in sorted(self.dependencies(name)):
                if colour[dep] == grey:
                    return stack[stack.index(dep) :] + [dep]
                if colour[dep] == white:
                    found = visit(dep)
                    if found:
                        return found
            stack.pop()
            colour[name] = black
            return None

        for name in sorted(self._nodes):
            if colour[name] == white:
                found = visit(name)
                if found:
                    return found
        return None

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def dependencies_of(self, name: str, max_depth: int = _DEFAULT_MAX_DEPTH) -> DependencyResult:
        """Everything *name* transitively depends on, up to *max_depth* hops."""
        return self._traverse(name, max_depth, self._outgoing, lambda e: e.target)

    def dependents_of(self, name: str, max_depth: int = _DEFAULT_MAX_DEPTH) -> DependencyResult:
        """Everything that transitively depends on *name* (the blast radius)."""
        return self._traverse(name, max_depth, self._incoming, lambda e: e.source)

    def _traverse(
        self,
        name: str,
        max_depth: int,
        adjacency: dict[str, list[GraphEdge]],
        far_end: Any,
    ) -> DependencyResult:
        result = DependencyResult()
        if name not in self._nodes:
            return result

        seen = {name}
        queue: deque[tuple[str, int]] = deque([(name, 0)])
        while queue:
            current, depth = queue.popleft()
            for edge in adjacency.get(current, []):
                nxt: GraphNode = far_end(edge)
                if depth >= max_depth:
                    result.truncated = True
                    continue
                result.edges.append(edge)
                if nxt.name in seen:
                    continue
                seen.add(nxt.name)
                result.resources.append(nxt)
                result.depth_reached = max(result.depth_reached, depth + 1)
                queue.append((nxt.name, depth + 1))
        return result


def build_graph(declarations: Iterable[ResourceDeclaration]) -> DependencyGraph:
    """Build a graph from declarations, inferring edges from references.

    Raises:
        UnknownReferenceError: a Ref or depends_on names an undeclared resource.
    """
    declarations = list(declarations)
    graph = DependencyGraph()
    for decl in declarations:
        graph.add_resource(decl.kind, decl.name)

    for decl in declarations:
        for path, ref in _refs_with_paths(decl.attributes, ""):
            if ref.resource not in graph:
                raise UnknownReferenceError(decl.name, ref.resource)
            graph.add_dependency(decl.name, ref.resource, EdgeType.REFERENCE, source_field=path)
        for target in decl.depends_on:
            if target not in graph:
                raise UnknownReferenceError(decl.name, target)
            graph.add_dependency(decl.name, target, EdgeType.EXPLICIT)

    _logger.debug("graph_built", nodes=graph.node_count, edges=graph.edge_count)
    return graph


def _refs_with_paths(value: Any, path: str) -> Iterator[tuple[str, Ref]]:
    if isinstance(value, Ref):
        yield path, value
    elif isinstance(value, dict):
        for key, item in value.items():
            yield from _refs_with_paths(item, f"{path}.{key}" if path else str(key))
    elif isinstance(value, (list, tuple)):
        for i, item in enumerate(value):
            yield from _refs_with_paths(item, f"{path}[{i}]")
