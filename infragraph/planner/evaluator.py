"""Plan Evaluator: desired declarations vs last-applied state.

Walks the dependency graph leaves-first and decides, per resource, whether
it must be created, updated, or left alone.  Resources recorded in state
but no longer declared are deleted, dependents first.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from infragraph.errors import DeclarationError
from infragraph.graph import DependencyGraph, EdgeType, build_graph
from infragraph.models.plan import ActionType, Plan, PlannedAction
from infragraph.models.resources import AppliedResource, Ref, ResourceDeclaration, transform
from infragraph.observability.logging import get_logger
from infragraph.observability.metrics import plans_total
from infragraph.params import substitute
from infragraph.state import StateStore, compute_diff

_logger = get_logger("planner")

UNKNOWN_PREFIX = "<known after apply: "


def unknown_marker(ref: Ref) -> str:
    """Placeholder for a referenced output that does not exist yet."""
    return f"{UNKNOWN_PREFIX}{ref}>"


class PlanEvaluator:
    """Produce an ordered Plan from declarations and a StateStore."""

    def __init__(self, state: StateStore) -> None:
        self._state = state

    def plan(
        self,
        declarations: Iterable[ResourceDeclaration],
        parameters: Mapping[str, str] | None = None,
    ) -> Plan:
        """Compute the action list.

        *parameters* must already be resolved (see ParameterResolver); any
        ParameterRef left without a value fails the plan.

        Raises:
            MissingParameterError, CycleError, UnknownReferenceError,
            DeclarationError.
        """
        parameters = dict(parameters or {})
        resolved = substitute(declarations, parameters)
        by_name = {d.name: d for d in resolved}

        graph = build_graph(resolved)
        order = graph.topological_order()

        actions: dict[str, PlannedAction] = {}
        for name in order:
            actions[name] = self._evaluate(by_name[name], actions)

        orphans = [r for r in self._state.all() if r.name not in by_name]
        delete_waves = self._delete_waves(orphans)
        for wave in delete_waves:
            for name in wave:
                record = self._state.get(name)
                assert record is not None
                actions[name] = PlannedAction(
                    action=ActionType.DELETE,
                    name=name,
                    kind=record.kind.value,
                    previous=record,
                    reason="no longer declared",
                )

        plan = Plan(
            actions=[actions[n] for n in order] + [actions[n] for wave in delete_waves for n in wave],
            parameters=parameters,
            waves=graph.levels() + delete_waves,
        )
        plans_total.labels(has_changes=str(plan.has_changes).lower()).inc()
        _logger.info("plan_computed", **plan.summary())
        return plan

    def _evaluate(self, decl: ResourceDeclaration, upstream: dict[str, PlannedAction]) -> PlannedAction:
        previous = self._state.get(decl.name)
        desired = render_attributes(decl, self._state, upstream)

        if previous is None:
            return PlannedAction(
                action=ActionType.CREATE,
                name=decl.name,
                kind=decl.kind.value,
                desired=decl,
                changes=compute_diff({}, desired),
                reason="not in state",
            )

        if previous.kind != decl.kind:
            raise DeclarationError(
                f"Resource '{decl.name}' changes kind from {previous.kind} to {decl.kind}",
                user_action="Rename the resource or destroy the old one first",
            )

        changes = compute_diff(previous.attributes, desired)
        if not changes:
            return PlannedAction(
                action=ActionType.NO_OP,
                name=decl.name,
                kind=decl.kind.value,
                desired=decl,
                previous=previous,
                reason="unchanged",
            )
        return PlannedAction(
            action=ActionType.UPDATE,
            name=decl.name,
            kind=decl.kind.value,
            desired=decl,
            previous=previous,
            changes=changes,
            reason=f"{len(changes)} attribute(s) changed",
        )

    @staticmethod
    def _delete_waves(orphans: list[AppliedResource]) -> list[list[str]]:
        """Order orphaned records so dependents are deleted before dependencies."""
        if not orphans:
            return []
        graph = DependencyGraph()
        for record in orphans:
            graph.add_resource(record.kind.value, record.name)
        for record in orphans:
            for dep in record.dependencies:
                if dep in graph:
                    graph.add_dependency(record.name, dep, EdgeType.EXPLICIT)
        return list(reversed(graph.levels()))


def render_attributes(
    decl: ResourceDeclaration,
    state: StateStore,
    upstream: Mapping[str, PlannedAction] | None = None,
) -> dict[str, Any]:
    """Substitute Refs with outputs recorded in state.

    A Ref whose target is about to be created, or has no such output yet,
    renders as an unknown marker so the comparison reports a change.
    """
    upstream = upstream or {}

    def _lookup(leaf: Any) -> Any:
        if not isinstance(leaf, Ref):
            return leaf
        pending = upstream.get(leaf.resource)
        if pending is not None and pending.action == ActionType.CREATE:
            return unknown_marker(leaf)
        record = state.get(leaf.resource)
        if record is None or leaf.attribute not in record.outputs:
            return unknown_marker(leaf)
        return record.outputs[leaf.attribute]

    return transform(decl.attributes, _lookup)
