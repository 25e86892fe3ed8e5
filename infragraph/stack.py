"""Stack: the collection point for parameter and resource declarations."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from infragraph.errors import DeclarationError
from infragraph.graph import build_graph
from infragraph.models.config import TargetConfig
from infragraph.models.resources import (
    ParameterRef,
    Ref,
    ResourceDeclaration,
    ResourceKind,
    iter_parameter_refs,
    transform,
)
from infragraph.params import ParameterDefinition

SYNTH_FORMAT_VERSION = 1


class Stack:
    """An ordered set of declarations targeting one account and region.

    Declaring never touches the target system; ``synthesize`` renders the
    deployment-plan artifact and the planner consumes ``declarations``.
    """

    def __init__(self, name: str, target: TargetConfig | None = None) -> None:
        self.name = name
        self.target = target or TargetConfig()
        self._parameters: dict[str, ParameterDefinition] = {}
        self._resources: dict[str, ResourceDeclaration] = {}

    def add_parameter(self, name: str, description: str = "", default: str | None = None) -> ParameterRef:
        if name in self._parameters:
            raise DeclarationError(f"Parameter '{name}' is already declared in stack '{self.name}'")
        self._parameters[name] = ParameterDefinition(name=name, description=description, default=default)
        return ParameterRef(name)

    def add(
        self,
        kind: ResourceKind | str,
        name: str,
        attributes: dict[str, Any] | None = None,
        depends_on: Iterable[str | ResourceDeclaration] = (),
    ) -> ResourceDeclaration:
        if not name:
            raise DeclarationError("Resource name must not be empty")
        if name in self._resources:
            raise DeclarationError(f"Resource '{name}' is already declared in stack '{self.name}'")
        try:
            resource_kind = ResourceKind(kind)
        except ValueError as exc:
            raise DeclarationError(f"Unknown resource kind '{kind}' for '{name}'") from exc

        attributes = dict(attributes or {})
        for param in iter_parameter_refs(attributes):
            if param.name not in self._parameters:
                raise DeclarationError(f"Resource '{name}' uses undeclared parameter '{param.name}'")

        decl = ResourceDeclaration(
            kind=resource_kind,
            name=name,
            attributes=attributes,
            depends_on=tuple(d.name if isinstance(d, ResourceDeclaration) else d for d in depends_on),
        )
        self._resources[name] = decl
        return decl

    @property
    def parameters(self) -> list[ParameterDefinition]:
        return list(self._parameters.values())

    @property
    def declarations(self) -> list[ResourceDeclaration]:
        return list(self._resources.values())

    def get(self, name: str) -> ResourceDeclaration | None:
        return self._resources.get(name)

    def synthesize(self) -> dict[str, Any]:
        """Render the stack as a JSON-serialisable deployment artifact.

        Validates the graph first, so a synthesized artifact is always
        acyclic and free of dangling references.
        """
        graph = build_graph(self.declarations)
        graph.topological_order()

        return {
            "format_version": SYNTH_FORMAT_VERSION,
            "stack": self.name,
            "target": {"account": self.target.account, "region": self.target.region},
            "parameters": {
                p.name: {"description": p.description, "default": p.default, "required": p.required}
                for p in self.parameters
            },
            "resources": {
                decl.name: {
                    "kind": decl.kind.value,
                    "attributes": transform(decl.attributes, _render_token),
                    "depends_on": sorted(graph.dependencies(decl.name)),
                }
                for decl in self.declarations
            },
        }


def _render_token(leaf: Ref | ParameterRef) -> dict[str, str]:
    if isinstance(leaf, Ref):
        return {"ref": str(leaf)}
    return {"param": leaf.name}
