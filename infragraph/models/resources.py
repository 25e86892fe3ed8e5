"""Declared and applied resource data structures."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class ResourceKind(StrEnum):
    """Kinds of resources a stack can declare."""

    NETWORK = "network"
    SUBNET = "subnet"
    ENDPOINT = "endpoint"
    ROLE = "role"
    CLUSTER = "cluster"
    NODE_GROUP = "node_group"
    ADDON = "addon"
    CUSTOM = "custom"


@dataclass(frozen=True)
class Ref:
    """Reference to an output attribute of another declared resource."""

    resource: str
    attribute: str

    def __str__(self) -> str:
        return f"{self.resource}.{self.attribute}"


@dataclass(frozen=True)
class ParameterRef:
    """Placeholder for an operator-supplied parameter value."""

    name: str

    def __str__(self) -> str:
        return f"param:{self.name}"


@dataclass(frozen=True)
class ResourceDeclaration:
    """A single desired resource.

    ``attributes`` may contain Ref and ParameterRef values at any depth
    inside dicts and lists.  ``depends_on`` lists resource names that must
    be materialized first even though no attribute references them.
    """

    kind: ResourceKind
    name: str
    attributes: dict[str, Any] = field(default_factory=dict)
    depends_on: tuple[str, ...] = ()

    @property
    def key(self) -> str:
        return f"{self.kind}/{self.name}"

    def ref(self, attribute: str) -> Ref:
        """Return a reference to one of this resource's outputs."""
        return Ref(self.name, attribute)

    def references(self) -> list[Ref]:
        """All Refs contained in this declaration's attributes."""
        return list(iter_refs(self.attributes))


@dataclass(frozen=True)
class FieldChange:
    """A single attribute difference between two resource versions."""

    field_path: str
    old_value: Any
    new_value: Any


@dataclass
class AppliedResource:
    """Last-known-applied record of a resource in the target system."""

    kind: ResourceKind
    name: str
    physical_id: str
    attributes: dict[str, Any] = field(default_factory=dict)
    outputs: dict[str, Any] = field(default_factory=dict)
    attributes_hash: str = ""
    dependencies: list[str] = field(default_factory=list)
    applied_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "name": self.name,
            "physical_id": self.physical_id,
            "attributes": self.attributes,
            "outputs": self.outputs,
            "attributes_hash": self.attributes_hash,
            "dependencies": self.dependencies,
            "applied_at": self.applied_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppliedResource:
        return cls(
            kind=ResourceKind(data["kind"]),
            name=data["name"],
            physical_id=data["physical_id"],
            attributes=data.get("attributes", {}),
            outputs=data.get("outputs", {}),
            attributes_hash=data.get("attributes_hash", ""),
            dependencies=list(data.get("dependencies", [])),
            applied_at=datetime.fromisoformat(data["applied_at"]),
        )


def iter_refs(value: Any) -> Iterator[Ref]:
    """Yield every Ref nested inside *value*."""
    if isinstance(value, Ref):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_refs(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_refs(item)


def iter_parameter_refs(value: Any) -> Iterator[ParameterRef]:
    """Yield every ParameterRef nested inside *value*."""
    if isinstance(value, ParameterRef):
        yield value
    elif isinstance(value, dict):
        for item in value.values():
            yield from iter_parameter_refs(item)
    elif isinstance(value, (list, tuple)):
        for item in value:
            yield from iter_parameter_refs(item)


def transform(value: Any, fn: Callable[[Any], Any]) -> Any:
    """Rebuild *value* with *fn* applied to every Ref and ParameterRef leaf.

    Tuples come back as lists so the result is JSON-compatible.
    """
    if isinstance(value, (Ref, ParameterRef)):
        return fn(value)
    if isinstance(value, dict):
        return {k: transform(v, fn) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [transform(v, fn) for v in value]
    return value
