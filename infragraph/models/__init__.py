"""Core data structures for infragraph."""

from infragraph.models.config import InfraGraphConfig
from infragraph.models.plan import (
    ActionOutcome,
    ActionStatus,
    ActionType,
    ApplyResult,
    FailurePolicy,
    Plan,
    PlannedAction,
)
from infragraph.models.resources import (
    AppliedResource,
    FieldChange,
    ParameterRef,
    Ref,
    ResourceDeclaration,
    ResourceKind,
)

__all__ = [
    "ActionOutcome",
    "ActionStatus",
    "ActionType",
    "AppliedResource",
    "ApplyResult",
    "FailurePolicy",
    "FieldChange",
    "InfraGraphConfig",
    "ParameterRef",
    "Plan",
    "PlannedAction",
    "Ref",
    "ResourceDeclaration",
    "ResourceKind",
]
