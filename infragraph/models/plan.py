"""Plan and apply result data structures."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from infragraph.models.resources import AppliedResource, FieldChange, ResourceDeclaration


class ActionType(StrEnum):
    """What the executor will do to a resource."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    NO_OP = "no_op"


class ActionStatus(StrEnum):
    """Outcome of a single planned action."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    COMPENSATED = "compensated"


class FailurePolicy(StrEnum):
    """What the executor does after the first fatal failure."""

    HALT = "halt"
    ROLLBACK = "rollback"


@dataclass
class PlannedAction:
    """One step of a plan.

    ``desired`` is None for deletes; ``previous`` is None for creates.
    """

    action: ActionType
    name: str
    kind: str
    desired: ResourceDeclaration | None = None
    previous: AppliedResource | None = None
    changes: list[FieldChange] = field(default_factory=list)
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "name": self.name,
            "kind": self.kind,
            "reason": self.reason,
            "changes": [
                {"field_path": c.field_path, "old_value": c.old_value, "new_value": c.new_value}
                for c in self.changes
            ],
        }


@dataclass
class Plan:
    """Ordered action list produced by the Plan Evaluator.

    Creates and updates come first in dependency order (leaves first),
    followed by deletes in reverse dependency order.
    """

    actions: list[PlannedAction] = field(default_factory=list)
    parameters: dict[str, str] = field(default_factory=dict)
    waves: list[list[str]] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))

    @property
    def changes(self) -> list[PlannedAction]:
        """Actions that modify the target system (everything but no_op)."""
        return [a for a in self.actions if a.action != ActionType.NO_OP]

    @property
    def has_changes(self) -> bool:
        return bool(self.changes)

    def get(self, name: str) -> PlannedAction | None:
        for action in self.actions:
            if action.name == name:
                return action
        return None

    def summary(self) -> dict[str, int]:
        counts = Counter(a.action.value for a in self.actions)
        return {t.value: counts.get(t.value, 0) for t in ActionType}

    def to_dict(self) -> dict[str, Any]:
        return {
            "created_at": self.created_at.isoformat(),
            "summary": self.summary(),
            "waves": self.waves,
            "actions": [a.to_dict() for a in self.actions],
        }


@dataclass
class ActionOutcome:
    """Result of executing (or skipping) one planned action."""

    action: PlannedAction
    status: ActionStatus
    error: str = ""
    attempts: int = 0
    duration_ms: float = 0.0
    # Set when the provider call went through but the state record did not.
    physical_id: str = ""


@dataclass
class ApplyResult:
    """Aggregate result returned by the Apply Executor."""

    policy: FailurePolicy
    outcomes: list[ActionOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return all(o.status == ActionStatus.SUCCEEDED for o in self.outcomes)

    @property
    def failed(self) -> list[ActionOutcome]:
        return [o for o in self.outcomes if o.status == ActionStatus.FAILED]

    def by_status(self, status: ActionStatus) -> list[str]:
        return [o.action.name for o in self.outcomes if o.status == status]

    def to_dict(self) -> dict[str, Any]:
        return {
            "policy": self.policy.value,
            "succeeded": self.succeeded,
            "outcomes": [
                {
                    "name": o.action.name,
                    "action": o.action.action.value,
                    "status": o.status.value,
                    "error": o.error,
                    "attempts": o.attempts,
                    "duration_ms": round(o.duration_ms, 2),
                    "physical_id": o.physical_id,
                }
                for o in self.outcomes
            ],
        }
