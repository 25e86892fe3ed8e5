"""Error hierarchy for infragraph.

Every error carries a category and, where there is one, the action the
operator should take.  The CLI and REST API map these to exit codes and
error envelopes.
"""

from __future__ import annotations


class InfraGraphError(Exception):
    """Base class for all infragraph errors."""

    category = "internal"

    def __init__(self, message: str, user_action: str | None = None) -> None:
        super().__init__(message)
        self.user_action = user_action

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.user_action:
            return f"{base_msg}\nAction required: {self.user_action}"
        return base_msg


class DeclarationError(InfraGraphError):
    """Invalid stack declaration (duplicate names, bad kinds)."""

    category = "declaration"


class ParameterError(InfraGraphError):
    """Problem with operator-supplied parameters."""

    category = "parameter"


class MissingParameterError(ParameterError):
    """One or more required parameters were not supplied."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = sorted(missing)
        super().__init__(
            f"Missing required parameters: {', '.join(self.missing)}",
            user_action="Pass each one with --parameter NAME=VALUE or INFRAGRAPH_PARAM_<NAME>",
        )


class UnknownParameterError(ParameterError):
    """A supplied parameter is not defined by the stack."""

    def __init__(self, unknown: list[str]) -> None:
        self.unknown = sorted(unknown)
        super().__init__(f"Unknown parameters: {', '.join(self.unknown)}")


class GraphError(InfraGraphError):
    """The declared resources do not form a valid dependency graph."""

    category = "graph"


class CycleError(GraphError):
    """The dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(
            f"Dependency cycle detected: {' -> '.join(cycle)}",
            user_action="Remove one of the references or depends_on entries in the cycle",
        )


class UnknownReferenceError(GraphError):
    """A reference or depends_on entry names an undeclared resource."""

    def __init__(self, source: str, target: str) -> None:
        self.source = source
        self.target = target
        super().__init__(f"Resource '{source}' references undeclared resource '{target}'")


class StateError(InfraGraphError):
    """The state file is unreadable, of an unknown version, or stale."""

    category = "state"


class ProviderError(InfraGraphError):
    """A provider call failed.

    ``retryable`` failures are retried by the executor with back-off;
    anything else is fatal for the action.
    """

    category = "provider"

    def __init__(self, message: str, retryable: bool = False, user_action: str | None = None) -> None:
        super().__init__(message, user_action=user_action)
        self.retryable = retryable


class ProviderNotFoundError(ProviderError):
    """No provider is registered for a resource kind."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(
            f"No provider registered for resource kind '{kind}'",
            retryable=False,
            user_action="Register a provider for this kind or set a fallback provider",
        )
