"""Built-in stack blueprints, addressable by name from the CLI and API."""

from __future__ import annotations

from collections.abc import Callable

from infragraph.blueprints.eks_platform import DEFAULT_STACK_NAME, build_platform_stack
from infragraph.errors import DeclarationError
from infragraph.models.config import TargetConfig
from infragraph.stack import Stack

BlueprintFactory = Callable[[TargetConfig], Stack]

BLUEPRINTS: dict[str, BlueprintFactory] = {
    "eks-platform": build_platform_stack,
}

DEFAULT_BLUEPRINT = "eks-platform"

__all__ = ["BLUEPRINTS", "DEFAULT_BLUEPRINT", "DEFAULT_STACK_NAME", "build_platform_stack", "load_blueprint"]


def load_blueprint(name: str, target: TargetConfig) -> Stack:
    """Instantiate the named blueprint for *target*."""
    factory = BLUEPRINTS.get(name)
    if factory is None:
        raise DeclarationError(f"Unknown blueprint '{name}'. Available: {', '.join(sorted(BLUEPRINTS))}")
    return factory(target)
