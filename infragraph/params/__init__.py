"""Parameter resolution: operator inputs substituted into declarations."""

from infragraph.params.resolver import ParameterDefinition, ParameterResolver, substitute

__all__ = ["ParameterDefinition", "ParameterResolver", "substitute"]
