"""Operator parameter resolution.

Parameters are resolved before any graph or plan work happens.  A required
parameter that is missing or empty is an error; nothing is ever replaced by
an empty string behind the operator's back.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any

from infragraph.errors import MissingParameterError, UnknownParameterError
from infragraph.models.resources import ParameterRef, ResourceDeclaration, transform
from infragraph.observability.logging import get_logger

_logger = get_logger("params")

ENV_PREFIX = "INFRAGRAPH_PARAM_"


@dataclass(frozen=True)
class ParameterDefinition:
    """A named string input supplied by the operator at deploy time."""

    name: str
    description: str = ""
    default: str | None = None

    @property
    def required(self) -> bool:
        return self.default is None

    @property
    def env_var(self) -> str:
        return ENV_PREFIX + self.name.upper()


class ParameterResolver:
    """Resolve supplied values against a set of parameter definitions."""

    def __init__(self, definitions: Iterable[ParameterDefinition]) -> None:
        self._definitions = {d.name: d for d in definitions}

    @property
    def definitions(self) -> list[ParameterDefinition]:
        return list(self._definitions.values())

    def resolve(
        self,
        supplied: Mapping[str, str] | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """Return the final value of every defined parameter.

        Precedence: explicitly supplied value, then ``INFRAGRAPH_PARAM_<NAME>``
        from *environ* (the process environment by default), then the default.
        An empty value counts as not supplied and is logged as ignored.

        Raises:
            UnknownParameterError: a supplied name is not defined.
            MissingParameterError: a required parameter has no non-empty value.
        """
        supplied = dict(supplied or {})
        environ = os.environ if environ is None else environ

        unknown = [name for name in supplied if name not in self._definitions]
        if unknown:
            raise UnknownParameterError(unknown)

        values: dict[str, str] = {}
        missing: list[str] = []
        for name, definition in self._definitions.items():
            value = supplied.get(name)
            if value == "":
                _logger.warning("parameter_empty_ignored", parameter=name, source="supplied")
                value = None
            if value is None:
                value = environ.get(definition.env_var)
                if value == "":
                    _logger.warning("parameter_empty_ignored", parameter=name, source=definition.env_var)
                    value = None
            if value is None:
                value = definition.default
            if value is None or value == "":
                missing.append(name)
                continue
            values[name] = value

        if missing:
            _logger.error("parameters_missing", missing=sorted(missing))
            raise MissingParameterError(missing)

        _logger.debug("parameters_resolved", names=sorted(values))
        return values


def substitute(
    declarations: Iterable[ResourceDeclaration],
    values: Mapping[str, str],
) -> list[ResourceDeclaration]:
    """Replace every ParameterRef in the declarations with its resolved value.

    Raises:
        MissingParameterError: a declaration refers to a parameter with no value.
    """
    unresolved: set[str] = set()

    def _swap(leaf: Any) -> Any:
        if isinstance(leaf, ParameterRef):
            if leaf.name not in values:
                unresolved.add(leaf.name)
                return leaf
            return values[leaf.name]
        return leaf

    result = [replace(decl, attributes=transform(decl.attributes, _swap)) for decl in declarations]
    if unresolved:
        raise MissingParameterError(sorted(unresolved))
    return result
