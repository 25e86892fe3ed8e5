"""Provider capability interface and registry.

A provider owns all knowledge of one resource kind in the target system.
The planner and executor never call a target API directly; they go
through this narrow create / read / update / delete surface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from infragraph.errors import ProviderNotFoundError


@dataclass
class ProviderResult:
    """What a provider reports after creating or updating a resource."""

    physical_id: str
    outputs: dict[str, Any] = field(default_factory=dict)


class ResourceProvider(ABC):
    """Abstract base class for all providers.

    Implementations raise ``ProviderError`` on failure, with
    ``retryable=True`` for conditions worth retrying (throttling, timeouts,
    5xx responses).
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier used in logs and metrics."""

    @abstractmethod
    async def create(self, kind: str, name: str, attributes: dict[str, Any]) -> ProviderResult:
        """Create the resource and return its identity and outputs."""

    @abstractmethod
    async def read(self, kind: str, physical_id: str) -> dict[str, Any] | None:
        """Return current outputs, or None if the resource no longer exists."""

    @abstractmethod
    async def update(
        self,
        kind: str,
        physical_id: str,
        previous: dict[str, Any],
        attributes: dict[str, Any],
    ) -> ProviderResult:
        """Bring the resource from *previous* to *attributes*."""

    @abstractmethod
    async def delete(self, kind: str, physical_id: str) -> None:
        """Delete the resource.  Deleting a missing resource is not an error."""


class ProviderRegistry:
    """Maps resource kinds to providers, with an optional fallback."""

    def __init__(self, fallback: ResourceProvider | None = None) -> None:
        self._providers: dict[str, ResourceProvider] = {}
        self._fallback = fallback

    def register(self, kind: str, provider: ResourceProvider) -> None:
        self._providers[str(kind)] = provider

    def set_fallback(self, provider: ResourceProvider) -> None:
        self._fallback = provider

    def has(self, kind: str) -> bool:
        return str(kind) in self._providers or self._fallback is not None

    def get(self, kind: str) -> ResourceProvider:
        """Return the provider for *kind*.

        Raises:
            ProviderNotFoundError: nothing registered and no fallback.
        """
        provider = self._providers.get(str(kind), self._fallback)
        if provider is None:
            raise ProviderNotFoundError(str(kind))
        return provider

    def providers(self) -> list[ResourceProvider]:
        seen: list[ResourceProvider] = []
        for provider in [*self._providers.values(), self._fallback]:
            if provider is not None and provider not in seen:
                seen.append(provider)
        return seen
