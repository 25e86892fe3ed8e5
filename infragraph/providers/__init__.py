"""Built-in providers.

Exports:
    SimulatedProvider     -- Deterministic in-process target for dry runs and tests.
    HttpResourceProvider  -- Forwards CRUD calls to a remote provider service.
    build_registry        -- Factory used by the application bootstrap.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from infragraph.executor.provider import ProviderRegistry
from infragraph.observability.logging import get_logger
from infragraph.providers.http import HttpResourceProvider
from infragraph.providers.simulated import SimulatedProvider

if TYPE_CHECKING:
    from infragraph.models.config import ProviderConfig, TargetConfig

_log = get_logger("providers")

__all__ = ["HttpResourceProvider", "SimulatedProvider", "build_registry"]


def build_registry(config: ProviderConfig, target: TargetConfig) -> ProviderRegistry:
    """Build a registry whose fallback serves every resource kind.

    Raises:
        ValueError: http mode without an endpoint.
    """
    if config.mode == "http":
        if not config.endpoint:
            raise ValueError("INFRAGRAPH_PROVIDER_ENDPOINT is required when INFRAGRAPH_PROVIDER_MODE=http")
        provider = HttpResourceProvider(base_url=config.endpoint, timeout=float(config.timeout_seconds))
        _log.info("provider_selected", mode="http", endpoint=config.endpoint)
    else:
        provider = SimulatedProvider(account=target.account, region=target.region)
        _log.info("provider_selected", mode="simulated")
    return ProviderRegistry(fallback=provider)
