"""Apply Executor and the provider capability interface.

Exports:
    ApplyExecutor      -- Runs a Plan wave by wave with retry, halt and rollback.
    ResourceProvider   -- ABC for per-kind create / read / update / delete.
    ProviderRegistry   -- Resource kind to provider lookup with a fallback.
    ProviderResult     -- Physical id and outputs returned by create / update.
"""

from infragraph.executor.executor import ApplyExecutor
from infragraph.executor.provider import ProviderRegistry, ProviderResult, ResourceProvider

__all__ = ["ApplyExecutor", "ProviderRegistry", "ProviderResult", "ResourceProvider"]
