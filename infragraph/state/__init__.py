"""Last-applied state for infragraph.

Holds what the executor last materialized for each resource, so the plan
evaluator can tell creates, updates and no-ops apart.

Submodules:
    diff   -- Recursive JSON diff producing FieldChange lists, attribute hashing.
    store  -- In-memory state store with optional atomic JSON persistence.
"""

from infragraph.state.diff import attributes_hash, compute_diff
from infragraph.state.store import StateStore

__all__ = ["StateStore", "attributes_hash", "compute_diff"]
