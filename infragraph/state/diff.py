"""Recursive JSON diff producing FieldChange lists."""

from __future__ import annotations

import hashlib
import json
from typing import Any

from infragraph.models.resources import FieldChange

_MISSING = object()


def compute_diff(old: Any, new: Any, path: str = "") -> list[FieldChange]:
    """Return every leaf difference between *old* and *new*.

    Paths are dotted for dict keys and use ``[i]`` for list indices.  Added
    keys have ``old_value=None``; removed keys have ``new_value=None``.
    """
    changes: list[FieldChange] = []
    _diff(old, new, path, changes)
    return changes


def _diff(old: Any, new: Any, path: str, out: list[FieldChange]) -> None:
    if isinstance(old, dict) and isinstance(new, dict):
        for key in sorted(set(old) | set(new), key=str):
            child = f"{path}.{key}" if path else str(key)
            _diff(old.get(key, _MISSING), new.get(key, _MISSING), child, out)
        return
    if isinstance(old, list) and isinstance(new, list):
        for i in range(max(len(old), len(new))):
            _diff(
                old[i] if i < len(old) else _MISSING,
                new[i] if i < len(new) else _MISSING,
                f"{path}[{i}]",
                out,
            )
        return
    if old is _MISSING and new is _MISSING:
        return
    if old is _MISSING or new is _MISSING or old != new or type(old) is not type(new):
        out.append(
            FieldChange(
                field_path=path,
                old_value=None if old is _MISSING else old,
                new_value=None if new is _MISSING else new,
            )
        )


def attributes_hash(attributes: dict[str, Any]) -> str:
    """Stable sha256 over the canonical JSON form of *attributes*."""
    canonical = json.dumps(attributes, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
