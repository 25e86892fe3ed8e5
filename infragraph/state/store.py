"""Last-applied state store with optional JSON file persistence.

The file format is::

    {"version": 1, "stack": "...", "serial": 7, "resources": {name: {...}}}

Writes go to a temporary file in the same directory and are renamed over
the existing one, so a crash never leaves a half-written state file.  The
serial number increases on every save; saving over a file whose serial is
newer than the one this store loaded is refused.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

from infragraph.errors import StateError
from infragraph.models.resources import AppliedResource
from infragraph.observability.logging import get_logger

_logger = get_logger("state")

STATE_FORMAT_VERSION = 1


class StateStore:
    """Map of resource name to its last-applied record."""

    def __init__(self, stack: str = "", path: str | Path | None = None) -> None:
        self.stack = stack
        self._path = Path(path) if path else None
        self._resources: dict[str, AppliedResource] = {}
        self._serial = 0

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def serial(self) -> int:
        return self._serial

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def get(self, name: str) -> AppliedResource | None:
        return self._resources.get(name)

    def put(self, record: AppliedResource) -> None:
        self._resources[record.name] = record

    def remove(self, name: str) -> AppliedResource | None:
        return self._resources.pop(name, None)

    def all(self) -> list[AppliedResource]:
        return [self._resources[n] for n in sorted(self._resources)]

    def __contains__(self, name: object) -> bool:
        return name in self._resources

    def __len__(self) -> int:
        return len(self._resources)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Read the state file.  A missing file means empty state.

        Raises:
            StateError: unreadable file, unknown format version, or a file
                that belongs to a different stack.
        """
        if self._path is None or not self._path.exists():
            return
        data = self._read_file(self._path)
        version = data.get("version")
        if version != STATE_FORMAT_VERSION:
            raise StateError(
                f"Unsupported state file version {version!r} in {self._path}",
                user_action=f"Upgrade infragraph or migrate the state file to version {STATE_FORMAT_VERSION}",
            )
        file_stack = data.get("stack", "")
        if self.stack and file_stack and file_stack != self.stack:
            raise StateError(f"State file {self._path} belongs to stack '{file_stack}', not '{self.stack}'")
        try:
            self._resources = {
                name: AppliedResource.from_dict(record) for name, record in data.get("resources", {}).items()
            }
        except (KeyError, ValueError, TypeError) as exc:
            raise StateError(f"Malformed resource record in {self._path}: {exc}") from exc
        self._serial = int(data.get("serial", 0))
        _logger.info("state_loaded", path=str(self._path), resources=len(self._resources), serial=self._serial)

    def save(self) -> None:
        """Atomically write the state file.  No-op for in-memory stores.

        Raises:
            StateError: the file on disk was written by someone else since
                this store loaded it.
        """
        if self._path is None:
            return
        if self._path.exists():
            on_disk = int(self._read_file(self._path).get("serial", 0))
            if on_disk > self._serial:
                raise StateError(
                    f"State file {self._path} has serial {on_disk}, newer than loaded serial {self._serial}",
                    user_action="Another run updated the state; re-run plan against the latest state",
                )

        payload = {
            "version": STATE_FORMAT_VERSION,
            "stack": self.stack,
            "serial": self._serial + 1,
            "resources": {r.name: r.to_dict() for r in self.all()},
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".state-", suffix=".json", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2, sort_keys=True)
                fh.write("\n")
            os.replace(tmp_name, self._path)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise StateError(f"Could not write state file {self._path}: {exc}") from exc
        self._serial += 1
        _logger.debug("state_saved", path=str(self._path), serial=self._serial)

    @staticmethod
    def _read_file(path: Path) -> dict:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise StateError(f"Could not read state file {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StateError(f"State file {path} is not a JSON object")
        return data
