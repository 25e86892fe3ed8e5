"""Deterministic in-process provider.

Stands in for the cloud API during dry runs and tests.  Physical ids and
outputs are derived from kind and name only, so repeated runs produce the
same identifiers and plans stay idempotent.
"""

from __future__ import annotations

import asyncio
import hashlib
from typing import Any

from infragraph.errors import ProviderError
from infragraph.executor.provider import ProviderResult, ResourceProvider
from infragraph.models.resources import ResourceKind
from infragraph.observability.logging import get_logger

_logger = get_logger("providers.simulated")


class SimulatedProvider(ResourceProvider):
    """Keeps resources in a dict and fabricates realistic outputs.

    Args:
        account:   Account id used in fabricated ARNs.
        region:    Region used in fabricated ARNs and endpoints.
        fail:      Resource names whose create / update always fails fatally.
        flaky:     Resource name -> number of retryable failures to raise
                   before succeeding.
    """

    def __init__(
        self,
        account: str = "000000000000",
        region: str = "eu-west-1",
        fail: set[str] | None = None,
        flaky: dict[str, int] | None = None,
    ) -> None:
        self._account = account or "000000000000"
        self._region = region
        self._fail = set(fail or ())
        self._flaky = dict(flaky or {})
        self.resources: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str]] = []

    @property
    def name(self) -> str:
        return "simulated"

    async def create(self, kind: str, name: str, attributes: dict[str, Any]) -> ProviderResult:
        await asyncio.sleep(0)
        self.calls.append(("create", name))
        self._maybe_fail(name)
        physical_id = self._physical_id(kind, name)
        outputs = self._outputs(kind, name, physical_id, attributes)
        self.resources[physical_id] = {"kind": kind, "name": name, "attributes": attributes, "outputs": outputs}
        _logger.debug("simulated_create", kind=kind, resource=name, physical_id=physical_id)
        return ProviderResult(physical_id=physical_id, outputs=outputs)

    async def read(self, kind: str, physical_id: str) -> dict[str, Any] | None:
        await asyncio.sleep(0)
        entry = self.resources.get(physical_id)
        return dict(entry["outputs"]) if entry else None

    async def update(
        self,
        kind: str,
        physical_id: str,
        previous: dict[str, Any],
        attributes: dict[str, Any],
    ) -> ProviderResult:
        await asyncio.sleep(0)
        entry = self.resources.get(physical_id)
        name = entry["name"] if entry else _name_from_id(physical_id)
        self.calls.append(("update", name))
        self._maybe_fail(name)
        outputs = self._outputs(kind, name, physical_id, attributes)
        self.resources[physical_id] = {"kind": kind, "name": name, "attributes": attributes, "outputs": outputs}
        return ProviderResult(physical_id=physical_id, outputs=outputs)

    async def delete(self, kind: str, physical_id: str) -> None:
        await asyncio.sleep(0)
        entry = self.resources.pop(physical_id, None)
        self.calls.append(("delete", entry["name"] if entry else _name_from_id(physical_id)))

    def _maybe_fail(self, name: str) -> None:
        if name in self._fail:
            raise ProviderError(f"simulated failure for '{name}'")
        remaining = self._flaky.get(name, 0)
        if remaining > 0:
            self._flaky[name] = remaining - 1
            raise ProviderError(f"simulated throttling for '{name}'", retryable=True)

    @staticmethod
    def _physical_id(kind: str, name: str) -> str:
        digest = hashlib.sha256(f"{kind}/{name}".encode()).hexdigest()[:8]
        return f"{name}-{digest}"

    def _outputs(self, kind: str, name: str, physical_id: str, attributes: dict[str, Any]) -> dict[str, Any]:
        outputs: dict[str, Any] = {
            "id": physical_id,
            "name": name,
            "arn": f"arn:aws:{kind}:{self._region}:{self._account}:{name}",
        }
        if kind == ResourceKind.NETWORK:
            azs = int(attributes.get("max_azs", 2))
            outputs["vpc_id"] = physical_id
            outputs["public_subnet_ids"] = [f"{physical_id}-public-{i}" for i in range(azs)]
            outputs["private_subnet_ids"] = [f"{physical_id}-private-{i}" for i in range(azs)]
        elif kind == ResourceKind.ROLE:
            outputs["arn"] = f"arn:aws:iam::{self._account}:role/{name}"
        elif kind == ResourceKind.CLUSTER:
            outputs["endpoint"] = f"https://{physical_id}.{self._region}.eks.amazonaws.com"
            outputs["oidc_issuer"] = f"https://oidc.eks.{self._region}.amazonaws.com/id/{physical_id}"
            outputs["security_group_id"] = f"sg-{physical_id}"
        return outputs


def _name_from_id(physical_id: str) -> str:
    return physical_id.rsplit("-", 1)[0]
