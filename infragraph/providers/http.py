"""Generic HTTP provider.

Forwards create / read / update / delete calls as JSON requests to an
external service that owns the actual cloud API calls::

    POST   {base}/resources/{kind}             {"name": ..., "attributes": {...}}
    GET    {base}/resources/{kind}/{id}
    PUT    {base}/resources/{kind}/{id}        {"previous": {...}, "attributes": {...}}
    DELETE {base}/resources/{kind}/{id}

Create and update responses must be ``{"physical_id": ..., "outputs": {...}}``.
5xx responses, 429 and timeouts are retryable; other 4xx are fatal.
"""

from __future__ import annotations

from typing import Any

import httpx

from infragraph.errors import ProviderError
from infragraph.executor.provider import ProviderResult, ResourceProvider
from infragraph.observability.logging import get_logger

_logger = get_logger("providers.http")


class HttpResourceProvider(ResourceProvider):
    """Delivers CRUD calls to a remote provider service.

    Args:
        base_url: Service root, e.g. ``https://provisioner.internal``.
        headers:  Optional extra headers (e.g. Authorization).
        timeout:  HTTP request timeout in seconds. Defaults to 30.
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("Provider base_url must not be empty")
        self._base_url = base_url.rstrip("/")
        self._headers = headers or {}
        self._timeout = timeout
        self._transport = transport

    @property
    def name(self) -> str:
        return "http"

    async def create(self, kind: str, name: str, attributes: dict[str, Any]) -> ProviderResult:
        data = await self._request("POST", f"/resources/{kind}", {"name": name, "attributes": attributes})
        return self._result(data)

    async def read(self, kind: str, physical_id: str) -> dict[str, Any] | None:
        data = await self._request("GET", f"/resources/{kind}/{physical_id}", allow_missing=True)
        if data is None:
            return None
        return dict(data.get("outputs", {}))

    async def update(
        self,
        kind: str,
        physical_id: str,
        previous: dict[str, Any],
        attributes: dict[str, Any],
    ) -> ProviderResult:
        data = await self._request(
            "PUT",
            f"/resources/{kind}/{physical_id}",
            {"previous": previous, "attributes": attributes},
        )
        return self._result(data)

    async def delete(self, kind: str, physical_id: str) -> None:
        await self._request("DELETE", f"/resources/{kind}/{physical_id}", allow_missing=True)

    async def _request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        allow_missing: bool = False,
    ) -> dict[str, Any] | None:
        headers = {"Content-Type": "application/json", **self._headers}
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, json=body, headers=headers)
        except httpx.TimeoutException as exc:
            _logger.warning("provider_request_timeout", method=method, path=path)
            raise ProviderError(f"{method} {path} timed out", retryable=True) from exc
        except httpx.HTTPError as exc:
            _logger.warning("provider_http_error", method=method, path=path, error=str(exc))
            raise ProviderError(f"{method} {path} failed: {exc}", retryable=True) from exc

        if response.status_code == 404 and allow_missing:
            return None
        if not response.is_success:
            retryable = response.status_code >= 500 or response.status_code == 429
            _logger.warning(
                "provider_non_2xx_response",
                method=method,
                path=path,
                status_code=response.status_code,
                body=response.text[:200],
            )
            raise ProviderError(
                f"{method} {path} returned {response.status_code}: {response.text[:200]}",
                retryable=retryable,
            )
        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise ProviderError(f"{method} {path} returned a non-JSON body") from exc
        if not isinstance(payload, dict):
            raise ProviderError(f"{method} {path} returned a non-object body")
        return payload

    @staticmethod
    def _result(data: dict[str, Any] | None) -> ProviderResult:
        if not data or "physical_id" not in data:
            raise ProviderError("Provider response is missing 'physical_id'")
        return ProviderResult(physical_id=str(data["physical_id"]), outputs=dict(data.get("outputs", {})))
