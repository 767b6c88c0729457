"""HTTP access to collection and object URLs.

Every request goes through a short-lived ``httpx.AsyncClient`` carrying the
bearer token from the configured token provider.  Fetch failures are mapped
onto the error taxonomy the transports retry on; mutation failures are
mapped onto :class:`~kubemirror.errors.ApiError` for the caller.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx

from kubemirror.errors import ApiError, AuthorizationError, ProtocolError, TransientNetworkError
from kubemirror.observability.logging import get_logger

TokenProvider = Callable[[], "str | None"]

_FORBIDDEN = 403


class RestClient:
    """Thin async REST client for one API server.

    Args:
        timeout:        Per-request timeout in seconds.
        verify:         Verify the server's TLS certificate.
        token_provider: Returns the bearer token to send, or None.
        transport:      Optional httpx transport (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        timeout: float = 30.0,
        verify: bool = True,
        token_provider: TokenProvider | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._verify = verify
        self._token_provider = token_provider
        self._transport = transport
        self._log = get_logger("collector.rest")

    def auth_headers(self) -> dict[str, str]:
        token = self._token_provider() if self._token_provider is not None else None
        return {"Authorization": f"Bearer {token}"} if token else {}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._timeout,
            verify=self._verify,
            transport=self._transport,
            headers=self.auth_headers(),
        )

    # ------------------------------------------------------------------
    # Collection fetch
    # ------------------------------------------------------------------

    async def list_items(self, url: str) -> list[dict[str, Any]]:
        """GET *url* and return its ``items``.

        Raises:
            AuthorizationError:    on 403.
            TransientNetworkError: on any other error status or transport failure.
            ProtocolError:         when the body is not a JSON object.
        """
        try:
            async with self._client() as client:
                response = await client.get(url)
        except httpx.HTTPError as exc:
            raise TransientNetworkError(url, f"request failed: {exc}") from exc

        if response.status_code == _FORBIDDEN:
            raise AuthorizationError(url)
        if not response.is_success:
            raise TransientNetworkError(url, f"unexpected status {response.status_code}", response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            raise ProtocolError(f"collection body is not JSON: {url}") from exc
        if not isinstance(data, dict):
            raise ProtocolError(f"collection body is not an object: {url}")
        items = data.get("items") or []
        return [item for item in items if isinstance(item, dict)]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create(self, url: str, body: dict[str, Any]) -> dict[str, Any]:
        return await self._send("POST", url, body)

    async def replace(self, url: str, body: dict[str, Any]) -> dict[str, Any]:
        return await self._send("PUT", url, body)

    async def remove(self, url: str) -> dict[str, Any]:
        return await self._send("DELETE", url)

    async def _send(self, method: str, url: str, body: dict[str, Any] | None = None) -> dict[str, Any]:
        """Issue a mutation and decode its response.

        A successful response that is not a JSON object decodes to ``{}``.

        Raises:
            ApiError: for any error status or transport failure.
        """
        try:
            async with self._client() as client:
                response = await client.request(method, url, json=body)
        except httpx.HTTPError as exc:
            self._log.debug("rest_request_failed", method=method, url=url, error=str(exc))
            raise ApiError(0, "RequestError", str(exc)) from exc

        if not response.is_success:
            raise _api_error(response)
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}


def _api_error(response: httpx.Response) -> ApiError:
    """Build an ApiError from an error response, using a Status body if present."""
    try:
        body: Any = response.json()
    except ValueError:
        body = response.text[:200]
    if isinstance(body, dict):
        return ApiError(
            status=response.status_code,
            reason=str(body.get("reason") or response.reason_phrase),
            message=str(body.get("message") or ""),
            body=body,
        )
    return ApiError(
        status=response.status_code,
        reason=response.reason_phrase,
        message=str(body),
        body=body,
    )
