from __future__ import annotations

from typing import Any, Optional

import httpx
import structlog

from dancecart.core.config import settings
from dancecart.core.errors import NETWORK_ERROR, BackendError
from dancecart.integrations.token_store import TokenStore

log = structlog.get_logger(__name__)


class GraphQLClient:
    def __init__(
        self,
        *,
        url: Optional[str] = None,
        token_store: Optional[TokenStore] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url or settings.GRAPHQL_URL
        self.token_store = token_store or TokenStore()
        self.timeout = timeout if timeout is not None else settings.GRAPHQL_TIMEOUT_SECONDS
        # tests inject httpx.MockTransport here
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        token = self.token_store.get()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def execute(
        self,
        document: str,
        variables: Optional[dict[str, Any]] = None,
        *,
        operation_name: Optional[str] = None,
    ) -> dict[str, Any]:
        """POST one GraphQL operation and return its `data` object.

        Raises BackendError for transport failures, non-200 responses and
        top-level GraphQL errors.
        """
        payload: dict[str, Any] = {"query": document, "variables": variables or {}}
        if operation_name:
            payload["operationName"] = operation_name

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.post(self.url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            log.warning("graphql_transport_error", operation=operation_name, error=str(e))
            raise BackendError(f"Network error: {e}", error_code=NETWORK_ERROR, cause=e) from e

        if r.status_code != 200:
            log.warning("graphql_http_error", operation=operation_name, status=r.status_code)
            raise BackendError(
                f"Backend returned HTTP {r.status_code}",
                error_code=NETWORK_ERROR if r.status_code >= 500 else f"HTTP_{r.status_code}",
            )

        try:
            body = r.json()
        except ValueError as e:
            raise BackendError("Invalid response from server", error_code=NETWORK_ERROR, cause=e) from e

        errors = body.get("errors") or []
        if errors:
            first = errors[0]
            extensions = first.get("extensions") or {}
            path = first.get("path")
            if isinstance(path, list):
                path = ".".join(str(p) for p in path)
            log.info("graphql_errors", operation=operation_name, errors=errors)
            raise BackendError(
                first.get("message") or "GraphQL error",
                error_code=extensions.get("code"),
                path=path,
            )

        data = body.get("data")
        if data is None:
            raise BackendError("Invalid response from server", error_code=NETWORK_ERROR)
        return data
