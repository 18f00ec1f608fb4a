# Copyright (c) Microsoft. All rights reserved.

"""Minimal async Microsoft Graph REST client used for Teams, mail and calendar calls."""

import inspect
import logging
import os
from typing import Any

import httpx
from azure.core.credentials import TokenCredential
from azure.core.credentials_async import AsyncTokenCredential
from azure.identity import ClientSecretCredential, DefaultAzureCredential

from services.observability import dependency_span

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"


class GraphRequestError(Exception):
    """A Graph call returned a non-success status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class GraphAuthenticationError(GraphRequestError):
    """Authentication / authorization failure (401/403)."""


class GraphNotFoundError(GraphRequestError):
    """The addressed user, event or resource does not exist (404)."""


def create_graph_credential() -> TokenCredential:
    """App-only credential from GRAPH_* settings, falling back to DefaultAzureCredential."""
    tenant_id = os.environ.get("GRAPH_TENANT_ID")
    client_id = os.environ.get("GRAPH_CLIENT_ID")
    client_secret = os.environ.get("GRAPH_CLIENT_SECRET")
    if tenant_id and client_id and client_secret:
        return ClientSecretCredential(tenant_id, client_id, client_secret)
    return DefaultAzureCredential()


class GraphClient:
    """Async client for calling Microsoft Graph endpoints.

    Supports both synchronous TokenCredential and asynchronous AsyncTokenCredential implementations.
    """

    def __init__(
        self,
        credential: TokenCredential | AsyncTokenCredential | None = None,
        *,
        base_url: str = GRAPH_BASE_URL,
        timeout: float | None = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._credential = credential or create_graph_credential()
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def close(self) -> None:
        await self._client.aclose()

    async def _get_token(self) -> str:
        token = self._credential.get_token(GRAPH_SCOPE)
        token = await token if inspect.isawaitable(token) else token
        return token.token

    async def request(
        self,
        method: str,
        path: str,
        json: dict | None = None,
    ) -> dict[str, Any]:
        """
        Send a Graph request and return the decoded JSON body.

        Args:
            method: HTTP method.
            path: Path relative to the Graph base URL (e.g. "users/{id}/sendMail").
            json: Optional request body.

        Returns:
            Parsed JSON, or an empty dict for bodiless responses (202/204).

        Raises:
            GraphAuthenticationError: On 401/403.
            GraphNotFoundError: On 404.
            GraphRequestError: On any other non-2xx status.
        """
        url = f"{self._base_url}/{path.lstrip('/')}"
        async with dependency_span("graph", f"{method.upper()} {path.split('/')[0]}") as span:
            token = await self._get_token()
            headers = {
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            }
            resp = await self._client.request(method, url, json=json, headers=headers)
            span.set_attribute("http.status_code", resp.status_code)

        if resp.status_code in (401, 403):
            raise GraphAuthenticationError(
                f"Graph auth failure {resp.status_code}: {resp.text}", resp.status_code
            )
        if resp.status_code == 404:
            raise GraphNotFoundError(f"Graph resource not found: {path}", 404)
        if resp.status_code < 200 or resp.status_code >= 300:
            raise GraphRequestError(
                f"Graph request failed {resp.status_code}: {resp.text}", resp.status_code
            )

        if resp.status_code in (202, 204) or not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            logger.warning(f"Graph returned a non-JSON body for {method} {path}")
            return {}
