# Copyright (c) Microsoft. All rights reserved.

"""
ACS identity and access token issuance.

Wraps CommunicationIdentityClient so route handlers can create users and
tokens without knowing the SDK.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any

from azure.communication.identity import (
    CommunicationIdentityClient,
    CommunicationTokenScope,
    CommunicationUserIdentifier,
)

from services.models import to_iso, utc_now
from services.observability import SupportChatAttr, dependency_span
from services.text import mask_for_logging, require

logger = logging.getLogger(__name__)

_SCOPES = {
    "chat": CommunicationTokenScope.CHAT,
    "voip": CommunicationTokenScope.VOIP,
}


def parse_token_scopes(value: str | None) -> list[CommunicationTokenScope]:
    """
    Parse a comma-separated scope list such as "chat,VoIP".

    Unknown scopes are ignored and duplicates dropped; an empty result
    falls back to the chat scope.
    """
    scopes: list[CommunicationTokenScope] = []
    for part in (value or "").split(","):
        scope = _SCOPES.get(part.strip().lower())
        if scope is not None and scope not in scopes:
            scopes.append(scope)
    return scopes or [CommunicationTokenScope.CHAT]


def parse_endpoint(connection_string: str) -> str | None:
    """Extract the endpoint from an "endpoint=...;accesskey=..." connection string."""
    for part in connection_string.split(";"):
        key, _, value = part.partition("=")
        if key.strip().lower() == "endpoint" and value:
            return value.strip()
    return None


class TokenService:
    """Creates ACS users and issues their access tokens."""

    def __init__(
        self,
        connection_string: str | None = None,
        endpoint: str | None = None,
        client: Any | None = None,
    ):
        """
        Args:
            connection_string: ACS connection string. Defaults to ACS_CONNECTION_STRING.
            endpoint: ACS endpoint. Defaults to ACS_ENDPOINT, then the connection string.
            client: Pre-built identity client.
        """
        self.connection_string = connection_string or os.environ.get("ACS_CONNECTION_STRING")
        if client is None and not self.connection_string:
            raise ValueError(
                "ACS connection string is required. "
                "Set ACS_CONNECTION_STRING environment variable."
            )

        self.endpoint = (
            endpoint
            or os.environ.get("ACS_ENDPOINT")
            or parse_endpoint(self.connection_string or "")
        )
        self._client = client

    @property
    def client(self) -> CommunicationIdentityClient:
        if self._client is None:
            self._client = CommunicationIdentityClient.from_connection_string(
                self.connection_string
            )
        return self._client

    @staticmethod
    def _token_response(user_id: str, access_token) -> dict:
        expires_on = access_token.expires_on
        if isinstance(expires_on, (int, float)):
            expires_on = datetime.fromtimestamp(expires_on, timezone.utc)
        return {
            "identity": user_id,
            "token": access_token.token,
            "expiresOn": to_iso(expires_on),
            "user": {
                "communicationUserId": user_id,
                "createdAt": to_iso(utc_now()),
                "status": "Active",
            },
        }

    async def create_user(self) -> str:
        """Create a new ACS identity and return its id."""
        async with dependency_span("acs", "create_user"):
            user = self.client.create_user()
        user_id = user.properties["id"]
        logger.info(f"Created ACS user {mask_for_logging(user_id)}")
        return user_id

    async def create_user_and_token(
        self, scopes: list[CommunicationTokenScope] | None = None
    ) -> dict:
        """Create a new ACS identity together with an access token."""
        scopes = scopes or [CommunicationTokenScope.CHAT]
        async with dependency_span("acs", "create_user_and_token"):
            user, access_token = self.client.create_user_and_token(scopes=scopes)
        user_id = user.properties["id"]
        logger.info(
            f"Issued token for new user {mask_for_logging(user_id)} "
            f"with scopes {[s.value for s in scopes]}"
        )
        return self._token_response(user_id, access_token)

    async def get_token(
        self, user_id: str, scopes: list[CommunicationTokenScope] | None = None
    ) -> dict:
        """Issue a token for an existing ACS identity."""
        user_id = require(user_id, "userId")
        scopes = scopes or [CommunicationTokenScope.CHAT]
        async with dependency_span(
            "acs", "get_token", **{SupportChatAttr.USER_ID: mask_for_logging(user_id)}
        ):
            access_token = self.client.get_token(
                CommunicationUserIdentifier(user_id), scopes
            )
        logger.info(f"Issued token for user {mask_for_logging(user_id)}")
        return self._token_response(user_id, access_token)

    async def refresh_token(
        self, user_id: str, scopes: list[CommunicationTokenScope] | None = None
    ) -> dict:
        """Issue a fresh token so a client can replace one that is about to expire."""
        return await self.get_token(user_id, scopes)

    async def revoke_tokens(self, user_id: str) -> None:
        user_id = require(user_id, "userId")
        async with dependency_span("acs", "revoke_tokens"):
            self.client.revoke_tokens(CommunicationUserIdentifier(user_id))
        logger.info(f"Revoked tokens for user {mask_for_logging(user_id)}")
