# Copyright (c) Microsoft. All rights reserved.

"""
Cosmos DB storage for the system admin ACS identity.

The admin identity creates chat threads and replays conversation history.
One document per environment is kept active; the partition key is the
environment name.
"""

import logging
import os
import uuid
from typing import Any

from azure.cosmos import CosmosClient

from services.models import to_iso, utc_now
from services.observability import cosmos_span
from services.text import mask_for_logging
from services.work_item_store import DEFAULT_DATABASE_NAME, create_cosmos_client

logger = logging.getLogger(__name__)

ADMIN_DISPLAY_NAME = "System Admin"


class AdminUserStore:
    """Persists the ACS admin user used to own support threads."""

    def __init__(
        self,
        endpoint: str | None = None,
        database_name: str | None = None,
        container_name: str | None = None,
        environment: str | None = None,
        credential: Any | None = None,
        container: Any | None = None,
    ):
        self.endpoint = endpoint or os.environ.get("AZURE_COSMOS_ENDPOINT")
        self.database_name = database_name or os.environ.get(
            "AZURE_COSMOS_DATABASE_NAME", DEFAULT_DATABASE_NAME
        )
        self.container_name = container_name or os.environ.get(
            "AZURE_COSMOS_ADMIN_USERS_CONTAINER", "adminUsers"
        )
        self.environment = environment or os.environ.get(
            "ADMIN_ENVIRONMENT", "development"
        )

        if container is None and not self.endpoint:
            raise ValueError(
                "Cosmos DB endpoint is required. "
                "Set AZURE_COSMOS_ENDPOINT environment variable."
            )

        self.credential = credential
        self._client: CosmosClient | None = None
        self._container = container

    @property
    def container(self):
        """Lazy initialization of Cosmos DB container client."""
        if self._container is None:
            self._client = create_cosmos_client(self.endpoint, self.credential)
            database = self._client.get_database_client(self.database_name)
            self._container = database.get_container_client(self.container_name)
        return self._container

    async def get_active_admin_user(self) -> dict | None:
        """Return the most recently used active admin document, if any."""
        query = (
            "SELECT * FROM c WHERE c.isActive = @isActive "
            "ORDER BY c.lastUsedAt DESC"
        )
        async with cosmos_span("query", self.container_name, self.environment):
            admins = list(
                self.container.query_items(
                    query=query,
                    parameters=[{"name": "@isActive", "value": True}],
                    partition_key=self.environment,
                )
            )
        return admins[0] if admins else None

    async def save_admin_user(
        self, acs_user_id: str, display_name: str = ADMIN_DISPLAY_NAME
    ) -> dict:
        """Store a newly created ACS admin identity as the active admin."""
        now = to_iso(utc_now())
        admin = {
            "id": str(uuid.uuid4()),
            "acsUserId": acs_user_id,
            "displayName": display_name,
            "environment": self.environment,
            "createdAt": now,
            "lastUsedAt": now,
            "isActive": True,
        }
        async with cosmos_span("upsert", self.container_name, self.environment):
            self.container.upsert_item(body=admin)
        logger.info(f"Saved admin user {mask_for_logging(acs_user_id)}")
        return admin

    async def touch_admin_user(self, admin: dict) -> dict:
        """Record that the admin identity was used just now."""
        admin["lastUsedAt"] = to_iso(utc_now())
        async with cosmos_span("upsert", self.container_name, self.environment):
            self.container.upsert_item(body=admin)
        return admin
