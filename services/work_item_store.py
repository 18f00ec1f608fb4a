# Copyright (c) Microsoft. All rights reserved.
"""
Cosmos DB Storage for Agent Work Items

This module persists one work item per ACS chat thread. The thread id is both
the document id and the partition key, so every point read and replace is a
single-partition operation.

Document shape:
    {"id": "19:...@thread.v2", "partitionKey": "19:...@thread.v2", "status": 0,
     "assignedAgentId": null, "assignedAgentName": null, "customerName": "...",
     "createdAt": "...", "updatedAt": "...", "metadata": {...}}

Claiming uses the document ETag with an If-Match condition, so only one agent
can move an item out of the Unassigned state.
"""

import logging
import os
from typing import Any

from azure.core import MatchConditions
from azure.cosmos import CosmosClient
from azure.cosmos.exceptions import (
    CosmosAccessConditionFailedError,
    CosmosHttpResponseError,
    CosmosResourceNotFoundError,
)
from azure.identity import DefaultAzureCredential

from services.models import (
    AgentWorkItem,
    ClaimResult,
    WorkItemStatus,
    to_iso,
    utc_now,
)
from services.observability import SupportChatAttr, cosmos_span
from services.text import mask_for_logging, require

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_NAME = "messaging-teams-app-database"


class WorkItemClaimError(Exception):
    """Raised when a claim fails for a reason other than a lost race."""


def create_cosmos_client(endpoint: str, credential: Any | None = None) -> CosmosClient:
    """Create a Cosmos client from a key (AZURE_COSMOS_KEY) or an Azure AD credential."""
    if credential is None:
        key = os.environ.get("AZURE_COSMOS_KEY")
        credential = key or DefaultAzureCredential()
    return CosmosClient(endpoint, credential=credential)


class WorkItemStore:
    """
    Manages agent work items in Azure Cosmos DB.

    Uses a single container partitioned on /partitionKey (the thread id).
    """

    def __init__(
        self,
        endpoint: str | None = None,
        database_name: str | None = None,
        container_name: str | None = None,
        credential: Any | None = None,
        container: Any | None = None,
    ):
        """
        Initialize the work item store.

        Args:
            endpoint: Cosmos DB endpoint URL. Defaults to AZURE_COSMOS_ENDPOINT env var.
            database_name: Database name. Defaults to AZURE_COSMOS_DATABASE_NAME env var.
            container_name: Container name. Defaults to AZURE_COSMOS_WORK_ITEMS_CONTAINER env var.
            credential: Cosmos key or Azure credential. Defaults to AZURE_COSMOS_KEY,
                then DefaultAzureCredential.
            container: Pre-built container client (skips client creation).
        """
        self.endpoint = endpoint or os.environ.get("AZURE_COSMOS_ENDPOINT")
        self.database_name = database_name or os.environ.get(
            "AZURE_COSMOS_DATABASE_NAME", DEFAULT_DATABASE_NAME
        )
        self.container_name = container_name or os.environ.get(
            "AZURE_COSMOS_WORK_ITEMS_CONTAINER", "agentWorkItems"
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

    def _read_document(self, thread_id: str) -> dict | None:
        try:
            return self.container.read_item(item=thread_id, partition_key=thread_id)
        except CosmosResourceNotFoundError:
            return None

    def _query(self, query: str, parameters: list[dict]) -> list[AgentWorkItem]:
        documents = self.container.query_items(
            query=query,
            parameters=parameters,
            enable_cross_partition_query=True,
        )
        return [AgentWorkItem.from_document(doc) for doc in documents]

    def _replace(self, item: AgentWorkItem, **kwargs: Any) -> dict:
        return self.container.replace_item(
            item=item.id, body=item.to_document(), **kwargs
        )

    # -------------------------------------------------------------------------
    # Work Item CRUD
    # -------------------------------------------------------------------------

    async def create_work_item(
        self,
        thread_id: str,
        status: WorkItemStatus = WorkItemStatus.UNASSIGNED,
        customer_name: str | None = None,
        customer_id: str | None = None,
        creator_user_id: str | None = None,
        metadata: dict | None = None,
    ) -> AgentWorkItem:
        """
        Create (or overwrite) the work item for a chat thread.

        Args:
            thread_id: ACS thread id; used as document id and partition key.
            status: Initial status.
            customer_name: Display name of the customer who opened the chat.
            customer_id: ACS identity of the customer.
            creator_user_id: ACS identity that created the thread.
            metadata: Optional string metadata.

        Returns:
            The stored work item.
        """
        thread_id = require(thread_id, "threadId")
        now = utc_now()
        item = AgentWorkItem(
            id=thread_id,
            status=WorkItemStatus.parse(status),
            customer_name=customer_name,
            customer_id=customer_id,
            creator_user_id=creator_user_id,
            created_at=now,
            updated_at=now,
            last_modified_at=now,
            metadata=dict(metadata or {}),
        )

        async with cosmos_span("upsert", self.container_name, thread_id):
            self.container.upsert_item(body=item.to_document())
        logger.info(
            f"Saved work item {mask_for_logging(thread_id)} with status {item.status.label}"
        )
        return item

    async def get_work_item(self, thread_id: str) -> AgentWorkItem | None:
        """
        Get a work item by thread id.

        Returns:
            The work item, or None if not found.
        """
        async with cosmos_span("read", self.container_name, thread_id):
            doc = self._read_document(thread_id)
        return AgentWorkItem.from_document(doc) if doc else None

    async def list_work_items(
        self, status: WorkItemStatus | None = None
    ) -> list[AgentWorkItem]:
        """List all work items, newest first, optionally filtered by status."""
        if status is None:
            query = "SELECT * FROM c ORDER BY c.createdAt DESC"
            parameters = []
        else:
            query = "SELECT * FROM c WHERE c.status = @status ORDER BY c.createdAt DESC"
            parameters = [{"name": "@status", "value": int(status)}]

        async with cosmos_span("query", self.container_name):
            return self._query(query, parameters)

    async def get_unassigned_work_items(self) -> list[AgentWorkItem]:
        """List unassigned work items, oldest first (longest waiting customer on top)."""
        query = "SELECT * FROM c WHERE c.status = @status ORDER BY c.createdAt ASC"
        parameters = [{"name": "@status", "value": int(WorkItemStatus.UNASSIGNED)}]

        async with cosmos_span("query", self.container_name):
            return self._query(query, parameters)

    async def get_agent_work_items(
        self, agent_id: str, status: WorkItemStatus | None = None
    ) -> list[AgentWorkItem]:
        """List work items assigned to an agent, most recently updated first."""
        query = "SELECT * FROM c WHERE c.assignedAgentId = @agentId"
        parameters = [{"name": "@agentId", "value": agent_id}]
        if status is not None:
            query += " AND c.status = @status"
            parameters.append({"name": "@status", "value": int(status)})
        query += " ORDER BY c.updatedAt DESC"

        async with cosmos_span("query", self.container_name) as span:
            span.set_attribute(SupportChatAttr.AGENT_ID, agent_id)
            return self._query(query, parameters)

    async def update_work_item_status(
        self, thread_id: str, status: WorkItemStatus
    ) -> AgentWorkItem | None:
        """
        Set the status of a work item.

        Returns:
            The updated work item, or None if not found.
        """
        item = await self.get_work_item(thread_id)
        if item is None:
            return None

        now = utc_now()
        item.status = WorkItemStatus.parse(status)
        item.updated_at = now
        item.last_modified_at = now

        async with cosmos_span("replace", self.container_name, thread_id):
            self._replace(item)
        logger.info(
            f"Updated work item {mask_for_logging(thread_id)} to {item.status.label}"
        )
        return item

    async def delete_work_item(self, thread_id: str) -> bool:
        """
        Delete a work item.

        Returns:
            True if deleted, False if not found.
        """
        try:
            async with cosmos_span("delete", self.container_name, thread_id):
                self.container.delete_item(item=thread_id, partition_key=thread_id)
        except CosmosResourceNotFoundError:
            return False

        logger.info(f"Deleted work item {mask_for_logging(thread_id)}")
        return True

    # -------------------------------------------------------------------------
    # Claim / Cancel
    # -------------------------------------------------------------------------

    async def claim_work_item(
        self, thread_id: str, agent_id: str, agent_name: str
    ) -> ClaimResult:
        """
        Atomically claim an unassigned work item for an agent.

        The item is read together with its ETag and replaced with an
        If-Match condition. If another agent replaced it in between, Cosmos
        rejects the write with 412 and the caller gets a conflict result
        naming the winner.

        Args:
            thread_id: Work item (thread) id.
            agent_id: Claiming agent's id.
            agent_name: Claiming agent's display name.

        Returns:
            ClaimResult with success=True and the updated item, or
            success=False with a user-facing error message.

        Raises:
            ValueError: If any argument is blank.
            WorkItemClaimError: If Cosmos fails for a reason other than a lost race.
        """
        thread_id = require(thread_id, "threadId")
        agent_id = require(agent_id, "agentId")
        agent_name = require(agent_name, "agentName")

        try:
            async with cosmos_span("read", self.container_name, thread_id):
                doc = self._read_document(thread_id)
        except Exception as e:
            logger.error(f"Failed to read work item {mask_for_logging(thread_id)} for claim: {e}")
            raise WorkItemClaimError(f"Failed to claim work item: {e}") from e

        if doc is None:
            return ClaimResult(success=False, error="Work item not found")

        item = AgentWorkItem.from_document(doc)
        if item.status != WorkItemStatus.UNASSIGNED:
            if item.assigned_agent_name:
                error = f"This chat has already been claimed by {item.assigned_agent_name}"
            else:
                error = "This chat is no longer available"
            return ClaimResult(
                success=False,
                work_item=item,
                error=error,
                claimed_by=item.assigned_agent_name,
                claimed_at=item.claimed_at,
            )

        now = utc_now()
        item.status = WorkItemStatus.CLAIMED
        item.assigned_agent_id = agent_id
        item.assigned_agent_name = agent_name
        item.claimed_at = now
        item.updated_at = now
        item.last_modified_at = now

        try:
            async with cosmos_span("replace", self.container_name, thread_id) as span:
                span.set_attribute(SupportChatAttr.AGENT_ID, agent_id)
                self._replace(
                    item,
                    etag=doc.get("_etag"),
                    match_condition=MatchConditions.IfNotModified,
                )
        except CosmosAccessConditionFailedError:
            logger.info(
                f"Claim race lost on {mask_for_logging(thread_id)} "
                f"by agent {mask_for_logging(agent_id)}"
            )
            return self._lost_race_result(thread_id)
        except Exception as e:
            logger.error(f"Failed to claim work item {mask_for_logging(thread_id)}: {e}")
            raise WorkItemClaimError(f"Failed to claim work item: {e}") from e

        logger.info(
            f"Work item {mask_for_logging(thread_id)} claimed by agent {mask_for_logging(agent_id)}"
        )
        return ClaimResult(
            success=True,
            work_item=item,
            claimed_by=agent_name,
            claimed_at=now,
        )

    def _lost_race_result(self, thread_id: str) -> ClaimResult:
        try:
            current = self._read_document(thread_id)
        except CosmosHttpResponseError as e:
            logger.warning(f"Could not re-read work item after claim conflict: {e}")
            current = None

        if current is None:
            return ClaimResult(
                success=False, error="This chat was just claimed by another agent"
            )

        winner = AgentWorkItem.from_document(current)
        return ClaimResult(
            success=False,
            work_item=winner,
            error=f"This chat was just claimed by {winner.assigned_agent_name or 'another agent'}",
            claimed_by=winner.assigned_agent_name,
            claimed_at=winner.claimed_at,
        )

    async def cancel_work_item(self, thread_id: str) -> bool:
        """
        Cancel a work item that is still open.

        Returns:
            False if the item does not exist or is already resolved/cancelled.
        """
        item = await self.get_work_item(thread_id)
        if item is None:
            return False
        if item.status in (WorkItemStatus.RESOLVED, WorkItemStatus.CANCELLED):
            logger.info(
                f"Work item {mask_for_logging(thread_id)} already {item.status.label}"
            )
            return False

        await self.update_work_item_status(thread_id, WorkItemStatus.CANCELLED)
        return True

    # -------------------------------------------------------------------------
    # Thread Metadata
    # -------------------------------------------------------------------------

    async def update_thread_metadata(
        self, thread_id: str, metadata: dict[str, str]
    ) -> bool:
        """Merge keys into the work item's metadata. Returns False if not found."""
        item = await self.get_work_item(thread_id)
        if item is None:
            logger.warning(f"Work item not found for thread {mask_for_logging(thread_id)}")
            return False

        item.metadata.update({k: str(v) for k, v in metadata.items()})
        item.last_modified_at = utc_now()

        async with cosmos_span("replace", self.container_name, thread_id):
            self._replace(item)
        logger.info(f"Updated metadata for thread {mask_for_logging(thread_id)}")
        return True

    async def get_thread_metadata(self, thread_id: str) -> dict[str, str] | None:
        item = await self.get_work_item(thread_id)
        return item.metadata if item else None

    async def get_thread_participants(self, thread_id: str) -> list[dict] | None:
        """
        Participants known from the work item: the customer and the assigned agent.

        Returns:
            List of {"userId", "displayName", "role"}, or None if not found.
        """
        item = await self.get_work_item(thread_id)
        if item is None:
            return None

        participants = []
        if item.customer_id:
            participants.append({
                "userId": item.customer_id,
                "displayName": item.customer_name,
                "role": "customer",
            })
        if item.assigned_agent_id:
            participants.append({
                "userId": item.assigned_agent_id,
                "displayName": item.assigned_agent_name,
                "role": "agent",
                "claimedAt": to_iso(item.claimed_at),
            })
        return participants
