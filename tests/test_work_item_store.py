# Copyright (c) Microsoft. All rights reserved.

"""Tests for the Cosmos DB work item store."""

from unittest.mock import MagicMock

import pytest
from azure.cosmos.exceptions import CosmosHttpResponseError

from services.admin_user_store import AdminUserStore
from services.models import WorkItemStatus
from services.work_item_store import WorkItemClaimError, WorkItemStore

THREAD_ID = "19:abc@thread.v2"


class TestWorkItemStoreConfig:
    def test_missing_endpoint_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("AZURE_COSMOS_ENDPOINT", raising=False)

        with pytest.raises(ValueError, match="AZURE_COSMOS_ENDPOINT"):
            WorkItemStore()

    def test_reads_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AZURE_COSMOS_ENDPOINT", "https://cosmos.example/")
        monkeypatch.setenv("AZURE_COSMOS_WORK_ITEMS_CONTAINER", "items")

        store = WorkItemStore()

        assert store.endpoint == "https://cosmos.example/"
        assert store.container_name == "items"
        assert store.database_name == "messaging-teams-app-database"


class TestWorkItemCrud:
    """Test create, read, update and delete."""

    async def test_create_and_get(self, work_item_store: WorkItemStore, work_item_container) -> None:
        created = await work_item_store.create_work_item(THREAD_ID, customer_name="Jane")

        stored = work_item_container.items[THREAD_ID]
        assert stored["partitionKey"] == THREAD_ID
        assert stored["status"] == 0

        item = await work_item_store.get_work_item(THREAD_ID)
        assert item.id == created.id
        assert item.customer_name == "Jane"
        assert item.status == WorkItemStatus.UNASSIGNED

    async def test_create_requires_thread_id(self, work_item_store: WorkItemStore) -> None:
        with pytest.raises(ValueError, match="threadId is required"):
            await work_item_store.create_work_item("  ")

    async def test_get_missing_returns_none(self, work_item_store: WorkItemStore) -> None:
        assert await work_item_store.get_work_item("missing") is None

    async def test_update_status(self, work_item_store: WorkItemStore) -> None:
        await work_item_store.create_work_item(THREAD_ID)

        updated = await work_item_store.update_work_item_status(THREAD_ID, WorkItemStatus.ACTIVE)

        assert updated.status == WorkItemStatus.ACTIVE
        assert (await work_item_store.get_work_item(THREAD_ID)).status == WorkItemStatus.ACTIVE

    async def test_update_missing_returns_none(self, work_item_store: WorkItemStore) -> None:
        assert await work_item_store.update_work_item_status("missing", WorkItemStatus.ACTIVE) is None

    async def test_delete(self, work_item_store: WorkItemStore) -> None:
        await work_item_store.create_work_item(THREAD_ID)

        assert await work_item_store.delete_work_item(THREAD_ID) is True
        assert await work_item_store.delete_work_item(THREAD_ID) is False


class TestWorkItemQueries:
    async def test_unassigned_oldest_first(self, work_item_store: WorkItemStore, work_item_container) -> None:
        for thread_id, created in [("b", "2025-01-01T10:05:00Z"), ("a", "2025-01-01T10:00:00Z")]:
            await work_item_store.create_work_item(thread_id)
            work_item_container.items[thread_id]["createdAt"] = created
        await work_item_store.create_work_item("c", status=WorkItemStatus.CLAIMED)

        items = await work_item_store.get_unassigned_work_items()

        assert [i.id for i in items] == ["a", "b"]

    async def test_list_filters_by_status(self, work_item_store: WorkItemStore) -> None:
        await work_item_store.create_work_item("a")
        await work_item_store.create_work_item("b", status=WorkItemStatus.RESOLVED)

        resolved = await work_item_store.list_work_items(WorkItemStatus.RESOLVED)
        everything = await work_item_store.list_work_items()

        assert [i.id for i in resolved] == ["b"]
        assert {i.id for i in everything} == {"a", "b"}

    async def test_agent_work_items(self, work_item_store: WorkItemStore) -> None:
        await work_item_store.create_work_item("a")
        await work_item_store.create_work_item("b")
        await work_item_store.claim_work_item("a", "agent-1", "Alice")
        await work_item_store.claim_work_item("b", "agent-2", "Bob")

        mine = await work_item_store.get_agent_work_items("agent-1")
        active = await work_item_store.get_agent_work_items("agent-1", WorkItemStatus.ACTIVE)

        assert [i.id for i in mine] == ["a"]
        assert active == []


class TestClaimWorkItem:
    """Test optimistic claiming."""

    async def test_claim_success(self, work_item_store: WorkItemStore) -> None:
        await work_item_store.create_work_item(THREAD_ID)

        result = await work_item_store.claim_work_item(THREAD_ID, "agent-1", "Alice")

        assert result.success is True
        assert result.claimed_by == "Alice"
        assert result.claimed_at is not None
        item = await work_item_store.get_work_item(THREAD_ID)
        assert item.status == WorkItemStatus.CLAIMED
        assert item.assigned_agent_id == "agent-1"
        assert item.claimed_at == result.claimed_at

    async def test_claim_already_claimed(self, work_item_store: WorkItemStore) -> None:
        await work_item_store.create_work_item(THREAD_ID)
        await work_item_store.claim_work_item(THREAD_ID, "agent-1", "Alice")

        result = await work_item_store.claim_work_item(THREAD_ID, "agent-2", "Bob")

        assert result.success is False
        assert result.error == "This chat has already been claimed by Alice"
        assert result.claimed_by == "Alice"
        assert (await work_item_store.get_work_item(THREAD_ID)).assigned_agent_id == "agent-1"

    async def test_claim_cancelled_item_is_unavailable(self, work_item_store: WorkItemStore) -> None:
        await work_item_store.create_work_item(THREAD_ID, status=WorkItemStatus.CANCELLED)

        result = await work_item_store.claim_work_item(THREAD_ID, "agent-1", "Alice")

        assert result.success is False
        assert result.error == "This chat is no longer available"

    async def test_claim_lost_race(self, work_item_store: WorkItemStore, work_item_container) -> None:
        await work_item_store.create_work_item(THREAD_ID)

        def other_agent_wins(item_id: str) -> None:
            doc = dict(work_item_container.items[item_id])
            doc.update(status=1, assignedAgentId="agent-2", assignedAgentName="Bob")
            work_item_container.upsert_item(doc)

        work_item_container.before_replace = other_agent_wins

        result = await work_item_store.claim_work_item(THREAD_ID, "agent-1", "Alice")

        assert result.success is False
        assert result.error == "This chat was just claimed by Bob"
        assert result.claimed_by == "Bob"
        assert (await work_item_store.get_work_item(THREAD_ID)).assigned_agent_id == "agent-2"

    async def test_claim_missing(self, work_item_store: WorkItemStore) -> None:
        result = await work_item_store.claim_work_item("missing", "agent-1", "Alice")

        assert result.success is False
        assert result.error == "Work item not found"

    @pytest.mark.parametrize(
        "thread_id, agent_id, agent_name, field",
        [
            ("", "agent-1", "Alice", "threadId"),
            (THREAD_ID, " ", "Alice", "agentId"),
            (THREAD_ID, "agent-1", None, "agentName"),
        ],
    )
    async def test_claim_blank_arguments(
        self, work_item_store: WorkItemStore, thread_id, agent_id, agent_name, field
    ) -> None:
        with pytest.raises(ValueError, match=f"{field} is required"):
            await work_item_store.claim_work_item(thread_id, agent_id, agent_name)

    async def test_claim_storage_failure(self, work_item_store: WorkItemStore, work_item_container) -> None:
        await work_item_store.create_work_item(THREAD_ID)

        def storage_down(item_id: str) -> None:
            raise CosmosHttpResponseError(status_code=503, message="Service unavailable")

        work_item_container.before_replace = storage_down

        with pytest.raises(WorkItemClaimError):
            await work_item_store.claim_work_item(THREAD_ID, "agent-1", "Alice")

    async def test_claim_read_failure(
        self, work_item_store: WorkItemStore, work_item_container, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        await work_item_store.create_work_item(THREAD_ID)

        def throttled(item: str, partition_key) -> dict:
            raise CosmosHttpResponseError(status_code=429, message="Too many requests")

        monkeypatch.setattr(work_item_container, "read_item", throttled)

        with pytest.raises(WorkItemClaimError):
            await work_item_store.claim_work_item(THREAD_ID, "agent-1", "Alice")


class TestCancelWorkItem:
    async def test_cancel_open_item(self, work_item_store: WorkItemStore) -> None:
        await work_item_store.create_work_item(THREAD_ID)

        assert await work_item_store.cancel_work_item(THREAD_ID) is True
        assert (await work_item_store.get_work_item(THREAD_ID)).status == WorkItemStatus.CANCELLED

    @pytest.mark.parametrize("status", [WorkItemStatus.RESOLVED, WorkItemStatus.CANCELLED])
    async def test_cancel_closed_item(self, work_item_store: WorkItemStore, status) -> None:
        await work_item_store.create_work_item(THREAD_ID, status=status)

        assert await work_item_store.cancel_work_item(THREAD_ID) is False

    async def test_cancel_missing(self, work_item_store: WorkItemStore) -> None:
        assert await work_item_store.cancel_work_item("missing") is False


class TestThreadMetadata:
    async def test_metadata_merge(self, work_item_store: WorkItemStore) -> None:
        await work_item_store.create_work_item(THREAD_ID, metadata={"source": "web"})

        assert await work_item_store.update_thread_metadata(THREAD_ID, {"attempt": 2}) is True
        assert await work_item_store.get_thread_metadata(THREAD_ID) == {"source": "web", "attempt": "2"}

    async def test_metadata_missing(self, work_item_store: WorkItemStore) -> None:
        assert await work_item_store.update_thread_metadata("missing", {"a": "b"}) is False
        assert await work_item_store.get_thread_metadata("missing") is None

    async def test_participants(self, work_item_store: WorkItemStore) -> None:
        await work_item_store.create_work_item(THREAD_ID, customer_name="Jane", customer_id="8:acs:jane")
        await work_item_store.claim_work_item(THREAD_ID, "8:acs:alice", "Alice")

        participants = await work_item_store.get_thread_participants(THREAD_ID)

        assert [p["role"] for p in participants] == ["customer", "agent"]
        assert participants[1]["displayName"] == "Alice"


class TestAdminUserStore:
    """Test the admin identity store."""

    async def test_no_active_admin(self, admin_store: AdminUserStore) -> None:
        assert await admin_store.get_active_admin_user() is None

    async def test_save_and_get(self, admin_store: AdminUserStore) -> None:
        saved = await admin_store.save_admin_user("8:acs:admin")

        active = await admin_store.get_active_admin_user()

        assert active["id"] == saved["id"]
        assert active["displayName"] == "System Admin"
        assert active["environment"] == "test"

    async def test_touch_updates_last_used(self, admin_store: AdminUserStore) -> None:
        admin = await admin_store.save_admin_user("8:acs:admin")
        admin["lastUsedAt"] = "2020-01-01T00:00:00Z"

        touched = await admin_store.touch_admin_user(admin)

        assert touched["lastUsedAt"] > "2020-01-01T00:00:00Z"

    def test_lazy_container(self, monkeypatch: pytest.MonkeyPatch) -> None:
        client = MagicMock()
        monkeypatch.setattr(
            "services.admin_user_store.create_cosmos_client", lambda endpoint, credential: client
        )
        store = AdminUserStore(endpoint="https://cosmos.example/", database_name="db", container_name="admins")

        container = store.container

        client.get_database_client.assert_called_once_with("db")
        assert container is client.get_database_client.return_value.get_container_client.return_value
