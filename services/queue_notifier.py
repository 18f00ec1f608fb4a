# Copyright (c) Microsoft. All rights reserved.

"""
Azure Storage Queue fan-out for agent console events.

Each event is written as a raw JSON string. Queue-triggered functions relay
the payloads to SignalR so every open agent console sees new requests,
claims and cancellations. Sends are best-effort: failures are logged and
never raised to the caller.
"""

import json
import logging
import os
from datetime import datetime
from typing import Any, Callable

from azure.core.exceptions import ResourceExistsError
from azure.storage.queue import QueueClient

from services.models import AgentWorkItem, WorkItemStatus, to_iso, utc_now
from services.observability import SupportChatAttr, dependency_span
from services.text import mask_for_logging

logger = logging.getLogger(__name__)

NEW_CHAT_REQUEST = "newChatRequest"
CHAT_CLAIMED = "chatClaimed"
WORK_ITEM_DELETED = "workItemDeleted"
WORK_ITEM_CANCELLED = "workItemCancelled"


class QueueNotifier:
    """Publishes work item events to Azure Storage Queues."""

    def __init__(
        self,
        connection_string: str | None = None,
        new_chat_queue: str | None = None,
        chat_claimed_queue: str | None = None,
        work_item_cancelled_queue: str | None = None,
        queue_factory: Callable[[str], Any] | None = None,
    ):
        """
        Initialize the notifier.

        Args:
            connection_string: Storage connection string. Defaults to AzureWebJobsStorage.
            new_chat_queue: Defaults to NewChatRequestQueue env var.
            chat_claimed_queue: Defaults to ChatClaimedQueue env var.
            work_item_cancelled_queue: Defaults to WorkItemCancelledQueue env var.
            queue_factory: Builds a queue client for a queue name (used by tests).
        """
        self.connection_string = connection_string or os.environ.get("AzureWebJobsStorage")
        self.new_chat_queue = new_chat_queue or os.environ.get(
            "NewChatRequestQueue", "new-chat-request-queue"
        )
        self.chat_claimed_queue = chat_claimed_queue or os.environ.get(
            "ChatClaimedQueue", "chat-claimed-queue"
        )
        self.work_item_cancelled_queue = work_item_cancelled_queue or os.environ.get(
            "WorkItemCancelledQueue", "work-item-cancelled-queue"
        )

        if queue_factory is None and not self.connection_string:
            raise ValueError(
                "Storage connection string is required. "
                "Set AzureWebJobsStorage environment variable."
            )

        self._queue_factory = queue_factory or self._create_queue_client
        self._queues: dict[str, Any] = {}

    def _create_queue_client(self, queue_name: str) -> QueueClient:
        return QueueClient.from_connection_string(self.connection_string, queue_name)

    def _get_queue(self, queue_name: str):
        queue = self._queues.get(queue_name)
        if queue is None:
            queue = self._queue_factory(queue_name)
            try:
                queue.create_queue()
            except ResourceExistsError:
                pass
            self._queues[queue_name] = queue
        return queue

    async def _send(self, queue_name: str, thread_id: str, payload: dict) -> bool:
        if not thread_id:
            logger.warning(f"Skipping {payload.get('eventType')} message: thread id is empty")
            return False

        try:
            async with dependency_span(
                "storage_queue",
                "send_message",
                **{SupportChatAttr.THREAD_ID: thread_id, "messaging.destination": queue_name},
            ):
                self._get_queue(queue_name).send_message(json.dumps(payload))
        except Exception as e:
            logger.error(
                f"Failed to send {payload.get('eventType')} for thread "
                f"{mask_for_logging(thread_id)} to {queue_name}: {e}"
            )
            return False

        logger.info(
            f"Sent {payload.get('eventType')} for thread {mask_for_logging(thread_id)} to {queue_name}"
        )
        return True

    async def send_new_chat_request(self, work_item: AgentWorkItem) -> bool:
        """Announce a new unassigned chat request."""
        payload = {
            "eventType": NEW_CHAT_REQUEST,
            "workItem": {
                "id": work_item.id,
                "customerName": work_item.customer_name,
                "createdAt": to_iso(work_item.created_at),
                "status": int(WorkItemStatus.UNASSIGNED),
                "priority": "NORMAL",
            },
        }
        return await self._send(self.new_chat_queue, work_item.id, payload)

    async def send_chat_claimed(
        self,
        thread_id: str,
        agent_id: str,
        agent_name: str,
        claimed_at: datetime | None = None,
    ) -> bool:
        """Tell other agents that a chat has been taken."""
        payload = {
            "eventType": CHAT_CLAIMED,
            "threadId": thread_id,
            "agentId": agent_id,
            "agentName": agent_name,
            "claimedAt": to_iso(claimed_at or utc_now()),
        }
        return await self._send(self.chat_claimed_queue, thread_id, payload)

    async def send_work_item_deleted(self, thread_id: str) -> bool:
        """Remove a request from agent queues after the chat ended."""
        payload = {
            "eventType": WORK_ITEM_DELETED,
            "threadId": thread_id,
            "deletedAt": to_iso(utc_now()),
            "reason": "Customer ended chat or agent canceled",
        }
        return await self._send(self.new_chat_queue, thread_id, payload)

    async def send_work_item_cancelled(self, thread_id: str) -> bool:
        payload = {
            "eventType": WORK_ITEM_CANCELLED,
            "threadId": thread_id,
            "cancelledAt": to_iso(utc_now()),
            "status": int(WorkItemStatus.CANCELLED),
        }
        return await self._send(self.work_item_cancelled_queue, thread_id, payload)
