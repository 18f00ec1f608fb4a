# Copyright (c) Microsoft. All rights reserved.

"""
ACS chat orchestration.

Threads are owned by a long-lived "System Admin" ACS identity. Customers
and agents are added as participants with full history visibility, so an
agent joining late sees the whole conversation.
"""

import asyncio
import logging
import os
from datetime import datetime, timezone
from typing import Any, Callable

from azure.communication.chat import (
    ChatClient,
    ChatMessageType,
    ChatParticipant,
    CommunicationTokenCredential,
    CommunicationUserIdentifier,
)
from azure.core.exceptions import HttpResponseError, ResourceNotFoundError

from services.admin_user_store import ADMIN_DISPLAY_NAME, AdminUserStore
from services.identity import TokenService
from services.models import WorkItemStatus, parse_iso, to_iso, utc_now
from services.observability import SupportChatAttr, dependency_span
from services.text import mask_for_logging, sanitize
from services.work_item_store import WorkItemStore

logger = logging.getLogger(__name__)

# Participants added with this share-history time see every earlier message.
FULL_HISTORY = datetime.min.replace(tzinfo=timezone.utc)

MAX_TOPIC_LENGTH = 255
MAX_MESSAGE_LENGTH = 8000


def default_topic(display_name: str, now: datetime | None = None) -> str:
    """Topic used when the customer does not supply one."""
    now = now or utc_now()
    return f"{display_name} - General Support ({now.strftime('%b %d %H:%M')})"


class ChatService:
    """Creates ACS chat threads, manages participants, and relays messages."""

    def __init__(
        self,
        token_service: TokenService,
        admin_store: AdminUserStore,
        work_item_store: WorkItemStore,
        endpoint: str | None = None,
        chat_client_factory: Callable[[str], Any] | None = None,
        history_send_delay: float = 0.1,
    ):
        """
        Args:
            token_service: Issues admin and user tokens.
            admin_store: Persists the admin identity.
            work_item_store: Stores the work item created with each thread.
            endpoint: ACS endpoint. Defaults to the token service endpoint.
            chat_client_factory: Builds a chat client from an access token.
            history_send_delay: Pause between replayed history messages, in seconds.
        """
        self.token_service = token_service
        self.admin_store = admin_store
        self.work_item_store = work_item_store
        self.endpoint = endpoint or token_service.endpoint or os.environ.get("ACS_ENDPOINT")
        if chat_client_factory is None and not self.endpoint:
            raise ValueError(
                "ACS endpoint is required. Set ACS_ENDPOINT environment variable."
            )
        self._chat_client_factory = chat_client_factory or self._create_chat_client
        self.history_send_delay = history_send_delay

    def _create_chat_client(self, token: str) -> ChatClient:
        return ChatClient(self.endpoint, CommunicationTokenCredential(token))

    # -------------------------------------------------------------------------
    # Admin identity
    # -------------------------------------------------------------------------

    async def get_or_create_admin_user(self) -> tuple[str, str]:
        """
        Return the admin ACS user id and a fresh chat token.

        Reuses the stored admin identity when there is one; otherwise
        creates a new ACS user and persists it.
        """
        admin = await self.admin_store.get_active_admin_user()
        if admin:
            token = await self.token_service.get_token(admin["acsUserId"])
            await self.admin_store.touch_admin_user(admin)
            return admin["acsUserId"], token["token"]

        created = await self.token_service.create_user_and_token()
        await self.admin_store.save_admin_user(created["identity"], ADMIN_DISPLAY_NAME)
        logger.info(f"Created admin user {mask_for_logging(created['identity'])}")
        return created["identity"], created["token"]

    async def _admin_thread_client(self, thread_id: str):
        _, token = await self.get_or_create_admin_user()
        return self._chat_client_factory(token).get_chat_thread_client(thread_id)

    # -------------------------------------------------------------------------
    # Threads
    # -------------------------------------------------------------------------

    async def create_thread(
        self,
        display_name: str | None,
        topic: str | None = None,
        user_id: str | None = None,
    ) -> dict:
        """
        Create a support thread owned by the admin identity.

        A work item in the Unassigned state is stored for the new thread so
        it shows up in agent queues.

        Returns:
            {"threadId", "success"} or {"success": False, "errorMessage"}.
        """
        display_name = (display_name or "").strip()
        if not display_name:
            return {"threadId": "", "success": False, "errorMessage": "Display name is required"}

        topic = sanitize(topic) or default_topic(display_name)
        if len(topic) > MAX_TOPIC_LENGTH:
            topic = topic[: MAX_TOPIC_LENGTH - 3] + "..."

        admin_id, admin_token = await self.get_or_create_admin_user()
        chat_client = self._chat_client_factory(admin_token)
        admin = ChatParticipant(
            identifier=CommunicationUserIdentifier(admin_id),
            display_name=ADMIN_DISPLAY_NAME,
            share_history_time=FULL_HISTORY,
        )

        async with dependency_span("acs", "create_chat_thread") as span:
            result = chat_client.create_chat_thread(topic, thread_participants=[admin])
            thread_id = result.chat_thread.id
            span.set_attribute(SupportChatAttr.THREAD_ID, thread_id)

        logger.info(f"Created chat thread {mask_for_logging(thread_id)} for {display_name}")

        try:
            await self.work_item_store.create_work_item(
                thread_id,
                status=WorkItemStatus.UNASSIGNED,
                customer_name=display_name,
                customer_id=user_id,
                creator_user_id=user_id,
            )
        except Exception as e:
            logger.error(f"Failed to save work item for thread {mask_for_logging(thread_id)}: {e}")

        return {"threadId": thread_id, "success": True}

    async def join_thread(
        self,
        thread_id: str,
        user_id: str,
        display_name: str,
        role: str = "customer",
    ) -> dict:
        """Add a participant who can see the full thread history."""
        if not thread_id or not user_id or not display_name:
            return {
                "success": False,
                "threadId": thread_id or "",
                "errorMessage": "threadId, userId and displayName are required",
                "errorCode": "InvalidRequest",
            }

        thread_client = await self._admin_thread_client(thread_id)
        participant = ChatParticipant(
            identifier=CommunicationUserIdentifier(user_id),
            display_name=display_name,
            share_history_time=FULL_HISTORY,
        )

        try:
            async with dependency_span(
                "acs", "add_participants", **{SupportChatAttr.THREAD_ID: thread_id}
            ):
                failures = thread_client.add_participants([participant])
        except HttpResponseError as e:
            logger.error(f"Failed to add {role} to thread {mask_for_logging(thread_id)}: {e}")
            return {
                "success": False,
                "threadId": thread_id,
                "userId": user_id,
                "errorMessage": f"Failed to join thread: {e.message}",
                "errorCode": "JoinFailed",
            }

        if failures:
            _, error = failures[0]
            return {
                "success": False,
                "threadId": thread_id,
                "userId": user_id,
                "errorMessage": f"Failed to join thread: {getattr(error, 'message', error)}",
                "errorCode": "JoinFailed",
            }

        logger.info(
            f"Added {role} {mask_for_logging(user_id)} to thread {mask_for_logging(thread_id)}"
        )
        return {
            "success": True,
            "threadId": thread_id,
            "userId": user_id,
            "displayName": display_name,
            "role": role,
            "joinedAt": to_iso(utc_now()),
            "shareHistoryTime": to_iso(FULL_HISTORY),
        }

    async def add_user(self, thread_id: str, user_id: str, display_name: str) -> bool:
        result = await self.join_thread(thread_id, user_id, display_name, role="participant")
        return result["success"]

    async def delete_thread(self, thread_id: str) -> bool:
        """
        Delete the ACS thread and its work item.

        Returns:
            True if either the thread or the work item existed.
        """
        _, token = await self.get_or_create_admin_user()
        chat_client = self._chat_client_factory(token)

        thread_deleted = True
        try:
            async with dependency_span(
                "acs", "delete_chat_thread", **{SupportChatAttr.THREAD_ID: thread_id}
            ):
                chat_client.delete_chat_thread(thread_id)
        except ResourceNotFoundError:
            thread_deleted = False
            logger.warning(f"Chat thread {mask_for_logging(thread_id)} not found in ACS")

        work_item_deleted = await self.work_item_store.delete_work_item(thread_id)
        return thread_deleted or work_item_deleted

    # -------------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------------

    async def send_message(
        self,
        thread_id: str,
        user_id: str,
        display_name: str,
        message: str,
        message_type: str | None = None,
    ) -> dict:
        """Send a message as the given user, using that user's own token."""
        content = (message or "").strip()
        result = {
            "success": False,
            "threadId": thread_id,
            "senderDisplayName": display_name,
            "messageContent": content,
        }
        if not content:
            return {**result, "errorMessage": "Message content cannot be empty", "errorCode": "EmptyMessage"}
        if len(content) > MAX_MESSAGE_LENGTH:
            return {
                **result,
                "errorMessage": f"Message exceeds maximum length of {MAX_MESSAGE_LENGTH} characters",
                "errorCode": "MessageTooLong",
            }

        chat_type = (
            ChatMessageType.HTML
            if (message_type or "").lower() == "html"
            else ChatMessageType.TEXT
        )
        token = await self.token_service.get_token(user_id)
        thread_client = self._chat_client_factory(token["token"]).get_chat_thread_client(thread_id)

        try:
            async with dependency_span(
                "acs", "send_message", **{SupportChatAttr.THREAD_ID: thread_id}
            ):
                sent = thread_client.send_message(
                    content=content,
                    sender_display_name=display_name,
                    chat_message_type=chat_type,
                )
        except HttpResponseError as e:
            logger.error(f"Failed to send message to thread {mask_for_logging(thread_id)}: {e}")
            return {**result, "errorMessage": f"Failed to send message: {e.message}", "errorCode": "SendFailed"}

        return {
            **result,
            "success": True,
            "messageId": sent.id,
            "sentAt": to_iso(utc_now()),
            "messageType": "html" if chat_type == ChatMessageType.HTML else "text",
        }

    async def send_html_message_as(
        self, thread_id: str, user_id: str, display_name: str, html: str
    ) -> dict:
        return await self.send_message(thread_id, user_id, display_name, html, "html")

    async def send_conversation_history(
        self, thread_id: str, history: list[dict]
    ) -> dict:
        """
        Replay an earlier conversation (e.g. with the bot) into the thread.

        Messages are sent by the admin identity under each original sender's
        display name. Empty entries are skipped and a failed message does not
        stop the replay.
        """
        if not thread_id or not history:
            return {
                "success": False,
                "threadId": thread_id or "",
                "errorMessage": "ThreadId and ConversationHistory are required",
            }

        thread_client = await self._admin_thread_client(thread_id)
        sent = 0
        for entry in history:
            content = (entry.get("content") or "").strip()
            if not content:
                continue
            sender = entry.get("senderDisplayName") or entry.get("displayName") or ""
            try:
                async with dependency_span("acs", "send_message"):
                    thread_client.send_message(
                        content=content,
                        sender_display_name=sender,
                        chat_message_type=ChatMessageType.TEXT,
                    )
                sent += 1
                await asyncio.sleep(self.history_send_delay)
            except HttpResponseError as e:
                logger.warning(f"Failed to replay history message from {sender}: {e}")

        logger.info(
            f"Replayed {sent}/{len(history)} history messages to thread {mask_for_logging(thread_id)}"
        )
        return {
            "success": True,
            "threadId": thread_id,
            "messagesSent": sent,
            "totalMessages": len(history),
            "details": f"Sent {sent} conversation history messages",
        }

    async def get_thread_messages(self, thread_id: str) -> list[dict]:
        """Text and HTML messages of a thread, oldest first."""
        thread_client = await self._admin_thread_client(thread_id)

        async with dependency_span(
            "acs", "list_messages", **{SupportChatAttr.THREAD_ID: thread_id}
        ):
            raw_messages = list(thread_client.list_messages())

        messages = []
        for message in raw_messages:
            if message.type not in (ChatMessageType.TEXT, ChatMessageType.HTML):
                continue
            content = message.content.message if message.content else None
            if not content:
                continue
            sender = message.sender.raw_id if message.sender else ""
            messages.append({
                "id": message.id,
                "senderId": sender,
                "senderDisplayName": message.sender_display_name or "",
                "content": content,
                "sentAtUtc": to_iso(message.created_on),
                "type": "html" if message.type == ChatMessageType.HTML else "text",
            })

        messages.sort(key=lambda m: parse_iso(m["sentAtUtc"]) or FULL_HISTORY)
        return messages
