# Copyright (c) Microsoft. All rights reserved.

"""
Teams activity feed notifications for support agents.

A notification deep-links into the agent Teams app with the chat thread id
as sub-entity, so clicking it opens the conversation directly.
"""

import asyncio
import logging
import os
from datetime import datetime, timedelta

from services.graph_client import GraphClient
from services.models import AgentUser, utc_now
from services.text import mask_for_logging

logger = logging.getLogger(__name__)

CONTEXT_MAX_LENGTH = 80
DEFAULT_CONTEXT = "General support assistance"


def format_notification_time(value: datetime, now: datetime | None = None) -> str:
    """Render a request time as "Today 14:05", "Yesterday 09:30" or "Mar 04 17:45"."""
    now = now or utc_now()
    time_text = value.strftime("%H:%M")
    if value.date() == now.date():
        return f"Today {time_text}"
    if value.date() == (now - timedelta(days=1)).date():
        return f"Yesterday {time_text}"
    return f"{value.strftime('%b %d')} {time_text}"


def truncate_for_notification(text: str | None, max_length: int = CONTEXT_MAX_LENGTH) -> str:
    """Trim to max_length, preferring a word break in the last 30% of the text."""
    if not text or not text.strip():
        return ""
    trimmed = text.strip()
    if len(trimmed) <= max_length:
        return trimmed
    truncated = trimmed[:max_length]
    last_space = truncated.rfind(" ")
    if last_space > max_length * 0.7:
        return trimmed[:last_space] + "..."
    return truncated + "..."


def notification_context(
    question_summary: str | None = None,
    chat_topic: str | None = None,
    initial_message: str | None = None,
) -> str:
    for candidate in (question_summary, chat_topic, initial_message):
        if candidate and candidate.strip():
            return truncate_for_notification(candidate)
    return DEFAULT_CONTEXT


class TeamsNotificationService:
    """Sends Teams activity feed notifications about new chat requests."""

    def __init__(
        self,
        graph: GraphClient,
        agent_users: list[AgentUser] | None = None,
        app_id: str | None = None,
        enabled: bool | None = None,
    ):
        """
        Args:
            graph: Graph client used to post notifications.
            agent_users: Agents to notify on broadcast.
            app_id: Installed Teams app id. Defaults to TEAMS_APP_ID env var.
            enabled: Defaults to TEAMS_ENABLE_NOTIFICATIONS env var (true).
        """
        self.graph = graph
        self.agent_users = agent_users or []
        self.app_id = app_id if app_id is not None else os.environ.get("TEAMS_APP_ID", "")
        if enabled is None:
            enabled = os.environ.get("TEAMS_ENABLE_NOTIFICATIONS", "true").lower() == "true"
        self.enabled = enabled

    def build_deep_link(self, thread_id: str) -> str:
        return (
            f"https://teams.microsoft.com/l/entity/{self.app_id}/index"
            f'?context={{"subEntityId":"{thread_id}"}}'
        )

    def build_notification(
        self,
        thread_id: str,
        customer_name: str | None = None,
        request_time: datetime | None = None,
        priority: str = "NORMAL",
        question_summary: str | None = None,
        chat_topic: str | None = None,
        initial_message: str | None = None,
    ) -> dict:
        """Build the sendActivityNotification request body."""
        display_name = customer_name or "Customer"
        time_text = format_notification_time(request_time or utc_now())
        if chat_topic:
            topic = f"{display_name} > {chat_topic} ({time_text})"
        elif customer_name:
            topic = f"{display_name} > Support Request ({time_text})"
        else:
            topic = f"Customer Support ({time_text})"

        urgent = (priority or "").upper() in ("HIGH", "URGENT")
        return {
            "topic": {
                "source": "text",
                "value": topic,
                "webUrl": self.build_deep_link(thread_id),
            },
            "activityType": "systemDefault",
            "previewText": {
                "content": "🚨 Urgent support request" if urgent else "💬 New support request",
            },
            "templateParameters": [
                {
                    "name": "systemDefaultText",
                    "value": notification_context(question_summary, chat_topic, initial_message),
                }
            ],
            "teamsAppId": self.app_id,
        }

    async def send_new_chat_notification(
        self,
        agent_user_id: str,
        thread_id: str,
        customer_name: str | None = None,
        request_time: datetime | None = None,
        priority: str = "NORMAL",
        question_summary: str | None = None,
        chat_topic: str | None = None,
        initial_message: str | None = None,
    ) -> bool:
        """
        Notify one agent about a chat request.

        Returns:
            True if sent (or notifications are disabled), False on failure.
        """
        if not self.enabled:
            logger.info("Teams notifications are disabled via configuration")
            return True

        body = self.build_notification(
            thread_id,
            customer_name=customer_name,
            request_time=request_time,
            priority=priority,
            question_summary=question_summary,
            chat_topic=chat_topic,
            initial_message=initial_message,
        )
        try:
            await self.graph.request(
                "POST", f"users/{agent_user_id}/teamwork/sendActivityNotification", json=body
            )
        except Exception as e:
            logger.error(
                f"Failed to send Teams notification to agent {mask_for_logging(agent_user_id)} "
                f"for chat {mask_for_logging(thread_id)}: {e}"
            )
            return False

        logger.info(f"Sent Teams notification to agent {mask_for_logging(agent_user_id)}")
        return True

    async def broadcast_new_chat_notification(
        self,
        thread_id: str,
        customer_name: str | None = None,
        priority: str = "NORMAL",
        initial_message: str | None = None,
    ) -> int:
        """Notify every configured agent concurrently; returns the number notified."""
        if not self.enabled:
            logger.info("Teams notifications are disabled via configuration")
            return 0

        targets = [agent for agent in self.agent_users if agent.teams_user_id]
        if not targets:
            logger.warning("No agents configured for Teams notifications")
            return 0

        now = utc_now()
        results = await asyncio.gather(*(
            self.send_new_chat_notification(
                agent.teams_user_id,
                thread_id,
                customer_name=customer_name,
                request_time=now,
                priority=priority,
                initial_message=initial_message,
            )
            for agent in targets
        ))
        sent = sum(1 for ok in results if ok)
        logger.info(f"Broadcast complete: {sent}/{len(targets)} agents notified")
        return sent
