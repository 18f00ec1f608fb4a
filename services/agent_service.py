# Copyright (c) Microsoft. All rights reserved.

"""
Support agent operations: agent directory, assignment and work item claims.

Agents are configured as pairs of Teams and ACS identities in ACS_AGENT_USERS
(a JSON list of {"teamsUserId", "acsUserId", "displayName"}).
"""

import json
import logging
import os

from services.chat_service import ChatService
from services.models import AgentUser, AgentWorkItem, ClaimResult, WorkItemStatus, to_iso, utc_now
from services.observability import SupportChatAttr, dependency_span
from services.text import mask_for_logging, require
from services.work_item_store import WorkItemStore

logger = logging.getLogger(__name__)


def load_agent_users(raw: str | None = None) -> list[AgentUser]:
    """
    Parse the configured agent directory.

    Args:
        raw: JSON text. Defaults to the ACS_AGENT_USERS env var.

    Raises:
        ValueError: If the setting is not a JSON list.
    """
    raw = raw if raw is not None else os.environ.get("ACS_AGENT_USERS", "[]")
    try:
        entries = json.loads(raw or "[]")
    except json.JSONDecodeError as e:
        raise ValueError(f"ACS_AGENT_USERS is not valid JSON: {e}") from e
    if not isinstance(entries, list):
        raise ValueError("ACS_AGENT_USERS must be a JSON list")
    return [AgentUser.from_dict(entry) for entry in entries]


class AgentService:
    """Coordinates agents, their ACS identities, and work items."""

    def __init__(
        self,
        work_item_store: WorkItemStore,
        chat_service: ChatService,
        agent_users: list[AgentUser] | None = None,
    ):
        self.work_item_store = work_item_store
        self.chat_service = chat_service
        self.agent_users = agent_users if agent_users is not None else load_agent_users()

    # -------------------------------------------------------------------------
    # Agent directory
    # -------------------------------------------------------------------------

    def get_agent_acs_user(self, teams_user_id: str) -> AgentUser | None:
        """
        Look up an agent by Teams user id (case-insensitive).

        Raises:
            ValueError: If teams_user_id is blank or no agents are configured.
        """
        teams_user_id = require(teams_user_id, "teamsUserId")
        if not self.agent_users:
            raise ValueError("No agent users are configured")

        wanted = teams_user_id.lower()
        for agent in self.agent_users:
            if agent.teams_user_id.lower() == wanted:
                return agent

        logger.warning(f"No agent configured for Teams user {mask_for_logging(teams_user_id)}")
        return None

    def default_agent(self) -> AgentUser | None:
        return self.agent_users[0] if self.agent_users else None

    async def assign_agent(self, thread_id: str) -> dict:
        """Add the default agent to a thread with full history."""
        thread_id = require(thread_id, "threadId")
        agent = self.default_agent()
        if agent is None:
            return {
                "success": False,
                "threadId": thread_id,
                "errorMessage": "No agent users are configured",
                "errorCode": "NO_AGENTS_CONFIGURED",
            }

        joined = await self.chat_service.join_thread(
            thread_id, agent.acs_user_id, agent.display_name, role="agent"
        )
        if not joined["success"]:
            logger.warning(
                f"Failed to add agent to thread {mask_for_logging(thread_id)}: {joined.get('errorMessage')}"
            )
            return {
                "success": False,
                "threadId": thread_id,
                "errorMessage": joined.get("errorMessage") or "Failed to add agent to thread",
                "errorCode": "JOIN_THREAD_FAILED",
            }

        logger.info(f"Assigned agent {agent.display_name} to thread {mask_for_logging(thread_id)}")
        return {
            "success": True,
            "agentDisplayName": agent.display_name,
            "agentUserId": agent.acs_user_id,
            "teamsUserId": agent.teams_user_id,
            "threadId": thread_id,
            "assignedAt": to_iso(utc_now()),
        }

    # -------------------------------------------------------------------------
    # Work items
    # -------------------------------------------------------------------------

    async def create_work_item(
        self, thread_id: str, status: WorkItemStatus = WorkItemStatus.UNASSIGNED
    ) -> AgentWorkItem:
        return await self.work_item_store.create_work_item(thread_id, status=status)

    async def get_work_items(self, status: WorkItemStatus | None = None) -> list[AgentWorkItem]:
        return await self.work_item_store.list_work_items(status)

    async def update_work_item_status(
        self, thread_id: str, status: WorkItemStatus
    ) -> AgentWorkItem | None:
        return await self.work_item_store.update_work_item_status(thread_id, status)

    async def get_unassigned_work_items(self) -> list[AgentWorkItem]:
        return await self.work_item_store.get_unassigned_work_items()

    async def get_agent_work_items(
        self, agent_id: str, status: WorkItemStatus | None = None
    ) -> list[AgentWorkItem]:
        return await self.work_item_store.get_agent_work_items(agent_id, status)

    async def cancel_work_item(self, thread_id: str) -> bool:
        return await self.work_item_store.cancel_work_item(thread_id)

    async def delete_work_item(self, thread_id: str) -> bool:
        return await self.work_item_store.delete_work_item(thread_id)

    async def claim_work_item(
        self, thread_id: str, agent_id: str, agent_name: str
    ) -> ClaimResult:
        """
        Claim a work item and add the agent to its chat thread.

        The claim itself is decided by the store. Joining the ACS thread is a
        follow-up: if it fails the claim still stands and the failure is logged.
        """
        result = await self.work_item_store.claim_work_item(thread_id, agent_id, agent_name)
        if not result.success:
            logger.info(
                f"Claim of {mask_for_logging(thread_id)} by {mask_for_logging(agent_id)} rejected: {result.error}"
            )
            return result

        try:
            async with dependency_span(
                "acs",
                "join_claimed_thread",
                **{SupportChatAttr.THREAD_ID: thread_id, SupportChatAttr.AGENT_ID: agent_id},
            ):
                joined = await self.chat_service.join_thread(
                    thread_id, agent_id, agent_name, role="agent"
                )
            if not joined["success"]:
                logger.warning(
                    f"Claimed {mask_for_logging(thread_id)} but agent join failed: {joined.get('errorMessage')}"
                )
        except Exception as e:
            logger.warning(
                f"Claimed {mask_for_logging(thread_id)} but agent join raised (partial failure): {e}"
            )

        return result
