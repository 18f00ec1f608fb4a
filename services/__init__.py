# Copyright (c) Microsoft. All rights reserved.

"""
Core modules for the Support Chat API.

This package contains one service per external system:
- work_item_store / admin_user_store: Azure Cosmos DB persistence
- identity / chat_service: Azure Communication Services identity and chat
- agent_service: agent directory, assignment and work item claims
- queue_notifier: Storage Queue events relayed to SignalR
- graph_client / teams_notifications / email_service / meeting_service: Microsoft Graph
- transcript_service / knowledge_assistant: Agent Framework agents on Azure OpenAI
- observability: OpenTelemetry instrumentation for tracing
"""

from services.admin_user_store import AdminUserStore
from services.agent_service import AgentService, load_agent_users
from services.chat_service import ChatService
from services.email_service import EmailService, TranscriptEmailRequest
from services.graph_client import (
    GraphAuthenticationError,
    GraphClient,
    GraphNotFoundError,
    GraphRequestError,
)
from services.identity import TokenService, parse_token_scopes
from services.knowledge_assistant import KnowledgeAssistant
from services.meeting_service import MeetingRequest, MeetingService
from services.models import (
    AgentUser,
    AgentWorkItem,
    ChatTranscript,
    ClaimResult,
    WorkItemStatus,
)
from services.observability import (
    SupportChatAttr,
    cosmos_span,
    dependency_span,
    http_request_span,
    init_observability,
)
from services.queue_notifier import QueueNotifier
from services.teams_notifications import TeamsNotificationService
from services.text import mask_for_logging
from services.transcript_service import TranscriptNotAvailableError, TranscriptService
from services.work_item_store import WorkItemClaimError, WorkItemStore

__all__ = [
    "AdminUserStore",
    "AgentService",
    "AgentUser",
    "AgentWorkItem",
    "ChatService",
    "ChatTranscript",
    "ClaimResult",
    "EmailService",
    "GraphAuthenticationError",
    "GraphClient",
    "GraphNotFoundError",
    "GraphRequestError",
    "KnowledgeAssistant",
    "MeetingRequest",
    "MeetingService",
    "QueueNotifier",
    "SupportChatAttr",
    "TeamsNotificationService",
    "TokenService",
    "TranscriptEmailRequest",
    "TranscriptNotAvailableError",
    "TranscriptService",
    "WorkItemClaimError",
    "WorkItemStatus",
    "WorkItemStore",
    "cosmos_span",
    "dependency_span",
    "http_request_span",
    "init_observability",
    "load_agent_users",
    "mask_for_logging",
    "parse_token_scopes",
]
