# Copyright (c) Microsoft. All rights reserved.

"""
Service singletons and response helpers shared by the route blueprints.

Each service is created lazily on first use, so a missing setting only
fails the endpoints that need it.
"""

import json
import logging
from typing import Any

import azure.functions as func

from services import (
    AdminUserStore,
    AgentService,
    ChatService,
    EmailService,
    GraphClient,
    KnowledgeAssistant,
    MeetingService,
    QueueNotifier,
    TeamsNotificationService,
    TokenService,
    TranscriptService,
    WorkItemStore,
)

_work_item_store: WorkItemStore | None = None
_admin_user_store: AdminUserStore | None = None
_token_service: TokenService | None = None
_chat_service: ChatService | None = None
_agent_service: AgentService | None = None
_queue_notifier: QueueNotifier | None = None
_graph_client: GraphClient | None = None
_teams_notifications: TeamsNotificationService | None = None
_email_service: EmailService | None = None
_meeting_service: MeetingService | None = None
_transcript_service: TranscriptService | None = None
_knowledge_assistant: KnowledgeAssistant | None = None


def get_work_item_store() -> WorkItemStore:
    """Get or create the Cosmos DB work item store instance."""
    global _work_item_store
    if _work_item_store is None:
        _work_item_store = WorkItemStore()
        logging.info("Initialized Cosmos DB work item store")
    return _work_item_store


def get_admin_user_store() -> AdminUserStore:
    global _admin_user_store
    if _admin_user_store is None:
        _admin_user_store = AdminUserStore()
        logging.info("Initialized Cosmos DB admin user store")
    return _admin_user_store


def get_token_service() -> TokenService:
    global _token_service
    if _token_service is None:
        _token_service = TokenService()
        logging.info("Initialized ACS token service")
    return _token_service


def get_chat_service() -> ChatService:
    global _chat_service
    if _chat_service is None:
        _chat_service = ChatService(
            get_token_service(), get_admin_user_store(), get_work_item_store()
        )
        logging.info("Initialized ACS chat service")
    return _chat_service


def get_agent_service() -> AgentService:
    global _agent_service
    if _agent_service is None:
        _agent_service = AgentService(get_work_item_store(), get_chat_service())
        logging.info(f"Initialized agent service with {len(_agent_service.agent_users)} agents")
    return _agent_service


def get_queue_notifier() -> QueueNotifier:
    global _queue_notifier
    if _queue_notifier is None:
        _queue_notifier = QueueNotifier()
        logging.info("Initialized storage queue notifier")
    return _queue_notifier


def get_graph_client() -> GraphClient:
    global _graph_client
    if _graph_client is None:
        _graph_client = GraphClient()
        logging.info("Initialized Microsoft Graph client")
    return _graph_client


def get_teams_notifications() -> TeamsNotificationService:
    global _teams_notifications
    if _teams_notifications is None:
        _teams_notifications = TeamsNotificationService(
            get_graph_client(), get_agent_service().agent_users
        )
    return _teams_notifications


def get_email_service() -> EmailService:
    global _email_service
    if _email_service is None:
        _email_service = EmailService(get_graph_client())
    return _email_service


def get_meeting_service() -> MeetingService:
    global _meeting_service
    if _meeting_service is None:
        _meeting_service = MeetingService(
            get_graph_client(), get_work_item_store(), get_chat_service()
        )
    return _meeting_service


def get_transcript_service() -> TranscriptService:
    global _transcript_service
    if _transcript_service is None:
        _transcript_service = TranscriptService(get_chat_service())
    return _transcript_service


def get_knowledge_assistant() -> KnowledgeAssistant:
    global _knowledge_assistant
    if _knowledge_assistant is None:
        _knowledge_assistant = KnowledgeAssistant()
    return _knowledge_assistant


# -----------------------------------------------------------------------------
# Request / response helpers
# -----------------------------------------------------------------------------


def json_response(body: Any, status_code: int = 200) -> func.HttpResponse:
    return func.HttpResponse(
        body=json.dumps(body),
        status_code=status_code,
        mimetype="application/json",
    )


def error_response(message: str, status_code: int) -> func.HttpResponse:
    return json_response({"error": message}, status_code)


def read_json_body(req: func.HttpRequest) -> dict:
    """
    Parse the request body as a JSON object.

    An empty body is treated as {}.

    Raises:
        ValueError: If the body is not a JSON object.
    """
    if not req.get_body():
        return {}
    body = req.get_json()
    if not isinstance(body, dict):
        raise ValueError("Invalid JSON body")
    return body
