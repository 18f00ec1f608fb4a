# Copyright (c) Microsoft. All rights reserved.

"""
Route blueprints for the Support Chat API.

This package contains Azure Functions blueprints organized by resource:
- tokens: ACS identities and access tokens
- chat: Chat threads, participants and messages
- agents: Agent directory, assignment and the work item queue
- meetings: Teams meetings for escalations
- notifications: Teams activity feed and transcript email
- assistant: AI transcripts and self-service answers
- realtime: SignalR negotiate and queue relays
- diagnostics: Endpoint configuration and debug views
- health: Health check endpoint
"""

from routes.agents import bp as agents_bp
from routes.assistant import bp as assistant_bp
from routes.chat import bp as chat_bp
from routes.diagnostics import bp as diagnostics_bp
from routes.health import bp as health_bp
from routes.meetings import bp as meetings_bp
from routes.notifications import bp as notifications_bp
from routes.realtime import bp as realtime_bp
from routes.tokens import bp as tokens_bp

__all__ = [
    "agents_bp",
    "assistant_bp",
    "chat_bp",
    "diagnostics_bp",
    "health_bp",
    "meetings_bp",
    "notifications_bp",
    "realtime_bp",
    "tokens_bp",
]
