# Copyright (c) Microsoft. All rights reserved.

"""
Support Chat API - Azure Functions Application

Backend for a customer support chat built on Azure Communication Services.
Customers chat from a web widget; support agents pick up requests from a
Teams-hosted dashboard.

Key Features:
- ACS identities, tokens and chat threads owned by a system admin identity
- Cosmos DB work items with an ETag-guarded claim so one agent wins each chat
- Storage Queue events relayed to agents in real time through SignalR
- Teams notifications, meetings and transcript emails through Microsoft Graph
- AI transcripts and self-service answers with Microsoft Agent Framework
- OpenTelemetry observability with automatic and custom spans
"""

import azure.functions as func

from routes import (
    agents_bp,
    assistant_bp,
    chat_bp,
    diagnostics_bp,
    health_bp,
    meetings_bp,
    notifications_bp,
    realtime_bp,
    tokens_bp,
)
from services import init_observability

# Initialize observability once at startup
init_observability()

# Create the Function App and register blueprints
app = func.FunctionApp(http_auth_level=func.AuthLevel.ANONYMOUS)
app.register_functions(tokens_bp)
app.register_functions(chat_bp)
app.register_functions(agents_bp)
app.register_functions(meetings_bp)
app.register_functions(notifications_bp)
app.register_functions(assistant_bp)
app.register_functions(realtime_bp)
app.register_functions(diagnostics_bp)
app.register_functions(health_bp)
