# Copyright (c) Microsoft. All rights reserved.

"""
Observability module for the support chat API.

Provides spans for the layers of a request:
- HTTP request lifecycle
- Cosmos DB operations
- Calls to other Azure dependencies (ACS, Graph, Storage Queues, OpenAI)

Uses the Agent Framework's configure_otel_providers() and get_tracer() APIs.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from opentelemetry.trace import Span, SpanKind, Status, StatusCode

from agent_framework.observability import configure_otel_providers, get_tracer

logger = logging.getLogger(__name__)

TRACER_NAME = "support_chat_api"


class SupportChatAttr:
    """Custom semantic attributes for the support chat API."""

    # Conversation context
    THREAD_ID = "support_chat.thread.id"
    USER_ID = "support_chat.user.id"
    AGENT_ID = "support_chat.agent.id"
    WORK_ITEM_STATUS = "support_chat.work_item.status"
    CLAIM_OUTCOME = "support_chat.claim.outcome"

    # Cosmos DB attributes (following OpenTelemetry DB conventions)
    COSMOS_CONTAINER = "db.cosmosdb.container"
    COSMOS_OPERATION = "db.operation"
    COSMOS_PARTITION_KEY = "db.cosmosdb.partition_key"

    # Outbound dependency
    DEPENDENCY_SYSTEM = "support_chat.dependency.system"
    DEPENDENCY_OPERATION = "support_chat.dependency.operation"


def init_observability() -> None:
    """Initialize observability using the Agent Framework's setup.

    Call once at Azure Functions app startup.

    Environment variables used:
    - ENABLE_INSTRUMENTATION: Enable OpenTelemetry instrumentation
    - ENABLE_SENSITIVE_DATA: Log message contents (default: false)
    - OTEL_EXPORTER_OTLP_ENDPOINT: OTLP collector endpoint
    - OTEL_SERVICE_NAME: Service name
    """
    try:
        configure_otel_providers()
        logger.info("Observability initialized successfully")
    except Exception as e:
        logger.warning(f"Failed to initialize observability: {e}")


@asynccontextmanager
async def http_request_span(
    method: str,
    path: str,
    thread_id: Optional[str] = None,
    user_id: Optional[str] = None,
) -> AsyncIterator[Span]:
    """Create a top-level HTTP request span.

    The span is yielded so callers can set http.status_code before exiting;
    a status code of 400 or above marks the span as an error.

    Args:
        method: HTTP method (GET, POST, DELETE, etc.)
        path: Route pattern (e.g., "/agent/claimWorkItem/{threadId}")
        thread_id: ACS thread identifier for correlation
        user_id: User or agent identifier for correlation

    Yields:
        The active span for setting additional attributes like status code.
    """
    tracer = get_tracer(TRACER_NAME)
    attributes = {
        "http.method": method,
        "http.route": path,
    }
    if thread_id:
        attributes[SupportChatAttr.THREAD_ID] = thread_id
    if user_id:
        attributes[SupportChatAttr.USER_ID] = user_id

    with tracer.start_as_current_span(
        f"http.request {method} {path}",
        kind=SpanKind.SERVER,
        attributes=attributes,
    ) as span:
        try:
            yield span
            status_code = span.attributes.get("http.status_code") if hasattr(
                span, "attributes"
            ) else None
            if status_code and status_code >= 400:
                span.set_status(Status(StatusCode.ERROR))
            else:
                span.set_status(Status(StatusCode.OK))
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise


@asynccontextmanager
async def cosmos_span(
    operation: str,
    container: str,
    partition_key: Optional[str] = None,
) -> AsyncIterator[Span]:
    """Create a Cosmos DB operation span.

    Args:
        operation: Database operation (read, query, upsert, replace, delete)
        container: Cosmos DB container name
        partition_key: Partition key value for the operation
    """
    tracer = get_tracer(TRACER_NAME)
    attributes = {
        "db.system": "cosmosdb",
        SupportChatAttr.COSMOS_OPERATION: operation,
        SupportChatAttr.COSMOS_CONTAINER: container,
    }
    if partition_key:
        attributes[SupportChatAttr.COSMOS_PARTITION_KEY] = partition_key

    with tracer.start_as_current_span(
        f"cosmos.{operation} {container}",
        kind=SpanKind.CLIENT,
        attributes=attributes,
    ) as span:
        try:
            yield span
            span.set_status(Status(StatusCode.OK))
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise


@asynccontextmanager
async def dependency_span(
    system: str,
    operation: str,
    **attributes: Any,
) -> AsyncIterator[Span]:
    """Create a span around a call to an external Azure service.

    Args:
        system: Dependency name ("acs", "graph", "storage_queue", "openai")
        operation: Operation name (e.g., "create_chat_thread")
        **attributes: Extra span attributes; None values are dropped.
    """
    tracer = get_tracer(TRACER_NAME)
    span_attributes = {
        SupportChatAttr.DEPENDENCY_SYSTEM: system,
        SupportChatAttr.DEPENDENCY_OPERATION: operation,
    }
    span_attributes.update({k: v for k, v in attributes.items() if v is not None})

    with tracer.start_as_current_span(
        f"{system}.{operation}",
        kind=SpanKind.CLIENT,
        attributes=span_attributes,
    ) as span:
        try:
            yield span
            span.set_status(Status(StatusCode.OK))
        except Exception as e:
            span.set_status(Status(StatusCode.ERROR, str(e)))
            span.record_exception(e)
            raise
