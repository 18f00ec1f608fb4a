# Copyright (c) Microsoft. All rights reserved.

"""Configuration and troubleshooting endpoints."""

import logging
import os
from urllib.parse import urlparse

import azure.functions as func

from routes.dependencies import error_response, get_work_item_store, json_response
from services import http_request_span, mask_for_logging
from services.identity import parse_endpoint
from services.models import to_iso, utc_now

bp = func.Blueprint()


def resolve_acs_endpoint() -> str | None:
    """ACS_ENDPOINT, or the endpoint embedded in ACS_CONNECTION_STRING."""
    return os.environ.get("ACS_ENDPOINT") or parse_endpoint(
        os.environ.get("ACS_CONNECTION_STRING", "")
    )


@bp.route(route="config/getEndpoint", methods=["GET"])
async def get_endpoint(req: func.HttpRequest) -> func.HttpResponse:
    """
    Return the ACS endpoint the SPAs should connect to.

    Response:
        200 OK
        {"endpointUrl": "https://<resource>.communication.azure.com/", "isValid": true}
    """
    async with http_request_span("GET", "/config/getEndpoint") as span:
        endpoint = resolve_acs_endpoint()
        parsed = urlparse(endpoint or "")
        if parsed.scheme != "https" or not parsed.netloc:
            logging.warning("ACS endpoint is not configured or invalid")
            span.set_attribute("http.status_code", 400)
            return json_response({
                "error": "Invalid endpoint configuration",
                "message": "Endpoint URL is not configured or invalid",
            }, 400)

        span.set_attribute("http.status_code", 200)
        return json_response({
            "endpointUrl": endpoint,
            "isValid": True,
            "validatedAt": to_iso(utc_now()),
        })


@bp.route(route="debug/thread/{threadId}/metadata", methods=["GET"])
async def get_thread_metadata(req: func.HttpRequest) -> func.HttpResponse:
    """
    Show the stored work item and metadata for a thread.

    Request:
        GET /api/debug/thread/{threadId}/metadata
    """
    thread_id = req.route_params.get("threadId")

    async with http_request_span(
        "GET", "/debug/thread/{threadId}/metadata", thread_id=thread_id
    ) as span:
        try:
            item = await get_work_item_store().get_work_item(thread_id)
        except Exception:
            logging.exception(f"Metadata lookup failed for {mask_for_logging(thread_id)}")
            span.set_attribute("http.status_code", 500)
            return error_response("Metadata lookup failed", 500)

        if item is None:
            span.set_attribute("http.status_code", 404)
            return json_response({
                "success": False,
                "error": "Thread not found in database",
                "threadId": thread_id,
            }, 404)

        span.set_attribute("http.status_code", 200)
        return json_response({
            "success": True,
            "threadId": thread_id,
            "workItemExists": True,
            "metadata": item.metadata,
            "metadataCount": len(item.metadata),
            "workItem": {
                "id": item.id,
                "status": int(item.status),
                "customerName": item.customer_name,
                "customerId": item.customer_id,
                "assignedAgentId": item.assigned_agent_id,
                "createdAt": to_iso(item.created_at),
                "updatedAt": to_iso(item.updated_at),
            },
        })


@bp.route(route="debug/thread/{threadId}/participants", methods=["GET"])
async def get_thread_participants(req: func.HttpRequest) -> func.HttpResponse:
    """
    List the customer and agent recorded on a thread's work item.

    Request:
        GET /api/debug/thread/{threadId}/participants
    """
    thread_id = req.route_params.get("threadId")

    async with http_request_span(
        "GET", "/debug/thread/{threadId}/participants", thread_id=thread_id
    ) as span:
        try:
            participants = await get_work_item_store().get_thread_participants(thread_id)
        except Exception:
            logging.exception(f"Participant lookup failed for {mask_for_logging(thread_id)}")
            span.set_attribute("http.status_code", 500)
            return error_response("Participant lookup failed", 500)

        if participants is None:
            span.set_attribute("http.status_code", 404)
            return json_response({
                "success": False,
                "error": "Thread not found in database",
                "threadId": thread_id,
            }, 404)

        span.set_attribute("http.status_code", 200)
        return json_response({
            "success": True,
            "threadId": thread_id,
            "participants": participants,
            "participantCount": len(participants),
        })
