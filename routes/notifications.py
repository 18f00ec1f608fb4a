# Copyright (c) Microsoft. All rights reserved.

"""Outbound notification endpoints: Teams activity feed and transcript email."""

import logging

import azure.functions as func

from routes.dependencies import (
    error_response,
    get_email_service,
    get_teams_notifications,
    json_response,
    read_json_body,
)
from services import TranscriptEmailRequest, http_request_span
from services.models import parse_iso, to_iso, utc_now

bp = func.Blueprint()


@bp.route(route="teams/notify", methods=["POST"])
async def notify_agent(req: func.HttpRequest) -> func.HttpResponse:
    """
    Send a Teams activity notification about a chat request to one agent.

    Request:
        POST /api/teams/notify
        Body: {"chatRequest": {"threadId": "..."}, "agentUserId": "...",
               "priority": "NORMAL", "customerName": "...", "requestTime": "...",
               "questionSummary": "...", "chatTopic": "...", "initialMessage": "..."}
    """
    async with http_request_span("POST", "/teams/notify") as span:
        try:
            body = read_json_body(req)
            raw_time = body.get("requestTime")
            if raw_time is not None and not isinstance(raw_time, str):
                raise ValueError("requestTime must be an ISO-8601 string")
            request_time = parse_iso(raw_time)
        except ValueError:
            span.set_attribute("http.status_code", 400)
            return error_response("Invalid notification request", 400)

        chat_request = body.get("chatRequest")
        thread_id = chat_request.get("threadId") if isinstance(chat_request, dict) else None
        if not thread_id or not isinstance(thread_id, str):
            span.set_attribute("http.status_code", 400)
            return error_response("Invalid notification request", 400)

        agent_user_id = body.get("agentUserId")
        if not agent_user_id:
            span.set_attribute("http.status_code", 400)
            return json_response({
                "success": False,
                "message": "AgentUserId is required for Teams notifications",
                "threadId": thread_id,
            }, 400)

        try:
            sent = await get_teams_notifications().send_new_chat_notification(
                agent_user_id,
                thread_id,
                customer_name=body.get("customerName"),
                request_time=request_time,
                priority=body.get("priority") or "NORMAL",
                question_summary=body.get("questionSummary"),
                chat_topic=body.get("chatTopic"),
                initial_message=body.get("initialMessage"),
            )
        except Exception:
            logging.exception("Teams notification failed")
            span.set_attribute("http.status_code", 500)
            return error_response("Teams notification failed", 500)

        if not sent:
            span.set_attribute("http.status_code", 500)
            return json_response({
                "success": False,
                "message": "Failed to send Teams notification",
                "threadId": thread_id,
            }, 500)

        span.set_attribute("http.status_code", 200)
        return json_response({
            "success": True,
            "message": "Teams notification sent successfully",
            "threadId": thread_id,
            "timestamp": to_iso(utc_now()),
        })


@bp.route(route="email/transcript", methods=["POST"])
async def send_transcript_email(req: func.HttpRequest) -> func.HttpResponse:
    """
    Email the support case summary to the customer.

    Request:
        POST /api/email/transcript
        Body: {"customerEmail": "...", "customerName": "...", "threadId": "...",
               "agentName": "...", "problemReported": "...", "solutionProvided": "...",
               "summary": "...", "resolutionDate": "..."}

    Response:
        200 OK
        {"success": true, "message": "...", "emailId": "..."}
    """
    async with http_request_span("POST", "/email/transcript") as span:
        try:
            body = read_json_body(req)
        except ValueError:
            span.set_attribute("http.status_code", 400)
            return error_response("Invalid JSON format in request body", 400)

        if not body:
            span.set_attribute("http.status_code", 400)
            return error_response("Request body cannot be empty", 400)

        for field, label in (
            ("customerEmail", "CustomerEmail"),
            ("customerName", "CustomerName"),
            ("threadId", "ThreadId"),
        ):
            if not body.get(field):
                span.set_attribute("http.status_code", 400)
                return error_response(f"{label} is required", 400)

        try:
            result = await get_email_service().send_transcript_email(
                TranscriptEmailRequest.from_dict(body)
            )
        except ValueError as e:
            span.set_attribute("http.status_code", 400)
            return error_response(str(e), 400)
        except Exception:
            logging.exception("Transcript email failed")
            span.set_attribute("http.status_code", 500)
            return error_response("Transcript email failed", 500)

        status_code = 200 if result["success"] else 400
        span.set_attribute("http.status_code", status_code)
        return json_response(result, status_code)
