# Copyright (c) Microsoft. All rights reserved.

"""Teams meeting endpoints for escalating a chat to a call."""

import logging

import azure.functions as func

from routes.dependencies import get_meeting_service, json_response, read_json_body
from services import MeetingRequest, http_request_span, mask_for_logging

bp = func.Blueprint()


def _failure(message: str, status_code: int) -> func.HttpResponse:
    return json_response({"success": False, "errorMessage": message}, status_code)


@bp.route(route="meeting/create", methods=["POST"])
async def create_meeting(req: func.HttpRequest) -> func.HttpResponse:
    """
    Schedule a Teams meeting in the agent's calendar and post the link to the chat.

    Request:
        POST /api/meeting/create
        Body: {"threadId": "...", "customerName": "...", "customerEmail": "...",
               "agentEmail": "...", "startDateTime": "...", "endDateTime": "...",
               "subject": "...", "description": "...", "timeZone": "UTC"}

    Response:
        200 OK
        {"success": true, "eventId": "...", "joinUrl": "...", ...}
    """
    async with http_request_span("POST", "/meeting/create") as span:
        try:
            body = read_json_body(req)
            if not body:
                raise ValueError("Request body is required")
            meeting = MeetingRequest.from_dict(body)
        except ValueError as e:
            span.set_attribute("http.status_code", 400)
            return _failure(str(e), 400)

        try:
            result = await get_meeting_service().create_meeting(meeting)
        except Exception:
            logging.exception("Meeting creation failed")
            span.set_attribute("http.status_code", 500)
            return _failure("Meeting creation failed", 500)

        status_code = 200 if result["success"] else 400
        span.set_attribute("http.status_code", status_code)
        return json_response(result, status_code)


@bp.route(route="meeting/{eventId}", methods=["GET"])
async def get_meeting(req: func.HttpRequest) -> func.HttpResponse:
    """
    Get meeting details.

    Request:
        GET /api/meeting/{eventId}?organizerEmail=agent@contoso.com
    """
    event_id = req.route_params.get("eventId")
    organizer_email = req.params.get("organizerEmail")

    async with http_request_span("GET", "/meeting/{eventId}") as span:
        if not organizer_email:
            span.set_attribute("http.status_code", 400)
            return _failure("organizerEmail query parameter is required", 400)

        try:
            details = await get_meeting_service().get_meeting(event_id, organizer_email)
        except Exception:
            logging.exception(f"Meeting lookup failed for {mask_for_logging(event_id)}")
            span.set_attribute("http.status_code", 500)
            return _failure("Meeting lookup failed", 500)

        if details is None:
            span.set_attribute("http.status_code", 404)
            return _failure("Meeting not found", 404)

        span.set_attribute("http.status_code", 200)
        return json_response(details)


@bp.route(route="meeting/{eventId}", methods=["DELETE"])
async def cancel_meeting(req: func.HttpRequest) -> func.HttpResponse:
    """
    Cancel a meeting and notify attendees.

    Request:
        DELETE /api/meeting/{eventId}?organizerEmail=...&message=...
    """
    event_id = req.route_params.get("eventId")
    organizer_email = req.params.get("organizerEmail")

    async with http_request_span("DELETE", "/meeting/{eventId}") as span:
        if not organizer_email:
            span.set_attribute("http.status_code", 400)
            return _failure("organizerEmail query parameter is required", 400)

        try:
            cancelled = await get_meeting_service().cancel_meeting(
                event_id, organizer_email, req.params.get("message")
            )
        except Exception:
            logging.exception(f"Meeting cancellation failed for {mask_for_logging(event_id)}")
            span.set_attribute("http.status_code", 500)
            return _failure("Meeting cancellation failed", 500)

        if not cancelled:
            span.set_attribute("http.status_code", 404)
            return _failure("Meeting not found or could not be cancelled", 404)

        span.set_attribute("http.status_code", 200)
        return json_response({"success": True, "message": "Meeting cancelled successfully"})


@bp.route(route="meeting/{eventId}", methods=["PUT"])
async def update_meeting(req: func.HttpRequest) -> func.HttpResponse:
    """
    Reschedule or rename a meeting.

    Request:
        PUT /api/meeting/{eventId}?organizerEmail=...
        Body: {"subject": "...", "startDateTime": "...", "endDateTime": "..."}
    """
    event_id = req.route_params.get("eventId")
    organizer_email = req.params.get("organizerEmail")

    async with http_request_span("PUT", "/meeting/{eventId}") as span:
        if not organizer_email:
            span.set_attribute("http.status_code", 400)
            return _failure("organizerEmail query parameter is required", 400)

        try:
            body = read_json_body(req)
            if not body:
                raise ValueError("Request body is required")
            meeting = MeetingRequest.for_update(body, organizer_email)
        except ValueError as e:
            span.set_attribute("http.status_code", 400)
            return _failure(str(e), 400)

        try:
            result = await get_meeting_service().update_meeting(event_id, organizer_email, meeting)
        except Exception:
            logging.exception(f"Meeting update failed for {mask_for_logging(event_id)}")
            span.set_attribute("http.status_code", 500)
            return _failure("Meeting update failed", 500)

        if result is None:
            span.set_attribute("http.status_code", 404)
            return _failure("Meeting not found", 404)

        status_code = 200 if result["success"] else 400
        span.set_attribute("http.status_code", status_code)
        return json_response(result, status_code)
