# Copyright (c) Microsoft. All rights reserved.

"""Agent directory, assignment and work item queue endpoints."""

import logging

import azure.functions as func

from routes.dependencies import (
    error_response,
    get_agent_service,
    get_queue_notifier,
    json_response,
    read_json_body,
)
from services import WorkItemStatus, http_request_span, mask_for_logging

bp = func.Blueprint()


def _items_response(items: list) -> dict:
    return {"items": [item.to_response() for item in items], "totalCount": len(items)}


@bp.route(route="agent/getAgentUser", methods=["GET"])
async def get_agent_user(req: func.HttpRequest) -> func.HttpResponse:
    """
    Map a Teams user to the agent's ACS identity.

    Request:
        GET /api/agent/getAgentUser?teamsUserId=...

    Response:
        200 OK
        {"teamsUserId": "...", "acsUserId": "8:acs:...", "displayName": "..."}
    """
    teams_user_id = req.params.get("teamsUserId")

    async with http_request_span("GET", "/agent/getAgentUser", user_id=teams_user_id) as span:
        if not teams_user_id or not teams_user_id.strip():
            span.set_attribute("http.status_code", 400)
            return json_response({
                "error": "TeamsUserId is required",
                "message": "Please provide a valid teamsUserId parameter",
            }, 400)

        try:
            agent = get_agent_service().get_agent_acs_user(teams_user_id)
        except ValueError as e:
            span.set_attribute("http.status_code", 400)
            return json_response({"error": "Invalid parameter", "message": str(e)}, 400)

        if agent is None:
            span.set_attribute("http.status_code", 404)
            return json_response({
                "error": "Agent not found",
                "message": f"No linked ACS user found for TeamsUserId: {teams_user_id}",
            }, 404)

        span.set_attribute("http.status_code", 200)
        return json_response(agent.to_dict())


@bp.route(route="agent/assignAgentUser", methods=["POST"])
async def assign_agent_user(req: func.HttpRequest) -> func.HttpResponse:
    """
    Add the default agent to a chat thread.

    Request:
        POST /api/agent/assignAgentUser
        Body: {"threadId": "19:...@thread.v2"}
    """
    async with http_request_span("POST", "/agent/assignAgentUser") as span:
        try:
            body = read_json_body(req)
        except ValueError:
            span.set_attribute("http.status_code", 400)
            return json_response({"success": False, "errorMessage": "Invalid request format"}, 400)

        thread_id = body.get("threadId")
        if not thread_id or not str(thread_id).strip():
            span.set_attribute("http.status_code", 400)
            return json_response({"success": False, "errorMessage": "ThreadId is required"}, 400)

        try:
            result = await get_agent_service().assign_agent(thread_id)
        except Exception:
            logging.exception("Agent assignment failed")
            span.set_attribute("http.status_code", 500)
            return json_response({
                "success": False,
                "threadId": thread_id,
                "errorMessage": "Internal server error",
                "errorCode": "ASSIGNMENT_FAILED",
            }, 500)

        status_code = 200 if result["success"] else 400
        span.set_attribute("http.status_code", status_code)
        return json_response(result, status_code)


@bp.route(route="agent/getAgentWorkItems", methods=["GET"])
async def get_agent_work_items(req: func.HttpRequest) -> func.HttpResponse:
    """
    List work items, optionally filtered by numeric status.

    Request:
        GET /api/agent/getAgentWorkItems?status=0
    """
    async with http_request_span("GET", "/agent/getAgentWorkItems") as span:
        status = None
        status_param = req.params.get("status")
        if status_param:
            try:
                status = WorkItemStatus.parse(status_param)
            except ValueError as e:
                span.set_attribute("http.status_code", 400)
                return error_response(str(e), 400)

        try:
            items = await get_agent_service().get_work_items(status)
        except Exception:
            logging.exception("Work item listing failed")
            span.set_attribute("http.status_code", 500)
            return error_response("Failed to retrieve agent work items", 500)

        span.set_attribute("http.status_code", 200)
        return json_response([item.to_response() for item in items])


@bp.route(route="agent/createAgentWorkItems", methods=["POST"])
async def create_agent_work_item(req: func.HttpRequest) -> func.HttpResponse:
    """
    Create the work item for a thread.

    Request:
        POST /api/agent/createAgentWorkItems
        Body: {"id": "19:...@thread.v2", "status": 0}

    Response:
        201 Created with the stored work item
    """
    async with http_request_span("POST", "/agent/createAgentWorkItems") as span:
        try:
            body = read_json_body(req)
            thread_id = body.get("id")
            if not thread_id or not str(thread_id).strip():
                raise ValueError("ThreadId (id) is required")
            status = WorkItemStatus.parse(body.get("status", WorkItemStatus.UNASSIGNED))
        except ValueError as e:
            span.set_attribute("http.status_code", 400)
            return json_response({"error": "Invalid request", "message": str(e)}, 400)

        try:
            item = await get_agent_service().create_work_item(thread_id, status)
        except Exception:
            logging.exception("Work item creation failed")
            span.set_attribute("http.status_code", 500)
            return error_response("Failed to create agent work item", 500)

        span.set_attribute("http.status_code", 201)
        return json_response(item.to_response(), 201)


@bp.route(route="agent/updateAgentWorkItems/{threadId}", methods=["PUT"])
async def update_agent_work_item(req: func.HttpRequest) -> func.HttpResponse:
    """
    Set the status of a work item.

    Request:
        PUT /api/agent/updateAgentWorkItems/{threadId}
        Body: {"status": "Resolved"}
    """
    thread_id = req.route_params.get("threadId")

    async with http_request_span(
        "PUT", "/agent/updateAgentWorkItems/{threadId}", thread_id=thread_id
    ) as span:
        try:
            body = read_json_body(req)
            if "status" not in body:
                raise ValueError("status is required")
            status = WorkItemStatus.parse(body["status"])
        except ValueError as e:
            span.set_attribute("http.status_code", 400)
            return json_response({"error": "Invalid request", "message": str(e)}, 400)

        try:
            item = await get_agent_service().update_work_item_status(thread_id, status)
        except Exception:
            logging.exception("Work item update failed")
            span.set_attribute("http.status_code", 500)
            return error_response("Failed to update agent work item", 500)

        if item is None:
            span.set_attribute("http.status_code", 404)
            return error_response("Work item not found", 404)

        span.set_attribute("http.status_code", 200)
        return json_response(item.to_response())


@bp.route(route="agent/claimWorkItem/{threadId}", methods=["POST"])
async def claim_work_item(req: func.HttpRequest) -> func.HttpResponse:
    """
    Claim an unassigned work item; only one agent can win.

    Request:
        POST /api/agent/claimWorkItem/{threadId}
        Body: {"agentId": "8:acs:...", "agentName": "Agent Name"}

    Response:
        200 OK with the claim result, or 409 Conflict naming the agent who won
    """
    thread_id = req.route_params.get("threadId")

    async with http_request_span(
        "POST", "/agent/claimWorkItem/{threadId}", thread_id=thread_id
    ) as span:
        try:
            body = read_json_body(req)
        except ValueError:
            span.set_attribute("http.status_code", 400)
            return json_response(
                {"error": "Invalid JSON", "message": "Request body must be valid JSON"}, 400
            )

        agent_id = body.get("agentId")
        agent_name = body.get("agentName")
        if not agent_id or not agent_name:
            span.set_attribute("http.status_code", 400)
            return json_response(
                {"error": "Invalid request", "message": "AgentId and AgentName are required"}, 400
            )

        try:
            result = await get_agent_service().claim_work_item(thread_id, agent_id, agent_name)
        except ValueError as e:
            span.set_attribute("http.status_code", 400)
            return json_response({"error": "Invalid parameter", "message": str(e)}, 400)
        except Exception as e:
            logging.exception(f"Claim failed for {mask_for_logging(thread_id)}")
            span.set_attribute("http.status_code", 500)
            return json_response({"error": "Failed to claim work item", "message": str(e)}, 500)

        if not result.success:
            logging.warning(f"Claim of {mask_for_logging(thread_id)} rejected: {result.error}")
            span.set_attribute("http.status_code", 409)
            return json_response(result.to_response(), 409)

        try:
            await get_queue_notifier().send_chat_claimed(
                thread_id, agent_id, agent_name, result.claimed_at
            )
        except Exception as e:
            logging.warning(f"Chat claimed queue message failed: {e}")

        span.set_attribute("http.status_code", 200)
        return json_response(result.to_response())


@bp.route(route="agent/getUnassignedWorkItems", methods=["GET"])
async def get_unassigned_work_items(req: func.HttpRequest) -> func.HttpResponse:
    """
    List the waiting queue, longest-waiting customer first.

    Response:
        200 OK
        {"items": [...], "totalCount": 3}
    """
    async with http_request_span("GET", "/agent/getUnassignedWorkItems") as span:
        try:
            items = await get_agent_service().get_unassigned_work_items()
        except Exception:
            logging.exception("Unassigned work item listing failed")
            span.set_attribute("http.status_code", 500)
            return error_response("Failed to retrieve unassigned work items", 500)

        span.set_attribute("http.status_code", 200)
        return json_response(_items_response(items))


@bp.route(route="agent/getMyWorkItems/{agentId}", methods=["GET"])
async def get_my_work_items(req: func.HttpRequest) -> func.HttpResponse:
    """
    List the work items assigned to an agent.

    Request:
        GET /api/agent/getMyWorkItems/{agentId}?status=claimed

    An unknown status name is ignored.
    """
    agent_id = req.route_params.get("agentId")

    async with http_request_span(
        "GET", "/agent/getMyWorkItems/{agentId}", user_id=mask_for_logging(agent_id)
    ) as span:
        status = None
        if req.params.get("status"):
            try:
                status = WorkItemStatus.parse(req.params["status"])
            except ValueError:
                logging.info(f"Ignoring unknown status filter {req.params['status']!r}")

        try:
            items = await get_agent_service().get_agent_work_items(agent_id, status)
        except Exception:
            logging.exception("Agent work item listing failed")
            span.set_attribute("http.status_code", 500)
            return error_response("Failed to retrieve work items", 500)

        span.set_attribute("http.status_code", 200)
        return json_response(_items_response(items))


@bp.route(route="agent/deleteWorkItem/{threadId}", methods=["DELETE"])
async def delete_work_item(req: func.HttpRequest) -> func.HttpResponse:
    """
    Cancel a work item when the agent cancels or the customer leaves.

    The item is kept with status Cancelled. A missing or already closed
    item is still a success.
    """
    thread_id = req.route_params.get("threadId")

    async with http_request_span(
        "DELETE", "/agent/deleteWorkItem/{threadId}", thread_id=thread_id
    ) as span:
        try:
            cancelled = await get_agent_service().cancel_work_item(thread_id)
        except Exception as e:
            logging.exception(f"Work item cancellation failed for {mask_for_logging(thread_id)}")
            span.set_attribute("http.status_code", 500)
            return json_response({"error": "Failed to delete work item", "message": str(e)}, 500)

        if cancelled:
            try:
                await get_queue_notifier().send_work_item_cancelled(thread_id)
            except Exception as e:
                logging.warning(f"Work item cancelled queue message failed: {e}")
            message = f"Work item {thread_id} cancelled successfully"
        else:
            message = f"Work item {thread_id} already removed or resolved"

        span.set_attribute("http.status_code", 200)
        return json_response({"success": True, "message": message})
