# Copyright (c) Microsoft. All rights reserved.

"""Chat thread and message endpoints used by the customer widget and agent SPA."""

import logging

import azure.functions as func

from routes.dependencies import (
    error_response,
    get_agent_service,
    get_chat_service,
    get_queue_notifier,
    get_teams_notifications,
    json_response,
    read_json_body,
)
from services import AgentWorkItem, SupportChatAttr, http_request_span, mask_for_logging

bp = func.Blueprint()

UNKNOWN_CUSTOMER = "Unknown Customer"


async def _announce_new_chat(thread_id: str, customer_name: str, topic: str | None) -> None:
    """Queue the SignalR broadcast and notify the first agent in Teams; both best-effort."""
    try:
        await get_queue_notifier().send_new_chat_request(
            AgentWorkItem(id=thread_id, customer_name=customer_name)
        )
    except Exception as e:
        logging.warning(f"New chat queue message failed for {mask_for_logging(thread_id)}: {e}")

    try:
        agent = get_agent_service().default_agent()
        if agent is None:
            logging.warning("No agent configured for Teams notification")
            return
        sent = await get_teams_notifications().send_new_chat_notification(
            agent.teams_user_id,
            thread_id,
            customer_name=customer_name,
            initial_message=topic,
        )
        logging.info(f"Teams notification: {'sent' if sent else 'failed'}")
    except Exception as e:
        logging.warning(f"Teams notification failed for {mask_for_logging(thread_id)}: {e}")


@bp.route(route="chat/thread/create", methods=["POST"])
async def create_thread(req: func.HttpRequest) -> func.HttpResponse:
    """
    Create a support chat thread for a customer.

    Request:
        POST /api/chat/thread/create
        Body: {"displayName": "Jane", "topic": "...", "userId": "8:acs:..."}

    Response:
        200 OK
        {"threadId": "19:...@thread.v2", "success": true}
    """
    async with http_request_span("POST", "/chat/thread/create") as span:
        try:
            body = read_json_body(req)
        except ValueError:
            span.set_attribute("http.status_code", 400)
            return json_response({"success": False, "errorMessage": "Invalid JSON body"}, 400)

        if not body:
            span.set_attribute("http.status_code", 400)
            return json_response({"success": False, "errorMessage": "Request body is required"}, 400)

        try:
            result = await get_chat_service().create_thread(
                body.get("displayName"), body.get("topic"), body.get("userId")
            )
        except Exception:
            logging.exception("Chat thread creation failed")
            span.set_attribute("http.status_code", 500)
            return json_response(
                {"success": False, "errorMessage": "Chat thread creation failed"}, 500
            )

        if not result["success"]:
            span.set_attribute("http.status_code", 400)
            return json_response(result, 400)

        thread_id = result["threadId"]
        span.set_attribute(SupportChatAttr.THREAD_ID, thread_id)
        customer_name = (body.get("displayName") or "").strip() or UNKNOWN_CUSTOMER
        await _announce_new_chat(thread_id, customer_name, body.get("topic"))

        span.set_attribute("http.status_code", 200)
        return json_response(result)


@bp.route(route="chat/thread/join", methods=["POST"])
async def join_thread(req: func.HttpRequest) -> func.HttpResponse:
    """
    Add a participant to a thread with full history.

    Request:
        POST /api/chat/thread/join
        Body: {"threadId": "...", "userId": "...", "displayName": "...", "role": "customer"}
    """
    async with http_request_span("POST", "/chat/thread/join") as span:
        try:
            body = read_json_body(req)
        except ValueError:
            span.set_attribute("http.status_code", 400)
            return json_response({"success": False, "errorMessage": "Invalid JSON body"}, 400)

        try:
            result = await get_chat_service().join_thread(
                body.get("threadId"),
                body.get("userId"),
                body.get("displayName"),
                role=body.get("role") or "customer",
            )
        except Exception:
            logging.exception("Join thread failed")
            span.set_attribute("http.status_code", 500)
            return json_response({"success": False, "errorMessage": "Join thread failed"}, 500)

        status_code = 200 if result["success"] else 400
        span.set_attribute("http.status_code", status_code)
        return json_response(result, status_code)


@bp.route(route="chat/message/send", methods=["POST"])
async def send_message(req: func.HttpRequest) -> func.HttpResponse:
    """
    Send a message to a thread as the given user.

    Request:
        POST /api/chat/message/send
        Body: {"threadId": "...", "userId": "...", "displayName": "...",
               "message": "Hello", "messageType": "text"}
    """
    async with http_request_span("POST", "/chat/message/send") as span:
        try:
            body = read_json_body(req)
        except ValueError:
            span.set_attribute("http.status_code", 400)
            return json_response({"success": False, "errorMessage": "Invalid JSON body"}, 400)

        thread_id = body.get("threadId")
        user_id = body.get("userId")
        display_name = body.get("displayName")
        if not thread_id or not user_id or not display_name:
            span.set_attribute("http.status_code", 400)
            return json_response({
                "success": False,
                "threadId": thread_id or "",
                "errorMessage": "threadId, userId and displayName are required",
                "errorCode": "InvalidRequest",
            }, 400)

        try:
            result = await get_chat_service().send_message(
                thread_id, user_id, display_name, body.get("message"), body.get("messageType")
            )
        except Exception:
            logging.exception("Send message failed")
            span.set_attribute("http.status_code", 500)
            return json_response({"success": False, "errorMessage": "Send message failed"}, 500)

        status_code = 200 if result["success"] else 400
        span.set_attribute("http.status_code", status_code)
        return json_response(result, status_code)


@bp.route(route="chat/history/send", methods=["POST"])
async def send_conversation_history(req: func.HttpRequest) -> func.HttpResponse:
    """
    Replay the customer's earlier bot conversation into a thread.

    Request:
        POST /api/chat/history/send
        Body: {"threadId": "...", "conversationHistory": [
                  {"content": "...", "senderDisplayName": "...", "timestamp": "..."}]}
    """
    async with http_request_span("POST", "/chat/history/send") as span:
        try:
            body = read_json_body(req)
        except ValueError:
            span.set_attribute("http.status_code", 400)
            return json_response({"success": False, "errorMessage": "Invalid JSON body"}, 400)

        history = body.get("conversationHistory")
        if history is not None and not isinstance(history, list):
            span.set_attribute("http.status_code", 400)
            return json_response(
                {"success": False, "errorMessage": "conversationHistory must be a list"}, 400
            )

        try:
            result = await get_chat_service().send_conversation_history(
                body.get("threadId"), history or []
            )
        except Exception:
            logging.exception("Conversation history replay failed")
            span.set_attribute("http.status_code", 500)
            return json_response(
                {"success": False, "errorMessage": "Conversation history replay failed"}, 500
            )

        status_code = 200 if result["success"] else 400
        span.set_attribute("http.status_code", status_code)
        return json_response(result, status_code)


@bp.route(route="chat/thread/{threadId}/messages", methods=["GET"])
async def get_thread_messages(req: func.HttpRequest) -> func.HttpResponse:
    """
    List the text and HTML messages of a thread, oldest first.

    Request:
        GET /api/chat/thread/{threadId}/messages
    """
    thread_id = req.route_params.get("threadId")

    async with http_request_span(
        "GET", "/chat/thread/{threadId}/messages", thread_id=thread_id
    ) as span:
        try:
            messages = await get_chat_service().get_thread_messages(thread_id)
        except Exception:
            logging.exception("Message retrieval failed")
            span.set_attribute("http.status_code", 500)
            return error_response("Message retrieval failed", 500)

        span.set_attribute("http.status_code", 200)
        return json_response(messages)


@bp.route(route="chat/addUser/{threadId}", methods=["POST"])
async def add_user(req: func.HttpRequest) -> func.HttpResponse:
    """
    Add a user to a thread.

    Request:
        POST /api/chat/addUser/{threadId}
        Body: {"id": "8:acs:...", "displayName": "..."}

    Response:
        201 Created, or 404 if the user could not be added
    """
    thread_id = req.route_params.get("threadId")

    async with http_request_span("POST", "/chat/addUser/{threadId}", thread_id=thread_id) as span:
        try:
            body = read_json_body(req)
        except ValueError:
            span.set_attribute("http.status_code", 400)
            return func.HttpResponse(status_code=400)

        user_id = body.get("id")
        display_name = body.get("displayName")
        if not thread_id or not user_id or not display_name:
            span.set_attribute("http.status_code", 400)
            return func.HttpResponse(status_code=400)

        try:
            added = await get_chat_service().add_user(thread_id, user_id, display_name)
        except Exception as e:
            logging.warning(f"Add user to {mask_for_logging(thread_id)} failed: {e}")
            added = False

        status_code = 201 if added else 404
        span.set_attribute("http.status_code", status_code)
        return func.HttpResponse(status_code=status_code)


@bp.route(route="chat/thread/{threadId}", methods=["DELETE"])
async def delete_thread(req: func.HttpRequest) -> func.HttpResponse:
    """
    Delete a chat thread and its work item.

    Request:
        DELETE /api/chat/thread/{threadId}

    Response:
        200 OK, or 404 if neither the thread nor the work item exists
    """
    thread_id = req.route_params.get("threadId")

    async with http_request_span("DELETE", "/chat/thread/{threadId}", thread_id=thread_id) as span:
        try:
            deleted = await get_chat_service().delete_thread(thread_id)
        except Exception:
            logging.exception(f"Thread deletion failed for {mask_for_logging(thread_id)}")
            span.set_attribute("http.status_code", 500)
            return json_response({
                "success": False,
                "threadId": thread_id,
                "error": "An unexpected error occurred while deleting the thread",
            }, 500)

        if not deleted:
            span.set_attribute("http.status_code", 404)
            return json_response(
                {"success": False, "threadId": thread_id, "error": "Thread not found"}, 404
            )

        try:
            await get_queue_notifier().send_work_item_deleted(thread_id)
        except Exception as e:
            logging.warning(f"Deleted-item queue message failed for {mask_for_logging(thread_id)}: {e}")
        logging.info(f"Deleted thread {mask_for_logging(thread_id)}")

        span.set_attribute("http.status_code", 200)
        return json_response(
            {"success": True, "threadId": thread_id, "message": "Thread deleted successfully"}
        )
