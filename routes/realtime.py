# Copyright (c) Microsoft. All rights reserved.

"""
SignalR relay for the agent dashboard.

Work item events written to Storage Queues by the HTTP endpoints are pushed
to every connected agent through the "agentHub" SignalR hub.
"""

import json
import logging

import azure.functions as func

from services.queue_notifier import CHAT_CLAIMED, NEW_CHAT_REQUEST, WORK_ITEM_CANCELLED

bp = func.Blueprint()

HUB_NAME = "agentHub"
SIGNALR_CONNECTION_SETTING = "AzureSignalRConnectionString"
QUEUE_CONNECTION_SETTING = "AzureWebJobsStorage"


def build_signalr_message(target: str, body: str | bytes | None) -> str:
    """
    Wrap a queue payload as a SignalR output binding message.

    Raises:
        ValueError: If the queue message is empty, so the host retries it
            and eventually moves it to the poison queue.
    """
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    if not body or not body.strip():
        raise ValueError(f"Empty queue message for SignalR target {target}")

    return json.dumps({"target": target, "arguments": [json.loads(body)]})


@bp.route(route="negotiate", methods=["POST", "GET"])
@bp.generic_input_binding(
    arg_name="connectionInfo",
    type="signalRConnectionInfo",
    hubName=HUB_NAME,
    connectionStringSetting=SIGNALR_CONNECTION_SETTING,
)
def negotiate(req: func.HttpRequest, connectionInfo: str) -> func.HttpResponse:
    """Return the SignalR connection URL and access token for a client."""
    return func.HttpResponse(connectionInfo, mimetype="application/json")


@bp.queue_trigger(
    arg_name="msg", queue_name="%NewChatRequestQueue%", connection=QUEUE_CONNECTION_SETTING
)
@bp.generic_output_binding(
    arg_name="signalRMessages",
    type="signalR",
    hubName=HUB_NAME,
    connectionStringSetting=SIGNALR_CONNECTION_SETTING,
)
def relay_new_chat_request(msg: func.QueueMessage, signalRMessages: func.Out[str]) -> None:
    signalRMessages.set(build_signalr_message(NEW_CHAT_REQUEST, msg.get_body()))
    logging.info(f"Relayed {NEW_CHAT_REQUEST} message {msg.id} to SignalR")


@bp.queue_trigger(
    arg_name="msg", queue_name="%ChatClaimedQueue%", connection=QUEUE_CONNECTION_SETTING
)
@bp.generic_output_binding(
    arg_name="signalRMessages",
    type="signalR",
    hubName=HUB_NAME,
    connectionStringSetting=SIGNALR_CONNECTION_SETTING,
)
def relay_chat_claimed(msg: func.QueueMessage, signalRMessages: func.Out[str]) -> None:
    signalRMessages.set(build_signalr_message(CHAT_CLAIMED, msg.get_body()))
    logging.info(f"Relayed {CHAT_CLAIMED} message {msg.id} to SignalR")


@bp.queue_trigger(
    arg_name="msg", queue_name="%WorkItemCancelledQueue%", connection=QUEUE_CONNECTION_SETTING
)
@bp.generic_output_binding(
    arg_name="signalRMessages",
    type="signalR",
    hubName=HUB_NAME,
    connectionStringSetting=SIGNALR_CONNECTION_SETTING,
)
def relay_work_item_cancelled(msg: func.QueueMessage, signalRMessages: func.Out[str]) -> None:
    signalRMessages.set(build_signalr_message(WORK_ITEM_CANCELLED, msg.get_body()))
    logging.info(f"Relayed {WORK_ITEM_CANCELLED} message {msg.id} to SignalR")
