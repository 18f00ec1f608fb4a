# Copyright (c) Microsoft. All rights reserved.

"""AI endpoints: case transcripts and customer self-service answers."""

import logging

import azure.functions as func

from routes.dependencies import (
    error_response,
    get_knowledge_assistant,
    get_transcript_service,
    json_response,
    read_json_body,
)
from services import TranscriptNotAvailableError, http_request_span, mask_for_logging

bp = func.Blueprint()


@bp.route(route="ai/transcript", methods=["POST"])
async def generate_transcript(req: func.HttpRequest) -> func.HttpResponse:
    """
    Summarize a chat thread into a support case transcript.

    Request:
        POST /api/ai/transcript
        Body: {"threadId": "...", "customerName": "...", "agentName": "..."}

    Response:
        200 OK
        {"threadId": "...", "problemReported": "...", "solutionProvided": "...",
         "summary": "...", "resolutionDate": "...", "fullTranscript": "..."}
    """
    async with http_request_span("POST", "/ai/transcript") as span:
        try:
            body = read_json_body(req)
        except ValueError:
            span.set_attribute("http.status_code", 400)
            return error_response("Invalid request format", 400)

        thread_id = body.get("threadId")
        if not thread_id or not str(thread_id).strip():
            span.set_attribute("http.status_code", 400)
            return error_response("threadId is required", 400)

        try:
            transcript = await get_transcript_service().generate_transcript(
                thread_id, body.get("customerName"), body.get("agentName")
            )
        except TranscriptNotAvailableError as e:
            span.set_attribute("http.status_code", 404)
            return error_response(str(e), 404)
        except Exception:
            logging.exception(f"Transcript generation failed for {mask_for_logging(thread_id)}")
            span.set_attribute("http.status_code", 500)
            return error_response("Failed to generate transcript", 500)

        span.set_attribute("http.status_code", 200)
        return json_response(transcript.to_dict())


@bp.route(route="agent/query", methods=["POST"])
async def query_assistant(req: func.HttpRequest) -> func.HttpResponse:
    """
    Answer a customer's IT support question while they wait for an agent.

    Request:
        POST /api/agent/query
        Body: {"query": "How do I reset my password?"}
    """
    async with http_request_span("POST", "/agent/query") as span:
        try:
            body = read_json_body(req)
        except ValueError:
            span.set_attribute("http.status_code", 400)
            return error_response("Invalid JSON format", 400)

        if not body:
            span.set_attribute("http.status_code", 400)
            return error_response("Request body is empty", 400)

        query = body.get("query")
        if not query or not str(query).strip():
            span.set_attribute("http.status_code", 400)
            return error_response("Invalid request: query is required", 400)

        result = await get_knowledge_assistant().answer(query)
        status_code = 200 if result["success"] else 500
        span.set_attribute("http.status_code", status_code)
        return json_response(result, status_code)
