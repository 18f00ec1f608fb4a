# Copyright (c) Microsoft. All rights reserved.

"""ACS identity and access token endpoints."""

import logging

import azure.functions as func

from routes.dependencies import error_response, get_token_service, json_response, read_json_body
from services import http_request_span, mask_for_logging, parse_token_scopes

bp = func.Blueprint()


@bp.route(route="token/createUserToken", methods=["POST"])
async def create_user_token(req: func.HttpRequest) -> func.HttpResponse:
    """
    Create a new ACS user together with an access token.

    Request:
        POST /api/token/createUserToken?scope=chat,voip

    Response:
        200 OK
        {"identity": "8:acs:...", "token": "...", "expiresOn": "...", "user": {...}}
    """
    async with http_request_span("POST", "/token/createUserToken") as span:
        scopes = parse_token_scopes(req.params.get("scope") or "chat")
        try:
            result = await get_token_service().create_user_and_token(scopes)
        except ValueError as e:
            span.set_attribute("http.status_code", 400)
            return error_response(str(e), 400)
        except Exception:
            logging.exception("Token creation failed")
            span.set_attribute("http.status_code", 500)
            return error_response("Token creation failed", 500)

        span.set_attribute("http.status_code", 200)
        return json_response(result)


@bp.route(route="token/info", methods=["GET"])
async def get_token_info(req: func.HttpRequest) -> func.HttpResponse:
    """
    Issue a chat token for an existing ACS user.

    Request:
        GET /api/token/info?userId=8:acs:...
    """
    user_id = req.params.get("userId")

    async with http_request_span("GET", "/token/info", user_id=mask_for_logging(user_id)) as span:
        if not user_id or not user_id.strip():
            span.set_attribute("http.status_code", 400)
            return json_response({"success": False, "errorMessage": "UserId is required"}, 400)

        try:
            result = await get_token_service().get_token(user_id)
        except Exception:
            logging.exception("Token info retrieval failed")
            span.set_attribute("http.status_code", 500)
            return error_response("Token info retrieval failed", 500)

        span.set_attribute("http.status_code", 200)
        return json_response(result)


@bp.route(route="token/refresh", methods=["POST"])
async def refresh_token(req: func.HttpRequest) -> func.HttpResponse:
    """
    Issue a fresh token for an existing ACS user.

    Request:
        POST /api/token/refresh
        Body: {"userId": "8:acs:...", "scope": "chat"}
    """
    async with http_request_span("POST", "/token/refresh") as span:
        try:
            body = read_json_body(req)
        except ValueError:
            span.set_attribute("http.status_code", 400)
            return error_response("Invalid JSON body", 400)

        user_id = body.get("userId")
        if not user_id or not str(user_id).strip():
            span.set_attribute("http.status_code", 400)
            return json_response(
                {"success": False, "errorMessage": "UserId is required for refresh"}, 400
            )

        try:
            result = await get_token_service().refresh_token(
                user_id, parse_token_scopes(body.get("scope"))
            )
        except Exception:
            logging.exception("Token refresh failed")
            span.set_attribute("http.status_code", 500)
            return error_response("Token refresh failed", 500)

        logging.info(f"Refreshed token for user {mask_for_logging(user_id)}")
        span.set_attribute("http.status_code", 200)
        return json_response(result)


@bp.route(route="token/revoke", methods=["POST"])
async def revoke_tokens(req: func.HttpRequest) -> func.HttpResponse:
    """
    Revoke every token issued to an ACS user.

    Request:
        POST /api/token/revoke
        Body: {"userId": "8:acs:..."}
    """
    async with http_request_span("POST", "/token/revoke") as span:
        try:
            body = read_json_body(req)
        except ValueError:
            span.set_attribute("http.status_code", 400)
            return error_response("Invalid JSON body", 400)

        user_id = body.get("userId")
        if not user_id or not str(user_id).strip():
            span.set_attribute("http.status_code", 400)
            return json_response({"success": False, "errorMessage": "UserId is required"}, 400)

        try:
            await get_token_service().revoke_tokens(user_id)
        except Exception:
            logging.exception("Token revocation failed")
            span.set_attribute("http.status_code", 500)
            return error_response("Token revocation failed", 500)

        span.set_attribute("http.status_code", 200)
        return json_response({"success": True, "userId": user_id})
