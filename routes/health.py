# Copyright (c) Microsoft. All rights reserved.

"""Health check endpoint."""

import json
import logging

import azure.functions as func

from routes.dependencies import get_work_item_store

bp = func.Blueprint()

API_VERSION = "1.0.0"


@bp.route(route="health", methods=["GET"])
async def health_check(req: func.HttpRequest) -> func.HttpResponse:
    """
    Health check endpoint for monitoring.

    Request:
        GET /api/health

    Response:
        200 OK
        {"status": "healthy", "version": "1.0.0", "cosmosConnected": true}
    """
    cosmos_connected = False
    try:
        # Creating the container client validates the Cosmos settings
        get_work_item_store().container
        cosmos_connected = True
    except Exception as e:
        logging.warning(f"Cosmos DB connectivity check failed: {e}")

    return func.HttpResponse(
        body=json.dumps({
            "status": "healthy",
            "version": API_VERSION,
            "cosmosConnected": cosmos_connected,
        }),
        mimetype="application/json",
    )
