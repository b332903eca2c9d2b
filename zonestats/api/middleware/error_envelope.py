"""
Error envelope middleware - every error response has the same shape:

{
    "error": {
        "code": "NO_DATA",
        "message": "No rent data available for zone.",
        "details": {...},          # optional
        "requestId": "uuid"
    }
}

Status mapping:
- ZoneAggregateError UNKNOWN_AGGREGATE -> 404, other codes -> 422
- pydantic ValidationError (bad params / body) -> 400 INVALID_PARAMS
- werkzeug HTTPException -> its own status
- anything else -> 500 INTERNAL_ERROR (logged with traceback)
"""

import logging
from flask import Flask, jsonify
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from zonestats.api.middleware.request_id import REQUEST_ID_HEADER, get_request_id
from zonestats.constants import ERROR_INTERNAL, ERROR_UNKNOWN_AGGREGATE
from zonestats.services.zone_aggregates.errors import ZoneAggregateError
from zonestats.services.zone_aggregates.service import validation_issues

logger = logging.getLogger('zone_aggregates.api.error')


def make_error_response(code: str, message: str, status_code: int, details: dict = None):
    """
    Build a standardized error response.

    Returns:
        Tuple of (response, status_code)
    """
    request_id = get_request_id()

    error = {"code": code, "message": message, "requestId": request_id}
    if details is not None:
        error["details"] = details

    response = jsonify({"error": error})
    if request_id:
        response.headers[REQUEST_ID_HEADER] = request_id
    return response, status_code


def setup_error_handlers(app: Flask) -> None:

    @app.errorhandler(ZoneAggregateError)
    def handle_zone_aggregate_error(error):
        status = 404 if error.code == ERROR_UNKNOWN_AGGREGATE else 422
        logger.info(f"{error.code}: {error.message}")
        return make_error_response(error.code, error.message, status, error.details)

    @app.errorhandler(ValidationError)
    def handle_validation_error(error):
        return make_error_response(
            "INVALID_PARAMS",
            "Invalid request parameters.",
            400,
            {"issues": validation_issues(error)},
        )

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        # "Not Found" -> "NOT_FOUND"
        code = error.name.upper().replace(' ', '_')
        return make_error_response(code, error.description, error.code)

    @app.errorhandler(Exception)
    def handle_generic_error(error):
        logger.exception(
            f"Unhandled error: {error}",
            extra={
                "request_id": get_request_id(),
                "error_type": type(error).__name__,
            },
        )
        return make_error_response(ERROR_INTERNAL, "An unexpected error occurred", 500)
