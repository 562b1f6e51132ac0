"""Shared helpers for HTTP API route modules."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fastapi.responses import JSONResponse
    from starlette.requests import Request

from issueloom.db_base import NotFound
from issueloom.validation import is_issue_number

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES: dict[str, str] = {
    "issue": "ISSUE_NOT_FOUND",
    "source_issue": "ISSUE_NOT_FOUND",
    "target_issue": "ISSUE_NOT_FOUND",
    "relation": "RELATION_NOT_FOUND",
}


def _error_response(
    message: str,
    code: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Return a structured error response and log the error."""
    from fastapi.responses import JSONResponse

    logger.warning("API error [%s] %s: %s", status_code, code, message)
    return JSONResponse(
        {"error": {"message": message, "code": code, "details": details or {}}},
        status_code=status_code,
    )


def _not_found_response(result: NotFound) -> JSONResponse:
    return _error_response(result.message, _NOT_FOUND_CODES[result.kind], 404, {"kind": result.kind, "key": result.key})


def _validation_response(exc: ValueError) -> JSONResponse:
    details: dict[str, Any] = {}
    field = getattr(exc, "field", None)
    if field:
        details["field"] = field
    return _error_response(str(exc), "VALIDATION_ERROR", 400, details)


def _check_issue_number(value: Any, name: str = "issue_number") -> JSONResponse | None:
    """400 unless *value* looks like ``PREFIX-NNN``."""
    if is_issue_number(value):
        return None
    return _error_response(
        f"Invalid {name} format. Expected: PREFIX-NNN (e.g., ERR-001)",
        "INVALID_ISSUE_NUMBER",
        400,
        {"param": name, "value": value},
    )


async def _parse_json_body(request: Request) -> dict[str, Any] | JSONResponse:
    """Parse and validate a JSON object body, returning 400 on failure."""
    import json

    try:
        body = await request.json()
    except (json.JSONDecodeError, ValueError, UnicodeDecodeError):
        return _error_response("Invalid JSON body", "VALIDATION_ERROR", 400)
    if not isinstance(body, dict):
        return _error_response("Request body must be a JSON object", "VALIDATION_ERROR", 400)
    return body
