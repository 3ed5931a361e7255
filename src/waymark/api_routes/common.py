"""Shared helpers for API route modules."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

    from fastapi.responses import JSONResponse
    from starlette.requests import Request

from waymark.errors import LifecycleError
from waymark.validation import sanitize_actor as _sanitize_actor
from waymark.validation import validate_role as _check_role

logger = logging.getLogger(__name__)

# LifecycleError.kind -> (HTTP status, error code)
_ERROR_STATUS: dict[str, tuple[int, str]] = {
    "validation": (400, "VALIDATION_ERROR"),
    "permission": (403, "PERMISSION_DENIED"),
    "not_found": (404, "NOT_FOUND"),
    "conflict": (409, "CONFLICT"),
    "incomplete_data": (422, "INCOMPLETE_DATA"),
}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


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


def _lifecycle_error_response(exc: LifecycleError) -> JSONResponse:
    """Map a typed engine error onto its HTTP status and error code."""
    status_code, code = _ERROR_STATUS.get(exc.kind, (400, "VALIDATION_ERROR"))
    return _error_response(exc.message, code, status_code, {"kind": exc.kind, "fields": list(exc.fields)})


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


def _parse_pagination(
    params: Mapping[str, str],
    default_limit: int = 100,
) -> tuple[int, int] | JSONResponse:
    """Extract ``limit`` and ``offset`` from query params with validation.

    Returns ``(limit, offset)`` on success or a 400 ``JSONResponse`` on error.
    """
    limit = _safe_int(params.get("limit", str(default_limit)), "limit", min_value=1)
    if not isinstance(limit, int):
        return limit
    offset = _safe_int(params.get("offset", "0"), "offset", min_value=0)
    if not isinstance(offset, int):
        return offset
    return limit, offset


def _safe_int(value: str, name: str, *, min_value: int | None = None) -> int | JSONResponse:
    """Parse a query-param string to int, returning a 400 error response on failure."""
    try:
        result = int(value)
    except (ValueError, TypeError):
        return _error_response(
            f'Invalid value for {name}: "{value}". Must be an integer.',
            "VALIDATION_ERROR",
            400,
        )
    if min_value is not None and result < min_value:
        return _error_response(
            f"Invalid value for {name}: {result}. Must be >= {min_value}.",
            "VALIDATION_ERROR",
            400,
        )
    return result


def _validate_actor(value: Any) -> tuple[str, JSONResponse | None]:
    """Validate an actor name from JSON body.

    Returns (cleaned_actor, None) on success or ("", JSONResponse) on error.
    """
    cleaned, err = _sanitize_actor(value)
    if err:
        return ("", _error_response(err, "VALIDATION_ERROR", 400))
    return (cleaned, None)


def _validate_role(value: Any) -> tuple[str, JSONResponse | None]:
    """Validate the caller-supplied role from JSON body."""
    role, err = _check_role(value)
    if err:
        return ("", _error_response(err, "VALIDATION_ERROR", 400, {"kind": "validation", "fields": ["role"]}))
    return (role, None)


def _optional_str(body: Mapping[str, Any], key: str) -> tuple[str | None, JSONResponse | None]:
    """Read an optional string member of a JSON body."""
    value = body.get(key)
    if value is not None and not isinstance(value, str):
        return (None, _error_response(f"{key} must be a string", "VALIDATION_ERROR", 400, {"fields": [key]}))
    return (value, None)
