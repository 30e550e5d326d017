"""JSON error bodies for the progress API.

Every error response has the shape ``{"error": message, "code": E.*}`` plus an
optional ``details`` dict (field errors, current status, failing action).

Usage
-----
    from curriculum.utils.errors import api_error, engine_error_response, E

    return api_error(E.VALIDATION_REQUIRED, "progress_ids is required")
    return engine_error_response(exc)      # any curriculum.core.exceptions error
"""

from __future__ import annotations

from flask import jsonify

from curriculum.core.exceptions import (
    AlreadyTerminalError,
    NotFoundError,
    StoreError,
    TransitionError,
    ValidationError,
)


class E:
    """Machine-readable error codes."""

    # request body / query string is missing something (400)
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    # a value or request the engine refuses (422)
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"
    # the status machine has no such edge (422)
    VALIDATION_TRANSITION = "ERR_VALIDATION_TRANSITION"

    NOT_FOUND = "ERR_NOT_FOUND"

    # record is completed, or a job has no result yet (409)
    CONFLICT_STATE = "ERR_CONFLICT_STATE"

    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 422,
    E.VALIDATION_TRANSITION: 422,
    E.NOT_FOUND: 404,
    E.CONFLICT_STATE: 409,
    E.DATABASE: 503,
    E.INTERNAL: 500,
}

# Most specific first: TransitionError is a ValidationError.
_EXCEPTION_CODES = (
    (TransitionError, E.VALIDATION_TRANSITION),
    (ValidationError, E.VALIDATION_INVALID),
    (NotFoundError, E.NOT_FOUND),
    (AlreadyTerminalError, E.CONFLICT_STATE),
    (StoreError, E.DATABASE),
)


def api_error(code: str, message: str, *, status: int | None = None, details: dict | None = None):
    """Return ``(jsonify(body), http_status)`` for an error.

    ``status`` overrides the default status of ``code`` (400 when the code has none).
    """
    body: dict = {"error": message, "code": code}
    if details:
        body["details"] = details
    return jsonify(body), status or _DEFAULT_STATUS.get(code, 400)


def error_code_for(exc: Exception) -> str:
    for exc_type, code in _EXCEPTION_CODES:
        if isinstance(exc, exc_type):
            return code
    return E.INTERNAL


def engine_error_response(exc: Exception):
    """Error response for an engine exception.

    Store failures hide the driver message; the cause is logged where it was raised.
    """
    code = error_code_for(exc)
    if code == E.DATABASE:
        return api_error(code, "Storage temporarily unavailable")
    if code == E.CONFLICT_STATE:
        return api_error(code, str(exc), details={"status": "completed"})
    return api_error(code, str(exc), details=getattr(exc, "details", None))
