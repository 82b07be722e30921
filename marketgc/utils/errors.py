"""Standardised API error responses.

Usage
-----
    from marketgc.utils.errors import api_error, E

    return api_error(E.PROCESS_NOT_FOUND, "Abandoned process not found")
    return api_error(E.MISSING_STATUS, "Status is required")
"""

from __future__ import annotations

from flask import jsonify


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants.

    Codes are part of the operator contract; never rename an existing one.
    """

    # Validation – HTTP 400
    INVALID_JSON = "INVALID_JSON"
    INVALID_ID = "INVALID_ID"
    INVALID_PROCESS_TYPES = "INVALID_PROCESS_TYPES"
    INVALID_PROCESS_TYPE = "INVALID_PROCESS_TYPE"
    INVALID_STATUS = "INVALID_STATUS"
    MISSING_STATUS = "MISSING_STATUS"
    MISSING_RESOLUTION_ACTION = "MISSING_RESOLUTION_ACTION"
    INVALID_RESOLUTION_ACTION = "INVALID_RESOLUTION_ACTION"
    INVALID_SORT_FIELD = "INVALID_SORT_FIELD"
    INVALID_SORT_ORDER = "INVALID_SORT_ORDER"
    INVALID_LIMIT = "INVALID_LIMIT"
    INVALID_OFFSET = "INVALID_OFFSET"
    INVALID_OLDER_THAN_DAYS = "INVALID_OLDER_THAN_DAYS"
    INVALID_DRY_RUN = "INVALID_DRY_RUN"

    # Not-found – HTTP 404
    PROCESS_NOT_FOUND = "PROCESS_NOT_FOUND"
    JOB_NOT_FOUND = "JOB_NOT_FOUND"
    NOT_FOUND = "NOT_FOUND"

    # Conflict – HTTP 409
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"

    # Method – HTTP 405
    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"

    # Server – HTTP 500
    SCAN_ERROR = "SCAN_ERROR"
    UPDATE_FAILED = "UPDATE_FAILED"
    CLEANUP_ERROR = "CLEANUP_ERROR"
    UNSUPPORTED_DATABASE = "UNSUPPORTED_DATABASE"
    INTERNAL = "INTERNAL_ERROR"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.PROCESS_NOT_FOUND: 404,
    E.JOB_NOT_FOUND: 404,
    E.NOT_FOUND: 404,
    E.INVALID_STATUS_TRANSITION: 409,
    E.METHOD_NOT_ALLOWED: 405,
    E.SCAN_ERROR: 500,
    E.UPDATE_FAILED: 500,
    E.CLEANUP_ERROR: 500,
    E.UNSUPPORTED_DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for operators.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400`` (every unmapped code is a validation code).
    details : dict, optional
        Extra structured payload.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status
