"""Global exception handlers — map SDK exceptions to HTTP status codes.

The SDK raises ``ValueError`` for admin-side conditions (delivery record
not found, retry of a record that did not fail).  Rather than catching
these in every route, we install global handlers that inspect the message
and pick the right HTTP status code.

The USSD callback never reaches these handlers for caller-facing problems:
the session manager turns them into ``END`` replies itself.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

# --- Keyword patterns in ValueError messages and their HTTP status codes ---
# Checked in order; first match wins.
_VALUE_ERROR_PATTERNS: list[tuple[str, int]] = [
    ("already exists", 409),
    # Retry requested for a record that is not failed
    ("not in failed state", 409),
    ("already ended", 409),
    ("not found", 404),
]


# --- Client-safe messages keyed by HTTP status code ---
# Internal identifiers stay in the server log.
_SAFE_MESSAGES: dict[int, str] = {
    404: "Resource not found",
    409: "Conflict with current resource state",
    400: "Invalid request",
}


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    """Map SDK ``ValueError`` to 404 / 409 / 400 by message keyword.

    The raw exception message is logged server-side but never sent to the
    client.
    """
    msg = str(exc)
    status = 400
    for pattern, code in _VALUE_ERROR_PATTERNS:
        if pattern in msg.lower():
            status = code
            break

    logger.warning("ValueError [%d] at %s: %s", status, request.url, msg)
    return JSONResponse(
        status_code=status,
        content={"detail": _SAFE_MESSAGES.get(status, "Invalid request")},
    )


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions — log full traceback, return 500."""
    logger.exception("Unhandled exception at %s", request.url)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )
