"""USSD gateway endpoints.

``POST /ussd`` is the Africa's Talking callback.  The gateway posts
form-encoded fields and expects a ``text/plain`` body starting with
``CON `` (keep the session open) or ``END `` (close it), always with
HTTP 200.  The same endpoint accepts JSON for diagnostics and answers
with a structured body that includes timings and error codes.

Notification of suppliers is scheduled as a background task after the
request transaction commits, so the caller never waits on it.
"""

import asyncio
import logging
import time

from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from stockalert_ussd.constants import DEFAULT_NETWORK_CODE, DEFAULT_SERVICE_CODE
from stockalert_ussd.dispatcher import DistributionWorker
from stockalert_ussd.lifecycle import UNAVAILABLE_TEXT, UssdSessionManager
from stockalert_ussd.models.session import SessionInfo, UssdReply
from stockalert_ussd.phone import mask_phone_number
from stockalert_ussd.text import format_response

from stockalert_server.config import ServerSettings
from stockalert_server.dependencies import (
    get_db,
    get_session_manager,
    get_settings,
    get_worker,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ussd"])

TIMEOUT_TEXT = "Request timeout. Please try again."

# Gateways must not cache menu screens
_NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

# Diagnostic error codes that describe a malformed request
_VALIDATION_ERRORS = {"missing_fields", "invalid_session_id", "invalid_phone_number"}

# Gateway parameters read from the request body
_GATEWAY_FIELDS = ("sessionId", "serviceCode", "phoneNumber", "text", "networkCode")


# ------------------------------------------------------------------
# Pipeline
# ------------------------------------------------------------------

async def _run_pipeline(
    db: AsyncSession,
    manager: UssdSessionManager,
    settings: ServerSettings,
    fields: dict,
) -> UssdReply:
    """Run the session manager under the request timeout.

    Commits on success so that background jobs see the new alert; rolls
    back and returns a terminal reply on timeout or unexpected failure.
    """
    try:
        reply = await asyncio.wait_for(
            manager.handle(
                db,
                session_id=fields.get("sessionId"),
                service_code=fields.get("serviceCode"),
                phone_number=fields.get("phoneNumber"),
                text=fields.get("text"),
                network_code=fields.get("networkCode"),
            ),
            timeout=settings.request_timeout_seconds,
        )
        await db.commit()
        return reply
    except asyncio.TimeoutError:
        logger.error(
            "USSD request for session %s exceeded %.1fs",
            fields.get("sessionId"), settings.request_timeout_seconds,
        )
        await db.rollback()
        return UssdReply(text=TIMEOUT_TEXT, end_session=True, error="timeout")
    except Exception:
        logger.exception("USSD request for session %s failed", fields.get("sessionId"))
        await db.rollback()
        return UssdReply(text=UNAVAILABLE_TEXT, end_session=True, error="internal_error")


def _schedule(
    background_tasks: BackgroundTasks, worker: DistributionWorker, reply: UssdReply
) -> None:
    if reply.job is not None:
        background_tasks.add_task(worker.run, reply.job)


def _status_code(reply: UssdReply) -> int:
    if reply.error in _VALIDATION_ERRORS:
        return 400
    if reply.error == "timeout":
        return 504
    if reply.error == "internal_error":
        return 500
    return 200


def _diagnostic_body(fields: dict, reply: UssdReply, elapsed_ms: float) -> dict:
    body = {
        "sessionId": fields.get("sessionId"),
        "phoneNumber": fields.get("phoneNumber"),
        "text": fields.get("text"),
        "userInput": reply.user_input,
        "provider": reply.provider,
        "networkCode": fields.get("networkCode"),
        "processingTime": round(elapsed_ms, 2),
        "result": {
            "response": reply.text,
            "endSession": reply.end_session,
            "nextLevel": reply.next_level,
        },
    }
    if reply.error:
        body["error"] = reply.error
        body["details"] = reply.text
    return body


async def _read_fields(request: Request) -> tuple[dict | None, bool]:
    """Return ``(fields, is_json)``; ``fields`` is None for an unreadable body."""
    content_type = request.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            payload = await request.json()
        except ValueError:
            return None, True
        return (payload if isinstance(payload, dict) else None), True
    form = await request.form()
    return {key: str(value) for key, value in form.items()}, False


def _non_string_fields(fields: dict) -> list[str]:
    """Gateway parameters present in a JSON body with a non-string value."""
    return [
        key for key in _GATEWAY_FIELDS
        if fields.get(key) is not None and not isinstance(fields[key], str)
    ]


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------

@router.post("/ussd")
async def ussd_callback(
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    manager: UssdSessionManager = Depends(get_session_manager),
    worker: DistributionWorker = Depends(get_worker),
    settings: ServerSettings = Depends(get_settings),
):
    """Gateway callback: form in, ``CON``/``END`` text out (or JSON in, JSON out)."""
    started = time.perf_counter()
    fields, is_json = await _read_fields(request)

    if fields is None:
        return JSONResponse(
            status_code=400,
            content={"error": "invalid_body", "details": "Request body must be a JSON object"},
        )

    wrong_type = _non_string_fields(fields)
    if wrong_type:
        logger.warning("Rejected USSD request with non-string fields: %s", wrong_type)
        return JSONResponse(
            status_code=400,
            content={
                "error": "invalid_request",
                "details": f"Fields must be strings: {', '.join(wrong_type)}",
            },
            headers=_NO_CACHE_HEADERS,
        )

    logger.info(
        "USSD request session=%s phone=%s text=%r",
        fields.get("sessionId"),
        mask_phone_number(fields.get("phoneNumber") or ""),
        fields.get("text"),
    )
    reply = await _run_pipeline(db, manager, settings, fields)
    _schedule(background_tasks, worker, reply)
    elapsed_ms = (time.perf_counter() - started) * 1000

    if is_json:
        return JSONResponse(
            status_code=_status_code(reply),
            content=_diagnostic_body(fields, reply, elapsed_ms),
            headers=_NO_CACHE_HEADERS,
        )
    return PlainTextResponse(
        format_response(reply.text, reply.end_session),
        headers=_NO_CACHE_HEADERS,
    )


@router.get("/ussd")
async def ussd_walkthrough(
    background_tasks: BackgroundTasks,
    session_id: str = Query("test-session-123", alias="sessionId"),
    service_code: str = Query(DEFAULT_SERVICE_CODE, alias="serviceCode"),
    phone_number: str = Query("+254712345678", alias="phoneNumber"),
    text: str = Query("", alias="text"),
    network_code: str = Query(DEFAULT_NETWORK_CODE, alias="networkCode"),
    db: AsyncSession = Depends(get_db),
    manager: UssdSessionManager = Depends(get_session_manager),
    worker: DistributionWorker = Depends(get_worker),
    settings: ServerSettings = Depends(get_settings),
) -> JSONResponse:
    """Diagnostic walk-through: run one step from query parameters.

    Returns the JSON diagnostic body plus ``formatted``, the exact text the
    gateway would receive.
    """
    started = time.perf_counter()
    fields = {
        "sessionId": session_id,
        "serviceCode": service_code,
        "phoneNumber": phone_number,
        "text": text,
        "networkCode": network_code,
    }
    reply = await _run_pipeline(db, manager, settings, fields)
    _schedule(background_tasks, worker, reply)
    body = _diagnostic_body(fields, reply, (time.perf_counter() - started) * 1000)
    body["formatted"] = format_response(reply.text, reply.end_session)
    return JSONResponse(content=body, headers=_NO_CACHE_HEADERS)


@router.get("/ussd/sessions/{session_id}")
async def get_ussd_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    manager: UssdSessionManager = Depends(get_session_manager),
) -> SessionInfo:
    """Diagnostic view of one session.  Raises 404 if it does not exist."""
    info = await manager.get_session_info(db, session_id)
    if info is None:
        raise ValueError(f"Session not found: session_id={session_id}")
    return info
