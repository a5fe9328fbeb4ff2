"""Worker route for payment finalization.

POST /tasks/payments/finalize is enqueued by the payment webhook once a
provider reports success. Only requests with valid task authentication
(OIDC or internal secret in local dev) are accepted.

Domain rejections are acknowledged with 200 so the task is not retried.
After a conflict the booking is already cancelled and its payment session
failed; unknown or cancelled bookings are left for reconciliation.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from stayline.api.deps import is_uuid
from stayline.api.task_auth import verify_task_auth
from stayline.domain.errors import BookingError
from stayline.domain.finalize import finalize_booking
from stayline.observability.correlation import correlation_scope
from stayline.observability.logging import get_logger, log_event

router = APIRouter(prefix="/tasks/payments", tags=["tasks"])

logger = get_logger(__name__)


@router.post("/finalize")
async def finalize_task(request: Request) -> Response:
    """Finalize a paid booking.

    Expected payload (no PII):
    - booking_id: Booking UUID (required)
    - payment_session_id: Payment session to mark (optional)
    - correlation_id: Optional correlation ID

    Returns:
        200 {"ok": true, ...} when confirmed or already confirmed.
        200 {"ok": false, "error": reason_code} on conflict or for unknown
        and cancelled bookings.
        400 on bad payload, 401 on failed task auth.
    """
    if not verify_task_auth(request):
        raise HTTPException(status_code=401, detail="Unauthorized")

    try:
        payload: dict[str, Any] = await request.json()
    except ValueError:
        return Response(status_code=400, content="invalid json")
    if not isinstance(payload, dict):
        return Response(status_code=400, content="invalid json")

    booking_id = payload.get("booking_id", "")
    payment_session_id = payload.get("payment_session_id") or None
    if not booking_id:
        return Response(status_code=400, content="missing required fields")

    with correlation_scope(payload.get("correlation_id")):
        log_event(
            logger,
            "finalize task received",
            booking_id=booking_id,
            payment_session_id=payment_session_id,
        )
        ids_ok = is_uuid(booking_id) and (payment_session_id is None or is_uuid(payment_session_id))
        if not ids_ok:
            # malformed ids never resolve
            log_event(
                logger,
                "finalize task acknowledged without confirming",
                level=logging.WARNING,
                booking_id=str(booking_id)[:64],
                reason_code="booking_not_found",
            )
            return JSONResponse(
                status_code=200,
                content={"ok": False, "error": "booking_not_found", "booking_id": booking_id},
            )
        try:
            result = finalize_booking(booking_id, payment_session_id)
        except BookingError as exc:
            log_event(
                logger,
                "finalize task acknowledged without confirming",
                level=logging.WARNING,
                booking_id=booking_id,
                reason_code=exc.reason_code,
            )
            return JSONResponse(
                status_code=200,
                content={"ok": False, "error": exc.reason_code, "booking_id": booking_id},
            )

    return JSONResponse(status_code=200, content={"ok": True, **result})
