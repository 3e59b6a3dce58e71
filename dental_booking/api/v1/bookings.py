import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse

from dental_booking.api.v1.schemas import (
    BookingCreatedSchema,
    BookingStatusSchema,
    CancelBookingSchema,
    CancellationSchema,
    ValidationErrorSchema,
)
from dental_booking.core.config import settings
from dental_booking.wiring.dependencies import get_cancel_booking_use_case, get_reconciliation_use_case
from dental_booking.application.use_cases.cancel_booking import CancelBookingUseCase
from dental_booking.application.use_cases.notification_dispatcher import format_amount
from dental_booking.application.use_cases.reconcile_booking import BookingReconciliationUseCase
from dental_booking.application.exceptions import AdapterError, BookingNotFound, DuplicateToken, GatewayError, InvalidInput

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/bookings",
    response_model=BookingCreatedSchema,
    status_code=201,
    responses={400: {"model": ValidationErrorSchema}},
)
def create_booking(
    payload: Any = Body(...),
    uc: BookingReconciliationUseCase = Depends(get_reconciliation_use_case),
):
    try:
        result = uc.submit_intent(payload)
    except InvalidInput as e:
        return JSONResponse(status_code=400, content=ValidationErrorSchema(errors=e.errors).model_dump())
    except GatewayError as e:
        raise HTTPException(status_code=502, detail=f"Payment gateway unavailable: {e}")
    except DuplicateToken:
        logger.error("Generated booking token collided with an existing draft")
        raise HTTPException(status_code=500, detail="Could not create booking, please try again")

    return BookingCreatedSchema(
        token=result.token,
        redirect_url=result.redirect_url,
        transaction_id=result.transaction_id,
    )


@router.get("/bookings/{token}", response_model=BookingStatusSchema)
def get_booking_status(
    token: str,
    uc: BookingReconciliationUseCase = Depends(get_reconciliation_use_case),
):
    status = uc.outcome(token)
    if status is None:
        raise HTTPException(status_code=404, detail="Booking not found")
    return BookingStatusSchema(token=token, status=status)


@router.post("/bookings/{token}/cancel", response_model=CancellationSchema)
def cancel_booking(
    token: str,
    payload: CancelBookingSchema | None = Body(None),
    uc: CancelBookingUseCase = Depends(get_cancel_booking_use_case),
):
    payload = payload or CancelBookingSchema()
    try:
        result = uc.execute(token, reason=payload.reason, notify=not payload.skip_email)
    except BookingNotFound:
        raise HTTPException(status_code=404, detail="Booking not found")
    except AdapterError as e:
        raise HTTPException(status_code=502, detail=f"Calendar unavailable: {e}")

    if result.refund_eligible:
        message = f"Booking cancelled. The deposit of {format_amount(result.refund_amount, settings.CURRENCY)} will be refunded."
    else:
        message = (
            "Booking cancelled. The deposit is kept as the cancellation came less than "
            f"{settings.CANCELLATION_REFUND_WINDOW_HOURS} hours before the appointment."
        )
    return CancellationSchema(
        token=token,
        appointment=result.appointment,
        refund_eligible=result.refund_eligible,
        refund_amount=result.refund_amount,
        refund_initiated=result.refund_initiated,
        message=message,
    )
