from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from dental_booking.application.exceptions import AdapterError, BookingNotFound, GatewayError
from dental_booking.application.ports.availability import AvailabilityPort
from dental_booking.application.ports.draft_store import DraftStorePort
from dental_booking.application.ports.payment_gateway import PaymentGatewayPort
from dental_booking.application.use_cases.notification_dispatcher import NotificationDispatcher
from dental_booking.application.utils.clock import Clock, utcnow
from dental_booking.domain.entities.notification import NotificationKind
from dental_booking.domain.entities.reservation import CalendarReservation


@dataclass(frozen=True)
class CancellationResult:
    token: str
    appointment: datetime
    refund_eligible: bool
    refund_amount: int
    refund_initiated: bool
    notified: bool


class CancelBookingUseCase:
    """
    Cancels a confirmed booking.

    The calendar event is released and the customer is told by email. The
    deposit is refunded only when the cancellation comes at least
    ``refund_window_hours`` before the appointment; later than that it is kept.
    """

    def __init__(
        self,
        availability: AvailabilityPort,
        gateway: PaymentGatewayPort,
        notifier: NotificationDispatcher,
        store: DraftStorePort,
        timezone: ZoneInfo,
        currency: str = "CZK",
        refund_window_hours: int = 24,
        auto_refund: bool = True,
        clock: Clock | None = None,
    ) -> None:
        self._availability = availability
        self._gateway = gateway
        self._notifier = notifier
        self._store = store
        self._timezone = timezone
        self._currency = currency
        self._refund_window = timedelta(hours=refund_window_hours)
        self._auto_refund = auto_refund
        self._clock = clock or utcnow
        self._logger = logging.getLogger(__name__)

    def execute(self, token: str, reason: str | None = None, notify: bool = True) -> CancellationResult:
        """Raises BookingNotFound, or AdapterError when the calendar cannot be updated."""
        # one cancellation per token at a time, so the refund runs once
        with self._store.lock(token):
            reservation = self._availability.find_reservation(token)
            if reservation is None:
                raise BookingNotFound(f"No confirmed booking for token {token}")
            if not self._availability.release(reservation.reservation_id):
                raise AdapterError(f"Calendar event {reservation.reservation_id} could not be cancelled")

        appointment = reservation.slot.start.astimezone(self._timezone)
        refund_eligible = appointment - self._clock() >= self._refund_window
        refund_amount = (reservation.amount or 0) if refund_eligible else 0
        self._logger.info(
            "Booking cancelled",
            extra={
                "token": token,
                "transaction_id": reservation.transaction_id,
                "refund_eligible": refund_eligible,
                "amount": refund_amount,
                "reason": reason,
            },
        )

        refund_initiated = False
        if refund_amount > 0:
            refund_initiated = self._refund(reservation, refund_amount)

        notified = False
        if notify and reservation.customer_email:
            notified = self._notifier.send(
                NotificationKind.CANCELLATION,
                reservation.customer_email,
                {
                    "token": token,
                    "customer_name": reservation.customer_name,
                    "service_name": reservation.title.split(" - ")[0],
                    "appointment": appointment,
                    "amount": refund_amount,
                    "currency": self._currency,
                    "refund_eligible": refund_eligible and refund_amount > 0,
                },
            )

        return CancellationResult(
            token=token,
            appointment=appointment,
            refund_eligible=refund_eligible,
            refund_amount=refund_amount,
            refund_initiated=refund_initiated,
            notified=notified,
        )

    def _refund(self, reservation: CalendarReservation, amount: int) -> bool:
        if not self._auto_refund or not reservation.transaction_id:
            self._logger.warning(
                "Refund due, to be issued by hand",
                extra={"token": reservation.token, "transaction_id": reservation.transaction_id, "amount": amount},
            )
            return False
        try:
            self._gateway.refund(reservation.transaction_id, amount)
        except GatewayError as e:
            self._logger.error(
                "Refund failed",
                extra={"token": reservation.token, "transaction_id": reservation.transaction_id, "error": str(e)},
            )
            return False
        self._logger.info("Refund initiated", extra={"transaction_id": reservation.transaction_id, "amount": amount})
        return True
