from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable, Mapping

from dental_booking.application.exceptions import DispatchError
from dental_booking.application.ports.mailer import MailerPort
from dental_booking.application.utils.retry import retry
from dental_booking.domain.entities.notification import NotificationKind


_SUBJECTS = {
    NotificationKind.CONFIRMATION: "Payment received - your appointment is confirmed",
    NotificationKind.FAILURE: "Your booking could not be completed",
    NotificationKind.EXPIRY: "Your booking expired before payment",
    NotificationKind.REMINDER: "Reminder: your appointment tomorrow",
    NotificationKind.CANCELLATION: "Your appointment has been cancelled",
}


def format_amount(amount: int, currency: str) -> str:
    return f"{amount // 100}.{amount % 100:02d} {currency}"


class NotificationDispatcher:
    """
    Best-effort customer notifications.

    Delivery is retried with exponential backoff on DispatchError. Any failure,
    expected or not, is logged and reported as False; it never propagates into
    the booking state machine.
    """

    def __init__(
        self,
        mailer: MailerPort,
        business_name: str,
        contact_phone: str,
        contact_email: str,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._mailer = mailer
        self._business_name = business_name
        self._contact_phone = contact_phone
        self._contact_email = contact_email
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._sleep = sleep
        self._logger = logging.getLogger(__name__)

    def send(self, kind: NotificationKind, recipient: str, context: Mapping[str, Any]) -> bool:
        """Send a notification. Returns True if delivered."""
        deliver = retry(
            max_attempts=self._max_attempts,
            backoff_seconds=self._backoff_seconds,
            retry_on=(DispatchError,),
            sleep=self._sleep,
        )(self._mailer.send_email)
        try:
            deliver(recipient, _SUBJECTS[kind], self._render(kind, context))
        except DispatchError as e:
            self._logger.error(
                "Notification not delivered",
                extra={"kind": kind.value, "token": context.get("token"), "error": str(e)},
            )
            return False
        except Exception:
            self._logger.exception(
                "Unexpected error while sending notification",
                extra={"kind": kind.value, "token": context.get("token")},
            )
            return False
        self._logger.info("Notification delivered", extra={"kind": kind.value, "token": context.get("token")})
        return True

    def _render(self, kind: NotificationKind, context: Mapping[str, Any]) -> str:
        name = context.get("customer_name") or "patient"
        service = context.get("service_name") or "appointment"
        appointment = context.get("appointment")
        when = appointment.strftime("%A %d %B %Y at %H:%M") if isinstance(appointment, datetime) else ""

        lines = [f"Dear {name},", ""]
        if kind is NotificationKind.CONFIRMATION:
            lines.append(f"we received your payment and your {service} on {when} is confirmed.")
            if context.get("amount") is not None:
                lines.append(f"Deposit paid: {format_amount(context['amount'], context.get('currency', 'CZK'))}.")
        elif kind is NotificationKind.FAILURE:
            lines.append(f"we could not complete your booking for {service} on {when}.")
            if context.get("refund_eligible"):
                lines.append(
                    "Your payment was received but we could not reserve the time slot. "
                    "The deposit will be refunded; please contact us to choose another time."
                )
            else:
                lines.append("No payment was taken. You are welcome to book again.")
        elif kind is NotificationKind.EXPIRY:
            lines.append(f"your booking for {service} on {when} expired because the payment was not completed in time.")
            if context.get("refund_eligible"):
                lines.append("Your payment arrived after the booking expired and will be refunded.")
            else:
                lines.append("No payment was taken. You are welcome to book again.")
        elif kind is NotificationKind.REMINDER:
            lines.append(f"this is a reminder of your {service} on {when}.")
        elif kind is NotificationKind.CANCELLATION:
            lines.append(f"your {service} on {when} has been cancelled.")
            if context.get("refund_eligible"):
                deposit = format_amount(context.get("amount") or 0, context.get("currency", "CZK"))
                lines.append(f"The deposit of {deposit} will be refunded within 5 business days.")
            else:
                lines.append("The cancellation came less than 24 hours before the appointment, so the deposit is kept.")

        if context.get("token"):
            lines += ["", f"Booking reference: {context['token']}"]
        lines += [
            "",
            f"Questions? Call {self._contact_phone} or write to {self._contact_email}.",
            "",
            self._business_name,
        ]
        return "\n".join(lines)
