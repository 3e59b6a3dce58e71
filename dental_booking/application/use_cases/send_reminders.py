from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from dental_booking.application.exceptions import AdapterError
from dental_booking.application.ports.availability import AvailabilityPort
from dental_booking.application.use_cases.notification_dispatcher import NotificationDispatcher
from dental_booking.application.utils.clock import Clock, utcnow
from dental_booking.domain.entities.notification import NotificationKind


@dataclass(frozen=True)
class ReminderReport:
    day: date
    total: int
    sent: int
    skipped: int
    failed: int


class SendRemindersUseCase:
    """Emails every customer with a reservation on the following day."""

    def __init__(
        self,
        availability: AvailabilityPort,
        notifier: NotificationDispatcher,
        timezone: ZoneInfo,
        clock: Clock | None = None,
    ) -> None:
        self._availability = availability
        self._notifier = notifier
        self._timezone = timezone
        self._clock = clock or utcnow
        self._logger = logging.getLogger(__name__)

    def execute(self, day: date | None = None) -> ReminderReport:
        if day is None:
            day = self._clock().astimezone(self._timezone).date() + timedelta(days=1)
        start = datetime.combine(day, time.min, tzinfo=self._timezone)
        end = start + timedelta(days=1)

        try:
            reservations = self._availability.list_reservations(start, end)
        except AdapterError as e:
            self._logger.error("Could not list reservations for reminders", extra={"error": str(e)})
            raise

        sent = skipped = failed = 0
        for reservation in reservations:
            if not reservation.customer_email:
                skipped += 1
                continue
            delivered = self._notifier.send(
                NotificationKind.REMINDER,
                reservation.customer_email,
                {
                    "token": reservation.token,
                    "customer_name": reservation.customer_name,
                    "service_name": reservation.title.split(" - ")[0],
                    "appointment": reservation.slot.start.astimezone(self._timezone),
                },
            )
            if delivered:
                sent += 1
            else:
                failed += 1

        report = ReminderReport(day=day, total=len(reservations), sent=sent, skipped=skipped, failed=failed)
        self._logger.info(
            f"Reminders for {day.isoformat()}: {sent} sent, {skipped} skipped, {failed} failed",
            extra={"outcome": "reminders"},
        )
        return report
