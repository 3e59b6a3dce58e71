from __future__ import annotations

import logging
import threading
from datetime import date, datetime
from itertools import count
from zoneinfo import ZoneInfo

from dental_booking.application.exceptions import SlotUnavailable
from dental_booking.application.ports.availability import AvailabilityPort
from dental_booking.application.utils.office_hours import free_slots
from dental_booking.domain.entities.booking_draft import Slot
from dental_booking.domain.entities.reservation import CalendarReservation


class MockAvailability(AvailabilityPort):
    def __init__(self, timezone: ZoneInfo | None = None) -> None:
        self._timezone = timezone or ZoneInfo("Europe/Prague")
        self._events: dict[str, CalendarReservation] = {}
        self._ids = count(1)
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    @property
    def reservations(self) -> list[CalendarReservation]:
        with self._lock:
            return list(self._events.values())

    def is_slot_free(self, slot: Slot) -> bool:
        with self._lock:
            return self._is_free(slot)

    def find_available_slots(self, day: date, duration_minutes: int) -> list[datetime]:
        with self._lock:
            busy = [(event.slot.start, event.slot.end) for event in self._events.values()]
        return free_slots(day, duration_minutes, busy, self._timezone)

    def reserve(
        self,
        service_id: str,
        slot: Slot,
        *,
        token: str,
        title: str,
        customer_name: str | None = None,
        customer_email: str | None = None,
        description: str | None = None,
        transaction_id: str | None = None,
        amount: int | None = None,
    ) -> str:
        with self._lock:
            for event in self._events.values():
                if event.token == token:
                    return event.reservation_id
            if not self._is_free(slot):
                raise SlotUnavailable(f"Slot {slot.start.isoformat()} is already taken")

            # ids are never reused, even after a release
            event_id = f"mock_event_{next(self._ids)}"
            self._events[event_id] = CalendarReservation(
                reservation_id=event_id,
                token=token,
                service_id=service_id,
                slot=slot,
                title=title,
                customer_name=customer_name,
                customer_email=customer_email,
                transaction_id=transaction_id,
                amount=amount,
            )
        self._logger.info(
            "Mock calendar event created",
            extra={"event_id": event_id, "token": token, "start": slot.start.isoformat(), "title": title},
        )
        return event_id

    def list_reservations(self, start: datetime, end: datetime) -> list[CalendarReservation]:
        with self._lock:
            events = [event for event in self._events.values() if event.slot.overlaps(start, end)]
        return sorted(events, key=lambda event: event.slot.start)

    def find_reservation(self, token: str) -> CalendarReservation | None:
        with self._lock:
            return next((event for event in self._events.values() if event.token == token), None)

    def release(self, reservation_id: str) -> bool:
        with self._lock:
            if reservation_id not in self._events:
                return False
            del self._events[reservation_id]
        self._logger.info("Mock calendar event cancelled", extra={"event_id": reservation_id})
        return True

    def _is_free(self, slot: Slot) -> bool:
        return all(not event.slot.overlaps(slot.start, slot.end) for event in self._events.values())
