from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date, datetime

from dental_booking.domain.entities.booking_draft import Slot
from dental_booking.domain.entities.reservation import CalendarReservation


class AvailabilityPort(ABC):
    @abstractmethod
    def is_slot_free(self, slot: Slot) -> bool:
        """Check if time slot is free."""
        raise NotImplementedError

    @abstractmethod
    def find_available_slots(self, day: date, duration_minutes: int) -> list[datetime]:
        """Free slot starts within office hours for a given day."""
        raise NotImplementedError

    @abstractmethod
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
        """Reserve the slot. Returns reservation_id. Raises SlotUnavailable or AdapterError."""
        raise NotImplementedError

    @abstractmethod
    def list_reservations(self, start: datetime, end: datetime) -> list[CalendarReservation]:
        raise NotImplementedError

    @abstractmethod
    def find_reservation(self, token: str) -> CalendarReservation | None:
        """Live reservation made for a draft token, or None."""
        raise NotImplementedError

    @abstractmethod
    def release(self, reservation_id: str) -> bool:
        """Cancel a reservation. Returns True if successful."""
        raise NotImplementedError
