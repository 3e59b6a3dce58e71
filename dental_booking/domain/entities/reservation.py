from dataclasses import dataclass

from dental_booking.domain.entities.booking_draft import Slot


@dataclass(frozen=True)
class CalendarReservation:
    reservation_id: str
    token: str
    service_id: str
    slot: Slot
    title: str
    customer_name: str | None = None
    customer_email: str | None = None
    transaction_id: str | None = None
    amount: int | None = None
