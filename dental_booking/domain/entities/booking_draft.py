from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum

from dental_booking.application.exceptions import InvalidTransition


class DraftStatus(str, Enum):
    DRAFT = "DRAFT"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    PAID = "PAID"
    EXPIRED = "EXPIRED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class FailureReason(str, Enum):
    GATEWAY_ERROR = "GATEWAY_ERROR"
    PAYMENT_CANCELLED = "PAYMENT_CANCELLED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    SLOT_UNAVAILABLE = "SLOT_UNAVAILABLE"
    CALENDAR_ERROR = "CALENDAR_ERROR"


TERMINAL_STATUSES = frozenset({DraftStatus.PAID, DraftStatus.EXPIRED, DraftStatus.FAILED})

ALLOWED_TRANSITIONS: dict[DraftStatus, frozenset[DraftStatus]] = {
    DraftStatus.DRAFT: frozenset({DraftStatus.PAYMENT_PENDING, DraftStatus.FAILED, DraftStatus.EXPIRED}),
    DraftStatus.PAYMENT_PENDING: frozenset({DraftStatus.PAID, DraftStatus.FAILED, DraftStatus.EXPIRED}),
    DraftStatus.PAID: frozenset(),
    DraftStatus.EXPIRED: frozenset(),
    DraftStatus.FAILED: frozenset(),
}


@dataclass(frozen=True)
class Customer:
    name: str
    email: str
    phone: str


@dataclass(frozen=True)
class Slot:
    start: datetime  # timezone-aware, business timezone
    duration_minutes: int

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration_minutes)

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start < end and start < self.end


@dataclass(frozen=True)
class BookingDraft:
    token: str
    customer: Customer
    service_id: str
    service_name: str
    slot: Slot
    amount: int  # minor currency units
    created_at: datetime  # UTC
    currency: str = "CZK"
    status: DraftStatus = DraftStatus.DRAFT
    transaction_id: str | None = None
    failure_reason: FailureReason | None = None
    reservation_id: str | None = None
    reconciling: bool = False
    notes: str | None = None
    is_first_visit: bool = True

    def expires_at(self, ttl: timedelta) -> datetime:
        return self.created_at + ttl

    def is_expired(self, now: datetime, ttl: timedelta) -> bool:
        return now > self.expires_at(ttl)

    def transition(self, status: DraftStatus, **changes) -> BookingDraft:
        """Return a copy moved to ``status``; raises InvalidTransition for backward moves."""
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransition(f"{self.status.value} -> {status.value} is not allowed for draft {self.token}")
        return replace(self, status=status, reconciling=False, **changes)

    def claim(self) -> BookingDraft:
        return replace(self, reconciling=True)

    def release_claim(self) -> BookingDraft:
        return replace(self, reconciling=False)
