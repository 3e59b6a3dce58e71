from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from itertools import count
from zoneinfo import ZoneInfo

import pytest

from dental_booking.application.use_cases.cancel_booking import CancelBookingUseCase
from dental_booking.application.use_cases.notification_dispatcher import NotificationDispatcher
from dental_booking.application.use_cases.reconcile_booking import BookingReconciliationUseCase
from dental_booking.infrastructure.calendar.mock_calendar import MockAvailability
from dental_booking.infrastructure.gateway.mock_gateway import MockPaymentGateway
from dental_booking.infrastructure.mail.mock_mailer import MockMailer
from dental_booking.infrastructure.store.memory_draft_store import MemoryDraftStore

PRAGUE = ZoneInfo("Europe/Prague")
APPOINTMENT_DAY = date(2030, 1, 7)  # a Monday
SECRET = "test-secret"


class FakeClock:
    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2029, 12, 20, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: float) -> None:
        self.now += timedelta(minutes=minutes)


def booking_payload(**overrides) -> dict:
    payload = {
        "serviceId": "hygiene-basic",
        "serviceName": "Dental hygiene",
        "durationMinutes": 60,
        "amount": 50000,
        "customerName": "Jana Novakova",
        "customerEmail": "Jana@Example.com",
        "customerPhone": "+420 601 234 567",
        "appointmentDate": APPOINTMENT_DAY.isoformat(),
        "appointmentTime": "09:00",
        "notes": "Sensitive gums",
        "isFirstVisit": True,
        "gdprConsent": True,
    }
    payload.update(overrides)
    return payload


@dataclass
class Pipeline:
    use_case: BookingReconciliationUseCase
    store: MemoryDraftStore
    gateway: MockPaymentGateway
    calendar: MockAvailability
    mailer: MockMailer
    clock: FakeClock

    def callback(self, intent, status: str = "PAID", amount: int = 50000, transaction_id: str | None = None) -> dict:
        return self.gateway.build_callback(
            transaction_id=transaction_id or intent.transaction_id,
            token=intent.token,
            status=status,
            amount=amount,
        )

    def pay(self, intent, status: str = "PAID", **kwargs):
        return self.use_case.handle_callback(self.callback(intent, status, **kwargs))

    def cancellation(self, **kwargs) -> CancelBookingUseCase:
        return CancelBookingUseCase(
            availability=self.calendar,
            gateway=self.gateway,
            notifier=self.use_case._notifier,
            store=self.store,
            timezone=PRAGUE,
            clock=self.clock,
            **kwargs,
        )


def build_pipeline(
    calendar=None,
    gateway=None,
    mailer=None,
    ttl_minutes: int = 30,
    auto_refund: bool = False,
    token_factory=None,
) -> Pipeline:
    clock = FakeClock()
    store = MemoryDraftStore(ttl_minutes=ttl_minutes, clock=clock)
    gateway = gateway or MockPaymentGateway(secret=SECRET)
    calendar = calendar or MockAvailability(timezone=PRAGUE)
    mailer = mailer or MockMailer()
    dispatcher = NotificationDispatcher(
        mailer=mailer,
        business_name="Test Clinic",
        contact_phone="+420 000 000 000",
        contact_email="clinic@example.com",
        sleep=lambda _: None,
    )
    use_case = BookingReconciliationUseCase(
        store=store,
        gateway=gateway,
        availability=calendar,
        notifier=dispatcher,
        timezone=PRAGUE,
        auto_refund=auto_refund,
        token_factory=token_factory,
        clock=clock,
        sleep=lambda _: None,
    )
    return Pipeline(use_case=use_case, store=store, gateway=gateway, calendar=calendar, mailer=mailer, clock=clock)


@pytest.fixture
def pipeline() -> Pipeline:
    return build_pipeline()


@pytest.fixture
def sequential_tokens():
    counter = count(1)
    return lambda: f"{next(counter):032x}"
