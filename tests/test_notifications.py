"""
Tests for notification delivery, the Resend mailer and tomorrow's reminders.
"""

from __future__ import annotations

import json
from datetime import date, datetime, timezone

import httpx
import pytest

from dental_booking.application.exceptions import AdapterError, DispatchError
from dental_booking.application.use_cases.notification_dispatcher import NotificationDispatcher, format_amount
from dental_booking.application.use_cases.send_reminders import SendRemindersUseCase
from dental_booking.application.utils.retry import retry
from dental_booking.domain.entities.booking_draft import Slot
from dental_booking.domain.entities.notification import NotificationKind
from dental_booking.infrastructure.calendar.mock_calendar import MockAvailability
from dental_booking.infrastructure.mail.mock_mailer import MockMailer
from dental_booking.infrastructure.mail.resend_mailer import ResendMailer

from tests.conftest import APPOINTMENT_DAY, PRAGUE, FakeClock


def make_dispatcher(mailer, waits=None) -> NotificationDispatcher:
    return NotificationDispatcher(
        mailer=mailer,
        business_name="Test Clinic",
        contact_phone="+420 000 000 000",
        contact_email="clinic@example.com",
        max_attempts=3,
        backoff_seconds=1.0,
        sleep=(waits.append if waits is not None else lambda _: None),
    )


def test_format_amount_uses_minor_units():
    assert format_amount(150000, "CZK") == "1500.00 CZK"
    assert format_amount(5, "CZK") == "0.05 CZK"


def test_dispatcher_retries_with_backoff():
    """Two transient failures are retried; the third attempt delivers."""
    mailer = MockMailer(fail_times=2)
    waits: list[float] = []

    delivered = make_dispatcher(mailer, waits).send(
        NotificationKind.CONFIRMATION,
        "jana@example.com",
        {"customer_name": "Jana", "service_name": "Dental hygiene", "amount": 50000, "currency": "CZK"},
    )

    assert delivered is True
    assert waits == [1.0, 2.0]
    assert len(mailer.sent) == 1
    assert "500.00 CZK" in mailer.sent[0].body


def test_dispatcher_gives_up_without_raising():
    mailer = MockMailer(fail_times=5)

    delivered = make_dispatcher(mailer).send(NotificationKind.EXPIRY, "jana@example.com", {"token": "t1"})

    assert delivered is False
    assert mailer.sent == []


def test_retry_does_not_catch_other_errors():
    calls = []

    @retry(max_attempts=3, backoff_seconds=0, retry_on=(DispatchError,), sleep=lambda _: None)
    def explode():
        calls.append(1)
        raise KeyError("not retried")

    with pytest.raises(KeyError):
        explode()
    assert len(calls) == 1


def test_resend_mailer_posts_message():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "msg_123"})

    mailer = ResendMailer(
        api_key="re_test",
        from_address="Clinic <bookings@example.com>",
        base_url="https://resend.test",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )

    assert mailer.send_email("jana@example.com", "Hello", "Body") == "msg_123"
    assert seen["auth"] == "Bearer re_test"
    assert seen["body"]["to"] == ["jana@example.com"]
    assert seen["body"]["text"] == "Body"


def test_resend_mailer_error_raises_dispatch_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"message": "Invalid `to` field"})

    mailer = ResendMailer(
        api_key="re_test",
        base_url="https://resend.test",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )

    with pytest.raises(DispatchError, match="422"):
        mailer.send_email("bad", "Hello", "Body")


def test_resend_mailer_accepts_success_without_json():
    mailer = ResendMailer(
        api_key="re_test",
        base_url="https://resend.test",
        client=httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, text="OK"))),
    )

    assert mailer.send_email("jana@example.com", "Hello", "Body") == ""
    assert make_dispatcher(mailer).send(NotificationKind.CONFIRMATION, "jana@example.com", {"token": "t1"}) is True


def test_dispatcher_swallows_unexpected_mailer_errors():
    class BrokenMailer(MockMailer):
        def send_email(self, to, subject, body):
            raise RuntimeError("unexpected")

    delivered = make_dispatcher(BrokenMailer()).send(NotificationKind.EXPIRY, "jana@example.com", {"token": "t1"})

    assert delivered is False


@pytest.mark.parametrize(
    ("refund_eligible", "expected"),
    [(True, "The deposit of 500.00 CZK will be refunded"), (False, "the deposit is kept")],
)
def test_cancellation_email_states_refund_policy(refund_eligible, expected):
    mailer = MockMailer()

    make_dispatcher(mailer).send(
        NotificationKind.CANCELLATION,
        "jana@example.com",
        {"service_name": "Dental hygiene", "amount": 50000, "currency": "CZK", "refund_eligible": refund_eligible},
    )

    assert mailer.sent[0].subject == "Your appointment has been cancelled"
    assert expected in mailer.sent[0].body


def _reserve(calendar: MockAvailability, token: str, hour: int, email: str | None, day: date = APPOINTMENT_DAY):
    calendar.reserve(
        "hygiene-basic",
        Slot(start=datetime(day.year, day.month, day.day, hour, 0, tzinfo=PRAGUE), duration_minutes=60),
        token=token,
        title="Dental hygiene - Jana Novakova",
        customer_name="Jana Novakova",
        customer_email=email,
    )


def test_reminders_go_to_tomorrows_customers():
    calendar = MockAvailability(timezone=PRAGUE)
    _reserve(calendar, "t1", 9, "jana@example.com")
    _reserve(calendar, "t2", 10, None)
    _reserve(calendar, "t3", 9, "later@example.com", day=date(2030, 1, 8))
    mailer = MockMailer()
    clock = FakeClock(datetime(2030, 1, 6, 15, 0, tzinfo=timezone.utc))

    report = SendRemindersUseCase(calendar, make_dispatcher(mailer), PRAGUE, clock=clock).execute()

    assert report.day == APPOINTMENT_DAY
    assert (report.total, report.sent, report.skipped, report.failed) == (2, 1, 1, 0)
    assert [mail.to for mail in mailer.sent] == ["jana@example.com"]
    assert "Dental hygiene" in mailer.sent[0].body
    assert "09:00" in mailer.sent[0].body


def test_reminders_propagate_calendar_errors():
    class DownCalendar(MockAvailability):
        def list_reservations(self, start, end):
            raise AdapterError("calendar down")

    use_case = SendRemindersUseCase(DownCalendar(timezone=PRAGUE), make_dispatcher(MockMailer()), PRAGUE)

    with pytest.raises(AdapterError):
        use_case.execute(APPOINTMENT_DAY)
