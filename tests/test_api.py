"""
HTTP surface tests with in-memory adapters injected through dependency overrides.
"""

from __future__ import annotations

from datetime import datetime, timezone
from urllib.parse import urlencode

import pytest
from fastapi.testclient import TestClient

from dental_booking.main import app
from dental_booking.wiring.dependencies import (
    get_availability,
    get_cancel_booking_use_case,
    get_draft_store,
    get_reconciliation_use_case,
    get_send_reminders_use_case,
)
from dental_booking.application.use_cases.send_reminders import SendRemindersUseCase

from tests.conftest import PRAGUE, booking_payload, build_pipeline

FORM = {"Content-Type": "application/x-www-form-urlencoded"}


@pytest.fixture
def wired():
    pipeline = build_pipeline()
    app.dependency_overrides[get_reconciliation_use_case] = lambda: pipeline.use_case
    app.dependency_overrides[get_draft_store] = lambda: pipeline.store
    app.dependency_overrides[get_availability] = lambda: pipeline.calendar
    app.dependency_overrides[get_send_reminders_use_case] = lambda: SendRemindersUseCase(
        pipeline.calendar, pipeline.use_case._notifier, PRAGUE, clock=pipeline.clock
    )
    app.dependency_overrides[get_cancel_booking_use_case] = lambda: pipeline.cancellation()
    yield pipeline, TestClient(app)
    app.dependency_overrides.clear()


def test_health():
    client = TestClient(app)
    assert client.get("/health").json() == {"status": "ok"}


def test_booking_flow_over_http(wired):
    pipeline, client = wired

    created = client.post("/api/v1/bookings", json=booking_payload())
    assert created.status_code == 201
    body = created.json()
    assert body["redirect_url"].startswith("http")

    status = client.get(f"/api/v1/bookings/{body['token']}")
    assert status.json() == {"token": body["token"], "status": "PAYMENT_PENDING"}

    callback = pipeline.gateway.build_callback(body["transaction_id"], body["token"], "PAID", 50000)
    ack = client.post("/webhooks/comgate", content=urlencode(callback), headers=FORM)
    assert ack.status_code == 200
    assert ack.text == "code=0&message=OK"

    assert client.get(f"/api/v1/bookings/{body['token']}").json()["status"] == "PAID"
    assert len(pipeline.calendar.reservations) == 1


def test_invalid_booking_returns_field_errors(wired):
    _, client = wired

    response = client.post("/api/v1/bookings", json=booking_payload(gdprConsent=False, customerEmail="nope"))

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Validation failed"
    assert set(body["errors"]) == {"gdprConsent", "customerEmail"}


def test_unknown_booking_is_404(wired):
    _, client = wired
    assert client.get("/api/v1/bookings/" + "0" * 32).status_code == 404


def test_forged_webhook_is_still_acknowledged(wired):
    pipeline, client = wired

    response = client.post("/webhooks/comgate", content="transId=X&refId=Y&status=PAID&price=1", headers=FORM)

    assert response.status_code == 200
    assert response.text == "code=0&message=OK"
    assert pipeline.calendar.reservations == []


def test_webhook_get_describes_endpoint(wired):
    _, client = wired
    assert client.get("/webhooks/comgate").json()["method"] == "POST"


def test_availability_lists_free_slots(wired):
    _, client = wired

    response = client.get("/api/v1/availability", params={"date": "2030-01-07", "duration": 60})

    assert response.status_code == 200
    slots = response.json()["slots"]
    assert slots[0].startswith("2030-01-07T08:00:00")
    assert len(slots) == 16  # 7 before lunch, 9 after


def test_cron_sweep_requires_secret(wired, monkeypatch):
    pipeline, client = wired
    monkeypatch.setattr("dental_booking.core.config.settings.CRON_SECRET", "s3cret")
    intent = pipeline.use_case.submit_intent(booking_payload())
    pipeline.clock.advance(31)

    assert client.post("/api/cron/sweep").status_code == 401
    assert client.post("/api/cron/sweep", headers={"Authorization": "Bearer wrong"}).status_code == 401

    response = client.post("/api/cron/sweep", headers={"Authorization": "Bearer s3cret"})
    assert response.status_code == 200
    assert response.json() == {"expired": [intent.token], "remaining": 0}


def test_cron_closed_in_production_without_secret(wired, monkeypatch):
    _, client = wired
    monkeypatch.setattr("dental_booking.core.config.settings.CRON_SECRET", None)
    monkeypatch.setattr("dental_booking.core.config.settings.ENV", "production")

    assert client.post("/api/cron/send-reminders").status_code == 401


def test_cron_reminders_report(wired, monkeypatch):
    pipeline, client = wired
    monkeypatch.setattr("dental_booking.core.config.settings.CRON_SECRET", None)
    monkeypatch.setattr("dental_booking.core.config.settings.ENV", "dev")

    response = client.get("/api/cron/send-reminders")

    assert response.status_code == 200
    assert response.json()["total"] == 0


def test_status_reports_expiry_before_sweep(wired):
    pipeline, client = wired
    intent = pipeline.use_case.submit_intent(booking_payload())
    pipeline.clock.advance(31)

    response = client.get(f"/api/v1/bookings/{intent.token}")

    assert response.status_code == 200
    assert response.json()["status"] == "EXPIRED"


def test_callback_ahead_of_its_session_is_not_acknowledged(wired):
    """The gateway gets a non-2xx answer so it delivers the callback again."""
    pipeline, client = wired
    answers = []
    create_session = pipeline.gateway.create_session

    def create_and_call_back(draft):
        session = create_session(draft)
        callback = pipeline.gateway.build_callback(session.transaction_id, draft.token, "PAID", draft.amount)
        answers.append(client.post("/webhooks/comgate", content=urlencode(callback), headers=FORM).status_code)
        return session

    pipeline.gateway.create_session = create_and_call_back
    intent = pipeline.use_case.submit_intent(booking_payload())

    assert answers == [503]
    assert client.get(f"/api/v1/bookings/{intent.token}").json()["status"] == "PAYMENT_PENDING"


def test_cancel_booking_over_http(wired):
    pipeline, client = wired
    intent = pipeline.use_case.submit_intent(booking_payload())
    pipeline.pay(intent)

    response = client.post(f"/api/v1/bookings/{intent.token}/cancel", json={"reason": "illness"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "CANCELLED"
    assert body["refund_eligible"] is True
    assert body["refund_amount"] == 50000
    assert pipeline.calendar.reservations == []

    assert client.post(f"/api/v1/bookings/{intent.token}/cancel").status_code == 404


def test_cancel_late_keeps_deposit_over_http(wired):
    pipeline, client = wired
    intent = pipeline.use_case.submit_intent(booking_payload())
    pipeline.pay(intent)
    pipeline.clock.now = datetime(2030, 1, 7, 7, 0, tzinfo=timezone.utc)

    response = client.post(f"/api/v1/bookings/{intent.token}/cancel", json={"skipEmail": True})

    assert response.status_code == 200
    assert response.json()["refund_eligible"] is False
    assert pipeline.gateway.refunds == []
