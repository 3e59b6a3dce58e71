"""
Tests for booking input validation.
"""

from __future__ import annotations

from datetime import date

import pytest
from pydantic import ValidationError

from dental_booking.application.dto.booking_intent import BookingIntent, format_validation_errors

from tests.conftest import PRAGUE, booking_payload


def errors_for(**overrides) -> dict[str, list[str]]:
    with pytest.raises(ValidationError) as excinfo:
        BookingIntent.model_validate(booking_payload(**overrides))
    return format_validation_errors(excinfo.value)


def test_valid_payload_is_normalized():
    intent = BookingIntent.model_validate(booking_payload())

    assert intent.customer.email == "jana@example.com"
    assert intent.amount == 50000
    slot = intent.slot(PRAGUE)
    assert slot.start.isoformat() == "2030-01-07T09:00:00+01:00"
    assert slot.duration_minutes == 60


@pytest.mark.parametrize("phone", ["+420 601 234 567", "601234567", "601 234 567", "+420601234567"])
def test_czech_phone_formats_are_accepted(phone):
    intent = BookingIntent.model_validate(booking_payload(customerPhone=phone))
    assert intent.customer_phone == phone


@pytest.mark.parametrize(
    "field, value",
    [
        ("customerPhone", "12345"),
        ("customerEmail", "not-an-email"),
        ("customerName", "J"),
        ("appointmentTime", "25:00"),
        ("amount", 0),
        ("amount", "50000"),
        ("durationMinutes", 5),
        ("notes", "x" * 1001),
    ],
)
def test_invalid_fields_are_reported_by_name(field, value):
    errors = errors_for(**{field: value})
    assert field in errors


def test_gdpr_consent_is_required():
    errors = errors_for(gdprConsent=False)
    assert errors["gdprConsent"] == ["GDPR consent is required"]


def test_past_date_is_rejected():
    errors = errors_for(appointmentDate=date(2020, 1, 6).isoformat())
    assert errors["appointmentDate"] == ["Appointment date must be today or in the future"]


def test_missing_fields_are_all_reported():
    with pytest.raises(ValidationError) as excinfo:
        BookingIntent.model_validate({"serviceId": "hygiene-basic"})
    errors = format_validation_errors(excinfo.value)

    assert {"serviceName", "amount", "customerName", "customerEmail", "gdprConsent"} <= set(errors)


def test_snake_case_names_are_accepted():
    payload = {
        "service_id": "hygiene-basic",
        "service_name": "Dental hygiene",
        "amount": 50000,
        "customer_name": "Jana Novakova",
        "customer_email": "jana@example.com",
        "customer_phone": "601234567",
        "appointment_date": "2030-01-07",
        "appointment_time": "14:30",
        "gdpr_consent": True,
    }
    intent = BookingIntent.model_validate(payload)
    assert intent.slot(PRAGUE).start.hour == 14
