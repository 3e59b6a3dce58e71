from __future__ import annotations

import re
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from dental_booking.core.config import settings
from dental_booking.domain.entities.booking_draft import Customer, Slot

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
# +420 123 456 789, 123456789, 123 456 789
PHONE_REGEX = re.compile(r"^(\+420\s?)?[0-9]{3}\s?[0-9]{3}\s?[0-9]{3}$")
TIME_REGEX = re.compile(r"^([0-1][0-9]|2[0-3]):[0-5][0-9]$")


class BookingIntent(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")

    service_id: str = Field(alias="serviceId", min_length=1)
    service_name: str = Field(alias="serviceName", min_length=1, max_length=100)
    duration_minutes: int = Field(60, alias="durationMinutes", ge=15, le=240)
    amount: int = Field(alias="amount", gt=0, strict=True)  # minor units
    customer_name: str = Field(alias="customerName", min_length=2, max_length=100)
    customer_email: str = Field(alias="customerEmail", min_length=1)
    customer_phone: str = Field(alias="customerPhone", min_length=1)
    appointment_date: date = Field(alias="appointmentDate")
    appointment_time: str = Field(alias="appointmentTime")
    notes: str | None = Field(None, max_length=1000)
    is_first_visit: bool = Field(True, alias="isFirstVisit")
    gdpr_consent: bool = Field(alias="gdprConsent")

    @field_validator("customer_email")
    @classmethod
    def _email(cls, value: str) -> str:
        if not EMAIL_REGEX.match(value):
            raise ValueError("Invalid email format")
        return value.lower()

    @field_validator("customer_phone")
    @classmethod
    def _phone(cls, value: str) -> str:
        if not PHONE_REGEX.match(value):
            raise ValueError("Invalid phone format. Use format: +420 123 456 789 or 123456789")
        return value

    @field_validator("appointment_date")
    @classmethod
    def _not_in_past(cls, value: date) -> date:
        today = datetime.now(ZoneInfo(settings.BUSINESS_TIMEZONE)).date()
        if value < today:
            raise ValueError("Appointment date must be today or in the future")
        return value

    @field_validator("appointment_time")
    @classmethod
    def _time(cls, value: str) -> str:
        if not TIME_REGEX.match(value):
            raise ValueError("Invalid time format. Use HH:MM (24-hour format)")
        return value

    @field_validator("gdpr_consent")
    @classmethod
    def _consent(cls, value: bool) -> bool:
        if value is not True:
            raise ValueError("GDPR consent is required")
        return value

    @property
    def customer(self) -> Customer:
        return Customer(name=self.customer_name, email=self.customer_email, phone=self.customer_phone)

    def slot(self, tz: ZoneInfo) -> Slot:
        hour, minute = (int(part) for part in self.appointment_time.split(":"))
        start = datetime.combine(self.appointment_date, time(hour, minute), tzinfo=tz)
        return Slot(start=start, duration_minutes=self.duration_minutes)


def format_validation_errors(error: ValidationError) -> dict[str, list[str]]:
    formatted: dict[str, list[str]] = {}
    for issue in error.errors():
        path = ".".join(str(part) for part in issue["loc"]) or "__root__"
        message = issue["msg"].removeprefix("Value error, ")
        formatted.setdefault(path, []).append(message)
    return formatted
