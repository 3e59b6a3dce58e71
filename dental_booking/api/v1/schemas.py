from datetime import date, datetime
from pydantic import BaseModel, Field

from dental_booking.domain.entities.booking_draft import DraftStatus


class BookingCreatedSchema(BaseModel):
    token: str
    redirect_url: str
    transaction_id: str


class BookingStatusSchema(BaseModel):
    token: str
    status: DraftStatus


class ValidationErrorSchema(BaseModel):
    error: str = "Validation failed"
    errors: dict[str, list[str]] = Field(default_factory=dict)


class AvailabilitySchema(BaseModel):
    date: date
    duration_minutes: int
    slots: list[datetime]


class SweepResultSchema(BaseModel):
    expired: list[str]
    remaining: int


class ReminderResultSchema(BaseModel):
    date: date
    total: int
    sent: int
    skipped: int
    failed: int


class CancelBookingSchema(BaseModel):
    reason: str | None = None
    skip_email: bool = Field(default=False, alias="skipEmail")


class CancellationSchema(BaseModel):
    token: str
    status: str = "CANCELLED"
    appointment: datetime
    refund_eligible: bool
    refund_amount: int
    refund_initiated: bool
    message: str
