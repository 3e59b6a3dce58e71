from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dental_booking.domain.entities.payment import PaymentStatus, VerifiedNotification

_STATUS_ALIASES = {"TIMEOUT": PaymentStatus.CANCELLED}


class PaymentCallbackDTO(BaseModel):
    """Gateway callback after its signature has been checked."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    trans_id: str = Field(alias="transId", min_length=1)
    ref_id: str = Field(alias="refId", min_length=1)
    status: PaymentStatus
    price: int = Field(ge=0)
    curr: str | None = None
    merchant: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: object) -> object:
        if isinstance(value, str):
            upper = value.strip().upper()
            return _STATUS_ALIASES.get(upper, upper)
        return value

    @field_validator("price", mode="before")
    @classmethod
    def _strict_integer(cls, value: object) -> object:
        # minor units only, "1500.00" is malformed
        if isinstance(value, str) and not value.strip().isdigit():
            raise ValueError("price must be an integer amount in minor units")
        return value

    def to_notification(self) -> VerifiedNotification:
        return VerifiedNotification(
            transaction_id=self.trans_id,
            token=self.ref_id,
            payment_status=self.status,
            amount=self.price,
            currency=self.curr,
        )
