from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PaymentStatus(str, Enum):
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"
    PENDING = "PENDING"


@dataclass(frozen=True)
class PaymentSession:
    transaction_id: str
    token: str  # lookup only, the session does not own the draft
    redirect_url: str
    signature: str


@dataclass(frozen=True)
class VerifiedNotification:
    transaction_id: str
    token: str
    payment_status: PaymentStatus
    amount: int
    currency: str | None = None
