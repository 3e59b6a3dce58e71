from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Mapping

from dental_booking.domain.entities.booking_draft import BookingDraft
from dental_booking.domain.entities.payment import PaymentSession, VerifiedNotification


class PaymentGatewayPort(ABC):
    @abstractmethod
    def create_session(self, draft: BookingDraft) -> PaymentSession:
        """Create a payment for the draft. Raises GatewayError."""
        raise NotImplementedError

    @abstractmethod
    def verify_callback(self, raw_payload: Mapping[str, str]) -> VerifiedNotification:
        """Authenticate and parse a gateway callback. Raises VerificationFailed."""
        raise NotImplementedError

    @abstractmethod
    def refund(self, transaction_id: str, amount: int) -> None:
        """Refund a captured payment. Raises GatewayError."""
        raise NotImplementedError
