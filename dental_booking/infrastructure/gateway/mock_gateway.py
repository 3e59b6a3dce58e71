from __future__ import annotations

import logging
import secrets
from typing import Mapping

from dental_booking.application.ports.payment_gateway import PaymentGatewayPort
from dental_booking.domain.entities.booking_draft import BookingDraft
from dental_booking.domain.entities.payment import PaymentSession, PaymentStatus, VerifiedNotification
from dental_booking.infrastructure.gateway.callbacks import parse_signed_callback
from dental_booking.infrastructure.gateway.signing import SIGNATURE_FIELD, sign_fields


class MockPaymentGateway(PaymentGatewayPort):
    """Local stand-in for the gateway. Sessions and callbacks are signed with the same HMAC scheme."""

    def __init__(self, secret: str = "dev-secret", public_base_url: str = "http://localhost:8000") -> None:
        self._secret = secret
        self._public_base_url = public_base_url.rstrip("/")
        self.sessions: dict[str, PaymentSession] = {}
        self.refunds: list[tuple[str, int]] = []
        self._logger = logging.getLogger(__name__)

    def create_session(self, draft: BookingDraft) -> PaymentSession:
        transaction_id = f"MOCK-{secrets.token_hex(6).upper()}"
        signed = sign_fields(
            {"price": str(draft.amount), "curr": draft.currency, "refId": draft.token, "transId": transaction_id},
            self._secret,
        )
        session = PaymentSession(
            transaction_id=transaction_id,
            token=draft.token,
            redirect_url=f"{self._public_base_url}/booking/mock-payment?token={draft.token}&transId={transaction_id}",
            signature=signed[SIGNATURE_FIELD],
        )
        self.sessions[transaction_id] = session
        self._logger.info("Mock payment created", extra={"token": draft.token, "transaction_id": transaction_id})
        return session

    def verify_callback(self, raw_payload: Mapping[str, str]) -> VerifiedNotification:
        return parse_signed_callback(raw_payload, self._secret)

    def refund(self, transaction_id: str, amount: int) -> None:
        self.refunds.append((transaction_id, amount))
        self._logger.info("Mock refund", extra={"transaction_id": transaction_id, "amount": amount})

    def build_callback(
        self,
        transaction_id: str,
        token: str,
        status: PaymentStatus | str,
        amount: int,
        currency: str = "CZK",
    ) -> dict[str, str]:
        """Signed callback payload as the gateway would POST it."""
        status_value = status.value if isinstance(status, PaymentStatus) else status
        return sign_fields(
            {
                "transId": transaction_id,
                "refId": token,
                "status": status_value,
                "price": str(amount),
                "curr": currency,
            },
            self._secret,
        )
