from __future__ import annotations

import logging
from typing import Mapping
from urllib.parse import parse_qsl

import httpx

from dental_booking.application.exceptions import GatewayError
from dental_booking.application.ports.payment_gateway import PaymentGatewayPort
from dental_booking.core.config import settings
from dental_booking.domain.entities.booking_draft import BookingDraft
from dental_booking.domain.entities.payment import PaymentSession, VerifiedNotification
from dental_booking.infrastructure.gateway.callbacks import parse_signed_callback
from dental_booking.infrastructure.gateway.signing import SIGNATURE_FIELD, sign_fields


class ComgateGateway(PaymentGatewayPort):
    def __init__(
        self,
        merchant_id: str | None = None,
        secret: str | None = None,
        base_url: str | None = None,
        public_base_url: str | None = None,
        test_mode: bool | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._merchant_id = merchant_id or settings.COMGATE_MERCHANT_ID
        self._secret = secret or settings.COMGATE_SECRET
        self._base_url = (base_url or settings.COMGATE_BASE_URL).rstrip("/")
        self._public_base_url = (public_base_url or settings.PUBLIC_BASE_URL).rstrip("/")
        self._test_mode = settings.COMGATE_TEST_MODE if test_mode is None else test_mode
        self._client = client or httpx.Client(timeout=settings.HTTP_TIMEOUT_SECONDS)
        self._logger = logging.getLogger(__name__)

        if not self._merchant_id or not self._secret:
            raise ValueError("COMGATE_MERCHANT_ID and COMGATE_SECRET are required for Comgate payments")

    def create_session(self, draft: BookingDraft) -> PaymentSession:
        fields = {
            "merchant": self._merchant_id,
            "price": str(draft.amount),
            "curr": draft.currency,
            "label": f"Deposit - {draft.service_name}"[:16],  # Comgate caps labels at 16 chars
            "refId": draft.token,
            "email": draft.customer.email,
            "redirect": f"{self._public_base_url}/booking/confirmation?token={draft.token}",
            "callback": f"{self._public_base_url}/webhooks/comgate",
            "method": "ALL",
            "prepareOnly": "true",
            "country": "CZ",
            "lang": "cs",
        }
        if self._test_mode:
            fields["test"] = "true"
        signed = sign_fields(fields, self._secret)

        self._logger.info(
            "Creating payment",
            extra={"token": draft.token, "amount": draft.amount, "test_mode": self._test_mode},
        )
        result = self._post("create", signed)

        transaction_id = result.get("transId")
        redirect_url = result.get("redirect")
        if not transaction_id or not redirect_url:
            raise GatewayError("Missing transaction ID or redirect URL")

        self._logger.info("Payment created", extra={"token": draft.token, "transaction_id": transaction_id})
        return PaymentSession(
            transaction_id=transaction_id,
            token=draft.token,
            redirect_url=redirect_url,
            signature=signed[SIGNATURE_FIELD],
        )

    def verify_callback(self, raw_payload: Mapping[str, str]) -> VerifiedNotification:
        return parse_signed_callback(raw_payload, self._secret, self._merchant_id)

    def refund(self, transaction_id: str, amount: int) -> None:
        fields = {
            "merchant": self._merchant_id,
            "transId": transaction_id,
            "amount": str(amount),
            "curr": settings.CURRENCY,
        }
        if self._test_mode:
            fields["test"] = "true"
        self._logger.info("Refunding payment", extra={"transaction_id": transaction_id, "amount": amount})
        self._post("refund", sign_fields(fields, self._secret))

    def _post(self, endpoint: str, fields: dict[str, str]) -> dict[str, str]:
        url = f"{self._base_url}/v1.0/{endpoint}"
        try:
            response = self._client.post(url, data=fields)
            response.raise_for_status()
        except httpx.HTTPError as e:
            self._logger.error("Comgate request failed", extra={"endpoint": endpoint, "error": str(e)})
            raise GatewayError(f"Comgate {endpoint} request failed: {e}") from e

        # code=0&message=OK&transId=...&redirect=...
        result = dict(parse_qsl(response.text, keep_blank_values=True))
        if result.get("code") != "0":
            self._logger.error(
                "Comgate rejected request",
                extra={"endpoint": endpoint, "error": result.get("message"), "code": result.get("code")},
            )
            raise GatewayError(result.get("message") or f"Comgate {endpoint} failed")
        return result
