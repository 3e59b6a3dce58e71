from __future__ import annotations

from typing import Mapping

from pydantic import ValidationError

from dental_booking.application.dto.payment_callback import PaymentCallbackDTO
from dental_booking.application.exceptions import VerificationFailed
from dental_booking.domain.entities.payment import VerifiedNotification
from dental_booking.infrastructure.gateway.signing import SIGNATURE_FIELD, verify_signature


def parse_signed_callback(
    raw_payload: Mapping[str, str],
    secret: str | None,
    merchant_id: str | None = None,
) -> VerifiedNotification:
    """Verify first, then parse. Nothing in the payload is trusted before the HMAC matches."""
    try:
        fields = {str(key): str(value) for key, value in raw_payload.items()}
    except (AttributeError, TypeError) as e:
        raise VerificationFailed("Malformed callback payload") from e

    signature = fields.pop(SIGNATURE_FIELD, None)
    if not signature:
        raise VerificationFailed("Missing callback signature")
    if not verify_signature(fields, signature, secret):
        raise VerificationFailed("Callback signature mismatch")

    try:
        dto = PaymentCallbackDTO.model_validate(fields)
    except ValidationError as e:
        raise VerificationFailed(f"Malformed callback fields: {e.error_count()} error(s)") from e

    if merchant_id and dto.merchant and dto.merchant != merchant_id:
        raise VerificationFailed("Callback addressed to a different merchant")

    return dto.to_notification()
