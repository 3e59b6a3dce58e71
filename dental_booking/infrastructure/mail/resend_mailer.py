from __future__ import annotations

import logging

import httpx

from dental_booking.application.exceptions import DispatchError
from dental_booking.application.ports.mailer import MailerPort
from dental_booking.core.config import settings


class ResendMailer(MailerPort):
    def __init__(
        self,
        api_key: str | None = None,
        from_address: str | None = None,
        base_url: str | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._api_key = api_key or settings.RESEND_API_KEY
        self._from_address = from_address or settings.EMAIL_FROM
        self._base_url = (base_url or settings.RESEND_BASE_URL).rstrip("/")
        self._client = client or httpx.Client(timeout=settings.HTTP_TIMEOUT_SECONDS)
        self._logger = logging.getLogger(__name__)

        if not self._api_key:
            raise ValueError("RESEND_API_KEY is required to send email")

    def send_email(self, to: str, subject: str, body: str) -> str:
        payload = {"from": self._from_address, "to": [to], "subject": subject, "text": body}
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            resp = self._client.post(f"{self._base_url}/emails", json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise DispatchError(f"Resend request failed: {e}") from e

        if resp.status_code >= 400:
            try:
                error_message = resp.json().get("message")
            except ValueError:
                error_message = resp.text
            self._logger.error(
                "Resend send failed",
                extra={"status": resp.status_code, "error": error_message, "subject": subject},
            )
            raise DispatchError(f"Resend returned {resp.status_code}: {error_message}")

        try:
            message_id = str(resp.json().get("id", ""))
        except ValueError:
            # accepted, but no JSON body to read the id from
            message_id = ""
        self._logger.info("Email sent", extra={"message_id": message_id, "subject": subject})
        return message_id
