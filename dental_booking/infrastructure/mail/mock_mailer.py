from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from dental_booking.application.exceptions import DispatchError
from dental_booking.application.ports.mailer import MailerPort


@dataclass(frozen=True)
class SentEmail:
    to: str
    subject: str
    body: str


class MockMailer(MailerPort):
    def __init__(self, fail_times: int = 0) -> None:
        self.sent: list[SentEmail] = []
        self._fail_times = fail_times
        self._lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

    def send_email(self, to: str, subject: str, body: str) -> str:
        with self._lock:
            if self._fail_times > 0:
                self._fail_times -= 1
                raise DispatchError("Mock mailer configured to fail")
            self.sent.append(SentEmail(to=to, subject=subject, body=body))
            message_id = f"mock_email_{len(self.sent)}"
        self._logger.info("Mock email sent", extra={"to": to, "subject": subject})
        return message_id
