from abc import ABC, abstractmethod


class MailerPort(ABC):
    @abstractmethod
    def send_email(self, to: str, subject: str, body: str) -> str:
        """Send a plain-text email. Returns the provider message id."""
        raise NotImplementedError
