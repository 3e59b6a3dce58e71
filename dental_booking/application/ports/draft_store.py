from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ContextManager

from dental_booking.domain.entities.booking_draft import BookingDraft, DraftStatus


class DraftStorePort(ABC):
    @abstractmethod
    def lock(self, token: str) -> ContextManager[None]:
        """Exclusive, re-entrant critical section for one token."""
        raise NotImplementedError

    @abstractmethod
    def put(self, draft: BookingDraft) -> None:
        """Store a new draft. Raises DuplicateToken if the token was ever seen."""
        raise NotImplementedError

    @abstractmethod
    def get(self, token: str) -> BookingDraft | None:
        """Return the draft, or None when unknown or past its time-to-live."""
        raise NotImplementedError

    @abstractmethod
    def update(self, draft: BookingDraft) -> None:
        raise NotImplementedError

    @abstractmethod
    def remove(self, token: str, outcome: DraftStatus | None = None) -> BookingDraft | None:
        """Drop the draft and remember ``outcome`` as its final status."""
        raise NotImplementedError

    @abstractmethod
    def pop_expired(self, token: str) -> BookingDraft | None:
        """Remove and return the draft only if it is expired and not being reconciled."""
        raise NotImplementedError

    @abstractmethod
    def sweep_expired(self) -> list[BookingDraft]:
        """Remove every expired, unclaimed draft. Each is returned exactly once."""
        raise NotImplementedError

    @abstractmethod
    def outcome(self, token: str) -> DraftStatus | None:
        """Final status of a recently removed draft."""
        raise NotImplementedError

    @abstractmethod
    def finished_draft(self, token: str) -> BookingDraft | None:
        """The draft as it was when removed, kept as long as its outcome."""
        raise NotImplementedError

    @abstractmethod
    def count(self) -> int:
        raise NotImplementedError
