from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Iterator

from dental_booking.application.exceptions import DuplicateToken
from dental_booking.application.ports.draft_store import DraftStorePort
from dental_booking.application.utils.clock import Clock, utcnow
from dental_booking.domain.entities.booking_draft import BookingDraft, DraftStatus


class _TokenLocks:
    """Per-token re-entrant locks, dropped once nobody holds or waits on them."""

    def __init__(self) -> None:
        self._locks: dict[str, tuple[threading.RLock, int]] = {}
        self._lock_lock = threading.Lock()  # Lock for managing locks dict

    @contextmanager
    def hold(self, token: str) -> Iterator[None]:
        with self._lock_lock:
            lock, refs = self._locks.get(token, (None, 0))
            if lock is None:
                lock = threading.RLock()
            self._locks[token] = (lock, refs + 1)
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._lock_lock:
                _, refs = self._locks[token]
                if refs <= 1:
                    del self._locks[token]
                else:
                    self._locks[token] = (lock, refs - 1)

    def __len__(self) -> int:
        with self._lock_lock:
            return len(self._locks)


class MemoryDraftStore(DraftStorePort):
    """
    Process-local draft storage with a bounded lifetime per draft.

    Drafts are lost on restart; a late callback for a lost draft is reported
    as an orphan by the orchestrator.
    """

    def __init__(
        self,
        ttl_minutes: int = 30,
        outcome_retention_minutes: int = 24 * 60,
        clock: Clock | None = None,
    ) -> None:
        self._ttl = timedelta(minutes=ttl_minutes)
        self._outcome_retention = timedelta(minutes=outcome_retention_minutes)
        self._clock = clock or utcnow
        self._drafts: dict[str, BookingDraft] = {}
        # final status, when it was recorded, and the draft as last stored
        self._outcomes: dict[str, tuple[DraftStatus, datetime, BookingDraft]] = {}
        self._data_lock = threading.Lock()
        self._token_locks = _TokenLocks()
        self._logger = logging.getLogger(__name__)

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def lock(self, token: str):
        return self._token_locks.hold(token)

    def put(self, draft: BookingDraft) -> None:
        with self.lock(draft.token):
            with self._data_lock:
                if draft.token in self._drafts or draft.token in self._outcomes:
                    raise DuplicateToken(f"Draft token already in use: {draft.token}")
                self._drafts[draft.token] = draft
        self._logger.info(
            "Draft stored",
            extra={"token": draft.token, "status": draft.status.value, "expires_at": draft.expires_at(self._ttl).isoformat()},
        )

    def get(self, token: str) -> BookingDraft | None:
        with self._data_lock:
            draft = self._drafts.get(token)
        if draft is None:
            return None
        # a claimed draft is past the point where expiry applies
        if not draft.reconciling and draft.is_expired(self._clock(), self._ttl):
            self._logger.info("Draft expired on read", extra={"token": token})
            return None
        return draft

    def update(self, draft: BookingDraft) -> None:
        with self.lock(draft.token):
            with self._data_lock:
                if draft.token not in self._drafts:
                    raise KeyError(draft.token)
                self._drafts[draft.token] = draft

    def remove(self, token: str, outcome: DraftStatus | None = None) -> BookingDraft | None:
        with self.lock(token):
            with self._data_lock:
                draft = self._drafts.pop(token, None)
                if draft is not None and outcome is not None:
                    self._outcomes[token] = (outcome, self._clock(), draft)
        if draft is not None:
            self._logger.info(
                "Draft removed", extra={"token": token, "status": outcome.value if outcome else None}
            )
        return draft

    def pop_expired(self, token: str) -> BookingDraft | None:
        with self.lock(token):
            now = self._clock()
            with self._data_lock:
                draft = self._drafts.get(token)
                if draft is None or draft.reconciling or not draft.is_expired(now, self._ttl):
                    return None
                del self._drafts[token]
                self._outcomes[token] = (DraftStatus.EXPIRED, now, draft)
        self._logger.info("Expired draft removed", extra={"token": token})
        return draft

    def sweep_expired(self) -> list[BookingDraft]:
        now = self._clock()
        with self._data_lock:
            candidates = [token for token, draft in self._drafts.items() if draft.is_expired(now, self._ttl)]

        removed: list[BookingDraft] = []
        for token in candidates:
            draft = self.pop_expired(token)
            if draft is not None:
                removed.append(draft)

        with self._data_lock:
            stale = [t for t, (_, at, _) in self._outcomes.items() if now - at > self._outcome_retention]
            for token in stale:
                del self._outcomes[token]

        if removed:
            self._logger.info("Sweep completed", extra={"expired": len(removed), "remaining": self.count()})
        return removed

    def outcome(self, token: str) -> DraftStatus | None:
        with self._data_lock:
            entry = self._outcomes.get(token)
        return entry[0] if entry else None

    def finished_draft(self, token: str) -> BookingDraft | None:
        with self._data_lock:
            entry = self._outcomes.get(token)
        return entry[2] if entry else None

    def count(self) -> int:
        with self._data_lock:
            return len(self._drafts)
