from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from dental_booking.application.dto.booking_intent import BookingIntent, format_validation_errors
from dental_booking.application.exceptions import (
    AdapterError,
    GatewayError,
    InvalidInput,
    OrphanCallback,
    SlotUnavailable,
    VerificationFailed,
)
from dental_booking.application.ports.availability import AvailabilityPort
from dental_booking.application.ports.draft_store import DraftStorePort
from dental_booking.application.ports.payment_gateway import PaymentGatewayPort
from dental_booking.application.use_cases.notification_dispatcher import NotificationDispatcher
from dental_booking.application.utils.clock import Clock, utcnow
from dental_booking.application.utils.retry import retry
from dental_booking.domain.entities.booking_draft import BookingDraft, DraftStatus, FailureReason
from dental_booking.domain.entities.notification import NotificationKind
from dental_booking.domain.entities.payment import PaymentStatus, VerifiedNotification


class CallbackOutcome(str, Enum):
    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"
    SLOT_UNAVAILABLE = "SLOT_UNAVAILABLE"
    CALENDAR_ERROR = "CALENDAR_ERROR"
    EXPIRED = "EXPIRED"
    LATE_PAYMENT = "LATE_PAYMENT"
    DUPLICATE = "DUPLICATE"
    ORPHAN = "ORPHAN"
    REJECTED = "REJECTED"
    IGNORED = "IGNORED"


@dataclass(frozen=True)
class IntentResult:
    token: str
    redirect_url: str
    transaction_id: str


@dataclass(frozen=True)
class CallbackResult:
    outcome: CallbackOutcome
    token: str | None = None
    status: DraftStatus | None = None
    acknowledged: bool = True


@dataclass
class _Decision:
    """What to do after the token lock is released."""

    result: CallbackResult | None = None
    commit: BookingDraft | None = None
    notices: list[tuple[NotificationKind, BookingDraft, dict[str, Any]]] = field(default_factory=list)
    refund: tuple[str, int] | None = None


def _new_token() -> str:
    return secrets.token_hex(16)  # 128 bits


class BookingReconciliationUseCase:
    def __init__(
        self,
        store: DraftStorePort,
        gateway: PaymentGatewayPort,
        availability: AvailabilityPort,
        notifier: NotificationDispatcher,
        timezone: ZoneInfo,
        currency: str = "CZK",
        gateway_retries: int = 1,
        gateway_backoff_seconds: float = 0.5,
        notify_on_expiry: bool = True,
        auto_refund: bool = False,
        token_factory: Callable[[], str] | None = None,
        clock: Clock | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._availability = availability
        self._notifier = notifier
        self._timezone = timezone
        self._currency = currency
        self._gateway_retries = gateway_retries
        self._gateway_backoff_seconds = gateway_backoff_seconds
        self._notify_on_expiry = notify_on_expiry
        self._auto_refund = auto_refund
        self._token_factory = token_factory or _new_token
        self._clock = clock or utcnow
        self._sleep = sleep
        self._logger = logging.getLogger(__name__)

    # -- intent ---------------------------------------------------------------

    def submit_intent(self, booking_input: BookingIntent | Mapping[str, Any]) -> IntentResult:
        """
        Store a draft and open a payment session for it.
        Raises InvalidInput, GatewayError, or DuplicateToken on a token collision.
        """
        intent = self._validate(booking_input)
        draft = BookingDraft(
            token=self._token_factory(),
            customer=intent.customer,
            service_id=intent.service_id,
            service_name=intent.service_name,
            slot=intent.slot(self._timezone),
            amount=intent.amount,
            currency=self._currency,
            created_at=self._clock(),
            notes=intent.notes,
            is_first_visit=intent.is_first_visit,
        )
        self._store.put(draft)

        create_session = retry(
            max_attempts=self._gateway_retries + 1,
            backoff_seconds=self._gateway_backoff_seconds,
            retry_on=(GatewayError,),
            sleep=self._sleep,
        )(self._gateway.create_session)
        try:
            session = create_session(draft)
        except GatewayError:
            with self._store.lock(draft.token):
                failed = draft.transition(DraftStatus.FAILED, failure_reason=FailureReason.GATEWAY_ERROR)
                self._store.remove(draft.token, DraftStatus.FAILED)
            self._logger.error(
                "Payment session could not be created",
                extra={"token": draft.token, "status": failed.status.value, "reason": FailureReason.GATEWAY_ERROR.value},
            )
            raise

        with self._store.lock(draft.token):
            current = self._store.get(draft.token)
            if current is None:
                raise GatewayError(f"Draft {draft.token} expired before its payment session was recorded")
            pending = current.transition(DraftStatus.PAYMENT_PENDING, transaction_id=session.transaction_id)
            self._store.update(pending)

        self._logger.info(
            "Booking awaiting payment",
            extra={"token": draft.token, "transaction_id": session.transaction_id, "status": pending.status.value},
        )
        return IntentResult(token=draft.token, redirect_url=session.redirect_url, transaction_id=session.transaction_id)

    # -- callback -------------------------------------------------------------

    def handle_callback(self, raw_payload: Mapping[str, str]) -> CallbackResult:
        """
        Consume a gateway notification. Handled outcomes are acknowledged so the
        gateway stops retrying, except a callback that raced ahead of its own
        payment session. Only an unexpected error propagates.
        """
        try:
            notification = self._gateway.verify_callback(raw_payload)
        except VerificationFailed as e:
            self._logger.warning("Rejected payment callback", extra={"reason": str(e)})
            return CallbackResult(outcome=CallbackOutcome.REJECTED)

        with self._store.lock(notification.token):
            decision = self._decide(notification)

        self._after_lock(decision)
        if decision.commit is not None:
            return self._commit_paid(decision.commit)
        return decision.result

    def _decide(self, notification: VerifiedNotification) -> _Decision:
        token = notification.token
        paid = notification.payment_status is PaymentStatus.PAID

        finished = self._store.outcome(token)
        if finished is not None:
            if paid and finished is not DraftStatus.PAID:
                return self._late_payment(notification, finished)
            self._logger.info("Duplicate payment callback", extra={"token": token, "status": finished.value})
            return _Decision(result=CallbackResult(CallbackOutcome.DUPLICATE, token, finished))

        stale = self._store.pop_expired(token)
        if stale is not None:
            expired = stale.transition(DraftStatus.EXPIRED)
            self._logger.warning(
                "Payment callback arrived after the draft expired",
                extra={"token": token, "transaction_id": notification.transaction_id, "status": expired.status.value},
            )
            decision = _Decision(result=CallbackResult(CallbackOutcome.EXPIRED, token, expired.status))
            refund_eligible = False
            if paid:
                try:
                    self._match(stale, notification)
                    refund_eligible = True
                    decision.refund = (notification.transaction_id, notification.amount)
                except VerificationFailed as e:
                    self._logger.warning("Rejected payment callback", extra={"token": token, "reason": str(e)})
            if refund_eligible or self._notify_on_expiry:
                decision.notices.append((NotificationKind.EXPIRY, expired, {"refund_eligible": refund_eligible}))
            return decision

        try:
            draft = self._load_draft(token)
        except OrphanCallback as e:
            self._logger.warning(str(e), extra={"token": token, "transaction_id": notification.transaction_id})
            return _Decision(result=CallbackResult(CallbackOutcome.ORPHAN, token))

        if draft.reconciling:
            return _Decision(result=CallbackResult(CallbackOutcome.DUPLICATE, token, draft.status))
        if draft.status is DraftStatus.DRAFT:
            # session not recorded yet, left unacknowledged so the gateway delivers it again
            self._logger.info("Payment callback before session was recorded", extra={"token": token})
            return _Decision(result=CallbackResult(CallbackOutcome.IGNORED, token, draft.status, acknowledged=False))

        try:
            self._match(draft, notification)
        except VerificationFailed as e:
            self._logger.warning("Rejected payment callback", extra={"token": token, "reason": str(e)})
            return _Decision(result=CallbackResult(CallbackOutcome.REJECTED, token, draft.status))

        if notification.payment_status is PaymentStatus.PENDING:
            return _Decision(result=CallbackResult(CallbackOutcome.IGNORED, token, draft.status))

        if not paid:
            reason = (
                FailureReason.PAYMENT_CANCELLED
                if notification.payment_status is PaymentStatus.CANCELLED
                else FailureReason.PAYMENT_FAILED
            )
            failed = draft.transition(DraftStatus.FAILED, failure_reason=reason)
            self._store.remove(token, DraftStatus.FAILED)
            self._logger.info(
                "Payment not completed", extra={"token": token, "status": failed.status.value, "reason": reason.value}
            )
            return _Decision(
                result=CallbackResult(CallbackOutcome.FAILED, token, failed.status),
                notices=[(NotificationKind.FAILURE, failed, {"refund_eligible": False})],
            )

        claimed = draft.claim()
        self._store.update(claimed)
        return _Decision(commit=claimed)

    def _late_payment(self, notification: VerifiedNotification, finished: DraftStatus) -> _Decision:
        token = notification.token
        record = self._store.finished_draft(token)
        try:
            if record is None:
                raise VerificationFailed(f"No record of draft {token} to match the payment against")
            self._match(record, notification)
        except VerificationFailed as e:
            self._logger.warning("Rejected payment callback", extra={"token": token, "reason": str(e)})
            return _Decision(result=CallbackResult(CallbackOutcome.REJECTED, token, finished))

        self._logger.error(
            "Payment received for a booking that already ended",
            extra={"token": token, "transaction_id": notification.transaction_id, "status": finished.value},
        )
        return _Decision(
            result=CallbackResult(CallbackOutcome.LATE_PAYMENT, token, finished),
            refund=(notification.transaction_id, notification.amount),
        )

    def _commit_paid(self, draft: BookingDraft) -> CallbackResult:
        token = draft.token
        try:
            reservation_id = self._availability.reserve(
                draft.service_id,
                draft.slot,
                token=token,
                title=f"{draft.service_name} - {draft.customer.name}",
                customer_name=draft.customer.name,
                customer_email=draft.customer.email,
                description=self._event_description(draft),
                transaction_id=draft.transaction_id,
                amount=draft.amount,
            )
        except (SlotUnavailable, AdapterError) as e:
            reason = FailureReason.SLOT_UNAVAILABLE if isinstance(e, SlotUnavailable) else FailureReason.CALENDAR_ERROR
            return self._fail_paid(draft, reason, str(e))
        except Exception:
            with self._store.lock(token):
                self._store.update(draft.release_claim())
            self._logger.exception("Unexpected error while reserving slot", extra={"token": token})
            raise

        with self._store.lock(token):
            confirmed = draft.transition(DraftStatus.PAID, reservation_id=reservation_id)
            self._store.remove(token, DraftStatus.PAID)

        self._logger.info(
            "Booking confirmed",
            extra={"token": token, "transaction_id": draft.transaction_id, "status": confirmed.status.value},
        )
        self._notify(NotificationKind.CONFIRMATION, confirmed, {})
        return CallbackResult(CallbackOutcome.CONFIRMED, token, confirmed.status)

    def _fail_paid(self, draft: BookingDraft, reason: FailureReason, detail: str) -> CallbackResult:
        with self._store.lock(draft.token):
            failed = draft.transition(DraftStatus.FAILED, failure_reason=reason)
            self._store.remove(draft.token, DraftStatus.FAILED)

        # payment record kept in the log and the notification for refund follow-up
        self._logger.error(
            "Paid booking could not be reserved",
            extra={
                "token": draft.token,
                "transaction_id": draft.transaction_id,
                "amount": draft.amount,
                "reason": reason.value,
                "error": detail,
            },
        )
        refund_initiated = self._refund(draft.transaction_id, draft.amount)
        self._notify(
            NotificationKind.FAILURE,
            failed,
            {"refund_eligible": True, "refund_initiated": refund_initiated, "reason": reason.value},
        )
        outcome = (
            CallbackOutcome.SLOT_UNAVAILABLE if reason is FailureReason.SLOT_UNAVAILABLE else CallbackOutcome.CALENDAR_ERROR
        )
        return CallbackResult(outcome, draft.token, failed.status)

    # -- sweep ----------------------------------------------------------------

    def sweep(self) -> list[str]:
        """Expire every draft past its time-to-live. Returns the expired tokens."""
        return [self._expire(stale).token for stale in self._store.sweep_expired()]

    def outcome(self, token: str) -> DraftStatus | None:
        """
        Current or final status for a token. A draft past its time-to-live is
        expired here rather than waiting for the next sweep.
        """
        with self._store.lock(token):
            stale = self._store.pop_expired(token)
            if stale is None:
                draft = self._store.get(token)
                return draft.status if draft is not None else self._store.outcome(token)
        return self._expire(stale).status

    def _expire(self, stale: BookingDraft) -> BookingDraft:
        expired = stale.transition(DraftStatus.EXPIRED)
        self._logger.info("Draft expired", extra={"token": expired.token, "status": expired.status.value})
        if self._notify_on_expiry:
            self._notify(NotificationKind.EXPIRY, expired, {"refund_eligible": False})
        return expired

    # -- helpers --------------------------------------------------------------

    def _validate(self, booking_input: BookingIntent | Mapping[str, Any]) -> BookingIntent:
        if isinstance(booking_input, BookingIntent):
            return booking_input
        try:
            return BookingIntent.model_validate(booking_input)
        except ValidationError as e:
            raise InvalidInput(format_validation_errors(e)) from e

    def _load_draft(self, token: str) -> BookingDraft:
        draft = self._store.get(token)
        if draft is None:
            raise OrphanCallback(f"No pending booking for callback token {token}")
        return draft

    @staticmethod
    def _match(draft: BookingDraft, notification: VerifiedNotification) -> None:
        if notification.amount != draft.amount:
            raise VerificationFailed(f"Amount {notification.amount} does not match draft amount {draft.amount}")
        if draft.transaction_id and notification.transaction_id != draft.transaction_id:
            raise VerificationFailed("Transaction does not match the draft's payment session")
        if notification.currency and notification.currency != draft.currency:
            raise VerificationFailed(f"Currency {notification.currency} does not match draft currency {draft.currency}")

    def _after_lock(self, decision: _Decision) -> None:
        refund_initiated = False
        if decision.refund is not None:
            refund_initiated = self._refund(*decision.refund)
        for kind, draft, extra in decision.notices:
            if extra.get("refund_eligible"):
                extra = {**extra, "refund_initiated": refund_initiated}
            self._notify(kind, draft, extra)

    def _refund(self, transaction_id: str | None, amount: int) -> bool:
        if not self._auto_refund or not transaction_id:
            return False
        try:
            self._gateway.refund(transaction_id, amount)
        except GatewayError as e:
            self._logger.error("Refund failed", extra={"transaction_id": transaction_id, "error": str(e)})
            return False
        self._logger.info("Refund initiated", extra={"transaction_id": transaction_id, "amount": amount})
        return True

    def _notify(self, kind: NotificationKind, draft: BookingDraft, extra: Mapping[str, Any]) -> bool:
        context = {
            "token": draft.token,
            "customer_name": draft.customer.name,
            "service_name": draft.service_name,
            "appointment": draft.slot.start,
            "amount": draft.amount,
            "currency": draft.currency,
            "transaction_id": draft.transaction_id,
            **extra,
        }
        return self._notifier.send(kind, draft.customer.email, context)

    @staticmethod
    def _event_description(draft: BookingDraft) -> str:
        lines = [
            f"Phone: {draft.customer.phone}",
            f"Email: {draft.customer.email}",
            f"First visit: {'yes' if draft.is_first_visit else 'no'}",
            f"Transaction: {draft.transaction_id}",
        ]
        if draft.notes:
            lines.append(f"Notes: {draft.notes}")
        return "\n".join(lines)
