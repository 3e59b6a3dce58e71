from functools import lru_cache
import logging
from zoneinfo import ZoneInfo

from dental_booking.core.config import settings
from dental_booking.application.ports.availability import AvailabilityPort
from dental_booking.application.ports.mailer import MailerPort
from dental_booking.application.ports.payment_gateway import PaymentGatewayPort
from dental_booking.application.use_cases.cancel_booking import CancelBookingUseCase
from dental_booking.application.use_cases.notification_dispatcher import NotificationDispatcher
from dental_booking.application.use_cases.reconcile_booking import BookingReconciliationUseCase
from dental_booking.application.use_cases.send_reminders import SendRemindersUseCase
from dental_booking.infrastructure.calendar.google_calendar import GoogleCalendarAvailability
from dental_booking.infrastructure.calendar.mock_calendar import MockAvailability
from dental_booking.infrastructure.gateway.comgate_client import ComgateGateway
from dental_booking.infrastructure.gateway.mock_gateway import MockPaymentGateway
from dental_booking.infrastructure.mail.mock_mailer import MockMailer
from dental_booking.infrastructure.mail.resend_mailer import ResendMailer
from dental_booking.infrastructure.store.memory_draft_store import MemoryDraftStore


logger = logging.getLogger(__name__)


def _is_dev() -> bool:
    return settings.ENV.lower() in {"dev", "local"}


def get_timezone() -> ZoneInfo:
    return ZoneInfo(settings.BUSINESS_TIMEZONE)


@lru_cache
def get_draft_store() -> MemoryDraftStore:
    return MemoryDraftStore(
        ttl_minutes=settings.DRAFT_TTL_MINUTES,
        outcome_retention_minutes=settings.DRAFT_OUTCOME_RETENTION_MINUTES,
    )


@lru_cache
def get_payment_gateway() -> PaymentGatewayPort:
    if not (settings.COMGATE_MERCHANT_ID and settings.COMGATE_SECRET):
        if _is_dev():
            logger.info("Using MockPaymentGateway (Comgate credentials missing, ENV=dev/local)")
            return MockPaymentGateway(secret=settings.MOCK_GATEWAY_SECRET, public_base_url=settings.PUBLIC_BASE_URL)
        raise ValueError("COMGATE_MERCHANT_ID and COMGATE_SECRET are required outside dev/local")
    logger.info("Using ComgateGateway", extra={"reason": "test mode" if settings.COMGATE_TEST_MODE else "live"})
    return ComgateGateway()


@lru_cache
def get_availability() -> AvailabilityPort:
    if not settings.GOOGLE_REFRESH_TOKEN or _is_dev():
        return MockAvailability(timezone=get_timezone())
    return GoogleCalendarAvailability(timezone=get_timezone())


@lru_cache
def get_mailer() -> MailerPort:
    if not settings.RESEND_API_KEY or _is_dev():
        return MockMailer()
    return ResendMailer()


def get_notification_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher(
        mailer=get_mailer(),
        business_name=settings.BUSINESS_NAME,
        contact_phone=settings.CONTACT_PHONE,
        contact_email=settings.CONTACT_EMAIL,
        max_attempts=settings.NOTIFY_MAX_ATTEMPTS,
        backoff_seconds=settings.NOTIFY_BACKOFF_SECONDS,
    )


@lru_cache
def get_reconciliation_use_case() -> BookingReconciliationUseCase:
    return BookingReconciliationUseCase(
        store=get_draft_store(),
        gateway=get_payment_gateway(),
        availability=get_availability(),
        notifier=get_notification_dispatcher(),
        timezone=get_timezone(),
        currency=settings.CURRENCY,
        gateway_retries=settings.GATEWAY_CREATE_RETRIES,
        gateway_backoff_seconds=settings.GATEWAY_RETRY_BACKOFF_SECONDS,
        notify_on_expiry=settings.NOTIFY_ON_EXPIRY,
        auto_refund=settings.AUTO_REFUND_ON_CONFLICT,
    )


def get_send_reminders_use_case() -> SendRemindersUseCase:
    return SendRemindersUseCase(
        availability=get_availability(),
        notifier=get_notification_dispatcher(),
        timezone=get_timezone(),
    )


def get_cancel_booking_use_case() -> CancelBookingUseCase:
    return CancelBookingUseCase(
        availability=get_availability(),
        gateway=get_payment_gateway(),
        notifier=get_notification_dispatcher(),
        store=get_draft_store(),
        timezone=get_timezone(),
        currency=settings.CURRENCY,
        refund_window_hours=settings.CANCELLATION_REFUND_WINDOW_HOURS,
        auto_refund=settings.AUTO_REFUND_ON_CANCELLATION,
    )
