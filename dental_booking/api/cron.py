from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException

from dental_booking.api.v1.schemas import ReminderResultSchema, SweepResultSchema
from dental_booking.application.exceptions import AdapterError
from dental_booking.application.ports.draft_store import DraftStorePort
from dental_booking.application.use_cases.reconcile_booking import BookingReconciliationUseCase
from dental_booking.application.use_cases.send_reminders import SendRemindersUseCase
from dental_booking.core.config import settings
from dental_booking.wiring.dependencies import (
    get_draft_store,
    get_reconciliation_use_case,
    get_send_reminders_use_case,
)


router = APIRouter()
logger = logging.getLogger(__name__)


def require_cron_secret(authorization: str | None = Header(None)) -> None:
    secret = settings.CRON_SECRET
    if not secret:
        if settings.ENV.lower() in {"dev", "local"}:
            return
        logger.warning("CRON_SECRET not configured, denying access")
        raise HTTPException(status_code=401, detail="Unauthorized")

    token = (authorization or "").strip()
    if token.lower().startswith("bearer "):
        token = token[7:].strip()
    if not token or not hmac.compare_digest(token, secret):
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.api_route(
    "/api/cron/sweep",
    methods=["GET", "POST"],
    response_model=SweepResultSchema,
    dependencies=[Depends(require_cron_secret)],
)
def run_sweep(
    uc: BookingReconciliationUseCase = Depends(get_reconciliation_use_case),
    store: DraftStorePort = Depends(get_draft_store),
):
    expired = uc.sweep()
    return SweepResultSchema(expired=expired, remaining=store.count())


@router.api_route(
    "/api/cron/send-reminders",
    methods=["GET", "POST"],
    response_model=ReminderResultSchema,
    dependencies=[Depends(require_cron_secret)],
)
def send_reminders(uc: SendRemindersUseCase = Depends(get_send_reminders_use_case)):
    try:
        report = uc.execute()
    except AdapterError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return ReminderResultSchema(
        date=report.day,
        total=report.total,
        sent=report.sent,
        skipped=report.skipped,
        failed=report.failed,
    )
