from __future__ import annotations

import logging
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import PlainTextResponse
from fastapi.concurrency import run_in_threadpool

from dental_booking.application.use_cases.reconcile_booking import BookingReconciliationUseCase
from dental_booking.wiring.dependencies import get_reconciliation_use_case


router = APIRouter()
logger = logging.getLogger(__name__)

ACK = "code=0&message=OK"


@router.get("/webhooks/comgate")
def describe_webhook() -> dict[str, str]:
    return {
        "endpoint": "/webhooks/comgate",
        "method": "POST",
        "content_type": "application/x-www-form-urlencoded",
    }


@router.post("/webhooks/comgate")
async def comgate_webhook(
    request: Request,
    use_case: BookingReconciliationUseCase = Depends(get_reconciliation_use_case),
) -> Response:
    body = await request.body()
    try:
        payload = dict(parse_qsl(body.decode("utf-8"), keep_blank_values=True)) if body else {}
    except UnicodeDecodeError:
        logger.warning("Webhook body is not valid UTF-8")
        payload = {}

    logger.info(
        "Webhook received",
        extra={"token": payload.get("refId"), "transaction_id": payload.get("transId"), "status": payload.get("status")},
    )

    try:
        result = await run_in_threadpool(use_case.handle_callback, payload)
    except Exception as e:
        logger.exception("Error processing payment callback", extra={"error": str(e)})
        return Response(status_code=500)

    logger.info("Webhook handled", extra={"token": result.token, "outcome": result.outcome.value})
    if not result.acknowledged:
        # gateway redelivers on any non-2xx answer
        return Response(status_code=503)
    return PlainTextResponse(ACK)
