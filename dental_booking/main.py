import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from dental_booking.api.cron import router as cron_router
from dental_booking.api.v1.availability import router as availability_router
from dental_booking.api.v1.bookings import router as bookings_router
from dental_booking.api.webhooks import router as webhooks_router
from dental_booking.core.config import settings
from dental_booking.wiring.dependencies import get_reconciliation_use_case

class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        extras = []
        for key in ("token", "transaction_id", "status", "outcome", "reason", "kind", "attempt", "error"):
            value = getattr(record, key, None)
            if value not in (None, ""):
                extras.append(f"{key}={value}")
        base = super().format(record)
        if extras:
            return f"{base} | " + " ".join(extras)
        return base


handler = logging.StreamHandler()
handler.setFormatter(ContextFormatter("%(levelname)s:%(name)s:%(message)s"))

root = logging.getLogger()
root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
root.handlers.clear()
root.addHandler(handler)

logger = logging.getLogger(__name__)


async def sweep_periodically(interval_seconds: float) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(get_reconciliation_use_case().sweep)
        except Exception as e:
            logger.exception("Background sweep failed", extra={"error": str(e)})


@asynccontextmanager
async def lifespan(app: FastAPI):
    task = None
    if settings.SWEEP_ENABLED:
        task = asyncio.create_task(sweep_periodically(settings.SWEEP_INTERVAL_SECONDS))
        logger.info(f"Draft sweeper started, interval {settings.SWEEP_INTERVAL_SECONDS}s")
    yield
    if task is not None:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task


app = FastAPI(title="Dental Booking Payments", version="1.0.0", lifespan=lifespan)

app.include_router(bookings_router, prefix="/api/v1", tags=["bookings"])
app.include_router(availability_router, prefix="/api/v1", tags=["availability"])
app.include_router(webhooks_router, tags=["webhooks"])
app.include_router(cron_router, tags=["cron"])


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
