from datetime import date, datetime
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, HTTPException, Query

from dental_booking.api.v1.schemas import AvailabilitySchema
from dental_booking.application.exceptions import AdapterError
from dental_booking.application.ports.availability import AvailabilityPort
from dental_booking.wiring.dependencies import get_availability, get_timezone

router = APIRouter()


@router.get("/availability", response_model=AvailabilitySchema)
def get_available_slots(
    day: date = Query(..., alias="date"),
    duration: int = Query(60, ge=15, le=240),
    availability: AvailabilityPort = Depends(get_availability),
    tz: ZoneInfo = Depends(get_timezone),
):
    try:
        slots = availability.find_available_slots(day, duration)
    except AdapterError as e:
        raise HTTPException(status_code=502, detail=str(e))

    now = datetime.now(tz)
    return AvailabilitySchema(
        date=day,
        duration_minutes=duration,
        slots=[start for start in slots if start > now],
    )
