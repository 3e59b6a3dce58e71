from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Iterable
from zoneinfo import ZoneInfo

OFFICE_START = time(8, 0)
OFFICE_END = time(18, 0)
LUNCH_START = time(12, 0)
LUNCH_END = time(13, 0)
WORK_DAYS = frozenset({0, 1, 2, 3, 4})  # Monday to Friday
SLOT_STEP_MINUTES = 30


def is_working_day(day: date) -> bool:
    return day.weekday() in WORK_DAYS


def candidate_slots(day: date, duration_minutes: int, tz: ZoneInfo) -> list[datetime]:
    """Slot starts inside office hours that do not run into the lunch break."""
    if not is_working_day(day):
        return []

    current = datetime.combine(day, OFFICE_START, tzinfo=tz)
    office_end = datetime.combine(day, OFFICE_END, tzinfo=tz)
    lunch_start = datetime.combine(day, LUNCH_START, tzinfo=tz)
    lunch_end = datetime.combine(day, LUNCH_END, tzinfo=tz)
    duration = timedelta(minutes=duration_minutes)

    slots: list[datetime] = []
    while current + duration <= office_end:
        if not (current < lunch_end and lunch_start < current + duration):
            slots.append(current)
        current += timedelta(minutes=SLOT_STEP_MINUTES)
    return slots


def free_slots(
    day: date,
    duration_minutes: int,
    busy: Iterable[tuple[datetime, datetime]],
    tz: ZoneInfo,
) -> list[datetime]:
    busy = list(busy)
    duration = timedelta(minutes=duration_minutes)
    return [
        start
        for start in candidate_slots(day, duration_minutes, tz)
        if all(not (start < busy_end and busy_start < start + duration) for busy_start, busy_end in busy)
    ]
