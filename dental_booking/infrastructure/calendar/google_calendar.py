from __future__ import annotations

import logging
import threading
import time
from datetime import date, datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

import httpx

from dental_booking.application.exceptions import AdapterError, SlotUnavailable
from dental_booking.application.ports.availability import AvailabilityPort
from dental_booking.application.utils.office_hours import free_slots
from dental_booking.core.config import settings
from dental_booking.domain.entities.booking_draft import Slot
from dental_booking.domain.entities.reservation import CalendarReservation

PAID_COLOR_ID = "10"  # green


class GoogleCalendarAvailability(AvailabilityPort):
    """
    Google Calendar v3 over REST.

    The draft token doubles as the event id, so inserting the same draft twice
    yields 409 instead of a second event. Google has no conditional insert; a
    lost race between two different drafts is detected after insert by
    comparing creation times of the overlapping events, and the later event is
    deleted.
    """

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        refresh_token: str | None = None,
        calendar_id: str | None = None,
        timezone: ZoneInfo | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._client_id = client_id or settings.GOOGLE_CLIENT_ID
        self._client_secret = client_secret or settings.GOOGLE_CLIENT_SECRET
        self._refresh_token = refresh_token or settings.GOOGLE_REFRESH_TOKEN
        self._calendar_id = calendar_id or settings.GOOGLE_CALENDAR_ID
        self._timezone = timezone or ZoneInfo(settings.BUSINESS_TIMEZONE)
        self._base_url = settings.GOOGLE_CALENDAR_BASE_URL.rstrip("/")
        self._client = client or httpx.Client(timeout=settings.HTTP_TIMEOUT_SECONDS)
        self._access_token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()
        self._logger = logging.getLogger(__name__)

        if not (self._client_id and self._client_secret and self._refresh_token and self._calendar_id):
            raise ValueError(
                "GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET, GOOGLE_REFRESH_TOKEN and GOOGLE_CALENDAR_ID are required"
            )

    def is_slot_free(self, slot: Slot) -> bool:
        return not self._list_events(slot.start, slot.end)

    def find_available_slots(self, day: date, duration_minutes: int) -> list[datetime]:
        day_start = datetime.combine(day, datetime.min.time(), tzinfo=self._timezone)
        events = self._list_events(day_start, day_start + timedelta(days=1))
        busy = [(_event_start(event), _event_end(event)) for event in events]
        return free_slots(day, duration_minutes, busy, self._timezone)

    def reserve(
        self,
        service_id: str,
        slot: Slot,
        *,
        token: str,
        title: str,
        customer_name: str | None = None,
        customer_email: str | None = None,
        description: str | None = None,
        transaction_id: str | None = None,
        amount: int | None = None,
    ) -> str:
        existing = self._list_events(slot.start, slot.end)
        if any(event.get("id") == token for event in existing):
            return token
        if existing:
            raise SlotUnavailable(f"Slot {slot.start.isoformat()} is already taken")

        payload: dict[str, Any] = {
            "id": token,
            "summary": title,
            "description": description or "",
            "start": {"dateTime": slot.start.isoformat(), "timeZone": str(self._timezone)},
            "end": {"dateTime": slot.end.isoformat(), "timeZone": str(self._timezone)},
            "colorId": PAID_COLOR_ID,
            "extendedProperties": {
                "private": {
                    "token": token,
                    "serviceId": service_id,
                    "customerName": customer_name or "",
                    "customerEmail": customer_email or "",
                    "transactionId": transaction_id or "",
                    "amount": "" if amount is None else str(amount),
                }
            },
        }
        if customer_email:
            payload["attendees"] = [{"email": customer_email}]

        response = self._request(
            "POST",
            f"/calendars/{self._calendar_id}/events",
            params={"sendUpdates": "all"},
            json=payload,
            allow_statuses={409},
        )
        if response.status_code == 409:
            self._logger.info("Calendar event already exists", extra={"token": token})
            return token

        event = response.json()
        event_id = event.get("id")
        if not event_id:
            raise AdapterError("No event ID returned from Google Calendar API")

        if self._lost_race(event, slot):
            if not self.release(event_id):
                self._logger.error(
                    "Lost-race calendar event could not be removed, delete it by hand",
                    extra={"token": token, "event_id": event_id},
                )
            raise SlotUnavailable(f"Slot {slot.start.isoformat()} was taken concurrently")

        self._logger.info("Calendar event created", extra={"event_id": event_id, "token": token, "title": title})
        return str(event_id)

    def list_reservations(self, start: datetime, end: datetime) -> list[CalendarReservation]:
        reservations: list[CalendarReservation] = []
        for event in self._list_events(start, end):
            reservation = self._to_reservation(event)
            if reservation is not None:
                reservations.append(reservation)
        return reservations

    def find_reservation(self, token: str) -> CalendarReservation | None:
        response = self._request(
            "GET",
            f"/calendars/{self._calendar_id}/events/{token}",
            allow_statuses={404, 410},
        )
        if response.status_code in (404, 410):
            return None
        event = response.json()
        if event.get("status") == "cancelled" or "dateTime" not in (event.get("start") or {}):
            return None
        return self._to_reservation(event)

    def _to_reservation(self, event: dict[str, Any]) -> CalendarReservation | None:
        private = (event.get("extendedProperties") or {}).get("private") or {}
        token = private.get("token")
        if not token:
            return None
        event_start = _event_start(event)
        duration = int((_event_end(event) - event_start).total_seconds() // 60)
        amount = private.get("amount")
        return CalendarReservation(
            reservation_id=str(event["id"]),
            token=token,
            service_id=private.get("serviceId", ""),
            slot=Slot(start=event_start.astimezone(self._timezone), duration_minutes=duration),
            title=event.get("summary", ""),
            customer_name=private.get("customerName") or None,
            customer_email=private.get("customerEmail") or None,
            transaction_id=private.get("transactionId") or None,
            amount=int(amount) if amount and amount.isdigit() else None,
        )

    def release(self, reservation_id: str) -> bool:
        try:
            self._request(
                "DELETE",
                f"/calendars/{self._calendar_id}/events/{reservation_id}",
                params={"sendUpdates": "all"},
            )
            self._logger.info("Calendar event cancelled", extra={"event_id": reservation_id})
            return True
        except AdapterError as e:
            self._logger.error("Error cancelling calendar event", extra={"event_id": reservation_id, "error": str(e)})
            return False

    def _lost_race(self, ours: dict[str, Any], slot: Slot) -> bool:
        ours_key = (ours.get("created", ""), ours["id"])
        for event in self._list_events(slot.start, slot.end):
            if event.get("id") == ours["id"]:
                continue
            if (event.get("created", ""), event.get("id", "")) < ours_key:
                return True
        return False

    def _list_events(self, start: datetime, end: datetime) -> list[dict[str, Any]]:
        response = self._request(
            "GET",
            f"/calendars/{self._calendar_id}/events",
            params={
                "timeMin": start.isoformat(),
                "timeMax": end.isoformat(),
                "singleEvents": "true",
                "orderBy": "startTime",
            },
        )
        items = response.json().get("items", [])
        return [item for item in items if item.get("status") != "cancelled" and "dateTime" in (item.get("start") or {})]

    def _request(
        self,
        method: str,
        path: str,
        allow_statuses: set[int] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._get_access_token()}"}
        try:
            response = self._client.request(method, f"{self._base_url}{path}", headers=headers, **kwargs)
            if allow_statuses and response.status_code in allow_statuses:
                return response
            response.raise_for_status()
            return response
        except httpx.HTTPError as e:
            self._logger.error("Google Calendar request failed", extra={"error": str(e), "path": path})
            raise AdapterError(f"Google Calendar request failed: {e}") from e

    def _get_access_token(self) -> str:
        with self._token_lock:
            if self._access_token and time.monotonic() < self._token_expires_at:
                return self._access_token
            try:
                response = self._client.post(
                    settings.GOOGLE_TOKEN_URL,
                    data={
                        "client_id": self._client_id,
                        "client_secret": self._client_secret,
                        "refresh_token": self._refresh_token,
                        "grant_type": "refresh_token",
                    },
                )
                response.raise_for_status()
                data = response.json()
            except (httpx.HTTPError, ValueError) as e:
                raise AdapterError(f"Google OAuth token refresh failed: {e}") from e

            access_token = data.get("access_token")
            if not access_token:
                raise AdapterError("Google OAuth response has no access_token")
            self._access_token = access_token
            # refresh a minute early
            self._token_expires_at = time.monotonic() + int(data.get("expires_in", 3600)) - 60
            return access_token


def _event_start(event: dict[str, Any]) -> datetime:
    return datetime.fromisoformat(event["start"]["dateTime"].replace("Z", "+00:00"))


def _event_end(event: dict[str, Any]) -> datetime:
    return datetime.fromisoformat(event["end"]["dateTime"].replace("Z", "+00:00"))
