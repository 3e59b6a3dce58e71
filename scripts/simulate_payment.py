#!/usr/bin/env python3
"""Create a booking against a running server and deliver a signed gateway callback for it."""
from __future__ import annotations

import argparse
from datetime import date, timedelta
from typing import Any

import httpx
from httpx import ConnectError

from dental_booking.infrastructure.gateway.signing import sign_fields


def next_weekday(start: date) -> date:
    day = start + timedelta(days=1)
    while day.weekday() >= 5:
        day += timedelta(days=1)
    return day


def build_booking(amount: int, day: date, time: str) -> dict[str, Any]:
    return {
        "serviceId": "hygiene-basic",
        "serviceName": "Dental hygiene",
        "durationMinutes": 60,
        "amount": amount,
        "customerName": "Jana Novakova",
        "customerEmail": "jana@example.com",
        "customerPhone": "+420 601 234 567",
        "appointmentDate": day.isoformat(),
        "appointmentTime": time,
        "isFirstVisit": True,
        "gdprConsent": True,
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Simulate a booking payment against a local server")
    parser.add_argument("--base-url", default="http://127.0.0.1:8000")
    parser.add_argument("--secret", default="dev-secret", help="MOCK_GATEWAY_SECRET or COMGATE_SECRET")
    parser.add_argument("--status", default="PAID", choices=["PAID", "CANCELLED", "PENDING", "TIMEOUT"])
    parser.add_argument("--amount", type=int, default=150000, help="Minor currency units")
    parser.add_argument("--time", default="09:00")
    parser.add_argument("--repeat", type=int, default=1, help="Deliver the callback this many times")
    args = parser.parse_args()

    base_url = args.base_url.rstrip("/")
    try:
        created = httpx.post(
            f"{base_url}/api/v1/bookings",
            json=build_booking(args.amount, next_weekday(date.today()), args.time),
            timeout=10.0,
        )
    except ConnectError:
        print("Connection refused. Is the FastAPI server running?")
        print("Try: uvicorn dental_booking.main:app --reload")
        return

    print("create:", created.status_code, created.text)
    if created.status_code != 201:
        return
    booking = created.json()

    callback = sign_fields(
        {
            "transId": booking["transaction_id"],
            "refId": booking["token"],
            "status": args.status,
            "price": str(args.amount),
            "curr": "CZK",
        },
        args.secret,
    )
    for _ in range(args.repeat):
        resp = httpx.post(f"{base_url}/webhooks/comgate", data=callback, timeout=10.0)
        print("callback:", resp.status_code, resp.text)

    status = httpx.get(f"{base_url}/api/v1/bookings/{booking['token']}", timeout=10.0)
    print("status:", status.status_code, status.text)


if __name__ == "__main__":
    main()
