# bulletin/routers/time.py
"""
Server time endpoints.

Clients use these instead of their own clocks when deciding what is
visible.

GET /v1/time/current  - Current school-local time
GET /v1/time/validate - Compare a client timestamp against server time
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query

from bulletin.clock import Clock, get_clock, to_school_local
from bulletin.config import get_settings
from bulletin.schemas.content import Envelope

router = APIRouter(prefix="/v1/time", tags=["time"])


@router.get("/current", response_model=Envelope)
def current_time(clock: Clock = Depends(get_clock)) -> Envelope:
    settings = get_settings()
    now = clock.now()
    return Envelope(
        data={
            "server_time": now.isoformat(),
            "date": now.date().isoformat(),
            "timezone": settings.SCHOOL_TIMEZONE,
        },
        message="Server time retrieved successfully",
    )


@router.get("/validate", response_model=Envelope)
def validate_client_time(
    client_time: datetime = Query(..., description="Client timestamp, ISO 8601"),
    clock: Clock = Depends(get_clock),
) -> Envelope:
    """
    Report the skew between a client timestamp and server time.

    Naive client timestamps are read as school-local time; aware ones are
    converted first. Skew is positive when the client is ahead.
    """
    settings = get_settings()
    client_time = to_school_local(client_time)

    server_time = clock.now()
    skew_seconds = (client_time - server_time).total_seconds()

    return Envelope(
        data={
            "server_time": server_time.isoformat(),
            "client_time": client_time.isoformat(),
            "skew_seconds": skew_seconds,
            "is_suspicious": abs(skew_seconds) > settings.CLOCK_SKEW_THRESHOLD_SECONDS,
            "threshold_seconds": settings.CLOCK_SKEW_THRESHOLD_SECONDS,
        },
        message="Client time validated",
    )
