"""Shared FastAPI dependencies resolving services from application state."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from meeting_scheduler.services.booking_service import BookingCommitService
from meeting_scheduler.services.scheduling_service import MeetingSchedulingService


def get_scheduling_service(request: Request) -> MeetingSchedulingService:
    service = getattr(request.app.state, "scheduling_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scheduling service is not initialized",
        )
    return service


def get_booking_service(request: Request) -> BookingCommitService:
    service = getattr(request.app.state, "booking_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Booking service is not initialized",
        )
    return service
