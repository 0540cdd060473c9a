"""HTTP controller layer for meeting recommendation and booking."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import AwareDatetime, BaseModel, Field, field_validator

from meeting_scheduler.controllers.dependencies import (
    get_booking_service,
    get_scheduling_service,
)
from meeting_scheduler.domain.models import (
    Booking,
    BookingStatus,
    MeetingRequest,
    OrganizerRole,
    Priority,
    Recommendation,
    Room,
)
from meeting_scheduler.services.booking_service import (
    BookingCommand,
    BookingCommitService,
    BookingError,
    BookingNotFoundError,
    BookingValidationError,
    BufferConflictError,
    CapacityExceededError,
    ConcurrencyConflictError,
    InvalidStatusTransitionError,
    MissingEquipmentError,
    RoomNotFoundError,
)
from meeting_scheduler.services.scheduling_service import (
    MeetingSchedulingService,
    SchedulingValidationError,
)
from meeting_scheduler.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/meetings", tags=["meetings"])

_UNPROCESSABLE = 422

_PRIORITY_PATTERN = "^(" + "|".join(Priority.ALL) + ")$"

_ERROR_STATUS = {
    BookingValidationError: status.HTTP_400_BAD_REQUEST,
    RoomNotFoundError: status.HTTP_404_NOT_FOUND,
    BookingNotFoundError: status.HTTP_404_NOT_FOUND,
    CapacityExceededError: _UNPROCESSABLE,
    MissingEquipmentError: _UNPROCESSABLE,
    InvalidStatusTransitionError: _UNPROCESSABLE,
    BufferConflictError: status.HTTP_409_CONFLICT,
    ConcurrencyConflictError: status.HTTP_409_CONFLICT,
}


class MeetingRequestPayload(BaseModel):
    """Input DTO validated before entering service layer."""

    organizer: str = Field(min_length=1)
    attendees: list[str] = Field(default_factory=list)
    duration: int = Field(gt=0, description="Meeting length in minutes")
    required_equipment: list[str] = Field(default_factory=list)
    preferred_start_time: AwareDatetime
    flexibility: int = Field(default=0, description="Minutes; negative values clamp to 0")
    priority: str = Field(default=Priority.NORMAL, pattern=_PRIORITY_PATTERN)
    organizer_role: Optional[str] = None

    @field_validator("organizer_role")
    @classmethod
    def validate_organizer_role(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and value not in OrganizerRole.ALL:
            raise ValueError(f"organizer_role must be one of {', '.join(OrganizerRole.ALL)}")
        return value

    def to_domain(self) -> MeetingRequest:
        return MeetingRequest(
            organizer=self.organizer,
            attendees=tuple(self.attendees),
            duration_minutes=self.duration,
            preferred_start=self.preferred_start_time,
            required_equipment=frozenset(self.required_equipment),
            flexibility_minutes=self.flexibility,
            priority=self.priority,
            organizer_role=self.organizer_role,
        )


class CreateBookingPayload(BaseModel):
    room_id: int = Field(gt=0)
    start_time: AwareDatetime
    duration: int = Field(gt=0)
    organizer: str = Field(min_length=1)
    attendees: list[str] = Field(default_factory=list)
    required_equipment: list[str] = Field(default_factory=list)
    priority: str = Field(default=Priority.NORMAL, pattern=_PRIORITY_PATTERN)

    def to_command(self) -> BookingCommand:
        return BookingCommand(
            room_id=self.room_id,
            start_time=self.start_time,
            duration_minutes=self.duration,
            organizer_id=self.organizer,
            attendees=tuple(self.attendees),
            required_equipment=frozenset(self.required_equipment),
            priority=self.priority,
        )


class UpdateStatusPayload(BaseModel):
    status: str = Field(pattern="^(" + "|".join(BookingStatus.ALL) + ")$")


class RoomResponse(BaseModel):
    id: int
    name: Optional[str] = None
    capacity: int
    equipment: list[str]
    hourly_rate: float
    location: Optional[str] = None

    @classmethod
    def from_domain(cls, room: Room) -> "RoomResponse":
        return cls(
            id=room.room_id,
            name=room.name,
            capacity=room.capacity,
            equipment=sorted(room.equipment),
            hourly_rate=room.hourly_rate,
            location=room.location,
        )


class AlternativeResponse(BaseModel):
    room: RoomResponse
    time: datetime
    score: float


class ScoredEntryResponse(BaseModel):
    room_id: int
    score: float
    start: datetime


class DebugResponse(BaseModel):
    scored_count: int = Field(ge=0)
    top_scores: list[ScoredEntryResponse]
    conflict_rejections: int = Field(ge=0)
    preemptable_conflicts: int = Field(ge=0)


class RecommendationResponse(BaseModel):
    recommended_room: Optional[RoomResponse] = None
    suggested_time: Optional[datetime] = None
    alternative_options: list[AlternativeResponse]
    cost_optimization: float
    debug: DebugResponse

    @classmethod
    def from_domain(cls, result: Recommendation) -> "RecommendationResponse":
        diagnostics = result.diagnostics
        return cls(
            recommended_room=(
                RoomResponse.from_domain(result.recommended_room)
                if result.recommended_room is not None
                else None
            ),
            suggested_time=result.suggested_time,
            alternative_options=[
                AlternativeResponse(
                    room=RoomResponse.from_domain(option.room),
                    time=option.start_time,
                    score=option.score,
                )
                for option in result.alternatives
            ],
            cost_optimization=result.cost_optimization,
            debug=DebugResponse(
                scored_count=diagnostics.scored_count,
                top_scores=[
                    ScoredEntryResponse(
                        room_id=entry.room_id,
                        score=entry.score,
                        start=entry.start_time,
                    )
                    for entry in diagnostics.top_scores
                ],
                conflict_rejections=diagnostics.conflict_rejections,
                preemptable_conflicts=diagnostics.preemptable_conflicts,
            ),
        )


class BookingResponse(BaseModel):
    id: int
    room_id: int
    start_time: datetime
    end_time: datetime
    organizer: str
    attendees: list[str]
    required_equipment: list[str]
    priority: Optional[str] = None
    status: str
    buffer_before: Optional[int] = None
    buffer_after: Optional[int] = None

    @classmethod
    def from_domain(cls, booking: Booking) -> "BookingResponse":
        return cls(
            id=booking.booking_id,
            room_id=booking.room_id,
            start_time=booking.start_time,
            end_time=booking.end_time,
            organizer=booking.organizer_id,
            attendees=list(booking.attendees),
            required_equipment=sorted(booking.required_equipment),
            priority=booking.priority,
            status=booking.status,
            buffer_before=booking.buffer_before_minutes,
            buffer_after=booking.buffer_after_minutes,
        )


def _booking_http_error(exc: BookingError) -> HTTPException:
    status_code = _ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return HTTPException(
        status_code=status_code,
        detail={"kind": exc.kind, "message": str(exc), "retryable": exc.retryable},
    )


@router.post(
    "/find-optimal",
    response_model=RecommendationResponse,
    status_code=status.HTTP_200_OK,
)
async def find_optimal(
    payload: MeetingRequestPayload,
    service: MeetingSchedulingService = Depends(get_scheduling_service),
) -> RecommendationResponse:
    """Recommend a room and start time; an empty result is not an error."""
    try:
        result = service.find_optimal_meeting(payload.to_domain())
        return RecommendationResponse.from_domain(result)
    except SchedulingValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"kind": "invalid_input", "message": str(exc), "retryable": False},
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected scheduling failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to compute recommendation",
        ) from exc


@router.post(
    "",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
def create_booking(
    payload: CreateBookingPayload,
    service: BookingCommitService = Depends(get_booking_service),
) -> BookingResponse:
    """Commit a tentative booking after re-validating the slot."""
    try:
        booking = service.commit_booking(payload.to_command())
        return BookingResponse.from_domain(booking)
    except BookingError as exc:
        raise _booking_http_error(exc) from exc


@router.patch(
    "/{booking_id}/status",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
def update_booking_status(
    booking_id: int,
    payload: UpdateStatusPayload,
    service: BookingCommitService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = service.transition_status(booking_id, payload.status)
        return BookingResponse.from_domain(booking)
    except BookingError as exc:
        raise _booking_http_error(exc) from exc
