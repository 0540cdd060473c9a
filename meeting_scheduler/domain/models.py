"""Domain models for meeting room recommendation and booking."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional


class Priority:
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    ALL = (LOW, NORMAL, HIGH, URGENT)
    RANK = {LOW: 1, NORMAL: 2, HIGH: 3, URGENT: 4}


class BookingStatus:
    TENTATIVE = "tentative"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    RELEASED = "released"

    ALL = (TENTATIVE, CONFIRMED, CANCELLED, RELEASED)
    # Bookings in these states never block a room.
    INACTIVE = frozenset({CANCELLED, RELEASED})


class OrganizerRole:
    EMPLOYEE = "employee"
    CEO = "ceo"
    ADMIN = "admin"

    ALL = (EMPLOYEE, CEO, ADMIN)


@dataclass(frozen=True)
class Room:
    room_id: int
    capacity: int
    equipment: frozenset[str] = frozenset()
    hourly_rate: float = 0.0
    name: Optional[str] = None
    location: Optional[str] = None

    @property
    def cost_per_minute(self) -> float:
        return self.hourly_rate / 60


@dataclass(frozen=True)
class Booking:
    room_id: int
    start_time: datetime
    end_time: datetime
    organizer_id: str = ""
    priority: Optional[str] = None
    status: str = BookingStatus.TENTATIVE
    buffer_before_minutes: Optional[int] = None
    buffer_after_minutes: Optional[int] = None
    booking_id: Optional[int] = None
    attendees: tuple[str, ...] = ()
    required_equipment: frozenset[str] = frozenset()

    @property
    def is_active(self) -> bool:
        return self.status not in BookingStatus.INACTIVE


@dataclass(frozen=True)
class MeetingRequest:
    organizer: str
    attendees: tuple[str, ...]
    duration_minutes: int
    preferred_start: datetime
    required_equipment: frozenset[str] = frozenset()
    flexibility_minutes: int = 0
    priority: str = Priority.NORMAL
    organizer_role: Optional[str] = None

    @property
    def attendee_count(self) -> int:
        return max(len(self.attendees), 1)

    @property
    def duration(self) -> timedelta:
        return timedelta(minutes=self.duration_minutes)

    @property
    def is_ceo(self) -> bool:
        if self.organizer_role is not None:
            return self.organizer_role == OrganizerRole.CEO
        return self.organizer == OrganizerRole.CEO


@dataclass(frozen=True)
class Candidate:
    room: Room
    start_time: datetime
    score: float
    shift_minutes: float
    wasted_capacity: int
    cost_per_minute: float
    sequence: int


@dataclass(frozen=True)
class AlternativeOption:
    room: Room
    start_time: datetime
    score: float


@dataclass(frozen=True)
class ScoredEntry:
    room_id: int
    score: float
    start_time: datetime


@dataclass(frozen=True)
class SchedulingDiagnostics:
    scored_count: int
    top_scores: tuple[ScoredEntry, ...] = ()
    candidate_times: int = 0
    eligible_rooms: int = 0
    conflict_rejections: int = 0
    # Conflicts where the incoming request outranks the existing booking.
    # Reported only; existing bookings are never overridden.
    preemptable_conflicts: int = 0


@dataclass(frozen=True)
class Recommendation:
    recommended_room: Optional[Room]
    suggested_time: Optional[datetime]
    alternatives: tuple[AlternativeOption, ...]
    cost_optimization: float
    diagnostics: SchedulingDiagnostics = field(
        default_factory=lambda: SchedulingDiagnostics(scored_count=0)
    )

    @property
    def has_recommendation(self) -> bool:
        return self.recommended_room is not None
