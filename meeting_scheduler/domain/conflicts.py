"""Buffer-aware interval conflict detection shared by scheduling and commit."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Iterable, Mapping, Optional, Sequence

from meeting_scheduler.domain.models import Booking, Priority


@dataclass(frozen=True)
class ConflictCheck:
    booking: Optional[Booking] = None
    incoming_outranks: bool = False

    @property
    def has_conflict(self) -> bool:
        return self.booking is not None


NO_CONFLICT = ConflictCheck()


def intervals_overlap(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
) -> bool:
    """Half-open overlap test for ``[a_start, a_end)`` and ``[b_start, b_end)``."""
    return a_start < b_end and b_start < a_end


def buffered_window(
    start: datetime,
    end: datetime,
    buffer_before_minutes: int,
    buffer_after_minutes: int,
) -> tuple[datetime, datetime]:
    return (
        start - timedelta(minutes=buffer_before_minutes),
        end + timedelta(minutes=buffer_after_minutes),
    )


def booking_buffered_window(
    booking: Booking,
    default_buffer_minutes: int,
) -> tuple[datetime, datetime]:
    before = booking.buffer_before_minutes
    after = booking.buffer_after_minutes
    return buffered_window(
        booking.start_time,
        booking.end_time,
        default_buffer_minutes if before is None else before,
        default_buffer_minutes if after is None else after,
    )


def priority_rank(priority: Optional[str]) -> int:
    # Bookings stored without a priority compare as normal.
    return Priority.RANK.get(priority or Priority.NORMAL, 0)


def find_conflict(
    start: datetime,
    end: datetime,
    room_bookings: Iterable[Booking],
    *,
    buffer_minutes: int,
    incoming_priority: Optional[str] = None,
) -> ConflictCheck:
    """Return the first active booking whose buffered window overlaps the candidate.

    The candidate window is padded by ``buffer_minutes`` on both sides; each
    booking is padded by its own buffers, falling back to ``buffer_minutes``.
    Cancelled and released bookings are skipped. The priority comparison is
    recorded on the result and never turns a conflict into a success.
    """
    window_start, window_end = buffered_window(start, end, buffer_minutes, buffer_minutes)
    for booking in room_bookings:
        if not booking.is_active:
            continue
        booking_start, booking_end = booking_buffered_window(booking, buffer_minutes)
        if intervals_overlap(window_start, window_end, booking_start, booking_end):
            outranks = priority_rank(incoming_priority) > priority_rank(booking.priority)
            return ConflictCheck(booking=booking, incoming_outranks=outranks)
    return NO_CONFLICT


def index_bookings_by_room(
    bookings: Sequence[Booking],
) -> Mapping[int, tuple[Booking, ...]]:
    """Group active bookings per room into a read-only mapping."""
    grouped: dict[int, list[Booking]] = {}
    for booking in bookings:
        if not booking.is_active:
            continue
        grouped.setdefault(booking.room_id, []).append(booking)
    return MappingProxyType({room_id: tuple(items) for room_id, items in grouped.items()})
