"""Transactional booking commit with per-room serialization."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from threading import Lock, RLock
from typing import Iterator, Optional

from meeting_scheduler.domain.conflicts import find_conflict
from meeting_scheduler.domain.constraints import is_status_transition_allowed
from meeting_scheduler.domain.models import Booking, BookingStatus, Priority
from meeting_scheduler.repository.data_repository import DataRepository
from meeting_scheduler.services.scheduling_service import (
    SchedulingValidationError,
    parse_instant,
)
from meeting_scheduler.utils.config import Settings, get_settings
from meeting_scheduler.utils.logger import get_logger


logger = get_logger(__name__)


class BookingError(Exception):
    """Base exception for declined commits and lifecycle changes."""

    kind = "booking_error"
    retryable = False


class BookingValidationError(BookingError):
    """Raised when a commit command is malformed."""

    kind = "invalid_input"


class RoomNotFoundError(BookingError):
    """Raised when the target room is absent from the current inventory."""

    kind = "room_not_found"


class CapacityExceededError(BookingError):
    """Raised when the room can no longer seat the attendees."""

    kind = "capacity_exceeded"


class MissingEquipmentError(BookingError):
    """Raised when the room lacks required equipment."""

    kind = "missing_equipment"

    def __init__(self, message: str, missing: frozenset[str] = frozenset()) -> None:
        super().__init__(message)
        self.missing = missing


class BufferConflictError(BookingError):
    """Raised when the buffered window overlaps an active booking."""

    kind = "buffer_conflict"

    def __init__(
        self,
        message: str,
        conflicting_booking_id: Optional[int] = None,
        preemptable: bool = False,
    ) -> None:
        super().__init__(message)
        self.conflicting_booking_id = conflicting_booking_id
        self.preemptable = preemptable


class ConcurrencyConflictError(BookingError):
    """Raised when a concurrent commit won the race; safe to retry."""

    kind = "concurrency_conflict"
    retryable = True


class BookingNotFoundError(BookingError):
    """Raised when a booking id does not exist."""

    kind = "booking_not_found"


class InvalidStatusTransitionError(BookingError):
    """Raised when a lifecycle change is not permitted from the current status."""

    kind = "invalid_status_transition"


@dataclass(frozen=True)
class BookingCommand:
    room_id: int
    start_time: datetime
    duration_minutes: int
    organizer_id: str
    attendees: tuple[str, ...] = ()
    required_equipment: frozenset[str] = frozenset()
    priority: str = Priority.NORMAL

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration_minutes)

    @property
    def attendee_count(self) -> int:
        return max(len(self.attendees), 1)


def _validate_command(command: BookingCommand) -> BookingCommand:
    if isinstance(command.room_id, bool) or not isinstance(command.room_id, int) or command.room_id <= 0:
        raise BookingValidationError("room_id must be a positive integer")
    duration = command.duration_minutes
    if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
        raise BookingValidationError("duration_minutes must be a positive integer")
    if not command.organizer_id or not str(command.organizer_id).strip():
        raise BookingValidationError("organizer_id must be non-empty")
    if command.priority not in Priority.ALL:
        raise BookingValidationError(f"priority must be one of {', '.join(Priority.ALL)}")
    try:
        start_time = parse_instant(command.start_time)
    except SchedulingValidationError as exc:
        raise BookingValidationError(str(exc)) from exc
    return replace(
        command,
        start_time=start_time,
        attendees=tuple(command.attendees),
        required_equipment=frozenset(command.required_equipment),
    )


class RoomLockRegistry:
    """One mutex per known room id, created on first commit to that room."""

    def __init__(self) -> None:
        self._guard = RLock()
        self._locks: dict[int, Lock] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def lock_for(self, room_id: int) -> Lock:
        with self._guard:
            lock = self._locks.get(room_id)
            if lock is None:
                lock = Lock()
                self._locks[room_id] = lock
            return lock

    @contextmanager
    def hold(self, room_id: int, timeout_seconds: float) -> Iterator[None]:
        lock = self.lock_for(room_id)
        if not lock.acquire(timeout=timeout_seconds):
            raise ConcurrencyConflictError(
                f"Room {room_id} is locked by a concurrent commit; retry"
            )
        try:
            yield
        finally:
            lock.release()


class BookingCommitService:
    """Re-validates a chosen slot and persists it as a tentative booking.

    The check-then-insert sequence runs under the room's in-process lock and
    inside a ``BEGIN IMMEDIATE`` SQLite transaction, so among overlapping
    concurrent commits for one room at most one succeeds, whether the
    competitors share this process or not. SQLite admits one writer per
    database file: commits for different rooms never share a room lock but
    still queue on the write lock for up to ``sqlite_timeout_seconds``.
    """

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        room_locks: Optional[RoomLockRegistry] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._room_locks = room_locks if room_locks is not None else RoomLockRegistry()

    @property
    def room_locks(self) -> RoomLockRegistry:
        return self._room_locks

    def commit_booking(self, command: BookingCommand) -> Booking:
        command = _validate_command(command)
        buffer_minutes = self._settings.scheduling_buffer_minutes
        start_time = command.start_time
        end_time = command.end_time

        try:
            # Locks are only created for rooms present in the inventory.
            if self._repository.get_room(command.room_id) is None:
                raise RoomNotFoundError(f"Room {command.room_id} not found")
            with self._room_locks.hold(
                command.room_id,
                self._settings.booking_lock_timeout_seconds,
            ):
                with self._repository.commit_scope() as scope:
                    check = find_conflict(
                        start_time,
                        end_time,
                        scope.list_active_bookings_for_room(command.room_id),
                        buffer_minutes=buffer_minutes,
                        incoming_priority=command.priority,
                    )
                    if check.has_conflict:
                        raise BufferConflictError(
                            "Room not available for requested time (buffer conflict)",
                            conflicting_booking_id=check.booking.booking_id,
                            preemptable=check.incoming_outranks,
                        )

                    room = scope.get_room(command.room_id)
                    if room is None:
                        raise RoomNotFoundError(f"Room {command.room_id} not found")
                    if room.capacity < command.attendee_count:
                        raise CapacityExceededError(
                            f"Room {room.room_id} seats {room.capacity}, "
                            f"{command.attendee_count} attendees requested"
                        )
                    missing = command.required_equipment - room.equipment
                    if missing:
                        raise MissingEquipmentError(
                            "Room missing required equipment: " + ", ".join(sorted(missing)),
                            missing=frozenset(missing),
                        )

                    booking = scope.insert_booking(
                        Booking(
                            room_id=room.room_id,
                            start_time=start_time,
                            end_time=end_time,
                            organizer_id=str(command.organizer_id),
                            attendees=command.attendees,
                            required_equipment=command.required_equipment,
                            priority=command.priority,
                            status=BookingStatus.TENTATIVE,
                            buffer_before_minutes=buffer_minutes,
                            buffer_after_minutes=buffer_minutes,
                        )
                    )
        except sqlite3.OperationalError as exc:
            message = str(exc).lower()
            if "locked" not in message and "busy" not in message:
                raise
            logger.warning(
                "Commit lost database race | room_id=%s | start=%s",
                command.room_id,
                start_time.isoformat(),
            )
            raise ConcurrencyConflictError(
                f"Room {command.room_id} is being booked concurrently; retry"
            ) from exc
        except BookingError as exc:
            logger.warning(
                "Commit declined | kind=%s | room_id=%s | start=%s | reason=%s",
                exc.kind,
                command.room_id,
                start_time.isoformat(),
                exc,
            )
            raise

        logger.info(
            "Tentative booking committed | booking_id=%s | room_id=%s | start=%s | end=%s",
            booking.booking_id,
            booking.room_id,
            booking.start_time.isoformat(),
            booking.end_time.isoformat(),
        )
        return booking

    def transition_status(self, booking_id: int, new_status: str) -> Booking:
        """Move a booking along its lifecycle; terminal states never change."""
        if new_status not in BookingStatus.ALL:
            raise BookingValidationError(
                f"status must be one of {', '.join(BookingStatus.ALL)}"
            )
        booking = self._repository.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        if not is_status_transition_allowed(booking.status, new_status):
            raise InvalidStatusTransitionError(
                f"Cannot move booking {booking_id} from {booking.status} to {new_status}"
            )
        if not self._repository.update_booking_status(booking_id, booking.status, new_status):
            raise ConcurrencyConflictError(
                f"Booking {booking_id} changed status concurrently; retry"
            )
        logger.info(
            "Booking status changed | booking_id=%s | from=%s | to=%s",
            booking_id,
            booking.status,
            new_status,
        )
        return replace(booking, status=new_status)
