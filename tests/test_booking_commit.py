from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from meeting_scheduler.domain.models import BookingStatus, MeetingRequest, Priority
from meeting_scheduler.repository.data_repository import DataRepository
from meeting_scheduler.services.booking_service import (
    BookingCommand,
    BookingCommitService,
    BookingNotFoundError,
    BookingValidationError,
    BufferConflictError,
    CapacityExceededError,
    ConcurrencyConflictError,
    InvalidStatusTransitionError,
    MissingEquipmentError,
    RoomNotFoundError,
)
from meeting_scheduler.services.scheduling_service import MeetingSchedulingService
from meeting_scheduler.utils.config import get_settings


PREFERRED = datetime(2025, 11, 2, 16, 0, tzinfo=timezone.utc)


def _build_test_settings(tmp_path, filename: str, **overrides):
    base = get_settings()
    return replace(
        base,
        database_path=tmp_path / filename,
        seed_demo_rooms=False,
        **overrides,
    )


def _build_repository(settings) -> DataRepository:
    repository = DataRepository(settings)
    repository.initialize_database()
    return repository


def _command(room_id: int, start: datetime = PREFERRED, **overrides) -> BookingCommand:
    values = {
        "room_id": room_id,
        "start_time": start,
        "duration_minutes": 60,
        "organizer_id": "alice",
        "attendees": ("alice", "bob", "carol"),
        "required_equipment": frozenset({"projector"}),
        "priority": Priority.NORMAL,
    }
    values.update(overrides)
    return BookingCommand(**values)


def test_commit_persists_tentative_booking_with_default_buffers(tmp_path):
    settings = _build_test_settings(tmp_path, "commit_success.db")
    repository = _build_repository(settings)
    room = repository.create_room(4, ["projector"], 20.0, name="Room A")
    service = BookingCommitService(repository=repository, settings=settings)

    booking = service.commit_booking(_command(room.room_id))

    assert booking.booking_id is not None
    assert booking.status == BookingStatus.TENTATIVE
    assert booking.buffer_before_minutes == 15
    assert booking.buffer_after_minutes == 15
    assert booking.end_time == PREFERRED + timedelta(minutes=60)
    assert repository.get_booking(booking.booking_id) == booking


def test_overlapping_buffered_window_is_declined(tmp_path):
    settings = _build_test_settings(tmp_path, "commit_conflict.db")
    repository = _build_repository(settings)
    room = repository.create_room(4, ["projector"], 20.0)
    service = BookingCommitService(repository=repository, settings=settings)
    first = service.commit_booking(_command(room.room_id))

    with pytest.raises(BufferConflictError) as excinfo:
        service.commit_booking(_command(room.room_id, PREFERRED + timedelta(minutes=70)))

    assert excinfo.value.conflicting_booking_id == first.booking_id
    assert excinfo.value.kind == "buffer_conflict"
    assert excinfo.value.retryable is False
    assert repository.count_bookings(room.room_id) == 1


def test_start_clear_of_both_buffers_is_accepted(tmp_path):
    settings = _build_test_settings(tmp_path, "commit_adjacent.db")
    repository = _build_repository(settings)
    room = repository.create_room(4, ["projector"], 20.0)
    service = BookingCommitService(repository=repository, settings=settings)
    service.commit_booking(_command(room.room_id))

    service.commit_booking(_command(room.room_id, PREFERRED + timedelta(minutes=90)))

    assert repository.count_bookings(room.room_id) == 2


def test_cancelled_booking_frees_the_slot(tmp_path):
    settings = _build_test_settings(tmp_path, "commit_cancelled.db")
    repository = _build_repository(settings)
    room = repository.create_room(4, ["projector"], 20.0)
    service = BookingCommitService(repository=repository, settings=settings)
    first = service.commit_booking(_command(room.room_id))
    service.transition_status(first.booking_id, BookingStatus.CANCELLED)

    second = service.commit_booking(_command(room.room_id))

    assert second.booking_id != first.booking_id


def test_unknown_room_is_reported_and_nothing_is_written(tmp_path):
    settings = _build_test_settings(tmp_path, "commit_missing_room.db")
    repository = _build_repository(settings)
    service = BookingCommitService(repository=repository, settings=settings)

    for room_id in (404, 405, 406):
        with pytest.raises(RoomNotFoundError):
            service.commit_booking(_command(room_id))

    assert repository.count_bookings() == 0
    assert len(service.room_locks) == 0

    room = repository.create_room(4, ["projector"], 20.0)
    service.commit_booking(_command(room.room_id))
    assert len(service.room_locks) == 1


def test_capacity_is_revalidated_against_current_room_record(tmp_path):
    settings = _build_test_settings(tmp_path, "commit_capacity.db")
    repository = _build_repository(settings)
    room = repository.create_room(4, ["projector"], 20.0)
    repository.update_room(room.room_id, capacity=2)
    service = BookingCommitService(repository=repository, settings=settings)

    with pytest.raises(CapacityExceededError):
        service.commit_booking(_command(room.room_id))

    assert repository.count_bookings() == 0


def test_missing_equipment_lists_what_is_absent(tmp_path):
    settings = _build_test_settings(tmp_path, "commit_equipment.db")
    repository = _build_repository(settings)
    room = repository.create_room(10, ["projector"], 35.0)
    service = BookingCommitService(repository=repository, settings=settings)

    with pytest.raises(MissingEquipmentError) as excinfo:
        service.commit_booking(
            _command(room.room_id, required_equipment=frozenset({"projector", "video-conf"}))
        )

    assert excinfo.value.missing == frozenset({"video-conf"})
    assert repository.count_bookings() == 0


@pytest.mark.parametrize(
    "overrides",
    [
        {"duration_minutes": 0},
        {"start_time": datetime(2025, 11, 2, 16, 0)},
        {"organizer_id": ""},
        {"priority": "critical"},
    ],
)
def test_malformed_command_is_rejected(tmp_path, overrides):
    settings = _build_test_settings(tmp_path, "commit_invalid.db")
    repository = _build_repository(settings)
    room = repository.create_room(4, ["projector"], 20.0)
    service = BookingCommitService(repository=repository, settings=settings)

    with pytest.raises(BookingValidationError):
        service.commit_booking(_command(room.room_id, **overrides))


def _race(services, command, attempts: int):
    barrier = threading.Barrier(attempts)
    successes = []
    failures = []
    results_lock = threading.Lock()

    def attempt(index: int) -> None:
        service = services[index % len(services)]
        barrier.wait()
        try:
            booking = service.commit_booking(command)
        except (BufferConflictError, ConcurrencyConflictError) as exc:
            with results_lock:
                failures.append(exc)
        else:
            with results_lock:
                successes.append(booking)

    threads = [threading.Thread(target=attempt, args=(index,)) for index in range(attempts)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return successes, failures


def test_concurrent_commits_for_same_room_admit_exactly_one(tmp_path):
    settings = _build_test_settings(tmp_path, "commit_race.db")
    repository = _build_repository(settings)
    room = repository.create_room(4, ["projector"], 20.0)
    service = BookingCommitService(repository=repository, settings=settings)

    successes, failures = _race([service], _command(room.room_id), attempts=8)

    assert len(successes) == 1
    assert len(failures) == 7
    assert repository.count_bookings(room.room_id) == 1


def test_independent_service_instances_still_admit_exactly_one(tmp_path):
    settings = _build_test_settings(tmp_path, "commit_race_processes.db")
    repository = _build_repository(settings)
    room = repository.create_room(4, ["projector"], 20.0)
    services = [
        BookingCommitService(repository=DataRepository(settings), settings=settings)
        for _ in range(4)
    ]

    successes, failures = _race(services, _command(room.room_id), attempts=4)

    assert len(successes) == 1
    assert len(failures) == 3
    assert repository.count_bookings(room.room_id) == 1


def test_held_room_lock_fails_fast_as_retryable(tmp_path):
    settings = _build_test_settings(
        tmp_path,
        "commit_lock_timeout.db",
        booking_lock_timeout_seconds=0.05,
    )
    repository = _build_repository(settings)
    busy_room = repository.create_room(4, ["projector"], 20.0)
    other_room = repository.create_room(4, ["projector"], 20.0)
    service = BookingCommitService(repository=repository, settings=settings)

    lock = service.room_locks.lock_for(busy_room.room_id)
    lock.acquire()
    try:
        with pytest.raises(ConcurrencyConflictError) as excinfo:
            service.commit_booking(_command(busy_room.room_id))
        other = service.commit_booking(_command(other_room.room_id))
    finally:
        lock.release()

    assert excinfo.value.retryable is True
    assert other.room_id == other_room.room_id
    assert repository.count_bookings(busy_room.room_id) == 0


def test_status_lifecycle(tmp_path):
    settings = _build_test_settings(tmp_path, "commit_lifecycle.db")
    repository = _build_repository(settings)
    room = repository.create_room(4, ["projector"], 20.0)
    service = BookingCommitService(repository=repository, settings=settings)
    booking = service.commit_booking(_command(room.room_id))

    confirmed = service.transition_status(booking.booking_id, BookingStatus.CONFIRMED)
    assert confirmed.status == BookingStatus.CONFIRMED
    assert repository.get_booking(booking.booking_id).status == BookingStatus.CONFIRMED

    for target in (BookingStatus.TENTATIVE, BookingStatus.CANCELLED, BookingStatus.RELEASED):
        with pytest.raises(InvalidStatusTransitionError):
            service.transition_status(booking.booking_id, target)
    assert repository.get_booking(booking.booking_id).status == BookingStatus.CONFIRMED

    released = service.commit_booking(
        _command(room.room_id, PREFERRED + timedelta(hours=3))
    )
    service.transition_status(released.booking_id, BookingStatus.RELEASED)
    with pytest.raises(InvalidStatusTransitionError):
        service.transition_status(released.booking_id, BookingStatus.CONFIRMED)

    with pytest.raises(BookingValidationError):
        service.transition_status(booking.booking_id, "archived")
    with pytest.raises(BookingNotFoundError):
        service.transition_status(9999, BookingStatus.CONFIRMED)


def test_recommend_then_commit_then_recommend_again(tmp_path):
    settings = _build_test_settings(tmp_path, "commit_roundtrip.db")
    repository = _build_repository(settings)
    room_a = repository.create_room(4, ["projector"], 20.0, name="Room A")
    repository.create_room(10, ["projector", "video-conf"], 35.0, name="Room C")
    scheduling = MeetingSchedulingService(repository=repository, settings=settings)
    booking_service = BookingCommitService(repository=repository, settings=settings)
    request = MeetingRequest(
        organizer="alice",
        attendees=("alice", "bob", "carol"),
        duration_minutes=60,
        preferred_start=PREFERRED,
        required_equipment=frozenset({"projector"}),
        flexibility_minutes=30,
    )

    first = scheduling.find_optimal_meeting(request)
    assert (first.recommended_room, first.suggested_time) == (room_a, PREFERRED)
    assert first.cost_optimization == 15.0

    booking_service.commit_booking(
        _command(first.recommended_room.room_id, first.suggested_time)
    )
    second = scheduling.find_optimal_meeting(request)

    assert (second.recommended_room.room_id, second.suggested_time) != (
        room_a.room_id,
        PREFERRED,
    )
    assert second.recommended_room.name == "Room C"
    assert second.suggested_time == PREFERRED


def test_expansion_slot_accounts_for_bookings_far_from_preferred_time(tmp_path):
    settings = _build_test_settings(tmp_path, "commit_far_booking.db")
    repository = _build_repository(settings)
    room_a = repository.create_room(4, ["projector"], 20.0, name="Room A")
    scheduling = MeetingSchedulingService(repository=repository, settings=settings)
    booking_service = BookingCommitService(repository=repository, settings=settings)
    booking_service.commit_booking(
        _command(room_a.room_id, PREFERRED - timedelta(minutes=30), duration_minutes=90)
    )
    # Blocks 17:30 through its leading buffer; starts two hours after the preferred time.
    booking_service.commit_booking(
        _command(room_a.room_id, PREFERRED + timedelta(minutes=125))
    )
    request = MeetingRequest(
        organizer="alice",
        attendees=("alice", "bob", "carol"),
        duration_minutes=60,
        preferred_start=PREFERRED,
        required_equipment=frozenset({"projector"}),
        flexibility_minutes=0,
    )

    recommendation = scheduling.find_optimal_meeting(request)

    assert recommendation.recommended_room == room_a
    assert recommendation.suggested_time == PREFERRED - timedelta(minutes=120)
    assert all(
        option.start_time != PREFERRED + timedelta(minutes=90)
        for option in recommendation.alternatives
    )
    booking = booking_service.commit_booking(
        _command(room_a.room_id, recommendation.suggested_time)
    )
    assert booking.booking_id is not None
    assert repository.count_bookings(room_a.room_id) == 3
