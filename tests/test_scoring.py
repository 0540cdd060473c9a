from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from meeting_scheduler.domain.constraints import ScoringWeights
from meeting_scheduler.domain.models import MeetingRequest, OrganizerRole, Priority, Room
from meeting_scheduler.domain.scoring import (
    combine_score,
    priority_bonus,
    score_candidate,
    shift_minutes,
    wasted_capacity,
)


PREFERRED = datetime(2025, 11, 2, 16, 0, tzinfo=timezone.utc)
ROOM_A = Room(room_id=1, capacity=4, equipment=frozenset({"projector"}), hourly_rate=20.0)


def _request(**overrides) -> MeetingRequest:
    values = {
        "organizer": "alice",
        "attendees": ("alice", "bob", "carol"),
        "duration_minutes": 60,
        "preferred_start": PREFERRED,
        "required_equipment": frozenset({"projector"}),
        "flexibility_minutes": 30,
        "priority": Priority.NORMAL,
    }
    values.update(overrides)
    return MeetingRequest(**values)


def test_sub_terms():
    assert wasted_capacity(ROOM_A, 3) == 1
    assert shift_minutes(PREFERRED - timedelta(minutes=45), PREFERRED) == 45.0
    assert ROOM_A.cost_per_minute == pytest.approx(20.0 / 60)


def test_score_at_preferred_time():
    breakdown = score_candidate(ROOM_A, PREFERRED, _request(), ScoringWeights())

    assert breakdown.wasted_capacity == 1
    assert breakdown.shift_minutes == 0.0
    assert breakdown.priority_bonus == 0.0
    assert breakdown.total == pytest.approx(1 * 2 + (20.0 / 60) * 10)


def test_shift_penalty_is_linear():
    weights = ScoringWeights()
    base = score_candidate(ROOM_A, PREFERRED, _request(), weights).total
    shifted = score_candidate(
        ROOM_A, PREFERRED + timedelta(minutes=20), _request(), weights
    ).total

    assert shifted - base == pytest.approx(20 * 1.5)


@pytest.mark.parametrize(
    ("overrides", "expected"),
    [
        ({}, 0.0),
        ({"priority": Priority.LOW}, 0.0),
        ({"priority": Priority.HIGH}, -25.0),
        ({"priority": Priority.URGENT}, -60.0),
        ({"organizer_role": OrganizerRole.CEO}, -100.0),
        ({"organizer_role": OrganizerRole.CEO, "priority": Priority.URGENT}, -160.0),
        ({"organizer_role": OrganizerRole.CEO, "priority": Priority.HIGH}, -125.0),
        ({"organizer": "ceo"}, -100.0),
        ({"organizer": "ceo", "organizer_role": OrganizerRole.EMPLOYEE}, 0.0),
    ],
)
def test_priority_bonus(overrides, expected):
    assert priority_bonus(_request(**overrides), ScoringWeights()) == expected


def test_weights_can_be_changed_without_touching_terms():
    weights = ScoringWeights(wasted_capacity=0.0, cost_per_minute=0.0, shift=1.0)

    assert combine_score(10, 5.0, 30.0, -25.0, weights) == 5.0
