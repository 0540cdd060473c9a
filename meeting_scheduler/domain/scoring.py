"""Scalar desirability score for a feasible (room, start time) pair.

Lower is better. The total blends three quantities with independent
weights plus a discrete priority nudge:

    wasted * w_wasted + cost_per_minute * w_cost + shift * w_shift + bonus
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from meeting_scheduler.domain.constraints import ScoringWeights
from meeting_scheduler.domain.models import MeetingRequest, Priority, Room


@dataclass(frozen=True)
class ScoreBreakdown:
    wasted_capacity: int
    cost_per_minute: float
    shift_minutes: float
    priority_bonus: float
    total: float


def wasted_capacity(room: Room, attendee_count: int) -> int:
    return room.capacity - attendee_count


def shift_minutes(candidate_start: datetime, preferred_start: datetime) -> float:
    return abs((candidate_start - preferred_start).total_seconds()) / 60


def priority_bonus(request: MeetingRequest, weights: ScoringWeights) -> float:
    bonus = weights.ceo_bonus if request.is_ceo else 0.0
    if request.priority == Priority.URGENT:
        bonus += weights.urgent_bonus
    elif request.priority == Priority.HIGH:
        bonus += weights.high_bonus
    return bonus


def combine_score(
    wasted: int,
    cost_per_minute: float,
    shift: float,
    bonus: float,
    weights: ScoringWeights,
) -> float:
    return (
        wasted * weights.wasted_capacity
        + cost_per_minute * weights.cost_per_minute
        + shift * weights.shift
        + bonus
    )


def score_candidate(
    room: Room,
    candidate_start: datetime,
    request: MeetingRequest,
    weights: ScoringWeights,
) -> ScoreBreakdown:
    wasted = wasted_capacity(room, request.attendee_count)
    cost = room.cost_per_minute
    shift = shift_minutes(candidate_start, request.preferred_start)
    bonus = priority_bonus(request, weights)
    return ScoreBreakdown(
        wasted_capacity=wasted,
        cost_per_minute=cost,
        shift_minutes=shift,
        priority_bonus=bonus,
        total=combine_score(wasted, cost, shift, bonus, weights),
    )
