"""Meeting room recommendation engine and its repository-backed service."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence

from meeting_scheduler.domain.conflicts import find_conflict, index_bookings_by_room
from meeting_scheduler.domain.constraints import (
    SchedulingConfig,
    ScoringWeights,
    scheduling_config_from_settings,
    scoring_weights_from_settings,
    validate_scheduling_config,
    validate_scoring_weights,
)
from meeting_scheduler.domain.models import (
    AlternativeOption,
    Booking,
    Candidate,
    MeetingRequest,
    OrganizerRole,
    Priority,
    Recommendation,
    Room,
    SchedulingDiagnostics,
    ScoredEntry,
)
from meeting_scheduler.domain.scoring import score_candidate
from meeting_scheduler.repository.data_repository import DataRepository
from meeting_scheduler.utils.config import Settings, get_settings
from meeting_scheduler.utils.logger import get_logger


logger = get_logger(__name__)


class SchedulingValidationError(Exception):
    """Raised when a scheduling request or its inputs are invalid."""


@dataclass(frozen=True)
class _Evaluation:
    ranked: list[Candidate]
    candidate_times: int
    eligible_rooms: int
    conflict_rejections: int
    preemptable_conflicts: int


def parse_instant(value: datetime | str) -> datetime:
    """Return a timezone-aware UTC instant from a datetime or ISO-8601 string."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError as exc:
            raise SchedulingValidationError(f"Unparseable instant: {value!r}") from exc
    if not isinstance(value, datetime):
        raise SchedulingValidationError("Instant must be a datetime or ISO-8601 string")
    if value.tzinfo is None or value.utcoffset() is None:
        raise SchedulingValidationError("Instant must be timezone-aware")
    return value.astimezone(timezone.utc)


def normalize_request(request: MeetingRequest) -> MeetingRequest:
    """Validate a request and return a canonical copy (UTC, clamped flexibility)."""
    duration = request.duration_minutes
    if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
        raise SchedulingValidationError("duration_minutes must be a positive integer")
    if request.priority not in Priority.ALL:
        raise SchedulingValidationError(
            f"priority must be one of {', '.join(Priority.ALL)}"
        )
    if request.organizer_role is not None and request.organizer_role not in OrganizerRole.ALL:
        raise SchedulingValidationError(
            f"organizer_role must be one of {', '.join(OrganizerRole.ALL)}"
        )
    return replace(
        request,
        attendees=tuple(request.attendees),
        required_equipment=frozenset(request.required_equipment),
        preferred_start=parse_instant(request.preferred_start),
        flexibility_minutes=max(0, int(request.flexibility_minutes or 0)),
    )


def generate_candidate_times(
    preferred: datetime,
    flexibility_minutes: int,
    config: SchedulingConfig,
) -> list[datetime]:
    """Enumerate start instants: the flexibility window first, then outward.

    Inside the window offsets run ascending from ``-flexibility``. Beyond it,
    each step yields the later instant immediately followed by the earlier one.
    """
    flexibility = max(0, flexibility_minutes)
    step = config.search_step_minutes
    candidates = [
        preferred + timedelta(minutes=offset)
        for offset in range(-flexibility, flexibility + 1, step)
    ]
    furthest = flexibility + config.max_search_horizon_minutes
    for offset in range(flexibility + step, furthest + 1, step):
        candidates.append(preferred + timedelta(minutes=offset))
        candidates.append(preferred - timedelta(minutes=offset))
    return candidates


def room_satisfies_requirements(
    room: Room,
    attendee_count: int,
    required_equipment: Iterable[str],
) -> bool:
    if room.capacity < attendee_count:
        return False
    return set(required_equipment).issubset(room.equipment)


def filter_rooms(rooms: Sequence[Room], request: MeetingRequest) -> list[Room]:
    return [
        room
        for room in rooms
        if room_satisfies_requirements(room, request.attendee_count, request.required_equipment)
    ]


def select_alternatives(
    ranked: Sequence[Candidate],
    *,
    limit: int,
    scan_limit: int,
) -> tuple[AlternativeOption, ...]:
    """Pick up to ``limit`` distinct runner-ups from the head of the ranking."""
    if not ranked:
        return ()
    best = ranked[0]
    best_key = (best.room.room_id, best.start_time)
    seen: set[tuple[int, datetime]] = set()
    alternatives: list[AlternativeOption] = []
    for candidate in ranked[:scan_limit]:
        if len(alternatives) >= limit:
            break
        key = (candidate.room.room_id, candidate.start_time)
        if key == best_key or key in seen:
            continue
        seen.add(key)
        alternatives.append(
            AlternativeOption(
                room=candidate.room,
                start_time=candidate.start_time,
                score=candidate.score,
            )
        )
    return tuple(alternatives)


def estimate_cost_optimization(
    rooms: Sequence[Room],
    recommended_room: Optional[Room],
    duration_minutes: int,
) -> float:
    """Saving of the recommended room versus the largest room in the inventory."""
    if recommended_room is None or not rooms:
        return 0.0
    largest = max(rooms, key=lambda room: room.capacity)
    largest_cost = largest.hourly_rate / 60 * duration_minutes
    recommended_cost = recommended_room.hourly_rate / 60 * duration_minutes
    return round(largest_cost - recommended_cost, 2)


def booking_query_window(
    request: MeetingRequest,
    config: SchedulingConfig,
    lookaround_minutes: int,
) -> tuple[datetime, datetime]:
    """Interval of existing bookings the engine needs to see for ``request``.

    Spans every candidate start the generator can emit, widened by the
    candidate's own buffer and by ``lookaround_minutes`` for the buffers
    stored on existing bookings.
    """
    reach = (
        max(0, request.flexibility_minutes)
        + config.max_search_horizon_minutes
        + config.buffer_minutes
        + lookaround_minutes
    )
    return (
        request.preferred_start - timedelta(minutes=reach),
        request.preferred_start + timedelta(minutes=reach + request.duration_minutes),
    )


class SchedulingEngine:
    """Pure recommendation over caller-supplied room and booking snapshots.

    Holds only immutable configuration, so one instance can serve any number
    of concurrent calls.
    """

    def __init__(
        self,
        config: Optional[SchedulingConfig] = None,
        weights: Optional[ScoringWeights] = None,
    ) -> None:
        self._config = config or SchedulingConfig()
        self._weights = weights or ScoringWeights()
        try:
            validate_scheduling_config(self._config)
            validate_scoring_weights(self._weights)
        except ValueError as exc:
            raise SchedulingValidationError(str(exc)) from exc

    @property
    def config(self) -> SchedulingConfig:
        return self._config

    @property
    def weights(self) -> ScoringWeights:
        return self._weights

    def _evaluate(
        self,
        request: MeetingRequest,
        existing_bookings: Sequence[Booking],
        rooms: Sequence[Room],
    ) -> _Evaluation:
        if not rooms:
            raise SchedulingValidationError("Room inventory must not be empty")

        candidate_times = generate_candidate_times(
            request.preferred_start,
            request.flexibility_minutes,
            self._config,
        )
        eligible_rooms = filter_rooms(rooms, request)
        bookings_by_room = index_bookings_by_room(existing_bookings)

        scored: list[Candidate] = []
        conflict_rejections = 0
        preemptable_conflicts = 0
        for start in candidate_times:
            end = start + request.duration
            for room in eligible_rooms:
                check = find_conflict(
                    start,
                    end,
                    bookings_by_room.get(room.room_id, ()),
                    buffer_minutes=self._config.buffer_minutes,
                    incoming_priority=request.priority,
                )
                if check.has_conflict:
                    conflict_rejections += 1
                    if check.incoming_outranks:
                        preemptable_conflicts += 1
                    continue

                breakdown = score_candidate(room, start, request, self._weights)
                scored.append(
                    Candidate(
                        room=room,
                        start_time=start,
                        score=breakdown.total,
                        shift_minutes=breakdown.shift_minutes,
                        wasted_capacity=breakdown.wasted_capacity,
                        cost_per_minute=breakdown.cost_per_minute,
                        sequence=len(scored),
                    )
                )

        scored.sort(key=lambda candidate: (candidate.score, candidate.sequence))
        return _Evaluation(
            ranked=scored,
            candidate_times=len(candidate_times),
            eligible_rooms=len(eligible_rooms),
            conflict_rejections=conflict_rejections,
            preemptable_conflicts=preemptable_conflicts,
        )

    def rank_candidates(
        self,
        request: MeetingRequest,
        existing_bookings: Sequence[Booking],
        rooms: Sequence[Room],
    ) -> list[Candidate]:
        """Return every feasible candidate, best first."""
        return self._evaluate(normalize_request(request), existing_bookings, rooms).ranked

    def recommend(
        self,
        request: MeetingRequest,
        existing_bookings: Sequence[Booking],
        rooms: Sequence[Room],
    ) -> Recommendation:
        request = normalize_request(request)
        evaluation = self._evaluate(request, existing_bookings, rooms)
        ranked = evaluation.ranked
        best = ranked[0] if ranked else None
        recommended_room = best.room if best is not None else None

        diagnostics = SchedulingDiagnostics(
            scored_count=len(ranked),
            top_scores=tuple(
                ScoredEntry(
                    room_id=candidate.room.room_id,
                    score=candidate.score,
                    start_time=candidate.start_time,
                )
                for candidate in ranked[: self._config.top_scores_limit]
            ),
            candidate_times=evaluation.candidate_times,
            eligible_rooms=evaluation.eligible_rooms,
            conflict_rejections=evaluation.conflict_rejections,
            preemptable_conflicts=evaluation.preemptable_conflicts,
        )
        logger.debug(
            "Scheduling evaluated | candidate_times=%s | eligible_rooms=%s | scored=%s",
            evaluation.candidate_times,
            evaluation.eligible_rooms,
            len(ranked),
        )
        return Recommendation(
            recommended_room=recommended_room,
            suggested_time=best.start_time if best is not None else None,
            alternatives=select_alternatives(
                ranked,
                limit=self._config.alternatives_limit,
                scan_limit=self._config.alternatives_scan_limit,
            ),
            cost_optimization=estimate_cost_optimization(
                rooms,
                recommended_room,
                request.duration_minutes,
            ),
            diagnostics=diagnostics,
        )


class MeetingSchedulingService:
    """Loads fresh room and booking snapshots and runs the engine on them."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        engine: Optional[SchedulingEngine] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._engine = engine or SchedulingEngine(
            config=scheduling_config_from_settings(self._settings),
            weights=scoring_weights_from_settings(self._settings),
        )

    @property
    def engine(self) -> SchedulingEngine:
        return self._engine

    def find_optimal_meeting(self, request: MeetingRequest) -> Recommendation:
        request = normalize_request(request)
        rooms = self._repository.list_rooms()
        window_start, window_end = booking_query_window(
            request,
            self._engine.config,
            self._settings.scheduling_booking_lookaround_minutes,
        )
        bookings = self._repository.list_active_bookings_in_window(
            window_start=window_start,
            window_end=window_end,
        )
        recommendation = self._engine.recommend(request, bookings, rooms)

        if recommendation.has_recommendation:
            logger.info(
                (
                    "Recommendation computed | organizer=%s | room_id=%s | start=%s | "
                    "feasible=%s | cost_optimization=%.2f"
                ),
                request.organizer,
                recommendation.recommended_room.room_id,
                recommendation.suggested_time.isoformat(),
                recommendation.diagnostics.scored_count,
                recommendation.cost_optimization,
            )
        else:
            logger.info(
                "No feasible candidate | organizer=%s | rooms=%s | bookings=%s",
                request.organizer,
                len(rooms),
                len(bookings),
            )
        return recommendation
