"""Domain-level tunables and validation rules for scheduling and booking."""

from __future__ import annotations

from dataclasses import dataclass

from meeting_scheduler.domain.models import BookingStatus
from meeting_scheduler.utils.config import Settings


@dataclass(frozen=True)
class SchedulingConfig:
    buffer_minutes: int = 15
    search_step_minutes: int = 5
    max_search_horizon_minutes: int = 120
    alternatives_limit: int = 5
    alternatives_scan_limit: int = 30
    top_scores_limit: int = 5


@dataclass(frozen=True)
class ScoringWeights:
    wasted_capacity: float = 2.0
    cost_per_minute: float = 10.0
    shift: float = 1.5
    ceo_bonus: float = -100.0
    urgent_bonus: float = -60.0
    high_bonus: float = -25.0


ALLOWED_STATUS_TRANSITIONS: dict[str, frozenset[str]] = {
    BookingStatus.TENTATIVE: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.RELEASED}
    ),
    BookingStatus.CONFIRMED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.RELEASED: frozenset(),
}


def scheduling_config_from_settings(settings: Settings) -> SchedulingConfig:
    return SchedulingConfig(
        buffer_minutes=settings.scheduling_buffer_minutes,
        search_step_minutes=settings.scheduling_search_step_minutes,
        max_search_horizon_minutes=settings.scheduling_max_search_horizon_minutes,
        alternatives_limit=settings.scheduling_alternatives_limit,
        alternatives_scan_limit=settings.scheduling_alternatives_scan_limit,
        top_scores_limit=settings.scheduling_top_scores_limit,
    )


def scoring_weights_from_settings(settings: Settings) -> ScoringWeights:
    return ScoringWeights(
        wasted_capacity=settings.scoring_wasted_capacity_weight,
        cost_per_minute=settings.scoring_cost_per_minute_weight,
        shift=settings.scoring_shift_weight,
        ceo_bonus=settings.scoring_ceo_bonus,
        urgent_bonus=settings.scoring_urgent_bonus,
        high_bonus=settings.scoring_high_bonus,
    )


def validate_scheduling_config(config: SchedulingConfig) -> None:
    if config.buffer_minutes < 0:
        raise ValueError("buffer_minutes must be >= 0")
    if config.search_step_minutes <= 0:
        raise ValueError("search_step_minutes must be > 0")
    if config.max_search_horizon_minutes < 0:
        raise ValueError("max_search_horizon_minutes must be >= 0")
    if config.alternatives_limit < 0:
        raise ValueError("alternatives_limit must be >= 0")
    if config.alternatives_scan_limit <= 0:
        raise ValueError("alternatives_scan_limit must be > 0")
    if config.top_scores_limit < 0:
        raise ValueError("top_scores_limit must be >= 0")


def validate_scoring_weights(weights: ScoringWeights) -> None:
    if weights.wasted_capacity < 0:
        raise ValueError("wasted_capacity weight must be >= 0")
    if weights.cost_per_minute < 0:
        raise ValueError("cost_per_minute weight must be >= 0")
    if weights.shift < 0:
        raise ValueError("shift weight must be >= 0")
    if weights.ceo_bonus > 0 or weights.urgent_bonus > 0 or weights.high_bonus > 0:
        raise ValueError("priority bonuses must be <= 0")


def is_status_transition_allowed(current: str, target: str) -> bool:
    return target in ALLOWED_STATUS_TRANSITIONS.get(current, frozenset())
