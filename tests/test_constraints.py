"""Tests for scheduling configuration validation and lifecycle rules."""

from __future__ import annotations

import pytest

from meeting_scheduler.domain.constraints import (
    SchedulingConfig,
    ScoringWeights,
    is_status_transition_allowed,
    scheduling_config_from_settings,
    scoring_weights_from_settings,
    validate_scheduling_config,
    validate_scoring_weights,
)
from meeting_scheduler.domain.models import BookingStatus
from meeting_scheduler.utils.config import get_settings


def valid_config(**overrides) -> SchedulingConfig:
    """Return a valid baseline SchedulingConfig, optionally overriding fields."""
    defaults = {
        "buffer_minutes": 15,
        "search_step_minutes": 5,
        "max_search_horizon_minutes": 120,
        "alternatives_limit": 5,
        "alternatives_scan_limit": 30,
        "top_scores_limit": 5,
    }
    defaults.update(overrides)
    return SchedulingConfig(**defaults)


# --- Baseline pass ---

def test_valid_config_passes() -> None:
    validate_scheduling_config(valid_config())


def test_default_settings_match_documented_defaults() -> None:
    get_settings.cache_clear()
    settings = get_settings()
    assert scheduling_config_from_settings(settings) == SchedulingConfig()
    assert scoring_weights_from_settings(settings) == ScoringWeights()


# --- buffer_minutes ---

def test_negative_buffer_raises() -> None:
    with pytest.raises(ValueError):
        validate_scheduling_config(valid_config(buffer_minutes=-1))


def test_zero_buffer_passes() -> None:
    validate_scheduling_config(valid_config(buffer_minutes=0))


# --- search_step_minutes ---

def test_zero_search_step_raises() -> None:
    with pytest.raises(ValueError):
        validate_scheduling_config(valid_config(search_step_minutes=0))


# --- horizon and limits ---

def test_negative_horizon_raises() -> None:
    with pytest.raises(ValueError):
        validate_scheduling_config(valid_config(max_search_horizon_minutes=-5))


def test_zero_scan_limit_raises() -> None:
    with pytest.raises(ValueError):
        validate_scheduling_config(valid_config(alternatives_scan_limit=0))


def test_negative_alternatives_limit_raises() -> None:
    with pytest.raises(ValueError):
        validate_scheduling_config(valid_config(alternatives_limit=-1))


# --- scoring weights ---

def test_positive_priority_bonus_raises() -> None:
    with pytest.raises(ValueError):
        validate_scoring_weights(ScoringWeights(urgent_bonus=10.0))


def test_negative_shift_weight_raises() -> None:
    with pytest.raises(ValueError):
        validate_scoring_weights(ScoringWeights(shift=-1.5))


# --- booking lifecycle ---

@pytest.mark.parametrize(
    "target",
    [BookingStatus.CONFIRMED, BookingStatus.CANCELLED, BookingStatus.RELEASED],
)
def test_tentative_can_move_to_any_other_state(target: str) -> None:
    assert is_status_transition_allowed(BookingStatus.TENTATIVE, target)


@pytest.mark.parametrize("terminal", [BookingStatus.CANCELLED, BookingStatus.RELEASED])
def test_terminal_states_never_move(terminal: str) -> None:
    for target in BookingStatus.ALL:
        assert not is_status_transition_allowed(terminal, target)


def test_nothing_returns_to_tentative() -> None:
    for current in BookingStatus.ALL:
        assert not is_status_transition_allowed(current, BookingStatus.TENTATIVE)


@pytest.mark.parametrize("target", BookingStatus.ALL)
def test_confirmed_booking_has_no_further_transition(target: str) -> None:
    assert not is_status_transition_allowed(BookingStatus.CONFIRMED, target)
