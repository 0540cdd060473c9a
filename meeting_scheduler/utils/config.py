"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    database_path: Path
    sqlite_timeout_seconds: float
    seed_demo_rooms: bool

    scheduling_buffer_minutes: int
    scheduling_search_step_minutes: int
    scheduling_max_search_horizon_minutes: int
    scheduling_alternatives_limit: int
    scheduling_alternatives_scan_limit: int
    scheduling_top_scores_limit: int
    scheduling_booking_lookaround_minutes: int

    scoring_wasted_capacity_weight: float
    scoring_cost_per_minute_weight: float
    scoring_shift_weight: float
    scoring_ceo_bonus: float
    scoring_urgent_bonus: float
    scoring_high_bonus: float

    booking_lock_timeout_seconds: float


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; call ``cache_clear`` to reload."""
    return Settings(
        app_name=_env_str("APP_NAME", "Smart Meeting Room Scheduler"),
        app_version=_env_str("APP_VERSION", "1.0.0"),
        log_level=_env_str("LOG_LEVEL", "INFO"),
        database_path=Path(_env_str("DATABASE_PATH", "data/meeting_scheduler.db")),
        sqlite_timeout_seconds=_env_float("SQLITE_TIMEOUT_SECONDS", 5.0),
        seed_demo_rooms=_env_bool("SEED_DEMO_ROOMS", True),
        scheduling_buffer_minutes=_env_int("SCHEDULING_BUFFER_MINUTES", 15),
        scheduling_search_step_minutes=_env_int("SCHEDULING_SEARCH_STEP_MINUTES", 5),
        scheduling_max_search_horizon_minutes=_env_int(
            "SCHEDULING_MAX_SEARCH_HORIZON_MINUTES", 120
        ),
        scheduling_alternatives_limit=_env_int("SCHEDULING_ALTERNATIVES_LIMIT", 5),
        scheduling_alternatives_scan_limit=_env_int(
            "SCHEDULING_ALTERNATIVES_SCAN_LIMIT", 30
        ),
        scheduling_top_scores_limit=_env_int("SCHEDULING_TOP_SCORES_LIMIT", 5),
        scheduling_booking_lookaround_minutes=_env_int(
            "SCHEDULING_BOOKING_LOOKAROUND_MINUTES", 60
        ),
        scoring_wasted_capacity_weight=_env_float("SCORING_WASTED_CAPACITY_WEIGHT", 2.0),
        scoring_cost_per_minute_weight=_env_float("SCORING_COST_PER_MINUTE_WEIGHT", 10.0),
        scoring_shift_weight=_env_float("SCORING_SHIFT_WEIGHT", 1.5),
        scoring_ceo_bonus=_env_float("SCORING_CEO_BONUS", -100.0),
        scoring_urgent_bonus=_env_float("SCORING_URGENT_BONUS", -60.0),
        scoring_high_bonus=_env_float("SCORING_HIGH_BONUS", -25.0),
        booking_lock_timeout_seconds=_env_float("BOOKING_LOCK_TIMEOUT_SECONDS", 5.0),
    )
