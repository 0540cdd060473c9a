#!/usr/bin/env python3
"""Validate local meeting scheduler environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from importlib.metadata import version
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from meeting_scheduler.domain.models import MeetingRequest
from meeting_scheduler.repository.data_repository import DEMO_ROOMS, DataRepository
from meeting_scheduler.services.booking_service import BookingCommand, BookingCommitService
from meeting_scheduler.services.scheduling_service import MeetingSchedulingService
from meeting_scheduler.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="meeting-scheduler-env-")

    # CHECK 1: Python version >= 3.11
    if sys.version_info >= (3, 11):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.11",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable
    package_specs = [
        ("fastapi", "fastapi"),
        ("uvicorn", "uvicorn"),
        ("pydantic", "pydantic"),
        ("httpx", "httpx"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    for module_name, dist_name in package_specs:
        try:
            importlib.import_module(module_name)
            _ = version(dist_name)
        except Exception as exc:  # pragma: no cover - runtime guard
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    try:
        validation_settings = replace(
            get_settings(),
            database_path=Path(temp_dir) / "validation.db",
        )
        repository = DataRepository(validation_settings)

        # CHECK 3: Database initialization
        try:
            repository.initialize_database()
            ok, line = _print_result("Database initialization", True)
        except Exception as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4: Demo room seeding
        try:
            seeded = repository.seed_demo_rooms_if_empty()
            if seeded != len(DEMO_ROOMS):
                raise RuntimeError(f"expected {len(DEMO_ROOMS)} rooms, got {seeded}")
            ok, line = _print_result("Demo rooms", True, f": {seeded} rooms")
        except Exception as exc:
            ok, line = _print_result("Demo rooms", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5: Recommendation smoke run
        preferred = datetime.now(timezone.utc).replace(
            minute=0, second=0, microsecond=0
        ) + timedelta(days=1)
        suggestion = None
        try:
            recommendation = MeetingSchedulingService(
                repository=repository,
                settings=validation_settings,
            ).find_optimal_meeting(
                MeetingRequest(
                    organizer="validator",
                    attendees=("a", "b", "c"),
                    duration_minutes=60,
                    preferred_start=preferred,
                    required_equipment=frozenset({"projector"}),
                    flexibility_minutes=30,
                )
            )
            if not recommendation.has_recommendation:
                raise RuntimeError("no recommendation for an empty calendar")
            suggestion = recommendation
            ok, line = _print_result(
                "Recommendation",
                True,
                f": room={recommendation.recommended_room.name} "
                f"saving={recommendation.cost_optimization:.2f}",
            )
        except Exception as exc:
            ok, line = _print_result("Recommendation", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 6: Booking commit
        try:
            if suggestion is None:
                raise RuntimeError("skipped: no recommendation available")
            booking = BookingCommitService(
                repository=repository,
                settings=validation_settings,
            ).commit_booking(
                BookingCommand(
                    room_id=suggestion.recommended_room.room_id,
                    start_time=suggestion.suggested_time,
                    duration_minutes=60,
                    organizer_id="validator",
                    attendees=("a", "b", "c"),
                    required_equipment=frozenset({"projector"}),
                )
            )
            ok, line = _print_result("Booking commit", True, f": id={booking.booking_id}")
        except Exception as exc:
            ok, line = _print_result("Booking commit", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Meeting Scheduler Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
