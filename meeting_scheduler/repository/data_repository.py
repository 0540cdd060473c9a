"""Repository layer responsible for all database access."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

from meeting_scheduler.domain.models import Booking, BookingStatus, Room
from meeting_scheduler.utils.config import Settings, get_settings
from meeting_scheduler.utils.logger import get_logger


logger = get_logger(__name__)


DEMO_ROOMS = [
    ("Room A", 4, ["projector"], 20.0, "1F"),
    ("Room B", 6, ["whiteboard"], 25.0, "2F"),
    ("Room C", 10, ["projector", "video-conf"], 35.0, "3F"),
    ("Room D", 8, ["projector", "whiteboard"], 30.0, "3F"),
    ("Room E", 12, ["video-conf", "whiteboard"], 40.0, "4F"),
    ("Room F", 5, ["whiteboard"], 18.0, "1F"),
    ("Room G", 20, ["projector", "video-conf"], 60.0, "5F"),
    ("Room H", 3, ["whiteboard"], 15.0, "2F"),
    ("Room I", 7, ["projector", "whiteboard"], 28.0, "3F"),
    ("Room J", 15, ["video-conf", "projector"], 50.0, "4F"),
]

_INACTIVE_STATUSES = tuple(sorted(BookingStatus.INACTIVE))

_BOOKING_COLUMNS = """
    id,
    room_id,
    start_time,
    end_time,
    organizer_id,
    attendees,
    required_equipment,
    priority,
    status,
    buffer_before,
    buffer_after
"""


def to_storage_instant(value: datetime) -> str:
    """Fixed-width UTC text so SQL string comparison follows time order."""
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_storage_instant(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _row_to_room(row: sqlite3.Row) -> Room:
    return Room(
        room_id=int(row["id"]),
        name=row["name"],
        capacity=int(row["capacity"]),
        equipment=frozenset(json.loads(row["equipment"] or "[]")),
        hourly_rate=float(row["hourly_rate"]),
        location=row["location"],
    )


def _row_to_booking(row: sqlite3.Row) -> Booking:
    return Booking(
        booking_id=int(row["id"]),
        room_id=int(row["room_id"]),
        start_time=from_storage_instant(str(row["start_time"])),
        end_time=from_storage_instant(str(row["end_time"])),
        organizer_id=str(row["organizer_id"]),
        attendees=tuple(json.loads(row["attendees"] or "[]")),
        required_equipment=frozenset(json.loads(row["required_equipment"] or "[]")),
        priority=row["priority"],
        status=str(row["status"]),
        buffer_before_minutes=row["buffer_before"],
        buffer_after_minutes=row["buffer_after"],
    )


class CommitScope:
    """Reads and writes issued inside one ``BEGIN IMMEDIATE`` transaction."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection

    def get_room(self, room_id: int) -> Optional[Room]:
        cursor = self._connection.execute(
            """
            SELECT id, name, capacity, equipment, hourly_rate, location
            FROM Rooms
            WHERE id = ?;
            """,
            (room_id,),
        )
        row = cursor.fetchone()
        if row is None:
            return None
        return _row_to_room(row)

    def list_active_bookings_for_room(self, room_id: int) -> list[Booking]:
        cursor = self._connection.execute(
            f"""
            SELECT {_BOOKING_COLUMNS}
            FROM Bookings
            WHERE room_id = ?
              AND status NOT IN (?, ?)
            ORDER BY start_time ASC, id ASC;
            """,
            (room_id, *_INACTIVE_STATUSES),
        )
        return [_row_to_booking(row) for row in cursor.fetchall()]

    def insert_booking(self, booking: Booking) -> Booking:
        cursor = self._connection.execute(
            """
            INSERT INTO Bookings (
                room_id,
                start_time,
                end_time,
                organizer_id,
                attendees,
                required_equipment,
                priority,
                status,
                buffer_before,
                buffer_after
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                booking.room_id,
                to_storage_instant(booking.start_time),
                to_storage_instant(booking.end_time),
                booking.organizer_id,
                json.dumps(list(booking.attendees)),
                json.dumps(sorted(booking.required_equipment)),
                booking.priority,
                booking.status,
                booking.buffer_before_minutes,
                booking.buffer_after_minutes,
            ),
        )
        return replace(booking, booking_id=int(cursor.lastrowid))


class DataRepository:
    """Encapsulates SQLite access so business logic stays storage-agnostic."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(
            self._db_path,
            timeout=self._settings.sqlite_timeout_seconds,
        )
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Rooms (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT,
                        capacity INTEGER NOT NULL CHECK (capacity > 0),
                        equipment TEXT NOT NULL DEFAULT '[]',
                        hourly_rate REAL NOT NULL DEFAULT 0 CHECK (hourly_rate >= 0),
                        location TEXT,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Bookings (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        room_id INTEGER NOT NULL,
                        start_time TEXT NOT NULL,
                        end_time TEXT NOT NULL,
                        organizer_id TEXT NOT NULL,
                        attendees TEXT NOT NULL DEFAULT '[]',
                        required_equipment TEXT NOT NULL DEFAULT '[]',
                        priority TEXT,
                        status TEXT NOT NULL DEFAULT 'tentative'
                            CHECK (status IN ('tentative', 'confirmed', 'cancelled', 'released')),
                        buffer_before INTEGER DEFAULT 15,
                        buffer_after INTEGER DEFAULT 15,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        CHECK (end_time > start_time),
                        FOREIGN KEY (room_id) REFERENCES Rooms(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_bookings_room_status
                    ON Bookings(room_id, status);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_bookings_start_end
                    ON Bookings(start_time, end_time);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_demo_rooms_if_empty(self) -> int:
        """Insert the demo room inventory only when no rooms exist yet."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) AS count FROM Rooms;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Rooms already present; skipping demo seed")
                    return 0

                cursor.executemany(
                    """
                    INSERT INTO Rooms (name, capacity, equipment, hourly_rate, location)
                    VALUES (?, ?, ?, ?, ?);
                    """,
                    [
                        (name, capacity, json.dumps(equipment), hourly_rate, location)
                        for name, capacity, equipment, hourly_rate, location in DEMO_ROOMS
                    ],
                )
                conn.commit()
            logger.info("Demo room seed completed with %s rooms", len(DEMO_ROOMS))
            return len(DEMO_ROOMS)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Demo room seeding failed: {exc}") from exc

    def create_room(
        self,
        capacity: int,
        equipment: Iterable[str] = (),
        hourly_rate: float = 0.0,
        name: Optional[str] = None,
        location: Optional[str] = None,
    ) -> Room:
        """Insert room row and return the stored record."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO Rooms (name, capacity, equipment, hourly_rate, location)
                VALUES (?, ?, ?, ?, ?);
                """,
                (name, capacity, json.dumps(sorted(set(equipment))), hourly_rate, location),
            )
            conn.commit()
            room_id = int(cursor.lastrowid)
        return Room(
            room_id=room_id,
            name=name,
            capacity=capacity,
            equipment=frozenset(equipment),
            hourly_rate=float(hourly_rate),
            location=location,
        )

    def update_room(
        self,
        room_id: int,
        *,
        capacity: Optional[int] = None,
        equipment: Optional[Iterable[str]] = None,
    ) -> None:
        """Change a room's hard attributes; used by inventory maintenance."""
        with self._connect() as conn:
            cursor = conn.cursor()
            if capacity is not None:
                cursor.execute(
                    "UPDATE Rooms SET capacity = ? WHERE id = ?;",
                    (capacity, room_id),
                )
            if equipment is not None:
                cursor.execute(
                    "UPDATE Rooms SET equipment = ? WHERE id = ?;",
                    (json.dumps(sorted(set(equipment))), room_id),
                )
            conn.commit()

    def get_room(self, room_id: int) -> Optional[Room]:
        with self._connect() as conn:
            return CommitScope(conn).get_room(room_id)

    def list_rooms(self) -> List[Room]:
        """Return the full room inventory in id order."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, name, capacity, equipment, hourly_rate, location
                FROM Rooms
                ORDER BY id ASC;
                """
            )
            return [_row_to_room(row) for row in cursor.fetchall()]

    def list_active_bookings_in_window(
        self,
        window_start: datetime,
        window_end: datetime,
    ) -> List[Booking]:
        """Return active bookings intersecting ``[window_start, window_end]``."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT {_BOOKING_COLUMNS}
                FROM Bookings
                WHERE start_time <= ?
                  AND end_time >= ?
                  AND status NOT IN (?, ?)
                ORDER BY room_id ASC, start_time ASC, id ASC;
                """,
                (
                    to_storage_instant(window_end),
                    to_storage_instant(window_start),
                    *_INACTIVE_STATUSES,
                ),
            )
            return [_row_to_booking(row) for row in cursor.fetchall()]

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"SELECT {_BOOKING_COLUMNS} FROM Bookings WHERE id = ?;",
                (booking_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return _row_to_booking(row)

    def update_booking_status(
        self,
        booking_id: int,
        expected_status: str,
        new_status: str,
    ) -> bool:
        """Compare-and-set a booking status; False when the row moved on."""
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE Bookings
                SET status = ?
                WHERE id = ? AND status = ?;
                """,
                (new_status, booking_id, expected_status),
            )
            conn.commit()
            return cursor.rowcount == 1

    def count_bookings(self, room_id: Optional[int] = None) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            if room_id is None:
                cursor.execute("SELECT COUNT(*) AS count FROM Bookings;")
            else:
                cursor.execute(
                    "SELECT COUNT(*) AS count FROM Bookings WHERE room_id = ?;",
                    (room_id,),
                )
            return int(cursor.fetchone()["count"])

    @contextmanager
    def commit_scope(self) -> Iterator[CommitScope]:
        """Serialize a check-then-insert sequence against every other writer.

        ``BEGIN IMMEDIATE`` takes SQLite's reserved lock up front, so no other
        connection can write between the conflict check and the insert. The
        transaction commits when the block exits normally and rolls back on
        any exception.
        """
        connection = self._connect()
        connection.isolation_level = None
        try:
            connection.execute("BEGIN IMMEDIATE;")
            try:
                yield CommitScope(connection)
            except BaseException:
                connection.execute("ROLLBACK;")
                raise
            connection.execute("COMMIT;")
        finally:
            connection.close()
