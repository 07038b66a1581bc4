"""SQLite storage for event buckets, meetings, and availability docs."""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path

from .models import AvailabilityDoc, CalendarEvent, Meeting, StoredCalendar, TimeBlock

logger = logging.getLogger(__name__)

DB_SCHEMA = """
CREATE TABLE IF NOT EXISTS event_buckets (
    uid TEXT NOT NULL,
    bucket_key TEXT NOT NULL,
    events TEXT NOT NULL DEFAULT '[]',
    updated_at TEXT NOT NULL,
    PRIMARY KEY (uid, bucket_key)
);

CREATE TABLE IF NOT EXISTS calendars (
    uid TEXT NOT NULL,
    calendar_id TEXT NOT NULL,
    title TEXT NOT NULL DEFAULT '',
    description TEXT,
    time_zone TEXT,
    access_role TEXT,
    is_primary INTEGER DEFAULT 0,
    color TEXT,
    foreground_color TEXT,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (uid, calendar_id)
);

CREATE TABLE IF NOT EXISTS calendar_sync (
    uid TEXT PRIMARY KEY,
    range_start TEXT NOT NULL,
    range_end TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS meetings (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL DEFAULT '',
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    timezone TEXT NOT NULL DEFAULT 'UTC',
    participants TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS availability (
    meeting_id TEXT NOT NULL,
    uid TEXT NOT NULL,
    busy_blocks TEXT NOT NULL DEFAULT '[]',
    manual_blocks TEXT NOT NULL DEFAULT '[]',
    range_start TEXT,
    range_end TEXT,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (meeting_id, uid)
);
"""

MIGRATIONS = [
    # Migration 1: look up a user's meetings without scanning every row
    [
        "CREATE INDEX IF NOT EXISTS idx_availability_uid ON availability(uid)",
    ],
]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dt(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _blocks_to_json(blocks: list[TimeBlock]) -> str:
    return json.dumps([b.to_dict() for b in blocks])


def _blocks_from_json(raw: str | None) -> list[TimeBlock]:
    """Decode stored blocks, dropping entries that no longer parse."""
    blocks = []
    for item in json.loads(raw or "[]"):
        try:
            blocks.append(TimeBlock.from_dict(item))
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Dropping unreadable stored block: {item!r}")
    return blocks


class Database:
    def __init__(self, db_path: str | Path = "meetgrid.db"):
        self.db_path = str(db_path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def connect(self) -> None:
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(DB_SCHEMA)
        self._run_migrations()

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    def _run_migrations(self) -> None:
        for migration_stmts in MIGRATIONS:
            for stmt in migration_stmts:
                try:
                    self._conn.execute(stmt)
                except sqlite3.OperationalError:
                    pass  # Already applied
        self._conn.commit()

    @property
    def conn(self) -> sqlite3.Connection:
        if not self._conn:
            self.connect()
        return self._conn

    # --- Event buckets ---

    def get_bucket(self, uid: str, bucket_key: str) -> list[CalendarEvent] | None:
        """Events stored under one bucket, or None if it was never written."""
        row = self.conn.execute(
            "SELECT events FROM event_buckets WHERE uid = ? AND bucket_key = ?",
            (uid, bucket_key),
        ).fetchone()
        if not row:
            return None
        events = []
        for item in json.loads(row["events"] or "[]"):
            try:
                events.append(CalendarEvent.from_dict(item))
            except (KeyError, TypeError, ValueError):
                logger.warning(f"Dropping unreadable event in bucket {uid}/{bucket_key}")
        return events

    def put_bucket(self, uid: str, bucket_key: str, events: list[CalendarEvent]) -> None:
        """Replace a bucket wholesale."""
        payload = json.dumps([e.to_dict() for e in events])
        with self._lock:
            self.conn.execute(
                """INSERT OR REPLACE INTO event_buckets (uid, bucket_key, events, updated_at)
                VALUES (?, ?, ?, ?)""",
                (uid, bucket_key, payload, _now()),
            )
            self.conn.commit()

    # --- Calendars ---

    def save_calendars(self, uid: str, calendars: list[StoredCalendar]) -> None:
        now = _now()
        with self._lock:
            self.conn.executemany(
                """INSERT OR REPLACE INTO calendars
                (uid, calendar_id, title, description, time_zone, access_role,
                 is_primary, color, foreground_color, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                [
                    (
                        uid,
                        c.id,
                        c.title,
                        c.description,
                        c.time_zone,
                        c.access_role,
                        int(c.is_primary),
                        c.color,
                        c.foreground_color,
                        now,
                    )
                    for c in calendars
                ],
            )
            self.conn.commit()

    def get_calendars(self, uid: str) -> list[StoredCalendar]:
        rows = self.conn.execute(
            "SELECT * FROM calendars WHERE uid = ? ORDER BY title", (uid,)
        ).fetchall()
        return [
            StoredCalendar(
                id=row["calendar_id"],
                title=row["title"],
                description=row["description"],
                time_zone=row["time_zone"],
                access_role=row["access_role"],
                is_primary=bool(row["is_primary"]),
                color=row["color"],
                foreground_color=row["foreground_color"],
            )
            for row in rows
        ]

    def record_sync(self, uid: str, range_start: datetime, range_end: datetime) -> None:
        with self._lock:
            self.conn.execute(
                """INSERT OR REPLACE INTO calendar_sync (uid, range_start, range_end, updated_at)
                VALUES (?, ?, ?, ?)""",
                (uid, _dt(range_start), _dt(range_end), _now()),
            )
            self.conn.commit()

    def get_last_sync(self, uid: str) -> tuple[datetime, datetime, datetime] | None:
        """(range_start, range_end, synced_at) of the user's last sync."""
        row = self.conn.execute(
            "SELECT * FROM calendar_sync WHERE uid = ?", (uid,)
        ).fetchone()
        if not row:
            return None
        return (
            datetime.fromisoformat(row["range_start"]),
            datetime.fromisoformat(row["range_end"]),
            datetime.fromisoformat(row["updated_at"]),
        )

    # --- Meetings ---

    def save_meeting(self, meeting: Meeting) -> None:
        with self._lock:
            self.conn.execute(
                """INSERT OR REPLACE INTO meetings
                (id, title, start_time, end_time, timezone, participants, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    meeting.id,
                    meeting.title,
                    _dt(meeting.start_time),
                    _dt(meeting.end_time),
                    meeting.timezone,
                    json.dumps(meeting.participants),
                    _now(),
                ),
            )
            self.conn.commit()

    def _row_to_meeting(self, row: sqlite3.Row) -> Meeting:
        return Meeting(
            id=row["id"],
            title=row["title"],
            start_time=datetime.fromisoformat(row["start_time"]),
            end_time=datetime.fromisoformat(row["end_time"]),
            timezone=row["timezone"],
            participants=json.loads(row["participants"] or "[]"),
        )

    def get_meeting(self, meeting_id: str) -> Meeting | None:
        row = self.conn.execute("SELECT * FROM meetings WHERE id = ?", (meeting_id,)).fetchone()
        if not row:
            return None
        return self._row_to_meeting(row)

    def get_meetings_overlapping(self, start: datetime, end: datetime) -> list[Meeting]:
        rows = self.conn.execute(
            "SELECT * FROM meetings WHERE start_time < ? AND end_time > ? ORDER BY start_time",
            (_dt(end), _dt(start)),
        ).fetchall()
        return [self._row_to_meeting(row) for row in rows]

    # --- Availability docs ---

    def _row_to_doc(self, row: sqlite3.Row) -> AvailabilityDoc:
        return AvailabilityDoc(
            uid=row["uid"],
            busy_blocks=_blocks_from_json(row["busy_blocks"]),
            manual_blocks=_blocks_from_json(row["manual_blocks"]),
            range_start=datetime.fromisoformat(row["range_start"]) if row["range_start"] else None,
            range_end=datetime.fromisoformat(row["range_end"]) if row["range_end"] else None,
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def get_availability_doc(self, meeting_id: str, uid: str) -> AvailabilityDoc | None:
        row = self.conn.execute(
            "SELECT * FROM availability WHERE meeting_id = ? AND uid = ?", (meeting_id, uid)
        ).fetchone()
        if not row:
            return None
        return self._row_to_doc(row)

    def get_availability_docs(self, meeting_id: str) -> list[AvailabilityDoc]:
        rows = self.conn.execute(
            "SELECT * FROM availability WHERE meeting_id = ? ORDER BY uid", (meeting_id,)
        ).fetchall()
        return [self._row_to_doc(row) for row in rows]

    def save_busy_blocks(
        self,
        meeting_id: str,
        uid: str,
        blocks: list[TimeBlock],
        range_start: datetime,
        range_end: datetime,
    ) -> None:
        """Replace calendar-derived blocks, leaving manual blocks untouched."""
        with self._lock:
            self.conn.execute(
                """INSERT INTO availability
                (meeting_id, uid, busy_blocks, range_start, range_end, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(meeting_id, uid) DO UPDATE SET
                    busy_blocks = excluded.busy_blocks,
                    range_start = excluded.range_start,
                    range_end = excluded.range_end,
                    updated_at = excluded.updated_at""",
                (meeting_id, uid, _blocks_to_json(blocks), _dt(range_start), _dt(range_end), _now()),
            )
            self.conn.commit()

    def save_manual_blocks(self, meeting_id: str, uid: str, blocks: list[TimeBlock]) -> None:
        """Replace manual blocks wholesale, leaving busy blocks untouched."""
        with self._lock:
            self.conn.execute(
                """INSERT INTO availability (meeting_id, uid, manual_blocks, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(meeting_id, uid) DO UPDATE SET
                    manual_blocks = excluded.manual_blocks,
                    updated_at = excluded.updated_at""",
                (meeting_id, uid, _blocks_to_json(blocks), _now()),
            )
            self.conn.commit()
