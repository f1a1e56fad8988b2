"""
SQLite cache of calendars and events.

Every operation opens its own connection so the store can be used from
worker threads while the UI loop keeps running.
"""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Union

from cal365_tui.models import (
    STORE_TIME_FORMAT,
    Attendee,
    Calendar,
    DateTimeTimeZone,
    EmailAddress,
    Event,
)

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when the event store can't be read or written"""


SCHEMA = """
CREATE TABLE IF NOT EXISTS calendars (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    can_share INTEGER
);
CREATE TABLE IF NOT EXISTS events (
    id TEXT PRIMARY KEY,
    subject TEXT NOT NULL,
    start_time TEXT NOT NULL,
    start_time_zone TEXT NOT NULL,
    end_time TEXT NOT NULL,
    end_time_zone TEXT NOT NULL,
    body TEXT,
    attendees_json TEXT,
    calendar_id TEXT NOT NULL,
    FOREIGN KEY (calendar_id) REFERENCES calendars (id)
);
CREATE INDEX IF NOT EXISTS idx_events_calendar_start ON events (calendar_id, start_time);
"""


def _range_bound(value: Union[datetime, str]) -> str:
    """Bounds are compared against the stored strings lexicographically"""
    if isinstance(value, datetime):
        return value.strftime(STORE_TIME_FORMAT)
    return value


class EventStore:
    """Read-through cache used by the UI; all multi-row writes are transactional"""

    def __init__(self, db_path: Union[Path, str]):
        self.db_path = Path(db_path)
        self.init()

    @contextmanager
    def _connect(self):
        """Yield a connection that commits on success and always closes"""
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=10)
        except sqlite3.Error as e:
            raise StoreError(f"Could not open {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(str(e)) from e
        finally:
            conn.close()

    def init(self):
        """Create the database file and schema if missing"""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreError(f"Could not create {self.db_path.parent}: {e}") from e
        with self._connect() as conn:
            conn.executescript(SCHEMA)
        logger.debug(f"Event store ready at {self.db_path}")

    def upsert_calendars(self, calendars: Iterable[Calendar]):
        """Insert or update calendars by id; existing rows keep their position"""
        rows = [
            (c.id, c.name, None if c.can_share is None else int(c.can_share))
            for c in calendars
        ]
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO calendars (id, name, can_share) VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    can_share = excluded.can_share
                """,
                rows,
            )
        logger.debug(f"Stored {len(rows)} calendars")

    def get_calendars(self) -> List[Calendar]:
        """All stored calendars in insertion order"""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, name, can_share FROM calendars ORDER BY rowid"
            ).fetchall()
        return [
            Calendar(
                id=row['id'],
                name=row['name'],
                can_share=None if row['can_share'] is None else bool(row['can_share']),
            )
            for row in rows
        ]

    def upsert_events_for_range(self, calendar_id: str, start: Union[datetime, str],
                                end: Union[datetime, str], events: Iterable[Event]):
        """Replace a calendar's cached events inside [start, end).

        Rows in the window that are not in events are deleted; the rest are
        upserted by id. Rows outside the window are left alone.
        """
        events = list(events)
        start_key = _range_bound(start)
        end_key = _range_bound(end)
        keep_ids = {e.id for e in events}

        with self._connect() as conn:
            existing = conn.execute(
                "SELECT id FROM events WHERE calendar_id = ? AND start_time >= ? AND start_time < ?",
                (calendar_id, start_key, end_key),
            ).fetchall()
            stale = [(row['id'],) for row in existing if row['id'] not in keep_ids]
            if stale:
                conn.executemany("DELETE FROM events WHERE id = ?", stale)

            conn.executemany(
                """
                INSERT INTO events (id, subject, start_time, start_time_zone, end_time,
                                    end_time_zone, body, attendees_json, calendar_id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    subject = excluded.subject,
                    start_time = excluded.start_time,
                    start_time_zone = excluded.start_time_zone,
                    end_time = excluded.end_time,
                    end_time_zone = excluded.end_time_zone,
                    body = excluded.body,
                    attendees_json = excluded.attendees_json,
                    calendar_id = excluded.calendar_id
                """,
                [
                    (
                        e.id,
                        e.subject,
                        e.start.date_time,
                        e.start.time_zone,
                        e.end.date_time,
                        e.end.time_zone,
                        e.body,
                        json.dumps([a.to_dict() for a in e.attendees]),
                        calendar_id,
                    )
                    for e in events
                ],
            )
        logger.debug(
            f"Calendar {calendar_id}: stored {len(events)} events, "
            f"purged {len(stale)} in [{start_key}, {end_key})"
        )

    def events_for(self, calendar_id: str) -> List[Event]:
        """All cached events of a calendar, ordered by start"""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM events WHERE calendar_id = ? ORDER BY start_time",
                (calendar_id,),
            ).fetchall()
        return [self._row_to_event(row) for row in rows]

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> Event:
        attendees = []
        if row['attendees_json']:
            try:
                for item in json.loads(row['attendees_json']):
                    if isinstance(item, dict):
                        attendees.append(Attendee(email_address=EmailAddress.from_graph(item.get('emailAddress'))))
            except (json.JSONDecodeError, TypeError):
                logger.debug(f"Bad attendees_json for event {row['id']}")
        # location and organizer are not persisted
        return Event(
            id=row['id'],
            subject=row['subject'],
            start=DateTimeTimeZone(row['start_time'], row['start_time_zone']),
            end=DateTimeTimeZone(row['end_time'], row['end_time_zone']),
            body=row['body'],
            attendees=attendees,
        )
