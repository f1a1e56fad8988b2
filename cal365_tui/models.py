"""
Data model shared by the store, the Graph client and the UI.

Graph returns wall-clock strings such as ``2025-03-14T09:00:00.0000000`` with a
separate zone name. The zone is ignored and every time is treated as UTC.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Calendar colors, assigned by index modulo the palette length
CALENDAR_COLORS: List[Tuple[int, int, int]] = [
    (203, 166, 247),  # mauve
    (245, 194, 231),  # pink
    (235, 160, 172),  # maroon
    (243, 139, 168),  # red
    (250, 179, 135),  # peach
    (249, 226, 175),  # yellow
    (166, 227, 161),  # green
    (148, 226, 213),  # teal
    (137, 220, 235),  # sky
    (116, 199, 236),  # sapphire
    (137, 180, 250),  # blue
    (180, 190, 254),  # lavender
]

STORE_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


def color_for_index(index: int) -> Tuple[int, int, int]:
    """Return the palette color for the calendar at position index"""
    return CALENDAR_COLORS[index % len(CALENDAR_COLORS)]


def parse_graph_datetime(value: str) -> datetime:
    """Parse a Graph wall-clock string into a naive datetime.

    Accepts an optional trailing ``Z`` and up to seven fractional digits
    (Graph's precision); digits past microseconds are dropped.
    Raises ValueError for anything else.
    """
    if not isinstance(value, str) or not value:
        raise ValueError(f"invalid datetime: {value!r}")
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1]
    if '.' in text:
        head, frac = text.split('.', 1)
        if not frac.isdigit():
            raise ValueError(f"invalid fractional seconds: {value!r}")
        text = f"{head}.{frac[:6]}"
        return datetime.strptime(text, "%Y-%m-%dT%H:%M:%S.%f")
    return datetime.strptime(text, STORE_TIME_FORMAT)


def to_local(naive_utc: datetime) -> datetime:
    """Interpret a naive datetime as UTC and convert it to local time"""
    return naive_utc.replace(tzinfo=timezone.utc).astimezone()


def effective_end_date(start: datetime, end: datetime) -> date:
    """Last day an event is drawn on.

    An end at exactly midnight after the start day is exclusive, so the
    event stops on the previous day.
    """
    if end.time() == datetime.min.time() and end.date() > start.date():
        return end.date() - timedelta(days=1)
    return end.date()


class CalendarScope:
    """Which calendars the events view aggregates: ALL, MY_SHAREABLE or ONE(id)"""

    ALL = "all"
    MY_SHAREABLE = "my_shareable"
    ONE = "one"

    def __init__(self, kind: str, calendar_id: Optional[str] = None):
        if kind == self.ONE and not calendar_id:
            raise ValueError("ONE scope needs a calendar id")
        self.kind = kind
        self.calendar_id = calendar_id if kind == self.ONE else None

    @classmethod
    def all(cls) -> "CalendarScope":
        return cls(cls.ALL)

    @classmethod
    def my_shareable(cls) -> "CalendarScope":
        return cls(cls.MY_SHAREABLE)

    @classmethod
    def one(cls, calendar_id: str) -> "CalendarScope":
        return cls(cls.ONE, calendar_id)

    def __eq__(self, other):
        if not isinstance(other, CalendarScope):
            return NotImplemented
        return self.kind == other.kind and self.calendar_id == other.calendar_id

    def __hash__(self):
        return hash((self.kind, self.calendar_id))

    def __repr__(self):
        if self.kind == self.ONE:
            return f"CalendarScope.one({self.calendar_id!r})"
        return f"CalendarScope.{self.kind}()"


class ViewMode(Enum):
    LIST = "List"
    DAY = "Day"
    WORK_WEEK = "WorkWeek"
    WEEK = "Week"
    MONTH = "Month"

    def next(self) -> "ViewMode":
        """Next mode in the Tab cycle"""
        return _MODE_CYCLE[(_MODE_CYCLE.index(self) + 1) % len(_MODE_CYCLE)]


_MODE_CYCLE = [ViewMode.LIST, ViewMode.WEEK, ViewMode.WORK_WEEK, ViewMode.DAY, ViewMode.MONTH]


class CurrentView(Enum):
    CALENDARS = "Calendars"
    EVENTS = "Events"
    EVENT_DETAIL = "EventDetail"


@dataclass
class Calendar:
    id: str
    name: str
    can_share: Optional[bool] = None

    @classmethod
    def from_graph(cls, data: Dict) -> "Calendar":
        return cls(
            id=data['id'],
            name=data.get('name') or '',
            can_share=data.get('canShare'),
        )


@dataclass
class DateTimeTimeZone:
    date_time: str
    time_zone: str = "UTC"

    @classmethod
    def from_graph(cls, data: Optional[Dict]) -> "DateTimeTimeZone":
        data = data or {}
        return cls(
            date_time=data.get('dateTime') or '',
            time_zone=data.get('timeZone') or 'UTC',
        )

    def parse(self) -> datetime:
        return parse_graph_datetime(self.date_time)


@dataclass
class EmailAddress:
    name: Optional[str] = None
    address: Optional[str] = None

    @classmethod
    def from_graph(cls, data: Optional[Dict]) -> Optional["EmailAddress"]:
        if not isinstance(data, dict):
            return None
        return cls(name=data.get('name'), address=data.get('address'))

    def to_dict(self) -> Dict:
        return {'name': self.name, 'address': self.address}

    def display(self) -> str:
        """Name if known, otherwise address"""
        return self.name or self.address or "Unknown"


@dataclass
class Attendee:
    email_address: Optional[EmailAddress] = None

    @classmethod
    def from_graph(cls, data: Dict) -> "Attendee":
        return cls(email_address=EmailAddress.from_graph(data.get('emailAddress')))

    def to_dict(self) -> Dict:
        return {'emailAddress': self.email_address.to_dict() if self.email_address else None}


@dataclass
class Event:
    id: str
    subject: str
    start: DateTimeTimeZone
    end: DateTimeTimeZone
    body: Optional[str] = None
    location: Optional[str] = None
    organizer: Optional[EmailAddress] = None
    attendees: List[Attendee] = field(default_factory=list)

    @classmethod
    def from_graph(cls, data: Dict) -> "Event":
        """Build an Event from a Graph event object, ignoring unknown fields"""
        body = data.get('body')
        location = data.get('location')
        organizer = data.get('organizer')
        attendees = data.get('attendees') or []
        return cls(
            id=data['id'],
            subject=data.get('subject') or '',
            start=DateTimeTimeZone.from_graph(data.get('start')),
            end=DateTimeTimeZone.from_graph(data.get('end')),
            body=body.get('content') if isinstance(body, dict) else None,
            location=(location.get('displayName') or None) if isinstance(location, dict) else None,
            organizer=EmailAddress.from_graph(organizer.get('emailAddress')) if isinstance(organizer, dict) else None,
            attendees=[Attendee.from_graph(a) for a in attendees if isinstance(a, dict)],
        )

    def start_dt(self) -> datetime:
        return self.start.parse()

    def end_dt(self) -> datetime:
        return self.end.parse()

    def occurs_on(self, day: date) -> bool:
        """True when the event is drawn on day; unparseable times never match"""
        try:
            start = self.start_dt()
            end = self.end_dt()
        except ValueError:
            return False
        return start.date() <= day <= effective_end_date(start, end)

    def local_date(self) -> Optional[date]:
        """Local calendar date of the start, or None if it can't be parsed"""
        try:
            return to_local(self.start_dt()).date()
        except ValueError:
            logger.debug(f"Unparseable start for event {self.id}: {self.start.date_time!r}")
            return None


@dataclass
class ColorCalendar:
    calendar: Calendar
    color: Tuple[int, int, int]


@dataclass
class ColorEvent:
    event: Event
    color: Tuple[int, int, int]


def sort_events(events: List[ColorEvent]) -> List[ColorEvent]:
    """Sort by the raw start string; Graph's ISO format makes this chronological"""
    return sorted(events, key=lambda ce: ce.event.start.date_time)
