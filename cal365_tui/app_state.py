"""
Navigable UI state: what is shown, what is selected, and the screen regions
the renderer recorded on the last frame for mouse hit-testing.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Tuple

from cal365_tui.models import (
    CalendarScope,
    ColorCalendar,
    ColorEvent,
    CurrentView,
    ViewMode,
)

logger = logging.getLogger(__name__)

TRANSITION_MS = 300
STARTUP_TRANSITION_MS = 500


@dataclass
class Rect:
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def contains(self, x: int, y: int) -> bool:
        return self.x <= x < self.right and self.y <= y < self.bottom


@dataclass
class Transition:
    start: float  # time.monotonic() seconds
    duration: float  # seconds

    def progress(self, now: float) -> float:
        if self.duration <= 0:
            return 1.0
        return min(1.0, max(0.0, (now - self.start) / self.duration))

    def expired(self, now: float) -> bool:
        return now - self.start >= self.duration


def first_of_month(day: date) -> date:
    return day.replace(day=1)


def add_months(day: date, months: int) -> date:
    """First day of the month `months` away from day"""
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def week_start_sunday(day: date) -> date:
    return day - timedelta(days=(day.weekday() + 1) % 7)


def week_start_monday(day: date) -> date:
    return day - timedelta(days=day.weekday())


def _utc_midnight(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


def get_view_date_range(mode: ViewMode, displayed_date: date) -> Tuple[datetime, datetime]:
    """Half-open UTC range fetched for a view mode.

    The calendar date's midnight is taken as UTC midnight, matching the
    treatment of every event time as UTC.
    """
    if mode in (ViewMode.LIST, ViewMode.MONTH):
        start = first_of_month(displayed_date)
        end = add_months(displayed_date, 1)
    elif mode == ViewMode.WEEK:
        start = week_start_sunday(displayed_date)
        end = start + timedelta(days=7)
    elif mode == ViewMode.WORK_WEEK:
        start = week_start_monday(displayed_date)
        end = start + timedelta(days=5)
    else:
        start = displayed_date
        end = start + timedelta(days=1)
    return _utc_midnight(start), _utc_midnight(end)


@dataclass
class AppState:
    calendars: List[ColorCalendar] = field(default_factory=list)
    events: List[ColorEvent] = field(default_factory=list)
    current_view: CurrentView = CurrentView.CALENDARS
    event_view_mode: ViewMode = ViewMode.LIST
    scope: CalendarScope = field(default_factory=CalendarScope.all)
    displayed_date: date = field(default_factory=date.today)

    calendar_selected: Optional[int] = 0
    event_selected: Optional[int] = None
    calendar_offset: int = 0
    event_offset: int = 0
    detail_scroll: int = 0

    transition: Optional[Transition] = None
    show_help: bool = False
    show_legend: bool = False

    # Written by the renderer on every frame
    calendar_list_area: Optional[Rect] = None
    event_list_area: Optional[Rect] = None
    help_area: Optional[Rect] = None
    legend_area: Optional[Rect] = None
    detail_area: Optional[Rect] = None
    footer_prev_area: Optional[Rect] = None
    footer_next_area: Optional[Rect] = None
    tab_areas: List[Tuple[Rect, Optional[ViewMode]]] = field(default_factory=list)
    day_cells: List[Tuple[Rect, date]] = field(default_factory=list)
    event_lines: List[Tuple[Rect, int]] = field(default_factory=list)
    # None until the detail popup has been drawn
    detail_max_scroll: Optional[int] = None

    def reset_hit_areas(self):
        """Forget the regions of the previous frame"""
        self.detail_max_scroll = None
        self.calendar_list_area = None
        self.event_list_area = None
        self.help_area = None
        self.legend_area = None
        self.detail_area = None
        self.footer_prev_area = None
        self.footer_next_area = None
        self.tab_areas = []
        self.day_cells = []
        self.event_lines = []

    # ----- selection -----

    def _active_list(self) -> Tuple[Optional[str], int]:
        if self.current_view == CurrentView.CALENDARS:
            # prefixed with the ALL and MY_SHAREABLE rows
            return 'calendar_selected', len(self.calendars) + 2
        if self.current_view == CurrentView.EVENTS:
            return 'event_selected', len(self.events)
        return None, 0

    def next_item(self):
        """Select the next row of the active list, wrapping at the end"""
        attr, length = self._active_list()
        if attr is None or length == 0:
            return
        current = getattr(self, attr)
        setattr(self, attr, 0 if current is None else (current + 1) % length)

    def previous_item(self):
        """Select the previous row of the active list, wrapping at the start"""
        attr, length = self._active_list()
        if attr is None or length == 0:
            return
        current = getattr(self, attr)
        setattr(self, attr, length - 1 if current is None else (current + length - 1) % length)

    def selected_event(self) -> Optional[ColorEvent]:
        if self.event_selected is None or not 0 <= self.event_selected < len(self.events):
            return None
        return self.events[self.event_selected]

    def _event_date(self, index: int) -> Optional[date]:
        try:
            return self.events[index].event.start_dt().date()
        except ValueError:
            return None

    def jump_to_next_day(self):
        """Select the first event that starts on a later date than the selected one"""
        if self.selected_event() is None:
            return
        current = self._event_date(self.event_selected)
        if current is None:
            return
        for i in range(len(self.events)):
            day = self._event_date(i)
            if day is not None and day > current:
                self.event_selected = i
                return

    def jump_to_previous_day(self):
        """Select the first event of the closest earlier date"""
        if self.selected_event() is None:
            return
        current = self._event_date(self.event_selected)
        if current is None:
            return
        for i in range(self.event_selected - 1, -1, -1):
            day = self._event_date(i)
            if day is not None and day < current:
                for j in range(len(self.events)):
                    if self._event_date(j) == day:
                        self.event_selected = j
                        return

    def select_nearest_event(self, now: Optional[datetime] = None):
        """Select the event starting closest to now and show its date"""
        if not self.events:
            self.event_selected = None
            return

        now = now or datetime.now(timezone.utc)
        # event times are naive UTC
        now_naive = now.astimezone(timezone.utc).replace(tzinfo=None)
        nearest = 0
        best = None
        for i, color_event in enumerate(self.events):
            try:
                start = color_event.event.start_dt()
            except ValueError:
                continue
            diff = abs((start - now_naive).total_seconds())
            if best is None or diff < best:
                best = diff
                nearest = i

        self.event_selected = nearest
        day = self._event_date(nearest)
        if day is not None:
            self.displayed_date = day

    # ----- time navigation -----

    def next_month(self):
        self.displayed_date = add_months(self.displayed_date, 1)

    def previous_month(self):
        self.displayed_date = add_months(self.displayed_date, -1)

    def next_week(self):
        self.displayed_date += timedelta(weeks=1)

    def previous_week(self):
        self.displayed_date -= timedelta(weeks=1)

    def next_day(self):
        self.displayed_date += timedelta(days=1)

    def previous_day(self):
        self.displayed_date -= timedelta(days=1)

    def step_forward(self):
        """Advance by the period of the current mode"""
        if self.event_view_mode in (ViewMode.LIST, ViewMode.MONTH):
            self.next_month()
        elif self.event_view_mode in (ViewMode.WEEK, ViewMode.WORK_WEEK):
            self.next_week()
        else:
            self.next_day()

    def step_back(self):
        """Go back by the period of the current mode"""
        if self.event_view_mode in (ViewMode.LIST, ViewMode.MONTH):
            self.previous_month()
        elif self.event_view_mode in (ViewMode.WEEK, ViewMode.WORK_WEEK):
            self.previous_week()
        else:
            self.previous_day()

    # ----- detail scrolling -----

    def scroll_down(self):
        """Scroll the detail popup, stopping at the last page of the last frame"""
        if self.detail_max_scroll is not None and self.detail_scroll >= self.detail_max_scroll:
            self.detail_scroll = self.detail_max_scroll
            return
        self.detail_scroll += 1

    def scroll_up(self):
        self.detail_scroll = max(0, self.detail_scroll - 1)

    # ----- modes and transitions -----

    def toggle_event_view(self, now: Optional[float] = None):
        self.event_view_mode = self.event_view_mode.next()
        self.start_transition(TRANSITION_MS, now)

    def start_transition(self, ms: int, now: Optional[float] = None):
        self.transition = Transition(start=time.monotonic() if now is None else now, duration=ms / 1000)

    def transition_active(self) -> bool:
        return self.transition is not None

    def transition_progress(self, now: Optional[float] = None) -> Optional[float]:
        if self.transition is None:
            return None
        return self.transition.progress(time.monotonic() if now is None else now)

    def clear_expired_transition(self, now: Optional[float] = None):
        if self.transition and self.transition.expired(time.monotonic() if now is None else now):
            self.transition = None

    # ----- view switches -----

    def enter_calendar(self, index: int, now: Optional[float] = None) -> bool:
        """Open the events view for a calendar list row.

        Row 0 is all calendars, row 1 the shareable ones, then one row per
        calendar. Returns False for rows that don't exist.
        """
        if index == 0:
            self.scope = CalendarScope.all()
        elif index == 1:
            self.scope = CalendarScope.my_shareable()
        elif 2 <= index < len(self.calendars) + 2:
            self.scope = CalendarScope.one(self.calendars[index - 2].calendar.id)
        else:
            return False
        self.calendar_selected = index
        self.current_view = CurrentView.EVENTS
        self.start_transition(TRANSITION_MS, now)
        logger.debug(f"Entered {self.scope!r}")
        return True

    def back_to_calendars(self, today: Optional[date] = None, now: Optional[float] = None):
        self.current_view = CurrentView.CALENDARS
        self.event_view_mode = ViewMode.LIST
        self.displayed_date = today or date.today()
        self.start_transition(TRANSITION_MS, now)

    def open_detail(self) -> bool:
        if self.selected_event() is None:
            return False
        self.current_view = CurrentView.EVENT_DETAIL
        self.detail_scroll = 0
        return True

    def close_detail(self, now: Optional[float] = None):
        self.current_view = CurrentView.EVENTS
        self.start_transition(TRANSITION_MS, now)

    def switch_to_list_at(self, day: date, now: Optional[float] = None):
        """Show the list view anchored at day"""
        self.event_view_mode = ViewMode.LIST
        self.displayed_date = day
        self.start_transition(TRANSITION_MS, now)

    # ----- scope -----

    def calendars_for_scope(self) -> List[ColorCalendar]:
        if self.scope.kind == CalendarScope.ALL:
            return list(self.calendars)
        if self.scope.kind == CalendarScope.MY_SHAREABLE:
            return [c for c in self.calendars if c.calendar.can_share]
        return [c for c in self.calendars if c.calendar.id == self.scope.calendar_id]

    def scope_name(self) -> str:
        if self.scope.kind == CalendarScope.ALL:
            return "All Calendars"
        if self.scope.kind == CalendarScope.MY_SHAREABLE:
            return "My Calendars"
        for c in self.calendars:
            if c.calendar.id == self.scope.calendar_id:
                return c.calendar.name
        return "All Calendars"
