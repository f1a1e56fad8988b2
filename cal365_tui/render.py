"""
Curses drawing for every screen of the app.

Renderer.draw() paints one frame from an AppState and records the regions
the mouse handler hit-tests against (tabs, list areas, day cells, event
lines, footer arrows, popups) back into the state.
"""

import curses
import logging
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional, Tuple

from bs4 import BeautifulSoup

from cal365_tui.app_state import (
    AppState,
    Rect,
    week_start_monday,
    week_start_sunday,
)
from cal365_tui.models import CalendarScope, ColorEvent, CurrentView, Event, ViewMode, to_local
from cal365_tui.theme import Palette, Symbols

logger = logging.getLogger(__name__)

HEADER_HEIGHT = 3
HELP_BOX_WIDTH = 22
CLOCK_BOX_WIDTH = 28
FOOTER_ARROW_ZONE = 4

TABS: List[Tuple[str, Optional[ViewMode]]] = [
    ("Cals", None),
    ("List", ViewMode.LIST),
    ("Week", ViewMode.WEEK),
    ("Work", ViewMode.WORK_WEEK),
    ("Day", ViewMode.DAY),
    ("Month", ViewMode.MONTH),
]

DISSOLVE_GLYPHS = ['█', '▇', '▆', '▅', '▄', '▃', '▂', ' ']

HELP_ROWS = [
    ("?", "Toggle help"),
    ("l", "Toggle legend"),
    ("q", "Quit"),
    ("r", "Refresh events"),
    ("b / Esc", "Back"),
    ("Enter", "Select / details"),
    ("Tab", "Cycle views"),
    ("↑/↓", "Navigate list / scroll"),
    ("←/→", "Previous / next day with events"),
    ("a/d", "Previous / next month, week or day"),
    ("Mouse", "Click to open, wheel to scroll"),
]

MONTH_NAMES = ["January", "February", "March", "April", "May", "June", "July",
               "August", "September", "October", "November", "December"]
WEEKDAY_NAMES = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def wrap_text_lines(text: str, max_width: int) -> List[str]:
    """Wrap text lines to fit within max_width, preserving formatting"""
    if max_width <= 0:
        return []
    wrapped_lines = []

    for line in text.split('\n'):
        if len(line) <= max_width:
            wrapped_lines.append(line)
            continue

        # Wrapped parts get the original indent plus two spaces
        leading_spaces = len(line) - len(line.lstrip())
        continuation_indent = line[:leading_spaces] + "  "
        if len(continuation_indent) >= max_width:
            continuation_indent = ""

        remaining = line
        while remaining:
            if len(remaining) <= max_width:
                wrapped_lines.append(remaining)
                break

            # Break after the last space, dash or comma that fits
            wrap_point = max_width
            for i in range(max_width, 0, -1):
                if remaining[i - 1] in (' ', '-', ','):
                    wrap_point = i
                    break
            if wrap_point <= len(continuation_indent):
                wrap_point = max_width

            wrapped_lines.append(remaining[:wrap_point].rstrip())
            remaining = remaining[wrap_point:].lstrip()
            if remaining:
                remaining = continuation_indent + remaining

    return wrapped_lines


def html_to_text(body: Optional[str]) -> str:
    """Best-effort plain text from an HTML or text event body"""
    if not body:
        return ""
    try:
        text = BeautifulSoup(body, "html.parser").get_text("\n")
    except (TypeError, ValueError, AssertionError) as e:
        logger.debug(f"Could not extract text from body: {e}")
        return body
    lines = [line.strip() for line in text.splitlines()]
    # Collapse runs of blank lines
    cleaned = []
    for line in lines:
        if line or (cleaned and cleaned[-1]):
            cleaned.append(line)
    return "\n".join(cleaned).strip()


def centered_rect(percent_x: int, percent_y: int, width: int, height: int) -> Rect:
    w = max(1, width * percent_x // 100)
    h = max(1, height * percent_y // 100)
    return Rect((width - w) // 2, (height - h) // 2, w, h)


def event_times(event: Event) -> Optional[Tuple[datetime, datetime]]:
    """Start and end in local time, or None if unparseable"""
    try:
        return to_local(event.start_dt()), to_local(event.end_dt())
    except ValueError:
        logger.debug(f"Unparseable times for event {event.id}")
        return None


def list_row_text(event: Event) -> str:
    times = event_times(event)
    if times is None:
        return f"--/-- | --:-- - --:-- | {event.subject}"
    start, end = times
    return f"{start.strftime('%d/%m')} | {start.strftime('%H:%M')} - {end.strftime('%H:%M')} | {event.subject}"


def cell_line_text(event: Event) -> str:
    times = event_times(event)
    if times is None:
        return event.subject
    start, end = times
    return f"{start.strftime('%H:%M')}-{end.strftime('%H:%M')} {event.subject}"


def period_label(mode: ViewMode, displayed: date) -> str:
    """Footer description of the displayed period"""
    if mode in (ViewMode.LIST, ViewMode.MONTH):
        return f"{MONTH_NAMES[displayed.month - 1]} {displayed.year}"
    if mode == ViewMode.WEEK:
        start = week_start_sunday(displayed)
        end = start + timedelta(days=6)
        return f"{start.strftime('%d/%m')} - {end.strftime('%d/%m/%Y')}"
    if mode == ViewMode.WORK_WEEK:
        start = week_start_monday(displayed)
        end = start + timedelta(days=4)
        return f"{start.strftime('%d/%m')} - {end.strftime('%d/%m/%Y')}"
    return f"{WEEKDAY_NAMES[displayed.weekday()]} {displayed.strftime('%d/%m/%Y')}"


def detail_lines(event: Event, width: int) -> List[Tuple[str, str]]:
    """Detail popup content as (style, text) lines wrapped to width"""
    lines: List[Tuple[str, str]] = []

    def add(style: str, text: str):
        for part in wrap_text_lines(text, width) or [""]:
            lines.append((style, part))

    add('title', event.subject or "(no subject)")
    add('plain', "")
    times = event_times(event)
    if times is None:
        add('plain', f"When: {event.start.date_time} to {event.end.date_time}")
    else:
        start, end = times
        if start.date() == end.date():
            add('plain', f"When: {start.strftime('%d/%m/%Y')} from {start.strftime('%H:%M')} to {end.strftime('%H:%M')}")
        else:
            add('plain', f"When: {start.strftime('%d/%m/%Y %H:%M')} to {end.strftime('%d/%m/%Y %H:%M')}")
    if event.organizer:
        organizer = event.organizer.display()
        if event.organizer.address and event.organizer.name:
            organizer = f"{event.organizer.name} <{event.organizer.address}>"
        add('plain', f"Organizer: {organizer}")
    if event.location:
        add('plain', f"Location: {event.location}")
    names = [a.email_address.display() for a in event.attendees if a.email_address]
    add('plain', f"Attendees: {', '.join(names) if names else 'None'}")
    add('plain', "")
    add('heading', "Description:")
    description = html_to_text(event.body)
    add('plain', description or "No description")
    return lines


class Renderer:
    """Draws frames; only writes hit-test regions and scroll offsets into the state"""

    def __init__(self, palette: Palette, symbols: Symbols,
                 clock: Optional[Callable[[], datetime]] = None):
        self.palette = palette
        self.symbols = symbols
        self.clock = clock or datetime.now
        self.theme = palette.theme

    # ----- primitives -----

    def _put(self, win, y: int, x: int, text: str, attr: int = 0, max_width: Optional[int] = None):
        """addstr clipped to the window and to max_width"""
        height, width = win.getmaxyx()
        if y < 0 or y >= height or x >= width or not text:
            return
        if x < 0:
            text = text[-x:]
            x = 0
        limit = width - x
        if max_width is not None:
            limit = min(limit, max_width)
        if limit <= 0:
            return
        try:
            win.addstr(y, x, text[:limit], attr)
        except curses.error:
            pass  # bottom-right cell

    def _fill(self, win, rect: Rect, attr: int = 0):
        for y in range(rect.y, rect.bottom):
            self._put(win, y, rect.x, " " * rect.width, attr)

    def _box(self, win, rect: Rect, title: str = "", attr: Optional[int] = None):
        """Rounded border around rect with an optional title"""
        if rect.width < 2 or rect.height < 2:
            return
        attr = self.palette.attr(self.theme.mauve) if attr is None else attr
        inner = rect.width - 2
        self._put(win, rect.y, rect.x, "╭" + "─" * inner + "╮", attr)
        for y in range(rect.y + 1, rect.bottom - 1):
            self._put(win, y, rect.x, "│", attr)
            self._put(win, y, rect.right - 1, "│", attr)
        self._put(win, rect.bottom - 1, rect.x, "╰" + "─" * inner + "╯", attr)
        if title:
            self._put(win, rect.y, rect.x + 2, title, self.palette.attr(self.theme.mauve, bold=True), inner - 2)

    def _highlight(self) -> int:
        return self.palette.attr(self.theme.background, self.theme.blue, bold=True)

    # ----- frame -----

    def draw(self, win, state: AppState, now: Optional[float] = None):
        """Draw one full frame"""
        state.reset_hit_areas()
        win.erase()
        height, width = win.getmaxyx()

        self.draw_header(win, state, width)

        in_events = state.current_view in (CurrentView.EVENTS, CurrentView.EVENT_DETAIL)
        footer_height = 1 if in_events else 0
        legend_height = 0
        if in_events and state.scope.kind == CalendarScope.ALL and state.calendars:
            legend_height = len(state.calendars) + 2
            # keep room for the content
            if height - HEADER_HEIGHT - footer_height - legend_height < 8:
                legend_height = 0

        content = Rect(0, HEADER_HEIGHT, width,
                       max(0, height - HEADER_HEIGHT - footer_height - legend_height))

        if state.current_view == CurrentView.CALENDARS:
            self.draw_calendar_list(win, state, content)
        else:
            mode = state.event_view_mode
            if mode == ViewMode.LIST:
                self.draw_event_list(win, state, content)
            elif mode == ViewMode.DAY:
                self.draw_day_view(win, state, content)
            elif mode == ViewMode.WORK_WEEK:
                self.draw_week_view(win, state, content, work_week=True)
            elif mode == ViewMode.WEEK:
                self.draw_week_view(win, state, content, work_week=False)
            else:
                self.draw_month_view(win, state, content)

        if legend_height:
            legend = Rect(0, content.bottom, width, legend_height)
            self.draw_legend_block(win, state, legend)
            state.legend_area = legend
        if footer_height:
            self.draw_footer(win, state, height - 1, width)

        if state.current_view == CurrentView.EVENT_DETAIL:
            self.draw_event_detail(win, state, centered_rect(80, 80, width, height))

        progress = state.transition_progress(now)
        if progress is not None and progress < 1.0:
            self.draw_dissolve(win, progress, width, height)

        if state.show_help:
            self.draw_help_popup(win, state, centered_rect(60, 60, width, height))
        elif state.show_legend:
            self.draw_legend_popup(win, state, centered_rect(40, 50, width, height))

        win.refresh()

    def draw_header(self, win, state: AppState, width: int):
        """Tabs on the left, help hint and clock on the right"""
        clock_width = CLOCK_BOX_WIDTH if width >= 80 else 0
        help_width = HELP_BOX_WIDTH if width >= 50 else 0
        tabs_width = width - clock_width - help_width

        tabs_rect = Rect(0, 0, tabs_width, HEADER_HEIGHT)
        self._box(win, tabs_rect)
        x = 2
        for i, (label, mode) in enumerate(TABS):
            if i:
                self._put(win, 1, x, " | ", self.palette.attr(self.theme.mauve), tabs_rect.right - 1 - x)
                x += 3
            if x >= tabs_rect.right - 1:
                break
            if mode is None:
                active = state.current_view == CurrentView.CALENDARS
            else:
                active = state.current_view != CurrentView.CALENDARS and state.event_view_mode == mode
            attr = self._highlight() if active else self.palette.attr(self.theme.foreground)
            shown = label[:max(0, tabs_rect.right - 1 - x)]
            self._put(win, 1, x, shown, attr)
            state.tab_areas.append((Rect(x, 1, len(shown), 1), mode))
            x += len(label)

        if help_width:
            help_rect = Rect(tabs_width, 0, help_width, HEADER_HEIGHT)
            self._box(win, help_rect)
            hint = "Press ? for help"
            self._put(win, 1, help_rect.x + (help_width - len(hint)) // 2, hint,
                      self.palette.attr(self.theme.blue))
            state.help_area = help_rect

        if clock_width:
            clock_rect = Rect(width - clock_width, 0, clock_width, HEADER_HEIGHT)
            self._box(win, clock_rect)
            now = self.clock()
            text = f"{self.symbols.calendar}{now.strftime('%d/%m/%Y')}  {self.symbols.clock}{now.strftime('%H:%M:%S')}"
            self._put(win, 1, clock_rect.right - 2 - len(text), text,
                      self.palette.attr(self.theme.foreground))

    def draw_footer(self, win, state: AppState, y: int, width: int):
        """Period navigation, right aligned, with clickable arrows at both ends"""
        nav = (f"{self.symbols.arrow_left}  {state.scope_name()} - "
               f"{period_label(state.event_view_mode, state.displayed_date)}  {self.symbols.arrow_right}")
        start_x = max(0, width - len(nav) - 1)
        hints = "Tab: views  a/d: period  r: refresh"
        if start_x > len(hints) + 3:
            self._put(win, y, 1, hints, self.palette.attr(self.theme.foreground))
        self._put(win, y, start_x, nav, self.palette.attr(self.theme.blue, bold=True))
        end_x = min(width, start_x + len(nav))
        state.footer_prev_area = Rect(start_x, y, FOOTER_ARROW_ZONE, 1)
        state.footer_next_area = Rect(max(start_x, end_x - FOOTER_ARROW_ZONE), y, FOOTER_ARROW_ZONE, 1)

    # ----- content views -----

    @staticmethod
    def _scroll_into_view(selected: Optional[int], offset: int, visible: int, total: int) -> int:
        if visible <= 0:
            return 0
        if selected is not None:
            if selected < offset:
                offset = selected
            elif selected >= offset + visible:
                offset = selected - visible + 1
        return max(0, min(offset, max(0, total - visible)))

    def draw_calendar_list(self, win, state: AppState, area: Rect):
        self._box(win, area, " Calendars ")
        state.calendar_list_area = area
        visible = area.height - 2
        rows = [(f"{self.symbols.all_calendars}All Calendars", None, True),
                (f"{self.symbols.my_calendars}My Calendars", None, True)]
        for cc in state.calendars:
            rows.append((cc.calendar.name, cc.color, False))

        state.calendar_offset = self._scroll_into_view(state.calendar_selected, state.calendar_offset,
                                                       visible, len(rows))
        for row in range(visible):
            index = state.calendar_offset + row
            if index >= len(rows):
                break
            text, color, bold = rows[index]
            y = area.y + 1 + row
            x = area.x + 1
            selected = index == state.calendar_selected
            prefix = self.symbols.selected if selected else " " * len(self.symbols.selected)
            text_attr = (self.palette.attr(self.theme.blue, bold=True) if selected
                         else self.palette.attr(self.theme.foreground, bold=bold))
            self._put(win, y, x, prefix, text_attr)
            x += len(prefix)
            if color is not None:
                self._put(win, y, x, self.symbols.bullet, self.palette.attr(color))
                x += len(self.symbols.bullet)
            self._put(win, y, x, text, text_attr, area.right - 1 - x)

    def draw_event_list(self, win, state: AppState, area: Rect):
        self._box(win, area, f" {state.scope_name()} ")
        state.event_list_area = area
        visible = area.height - 2
        if not state.events:
            self._placeholder(win, area, "No events")
            return

        state.event_offset = self._scroll_into_view(state.event_selected, state.event_offset,
                                                    visible, len(state.events))
        for row in range(visible):
            index = state.event_offset + row
            if index >= len(state.events):
                break
            color_event = state.events[index]
            y = area.y + 1 + row
            x = area.x + 1
            selected = index == state.event_selected
            prefix = self.symbols.selected if selected else " " * len(self.symbols.selected)
            text_attr = (self.palette.attr(self.theme.blue, bold=True) if selected
                         else self.palette.attr(self.theme.foreground))
            self._put(win, y, x, prefix, text_attr)
            x += len(prefix)
            self._put(win, y, x, self.symbols.bullet, self.palette.attr(color_event.color))
            x += len(self.symbols.bullet)
            self._put(win, y, x, list_row_text(color_event.event), text_attr, area.right - 1 - x)

    def _placeholder(self, win, area: Rect, text: str):
        y = area.y + area.height // 2
        x = area.x + max(1, (area.width - len(text)) // 2)
        self._put(win, y, x, text, self.palette.attr(self.theme.yellow), area.width - 2)

    def _draw_cell_events(self, win, state: AppState, cell: Rect, day: date,
                          events: List[Tuple[int, ColorEvent]]):
        """Wrapped event lines for one day cell, recording each line's region"""
        y = cell.y
        for index, color_event in events:
            if not color_event.event.occurs_on(day):
                continue
            selected = index == state.event_selected
            text = cell_line_text(color_event.event)
            lines = wrap_text_lines(text, cell.width - len(self.symbols.bullet))
            for n, line in enumerate(lines):
                if y >= cell.bottom:
                    return
                if n == 0:
                    bullet_attr = self._highlight() if selected else self.palette.attr(color_event.color)
                    self._put(win, y, cell.x, self.symbols.bullet, bullet_attr)
                text_attr = self._highlight() if selected else self.palette.attr(self.theme.foreground)
                self._put(win, y, cell.x + len(self.symbols.bullet), line, text_attr,
                          cell.width - len(self.symbols.bullet))
                state.event_lines.append((Rect(cell.x, y, cell.width, 1), index))
                y += 1

    def draw_day_view(self, win, state: AppState, area: Rect):
        day = state.displayed_date
        self._box(win, area, f" {state.scope_name()} - {WEEKDAY_NAMES[day.weekday()]} {day.strftime('%d/%m/%Y')} ")
        state.event_list_area = area
        inner = Rect(area.x + 2, area.y + 1, max(0, area.width - 4), max(0, area.height - 2))
        indexed = list(enumerate(state.events))
        if not any(ce.event.occurs_on(day) for _, ce in indexed):
            self._placeholder(win, area, "No events for this day")
            return
        self._draw_cell_events(win, state, inner, day, indexed)

    def draw_week_view(self, win, state: AppState, area: Rect, work_week: bool):
        if work_week:
            first = week_start_monday(state.displayed_date)
            days = [first + timedelta(days=i) for i in range(5)]
        else:
            first = week_start_sunday(state.displayed_date)
            days = [first + timedelta(days=i) for i in range(7)]

        self._box(win, area, f" {state.scope_name()} ")
        state.event_list_area = area
        inner_x = area.x + 1
        inner_w = area.width - 2
        col_w = inner_w // len(days)
        if col_w < 3 or area.height < 4:
            return
        today = self.clock().date()
        indexed = list(enumerate(state.events))

        for i, day in enumerate(days):
            x = inner_x + i * col_w
            header = f"{WEEKDAY_NAMES[day.weekday()]} {day.strftime('%d/%m')}"
            header_attr = (self._highlight() if day == today
                           else self.palette.attr(self.theme.blue, bold=True))
            self._put(win, area.y + 1, x + max(0, (col_w - len(header)) // 2), header, header_attr, col_w)
            column = Rect(x, area.y + 1, col_w, area.height - 2)
            state.day_cells.append((column, day))
            cell = Rect(x + 1, area.y + 2, col_w - 2, area.height - 3)
            self._draw_cell_events(win, state, cell, day, indexed)
            if i:
                for y in range(area.y + 1, area.bottom - 1):
                    self._put(win, y, x, "│", self.palette.attr(self.theme.mauve))

    def draw_month_view(self, win, state: AppState, area: Rect):
        displayed = state.displayed_date
        self._box(win, area, f" {state.scope_name()} ")
        state.event_list_area = area
        inner = Rect(area.x + 1, area.y + 1, area.width - 2, area.height - 2)
        col_w = inner.width // 7
        row_h = (inner.height - 1) // 6
        if col_w < 3 or row_h < 1:
            return

        for i, name in enumerate(WEEKDAY_NAMES):
            self._put(win, inner.y, inner.x + i * col_w + max(0, (col_w - 3) // 2), name,
                      self.palette.attr(self.theme.blue, bold=True))

        first = displayed.replace(day=1)
        grid_start = week_start_monday(first)
        today = self.clock().date()
        indexed = list(enumerate(state.events))

        for week in range(6):
            for weekday in range(7):
                day = grid_start + timedelta(days=week * 7 + weekday)
                if day.month != displayed.month:
                    continue
                x = inner.x + weekday * col_w
                y = inner.y + 1 + week * row_h
                cell = Rect(x, y, col_w, row_h)
                state.day_cells.append((cell, day))
                number_attr = (self._highlight() if day == today
                               else self.palette.attr(self.theme.foreground, bold=True))
                self._put(win, y, x + 1, str(day.day), number_attr)
                if row_h > 1:
                    events_cell = Rect(x + 1, y + 1, col_w - 2, row_h - 1)
                    self._draw_cell_events(win, state, events_cell, day, indexed)

    # ----- overlays -----

    def draw_legend_block(self, win, state: AppState, area: Rect):
        self._box(win, area, " Legend ")
        for i, cc in enumerate(state.calendars[:max(0, area.height - 2)]):
            y = area.y + 1 + i
            self._put(win, y, area.x + 2, self.symbols.bullet, self.palette.attr(cc.color))
            self._put(win, y, area.x + 2 + len(self.symbols.bullet), cc.calendar.name,
                      self.palette.attr(self.theme.foreground), area.width - 4 - len(self.symbols.bullet))

    def draw_event_detail(self, win, state: AppState, area: Rect):
        color_event = state.selected_event()
        state.detail_area = area
        self._fill(win, area, self.palette.attr())
        self._box(win, area, " Event Details ")
        if color_event is None:
            return

        content_w = area.width - 4
        visible = area.height - 2
        lines = detail_lines(color_event.event, content_w)
        state.detail_max_scroll = max(0, len(lines) - visible)
        scroll = max(0, min(state.detail_scroll, state.detail_max_scroll))
        styles = {
            'title': self.palette.attr(color_event.color, bold=True),
            'heading': self.palette.attr(self.theme.yellow, bold=True),
            'plain': self.palette.attr(self.theme.foreground),
        }
        for row, (style, text) in enumerate(lines[scroll:scroll + visible]):
            self._put(win, area.y + 1 + row, area.x + 2, text, styles[style], content_w)

    def _legend_lines(self, win, state: AppState, area: Rect, y: int):
        for cc in state.calendars:
            if y >= area.bottom - 1:
                break
            self._put(win, y, area.x + 2, self.symbols.bullet, self.palette.attr(cc.color))
            self._put(win, y, area.x + 2 + len(self.symbols.bullet), cc.calendar.name,
                      self.palette.attr(self.theme.foreground), area.width - 4 - len(self.symbols.bullet))
            y += 1

    def draw_help_popup(self, win, state: AppState, area: Rect):
        self._fill(win, area, self.palette.attr())
        self._box(win, area, " Keyboard Shortcuts ")
        key_w = max(8, (area.width - 4) * 3 // 10)
        heading = self.palette.attr(self.theme.yellow, bold=True)
        self._put(win, area.y + 1, area.x + 2, "Key", heading)
        self._put(win, area.y + 1, area.x + 2 + key_w, "Action", heading)
        y = area.y + 3
        for key, action in HELP_ROWS:
            if y >= area.bottom - 1:
                return
            self._put(win, y, area.x + 2, key, self.palette.attr(self.theme.blue), key_w - 1)
            self._put(win, y, area.x + 2 + key_w, action, self.palette.attr(self.theme.foreground),
                      area.width - 4 - key_w)
            y += 1
        if state.calendars and y + 2 < area.bottom - 1:
            self._put(win, y + 1, area.x + 2, "Legend", heading)
            self._legend_lines(win, state, area, y + 2)

    def draw_legend_popup(self, win, state: AppState, area: Rect):
        self._fill(win, area, self.palette.attr())
        self._box(win, area, " Legend ")
        if not state.calendars:
            self._put(win, area.y + 1, area.x + 2, "No calendars", self.palette.attr(self.theme.yellow))
            return
        self._legend_lines(win, state, area, area.y + 1)

    def draw_dissolve(self, win, progress: float, width: int, height: int):
        """Cells whose hash is above progress are covered with a block glyph"""
        attr = self.palette.attr(self.theme.mauve)
        for y in range(height):
            run_x = None
            run = []
            for x in range(width + 1):
                glyph = None
                if x < width:
                    cell_hash = ((x * 31) ^ (y * 17)) % 100 / 100
                    if cell_hash > progress:
                        glyph = DISSOLVE_GLYPHS[min(int((cell_hash - progress) * len(DISSOLVE_GLYPHS)),
                                                    len(DISSOLVE_GLYPHS) - 1)]
                if glyph is not None:
                    if run_x is None:
                        run_x = x
                    run.append(glyph)
                elif run_x is not None:
                    self._put(win, y, run_x, "".join(run), attr)
                    run_x = None
                    run = []
