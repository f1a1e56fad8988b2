#!/usr/bin/env python3
"""
Tests for the renderer using an in-memory window instead of a terminal
"""

import sys
from datetime import date, datetime

import pytest

from cal365_tui.app_state import AppState, Transition
from cal365_tui.models import (
    Attendee,
    Calendar,
    ColorCalendar,
    ColorEvent,
    CurrentView,
    DateTimeTimeZone,
    EmailAddress,
    Event,
    ViewMode,
    to_local,
)
from cal365_tui.render import (
    DISSOLVE_GLYPHS,
    Renderer,
    detail_lines,
    html_to_text,
    list_row_text,
    wrap_text_lines,
)
from cal365_tui.theme import GLYPH_SETS, THEMES, Palette


class FakeWindow:
    """Character grid with the slice of the curses window API the renderer uses"""

    def __init__(self, height=40, width=120, keys=None):
        self.height = height
        self.width = width
        self.keys = list(keys or [])
        self.erase()

    def getmaxyx(self):
        return self.height, self.width

    def erase(self):
        self.grid = [[" "] * self.width for _ in range(self.height)]

    def addstr(self, y, x, text, attr=0):
        for i, ch in enumerate(text):
            if 0 <= y < self.height and 0 <= x + i < self.width:
                self.grid[y][x + i] = ch

    def refresh(self):
        pass

    def nodelay(self, flag):
        pass

    def getch(self):
        return self.keys.pop(0) if self.keys else -1

    def row(self, y):
        return "".join(self.grid[y])

    def text(self):
        return "\n".join(self.row(y) for y in range(self.height))

    def find(self, needle):
        """(y, x) of the first occurrence of needle"""
        for y in range(self.height):
            x = self.row(y).find(needle)
            if x != -1:
                return y, x
        return None


def make_renderer():
    return Renderer(Palette(THEMES["catppuccin"]), GLYPH_SETS["unicode"],
                    clock=lambda: datetime(2025, 3, 14, 12, 0))


def color_event(event_id, start, end, subject=None, color=(203, 166, 247)):
    return ColorEvent(Event(
        id=event_id,
        subject=subject or event_id,
        start=DateTimeTimeZone(start, "UTC"),
        end=DateTimeTimeZone(end, "UTC"),
    ), color)


def sample_state(**kwargs):
    cals = [ColorCalendar(Calendar("a", "Work", True), (203, 166, 247)),
            ColorCalendar(Calendar("b", "Personal", None), (245, 194, 231))]
    state = AppState(calendars=cals, **kwargs)
    return state


def test_wrap_text_lines():
    assert wrap_text_lines("short", 10) == ["short"]
    wrapped = wrap_text_lines("one two three four five", 10)
    assert all(len(line) <= 10 for line in wrapped), wrapped
    assert " ".join(part.strip() for part in wrapped) == "one two three four five"
    assert wrap_text_lines("abcdefghijklmnop", 5)[0] == "abcde", "Hard break without spaces"
    assert wrap_text_lines("anything", 0) == []


def test_html_to_text():
    text = html_to_text("<html><body><p>Agenda</p><ul><li>One</li><li>Two</li></ul></body></html>")
    assert "Agenda" in text and "One" in text and "Two" in text
    assert "<" not in text, "Markup removed"
    assert html_to_text(None) == ""
    assert html_to_text("plain text") == "plain text"


def test_calendar_list_frame():
    """Header, calendar rows and recorded regions"""
    print("\n" + "="*60)
    print("Testing calendar list frame")
    print("="*60)

    win = FakeWindow()
    state = sample_state()
    make_renderer().draw(win, state)

    assert win.find("Press ? for help"), "Help hint in the header"
    assert win.find("14/03/2025"), "Clock shows the date"
    y_all, _ = win.find("All Calendars")
    y_my, _ = win.find("My Calendars")
    y_work, _ = win.find("■ Work")
    assert y_all < y_my < y_work, "ALL, MY, then each calendar"
    assert "❯" in win.row(y_all), "Row 0 selected on startup"

    area = state.calendar_list_area
    assert area is not None and area.y + 1 == y_all, "First row just inside the border"
    assert state.help_area.contains(*reversed(win.find("Press ? for help")))
    assert [mode for _, mode in state.tab_areas] == [None, ViewMode.LIST, ViewMode.WEEK,
                                                     ViewMode.WORK_WEEK, ViewMode.DAY, ViewMode.MONTH]
    assert state.footer_prev_area is None, "No footer outside the events views"
    print("   ✓ Calendars frame laid out")


def test_list_view_rows_and_footer():
    state = sample_state(current_view=CurrentView.EVENTS, displayed_date=date(2025, 3, 14))
    state.events = [
        color_event("e1", "2025-03-14T09:00:00.0000000", "2025-03-14T10:00:00.0000000", "Standup"),
        color_event("e2", "2025-03-15T11:00:00.0000000", "2025-03-15T12:30:00.0000000", "Review"),
    ]
    state.event_selected = 1
    win = FakeWindow()
    make_renderer().draw(win, state)

    expected = list_row_text(state.events[0].event)
    start = to_local(datetime(2025, 3, 14, 9, 0))
    assert expected.startswith(f"{start.strftime('%d/%m')} | {start.strftime('%H:%M')} - ")
    assert expected.endswith("| Standup")
    assert win.find(expected), "List row rendered"
    y_review, _ = win.find("Review")
    assert "❯" in win.row(y_review), "Selected row highlighted"

    assert win.find("All Calendars - March 2025"), "Footer shows scope and period"
    assert win.find("Legend"), "Legend block shown for the ALL scope"
    assert state.legend_area is not None
    footer_y = win.height - 1
    assert state.footer_prev_area.y == footer_y and state.footer_next_area.y == footer_y
    assert state.footer_next_area.right <= win.width
    assert state.footer_prev_area.x < state.footer_next_area.x


def test_month_view_records_cells_and_event_lines():
    state = sample_state(current_view=CurrentView.EVENTS, event_view_mode=ViewMode.MONTH,
                         displayed_date=date(2025, 3, 14))
    state.events = [
        color_event("m1", "2025-03-14T10:00:00Z", "2025-03-15T00:00:00Z", "Midnight end"),
        color_event("m2", "2025-03-14T10:00:00Z", "2025-03-16T12:00:00Z", "Multi day"),
    ]
    win = FakeWindow(height=50, width=140)
    make_renderer().draw(win, state)

    cell_days = [day for _, day in state.day_cells]
    assert len(cell_days) == 31, "Only days of March get cells"
    assert cell_days[0] == date(2025, 3, 1)

    days_by_event = {}
    for rect, index in state.event_lines:
        day = next(d for r, d in state.day_cells if r.contains(rect.x, rect.y))
        days_by_event.setdefault(state.events[index].event.id, set()).add(day)
    assert days_by_event["m1"] == {date(2025, 3, 14)}, f"Got {days_by_event['m1']}"
    assert days_by_event["m2"] == {date(2025, 3, 14), date(2025, 3, 15), date(2025, 3, 16)}
    print("   ✓ Day intersection follows the effective end date")


def test_week_views_columns():
    state = sample_state(current_view=CurrentView.EVENTS, event_view_mode=ViewMode.WEEK,
                         displayed_date=date(2025, 3, 14))
    win = FakeWindow()
    make_renderer().draw(win, state)
    days = [day for _, day in state.day_cells]
    assert days == [date(2025, 3, 9 + i) for i in range(7)], "Sunday to Saturday"
    assert win.find("Sun 09/03")

    state.event_view_mode = ViewMode.WORK_WEEK
    make_renderer().draw(win, state)
    days = [day for _, day in state.day_cells]
    assert days == [date(2025, 3, 10 + i) for i in range(5)], "Monday to Friday"


def test_day_view_placeholder_and_lines():
    state = sample_state(current_view=CurrentView.EVENTS, event_view_mode=ViewMode.DAY,
                         displayed_date=date(2025, 3, 14))
    win = FakeWindow()
    make_renderer().draw(win, state)
    assert win.find("No events for this day")
    assert state.event_lines == []

    state.events = [color_event("d1", "2025-03-14T09:00:00", "2025-03-14T10:00:00", "Focus")]
    make_renderer().draw(win, state)
    assert win.find("Focus")
    assert [index for _, index in state.event_lines] == [0]
    assert state.day_cells == [], "Day view has no clickable day cells"


def test_detail_popup():
    state = sample_state(current_view=CurrentView.EVENT_DETAIL, displayed_date=date(2025, 3, 14))
    event = Event(
        id="x",
        subject="Quarterly review",
        start=DateTimeTimeZone("2025-03-14T09:00:00", "UTC"),
        end=DateTimeTimeZone("2025-03-14T10:00:00", "UTC"),
        body="<p>Bring <b>numbers</b></p>",
        location="Room 4",
        organizer=EmailAddress("Ada", "ada@example.com"),
        attendees=[Attendee(EmailAddress("Bob", "bob@example.com")), Attendee(EmailAddress(None, "c@example.com"))],
    )
    state.events = [ColorEvent(event, (1, 1, 1))]
    state.event_selected = 0
    win = FakeWindow()
    make_renderer().draw(win, state)

    start = to_local(datetime(2025, 3, 14, 9, 0))
    end = to_local(datetime(2025, 3, 14, 10, 0))
    assert win.find(f"When: {start.strftime('%d/%m/%Y')} from {start.strftime('%H:%M')} to {end.strftime('%H:%M')}")
    assert win.find("Organizer: Ada <ada@example.com>")
    assert win.find("Location: Room 4")
    assert win.find("Attendees: Bob, c@example.com")
    assert win.find("numbers"), "Body converted from HTML"
    area = state.detail_area
    assert area.width == win.width * 80 // 100 and area.height == win.height * 80 // 100

    print("\n2. Scrolling past the content:")
    event.body = "\n".join(f"<p>Paragraph {i}</p>" for i in range(60))
    lines = detail_lines(event, area.width - 4)
    visible = area.height - 2
    state.detail_scroll = 999
    make_renderer().draw(win, state)
    assert state.detail_scroll == 999, "Drawing leaves the scroll position alone"
    assert state.detail_max_scroll == len(lines) - visible
    last_text = lines[-1][1]
    assert win.find(last_text), f"Last page shown: {last_text!r}"
    first_shown = win.row(area.y + 1)[area.x + 2:area.right - 2].rstrip()
    assert first_shown == lines[state.detail_max_scroll][1], f"Popup starts at the clamped line: {first_shown!r}"

    state.detail_scroll = state.detail_max_scroll
    state.scroll_down()
    assert state.detail_scroll == state.detail_max_scroll, "scroll_down stops at the last page"
    state.scroll_up()
    assert state.detail_scroll == state.detail_max_scroll - 1
    print("   ✓ Clamped on screen, stepped in the view model")


def test_help_and_legend_popups():
    state = sample_state()
    state.show_help = True
    win = FakeWindow()
    make_renderer().draw(win, state)
    assert win.find("Keyboard Shortcuts")
    assert win.find("Cycle views")
    assert win.find("Legend"), "Legend listed under the key table"

    state.show_help = False
    state.show_legend = True
    win = FakeWindow()
    make_renderer().draw(win, state)
    assert win.find(" Legend ")


def test_dissolve_overlay():
    """Progress 0 covers every cell with hash > 0; later frames cover fewer"""
    state = sample_state()
    win = FakeWindow(height=20, width=60)
    renderer = make_renderer()

    state.transition = Transition(start=0.0, duration=1.0)
    renderer.draw(win, state, now=0.0)
    covered_start = sum(ch in DISSOLVE_GLYPHS[:-1] for ch in win.text())
    # x=0, y=0 hashes to 0 and is never covered
    assert win.grid[0][0] not in DISSOLVE_GLYPHS[:-1] or win.grid[0][0] == "╭"

    x, y = 3, 1
    cell_hash = ((x * 31) ^ (y * 17)) % 100 / 100
    expected = DISSOLVE_GLYPHS[min(int(cell_hash * 8), 7)]
    assert win.grid[y][x] == expected, f"Cell ({x},{y}) should be {expected!r}"

    renderer.draw(win, state, now=0.8)
    covered_late = sum(ch in DISSOLVE_GLYPHS[:-1] for ch in win.text())
    assert covered_late < covered_start, "Overlay thins out as progress grows"

    state.transition = Transition(start=0.0, duration=1.0)
    renderer.draw(win, state, now=1.0)
    assert not any(ch in DISSOLVE_GLYPHS[:-1] for ch in win.text()), "No dissolve at progress 1"


def test_small_window_does_not_crash():
    for height, width in [(5, 20), (10, 40), (3, 10)]:
        for mode in ViewMode:
            state = sample_state(current_view=CurrentView.EVENTS, event_view_mode=mode,
                                 displayed_date=date(2025, 3, 14))
            state.events = [color_event("e", "2025-03-14T09:00:00", "2025-03-14T10:00:00")]
            make_renderer().draw(FakeWindow(height, width), state)


if __name__ == '__main__':
    sys.exit(pytest.main([__file__, "-v", "-s"]))
