#!/usr/bin/env python3
"""
Interactive Terminal Calendar Application
Shows Microsoft 365 calendars from Microsoft Graph, cached in a local SQLite file

Requirements:
    pip install httpx msal keyring beautifulsoup4
"""

import argparse
import asyncio
import curses
import logging
import os
import sys
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional, Set, Union

from cal365_tui.app_state import (
    STARTUP_TRANSITION_MS,
    TRANSITION_MS,
    AppState,
    get_view_date_range,
)
from cal365_tui.auth import AuthError, Authenticator
from cal365_tui.config import (
    LOG_FILE_NAME,
    ConfigError,
    Settings,
    db_path,
    load_settings,
    settings_path,
)
from cal365_tui.models import (
    Calendar,
    ColorCalendar,
    ColorEvent,
    CurrentView,
    ViewMode,
    sort_events,
)
from cal365_tui.notifications import NotificationManager
from cal365_tui.remote import AuthorizationExpired, GraphClient, RemoteError
from cal365_tui.render import Renderer
from cal365_tui.store import EventStore, StoreError
from cal365_tui.theme import Palette, calendar_color, resolve_symbols, resolve_theme

logger = logging.getLogger(__name__)

KEY_ESC = 27
KEY_TAB = 9
ENTER_KEYS = (10, 13, curses.KEY_ENTER)

NOTIFICATION_CHECK_SECONDS = 60
POLL_TIMEOUT_TRANSITION = 0.016
POLL_TIMEOUT_IDLE = 0.25
# getch is non-blocking; sleep this long between polls
POLL_SLICE = 0.008


@dataclass
class Refresh:
    """Timer tick: reload the events view"""


@dataclass
class EventsLoaded:
    events: List[ColorEvent] = field(default_factory=list)


@dataclass
class TokenExpired:
    """Graph rejected the access token during a fetch"""


Message = Union[Refresh, EventsLoaded, TokenExpired]


@dataclass
class MouseEvent:
    x: int
    y: int
    kind: str = 'click'  # 'click', 'scroll_up' or 'scroll_down'


class CalendarTUI:
    """Terminal UI for browsing Microsoft 365 calendars"""

    def __init__(self, stdscr, state: AppState, store: EventStore, graph: GraphClient,
                 authenticator: Authenticator, notifications: NotificationManager,
                 renderer: Renderer, refresh_interval_minutes: int = 5):
        self.stdscr = stdscr
        self.state = state
        self.store = store
        self.graph = graph
        self.authenticator = authenticator
        self.notifications = notifications
        self.renderer = renderer
        self.refresh_interval_minutes = refresh_interval_minutes

        # Snapshot per fetch; replaced after a token refresh
        self.access_token: Optional[str] = authenticator.access_token

        # Single slot: background tasks wait until the loop has taken the last message
        self.messages: asyncio.Queue = asyncio.Queue(maxsize=1)
        self.background_tasks: Set[asyncio.Task] = set()
        self.timer_task: Optional[asyncio.Task] = None

        self.needs_refresh = False
        self.running = True
        self.last_notification_check: Optional[float] = None

    # ----- main loop -----

    async def run(self):
        """Main event loop"""
        self.stdscr.nodelay(True)
        self.timer_task = asyncio.create_task(self._refresh_timer())

        if self.state.calendars:
            await self.refresh_events()
        self.state.start_transition(STARTUP_TRANSITION_MS)
        # first notification scan one interval after startup
        self.last_notification_check = time.monotonic()

        try:
            while self.running:
                await self.step()
        finally:
            await self.shutdown()

    async def step(self):
        """One loop iteration: draw, notify, poll input, drain a message, refresh"""
        self.renderer.draw(self.stdscr, self.state)

        now = time.monotonic()
        if (self.last_notification_check is None
                or now - self.last_notification_check >= NOTIFICATION_CHECK_SECONDS):
            self.notifications.check(self.state.events)
            self.last_notification_check = now

        timeout = POLL_TIMEOUT_TRANSITION if self.state.transition_active() else POLL_TIMEOUT_IDLE
        self.state.clear_expired_transition()

        item = await self._poll_input(timeout)
        if isinstance(item, MouseEvent):
            self.handle_mouse(item)
        elif item is not None:
            if self.state.transition_active():
                logger.debug(f"Dropped key {item} during transition")
            else:
                self.handle_key(item)

        try:
            message = self.messages.get_nowait()
        except asyncio.QueueEmpty:
            message = None
        if message is not None:
            await self.handle_message(message)

        if self.needs_refresh and self.running:
            self.needs_refresh = False
            await self.refresh_events()

    async def shutdown(self):
        """Cancel the timer and any fetch still running"""
        tasks = list(self.background_tasks)
        if self.timer_task:
            tasks.append(self.timer_task)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.background_tasks.clear()

    async def _poll_input(self, timeout: float) -> Optional[Union[int, MouseEvent]]:
        """Wait up to timeout for a key or mouse event"""
        deadline = time.monotonic() + timeout
        while True:
            try:
                key = self.stdscr.getch()
            except curses.error:
                key = -1

            if key == curses.KEY_MOUSE:
                mouse = self._read_mouse()
                if mouse is not None:
                    return mouse
            elif key == curses.KEY_RESIZE:
                return None  # next frame picks up the new size
            elif key != -1:
                return key

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            await asyncio.sleep(min(POLL_SLICE, remaining))

    def _read_mouse(self) -> Optional[MouseEvent]:
        try:
            _, x, y, _, bstate = curses.getmouse()
        except curses.error:
            return None
        if bstate & (curses.BUTTON1_PRESSED | curses.BUTTON1_CLICKED):
            return MouseEvent(x, y, 'click')
        if bstate & curses.BUTTON4_PRESSED:
            return MouseEvent(x, y, 'scroll_up')
        # BUTTON5 is missing from older ncurses builds
        if bstate & getattr(curses, 'BUTTON5_PRESSED', 0):
            return MouseEvent(x, y, 'scroll_down')
        return None

    # ----- keyboard -----

    def handle_key(self, key: int):
        """Dispatch a key press for the current view"""
        state = self.state

        if state.show_help:
            if key in (KEY_ESC, ord('q'), ord('?')) or key in ENTER_KEYS:
                state.show_help = False
            return
        if state.show_legend:
            if key in (KEY_ESC, ord('q'), ord('l'), ord('L')) or key in ENTER_KEYS:
                state.show_legend = False
            return

        if key == ord('?'):
            state.show_help = True
            return
        if key in (ord('l'), ord('L')):
            state.show_legend = True
            return

        if state.current_view == CurrentView.CALENDARS:
            self._handle_calendars_key(key)
        elif state.current_view == CurrentView.EVENTS:
            self._handle_events_key(key)
        else:
            self._handle_detail_key(key)

    def _handle_calendars_key(self, key: int):
        state = self.state
        if key == ord('q'):
            self.running = False
        elif key == curses.KEY_DOWN:
            state.next_item()
        elif key == curses.KEY_UP:
            state.previous_item()
        elif key in ENTER_KEYS:
            if state.calendar_selected is not None and state.enter_calendar(state.calendar_selected):
                self.needs_refresh = True

    def _handle_events_key(self, key: int):
        state = self.state
        if key == ord('q'):
            self.running = False
        elif key in (ord('b'), KEY_ESC):
            state.back_to_calendars(date.today())
        elif key == ord('r'):
            self.needs_refresh = True
        elif key == KEY_TAB:
            state.toggle_event_view()
            self.needs_refresh = True
        elif key in ENTER_KEYS:
            state.open_detail()
        elif key == curses.KEY_DOWN:
            state.next_item()
        elif key == curses.KEY_UP:
            state.previous_item()
        elif key == ord('a'):
            state.step_back()
            self.needs_refresh = True
        elif key == ord('d'):
            state.step_forward()
            self.needs_refresh = True
        elif key == curses.KEY_LEFT:
            state.jump_to_previous_day()
        elif key == curses.KEY_RIGHT:
            state.jump_to_next_day()

    def _handle_detail_key(self, key: int):
        state = self.state
        if key == ord('q'):
            self.running = False
        elif key in (ord('b'), KEY_ESC):
            state.close_detail()
        elif key == curses.KEY_DOWN:
            state.scroll_down()
        elif key == curses.KEY_UP:
            state.scroll_up()

    # ----- mouse -----

    def handle_mouse(self, mouse: MouseEvent):
        """Resolve a mouse event against the regions of the last frame"""
        state = self.state

        if state.show_help or state.show_legend:
            if mouse.kind == 'click':
                state.show_help = False
                state.show_legend = False
            return

        if mouse.kind != 'click':
            self._handle_scroll(mouse.kind == 'scroll_down')
            return

        if state.current_view == CurrentView.EVENT_DETAIL:
            # clicks inside the popup do nothing
            if state.detail_area is None or not state.detail_area.contains(mouse.x, mouse.y):
                state.close_detail()
            return

        if state.help_area and state.help_area.contains(mouse.x, mouse.y):
            state.show_help = True
            return
        if state.legend_area and state.legend_area.contains(mouse.x, mouse.y):
            state.show_legend = True
            return

        if state.current_view == CurrentView.EVENTS:
            if state.footer_prev_area and state.footer_prev_area.contains(mouse.x, mouse.y):
                state.step_back()
                self.needs_refresh = True
                return
            if state.footer_next_area and state.footer_next_area.contains(mouse.x, mouse.y):
                state.step_forward()
                self.needs_refresh = True
                return

        for rect, mode in state.tab_areas:
            if rect.contains(mouse.x, mouse.y):
                self._select_tab(mode)
                return

        if state.current_view == CurrentView.CALENDARS:
            self._click_calendar_list(mouse)
        else:
            self._click_events(mouse)

    def _select_tab(self, mode: Optional[ViewMode]):
        state = self.state
        if mode is None:
            if state.current_view != CurrentView.CALENDARS:
                state.back_to_calendars(date.today())
            return
        if state.current_view == CurrentView.EVENTS and state.event_view_mode == mode:
            return
        state.current_view = CurrentView.EVENTS
        state.event_view_mode = mode
        state.start_transition(TRANSITION_MS)
        self.needs_refresh = True

    def _click_calendar_list(self, mouse: MouseEvent):
        state = self.state
        area = state.calendar_list_area
        if area is None or not area.contains(mouse.x, mouse.y):
            return
        row = mouse.y - area.y - 1
        # borders are not rows
        if not 0 <= row < area.height - 2:
            return
        index = state.calendar_offset + row
        if state.enter_calendar(index):
            self.needs_refresh = True

    def _click_events(self, mouse: MouseEvent):
        state = self.state
        if state.event_view_mode == ViewMode.LIST:
            area = state.event_list_area
            if area is None or not area.contains(mouse.x, mouse.y):
                return
            row = mouse.y - area.y - 1
            index = state.event_offset + row
            if 0 <= row < area.height - 2 and index < len(state.events):
                state.event_selected = index
                state.open_detail()
            return

        for rect, index in state.event_lines:
            if rect.contains(mouse.x, mouse.y):
                state.event_selected = index
                state.open_detail()
                return

        if state.event_view_mode == ViewMode.DAY:
            return
        for rect, day in state.day_cells:
            if rect.contains(mouse.x, mouse.y):
                state.switch_to_list_at(day)
                self.needs_refresh = True
                return

    def _handle_scroll(self, down: bool):
        state = self.state
        if state.current_view == CurrentView.EVENT_DETAIL:
            if down:
                state.scroll_down()
            else:
                state.scroll_up()
        elif state.current_view == CurrentView.CALENDARS or state.event_view_mode == ViewMode.LIST:
            if down:
                state.next_item()
            else:
                state.previous_item()
        else:
            if down:
                state.step_forward()
            else:
                state.step_back()
            self.needs_refresh = True

    # ----- messages -----

    async def handle_message(self, message: Message):
        state = self.state
        if isinstance(message, Refresh):
            if state.current_view == CurrentView.EVENTS:
                self.needs_refresh = True
        elif isinstance(message, EventsLoaded):
            events = sort_events(message.events)
            self.notifications.check(events)
            state.events = events
            state.select_nearest_event()
            logger.debug(f"Loaded {len(events)} events")
        elif isinstance(message, TokenExpired):
            try:
                self.access_token = await asyncio.to_thread(self.authenticator.refresh_access_token)
            except AuthError as e:
                logger.error(f"Token refresh failed: {e}")
            else:
                self.needs_refresh = True

    async def _post(self, message: Message):
        await self.messages.put(message)

    async def _refresh_timer(self):
        """Post Refresh every refresh_interval_minutes"""
        while True:
            await asyncio.sleep(self.refresh_interval_minutes * 60)
            await self._post(Refresh())

    # ----- refresh pipeline -----

    async def refresh_events(self):
        """Show cached events now, then fetch the visible range in the background"""
        state = self.state
        calendars = state.calendars_for_scope()
        start, end = get_view_date_range(state.event_view_mode, state.displayed_date)

        cached: List[ColorEvent] = []
        for cc in calendars:
            try:
                events = await asyncio.to_thread(self.store.events_for, cc.calendar.id)
            except StoreError as e:
                logger.error(f"Could not read cached events for {cc.calendar.name}: {e}")
                continue
            cached.extend(ColorEvent(e, cc.color) for e in events)

        if cached:
            state.events = sort_events(cached)
            if state.event_selected is None or state.event_selected >= len(state.events):
                state.event_selected = 0

        logger.debug(f"Refreshing {len(calendars)} calendar(s) for {start:%Y-%m-%d} - {end:%Y-%m-%d}")
        task = asyncio.create_task(self._fetch_events(self.access_token, calendars, start, end))
        self.background_tasks.add(task)
        task.add_done_callback(self.background_tasks.discard)

    async def _fetch_events(self, token: str, calendars: List[ColorCalendar],
                            start: datetime, end: datetime):
        """Fetch every calendar concurrently, persist the results and post them"""
        results = await asyncio.gather(
            *(self.graph.list_events(token, cc.calendar.id, start, end) for cc in calendars),
            return_exceptions=True,
        )

        if any(isinstance(r, AuthorizationExpired) for r in results):
            logger.info("Access token expired during fetch")
            await self._post(TokenExpired())
            return

        collected: List[ColorEvent] = []
        succeeded = 0
        for cc, result in zip(calendars, results):
            if isinstance(result, BaseException):
                if isinstance(result, RemoteError):
                    logger.error(f"Fetching {cc.calendar.name} failed: {result}")
                else:
                    logger.error(f"Unexpected error fetching {cc.calendar.name}", exc_info=result)
                # keep showing what the cache has for this calendar
                try:
                    fallback = await asyncio.to_thread(self.store.events_for, cc.calendar.id)
                except StoreError as e:
                    logger.error(f"Could not read cached events for {cc.calendar.name}: {e}")
                    continue
                collected.extend(ColorEvent(e, cc.color) for e in fallback)
                continue

            succeeded += 1
            try:
                await asyncio.to_thread(self.store.upsert_events_for_range, cc.calendar.id, start, end, result)
            except StoreError as e:
                logger.error(f"Could not cache events for {cc.calendar.name}: {e}")
            collected.extend(ColorEvent(e, cc.color) for e in result)

        if calendars and not succeeded:
            logger.warning("No calendar could be fetched; keeping cached events")
            return
        await self._post(EventsLoaded(collected))


def setup_logging(debug: bool):
    """Debug log to a file; otherwise nothing may reach the terminal"""
    if debug:
        logging.basicConfig(
            filename=LOG_FILE_NAME,
            level=logging.DEBUG,
            format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        )
    else:
        logging.basicConfig(level=logging.WARNING, handlers=[logging.NullHandler()])


def color_calendars(calendars: List[Calendar], settings: Settings) -> List[ColorCalendar]:
    return [
        ColorCalendar(c, calendar_color(i, c, settings.calendar_overrides))
        for i, c in enumerate(calendars)
    ]


async def load_calendars(store: EventStore, graph: GraphClient, token: str) -> List[Calendar]:
    """Cached calendars, or fetch and cache them on first run"""
    try:
        calendars = await asyncio.to_thread(store.get_calendars)
    except StoreError as e:
        logger.error(f"Could not read cached calendars: {e}")
        calendars = []
    if calendars:
        return calendars

    try:
        calendars = await graph.list_calendars(token)
    except RemoteError as e:
        logger.error(f"Could not fetch calendars: {e}")
        return []
    try:
        await asyncio.to_thread(store.upsert_calendars, calendars)
    except StoreError as e:
        logger.error(f"Could not cache calendars: {e}")
    return calendars


async def build_state(store: EventStore, calendars: List[ColorCalendar]) -> AppState:
    """Initial state: calendar list with ALL selected, cached events preloaded"""
    state = AppState(calendars=calendars)
    cached: List[ColorEvent] = []
    for cc in calendars:
        try:
            events = await asyncio.to_thread(store.events_for, cc.calendar.id)
        except StoreError as e:
            logger.error(f"Could not read cached events for {cc.calendar.name}: {e}")
            continue
        cached.extend(ColorEvent(e, cc.color) for e in events)
    if cached:
        state.events = sort_events(cached)
        state.select_nearest_event()
    return state


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description='Microsoft 365 calendar in the terminal')
    parser.add_argument('--debug', action='store_true', help=f'Write a debug log to {LOG_FILE_NAME}')
    args = parser.parse_args()

    try:
        settings = load_settings()
    except ConfigError as e:
        print("ERROR: Could not find or read the configuration file.")
        print(f"  {e}")
        print(f"Edit {e.path or settings_path()} and set client_id to your application's client ID.")
        sys.exit(1)

    setup_logging(args.debug or settings.enable_debug_log)
    logger.info("Starting 365cal-tui")

    try:
        store = EventStore(db_path())
    except StoreError as e:
        print(f"ERROR: Could not open the event cache: {e}")
        sys.exit(1)

    authenticator = Authenticator(settings.client_id)
    try:
        authenticator.authenticate()
    except AuthError as e:
        print(f"ERROR: Authentication failed: {e}")
        sys.exit(1)

    palette = Palette(resolve_theme(settings.theme, settings.custom_themes))
    symbols = resolve_symbols(settings.glyph_set_name(), settings.custom_fonts, settings.symbols)
    notifications = NotificationManager(
        enabled=settings.enable_notifications,
        minutes_before=settings.notification_minutes_before,
    )

    async def async_run_app(stdscr):
        """Async function that runs inside curses"""
        async with GraphClient() as graph:
            calendars = await load_calendars(store, graph, authenticator.access_token)
            state = await build_state(store, color_calendars(calendars, settings))
            app = CalendarTUI(
                stdscr, state, store, graph, authenticator, notifications,
                Renderer(palette, symbols),
                refresh_interval_minutes=settings.refresh_interval_minutes,
            )
            await app.run()

    def curses_main(stdscr):
        """Curses wrapper function - runs the async event loop"""
        try:
            curses.curs_set(0)
        except curses.error:
            pass  # terminal can't hide the cursor
        curses.mousemask(curses.ALL_MOUSE_EVENTS | curses.REPORT_MOUSE_POSITION)
        curses.mouseinterval(0)
        palette.start()
        stdscr.bkgd(' ', palette.attr())
        asyncio.run(async_run_app(stdscr))

    # Esc should act immediately rather than wait for an escape sequence
    os.environ.setdefault('ESCDELAY', '25')

    try:
        curses.wrapper(curses_main)
    except KeyboardInterrupt:
        pass
    logger.info("Exiting")


if __name__ == '__main__':
    main()
