"""
Desktop reminders for events that are about to start.
"""

import logging
import subprocess
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional, Set

from cal365_tui.models import ColorEvent, Event, to_local

logger = logging.getLogger(__name__)

APP_NAME = "365cal-tui"
APP_ICON = "calendar"


class NotificationError(Exception):
    """Raised when a desktop notification could not be shown"""


def send_desktop_notification(summary: str, body: str):
    """Show a notification through notify-send"""
    try:
        result = subprocess.run(
            ["notify-send", "-a", APP_NAME, "-i", APP_ICON, summary, body],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            timeout=5,
        )
    except (OSError, subprocess.SubprocessError) as e:
        raise NotificationError(f"notify-send failed: {e}") from e
    if result.returncode != 0:
        stderr = result.stderr.decode(errors='replace').strip() if result.stderr else ''
        raise NotificationError(f"notify-send exited with {result.returncode}: {stderr}")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NotificationManager:
    """Fires one reminder per event id when its start enters the lead window"""

    def __init__(self, enabled: bool = True, minutes_before: int = 15,
                 notifier: Optional[Callable[[str, str], None]] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.enabled = enabled
        self.minutes_before = minutes_before
        self.notifier = notifier or send_desktop_notification
        self.clock = clock or _utc_now
        # never pruned; a restart starts from scratch
        self.notified_ids: Set[str] = set()

    def check(self, events: Iterable):
        """Notify for every event with now < start <= now + lead not seen before"""
        if not self.enabled:
            return

        now = self.clock()
        window_end = now + timedelta(minutes=self.minutes_before)

        for item in events:
            event: Event = item.event if isinstance(item, ColorEvent) else item
            if event.id in self.notified_ids:
                continue
            try:
                start = event.start_dt().replace(tzinfo=timezone.utc)
            except ValueError:
                logger.debug(f"Skipping notification check for {event.id}: bad start {event.start.date_time!r}")
                continue

            if now < start <= window_end:
                self.notified_ids.add(event.id)
                body = f"Starting at {to_local(start.replace(tzinfo=None)).strftime('%H:%M')}"
                try:
                    self.notifier(event.subject, body)
                    logger.info(f"Notified: {event.subject} ({body})")
                except NotificationError as e:
                    logger.error(f"Could not notify for {event.subject}: {e}")
