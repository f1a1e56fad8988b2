#!/usr/bin/env python3
"""
Tests for the one-shot notification scheduler
"""

import subprocess
import sys
import unittest.mock as mock
from datetime import datetime, timezone

import pytest

from cal365_tui.models import ColorEvent, DateTimeTimeZone, Event, to_local
from cal365_tui.notifications import (
    NotificationError,
    NotificationManager,
    send_desktop_notification,
)


def make_event(event_id, start, subject):
    return Event(
        id=event_id,
        subject=subject,
        start=DateTimeTimeZone(start, "UTC"),
        end=DateTimeTimeZone(start, "UTC"),
    )


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def test_one_shot_notification():
    """Repeated checks inside the window notify once per event"""
    print("\n" + "="*60)
    print("Testing one-shot notifications")
    print("="*60)

    clock = FakeClock(datetime(2025, 3, 14, 9, 0, tzinfo=timezone.utc))
    sent = []
    manager = NotificationManager(enabled=True, minutes_before=15,
                                  notifier=lambda title, body: sent.append((title, body)),
                                  clock=clock)
    events = [
        ColorEvent(make_event("e1", "2025-03-14T09:10:00.0000000", "Standup"), (0, 0, 0)),
        make_event("later", "2025-03-14T11:00:00.0000000", "Lunch"),
        make_event("past", "2025-03-14T08:50:00.0000000", "Breakfast"),
    ]

    print("\n1. Three checks at 09:00:")
    for _ in range(3):
        manager.check(events)
    assert len(sent) == 1, f"Expected one notification, got {sent}"
    expected_time = to_local(datetime(2025, 3, 14, 9, 10)).strftime('%H:%M')
    assert sent[0] == ("Standup", f"Starting at {expected_time}"), f"Got {sent[0]}"
    print(f"   ✓ {sent[0]}")

    print("\n2. Check again at 09:11:")
    clock.now = datetime(2025, 3, 14, 9, 11, tzinfo=timezone.utc)
    manager.check(events)
    assert len(sent) == 1, "No further notification for e1"
    print("   ✓ Nothing new")


def test_window_bounds():
    """start == now is excluded, start == now + lead is included"""
    clock = FakeClock(datetime(2025, 3, 14, 9, 0, tzinfo=timezone.utc))
    sent = []
    manager = NotificationManager(minutes_before=15, notifier=lambda t, b: sent.append(t), clock=clock)
    manager.check([
        make_event("now", "2025-03-14T09:00:00", "Now"),
        make_event("edge", "2025-03-14T09:15:00", "Edge"),
        make_event("beyond", "2025-03-14T09:15:01", "Beyond"),
    ])
    assert sent == ["Edge"], f"Got {sent}"


def test_disabled_and_unparseable():
    clock = FakeClock(datetime(2025, 3, 14, 9, 0, tzinfo=timezone.utc))
    sent = []
    disabled = NotificationManager(enabled=False, notifier=lambda t, b: sent.append(t), clock=clock)
    disabled.check([make_event("e1", "2025-03-14T09:10:00", "Standup")])
    assert sent == [], "Disabled scheduler never notifies"

    enabled = NotificationManager(notifier=lambda t, b: sent.append(t), clock=clock)
    enabled.check([make_event("bad", "soon", "Broken"), make_event("e1", "2025-03-14T09:10:00", "Standup")])
    assert sent == ["Standup"], "Bad start times are skipped without aborting the scan"


def test_failed_notification_is_not_retried():
    clock = FakeClock(datetime(2025, 3, 14, 9, 0, tzinfo=timezone.utc))
    notifier = mock.Mock(side_effect=NotificationError("no daemon"))
    manager = NotificationManager(notifier=notifier, clock=clock)
    event = make_event("e1", "2025-03-14T09:10:00", "Standup")
    manager.check([event])
    manager.check([event])
    assert notifier.call_count == 1, "A failed notification is logged, not retried"


def test_send_desktop_notification_uses_notify_send():
    with mock.patch("cal365_tui.notifications.subprocess.run") as run:
        run.return_value = subprocess.CompletedProcess(args=[], returncode=0, stderr=b"")
        send_desktop_notification("Standup", "Starting at 09:10")
    args = run.call_args[0][0]
    assert args == ["notify-send", "-a", "365cal-tui", "-i", "calendar", "Standup", "Starting at 09:10"], args

    with mock.patch("cal365_tui.notifications.subprocess.run", side_effect=FileNotFoundError("notify-send")):
        with pytest.raises(NotificationError):
            send_desktop_notification("Standup", "Starting at 09:10")

    with mock.patch("cal365_tui.notifications.subprocess.run") as run:
        run.return_value = subprocess.CompletedProcess(args=[], returncode=1, stderr=b"boom")
        with pytest.raises(NotificationError):
            send_desktop_notification("Standup", "Starting at 09:10")
    print("   ✓ notify-send invoked, failures raise NotificationError")


if __name__ == '__main__':
    sys.exit(pytest.main([__file__, "-v", "-s"]))
