"""
Unit tests for the in-process notifier.
"""

from datetime import datetime, timedelta

import pytest

from siakad.errors import SchedulingError
from siakad.reminders.notifier import DailyTrigger, LocalNotifier, NotificationContent

CONTENT = NotificationContent(title="Ingat Presensi", body="Belum presensi: Algoritma")
EIGHT = datetime(2026, 1, 12, 8, 0)


def trigger(first=EIGHT, repeats=True):
    return DailyTrigger(hour=first.hour, minute=first.minute, first_fire=first, repeats=repeats)


class TestLocalNotifier:
    """Tests for LocalNotifier scheduling and delivery."""

    def test_schedule_and_cancel(self, notifier):
        handle = notifier.schedule(CONTENT, trigger())
        assert notifier.is_live(handle)

        notifier.cancel(handle)
        assert not notifier.is_live(handle)

    def test_cancel_unknown_is_noop(self, notifier):
        notifier.cancel("missing")

    def test_disabled_raises(self):
        with pytest.raises(SchedulingError):
            LocalNotifier(enabled=False).schedule(CONTENT, trigger())

    def test_deliver_due_fires_and_repeats_daily(self, notifier):
        seen = []
        notifier.on_delivered(seen.append)
        handle = notifier.schedule(CONTENT, trigger())

        assert notifier.deliver_due(EIGHT - timedelta(minutes=1)) == []
        assert notifier.deliver_due(EIGHT) == [CONTENT]
        assert notifier.deliver_due(EIGHT + timedelta(hours=1)) == []

        assert seen == [CONTENT]
        assert notifier.is_live(handle)
        assert notifier.scheduled()[0].next_fire == EIGHT + timedelta(days=1)

    def test_one_shot_is_removed(self, notifier):
        handle = notifier.schedule(CONTENT, trigger(repeats=False))
        notifier.deliver_due(EIGHT)
        assert not notifier.is_live(handle)

    def test_missed_days_fire_once(self, notifier):
        notifier.schedule(CONTENT, trigger())
        assert len(notifier.deliver_due(EIGHT + timedelta(days=3))) == 1
        assert notifier.scheduled()[0].next_fire == EIGHT + timedelta(days=4)

    def test_unsubscribe(self, notifier):
        seen = []
        unsubscribe = notifier.on_delivered(seen.append)
        unsubscribe()
        notifier.deliver(CONTENT)
        assert seen == []

    def test_failing_callback_does_not_block_others(self, notifier):
        seen = []

        def broken(content):
            raise RuntimeError("boom")

        notifier.on_delivered(broken)
        notifier.on_delivered(seen.append)
        notifier.deliver(CONTENT)

        assert seen == [CONTENT]
