"""
Attendance and reminder scheduling.

Components:
- timing: Weekday mapping, reminder-time parsing, slot time-status
- notifier: Delivery seam (Notifier protocol) and the in-process LocalNotifier
- timetable: Weekly schedule persistence
- scheduler: Per-course reminder state machine and the daily digest
"""

from siakad.reminders.notifier import (
    DailyTrigger,
    LocalNotifier,
    NotificationContent,
    Notifier,
)
from siakad.reminders.scheduler import AttendanceScheduler, has_attended
from siakad.reminders.timetable import WEEKDAYS, Timetable
from siakad.reminders.timing import TimeStatus, time_status, weekday_index

__all__ = [
    "AttendanceScheduler",
    "has_attended",
    "DailyTrigger",
    "LocalNotifier",
    "NotificationContent",
    "Notifier",
    "Timetable",
    "WEEKDAYS",
    "TimeStatus",
    "time_status",
    "weekday_index",
]
