"""
Attendance tracking and reminder scheduling.

Each course is either without a reminder or holds exactly one live daily
reminder handle. Every (re)schedule cancels the previous handle first, and
a single global digest lists today's classes at the same preferred time.

Notifier failures never propagate: the course simply has no reminder.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

from loguru import logger

from siakad.core.ids import LocalIdGenerator
from siakad.core.models import Course
from siakad.errors import SchedulingError, ValidationError
from siakad.reminders.notifier import DailyTrigger, NotificationContent, Notifier
from siakad.reminders.timetable import Timetable
from siakad.reminders.timing import (
    day_key,
    format_notif_time,
    is_valid_notif_time,
    next_fire_time,
    parse_notif_time,
    weekday_index,
)
from siakad.storage.local_store import COURSES_KEY, NOTIF_TIME_KEY, SUMMARY_ID_KEY, LocalStore

REMINDER_TITLE = "Ingat Presensi"
SUMMARY_TITLE = "Jadwal Hari Ini"
LOCAL_NIM = "local"


def reminder_content(course_name: str) -> NotificationContent:
    return NotificationContent(title=REMINDER_TITLE, body=f"Belum presensi: {course_name}")


def summary_content(course_names: list[str], max_listed: int = 5) -> NotificationContent:
    listed = ", ".join(course_names[:max_listed])
    return NotificationContent(
        title=SUMMARY_TITLE,
        body=f"Anda ada {len(course_names)} perkuliahan hari ini: {listed}",
    )


def attendance_entry(moment: datetime, nim: str | None) -> str:
    """Per-user attendance key: YYYY-MM-DD|nim."""
    return f"{day_key(moment)}|{nim or LOCAL_NIM}"


def has_attended(course: Course, moment: datetime, nim: str | None) -> bool:
    """True for a legacy bare-date entry or this user's entry on ``moment``'s day."""
    key = day_key(moment)
    if key in course.attendances:
        return True
    return f"{key}|{nim or LOCAL_NIM}" in course.attendances


class AttendanceScheduler:
    """
    Owns the ``siakad_courses`` list and every reminder handle.

    Handles:
    - Course add/remove with reminder schedule/cancel
    - Idempotent daily attendance marking with reminder refresh
    - The daily digest of today's timetable
    - Rescheduling when the preferred reminder time changes
    """

    def __init__(
        self,
        store: LocalStore,
        notifier: Notifier,
        timetable: Timetable | None = None,
        nim_provider: Callable[[], str | None] | None = None,
        clock: Callable[[], datetime] = datetime.now,
        default_notif_time: str = "08:00",
        summary_max_courses: int = 5,
        id_generator: LocalIdGenerator | None = None,
    ):
        self.store = store
        self.notifier = notifier
        self.timetable = timetable or Timetable(store)
        self._nim_provider = nim_provider or (lambda: None)
        self._clock = clock
        self.default_time = parse_notif_time(default_notif_time)
        self.summary_max_courses = summary_max_courses
        self._ids = id_generator or LocalIdGenerator()

    # =========================================================================
    # Persistence
    # =========================================================================

    def courses(self) -> list[Course]:
        raw = self.store.get(COURSES_KEY, [])
        courses = []
        for data in raw if isinstance(raw, list) else []:
            try:
                courses.append(Course.from_dict(data))
            except (KeyError, TypeError) as e:
                logger.warning(f"Skipping unreadable course {data!r}: {e}")
        return courses

    def _save(self, courses: list[Course]) -> None:
        self.store.set(COURSES_KEY, [c.to_dict() for c in courses])

    def get_course(self, course_id: str) -> Course | None:
        return next((c for c in self.courses() if c.id == course_id), None)

    # =========================================================================
    # Reminder time preference
    # =========================================================================

    def notif_time(self) -> tuple[int, int]:
        return parse_notif_time(self.store.get(NOTIF_TIME_KEY), self.default_time)

    def set_notif_time(self, pref: str) -> tuple[int, int]:
        """Store a new "HH:MM" preference and move every reminder to it."""
        if not is_valid_notif_time(pref):
            raise ValidationError(f"Reminder time must be HH:MM, got {pref!r}")
        hour, minute = parse_notif_time(pref)
        self.store.set(NOTIF_TIME_KEY, format_notif_time(hour, minute))
        self.reschedule_all()
        return hour, minute

    # =========================================================================
    # Notifier access
    # =========================================================================

    def _trigger(self) -> DailyTrigger:
        hour, minute = self.notif_time()
        return DailyTrigger(
            hour=hour,
            minute=minute,
            first_fire=next_fire_time(self._clock(), hour, minute),
            repeats=True,
        )

    def _schedule(self, content: NotificationContent) -> str | None:
        try:
            return self.notifier.schedule(content, self._trigger())
        except SchedulingError as e:
            logger.warning(f"Could not schedule '{content.title}': {e}")
            return None

    def _cancel(self, handle: str | None) -> None:
        if not handle:
            return
        try:
            self.notifier.cancel(handle)
        except SchedulingError as e:
            logger.warning(f"Could not cancel notification {handle}: {e}")

    def _reschedule(self, course: Course) -> None:
        self._cancel(course.notification_id)
        course.notification_id = self._schedule(reminder_content(course.name))

    # =========================================================================
    # Course lifecycle
    # =========================================================================

    def add_course(self, name: str, code: str = "") -> Course:
        if not name or not name.strip():
            raise ValidationError("Course name is required")

        course = Course(id=self._ids.next_value(), name=name.strip(), code=(code or "").strip())
        course.notification_id = self._schedule(reminder_content(course.name))
        self._save([course, *self.courses()])
        logger.info(f"Added course {course.name} ({course.id})")

        self.schedule_daily_summary()
        return course

    def mark_attendance(self, course_id: str) -> Course | None:
        """
        Record today's attendance for the signed-in user.

        Marking twice on one day stores a single entry. The reminder is
        cancelled and rescheduled on every call, repeat or not.
        """
        now = self._clock()
        entry = attendance_entry(now, self._nim_provider())

        courses = self.courses()
        course = next((c for c in courses if c.id == course_id), None)
        if course is None:
            logger.warning(f"mark_attendance: unknown course {course_id}")
            return None

        if entry not in course.attendances:
            course.attendances.append(entry)
        self._save(courses)

        self._reschedule(course)
        self._save(courses)

        self.schedule_daily_summary()
        return course

    def remove_course(self, course_id: str) -> bool:
        courses = self.courses()
        course = next((c for c in courses if c.id == course_id), None)
        if course is None:
            return False

        self._cancel(course.notification_id)
        self._save([c for c in courses if c.id != course_id])
        logger.info(f"Removed course {course.name} ({course_id})")

        self.schedule_daily_summary()
        return True

    def reschedule_all(self) -> None:
        courses = self.courses()
        for course in courses:
            self._reschedule(course)
        self._save(courses)
        self.schedule_daily_summary()

    def has_attended_today(self, course: Course, nim: str | None = None) -> bool:
        return has_attended(course, self._clock(), nim if nim is not None else self._nim_provider())

    # =========================================================================
    # Daily digest
    # =========================================================================

    def schedule_daily_summary(self) -> str | None:
        """Replace the digest of today's classes; none is scheduled on an empty day."""
        self._cancel(self.store.get(SUMMARY_ID_KEY))

        todays = self.timetable.items_for(weekday_index(self._clock()))
        if not todays:
            self.store.set(SUMMARY_ID_KEY, None)
            return None

        content = summary_content([item.mk for item in todays], self.summary_max_courses)
        handle = self._schedule(content)
        self.store.set(SUMMARY_ID_KEY, handle)
        return handle
