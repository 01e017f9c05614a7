"""Weekly class timetable kept under ``siakad_schedule``."""

from __future__ import annotations

from datetime import datetime

from siakad.core.ids import new_local_id
from siakad.core.models import ScheduleItem
from siakad.errors import ValidationError
from siakad.reminders.timing import TimeStatus, time_status, weekday_index
from siakad.storage.local_store import SCHEDULE_KEY, LocalStore

WEEKDAYS = {1: "Senin", 2: "Selasa", 3: "Rabu", 4: "Kamis", 5: "Jumat"}

SAMPLE_SCHEDULE: dict[int, list[dict[str, str]]] = {
    1: [
        {"id": "s1", "mk": "Algoritma", "jam": "08:00-09:40", "ruang": "R101", "dosen": "Dr. A"},
        {"id": "s2", "mk": "Matematika", "jam": "10:00-11:30", "ruang": "R102", "dosen": "Dr. B"},
    ],
    2: [],
    3: [
        {"id": "s3", "mk": "Basis Data", "jam": "13:00-14:40", "ruang": "R201", "dosen": "Ibu C"},
    ],
    4: [],
    5: [],
}

Schedule = dict[int, list[ScheduleItem]]


def _check_day(day: int) -> None:
    if day not in WEEKDAYS:
        raise ValidationError(f"Day must be 1..5 (Senin..Jumat), got {day}")


class Timetable:
    """Read and edit the weekly schedule; falls back to the sample week."""

    def __init__(self, store: LocalStore):
        self.store = store

    def load(self) -> Schedule:
        raw = self.store.get(SCHEDULE_KEY)
        if not isinstance(raw, dict):
            raw = SAMPLE_SCHEDULE

        schedule: Schedule = {day: [] for day in WEEKDAYS}
        for key, items in raw.items():
            try:
                day = int(key)
            except (TypeError, ValueError):
                continue
            if day in schedule and isinstance(items, list):
                schedule[day] = [ScheduleItem.from_dict(i) for i in items if isinstance(i, dict)]
        return schedule

    def save(self, schedule: Schedule) -> None:
        self.store.set(
            SCHEDULE_KEY,
            {str(day): [item.to_dict() for item in items] for day, items in schedule.items()},
        )

    def items_for(self, day: int) -> list[ScheduleItem]:
        return self.load().get(day, [])

    def today(self, now: datetime | None = None) -> tuple[int, list[ScheduleItem]]:
        day = weekday_index(now or datetime.now())
        return day, self.items_for(day)

    def add_item(self, day: int, mk: str, jam: str, ruang: str = "", dosen: str = "") -> ScheduleItem:
        _check_day(day)
        if not mk.strip() or not jam.strip():
            raise ValidationError("Harap isi mata kuliah dan jam")

        item = ScheduleItem(
            id=new_local_id().value,
            mk=mk.strip(),
            jam=jam.strip(),
            ruang=ruang.strip(),
            dosen=dosen.strip(),
        )
        schedule = self.load()
        schedule[day] = [item, *schedule[day]]
        self.save(schedule)
        return item

    def remove_item(self, day: int, item_id: str) -> bool:
        _check_day(day)
        schedule = self.load()
        before = len(schedule[day])
        schedule[day] = [i for i in schedule[day] if i.id != item_id]
        if len(schedule[day]) == before:
            return False
        self.save(schedule)
        return True

    def statuses(self, day: int, now: datetime | None = None) -> list[tuple[ScheduleItem, TimeStatus]]:
        """Each slot of ``day`` with its badge relative to ``now``."""
        now = now or datetime.now()
        return [(item, time_status(item.jam, day, now)) for item in self.items_for(day)]
