"""Local persistence: the SQLite key-value store and change notifications."""

from siakad.storage.local_store import (
    COURSES_KEY,
    MESSAGES_KEY,
    NOTIF_TIME_KEY,
    OUTBOX_KEY,
    SCHEDULE_KEY,
    SUMMARY_ID_KEY,
    TASKS_KEY,
    THEME_KEY,
    USER_KEY,
    LocalStore,
)
from siakad.storage.observable import Observable

__all__ = [
    "LocalStore",
    "Observable",
    "TASKS_KEY",
    "MESSAGES_KEY",
    "COURSES_KEY",
    "SCHEDULE_KEY",
    "OUTBOX_KEY",
    "USER_KEY",
    "THEME_KEY",
    "NOTIF_TIME_KEY",
    "SUMMARY_ID_KEY",
]
