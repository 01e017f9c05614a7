"""
Domain records for the SIAKAD client.

Tasks and Messages are reconciled against the server; Courses and the
weekly Schedule are local-only. Each record converts to and from the JSON
form kept in the local store.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

from .ids import EntityId


class EntityKind(str, Enum):
    """Entity lists kept in sync with the server."""

    TASK = "task"
    MESSAGE = "message"


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes")
    return bool(value)


@dataclass
class Task:
    """A to-do item owned by one student."""

    id: EntityId
    user_nim: str
    title: str
    done: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id.value,
            "origin": self.id.origin.value,
            "user_nim": self.user_nim,
            "title": self.title,
            "done": self.done,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_nim: str = "local") -> Task:
        return cls(
            id=EntityId.parse(data["id"], data.get("origin")),
            user_nim=str(data.get("user_nim") or default_nim),
            title=str(data.get("title", "")),
            done=_as_bool(data.get("done", False)),
        )

    @classmethod
    def from_remote(cls, data: dict[str, Any], default_nim: str = "local") -> Task:
        """Parse a server payload; server ids are always remote."""
        task = cls.from_dict({**data, "origin": None}, default_nim)
        task.id = EntityId.remote(data["id"])
        return task

    def to_payload(self) -> dict[str, Any]:
        """Body for POST /tasks and PUT /tasks/{id}."""
        return {"user_nim": self.user_nim, "title": self.title, "done": self.done}

    def with_id(self, new_id: EntityId) -> Task:
        return replace(self, id=new_id)


@dataclass
class Message:
    """A message addressed to one student."""

    id: EntityId
    user_nim: str
    sender: str
    text: str
    read: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id.value,
            "origin": self.id.origin.value,
            "user_nim": self.user_nim,
            "from": self.sender,
            "text": self.text,
            "read": self.read,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_nim: str = "local") -> Message:
        return cls(
            id=EntityId.parse(data["id"], data.get("origin")),
            user_nim=str(data.get("user_nim") or default_nim),
            sender=str(data.get("from", "")),
            text=str(data.get("text", "")),
            read=_as_bool(data.get("read", False)),
        )

    @classmethod
    def from_remote(cls, data: dict[str, Any], default_nim: str = "local") -> Message:
        message = cls.from_dict({**data, "origin": None}, default_nim)
        message.id = EntityId.remote(data["id"])
        return message

    def to_payload(self) -> dict[str, Any]:
        """Body for POST /messages and PUT /messages/{id}."""
        return {
            "user_nim": self.user_nim,
            "from": self.sender,
            "text": self.text,
            "read": self.read,
        }

    def with_id(self, new_id: EntityId) -> Message:
        return replace(self, id=new_id)


ENTITY_TYPES: dict[EntityKind, type] = {
    EntityKind.TASK: Task,
    EntityKind.MESSAGE: Message,
}


@dataclass
class Course:
    """A course tracked for attendance, with its daily reminder handle."""

    id: str
    name: str
    code: str = ""
    attendances: list[str] = field(default_factory=list)
    notification_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "attendances": list(self.attendances),
        }
        if self.notification_id:
            data["notificationId"] = self.notification_id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Course:
        attendances = data.get("attendances") or []
        return cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            code=str(data.get("code") or ""),
            attendances=[a for a in attendances if isinstance(a, str) and a],
            notification_id=data.get("notificationId") or data.get("notification_id"),
        )


@dataclass
class ScheduleItem:
    """One class slot in the weekly timetable."""

    id: str
    mk: str
    jam: str
    ruang: str = ""
    dosen: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "mk": self.mk,
            "jam": self.jam,
            "ruang": self.ruang,
            "dosen": self.dosen,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScheduleItem:
        return cls(
            id=str(data.get("id", "")),
            mk=str(data.get("mk") or data.get("name") or data.get("course") or "Mata Kuliah"),
            jam=str(data.get("jam", "")),
            ruang=str(data.get("ruang", "")),
            dosen=str(data.get("dosen", "")),
        )


@dataclass
class User:
    """The signed-in student (or lecturer) as returned by the API."""

    nim: str
    name: str = ""
    email: str | None = None
    type: str = "reguler"
    fcm_token: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    _KNOWN = ("nim", "name", "email", "type", "fcm_token")

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        data.update(
            {
                "nim": self.nim,
                "name": self.name,
                "email": self.email,
                "type": self.type,
                "fcm_token": self.fcm_token,
            }
        )
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], default_type: str = "reguler") -> User:
        return cls(
            nim=str(data["nim"]),
            name=str(data.get("name") or ""),
            email=data.get("email"),
            type=str(data.get("type") or default_type),
            fcm_token=data.get("fcm_token"),
            extra={k: v for k, v in data.items() if k not in cls._KNOWN},
        )


@dataclass
class KhsRecord:
    """A semester grade report row (read-only)."""

    id: str
    nim: str
    year: str = ""
    semester: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def courses(self) -> list[dict[str, Any]]:
        """Graded courses: ``{name, grade, credit?}``."""
        return [c for c in self.data.get("courses") or [] if isinstance(c, dict)]

    @property
    def gpa(self) -> float | None:
        try:
            return float(self.data["gpa"])
        except (KeyError, TypeError, ValueError):
            return None

    @classmethod
    def from_dict(cls, record_id: str, data: dict[str, Any]) -> KhsRecord:
        return cls(
            id=str(record_id),
            nim=str(data.get("nim", "")),
            year=str(data.get("year") or ""),
            semester=str(data.get("semester") or ""),
            data=dict(data),
        )
