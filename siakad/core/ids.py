"""
Tagged entity identifiers.

Every Task and Message carries an ``EntityId`` that says whether the value
was minted on this device or assigned by the server. Records persisted
before the tag existed are classified by the legacy length rule: server ids
are short decimal strings, local ids are millisecond timestamps (13 digits).
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum

LEGACY_LOCAL_ID_LENGTH = 13


class IdOrigin(str, Enum):
    """Where an entity id was assigned."""

    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class EntityId:
    """An id value tagged with its origin."""

    origin: IdOrigin
    value: str

    @property
    def is_remote(self) -> bool:
        return self.origin == IdOrigin.REMOTE

    @property
    def is_local(self) -> bool:
        return self.origin == IdOrigin.LOCAL

    @classmethod
    def remote(cls, value: str | int) -> EntityId:
        return cls(IdOrigin.REMOTE, str(value))

    @classmethod
    def local(cls, value: str) -> EntityId:
        return cls(IdOrigin.LOCAL, str(value))

    @classmethod
    def infer(cls, value: str | int) -> EntityId:
        """Classify an untagged id with the legacy length rule."""
        text = str(value)
        if text.isdigit() and len(text) < LEGACY_LOCAL_ID_LENGTH:
            return cls.remote(text)
        return cls.local(text)

    @classmethod
    def parse(cls, value: str | int, origin: str | None = None) -> EntityId:
        """Build from a persisted ``id`` and optional ``origin`` field."""
        if origin:
            return cls(IdOrigin(origin), str(value))
        return cls.infer(value)

    def __str__(self) -> str:
        return self.value


class LocalIdGenerator:
    """
    Mints local ids from the wall clock in milliseconds.

    Ids are strictly increasing within a process: two calls inside the same
    millisecond (or after the clock steps back) get ``last + 1``.
    """

    def __init__(self, clock=time.time):
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def next_value(self) -> str:
        with self._lock:
            candidate = int(self._clock() * 1000)
            if candidate <= self._last:
                candidate = self._last + 1
            self._last = candidate
            return str(candidate)

    def next_id(self) -> EntityId:
        return EntityId.local(self.next_value())


_default_generator = LocalIdGenerator()


def new_local_id() -> EntityId:
    """Mint a local id from the process-wide generator."""
    return _default_generator.next_id()
