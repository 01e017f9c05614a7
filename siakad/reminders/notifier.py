"""
Local notification delivery.

``Notifier`` is the seam to whatever actually shows notifications. Handles
are opaque strings; implementations raise ``SchedulingError`` when they
cannot schedule or cancel. ``LocalNotifier`` keeps everything in process
and fires due entries when ``deliver_due`` is called.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

from loguru import logger

from siakad.errors import SchedulingError


@dataclass(frozen=True)
class NotificationContent:
    title: str
    body: str


@dataclass(frozen=True)
class DailyTrigger:
    """Fire at hour:minute, first at ``first_fire``, then daily if ``repeats``."""

    hour: int
    minute: int
    first_fire: datetime
    repeats: bool = True


DeliveryCallback = Callable[[NotificationContent], None]


class Notifier(Protocol):
    def schedule(self, content: NotificationContent, trigger: DailyTrigger) -> str: ...

    def cancel(self, handle: str) -> None: ...

    def on_delivered(self, callback: DeliveryCallback) -> Callable[[], None]: ...


@dataclass
class ScheduledNotification:
    handle: str
    content: NotificationContent
    trigger: DailyTrigger
    next_fire: datetime


class LocalNotifier:
    """In-process notifier used by the CLI watcher and the tests."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._scheduled: dict[str, ScheduledNotification] = {}
        self._callbacks: list[DeliveryCallback] = []

    def schedule(self, content: NotificationContent, trigger: DailyTrigger) -> str:
        if not self.enabled:
            raise SchedulingError("Notification permission not granted")

        handle = uuid.uuid4().hex
        self._scheduled[handle] = ScheduledNotification(
            handle=handle,
            content=content,
            trigger=trigger,
            next_fire=trigger.first_fire,
        )
        logger.debug(f"Scheduled '{content.title}' at {trigger.first_fire:%Y-%m-%d %H:%M} ({handle})")
        return handle

    def cancel(self, handle: str) -> None:
        if self._scheduled.pop(handle, None) is not None:
            logger.debug(f"Cancelled notification {handle}")

    def on_delivered(self, callback: DeliveryCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def is_live(self, handle: str | None) -> bool:
        return handle is not None and handle in self._scheduled

    def scheduled(self) -> list[ScheduledNotification]:
        return sorted(self._scheduled.values(), key=lambda s: s.next_fire)

    def deliver(self, content: NotificationContent) -> None:
        """Hand a delivered notification to every subscriber."""
        for callback in list(self._callbacks):
            try:
                callback(content)
            except Exception as e:
                logger.warning(f"Delivery callback failed: {e}")

    def deliver_due(self, now: datetime | None = None) -> list[NotificationContent]:
        """Fire every entry whose time has come; repeating entries move to the next day."""
        now = now or datetime.now()
        delivered: list[NotificationContent] = []

        for item in self.scheduled():
            if item.next_fire > now:
                continue
            self.deliver(item.content)
            delivered.append(item.content)
            if item.trigger.repeats:
                while item.next_fire <= now:
                    item.next_fire += timedelta(days=1)
            else:
                self._scheduled.pop(item.handle, None)

        return delivered
