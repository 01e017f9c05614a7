"""Keyed change notifications for preference and user writes."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from loguru import logger

Listener = Callable[[Any], None]


class Observable:
    """
    Per-key listener registry.

    Owned by the application context and injected into the local store, so
    theme and user changes reach subscribers without module-level state.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def subscribe(self, key: str, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for ``key``; returns an unsubscribe callable."""
        self._listeners.setdefault(key, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(key, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def emit(self, key: str, value: Any) -> None:
        for listener in list(self._listeners.get(key, [])):
            try:
                listener(value)
            except Exception as e:
                logger.warning(f"Listener for '{key}' failed: {e}")

    def listener_count(self, key: str) -> int:
        return len(self._listeners.get(key, []))
