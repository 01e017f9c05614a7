"""Durable queue of server writes waiting for acknowledgement."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from loguru import logger

from siakad.core.models import EntityKind
from siakad.storage.local_store import OUTBOX_KEY, LocalStore


class OutboxAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class OutboxEntry:
    """One pending write."""

    op_id: str
    kind: EntityKind
    action: OutboxAction
    entity_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    attempts: int = 0
    last_error: str | None = None
    queued_at: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        data["action"] = self.action.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OutboxEntry:
        return cls(
            op_id=str(data["op_id"]),
            kind=EntityKind(data["kind"]),
            action=OutboxAction(data["action"]),
            entity_id=str(data["entity_id"]),
            payload=dict(data.get("payload") or {}),
            attempts=int(data.get("attempts", 0)),
            last_error=data.get("last_error"),
            queued_at=str(data.get("queued_at") or datetime.now().isoformat()),
        )


class Outbox:
    """
    Pending creates, updates and deletes kept under ``siakad_outbox``.

    Entries leave the queue only on server acknowledgement, or when they
    exceed ``max_attempts``. Writes against an entity whose create is still
    pending are folded into that create.
    """

    def __init__(self, store: LocalStore, max_attempts: int = 10):
        self.store = store
        self.max_attempts = max_attempts

    # =========================================================================
    # Persistence
    # =========================================================================

    def entries(self) -> list[OutboxEntry]:
        raw = self.store.get(OUTBOX_KEY, [])
        entries = []
        for item in raw if isinstance(raw, list) else []:
            try:
                entries.append(OutboxEntry.from_dict(item))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Dropping unreadable outbox entry {item!r}: {e}")
        return entries

    def _save(self, entries: list[OutboxEntry]) -> None:
        self.store.set(OUTBOX_KEY, [e.to_dict() for e in entries])

    def __len__(self) -> int:
        return len(self.entries())

    def get(self, op_id: str) -> OutboxEntry | None:
        return next((e for e in self.entries() if e.op_id == op_id), None)

    # =========================================================================
    # Queueing
    # =========================================================================

    def enqueue(
        self,
        kind: EntityKind,
        action: OutboxAction,
        entity_id: str,
        payload: dict[str, Any] | None = None,
    ) -> OutboxEntry | None:
        """
        Queue a write.

        Returns:
            The entry that now carries the write, or None when a delete
            cancelled a create that never reached the server.
        """
        entries = self.entries()
        payload = dict(payload or {})
        pending_create = next(
            (
                e
                for e in entries
                if e.kind == kind and e.entity_id == entity_id and e.action == OutboxAction.CREATE
            ),
            None,
        )

        if pending_create is not None and action != OutboxAction.DELETE:
            pending_create.payload.update(payload)
            self._save(entries)
            return pending_create

        if pending_create is not None and action == OutboxAction.DELETE:
            remaining = [e for e in entries if not (e.kind == kind and e.entity_id == entity_id)]
            self._save(remaining)
            logger.debug(f"Cancelled unsent {kind.value} {entity_id}")
            return None

        entry = OutboxEntry(
            op_id=uuid.uuid4().hex,
            kind=kind,
            action=action,
            entity_id=entity_id,
            payload=payload,
        )
        entries.append(entry)
        self._save(entries)
        return entry

    def ack(self, op_id: str) -> None:
        """Remove an acknowledged entry."""
        self._save([e for e in self.entries() if e.op_id != op_id])

    def record_failure(self, op_id: str, error: str) -> bool:
        """
        Count a failed attempt.

        Returns:
            True if the entry stays queued, False if it was dropped.
        """
        entries = self.entries()
        entry = next((e for e in entries if e.op_id == op_id), None)
        if entry is None:
            return False

        entry.attempts += 1
        entry.last_error = error
        if entry.attempts >= self.max_attempts:
            entries.remove(entry)
            self._save(entries)
            logger.error(
                f"Dropping {entry.action.value} {entry.kind.value} {entry.entity_id} "
                f"after {entry.attempts} attempts: {error}"
            )
            return False

        self._save(entries)
        logger.warning(
            f"Push {entry.action.value} {entry.kind.value} {entry.entity_id} failed "
            f"(attempt {entry.attempts}/{self.max_attempts}): {error}"
        )
        return True

    def rewrite_entity_id(self, kind: EntityKind, old_id: str, new_id: str) -> int:
        """Point queued writes for a local id at the server id it was given."""
        entries = self.entries()
        changed = 0
        for entry in entries:
            if entry.kind == kind and entry.entity_id == old_id:
                entry.entity_id = new_id
                changed += 1
        if changed:
            self._save(entries)
        return changed
