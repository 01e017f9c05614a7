"""
Reconciliation Engine - keeps local task/message lists consistent with the server.

Core responsibilities:
- Fetch authoritative lists from the REST API
- Merge them with the locally persisted lists and save the result
- Apply optimistic local creates and queue them in the outbox
- Replay the outbox, reporting server ids assigned to local records
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Union

from loguru import logger

from siakad.api.client import ApiResult, SiakadClient
from siakad.core.ids import EntityId, LocalIdGenerator
from siakad.core.models import ENTITY_TYPES, EntityKind, Message, Task
from siakad.storage.local_store import MESSAGES_KEY, TASKS_KEY, USER_KEY, LocalStore
from siakad.sync.outbox import Outbox, OutboxAction, OutboxEntry
from siakad.sync.reconcile import local_only, merge

Entity = Union[Task, Message]

STORAGE_KEYS = {
    EntityKind.TASK: TASKS_KEY,
    EntityKind.MESSAGE: MESSAGES_KEY,
}


def kind_of(entity: Entity) -> EntityKind:
    return EntityKind.TASK if isinstance(entity, Task) else EntityKind.MESSAGE


@dataclass
class PushOutcome:
    """Result of replaying one outbox entry."""

    entry: OutboxEntry
    acknowledged: bool
    remote: Entity | None = None
    dropped: bool = False

    @property
    def adopted_id(self) -> tuple[str, EntityId] | None:
        """(local id, server id) when an acknowledged create got a new id."""
        if self.entry.action != OutboxAction.CREATE or not self.acknowledged or self.remote is None:
            return None
        return self.entry.entity_id, self.remote.id


class ReconciliationEngine:
    """
    Merges server lists with local lists and pushes local writes.

    The engine never raises on network or storage failures: fetches return
    None, pushes return None or a failed outcome, and the outbox keeps the
    write for the next refresh.
    """

    def __init__(
        self,
        client: SiakadClient,
        store: LocalStore,
        outbox: Outbox | None = None,
        nim_provider: Callable[[], str | None] | None = None,
        messages_limit: int = 50,
        id_generator: LocalIdGenerator | None = None,
    ):
        """
        Initialize the engine.

        Args:
            client: REST API client
            store: Local key-value store
            outbox: Pending write queue (created over ``store`` if not provided)
            nim_provider: Returns the signed-in NIM (defaults to the stored user)
            messages_limit: Messages requested per fetch
            id_generator: Local id source
        """
        self.client = client
        self.store = store
        self.outbox = outbox if outbox is not None else Outbox(store)
        self._nim_provider = nim_provider or self._stored_nim
        self.messages_limit = messages_limit
        self._ids = id_generator or LocalIdGenerator()
        self._in_flight: set[str] = set()

    def _stored_nim(self) -> str | None:
        user = self.store.get(USER_KEY)
        if isinstance(user, dict) and user.get("nim"):
            return str(user["nim"])
        return None

    def current_nim(self) -> str | None:
        return self._nim_provider()

    def new_local_id(self) -> EntityId:
        return self._ids.next_id()

    # =========================================================================
    # Local lists
    # =========================================================================

    def load_local(self, kind: EntityKind) -> list[Entity]:
        """Persisted list for ``kind``; unreadable records are skipped."""
        raw = self.store.get(STORAGE_KEYS[kind], [])
        default_nim = self.current_nim() or "local"
        entity_type = ENTITY_TYPES[kind]
        items: list[Entity] = []
        for data in raw if isinstance(raw, list) else []:
            try:
                items.append(entity_type.from_dict(data, default_nim))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Skipping unreadable {kind.value} record {data!r}: {e}")
        return items

    def save_local(self, kind: EntityKind, items: Sequence[Entity]) -> None:
        """Write the full list through to the store."""
        self.store.set(STORAGE_KEYS[kind], [item.to_dict() for item in items])

    def merge_and_save(
        self,
        kind: EntityKind,
        remote: Sequence[Entity] | None,
        local: Sequence[Entity] | None,
    ) -> list[Entity]:
        """Merge server and local lists and persist the result as canonical."""
        merged = merge(remote, local)
        self.save_local(kind, merged)
        logger.debug(
            f"Merged {kind.value}s: {len(remote or [])} remote, "
            f"{len(local_only(remote or [], local or []))} local-only"
        )
        return merged

    # =========================================================================
    # Remote reads
    # =========================================================================

    async def fetch_remote(self, kind: EntityKind) -> list[Entity] | None:
        """
        Fetch the server list for the signed-in user.

        Returns:
            Parsed list, or None when signed out or the request failed
        """
        nim = self.current_nim()
        if not nim:
            return None

        if kind == EntityKind.TASK:
            result = await self.client.get_tasks(nim)
        else:
            result = await self.client.get_messages(nim, self.messages_limit)

        if not result.success or not isinstance(result.data, list):
            logger.info(f"fetch remote {kind.value}s failed: {result.error}")
            return None

        entity_type = ENTITY_TYPES[kind]
        items: list[Entity] = []
        for data in result.data:
            try:
                items.append(entity_type.from_remote(data, nim))
            except (KeyError, ValueError, TypeError) as e:
                logger.warning(f"Ignoring malformed remote {kind.value} {data!r}: {e}")
        return items

    # =========================================================================
    # Local writes
    # =========================================================================

    def optimistic_create(
        self,
        entity: Entity,
        current: Sequence[Entity],
    ) -> tuple[Entity, list[Entity], OutboxEntry | None]:
        """
        Give ``entity`` a fresh local id, prepend and persist it, and queue its create.

        Returns:
            (created entity, new list, outbox entry to deliver)
        """
        kind = kind_of(entity)
        created = entity.with_id(self._ids.next_id())
        items = [created, *current]
        self.save_local(kind, items)
        entry = self.outbox.enqueue(kind, OutboxAction.CREATE, created.id.value, created.to_payload())
        return created, items, entry

    def queue_write(self, entity: Entity, fields: Sequence[str] | None = None) -> OutboxEntry | None:
        """
        Queue an entity's current state for the server.

        Server-known entities get an update (limited to ``fields`` if given);
        local ones get a create, folded into any create already pending.
        """
        kind = kind_of(entity)
        payload = entity.to_payload()
        if entity.id.is_remote:
            if fields:
                payload = {name: payload[name] for name in fields if name in payload}
            return self.outbox.enqueue(kind, OutboxAction.UPDATE, entity.id.value, payload)
        return self.outbox.enqueue(kind, OutboxAction.CREATE, entity.id.value, payload)

    def queue_delete(self, kind: EntityKind, entity_id: EntityId) -> OutboxEntry | None:
        """Queue a server delete; local ids only cancel their pending writes."""
        if kind != EntityKind.TASK:
            raise ValueError(f"The API does not delete {kind.value}s")

        if entity_id.is_local:
            pending = [e for e in self.outbox.entries() if e.kind == kind and e.entity_id == entity_id.value]
            if pending:
                self.outbox.enqueue(kind, OutboxAction.DELETE, entity_id.value)
            return None
        return self.outbox.enqueue(kind, OutboxAction.DELETE, entity_id.value)

    # =========================================================================
    # Remote writes
    # =========================================================================

    async def _send(self, kind: EntityKind, action: OutboxAction, entity_id: str, payload: dict[str, Any]) -> ApiResult:
        if kind == EntityKind.TASK:
            if action == OutboxAction.CREATE:
                return await self.client.create_task(payload)
            if action == OutboxAction.UPDATE:
                return await self.client.update_task(entity_id, payload)
            return await self.client.delete_task(entity_id)

        if action == OutboxAction.CREATE:
            return await self.client.create_message(payload)
        if action == OutboxAction.UPDATE:
            return await self.client.update_message(entity_id, payload)
        return ApiResult.fail("messages cannot be deleted")

    def _parse_remote(self, kind: EntityKind, data: Any) -> Entity | None:
        if not isinstance(data, dict) or "id" not in data:
            return None
        return ENTITY_TYPES[kind].from_remote(data, self.current_nim() or "local")

    async def push(self, entity: Entity) -> Entity | None:
        """
        Send one entity straight to the server, bypassing the outbox.

        Server ids are updated, local ids are created.

        Returns:
            The server's copy, or None on any failure
        """
        if not self.current_nim():
            return None

        kind = kind_of(entity)
        action = OutboxAction.UPDATE if entity.id.is_remote else OutboxAction.CREATE
        result = await self._send(kind, action, entity.id.value, entity.to_payload())
        if not result.success:
            logger.warning(f"push {kind.value} {entity.id} failed: {result.error}")
            return None
        return self._parse_remote(kind, result.data)

    async def _replay(self, entry: OutboxEntry) -> PushOutcome:
        result = await self._send(entry.kind, entry.action, entry.entity_id, entry.payload)

        if result.success:
            self.outbox.ack(entry.op_id)
            remote = None
            if entry.action != OutboxAction.DELETE:
                remote = self._parse_remote(entry.kind, result.data)
            if entry.action == OutboxAction.CREATE and remote is not None:
                self.outbox.rewrite_entity_id(entry.kind, entry.entity_id, remote.id.value)
            logger.debug(f"Acknowledged {entry.action.value} {entry.kind.value} {entry.entity_id}")
            return PushOutcome(entry=entry, acknowledged=True, remote=remote)

        if result.status_code == 404 and entry.action != OutboxAction.CREATE:
            self.outbox.ack(entry.op_id)
            logger.warning(f"{entry.kind.value} {entry.entity_id} no longer exists on server; dropped {entry.action.value}")
            return PushOutcome(entry=entry, acknowledged=False, dropped=True)

        kept = self.outbox.record_failure(entry.op_id, result.error or "unknown error")
        return PushOutcome(entry=entry, acknowledged=False, dropped=not kept)

    async def deliver(self, op_id: str) -> PushOutcome | None:
        """Replay one outbox entry now, if it is still pending and not already in flight."""
        if op_id in self._in_flight or not self.current_nim():
            return None
        entry = self.outbox.get(op_id)
        if entry is None:
            return None

        self._in_flight.add(op_id)
        try:
            return await self._replay(entry)
        finally:
            self._in_flight.discard(op_id)

    async def flush_outbox(self) -> list[PushOutcome]:
        """Replay every pending entry in FIFO order."""
        if not self.current_nim():
            return []

        outcomes: list[PushOutcome] = []
        for entry in self.outbox.entries():
            # ids may have been rewritten by an earlier create in this pass
            outcome = await self.deliver(entry.op_id)
            if outcome is not None:
                outcomes.append(outcome)

        if outcomes:
            acked = sum(1 for o in outcomes if o.acknowledged)
            logger.info(f"Outbox flush: {acked}/{len(outcomes)} acknowledged, {len(self.outbox)} pending")
        return outcomes
