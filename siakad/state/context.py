"""
Application state context.

Aggregates tasks, messages and courses into the in-memory state a UI (or
the CLI) reads, and is the only writer of those lists and their persisted
copies. UI-facing mutations apply synchronously; server pushes run as
background asyncio tasks and their results are folded back in when they
complete. Merge results replace the in-memory list wholesale.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine, Sequence
from typing import Any

from loguru import logger

from config import Settings, get_settings
from siakad.api.auth import AuthService
from siakad.api.client import SiakadClient
from siakad.core.ids import EntityId
from siakad.core.models import Course, EntityKind, Message, ScheduleItem, Task, User
from siakad.errors import ApiError, ValidationError
from siakad.reminders.notifier import LocalNotifier, NotificationContent, Notifier
from siakad.reminders.scheduler import AttendanceScheduler
from siakad.reminders.timetable import Timetable
from siakad.storage.local_store import THEME_KEY, USER_KEY, LocalStore
from siakad.storage.observable import Observable
from siakad.sync.engine import Entity, PushOutcome, ReconciliationEngine
from siakad.sync.outbox import Outbox

WELCOME_TASK_TITLE = "Tugas Pemrograman: Buat komponen"
WELCOME_MESSAGE_FROM = "Pak Dosen"
WELCOME_MESSAGE_TEXT = "Reminder UTS minggu depan"
SYSTEM_SENDER = "Sistem"
MIRROR_KEYWORD = "presensi"


class AppContext:
    """
    Process-wide state for the portal client.

    Lifecycle:
    - initialize(): load, fetch, merge, fall back, seed
    - start_background_refresh(): poll messages every refresh interval
    - close(): stop polling, drain pushes, release the HTTP client
    """

    def __init__(
        self,
        store: LocalStore,
        client: SiakadClient,
        notifier: Notifier,
        engine: ReconciliationEngine | None = None,
        scheduler: AttendanceScheduler | None = None,
        auth: AuthService | None = None,
        refresh_interval: float = 8.0,
    ):
        self.store = store
        self.client = client
        self.notifier = notifier
        self.auth = auth or AuthService(client, store)
        self.engine = engine or ReconciliationEngine(client, store, nim_provider=self.auth.current_nim)
        self.scheduler = scheduler or AttendanceScheduler(store, notifier, nim_provider=self.auth.current_nim)
        self.refresh_interval = refresh_interval

        self.tasks: list[Task] = []
        self.messages: list[Message] = []
        self.courses: list[Course] = []

        self._pending: set[asyncio.Task] = set()
        self._refresh_task: asyncio.Task | None = None
        self._unsubscribe_delivery: Callable[[], None] | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        notifier: Notifier | None = None,
        store: LocalStore | None = None,
        client: SiakadClient | None = None,
    ) -> AppContext:
        """Wire every collaborator from configuration."""
        settings = settings or get_settings()
        store = store or LocalStore(settings.store_path, observable=Observable())
        client = client or SiakadClient(settings.api_base_url, timeout=settings.request_timeout_seconds)
        notifier = notifier or LocalNotifier()
        auth = AuthService(client, store)
        engine = ReconciliationEngine(
            client,
            store,
            outbox=Outbox(store, max_attempts=settings.outbox_max_attempts),
            nim_provider=auth.current_nim,
            messages_limit=settings.messages_limit,
        )
        scheduler = AttendanceScheduler(
            store,
            notifier,
            timetable=Timetable(store),
            nim_provider=auth.current_nim,
            default_notif_time=settings.default_notif_time,
            summary_max_courses=settings.summary_max_courses,
        )
        return cls(
            store,
            client,
            notifier,
            engine=engine,
            scheduler=scheduler,
            auth=auth,
            refresh_interval=settings.refresh_interval_seconds,
        )

    # =========================================================================
    # Derived state
    # =========================================================================

    @property
    def incomplete_tasks_count(self) -> int:
        return sum(1 for t in self.tasks if not t.done)

    @property
    def unread_messages_count(self) -> int:
        return sum(1 for m in self.messages if not m.read)

    @property
    def preferences(self) -> Observable:
        """Change feed for ``pref_theme`` and ``user``."""
        return self.store.observable

    @property
    def current_user(self) -> User | None:
        return self.auth.current_user()

    def _nim(self) -> str:
        return self.auth.current_nim() or "local"

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def initialize(self) -> None:
        # replay once up front so both lists see every server id assigned
        outcomes = await self.engine.flush_outbox()

        self.tasks = await self._load(
            EntityKind.TASK,
            outcomes,
            lambda: Task(id=self.engine.new_local_id(), user_nim=self._nim(), title=WELCOME_TASK_TITLE),
        )
        self.messages = await self._load(
            EntityKind.MESSAGE,
            outcomes,
            lambda: Message(
                id=self.engine.new_local_id(),
                user_nim=self._nim(),
                sender=WELCOME_MESSAGE_FROM,
                text=WELCOME_MESSAGE_TEXT,
            ),
        )

        # courses are local-only
        self.courses = self.scheduler.courses()
        self.scheduler.schedule_daily_summary()

        if self._unsubscribe_delivery is None:
            self._unsubscribe_delivery = self.notifier.on_delivered(self._on_notification_delivered)

        logger.info(
            f"State ready: {len(self.tasks)} tasks, {len(self.messages)} messages, {len(self.courses)} courses"
        )

    async def _load(
        self,
        kind: EntityKind,
        outcomes: Sequence[PushOutcome],
        seed: Callable[[], Entity],
    ) -> list[Entity]:
        saved = self._apply_outcomes(kind, self.engine.load_local(kind), outcomes)

        remote = await self.engine.fetch_remote(kind)
        if remote is not None:
            return self.engine.merge_and_save(kind, remote, saved)
        if saved:
            return saved

        seeded = [seed()]
        self.engine.save_local(kind, seeded)
        return seeded

    async def refresh_messages(self) -> list[Message]:
        """Replay pending pushes, then re-fetch and re-merge messages."""
        await self._flush_and_apply()
        saved = self.engine.load_local(EntityKind.MESSAGE)
        remote = await self.engine.fetch_remote(EntityKind.MESSAGE)
        if remote is not None:
            self.messages = self.engine.merge_and_save(EntityKind.MESSAGE, remote, saved)
        elif saved:
            self.messages = saved
        return self.messages

    async def refresh_tasks(self) -> list[Task]:
        """Manual task refresh; the background loop only polls messages."""
        await self._flush_and_apply()
        remote = await self.engine.fetch_remote(EntityKind.TASK)
        if remote is not None:
            self.tasks = self.engine.merge_and_save(EntityKind.TASK, remote, self.tasks)
        return self.tasks

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            try:
                await self.refresh_messages()
            except Exception as e:
                logger.warning(f"Background message refresh failed: {e}")

    def start_background_refresh(self) -> None:
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._refresh_loop())
            logger.debug(f"Polling messages every {self.refresh_interval}s")

    async def stop(self) -> None:
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None

    async def drain(self) -> None:
        """Wait for every in-flight background push."""
        while True:
            pending = [t for t in self._pending if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self) -> None:
        await self.stop()
        await self.drain()
        if self._unsubscribe_delivery is not None:
            self._unsubscribe_delivery()
            self._unsubscribe_delivery = None
        await self.client.close()

    # =========================================================================
    # Push plumbing
    # =========================================================================

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task | None:
        try:
            task = asyncio.get_running_loop().create_task(coro)
        except RuntimeError:
            # no loop (synchronous caller): the outbox keeps the write for the next refresh
            coro.close()
            return None
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _deliver(self, op_id: str) -> PushOutcome | None:
        outcome = await self.engine.deliver(op_id)
        if outcome is not None:
            self._apply_outcome(outcome)
        return outcome

    async def _flush_and_apply(self) -> None:
        outcomes = await self.engine.flush_outbox()
        for outcome in outcomes:
            self._apply_outcome(outcome)

    def _apply_outcomes(
        self, kind: EntityKind, items: Sequence[Entity], outcomes: Sequence[PushOutcome]
    ) -> list[Entity]:
        items = list(items)
        for outcome in outcomes:
            adoption = outcome.adopted_id
            if adoption is None or outcome.entry.kind != kind:
                continue
            items = _adopt(items, adoption[0], outcome.remote)
        if outcomes:
            self.engine.save_local(kind, items)
        return items

    def _apply_outcome(self, outcome: PushOutcome) -> None:
        """Swap a local id for the server id it was assigned."""
        adoption = outcome.adopted_id
        if adoption is None:
            return
        if outcome.entry.kind == EntityKind.TASK and not any(
            t.id.value == adoption[0] or t.id == adoption[1]
            for t in [*self.tasks, *self.engine.load_local(EntityKind.TASK)]
        ):
            # deleted while the create was in flight
            entry = self.engine.queue_delete(EntityKind.TASK, adoption[1])
            if entry is not None:
                self._spawn(self._deliver(entry.op_id))
            return
        if outcome.entry.kind == EntityKind.TASK:
            self._set_tasks(_adopt(self.tasks, adoption[0], outcome.remote))
            items: Sequence[Entity] = self.tasks
        else:
            self._set_messages(_adopt(self.messages, adoption[0], outcome.remote))
            items = self.messages

        current = next((i for i in items if i.id == adoption[1]), None)
        if current is not None and current.to_payload() != outcome.entry.payload:
            # edited while the create was in flight
            entry = self.engine.queue_write(current)
            if entry is not None:
                self._spawn(self._deliver(entry.op_id))

    def _set_tasks(self, tasks: list[Task]) -> None:
        self.tasks = tasks
        self.engine.save_local(EntityKind.TASK, tasks)

    def _set_messages(self, messages: list[Message]) -> None:
        self.messages = messages
        self.engine.save_local(EntityKind.MESSAGE, messages)

    # =========================================================================
    # Tasks
    # =========================================================================

    def find_task(self, task_id: str) -> Task | None:
        return next((t for t in self.tasks if t.id.value == str(task_id)), None)

    def add_task(self, title: str) -> Task:
        if not title or not title.strip():
            raise ValidationError("Task title is required")
        draft = Task(id=EntityId.local("0"), user_nim=self._nim(), title=title.strip())
        task, self.tasks, entry = self.engine.optimistic_create(draft, self.tasks)
        if entry is not None:
            self._spawn(self._deliver(entry.op_id))
        return task

    def _write_task(self, task: Task, fields: Sequence[str]) -> None:
        self._set_tasks(self.tasks)
        entry = self.engine.queue_write(task, fields)
        if entry is not None:
            self._spawn(self._deliver(entry.op_id))

    def toggle_task(self, task_id: str) -> Task | None:
        task = self.find_task(task_id)
        if task is None:
            return None
        task.done = not task.done
        self._write_task(task, ["done"])
        return task

    def edit_task(self, task_id: str, title: str) -> Task | None:
        if not title or not title.strip():
            raise ValidationError("Task title is required")
        task = self.find_task(task_id)
        if task is None:
            return None
        task.title = title.strip()
        self._write_task(task, ["title"])
        return task

    def delete_task(self, task_id: str) -> bool:
        task = self.find_task(task_id)
        if task is None:
            return False
        self._set_tasks([t for t in self.tasks if t is not task])
        entry = self.engine.queue_delete(EntityKind.TASK, task.id)
        if entry is not None:
            self._spawn(self._deliver(entry.op_id))
        return True

    # =========================================================================
    # Messages
    # =========================================================================

    def find_message(self, message_id: str) -> Message | None:
        return next((m for m in self.messages if m.id.value == str(message_id)), None)

    def add_message(self, sender: str, text: str) -> Message:
        """Add a message locally and push it in the background."""
        if not text or not text.strip():
            raise ValidationError("Message text is required")
        draft = Message(id=EntityId.local("0"), user_nim=self._nim(), sender=sender, text=text.strip())
        message, self.messages, entry = self.engine.optimistic_create(draft, self.messages)
        if entry is not None:
            self._spawn(self._deliver(entry.op_id))
        return message

    def add_local_message(self, sender: str, text: str, user_nim: str | None = None) -> Message:
        """Add a message that stays on this device."""
        message = Message(
            id=self.engine.new_local_id(),
            user_nim=user_nim or self._nim(),
            sender=sender,
            text=text,
        )
        self._set_messages([message, *self.messages])
        return message

    def mark_message_read(self, message_id: str) -> Message | None:
        message = self.find_message(message_id)
        if message is None:
            return None
        message.read = True
        self._set_messages(self.messages)
        entry = self.engine.queue_write(message, ["read"])
        if entry is not None:
            self._spawn(self._deliver(entry.op_id))
        return message

    async def resolve_recipient(self, to: str) -> str:
        """
        Map a name or NIM to a NIM known to the server.

        Raises:
            ApiError: If the recipient does not exist
        """
        to = to.strip()
        recipient = to
        users = await self.client.debug_users()
        if users.success and isinstance(users.data, list):
            found = next((u for u in users.data if u.get("name") == to or str(u.get("nim")) == to), None)
            if found:
                recipient = str(found["nim"])

        check = await self.client.debug_user(recipient)
        if not check.success:
            raise ApiError("Penerima tidak ditemukan", check.status_code)
        return recipient

    async def send_message_now(self, to: str, text: str) -> Message:
        """
        Send a message to another user and keep a local copy.

        User-initiated, so failures raise instead of being queued.
        """
        if not to.strip() or not text.strip():
            raise ValidationError("Isi penerima dan pesan")

        recipient = await self.resolve_recipient(to)
        user = self.current_user
        sender = (user.name if user and user.name else None) or to.strip()

        result = await self.client.create_message(
            {"user_nim": recipient, "from": sender, "text": text.strip(), "read": False}
        )
        if not result.success:
            raise ApiError(result.error or "Gagal mengirim", result.status_code)

        return self.add_local_message(sender, text.strip(), user_nim=recipient)

    def _on_notification_delivered(self, content: NotificationContent) -> None:
        title = content.title or ""
        body = content.body or ""
        if MIRROR_KEYWORD in title.lower() or MIRROR_KEYWORD in body.lower():
            self.add_local_message(SYSTEM_SENDER, body or title)

    # =========================================================================
    # Courses & timetable
    # =========================================================================

    def add_course(self, name: str, code: str = "") -> Course:
        course = self.scheduler.add_course(name, code)
        self.courses = self.scheduler.courses()
        return course

    def mark_attendance(self, course_id: str) -> Course | None:
        course = self.scheduler.mark_attendance(course_id)
        self.courses = self.scheduler.courses()
        return course

    def remove_course(self, course_id: str) -> bool:
        removed = self.scheduler.remove_course(course_id)
        self.courses = self.scheduler.courses()
        return removed

    def set_notif_time(self, pref: str) -> tuple[int, int]:
        hour_minute = self.scheduler.set_notif_time(pref)
        self.courses = self.scheduler.courses()
        return hour_minute

    def add_schedule_item(self, day: int, mk: str, jam: str, ruang: str = "", dosen: str = "") -> ScheduleItem:
        item = self.scheduler.timetable.add_item(day, mk, jam, ruang, dosen)
        self.scheduler.schedule_daily_summary()
        return item

    def remove_schedule_item(self, day: int, item_id: str) -> bool:
        removed = self.scheduler.timetable.remove_item(day, item_id)
        if removed:
            self.scheduler.schedule_daily_summary()
        return removed

    # =========================================================================
    # Preferences
    # =========================================================================

    def theme(self) -> str | None:
        return self.store.get(THEME_KEY)

    def set_theme(self, theme: str) -> None:
        if theme not in ("light", "dark", "system"):
            raise ValidationError("Theme must be light, dark or system")
        self.store.set(THEME_KEY, theme)

    def on_user_change(self, listener: Callable[[Any], None]) -> Callable[[], None]:
        return self.preferences.subscribe(USER_KEY, listener)

    def on_theme_change(self, listener: Callable[[Any], None]) -> Callable[[], None]:
        return self.preferences.subscribe(THEME_KEY, listener)


def _adopt(items: Sequence[Entity], local_id: str, remote: Entity | None) -> list[Entity]:
    """Replace the record with ``local_id`` by its server copy, once."""
    if remote is None:
        return list(items)
    remote_known = any(i.id == remote.id for i in items)
    adopted: list[Entity] = []
    for item in items:
        if item.id.value == local_id and item.id.is_local:
            if not remote_known:
                # keep local edits made while the create was in flight
                adopted.append(item.with_id(remote.id))
                remote_known = True
            continue
        adopted.append(item)
    return adopted
