"""
Unit tests for the application state context.
"""

import asyncio

import httpx
import pytest
import pytest_asyncio

from config import Settings
from siakad.api.client import SiakadClient
from siakad.core.ids import EntityId
from siakad.errors import ApiError, ValidationError
from siakad.reminders.notifier import NotificationContent
from siakad.reminders.scheduler import SUMMARY_TITLE, AttendanceScheduler
from siakad.state.context import WELCOME_MESSAGE_TEXT, WELCOME_TASK_TITLE, AppContext
from siakad.storage.local_store import MESSAGES_KEY, TASKS_KEY, THEME_KEY, USER_KEY


def build(store, client, notifier, clock):
    ctx = AppContext(store, client, notifier, refresh_interval=0.01)
    ctx.scheduler = AttendanceScheduler(store, notifier, nim_provider=ctx.auth.current_nim, clock=clock)
    return ctx


@pytest_asyncio.fixture
async def ctx(signed_in, client, notifier, clock):
    context = build(signed_in, client, notifier, clock)
    yield context
    await context.stop()
    await context.drain()


class TestInitialize:
    """Tests for initial load, merge and fallback."""

    @pytest.mark.asyncio
    async def test_merges_remote_with_local_only(self, ctx, server, store):
        server.add_task("2021001", "From server")
        store.set(TASKS_KEY, [{"id": "1700000000000", "origin": "local", "user_nim": "2021001", "title": "Offline"}])

        await ctx.initialize()

        assert [t.title for t in ctx.tasks] == ["From server", "Offline"]
        assert [d["title"] for d in store.get(TASKS_KEY)] == ["From server", "Offline"]

    @pytest.mark.asyncio
    async def test_offline_uses_saved_lists(self, ctx, server, store):
        store.set(MESSAGES_KEY, [{"id": "3", "from": "Pak Dosen", "text": "Kuis", "read": False}])
        server.online = False

        await ctx.initialize()

        assert [m.text for m in ctx.messages] == ["Kuis"]

    @pytest.mark.asyncio
    async def test_offline_and_empty_seeds_welcome_items(self, ctx, server):
        server.online = False

        await ctx.initialize()

        assert [t.title for t in ctx.tasks] == [WELCOME_TASK_TITLE]
        assert [m.text for m in ctx.messages] == [WELCOME_MESSAGE_TEXT]
        assert ctx.tasks[0].id.is_local

    @pytest.mark.asyncio
    async def test_welcome_items_are_persisted(self, ctx, server, store, client, notifier, clock):
        server.online = False
        await ctx.initialize()

        assert [d["title"] for d in store.get(TASKS_KEY)] == [WELCOME_TASK_TITLE]
        assert [d["text"] for d in store.get(MESSAGES_KEY)] == [WELCOME_MESSAGE_TEXT]

        # the next offline start reuses the stored seed instead of minting another
        again = build(store, client, notifier, clock)
        await again.initialize()
        assert [t.id for t in again.tasks] == [t.id for t in ctx.tasks]

    @pytest.mark.asyncio
    async def test_schedules_daily_summary(self, ctx, notifier):
        await ctx.initialize()
        assert [s.content.title for s in notifier.scheduled()] == [SUMMARY_TITLE]

    @pytest.mark.asyncio
    async def test_pending_create_adopted_on_start(self, store, client, notifier, clock, server):
        """A create queued in an earlier session is replayed and replaced by the server copy."""
        store.set(USER_KEY, server.users["2021001"])
        first = build(store, client, notifier, clock)
        server.online = False
        first.add_task("Queued offline")
        await first.drain()

        server.online = True
        second = build(store, client, notifier, clock)
        await second.initialize()

        assert [t.title for t in second.tasks] == ["Queued offline"]
        assert second.tasks[0].id.is_remote
        assert len(second.engine.outbox) == 0


class TestFromSettings:
    """Tests for wiring a context from configuration."""

    def test_applies_configured_limits(self, store, client, notifier):
        settings = Settings(outbox_max_attempts=2, refresh_interval_seconds=30, messages_limit=20)

        ctx = AppContext.from_settings(settings, notifier=notifier, store=store, client=client)

        assert ctx.engine.outbox.max_attempts == 2
        assert ctx.engine.messages_limit == 20
        assert ctx.refresh_interval == 30


class TestTasks:
    """Tests for task mutations."""

    @pytest.mark.asyncio
    async def test_add_task_is_immediate(self, ctx, store):
        ctx.add_task("Laporan")

        assert ctx.tasks[0].title == "Laporan"
        assert store.get(TASKS_KEY)[0]["title"] == "Laporan"
        assert ctx.incomplete_tasks_count == 1

    @pytest.mark.asyncio
    async def test_acknowledged_create_replaces_local_id(self, ctx, server):
        task = ctx.add_task("Laporan")
        await ctx.drain()

        assert len(ctx.tasks) == 1
        assert ctx.tasks[0].id == EntityId.remote(server.tasks[0]["id"])
        assert ctx.find_task(task.id.value) is None

        await ctx.refresh_tasks()
        assert len(ctx.tasks) == 1

    @pytest.mark.asyncio
    async def test_offline_create_survives_and_replays(self, ctx, server):
        server.online = False
        ctx.add_task("Offline")
        await ctx.drain()

        assert len(ctx.engine.outbox) == 1
        assert ctx.tasks[0].id.is_local

        server.online = True
        await ctx.refresh_messages()

        assert len(ctx.engine.outbox) == 0
        assert ctx.tasks[0].id.is_remote
        assert server.tasks[0]["title"] == "Offline"

    @pytest.mark.asyncio
    async def test_toggle_remote_task_pushes_update(self, ctx, server):
        row = server.add_task("2021001", "UTS")
        await ctx.initialize()

        ctx.toggle_task(str(row["id"]))
        await ctx.drain()

        assert ctx.tasks[0].done is True
        assert server.tasks[0]["done"] is True
        assert ctx.incomplete_tasks_count == 0

    @pytest.mark.asyncio
    async def test_edit_task(self, ctx, server):
        row = server.add_task("2021001", "UTS")
        await ctx.initialize()

        ctx.edit_task(str(row["id"]), "UTS Algoritma")
        await ctx.drain()

        assert server.tasks[0]["title"] == "UTS Algoritma"

    @pytest.mark.asyncio
    async def test_edit_requires_title(self, ctx):
        task = ctx.add_task("A")
        with pytest.raises(ValidationError):
            ctx.edit_task(task.id.value, " ")

    @pytest.mark.asyncio
    async def test_delete_remote_task(self, ctx, server, store):
        row = server.add_task("2021001", "UTS")
        await ctx.initialize()

        assert ctx.delete_task(str(row["id"])) is True
        await ctx.drain()

        assert ctx.tasks == []
        assert store.get(TASKS_KEY) == []
        assert server.tasks == []

    @pytest.mark.asyncio
    async def test_delete_unsent_task_never_reaches_server(self, ctx, server):
        server.online = False
        task = ctx.add_task("Oops")
        await ctx.drain()
        server.online = True

        ctx.delete_task(task.id.value)
        await ctx.refresh_messages()

        assert server.tasks == []
        assert len(ctx.engine.outbox) == 0

    @pytest.mark.asyncio
    async def test_incomplete_count(self, ctx, server):
        for title, done in [("A", False), ("B", True), ("C", False)]:
            server.add_task("2021001", title, done=done)
        await ctx.initialize()

        assert ctx.incomplete_tasks_count == 2

        pending = next(t for t in ctx.tasks if t.title == "A")
        ctx.toggle_task(pending.id.value)
        assert ctx.incomplete_tasks_count == 1

    @pytest.mark.asyncio
    async def test_delete_during_inflight_create_removes_server_copy(self, signed_in, notifier, clock, server):
        """A task deleted while its create is on the wire is deleted again by server id."""
        state = {}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST" and request.url.path.endswith("/tasks") and "task" in state:
                state["ctx"].delete_task(state.pop("task").id.value)
            return server.handle(request)

        api = SiakadClient("http://siakad.test/api", transport=httpx.MockTransport(handler))
        ctx = build(signed_in, api, notifier, clock)
        state["ctx"] = ctx
        state["task"] = ctx.add_task("Oops")

        await ctx.drain()
        await api.close()

        assert ctx.tasks == []
        assert server.tasks == []
        assert len(ctx.engine.outbox) == 0

    @pytest.mark.asyncio
    async def test_unknown_task(self, ctx):
        assert ctx.toggle_task("nope") is None
        assert ctx.delete_task("nope") is False

    @pytest.mark.asyncio
    async def test_edit_during_inflight_create_is_not_lost(self, signed_in, notifier, clock, server):
        """A toggle made while the create is on the wire is sent as a follow-up update."""
        state = {}

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST" and request.url.path.endswith("/tasks") and "task" in state:
                state["ctx"].toggle_task(state.pop("task").id.value)
            return server.handle(request)

        api = SiakadClient("http://siakad.test/api", transport=httpx.MockTransport(handler))
        ctx = build(signed_in, api, notifier, clock)
        state["ctx"] = ctx
        state["task"] = ctx.add_task("Laporan")

        await ctx.drain()
        await api.close()

        assert ctx.tasks[0].id.is_remote
        assert ctx.tasks[0].done is True
        assert server.tasks[0]["done"] is True


class TestMessages:
    """Tests for message mutations."""

    @pytest.mark.asyncio
    async def test_add_message_pushed(self, ctx, server):
        ctx.add_message("Budi", "Halo")
        await ctx.drain()

        assert server.messages[0]["text"] == "Halo"
        assert ctx.messages[0].id.is_remote

    @pytest.mark.asyncio
    async def test_add_message_requires_text(self, ctx, server):
        with pytest.raises(ValidationError):
            ctx.add_message("Budi", "   ")
        assert ctx.messages == []
        assert len(ctx.engine.outbox) == 0

    @pytest.mark.asyncio
    async def test_unread_count_follows_mark_read(self, ctx, server):
        server.add_message("2021001", "Pak Dosen", "Kuis")
        server.add_message("2021001", "Pak Dosen", "UTS", read=True)
        row = server.add_message("2021001", "Bu Dosen", "Tugas")
        await ctx.initialize()

        assert ctx.unread_messages_count == 2

        ctx.mark_message_read(str(row["id"]))
        assert ctx.unread_messages_count == 1

    @pytest.mark.asyncio
    async def test_add_local_message_not_pushed(self, ctx, server):
        ctx.add_local_message("Sistem", "Catatan")
        await ctx.drain()

        assert ctx.messages[0].text == "Catatan"
        assert server.messages == []
        assert len(ctx.engine.outbox) == 0

    @pytest.mark.asyncio
    async def test_mark_read(self, ctx, server):
        row = server.add_message("2021001", "Pak Dosen", "Kuis")
        await ctx.initialize()
        assert ctx.unread_messages_count == 1

        ctx.mark_message_read(str(row["id"]))
        await ctx.drain()

        assert ctx.unread_messages_count == 0
        assert server.messages[0]["read"] is True

    @pytest.mark.asyncio
    async def test_send_message_by_name(self, ctx, server):
        server.add_user("2020007", "Sari Dewi")

        message = await ctx.send_message_now("Sari Dewi", "Besok kuliah?")

        assert message.user_nim == "2020007"
        sent = server.messages[0]
        assert (sent["user_nim"], sent["from"], sent["text"]) == ("2020007", "Budi Santoso", "Besok kuliah?")
        assert ctx.messages[0].text == "Besok kuliah?"

    @pytest.mark.asyncio
    async def test_send_message_unknown_recipient(self, ctx, server):
        with pytest.raises(ApiError, match="Penerima tidak ditemukan"):
            await ctx.send_message_now("Nobody", "Halo")
        assert server.messages == []

    @pytest.mark.asyncio
    async def test_send_message_failure_raises(self, ctx, server):
        server.add_user("2020007", "Sari Dewi")
        server.online = False
        with pytest.raises(ApiError):
            await ctx.send_message_now("2020007", "Halo")

    @pytest.mark.asyncio
    async def test_send_message_requires_text(self, ctx):
        with pytest.raises(ValidationError):
            await ctx.send_message_now("2020007", "  ")

    @pytest.mark.asyncio
    async def test_presensi_notifications_are_mirrored(self, ctx, notifier, server):
        server.online = False
        await ctx.initialize()
        before = len(ctx.messages)

        notifier.deliver(NotificationContent(title="Ingat Presensi", body="Belum presensi: Algoritma"))
        notifier.deliver(NotificationContent(title="Jadwal Hari Ini", body="Anda ada 2 perkuliahan"))

        assert len(ctx.messages) == before + 1
        assert (ctx.messages[0].sender, ctx.messages[0].text) == ("Sistem", "Belum presensi: Algoritma")


class TestBackgroundRefresh:
    """Tests for the periodic message poll."""

    @pytest.mark.asyncio
    async def test_polls_messages_only(self, ctx, server):
        await ctx.initialize()
        server.add_message("2021001", "Pak Dosen", "Baru")
        server.add_task("2021001", "Not polled")

        ctx.start_background_refresh()
        await asyncio.sleep(0.1)
        await ctx.stop()

        assert "Baru" in [m.text for m in ctx.messages]
        assert "Not polled" not in [t.title for t in ctx.tasks]

    @pytest.mark.asyncio
    async def test_poll_survives_outage(self, ctx, server):
        await ctx.initialize()
        server.online = False

        ctx.start_background_refresh()
        await asyncio.sleep(0.05)

        assert not ctx._refresh_task.done()
        await ctx.stop()
        assert ctx._refresh_task is None


class TestCoursesAndPreferences:
    """Tests for course delegation and preferences."""

    @pytest.mark.asyncio
    async def test_course_operations_refresh_state(self, ctx, notifier):
        course = ctx.add_course("Algoritma")
        assert [c.name for c in ctx.courses] == ["Algoritma"]

        ctx.mark_attendance(course.id)
        assert ctx.scheduler.has_attended_today(ctx.courses[0])

        ctx.set_notif_time("07:00")
        assert notifier.is_live(ctx.courses[0].notification_id)

        assert ctx.remove_course(course.id) is True
        assert ctx.courses == []

    @pytest.mark.asyncio
    async def test_schedule_edit_refreshes_summary(self, ctx, notifier):
        ctx.add_schedule_item(1, "Jaringan", "13:00-14:40")

        summaries = [s for s in notifier.scheduled() if s.content.title == SUMMARY_TITLE]
        assert len(summaries) == 1
        assert summaries[0].content.body.startswith("Anda ada 3 perkuliahan")

    @pytest.mark.asyncio
    async def test_theme_change_notifies(self, ctx, store):
        seen = []
        ctx.on_theme_change(seen.append)

        ctx.set_theme("dark")

        assert seen == ["dark"]
        assert store.get(THEME_KEY) == "dark"
        with pytest.raises(ValidationError):
            ctx.set_theme("purple")

    @pytest.mark.asyncio
    async def test_user_change_notifies(self, ctx):
        seen = []
        ctx.on_user_change(seen.append)
        ctx.auth.logout()
        assert seen == [None]
