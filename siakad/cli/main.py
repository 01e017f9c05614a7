"""
Typer CLI for the SIAKAD student portal client.

Commands:
    siakad login NIM            - Sign in and remember the user
    siakad register NIM NAME    - Create an account
    siakad tasks list|add|...   - Manage tasks (synced with the server)
    siakad messages list|send   - Read and send messages
    siakad courses list|attend  - Track attendance with daily reminders
    siakad schedule today       - Show today's classes with their status
    siakad notif-time 07:30     - Move every reminder to a new time
    siakad sync                 - Replay pending writes and re-fetch everything
    siakad khs                  - Show semester grade reports
    siakad watch                - Poll messages and deliver due reminders

Usage:
    siakad --help
    siakad login 2021001
    siakad tasks add "Laporan praktikum"
    siakad watch --verbose
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import NoReturn, Optional, TypeVar

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import get_settings
from siakad import __version__
from siakad.api.khs import KhsClient
from siakad.errors import SiakadError
from siakad.logging_setup import configure_logging
from siakad.reminders.notifier import NotificationContent
from siakad.reminders.timetable import WEEKDAYS
from siakad.reminders.timing import TimeStatus, format_notif_time
from siakad.state.context import AppContext

T = TypeVar("T")

app = typer.Typer(
    help="SIAKAD CLI: tasks, messages and attendance reminders for the student portal",
    no_args_is_help=True,
)
tasks_app = typer.Typer(help="Task list commands", no_args_is_help=True)
messages_app = typer.Typer(help="Message commands", no_args_is_help=True)
courses_app = typer.Typer(help="Attendance tracking commands", no_args_is_help=True)
schedule_app = typer.Typer(help="Weekly timetable commands", no_args_is_help=True)

app.add_typer(tasks_app, name="tasks")
app.add_typer(messages_app, name="messages")
app.add_typer(courses_app, name="courses")
app.add_typer(schedule_app, name="schedule")

console = Console()

STATUS_STYLES = {
    TimeStatus.FINISHED: "[dim]Selesai[/dim]",
    TimeStatus.ONGOING: "[bold green]Berlangsung[/bold green]",
    TimeStatus.UPCOMING: "[cyan]Akan datang[/cyan]",
    TimeStatus.NONE: "-",
}


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level"),
) -> None:
    """SIAKAD student portal client."""
    configure_logging("DEBUG" if verbose else get_settings().log_level)


# ========================================
# Context Builder (Dependency Injection)
# ========================================


def _build_context() -> AppContext:
    return AppContext.from_settings(get_settings())


def _build_khs_client() -> KhsClient:
    settings = get_settings()
    return KhsClient(settings.khs_rtdb_url, timeout=settings.request_timeout_seconds)


def _run(action: Callable[[AppContext], Awaitable[T]], initialize: bool = True) -> T:
    """Run one command against a fresh context, draining pushes before exit."""

    async def runner() -> T:
        ctx = _build_context()
        try:
            if initialize:
                await ctx.initialize()
            return await action(ctx)
        finally:
            await ctx.close()
            ctx.store.close()

    try:
        return asyncio.run(runner())
    except SiakadError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(1)


def _not_found(what: str, ident: str) -> NoReturn:
    rprint(f"[red]✗[/red] {what} {ident} not found")
    raise typer.Exit(1)


# ========================================
# Account
# ========================================


@app.command()
def login(
    nim: str = typer.Argument(..., help="Student number"),
    password: str = typer.Option(..., prompt=True, hide_input=True),
) -> None:
    """Sign in and remember the user on this device."""

    async def action(ctx: AppContext):
        return await ctx.auth.login(nim, password)

    user = _run(action, initialize=False)
    rprint(f"[bold green]✓[/bold green] Logged in as {user.name or user.nim} ({user.nim})")


@app.command()
def register(
    nim: str = typer.Argument(...),
    name: str = typer.Argument(...),
    email: Optional[str] = typer.Option(None, "--email", "-e"),
    reg_type: str = typer.Option("reguler", "--type", "-t", help="reguler or karyawan"),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True),
) -> None:
    """Create an account and sign in with it."""

    async def action(ctx: AppContext):
        return await ctx.auth.register(nim, name, password, email=email, reg_type=reg_type)

    user = _run(action, initialize=False)
    rprint(f"[bold green]✓[/bold green] Registered {user.nim} ({user.type})")


@app.command()
def logout() -> None:
    """Forget the signed-in user."""

    async def action(ctx: AppContext):
        ctx.auth.logout()

    _run(action, initialize=False)
    rprint("[green]✓[/green] Logged out")


@app.command()
def whoami() -> None:
    """Show the signed-in user."""

    async def action(ctx: AppContext):
        return ctx.current_user

    user = _run(action, initialize=False)
    if user is None:
        rprint("[yellow]Not logged in[/yellow]")
        raise typer.Exit(1)
    rprint(f"[bold]{user.name or '-'}[/bold] ({user.nim})")
    rprint(f"  Type: {user.type}")
    if user.email:
        rprint(f"  Email: {user.email}")


@app.command()
def passwd(
    old_password: str = typer.Option(..., "--old", prompt="Current password", hide_input=True),
    new_password: str = typer.Option(
        ..., "--new", prompt="New password", hide_input=True, confirmation_prompt=True
    ),
) -> None:
    """Change the signed-in user's password."""

    async def action(ctx: AppContext):
        return await ctx.auth.change_password(old_password, new_password)

    message = _run(action, initialize=False)
    rprint(f"[green]✓[/green] {message}")


# ========================================
# Tasks
# ========================================


def _print_tasks(ctx: AppContext) -> None:
    table = Table(title=f"Tugas ({ctx.incomplete_tasks_count} belum selesai)", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Done", justify="center")
    table.add_column("Title")
    table.add_column("Origin", style="dim")
    for task in ctx.tasks:
        table.add_row(task.id.value, "[green]✓[/green]" if task.done else "", task.title, task.id.origin.value)
    console.print(table)


@tasks_app.command("list")
def tasks_list() -> None:
    """List tasks (server copy merged with local-only ones)."""

    async def action(ctx: AppContext):
        _print_tasks(ctx)

    _run(action)


@tasks_app.command("add")
def tasks_add(title: str = typer.Argument(...)) -> None:
    """Add a task; it is pushed to the server in the background."""

    async def action(ctx: AppContext):
        return ctx.add_task(title)

    task = _run(action)
    rprint(f"[green]✓[/green] Added task {task.title}")


@tasks_app.command("toggle")
def tasks_toggle(task_id: str = typer.Argument(...)) -> None:
    """Flip a task between done and not done."""

    async def action(ctx: AppContext):
        return ctx.toggle_task(task_id)

    task = _run(action)
    if task is None:
        _not_found("Task", task_id)
    rprint(f"[green]✓[/green] {task.title}: {'done' if task.done else 'not done'}")


@tasks_app.command("edit")
def tasks_edit(task_id: str = typer.Argument(...), title: str = typer.Argument(...)) -> None:
    """Rename a task."""

    async def action(ctx: AppContext):
        return ctx.edit_task(task_id, title)

    task = _run(action)
    if task is None:
        _not_found("Task", task_id)
    rprint(f"[green]✓[/green] Renamed to {task.title}")


@tasks_app.command("rm")
def tasks_rm(task_id: str = typer.Argument(...)) -> None:
    """Delete a task."""

    async def action(ctx: AppContext):
        return ctx.delete_task(task_id)

    if not _run(action):
        _not_found("Task", task_id)
    rprint("[green]✓[/green] Task deleted")


# ========================================
# Messages
# ========================================


@messages_app.command("list")
def messages_list(
    unread: bool = typer.Option(False, "--unread", "-u", help="Only unread messages"),
) -> None:
    """List messages, newest first."""

    async def action(ctx: AppContext):
        table = Table(title=f"Pesan ({ctx.unread_messages_count} belum dibaca)", show_header=True)
        table.add_column("ID", style="dim")
        table.add_column("From", style="cyan")
        table.add_column("Text")
        table.add_column("Read", justify="center")
        for message in ctx.messages:
            if unread and message.read:
                continue
            table.add_row(message.id.value, message.sender, message.text, "✓" if message.read else "•")
        console.print(table)

    _run(action)


@messages_app.command("send")
def messages_send(
    to: str = typer.Argument(..., help="Recipient name or NIM"),
    text: str = typer.Argument(...),
) -> None:
    """Send a message to another user."""

    async def action(ctx: AppContext):
        return await ctx.send_message_now(to, text)

    message = _run(action)
    rprint(f"[green]✓[/green] Sent to {message.user_nim}")


@messages_app.command("read")
def messages_read(message_id: str = typer.Argument(...)) -> None:
    """Mark a message as read."""

    async def action(ctx: AppContext):
        return ctx.mark_message_read(message_id)

    if _run(action) is None:
        _not_found("Message", message_id)
    rprint("[green]✓[/green] Marked as read")


# ========================================
# Courses (attendance)
# ========================================


@courses_app.command("list")
def courses_list() -> None:
    """List tracked courses with today's attendance."""

    async def action(ctx: AppContext):
        table = Table(title="Presensi", show_header=True)
        table.add_column("ID", style="dim")
        table.add_column("Course")
        table.add_column("Code", style="dim")
        table.add_column("Today", justify="center")
        table.add_column("Reminder", justify="center")
        for course in ctx.courses:
            attended = ctx.scheduler.has_attended_today(course)
            table.add_row(
                course.id,
                course.name,
                course.code or "-",
                "[green]Hadir[/green]" if attended else "[yellow]Belum[/yellow]",
                "on" if course.notification_id else "-",
            )
        console.print(table)

    _run(action)


@courses_app.command("add")
def courses_add(
    name: str = typer.Argument(...),
    code: str = typer.Option("", "--code", "-c"),
) -> None:
    """Track a course and schedule its daily reminder."""

    async def action(ctx: AppContext):
        return ctx.add_course(name, code)

    course = _run(action)
    rprint(f"[green]✓[/green] Added {course.name} ({course.id})")


@courses_app.command("attend")
def courses_attend(course_id: str = typer.Argument(...)) -> None:
    """Mark today's attendance for a course."""

    async def action(ctx: AppContext):
        return ctx.mark_attendance(course_id)

    course = _run(action)
    if course is None:
        _not_found("Course", course_id)
    rprint(f"[green]✓[/green] Hadir: {course.name}")


@courses_app.command("rm")
def courses_rm(course_id: str = typer.Argument(...)) -> None:
    """Stop tracking a course and cancel its reminder."""

    async def action(ctx: AppContext):
        return ctx.remove_course(course_id)

    if not _run(action):
        _not_found("Course", course_id)
    rprint("[green]✓[/green] Course removed")


# ========================================
# Timetable
# ========================================


def _print_day(ctx: AppContext, day: int, now: datetime | None = None) -> None:
    table = Table(title=WEEKDAYS[day], show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Jam")
    table.add_column("Mata Kuliah", style="cyan")
    table.add_column("Ruang")
    table.add_column("Dosen")
    if now is not None:
        table.add_column("Status")

    slots = ctx.scheduler.timetable.statuses(day, now or datetime.now())
    for item, status in slots:
        row = [item.id, item.jam, item.mk, item.ruang or "-", item.dosen or "-"]
        if now is not None:
            row.append(STATUS_STYLES[status])
        table.add_row(*row)
    console.print(table)


@schedule_app.command("show")
def schedule_show(
    day: Optional[int] = typer.Option(None, "--day", "-d", min=1, max=5, help="1=Senin .. 5=Jumat"),
) -> None:
    """Show the weekly timetable (or one day of it)."""

    async def action(ctx: AppContext):
        for d in [day] if day else sorted(WEEKDAYS):
            _print_day(ctx, d)

    _run(action, initialize=False)


@schedule_app.command("today")
def schedule_today() -> None:
    """Show today's classes with their live status."""

    async def action(ctx: AppContext):
        now = datetime.now()
        day, _ = ctx.scheduler.timetable.today(now)
        _print_day(ctx, day, now)

    _run(action, initialize=False)


@schedule_app.command("add")
def schedule_add(
    day: int = typer.Argument(..., min=1, max=5, help="1=Senin .. 5=Jumat"),
    mk: str = typer.Argument(..., help="Course name"),
    jam: str = typer.Argument(..., help="Time range, e.g. 08:00-09:40"),
    ruang: str = typer.Option("", "--ruang", "-r"),
    dosen: str = typer.Option("", "--dosen"),
) -> None:
    """Add a class slot."""

    async def action(ctx: AppContext):
        return ctx.add_schedule_item(day, mk, jam, ruang, dosen)

    item = _run(action, initialize=False)
    rprint(f"[green]✓[/green] {WEEKDAYS[day]}: {item.mk} {item.jam}")


@schedule_app.command("rm")
def schedule_rm(
    day: int = typer.Argument(..., min=1, max=5),
    item_id: str = typer.Argument(...),
) -> None:
    """Remove a class slot."""

    async def action(ctx: AppContext):
        return ctx.remove_schedule_item(day, item_id)

    if not _run(action, initialize=False):
        _not_found("Slot", item_id)
    rprint("[green]✓[/green] Slot removed")


# ========================================
# Preferences
# ========================================


@app.command("notif-time")
def notif_time(value: Optional[str] = typer.Argument(None, help="HH:MM")) -> None:
    """Show or change the daily reminder time."""

    async def action(ctx: AppContext):
        if value is None:
            return ctx.scheduler.notif_time()
        return ctx.set_notif_time(value)

    hour, minute = _run(action, initialize=False)
    rprint(f"Reminder time: [bold]{format_notif_time(hour, minute)}[/bold]")


@app.command()
def theme(value: Optional[str] = typer.Argument(None, help="light, dark or system")) -> None:
    """Show or change the theme preference."""

    async def action(ctx: AppContext):
        if value is not None:
            ctx.set_theme(value)
        return ctx.theme()

    current = _run(action, initialize=False)
    rprint(f"Theme: [bold]{current or 'system'}[/bold]")


# ========================================
# Sync
# ========================================


@app.command()
def sync() -> None:
    """Replay pending writes, then re-fetch tasks and messages."""

    async def action(ctx: AppContext):
        await ctx.refresh_tasks()
        await ctx.refresh_messages()
        return len(ctx.tasks), len(ctx.messages), len(ctx.engine.outbox)

    task_count, message_count, pending = _run(action)

    table = Table(title="Sync Results", show_header=True)
    table.add_column("Entity Type", style="cyan")
    table.add_column("Items", justify="right", style="green")
    table.add_row("tasks", str(task_count))
    table.add_row("messages", str(message_count))
    console.print(table)

    if pending:
        rprint(f"\n[yellow]⚠[/yellow] {pending} writes still pending (server unreachable?)")
    else:
        rprint("\n[bold green]✓ Sync complete![/bold green]")


@app.command()
def khs(
    nim: Optional[str] = typer.Option(None, "--nim", "-n", help="Defaults to the signed-in user"),
    show_all: bool = typer.Option(False, "--all", "-a", help="Every student's reports"),
) -> None:
    """Show semester grade reports (KHS)."""

    async def action(ctx: AppContext):
        client = _build_khs_client()
        try:
            if show_all:
                return await client.fetch_all()
            target = nim or ctx.auth.current_nim()
            if not target:
                rprint("[yellow]Not logged in; pass --nim[/yellow]")
                raise typer.Exit(1)
            return await client.fetch_for_nim(target)
        finally:
            await client.close()

    records = _run(action, initialize=False)
    if not records:
        rprint("[dim]No KHS records found[/dim]")
        return

    for record in records:
        table = Table(
            title=f"{record.nim} • Semester {record.semester or '-'} • {record.year or '-'}",
            show_header=True,
        )
        table.add_column("Mata Kuliah")
        table.add_column("Nilai", justify="center", style="bold")
        for course in record.courses:
            table.add_row(str(course.get("name", "-")), str(course.get("grade", "-")))
        if record.gpa is not None:
            table.add_section()
            table.add_row("IPS", f"{record.gpa:.2f}", style="bold")
        console.print(table)


# ========================================
# Watch
# ========================================


@app.command()
def watch(
    interval: Optional[float] = typer.Option(None, "--interval", "-i", help="Message poll interval (seconds)"),
    tick: float = typer.Option(1.0, "--tick", help="Reminder check interval (seconds)"),
) -> None:
    """
    Keep running: poll messages and deliver due reminders.

    Reminder handles only live as long as the process that scheduled them,
    so every course reminder is re-registered on start.
    """

    def show(content: NotificationContent) -> None:
        console.print(Panel(content.body, title=content.title, border_style="cyan"))

    async def action(ctx: AppContext):
        if interval:
            ctx.refresh_interval = interval
        ctx.scheduler.reschedule_all()
        ctx.courses = ctx.scheduler.courses()

        unsubscribe = ctx.notifier.on_delivered(show)
        ctx.start_background_refresh()
        rprint(f"[bold cyan]Watching[/bold cyan] (messages every {ctx.refresh_interval:g}s, Ctrl+C to stop)")
        try:
            while True:
                deliver_due = getattr(ctx.notifier, "deliver_due", None)
                if deliver_due is not None:
                    deliver_due(datetime.now())
                await asyncio.sleep(tick)
        finally:
            unsubscribe()

    try:
        _run(action)
    except KeyboardInterrupt:
        logger.info("Watcher stopped")


@app.command()
def version() -> None:
    """Show version information."""
    rprint(f"[bold]siakad-sync[/bold] v{__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
