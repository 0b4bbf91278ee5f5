"""Slash-command routing and handlers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .assistant import Assistant
from .config import Config
from .errors import StorageError
from .project_init import init_project
from .rendering import render_usage
from .storage import TASK_COMPLETED, TASK_IN_PROGRESS, TASK_SKIPPED
from .theme import ACCENT, BORDER, DIM, SUCCESS, TEXT, WARN
from .ui import SLASH_COMMANDS, render_help

_SLASH_ALIASES = {"/h": "/help", "/?": "/help", "/exit": "/quit", "/q": "/quit"}

_TASK_MARKERS = {
    TASK_COMPLETED: "[x]",
    TASK_IN_PROGRESS: "[>]",
    TASK_SKIPPED: "[-]",
}
_PLAN_ACTIONS = {"done": TASK_COMPLETED, "start": TASK_IN_PROGRESS, "skip": TASK_SKIPPED}


@dataclass
class CommandContext:
    console: Console
    assistant: Assistant
    config: Config


CommandHandler = Callable[[CommandContext, list[str]], str]


def _resolve_command(raw_cmd: str) -> str:
    """Exact match, then alias, then unique-enough prefix."""
    cmd = raw_cmd.lower()
    if cmd in SLASH_COMMANDS:
        return cmd
    if cmd in _SLASH_ALIASES:
        return _SLASH_ALIASES[cmd]
    matches = [candidate for candidate in SLASH_COMMANDS if candidate.startswith(cmd)]
    if len(matches) == 1:
        return matches[0]
    return cmd


def handle_command(command: str, *, console: Console, assistant: Assistant,
                   config: Config) -> str:
    """Handle one slash command string. Returns "quit" to leave the REPL."""
    parts = command.split()
    if not parts:
        return ""

    cmd = _resolve_command(parts[0])
    handler = COMMAND_HANDLERS.get(cmd)
    if not handler:
        console.print(f"  [{WARN}]Unknown command: {escape(parts[0])}. Try /help[/{WARN}]")
        return ""

    ctx = CommandContext(console=console, assistant=assistant, config=config)
    try:
        return handler(ctx, parts[1:])
    except StorageError as e:
        console.print(f"  [{WARN}]⚠ {e}[/{WARN}]")
        return ""


def _cmd_quit(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    ctx.console.print(f"[{DIM}]Goodbye![/{DIM}]")
    return "quit"


def _cmd_help(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    render_help(ctx.console)
    return ""


def _cmd_init(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    console = ctx.console
    console.print(f"[{DIM}]Analyzing project structure...[/{DIM}]")
    project = init_project(ctx.assistant.working_dir, ctx.assistant.storage)
    ctx.assistant.reload_context()

    console.print(f"\n[{SUCCESS}]✓ Project initialized successfully![/{SUCCESS}]\n")
    if project.project_type:
        module = f" ({project.module_name})" if project.module_name else ""
        console.print(f"  Type: {project.project_type}{module}")
    console.print(f"  Structure: {project.file_count} files, {project.dir_count} directories")
    if project.build_commands:
        console.print(f"  Build commands: {', '.join(project.build_commands)}")
    if project.git is not None and project.git.branch:
        console.print(f"  Git branch: {project.git.branch}")
    console.print("\n  Created:")
    console.print("    - TARACODE.md")
    console.print("    - .taracode/")
    console.print(f"\n[{DIM}]Edit TARACODE.md to add custom instructions.[/{DIM}]")
    return ""


def _cmd_usage(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    render_usage(ctx.console, ctx.assistant.get_usage())
    return ""


def _cmd_reload(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    ctx.assistant.reload_context()
    ctx.console.print(f"  [{SUCCESS}]✓ Project context reloaded[/{SUCCESS}]")
    return ""


def _cmd_clear(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    if ctx.assistant.storage is not None:
        ctx.assistant.new_session()
        ctx.console.print(f"  [{SUCCESS}]✓ Conversation cleared. Started new session.[/{SUCCESS}]")
    else:
        ctx.assistant.clear()
        ctx.console.print(f"  [{SUCCESS}]✓ Conversation cleared[/{SUCCESS}]")
    return ""


def _cmd_session(ctx: CommandContext, args: list[str]) -> str:
    assistant = ctx.assistant
    if not args:
        session = assistant.session
        if session is None:
            ctx.console.print(f"  [{DIM}]No active session (storage disabled)[/{DIM}]")
            return ""
        # The in-memory copy predates messages saved this run.
        session = assistant.storage.get_session(session.id)
        name = f" ({session.name})" if session.name else ""
        ctx.console.print(f"  Session: [bold]{session.id[:8]}[/bold]{name}")
        ctx.console.print(f"  [{DIM}]{len(session.messages)} messages · created {session.created_at}[/{DIM}]")
        return ""

    if args[0] == "new":
        session = assistant.new_session(" ".join(args[1:]))
        ctx.console.print(f"  [{SUCCESS}]✓ Started session {session.id[:8]}[/{SUCCESS}]")
        return ""

    if args[0] == "load" and len(args) > 1:
        session = assistant.load_session(args[1])
        ctx.console.print(
            f"  [{SUCCESS}]✓ Loaded session {session.id[:8]} "
            f"({len(session.messages)} messages)[/{SUCCESS}]"
        )
        return ""

    ctx.console.print(f"  [{DIM}]Usage: /session | /session new \\[name] | /session load <id>[/{DIM}]")
    return ""


def _cmd_sessions(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    sessions = ctx.assistant.list_sessions()
    if not sessions:
        ctx.console.print(f"  [{DIM}]No saved sessions[/{DIM}]")
        return ""

    active_id = ctx.assistant.session.id if ctx.assistant.session else ""
    table = Table(border_style=BORDER)
    table.add_column("", width=2)
    table.add_column("ID", style=f"bold {ACCENT}")
    table.add_column("Name", style=TEXT)
    table.add_column("Messages", style=TEXT, justify="right")
    table.add_column("Updated", style=DIM)
    for meta in sessions:
        marker = f"[{SUCCESS}]●[/{SUCCESS}]" if meta.id == active_id else " "
        table.add_row(marker, meta.id[:8], meta.name or "-", str(meta.message_count),
                      meta.updated_at[:19].replace("T", " "))
    ctx.console.print(Panel(table, title=f"[bold {ACCENT}] Sessions [/bold {ACCENT}]",
                            title_align="left", border_style=BORDER))
    return ""


def _cmd_status(ctx: CommandContext, args: list[str]) -> str:
    _ = args
    table = Table(show_header=False, border_style=BORDER, padding=(0, 2), box=None)
    table.add_column("Key", style=f"bold {ACCENT}", min_width=14)
    table.add_column("Value", style=TEXT)
    for key, value in ctx.assistant.status().items():
        if isinstance(value, bool):
            value = "yes" if value else "no (run /init)"
        table.add_row(key.capitalize(), str(value))
    table.add_row("Streaming", "ON" if ctx.assistant.streaming else "OFF")
    table.add_row("Config", ctx.config.config_source or "(defaults)")
    ctx.console.print(Panel(table, title=f"[bold {ACCENT}] Status [/bold {ACCENT}]",
                            title_align="left", border_style=BORDER, padding=(0, 1)))
    return ""


def _show_plan(ctx: CommandContext, plan) -> None:
    ctx.console.print(f"\n  [bold {ACCENT}]▣ {plan.title}[/bold {ACCENT}]")
    for i, task in enumerate(plan.tasks, 1):
        marker = _TASK_MARKERS.get(task.status, "[ ]")
        color = SUCCESS if task.status == TASK_COMPLETED else (
            WARN if task.status == TASK_IN_PROGRESS else DIM)
        ctx.console.print(
            f"  [{color}]{escape(marker)}[/{color}] [{DIM}]{i}.[/{DIM}] {escape(task.content)}",
            highlight=False,
        )
    ctx.console.print()


def _cmd_plan(ctx: CommandContext, args: list[str]) -> str:
    storage = ctx.assistant.require_storage()
    plan = storage.get_active_plan()

    if not args:
        if plan is None:
            ctx.console.print(f"  [{DIM}]No active plan. Use /plan new <title>: task; task[/{DIM}]")
        else:
            _show_plan(ctx, plan)
        return ""

    action = args[0]
    if action == "new":
        spec = " ".join(args[1:])
        title, _, rest = spec.partition(":")
        tasks = [t.strip() for t in rest.split(";") if t.strip()]
        if not title.strip():
            ctx.console.print(f"  [{DIM}]Usage: /plan new <title>: task one; task two[/{DIM}]")
            return ""
        plan = storage.create_plan(title.strip(), tasks)
        ctx.assistant.reload_context()
        ctx.console.print(f"  [{SUCCESS}]✓ Plan created with {len(plan.tasks)} tasks[/{SUCCESS}]")
        return ""

    if plan is None:
        ctx.console.print(f"  [{WARN}]No active plan[/{WARN}]")
        return ""

    if action == "archive":
        storage.archive_plan(plan.id)
        ctx.assistant.reload_context()
        ctx.console.print(f"  [{SUCCESS}]✓ Plan archived[/{SUCCESS}]")
        return ""

    if action in _PLAN_ACTIONS and len(args) > 1:
        try:
            index = int(args[1])
        except ValueError:
            index = 0
        if not 1 <= index <= len(plan.tasks):
            ctx.console.print(f"  [{WARN}]No task {args[1]} (1-{len(plan.tasks)})[/{WARN}]")
            return ""
        storage.update_task_status(plan.id, plan.tasks[index - 1].id, _PLAN_ACTIONS[action])
        ctx.assistant.reload_context()
        _show_plan(ctx, storage.get_active_plan())
        return ""

    ctx.console.print(
        f"  [{DIM}]Usage: /plan | /plan new <title>: t1; t2 | "
        f"/plan done|start|skip <n> | /plan archive[/{DIM}]"
    )
    return ""


COMMAND_HANDLERS: dict[str, CommandHandler] = {
    "/init": _cmd_init,
    "/help": _cmd_help,
    "/usage": _cmd_usage,
    "/reload": _cmd_reload,
    "/clear": _cmd_clear,
    "/session": _cmd_session,
    "/sessions": _cmd_sessions,
    "/status": _cmd_status,
    "/plan": _cmd_plan,
    "/quit": _cmd_quit,
}
