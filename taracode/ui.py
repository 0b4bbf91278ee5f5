"""Terminal UI primitives: prompt style, slash-command palette, help, startup."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

from prompt_toolkit.completion import Completion, Completer
from prompt_toolkit.formatted_text import HTML
from prompt_toolkit.styles import Style
from rich.markup import escape

from .theme import ACCENT, DIM, PROMPT, SUCCESS, WARN

PTK_STYLE = Style.from_dict({
    "completion-menu": "bg:default",
    "completion-menu.completion": "bg:default #C8D8EE",
    "completion-menu.completion.current": "bg:#1E2834 #E7EEF8",
    "completion-menu.meta.completion": "bg:default #7AA7E8",
    "completion-menu.meta.completion.current": "bg:#1E2834 #7AA7E8",
    "completion-menu.command": "#57DB9C",
    "completion-menu.args": "#9BB0C9",
    "completion-menu.description": "#7AA7E8",
    "scrollbar.background": "bg:default",
    "scrollbar.button": "bg:default",
})


@dataclass(frozen=True)
class SlashCommandSpec:
    command: str
    usage: str
    description: str
    group: str
    keywords: tuple[str, ...] = ()


SLASH_COMMAND_SPECS: tuple[SlashCommandSpec, ...] = (
    SlashCommandSpec("/init", "/init", "Analyze project, write TARACODE.md", "Project",
                     ("setup", "context", "taracode.md")),
    SlashCommandSpec("/reload", "/reload", "Reload TARACODE.md and plan", "Project",
                     ("context", "refresh")),
    SlashCommandSpec("/status", "/status", "Provider, model and storage", "Project",
                     ("server", "host", "info")),
    SlashCommandSpec("/session", "/session [new|load <id>]", "Show, start or load a session",
                     "Sessions", ("history", "resume")),
    SlashCommandSpec("/sessions", "/sessions", "List sessions", "Sessions", ("history",)),
    SlashCommandSpec("/clear", "/clear", "Clear conversation history", "Sessions",
                     ("reset", "forget")),
    SlashCommandSpec("/plan", "/plan [new|done|start|skip|archive]", "Show or edit the plan",
                     "Plans", ("tasks", "todo")),
    SlashCommandSpec("/usage", "/usage", "Token usage this session", "Other",
                     ("tokens", "stats")),
    SlashCommandSpec("/help", "/help", "Show help", "Other", ("commands", "docs")),
    SlashCommandSpec("/quit", "/quit", "Quit", "Other", ("exit",)),
)

SLASH_COMMANDS = [spec.command for spec in SLASH_COMMAND_SPECS]
HELP_GROUPS = ("Project", "Sessions", "Plans", "Other")


def build_banner(version: str) -> str:
    return (
        f"[bold {ACCENT}]taracode[/bold {ACCENT}] "
        f"[dim]v{version} · coding assistant for local LLMs[/dim]"
    )


def build_help_text() -> str:
    usage_width = max(len(spec.usage) for spec in SLASH_COMMAND_SPECS)
    lines = []
    for group in HELP_GROUPS:
        lines.extend(["", f"[bold {ACCENT}]{group}:[/bold {ACCENT}]"])
        for spec in SLASH_COMMAND_SPECS:
            if spec.group == group:
                lines.append(f"  {escape(spec.usage.ljust(usage_width))}  {spec.description}")

    lines.extend([
        "",
        f"[bold {ACCENT}]Tips:[/bold {ACCENT}]",
        "  exit, quit     Leave taracode",
        "  Esc → Enter    Multi-line input",
        "  Ctrl-C         Exit",
    ])
    return "\n".join(lines)


def render_help(console) -> None:
    console.print(build_help_text())
    console.print()


def make_prompt_html() -> HTML:
    return HTML(
        f'<style fg="{PROMPT}">taracode</style>'
        f'<style fg="#66788A"> › </style>'
    )


def render_startup(console, *, has_project_context: bool, provider_info=None,
                   session=None) -> None:
    """Startup notices: project context, provider connection, resumed session."""
    if has_project_context:
        console.print(f"[{SUCCESS}]✓[/{SUCCESS}] [dim]Loaded project context from TARACODE.md[/dim]")
    else:
        console.print(f"[{WARN}]![/{WARN}] [dim]No TARACODE.md found. Run /init to create one.[/dim]")

    if provider_info is not None:
        console.print(
            f"[dim]provider[/dim] {provider_info.name}"
            f" [dim]• model[/dim] [bold]{provider_info.model}[/bold]"
            f" [dim]• host[/dim] {provider_info.host}"
        )

    if session is not None and session.messages:
        console.print(
            f"[{DIM}]Resumed session {session.id[:8]} "
            f"({len(session.messages)} messages)[/{DIM}]"
        )
    console.print("[dim]/help for commands · exit to quit[/dim]")
    console.print()


# Words accepted after a command; completed but not validated here.
SUBCOMMANDS = {
    "/session": ("new", "load"),
    "/plan": ("new", "done", "start", "skip", "archive"),
}


def _letters_span(query: str, word: str) -> int | None:
    """Width of the window in ``word`` that holds ``query``'s letters in order."""
    first = last = -1
    pos = 0
    for char in query:
        pos = word.find(char, pos)
        if pos < 0:
            return None
        if first < 0:
            first = pos
        last = pos
        pos += 1
    return last - first + 1 if query else 0


def rank_command(query: str, spec: SlashCommandSpec) -> tuple[int, int] | None:
    """Sort key of ``spec`` for the typed ``query``; None hides it.

    Tiers: name prefix, name substring, name letters in order, then a hit in
    the description or keywords (``/tokens`` finds ``/usage``).
    """
    typed = query.lower().lstrip("/")
    name = spec.command.lstrip("/")
    if name.startswith(typed):
        return (0, 0)
    pos = name.find(typed)
    if pos >= 0:
        return (1, pos)
    span = _letters_span(typed, name)
    if span is not None:
        return (2, span)
    pos = " ".join((spec.description, *spec.keywords)).lower().find(typed)
    if pos >= 0:
        return (3, pos)
    return None


class SlashCommandCompleter(Completer):
    """Completes slash commands, their subcommands and session ids."""

    def __init__(self, specs: Sequence[SlashCommandSpec] = SLASH_COMMAND_SPECS,
                 session_ids: Callable[[], Iterable[str]] | None = None):
        self.specs = list(specs)
        self.session_ids = session_ids
        self.usage_width = max(len(spec.usage) for spec in self.specs)

    def _display(self, spec: SlashCommandSpec):
        args = spec.usage[len(spec.command):]
        return [
            ("class:completion-menu.command", spec.command),
            ("class:completion-menu.args", args),
            ("", " " * (self.usage_width - len(spec.usage) + 2)),
            ("class:completion-menu.description", spec.description),
        ]

    def _commands(self, word: str):
        ranked = []
        for order, spec in enumerate(self.specs):
            key = rank_command(word, spec)
            if key is not None:
                ranked.append((key, order, spec))
        for _, _, spec in sorted(ranked, key=lambda item: item[:2]):
            yield Completion(spec.command, start_position=-len(word), display=self._display(spec))

    def _subcommands(self, command: str, word: str):
        for sub in SUBCOMMANDS.get(command, ()):
            if sub.startswith(word.lower()):
                yield Completion(sub, start_position=-len(word))

    def _sessions(self, word: str):
        if self.session_ids is None:
            return
        for session_id in self.session_ids():
            if session_id.startswith(word):
                yield Completion(session_id[:8], start_position=-len(word))

    def get_completions(self, document, complete_event):
        text = document.text_before_cursor.lstrip()
        if not text.startswith("/"):
            return
        words = text.split(" ")
        command = words[0].lower()
        if len(words) == 1:
            yield from self._commands(words[0])
        elif len(words) == 2:
            yield from self._subcommands(command, words[1])
        elif len(words) == 3 and command == "/session" and words[1] == "load":
            yield from self._sessions(words[2])
