"""Terminal rendering: markdown answers, tool status lines, spinners, errors."""

from typing import Dict, Optional

from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape
from rich.status import Status

from .status import status_color
from .theme import ACCENT, DIM, ERROR, TEXT, WARN

__all__ = [
    "ConsoleProgress", "NullProgress",
    "render_markdown", "print_status", "render_error", "render_warning",
    "format_usage", "preview_tail",
]

PREVIEW_CHARS = 60


def preview_tail(text: str, limit: int = PREVIEW_CHARS) -> str:
    """Last line of ``text``, cut to ``limit`` characters, for spinner previews."""
    lines = [line for line in text.strip().splitlines() if line.strip()]
    if not lines:
        return ""
    tail = lines[-1].strip()
    if len(tail) > limit:
        tail = "…" + tail[-(limit - 1):]
    return tail


class NullProgress:
    """Progress sink that shows nothing (``--no-spinner`` and tests)."""

    def start(self, message: str):
        pass

    def update(self, message: str):
        pass

    def stop(self):
        pass


class ConsoleProgress:
    """Progress sink backed by a rich Status spinner."""

    def __init__(self, console: Console):
        self.console = console
        self._status: Optional[Status] = None

    @staticmethod
    def _markup(message: str) -> str:
        return f"  [{DIM}]{escape(message)}[/{DIM}]"

    def start(self, message: str):
        self.stop()
        self._status = Status(self._markup(message), console=self.console,
                              spinner="dots", spinner_style=ACCENT)
        self._status.start()

    def update(self, message: str):
        if self._status is None:
            self.start(message)
        else:
            self._status.update(self._markup(message))

    def stop(self):
        if self._status is not None:
            self._status.stop()
            self._status = None


def render_markdown(console: Console, content: str):
    if not content.strip():
        return
    console.print()
    console.print(Markdown(content))


def print_status(console: Console, line: str):
    color = status_color(line)
    console.print(f"  [{color}]{escape(line)}[/{color}]")


def render_error(console: Console, message: str):
    console.print(f"\n[bold {ERROR}]Error:[/bold {ERROR}] [{ERROR}]{escape(message)}[/{ERROR}]",
                  highlight=False)


def render_warning(console: Console, message: str):
    console.print(f"  [{WARN}]⚠ {escape(message)}[/{WARN}]")


def format_usage(usage: Optional[Dict[str, int]]) -> str:
    if not usage or not usage.get("total_tokens"):
        return "No token usage recorded yet."
    return (
        f"Prompt tokens:     {usage.get('prompt_tokens', 0):,}\n"
        f"Completion tokens: {usage.get('completion_tokens', 0):,}\n"
        f"Total tokens:      {usage.get('total_tokens', 0):,}"
    )


def render_usage(console: Console, usage: Optional[Dict[str, int]]):
    console.print(f"[{TEXT}]{format_usage(usage)}[/{TEXT}]")
