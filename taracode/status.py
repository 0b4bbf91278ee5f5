"""One-line, human-friendly summaries of tool results."""

import os
from typing import Any, Callable, Dict

from .theme import DIM, ERROR, SUCCESS

__all__ = ["format_tool_status", "status_color"]

_OK = "✓"
_INFO = "→"
_FAIL = "✗"


def _str(params: Dict[str, Any], key: str) -> str:
    value = params.get(key)
    return value if isinstance(value, str) else ""


def _int(params: Dict[str, Any], key: str) -> int:
    value = params.get(key)
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    return 0


def _base(params: Dict[str, Any], key: str = "file_path") -> str:
    return os.path.basename(_str(params, key))


def _lines(result: str) -> int:
    return result.count("\n")


def _read_file(p, r):
    return f"{_INFO} Read {_base(p)} ({_lines(r) + 1} lines)"


def _search_files(p, r):
    pattern = _str(p, "pattern")
    if "No matches" in r:
        return f'{_INFO} Searched for "{pattern}" (no matches)'
    return f'{_INFO} Searched for "{pattern}" ({_lines(r)} matches)'


def _list_files(p, r):
    directory = _str(p, "directory")
    if directory in ("", "."):
        directory = "current directory"
    return f"{_INFO} Listed {directory} ({_lines(r)} items)"


def _execute_command(p, r):
    command = _str(p, "command")
    if len(command) > 40:
        command = command[:37] + "..."
    return f"{_INFO} Executed: {command}"


def _delete_file(p, r):
    suffix = " (recursive)" if p.get("recursive") is True else ""
    return f"{_OK} Deleted {_base(p)}{suffix}"


def _find_files(p, r):
    pattern = _str(p, "pattern")
    if "No files found" in r:
        return f'{_INFO} Find "{pattern}" (no matches)'
    return f'{_INFO} Find "{pattern}" ({_lines(r)} files)'


def _git_status(p, r):
    if "clean" in r:
        return f"{_INFO} Git status: clean"
    return f"{_INFO} Git status: {_lines(r)} changes"


def _git_diff(p, r):
    if "No changes" in r:
        return f"{_INFO} Git diff: no changes"
    return f"{_INFO} Git diff: {_lines(r)} lines"


_FORMATTERS: Dict[str, Callable[[Dict[str, Any], str], str]] = {
    "read_file": _read_file,
    "search_files": _search_files,
    "list_files": _list_files,
    "execute_command": _execute_command,
    "write_file": lambda p, r: f"{_OK} Wrote {_base(p)}",
    "append_file": lambda p, r: f"{_OK} Appended to {_base(p)}",
    "edit_file": lambda p, r: f"{_OK} Edited {_base(p)}",
    "insert_lines": lambda p, r: (
        f"{_OK} Inserted at line {_int(p, 'line_number')} in {_base(p)}"
    ),
    "replace_lines": lambda p, r: (
        f"{_OK} Replaced lines {_int(p, 'start_line')}-{_int(p, 'end_line')} in {_base(p)}"
    ),
    "delete_lines": lambda p, r: (
        f"{_OK} Deleted lines {_int(p, 'start_line')}-{_int(p, 'end_line')} from {_base(p)}"
    ),
    "copy_file": lambda p, r: (
        f"{_OK} Copied {_base(p, 'source_path')} to {_base(p, 'dest_path')}"
    ),
    "move_file": lambda p, r: (
        f"{_OK} Moved {_base(p, 'source_path')} to {_base(p, 'dest_path')}"
    ),
    "delete_file": _delete_file,
    "create_directory": lambda p, r: f"{_OK} Created directory {_base(p, 'path')}",
    "find_files": _find_files,
    "git_status": _git_status,
    "git_diff": _git_diff,
    "git_log": lambda p, r: f"{_INFO} Git log: {_lines(r) + 1} commits",
    "git_add": lambda p, r: f"{_OK} Git: staged files",
    "git_commit": lambda p, r: f"{_OK} Git: commit created",
    "git_branch": lambda p, r: f"{_INFO} Git branches: {_lines(r) + 1}",
}


def format_tool_status(tool: str, params: Dict[str, Any], result: str,
                       is_error: bool) -> str:
    """Summarize one tool execution. Never raises on odd params."""
    if is_error:
        return f"{_FAIL} {tool} failed"
    formatter = _FORMATTERS.get(tool)
    if formatter is None:
        return f"{_INFO} {tool} completed"
    return formatter(params if isinstance(params, dict) else {}, result or "")


def status_color(line: str) -> str:
    """Map a status line to its theme color name."""
    if line.startswith(_FAIL):
        return ERROR
    if line.startswith(_OK):
        return SUCCESS
    return DIM
