"""Tool registry: dict-based dispatch from model-requested names to executors."""
import math
from typing import Any, Callable, Dict, List, Optional

from ..errors import ShellTimeoutError, ToolError, UnknownToolError
from ..logger import get_logger
from .file_ops import FileOperationError, FileOps
from .git_ops import GitError, GitOps
from .shell import DEFAULT_TIMEOUT, ShellError, ShellExecutor

_log = get_logger(__name__)

ToolHandler = Callable[["_Params"], str]


class _Params:
    """Typed accessors over the loosely-typed params object a model produced."""

    def __init__(self, tool: str, raw: Dict[str, Any]):
        self.tool = tool
        self.raw = raw if isinstance(raw, dict) else {}

    def _missing(self, key: str, detail: str = "") -> ToolError:
        return ToolError(self.tool, f"{key} parameter is required{detail}")

    @staticmethod
    def _number(value: Any) -> Optional[int]:
        # JSON numbers may arrive as floats (1e999 decodes to inf); bools are not numbers here.
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return int(value)

    def req_str(self, key: str) -> str:
        value = self.raw.get(key)
        if not isinstance(value, str):
            raise self._missing(key)
        return value

    def opt_str(self, key: str, default: str = "") -> str:
        value = self.raw.get(key)
        return value if isinstance(value, str) else default

    def req_int(self, key: str) -> int:
        number = self._number(self.raw.get(key))
        if number is None:
            raise self._missing(key, " and must be a number")
        return number

    def opt_int(self, key: str, default: Optional[int] = None) -> Optional[int]:
        if self.raw.get(key) is None:
            return default
        number = self._number(self.raw[key])
        if number is None:
            raise ToolError(self.tool, f"{key} must be a number")
        return number

    def flag(self, key: str) -> bool:
        return self.raw.get(key) is True

    def str_list(self, key: str) -> List[str]:
        value = self.raw.get(key)
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, str)]


class ToolRegistry:
    def __init__(self, project_root: str, blocked_commands: Optional[list] = None,
                 command_timeout: int = DEFAULT_TIMEOUT):
        self.project_root = project_root
        self.file_ops = FileOps(project_root)
        self.shell = ShellExecutor(project_root, blocked_commands, command_timeout)
        self.git = GitOps(project_root)
        self._tools: Dict[str, ToolHandler] = {}
        self._register_tools()

    def _register_tools(self):
        """Register every tool the model may call."""
        f = self.file_ops
        g = self.git

        self._tools.update({
            # ── File operations ──
            "read_file": lambda p: f.read_file(
                p.req_str("file_path"), p.opt_int("start_line"), p.opt_int("end_line")),
            "write_file": lambda p: f.write_file(p.req_str("file_path"), p.req_str("content")),
            "append_file": lambda p: f.append_file(p.req_str("file_path"), p.req_str("content")),
            "edit_file": lambda p: f.edit_file(
                p.req_str("file_path"), p.req_str("old_string"), p.req_str("new_string"),
                p.flag("replace_all")),
            "insert_lines": lambda p: f.insert_lines(
                p.req_str("file_path"), p.req_int("line_number"), p.req_str("content")),
            "replace_lines": lambda p: f.replace_lines(
                p.req_str("file_path"), p.req_int("start_line"), p.req_int("end_line"),
                p.req_str("content")),
            "delete_lines": lambda p: f.delete_lines(
                p.req_str("file_path"), p.req_int("start_line"), p.req_int("end_line")),
            "copy_file": lambda p: f.copy_file(p.req_str("source_path"), p.req_str("dest_path")),
            "move_file": lambda p: f.move_file(p.req_str("source_path"), p.req_str("dest_path")),
            "delete_file": lambda p: f.delete_file(p.req_str("file_path"), p.flag("recursive")),
            "create_directory": lambda p: f.create_directory(p.req_str("path")),
            "list_files": lambda p: f.list_files(p.opt_str("directory"), p.flag("recursive")),
            "find_files": lambda p: f.find_files(
                p.req_str("pattern"), p.opt_str("directory"), p.str_list("exclude")),

            # ── Commands ──
            "execute_command": lambda p: self.shell.execute(
                p.req_str("command"), p.opt_int("timeout")),
            "search_files": lambda p: self.shell.search(
                p.req_str("pattern"), p.opt_str("directory"), p.opt_int("context_lines", 0) or 0,
                p.flag("regex"), p.str_list("file_types"), p.str_list("exclude_dirs")),

            # ── Git ──
            "git_status": lambda p: g.status(),
            "git_diff": lambda p: g.diff(p.opt_str("file_path"), p.flag("staged")),
            "git_log": lambda p: g.log(p.opt_int("limit", 10) or 10),
            "git_add": self._handle_git_add,
            "git_commit": lambda p: g.commit(p.req_str("message")),
            "git_branch": lambda p: g.branch(),
        })

    def _handle_git_add(self, p: _Params) -> str:
        if not isinstance(p.raw.get("files"), list):
            raise ToolError(p.tool, "files parameter is required and must be an array")
        return self.git.add(p.str_list("files"))

    # ── Public API ──

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    def has(self, tool_name: str) -> bool:
        return tool_name in self._tools

    def execute(self, tool_name: str, params: Dict[str, Any]) -> str:
        """Run one tool; every failure surfaces as ToolError."""
        handler = self._tools.get(tool_name)
        if handler is None:
            raise UnknownToolError(tool_name)

        try:
            return handler(_Params(tool_name, params))
        except ToolError:
            raise
        except (FileOperationError, ShellError, GitError, ShellTimeoutError) as e:
            raise ToolError(tool_name, str(e))
        except (OSError, ValueError, TypeError, ArithmeticError) as e:
            _log.warning("%s raised %s: %s", tool_name, type(e).__name__, e)
            raise ToolError(tool_name, f"{type(e).__name__}: {e}")
