"""Shell command execution and grep-backed content search."""

import os
import re
import subprocess
from pathlib import Path
from typing import List, Optional

from ..errors import ShellTimeoutError
from ..logger import get_logger

_log = get_logger(__name__)

DEFAULT_TIMEOUT = 60


class ShellError(Exception):
    pass


class ShellExecutor:
    """Run commands through ``sh -c`` in the working directory."""

    def __init__(self, project_root: str, blocked_commands: Optional[List[str]] = None,
                 timeout: int = DEFAULT_TIMEOUT):
        self.project_root = Path(project_root).resolve()
        self.timeout = timeout
        self.blocked = [b for b in (blocked_commands or []) if b.strip()]

    @staticmethod
    def _canonicalize_command(command: str) -> str:
        """Strip quoting noise so trivially obfuscated variants still match."""
        normalized = command.lower().replace("\\\n", " ")
        normalized = re.sub(r"[\'\"`\\]", "", normalized)
        normalized = re.sub(r"\s+", " ", normalized)
        return normalized.strip()

    def _get_block_reason(self, command: str) -> Optional[str]:
        canonical = self._canonicalize_command(command)
        compact = canonical.replace(" ", "")
        for blocked in self.blocked:
            rule = self._canonicalize_command(blocked)
            if rule in canonical or rule.replace(" ", "") in compact:
                return f"matches blocked command '{blocked}'"
        return None

    def execute(self, command: str, timeout: Optional[float] = None) -> str:
        block_reason = self._get_block_reason(command)
        if block_reason:
            _log.warning("Command blocked: %s", block_reason)
            raise ShellError(f"command blocked: {block_reason}")

        limit = timeout if timeout and timeout > 0 else self.timeout
        _log.debug("Executing command: %s", command[:100])
        try:
            result = subprocess.run(
                ["sh", "-c", command],
                capture_output=True,
                text=True,
                timeout=limit,
                cwd=str(self.project_root),
                env={**os.environ, "TERM": "dumb"},
            )
        except subprocess.TimeoutExpired:
            raise ShellTimeoutError(int(limit))
        except OSError as e:
            raise ShellError(f"failed to start command: {e}")

        parts = [f"Command: {command}\n", f"Working Directory: {self.project_root}\n\n"]
        if result.stdout:
            parts.append(f"STDOUT:\n{result.stdout}\n")
        if result.stderr:
            parts.append(f"STDERR:\n{result.stderr}\n")
        parts.append(f"Exit Code: {result.returncode}\n")
        return "".join(parts)

    def search(self, pattern: str, directory: str = "", context_lines: int = 0,
               regex: bool = False, file_types: Optional[List[str]] = None,
               exclude_dirs: Optional[List[str]] = None) -> str:
        target = Path(directory).expanduser() if directory else self.project_root
        if not target.is_absolute():
            target = self.project_root / target

        args = ["grep", "-r", "-n", "-H"]
        if context_lines > 0:
            args.append(f"-C{context_lines}")
        if regex:
            args.append("-E")
        for ext in file_types or []:
            args.append(f"--include=*{ext}")
        for excluded in exclude_dirs or []:
            args.append(f"--exclude-dir={excluded}")
        args += ["--", pattern, str(target)]

        try:
            result = subprocess.run(args, capture_output=True, text=True,
                                    timeout=self.timeout, errors="replace")
        except subprocess.TimeoutExpired:
            raise ShellTimeoutError(self.timeout)
        except OSError as e:
            raise ShellError(f"grep failed: {e}")

        # grep exits 1 when nothing matched.
        if result.returncode == 1:
            return "No matches found"
        if result.returncode != 0:
            raise ShellError(f"grep failed: exit status {result.returncode}\n{result.stderr}")
        return result.stdout
