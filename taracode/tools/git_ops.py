"""Git tools: status, diff, log, add, commit, branch."""
import subprocess
from pathlib import Path
from typing import List

from ..logger import get_logger

_log = get_logger(__name__)


class GitError(Exception):
    pass


class GitOps:
    def __init__(self, project_root: str):
        self.root = Path(project_root).resolve()

    def _run(self, *args) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                ["git"] + list(args), capture_output=True, text=True,
                cwd=str(self.root), timeout=15,
            )
        except subprocess.TimeoutExpired:
            raise GitError(f"git {args[0]} timed out")
        except OSError as e:
            raise GitError(f"git {args[0]} failed: {e}")

    def _checked(self, *args) -> str:
        result = self._run(*args)
        if result.returncode != 0:
            _log.info("git %s exited %d", args[0], result.returncode)
            raise GitError(
                f"git {args[0]} failed: exit status {result.returncode}\n{result.stderr}")
        return result.stdout

    def status(self) -> str:
        out = self._checked("status", "--porcelain")
        if not out.strip():
            return "Working tree clean - no changes to commit"
        return f"Git Status:\n{out}"

    def diff(self, file_path: str = "", staged: bool = False) -> str:
        args = ["diff"]
        if staged:
            args.append("--staged")
        if file_path:
            args.append(file_path)
        out = self._checked(*args)
        if not out.strip():
            return "No changes to show"
        return out

    def log(self, limit: int = 10) -> str:
        return self._checked("log", f"-n{limit}", "--pretty=format:%h - %s (%an, %ar)")

    def add(self, files: List[str]) -> str:
        paths = [f for f in files if isinstance(f, str) and f]
        if not paths:
            raise GitError("no valid file paths provided")
        self._checked("add", *paths)
        return f"Staged {len(paths)} files for commit"

    def commit(self, message: str) -> str:
        result = self._run("commit", "-m", message)
        if result.returncode != 0:
            raise GitError(
                f"git commit failed: exit status {result.returncode}\n"
                f"{result.stdout}\n{result.stderr}")
        return f"Commit created:\n{result.stdout}"

    def branch(self) -> str:
        return self._checked("branch", "-a")

    # Used by /init; empty string when unavailable.

    def current_branch(self) -> str:
        result = self._run("branch", "--show-current")
        return result.stdout.strip() if result.returncode == 0 else ""

    def remote_url(self) -> str:
        result = self._run("remote", "get-url", "origin")
        return result.stdout.strip() if result.returncode == 0 else ""

    def last_commit(self) -> str:
        result = self._run("log", "-1", "--pretty=format:%h - %s")
        return result.stdout.strip() if result.returncode == 0 else ""
