"""/init: write TARACODE.md and the .taracode/ tree for a project."""

import json
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .logger import get_logger
from .storage import StorageManager
from .tools.git_ops import GitError, GitOps

_log = get_logger(__name__)

SKIP_DIRS = {
    ".git", ".taracode", ".venv", "venv", "node_modules", "__pycache__",
    ".mypy_cache", ".pytest_cache", ".tox", "dist", "build", "target",
}
MAX_LISTING = 40

_PY_NAME_RE = re.compile(r'^\s*name\s*=\s*["\']([^"\']+)["\']', re.MULTILINE)
_MAKE_TARGET_RE = re.compile(r"^([A-Za-z0-9_][A-Za-z0-9_.\-/]*):")


@dataclass
class GitInfo:
    branch: str = ""
    remote_url: str = ""
    last_commit: str = ""
    has_uncommitted: bool = False


@dataclass
class ProjectContext:
    root_path: str
    created_at: str = field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))
    project_type: str = ""
    module_name: str = ""
    dependencies: List[str] = field(default_factory=list)
    build_commands: List[str] = field(default_factory=list)
    top_level: List[str] = field(default_factory=list)
    git: Optional[GitInfo] = None

    @property
    def file_count(self) -> int:
        return sum(1 for entry in self.top_level if not entry.endswith("/"))

    @property
    def dir_count(self) -> int:
        return sum(1 for entry in self.top_level if entry.endswith("/"))


def _read(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None


def detect_project_type(root: Path, ctx: ProjectContext):
    """Fill type, module and dependencies from the first manifest found."""
    go_mod = _read(root / "go.mod")
    if go_mod is not None:
        ctx.project_type = "Go"
        lines = go_mod.splitlines()
        if lines:
            ctx.module_name = lines[0].strip().replace("module ", "", 1)
        for line in lines:
            parts = line.split()
            if line.startswith("\t") and len(parts) >= 2 and parts[1].startswith("v"):
                ctx.dependencies.append(parts[0])
            elif line.startswith("require ") and len(parts) >= 3:
                ctx.dependencies.append(parts[1])
        return

    package_json = _read(root / "package.json")
    if package_json is not None:
        ctx.project_type = "Node.js"
        try:
            pkg = json.loads(package_json)
        except json.JSONDecodeError:
            return
        if isinstance(pkg, dict):
            ctx.module_name = pkg.get("name", "") if isinstance(pkg.get("name"), str) else ""
            deps = pkg.get("dependencies")
            if isinstance(deps, dict):
                ctx.dependencies.extend(sorted(deps))
        return

    for marker in ("pyproject.toml", "setup.cfg", "setup.py", "requirements.txt"):
        content = _read(root / marker)
        if content is not None:
            ctx.project_type = "Python"
            if marker in ("pyproject.toml", "setup.cfg"):
                match = _PY_NAME_RE.search(content)
                if match:
                    ctx.module_name = match.group(1)
            return

    cargo = _read(root / "Cargo.toml")
    if cargo is not None:
        ctx.project_type = "Rust"
        match = _PY_NAME_RE.search(cargo)
        if match:
            ctx.module_name = match.group(1)


def extract_build_commands(root: Path) -> List[str]:
    """``make <target>`` for each plain Makefile target."""
    content = _read(root / "Makefile")
    if content is None:
        return []
    commands = []
    for line in content.splitlines():
        match = _MAKE_TARGET_RE.match(line)
        # "x := y" is an assignment, not a target.
        if match and not line[match.end():].startswith("="):
            commands.append(f"make {match.group(1)}")
    return commands


def extract_git_info(root: Path) -> Optional[GitInfo]:
    if not (root / ".git").exists():
        return None
    git = GitOps(str(root))
    try:
        info = GitInfo(
            branch=git.current_branch(),
            remote_url=git.remote_url(),
            last_commit=git.last_commit(),
        )
        info.has_uncommitted = "clean" not in git.status()
    except GitError as e:
        _log.info("git info unavailable: %s", e)
        return None
    return info


def list_top_level(root: Path) -> List[str]:
    entries = []
    for entry in sorted(root.iterdir(), key=lambda p: (not p.is_dir(), p.name.lower())):
        if entry.name in SKIP_DIRS or (entry.name.startswith(".") and entry.is_dir()):
            continue
        entries.append(entry.name + "/" if entry.is_dir() else entry.name)
    return entries


def render_taracode_md(ctx: ProjectContext) -> str:
    lines = [
        "# TARACODE.md",
        "",
        "This file provides context to taracode. Auto-generated by `/init`.",
        "",
        "## Project Overview",
        "",
    ]
    if ctx.project_type:
        lines.append(f"**Type:** {ctx.project_type} project")
    if ctx.module_name:
        lines.append(f"**Module:** {ctx.module_name}")
    lines.append("")

    lines += ["## Project Structure", "", "```"]
    shown = ctx.top_level[:MAX_LISTING]
    for i, entry in enumerate(shown):
        connector = "└── " if i == len(shown) - 1 else "├── "
        lines.append(connector + entry)
    if len(ctx.top_level) > MAX_LISTING:
        lines.append(f"... ({len(ctx.top_level) - MAX_LISTING} more)")
    lines += ["```", ""]

    if ctx.build_commands:
        lines += ["## Build Commands", "", "```bash", *ctx.build_commands, "```", ""]

    if ctx.git is not None and ctx.git.branch:
        lines += ["## Git Info", "", f"- **Branch:** {ctx.git.branch}"]
        if ctx.git.remote_url:
            lines.append(f"- **Remote:** {ctx.git.remote_url}")
        if ctx.git.last_commit:
            lines.append(f"- **Last commit:** {ctx.git.last_commit}")
        lines.append("")

    lines += ["---", "*Edit this file to add custom instructions for taracode.*", ""]
    return "\n".join(lines)


def init_project(working_dir: str, storage: Optional[StorageManager] = None) -> ProjectContext:
    """Analyze ``working_dir``, save the context and (re)write TARACODE.md."""
    root = Path(working_dir).resolve()
    storage = storage or StorageManager(str(root))

    ctx = ProjectContext(root_path=str(root))
    detect_project_type(root, ctx)
    ctx.build_commands = extract_build_commands(root)
    ctx.git = extract_git_info(root)
    ctx.top_level = list_top_level(root)

    storage.save_project_context(asdict(ctx))
    (root / "TARACODE.md").write_text(render_taracode_md(ctx), encoding="utf-8")
    _log.info("Initialized project at %s (%s)", root, ctx.project_type or "unknown type")
    return ctx
