"""Project-local persistence under ``.taracode/``: sessions, plans, state."""

import json
import threading
import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import StorageError
from .logger import get_logger

_log = get_logger(__name__)

STORAGE_DIR_NAME = ".taracode"

PLAN_ACTIVE = "active"
PLAN_COMPLETED = "completed"
PLAN_ARCHIVED = "archived"

TASK_PENDING = "pending"
TASK_IN_PROGRESS = "in_progress"
TASK_COMPLETED = "completed"
TASK_SKIPPED = "skipped"
TASK_STATUSES = (TASK_PENDING, TASK_IN_PROGRESS, TASK_COMPLETED, TASK_SKIPPED)


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _pick(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    """Keep only keys the dataclass knows; tolerates older/newer files."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def add(self, usage: Optional[Dict[str, int]]):
        if not usage:
            return
        self.prompt_tokens += int(usage.get("prompt_tokens") or 0)
        self.completion_tokens += int(usage.get("completion_tokens") or 0)
        self.total_tokens += int(usage.get("total_tokens") or 0)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["TokenUsage"]:
        if not data:
            return None
        return cls(**_pick(cls, data))


@dataclass
class ToolCallRecord:
    tool: str
    params: Dict[str, Any] = field(default_factory=dict)
    result: str = ""
    duration_ms: int = 0
    success: bool = True


@dataclass
class ConversationMessage:
    role: str
    content: str
    timestamp: str = field(default_factory=_now)
    tool_call: Optional[ToolCallRecord] = None
    usage: Optional[TokenUsage] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"role": self.role, "content": self.content, "timestamp": self.timestamp}
        if self.tool_call is not None:
            data["tool_call"] = asdict(self.tool_call)
        if self.usage is not None:
            data["usage"] = asdict(self.usage)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationMessage":
        tool_call = data.get("tool_call")
        return cls(
            role=data.get("role", "user"),
            content=data.get("content", ""),
            timestamp=data.get("timestamp", ""),
            tool_call=ToolCallRecord(**_pick(ToolCallRecord, tool_call)) if tool_call else None,
            usage=TokenUsage.from_dict(data.get("usage")),
        )


@dataclass
class Session:
    id: str
    name: str = ""
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)
    messages: List[ConversationMessage] = field(default_factory=list)
    summary: str = ""
    tags: List[str] = field(default_factory=list)
    total_usage: Optional[TokenUsage] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "messages": [m.to_dict() for m in self.messages],
        }
        if self.summary:
            data["summary"] = self.summary
        if self.tags:
            data["tags"] = list(self.tags)
        if self.total_usage is not None:
            data["total_usage"] = asdict(self.total_usage)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
            messages=[ConversationMessage.from_dict(m) for m in data.get("messages") or []],
            summary=data.get("summary", ""),
            tags=list(data.get("tags") or []),
            total_usage=TokenUsage.from_dict(data.get("total_usage")),
        )


@dataclass
class SessionMetadata:
    id: str
    name: str = ""
    created_at: str = ""
    updated_at: str = ""
    message_count: int = 0
    summary: str = ""


@dataclass
class Task:
    id: str
    content: str
    status: str = TASK_PENDING
    created_at: str = field(default_factory=_now)
    completed_at: Optional[str] = None
    notes: str = ""


@dataclass
class Plan:
    id: str
    title: str
    description: str = ""
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)
    status: str = PLAN_ACTIVE
    tasks: List[Task] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Plan":
        plan = cls(**_pick(cls, data))
        plan.tasks = [Task(**_pick(Task, t)) for t in data.get("tasks") or []]
        return plan


@dataclass
class CurrentState:
    active_plan_id: str = ""
    active_task_id: str = ""
    last_activity: str = field(default_factory=_now)
    working_context: str = ""


@dataclass
class Preferences:
    auto_load_context: bool = True
    max_history_length: int = 100
    preferred_model: str = ""
    exclude_dirs: List[str] = field(default_factory=list)
    custom_prompt_rules: List[str] = field(default_factory=list)


class StorageManager:
    """Reads and writes the ``.taracode`` tree of one project.

    Every write replaces its target JSON file in full.
    """

    def __init__(self, project_root: str):
        self.root_dir = Path(project_root) / STORAGE_DIR_NAME
        self._lock = threading.RLock()
        self._ensure_directories()
        self._load_all()

    # ── Layout ──

    @property
    def history_dir(self) -> Path:
        return self.root_dir / "history"

    @property
    def plans_dir(self) -> Path:
        return self.root_dir / "plans"

    @property
    def state_dir(self) -> Path:
        return self.root_dir / "state"

    @property
    def context_dir(self) -> Path:
        return self.root_dir / "context"

    def _ensure_directories(self):
        for d in (self.root_dir, self.context_dir, self.history_dir,
                  self.plans_dir, self.plans_dir / "archive", self.state_dir):
            try:
                d.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(f"failed to create directory {d}: {e}")

    def _read_json(self, path: Path) -> Optional[Any]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"failed to read {path.name}: {e}")

    def _write_json(self, path: Path, data: Any):
        try:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
        except OSError as e:
            raise StorageError(f"failed to write {path.name}: {e}")

    def _load_all(self):
        self._active_session_id = ""
        self._sessions: List[SessionMetadata] = []
        self.current_state = CurrentState()
        self.preferences = Preferences()

        # Unreadable side files are not fatal; fresh defaults replace them.
        try:
            index = self._read_json(self.history_dir / "sessions.json") or {}
            self._active_session_id = index.get("active_session_id", "")
            self._sessions = [SessionMetadata(**_pick(SessionMetadata, s))
                              for s in index.get("sessions") or []]
        except StorageError as e:
            _log.warning("Session index ignored: %s", e)
        try:
            state = self._read_json(self.state_dir / "current.json")
            if state:
                self.current_state = CurrentState(**_pick(CurrentState, state))
        except StorageError as e:
            _log.warning("State file ignored: %s", e)
        try:
            prefs = self._read_json(self.state_dir / "preferences.json")
            if prefs:
                self.preferences = Preferences(**_pick(Preferences, prefs))
        except StorageError as e:
            _log.warning("Preferences ignored: %s", e)

    # ── Sessions ──

    def _session_path(self, session_id: str) -> Path:
        return self.history_dir / f"session_{session_id}.json"

    def _save_session(self, session: Session):
        self._write_json(self._session_path(session.id), session.to_dict())

    def _save_index(self):
        self._write_json(self.history_dir / "sessions.json", {
            "active_session_id": self._active_session_id,
            "sessions": [asdict(s) for s in self._sessions],
        })

    def _resolve_session_id(self, session_id: str) -> str:
        if self._session_path(session_id).exists():
            return session_id
        matches = [s.id for s in self._sessions if s.id.startswith(session_id)]
        if len(matches) == 1:
            return matches[0]
        if len(matches) > 1:
            raise StorageError(f"session id '{session_id}' is ambiguous")
        raise StorageError(f"session not found: {session_id}")

    def create_session(self, name: str = "") -> Session:
        with self._lock:
            session = Session(id=str(uuid.uuid4()), name=name)
            self._save_session(session)
            self._sessions.append(SessionMetadata(
                id=session.id, name=session.name,
                created_at=session.created_at, updated_at=session.updated_at,
            ))
            self._active_session_id = session.id
            self._save_index()
            return session

    def get_session(self, session_id: str) -> Session:
        """Load a session by full id or unique id prefix."""
        with self._lock:
            if not session_id:
                raise StorageError("session id is required")
            resolved = self._resolve_session_id(session_id)
            data = self._read_json(self._session_path(resolved))
            if data is None:
                raise StorageError(f"session not found: {session_id}")
            try:
                return Session.from_dict(data)
            except (KeyError, TypeError) as e:
                raise StorageError(f"failed to parse session: {e}")

    def get_active_session(self) -> Optional[Session]:
        if not self._active_session_id:
            return None
        return self.get_session(self._active_session_id)

    @property
    def active_session_id(self) -> str:
        return self._active_session_id

    def set_active_session(self, session_id: str):
        with self._lock:
            self._active_session_id = session_id
            self._save_index()

    def add_message(self, session_id: str, message: ConversationMessage):
        with self._lock:
            session = self.get_session(session_id)
            session.messages.append(message)
            session.updated_at = _now()
            if message.usage is not None:
                if session.total_usage is None:
                    session.total_usage = TokenUsage()
                session.total_usage.add(asdict(message.usage))

            limit = self.preferences.max_history_length
            if limit > 0 and len(session.messages) > limit:
                session.messages = session.messages[-limit:]

            self._save_session(session)
            for meta in self._sessions:
                if meta.id == session.id:
                    meta.updated_at = session.updated_at
                    meta.message_count = len(session.messages)
                    break
            self._save_index()

    def list_sessions(self) -> List[SessionMetadata]:
        with self._lock:
            return list(self._sessions)

    # ── Plans ──

    def _active_plan_path(self) -> Path:
        return self.plans_dir / "active.json"

    def _save_plan(self, plan: Plan):
        self._write_json(self._active_plan_path(), asdict(plan))

    def _save_current_state(self):
        self._write_json(self.state_dir / "current.json", asdict(self.current_state))

    def create_plan(self, title: str, tasks: List[str]) -> Plan:
        with self._lock:
            now = _now()
            plan = Plan(
                id=str(uuid.uuid4()), title=title, created_at=now, updated_at=now,
                tasks=[Task(id=str(uuid.uuid4()), content=c, created_at=now) for c in tasks],
            )
            self._save_plan(plan)
            self.current_state.active_plan_id = plan.id
            self.current_state.active_task_id = plan.tasks[0].id if plan.tasks else ""
            self.current_state.last_activity = now
            self._save_current_state()
            return plan

    def get_active_plan(self) -> Optional[Plan]:
        with self._lock:
            if not self.current_state.active_plan_id:
                return None
            data = self._read_json(self._active_plan_path())
            if data is None:
                return None
            try:
                return Plan.from_dict(data)
            except TypeError as e:
                raise StorageError(f"failed to parse plan: {e}")

    def update_task_status(self, plan_id: str, task_id: str, status: str):
        if status not in TASK_STATUSES:
            raise StorageError(f"invalid task status: {status}")
        with self._lock:
            plan = self.get_active_plan()
            if plan is None or plan.id != plan_id:
                raise StorageError("plan not found")
            now = _now()
            for task in plan.tasks:
                if task.id == task_id:
                    task.status = status
                    if status == TASK_COMPLETED:
                        task.completed_at = now
                    break
            else:
                raise StorageError("task not found")
            if status == TASK_IN_PROGRESS:
                self.current_state.active_task_id = task_id
                self._save_current_state()
            plan.updated_at = now
            self._save_plan(plan)

    def archive_plan(self, plan_id: str):
        with self._lock:
            plan = self.get_active_plan()
            if plan is None or plan.id != plan_id:
                raise StorageError("plan not found")
            plan.status = PLAN_ARCHIVED
            plan.updated_at = _now()
            self._write_json(self.plans_dir / "archive" / f"plan_{plan.id}.json", asdict(plan))
            self._active_plan_path().unlink(missing_ok=True)
            self.current_state.active_plan_id = ""
            self.current_state.active_task_id = ""
            self._save_current_state()

    # ── Project context, state, preferences ──

    def save_project_context(self, context: Dict[str, Any]):
        with self._lock:
            self._write_json(self.context_dir / "project.json", context)

    def load_project_context(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._read_json(self.context_dir / "project.json")

    def get_current_state(self) -> CurrentState:
        with self._lock:
            return CurrentState(**asdict(self.current_state))

    def update_current_state(self, state: CurrentState):
        with self._lock:
            self.current_state = state
            self._save_current_state()

    def get_preferences(self) -> Preferences:
        with self._lock:
            return Preferences(**asdict(self.preferences))

    def save_preferences(self, prefs: Preferences):
        with self._lock:
            self.preferences = prefs
            self._write_json(self.state_dir / "preferences.json", asdict(prefs))
