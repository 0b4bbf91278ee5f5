"""Conversation loop: request, extract tool calls, execute, feed results back."""

import time
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from rich.console import Console

from .errors import StorageError, ToolError
from .extractor import ToolCall, extract_tool_calls
from .llm import LLMAdapter, build_system_prompt
from .logger import get_logger
from .rendering import NullProgress, preview_tail, print_status, render_markdown
from .status import format_tool_status
from .storage import (
    ConversationMessage, Session, SessionMetadata, StorageManager, TokenUsage, ToolCallRecord,
)
from .stream_filter import StreamFilter
from .tools import ToolRegistry

_log = get_logger(__name__)

PROJECT_FILE = "TARACODE.md"
DEFAULT_MAX_ITERATIONS = 10
DEFAULT_RESPONSE_TIMEOUT = 300
THINKING = "Thinking..."


def read_project_context(working_dir: str) -> Optional[str]:
    path = Path(working_dir) / PROJECT_FILE
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as e:
        _log.warning("Cannot read %s: %s", path, e)
        return None


def format_tool_results(results: List[tuple]) -> str:
    """Aggregate ``(tool, result)`` pairs into the synthetic tool-result turn."""
    if len(results) == 1:
        return f"Tool result:\n{results[0][1]}"
    return "".join(
        f"[{i}] {tool} result:\n{result}\n\n" for i, (tool, result) in enumerate(results, 1)
    )


class Assistant:
    """One conversation with the model, with tools and optional persistence.

    ``progress`` is any object with ``start(msg)``, ``update(msg)`` and
    ``stop()``; the terminal passes a spinner, tests pass NullProgress.
    """

    def __init__(self, client: LLMAdapter, registry: ToolRegistry, working_dir: str,
                 storage: Optional[StorageManager] = None, provider=None,
                 streaming: bool = True, progress=None,
                 console: Optional[Console] = None,
                 max_iterations: int = DEFAULT_MAX_ITERATIONS,
                 response_timeout: float = DEFAULT_RESPONSE_TIMEOUT,
                 clock: Callable[[], float] = time.monotonic):
        self.client = client
        self.registry = registry
        self.working_dir = working_dir
        self.storage = storage
        self.provider = provider
        self.streaming = streaming
        self.progress = progress or NullProgress()
        self.console = console if console is not None else Console()
        self.max_iterations = max_iterations
        self.response_timeout = response_timeout
        self._clock = clock
        self.usage = TokenUsage()
        self.session: Optional[Session] = None
        self.conversation: List[Dict[str, str]] = []

        if self.storage is not None:
            try:
                self.session = self.storage.get_active_session()
            except StorageError as e:
                _log.warning("Active session unavailable: %s", e)
            if self.session is None:
                self.session = self.storage.create_session("")
        self._reset_conversation()

    # ── Context ──

    def system_prompt(self) -> str:
        plan = None
        if self.storage is not None:
            try:
                plan = self.storage.get_active_plan()
            except StorageError as e:
                _log.warning("Active plan unavailable: %s", e)
        return build_system_prompt(self.working_dir, read_project_context(self.working_dir), plan)

    def _reset_conversation(self):
        self.conversation = [{"role": "system", "content": self.system_prompt()}]

    def reload_context(self):
        """Rebuild the system message (TARACODE.md or the plan changed)."""
        if self.conversation and self.conversation[0]["role"] == "system":
            self.conversation[0] = {"role": "system", "content": self.system_prompt()}
        else:
            self.conversation.insert(0, {"role": "system", "content": self.system_prompt()})

    def clear(self):
        """Drop the in-memory history but keep the session."""
        self._reset_conversation()

    # ── Sessions ──

    def require_storage(self) -> StorageManager:
        if self.storage is None:
            raise StorageError("storage not initialized")
        return self.storage

    def new_session(self, name: str = "") -> Session:
        self.session = self.require_storage().create_session(name)
        self._reset_conversation()
        return self.session

    def load_session(self, session_id: str) -> Session:
        storage = self.require_storage()
        session = storage.get_session(session_id)
        storage.set_active_session(session.id)
        self.session = session
        self._reset_conversation()
        for msg in session.messages:
            if msg.tool_call is not None:
                # Audit entry; the assistant text it repeats is already present.
                continue
            role = "assistant" if msg.role == "assistant" else "user"
            self.conversation.append({"role": role, "content": msg.content})
        return session

    def list_sessions(self) -> List[SessionMetadata]:
        return self.require_storage().list_sessions()

    def get_usage(self) -> Dict[str, int]:
        return {"prompt_tokens": self.usage.prompt_tokens,
                "completion_tokens": self.usage.completion_tokens,
                "total_tokens": self.usage.total_tokens}

    def get_provider_info(self):
        return self.provider.info if self.provider is not None else None

    def _persist(self, message: ConversationMessage):
        if self.storage is None or self.session is None:
            return
        try:
            self.storage.add_message(self.session.id, message)
        except StorageError as e:
            _log.warning("Could not save message: %s", e)

    # ── Model requests ──

    def _remaining(self, deadline: float) -> float:
        remaining = deadline - self._clock()
        if remaining <= 0:
            raise ConnectionError(f"response timed out after {self.response_timeout}s")
        return remaining

    def _fetch_buffered(self, deadline: float) -> tuple:
        remaining = self._remaining(deadline)
        self.progress.start(THINKING)
        try:
            response = self.client.chat(self.conversation, timeout=remaining)
        finally:
            self.progress.stop()
        return response.content or "", response.usage

    def _fetch_streaming(self, deadline: float) -> tuple:
        remaining = self._remaining(deadline)
        stream_filter = StreamFilter()
        shown = ""
        usage = None
        self.progress.start(THINKING)
        try:
            stream = self.client.chat_stream(self.conversation, timeout=remaining)
            try:
                for kind, data in stream:
                    if kind == "text":
                        shown += stream_filter.process(data)
                        tail = preview_tail(shown)
                        if tail:
                            self.progress.update(tail)
                        self._remaining(deadline)
                    elif kind == "done":
                        usage = data.usage
            finally:
                stream.close()
        finally:
            self.progress.stop()
        stream_filter.flush()
        return stream_filter.full_content(), usage

    # ── The turn ──

    def process_message(self, user_message: str):
        """Run one user turn to completion.

        Raises ConnectionError on transport failure or when the turn runs
        past ``response_timeout``; nothing from the failed request is kept.
        """
        self._persist(ConversationMessage(role="user", content=user_message))
        self.conversation.append({"role": "user", "content": user_message})

        fetch = self._fetch_streaming if self.streaming else self._fetch_buffered
        deadline = self._clock() + self.response_timeout

        for iteration in range(self.max_iterations):
            full_response, usage = fetch(deadline)
            self.usage.add(usage)
            if not self._handle_response(full_response, usage):
                return
            _log.info("Tool round %d/%d finished", iteration + 1, self.max_iterations)
        _log.info("Stopped after %d tool rounds", self.max_iterations)

    def _handle_response(self, full_response: str, usage: Optional[Dict[str, int]]) -> bool:
        """Show and record one model response; True when tools ran."""
        calls, prose = extract_tool_calls(full_response)
        render_markdown(self.console, prose)

        self.conversation.append({"role": "assistant", "content": full_response})
        self._persist(ConversationMessage(
            role="assistant", content=full_response,
            usage=TokenUsage.from_dict(usage),
        ))
        if not calls:
            return False

        results = self._run_tool_calls(calls, full_response)
        aggregated = format_tool_results(results)
        self.conversation.append({"role": "user", "content": aggregated})
        self._persist(ConversationMessage(role="tool", content=aggregated))
        return True

    def _run_tool_calls(self, calls: List[ToolCall], full_response: str) -> List[tuple]:
        """Execute calls strictly in order; a failure becomes an ``Error:`` result."""
        results = []
        total = len(calls)
        for index, call in enumerate(calls, 1):
            if total > 1:
                self.progress.start(f"Running {call.tool} ({index}/{total})...")
            else:
                self.progress.start(f"Running {call.tool}...")

            started = time.perf_counter()
            try:
                result = self.registry.execute(call.tool, call.params)
                is_error = False
            except ToolError as e:
                result = f"Error: {e}"
                is_error = True
            finally:
                self.progress.stop()
            duration_ms = int((time.perf_counter() - started) * 1000)

            print_status(self.console, format_tool_status(call.tool, call.params, result, is_error))
            results.append((call.tool, result))
            self._persist(ConversationMessage(
                role="assistant", content=full_response,
                tool_call=ToolCallRecord(tool=call.tool, params=call.params, result=result,
                                         duration_ms=duration_ms, success=not is_error),
            ))
        return results

    def status(self) -> Dict[str, Any]:
        info = self.get_provider_info()
        return {
            "provider": f"{info.name} ({info.type.value})" if info else "(none)",
            "host": info.host if info else "",
            "model": self.client.model,
            "initialized": (Path(self.working_dir) / PROJECT_FILE).exists(),
            "session": self.session.id if self.session else "",
            "storage": str(self.storage.root_dir) if self.storage else "(disabled)",
        }
