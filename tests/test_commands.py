import io

import pytest
from rich.console import Console

from taracode.assistant import Assistant
from taracode.commands import _resolve_command, handle_command
from taracode.config import Config
from taracode.storage import TASK_COMPLETED, TASK_IN_PROGRESS, TASK_PENDING, TASK_SKIPPED, StorageManager
from taracode.tools import ToolRegistry


class DummyLLM:
    model = "dummy-model"

    def chat(self, messages, timeout=None):
        raise AssertionError("commands must not call the model")

    chat_stream = chat


class Harness:
    def __init__(self, tmp_path, storage=True):
        self.out = io.StringIO()
        self.console = Console(file=self.out, width=120, color_system=None)
        self.config = Config()
        self.assistant = Assistant(
            client=DummyLLM(),
            registry=ToolRegistry(str(tmp_path)),
            working_dir=str(tmp_path),
            storage=StorageManager(str(tmp_path)) if storage else None,
            console=self.console,
        )

    def run(self, command):
        return handle_command(command, console=self.console, assistant=self.assistant,
                              config=self.config)

    def output(self):
        text = self.out.getvalue()
        self.out.seek(0)
        self.out.truncate()
        return text


@pytest.fixture
def harness(tmp_path):
    return Harness(tmp_path)


@pytest.mark.parametrize("raw, expected", [
    ("/help", "/help"),
    ("/HELP", "/help"),
    ("/q", "/quit"),
    ("/exit", "/quit"),
    ("/?", "/help"),
    ("/us", "/usage"),
    ("/in", "/init"),
    ("/sess", "/sess"),  # /session and /sessions: ambiguous
    ("/nope", "/nope"),
])
def test_resolve_command(raw, expected):
    assert _resolve_command(raw) == expected


def test_quit(harness):
    assert harness.run("/quit") == "quit"
    assert "Goodbye!" in harness.output()


def test_unknown_command(harness):
    assert harness.run("/frob [x]") == ""
    assert "Unknown command: /frob. Try /help" in harness.output()


def test_empty_command(harness):
    assert harness.run("   ") == ""
    assert harness.output() == ""


def test_help_lists_groups_and_bracketed_usage(harness):
    harness.run("/help")

    text = harness.output()
    for group in ("Project:", "Sessions:", "Plans:", "Other:"):
        assert group in text
    assert "/session [new|load <id>]" in text


def test_usage_before_any_request(harness):
    harness.run("/usage")

    assert "No token usage recorded yet." in harness.output()


def test_status(harness):
    harness.run("/status")

    text = harness.output()
    assert "dummy-model" in text
    assert "no (run /init)" in text
    assert "(defaults)" in text


def test_init_writes_context_and_reloads(harness, tmp_path):
    (tmp_path / "go.mod").write_text("module example.com/svc\n")

    harness.run("/init")

    text = harness.output()
    assert "✓ Project initialized successfully!" in text
    assert "Type: Go (example.com/svc)" in text
    assert (tmp_path / "TARACODE.md").exists()
    assert "example.com/svc" in harness.assistant.conversation[0]["content"]


def test_reload(harness, tmp_path):
    (tmp_path / "TARACODE.md").write_text("Prefer small functions.")

    harness.run("/reload")

    assert "✓ Project context reloaded" in harness.output()
    assert "Prefer small functions." in harness.assistant.conversation[0]["content"]


def test_clear_starts_new_session(harness):
    before = harness.assistant.session.id
    harness.assistant.conversation.append({"role": "user", "content": "old"})

    harness.run("/clear")

    assert "Started new session" in harness.output()
    assert harness.assistant.session.id != before
    assert [m["role"] for m in harness.assistant.conversation] == ["system"]


def test_clear_without_storage(tmp_path):
    harness = Harness(tmp_path, storage=False)
    harness.assistant.conversation.append({"role": "user", "content": "old"})

    harness.run("/clear")

    assert "✓ Conversation cleared" in harness.output()
    assert len(harness.assistant.conversation) == 1


def test_session_new_and_load(harness):
    first = harness.assistant.session.id

    harness.run("/session new refactor")
    assert "✓ Started session" in harness.output()
    second = harness.assistant.session
    assert second.id != first
    assert second.name == "refactor"

    harness.run("/session")
    text = harness.output()
    assert second.id[:8] in text
    assert "(refactor)" in text
    assert "0 messages" in text

    harness.run(f"/session load {first[:8]}")
    assert f"✓ Loaded session {first[:8]} (0 messages)" in harness.output()
    assert harness.assistant.session.id == first


def test_session_load_unknown_id_warns(harness):
    assert harness.run("/session load zzzzzzzz") == ""
    assert "⚠" in harness.output()


def test_session_usage(harness):
    harness.run("/session bogus")

    assert "/session new [name]" in harness.output()


def test_session_without_storage(tmp_path):
    harness = Harness(tmp_path, storage=False)

    harness.run("/session")
    assert "No active session (storage disabled)" in harness.output()

    harness.run("/sessions")
    assert "storage not initialized" in harness.output()


def test_sessions_lists_all(harness):
    harness.assistant.new_session("second")

    harness.run("/sessions")

    text = harness.output()
    assert "Sessions" in text
    assert "second" in text
    assert "●" in text
    assert harness.assistant.session.id[:8] in text


def test_plan_flow(harness):
    storage = harness.assistant.storage

    harness.run("/plan")
    assert "No active plan" in harness.output()

    harness.run("/plan new Ship v2: write code; test it; release")
    assert "✓ Plan created with 3 tasks" in harness.output()
    assert "ACTIVE PLAN" in harness.assistant.conversation[0]["content"]

    harness.run("/plan done 1")
    harness.run("/plan start 2")
    harness.run("/plan skip 3")
    text = harness.output()
    assert "[x] 1. write code" in text
    assert "[>] 2. test it" in text
    assert "[-] 3. release" in text
    statuses = [t.status for t in storage.get_active_plan().tasks]
    assert statuses == [TASK_COMPLETED, TASK_IN_PROGRESS, TASK_SKIPPED]

    harness.run("/plan done 9")
    assert "No task 9 (1-3)" in harness.output()

    harness.run("/plan archive")
    assert "✓ Plan archived" in harness.output()
    assert storage.get_active_plan() is None
    assert "ACTIVE PLAN" not in harness.assistant.conversation[0]["content"]


def test_plan_show(harness):
    harness.run("/plan new Docs: outline; draft")
    harness.output()

    harness.run("/plan")

    text = harness.output()
    assert "Docs" in text
    assert "[ ] 1. outline" in text
    assert harness.assistant.storage.get_active_plan().tasks[1].status == TASK_PENDING


def test_plan_actions_need_a_plan(harness):
    harness.run("/plan done 1")

    assert "No active plan" in harness.output()


def test_plan_new_needs_title(harness):
    harness.run("/plan new : a; b")

    assert "Usage: /plan new" in harness.output()
    assert harness.assistant.storage.get_active_plan() is None
