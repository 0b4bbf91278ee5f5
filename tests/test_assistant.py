import json

import pytest

from taracode.assistant import Assistant, format_tool_results
from taracode.llm import LLMResponse
from taracode.storage import StorageManager
from taracode.tools import ToolRegistry


class ScriptedLLM:
    """Replays canned responses; an Exception entry is raised instead."""

    def __init__(self, responses):
        self.model = "test-model"
        self.responses = list(responses)
        self.requests = []
        self.timeouts = []

    def _next(self, messages, timeout):
        self.requests.append([dict(m) for m in messages])
        self.timeouts.append(timeout)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, tuple):
            return item
        return item, None

    def chat(self, messages, timeout=None):
        text, usage = self._next(messages, timeout)
        return LLMResponse(content=text, usage=usage)

    def chat_stream(self, messages, timeout=None):
        text, usage = self._next(messages, timeout)
        for i in range(0, len(text), 4):
            yield ("text", text[i:i + 4])
        yield ("done", LLMResponse(content=text, usage=usage))


class FakeConsole:
    def __init__(self):
        self.calls = []

    def print(self, *args, **kwargs):
        self.calls.append((args, kwargs))

    def text(self):
        return "\n".join(str(a) for args, _ in self.calls for a in args)


class RecordingProgress:
    def __init__(self):
        self.events = []

    def start(self, message):
        self.events.append(("start", message))

    def update(self, message):
        self.events.append(("update", message))

    def stop(self):
        self.events.append(("stop", None))


def _call(tool, **params):
    return json.dumps({"tool": tool, "params": params})


def _build(tmp_path, responses, streaming=True, storage=False, **kwargs):
    llm = ScriptedLLM(responses)
    assistant = Assistant(
        client=llm,
        registry=ToolRegistry(str(tmp_path)),
        working_dir=str(tmp_path),
        storage=StorageManager(str(tmp_path)) if storage else None,
        streaming=streaming,
        console=FakeConsole(),
        **kwargs,
    )
    return assistant, llm


@pytest.mark.parametrize("streaming", [True, False])
def test_plain_answer_is_one_request(tmp_path, streaming):
    assistant, llm = _build(tmp_path, ["Hi there."], streaming=streaming)

    assistant.process_message("hello")

    assert len(llm.requests) == 1
    assert [m["role"] for m in assistant.conversation] == ["system", "user", "assistant"]
    assert assistant.conversation[-1]["content"] == "Hi there."


@pytest.mark.parametrize("streaming", [True, False])
def test_two_calls_aggregate_into_one_result_turn(tmp_path, streaming):
    (tmp_path / "a.txt").write_text("A")
    (tmp_path / "b.txt").write_text("B")
    first = "Reading.\n[" + _call("read_file", file_path="a.txt") + ", " + \
        _call("read_file", file_path="b.txt") + "]"
    assistant, llm = _build(tmp_path, [first, "Both files read."], streaming=streaming)

    assistant.process_message("read a and b")

    assert len(llm.requests) == 2
    feedback = llm.requests[1][-1]
    assert feedback == {
        "role": "user",
        "content": "[1] read_file result:\nA\n\n[2] read_file result:\nB\n\n",
    }
    assert llm.requests[1][-2] == {"role": "assistant", "content": first}
    assert "→ Read a.txt (1 lines)" in assistant.console.text()


def test_unknown_tool_is_reported_back(tmp_path):
    assistant, llm = _build(tmp_path, [_call("frobnicate"), "Sorry."])

    assistant.process_message("do it")

    assert llm.requests[1][-1]["content"] == "Tool result:\nError: unknown tool: frobnicate"
    assert "✗ frobnicate failed" in assistant.console.text()


def test_tool_failure_does_not_stop_later_calls(tmp_path):
    (tmp_path / "ok.txt").write_text("fine")
    response = _call("read_file", file_path="missing.txt") + "\n" + _call("read_file", file_path="ok.txt")
    assistant, llm = _build(tmp_path, [response, "done"])

    assistant.process_message("go")

    feedback = llm.requests[1][-1]["content"]
    assert feedback.startswith("[1] read_file result:\nError: failed to read file")
    assert "[2] read_file result:\nfine\n\n" in feedback


def test_overflowing_number_param_is_reported_back(tmp_path):
    (tmp_path / "a.txt").write_text("A")
    response = '{"tool":"read_file","params":{"file_path":"a.txt","start_line":1e999}}'
    assistant, llm = _build(tmp_path, [response, "Retrying without a range."])

    assistant.process_message("read a")

    assert len(llm.requests) == 2
    assert llm.requests[1][-1]["content"] == "Tool result:\nError: start_line must be a number"
    assert [m["role"] for m in assistant.conversation] == [
        "system", "user", "assistant", "user", "assistant"]


def test_iteration_cap(tmp_path):
    responses = [_call("list_files")] * 11
    assistant, llm = _build(tmp_path, responses)

    assistant.process_message("loop forever")

    assert len(llm.requests) == 10
    assert len(llm.responses) == 1
    assert assistant.conversation[-1]["role"] == "user"


def test_custom_iteration_cap(tmp_path):
    assistant, llm = _build(tmp_path, [_call("list_files")] * 5, max_iterations=2)

    assistant.process_message("x")

    assert len(llm.requests) == 2


def test_streaming_and_buffered_build_the_same_conversation(tmp_path):
    (tmp_path / "f.txt").write_text("data")
    script = ["<think>plan</think>" + _call("read_file", file_path="f.txt"), "It says data."]

    streamed, _ = _build(tmp_path, list(script), streaming=True)
    buffered, _ = _build(tmp_path, list(script), streaming=False)
    streamed.process_message("what is in f.txt?")
    buffered.process_message("what is in f.txt?")

    assert streamed.conversation == buffered.conversation


def test_think_block_tools_are_not_run_and_not_previewed(tmp_path):
    progress = RecordingProgress()
    response = "<think>" + _call("write_file", file_path="x.txt", content="no") + "</think>Answer"
    assistant, llm = _build(tmp_path, [response], progress=progress)

    assistant.process_message("q")

    assert not (tmp_path / "x.txt").exists()
    assert len(llm.requests) == 1
    previews = " ".join(m for kind, m in progress.events if kind == "update")
    assert "write_file" not in previews
    assert "Answer" in previews


def test_progress_messages(tmp_path):
    progress = RecordingProgress()
    response = _call("list_files") + _call("git_branch")
    assistant, _ = _build(tmp_path, [response, "ok"], streaming=False, progress=progress)

    assistant.process_message("q")

    starts = [m for kind, m in progress.events if kind == "start"]
    assert starts == ["Thinking...", "Running list_files (1/2)...", "Running git_branch (2/2)...",
                      "Thinking..."]


def test_single_call_progress_has_no_counter(tmp_path):
    progress = RecordingProgress()
    assistant, _ = _build(tmp_path, [_call("list_files"), "ok"], progress=progress)

    assistant.process_message("q")

    assert ("start", "Running list_files...") in progress.events


def test_usage_accumulates(tmp_path):
    usage = {"prompt_tokens": 10, "completion_tokens": 2, "total_tokens": 12}
    assistant, _ = _build(tmp_path, [(_call("list_files"), usage), ("done", usage)])

    assistant.process_message("q")

    assert assistant.get_usage() == {"prompt_tokens": 20, "completion_tokens": 4,
                                     "total_tokens": 24}


def test_transport_error_keeps_only_the_user_message(tmp_path):
    assistant, _ = _build(tmp_path, [ConnectionError("Cannot connect")])

    with pytest.raises(ConnectionError, match="Cannot connect"):
        assistant.process_message("hello")

    assert [m["role"] for m in assistant.conversation] == ["system", "user"]


def test_turn_timeout_while_streaming(tmp_path):
    ticks = iter(range(0, 1000, 6))
    assistant, _ = _build(tmp_path, ["a long streamed answer"], response_timeout=10,
                          clock=lambda: next(ticks))

    with pytest.raises(ConnectionError, match="timed out after 10s"):
        assistant.process_message("hello")

    assert assistant.conversation[-1]["role"] == "user"


def test_remaining_budget_is_passed_as_timeout(tmp_path):
    ticks = iter([100, 104])
    assistant, llm = _build(tmp_path, ["ok"], streaming=False, response_timeout=30,
                            clock=lambda: next(ticks))

    assistant.process_message("hello")

    assert llm.timeouts == [26]


def test_turns_are_persisted(tmp_path):
    (tmp_path / "a.txt").write_text("A")
    usage = {"prompt_tokens": 5, "completion_tokens": 5, "total_tokens": 10}
    first = _call("read_file", file_path="a.txt")
    assistant, _ = _build(tmp_path, [(first, usage), ("It is A.", usage)], storage=True)

    assistant.process_message("read a")

    session = assistant.storage.get_session(assistant.session.id)
    assert [m.role for m in session.messages] == ["user", "assistant", "assistant", "tool", "assistant"]
    record = session.messages[2].tool_call
    assert record.tool == "read_file"
    assert record.result == "A"
    assert record.success
    assert session.messages[2].content == first
    assert session.messages[3].content == "Tool result:\nA"
    assert session.total_usage.total_tokens == 20


def test_load_session_rebuilds_conversation(tmp_path):
    (tmp_path / "a.txt").write_text("A")
    assistant, _ = _build(tmp_path, [_call("read_file", file_path="a.txt"), "It is A."],
                          storage=True)
    assistant.process_message("read a")
    original = list(assistant.conversation)

    fresh, _ = _build(tmp_path, [], storage=True)
    # Resuming the active session does not replay its history.
    assert [m["role"] for m in fresh.conversation] == ["system"]
    fresh.new_session()
    fresh.load_session(assistant.session.id[:8])

    assert fresh.conversation[1:] == original[1:]
    assert fresh.storage.active_session_id == assistant.session.id


def test_resumes_active_session(tmp_path):
    first, _ = _build(tmp_path, ["hi"], storage=True)
    first.process_message("hello")

    second, _ = _build(tmp_path, [], storage=True)

    assert second.session.id == first.session.id


def test_session_operations_need_storage(tmp_path):
    from taracode.errors import StorageError

    assistant, _ = _build(tmp_path, [])

    with pytest.raises(StorageError, match="storage not initialized"):
        assistant.list_sessions()


def test_project_context_and_reload(tmp_path):
    assistant, _ = _build(tmp_path, [])
    assert "PROJECT CONTEXT" not in assistant.conversation[0]["content"]

    (tmp_path / "TARACODE.md").write_text("Always use tabs.")
    assistant.reload_context()

    assert "Always use tabs." in assistant.conversation[0]["content"]
    assert assistant.status()["initialized"] is True


def test_clear_keeps_only_system_prompt(tmp_path):
    assistant, _ = _build(tmp_path, ["hi"])
    assistant.process_message("hello")

    assistant.clear()

    assert [m["role"] for m in assistant.conversation] == ["system"]


def test_format_tool_results():
    assert format_tool_results([("git_status", "clean")]) == "Tool result:\nclean"
    assert format_tool_results([("a", "1"), ("b", "2")]) == "[1] a result:\n1\n\n[2] b result:\n2\n\n"
