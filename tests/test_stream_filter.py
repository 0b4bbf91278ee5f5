import pytest

from taracode.stream_filter import StreamFilter


def _feed(chunks):
    f = StreamFilter()
    shown = "".join(f.process(c) for c in chunks)
    return f, shown + f.flush()


def test_plain_text_passes_through():
    f, shown = _feed(["Hello ", "world"])

    assert shown == "Hello world"
    assert f.full_content() == "Hello world"


def test_think_block_is_hidden():
    _, shown = _feed(["before <think>secret plan</think> after"])

    assert shown == "before  after"


@pytest.mark.parametrize("chunks, expected", [
    (["<th", "ink>hidden</th", "ink>visible"], "visible"),
    (["<", "t", "h", "i", "n", "k", ">", "x", "<", "/", "think>", "ok"], "ok"),
    (["<think>hid", "den</", "think>ok"], "ok"),
])
def test_tags_split_across_chunks(chunks, expected):
    f, shown = _feed(chunks)

    assert shown == expected
    assert not f.in_think
    assert f.full_content() == "".join(chunks)


def test_less_than_that_is_not_a_tag_is_shown():
    _, shown = _feed(["a < b and <thing>"])

    assert shown == "a < b and <thing>"


def test_repeated_angle_bracket_before_tag():
    _, shown = _feed(["<<think>x</think>y"])

    assert shown == "<y"


def test_unclosed_think_hides_rest_and_flush_is_empty():
    f = StreamFilter()

    shown = f.process("answer <think>still reasoning </thi")

    assert shown == "answer "
    assert f.in_think
    assert f.flush() == ""


def test_flush_returns_held_partial_tag():
    f = StreamFilter()

    shown = f.process("value <thi")

    assert shown == "value "
    assert f.flush() == "<thi"
    assert f.flush() == ""


def test_full_content_keeps_reasoning_verbatim():
    chunks = ["<think>plan</think>", '{"tool": "git_status", "params": {}}']
    f, _ = _feed(chunks)

    assert f.full_content() == "".join(chunks)


def test_empty_chunk_is_ignored():
    f = StreamFilter()

    assert f.process("") == ""
    assert f.full_content() == ""
