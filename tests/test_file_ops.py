import pytest

from taracode.tools.file_ops import FileOperationError, FileOps


@pytest.fixture
def ops(tmp_path):
    return FileOps(str(tmp_path))


def test_write_creates_parents_and_read_back(ops, tmp_path):
    msg = ops.write_file("a/b/c.txt", "hello\n")

    assert (tmp_path / "a/b/c.txt").read_text() == "hello\n"
    assert msg == f"Successfully wrote to {tmp_path / 'a/b/c.txt'}"
    assert ops.read_file("a/b/c.txt") == "hello\n"


def test_read_range_is_numbered(ops, tmp_path):
    (tmp_path / "f.txt").write_text("one\ntwo\nthree")

    out = ops.read_file("f.txt", 2, 3)

    assert out == "=== f.txt (lines 2-3 of 3) ===\n   2: two\n   3: three\n"


def test_read_range_defaults_end_to_last_line(ops, tmp_path):
    (tmp_path / "f.txt").write_text("one\ntwo")

    assert ops.read_file("f.txt", start_line=2).endswith("   2: two\n")


@pytest.mark.parametrize("start, end, message", [
    (0, 1, "start_line 0 is out of range (file has 2 lines)"),
    (3, None, "start_line 3 is out of range (file has 2 lines)"),
    (2, 1, "end_line 1 is invalid (must be between 2 and 2)"),
])
def test_read_range_errors(ops, tmp_path, start, end, message):
    (tmp_path / "f.txt").write_text("one\ntwo")

    with pytest.raises(FileOperationError, match=message.replace("(", r"\(").replace(")", r"\)")):
        ops.read_file("f.txt", start, end)


def test_read_missing_file(ops):
    with pytest.raises(FileOperationError, match="failed to read file"):
        ops.read_file("missing.txt")


def test_read_binary_file(ops, tmp_path):
    (tmp_path / "blob.bin").write_bytes(b"\xff\xfe\x00")

    with pytest.raises(FileOperationError, match="not a UTF-8 text file"):
        ops.read_file("blob.bin")


def test_append(ops, tmp_path):
    (tmp_path / "log.txt").write_text("a\n")

    ops.append_file("log.txt", "b\n")

    assert (tmp_path / "log.txt").read_text() == "a\nb\n"


def test_append_requires_existing_file(ops):
    with pytest.raises(FileOperationError):
        ops.append_file("nope.txt", "x")


def test_insert_replace_delete_lines(ops, tmp_path):
    path = tmp_path / "f.txt"
    path.write_text("1\n2\n3\n4")

    ops.insert_lines("f.txt", 2, "new")
    assert path.read_text() == "1\nnew\n2\n3\n4"

    ops.replace_lines("f.txt", 3, 4, "two-three")
    assert path.read_text() == "1\nnew\ntwo-three\n4"

    msg = ops.delete_lines("f.txt", 1, 2)
    assert path.read_text() == "two-three\n4"
    assert "(2 lines)" in msg


def test_insert_after_last_line(ops, tmp_path):
    path = tmp_path / "f.txt"
    path.write_text("a\nb")

    ops.insert_lines("f.txt", 3, "c")

    assert path.read_text() == "a\nb\nc"


def test_insert_out_of_range(ops, tmp_path):
    (tmp_path / "f.txt").write_text("a")

    with pytest.raises(FileOperationError, match="line_number 5 is out of range"):
        ops.insert_lines("f.txt", 5, "x")


def test_edit_file_single_and_all(ops, tmp_path):
    path = tmp_path / "f.py"
    path.write_text("x = 1\ny = 1\n")

    with pytest.raises(FileOperationError, match="appears 2 times"):
        ops.edit_file("f.py", "= 1", "= 2")

    assert ops.edit_file("f.py", "x = 1", "x = 3") == f"Successfully edited {path}"
    assert ops.edit_file("f.py", "= ", "== ", replace_all=True) == (
        f"Successfully replaced 2 occurrences in {path}")
    assert path.read_text() == "x == 3\ny == 1\n"


def test_edit_file_errors(ops, tmp_path):
    (tmp_path / "f.py").write_text("abc")

    with pytest.raises(FileOperationError, match="old_string cannot be empty"):
        ops.edit_file("f.py", "", "x")
    with pytest.raises(FileOperationError, match="old_string not found"):
        ops.edit_file("f.py", "zzz", "x")


def test_copy_and_move(ops, tmp_path):
    (tmp_path / "src.txt").write_text("data")

    ops.copy_file("src.txt", "out/copy.txt")
    ops.move_file("src.txt", "moved/dst.txt")

    assert (tmp_path / "out/copy.txt").read_text() == "data"
    assert (tmp_path / "moved/dst.txt").read_text() == "data"
    assert not (tmp_path / "src.txt").exists()


def test_move_missing_source(ops):
    with pytest.raises(FileOperationError, match="source file does not exist"):
        ops.move_file("ghost.txt", "x.txt")


def test_delete_file_and_directory(ops, tmp_path):
    (tmp_path / "d").mkdir()
    (tmp_path / "d/f.txt").write_text("x")

    with pytest.raises(FileOperationError, match="recursive=true"):
        ops.delete_file("d")

    ops.delete_file("d", recursive=True)
    assert not (tmp_path / "d").exists()
    # Deleting something already gone is not an error.
    assert ops.delete_file("d").startswith("Successfully deleted")


def test_create_directory(ops, tmp_path):
    assert ops.create_directory("x/y") == f"Created directory: {tmp_path / 'x/y'}"
    assert ops.create_directory("x/y").startswith("Directory already exists")

    (tmp_path / "file").write_text("")
    with pytest.raises(FileOperationError, match="a file already exists"):
        ops.create_directory("file")


def test_list_files(ops, tmp_path):
    (tmp_path / "b.txt").write_text("12345")
    (tmp_path / "a").mkdir()
    (tmp_path / "a/inner.txt").write_text("")

    assert ops.list_files() == "[DIR]  a\n[FILE] b.txt (5 bytes)\n"
    recursive = ops.list_files(".", recursive=True)
    assert "[FILE] a/inner.txt (0 bytes)" in recursive


def test_list_files_not_a_directory(ops):
    with pytest.raises(FileOperationError, match="is not a directory"):
        ops.list_files("nowhere")


def test_find_files(ops, tmp_path):
    (tmp_path / "pkg").mkdir()
    (tmp_path / "pkg/a.py").write_text("")
    (tmp_path / "b.py").write_text("")
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules/c.py").write_text("")

    out = ops.find_files("**/*.py", exclude=["node_modules"])

    assert out.startswith("Found 2 files matching '**/*.py':")
    assert "  b.py\n" in out
    assert "  pkg/a.py\n" in out
    assert "c.py" not in out
    assert ops.find_files("*.rs") == "No files found matching pattern"


def test_absolute_paths_are_allowed(ops, tmp_path):
    target = tmp_path / "abs.txt"

    ops.write_file(str(target), "x")

    assert target.read_text() == "x"
