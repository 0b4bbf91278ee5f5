"""File operations: read, write, line edits, copy/move/delete, list, find."""

import fnmatch
import os
import shutil
from pathlib import Path
from typing import List, Optional


class FileOperationError(Exception):
    pass


def _split_lines(content: str) -> List[str]:
    # "a\nb\n" is three lines, the last one empty; line numbers count it.
    return content.split("\n")


def _check_range(start: int, end: int, total: int):
    if start < 1 or start > total:
        raise FileOperationError(f"start_line {start} is out of range (file has {total} lines)")
    if end < start or end > total:
        raise FileOperationError(f"end_line {end} is invalid (must be between {start} and {total})")


class FileOps:
    """Filesystem tools rooted at the working directory.

    Relative paths resolve against ``project_root``; absolute paths are
    used as given. Result messages name the resolved path.
    """

    def __init__(self, project_root: str):
        self.project_root = Path(project_root).resolve()

    def _resolve(self, path: str) -> Path:
        p = Path(path).expanduser()
        if not p.is_absolute():
            p = self.project_root / p
        return p

    def _read(self, fp: Path, what: str = "file") -> str:
        try:
            return fp.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            raise FileOperationError(f"failed to read {what}: {fp} is not a UTF-8 text file")
        except OSError as e:
            raise FileOperationError(f"failed to read {what}: {e}")

    def _write(self, fp: Path, content: str):
        try:
            with open(fp, "w", encoding="utf-8", newline="") as f:
                f.write(content)
        except OSError as e:
            raise FileOperationError(f"failed to write file: {e}")

    # ── Reading ──

    def read_file(self, path: str, start_line: Optional[int] = None,
                  end_line: Optional[int] = None) -> str:
        """Whole file verbatim, or a numbered slice when a range is given."""
        fp = self._resolve(path)
        content = self._read(fp)
        if start_line is None and end_line is None:
            return content

        lines = _split_lines(content)
        total = len(lines)
        start = 1 if start_line is None else start_line
        if start < 1 or start > total:
            raise FileOperationError(f"start_line {start} is out of range (file has {total} lines)")
        end = total if end_line is None else end_line
        if end < start or end > total:
            raise FileOperationError(f"end_line {end} is invalid (must be between {start} and {total})")

        out = [f"=== {fp.name} (lines {start}-{end} of {total}) ===\n"]
        for number, line in enumerate(lines[start - 1:end], start):
            out.append(f"{number:4d}: {line}\n")
        return "".join(out)

    # ── Writing ──

    def write_file(self, path: str, content: str) -> str:
        fp = self._resolve(path)
        try:
            fp.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileOperationError(f"failed to create directories: {e}")
        self._write(fp, content)
        return f"Successfully wrote to {fp}"

    def append_file(self, path: str, content: str) -> str:
        fp = self._resolve(path)
        existing = self._read(fp)
        self._write(fp, existing + content)
        return f"Successfully appended to {fp}"

    def insert_lines(self, path: str, line_number: int, content: str) -> str:
        fp = self._resolve(path)
        lines = _split_lines(self._read(fp))
        if line_number < 1 or line_number > len(lines) + 1:
            raise FileOperationError(
                f"line_number {line_number} is out of range (file has {len(lines)} lines)")
        lines.insert(line_number - 1, content)
        self._write(fp, "\n".join(lines))
        return f"Successfully inserted at line {line_number} in {fp}"

    def replace_lines(self, path: str, start_line: int, end_line: int, content: str) -> str:
        fp = self._resolve(path)
        lines = _split_lines(self._read(fp))
        _check_range(start_line, end_line, len(lines))
        lines[start_line - 1:end_line] = [content]
        self._write(fp, "\n".join(lines))
        count = end_line - start_line + 1
        return f"Successfully replaced lines {start_line}-{end_line} ({count} lines) in {fp}"

    def delete_lines(self, path: str, start_line: int, end_line: int) -> str:
        fp = self._resolve(path)
        lines = _split_lines(self._read(fp))
        _check_range(start_line, end_line, len(lines))
        del lines[start_line - 1:end_line]
        self._write(fp, "\n".join(lines))
        count = end_line - start_line + 1
        return f"Successfully deleted lines {start_line}-{end_line} ({count} lines) from {fp}"

    def edit_file(self, path: str, old_string: str, new_string: str,
                  replace_all: bool = False) -> str:
        if old_string == "":
            raise FileOperationError(
                "old_string cannot be empty. To completely rewrite a file, use write_file tool. "
                "To add content to the end, use append_file. To modify specific text, read the "
                "file first to find exact text to replace")
        fp = self._resolve(path)
        content = self._read(fp)
        count = content.count(old_string)
        if count == 0:
            raise FileOperationError(
                "old_string not found in file. Make sure to match the exact text including "
                "whitespace and indentation")
        if count > 1 and not replace_all:
            raise FileOperationError(
                f"old_string appears {count} times in file. Use replace_all=true to replace all "
                "occurrences, or provide more context to make it unique")

        if replace_all:
            self._write(fp, content.replace(old_string, new_string))
            return f"Successfully replaced {count} occurrences in {fp}"
        self._write(fp, content.replace(old_string, new_string, 1))
        return f"Successfully edited {fp}"

    # ── Copy, move, delete, mkdir ──

    def copy_file(self, source_path: str, dest_path: str) -> str:
        src = self._resolve(source_path)
        dst = self._resolve(dest_path)
        try:
            data = src.read_bytes()
        except OSError as e:
            raise FileOperationError(f"failed to read source file: {e}")
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileOperationError(f"failed to create destination directories: {e}")
        try:
            dst.write_bytes(data)
        except OSError as e:
            raise FileOperationError(f"failed to write destination file: {e}")
        return f"Successfully copied {src} to {dst}"

    def move_file(self, source_path: str, dest_path: str) -> str:
        src = self._resolve(source_path)
        dst = self._resolve(dest_path)
        if not src.exists():
            raise FileOperationError(f"source file does not exist: {src}")
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileOperationError(f"failed to create destination directories: {e}")
        try:
            # Falls back to copy+delete across filesystems.
            shutil.move(str(src), str(dst))
        except OSError as e:
            raise FileOperationError(f"failed to move file: {e}")
        return f"Successfully moved {src} to {dst}"

    def delete_file(self, path: str, recursive: bool = False) -> str:
        fp = self._resolve(path)
        if not fp.exists() and not fp.is_symlink():
            return f"Successfully deleted {fp}"
        if fp.is_dir() and not fp.is_symlink():
            if not recursive:
                raise FileOperationError(
                    "cannot delete directory without recursive=true. Use recursive=true to "
                    "delete the directory and its contents")
            try:
                shutil.rmtree(fp)
            except OSError as e:
                raise FileOperationError(f"failed to delete directory: {e}")
        else:
            try:
                fp.unlink()
            except OSError as e:
                raise FileOperationError(f"failed to delete file: {e}")
        return f"Successfully deleted {fp}"

    def create_directory(self, path: str) -> str:
        fp = self._resolve(path)
        if fp.exists():
            if fp.is_dir():
                return f"Directory already exists: {fp}"
            raise FileOperationError(f"a file already exists at path: {fp}")
        try:
            fp.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FileOperationError(f"failed to create directory: {e}")
        return f"Created directory: {fp}"

    # ── Listing ──

    @staticmethod
    def _entry_line(fp: Path, name: str) -> str:
        if fp.is_dir():
            return f"[DIR]  {name}\n"
        try:
            size = fp.stat().st_size
        except OSError:
            size = 0
        return f"[FILE] {name} ({size} bytes)\n"

    def list_files(self, directory: str = "", recursive: bool = False) -> str:
        root = self._resolve(directory) if directory else self.project_root
        if not root.is_dir():
            raise FileOperationError(f"failed to read directory: {root} is not a directory")

        out = []
        if recursive:
            for dirpath, dirnames, filenames in os.walk(root):
                dirnames.sort()
                base = Path(dirpath)
                for name in dirnames:
                    out.append(self._entry_line(base / name, str((base / name).relative_to(root))))
                for name in sorted(filenames):
                    out.append(self._entry_line(base / name, str((base / name).relative_to(root))))
        else:
            try:
                entries = sorted(root.iterdir(), key=lambda p: p.name)
            except OSError as e:
                raise FileOperationError(f"failed to read directory: {e}")
            for entry in entries:
                out.append(self._entry_line(entry, entry.name))
        return "".join(out)

    def find_files(self, pattern: str, directory: str = "",
                   exclude: Optional[List[str]] = None) -> str:
        """Match file basenames against a glob; ``**/`` prefixes match at any depth."""
        root = self._resolve(directory) if directory else self.project_root
        excludes = [e for e in (exclude or []) if e]
        simple = pattern.replace("**/*", "*").replace("**/", "")

        def _excluded(name: str, rel: str) -> bool:
            return any(fnmatch.fnmatchcase(name, e) or e in rel for e in excludes)

        matches = []
        for dirpath, dirnames, filenames in os.walk(root, onerror=lambda err: None):
            base = Path(dirpath)
            dirnames[:] = sorted(
                d for d in dirnames
                if not _excluded(d, str((base / d).relative_to(root)))
            )
            for name in sorted(filenames):
                rel = str((base / name).relative_to(root))
                if _excluded(name, rel):
                    continue
                if fnmatch.fnmatchcase(name, pattern) or fnmatch.fnmatchcase(name, simple):
                    matches.append(rel)

        if not matches:
            return "No files found matching pattern"
        lines = [f"Found {len(matches)} files matching '{pattern}':\n"]
        lines.extend(f"  {m}\n" for m in matches)
        return "".join(lines)
