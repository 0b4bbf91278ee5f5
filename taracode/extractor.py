"""Tool-call extraction from free-form model output.

Models served without a function-calling API request tools by writing JSON
objects of the form ``{"tool": "name", "params": {...}}`` into their answer,
sometimes several of them, sometimes as a JSON array, often wrapped across
lines and mixed with prose and ``<think>`` blocks. This module recovers an
ordered, deduplicated list of calls plus the prose written before the first
one. It never raises on malformed input: unparsable spans are skipped.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

__all__ = [
    "ToolCall",
    "clean_response",
    "normalize_json",
    "find_balanced",
    "extract_json_objects",
    "extract_tool_calls",
]

_THINK_BLOCK_RE = re.compile(r"<think>.*?</think>", re.DOTALL)
_TOOL_OBJECT_RE = re.compile(r'\{\s*"tool"\s*:')
_ARRAY_START_RE = re.compile(r"\[\s*\{")
_CLOSE_TAG = "</think>"

# Characters after which a collapsed space would only add noise.
_NO_SPACE_AFTER = (" ", "{", "[", ":", ",")


@dataclass
class ToolCall:
    tool: str
    params: Dict[str, Any] = field(default_factory=dict)

    def key(self) -> str:
        """Canonical identity used for deduplication."""
        return self.tool + ":" + json.dumps(
            self.params, sort_keys=True, ensure_ascii=False, default=str
        )


def clean_response(response: str) -> str:
    """Drop reasoning blocks and return the trimmed displayable answer."""
    cleaned = _THINK_BLOCK_RE.sub("", response)
    # A closing tag without its opener: everything before it was reasoning.
    idx = cleaned.find(_CLOSE_TAG)
    if idx != -1:
        cleaned = cleaned[idx + len(_CLOSE_TAG):]
    return cleaned.strip()


def normalize_json(text: str) -> str:
    """Undo the whitespace damage models do to JSON when wrapping lines.

    Outside strings, newlines and tabs are dropped and spaces collapse; inside
    strings, literal newlines and tabs become their escape sequences.
    """
    text = text.replace("\r", "")
    out: List[str] = []
    in_string = False
    escaped = False

    for char in text:
        if escaped:
            out.append(char)
            escaped = False
            continue
        if char == "\\" and in_string:
            out.append(char)
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            out.append(char)
            continue

        if in_string:
            if char == "\n":
                out.append("\\n")
            elif char == "\t":
                out.append("\\t")
            else:
                out.append(char)
        elif char in ("\n", "\t"):
            continue
        elif char == " ":
            if out and not out[-1].endswith(_NO_SPACE_AFTER):
                out.append(char)
        else:
            out.append(char)

    return "".join(out)


def find_balanced(text: str, start: int, open_char: str = "{",
                  close_char: str = "}") -> Optional[int]:
    """Return the end offset of the bracketed span opening at ``start``.

    Brackets inside string literals are ignored and a backslash inside a
    string escapes the next character. Returns None when the span never
    closes.
    """
    depth = 0
    in_string = False
    escaped = False

    for i in range(start, len(text)):
        char = text[i]
        if escaped:
            escaped = False
            continue
        if char == "\\" and in_string:
            escaped = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == open_char:
            depth += 1
        elif char == close_char:
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def extract_json_objects(text: str) -> List[Tuple[int, str]]:
    """Find every balanced ``{"tool": ...}`` span as ``(offset, raw_text)``."""
    spans = []
    for match in _TOOL_OBJECT_RE.finditer(text):
        start = match.start()
        end = find_balanced(text, start)
        if end is not None:
            spans.append((start, text[start:end]))
    return spans


def _as_tool_call(data: Any) -> Optional[ToolCall]:
    if not isinstance(data, dict):
        return None
    tool = data.get("tool")
    if not isinstance(tool, str) or not tool:
        return None
    params = data.get("params")
    if params is None:
        params = {}
    if not isinstance(params, dict):
        return None
    return ToolCall(tool=tool, params=params)


def _parse_span(raw: str) -> Any:
    try:
        return json.loads(normalize_json(raw))
    except (ValueError, RecursionError):
        # Undecodable or nested past the parser's recursion limit: not a call.
        return None


def extract_tool_calls(response: str) -> Tuple[List[ToolCall], str]:
    """Extract ordered tool calls and the prose that precedes them.

    Returns ``(calls, leading_prose)``. With no calls, the prose is the whole
    cleaned response.
    """
    cleaned = clean_response(response)
    calls: List[ToolCall] = []
    seen: Set[str] = set()
    first_offset: Optional[int] = None

    def _accept(call: ToolCall) -> bool:
        key = call.key()
        if key in seen:
            return False
        seen.add(key)
        calls.append(call)
        return True

    for offset, raw in extract_json_objects(cleaned):
        call = _as_tool_call(_parse_span(raw))
        if call is not None and _accept(call) and first_offset is None:
            first_offset = offset

    array_match = _ARRAY_START_RE.search(cleaned)
    if array_match:
        start = array_match.start()
        end = find_balanced(cleaned, start, "[", "]")
        if end is not None:
            items = _parse_span(cleaned[start:end])
            if isinstance(items, list):
                array_calls = [c for c in map(_as_tool_call, items) if c is not None]
                for call in array_calls:
                    _accept(call)
                if array_calls and (first_offset is None or start < first_offset):
                    first_offset = start

    if not calls:
        return calls, cleaned
    if first_offset:
        return calls, cleaned[:first_offset].strip()
    return calls, ""
