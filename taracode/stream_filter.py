"""Incremental <think> tag filtering for streamed model output."""

from typing import List

__all__ = ["StreamFilter", "THINK_OPEN", "THINK_CLOSE"]

THINK_OPEN = "<think>"
THINK_CLOSE = "</think>"


class StreamFilter:
    """Split a live token stream into displayable text and hidden reasoning.

    Text inside ``<think>...</think>`` is never returned by :meth:`process`.
    :meth:`full_content` keeps every chunk verbatim, independent of the
    filtering state, and is what the tool-call extractor parses.
    """

    def __init__(self):
        self._buffer = ""
        self._in_think = False
        self._chunks: List[str] = []

    @property
    def in_think(self) -> bool:
        return self._in_think

    def process(self, chunk: str) -> str:
        """Feed one chunk and return the part of it that may be displayed."""
        if not chunk:
            return ""
        self._chunks.append(chunk)

        display: List[str] = []
        for char in chunk:
            self._buffer += char
            if self._in_think:
                if self._buffer.endswith(THINK_CLOSE):
                    self._in_think = False
                    self._buffer = ""
                else:
                    # Only the tail can still complete the closing tag.
                    self._buffer = self._buffer[-len(THINK_CLOSE):]
                continue

            if THINK_OPEN.startswith(self._buffer):
                if self._buffer == THINK_OPEN:
                    self._in_think = True
                    self._buffer = ""
                continue

            # The held prefix failed; only the new char can start another tag.
            display.append(self._buffer[:-1])
            if char == THINK_OPEN[0]:
                self._buffer = char
            else:
                display.append(char)
                self._buffer = ""

        return "".join(display)

    def flush(self) -> str:
        """Return and clear whatever is still held in the lookahead buffer."""
        if self._in_think:
            # Unclosed think block: the held tail is reasoning, not display text.
            self._buffer = ""
            return ""
        remainder = self._buffer
        self._buffer = ""
        return remainder

    def full_content(self) -> str:
        return "".join(self._chunks)
