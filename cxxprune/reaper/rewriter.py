"""Conflict-safe text deletions over one buffer.

Deletions are only queued until apply_changes(); a request overlapping an
already accepted one is dropped, so offsets are never corrupted and no byte
is deleted twice. Dropping means pruning less, never pruning wrongly.
"""
from bisect import bisect_left
from dataclasses import dataclass
from typing import List, Optional

from ..analyzer.model import Span
from ..utils.logger import debug


@dataclass(frozen=True)
class RewriteItem:
    """One accepted deletion."""
    span: Span
    remove_line_if_empty: bool = True

    @property
    def sort_key(self):
        return self.span.start, self.span.end


class RangeRewriter:
    """Accumulates disjoint deletions and applies them exactly once."""

    def __init__(self, buffer: str | bytes, file: str):
        """Initialize rewriter.

        Args:
            buffer: Original text of the file under rewrite
            file: Its name; spans of other files are rejected
        """
        self.original = buffer.encode('utf-8') if isinstance(buffer, str) else bytes(buffer)
        self.file = file
        self.removed: List[RewriteItem] = []  # sorted by (start, end)
        self._rewritten: Optional[bytes] = None
        self.changes_applied = False

    def _accepts(self, span: Span) -> bool:
        return (span.is_valid and span.file == self.file
                and span.start < span.end <= len(self.original))

    def _conflicts(self, span: Span) -> bool:
        """True if span overlaps an accepted deletion (adjacency is fine)."""
        index = bisect_left([item.sort_key for item in self.removed], (span.start, span.end))
        for neighbour in self.removed[max(index - 1, 0):index + 1]:
            if neighbour.span.overlaps(span):
                return True
        return False

    def can_remove(self, span: Span) -> bool:
        """Check whether a deletion would be accepted right now."""
        return self._accepts(span) and not self._conflicts(span)

    def remove_range(self, span: Span, remove_line_if_empty: bool = True) -> bool:
        """Queue a deletion.

        Args:
            span: Range to delete
            remove_line_if_empty: Also delete the line if nothing but
                whitespace is left on it

        Returns:
            True if accepted, False if invalid or conflicting (dropped)
        """
        if self.changes_applied or not self.can_remove(span):
            debug(f"rewrite dropped [{span.start}, {span.end}) in {span.file}")
            return False
        item = RewriteItem(span, remove_line_if_empty)
        keys = [existing.sort_key for existing in self.removed]
        self.removed.insert(bisect_left(keys, item.sort_key), item)
        return True

    def apply_changes(self):
        """Perform every accepted deletion against the original buffer.

        Deletions run from the end of the buffer backwards so earlier offsets
        stay valid. Calling this twice is a no-op.
        """
        if self.changes_applied:
            return
        self.changes_applied = True
        if not self.removed:
            return

        buffer = bytearray(self.original)
        for item in reversed(self.removed):
            del buffer[item.span.start:item.span.end]
            if item.remove_line_if_empty:
                self._remove_line_if_empty(buffer, item.span.start)
        self._rewritten = bytes(buffer)

    @staticmethod
    def _remove_line_if_empty(buffer: bytearray, offset: int):
        """Drop the line around offset, terminator included, if it is blank."""
        line_start = buffer.rfind(b'\n', 0, offset) + 1
        line_end = buffer.find(b'\n', offset)
        if line_end == -1:
            line_end = len(buffer)
        if buffer[line_start:line_end].strip(b' \t\r\f\v'):
            return
        if line_end < len(buffer):
            line_end += 1  # the '\n'
        elif line_start > 0:
            # last line without terminator: drop the preceding one instead
            line_start -= 1
        del buffer[line_start:line_end]

    def result_bytes(self) -> bytes:
        """Rewritten buffer (the original one if nothing was removed)."""
        if self._rewritten is None:
            return self.original
        return self._rewritten

    def result(self) -> str:
        """Rewritten text of the file."""
        return self.result_bytes().decode('utf-8', errors='surrogateescape')
