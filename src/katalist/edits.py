"""Text-range edits addressed by ``ast`` node positions.

``ast`` reports columns as UTF-8 byte offsets per line; everything here
converts them to string offsets so replacements never split a character or
touch text outside the node being edited.
"""

from __future__ import annotations

import ast
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

_NEWLINE_RE = re.compile(r"\r\n|\r|\n")
_COMMENT_RE = re.compile(r"#[^\r\n]*")


@dataclass(frozen=True, order=True)
class TextEdit:
    start: int
    end: int
    text: str = ""


class SourceText:
    """Source string with line/column to offset mapping."""

    def __init__(self, text: str) -> None:
        self.text = text
        self._line_starts = [0] + [m.end() for m in _NEWLINE_RE.finditer(text)]

    def line_start(self, lineno: int) -> int:
        if lineno - 1 >= len(self._line_starts):
            return len(self.text)
        return self._line_starts[lineno - 1]

    def offset(self, lineno: int, col_offset: int) -> int:
        start = self.line_start(lineno)
        line_end = (
            self._line_starts[lineno] if lineno < len(self._line_starts) else len(self.text)
        )
        line = self.text[start:line_end]
        if line.isascii():
            return start + col_offset
        prefix = line.encode("utf-8")[:col_offset]
        return start + len(prefix.decode("utf-8", errors="ignore"))

    def span(self, node: ast.AST) -> tuple[int, int]:
        start = self.offset(node.lineno, node.col_offset)  # type: ignore[attr-defined]
        end = self.offset(node.end_lineno, node.end_col_offset)  # type: ignore[attr-defined]
        return start, end

    def segment(self, node: ast.AST) -> str:
        start, end = self.span(node)
        return self.text[start:end]

    def next_line_start(self, node: ast.AST) -> int:
        """Offset of the line following the node's last line."""
        end_lineno = node.end_lineno  # type: ignore[attr-defined]
        if end_lineno < len(self._line_starts):
            return self._line_starts[end_lineno]
        return len(self.text)

    def skip_space(self, offset: int) -> int:
        while offset < len(self.text) and self.text[offset] in " \t\r\n\\":
            offset += 1
        return offset

    def following_comma(self, offset: int) -> int | None:
        """Offset just past a comma that follows ``offset``, skipping blanks and comments."""
        pos = offset
        while pos < len(self.text):
            char = self.text[pos]
            if char in " \t\r\n\\":
                pos += 1
            elif char == "#":
                while pos < len(self.text) and self.text[pos] not in "\r\n":
                    pos += 1
            elif char == ",":
                return pos + 1
            else:
                return None
        return None


def disjoint(edits: Iterable[TextEdit]) -> list[TextEdit]:
    """Drop edits that overlap an earlier, wider edit."""
    kept: list[TextEdit] = []
    last_end = -1
    for edit in sorted(edits, key=lambda e: (e.start, -e.end)):
        if edit.start < last_end:
            continue
        kept.append(edit)
        last_end = max(last_end, edit.end)
    return kept


def apply_edits(text: str, edits: Iterable[TextEdit]) -> str:
    """Apply non-overlapping edits; raises ``ValueError`` on overlap."""
    ordered = sorted(edits)
    for before, after in zip(ordered, ordered[1:]):
        if before.end > after.start:
            raise ValueError(f"Overlapping edits at {before.start}:{before.end} and {after.start}")
    out = text
    for edit in reversed(ordered):
        out = out[: edit.start] + edit.text + out[edit.end :]
    return out


def _gap_comments(
    text: str, start: int, end: int, removed: Sequence[tuple[int, int]]
) -> list[str]:
    """Comments in ``text[start:end]`` that lie outside the ``removed`` element spans."""
    comments: list[str] = []
    pos = start
    for span_start, span_end in sorted(removed):
        if span_end <= start or span_start >= end:
            continue
        comments.extend(_COMMENT_RE.findall(text, pos, max(pos, span_start)))
        pos = max(pos, span_end)
    comments.extend(_COMMENT_RE.findall(text, pos, end))
    return [comment.rstrip() for comment in comments]


def _indent_before(text: str, offset: int) -> str:
    line_start = max(text.rfind("\n", 0, offset), text.rfind("\r", 0, offset)) + 1
    prefix = text[line_start:offset]
    return prefix if not prefix.strip() else ""


def removal_edits(
    source: SourceText, spans: Sequence[tuple[int, int]], remove: Sequence[bool]
) -> list[TextEdit]:
    """Edits that delete the flagged elements of a comma separated sequence.

    ``spans`` are the (start, end) offsets of every element in order. A run of
    removed elements is cut up to the next kept element; a trailing run is cut
    from the end of the previous kept element, so separators stay balanced.
    Comments sitting between elements of a cut survive on their own lines.
    """
    text = source.text
    edits: list[TextEdit] = []
    index = 0
    count = len(spans)
    while index < count:
        if not remove[index]:
            index += 1
            continue
        run_start = index
        while index < count and remove[index]:
            index += 1
        run_end = index - 1
        removed = spans[run_start:index]
        first_start = spans[run_start][0]
        last_end = spans[run_end][1]
        if index < count:
            start, end = first_start, spans[index][0]
            indent = _indent_before(text, end)
            kept = "".join(f"{c}\n{indent}" for c in _gap_comments(text, start, end, removed))
        elif run_start > 0:
            start, end = spans[run_start - 1][1], last_end
            kept = "".join(f"  {c}\n" for c in _gap_comments(text, start, end, removed))
        else:
            comma = source.following_comma(last_end)
            start, end = first_start, comma if comma is not None else last_end
            kept = "".join(f"{c}\n" for c in _gap_comments(text, start, end, removed))
        edits.append(TextEdit(start, end, kept))
    return edits
