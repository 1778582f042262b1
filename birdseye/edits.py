"""
Edit Translator — host text changes → parser edit descriptors.

The host reports changes as offsets into its own text snapshots.  The
parser works on UTF-8 bytes and (row, byte-column) points, so every
offset is converted explicitly:

  host offset (code points or UTF-16 code units)
      → code point index in the snapshot
      → UTF-8 byte offset / (row, column) point

Rows are split on '\\n' only, matching tree-sitter's own bookkeeping.
"""

import bisect
import logging
from enum import Enum
from dataclasses import dataclass
from typing import Iterable, List, Tuple

logger = logging.getLogger(__name__)

Point = Tuple[int, int]


class OffsetUnit(str, Enum):
    CODEPOINT = "codepoint"     # Python str indices
    UTF16 = "utf16"             # 16-bit code units (editor hosts, LSP)


# ═══════════════════════════════════════════════════════════════════════
#  Data types
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TextChange:
    """One contiguous change as reported by the host.

    ``start`` and ``old_end`` index into ``before``; ``new_end`` indexes
    into ``after``.
    """
    start: int
    old_end: int
    new_end: int
    before: str
    after: str


@dataclass(frozen=True)
class EditDescriptor:
    """One contiguous mutation expressed in parser units."""
    start_byte: int
    old_end_byte: int
    new_end_byte: int
    start_point: Point
    old_end_point: Point
    new_end_point: Point

    def apply_to(self, tree) -> None:
        """Apply this edit to a tree-sitter Tree (in place)."""
        tree.edit(
            start_byte=self.start_byte,
            old_end_byte=self.old_end_byte,
            new_end_byte=self.new_end_byte,
            start_point=self.start_point,
            old_end_point=self.old_end_point,
            new_end_point=self.new_end_point,
        )


# ═══════════════════════════════════════════════════════════════════════
#  Line map
# ═══════════════════════════════════════════════════════════════════════

class LineMap:
    """Offset ↔ (row, column) lookups for one immutable text snapshot."""

    def __init__(self, text: str, unit: OffsetUnit = OffsetUnit.CODEPOINT):
        self.text = text
        self.unit = unit
        self._line_starts: List[int] = [0]          # code point offsets
        self._line_start_bytes: List[int] = [0]     # UTF-8 byte offsets

        pos = 0
        byte_pos = 0
        for line in text.split("\n")[:-1]:
            pos += len(line) + 1
            byte_pos += len(line.encode("utf-8")) + 1
            self._line_starts.append(pos)
            self._line_start_bytes.append(byte_pos)

        self._has_astral = unit == OffsetUnit.UTF16 and any(ord(c) > 0xFFFF for c in text)
        if unit == OffsetUnit.UTF16:
            self._host_length = len(text.encode("utf-16-le")) // 2
        else:
            self._host_length = len(text)

    @property
    def line_count(self) -> int:
        return len(self._line_starts)

    def host_length(self) -> int:
        """Length of the snapshot in host units."""
        return self._host_length

    def to_codepoint(self, offset: int) -> int:
        """Convert a host offset to a Python string index."""
        if offset < 0 or offset > self.host_length():
            raise ValueError(
                f"Offset {offset} outside snapshot of length {self.host_length()}"
            )
        if not self._has_astral:
            return offset
        units = self.text.encode("utf-16-le")[: offset * 2]
        try:
            return len(units.decode("utf-16-le"))
        except UnicodeDecodeError:
            raise ValueError(f"Offset {offset} splits a surrogate pair") from None

    def row_of(self, codepoint: int) -> int:
        return bisect.bisect_right(self._line_starts, codepoint) - 1

    def locate(self, offset: int) -> Tuple[int, Point]:
        """Return ``(byte_offset, (row, byte_column))`` for a host offset."""
        cp = self.to_codepoint(offset)
        row = self.row_of(cp)
        line_start = self._line_starts[row]
        column = len(self.text[line_start:cp].encode("utf-8"))
        return self._line_start_bytes[row] + column, (row, column)


# ═══════════════════════════════════════════════════════════════════════
#  Translator
# ═══════════════════════════════════════════════════════════════════════

class EditTranslator:
    """Converts host change notifications into :class:`EditDescriptor` values."""

    def __init__(self, unit: OffsetUnit = OffsetUnit.CODEPOINT):
        self.unit = unit

    def translate(self, change: TextChange) -> EditDescriptor:
        if change.old_end < change.start:
            raise ValueError(
                f"Change ends before it starts: start={change.start}, old_end={change.old_end}"
            )
        if change.new_end < change.start:
            raise ValueError(
                f"Change ends before it starts: start={change.start}, new_end={change.new_end}"
            )
        before = LineMap(change.before, self.unit)
        after = LineMap(change.after, self.unit)

        start_byte, start_point = before.locate(change.start)
        old_end_byte, old_end_point = before.locate(change.old_end)
        new_end_byte, new_end_point = after.locate(change.new_end)

        return EditDescriptor(
            start_byte=start_byte,
            old_end_byte=old_end_byte,
            new_end_byte=new_end_byte,
            start_point=start_point,
            old_end_point=old_end_point,
            new_end_point=new_end_point,
        )

    def translate_all(self, changes: Iterable[TextChange]) -> List[EditDescriptor]:
        """Translate disjoint changes independently, in the reported order.

        A change that cannot be translated is logged and skipped; the
        remaining changes are still translated.
        """
        edits = []
        for change in changes:
            try:
                edits.append(self.translate(change))
            except ValueError as e:
                logger.warning("Dropping untranslatable change %r: %s",
                               (change.start, change.old_end, change.new_end), e)
        return edits


def replace_text(text: str, start: int, end: int, new_text: str) -> TextChange:
    """Build the :class:`TextChange` for replacing ``text[start:end]``."""
    after = text[:start] + new_text + text[end:]
    return TextChange(
        start=start,
        old_end=end,
        new_end=start + len(new_text),
        before=text,
        after=after,
    )
