"""Source spans over editor text.

Rows and columns are zero-based, matching the editor's coordinate system.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple


class Point(NamedTuple):
    row: int
    column: int

    def to_json(self) -> dict[str, int]:
        return {"row": self.row, "column": self.column}


@dataclass(slots=True)
class Range:
    """A half-open ``(start_row, start_col) - (end_row, end_col)`` span.

    ``type`` tags what the span covers (``task``, ``name``, ...).
    """

    start_row: int
    start_col: int
    end_row: int | None = None
    end_col: int | None = None
    type: str | None = None

    def __post_init__(self) -> None:
        if self.end_row is None:
            self.end_row = self.start_row
        if self.end_col is None:
            self.end_col = self.start_col
        self._check()

    def _check(self) -> None:
        if self.end < self.start:
            raise ValueError(f"Range end {tuple(self.end)} precedes start {tuple(self.start)}")

    @property
    def start(self) -> Point:
        return Point(self.start_row, self.start_col)

    @property
    def end(self) -> Point:
        return Point(self.end_row, self.end_col)  # type: ignore[arg-type]

    def is_empty(self) -> bool:
        return self.start == self.end

    def set_type(self, type_: str) -> Range:
        self.type = type_
        return self

    def set_end(self, row: int, column: int) -> Range:
        self.end_row = row
        self.end_col = column
        self._check()
        return self

    def contains(self, point: Point) -> bool:
        if self.is_empty():
            return point == self.start
        return self.start <= point < self.end

    def intersects(self, other: Range) -> bool:
        """True if the spans overlap; an empty ``other`` is treated as a cursor."""

        if other.is_empty():
            return self.contains(other.start)
        if self.is_empty():
            return other.contains(self.start)
        return self.start < other.end and other.start < self.end

    def to_json(self) -> dict[str, object]:
        return {
            "start": self.start.to_json(),
            "end": self.end.to_json(),
            "type": self.type,
        }
