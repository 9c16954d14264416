"""Editor text deltas.

A delta is an incremental insert or remove of lines at a row/column position,
in the shape editors such as Ace report them. Rows are the text split on
``\\n``; inserting ``["a", ""]`` at ``(r, 0)`` adds the row ``a`` before row r.
"""

from __future__ import annotations

import difflib
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal

from flowsync.range import Point


def _point(raw: object) -> Point:
    if isinstance(raw, Point):
        return raw
    if isinstance(raw, Mapping):
        column = raw.get("column", raw.get("col", 0))
        return Point(int(raw["row"]), int(column))
    if isinstance(raw, (tuple, list)) and len(raw) == 2:
        return Point(int(raw[0]), int(raw[1]))
    raise ValueError(f"Not a point: {raw!r}")


@dataclass(frozen=True, slots=True)
class Delta:
    start: Point
    end: Point
    action: Literal["insert", "remove"]
    lines: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Mapping[str, object]) -> Delta:
        action = raw.get("action")
        if action not in ("insert", "remove"):
            raise ValueError(f"Unknown delta action: {action!r}")
        lines = raw.get("lines") or []
        if not isinstance(lines, list):
            raise ValueError("Delta lines must be a list of strings")
        return cls(
            start=_point(raw["start"]),
            end=_point(raw["end"]),
            action=action,
            lines=[str(line) for line in lines],
        )

    @classmethod
    def insert(cls, start: Point, lines: list[str]) -> Delta:
        if len(lines) == 1:
            end = Point(start.row, start.column + len(lines[0]))
        else:
            end = Point(start.row + len(lines) - 1, len(lines[-1]))
        return cls(start=start, end=end, action="insert", lines=list(lines))

    @classmethod
    def remove(cls, start: Point, end: Point, lines: list[str]) -> Delta:
        return cls(start=start, end=end, action="remove", lines=list(lines))

    def apply(self, text: str) -> str:
        """Return ``text`` with this delta applied."""

        rows = text.split("\n")
        row, column = self.start
        if row >= len(rows):
            raise ValueError(f"Delta row {row} is outside the document ({len(rows)} rows)")

        if self.action == "insert":
            line = rows[row]
            inserted = list(self.lines) or [""]
            inserted[0] = line[:column] + inserted[0]
            inserted[-1] = inserted[-1] + line[column:]
            rows[row : row + 1] = inserted
        else:
            end_row, end_column = self.end
            if end_row >= len(rows):
                raise ValueError(f"Delta end row {end_row} is outside the document")
            rows[row : end_row + 1] = [rows[row][:column] + rows[end_row][end_column:]]

        return "\n".join(rows)

    def to_json(self) -> dict[str, object]:
        return {
            "start": self.start.to_json(),
            "end": self.end.to_json(),
            "action": self.action,
            "lines": list(self.lines),
        }


def _removal(old: list[str], i1: int, i2: int, at: int, previous: str | None) -> Delta:
    removed = old[i1:i2]
    if i2 < len(old):
        return Delta.remove(Point(at, 0), Point(at + len(removed), 0), removed + [""])
    # Nothing follows the removed rows; join onto the end of the previous row.
    assert previous is not None
    return Delta.remove(
        Point(at - 1, len(previous)),
        Point(at + len(removed) - 1, len(removed[-1])),
        [""] + removed,
    )


def _insertion(new: list[str], j1: int, j2: int, has_following_row: bool) -> Delta:
    added = new[j1:j2]
    if has_following_row:
        return Delta.insert(Point(j1, 0), added + [""])
    return Delta.insert(Point(j1 - 1, len(new[j1 - 1])), [""] + added)


def diff_deltas(old_text: str, new_text: str) -> list[Delta]:
    """Line-level deltas that turn ``old_text`` into ``new_text``.

    The deltas apply in order, each against the result of the previous one.
    """

    old = old_text.split("\n")
    new = new_text.split("\n")
    matcher = difflib.SequenceMatcher(a=old, b=new, autojunk=False)
    deltas: list[Delta] = []

    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            continue
        if tag == "delete":
            previous = new[j1 - 1] if j1 > 0 else None
            deltas.append(_removal(old, i1, i2, j1, previous))
        elif tag == "insert":
            deltas.append(_insertion(new, j1, j2, has_following_row=i1 < len(old)))
        else:
            # Insert the new rows first so the document never becomes empty.
            deltas.append(_insertion(new, j1, j2, has_following_row=True))
            deltas.append(_removal(old, i1, i2, j2, new[j2 - 1]))

    return deltas
