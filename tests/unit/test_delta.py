"""Unit tests for editor deltas."""

from functools import reduce

import pytest

from flowsync.delta import Delta, diff_deltas
from flowsync.range import Point


def _apply_all(text: str, deltas: list[Delta]) -> str:
    return reduce(lambda current, delta: delta.apply(current), deltas, text)


def test_from_dict_accepts_col_or_column() -> None:
    delta = Delta.from_dict(
        {
            "start": {"row": 1, "col": 2},
            "end": {"row": 1, "column": 5},
            "action": "insert",
            "lines": ["abc"],
        }
    )

    assert delta.start == Point(1, 2)
    assert delta.end == Point(1, 5)


def test_from_dict_rejects_unknown_action() -> None:
    with pytest.raises(ValueError):
        Delta.from_dict({"start": [0, 0], "end": [0, 0], "action": "replace", "lines": []})


def test_insert_within_a_line() -> None:
    delta = Delta.insert(Point(0, 3), ["XY"])

    assert delta.end == Point(0, 5)
    assert delta.apply("abcdef") == "abcXYdef"


def test_insert_lines() -> None:
    delta = Delta.insert(Point(1, 0), ["new", ""])

    assert delta.apply("a\nb\n") == "a\nnew\nb\n"


def test_remove_across_lines() -> None:
    delta = Delta.remove(Point(0, 1), Point(2, 1), ["bc", "def", "g"])

    assert delta.apply("abc\ndef\nghi") == "ahi"


def test_apply_outside_document_raises() -> None:
    with pytest.raises(ValueError):
        Delta.insert(Point(9, 0), ["x"]).apply("a\nb")


@pytest.mark.parametrize(
    ("old", "new"),
    [
        ("a\nb\nc\n", "a\nx\nb\nc\n"),
        ("a\nb\nc\n", "a\nc\n"),
        ("a\nb\nc\n", "a\nB\nc\n"),
        ("a\nb\n", "a\nb\nc\nd\n"),
        ("a\nb", "a"),
        ("a\nb", "a\nb\nc"),
        ("one", "two"),
        ("x: 1\ny: 2\n", ""),
    ],
)
def test_diff_deltas_reproduce_new_text(old: str, new: str) -> None:
    assert _apply_all(old, diff_deltas(old, new)) == new


def test_diff_of_equal_texts_is_empty() -> None:
    assert diff_deltas("a\nb\n", "a\nb\n") == []
