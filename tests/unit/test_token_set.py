"""Unit tests for the token-preserving YAML document."""

from __future__ import annotations

import pytest

from flowsync.errors import YamlSyntaxError
from flowsync.range import Point
from flowsync.token_set import TokenSet, render_inline

DOC = """\
# header comment
a:
  b: 1  # keep me
  c: 'quoted'

list:
  - one
  - two
"""


def test_invalid_yaml_raises_with_mark() -> None:
    with pytest.raises(YamlSyntaxError) as excinfo:
        TokenSet("a: [")

    assert excinfo.value.mark is not None


def test_read_values() -> None:
    ts = TokenSet(DOC)

    assert ts.get_value(("a", "b")) == 1
    assert ts.get_value(("list", 1)) == "two"
    assert ts.get_value(("missing",), "fallback") == "fallback"
    assert ts.has(("a", "c"))
    assert not ts.has(("a", "z"))
    assert ts.to_text() == DOC


def test_set_scalar_keeps_comments_and_quoting() -> None:
    ts = TokenSet(DOC)

    ts.set(("a", "b"), 5)

    assert ts.to_text() == DOC.replace("b: 1", "b: 5")


def test_set_appends_missing_key_at_end_of_mapping() -> None:
    ts = TokenSet(DOC)

    ts.set(("a", "d"), [1, 2])

    assert ts.to_text() == DOC.replace(
        "  c: 'quoted'\n", "  c: 'quoted'\n  d:\n    - 1\n    - 2\n"
    )


def test_set_appends_sequence_item() -> None:
    ts = TokenSet(DOC)

    ts.set(("list", 2), "three")

    assert ts.to_text() == DOC + "  - three\n"


def test_set_creates_missing_parents() -> None:
    ts = TokenSet("a: 1\n")

    ts.set(("x", "y"), "z")

    assert ts.to_text() == "a: 1\nx:\n  y: z\n"


def test_flow_collections_stay_flow() -> None:
    ts = TokenSet("x: [1, 2]\n")

    ts.set(("x",), [1, 2, 3])

    assert ts.to_text() == "x: [1, 2, 3]\n"


def test_set_into_flow_mapping_stays_inline() -> None:
    ts = TokenSet("x: {a: 1}\n")

    ts.set(("x", "b"), {"c": 2})

    assert ts.get_value(("x",)) == {"a": 1, "b": {"c": 2}}
    assert ts.to_text().count("\n") == 1


def test_delete_removes_whole_lines() -> None:
    ts = TokenSet(DOC)

    ts.delete(("a", "c"))

    assert ts.to_text() == DOC.replace("  c: 'quoted'\n", "")


def test_delete_last_entry_leaves_empty_mapping() -> None:
    ts = TokenSet("a:\n  b: 1\nc: 2\n")

    ts.delete(("a", "b"))

    assert ts.to_text() == "a: {}\nc: 2\n"


def test_delete_missing_path_raises() -> None:
    ts = TokenSet(DOC)

    with pytest.raises(KeyError):
        ts.delete(("a", "nope"))


def test_rename_key_only_touches_the_key() -> None:
    ts = TokenSet(DOC)

    ts.rename_key(("a", "b"), "renamed")

    assert ts.to_text() == DOC.replace("  b: 1", "  renamed: 1")


def test_line_comments() -> None:
    ts = TokenSet(DOC)

    assert ts.line_comment(("a", "b")) == "keep me"
    assert ts.line_comment(("a", "c")) is None

    ts.set_line_comment(("a", "c"), "[1, 2]")
    ts.set_line_comment(("a", "b"), None)

    assert "  c: 'quoted'  # [1, 2]\n" in ts.to_text()
    assert "  b: 1\n" in ts.to_text()


def test_replacing_block_value_keeps_key_line_comment() -> None:
    ts = TokenSet("t1:  # [1, 2]\n  a: 1\n  b: 2\n")

    ts.set(("t1",), {"c": 3})

    assert ts.to_text() == "t1:  # [1, 2]\n  c: 3\n"


def test_span_covers_key_to_last_content() -> None:
    ts = TokenSet(DOC)

    span = ts.span(("a",))

    assert span.start == Point(1, 0)
    assert span.end == Point(3, 13)
    assert span.type == "task"


def test_span_of_sequence_item_starts_at_dash() -> None:
    ts = TokenSet(DOC)

    assert ts.span(("list", 1)).start == Point(7, 2)


def test_entries_keep_duplicate_keys() -> None:
    ts = TokenSet("a: 1\na: 2\n")

    assert [key.value for key, _ in ts.entries(())] == ["a", "a"]


def test_mark_for_falls_back_to_deepest_existing_node() -> None:
    ts = TokenSet(DOC)

    assert ts.mark_for(("a", "c", "deeper")) == Point(3, 5)


def test_indent_detection() -> None:
    assert TokenSet("a:\n    b: 1\n").indent == 4
    assert TokenSet("a: 1\n").indent == 2
    assert TokenSet("a: 1\n", default_indent=3).indent == 3


def test_new_content_uses_detected_indent() -> None:
    ts = TokenSet("a:\n    b: 1\n")

    ts.set(("a", "c"), {"d": 1})

    assert ts.to_text() == "a:\n    b: 1\n    c:\n        d: 1\n"


def test_empty_document_accepts_root_keys() -> None:
    ts = TokenSet("")

    ts.set(("a",), 1)

    assert ts.to_text() == "a: 1\n"


def test_copy_is_independent() -> None:
    ts = TokenSet(DOC)
    clone = ts.copy()

    clone.set(("a", "b"), 2)

    assert ts.to_text() == DOC
    assert clone.get_value(("a", "b")) == 2


def test_render_inline() -> None:
    assert render_inline("plain") == "plain"
    assert render_inline(5) == "5"
    assert render_inline({"a": [1, 2]}) == "{a: [1, 2]}"
    assert render_inline("two\nlines") == '"two\\nlines"'
