"""Unit tests for the chain line scanner."""

from __future__ import annotations

from flowsync.events import PARSE, ParseEvent
from flowsync.range import Range
from flowsync.scanner import ChainScanner, LineKind, classify_line


def test_classify_line() -> None:
    assert classify_line(0, "").kinds == {LineKind.BLANK}
    assert classify_line(0, "   # note").kinds == {LineKind.BLANK}
    assert classify_line(0, "  chain:").kinds == {LineKind.BLOCK_OPENER}

    line = classify_line(3, "  - name: t1  # first")
    assert line.kinds == {LineKind.TASK_START, LineKind.NAME}
    assert line.name == "t1"
    assert line.key_column == 4

    pointer = classify_line(4, "    on-failure: cleanup now")
    assert pointer.kinds == {LineKind.FAILURE}
    assert pointer.target == "cleanup"


def test_ranges_for_chain_example(chain_text: str) -> None:
    scanner = ChainScanner()

    t1, t2 = scanner.parse(chain_text)

    assert t1.name == "t1"
    assert t1.range.task == Range(1, 0, 4, 0, type="task")
    assert t1.range.name == Range(1, 10, 1, 12, type="name")
    assert t1.success == "t2"
    assert t1.error is None
    assert t2.name == "t2"
    assert t2.range.task.start_row == 4
    assert t2.range.name == Range(4, 10, 4, 12, type="name")


def test_parse_emits_event(chain_text: str) -> None:
    scanner = ChainScanner()
    events: list[ParseEvent] = []
    scanner.on(PARSE, events.append)

    scanner.parse(chain_text)

    assert [task.name for task in events[0].tasks] == ["t1", "t2"]


def test_stale_tasks_are_pruned_and_survivors_updated_in_place(chain_text: str) -> None:
    scanner = ChainScanner()
    first, _ = scanner.parse(chain_text)

    tasks = scanner.parse("chain:\n  - name: t1\n    action: core.noop\n")

    assert [task.name for task in tasks] == ["t1"]
    assert tasks[0] is first
    assert first.success is None
    assert first.range.task == Range(1, 0, 4, 0, type="task")


def test_block_closes_on_dedent() -> None:
    text = "chain:\n  - name: a\nother:\n  - name: b\n"

    tasks = ChainScanner().parse(text)

    assert [task.name for task in tasks] == ["a"]
    assert tasks[0].range.task == Range(1, 0, 2, 0, type="task")


def test_blank_and_comment_lines_do_not_close_the_block() -> None:
    text = "chain:\n  - name: a\n\n# note\n  - name: b\n"

    tasks = ChainScanner().parse(text)

    assert [task.name for task in tasks] == ["a", "b"]


def test_nested_lists_do_not_start_tasks() -> None:
    text = (
        "chain:\n"
        "  - name: a\n"
        "    params:\n"
        "      - name: not-a-task\n"
        "        on-success: nowhere\n"
        "    on-success: b\n"
        "  - name: b\n"
    )

    a, b = ChainScanner().parse(text)

    assert a.name == "a"
    assert a.success == "b"
    assert a.range.task == Range(1, 0, 6, 0, type="task")
    assert b.name == "b"


def test_nested_opener_is_task_content() -> None:
    text = "chain:\n  - name: a\n    chain:\n  - name: b\n"

    tasks = ChainScanner().parse(text)

    assert [task.name for task in tasks] == ["a", "b"]


def test_second_block_is_scanned() -> None:
    text = "chain:\n  - name: a\nchain:\n  - name: b\n"

    tasks = ChainScanner().parse(text)

    assert [task.name for task in tasks] == ["a", "b"]
    assert tasks[0].range.task.end_row == 2


def test_names_with_punctuation_are_rejected() -> None:
    scanner = ChainScanner()

    tasks = scanner.parse("chain:\n  - name: 'quoted'\n  - name: two words\n")

    assert [task.name for task in tasks] == ["two words"]
    assert scanner.rejected_rows == [1]


def test_search() -> None:
    scanner = ChainScanner()
    scanner.parse("chain:\n  - name: a\n    x: 1\n  - name: b\n")

    assert scanner.search(2, 3).name == "a"
    assert scanner.search(3, 0).name == "b"
    assert scanner.search(0, 0) is None


def test_bare_dash_takes_key_column_from_next_line() -> None:
    assert classify_line(1, "  -").key_column is None
    assert classify_line(1, "  -  # first").key_column is None

    (task,) = ChainScanner().parse("chain:\n  -\n    name: t1\n    on-success: t2\n")

    assert task.name == "t1"
    assert task.success == "t2"
    assert task.range.task == Range(1, 0, 5, 0, type="task")
    assert task.range.name == Range(2, 10, 2, 12, type="name")


def test_bare_dash_ignores_deeper_keys() -> None:
    text = (
        "chain:\n"
        "  -\n"
        "    name: a\n"
        "    params:\n"
        "      -\n"
        "        name: nested\n"
        "  -\n"
        "    name: b\n"
    )

    assert [task.name for task in ChainScanner().parse(text)] == ["a", "b"]
