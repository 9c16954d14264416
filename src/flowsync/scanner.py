"""Single-pass line scanner for ``chain:`` task blocks.

The scanner does not parse YAML. It classifies raw lines and walks an explicit
state machine to find task boundaries, name tokens and transition pointers,
so it keeps working on text that is mid-edit and not yet valid YAML.

    chain:
      - name: t1            <- TASK_START + NAME
        ref: core.noop      <- OTHER
        on-success: t2      <- SUCCESS
      - name: t2

Rules:
- A ``chain:`` line opens a block; its indentation is the block indentation.
- A non-blank line indented at or below the block indentation closes it.
- A dash line inside a block starts a task; the previous task ends at
  column 0 of that line.
- Task names are one or more words of ``[A-Za-z0-9_.-]`` separated by spaces.
  Anything else after ``name:`` is rejected and the task is not registered.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum

from flowsync.events import PARSE, EventEmitter, ParseEvent
from flowsync.range import Range

logger = logging.getLogger(__name__)

_INDENT = re.compile(r"^(\s*)")
_DASH_PREFIX = re.compile(r"^(\s*-\s+)")
_BLOCK_OPENER = re.compile(r"^\s*chain:\s*(?:#.*)?$")
_TASK_START = re.compile(r"^\s*-(?:\s|$)")
_BARE_DASH = re.compile(r"^\s*-\s*(?:#.*)?$")
_NAME = re.compile(r"^(?P<prefix>(?:\s*-)?\s*name:\s+)(?P<value>[^#]*?)\s*(?:#.*)?$")
_NAME_VALUE = re.compile(r"^[\w.\-]+(?: +[\w.\-]+)*$")
_SUCCESS = re.compile(r"^(?:\s*-)?\s*on-success:\s+(?P<target>\S+)")
_FAILURE = re.compile(r"^(?:\s*-)?\s*on-failure:\s+(?P<target>\S+)")
_BLANK = re.compile(r"^\s*(?:#.*)?$")


class ScanState(str, Enum):
    OUTSIDE = "outside"
    IN_BLOCK = "in_block"
    IN_TASK = "in_task"


class LineKind(str, Enum):
    BLANK = "blank"
    BLOCK_OPENER = "block_opener"
    TASK_START = "task_start"
    NAME = "name"
    SUCCESS = "success"
    FAILURE = "failure"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class LineInfo:
    """Classification of one source line.

    A dash line may also carry a name or pointer (``- name: t1``), so the
    secondary matches are kept alongside the primary ``kinds``.
    """

    row: int
    indent: int
    kinds: frozenset[LineKind]
    key_column: int | None = 0
    name_prefix: str | None = None
    name: str | None = None
    target: str | None = None

    def is_(self, kind: LineKind) -> bool:
        return kind in self.kinds


def classify_line(row: int, line: str) -> LineInfo:
    indent = len(_INDENT.match(line).group(1))  # type: ignore[union-attr]
    if _BLANK.match(line):
        return LineInfo(row=row, indent=indent, kinds=frozenset({LineKind.BLANK}))
    if _BLOCK_OPENER.match(line):
        return LineInfo(row=row, indent=indent, kinds=frozenset({LineKind.BLOCK_OPENER}))

    kinds: set[LineKind] = set()
    name_prefix = name = target = None
    key_column: int | None = indent

    if _TASK_START.match(line):
        kinds.add(LineKind.TASK_START)
        if _BARE_DASH.match(line):
            key_column = None
        else:
            key_column = len(_DASH_PREFIX.match(line).group(1))  # type: ignore[union-attr]

    match = _NAME.match(line)
    if match:
        kinds.add(LineKind.NAME)
        name_prefix = match.group("prefix")
        name = match.group("value")

    for kind, pattern in ((LineKind.SUCCESS, _SUCCESS), (LineKind.FAILURE, _FAILURE)):
        match = pattern.match(line)
        if match:
            kinds.add(kind)
            target = match.group("target")

    return LineInfo(
        row=row,
        indent=indent,
        kinds=frozenset(kinds or {LineKind.OTHER}),
        key_column=key_column,
        name_prefix=name_prefix,
        name=name,
        target=target,
    )


@dataclass(slots=True)
class TaskRanges:
    task: Range
    name: Range | None = None


@dataclass(slots=True)
class ChainTask:
    """A task found by the scanner, with raw pointer names."""

    name: str
    range: TaskRanges
    success: str | None = None
    error: str | None = None

    def to_json(self) -> dict[str, object]:
        return {
            "name": self.name,
            "success": self.success,
            "error": self.error,
            "range": {
                "task": self.range.task.to_json(),
                "name": self.range.name.to_json() if self.range.name else None,
            },
        }


@dataclass(slots=True)
class _Pending:
    """Fields collected for the task being scanned, before its name is known."""

    task_range: Range
    key_column: int | None
    name_range: Range | None = None
    success: str | None = None
    error: str | None = None
    task: ChainTask | None = None

    def flush(self) -> None:
        if self.task is None:
            return
        self.task.range.task = self.task_range
        self.task.range.name = self.name_range
        self.task.success = self.success
        self.task.error = self.error


@dataclass(slots=True)
class _ScanContext:
    state: ScanState = ScanState.OUTSIDE
    block_indent: int = 0
    item_indent: int | None = None
    current: _Pending | None = None
    found: list[ChainTask] = field(default_factory=list)


class ChainScanner(EventEmitter):
    """Stateful scanner; ``tasks`` survive between passes and are upserted by name."""

    def __init__(self) -> None:
        super().__init__()
        self.tasks: list[ChainTask] = []
        self.rejected_rows: list[int] = []

    def parse(self, code: str) -> list[ChainTask]:
        lines = code.split("\n")
        ctx = _ScanContext()
        self.rejected_rows = []
        registry = {task.name: task for task in self.tasks}

        for row, line in enumerate(lines):
            info = classify_line(row, line)
            if info.is_(LineKind.BLANK):
                continue

            if ctx.state is not ScanState.OUTSIDE and info.indent <= ctx.block_indent:
                self._close_task(ctx, row)
                ctx.state = ScanState.OUTSIDE
                ctx.item_indent = None
                logger.debug("Task block closed", extra={"row": row})

            if info.is_(LineKind.BLOCK_OPENER):
                if ctx.state is ScanState.OUTSIDE:
                    ctx.state = ScanState.IN_BLOCK
                    ctx.block_indent = info.indent
                    logger.debug("Task block opened", extra={"row": row, "indent": info.indent})
                else:
                    logger.debug("Ignoring nested task block opener", extra={"row": row})
                continue

            if ctx.state is ScanState.OUTSIDE:
                continue

            if info.is_(LineKind.TASK_START) and ctx.item_indent in (None, info.indent):
                ctx.item_indent = info.indent
                self._close_task(ctx, row)
                ctx.current = _Pending(
                    task_range=Range(row, 0).set_type("task"), key_column=info.key_column
                )
                ctx.state = ScanState.IN_TASK

            if ctx.current is None:
                continue
            if ctx.current.key_column is None:
                # A bare dash puts the first key of the task on the next line.
                ctx.current.key_column = info.key_column
            # Keys nested deeper in the task (params, nested lists) are not task fields.
            if info.key_column != ctx.current.key_column:
                continue

            if info.is_(LineKind.NAME):
                self._register_name(ctx, info, registry)
            if info.is_(LineKind.SUCCESS):
                ctx.current.success = info.target
            if info.is_(LineKind.FAILURE):
                ctx.current.error = info.target

        self._close_task(ctx, len(lines))

        seen = {task.name for task in ctx.found}
        stale = [task.name for task in self.tasks if task.name not in seen]
        if stale:
            logger.debug("Pruning stale tasks", extra={"tasks": stale})
        self.tasks = ctx.found

        self.emit(PARSE, ParseEvent(tasks=list(self.tasks)))
        return self.tasks

    def _register_name(
        self, ctx: _ScanContext, info: LineInfo, registry: dict[str, ChainTask]
    ) -> None:
        assert ctx.current is not None and info.name is not None
        if not _NAME_VALUE.match(info.name):
            logger.debug("Rejected task name", extra={"row": info.row, "value": info.name})
            self.rejected_rows.append(info.row)
            return

        start = len(info.name_prefix or "")
        ctx.current.name_range = Range(info.row, start, info.row, start + len(info.name))
        ctx.current.name_range.set_type("name")

        task = registry.get(info.name)
        if task is None:
            task = ChainTask(name=info.name, range=TaskRanges(task=ctx.current.task_range))
            registry[info.name] = task
        if ctx.current.task is None and task not in ctx.found:
            ctx.found.append(task)
        ctx.current.task = task

    @staticmethod
    def _close_task(ctx: _ScanContext, row: int) -> None:
        if ctx.current is None:
            return
        ctx.current.task_range.set_end(row, 0)
        ctx.current.flush()
        ctx.current = None
        if ctx.state is ScanState.IN_TASK:
            ctx.state = ScanState.IN_BLOCK

    def search(
        self,
        start_row: int,
        start_column: int,
        end_row: int | None = None,
        end_column: int | None = None,
    ) -> ChainTask | None:
        """Task whose span intersects the given position or range."""

        probe = Range(
            start_row,
            start_column,
            start_row if end_row is None else end_row,
            start_column if end_column is None else end_column,
        )
        for task in self.tasks:
            if task.range.task.intersects(probe):
                return task
        return None
