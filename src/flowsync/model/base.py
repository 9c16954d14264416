"""Shared contract of the workflow dialects.

A model owns exactly one :class:`~flowsync.token_set.TokenSet`. ``tasks`` and
``transitions`` are views recomputed from it on every commit. Two paths lead
to a commit:

- reparsing editor text (``from_yaml``, ``apply_delta``): failures are
  published as ``yaml-error`` / ``schema-error`` events and never raised;
- structural mutations (``add_task``, ``update_transition``, ...): the edit
  is applied to a draft copy of the token tree, validated, and only then
  committed. Failures raise and leave the model untouched.

Dialects differ only in where tasks and transitions live in the tree.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import Counter
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, ClassVar

import yaml
from pydantic import BaseModel, ValidationError

from flowsync.config import FlowSyncSettings
from flowsync.delta import Delta, diff_deltas
from flowsync.errors import (
    ModelError,
    SchemaError,
    TaskNameConflictError,
    TaskNotFoundError,
    TransitionNotFoundError,
    YamlSyntaxError,
)
from flowsync.events import (
    CHANGE,
    REDO,
    SCHEMA_ERROR,
    UNDO,
    YAML_ERROR,
    ChangeEvent,
    ErrorEvent,
    EventEmitter,
    HistoryEvent,
    ModelChange,
)
from flowsync.model.types import (
    Task,
    TaskRef,
    Transition,
    TransitionType,
    name_of,
    task_fields,
    transition_fields,
)
from flowsync.range import Point
from flowsync.token_set import Path, TokenSet

logger = logging.getLogger(__name__)


class ModelState(str, Enum):
    UNINITIALIZED = "uninitialized"
    PARSED = "parsed"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class GraphSnapshot:
    """Tasks and transitions of one committed document.

    ``task_index`` maps names to positions in ``tasks``.
    """

    tasks: list[Task] = field(default_factory=list)
    transitions: list[Transition] = field(default_factory=list)
    task_index: dict[str, int] = field(default_factory=dict)

    @classmethod
    def build(cls, tasks: list[Task], transitions: list[Transition]) -> GraphSnapshot:
        return cls(
            tasks=tasks,
            transitions=transitions,
            task_index={task.name: i for i, task in enumerate(tasks)},
        )


def _transition_key(tr: Transition) -> tuple[object, ...]:
    return (
        tr.from_.name,
        tr.from_.workflow,
        tr.to.name,
        tr.to.workflow,
        tr.condition,
        tr.type,
        repr(tr.publish),
    )


def diff_snapshots(before: GraphSnapshot, after: GraphSnapshot) -> list[ModelChange]:
    """Semantic differences between two snapshots."""

    changes: list[ModelChange] = []
    old_tasks = {task.name: task for task in before.tasks}
    new_tasks = {task.name: task for task in after.tasks}

    for name, task in old_tasks.items():
        if name not in new_tasks:
            changes.append(ModelChange("removed", "task", (name,), before=task))
        elif new_tasks[name] != task:
            changes.append(ModelChange("updated", "task", (name,), task, new_tasks[name]))
    for name, task in new_tasks.items():
        if name not in old_tasks:
            changes.append(ModelChange("added", "task", (name,), after=task))

    unmatched_new = Counter(_transition_key(tr) for tr in after.transitions)
    for tr in before.transitions:
        key = _transition_key(tr)
        if unmatched_new[key] > 0:
            unmatched_new[key] -= 1
        else:
            changes.append(ModelChange("removed", "transition", tr.identity, before=tr))
    unmatched_old = Counter(_transition_key(tr) for tr in before.transitions)
    for tr in after.transitions:
        key = _transition_key(tr)
        if unmatched_old[key] > 0:
            unmatched_old[key] -= 1
        else:
            changes.append(ModelChange("added", "transition", tr.identity, after=tr))

    return changes


def _mark(node: yaml.Node) -> Point:
    return Point(node.start_mark.line, node.start_mark.column)


def _describe(error: Mapping[str, Any]) -> str:
    loc = ".".join(str(part) for part in error.get("loc", ()))
    message = str(error.get("msg", "invalid value"))
    return f"{loc}: {message}" if loc else message


class WorkflowModel(EventEmitter, ABC):
    """Bidirectional task/transition view over a YAML workflow.

    Args:
        yaml_text: Initial document. The dialect's empty scaffold when omitted.
        settings: Indentation and history settings; loaded from the
            environment when omitted.

    Raises:
        YamlSyntaxError: If the initial text is not valid YAML.
        SchemaError: If it is not a valid workflow.
    """

    dialect: ClassVar[str]
    empty_yaml: ClassVar[str]
    document_schema: ClassVar[type[BaseModel]]
    default_transition_type: ClassVar[TransitionType | None] = None

    # Task attribute -> key in the task mapping.
    task_keys: ClassVar[dict[str, str]] = {"action": "action", "input": "input"}

    def __init__(
        self, yaml_text: str | None = None, *, settings: FlowSyncSettings | None = None
    ) -> None:
        super().__init__()
        self.settings = settings or FlowSyncSettings()
        self.state = ModelState.UNINITIALIZED
        self._lock = threading.RLock()
        self._undo_stack: list[str] = []
        self._redo_stack: list[str] = []

        text = self.empty_yaml if yaml_text is None else yaml_text
        token_set = self._tokenize(text)
        self._snapshot = self._build_snapshot(token_set)
        self._token_set = token_set
        self.state = ModelState.PARSED
        logger.debug(
            "Loaded workflow",
            extra={"dialect": self.dialect, "tasks": len(self._snapshot.tasks)},
        )

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @property
    def token_set(self) -> TokenSet:
        return self._token_set

    @property
    def text(self) -> str:
        return self._token_set.text

    @property
    def tasks(self) -> list[Task]:
        return list(self._snapshot.tasks)

    @property
    def transitions(self) -> list[Transition]:
        return list(self._snapshot.transitions)

    @property
    def version(self) -> Any:
        return self._token_set.get_value(("version",))

    @property
    def name(self) -> str | None:
        return self._token_set.get_value(("name",))

    @property
    def description(self) -> str | None:
        return self._token_set.get_value(("description",))

    @property
    def can_undo(self) -> bool:
        return bool(self._undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo_stack)

    def has_task(self, name: str) -> bool:
        return name in self._snapshot.task_index

    def get_task(self, task: Task | TaskRef | Mapping[str, Any] | str) -> Task:
        name = name_of(task)
        index = self._snapshot.task_index.get(name)
        if index is None:
            raise TaskNotFoundError(name)
        return self._snapshot.tasks[index]

    def get_range_for_task(self, task: Task | TaskRef | Mapping[str, Any] | str) -> tuple[Point, Point]:
        """Source span of a task, from its key to its last content line."""

        current = self.get_task(task)
        span = self._token_set.span(self._task_path(current))
        return span.start, span.end

    # ------------------------------------------------------------------
    # Text synchronisation
    # ------------------------------------------------------------------

    def to_yaml(self) -> str:
        return self._token_set.to_text()

    def from_yaml(self, yaml_text: str) -> bool:
        """Replace the document with ``yaml_text``.

        Returns:
            True if the text was committed, False if an error event fired.
        """
        return self._reparse(yaml_text, deltas=None)

    def apply_delta(self, delta: Delta | Mapping[str, Any], full_text: str) -> bool:
        """Reparse after an editor change.

        ``full_text`` is authoritative; ``delta`` is only forwarded with the
        change event. Every call runs a full reparse, callers debounce.
        """
        if not isinstance(delta, Delta):
            delta = Delta.from_dict(delta)

        with self._lock:
            try:
                expected: str | None = delta.apply(self.text)
            except ValueError:
                expected = None
            if expected != full_text:
                logger.debug(
                    "Editor delta does not reproduce the reported text",
                    extra={"action": delta.action, "row": delta.start.row},
                )
            return self._reparse(full_text, deltas=[delta])

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def add_task(self, task: Task | Mapping[str, Any]) -> Task:
        """Append a task; a ``taskN`` name is allocated when none is given.

        Raises:
            TaskNameConflictError: If the name is already used.
        """
        with self._lock:
            data = task_fields(task)
            name = data.pop("name", None) or self._allocate_name()
            if self.has_task(name):
                raise TaskNameConflictError(name)

            def edit(ts: TokenSet) -> None:
                path = self._new_task_path(ts, name, data)
                ts.set(path, self._task_body(data))
                if data.get("coords") is not None:
                    ts.set_line_comment(path, data["coords"].to_comment())

            self._mutate(edit)
            logger.info("Added task", extra={"task": name, "dialect": self.dialect})
            return self.get_task(name)

    def update_task(
        self, old_task: Task | Mapping[str, Any] | str, new_data: Mapping[str, Any]
    ) -> Task:
        """Merge ``new_data`` into a task.

        A new ``name`` renames the task and every transition pointing at it
        in the same commit. ``None`` values remove the field.
        """
        with self._lock:
            current = self.get_task(old_task)
            data = task_fields(new_data)
            new_name = data.pop("name", None) or current.name
            if new_name != current.name and self.has_task(new_name):
                raise TaskNameConflictError(new_name)

            path = self._task_path(current)
            referencing = [tr for tr in self._snapshot.transitions if tr.to.name == current.name]

            def edit(ts: TokenSet) -> None:
                for attribute, key in self.task_keys.items():
                    if attribute not in data:
                        continue
                    if data[attribute] is None:
                        if ts.has(path + (key,)):
                            ts.delete(path + (key,))
                    else:
                        ts.set(path + (key,), data[attribute])
                if data.get("coords") is not None:
                    ts.set_line_comment(path, data["coords"].to_comment())
                if new_name != current.name:
                    for tr in sorted(referencing, key=self._transition_order, reverse=True):
                        self._retarget(ts, tr, new_name)
                    ts.rename_key(path, new_name)

            self._mutate(edit)
            if new_name != current.name:
                logger.info(
                    "Renamed task",
                    extra={"task": current.name, "new_name": new_name, "references": len(referencing)},
                )
            return self.get_task(new_name)

    def delete_task(self, task: Task | Mapping[str, Any] | str) -> None:
        """Remove a task and every transition into or out of it."""
        with self._lock:
            current = self.get_task(task)
            path = self._task_path(current)
            incoming = [
                tr
                for tr in self._snapshot.transitions
                if tr.to.name == current.name and tr.from_.name != current.name
            ]

            def edit(ts: TokenSet) -> None:
                for tr in sorted(incoming, key=self._transition_order, reverse=True):
                    self._remove_transition(ts, tr)
                ts.delete(path)

            self._mutate(edit)
            logger.info("Deleted task", extra={"task": current.name, "dialect": self.dialect})

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def add_transition(self, transition: Transition | Mapping[str, Any]) -> Transition:
        with self._lock:
            data = transition_fields(transition)
            if "from" not in data or "to" not in data:
                raise ValueError("A transition needs both 'from' and 'to'")
            new = Transition(
                from_=self._ref(data["from"]),
                to=self._ref(data["to"]),
                condition=data.get("condition"),
                type=data.get("type") or self.default_transition_type,
                publish=data.get("publish"),
            )
            self._mutate(lambda ts: self._write_transition(ts, new))
            return self._last_matching(new)

    def update_transition(
        self, old_transition: Transition | Mapping[str, Any], new_data: Mapping[str, Any]
    ) -> Transition:
        """Change a transition in place, or move it when its owner changes.

        Keys absent from ``new_data`` keep their value; ``condition: None``
        removes the condition.
        """
        with self._lock:
            current = self._find_transition(old_transition)
            data = transition_fields(new_data)
            updated = replace(
                current,
                from_=self._ref(data.get("from", current.from_)),
                to=self._ref(data.get("to", current.to)),
                condition=data["condition"] if "condition" in data else current.condition,
                type=data.get("type") or current.type,
                publish=data["publish"] if "publish" in data else current.publish,
                id=None,
            )

            def edit(ts: TokenSet) -> None:
                if not self._update_transition_in_place(ts, current, updated):
                    self._remove_transition(ts, current)
                    self._write_transition(ts, updated)

            self._mutate(edit)
            return self._last_matching(updated)

    def delete_transition(self, transition: Transition | Mapping[str, Any]) -> None:
        with self._lock:
            current = self._find_transition(transition)
            self._mutate(lambda ts: self._remove_transition(ts, current))

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def undo(self) -> bool:
        with self._lock:
            if not self._undo_stack:
                return False
            text = self._undo_stack.pop()
            self._redo_stack.append(self.text)
            self._restore(UNDO, text)
            return True

    def redo(self) -> bool:
        with self._lock:
            if not self._redo_stack:
                return False
            text = self._redo_stack.pop()
            self._undo_stack.append(self.text)
            self._restore(REDO, text)
            return True

    # ------------------------------------------------------------------
    # Dialect hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def _read_graph(
        self, ts: TokenSet
    ) -> tuple[list[Task], list[Transition], list[ModelError]]:
        """Build task/transition views, reporting duplicate task names."""

    @abstractmethod
    def _task_path(self, task: Task) -> Path: ...

    @abstractmethod
    def _new_task_path(self, ts: TokenSet, name: str, data: Mapping[str, Any]) -> Path: ...

    @abstractmethod
    def _transition_path(self, tr: Transition) -> Path:
        """Path of the node naming the transition's target."""

    @abstractmethod
    def _write_transition(self, ts: TokenSet, tr: Transition) -> None: ...

    @abstractmethod
    def _remove_transition(self, ts: TokenSet, tr: Transition) -> None: ...

    @abstractmethod
    def _retarget(self, ts: TokenSet, tr: Transition, new_name: str) -> None: ...

    @abstractmethod
    def _update_transition_in_place(
        self, ts: TokenSet, current: Transition, updated: Transition
    ) -> bool:
        """Apply ``updated`` over ``current`` without moving it; False if it must move."""

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _tokenize(self, text: str) -> TokenSet:
        return TokenSet(text, default_indent=self.settings.default_indent)

    def _task_body(self, data: Mapping[str, Any]) -> dict[str, Any]:
        return {
            key: data[attribute]
            for attribute, key in self.task_keys.items()
            if data.get(attribute) not in (None, "")
        }

    def _allocate_name(self, prefix: str = "task") -> str:
        n = len(self._snapshot.tasks) + 1
        while self.has_task(f"{prefix}{n}"):
            n += 1
        return f"{prefix}{n}"

    def _ref(self, raw: object) -> TaskRef:
        task = self.get_task(TaskRef.coerce(raw))
        return TaskRef(name=task.name, workflow=task.workflow)

    @staticmethod
    def _transition_order(tr: Transition) -> tuple[object, ...]:
        return tr.id or ()

    def _find_transition(self, wanted: Transition | Mapping[str, Any]) -> Transition:
        if isinstance(wanted, Transition) and wanted.id is not None:
            for tr in self._snapshot.transitions:
                if tr.id == wanted.id and tr.identity == wanted.identity:
                    return tr

        data = transition_fields(wanted)
        source = name_of(data["from"]) if "from" in data else None
        target = name_of(data["to"]) if "to" in data else None
        for tr in self._snapshot.transitions:
            if source is not None and tr.from_.name != source:
                continue
            if target is not None and tr.to.name != target:
                continue
            if "condition" in data and tr.condition != data["condition"]:
                continue
            if data.get("type") is not None and tr.type != data["type"]:
                continue
            return tr
        raise TransitionNotFoundError(f"No such transition: {source!r} -> {target!r}")

    def _last_matching(self, tr: Transition) -> Transition:
        for candidate in reversed(self._snapshot.transitions):
            if candidate.identity == tr.identity and candidate.type == tr.type:
                return candidate
        raise TransitionNotFoundError(f"Transition was not written: {tr.identity!r}")

    def _build_snapshot(self, ts: TokenSet) -> GraphSnapshot:
        if ts.root is not None and not isinstance(ts.root, yaml.MappingNode):
            raise SchemaError("Workflow document must be a mapping", _mark(ts.root))

        errors = self._validate_document(ts)
        if not errors:
            tasks, transitions, errors = self._read_graph(ts)
            names = {task.name for task in tasks}
            for tr in transitions:
                if tr.to.name not in names:
                    errors.append(
                        SchemaError(
                            f"Transition from {tr.from_.name!r} points to unknown task {tr.to.name!r}",
                            ts.mark_for(self._transition_path(tr)),
                        )
                    )
        if errors:
            raise SchemaError(errors[0].message, errors[0].mark, errors)
        return GraphSnapshot.build(tasks, transitions)

    def _validate_document(self, ts: TokenSet) -> list[ModelError]:
        data = ts.get_value((), None)
        try:
            self.document_schema.model_validate(data if data is not None else {})
        except ValidationError as e:
            return [
                SchemaError(_describe(error), ts.mark_for(list(error["loc"])))
                for error in e.errors()
            ]
        return []

    @staticmethod
    def _duplicate(name: str, key_node: yaml.Node) -> SchemaError:
        return SchemaError(f"Duplicate task name: {name!r}", _mark(key_node))

    def _reparse(self, text: str, deltas: list[Delta] | None) -> bool:
        with self._lock:
            try:
                token_set = self._tokenize(text)
                snapshot = self._build_snapshot(token_set)
            except YamlSyntaxError as e:
                self._fail(YAML_ERROR, [e])
                return False
            except SchemaError as e:
                self._fail(SCHEMA_ERROR, e.errors)
                return False
            self._commit(token_set, snapshot, deltas)
            return True

    def _fail(self, event: str, errors: list[ModelError]) -> None:
        self.state = ModelState.ERROR
        logger.warning(
            "Rejected workflow text: %s",
            errors[0],
            extra={"dialect": self.dialect, "event": event, "errors": len(errors)},
        )
        self.emit(event, ErrorEvent(errors=list(errors)))

    def _mutate(self, edit: Callable[[TokenSet], None]) -> None:
        draft = self._token_set.copy()
        edit(draft)
        snapshot = self._build_snapshot(draft)
        self._commit(draft, snapshot)

    def _commit(
        self,
        token_set: TokenSet,
        snapshot: GraphSnapshot,
        deltas: list[Delta] | None = None,
        *,
        record: bool = True,
    ) -> None:
        previous = self._token_set.text
        changes = diff_snapshots(self._snapshot, snapshot)
        if deltas is None:
            deltas = diff_deltas(previous, token_set.text)

        if record and token_set.text != previous and self.settings.history_limit:
            self._undo_stack.append(previous)
            del self._undo_stack[: -self.settings.history_limit]
            self._redo_stack.clear()

        self._token_set = token_set
        self._snapshot = snapshot
        self.state = ModelState.PARSED
        logger.debug(
            "Committed snapshot",
            extra={"dialect": self.dialect, "tasks": len(snapshot.tasks), "changes": len(changes)},
        )
        self.emit(CHANGE, ChangeEvent(deltas=list(deltas), yaml=token_set.text, changes=changes))

    def _restore(self, event: str, text: str) -> None:
        token_set = self._tokenize(text)
        snapshot = self._build_snapshot(token_set)
        self.emit(event, HistoryEvent(yaml=text))
        self._commit(token_set, snapshot, record=False)
