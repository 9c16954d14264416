"""Orquesta workflow dialect.

Transitions live in a ``next`` list owned by their source task::

    tasks:
      t1:  # [120, 40]
        action: core.noop
        next:
          - when: <% succeeded() %>
            publish:
              - result: <% result() %>
            do:
              - t2

``do`` may also be a comma separated string (``do: t2, t3``).
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

from flowsync.errors import ModelError
from flowsync.model.base import WorkflowModel
from flowsync.model.types import CanvasPoint, Task, TaskRef, Transition
from flowsync.token_set import Path, TokenSet

logger = logging.getLogger(__name__)

# ``do`` targets handled by the engine itself.
ENGINE_COMMANDS = frozenset({"fail", "noop", "continue", "retry"})


class OrquestaNext(BaseModel):
    model_config = ConfigDict(extra="allow")

    when: str | None = None
    publish: str | list[Any] | dict[str, Any] | None = None
    do: str | list[str] | None = None


class OrquestaTask(BaseModel):
    model_config = ConfigDict(extra="allow")

    action: str | None = None
    input: dict[str, Any] | None = None
    next: list[OrquestaNext] | None = None


class OrquestaDocument(BaseModel):
    model_config = ConfigDict(extra="allow")

    version: float | str | None = None
    description: str | None = None
    input: list[Any] | None = None
    output: list[Any] | None = None
    vars: list[Any] | None = None
    tasks: dict[str, OrquestaTask | None] = Field(default_factory=dict)


def _targets(do: object) -> list[str]:
    if do is None:
        return []
    if isinstance(do, str):
        return [part.strip() for part in do.split(",") if part.strip()]
    return [str(item) for item in do]  # type: ignore[union-attr]


class OrquestaModel(WorkflowModel):
    dialect: ClassVar[str] = "orquesta"
    empty_yaml: ClassVar[str] = "version: 1.0\n\ntasks: {}\n"
    document_schema: ClassVar[type[BaseModel]] = OrquestaDocument

    def _read_graph(
        self, ts: TokenSet
    ) -> tuple[list[Task], list[Transition], list[ModelError]]:
        tasks: list[Task] = []
        transitions: list[Transition] = []
        errors: list[ModelError] = []

        for key_node, _ in ts.entries(("tasks",)):
            name = key_node.value
            if any(task.name == name for task in tasks):
                errors.append(self._duplicate(name, key_node))
                continue

            path: Path = ("tasks", name)
            body = ts.get_value(path) or {}
            tasks.append(
                Task(
                    name=name,
                    action=body.get("action") or "",
                    coords=CanvasPoint.from_comment(ts.line_comment(path)),
                    input=body.get("input"),
                )
            )
            for i, entry in enumerate(body.get("next") or []):
                for j, target in enumerate(_targets(entry.get("do"))):
                    transitions.append(
                        Transition(
                            from_=TaskRef(name),
                            to=TaskRef(target),
                            condition=entry.get("when"),
                            publish=entry.get("publish"),
                            id=(name, i, j),
                        )
                    )

        names = {task.name for task in tasks}
        transitions = [
            tr for tr in transitions if tr.to.name in names or tr.to.name not in ENGINE_COMMANDS
        ]
        return tasks, transitions, errors

    def _task_path(self, task: Task) -> Path:
        return ("tasks", task.name)

    def _new_task_path(self, ts: TokenSet, name: str, data: Mapping[str, Any]) -> Path:
        return ("tasks", name)

    def _transition_path(self, tr: Transition) -> Path:
        name, i, j = tr.id  # type: ignore[misc]
        return ("tasks", name, "next", i, "do", j)

    @staticmethod
    def _entry_path(tr: Transition) -> Path:
        name, i, _ = tr.id  # type: ignore[misc]
        return ("tasks", name, "next", i)

    def _write_transition(self, ts: TokenSet, tr: Transition) -> None:
        entry: dict[str, Any] = {}
        if tr.condition is not None:
            entry["when"] = tr.condition
        if tr.publish is not None:
            entry["publish"] = tr.publish
        entry["do"] = [tr.to.name]

        path: Path = ("tasks", tr.from_.name, "next")
        existing = ts.get_value(path) or []
        ts.set(path + (len(existing),), entry)

    def _remove_transition(self, ts: TokenSet, tr: Transition) -> None:
        entry_path = self._entry_path(tr)
        do_path = entry_path + ("do",)
        _, _, j = tr.id  # type: ignore[misc]
        do = ts.get_value(do_path)
        targets = _targets(do)

        if len(targets) > 1:
            if isinstance(do, str):
                ts.set(do_path, ", ".join(targets[:j] + targets[j + 1 :]))
            else:
                ts.delete(do_path + (j,))
            return

        next_path = entry_path[:-1]
        if len(ts.get_value(next_path) or []) == 1:
            ts.delete(next_path)
        else:
            ts.delete(entry_path)

    def _retarget(self, ts: TokenSet, tr: Transition, new_name: str) -> None:
        do_path = self._entry_path(tr) + ("do",)
        _, _, j = tr.id  # type: ignore[misc]
        do = ts.get_value(do_path)
        if isinstance(do, str):
            targets = _targets(do)
            targets[j] = new_name
            ts.set(do_path, ", ".join(targets))
        else:
            ts.set(do_path + (j,), new_name)

    def _update_transition_in_place(
        self, ts: TokenSet, current: Transition, updated: Transition
    ) -> bool:
        if updated.from_.name != current.from_.name:
            return False

        entry_path = self._entry_path(current)
        shared = len(_targets(ts.get_value(entry_path + ("do",)))) > 1
        entry_changed = (
            updated.condition != current.condition or updated.publish != current.publish
        )
        if shared and entry_changed:
            # The other targets keep the old condition.
            return False

        if updated.to.name != current.to.name:
            self._retarget(ts, current, updated.to.name)
        for key, old, new in (
            ("when", current.condition, updated.condition),
            ("publish", current.publish, updated.publish),
        ):
            if new == old:
                continue
            if new is None:
                ts.delete(entry_path + (key,))
            else:
                ts.set(entry_path + (key,), new)
        return True
