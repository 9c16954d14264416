"""Mistral v2 workbook dialect.

Tasks live under ``workflows.<name>.tasks`` and carry their transitions
inline::

    version: '2.0'
    workflows:
      main:
        type: direct
        tasks:
          t1:  # [120, 40]
            action: std.noop
            on-success:
              - t2
              - t3: <% $.ready %>
            on-error: t4

Each item is a bare task name or a single ``{task: condition}`` mapping.
Task names are unique across the whole workbook.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from flowsync.errors import ModelError
from flowsync.model.base import WorkflowModel
from flowsync.model.types import CanvasPoint, Task, TaskRef, Transition, TransitionType
from flowsync.token_set import Path, TokenSet

logger = logging.getLogger(__name__)

TRANSITION_KEYS: dict[str, TransitionType] = {
    "on-success": "Success",
    "on-error": "Error",
    "on-complete": "Complete",
}
_KEY_FOR_TYPE = {type_: key for key, type_ in TRANSITION_KEYS.items()}

# Engine commands, optionally with arguments: ``fail``, ``pause``, ``fail(msg='x')``.
_ENGINE_COMMAND = re.compile(r"^(?:fail|succeed|pause|noop)(?:\(.*\))?$")

_TransitionList = str | list[str | dict[str, Any]] | None


class MistralTask(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    action: str | None = None
    workflow: str | None = None
    input: dict[str, Any] | None = None
    publish: dict[str, Any] | None = None
    on_success: _TransitionList = Field(default=None, alias="on-success")
    on_error: _TransitionList = Field(default=None, alias="on-error")
    on_complete: _TransitionList = Field(default=None, alias="on-complete")

    @field_validator("on_success", "on_error", "on_complete", mode="before")
    @classmethod
    def validate_items(cls, v: Any) -> Any:
        if not isinstance(v, list):
            return v
        for item in v:
            if not isinstance(item, Mapping):
                continue
            if len(item) != 1:
                raise ValueError("each item must map exactly one task to its condition")
            (condition,) = item.values()
            if condition is not None and not isinstance(condition, str):
                raise ValueError(f"condition must be a string, not {condition!r}")
        return v


class MistralWorkflow(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str | None = None
    description: str | None = None
    tasks: dict[str, MistralTask | None] = Field(default_factory=dict)


class MistralWorkbook(BaseModel):
    model_config = ConfigDict(extra="allow")

    version: str | float
    name: str | None = None
    description: str | None = None
    workflows: dict[str, MistralWorkflow | None] = Field(default_factory=dict)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str | float) -> str | float:
        if str(v) != "2.0":
            raise ValueError("Mistral workbooks must declare version '2.0'")
        return v


def _items(raw: object) -> list[tuple[str, str | None]]:
    """``(target, condition)`` pairs of an ``on-*`` value."""

    if raw is None:
        return []
    if isinstance(raw, str):
        return [(raw, None)]
    pairs: list[tuple[str, str | None]] = []
    for item in raw:  # type: ignore[union-attr]
        if isinstance(item, Mapping):
            for target, condition in item.items():
                pairs.append((str(target), condition))
        else:
            pairs.append((str(item), None))
    return pairs


class MistralModel(WorkflowModel):
    dialect: ClassVar[str] = "mistral"
    empty_yaml: ClassVar[str] = (
        "version: '2.0'\n\nworkflows:\n  main:\n    type: direct\n    tasks: {}\n"
    )
    document_schema: ClassVar[type[BaseModel]] = MistralWorkbook
    default_transition_type: ClassVar[TransitionType | None] = "Success"

    task_keys: ClassVar[dict[str, str]] = {
        "action": "action",
        "input": "input",
        "publish": "publish",
    }

    @property
    def workflows(self) -> list[str]:
        return [key.value for key, _ in self.token_set.entries(("workflows",))]

    def _read_graph(
        self, ts: TokenSet
    ) -> tuple[list[Task], list[Transition], list[ModelError]]:
        tasks: list[Task] = []
        transitions: list[Transition] = []
        errors: list[ModelError] = []
        workflows: set[str] = set()
        owners: dict[str, str] = {}

        for wf_key, _ in ts.entries(("workflows",)):
            workflow = wf_key.value
            if workflow in workflows:
                errors.append(self._duplicate(workflow, wf_key))
                continue
            workflows.add(workflow)

            for key_node, _ in ts.entries(("workflows", workflow, "tasks")):
                name = key_node.value
                if name in owners:
                    errors.append(self._duplicate(name, key_node))
                    continue
                owners[name] = workflow

                path: Path = ("workflows", workflow, "tasks", name)
                body = ts.get_value(path) or {}
                tasks.append(
                    Task(
                        name=name,
                        action=body.get("action") or body.get("workflow") or "",
                        coords=CanvasPoint.from_comment(ts.line_comment(path)),
                        input=body.get("input"),
                        publish=body.get("publish"),
                        workflow=workflow,
                    )
                )
                for key, type_ in TRANSITION_KEYS.items():
                    for i, (target, condition) in enumerate(_items(body.get(key))):
                        transitions.append(
                            Transition(
                                from_=TaskRef(name, workflow),
                                to=TaskRef(target),
                                condition=condition,
                                type=type_,
                                id=(workflow, name, key, i),
                            )
                        )

        resolved: list[Transition] = []
        for tr in transitions:
            if tr.to.name in owners:
                resolved.append(
                    Transition(
                        from_=tr.from_,
                        to=TaskRef(tr.to.name, owners[tr.to.name]),
                        condition=tr.condition,
                        type=tr.type,
                        id=tr.id,
                    )
                )
            elif not _ENGINE_COMMAND.match(tr.to.name):
                resolved.append(tr)
        return tasks, resolved, errors

    def _task_path(self, task: Task) -> Path:
        return ("workflows", task.workflow or "main", "tasks", task.name)

    def _new_task_path(self, ts: TokenSet, name: str, data: Mapping[str, Any]) -> Path:
        workflows = [key.value for key, _ in ts.entries(("workflows",))]
        workflow = data.get("workflow") or (workflows[0] if workflows else "main")
        return ("workflows", workflow, "tasks", name)

    def _transition_path(self, tr: Transition) -> Path:
        workflow, name, key, i = tr.id  # type: ignore[misc]
        return ("workflows", workflow, "tasks", name, key, i)

    @staticmethod
    def _item(tr: Transition) -> str | dict[str, str]:
        if tr.condition is None:
            return tr.to.name
        return {tr.to.name: tr.condition}

    def _write_transition(self, ts: TokenSet, tr: Transition) -> None:
        key = _KEY_FOR_TYPE[tr.type or "Success"]
        path: Path = ("workflows", tr.from_.workflow or "main", "tasks", tr.from_.name, key)
        item = self._item(tr)
        current = ts.get_value(path)
        if current is None:
            ts.set(path, [item])
        elif isinstance(current, str):
            ts.set(path, [current, item])
        else:
            ts.set(path + (len(current),), item)

    def _remove_transition(self, ts: TokenSet, tr: Transition) -> None:
        path = self._transition_path(tr)
        current = ts.get_value(path[:-1])
        if isinstance(current, str) or len(current) == 1:
            ts.delete(path[:-1])
        else:
            ts.delete(path)

    def _retarget(self, ts: TokenSet, tr: Transition, new_name: str) -> None:
        path = self._transition_path(tr)
        current = ts.get_value(path[:-1])
        if isinstance(current, str):
            ts.set(path[:-1], new_name)
        elif isinstance(current[path[-1]], Mapping):
            ts.rename_key(path + (tr.to.name,), new_name)
        else:
            ts.set(path, new_name)

    def _update_transition_in_place(
        self, ts: TokenSet, current: Transition, updated: Transition
    ) -> bool:
        if updated.from_.name != current.from_.name or updated.type != current.type:
            return False

        path = self._transition_path(current)
        item = self._item(updated)
        if isinstance(ts.get_value(path[:-1]), str):
            ts.set(path[:-1], item if isinstance(item, str) else [item])
        else:
            ts.set(path, item)
        return True
