"""Domain views of a workflow document.

These are immutable snapshots computed from the token tree. Mutations go
through the model, never through these objects.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

TransitionType = Literal["Success", "Error", "Complete"]

_COORDS = re.compile(r"^\[\s*(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)\s*\]$")


def _number(raw: str) -> float | int:
    value = float(raw)
    return int(value) if value.is_integer() else value


@dataclass(frozen=True, slots=True)
class CanvasPoint:
    x: float = 0
    y: float = 0

    @staticmethod
    def from_comment(comment: str | None) -> CanvasPoint:
        """Parse the ``[x, y]`` comment stored next to a task key."""

        if comment is None:
            return CanvasPoint()
        match = _COORDS.match(comment.strip())
        if match is None:
            return CanvasPoint()
        return CanvasPoint(x=_number(match.group(1)), y=_number(match.group(2)))

    def to_comment(self) -> str:
        x = int(self.x) if float(self.x).is_integer() else self.x
        y = int(self.y) if float(self.y).is_integer() else self.y
        return f"[{x}, {y}]"

    @staticmethod
    def coerce(raw: object) -> CanvasPoint:
        if isinstance(raw, CanvasPoint):
            return raw
        if isinstance(raw, Mapping):
            return CanvasPoint(x=raw.get("x", 0), y=raw.get("y", 0))
        if isinstance(raw, (tuple, list)) and len(raw) == 2:
            return CanvasPoint(x=raw[0], y=raw[1])
        raise ValueError(f"Not a canvas point: {raw!r}")


@dataclass(frozen=True, slots=True)
class TaskRef:
    name: str
    workflow: str | None = None

    @staticmethod
    def coerce(raw: object) -> TaskRef:
        if isinstance(raw, TaskRef):
            return raw
        if isinstance(raw, str):
            return TaskRef(name=raw)
        if isinstance(raw, Task):
            return TaskRef(name=raw.name, workflow=raw.workflow)
        if isinstance(raw, Mapping) and isinstance(raw.get("name"), str):
            workflow = raw.get("workflow")
            return TaskRef(name=raw["name"], workflow=workflow if isinstance(workflow, str) else None)
        raise ValueError(f"Not a task reference: {raw!r}")


@dataclass(frozen=True, slots=True)
class Task:
    name: str
    action: str = ""
    coords: CanvasPoint = field(default_factory=CanvasPoint)
    input: dict[str, Any] | None = None
    publish: str | list[Any] | dict[str, Any] | None = None
    workflow: str | None = None

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "name": self.name,
            "action": self.action,
            "coords": {"x": self.coords.x, "y": self.coords.y},
        }
        if self.input is not None:
            out["input"] = self.input
        if self.publish is not None:
            out["publish"] = self.publish
        if self.workflow is not None:
            out["workflow"] = self.workflow
        return out


@dataclass(frozen=True, slots=True)
class Transition:
    """An edge between two tasks.

    ``id`` locates the transition in the current document (for example
    ``("t1", 0, 1)`` is ``tasks.t1.next[0].do[1]``). It is only meaningful for
    the snapshot it came from and does not take part in equality.
    """

    from_: TaskRef
    to: TaskRef
    condition: str | None = None
    type: TransitionType | None = None
    publish: str | list[Any] | dict[str, Any] | None = None
    id: tuple[object, ...] | None = field(default=None, compare=False)

    @property
    def identity(self) -> tuple[str, str, str | None]:
        return (self.from_.name, self.to.name, self.condition)

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "from": {"name": self.from_.name},
            "to": {"name": self.to.name},
            "condition": self.condition,
        }
        if self.from_.workflow is not None:
            out["from"] = {"name": self.from_.name, "workflow": self.from_.workflow}
        if self.to.workflow is not None:
            out["to"] = {"name": self.to.name, "workflow": self.to.workflow}
        if self.type is not None:
            out["type"] = self.type
        if self.publish is not None:
            out["publish"] = self.publish
        return out


def task_fields(raw: Task | Mapping[str, Any]) -> dict[str, Any]:
    """Normalize a task or a partial mapping of task fields."""

    if isinstance(raw, Task):
        data: dict[str, Any] = {"name": raw.name, "action": raw.action, "coords": raw.coords}
        if raw.input is not None:
            data["input"] = raw.input
        if raw.publish is not None:
            data["publish"] = raw.publish
        if raw.workflow is not None:
            data["workflow"] = raw.workflow
        return data
    data = dict(raw)
    if data.get("coords") is not None:
        data["coords"] = CanvasPoint.coerce(data["coords"])
    return data


def transition_fields(raw: Transition | Mapping[str, Any]) -> dict[str, Any]:
    """Normalize a transition or a partial mapping of transition fields.

    Mappings may use ``from`` or ``from_``; references may be names, mappings
    or :class:`TaskRef`.
    """

    if isinstance(raw, Transition):
        return {
            "from": raw.from_,
            "to": raw.to,
            "condition": raw.condition,
            "type": raw.type,
            "publish": raw.publish,
        }
    data = dict(raw)
    if "from_" in data:
        data["from"] = data.pop("from_")
    for key in ("from", "to"):
        if key in data:
            data[key] = TaskRef.coerce(data[key])
    return data


def name_of(task: Task | TaskRef | Mapping[str, Any] | str) -> str:
    if isinstance(task, str):
        return task
    if isinstance(task, (Task, TaskRef)):
        return task.name
    name = task.get("name")
    if not isinstance(name, str):
        raise ValueError(f"Task has no name: {task!r}")
    return name
