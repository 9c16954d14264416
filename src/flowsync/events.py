"""Notification surface of the model.

Listeners subscribe per event name and receive exactly one event object.
Delivery is synchronous, in subscription order, on the caller's thread.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from flowsync.delta import Delta
from flowsync.errors import ModelError

if TYPE_CHECKING:
    from flowsync.scanner import ChainTask

logger = logging.getLogger(__name__)

PARSE = "parse"
CHANGE = "change"
YAML_ERROR = "yaml-error"
SCHEMA_ERROR = "schema-error"
UNDO = "undo"
REDO = "redo"

EVENT_NAMES = frozenset({PARSE, CHANGE, YAML_ERROR, SCHEMA_ERROR, UNDO, REDO})


@dataclass(frozen=True, slots=True)
class ModelChange:
    """A single semantic difference between two snapshots."""

    kind: Literal["added", "removed", "updated"]
    target: Literal["task", "transition"]
    key: tuple[object, ...]
    before: object | None = None
    after: object | None = None


@dataclass(frozen=True, slots=True)
class ParseEvent:
    tasks: list[ChainTask]


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """Emitted after every committed snapshot.

    ``deltas`` are line-level text deltas (or the editor delta that caused a
    reparse); ``changes`` are the semantic differences.
    """

    deltas: list[Delta]
    yaml: str
    changes: list[ModelChange] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ErrorEvent:
    errors: list[ModelError]

    def to_json(self) -> list[dict[str, object]]:
        return [e.to_dict() for e in self.errors]


@dataclass(frozen=True, slots=True)
class HistoryEvent:
    yaml: str


Listener = Callable[[Any], None]


class EventEmitter:
    """Minimal observer registry keyed by event name."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event: str, callback: Listener) -> None:
        if event not in EVENT_NAMES:
            raise ValueError(f"Unknown event: {event!r}")
        self._listeners.setdefault(event, []).append(callback)

    def remove_listener(self, event: str, callback: Listener) -> None:
        callbacks = self._listeners.get(event, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def emit(self, event: str, payload: object) -> None:
        callbacks = list(self._listeners.get(event, []))
        logger.debug("Emitting %s to %d listener(s)", event, len(callbacks))
        for callback in callbacks:
            callback(payload)
