"""Workflow models: a task/transition graph kept in sync with YAML text."""

from flowsync.model.base import GraphSnapshot, ModelState, WorkflowModel, diff_snapshots
from flowsync.model.factory import ModelFactory, detect_dialect
from flowsync.model.mistral import MistralModel
from flowsync.model.orquesta import OrquestaModel
from flowsync.model.types import CanvasPoint, Task, TaskRef, Transition, TransitionType

__all__ = [
    "CanvasPoint",
    "GraphSnapshot",
    "MistralModel",
    "ModelFactory",
    "ModelState",
    "OrquestaModel",
    "Task",
    "TaskRef",
    "Transition",
    "TransitionType",
    "WorkflowModel",
    "detect_dialect",
    "diff_snapshots",
]
