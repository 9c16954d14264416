"""Error taxonomy for the workflow model.

Mutation calls raise these directly. Reparses of editor text collect them and
publish them through the model's error events instead.
"""

from __future__ import annotations

from collections.abc import Iterable

from flowsync.range import Point


class ModelError(Exception):
    """Base class for every model failure.

    Attributes:
        message: Human readable description.
        mark: Source position of the problem, when known.
    """

    def __init__(self, message: str, mark: Point | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.mark = mark

    def __str__(self) -> str:
        if self.mark is None:
            return self.message
        return f"{self.message} (line {self.mark.row + 1}, column {self.mark.column + 1})"

    def to_dict(self) -> dict[str, object]:
        out: dict[str, object] = {"message": self.message}
        if self.mark is not None:
            out["mark"] = self.mark.to_json()
        return out


class YamlSyntaxError(ModelError):
    """The text is not valid YAML."""


class SchemaError(ModelError):
    """Valid YAML that violates the workflow schema.

    A single instance may carry several collected issues in ``errors``.
    """

    def __init__(
        self,
        message: str,
        mark: Point | None = None,
        errors: Iterable[ModelError] | None = None,
    ) -> None:
        super().__init__(message, mark)
        self.errors: list[ModelError] = list(errors) if errors is not None else [self]


class TaskNameConflictError(SchemaError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Task name already in use: {name!r}")
        self.name = name


class MissingReferenceError(ModelError):
    """A mutation referenced something absent from the current snapshot."""


class TaskNotFoundError(MissingReferenceError):
    def __init__(self, name: str) -> None:
        super().__init__(f"No such task: {name!r}")
        self.name = name


class TransitionNotFoundError(MissingReferenceError):
    pass
