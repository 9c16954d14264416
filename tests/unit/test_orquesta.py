"""Unit tests for the Orquesta dialect."""

from __future__ import annotations

import pytest
import yaml

from flowsync.config import FlowSyncSettings
from flowsync.errors import SchemaError
from flowsync.events import SCHEMA_ERROR, ErrorEvent
from flowsync.model import CanvasPoint, OrquestaModel
from flowsync.range import Point


def test_reads_tasks(orquesta_model: OrquestaModel) -> None:
    t1, t2, t3 = orquesta_model.tasks

    assert t1.name == "t1"
    assert t1.action == "core.noop"
    assert t1.coords == CanvasPoint(100, 200)
    assert t2.input == {"message": "hello"}
    assert t3.coords == CanvasPoint(0, 0)
    assert orquesta_model.version == 1.0
    assert orquesta_model.description == "Sample workflow"


def test_reads_transitions_and_skips_engine_commands(orquesta_model: OrquestaModel) -> None:
    transitions = orquesta_model.transitions

    assert [tr.identity for tr in transitions] == [
        ("t1", "t2", "<% succeeded() %>"),
        ("t2", "t3", "<% failed() %>"),
    ]
    assert [tr.id for tr in transitions] == [("t1", 0, 0), ("t2", 0, 0)]
    assert all(tr.type is None for tr in transitions)


def test_add_task_appends_with_coords(orquesta_model: OrquestaModel, orquesta_yaml: str) -> None:
    orquesta_model.add_task({"name": "t4", "action": "core.local", "coords": {"x": 5, "y": 6}})

    assert orquesta_model.to_yaml() == orquesta_yaml + "  t4:  # [5, 6]\n    action: core.local\n"
    assert orquesta_model.get_task("t4").coords == CanvasPoint(5, 6)


def test_rename_is_a_minimal_edit(orquesta_model: OrquestaModel, orquesta_yaml: str) -> None:
    orquesta_model.update_task("t2", {"name": "fetch"})

    expected = orquesta_yaml.replace("- t2\n", "- fetch\n").replace("  t2:\n", "  fetch:\n")
    assert orquesta_model.to_yaml() == expected


def test_rename_inside_comma_separated_do(orquesta_model: OrquestaModel) -> None:
    orquesta_model.update_task("t3", {"name": "finish"})

    assert "do: finish, fail" in orquesta_model.to_yaml()
    assert ("t2", "finish", "<% failed() %>") in [tr.identity for tr in orquesta_model.transitions]


def test_delete_task_removes_incoming_next_entries(orquesta_model: OrquestaModel) -> None:
    orquesta_model.delete_task("t2")

    assert orquesta_model.to_yaml() == (
        "version: 1.0\n"
        "\n"
        "description: Sample workflow\n"
        "\n"
        "input:\n"
        "  - name\n"
        "\n"
        "tasks:\n"
        "  t1:  # [100, 200]\n"
        "    action: core.noop\n"
        "  t3:\n"
        "    action: core.noop\n"
    )
    assert orquesta_model.transitions == []


def test_update_condition_in_place(orquesta_model: OrquestaModel, orquesta_yaml: str) -> None:
    current = orquesta_model.transitions[0]

    updated = orquesta_model.update_transition(current, {"condition": "<% failed() %>"})

    assert updated.condition == "<% failed() %>"
    assert orquesta_model.to_yaml() == orquesta_yaml.replace(
        "- when: <% succeeded() %>", "- when: <% failed() %>"
    )


def test_remove_condition(orquesta_model: OrquestaModel) -> None:
    current = orquesta_model.transitions[0]

    orquesta_model.update_transition(current, {"condition": None})

    assert orquesta_model.transitions[0].identity == ("t1", "t2", None)
    data = yaml.safe_load(orquesta_model.to_yaml())
    assert data["tasks"]["t1"]["next"] == [{"do": ["t2"]}]


def test_add_transition_creates_next_entry(orquesta_model: OrquestaModel) -> None:
    added = orquesta_model.add_transition(
        {"from": "t3", "to": "t1", "condition": "<% succeeded() %>", "publish": [{"x": 1}]}
    )

    assert added.id == ("t3", 0, 0)
    assert added.publish == [{"x": 1}]
    data = yaml.safe_load(orquesta_model.to_yaml())
    assert data["tasks"]["t3"]["next"] == [
        {"when": "<% succeeded() %>", "publish": [{"x": 1}], "do": ["t1"]}
    ]


def test_duplicate_transitions_are_independently_addressable(settings: FlowSyncSettings) -> None:
    model = OrquestaModel(
        "version: 1.0\n"
        "tasks:\n"
        "  a:\n"
        "    next:\n"
        "      - do:\n"
        "          - b\n"
        "          - b\n"
        "  b:\n"
        "    action: core.noop\n",
        settings=settings,
    )
    first, second = model.transitions
    assert first == second
    assert first.id != second.id

    model.delete_transition(second)

    assert [tr.id for tr in model.transitions] == [("a", 0, 0)]
    assert model.to_yaml().count("- b") == 1


def test_shared_entry_condition_change_splits_the_entry(settings: FlowSyncSettings) -> None:
    model = OrquestaModel(
        "version: 1.0\n"
        "tasks:\n"
        "  a:\n"
        "    next:\n"
        "      - when: <% succeeded() %>\n"
        "        do: b, c\n"
        "  b: {}\n"
        "  c: {}\n",
        settings=settings,
    )
    to_c = model.transitions[1]

    model.update_transition(to_c, {"condition": "<% failed() %>"})

    assert sorted(tr.identity for tr in model.transitions) == [
        ("a", "b", "<% succeeded() %>"),
        ("a", "c", "<% failed() %>"),
    ]
    assert "do: b\n" in model.to_yaml()


def test_unknown_target_reports_mark(settings: FlowSyncSettings) -> None:
    model = OrquestaModel(settings=settings)
    events: list[ErrorEvent] = []
    model.on(SCHEMA_ERROR, events.append)

    ok = model.from_yaml("version: 1.0\ntasks:\n  a:\n    next:\n      - do: b\n")

    assert ok is False
    (error,) = events[0].errors
    assert error.message == "Transition from 'a' points to unknown task 'b'"
    assert error.mark == Point(4, 12)


def test_invalid_document_shape(settings: FlowSyncSettings) -> None:
    model = OrquestaModel(settings=settings)
    events: list[ErrorEvent] = []
    model.on(SCHEMA_ERROR, events.append)

    assert model.from_yaml("version: 1.0\ntasks: [1, 2]\n") is False
    assert events[0].errors[0].message.startswith("tasks")
    assert events[0].errors[0].mark == Point(1, 7)


def test_constructor_raises_for_invalid_text(settings: FlowSyncSettings) -> None:
    with pytest.raises(SchemaError):
        OrquestaModel("- just\n- a list\n", settings=settings)


def test_empty_scaffold(settings: FlowSyncSettings) -> None:
    model = OrquestaModel(settings=settings)

    assert model.to_yaml() == "version: 1.0\n\ntasks: {}\n"
    assert model.tasks == []

    model.add_task({"name": "a"})

    assert model.to_yaml() == "version: 1.0\n\ntasks:\n  a: {}\n"
