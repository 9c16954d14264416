"""Test configuration and fixtures."""

import logging
from collections.abc import Iterator

import pytest

from flowsync.config import FlowSyncSettings
from flowsync.model import MistralModel, OrquestaModel, WorkflowModel

ORQUESTA_YAML = """\
version: 1.0

description: Sample workflow

input:
  - name

tasks:
  t1:  # [100, 200]
    action: core.noop
    next:
      - when: <% succeeded() %>
        do:
          - t2
  t2:
    action: core.echo
    input:
      message: hello
    next:
      - when: <% failed() %>
        do: t3, fail
  t3:
    action: core.noop
"""

MISTRAL_YAML = """\
version: '2.0'
name: sample
description: Sample workbook

workflows:
  main:
    type: direct
    tasks:
      t1:  # [10, 20]
        action: std.noop
        on-success:
          - t2
          - t3: <% $.ready %>
        on-error: t4
      t2:
        action: std.echo
        input:
          output: hi
        publish:
          result: <% task().result %>
        on-complete:
          - fail
      t3:
        action: std.noop
      t4:
        action: std.noop
"""

CHAIN_TEXT = """\
chain:
  - name: t1
    action: core.noop
    on-success: t2
  - name: t2
    action: core.noop
"""


@pytest.fixture(autouse=True)
def _restore_root_logging() -> Iterator[None]:
    """Undo configure_logging() calls made by the code under test."""
    root = logging.getLogger()
    parser = logging.getLogger("flowsync.token_set")
    handlers = list(root.handlers)
    level = root.level
    parser_level = parser.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    parser.setLevel(parser_level)


@pytest.fixture
def settings() -> FlowSyncSettings:
    """Provide settings isolated from the environment's .env file."""
    return FlowSyncSettings(_env_file=None)


@pytest.fixture
def orquesta_yaml() -> str:
    return ORQUESTA_YAML


@pytest.fixture
def mistral_yaml() -> str:
    return MISTRAL_YAML


@pytest.fixture
def chain_text() -> str:
    return CHAIN_TEXT


@pytest.fixture
def orquesta_model(settings: FlowSyncSettings) -> OrquestaModel:
    return OrquestaModel(ORQUESTA_YAML, settings=settings)


@pytest.fixture
def mistral_model(settings: FlowSyncSettings) -> MistralModel:
    return MistralModel(MISTRAL_YAML, settings=settings)


@pytest.fixture(params=["orquesta", "mistral"])
def model(request: pytest.FixtureRequest, settings: FlowSyncSettings) -> WorkflowModel:
    """Either dialect, loaded with its sample document.

    Both samples have tasks t1..t3 and a transition t1 -> t2.
    """
    if request.param == "orquesta":
        return OrquestaModel(ORQUESTA_YAML, settings=settings)
    return MistralModel(MISTRAL_YAML, settings=settings)


@pytest.fixture(params=[OrquestaModel, MistralModel], ids=["orquesta", "mistral"])
def empty_model(request: pytest.FixtureRequest, settings: FlowSyncSettings) -> WorkflowModel:
    """Either dialect, loaded with its empty scaffold."""
    return request.param(settings=settings)
