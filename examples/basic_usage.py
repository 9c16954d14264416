#!/usr/bin/env python3
"""Programmatic editing example.

This demonstrates using the model directly:

* load settings from `.env`
* load a workflow file and listen for changes
* add a task and a transition, then rename a task

The edited YAML is printed; the input file is never modified.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Sequence

from flowsync.config import FlowSyncSettings
from flowsync.events import CHANGE, ChangeEvent
from flowsync.logging import configure_logging
from flowsync.model import ModelFactory


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Edit a workflow (programmatic example).")
    parser.add_argument("file", help="Workflow YAML file")
    parser.add_argument("--source", required=True, help="Existing task to branch from")
    parser.add_argument("--rename", default=None, help="New name for the source task")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = FlowSyncSettings()
    configure_logging(settings.log_level, debug=settings.debug)

    model = ModelFactory.create(yaml_text=Path(args.file).read_text(encoding="utf-8"), settings=settings)

    def on_change(event: ChangeEvent) -> None:
        for change in event.changes:
            print(f"{change.kind} {change.target}: {'/'.join(map(str, change.key))}")

    model.on(CHANGE, on_change)

    task = model.add_task({"action": "core.echo", "coords": (0, 0)})
    model.add_transition({"from": args.source, "to": task.name})
    if args.rename:
        model.update_task(args.source, {"name": args.rename})

    print(model.to_yaml())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
