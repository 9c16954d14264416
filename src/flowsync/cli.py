"""CLI entrypoint for inspecting and editing workflow files."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from flowsync import __version__
from flowsync.config import FlowSyncSettings
from flowsync.errors import MissingReferenceError, ModelError, SchemaError
from flowsync.logging import configure_logging
from flowsync.model import ModelFactory, WorkflowModel
from flowsync.scanner import ChainScanner

logger = logging.getLogger(__name__)


def _read(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _dump(payload: Any) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _load(args: argparse.Namespace, settings: FlowSyncSettings) -> WorkflowModel:
    return ModelFactory.create(args.dialect, _read(args.file), settings=settings)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flowsync",
        description="Inspect and edit YAML workflows as task graphs",
    )
    parser.add_argument("--version", action="version", version=f"flowsync {__version__}")
    parser.add_argument(
        "--dialect",
        choices=["orquesta", "mistral"],
        default=None,
        help="Workflow dialect (detected from the file when omitted)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override FLOWSYNC_LOG_LEVEL, e.g. DEBUG",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    tasks = subparsers.add_parser("tasks", help="Print tasks and transitions as JSON")
    tasks.add_argument("file", help="Workflow file ('-' for stdin)")

    ranges = subparsers.add_parser("ranges", help="Print the source span of every task")
    ranges.add_argument("file", help="Workflow file ('-' for stdin)")

    scan = subparsers.add_parser(
        "scan",
        help="Run the line scanner over 'chain:' blocks (works on invalid YAML)",
    )
    scan.add_argument("file", help="File to scan ('-' for stdin)")

    validate = subparsers.add_parser("validate", help="Check syntax, schema and references")
    validate.add_argument("file", help="Workflow file ('-' for stdin)")

    rename = subparsers.add_parser(
        "rename-task",
        help="Rename a task and every transition pointing at it",
    )
    rename.add_argument("file", help="Workflow file")
    rename.add_argument("old", help="Current task name")
    rename.add_argument("new", help="New task name")
    rename.add_argument(
        "--write",
        action="store_true",
        help="Rewrite the file in place instead of printing the result",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = FlowSyncSettings()
    except ValidationError as e:
        # Logging is not configured yet.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(args.log_level or settings.log_level, debug=settings.debug)

    try:
        if args.command == "tasks":
            model = _load(args, settings)
            _dump(
                {
                    "dialect": model.dialect,
                    "tasks": [task.to_json() for task in model.tasks],
                    "transitions": [tr.to_json() for tr in model.transitions],
                }
            )
            return 0

        if args.command == "ranges":
            model = _load(args, settings)
            spans = []
            for task in model.tasks:
                start, end = model.get_range_for_task(task)
                spans.append({"name": task.name, "start": start.to_json(), "end": end.to_json()})
            _dump(spans)
            return 0

        if args.command == "scan":
            scanner = ChainScanner()
            found = scanner.parse(_read(args.file))
            _dump(
                {
                    "tasks": [task.to_json() for task in found],
                    "rejected_rows": scanner.rejected_rows,
                }
            )
            return 0

        if args.command == "validate":
            try:
                model = _load(args, settings)
            except SchemaError as e:
                for error in e.errors:
                    print(f"{args.file}: {error}", file=sys.stderr)
                return 1
            except ModelError as e:
                print(f"{args.file}: {e}", file=sys.stderr)
                return 1
            print(
                f"{args.file}: OK ({model.dialect}, {len(model.tasks)} task(s), "
                f"{len(model.transitions)} transition(s))"
            )
            return 0

        if args.command == "rename-task":
            model = _load(args, settings)
            model.update_task(args.old, {"name": args.new})
            if args.write:
                Path(args.file).write_text(model.to_yaml(), encoding="utf-8")
                logger.info("Workflow rewritten", extra={"path": args.file, "task": args.new})
                print(f"Renamed {args.old} -> {args.new} in {args.file}")
            else:
                sys.stdout.write(model.to_yaml())
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except (MissingReferenceError, SchemaError) as e:
        logger.warning(str(e), extra={"command": args.command})
        print(str(e), file=sys.stderr)
        return 3

    except ModelError as e:
        print(f"{args.file}: {e}", file=sys.stderr)
        return 1

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
