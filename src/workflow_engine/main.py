"""CLI entrypoint for the workflow engine.

Lints the definition tree, prints compiled machines and inspects stored client
state. Settings come from the environment (see ``EngineSettings``).
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

from pydantic import ValidationError

from workflow_engine import __version__
from workflow_engine.catalog import WorkflowCatalog
from workflow_engine.config import EngineSettings
from workflow_engine.definitions.loader import DefinitionLoader
from workflow_engine.errors import NoApplicableWorkflowError, WorkflowEngineError
from workflow_engine.logging import configure_logging
from workflow_engine.state.store import ClientStateStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workflow-engine",
        description="Compile and inspect YAML-defined client workflows",
    )
    parser.add_argument("--version", action="version", version=f"workflow-engine {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("lint", help="Compile every workflow and report errors and warnings")
    subparsers.add_parser("list", help="List workflows and what they apply to")

    compile_cmd = subparsers.add_parser(
        "compile",
        help="Print the compiled machine selected for a category and region as JSON",
    )
    compile_cmd.add_argument("--category", required=True, help="Entity category, e.g. 'corporate'")
    compile_cmd.add_argument("--region", required=True, help="Region code, e.g. 'US'")

    state = subparsers.add_parser("state", help="Inspect stored client state")
    state.add_argument("action", choices=["show", "list", "delete"])
    state.add_argument("--client", default=None, help="Client id (required for show/delete)")

    return parser


def _lint(catalog: WorkflowCatalog) -> int:
    report = catalog.validate()
    for message in report["errors"]:
        print(f"ERROR: {message}")
    for message in report["warnings"]:
        print(f"WARNING: {message}")
    if report["errors"]:
        return 1
    print(f"OK: {len(catalog.loader.list_workflows())} workflow(s)")
    return 0


def _list(loader: DefinitionLoader) -> int:
    for path in loader.list_workflows():
        workflow = loader.load_workflow(path)
        applies = workflow.applies_to
        category = applies.entity_category if applies is not None else "*"
        regions = ",".join(applies.regions) if applies is not None and applies.regions else "*"
        print(f"{workflow.id}\tv{workflow.version}\t{category}\t{regions}\t{path.name}")
    return 0


def _state(store: ClientStateStore, action: str, client_id: str | None) -> int:
    if action == "list":
        for stored in store.list():
            print(stored)
        return 0

    if not client_id:
        print(f"state {action} requires --client", file=sys.stderr)
        return 2

    if action == "show":
        record = store.load(client_id)
        if record is None:
            print(f"No state for client {client_id!r}", file=sys.stderr)
            return 1
        print(json.dumps(record.to_json(), indent=2, ensure_ascii=False))
        return 0

    if store.delete(client_id):
        print(f"Deleted state for client {client_id!r}")
    else:
        print(f"No state for client {client_id!r}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = EngineSettings()
    except ValidationError as e:
        # Logging isn't configured yet.
        print("Configuration error (check your environment or .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    try:
        if args.command == "lint":
            return _lint(WorkflowCatalog.from_settings(settings))

        if args.command == "list":
            return _list(DefinitionLoader.from_settings(settings))

        if args.command == "compile":
            catalog = WorkflowCatalog.from_settings(settings)
            print(json.dumps(catalog.query(args.category, args.region), indent=2, ensure_ascii=False))
            return 0

        if args.command == "state":
            return _state(ClientStateStore.from_settings(settings), args.action, args.client)

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except NoApplicableWorkflowError as e:
        print(str(e), file=sys.stderr)
        return 1

    except (WorkflowEngineError, ValueError) as e:
        logger.error("Command failed", extra={"command": args.command, "error": str(e)})
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
