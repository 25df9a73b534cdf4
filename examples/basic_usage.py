#!/usr/bin/env python3
"""Programmatic workflow session example.

This demonstrates using the engine components directly:

* compile the workflow that applies to a corporate client in the US
* walk one client through it, supplying inputs step by step
* persist progress to `agent_state/clients/<client>.json`

The data tree defaults to `examples/data` next to this file.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Sequence

from workflow_engine.catalog import WorkflowCatalog
from workflow_engine.definitions.loader import DefinitionLoader
from workflow_engine.logging import configure_logging
from workflow_engine.runtime.session import WorkflowSession
from workflow_engine.state.store import ClientStateStore

_DATA_ROOT = Path(__file__).parent / "data"


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a client through a workflow (example).")
    parser.add_argument("--client", default="acme-corp", help="Client id")
    parser.add_argument("--risk-score", type=int, default=85, help="Risk score to submit")
    parser.add_argument("--data-root", type=Path, default=_DATA_ROOT)
    parser.add_argument("--state-dir", type=Path, default=Path("agent_state/clients"))
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    configure_logging("INFO")

    catalog = WorkflowCatalog(DefinitionLoader(args.data_root))
    machine = catalog.machine_for("corporate", "US")
    store = ClientStateStore(args.state_dir)

    session = WorkflowSession.start(machine, args.client, store)
    answers = [
        {"email": "ops@acme.example", "legal_name": "Acme Corp"},
        {"certificate_of_incorporation": "acme-coi.pdf", "risk_score": args.risk_score},
        {"source_of_funds": "operations"},
        {"confirmed": True},
    ]

    for partial in answers:
        if session.is_complete:
            break
        step = session.current_step
        assert step is not None
        applicable = {k: v for k, v in partial.items() if k in step.expected_output_fields}
        if not applicable:
            continue
        session.update_inputs(applicable)
        result = session.progress()
        print(f"{step.id} -> {result.current_step_id} ({result.reason})")

    print(f"Completed steps: {', '.join(session.completed_steps)}")
    print(f"Completed stages: {', '.join(session.completed_stages)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
