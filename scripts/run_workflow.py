from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from enrichment_orchestrator.config.settings import get_settings
from enrichment_orchestrator.errors import RollbackError
from enrichment_orchestrator.storage.base import RecordStore
from enrichment_orchestrator.storage.memory import InMemoryRecordStore
from enrichment_orchestrator.storage.postgres import PostgresRecordStore
from enrichment_orchestrator.workflows.deps import build_backend, build_dependencies
from enrichment_orchestrator.workflows.registry import build_workflow, list_workflows


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run one enrichment workflow and print the run record as JSON."
    )
    parser.add_argument(
        "workflow",
        nargs="?",
        help="Workflow name (see --list).",
    )
    parser.add_argument(
        "--input",
        type=Path,
        default=None,
        help="Path to a JSON file holding the workflow input.",
    )
    parser.add_argument(
        "--input-json",
        default=None,
        help="Workflow input as an inline JSON object.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run every step but skip all writes.",
    )
    parser.add_argument(
        "--estimate-only",
        action="store_true",
        help="Validate and print the cost estimate without running.",
    )
    parser.add_argument(
        "--memory-store",
        action="store_true",
        help="Use an in-process record store instead of Postgres.",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List registered workflows and exit.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Root logging level.",
    )
    return parser.parse_args()


def _load_input(args: argparse.Namespace) -> dict[str, Any]:
    if args.input is not None and args.input_json is not None:
        raise RuntimeError("Pass either --input or --input-json, not both.")
    if args.input is not None:
        if not args.input.exists():
            raise RuntimeError(f"Input file not found: {args.input}")
        raw = args.input.read_text(encoding="utf-8")
    elif args.input_json is not None:
        raw = args.input_json
    else:
        return {}
    payload = json.loads(raw)
    if not isinstance(payload, dict):
        raise RuntimeError("Workflow input must be a JSON object.")
    return payload


def _build_store(args: argparse.Namespace) -> RecordStore:
    if args.memory_store:
        store: RecordStore = InMemoryRecordStore()
    else:
        database_url = get_settings().resolved_database_url()
        if not database_url:
            raise RuntimeError(
                "ENRICHMENT_DATABASE_URL (or DATABASE_URL) is required without --memory-store."
            )
        store = PostgresRecordStore(database_url)
    store.migrate()
    return store


def main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    if args.list:
        print(json.dumps(list_workflows(), indent=2))
        return 0
    if not args.workflow:
        raise RuntimeError("A workflow name is required (see --list).")

    settings = get_settings()
    payload = _load_input(args)
    deps = build_dependencies(
        store=_build_store(args),
        backend=build_backend(settings),
        adjudication_backend=build_backend(settings, model=settings.adjudication_model),
        settings=settings,
    )
    workflow = build_workflow(args.workflow, deps)

    validation = workflow.validate(payload)
    if not validation.valid:
        print(json.dumps({"valid": False, "errors": validation.errors}, indent=2))
        return 2

    if args.estimate_only:
        estimate = workflow.estimate_cost(payload)
        print(
            json.dumps(
                {"estimate": estimate.model_dump(), "ceiling_usd": workflow.ceiling_usd},
                indent=2,
            )
        )
        return 0

    try:
        run = workflow.run(payload, dry_run=args.dry_run or None)
    except RollbackError as exc:
        if exc.run is not None:
            print(exc.run.model_dump_json(indent=2))
        print(f"Rollback failed: {exc}", file=sys.stderr)
        return 1

    print(run.model_dump_json(indent=2))
    return 0 if run.success else 1


if __name__ == "__main__":
    sys.exit(main())
