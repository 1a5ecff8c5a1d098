"""
Run one maintenance pass from the command line.

Usage:
    worktime-maintenance --scope full
    worktime-maintenance --scope employee --id 7c0e...   # one employee
    worktime-maintenance --scope project --id 51ab... --json

Exit codes: 0 when the pass finished with nothing left over, 1 when a
violation stayed unresolved or a unit rolled back, 2 on usage errors.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Callable, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from worktime.core.config import get_settings
from worktime.core.logging import setup_logging
from worktime.db.session import SessionLocal
from worktime.services.maintenance import MaintenancePassResult, MaintenanceScope, RecomputeOrchestrator
from worktime.services.policy import EnginePolicy

EXIT_USAGE = 2


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="worktime-maintenance",
        description="Re-derive rates, re-price time entries and repair staffing.",
    )
    parser.add_argument("--scope", choices=["full", "employee", "project"], default="full")
    parser.add_argument("--id", dest="target_id", type=UUID, help="Employee or project id for a scoped pass")
    parser.add_argument("--json", action="store_true", help="Print the pass result as JSON")
    return parser.parse_args(argv)


def _print_summary(result: MaintenancePassResult) -> None:
    print(f"Maintenance pass ({result.scope.label()})")
    print(f"  rates updated:  {len(result.rates_updated)}")
    print(f"  costs updated:  {len(result.costs_updated)}")
    print(f"  repairs:        {len(result.applied)}")
    print(f"  skipped rows:   {len(result.skipped)}")
    print(f"  violations:     {len(result.violations)}")
    for item in result.unresolved:
        print(f"  UNRESOLVED {item.violation.describe()}: {item.reason}")
    for unit in result.failed_units:
        print(f"  FAILED {unit.unit} [{unit.code}]: {unit.reason}")
    print("OK" if result.succeeded else "INCOMPLETE")


def main(
    argv: Sequence[str] | None = None,
    *,
    session_factory: Callable[[], Session] | None = None,
) -> int:
    args = _parse_args(argv)
    if args.scope != "full" and args.target_id is None:
        print(f"ERROR: --scope {args.scope} requires --id", file=sys.stderr)
        return EXIT_USAGE

    settings = get_settings()
    # stdout carries the summary only.
    setup_logging(settings.log_level, json_output=settings.log_json, stream=sys.stderr)
    policy = EnginePolicy.from_settings(settings)
    scope = MaintenanceScope(kind=args.scope, target_id=args.target_id)

    session = (session_factory or SessionLocal)()
    try:
        result = RecomputeOrchestrator(session, policy).run_maintenance_pass(scope)
    finally:
        session.close()

    if args.json:
        print(json.dumps(result.as_dict(), indent=2))
    else:
        _print_summary(result)
    return result.exit_code


if __name__ == "__main__":
    sys.exit(main())
