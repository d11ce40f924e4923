#!/usr/bin/env python3
"""
Verify every ledger record and report tampered or drifting ones.

Recomputes each record's hash from its stored fields, compares it with the
stored hash and with the reader-side projection, and writes the result back
to the record's verification status.

Usage:
  python3 scripts/verify_ledger.py --database-url sqlite:///budget_ledger.db
  python3 scripts/verify_ledger.py --limit 500 --json

Exit code 1 when at least one record is tampered.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import yaml

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from budget_config import get_active_config  # noqa: E402
from budget_config.bridges import configure_logging_from, init_engine_from_config  # noqa: E402
from budget_kernel.db.engine import session_scope  # noqa: E402
from budget_kernel.domain.notifications import EventBuffer, LoggingNotifier  # noqa: E402
from budget_kernel.domain.verification import VerificationOutcome  # noqa: E402
from budget_kernel.services.verification_service import VerificationService  # noqa: E402


def _print_report(summary) -> None:
    print("Ledger verification")
    print("=" * 60)
    print(f"  records checked : {summary.total}")
    print(f"  verified        : {summary.verified}")
    print(f"  drift           : {summary.drift}")
    print(f"  TAMPERED        : {summary.failed}")
    flagged = [r for r in summary.results if r.outcome != VerificationOutcome.VERIFIED]
    if flagged:
        print()
        print(f"  {'record_id':<38}{'outcome':<10}location")
        for result in flagged:
            print(
                f"  {str(result.record_id):<38}{result.outcome.value:<10}"
                f"{result.mismatch_location}"
            )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Verify ledger record hashes.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--database-url", help="Overrides database.url from the config")
    parser.add_argument("--config", help="Path to a YAML configuration set")
    parser.add_argument("--limit", type=int, default=None, help="Verify at most N records")
    parser.add_argument("--json", action="store_true", help="Print the summary as JSON")
    args = parser.parse_args(argv)

    if args.limit is not None and args.limit <= 0:
        print("--limit must be positive", file=sys.stderr)
        return 2

    try:
        config = get_active_config(args.config)
    except (FileNotFoundError, KeyError, ValueError, yaml.YAMLError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    configure_logging_from(config)
    init_engine_from_config(config, args.database_url)

    events = EventBuffer()
    with session_scope() as session:
        summary = VerificationService(session, events=events).verify_all(args.limit)
    events.dispatch(LoggingNotifier())

    if args.json:
        print(json.dumps(summary.as_dict(), indent=2))
    else:
        _print_report(summary)

    return 1 if summary.failed else 0


if __name__ == "__main__":
    sys.exit(main())
