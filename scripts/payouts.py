#!/usr/bin/env python3
"""
Operator CLI for instructor payouts.

Usage:
    python3 scripts/payouts.py [--database-url URL] [--config PATH] <command> [options]

Commands:
    init-db                 Create tables (development databases)
    trigger                 Run the settlement pipeline now
    summary                 Print the eligibility summary
    config                  Print the active configuration snapshot
    health                  Exit 0 when the store answers, 1 otherwise
    serve                   Run the scheduler in the foreground until Ctrl-C
    stats                   Affiliate payout statistics
    mark-paid ID [ID ...]   Confirm affiliate payouts as paid
    cancel --reason R ID .. Cancel affiliate payouts
    export-csv --out FILE   Export affiliate payouts as CSV

Examples:
    python3 scripts/payouts.py --database-url sqlite:///payouts.db init-db
    python3 scripts/payouts.py trigger
    python3 scripts/payouts.py cancel --reason "fraudulent referral" 3f2c...
"""

from __future__ import annotations

import argparse
import json
import os
import signal
import sys
import threading
from pathlib import Path
from uuid import UUID

from payout_batch.orchestrator import PayoutOrchestrator
from payout_config import get_active_config
from payout_kernel.db.engine import (
    create_tables,
    get_session_factory,
    init_engine_from_url,
    transaction_scope,
)
from payout_kernel.domain.types import BulkPayoutAction
from payout_kernel.services.affiliate_payout_admin_service import (
    AffiliatePayoutAdminService,
)


DEFAULT_DB_URL = os.environ.get("PAYOUT_DATABASE_URL", "sqlite:///payouts.db")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Instructor payout operations.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--database-url", default=DEFAULT_DB_URL)
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Payout settings YAML (default: payout_config/defaults.yaml).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db")
    sub.add_parser("trigger")
    sub.add_parser("summary")
    sub.add_parser("config")
    sub.add_parser("health")
    sub.add_parser("serve")
    sub.add_parser("stats")

    mark = sub.add_parser("mark-paid")
    mark.add_argument("payout_ids", nargs="+", type=UUID)

    cancel = sub.add_parser("cancel")
    cancel.add_argument("--reason", required=True)
    cancel.add_argument("payout_ids", nargs="+", type=UUID)

    export = sub.add_parser("export-csv")
    export.add_argument("--out", type=Path, required=True)

    return parser.parse_args(argv)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def _serve(orchestrator: PayoutOrchestrator) -> int:
    scheduler = orchestrator.create_scheduler()
    stop = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop.set())
    signal.signal(signal.SIGTERM, lambda *_: stop.set())

    scheduler.start()
    print("Scheduler running. Next runs:")
    for name, at in scheduler.next_run_times().items():
        print(f"  {name:<15} {at}")
    stop.wait()
    scheduler.stop()
    return 0


def _bulk(session_factory, ids, action, reason=None) -> int:
    with transaction_scope(session_factory) as session:
        result = AffiliatePayoutAdminService(session).bulk_action(ids, action, reason)
    print(result.summary)
    for payout_id, failure in result.failure_reasons.items():
        print(f"  {payout_id}: {failure}")
    return 0 if result.total_failed == 0 else 1


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = get_active_config(args.config)
    init_engine_from_url(args.database_url)
    session_factory = get_session_factory()

    if args.command == "init-db":
        create_tables()
        print("Tables created.")
        return 0

    if args.command in ("stats", "mark-paid", "cancel", "export-csv"):
        if args.command == "mark-paid":
            return _bulk(session_factory, args.payout_ids, BulkPayoutAction.MARK_PAID)
        if args.command == "cancel":
            return _bulk(
                session_factory, args.payout_ids, BulkPayoutAction.CANCEL, args.reason,
            )
        with transaction_scope(session_factory) as session:
            admin = AffiliatePayoutAdminService(session)
            if args.command == "stats":
                _print_json(vars(admin.get_statistics()))
            else:
                args.out.write_bytes(admin.export_csv())
                print(f"Wrote {args.out}")
        return 0

    orchestrator = PayoutOrchestrator(session_factory, settings)
    try:
        if args.command == "trigger":
            response = orchestrator.trigger_now()
            print(response.message)
            if response.run is not None:
                _print_json(response.run.to_dict())
            return 0 if response.success else 1
        if args.command == "summary":
            _print_json(orchestrator.get_eligibility_summary().to_dict())
            return 0
        if args.command == "config":
            _print_json(orchestrator.get_configuration())
            return 0
        if args.command == "health":
            healthy = orchestrator.is_healthy()
            print("healthy" if healthy else "unhealthy")
            return 0 if healthy else 1
        if args.command == "serve":
            return _serve(orchestrator)
    finally:
        orchestrator.close()

    return 2


if __name__ == "__main__":
    sys.exit(main())
