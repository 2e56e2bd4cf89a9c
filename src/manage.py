"""Dropship pipeline management CLI.

Creates and drops the database schema and runs the cron jobs by hand.

Usage:
    python src/manage.py setup-db                      # Create all tables
    python src/manage.py drop-db                       # Drop all tables
    python src/manage.py sweep                         # Run one sweep
    python src/manage.py source "desk lamp" --max-cost-cents 2500 --max-items 5
"""

import argparse
import json
import sys


def _domain():
    from dropship.domain import dropship

    print("Initializing dropship domain...")
    dropship.init()
    return dropship


def setup_database():
    from dropship.utils.db import setup_db

    domain = _domain()
    print("Creating dropship database schema...")
    setup_db(domain)
    print("Done.")


def drop_database():
    from dropship.utils.db import drop_db

    domain = _domain()
    print("Dropping dropship database schema...")
    drop_db(domain)
    print("Done.")


def run_sweep() -> bool:
    from dropship.container import build_adapters
    from dropship.sweep.sweep import SweepOrchestrator

    domain = _domain()
    with domain.domain_context():
        result = SweepOrchestrator(build_adapters()).run()
    print(json.dumps(result, indent=2, default=str))
    return result["ok"]


def run_sourcing(keyword, max_cost_cents, max_items):
    from dropship.container import build_adapters
    from dropship.sourcing.sourcing import SourcingService

    domain = _domain()
    with domain.domain_context():
        report = SourcingService(build_adapters()).source(keyword, max_cost_cents, max_items)
    print(json.dumps(report.to_dict(), indent=2))


def main():
    parser = argparse.ArgumentParser(description="Dropship pipeline management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    subparsers.add_parser("sweep", help="Run the poll / fulfillment retry / refund sweep once")

    source_parser = subparsers.add_parser("source", help="Source and publish a sale for a keyword")
    source_parser.add_argument("keyword")
    source_parser.add_argument("--max-cost-cents", type=int, required=True)
    source_parser.add_argument("--max-items", type=int, default=10)

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    elif args.command == "sweep":
        if not run_sweep():
            sys.exit(1)
    elif args.command == "source":
        run_sourcing(args.keyword, args.max_cost_cents, args.max_items)
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
