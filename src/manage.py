"""Commerce operations CLI.

Schema management for SQL-backed providers and the periodic checkout sweep.

Usage:
    python src/manage.py setup-db          # Create all tables
    python src/manage.py drop-db           # Drop all tables
    python src/manage.py sweep-checkouts   # Abandon idle / expire stale checkouts
"""

import argparse
import sys


def setup_databases():
    from commerce.domain import commerce
    from commerce.utils.db import setup_db

    print("Initializing commerce domain...")
    commerce.init()
    touched = setup_db(commerce)
    if not touched:
        print("  No SQL providers configured; nothing to create.")
    for name in touched:
        print(f"  {name} schema ready.")
    print("Done.")


def drop_databases():
    from commerce.domain import commerce
    from commerce.utils.db import drop_db

    print("Initializing commerce domain...")
    commerce.init()
    touched = drop_db(commerce)
    for name in touched:
        print(f"  {name} schema dropped.")
    print("Done.")


def sweep_checkouts():
    from commerce.config import Settings
    from commerce.domain import commerce
    from commerce.wiring import build_container

    commerce.init()
    container = build_container(Settings.from_env())
    with commerce.domain_context():
        report = container.checkout_service.sweep()

    print(f"Abandoned: {len(report.abandoned)}")
    print(f"Expired:   {len(report.expired)}")
    print(f"Recovery emails sent: {report.recovery_sent}")
    if report.failed:
        print(f"Failed:    {len(report.failed)} ({', '.join(report.failed)})")
        sys.exit(1)


def main():
    parser = argparse.ArgumentParser(description="Commerce operations")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")
    subparsers.add_parser("sweep-checkouts", help="Abandon idle checkouts and expire stale ones")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_databases()
    elif args.command == "drop-db":
        drop_databases()
    elif args.command == "sweep-checkouts":
        sweep_checkouts()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
