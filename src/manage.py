"""Settlement database management CLI.

Creates and drops the settlement tables through the SQLAlchemy metadata of
the domain's relational providers.

Usage:
    python src/manage.py setup-db   # Create all tables
    python src/manage.py drop-db    # Drop all tables
"""

import argparse
import sys


def setup_database():
    from settlement.domain import settlement
    from settlement.utils.db import setup_db

    print("Initializing settlement domain...")
    settlement.init()
    print("Creating settlement database schema...")
    setup_db(settlement)
    print("Done.")


def drop_database():
    from settlement.domain import settlement
    from settlement.utils.db import drop_db

    print("Initializing settlement domain...")
    settlement.init()
    print("Dropping settlement database schema...")
    drop_db(settlement)
    print("Done.")


def main():
    parser = argparse.ArgumentParser(description="Settlement database management")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    args = parser.parse_args()

    if args.command == "setup-db":
        setup_database()
    elif args.command == "drop-db":
        drop_database()
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
