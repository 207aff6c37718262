#!/usr/bin/env python3
import argparse
import sys
from pathlib import Path

REPO_BACKEND = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_BACKEND))

from app.services.account_directory import AccountDirectory  # noqa: E402
from app.services.database import Database, default_db  # noqa: E402
from app.services.errors import StoreError  # noqa: E402


def main() -> int:
    parser = argparse.ArgumentParser(description="Create a marketplace administrator account.")
    parser.add_argument("--name", required=True)
    parser.add_argument("--email", required=True)
    parser.add_argument("--db", type=str, default=default_db, help="Path to the marketplace SQLite database.")
    args = parser.parse_args()

    directory = AccountDirectory(Database(db_path=args.db))
    try:
        admin = directory.create(name=args.name, email=args.email, role="admin")
    except StoreError as exc:
        print(f"Could not create admin: {exc}")
        return 1
    print(f"Created admin {admin.id} <{admin.email}>")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
