#!/usr/bin/env python3
import argparse
import json
import sys
from pathlib import Path
from typing import Dict

REPO_BACKEND = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_BACKEND))

from app.services.account_directory import AccountDirectory  # noqa: E402
from app.services.database import Database, default_db  # noqa: E402
from app.services.rating_aggregator import RatingAggregator  # noqa: E402


def repair(db_path: str) -> Dict[str, float]:
    db = Database(db_path=db_path)
    aggregator = RatingAggregator(db, AccountDirectory(db))
    return aggregator.repair_all_ratings()


def main() -> int:
    parser = argparse.ArgumentParser(description="Recompute every veterinarian rating aggregate from its ratings.")
    parser.add_argument("--db", type=str, default=default_db, help="Path to the marketplace SQLite database.")
    parser.add_argument("--json", action="store_true", help="Print the recomputed aggregates as JSON.")
    args = parser.parse_args()

    repaired = repair(args.db)
    if args.json:
        print(json.dumps(repaired, indent=2, sort_keys=True))
    else:
        print(f"Recomputed {len(repaired)} provider aggregates")
        for provider_id, rating in sorted(repaired.items()):
            print(f"- {provider_id}: {rating:.1f}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
