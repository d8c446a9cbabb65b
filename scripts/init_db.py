#!/usr/bin/env python3
"""Create the salonbook tables, optionally dropping them first and seeding the catalog."""
import argparse
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from salonbook import create_app
from salonbook.extensions import db


def init_database(drop: bool = False) -> None:
    app = create_app()
    with app.app_context():
        if drop:
            db.drop_all()
            print("🗑️  Dropped existing tables")
        db.create_all()
        print(f"✅ Tables ready: {', '.join(sorted(db.metadata.tables))}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the salonbook database tables.")
    parser.add_argument("--drop", action="store_true", help="Drop every table before creating it again")
    parser.add_argument("--seed", action="store_true", help="Load the sample catalog afterwards")
    args = parser.parse_args()

    init_database(drop=args.drop)
    if args.seed:
        from seed_catalog import seed_catalog

        seed_catalog()


if __name__ == "__main__":
    main()
