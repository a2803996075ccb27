"""Seed the reference collections (models, configurations, prompts, languages).

Run with:

    python -m scripts.seed_reference_data

Requires MONGODB_URI (or DATABASE_HOST/DATABASE_USERNAME/DATABASE_PASSWORD).
"""

from __future__ import annotations

import argparse
import json

from dotenv import load_dotenv


def seed(*, with_indexes: bool) -> int:
    from botdesk.config import reload_config  # Lazy import to ensure env is loaded
    from botdesk.db import get_database_client
    from botdesk.db.reference_data import seed_reference_data

    reload_config()
    db = get_database_client()
    if with_indexes:
        db.ensure_indexes()
    counts = seed_reference_data(db)
    print(json.dumps(counts, indent=2, sort_keys=True))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed reference data into the database")
    parser.add_argument("--skip-indexes", action="store_true", help="Do not create collection indexes")
    args = parser.parse_args()

    load_dotenv()
    return seed(with_indexes=not args.skip_indexes)


if __name__ == "__main__":
    raise SystemExit(main())
