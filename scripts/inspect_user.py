"""Utility to inspect a user record and its sessions in the database.

Run with:

    python -m scripts.inspect_user --email <address>

Requires MONGODB_URI (or DATABASE_HOST/DATABASE_USERNAME/DATABASE_PASSWORD).
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, Dict

from dotenv import load_dotenv


def get_database():
    from botdesk.db import get_database_client  # Lazy import to ensure env is loaded

    return get_database_client()


def dump(obj: Dict[str, Any]) -> str:
    return json.dumps(obj, indent=2, sort_keys=True, default=str)


def inspect_user(email: str) -> int:
    db = get_database()
    user = db.get_user_by_email(email)
    if not user:
        print("No user found", file=sys.stderr)
        return 1

    user = {key: value for key, value in user.items() if key != "password_hash"}
    print("User record:\n" + dump(user))

    sessions = list(db.db.access_tokens.find({"user": user["_id"], "consumed": False}, projection={"token": 0}))
    print(f"\nOpen sessions: {len(sessions)}")
    for session in sessions:
        print(dump(session))

    bots = db.list_bots(user["_id"])
    print(f"\nBots: {len(bots)}")
    for bot in bots:
        print(dump(bot))

    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Inspect a user from the database")
    parser.add_argument("--email", required=True, help="User email address")
    args = parser.parse_args()

    load_dotenv()
    return inspect_user(args.email)


if __name__ == "__main__":
    raise SystemExit(main())
