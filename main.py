#!/usr/bin/env python3
"""
GymCoach -- operator command line.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 3000 --reload
  python main.py accounts
  python main.py accounts --limit 50

Environment variables:
  SECRET_KEY      Required. Session token signing key (>= 32 chars, not a placeholder).
  DATABASE_URL    Optional. SQLAlchemy URL of the account database.
  GEMINI_API_KEY  Optional. Enables /chat, /diet and /workout.
"""

import argparse
import sys

from auth.store import DEFAULT_DB_URL, AccountStore
from core.config import get_settings
from core.errors import ConfigurationError


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    # Fail here with a readable message rather than inside the uvicorn worker.
    get_settings()
    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def _cmd_accounts(args: argparse.Namespace) -> int:
    """Print the newest accounts, one per line. Never prints hashes."""
    settings = get_settings()
    store = AccountStore(db_url=settings.database_url or DEFAULT_DB_URL, bcrypt_rounds=settings.bcrypt_rounds)
    try:
        accounts = store.list_recent(limit=args.limit)
    finally:
        store.close()

    print(f"Accounts (latest {args.limit}):")
    if not accounts:
        print("  No accounts found.")
        return 0
    for a in accounts:
        print(f"  {a.id} | {a.email} | {a.display_name} | created: {a.created_at}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gymcoach", description="GymCoach backend")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the API server")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=3000)
    serve.add_argument("--reload", action="store_true", help="Auto-reload on code changes (development)")
    serve.set_defaults(func=_cmd_serve)

    accounts = sub.add_parser("accounts", help="List the most recently created accounts")
    accounts.add_argument("--limit", type=int, default=20)
    accounts.set_defaults(func=_cmd_accounts)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except ConfigurationError as e:
        print(f"  [!] Configuration error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
