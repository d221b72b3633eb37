#!/usr/bin/env python3
"""
User Accounts API -- command-line entry point.

Usage:
  python main.py serve [--host 127.0.0.1] [--port 8000] [--reload]
  python main.py create-user alice alice@example.com --first-name Alice --last-name Smith
  python main.py purge-revoked

Environment variables (see core/config.py for the full list):
  SECRET_KEY     Required. Token signing secret, at least 32 characters.
  DATABASE_URL   SQLAlchemy URL (default: sqlite:///accounts.db).

create-user prompts for the password unless --password is given. It is the
way to seed the first account when SELF_REGISTRATION_ENABLED=false.
"""

import argparse
import getpass
import sys
from typing import Optional

from auth.store import UserStore
from core.config import get_settings
from core.errors import AccountsError
from users.policy import ValidationPolicy
from users.service import UserService


def _create_user(args: argparse.Namespace) -> int:
    settings = get_settings()
    password = args.password or getpass.getpass("Password: ")
    store = UserStore(settings.database_url)
    try:
        service = UserService(store, ValidationPolicy.from_settings(settings), bcrypt_rounds=settings.bcrypt_rounds)
        user = service.create_user(
            username=args.username,
            password=password,
            email=args.email,
            first_name=args.first_name,
            last_name=args.last_name,
            age=args.age,
        )
    except AccountsError as exc:
        print(f"  [!] Could not create user: {exc}")
        return 1
    finally:
        store.close()
    print(f"  Created user {user.username!r} (id={user.id}).")
    return 0


def _purge_revoked(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = UserStore(settings.database_url)
    try:
        removed = store.purge_expired_revoked_tokens()
    except AccountsError as exc:
        print(f"  [!] Purge failed: {exc}")
        return 1
    finally:
        store.close()
    print(f"  Removed {removed} expired revoked token(s).")
    return 0


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    # Fail before binding the port if SECRET_KEY is missing.
    get_settings()
    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="user-accounts",
        description="User account management API with bearer-token authentication.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  SECRET_KEY=... python main.py serve --reload
  SECRET_KEY=... python main.py create-user alice alice@example.com --first-name Alice --last-name Smith
  SECRET_KEY=... python main.py purge-revoked
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = sub.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    serve.set_defaults(func=_serve)

    create = sub.add_parser("create-user", help="Register a user directly in the database")
    create.add_argument("username")
    create.add_argument("email")
    create.add_argument("--first-name", required=True)
    create.add_argument("--last-name", required=True)
    create.add_argument("--age", type=int, default=None)
    create.add_argument("--password", default=None, help="Password (prompted for when omitted)")
    create.set_defaults(func=_create_user)

    purge = sub.add_parser("purge-revoked", help="Delete revoked tokens that have already expired")
    purge.set_defaults(func=_purge_revoked)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 2
    try:
        return args.func(args)
    except ValueError as exc:
        # Settings validation (missing SECRET_KEY) surfaces here.
        print(f"  [!] Configuration error: {exc}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
