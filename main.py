#!/usr/bin/env python3
"""
AccessGate -- RFID door access control, maintenance command line.

Usage:
  python main.py generate-secret
  python main.py init-db
  python main.py create-user "Ada Lovelace" ada@example.com --role admin
  python main.py create-user "Sam Student" sam@example.com --password 's3cret-pass'
  python main.py create-user "Sam Student" sam@example.com --card ABC123
  python main.py set-password ada@example.com
  python main.py show-user ada@example.com
  python main.py show-card ABC123
  python main.py verify ABC123

Environment variables (see core/config.py):
  JWT_SECRET    Required by every command except generate-secret. At least 32 characters.
  DATABASE_URL  SQLAlchemy URL. Defaults to a SQLite file under store/.

Exit codes: 0 success, 1 the command failed, 2 configuration is invalid.
"""

import argparse
import getpass
import json
import logging
import sys
from dataclasses import asdict
from typing import Optional

from access.engine import AccessDecisionEngine
from access.store import AccessStore
from auth.models import User
from auth.store import UserStore
from auth.tokens import generate_secret, hash_password
from core.config import get_settings
from core.errors import AccessGateError, ConfigurationError
from store.database import init_schema, make_engine

logger = logging.getLogger("accessgate.cli")

_MIN_PASSWORD_LENGTH = 8
_MAX_PASSWORD_LENGTH = 72


def _open_engine():
    """Load settings and return an Engine with the schema in place."""
    settings = get_settings()
    engine = make_engine(settings.database_url)
    init_schema(engine)
    return engine


def _read_password(supplied: Optional[str]) -> Optional[str]:
    """Return the supplied password, or prompt twice for one. None if the input is unusable."""
    if supplied is None:
        supplied = getpass.getpass("  Password: ")
        if getpass.getpass("  Confirm:  ") != supplied:
            print("  [!] Passwords do not match.")
            return None
    if not _MIN_PASSWORD_LENGTH <= len(supplied) <= _MAX_PASSWORD_LENGTH:
        print(f"  [!] Password must be {_MIN_PASSWORD_LENGTH}-{_MAX_PASSWORD_LENGTH} characters.")
        return None
    return supplied


# ---------------------------------------------------------------------------
# Commands -- each returns the process exit code
# ---------------------------------------------------------------------------


def cmd_generate_secret(args: argparse.Namespace) -> int:
    print(f"JWT_SECRET={generate_secret()}")
    return 0


def cmd_init_db(args: argparse.Namespace) -> int:
    engine = _open_engine()
    print(f"  Schema ready at {engine.url.render_as_string(hide_password=True)}")
    engine.dispose()
    return 0


def cmd_create_user(args: argparse.Namespace) -> int:
    engine = _open_engine()
    store = UserStore(engine)
    try:
        if store.email_taken(args.email):
            print(f"  [!] A user with email '{args.email}' already exists.")
            return 1
        card_uid = args.card.strip() if args.card else None
        if card_uid and AccessStore(engine).get_card_by_uid(card_uid) is not None:
            print(f"  [!] Card '{card_uid}' is already registered.")
            return 1
        password = _read_password(args.password)
        if password is None:
            return 1
        user = User(
            name=args.name,
            email=args.email,
            password_hash=hash_password(password),
            role=args.role,
            status=args.status,
        )
        user_id = store.create_user_with_card(user, card_uid) if card_uid else store.create_user(user)
    finally:
        engine.dispose()
    print(f"  Created user {user_id}: {args.name} <{args.email}> role={args.role} status={args.status}")
    if card_uid:
        print(f"  Registered card {card_uid} to user {user_id}")
    return 0


def cmd_set_password(args: argparse.Namespace) -> int:
    engine = _open_engine()
    store = UserStore(engine)
    try:
        if store.get_by_email(args.email) is None:
            print(f"  [!] No user with email '{args.email}'.")
            return 1
        password = _read_password(args.password)
        if password is None:
            return 1
        store.set_password_hash(args.email, hash_password(password))
    finally:
        engine.dispose()
    print(f"  Password updated for {args.email}.")
    return 0


def cmd_show_user(args: argparse.Namespace) -> int:
    engine = _open_engine()
    try:
        user = UserStore(engine).get_by_email(args.email)
    finally:
        engine.dispose()
    if user is None:
        print(f"  [!] No user with email '{args.email}'.")
        return 1
    print(f"  id:      {user.id}")
    print(f"  name:    {user.name}")
    print(f"  email:   {user.email}")
    print(f"  role:    {user.role}")
    print(f"  status:  {user.status}")
    print(f"  created: {user.created_at}")
    return 0


def cmd_show_card(args: argparse.Namespace) -> int:
    card_uid = args.card_uid.strip()
    engine = _open_engine()
    store = AccessStore(engine)
    try:
        card = store.get_card_by_uid(card_uid)
        scans = store.count_access_logs(card_uid)
    finally:
        engine.dispose()
    if card is None:
        print(f"  [!] No card with UID '{card_uid}' ({scans} logged scans).")
        return 1
    print(f"  uid:        {card.card_uid}")
    print(f"  user id:    {card.user_id}")
    print(f"  active:     {'yes' if card.is_active else 'no'}")
    print(f"  registered: {card.registered_at}")
    print(f"  last used:  {card.last_used_at or 'never'}")
    print(f"  scans:      {scans}")
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    engine = _open_engine()
    try:
        decision = AccessDecisionEngine(AccessStore(engine)).verify(args.card_uid)
    finally:
        engine.dispose()
    print(json.dumps(asdict(decision), indent=2))
    return 0 if decision.access_granted else 1


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="accessgate",
        description="AccessGate -- RFID door access control maintenance tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--verbose", action="store_true", help="Log debug output to stderr")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("generate-secret", help="Print a fresh JWT_SECRET line")
    p.set_defaults(func=cmd_generate_secret)

    p = sub.add_parser("init-db", help="Create any missing database tables")
    p.set_defaults(func=cmd_init_db)

    p = sub.add_parser("create-user", help="Create a user account")
    p.add_argument("name", help="Display name")
    p.add_argument("email", help="Login email (unique)")
    p.add_argument("--role", default="student", help="Role (default: student; 'admin' for administrators)")
    p.add_argument("--status", default="active", help="Account status (default: active)")
    p.add_argument("--password", help="Password; prompted for when omitted")
    p.add_argument("--card", metavar="CARD_UID", help="Register an active card to the new user")
    p.set_defaults(func=cmd_create_user)

    p = sub.add_parser("set-password", help="Reset a user's password")
    p.add_argument("email")
    p.add_argument("--password", help="New password; prompted for when omitted")
    p.set_defaults(func=cmd_set_password)

    p = sub.add_parser("show-user", help="Show a user's id, role and status")
    p.add_argument("email")
    p.set_defaults(func=cmd_show_user)

    p = sub.add_parser("show-card", help="Show a card's owner, state and scan count")
    p.add_argument("card_uid", metavar="CARD_UID")
    p.set_defaults(func=cmd_show_card)

    p = sub.add_parser("verify", help="Run one access decision and print it as JSON")
    p.add_argument("card_uid", metavar="CARD_UID")
    p.set_defaults(func=cmd_verify)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.command is None:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except ConfigurationError as exc:
        print(f"  [!] Configuration error: {exc.message}")
        return 2
    except AccessGateError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"  [!] {exc.message}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
