#!/usr/bin/env python3
"""
tenantguard -- account administration CLI for the authentication engine.

Usage:
  python main.py create-user jdoe jdoe@example.org --password secret
  python main.py create-user jdoe jdoe@example.org --generate-password
  python main.py grant-role jdoe manager --context 3
  python main.py check jdoe
  python main.py encrypt jdoe secret --algorithm sha1
  python main.py generate-password --length 12
  python main.py suggest-username Jane Doe
  python main.py reset-hash 42
  python main.py purge-sessions

Environment variables (or .env):
  DATABASE_URL      SQLAlchemy URL of the account database (default: ./tenantguard.db)
  ENCRYPTION        Credential digest: sha1 (default), md5 or bcrypt
  SESSION_LIFETIME  Remember-me lifetime in days (default 30, 0 disables)
  SESSION_IDLE_TIMEOUT  Minutes an unremembered session may sit unused (default 120)
"""

from __future__ import annotations

import argparse
import getpass
import logging
import sys

from sqlalchemy.exc import IntegrityError

from auth.hashing import ALGORITHMS
from auth.models import (
    CONTEXT_SITE,
    ROLE_ID_ASSISTANT,
    ROLE_ID_AUTHOR,
    ROLE_ID_MANAGER,
    ROLE_ID_READER,
    ROLE_ID_REVIEWER,
    ROLE_ID_SITE_ADMIN,
    ROLE_ID_SUB_EDITOR,
)
from auth.service import AuthService
from auth.utils import generate_password
from core.config import Settings, configure_logging, get_settings

logger = logging.getLogger("tenantguard.cli")

ROLE_NAMES: dict[str, int] = {
    "site_admin": ROLE_ID_SITE_ADMIN,
    "manager": ROLE_ID_MANAGER,
    "sub_editor": ROLE_ID_SUB_EDITOR,
    "reviewer": ROLE_ID_REVIEWER,
    "assistant": ROLE_ID_ASSISTANT,
    "author": ROLE_ID_AUTHOR,
    "reader": ROLE_ID_READER,
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tenantguard",
        description="Account administration for the tenantguard authentication engine.",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p = sub.add_parser("create-user", help="Create a local or externally authenticated account")
    p.add_argument("username")
    p.add_argument("email")
    group = p.add_mutually_exclusive_group()
    group.add_argument("--password", help="Initial password (prompted for if omitted)")
    group.add_argument("--generate-password", action="store_true", help="Generate and print a temporary password")
    p.add_argument("--auth-source", type=int, metavar="ID", help="Delegate login to this external auth source")

    p = sub.add_parser("grant-role", help="Grant a role to a user in a context")
    p.add_argument("username")
    p.add_argument("role", choices=sorted(ROLE_NAMES))
    p.add_argument("--context", type=int, default=CONTEXT_SITE, help="Context id (default: 0, the site)")

    p = sub.add_parser("check", help="Check a user's credentials")
    p.add_argument("username")
    p.add_argument("--password", help="Password to check (prompted for if omitted)")

    p = sub.add_parser("encrypt", help="Print the stored credential form for a username/password")
    p.add_argument("username")
    p.add_argument("password")
    p.add_argument("--algorithm", choices=ALGORITHMS, default=None, help="Digest (default: ENCRYPTION setting)")

    p = sub.add_parser("generate-password", help="Print a random temporary password")
    p.add_argument("--length", type=int, default=8)

    p = sub.add_parser("suggest-username", help="Suggest a free username")
    p.add_argument("first_name")
    p.add_argument("last_name")

    p = sub.add_parser("reset-hash", help="Print the password-reset hash for a user id")
    p.add_argument("user_id", type=int)

    sub.add_parser("purge-sessions", help="Delete expired sessions")
    return parser


def _read_password(value: str | None) -> str:
    return value if value is not None else getpass.getpass("Password: ")


def main(argv: list[str] | None = None, settings: Settings | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    settings = settings or get_settings()
    configure_logging(settings.log_level)

    if args.command == "generate-password":
        print(generate_password(args.length))
        return 0

    service = AuthService.from_settings(settings)
    try:
        return _run(service, args)
    finally:
        service.close()


def _run(service: AuthService, args: argparse.Namespace) -> int:
    if args.command == "create-user":
        password = None
        if args.generate_password:
            password = service.generate_password()
        elif args.auth_source is None:
            password = _read_password(args.password)
        try:
            user = service.create_user(args.username, args.email, password, auth_source_id=args.auth_source)
        except IntegrityError:
            print(f"  [!] Username '{args.username}' or email '{args.email}' is already registered.")
            return 1
        print(f"Created user {user.username} (id {user.id}).")
        if args.generate_password:
            print(f"Temporary password: {password}")
        return 0

    if args.command == "grant-role":
        user = service.user_store.get_by_username(args.username, include_disabled=True)
        if user is None:
            print(f"  [!] No such user '{args.username}'.")
            return 1
        if service.role_store.grant_role(args.context, user.id, ROLE_NAMES[args.role]):
            print(f"Granted {args.role} to {user.username} in context {args.context}.")
        else:
            print(f"{user.username} already holds {args.role} in context {args.context}.")
        return 0

    if args.command == "check":
        if service.check_credentials(args.username, _read_password(args.password)):
            print("Credentials are valid.")
            return 0
        print("  [!] Invalid credentials.")
        return 1

    if args.command == "encrypt":
        print(service.encrypt_credentials(args.username, args.password, encryption=args.algorithm))
        return 0

    if args.command == "suggest-username":
        print(service.suggest_username(args.first_name, args.last_name))
        return 0

    if args.command == "reset-hash":
        reset_hash = service.generate_password_reset_hash(args.user_id)
        if reset_hash is None:
            print(f"  [!] No user with id {args.user_id}.")
            return 1
        print(reset_hash)
        return 0

    if args.command == "purge-sessions":
        removed = service.session_store.purge_expired()
        logger.info("Purged %d expired session(s)", removed)
        print(f"Removed {removed} expired session(s).")
        return 0

    return 1


if __name__ == "__main__":
    sys.exit(main())
