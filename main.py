#!/usr/bin/env python3
"""
CivicWatch account administration CLI.

Bootstraps the accounts the HTTP API cannot create on its own: the first
administrator, and organizations created or approved out-of-band.

Usage:
  python main.py create-admin root --name "Root Admin"
  python main.py create-org "City Water Dept" water@city.example --type utility
  python main.py create-org "Parks Office" parks@city.example --pending
  python main.py set-org-status parks@city.example approved
  python main.py set-org-status parks@city.example --inactive

Passwords are always read interactively (getpass), never from argv.

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the CivicWatch database (default: sqlite:///civicwatch.db)
  SECRET_KEY    Required unless DEBUG=true; see core/config.py
"""

import argparse
import getpass
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.models import Role
from auth.roles import ORG_APPROVED, ORG_PENDING, ORG_STATUSES
from auth.store import AuthStore
from auth.tokens import hash_password
from core.config import get_settings

_MIN_PASSWORD_LENGTH = 8


def _read_password() -> Optional[str]:
    """Prompt twice for a password. Returns None if the entries are unusable."""
    password = getpass.getpass("  Password: ")
    if len(password) < _MIN_PASSWORD_LENGTH:
        print(f"  [!] Password must be at least {_MIN_PASSWORD_LENGTH} characters.")
        return None
    if getpass.getpass("  Confirm password: ") != password:
        print("  [!] Passwords do not match.")
        return None
    return password


def _create_admin(store: AuthStore, args: argparse.Namespace) -> int:
    password = _read_password()
    if password is None:
        return 1
    try:
        admin_id = store.create_admin(
            username=args.username,
            name=args.name or args.username,
            password_hash=hash_password(password),
            email=args.email,
        )
    except IntegrityError:
        print(f"  [!] An admin named '{args.username}' already exists.")
        return 1
    print(f"  Admin '{args.username}' created ({admin_id}).")
    return 0


def _create_org(store: AuthStore, args: argparse.Namespace) -> int:
    password = _read_password()
    if password is None:
        return 1
    try:
        org_id = store.create_organization(
            name=args.name,
            email=args.email,
            password_hash=hash_password(password),
            org_type=args.type,
            phone=args.phone,
            address=args.address,
            city=args.city,
            status=ORG_PENDING if args.pending else ORG_APPROVED,
        )
    except IntegrityError:
        print(f"  [!] An organization with email '{args.email}' already exists.")
        return 1
    status = ORG_PENDING if args.pending else ORG_APPROVED
    print(f"  Organization '{args.name}' created ({org_id}, {status}).")
    return 0


def _set_org_status(store: AuthStore, args: argparse.Namespace) -> int:
    if args.status is None and args.active is None:
        print("  [!] Nothing to change. Pass a status and/or --active / --inactive.")
        return 1
    org = store.find_for_login(Role.ORGANIZATION, args.email)
    if org is None:
        print(f"  [!] No organization with email '{args.email}'.")
        return 1
    store.update_identity_status(Role.ORGANIZATION, org.id, status=args.status, is_active=args.active)
    updated = store.get_identity(Role.ORGANIZATION, org.id)
    print(f"  Organization '{updated.name}': status={updated.status}, active={updated.is_active}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="civicwatch",
        description="CivicWatch account administration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    admin = sub.add_parser("create-admin", help="Create an administrator account")
    admin.add_argument("username", help="Login name for the administrator")
    admin.add_argument("--name", help="Display name (default: the username)")
    admin.add_argument("--email", help="Contact email, shown in the user summary")
    admin.set_defaults(handler=_create_admin)

    org = sub.add_parser("create-org", help="Create an organization account")
    org.add_argument("name", help="Organization display name")
    org.add_argument("email", help="Login email for the organization")
    org.add_argument("--type", default="", help="Organization type, e.g. utility or ngo")
    org.add_argument("--phone")
    org.add_argument("--address")
    org.add_argument("--city")
    org.add_argument(
        "--pending",
        action="store_true",
        help="Create the organization awaiting approval instead of approved",
    )
    org.set_defaults(handler=_create_org)

    status = sub.add_parser("set-org-status", help="Approve, disable or (de)activate an organization")
    status.add_argument("email", help="Login email of the organization")
    status.add_argument("status", nargs="?", choices=ORG_STATUSES, help="New status")
    active = status.add_mutually_exclusive_group()
    active.add_argument("--active", dest="active", action="store_true", default=None)
    active.add_argument("--inactive", dest="active", action="store_false")
    status.set_defaults(handler=_set_org_status)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 1

    store = AuthStore(get_settings().database_url)
    try:
        return args.handler(store, args)
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
