#!/usr/bin/env python3
"""
Storefront admin CLI -- bootstrap accounts and permissions from the shell.

The API has no self-service path to elevated permissions, so the first ADMIN
has to be created out of band. This tool writes straight to the user store
configured by DATABASE_URL (or --db).

Usage:
  python main.py create-user admin@example.com --name Admin --permission ADMIN --permission USER
  python main.py set-permissions someone@example.com USER ITEMDELETE
  python main.py list-users
"""

import argparse
import getpass
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.models import Permission, User
from auth.permissions import parse_permissions
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import get_settings
from core.errors import StorefrontError


def _open_store(db_url: Optional[str]) -> UserStore:
    return UserStore(db_url or get_settings().database_url)


def _create_user(store: UserStore, args: argparse.Namespace) -> int:
    email = args.email.strip().lower()
    password = args.password or getpass.getpass(f"Password for {email}: ")
    if not password:
        print("  [!] A password is required.")
        return 1
    permissions = parse_permissions(args.permission or [Permission.USER.value])
    try:
        user_id = store.create_user(
            User(
                email=email,
                name=args.name,
                hashed_password=hash_password(password),
                permissions=permissions,
            )
        )
    except IntegrityError:
        print(f"  [!] A user with email {email} already exists.")
        return 1
    print(f"  Created user {user_id} ({email}) with {', '.join(sorted(p.value for p in permissions))}")
    return 0


def _set_permissions(store: UserStore, args: argparse.Namespace) -> int:
    email = args.email.strip().lower()
    user = store.get_by_email(email)
    if user is None:
        print(f"  [!] No user with email {email}.")
        return 1
    permissions = parse_permissions(args.permissions)
    store.set_permissions(user.id, permissions)
    print(f"  {email}: {', '.join(sorted(p.value for p in permissions))}")
    return 0


def _list_users(store: UserStore, args: argparse.Namespace) -> int:
    for user in store.list_users():
        print(f"  {user.id:>5}  {user.email:<40} {','.join(sorted(p.value for p in user.permissions))}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="storefront-admin",
        description="Manage storefront accounts and permissions.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"Permissions: {', '.join(p.value for p in Permission)}",
    )
    parser.add_argument("--db", metavar="URL", help="Database URL (default: DATABASE_URL setting)")
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Create an account")
    create.add_argument("email")
    create.add_argument("--name", default="")
    create.add_argument("--password", help="Prompted for when omitted")
    create.add_argument(
        "--permission",
        action="append",
        metavar="PERMISSION",
        help="Repeat to grant several (default: USER)",
    )
    create.set_defaults(func=_create_user)

    perms = sub.add_parser("set-permissions", help="Replace an account's permissions")
    perms.add_argument("email")
    perms.add_argument("permissions", nargs="+", metavar="PERMISSION")
    perms.set_defaults(func=_set_permissions)

    listing = sub.add_parser("list-users", help="List all accounts")
    listing.set_defaults(func=_list_users)

    args = parser.parse_args(argv)
    store = _open_store(args.db)
    try:
        return args.func(store, args)
    except StorefrontError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
