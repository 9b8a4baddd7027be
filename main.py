#!/usr/bin/env python3
"""
Supplier Gate -- supplier onboarding service.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080
  python main.py create-user --email admin@example.com --role ADMIN

Registration over HTTP only ever creates REGULAR users; ADMIN and REVIEWER
accounts are created here, by whoever operates the deployment.

Environment variables:
  SECRET_KEY     Required unless DEBUG=true. At least 32 characters.
  DATABASE_URL   SQLAlchemy URL (default: sqlite:///suppliergate.db)
  BREVO_API_KEY  Optional. Without it, notifications are logged instead of sent.
"""

import argparse
import getpass
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.models import Identity, Role
from auth.store import IdentityStore
from auth.tokens import MAX_PASSWORD_BYTES, hash_password
from core.config import get_settings

_MIN_PASSWORD = 8
_MAX_PASSWORD = 64


def _read_password() -> Optional[str]:
    password = getpass.getpass("Password: ")
    if not _MIN_PASSWORD <= len(password) <= _MAX_PASSWORD:
        print(f"  [!] Password must be {_MIN_PASSWORD}-{_MAX_PASSWORD} characters.")
        return None
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        print(f"  [!] Password must be at most {MAX_PASSWORD_BYTES} bytes as UTF-8.")
        return None
    if getpass.getpass("Confirm password: ") != password:
        print("  [!] Passwords do not match.")
        return None
    return password


def create_user(store: IdentityStore, email: str, role: Role, password: str) -> Optional[int]:
    """Create an identity with an explicit role. Returns None if the email is taken."""
    identity = Identity(email=email.strip(), hashed_password=hash_password(password), role=role)
    try:
        return store.create_identity(identity)
    except IntegrityError:
        return None


def _cmd_create_user(args: argparse.Namespace) -> int:
    password = _read_password()
    if password is None:
        return 1
    store = IdentityStore(get_settings().database_url)
    try:
        uid = create_user(store, args.email, Role(args.role), password)
    finally:
        store.close()
    if uid is None:
        print(f"  [!] A user with email {args.email} already exists.")
        return 1
    print(f"Created {args.role} user {args.email} (id {uid}).")
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run("asgi:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="supplier-gate",
        description="Supplier onboarding: applications, review and scoped document access.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user --email admin@example.com --role ADMIN
  python main.py create-user --email reviewer@example.com --role REVIEWER
  DEBUG=true python main.py serve --reload
        """,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_user = sub.add_parser("create-user", help="Create a user with an explicit role (prompts for password)")
    p_user.add_argument("--email", required=True, help="Login email of the new user")
    p_user.add_argument(
        "--role",
        # SUPPLIER is reachable only through an approved application
        choices=[Role.REGULAR.value, Role.ADMIN.value, Role.REVIEWER.value],
        default=Role.REGULAR.value,
        help="Role of the new user (default: REGULAR)",
    )
    p_user.set_defaults(func=_cmd_create_user)

    p_serve = sub.add_parser("serve", help="Run the API with uvicorn")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8000)
    p_serve.add_argument("--reload", action="store_true", help="Restart on code changes (development)")
    p_serve.set_defaults(func=_cmd_serve)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
