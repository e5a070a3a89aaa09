#!/usr/bin/env python3
"""
HRM API -- operator command line.

Usage:
  python main.py serve
  python main.py serve --reload
  python main.py create-user --email admin@corp.com --password 's3cret' --role admin
  python main.py create-user --email hr@corp.com --password 's3cret' --role HR --database-url sqlite:///hrm.db

create-user writes directly to the credential store. It is how the first
admin account is bootstrapped: POST /api/auth/create-user itself requires an
admin token.

Environment variables: see core/config.py (SECRET_KEY, DEBUG, DATABASE_URL,
HOST, PORT, ...).
"""

import argparse
import getpass
import logging
import sys
from typing import Optional

logger = logging.getLogger("hrm.cli")


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    from core.config import get_settings

    settings = get_settings()
    logger.info("Serving on %s:%d", args.host or settings.host, args.port or settings.port)
    uvicorn.run(
        "api.main:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        reload=args.reload,
    )
    return 0


def _create_user(args: argparse.Namespace) -> int:
    from pydantic import ValidationError

    from api.models import EmailAddress
    from auth.models import Role, User
    from auth.store import UserStore
    from auth.tokens import hash_password
    from core.errors import Conflict

    try:
        email = EmailAddress(email=args.email).email
    except ValidationError:
        print(f"  [!] '{args.email}' is not a valid email address.")
        return 1

    password = args.password or getpass.getpass("Password: ")
    if not password:
        print("  [!] A password is required.")
        return 1

    store = UserStore(args.database_url)
    try:
        user_id = store.create_user(User(email=email, role=Role(args.role).value, hashed_password=hash_password(password)))
    except Conflict as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        store.close()

    print(f"  Created {args.role} account {email} (id={user_id}).")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hrm",
        description="HRM API -- run the server or manage accounts.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the API under uvicorn.")
    serve.add_argument("--host", default=None, help="Bind address (default: HOST setting).")
    serve.add_argument("--port", type=int, default=None, help="Port (default: PORT setting).")
    serve.add_argument("--reload", action="store_true", help="Auto-reload on code changes (development).")
    serve.set_defaults(func=_serve)

    create = sub.add_parser("create-user", help="Create an account directly in the credential store.")
    create.add_argument("--email", required=True)
    create.add_argument("--password", default=None, help="Prompted for when omitted.")
    create.add_argument("--role", choices=["employee", "HR", "admin"], default="admin")
    create.add_argument("--database-url", default=None, help="Override DATABASE_URL.")
    create.set_defaults(func=_create_user)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)-5s %(name)s %(message)s")
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
