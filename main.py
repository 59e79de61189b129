#!/usr/bin/env python3
"""
UserGate -- operator command line.

Usage:
  python main.py init-db
  python main.py create-admin --email admin@example.com --password 's3cret'
  python main.py create-admin --email admin@example.com --password 's3cret' --nom Doe --prenom Jane
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 8080 --reload

Environment variables (see core/config.py for the full list):
  DATABASE_URL   SQLAlchemy URL of the credential database (default: ./usergate.db)
  BCRYPT_ROUNDS  bcrypt cost factor, 4..31 (default: 10)
"""

import argparse
import sys
from typing import Optional

from auth.errors import AuthError
from auth.models import UserUpdate
from auth.services import build_services
from auth.store import CredentialStore
from core.config import Settings, get_settings

ADMIN_ROLE = "admin"


def _open_store(settings: Settings, database_url: Optional[str]) -> CredentialStore:
    return CredentialStore(
        database_url or settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )


def cmd_init_db(args: argparse.Namespace, settings: Settings) -> int:
    """Create the schema and seed the reference roles and permissions."""
    store = _open_store(settings, args.database_url)
    try:
        ok = store.ping()
    finally:
        store.close()
    if not ok:
        print("  [!] Database did not answer after initialization.")
        return 1
    print("Database initialized: roles user, moderator, admin are available.")
    return 0


def cmd_create_admin(args: argparse.Namespace, settings: Settings) -> int:
    """Register an account and grant it the admin role on top of the default one."""
    store = _open_store(settings, args.database_url)
    services = build_services(store, settings)
    try:
        user = services.authenticator.register(
            email=args.email,
            password=args.password,
            given_name=args.prenom,
            family_name=args.nom,
        )
        user = services.directory.update(
            user.id,
            UserUpdate(roles=list(dict.fromkeys([settings.default_role, ADMIN_ROLE]))),
        )
    except AuthError as exc:
        print(f"  [!] Could not create admin '{args.email}': {exc.message}")
        return 1
    finally:
        store.close()
    print(f"Admin created: id={user.id} email={user.email} roles={', '.join(user.roles)}")
    return 0


def cmd_serve(args: argparse.Namespace, settings: Settings) -> int:
    """Run the HTTP API under uvicorn."""
    import uvicorn

    uvicorn.run(
        "asgi:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="usergate",
        description="User authentication and role-based authorization service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py init-db
  python main.py create-admin --email admin@example.com --password 's3cret'
  DATABASE_URL=postgresql://user:pw@localhost/usergate python main.py serve --port 8080
        """,
    )
    parser.add_argument(
        "--database-url",
        metavar="URL",
        default=None,
        help="Override DATABASE_URL for this command",
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    init_db = sub.add_parser("init-db", help="Create tables and seed roles and permissions")
    init_db.set_defaults(handler=cmd_init_db)

    create_admin = sub.add_parser("create-admin", help="Create an account holding the admin role")
    create_admin.add_argument("--email", required=True, help="Login e-mail of the new admin")
    create_admin.add_argument("--password", required=True, help="Initial password")
    create_admin.add_argument("--nom", default=None, help="Family name")
    create_admin.add_argument("--prenom", default=None, help="Given name")
    create_admin.set_defaults(handler=cmd_create_admin)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Restart on code changes (development only)")
    serve.set_defaults(handler=cmd_serve)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "handler", None):
        parser.print_help()
        return 2
    return args.handler(args, get_settings())


if __name__ == "__main__":
    sys.exit(main())
