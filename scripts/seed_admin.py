#!/usr/bin/env python3
"""Create the admin account.

Only one admin may exist; running this again reports the existing one
as a conflict.

Usage:
    python scripts/seed_admin.py --email admin@example.com --username admin
    STOREFRONT_ADMIN_PASSWORD='S3cret!pass' python scripts/seed_admin.py --email admin@example.com
"""

import argparse
import asyncio
import getpass
import os

from storefront.application.auth_service import AuthService
from storefront.domain.exceptions import EmailAlreadyRegisteredError
from storefront.infrastructure.database import async_session_factory, create_tables, engine


async def seed_admin(username: str, email: str, password: str) -> str:
    """Create the admin and return its ID."""
    async with async_session_factory() as session:
        admin = await AuthService(session).create_admin(username, email, password)
        return admin.id


async def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Create the storefront admin account")
    parser.add_argument("--email", required=True, help="Admin email (receives login passcodes)")
    parser.add_argument("--username", default="admin", help="Admin display name")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create missing tables first (local development without Alembic)",
    )
    args = parser.parse_args()

    password = os.environ.get("STOREFRONT_ADMIN_PASSWORD") or getpass.getpass("Admin password: ")

    print("=" * 60)
    print("Storefront Admin Seeder")
    print("=" * 60)

    if args.create_tables:
        print("Creating database tables...")
        await create_tables()
        print("Tables ready.")

    try:
        admin_id = await seed_admin(args.username, args.email, password)
        print(f"  ✓ Admin created: {admin_id}")
    except EmailAlreadyRegisteredError:
        print("  ✗ An admin account already exists")
        raise SystemExit(1)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
