#!/usr/bin/env python3
"""
Create (or upgrade to) a super_admin account for the HealthConnect admin panel.

Reads credentials from .env:
    ADMIN_EMAIL      - admin account email (required)
    ADMIN_PASSWORD   - admin account password (required)
    ADMIN_NAME       - display name (optional, defaults to "Super Admin")
    DATABASE_URL     - target database (defaults to the careauth setting)

Usage:
    python -m scripts.create_superadmin
"""
from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from careauth.admin.bootstrap import ensure_super_admin  # noqa: E402
from careauth.auth.utils import configure_hashing  # noqa: E402
from careauth.config import get_settings  # noqa: E402
from careauth.database import dispose_db, init_db, session_scope  # noqa: E402
from careauth.exceptions import AuthError  # noqa: E402
from careauth.storage.sql import sql_stores  # noqa: E402


async def main() -> None:
    email = os.getenv("ADMIN_EMAIL")
    password = os.getenv("ADMIN_PASSWORD")
    if not email or not password:
        print("Error: ADMIN_EMAIL and ADMIN_PASSWORD must be set in .env")
        sys.exit(1)
    name = os.getenv("ADMIN_NAME", "Super Admin")

    settings = get_settings()
    configure_hashing(settings.password_hash_time_cost)
    init_db(settings.database_url)
    try:
        async with session_scope() as session:
            account = await ensure_super_admin(
                sql_stores(session), email=email, password=password, name=name
            )
    except AuthError as exc:
        print(f"Error: {exc.detail}")
        sys.exit(1)
    finally:
        await dispose_db()

    if account is None:
        print(f"Error: {email} is already used by a doctor or patient account.")
        sys.exit(1)
    print(f"Super admin ready: {account.email} (id={account.id})")


if __name__ == "__main__":
    asyncio.run(main())
