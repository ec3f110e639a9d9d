"""
Create or promote a platform admin.

Run from project root: python scripts/create_admin.py admin@example.com --password secret123
Without --password an existing account is promoted as-is.
"""

import argparse
import asyncio
import os
import sys
from typing import Optional

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from qrtruck.core.config import setup_logging
from qrtruck.core.security import hash_password
from qrtruck.database import async_session_maker, engine, init_db
from qrtruck.models import User, UserRole

if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())


async def create_admin(email: str, password: Optional[str], name: Optional[str]) -> User:
    await init_db()
    email = email.strip().lower()

    async with async_session_maker() as db:
        result = await db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if user is None:
            if not password:
                raise SystemExit(f"❌ No account for {email}; pass --password to create one")
            user = User(email=email, name=name, password_hash=hash_password(password))
            db.add(user)
            print(f"✅ Created account {email}")
        elif password:
            user.password_hash = hash_password(password)

        user.role = UserRole.ADMIN
        await db.commit()
        await db.refresh(user)

    await engine.dispose()
    print(f"✅ {user.email} is now an admin")
    return user


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create or promote an admin account")
    parser.add_argument("email")
    parser.add_argument("--password", help="Password for a new account (min 8 chars)")
    parser.add_argument("--name")
    args = parser.parse_args()

    if args.password is not None and len(args.password) < 8:
        parser.error("password must be at least 8 characters")

    setup_logging()
    asyncio.run(create_admin(args.email, args.password, args.name))
