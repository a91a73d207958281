"""Script to bootstrap the first super admin account.

Usage:
    MODE=local python seed_database.py admin@example.com --display-name "Site Owner"

The password is read from SEED_ADMIN_PASSWORD, or generated and printed once.
"""
import argparse
import asyncio
import os

from sqlalchemy import select

from db import AsyncSessionLocal, init_db
from db_models.user import FullRole, User, UserStatus
from core.permissions import default_collection_permissions
from core.principal import dump_grants
from core.security import generate_external_id, generate_random_password, get_password_hash


async def seed_super_admin(email: str, display_name: str) -> None:
    """Create the super admin unless a user with that email exists."""
    await init_db()
    print("[OK] Tables ready")

    email = email.strip().lower()
    async with AsyncSessionLocal() as session:
        result = await session.execute(select(User).where(User.email == email))
        if result.scalar_one_or_none() is not None:
            print(f"User {email} already exists, skipping")
            return

        password = os.environ.get("SEED_ADMIN_PASSWORD") or generate_random_password(16)
        user = User(
            external_id=generate_external_id(),
            email=email,
            hashed_password=get_password_hash(password),
            display_name=display_name,
            full_role=FullRole.SUPER_ADMIN.value,
            status=UserStatus.ACTIVE.value,
            collection_permissions=dump_grants(default_collection_permissions(FullRole.SUPER_ADMIN)),
            permission_overrides=[],
            login_attempts=0,
        )
        session.add(user)
        await session.commit()

    print(f"[OK] Super admin created: {email}")
    if "SEED_ADMIN_PASSWORD" not in os.environ:
        print(f"     Temporary password: {password}")


def main():
    parser = argparse.ArgumentParser(
        description="Bootstrap the first super admin account"
    )
    parser.add_argument("email", help="Login email of the super admin")
    parser.add_argument(
        "--display-name",
        default="Super Admin",
        help="Name shown in the admin panel"
    )

    args = parser.parse_args()

    print("=" * 60)
    print("SUPER ADMIN BOOTSTRAP")
    print("=" * 60)
    asyncio.run(seed_super_admin(args.email, args.display_name))


if __name__ == "__main__":
    main()
