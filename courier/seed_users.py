"""
Database seeding script for initial users.

Creates an ADMIN, a CUSTOMER and two DELIVERY_AGENT users for testing and
development, and prints a bearer token for each of them.
Run this script after database is set up but before first use.
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from courier.app.db.session import AsyncSessionLocal
from courier.app.models.user import User
from courier.app.models.enums import UserRole
from courier.app.core.jwt import create_access_token
from sqlalchemy import select

SEED_USERS = [
    ("admin", "admin@courier.local", "Marketplace Admin", UserRole.ADMIN),
    ("customer", "customer@courier.local", "Demo Customer", UserRole.CUSTOMER),
    ("agent1", "agent1@courier.local", "First Agent", UserRole.DELIVERY_AGENT),
    ("agent2", "agent2@courier.local", "Second Agent", UserRole.DELIVERY_AGENT),
]


async def seed_users():
    """
    Seed initial users with different roles.

    Creates:
    - 1 ADMIN user
    - 1 CUSTOMER user
    - 2 DELIVERY_AGENT users
    """
    async with AsyncSessionLocal() as db:
        print("Starting user seeding...")

        result = await db.execute(
            select(User).where(User.username == "admin")
        )
        if result.scalar_one_or_none():
            print("ADMIN user already exists, skipping seeding")
            return

        users = []
        for username, email, full_name, role in SEED_USERS:
            user = User(
                email=email,
                username=username,
                full_name=full_name,
                role=role,
                is_active=True
            )
            db.add(user)
            users.append(user)

        await db.commit()

        print("\nUser seeding completed successfully!\n")
        for user in users:
            await db.refresh(user)
            token = create_access_token(
                data={"sub": user.username, "user_id": user.id, "role": user.role.value}
            )
            print(f"  - {user.role.value:<15} {user.username:<10} id={user.id}")
            print(f"    token: {token}")


if __name__ == "__main__":
    asyncio.run(seed_users())
