from __future__ import annotations

import asyncio
import os

from dotenv import load_dotenv

from db.database import close_database, ensure_indexes, get_database
from repositories.users import UserRepository
from services.security import create_initial_admin_if_missing


load_dotenv()


async def seed_admin(*, first_name: str, last_name: str, email: str, password: str) -> dict:
    db = await get_database()
    try:
        await ensure_indexes(db)
        admin = await create_initial_admin_if_missing(
            UserRepository(db),
            first_name=first_name,
            last_name=last_name,
            email=email,
            password=password,
        )
        return {"id": str(admin.id), "email": admin.email, "role": admin.role}
    finally:
        await close_database()


if __name__ == "__main__":
    # Defaults are demo values; override through the environment before running.
    created = asyncio.run(
        seed_admin(
            first_name=os.getenv("ADMIN_FIRST_NAME", "System"),
            last_name=os.getenv("ADMIN_LAST_NAME", "Admin"),
            email=os.getenv("ADMIN_EMAIL", "admin@example.com"),
            password=os.getenv("ADMIN_PASSWORD", "password"),
        )
    )
    print("Seeded admin:", created)
