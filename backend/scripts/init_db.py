"""Initialise the database and optionally run the data migrations for a user.

Usage:
    python -m scripts.init_db
    python -m scripts.init_db --migrate-for you@example.com
"""
import argparse
import asyncio
import sys
from pathlib import Path

# Add parent dir to path
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from sqlalchemy import select

from doit.core.database import AsyncSessionLocal, engine
from doit.models.user import User
from doit.services.system_service import initialize_database, run_migrations


async def run(migrate_for: str | None) -> None:
    async with AsyncSessionLocal() as session:
        result = await initialize_database(session)
        print(f"Tables ready, columns added: {result['columns_added'] or 'none'}, "
              f"tags seeded: {result['tags_seeded']}")

        if migrate_for:
            email = migrate_for.strip().lower()
            existing = await session.execute(select(User).where(User.email == email))
            if not existing.scalar_one_or_none():
                session.add(User(email=email))
                await session.commit()
                print(f"User created: {email}")

            migrated = await run_migrations(session, email)
            print(f"Todos assigned to {email}: {migrated['todos_assigned']}, "
                  f"statuses backfilled: {migrated['status_done'] + migrated['status_todo']}")

    await engine.dispose()


def main():
    parser = argparse.ArgumentParser(description="Initialise the DOIT database")
    parser.add_argument("--migrate-for", help="Assign ownerless todos to this email address")
    args = parser.parse_args()
    asyncio.run(run(args.migrate_for))


if __name__ == "__main__":
    main()
