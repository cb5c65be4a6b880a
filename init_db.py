"""Initialize the business database schema.

Creates the projects, engineers, matches, e-mail templates and archive
tables. Run this before starting the API server.
"""

import argparse
import asyncio
import sys

from staffing.config import settings
from staffing.db import engine
from staffing.models import Base


async def init_database(drop: bool = False):
    """Create all database tables."""
    print(f"Initializing database: {settings.db.url.split('@')[-1]}")

    async with engine.begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
            print("✓ Dropped existing tables")

        await conn.run_sync(Base.metadata.create_all)
        print("✓ Created all tables")

    await engine.dispose()
    print("\n✅ Database initialization complete!")
    print(f"Tables: {', '.join(Base.metadata.tables.keys())}")


async def main(drop: bool):
    """Main entry point."""
    try:
        await init_database(drop=drop)
    except Exception as e:
        print(f"\n❌ Error initializing database: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--drop", action="store_true", help="Drop existing tables first")
    asyncio.run(main(parser.parse_args().drop))
