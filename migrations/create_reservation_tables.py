"""
Migration: Create reservation, payment and QR tables

Creates the people/role tables, venues and courts, reservations with their
slots, payments, QR issuances and guest invitations, plus the enum types
they use. Existing tables are left untouched, so it is safe to re-run.

Run via: python migrations/create_reservation_tables.py
"""
import asyncio
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import text
from canchaqr.core.database import Base, engine
import canchaqr.models  # noqa: F401  registers every table on Base.metadata

EXPECTED_TABLES = [
    "people",
    "clients",
    "hosts",
    "guests",
    "controllers",
    "venues",
    "courts",
    "reservations",
    "reservation_slots",
    "payments",
    "qr_issuances",
    "guest_invitations",
]


async def migrate():
    """Create any missing tables and report the result."""
    print("=" * 60)
    print("Migration: create reservation tables")
    print("=" * 60)

    async with engine.begin() as conn:
        try:
            await conn.run_sync(Base.metadata.create_all)

            result = await conn.execute(text("""
                SELECT table_name
                FROM information_schema.tables
                WHERE table_schema = 'public'
            """))
            present = {row[0] for row in result.fetchall()}

            print("\nTables:")
            for table in EXPECTED_TABLES:
                marker = "+" if table in present else "!"
                print(f"  {marker} {table}")

            missing = [t for t in EXPECTED_TABLES if t not in present]
            if missing:
                raise RuntimeError(f"Tables missing after migration: {missing}")

            print("\n" + "=" * 60)
            print("Migration complete!")
            print("=" * 60)

        except Exception as e:
            print(f"\nError during migration: {e}")
            raise

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(migrate())
