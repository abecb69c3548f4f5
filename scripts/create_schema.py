#!/usr/bin/env python
"""Create the clinic payroll tables.

Usage:
    python scripts/create_schema.py
    python scripts/create_schema.py --database-url postgresql+asyncpg://...
    python scripts/create_schema.py --drop
"""

from __future__ import annotations

import argparse
import asyncio

from sqlalchemy.ext.asyncio import create_async_engine

from clinic_payroll.config import get_settings
from clinic_payroll.models import Base


async def create_schema(database_url: str, drop: bool) -> None:
    """Create (optionally after dropping) every mapped table."""
    engine = create_async_engine(database_url, echo=False)
    try:
        async with engine.begin() as conn:
            if drop:
                await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
    finally:
        await engine.dispose()

    print(f"Created {len(Base.metadata.tables)} tables")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create clinic payroll tables")
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL (defaults to DATABASE_URL from the environment)",
    )
    parser.add_argument(
        "--drop",
        action="store_true",
        help="Drop existing tables first",
    )
    args = parser.parse_args()

    database_url = args.database_url or get_settings().database_url
    asyncio.run(create_schema(database_url, args.drop))


if __name__ == "__main__":
    main()
