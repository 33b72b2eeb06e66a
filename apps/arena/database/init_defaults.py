#!/usr/bin/env python3
"""
Initialize default database values.
This script is run on startup to populate default settings.
"""

import asyncio
import os
from sqlalchemy.ext.asyncio import AsyncSession
from arena.database.db import database_from_env
from arena.database.transactions import run_in_transaction
from arena.database.models import Setting
from arena.services.settings_service import KNOWN_SETTINGS, get_setting


async def init_defaults(database):
    """
    Seed every known setting that isn't stored yet.

    Values come from the environment when set, otherwise the built-in default.
    Stored values are never overwritten.
    """
    print("Initializing default database values...")

    async def _seed(session: AsyncSession):
        seeded = []
        for key, (env_var, default) in KNOWN_SETTINGS.items():
            if await get_setting(session, key) is not None:
                continue
            value = os.getenv(env_var, default)
            session.add(Setting(key=key, value=value))
            seeded.append(key)
        return seeded

    seeded = await run_in_transaction(database, _seed, description="init_defaults")
    for key in seeded:
        print(f"✓ Set default {key}")
    print("✓ Default values initialized")
    return seeded


async def _main():
    database = database_from_env()
    try:
        await database.init_schema()
        await init_defaults(database)
    finally:
        await database.dispose()


if __name__ == "__main__":
    asyncio.run(_main())
