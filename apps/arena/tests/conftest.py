"""
Shared pytest configuration for arena tests.

Each test gets its own SQLite database file (via aiosqlite) under pytest's
tmp_path. A file database, unlike ``:memory:``, is shared by every session the
test opens, so concurrent transactions really contend for the same rows.
"""

import os

# Must be set before arena modules read them at import time
os.environ["ENV"] = "test"
os.environ.setdefault("IDENTITY_JWT_SECRET", "test-secret")
# Concurrency tests pile many writers onto one row; give them room to retry
os.environ["TRANSACTION_MAX_ATTEMPTS"] = "30"
os.environ.pop("REDIS_URL", None)
for _var in ("DATABASE_URL", "POSTGRES_HOST", "MIN_WITHDRAWAL", "REFERRAL_BONUS", "ADMIN_USER_IDS"):
    os.environ.pop(_var, None)

from datetime import timedelta

import pytest_asyncio
from sqlalchemy.pool import NullPool

from arena.database.db import Database, UnavailableDatabase
from arena.database.models import UserProfile
from arena.services import game_service, tournament_service, user_service
from arena.utils.datetime_utils import utcnow
from arena.utils.money import to_money


@pytest_asyncio.fixture
async def database(tmp_path):
    """Fresh file-backed database with the full schema."""
    db = Database(
        f"sqlite+aiosqlite:///{tmp_path / 'arena_test.db'}",
        poolclass=NullPool,  # No connection pooling - each session gets a new connection
        connect_args={"timeout": 30},
    )
    await db.init_schema()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def unavailable_database():
    return UnavailableDatabase("DATABASE_URL is not set")


@pytest_asyncio.fixture
async def make_user(database):
    """Factory: create a profile and set its balances directly."""

    async def _make_user(
        user_id,
        deposit=0,
        winnings=0,
        status="active",
        role="user",
        referral_code=None,
    ):
        await user_service.create_user_profile(
            database,
            user_id,
            first_name=user_id.capitalize(),
            last_name="Tester",
            username=f"{user_id}_gamer",
            mobile_number="9876543210",
            email=f"{user_id}@example.com",
            referral_code=referral_code,
        )
        async with database.session() as session:
            user = await session.get(UserProfile, user_id)
            user.deposit_balance = to_money(deposit)
            user.winnings_balance = to_money(winnings)
            user.status = status
            user.role = role
            await session.commit()
        return await user_service.get_user_profile(database, user_id)

    return _make_user


@pytest_asyncio.fixture
async def make_tournament(database):
    """Factory: create a game (once) and an upcoming tournament for it."""
    games = {}

    async def _make_tournament(
        entry_fee=60,
        max_players=10,
        team_type="solo",
        name="Friday Night Scrims",
        prize_pool=500,
    ):
        if "game" not in games:
            games["game"] = await game_service.add_game(
                database, "Free Fire", "https://images.example.com/free-fire.png"
            )
        return await tournament_service.create_tournament(
            database,
            name=name,
            game_id=games["game"]["id"],
            entry_fee=entry_fee,
            prize_pool=prize_pool,
            per_kill_reward=5,
            start_time=utcnow() + timedelta(days=1),
            max_players=max_players,
            team_type=team_type,
            map="Bermuda",
            mode="Battle Royale",
        )

    return _make_tournament
