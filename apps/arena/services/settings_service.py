"""
Settings service for runtime configuration with database overrides.

Supports checking database settings first, then falling back to environment variables.
Uses Redis for distributed caching across instances when REDIS_URL is configured.
"""

import os
import logging
from decimal import Decimal
from typing import Dict, Optional, Set
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from redis.asyncio import Redis
from dotenv import load_dotenv

from arena.database.models import Setting
from arena.database.transactions import run_in_transaction
from arena.services.errors import ConfigurationError
from arena.utils.money import to_money

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# Redis configuration; caching is off when REDIS_URL is unset
REDIS_URL = os.getenv("REDIS_URL")
CACHE_TTL_SECONDS = 60  # Cache settings for 60 seconds
REDIS_KEY_PREFIX = "arena:settings:"

MIN_WITHDRAWAL_KEY = "min_withdrawal"
REFERRAL_BONUS_KEY = "referral_bonus"
ADMIN_USER_IDS_KEY = "admin_user_ids"

# key -> (environment variable, default)
KNOWN_SETTINGS = {
    MIN_WITHDRAWAL_KEY: ("MIN_WITHDRAWAL", "100"),
    REFERRAL_BONUS_KEY: ("REFERRAL_BONUS", "50"),
    ADMIN_USER_IDS_KEY: ("ADMIN_USER_IDS", ""),
}

MONEY_SETTINGS = {MIN_WITHDRAWAL_KEY, REFERRAL_BONUS_KEY}

# Global Redis client (initialized on first use)
_redis_client: Optional[Redis] = None


async def get_redis_client() -> Optional[Redis]:
    """
    Get or create Redis client connection.

    Returns:
        Redis client or None if caching is disabled or the connection fails
    """
    global _redis_client

    if not REDIS_URL:
        return None

    if _redis_client is not None:
        try:
            # Test connection
            await _redis_client.ping()
            return _redis_client
        except Exception as e:
            logger.warning(f"Redis connection test failed, recreating client: {e}")
            try:
                await _redis_client.aclose()
            except Exception:
                pass
            _redis_client = None

    try:
        _redis_client = Redis.from_url(
            REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
            retry_on_timeout=True,
        )
        # Test connection
        await _redis_client.ping()
        logger.info("Connected to Redis settings cache")
        return _redis_client
    except Exception as e:
        logger.warning(f"Failed to connect to Redis settings cache: {e}")
        _redis_client = None
        return None


async def _get_cached_setting(key: str) -> Optional[str]:
    """Get cached setting value from Redis."""
    try:
        redis_client = await get_redis_client()
        if redis_client is None:
            return None
        return await redis_client.get(f"{REDIS_KEY_PREFIX}{key}")
    except Exception as e:
        logger.warning(f"Error getting cached setting {key} from Redis: {e}")
        return None


async def _set_cached_setting(key: str, value: Optional[str]):
    """Cache a setting value in Redis with TTL."""
    try:
        redis_client = await get_redis_client()
        if redis_client is None:
            return

        redis_key = f"{REDIS_KEY_PREFIX}{key}"
        if value is not None:
            await redis_client.setex(redis_key, CACHE_TTL_SECONDS, value)
        else:
            await redis_client.delete(redis_key)
    except Exception as e:
        logger.warning(f"Error setting cached setting {key} in Redis: {e}")


async def get_setting(session: AsyncSession, key: str) -> Optional[str]:
    """
    Get a setting value stored in the database.

    Args:
        session: Database session
        key: Setting key

    Returns:
        Setting value or None if not found
    """
    result = await session.execute(select(Setting).where(Setting.key == key))
    setting = result.scalar_one_or_none()
    return setting.value if setting else None


async def set_setting(database, key: str, value: str, updated_by: Optional[str] = None) -> None:
    """
    Set a setting value (upsert) and refresh the cache.

    Args:
        database: Storage client
        key: Setting key
        value: Setting value
        updated_by: Admin user making the change

    Raises:
        ValueError: If a money setting isn't a non-negative number
    """
    if key in MONEY_SETTINGS:
        if to_money(value) < 0:
            raise ValueError(f"{key} cannot be negative")
        value = str(to_money(value))

    async def _upsert(session: AsyncSession) -> None:
        result = await session.execute(select(Setting).where(Setting.key == key))
        setting = result.scalar_one_or_none()
        if setting is None:
            session.add(Setting(key=key, value=value, updated_by=updated_by))
        else:
            setting.value = value
            setting.updated_by = updated_by

    await run_in_transaction(database, _upsert, description=f"set_setting({key})")
    await _set_cached_setting(key, value)
    logger.info(f"Setting {key} updated" + (f" by {updated_by}" if updated_by else ""))


async def get_setting_with_fallback(
    database,
    key: str,
    env_var: Optional[str] = None,
    default: Optional[str] = None,
) -> Optional[str]:
    """
    Get a setting value from cache, then database, then env var, then default.

    Args:
        database: Storage client (an unavailable one skips straight to env/default)
        key: Setting key in database
        env_var: Environment variable name to fall back to
        default: Default value if neither database nor env var is set

    Returns:
        Setting value as string, or None
    """
    cached = await _get_cached_setting(key)
    if cached is not None:
        return cached

    try:
        async with database.session() as session:
            value = await get_setting(session, key)
        if value is not None:
            await _set_cached_setting(key, value)
            return value
    except ConfigurationError as e:
        logger.warning(f"Reading setting {key} without a database: {e}")

    if env_var:
        value = os.getenv(env_var)
        if value is not None:
            return value

    return default


async def get_known_setting(database, key: str) -> Optional[str]:
    """Get one of the known settings with its env var and default applied."""
    env_var, default = KNOWN_SETTINGS[key]
    return await get_setting_with_fallback(database, key, env_var, default)


async def get_decimal_setting(database, key: str) -> Decimal:
    """
    Get a known money setting as a Decimal.

    Falls back to the built-in default when the stored value isn't a number.
    """
    value = await get_known_setting(database, key)
    try:
        return to_money(value)
    except ValueError:
        logger.warning(f"Invalid money value for setting {key}: {value}")
        return to_money(KNOWN_SETTINGS[key][1])


async def get_min_withdrawal(database) -> Decimal:
    return await get_decimal_setting(database, MIN_WITHDRAWAL_KEY)


async def get_referral_bonus(database) -> Decimal:
    return await get_decimal_setting(database, REFERRAL_BONUS_KEY)


async def get_admin_user_ids(database) -> Set[str]:
    """Users granted admin access through configuration instead of their role."""
    value = await get_known_setting(database, ADMIN_USER_IDS_KEY)
    if not value:
        return set()
    return {uid.strip() for uid in value.split(",") if uid.strip()}


async def get_all_settings(database) -> Dict[str, Optional[str]]:
    """Effective values of every known setting."""
    return {key: await get_known_setting(database, key) for key in KNOWN_SETTINGS}


async def close_redis_connection():
    """Close Redis connection (call on application shutdown)."""
    global _redis_client
    if _redis_client is not None:
        try:
            await _redis_client.aclose()
            logger.info("Closed Redis connection")
        except Exception as e:
            logger.warning(f"Error closing Redis connection: {e}")
        finally:
            _redis_client = None
