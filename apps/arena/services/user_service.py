"""
User service layer for profile and signup database operations.
"""

import secrets
import string
from typing import Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from arena.database.models import PendingReferral, UserProfile, UserRole, UserStatus
from arena.database.transactions import run_in_transaction
from arena.services.errors import ConfigurationError, NotFound
from arena.utils.datetime_utils import isoformat
from arena.utils.money import money_to_float
import logging

logger = logging.getLogger(__name__)

REFERRAL_CODE_LENGTH = 6
REFERRAL_CODE_ALPHABET = string.ascii_uppercase + string.digits

# Attempts at drawing a referral code that isn't taken yet
MAX_REFERRAL_CODE_ATTEMPTS = 5

# Fields users may change on their own profile
USER_EDITABLE_FIELDS = {"first_name", "last_name", "username", "mobile_number", "profile_photo_url"}

# Fields admins may additionally change
ADMIN_EDITABLE_FIELDS = USER_EDITABLE_FIELDS | {"email", "role", "status"}


def user_to_dict(user: UserProfile) -> Dict:
    """Serialize a user profile for API responses."""
    return {
        "id": user.id,
        "name": user.name,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "username": user.username,
        "email": user.email,
        "mobile_number": user.mobile_number,
        "profile_photo_url": user.profile_photo_url,
        "deposit_balance": money_to_float(user.deposit_balance),
        "winnings_balance": money_to_float(user.winnings_balance),
        "tournaments_played": user.tournaments_played,
        "wins": user.wins,
        "total_earnings": money_to_float(user.total_earnings),
        "role": user.role,
        "status": user.status,
        "referral_code": user.referral_code,
        "referred_by": user.referred_by,
        "created_at": isoformat(user.created_at),
    }


def generate_referral_code() -> str:
    """Draw a random six-character upper-case referral code."""
    return "".join(secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH))


def _full_name(first_name: str, last_name: str) -> str:
    return f"{first_name} {last_name}".strip()


class _ReferralCodeCollision(Exception):
    """Drawn referral code is already in use."""


async def create_user_profile(
    database,
    user_id: str,
    first_name: str,
    last_name: str,
    username: str,
    mobile_number: str,
    email: str = "",
    profile_photo_url: str = "",
    referral_code: Optional[str] = None,
) -> Dict:
    """
    Create a new user profile.

    Balances start at zero. If a referral code was entered, a pending referral
    is written in the same transaction; the referral worker credits the bonus
    later, never here.

    Args:
        database: Storage client
        user_id: Identity provider uid
        first_name: First name
        last_name: Last name
        username: Unique username
        mobile_number: Mobile number
        email: Email from the identity provider
        profile_photo_url: Photo URL from the identity provider
        referral_code: Code the new user entered, if any

    Returns:
        Dict with the created profile

    Raises:
        ValueError: If the profile or username already exists
    """
    entered_code = referral_code.strip().upper() if referral_code else None

    for attempt in range(1, MAX_REFERRAL_CODE_ATTEMPTS + 1):
        own_code = generate_referral_code()

        async def _create(session: AsyncSession) -> Dict:
            existing = await session.execute(select(UserProfile.id).where(UserProfile.id == user_id))
            if existing.scalar_one_or_none():
                raise ValueError("A profile already exists for this account")

            taken = await session.execute(
                select(UserProfile.id).where(UserProfile.username == username)
            )
            if taken.scalar_one_or_none():
                raise ValueError(f"Username {username} is already taken")

            code_taken = await session.execute(
                select(UserProfile.id).where(UserProfile.referral_code == own_code)
            )
            if code_taken.scalar_one_or_none():
                raise _ReferralCodeCollision()

            user = UserProfile(
                id=user_id,
                name=_full_name(first_name, last_name),
                first_name=first_name,
                last_name=last_name,
                username=username,
                email=email or "",
                mobile_number=mobile_number,
                profile_photo_url=profile_photo_url or "",
                deposit_balance=0,
                winnings_balance=0,
                tournaments_played=0,
                wins=0,
                total_earnings=0,
                role=UserRole.USER.value,
                status=UserStatus.ACTIVE.value,
                referral_code=own_code,
                referred_by=entered_code,
            )
            session.add(user)
            await session.flush()

            if entered_code:
                session.add(PendingReferral(new_user_id=user_id, referrer_code=entered_code))
                await session.flush()

            return user_to_dict(user)

        try:
            profile = await run_in_transaction(
                database, _create, description=f"create_user_profile({user_id})"
            )
        except _ReferralCodeCollision:
            logger.info(f"Referral code collision on attempt {attempt}, drawing a new one")
            continue
        except IntegrityError as e:
            raise ValueError("A profile with these details already exists") from e

        logger.info(
            f"Created user profile {user_id}"
            + (f" (referred by {entered_code})" if entered_code else "")
        )
        return profile

    raise ValueError("Could not allocate a referral code, please try again")


async def get_user_profile(database, user_id: str) -> Optional[Dict]:
    """
    Fetch a user's profile.

    Returns None when the user doesn't exist or the database is unavailable.
    """
    try:
        async with database.session() as session:
            result = await session.execute(select(UserProfile).where(UserProfile.id == user_id))
            user = result.scalar_one_or_none()
            return user_to_dict(user) if user else None
    except ConfigurationError as e:
        logger.warning(f"Cannot fetch user profile {user_id}: {e}")
        return None


async def get_all_users(database) -> List[Dict]:
    """Fetch all users for the admin panel, newest first."""
    try:
        async with database.session() as session:
            result = await session.execute(
                select(UserProfile).order_by(UserProfile.created_at.desc())
            )
            return [user_to_dict(u) for u in result.scalars().all()]
    except ConfigurationError as e:
        logger.warning(f"Cannot fetch users: {e}")
        return []


async def update_user_profile(database, user_id: str, data: Dict, admin: bool = False) -> Dict:
    """
    Update a user's profile fields.

    Balances and stats can't be changed here; money only moves through the
    ledger. The display name is rebuilt when first or last name changes.

    Args:
        database: Storage client
        user_id: User to update
        data: Partial profile data
        admin: Whether the caller may change role, status and email

    Returns:
        Dict with the updated profile

    Raises:
        NotFound: If the user doesn't exist
        ValueError: If a field isn't editable or a value is invalid
    """
    allowed = ADMIN_EDITABLE_FIELDS if admin else USER_EDITABLE_FIELDS
    updates = {k: v for k, v in data.items() if v is not None}
    forbidden = set(updates) - allowed
    if forbidden:
        raise ValueError(f"Fields cannot be updated: {', '.join(sorted(forbidden))}")
    if "role" in updates and updates["role"] not in {r.value for r in UserRole}:
        raise ValueError(f"Invalid role: {updates['role']}")
    if "status" in updates and updates["status"] not in {s.value for s in UserStatus}:
        raise ValueError(f"Invalid status: {updates['status']}")

    async def _update(session: AsyncSession) -> Dict:
        result = await session.execute(select(UserProfile).where(UserProfile.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFound("User does not exist.")

        if "username" in updates and updates["username"] != user.username:
            taken = await session.execute(
                select(UserProfile.id).where(UserProfile.username == updates["username"])
            )
            if taken.scalar_one_or_none():
                raise ValueError(f"Username {updates['username']} is already taken")

        for field, value in updates.items():
            setattr(user, field, value)
        if "first_name" in updates or "last_name" in updates:
            user.name = _full_name(user.first_name, user.last_name)

        await session.flush()
        return user_to_dict(user)

    profile = await run_in_transaction(database, _update, description=f"update_user_profile({user_id})")
    logger.info(f"Updated profile {user_id}: {', '.join(sorted(updates))}")
    return profile


async def is_admin(database, user_id: str) -> bool:
    """Check whether a user has the admin role."""
    profile = await get_user_profile(database, user_id)
    return bool(profile and profile["role"] == UserRole.ADMIN.value)
