"""
Authentication dependencies for FastAPI routes.
"""

from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from arena.database.db import get_database
from arena.database.models import UserRole
from arena.services import auth_service, settings_service, user_service

security = HTTPBearer()


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """
    Dependency returning the identity provider uid from the bearer token.

    Doesn't require a profile, so it also serves the signup route.

    Raises:
        HTTPException: If the token is invalid
    """
    payload = auth_service.verify_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return payload["user_id"]


async def get_current_user(
    user_id: str = Depends(get_current_user_id),
    database=Depends(get_database),
) -> dict:
    """
    Dependency to get the current user's profile.

    Raises:
        HTTPException: 404 if the user hasn't created a profile yet
    """
    user = await user_service.get_user_profile(database, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Profile not found",
        )
    return user


async def is_admin_user(database, user: dict) -> bool:
    """A user is an admin by role or by the admin_user_ids setting."""
    if user.get("role") == UserRole.ADMIN.value:
        return True
    try:
        return user["id"] in await settings_service.get_admin_user_ids(database)
    except Exception:
        return False


async def require_admin(
    user: dict = Depends(get_current_user),
    database=Depends(get_database),
) -> dict:
    """Require an authenticated admin."""
    if not await is_admin_user(database, user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


async def get_current_user_id_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(HTTPBearer(auto_error=False)),
) -> Optional[str]:
    """
    Optional dependency returning the caller's uid.
    Returns None if no token is provided or the token is invalid.
    """
    if credentials is None:
        return None
    try:
        return await get_current_user_id(credentials)
    except HTTPException:
        return None
