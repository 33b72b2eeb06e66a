"""User profile route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request

from arena.api.auth_dependencies import get_current_user, get_current_user_id
from arena.api.routes import http_error, limiter
from arena.database.db import get_database
from arena.models.schemas import ProfileUpdateRequest, SignupRequest, UserProfileResponse
from arena.services import tournament_service, user_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/api/users", response_model=UserProfileResponse, status_code=201)
@limiter.limit("5/minute")
async def create_profile(
    request: Request,
    payload: SignupRequest,
    user_id: str = Depends(get_current_user_id),
    database=Depends(get_database),
):
    """Create the caller's profile after signing in with the identity provider."""
    try:
        return await user_service.create_user_profile(
            database,
            user_id,
            first_name=payload.first_name,
            last_name=payload.last_name,
            username=payload.username,
            mobile_number=payload.mobile_number,
            email=payload.email,
            profile_photo_url=payload.profile_photo_url,
            referral_code=payload.referral_code,
        )
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error creating profile for {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Error creating profile")


@router.get("/api/users/me", response_model=UserProfileResponse)
async def get_my_profile(user: dict = Depends(get_current_user)):
    """Get the caller's profile and balances."""
    return user


@router.patch("/api/users/me", response_model=UserProfileResponse)
async def update_my_profile(
    payload: ProfileUpdateRequest,
    user: dict = Depends(get_current_user),
    database=Depends(get_database),
):
    """Update the caller's profile fields."""
    try:
        return await user_service.update_user_profile(
            database, user["id"], payload.model_dump(exclude_unset=True)
        )
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error updating profile for {user['id']}: {e}")
        raise HTTPException(status_code=500, detail="Error updating profile")


@router.get("/api/users/me/tournaments", response_model=List[dict])
async def get_my_tournaments(
    user: dict = Depends(get_current_user),
    database=Depends(get_database),
):
    """Get the tournaments the caller has joined."""
    try:
        return await tournament_service.get_user_joined_tournaments(database, user["id"])
    except Exception as e:
        logger.error(f"Error fetching tournaments for {user['id']}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching tournaments")
