"""Tournament route handlers for players."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request

from arena.api.auth_dependencies import (
    get_current_user,
    get_current_user_id_optional,
    is_admin_user,
)
from arena.api.routes import MONEY_RATE_LIMIT, hide_room, http_error, limiter
from arena.database.db import get_database
from arena.models.schemas import JoinTournamentRequest
from arena.services import tournament_service, user_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/tournaments/{tournament_id}")
async def get_tournament(
    tournament_id: int,
    user_id: Optional[str] = Depends(get_current_user_id_optional),
    database=Depends(get_database),
):
    """Get a tournament; results are included once it is completed."""
    try:
        tournament = await tournament_service.get_tournament(database, tournament_id)
        if tournament is None:
            raise HTTPException(status_code=404, detail="Tournament not found")
        if user_id and await tournament_service.has_user_joined(database, user_id, tournament_id):
            tournament["joined"] = True
            return tournament
        tournament["joined"] = False
        if user_id:
            profile = await user_service.get_user_profile(database, user_id)
            if profile and await is_admin_user(database, profile):
                return tournament
        return hide_room(tournament)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching tournament {tournament_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching tournament")


@router.get("/api/tournaments/{tournament_id}/participants", response_model=List[dict])
async def get_participants(tournament_id: int, database=Depends(get_database)):
    """List the players who joined a tournament; contact details are left out."""
    try:
        participants = await tournament_service.get_tournament_participants(database, tournament_id)
        return [{k: v for k, v in p.items() if k != "email"} for p in participants]
    except Exception as e:
        logger.error(f"Error fetching participants for tournament {tournament_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching participants")


@router.post("/api/tournaments/{tournament_id}/join")
@limiter.limit(MONEY_RATE_LIMIT)
async def join_tournament(
    request: Request,
    tournament_id: int,
    payload: JoinTournamentRequest,
    user: dict = Depends(get_current_user),
    database=Depends(get_database),
):
    """Join a tournament, paying the entry fee from deposit then winnings."""
    try:
        return await tournament_service.join_tournament(
            database, user["id"], tournament_id, payload.team_member_names
        )
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error joining tournament {tournament_id} for {user['id']}: {e}")
        raise HTTPException(status_code=500, detail="Error joining tournament")
