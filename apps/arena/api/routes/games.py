"""Game catalogue route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from arena.api.routes import hide_room
from arena.database.db import get_database
from arena.services import game_service, tournament_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/games", response_model=List[dict])
async def list_games(database=Depends(get_database)):
    """List all games with their tournament counts."""
    try:
        return await game_service.get_games(database)
    except Exception as e:
        logger.error(f"Error fetching games: {e}")
        raise HTTPException(status_code=500, detail="Error fetching games")


@router.get("/api/games/{game_id}")
async def get_game(game_id: int, database=Depends(get_database)):
    """Get one game."""
    try:
        game = await game_service.get_game(database, game_id)
    except Exception as e:
        logger.error(f"Error fetching game {game_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching game")
    if game is None:
        raise HTTPException(status_code=404, detail="Game not found")
    return game


@router.get("/api/games/{game_id}/tournaments", response_model=List[dict])
async def list_game_tournaments(game_id: int, database=Depends(get_database)):
    """List a game's tournaments, soonest first, without room credentials."""
    try:
        tournaments = await tournament_service.get_tournaments_by_game(database, game_id)
        return [hide_room(t) for t in tournaments]
    except Exception as e:
        logger.error(f"Error fetching tournaments for game {game_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching tournaments")
