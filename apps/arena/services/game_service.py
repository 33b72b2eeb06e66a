"""
Game catalogue service.
"""

import re
from typing import Dict, List, Optional
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from arena.database.models import Game, Tournament
from arena.database.transactions import run_in_transaction
from arena.services.errors import ConfigurationError, InvalidTransition, NotFound
import logging

logger = logging.getLogger(__name__)


def make_hint(name: str) -> str:
    """Derive the image hint from a game name, e.g. "Free Fire" -> "free_fire"."""
    return re.sub(r"\s", "_", name.lower())


def game_to_dict(game: Game, tournament_count: Optional[int] = None) -> Dict:
    data = {
        "id": game.id,
        "name": game.name,
        "image_url": game.image_url,
        "hint": game.hint,
    }
    if tournament_count is not None:
        data["tournament_count"] = tournament_count
    return data


async def get_games(database) -> List[Dict]:
    """Fetch all games with their tournament counts."""
    try:
        async with database.session() as session:
            counts = (
                select(Tournament.game_id, func.count(Tournament.id).label("n"))
                .group_by(Tournament.game_id)
                .subquery()
            )
            result = await session.execute(
                select(Game, func.coalesce(counts.c.n, 0))
                .outerjoin(counts, counts.c.game_id == Game.id)
                .order_by(Game.name)
            )
            return [game_to_dict(game, count) for game, count in result.all()]
    except ConfigurationError as e:
        logger.warning(f"Cannot fetch games: {e}")
        return []


async def get_game(database, game_id: int) -> Optional[Dict]:
    """Fetch a single game by its ID."""
    try:
        async with database.session() as session:
            game = await session.get(Game, game_id)
            return game_to_dict(game) if game else None
    except ConfigurationError as e:
        logger.warning(f"Cannot fetch game {game_id}: {e}")
        return None


async def add_game(database, name: str, image_url: str) -> Dict:
    """Add a new game; the hint is generated from the name."""
    if not name or not name.strip():
        raise ValueError("Game name is required")

    async def _add(session: AsyncSession) -> Dict:
        game = Game(name=name.strip(), image_url=image_url, hint=make_hint(name.strip()))
        session.add(game)
        await session.flush()
        return game_to_dict(game)

    game = await run_in_transaction(database, _add, description="add_game")
    logger.info(f"Added game {game['id']} ({game['name']})")
    return game


async def update_game(database, game_id: int, data: Dict) -> Dict:
    """Update a game's name or image."""
    updates = {k: v for k, v in data.items() if v is not None and k in {"name", "image_url", "hint"}}

    async def _update(session: AsyncSession) -> Dict:
        game = await session.get(Game, game_id)
        if game is None:
            raise NotFound("Game not found")
        for field, value in updates.items():
            setattr(game, field, value)
        await session.flush()
        return game_to_dict(game)

    return await run_in_transaction(database, _update, description=f"update_game({game_id})")


async def delete_game(database, game_id: int) -> None:
    """Delete a game that has no tournaments."""

    async def _delete(session: AsyncSession) -> None:
        game = await session.get(Game, game_id)
        if game is None:
            raise NotFound("Game not found")
        in_use = await session.execute(
            select(func.count(Tournament.id)).where(Tournament.game_id == game_id)
        )
        if in_use.scalar():
            raise InvalidTransition("Cannot delete a game that still has tournaments")
        await session.delete(game)

    await run_in_transaction(database, _delete, description=f"delete_game({game_id})")
    logger.info(f"Deleted game {game_id}")
