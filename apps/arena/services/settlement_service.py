"""
Settlement: record a tournament's results and pay out prizes.

A settlement is a single transaction. Results, the status change and every
payout commit together or not at all, and a tournament that already has
results can't be settled again.
"""

from decimal import Decimal
from typing import Dict, List, Sequence
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from arena.database.models import (
    TournamentParticipant,
    TournamentResult,
    TournamentStatus,
    TransactionType,
    WalletType,
)
from arena.database.transactions import run_in_transaction
from arena.services.errors import ConfigurationError, ResultsAlreadySubmitted
from arena.services.ledger_service import apply_balance_change, get_user_for_update
from arena.services.tournament_service import (
    check_transition,
    get_tournament_for_update,
    result_to_dict,
)
from arena.utils.datetime_utils import utcnow
from arena.utils.money import money_to_float, to_money
import logging

logger = logging.getLogger(__name__)


def prize_idempotency_key(tournament_id: int, player_id: str) -> str:
    return f"prize:{tournament_id}:{player_id}"


def _validate_results(results: Sequence[Dict]) -> List[Dict]:
    """Normalize submitted results and reject malformed entries before touching the database."""
    if not results:
        raise ValueError("At least one result is required")

    normalized = []
    seen = set()
    for entry in results:
        player_id = entry.get("player_id")
        if not player_id:
            raise ValueError("Every result needs a player_id")
        if player_id in seen:
            raise ValueError(f"Duplicate result for player {player_id}")
        seen.add(player_id)

        rank = int(entry.get("rank", 0))
        kills = int(entry.get("kills", 0))
        prize = to_money(entry.get("prize", 0))
        if rank < 1:
            raise ValueError(f"Rank must be at least 1 (player {player_id})")
        if kills < 0:
            raise ValueError(f"Kills cannot be negative (player {player_id})")
        if prize < 0:
            raise ValueError(f"Prize cannot be negative (player {player_id})")
        normalized.append({"player_id": player_id, "rank": rank, "kills": kills, "prize": prize})
    return normalized


async def submit_results(database, tournament_id: int, results: Sequence[Dict]) -> Dict:
    """
    Complete an ongoing tournament and credit every prize.

    Args:
        database: Storage client
        tournament_id: Tournament to settle
        results: Dicts with player_id, rank, kills and prize

    Returns:
        Summary dict with tournament_id, total_paid and payouts

    Raises:
        NotFound: If the tournament or a winner's account doesn't exist
        InvalidTransition: If the tournament isn't ongoing
        ResultsAlreadySubmitted: If results were already recorded
        ValueError: If a result is malformed or names a non-participant
    """
    entries = _validate_results(results)

    async def _settle(session: AsyncSession) -> Dict:
        tournament = await get_tournament_for_update(session, tournament_id)

        existing = await session.execute(
            select(func.count(TournamentResult.id)).where(
                TournamentResult.tournament_id == tournament_id
            )
        )
        if existing.scalar() or tournament.results_submitted_at is not None:
            raise ResultsAlreadySubmitted("Results have already been submitted for this tournament.")
        check_transition(tournament.status, TournamentStatus.COMPLETED.value)

        rows = await session.execute(
            select(TournamentParticipant).where(
                TournamentParticipant.tournament_id == tournament_id
            )
        )
        participants = {p.user_id: p for p in rows.scalars().all()}
        outsiders = [e["player_id"] for e in entries if e["player_id"] not in participants]
        if outsiders:
            raise ValueError(f"Not participants of this tournament: {', '.join(outsiders)}")

        total_paid = Decimal("0.00")
        payouts = 0
        stored = []
        for entry in entries:
            participant = participants[entry["player_id"]]
            result = TournamentResult(
                tournament_id=tournament.id,
                player_id=entry["player_id"],
                rank=entry["rank"],
                kills=entry["kills"],
                prize=entry["prize"],
                name=participant.name,
                email=participant.email,
                in_game_name=participant.in_game_name,
                team_members=participant.team_members,
            )
            session.add(result)
            stored.append(result)

            if entry["prize"] > 0:
                user = await get_user_for_update(session, entry["player_id"])
                apply_balance_change(
                    session,
                    user,
                    WalletType.WINNINGS.value,
                    entry["prize"],
                    TransactionType.PRIZE.value,
                    f'Prize from "{tournament.name}"',
                    idempotency_key=prize_idempotency_key(tournament.id, user.id),
                )
                user.total_earnings = to_money(user.total_earnings) + entry["prize"]
                if entry["rank"] == 1:
                    user.wins = user.wins + 1
                total_paid += entry["prize"]
                payouts += 1

        tournament.status = TournamentStatus.COMPLETED.value
        tournament.results_submitted_at = utcnow()
        await session.flush()

        return {
            "tournament_id": tournament.id,
            "status": tournament.status,
            "total_paid": money_to_float(total_paid),
            "payouts": payouts,
            "results": [result_to_dict(r) for r in stored],
        }

    summary = await run_in_transaction(
        database, _settle, description=f"submit_results({tournament_id})"
    )
    logger.info(
        f"Settled tournament {tournament_id}: {summary['payouts']} payout(s), "
        f"{summary['total_paid']} paid"
    )
    await _notify_players(summary)
    return summary


async def get_tournament_results(database, tournament_id: int) -> List[Dict]:
    """Fetch a tournament's results ordered by rank."""
    try:
        async with database.session() as session:
            rows = await session.execute(
                select(TournamentResult)
                .where(TournamentResult.tournament_id == tournament_id)
                .order_by(TournamentResult.rank, TournamentResult.id)
            )
            return [result_to_dict(r) for r in rows.scalars().all()]
    except ConfigurationError as e:
        logger.warning(f"Cannot fetch results for tournament {tournament_id}: {e}")
        return []


async def _notify_players(summary: Dict) -> None:
    try:
        from arena.services.websocket_manager import get_websocket_manager

        manager = get_websocket_manager()
        await manager.send_to_users(
            [result["player_id"] for result in summary["results"]],
            {"type": "tournament_results", "tournament_id": summary["tournament_id"]},
        )
        for result in summary["results"]:
            if result["prize"] > 0:
                await manager.send_to_user(
                    result["player_id"],
                    {
                        "type": "profile_updated",
                        "tournament_id": summary["tournament_id"],
                        "prize": result["prize"],
                    },
                )
    except Exception as e:
        logger.warning(f"Failed to push prize updates for tournament {summary['tournament_id']}: {e}")
