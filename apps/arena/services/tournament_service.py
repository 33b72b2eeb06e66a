"""
Tournament service: admin CRUD, lifecycle transitions and the join protocol.

Joining is one atomic section over three rows (tournament, user, participant).
The tournament row is versioned, so two joins racing for the last slot can't
both commit: the loser's UPDATE matches no row, the transaction is retried, and
the fresh read sees the tournament full.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from arena.database.models import (
    Game,
    TEAM_SIZES,
    Tournament,
    TournamentParticipant,
    TournamentResult,
    TournamentStatus,
    TransactionType,
    UserProfile,
    UserStatus,
)
from arena.database.transactions import run_in_transaction
from arena.services.errors import (
    AccountSuspended,
    AlreadyJoined,
    ConfigurationError,
    InsufficientBalance,
    InvalidTeam,
    InvalidTransition,
    NotFound,
    TournamentClosed,
    TournamentFull,
)
from arena.services.ledger_service import append_transaction, get_user_for_update
from arena.utils.datetime_utils import isoformat
from arena.utils.money import money_to_float, to_money
import logging

logger = logging.getLogger(__name__)

# Lifecycle: status -> statuses it may move to
ALLOWED_TRANSITIONS = {
    TournamentStatus.UPCOMING.value: {TournamentStatus.ONGOING.value, TournamentStatus.CANCELLED.value},
    TournamentStatus.ONGOING.value: {TournamentStatus.COMPLETED.value, TournamentStatus.CANCELLED.value},
    TournamentStatus.COMPLETED.value: set(),
    TournamentStatus.CANCELLED.value: set(),
}

# Descriptive fields admins can edit directly; status, counters and results
# only change through the lifecycle operations below
EDITABLE_FIELDS = {
    "name",
    "entry_fee",
    "prize_pool",
    "prize_description",
    "per_kill_reward",
    "start_time",
    "max_players",
    "map",
    "mode",
    "team_type",
    "rules",
}

MONEY_FIELDS = {"entry_fee", "prize_pool", "per_kill_reward"}


def tournament_to_dict(tournament: Tournament, results: Optional[Sequence[TournamentResult]] = None) -> Dict:
    """Serialize a tournament; results are included when supplied."""
    return {
        "id": tournament.id,
        "name": tournament.name,
        "game_id": tournament.game_id,
        "game_name": tournament.game_name,
        "game_image_url": tournament.game_image_url,
        "entry_fee": money_to_float(tournament.entry_fee),
        "prize_pool": money_to_float(tournament.prize_pool),
        "prize_description": tournament.prize_description,
        "per_kill_reward": money_to_float(tournament.per_kill_reward),
        "start_time": isoformat(tournament.start_time),
        "status": tournament.status,
        "players_joined": tournament.players_joined,
        "max_players": tournament.max_players,
        "map": tournament.map,
        "mode": tournament.mode,
        "team_type": tournament.team_type,
        "rules": tournament.rules,
        "room_id": tournament.room_id,
        "room_password": tournament.room_password,
        "results_submitted_at": isoformat(tournament.results_submitted_at),
        "results": [result_to_dict(r) for r in results] if results is not None else [],
    }


def participant_to_dict(participant: TournamentParticipant) -> Dict:
    return {
        "id": participant.user_id,
        "name": participant.name,
        "email": participant.email,
        "in_game_name": participant.in_game_name,
        "team_members": [{"in_game_name": n} for n in participant.team_members or []],
        "join_time": isoformat(participant.join_time),
    }


def result_to_dict(result: TournamentResult) -> Dict:
    return {
        "player_id": result.player_id,
        "rank": result.rank,
        "kills": result.kills,
        "prize": money_to_float(result.prize),
        "name": result.name,
        "email": result.email,
        "in_game_name": result.in_game_name,
        "team_members": [{"in_game_name": n} for n in result.team_members or []],
    }


def check_transition(current: str, target: str) -> None:
    """
    Validate a lifecycle transition.

    Raises:
        InvalidTransition: If ``target`` isn't reachable from ``current``
    """
    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise InvalidTransition(f"Cannot move tournament from {current} to {target}")


async def get_tournament_for_update(session: AsyncSession, tournament_id: int) -> Tournament:
    """
    Load a tournament inside an atomic section.

    Raises:
        NotFound: If the tournament doesn't exist
    """
    tournament = await session.get(Tournament, tournament_id)
    if tournament is None:
        raise NotFound("Tournament does not exist.")
    return tournament


def _validate_team_type(team_type: str) -> None:
    if team_type not in TEAM_SIZES:
        raise ValueError(f"Invalid team type: {team_type}")


def _validate_money(field: str, value) -> Decimal:
    amount = to_money(value)
    if amount < 0:
        raise ValueError(f"{field} cannot be negative")
    return amount


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_tournament(database, tournament_id: int, include_results: bool = True) -> Optional[Dict]:
    """Fetch one tournament, with its results once completed."""
    try:
        async with database.session() as session:
            tournament = await session.get(Tournament, tournament_id)
            if tournament is None:
                return None
            results = None
            if include_results:
                rows = await session.execute(
                    select(TournamentResult)
                    .where(TournamentResult.tournament_id == tournament_id)
                    .order_by(TournamentResult.rank, TournamentResult.id)
                )
                results = rows.scalars().all()
            return tournament_to_dict(tournament, results)
    except ConfigurationError as e:
        logger.warning(f"Cannot fetch tournament {tournament_id}: {e}")
        return None


async def get_tournaments_by_game(database, game_id: int) -> List[Dict]:
    """Fetch all tournaments for a game, soonest first. Participants aren't loaded."""
    try:
        async with database.session() as session:
            result = await session.execute(
                select(Tournament)
                .where(Tournament.game_id == game_id)
                .order_by(Tournament.start_time, Tournament.id)
            )
            return [tournament_to_dict(t) for t in result.scalars().all()]
    except ConfigurationError as e:
        logger.warning(f"Cannot fetch tournaments for game {game_id}: {e}")
        return []


async def get_all_tournaments(database, status: Optional[str] = None) -> List[Dict]:
    """Fetch all tournaments for the admin panel, optionally filtered by status."""
    try:
        async with database.session() as session:
            query = select(Tournament).order_by(Tournament.start_time.desc(), Tournament.id.desc())
            if status:
                query = query.where(Tournament.status == status)
            result = await session.execute(query)
            return [tournament_to_dict(t) for t in result.scalars().all()]
    except ConfigurationError as e:
        logger.warning(f"Cannot fetch tournaments: {e}")
        return []


async def get_tournament_participants(database, tournament_id: int) -> List[Dict]:
    """Fetch the players who joined a tournament, in join order."""
    try:
        async with database.session() as session:
            result = await session.execute(
                select(TournamentParticipant)
                .where(TournamentParticipant.tournament_id == tournament_id)
                .order_by(TournamentParticipant.join_time, TournamentParticipant.id)
            )
            return [participant_to_dict(p) for p in result.scalars().all()]
    except ConfigurationError as e:
        logger.warning(f"Cannot fetch participants for tournament {tournament_id}: {e}")
        return []


async def get_user_joined_tournaments(database, user_id: str) -> List[Dict]:
    """Fetch the tournaments a user has joined, most recent join first."""
    try:
        async with database.session() as session:
            result = await session.execute(
                select(Tournament)
                .join(TournamentParticipant, TournamentParticipant.tournament_id == Tournament.id)
                .where(TournamentParticipant.user_id == user_id)
                .order_by(TournamentParticipant.join_time.desc(), Tournament.id.desc())
            )
            return [tournament_to_dict(t) for t in result.scalars().all()]
    except ConfigurationError as e:
        logger.warning(f"Cannot fetch joined tournaments for user {user_id}: {e}")
        return []


async def has_user_joined(database, user_id: str, tournament_id: int) -> bool:
    try:
        async with database.session() as session:
            result = await session.execute(
                select(TournamentParticipant.id).where(
                    TournamentParticipant.tournament_id == tournament_id,
                    TournamentParticipant.user_id == user_id,
                )
            )
            return result.scalar_one_or_none() is not None
    except ConfigurationError as e:
        logger.warning(f"Cannot check participation of user {user_id}: {e}")
        return False


# ---------------------------------------------------------------------------
# Admin CRUD
# ---------------------------------------------------------------------------


async def create_tournament(
    database,
    name: str,
    game_id: int,
    entry_fee,
    prize_pool,
    per_kill_reward,
    start_time: datetime,
    max_players: int,
    team_type: str,
    prize_description: Optional[str] = None,
    map: Optional[str] = None,
    mode: Optional[str] = None,
    rules: Optional[str] = None,
) -> Dict:
    """
    Create a tournament in the upcoming state with no players.

    The game's name and image are copied onto the tournament.

    Raises:
        NotFound: If the game doesn't exist
        ValueError: If a value is out of range
    """
    _validate_team_type(team_type)
    if max_players < 1:
        raise ValueError("max_players must be at least 1")
    fees = {
        "entry_fee": _validate_money("entry_fee", entry_fee),
        "prize_pool": _validate_money("prize_pool", prize_pool),
        "per_kill_reward": _validate_money("per_kill_reward", per_kill_reward),
    }

    async def _create(session: AsyncSession) -> Dict:
        game = await session.get(Game, game_id)
        if game is None:
            raise NotFound("Game not found")
        tournament = Tournament(
            name=name,
            game_id=game.id,
            game_name=game.name,
            game_image_url=game.image_url,
            start_time=start_time,
            max_players=max_players,
            team_type=team_type,
            prize_description=prize_description,
            map=map,
            mode=mode,
            rules=rules,
            status=TournamentStatus.UPCOMING.value,
            players_joined=0,
            **fees,
        )
        session.add(tournament)
        await session.flush()
        return tournament_to_dict(tournament)

    tournament = await run_in_transaction(database, _create, description="create_tournament")
    logger.info(f"Created tournament {tournament['id']} ({name}) for game {game_id}")
    return tournament


async def update_tournament(database, tournament_id: int, data: Dict) -> Dict:
    """
    Update a tournament's descriptive fields.

    Raises:
        NotFound: If the tournament doesn't exist
        ValueError: If a field isn't editable or a value is out of range
        InvalidTransition: If the tournament is already completed or cancelled
    """
    updates = {k: v for k, v in data.items() if v is not None}
    forbidden = set(updates) - EDITABLE_FIELDS
    if forbidden:
        raise ValueError(f"Fields cannot be updated: {', '.join(sorted(forbidden))}")
    for field in MONEY_FIELDS & set(updates):
        updates[field] = _validate_money(field, updates[field])
    if "team_type" in updates:
        _validate_team_type(updates["team_type"])

    async def _update(session: AsyncSession) -> Dict:
        tournament = await get_tournament_for_update(session, tournament_id)
        if tournament.status in (TournamentStatus.COMPLETED.value, TournamentStatus.CANCELLED.value):
            raise InvalidTransition(f"Cannot edit a {tournament.status} tournament")
        if "max_players" in updates and updates["max_players"] < tournament.players_joined:
            raise ValueError(
                f"max_players cannot be lower than the {tournament.players_joined} players already joined"
            )
        if tournament.players_joined > 0 and (
            ("entry_fee" in updates and updates["entry_fee"] != to_money(tournament.entry_fee))
            or ("team_type" in updates and updates["team_type"] != tournament.team_type)
        ):
            raise InvalidTransition("Entry fee and team type are fixed once players have joined")
        for field, value in updates.items():
            setattr(tournament, field, value)
        await session.flush()
        return tournament_to_dict(tournament)

    tournament = await run_in_transaction(
        database, _update, description=f"update_tournament({tournament_id})"
    )
    logger.info(f"Updated tournament {tournament_id}: {', '.join(sorted(updates))}")
    return tournament


async def delete_tournament(database, tournament_id: int) -> None:
    """
    Delete a tournament nobody has joined.

    Raises:
        NotFound: If the tournament doesn't exist
        InvalidTransition: If players already paid entry fees into it
    """

    async def _delete(session: AsyncSession) -> None:
        tournament = await get_tournament_for_update(session, tournament_id)
        if tournament.players_joined > 0:
            raise InvalidTransition(
                "Cannot delete a tournament with participants; cancel it instead"
            )
        await session.delete(tournament)

    await run_in_transaction(database, _delete, description=f"delete_tournament({tournament_id})")
    logger.info(f"Deleted tournament {tournament_id}")


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


async def start_tournament(database, tournament_id: int, room_id: str, room_password: str) -> Dict:
    """
    Move an upcoming tournament to ongoing and publish the room details.

    Raises:
        NotFound: If the tournament doesn't exist
        InvalidTransition: If the tournament isn't upcoming
    """
    if not room_id:
        raise ValueError("room_id is required to start a tournament")

    async def _start(session: AsyncSession) -> Dict:
        tournament = await get_tournament_for_update(session, tournament_id)
        check_transition(tournament.status, TournamentStatus.ONGOING.value)
        tournament.status = TournamentStatus.ONGOING.value
        tournament.room_id = room_id
        tournament.room_password = room_password
        await session.flush()
        return tournament_to_dict(tournament)

    tournament = await run_in_transaction(
        database, _start, description=f"start_tournament({tournament_id})"
    )
    logger.info(f"Tournament {tournament_id} is now ongoing")
    return tournament


async def update_room_details(database, tournament_id: int, room_id: str, room_password: str) -> Dict:
    """Change room credentials of an upcoming or ongoing tournament."""

    async def _update(session: AsyncSession) -> Dict:
        tournament = await get_tournament_for_update(session, tournament_id)
        if tournament.status not in (TournamentStatus.UPCOMING.value, TournamentStatus.ONGOING.value):
            raise InvalidTransition(f"Cannot change room details of a {tournament.status} tournament")
        tournament.room_id = room_id
        tournament.room_password = room_password
        await session.flush()
        return tournament_to_dict(tournament)

    return await run_in_transaction(
        database, _update, description=f"update_room_details({tournament_id})"
    )


async def cancel_tournament(database, tournament_id: int) -> Dict:
    """
    Cancel an upcoming or ongoing tournament.

    Entry fees are not refunded automatically; admins refund participants
    through wallet adjustments.

    Raises:
        NotFound: If the tournament doesn't exist
        InvalidTransition: If the tournament is completed or already cancelled
    """

    async def _cancel(session: AsyncSession) -> Dict:
        tournament = await get_tournament_for_update(session, tournament_id)
        check_transition(tournament.status, TournamentStatus.CANCELLED.value)
        tournament.status = TournamentStatus.CANCELLED.value
        await session.flush()
        return tournament_to_dict(tournament)

    tournament = await run_in_transaction(
        database, _cancel, description=f"cancel_tournament({tournament_id})"
    )
    logger.info(
        f"Tournament {tournament_id} cancelled with {tournament['players_joined']} participant(s); "
        "entry fees need manual refunds"
    )
    return tournament


# ---------------------------------------------------------------------------
# Join protocol
# ---------------------------------------------------------------------------


def compute_entry_fee_debit(deposit: Decimal, winnings: Decimal, entry_fee: Decimal):
    """
    Split an entry fee across the two balances: deposit first, then winnings.

    Args:
        deposit: Current deposit balance
        winnings: Current winnings balance
        entry_fee: Fee to charge

    Returns:
        Tuple of (new_deposit, new_winnings)

    Raises:
        InsufficientBalance: If winnings would end up negative
    """
    if deposit >= entry_fee:
        new_deposit = deposit - entry_fee
        new_winnings = winnings
    else:
        shortfall = entry_fee - deposit
        new_deposit = Decimal("0.00")
        new_winnings = winnings - shortfall
    if new_deposit < 0 or new_winnings < 0:
        raise InsufficientBalance("Insufficient balance.")
    return new_deposit, new_winnings


def _normalize_team(team_member_names: Sequence[str], team_type: str) -> List[str]:
    names = [n.strip() for n in team_member_names if n and n.strip()]
    if len(names) != len(team_member_names):
        raise InvalidTeam("In-game names cannot be empty")
    required = TEAM_SIZES.get(team_type, 1)
    if len(names) != required:
        raise InvalidTeam(
            f"A {team_type} tournament needs exactly {required} in-game name(s), got {len(names)}"
        )
    return names


async def join_tournament(
    database, user_id: str, tournament_id: int, team_member_names: Sequence[str]
) -> Dict:
    """
    Admit a user into a tournament exactly once, charging the entry fee.

    Args:
        database: Storage client
        user_id: Joining user (team leader)
        tournament_id: Tournament to join
        team_member_names: In-game names, leader first

    Returns:
        Dict with the participant record, new balances and the ledger entry

    Raises:
        NotFound: If the user or tournament doesn't exist
        InsufficientBalance: If deposit + winnings can't cover the entry fee
        TournamentClosed: If the tournament isn't accepting players
        AccountSuspended: If the user is banned
        InvalidTeam: If the roster doesn't match the team type
        TournamentFull: If every slot is taken
        AlreadyJoined: If the user already joined this tournament
    """
    if not team_member_names:
        raise InvalidTeam("At least one in-game name is required")

    # Fail fast before the atomic section; re-validated inside it
    async with database.session() as session:
        user = await session.get(UserProfile, user_id)
        tournament = await session.get(Tournament, tournament_id)
        if user is None or tournament is None:
            raise NotFound("Tournament or user does not exist!")
        total_balance = to_money(user.deposit_balance) + to_money(user.winnings_balance)
        if total_balance < to_money(tournament.entry_fee):
            raise InsufficientBalance("Insufficient balance.")

    async def _join(session: AsyncSession) -> Dict:
        tournament = await get_tournament_for_update(session, tournament_id)
        user = await get_user_for_update(session, user_id)

        if tournament.status != TournamentStatus.UPCOMING.value:
            raise TournamentClosed("This tournament is no longer accepting players.")
        if user.status == UserStatus.BANNED.value:
            raise AccountSuspended("Your account is suspended.")
        team = _normalize_team(team_member_names, tournament.team_type)

        if tournament.players_joined >= tournament.max_players:
            raise TournamentFull("Tournament is full.")

        existing = await session.execute(
            select(TournamentParticipant.id).where(
                TournamentParticipant.tournament_id == tournament_id,
                TournamentParticipant.user_id == user_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise AlreadyJoined("You have already joined this tournament.")

        entry_fee = to_money(tournament.entry_fee)
        new_deposit, new_winnings = compute_entry_fee_debit(
            to_money(user.deposit_balance), to_money(user.winnings_balance), entry_fee
        )

        tournament.players_joined = tournament.players_joined + 1
        user.deposit_balance = new_deposit
        user.winnings_balance = new_winnings
        user.tournaments_played = user.tournaments_played + 1

        participant = TournamentParticipant(
            tournament_id=tournament.id,
            user_id=user.id,
            name=user.name,
            email=user.email,
            in_game_name=team[0],
            team_members=team,
        )
        session.add(participant)
        entry = append_transaction(
            session,
            user.id,
            TransactionType.JOIN_FEE.value,
            -entry_fee,
            f'Joined "{tournament.name}"',
        )
        await session.flush()

        return {
            "tournament_id": tournament.id,
            "participant": participant_to_dict(participant),
            "players_joined": tournament.players_joined,
            "deposit_balance": money_to_float(user.deposit_balance),
            "winnings_balance": money_to_float(user.winnings_balance),
            "transaction": {
                "id": entry.id,
                "type": entry.type,
                "amount": money_to_float(entry.amount),
                "description": entry.description,
            },
        }

    result = await run_in_transaction(
        database, _join, description=f"join_tournament({user_id}, {tournament_id})"
    )
    logger.info(
        f"User {user_id} joined tournament {tournament_id} "
        f"({result['players_joined']} joined, fee {-result['transaction']['amount']})"
    )
    await _notify_joined(user_id, result)
    return result


async def _notify_joined(user_id: str, result: Dict) -> None:
    try:
        from arena.services.websocket_manager import get_websocket_manager

        await get_websocket_manager().send_to_user(
            user_id,
            {
                "type": "profile_updated",
                "deposit_balance": result["deposit_balance"],
                "winnings_balance": result["winnings_balance"],
                "tournament_id": result["tournament_id"],
            },
        )
    except Exception as e:
        logger.warning(f"Failed to push join update for user {user_id}: {e}")
