"""
Tests for tournament admin CRUD and lifecycle transitions.
"""

from datetime import timedelta

import pytest

from arena.services import game_service, tournament_service
from arena.services.errors import InvalidTransition, NotFound
from arena.services.tournament_service import check_transition
from arena.utils.datetime_utils import utcnow


@pytest.mark.asyncio
async def test_create_tournament_snapshots_game(database, make_tournament):
    tournament = await make_tournament(entry_fee=60, max_players=48)

    assert tournament["status"] == "upcoming"
    assert tournament["players_joined"] == 0
    assert tournament["max_players"] == 48
    assert tournament["entry_fee"] == 60.0
    assert tournament["game_name"] == "Free Fire"
    assert tournament["game_image_url"] == "https://images.example.com/free-fire.png"
    assert tournament["room_id"] is None


@pytest.mark.asyncio
async def test_create_tournament_unknown_game(database):
    with pytest.raises(NotFound):
        await tournament_service.create_tournament(
            database,
            name="Ghost Cup",
            game_id=404,
            entry_fee=10,
            prize_pool=100,
            per_kill_reward=0,
            start_time=utcnow() + timedelta(hours=2),
            max_players=10,
            team_type="solo",
        )


@pytest.mark.asyncio
async def test_create_tournament_rejects_bad_team_type(database):
    game = await game_service.add_game(database, "BGMI", "")
    with pytest.raises(ValueError, match="team type"):
        await tournament_service.create_tournament(
            database,
            name="Trio Cup",
            game_id=game["id"],
            entry_fee=10,
            prize_pool=100,
            per_kill_reward=0,
            start_time=utcnow(),
            max_players=10,
            team_type="trio",
        )


@pytest.mark.parametrize(
    "current,target",
    [
        ("upcoming", "ongoing"),
        ("upcoming", "cancelled"),
        ("ongoing", "completed"),
        ("ongoing", "cancelled"),
    ],
)
def test_allowed_transitions(current, target):
    check_transition(current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        ("upcoming", "completed"),
        ("ongoing", "upcoming"),
        ("completed", "cancelled"),
        ("completed", "ongoing"),
        ("cancelled", "upcoming"),
        ("cancelled", "ongoing"),
    ],
)
def test_forbidden_transitions(current, target):
    with pytest.raises(InvalidTransition):
        check_transition(current, target)


@pytest.mark.asyncio
async def test_start_tournament_publishes_room(database, make_tournament):
    tournament = await make_tournament()

    started = await tournament_service.start_tournament(database, tournament["id"], "8812345", "ff2024")

    assert started["status"] == "ongoing"
    assert started["room_id"] == "8812345"
    assert started["room_password"] == "ff2024"

    with pytest.raises(InvalidTransition):
        await tournament_service.start_tournament(database, tournament["id"], "1", "2")


@pytest.mark.asyncio
async def test_update_room_details(database, make_tournament):
    tournament = await make_tournament()
    await tournament_service.start_tournament(database, tournament["id"], "111", "a")

    updated = await tournament_service.update_room_details(database, tournament["id"], "222", "b")

    assert updated["room_id"] == "222"
    assert updated["room_password"] == "b"


@pytest.mark.asyncio
async def test_cancel_keeps_entry_fees(database, make_user, make_tournament):
    await make_user("alice", deposit=100)
    tournament = await make_tournament(entry_fee=40)
    await tournament_service.join_tournament(database, "alice", tournament["id"], ["AliceFF"])

    cancelled = await tournament_service.cancel_tournament(database, tournament["id"])

    assert cancelled["status"] == "cancelled"
    assert (await tournament_service.get_tournament(database, tournament["id"]))["players_joined"] == 1
    with pytest.raises(InvalidTransition):
        await tournament_service.cancel_tournament(database, tournament["id"])
    with pytest.raises(InvalidTransition):
        await tournament_service.update_room_details(database, tournament["id"], "1", "2")


@pytest.mark.asyncio
async def test_update_tournament_fields(database, make_tournament):
    tournament = await make_tournament()

    updated = await tournament_service.update_tournament(
        database, tournament["id"], {"name": "Sunday Showdown", "prize_pool": 750, "map": "Kalahari"}
    )

    assert updated["name"] == "Sunday Showdown"
    assert updated["prize_pool"] == 750.0
    assert updated["map"] == "Kalahari"


@pytest.mark.asyncio
async def test_update_tournament_rejects_lifecycle_fields(database, make_tournament):
    tournament = await make_tournament()

    with pytest.raises(ValueError, match="cannot be updated"):
        await tournament_service.update_tournament(database, tournament["id"], {"status": "completed"})
    with pytest.raises(ValueError, match="cannot be updated"):
        await tournament_service.update_tournament(database, tournament["id"], {"players_joined": 0})


@pytest.mark.asyncio
async def test_max_players_cannot_drop_below_joined(database, make_user, make_tournament):
    await make_user("alice", deposit=100)
    await make_user("bob", deposit=100)
    tournament = await make_tournament(entry_fee=10, max_players=10)
    await tournament_service.join_tournament(database, "alice", tournament["id"], ["AliceFF"])
    await tournament_service.join_tournament(database, "bob", tournament["id"], ["BobFF"])

    with pytest.raises(ValueError, match="max_players"):
        await tournament_service.update_tournament(database, tournament["id"], {"max_players": 1})

    updated = await tournament_service.update_tournament(database, tournament["id"], {"max_players": 2})
    assert updated["max_players"] == 2


@pytest.mark.asyncio
async def test_entry_fee_fixed_after_joins(database, make_user, make_tournament):
    await make_user("alice", deposit=100)
    tournament = await make_tournament(entry_fee=10)
    await tournament_service.join_tournament(database, "alice", tournament["id"], ["AliceFF"])

    with pytest.raises(InvalidTransition):
        await tournament_service.update_tournament(database, tournament["id"], {"entry_fee": 5})


@pytest.mark.asyncio
async def test_delete_tournament(database, make_user, make_tournament):
    empty = await make_tournament(name="Empty Cup")
    joined = await make_tournament(name="Busy Cup", entry_fee=10)
    await make_user("alice", deposit=100)
    await tournament_service.join_tournament(database, "alice", joined["id"], ["AliceFF"])

    await tournament_service.delete_tournament(database, empty["id"])
    assert await tournament_service.get_tournament(database, empty["id"]) is None

    with pytest.raises(InvalidTransition):
        await tournament_service.delete_tournament(database, joined["id"])


@pytest.mark.asyncio
async def test_listings(database, make_user, make_tournament):
    first = await make_tournament(name="Cup A")
    second = await make_tournament(name="Cup B")
    await tournament_service.start_tournament(database, second["id"], "9", "x")
    await make_user("alice", deposit=100)
    await tournament_service.join_tournament(database, "alice", first["id"], ["AliceFF"])

    by_game = await tournament_service.get_tournaments_by_game(database, first["game_id"])
    assert {t["name"] for t in by_game} == {"Cup A", "Cup B"}

    ongoing = await tournament_service.get_all_tournaments(database, status="ongoing")
    assert [t["name"] for t in ongoing] == ["Cup B"]

    joined = await tournament_service.get_user_joined_tournaments(database, "alice")
    assert [t["id"] for t in joined] == [first["id"]]

    games = await game_service.get_games(database)
    assert games[0]["tournament_count"] == 2


@pytest.mark.asyncio
async def test_game_with_tournaments_cannot_be_deleted(database, make_tournament):
    tournament = await make_tournament()

    with pytest.raises(InvalidTransition):
        await game_service.delete_game(database, tournament["game_id"])

    await tournament_service.delete_tournament(database, tournament["id"])
    await game_service.delete_game(database, tournament["game_id"])
    assert await game_service.get_game(database, tournament["game_id"]) is None


@pytest.mark.asyncio
async def test_game_hint_from_name(database):
    game = await game_service.add_game(database, "Call Of Duty Mobile", "")
    assert game["hint"] == "call_of_duty_mobile"
