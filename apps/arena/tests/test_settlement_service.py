"""
Tests for results submission and prize payouts.
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy import select

from arena.database.models import Transaction, UserProfile
from arena.services import settlement_service, tournament_service
from arena.services.errors import InvalidTransition, ResultsAlreadySubmitted
from arena.services.settlement_service import prize_idempotency_key


@pytest_asyncio.fixture
async def ongoing_tournament(database, make_user, make_tournament):
    """Factory: a started tournament with the given players joined."""

    async def _ongoing(*user_ids, entry_fee=50):
        for uid in user_ids:
            await make_user(uid, deposit=100)
        tournament = await make_tournament(entry_fee=entry_fee)
        for uid in user_ids:
            await tournament_service.join_tournament(database, uid, tournament["id"], [f"{uid}_ff"])
        await tournament_service.start_tournament(database, tournament["id"], "7001", "secret")
        return tournament

    return _ongoing


async def _profile(database, user_id):
    async with database.session() as session:
        return await session.get(UserProfile, user_id)


async def _prize_transactions(database):
    async with database.session() as session:
        query = select(Transaction).where(Transaction.type == "prize").order_by(Transaction.id)
        result = await session.execute(query)
        return result.scalars().all()


@pytest.mark.asyncio
async def test_submit_results_pays_winners(database, ongoing_tournament):
    tournament = await ongoing_tournament("alice", "bob", "carol")

    summary = await settlement_service.submit_results(
        database,
        tournament["id"],
        [
            {"player_id": "alice", "rank": 1, "kills": 9, "prize": 300},
            {"player_id": "bob", "rank": 2, "kills": 4, "prize": 150.5},
            {"player_id": "carol", "rank": 3, "kills": 0, "prize": 0},
        ],
    )

    assert summary["status"] == "completed"
    assert summary["payouts"] == 2
    assert summary["total_paid"] == 450.5
    assert [r["player_id"] for r in summary["results"]] == ["alice", "bob", "carol"]

    alice = await _profile(database, "alice")
    assert alice.winnings_balance == Decimal("300.00")
    assert alice.total_earnings == Decimal("300.00")
    assert alice.wins == 1
    bob = await _profile(database, "bob")
    assert bob.winnings_balance == Decimal("150.50")
    assert bob.wins == 0
    carol = await _profile(database, "carol")
    assert carol.winnings_balance == Decimal("0.00")

    prizes = await _prize_transactions(database)
    assert [(t.user_id, t.amount) for t in prizes] == [
        ("alice", Decimal("300.00")),
        ("bob", Decimal("150.50")),
    ]
    assert prizes[0].idempotency_key == prize_idempotency_key(tournament["id"], "alice")


@pytest.mark.asyncio
async def test_submit_results_notifies_players(database, ongoing_tournament, monkeypatch):
    tournament = await ongoing_tournament("alice", "bob")
    manager = AsyncMock()
    monkeypatch.setattr(
        "arena.services.websocket_manager.get_websocket_manager", lambda: manager
    )

    await settlement_service.submit_results(
        database,
        tournament["id"],
        [
            {"player_id": "alice", "rank": 1, "kills": 6, "prize": 200},
            {"player_id": "bob", "rank": 2, "kills": 1, "prize": 0},
        ],
    )

    players, message = manager.send_to_users.await_args.args
    assert sorted(players) == ["alice", "bob"]
    assert message == {"type": "tournament_results", "tournament_id": tournament["id"]}
    manager.send_to_user.assert_awaited_once()
    user_id, payload = manager.send_to_user.await_args.args
    assert user_id == "alice"
    assert payload["prize"] == 200.0
    assert prizes[0].description == 'Prize from "Friday Night Scrims"'


@pytest.mark.asyncio
async def test_results_keep_participant_snapshot(database, ongoing_tournament):
    tournament = await ongoing_tournament("alice")
    await settlement_service.submit_results(
        database, tournament["id"], [{"player_id": "alice", "rank": 1, "kills": 3, "prize": 100}]
    )

    results = await settlement_service.get_tournament_results(database, tournament["id"])
    assert results[0]["in_game_name"] == "alice_ff"
    assert results[0]["name"] == "Alice Tester"

    settled = await tournament_service.get_tournament(database, tournament["id"])
    assert settled["status"] == "completed"
    assert settled["results_submitted_at"] is not None
    assert [r["player_id"] for r in settled["results"]] == ["alice"]


@pytest.mark.asyncio
async def test_results_cannot_be_submitted_twice(database, ongoing_tournament):
    tournament = await ongoing_tournament("alice")
    results = [{"player_id": "alice", "rank": 1, "kills": 3, "prize": 100}]
    await settlement_service.submit_results(database, tournament["id"], results)

    with pytest.raises(ResultsAlreadySubmitted):
        await settlement_service.submit_results(database, tournament["id"], results)

    alice = await _profile(database, "alice")
    assert alice.winnings_balance == Decimal("100.00")
    assert len(await _prize_transactions(database)) == 1


@pytest.mark.asyncio
async def test_concurrent_submissions_pay_once(database, ongoing_tournament):
    tournament = await ongoing_tournament("alice")
    results = [{"player_id": "alice", "rank": 1, "kills": 3, "prize": 100}]

    outcomes = await asyncio.gather(
        *[settlement_service.submit_results(database, tournament["id"], results) for _ in range(3)],
        return_exceptions=True,
    )

    assert sum(1 for o in outcomes if isinstance(o, dict)) == 1
    assert sum(1 for o in outcomes if isinstance(o, ResultsAlreadySubmitted)) == 2
    alice = await _profile(database, "alice")
    assert alice.winnings_balance == Decimal("100.00")


@pytest.mark.asyncio
async def test_results_need_an_ongoing_tournament(database, make_user, make_tournament):
    await make_user("alice", deposit=100)
    tournament = await make_tournament(entry_fee=10)
    await tournament_service.join_tournament(database, "alice", tournament["id"], ["AliceFF"])

    with pytest.raises(InvalidTransition):
        await settlement_service.submit_results(
            database, tournament["id"], [{"player_id": "alice", "rank": 1, "kills": 0, "prize": 10}]
        )

    await tournament_service.cancel_tournament(database, tournament["id"])
    with pytest.raises(InvalidTransition):
        await settlement_service.submit_results(
            database, tournament["id"], [{"player_id": "alice", "rank": 1, "kills": 0, "prize": 10}]
        )


@pytest.mark.asyncio
async def test_non_participant_aborts_whole_settlement(database, make_user, ongoing_tournament):
    tournament = await ongoing_tournament("alice")
    await make_user("mallory")

    with pytest.raises(ValueError, match="mallory"):
        await settlement_service.submit_results(
            database,
            tournament["id"],
            [
                {"player_id": "alice", "rank": 1, "kills": 3, "prize": 100},
                {"player_id": "mallory", "rank": 2, "kills": 0, "prize": 50},
            ],
        )

    alice = await _profile(database, "alice")
    assert alice.winnings_balance == Decimal("0.00")
    assert await settlement_service.get_tournament_results(database, tournament["id"]) == []
    assert (await tournament_service.get_tournament(database, tournament["id"]))["status"] == "ongoing"


@pytest.mark.parametrize(
    "results,message",
    [
        ([], "At least one result"),
        ([{"rank": 1, "kills": 0, "prize": 0}], "player_id"),
        (
            [
                {"player_id": "alice", "rank": 1, "kills": 0, "prize": 0},
                {"player_id": "alice", "rank": 2, "kills": 0, "prize": 0},
            ],
            "Duplicate",
        ),
        ([{"player_id": "alice", "rank": 0, "kills": 0, "prize": 0}], "Rank"),
        ([{"player_id": "alice", "rank": 1, "kills": -1, "prize": 0}], "Kills"),
        ([{"player_id": "alice", "rank": 1, "kills": 0, "prize": -5}], "Prize"),
    ],
)
def test_malformed_results(results, message):
    with pytest.raises(ValueError, match=message):
        settlement_service._validate_results(results)
