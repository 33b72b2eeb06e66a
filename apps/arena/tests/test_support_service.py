"""
Tests for support tickets and their message threads.
"""

from unittest.mock import AsyncMock

import pytest

from arena.services import support_service
from arena.services.errors import NotFound


@pytest.mark.asyncio
async def test_ticket_copies_user_and_tournament(database, make_user, make_tournament):
    await make_user("alice")
    tournament = await make_tournament()

    ticket = await support_service.create_support_ticket(
        database, "alice", "Match Issue", "  Room password was wrong  ", tournament_id=tournament["id"]
    )

    assert ticket["status"] == "open"
    assert ticket["user_name"] == "Alice Tester"
    assert ticket["user_email"] == "alice@example.com"
    assert ticket["tournament_name"] == "Friday Night Scrims"
    assert ticket["description"] == "Room password was wrong"


@pytest.mark.asyncio
async def test_ticket_validation(database, make_user):
    await make_user("alice")

    with pytest.raises(ValueError, match="Invalid issue type"):
        await support_service.create_support_ticket(database, "alice", "Lag", "Too slow")
    with pytest.raises(ValueError, match="Description is required"):
        await support_service.create_support_ticket(database, "alice", "Other", " ")
    with pytest.raises(NotFound):
        await support_service.create_support_ticket(database, "alice", "Other", "Help", tournament_id=77)


@pytest.mark.asyncio
async def test_message_thread_and_push(database, make_user, monkeypatch):
    await make_user("alice")
    ticket = await support_service.create_support_ticket(database, "alice", "Wallet Issue", "Deposit missing")

    manager = AsyncMock()
    monkeypatch.setattr(
        "arena.services.websocket_manager.get_websocket_manager", lambda: manager
    )

    await support_service.add_support_message(database, ticket["id"], "alice", "user", "Any update?")
    reply = await support_service.add_support_message(
        database, ticket["id"], "admin-1", "admin", "Credited now."
    )

    assert reply["sender_type"] == "admin"
    messages = await support_service.get_support_messages(database, ticket["id"])
    assert [m["message"] for m in messages] == ["Any update?", "Credited now."]
    manager.send_to_user.assert_awaited_with(
        "alice", {"type": "support_message", **reply}
    )

    refreshed = await support_service.get_support_ticket(database, ticket["id"])
    assert refreshed["updated_at"] >= ticket["updated_at"]


@pytest.mark.asyncio
async def test_message_validation(database, make_user):
    await make_user("alice")
    ticket = await support_service.create_support_ticket(database, "alice", "Other", "Hello")

    with pytest.raises(ValueError, match="Invalid sender type"):
        await support_service.add_support_message(database, ticket["id"], "alice", "bot", "Hi")
    with pytest.raises(ValueError, match="cannot be empty"):
        await support_service.add_support_message(database, ticket["id"], "alice", "user", "")
    with pytest.raises(NotFound):
        await support_service.add_support_message(database, 999, "alice", "user", "Hi")


@pytest.mark.asyncio
async def test_status_updates_and_listing(database, make_user):
    await make_user("alice")
    await make_user("bob")
    first = await support_service.create_support_ticket(database, "alice", "App Bug", "Crash on launch")
    await support_service.create_support_ticket(database, "bob", "Other", "Question")

    solved = await support_service.update_ticket_status(database, first["id"], "solved")
    assert solved["status"] == "solved"
    with pytest.raises(ValueError, match="Invalid ticket status"):
        await support_service.update_ticket_status(database, first["id"], "closed")

    assert [t["user_id"] for t in await support_service.get_all_support_tickets(database, status="open")] == ["bob"]
    assert len(await support_service.get_all_support_tickets(database)) == 2
    assert [t["id"] for t in await support_service.get_user_support_tickets(database, "alice")] == [first["id"]]
