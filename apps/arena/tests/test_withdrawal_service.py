"""
Tests for withdrawal requests and their resolution.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select

from arena.database.models import Transaction, UserProfile
from arena.services import settings_service, withdrawal_service
from arena.services.errors import (
    AccountSuspended,
    InsufficientWinnings,
    InvalidAmount,
    InvalidTransition,
    NotFound,
)


async def _winnings(database, user_id):
    async with database.session() as session:
        user = await session.get(UserProfile, user_id)
        return user.winnings_balance


async def _transaction_types(database, user_id):
    async with database.session() as session:
        result = await session.execute(
            select(Transaction.type).where(Transaction.user_id == user_id).order_by(Transaction.id)
        )
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_request_debits_winnings(database, make_user):
    await make_user("alice", deposit=500, winnings=300)

    result = await withdrawal_service.create_withdrawal_request(database, "alice", 120, " alice@upi ")

    assert result["winnings_balance"] == 180.0
    withdrawal = result["withdrawal"]
    assert withdrawal["status"] == "pending"
    assert withdrawal["amount"] == 120.0
    assert withdrawal["upi_id"] == "alice@upi"
    assert withdrawal["user_name"] == "Alice Tester"
    assert withdrawal["processed_date"] is None
    assert await _transaction_types(database, "alice") == ["withdrawal"]

    # Deposit balance can't be withdrawn and isn't touched
    async with database.session() as session:
        user = await session.get(UserProfile, "alice")
        assert user.deposit_balance == Decimal("500.00")


@pytest.mark.asyncio
async def test_request_below_minimum(database, make_user):
    await make_user("alice", winnings=300)

    with pytest.raises(InvalidAmount, match="Minimum withdrawal amount is ₹100.00"):
        await withdrawal_service.create_withdrawal_request(database, "alice", 99.99, "alice@upi")

    assert await _winnings(database, "alice") == Decimal("300.00")


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -50])
async def test_request_non_positive_amount(database, make_user, amount):
    await make_user("alice", winnings=300)

    with pytest.raises(InvalidAmount, match="Amount must be positive"):
        await withdrawal_service.create_withdrawal_request(database, "alice", amount, "alice@upi")


@pytest.mark.asyncio
async def test_request_more_than_winnings(database, make_user):
    await make_user("alice", deposit=1000, winnings=150)

    with pytest.raises(InsufficientWinnings):
        await withdrawal_service.create_withdrawal_request(database, "alice", 200, "alice@upi")

    assert await _winnings(database, "alice") == Decimal("150.00")
    assert await _transaction_types(database, "alice") == []


@pytest.mark.asyncio
async def test_request_requires_upi(database, make_user):
    await make_user("alice", winnings=300)

    with pytest.raises(ValueError, match="UPI ID is required"):
        await withdrawal_service.create_withdrawal_request(database, "alice", 150, "   ")


@pytest.mark.asyncio
async def test_banned_user_cannot_withdraw(database, make_user):
    await make_user("alice", winnings=300, status="banned")

    with pytest.raises(AccountSuspended):
        await withdrawal_service.create_withdrawal_request(database, "alice", 150, "alice@upi")


@pytest.mark.asyncio
async def test_minimum_follows_setting_override(database, make_user):
    await make_user("alice", winnings=300)
    await settings_service.set_setting(database, settings_service.MIN_WITHDRAWAL_KEY, "250")

    with pytest.raises(InvalidAmount, match="₹250.00"):
        await withdrawal_service.create_withdrawal_request(database, "alice", 200, "alice@upi")

    result = await withdrawal_service.create_withdrawal_request(database, "alice", 250, "alice@upi")
    assert result["winnings_balance"] == 50.0


@pytest.mark.asyncio
async def test_reject_refunds_winnings(database, make_user):
    await make_user("alice", winnings=300)
    created = await withdrawal_service.create_withdrawal_request(database, "alice", 200, "alice@upi")

    result = await withdrawal_service.resolve_withdrawal(
        database, created["withdrawal"]["id"], "rejected"
    )

    assert result["withdrawal"]["status"] == "rejected"
    assert result["withdrawal"]["processed_date"] is not None
    assert result["winnings_balance"] == 300.0
    assert await _winnings(database, "alice") == Decimal("300.00")
    assert await _transaction_types(database, "alice") == ["withdrawal", "refund"]


@pytest.mark.asyncio
async def test_complete_leaves_balance(database, make_user):
    await make_user("alice", winnings=300)
    created = await withdrawal_service.create_withdrawal_request(database, "alice", 200, "alice@upi")

    result = await withdrawal_service.resolve_withdrawal(
        database, created["withdrawal"]["id"], "completed", user_id="alice", amount=200
    )

    assert result["withdrawal"]["status"] == "completed"
    assert result["winnings_balance"] is None
    assert await _winnings(database, "alice") == Decimal("100.00")
    assert await _transaction_types(database, "alice") == ["withdrawal"]


@pytest.mark.asyncio
@pytest.mark.parametrize("first,second", [("rejected", "rejected"), ("completed", "rejected"), ("rejected", "completed")])
async def test_resolve_only_once(database, make_user, first, second):
    await make_user("alice", winnings=300)
    created = await withdrawal_service.create_withdrawal_request(database, "alice", 200, "alice@upi")
    withdrawal_id = created["withdrawal"]["id"]
    await withdrawal_service.resolve_withdrawal(database, withdrawal_id, first)
    balance = await _winnings(database, "alice")

    with pytest.raises(InvalidTransition, match=f"already {first}"):
        await withdrawal_service.resolve_withdrawal(database, withdrawal_id, second)

    assert await _winnings(database, "alice") == balance


@pytest.mark.asyncio
async def test_resolve_mismatched_request(database, make_user):
    await make_user("alice", winnings=300)
    created = await withdrawal_service.create_withdrawal_request(database, "alice", 200, "alice@upi")
    withdrawal_id = created["withdrawal"]["id"]

    with pytest.raises(ValueError, match="different user"):
        await withdrawal_service.resolve_withdrawal(database, withdrawal_id, "rejected", user_id="bob")
    with pytest.raises(ValueError, match="does not match"):
        await withdrawal_service.resolve_withdrawal(database, withdrawal_id, "rejected", amount=150)

    pending = await withdrawal_service.get_user_withdrawal_requests(database, "alice")
    assert pending[0]["status"] == "pending"


@pytest.mark.asyncio
async def test_resolve_unknown_or_bad_decision(database):
    with pytest.raises(NotFound):
        await withdrawal_service.resolve_withdrawal(database, 12345, "completed")
    with pytest.raises(ValueError, match="Invalid withdrawal decision"):
        await withdrawal_service.resolve_withdrawal(database, 12345, "pending")


@pytest.mark.asyncio
async def test_listing_filters_by_status(database, make_user):
    await make_user("alice", winnings=1000)
    await make_user("bob", winnings=1000)
    first = await withdrawal_service.create_withdrawal_request(database, "alice", 100, "alice@upi")
    await withdrawal_service.create_withdrawal_request(database, "bob", 300, "bob@upi")
    await withdrawal_service.resolve_withdrawal(database, first["withdrawal"]["id"], "completed")

    pending = await withdrawal_service.get_all_withdrawal_requests(database, status="pending")
    everything = await withdrawal_service.get_all_withdrawal_requests(database)

    assert [w["user_id"] for w in pending] == ["bob"]
    assert len(everything) == 2
    assert [w["amount"] for w in await withdrawal_service.get_user_withdrawal_requests(database, "alice")] == [100.0]
