"""
Withdrawal requests against the winnings balance.

Creating a request debits winnings immediately, so the money can't be spent
twice while an admin reviews it. Rejection refunds it; completion only
records that the payout went out.
"""

from typing import Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from arena.database.models import (
    TransactionType,
    UserStatus,
    WalletType,
    WithdrawalRequest,
    WithdrawalStatus,
)
from arena.database.transactions import run_in_transaction
from arena.services.errors import (
    AccountSuspended,
    ConfigurationError,
    InsufficientWinnings,
    InvalidAmount,
    InvalidTransition,
    NotFound,
)
from arena.services.ledger_service import apply_balance_change, get_user_for_update
from arena.services.settings_service import get_min_withdrawal
from arena.utils.datetime_utils import isoformat, utcnow
from arena.utils.money import Number, format_inr, money_to_float, to_money
import logging

logger = logging.getLogger(__name__)

RESOLUTIONS = {WithdrawalStatus.COMPLETED.value, WithdrawalStatus.REJECTED.value}


def withdrawal_to_dict(withdrawal: WithdrawalRequest) -> Dict:
    return {
        "id": withdrawal.id,
        "user_id": withdrawal.user_id,
        "user_name": withdrawal.user_name,
        "user_email": withdrawal.user_email,
        "amount": money_to_float(withdrawal.amount),
        "upi_id": withdrawal.upi_id,
        "status": withdrawal.status,
        "request_date": isoformat(withdrawal.request_date),
        "processed_date": isoformat(withdrawal.processed_date),
    }


async def create_withdrawal_request(database, user_id: str, amount: Number, upi_id: str) -> Dict:
    """
    Request a payout of winnings to a UPI id.

    Args:
        database: Storage client
        user_id: Requesting user
        amount: Amount to withdraw
        upi_id: Payout destination

    Returns:
        Dict with the pending request and the user's new winnings balance

    Raises:
        InvalidAmount: If amount is not positive or below the minimum withdrawal
        InsufficientWinnings: If winnings can't cover the amount
        AccountSuspended: If the user is banned
        NotFound: If the user doesn't exist
    """
    value = to_money(amount)
    if value <= 0:
        raise InvalidAmount("Amount must be positive.")
    minimum = await get_min_withdrawal(database)
    if value < minimum:
        raise InvalidAmount(f"Minimum withdrawal amount is {format_inr(minimum)}.")
    if not upi_id or not upi_id.strip():
        raise ValueError("UPI ID is required")
    upi_id = upi_id.strip()

    async def _create(session: AsyncSession) -> Dict:
        user = await get_user_for_update(session, user_id)
        if user.status == UserStatus.BANNED.value:
            raise AccountSuspended("Your account is suspended.")
        if value > to_money(user.winnings_balance):
            raise InsufficientWinnings("Insufficient winnings balance.")

        apply_balance_change(
            session,
            user,
            WalletType.WINNINGS.value,
            -value,
            TransactionType.WITHDRAWAL.value,
            f"Withdrawal request to {upi_id}",
        )
        withdrawal = WithdrawalRequest(
            user_id=user.id,
            user_name=user.name,
            user_email=user.email,
            amount=value,
            upi_id=upi_id,
            status=WithdrawalStatus.PENDING.value,
        )
        session.add(withdrawal)
        await session.flush()
        return {
            "withdrawal": withdrawal_to_dict(withdrawal),
            "winnings_balance": money_to_float(user.winnings_balance),
        }

    result = await run_in_transaction(
        database, _create, description=f"create_withdrawal_request({user_id})"
    )
    logger.info(
        f"Withdrawal {result['withdrawal']['id']} of {value} requested by user {user_id}"
    )
    return result


async def resolve_withdrawal(
    database,
    withdrawal_id: int,
    decision: str,
    user_id: Optional[str] = None,
    amount: Optional[Number] = None,
) -> Dict:
    """
    Complete or reject a pending withdrawal.

    A request is resolved exactly once; resolving it again is an error, never
    a second refund.

    Args:
        database: Storage client
        withdrawal_id: Request to resolve
        decision: "completed" or "rejected"
        user_id: Expected owner, checked against the stored request if given
        amount: Expected amount, checked against the stored request if given

    Returns:
        Dict with the resolved request

    Raises:
        ValueError: If the decision is unknown or user_id/amount don't match
        NotFound: If the request doesn't exist
        InvalidTransition: If the request was already resolved
    """
    if decision not in RESOLUTIONS:
        raise ValueError(f"Invalid withdrawal decision: {decision}")
    expected_amount = to_money(amount) if amount is not None else None

    async def _resolve(session: AsyncSession) -> Dict:
        withdrawal = await session.get(WithdrawalRequest, withdrawal_id)
        if withdrawal is None:
            raise NotFound("Withdrawal request not found.")
        if withdrawal.status != WithdrawalStatus.PENDING.value:
            raise InvalidTransition(f"Withdrawal request is already {withdrawal.status}.")
        if user_id is not None and user_id != withdrawal.user_id:
            raise ValueError("Withdrawal request belongs to a different user")
        if expected_amount is not None and expected_amount != to_money(withdrawal.amount):
            raise ValueError("Withdrawal amount does not match the request")

        withdrawal.status = decision
        withdrawal.processed_date = utcnow()

        winnings_balance = None
        if decision == WithdrawalStatus.REJECTED.value:
            user = await get_user_for_update(session, withdrawal.user_id)
            apply_balance_change(
                session,
                user,
                WalletType.WINNINGS.value,
                to_money(withdrawal.amount),
                TransactionType.REFUND.value,
                "Withdrawal request rejected",
            )
            winnings_balance = money_to_float(user.winnings_balance)

        await session.flush()
        return {"withdrawal": withdrawal_to_dict(withdrawal), "winnings_balance": winnings_balance}

    result = await run_in_transaction(
        database, _resolve, description=f"resolve_withdrawal({withdrawal_id})"
    )
    withdrawal = result["withdrawal"]
    logger.info(
        f"Withdrawal {withdrawal_id} {decision} for user {withdrawal['user_id']} "
        f"({withdrawal['amount']})"
    )
    if result["winnings_balance"] is not None:
        await _notify_refund(withdrawal["user_id"], result["winnings_balance"])
    return result


async def get_all_withdrawal_requests(database, status: Optional[str] = None) -> List[Dict]:
    """Fetch withdrawal requests for the admin panel, newest first."""
    try:
        async with database.session() as session:
            query = select(WithdrawalRequest).order_by(
                WithdrawalRequest.request_date.desc(), WithdrawalRequest.id.desc()
            )
            if status:
                query = query.where(WithdrawalRequest.status == status)
            result = await session.execute(query)
            return [withdrawal_to_dict(w) for w in result.scalars().all()]
    except ConfigurationError as e:
        logger.warning(f"Cannot fetch withdrawal requests: {e}")
        return []


async def get_user_withdrawal_requests(database, user_id: str) -> List[Dict]:
    """Fetch a user's withdrawal requests, newest first."""
    try:
        async with database.session() as session:
            result = await session.execute(
                select(WithdrawalRequest)
                .where(WithdrawalRequest.user_id == user_id)
                .order_by(WithdrawalRequest.request_date.desc(), WithdrawalRequest.id.desc())
            )
            return [withdrawal_to_dict(w) for w in result.scalars().all()]
    except ConfigurationError as e:
        logger.warning(f"Cannot fetch withdrawal requests for user {user_id}: {e}")
        return []


async def _notify_refund(user_id: str, winnings_balance: float) -> None:
    try:
        from arena.services.websocket_manager import get_websocket_manager

        await get_websocket_manager().send_to_user(
            user_id, {"type": "profile_updated", "winnings_balance": winnings_balance}
        )
    except Exception as e:
        logger.warning(f"Failed to push refund update for user {user_id}: {e}")
