"""
Ledger primitives: balance mutations and the wallet transaction log.

Every balance change goes through ``apply_balance_change`` inside an atomic
section, which writes the new balance and appends exactly one transaction row.
Public operations here wrap it in ``run_in_transaction``; the join, withdrawal
and settlement flows compose it inside their own wider atomic sections.
"""

from decimal import Decimal
from typing import Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from arena.database.models import Transaction, TransactionType, UserProfile, UserStatus, WalletType
from arena.database.transactions import run_in_transaction
from arena.services.errors import (
    AccountSuspended,
    ConfigurationError,
    InsufficientFunds,
    InvalidAmount,
    NotFound,
)
from arena.utils.datetime_utils import isoformat
from arena.utils.money import Number, money_to_float, to_money
import logging

logger = logging.getLogger(__name__)

BALANCE_FIELDS = {
    WalletType.DEPOSIT.value: "deposit_balance",
    WalletType.WINNINGS.value: "winnings_balance",
}


def transaction_to_dict(transaction: Transaction) -> Dict:
    """Serialize a ledger entry for API responses."""
    return {
        "id": transaction.id,
        "user_id": transaction.user_id,
        "type": transaction.type,
        "amount": money_to_float(transaction.amount),
        "description": transaction.description,
        "date": isoformat(transaction.date),
    }


def _balance_field(wallet_type: str) -> str:
    wallet_value = wallet_type.value if isinstance(wallet_type, WalletType) else wallet_type
    field = BALANCE_FIELDS.get(wallet_value)
    if field is None:
        raise ValueError(f"Unknown wallet type: {wallet_type}")
    return field


async def get_user_for_update(session: AsyncSession, user_id: str) -> UserProfile:
    """
    Load a user inside an atomic section.

    Raises:
        NotFound: If the user doesn't exist
    """
    result = await session.execute(select(UserProfile).where(UserProfile.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFound("User does not exist.")
    return user


def append_transaction(
    session: AsyncSession,
    user_id: str,
    type: str,
    amount: Decimal,
    description: str,
    idempotency_key: Optional[str] = None,
) -> Transaction:
    """Add one ledger entry to the session. Never used to update existing rows."""
    transaction = Transaction(
        user_id=user_id,
        type=type.value if isinstance(type, TransactionType) else type,
        amount=amount,
        description=description,
        idempotency_key=idempotency_key,
    )
    session.add(transaction)
    return transaction


def apply_balance_change(
    session: AsyncSession,
    user: UserProfile,
    wallet_type: str,
    amount: Number,
    transaction_type: str,
    description: str,
    idempotency_key: Optional[str] = None,
) -> Transaction:
    """
    Mutate one of a user's balances and log it, within the caller's atomic section.

    Args:
        session: Session of the enclosing transaction
        user: User row loaded through that session
        wallet_type: "deposit" or "winnings"
        amount: Signed amount (positive credits, negative debits)
        transaction_type: TransactionType value to log
        description: Human-readable ledger description
        idempotency_key: Optional dedupe key for the ledger row

    Returns:
        The pending Transaction row

    Raises:
        InsufficientFunds: If the balance would drop below zero
    """
    field = _balance_field(wallet_type)
    delta = to_money(amount)
    current = to_money(getattr(user, field))
    new_balance = current + delta
    if new_balance < 0:
        wallet_name = field.replace("_balance", "")
        raise InsufficientFunds(f"Insufficient {wallet_name} balance.")

    setattr(user, field, new_balance)
    return append_transaction(
        session, user.id, transaction_type, delta, description, idempotency_key
    )


async def adjust_balance(
    database,
    user_id: str,
    wallet_type: str,
    amount: Number,
    reason: str,
    transaction_type: Optional[str] = None,
) -> Dict:
    """
    Adjust a user's wallet balance (admin credit/debit).

    Args:
        database: Storage client
        user_id: User whose wallet is adjusted
        wallet_type: "deposit" or "winnings"
        amount: Positive to credit, negative to debit
        reason: Description for the transaction log
        transaction_type: Explicit ledger type; defaults to admin_credit/admin_debit by sign

    Returns:
        Dict with the new balances and the ledger entry

    Raises:
        InvalidAmount: If amount is zero
        NotFound: If the user doesn't exist
        InsufficientFunds: If the debit would make the balance negative
    """
    delta = to_money(amount)
    if delta == 0:
        raise InvalidAmount("Amount cannot be zero.")
    _balance_field(wallet_type)

    if transaction_type is None:
        transaction_type = (
            TransactionType.ADMIN_CREDIT.value if delta > 0 else TransactionType.ADMIN_DEBIT.value
        )

    async def _adjust(session: AsyncSession) -> Dict:
        user = await get_user_for_update(session, user_id)
        entry = apply_balance_change(
            session, user, wallet_type, delta, transaction_type, reason
        )
        await session.flush()
        return {
            "user_id": user.id,
            "deposit_balance": money_to_float(user.deposit_balance),
            "winnings_balance": money_to_float(user.winnings_balance),
            "transaction": transaction_to_dict(entry),
        }

    result = await run_in_transaction(database, _adjust, description=f"adjust_balance({user_id})")
    logger.info(
        f"Adjusted {wallet_type} balance for user {user_id} by {delta} ({transaction_type})"
    )
    await _notify_profile_changed(user_id, result)
    return result


async def add_funds(database, user_id: str, amount: Number) -> Dict:
    """
    Credit a user's deposit balance after a confirmed payment.

    Raises:
        InvalidAmount: If amount is not positive
        NotFound: If the user doesn't exist
        AccountSuspended: If the user is banned
    """
    delta = to_money(amount)
    if delta <= 0:
        raise InvalidAmount("Amount must be positive.")

    async def _deposit(session: AsyncSession) -> Dict:
        user = await get_user_for_update(session, user_id)
        if user.status == UserStatus.BANNED.value:
            raise AccountSuspended("Account is suspended; deposits are not accepted.")
        entry = apply_balance_change(
            session,
            user,
            WalletType.DEPOSIT.value,
            delta,
            TransactionType.DEPOSIT.value,
            "Added funds to wallet",
        )
        await session.flush()
        return {
            "user_id": user.id,
            "deposit_balance": money_to_float(user.deposit_balance),
            "winnings_balance": money_to_float(user.winnings_balance),
            "transaction": transaction_to_dict(entry),
        }

    result = await run_in_transaction(database, _deposit, description=f"add_funds({user_id})")
    logger.info(f"Deposited {delta} for user {user_id}")
    await _notify_profile_changed(user_id, result)
    return result


async def get_user_transactions(database, user_id: str) -> List[Dict]:
    """
    Fetch a user's transactions, newest first.

    Returns an empty list when the database is unavailable.
    """
    try:
        async with database.session() as session:
            result = await session.execute(
                select(Transaction)
                .where(Transaction.user_id == user_id)
                .order_by(Transaction.date.desc(), Transaction.id.desc())
            )
            return [transaction_to_dict(t) for t in result.scalars().all()]
    except ConfigurationError as e:
        logger.warning(f"Cannot fetch transactions for user {user_id}: {e}")
        return []


async def _notify_profile_changed(user_id: str, payload: Dict) -> None:
    """Push new balances to the user's live subscribers. Failures are only logged."""
    try:
        from arena.services.websocket_manager import get_websocket_manager

        manager = get_websocket_manager()
        await manager.send_to_user(
            user_id,
            {
                "type": "profile_updated",
                "deposit_balance": payload["deposit_balance"],
                "winnings_balance": payload["winnings_balance"],
            },
        )
    except Exception as e:
        logger.warning(f"Failed to push profile update for user {user_id}: {e}")
