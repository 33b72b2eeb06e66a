"""Wallet route handlers: transaction history, deposits and withdrawals."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request

from arena.api.auth_dependencies import get_current_user, require_admin
from arena.api.routes import MONEY_RATE_LIMIT, http_error, limiter
from arena.database.db import get_database
from arena.models.schemas import (
    BalanceChangeResponse,
    DepositRequest,
    TransactionResponse,
    WithdrawalCreateRequest,
    WithdrawalResponse,
)
from arena.services import ledger_service, withdrawal_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/wallet/transactions", response_model=List[TransactionResponse])
async def get_my_transactions(
    user: dict = Depends(get_current_user),
    database=Depends(get_database),
):
    """Get the caller's wallet transactions, newest first."""
    try:
        return await ledger_service.get_user_transactions(database, user["id"])
    except Exception as e:
        logger.error(f"Error fetching transactions for {user['id']}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching transactions")


@router.post("/api/wallet/deposit", response_model=BalanceChangeResponse)
@limiter.limit(MONEY_RATE_LIMIT)
async def deposit(
    request: Request,
    payload: DepositRequest,
    admin: dict = Depends(require_admin),
    database=Depends(get_database),
):
    """
    Record a confirmed payment by crediting the user's deposit balance.

    Players can't credit themselves; an admin records the deposit once the
    payment has cleared.
    """
    try:
        result = await ledger_service.add_funds(database, payload.user_id, payload.amount)
        logger.info(f"Admin {admin['id']} recorded a deposit of {payload.amount} for {payload.user_id}")
        return result
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error adding funds for {payload.user_id}: {e}")
        raise HTTPException(status_code=500, detail="Error adding funds")


@router.post("/api/wallet/withdrawals", response_model=WithdrawalResponse, status_code=201)
@limiter.limit(MONEY_RATE_LIMIT)
async def request_withdrawal(
    request: Request,
    payload: WithdrawalCreateRequest,
    user: dict = Depends(get_current_user),
    database=Depends(get_database),
):
    """Request a payout of winnings to a UPI id."""
    try:
        result = await withdrawal_service.create_withdrawal_request(
            database, user["id"], payload.amount, payload.upi_id
        )
        return result["withdrawal"]
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error creating withdrawal for {user['id']}: {e}")
        raise HTTPException(status_code=500, detail="Error creating withdrawal request")


@router.get("/api/wallet/withdrawals", response_model=List[WithdrawalResponse])
async def get_my_withdrawals(
    user: dict = Depends(get_current_user),
    database=Depends(get_database),
):
    """Get the caller's withdrawal requests."""
    try:
        return await withdrawal_service.get_user_withdrawal_requests(database, user["id"])
    except Exception as e:
        logger.error(f"Error fetching withdrawals for {user['id']}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching withdrawal requests")
