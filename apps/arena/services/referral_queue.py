"""
Referral bonus worker.

Signup writes a row to ``pending_referrals`` in the same transaction as the
profile. This worker polls the outbox and, for each unprocessed row, credits
the referral bonus to both the new user and the referrer, then marks the row
processed, all in one transaction. Each credit carries an idempotency key so a
row can't pay out twice even if it is picked up again.
"""

import asyncio
import logging
import os
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from arena.database.models import (
    PendingReferral,
    Transaction,
    TransactionType,
    UserProfile,
    WalletType,
)
from arena.database.transactions import run_in_transaction
from arena.services.errors import ConfigurationError
from arena.services.ledger_service import apply_balance_change
from arena.services.settings_service import get_referral_bonus
from arena.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

# How often the worker checks the outbox (seconds)
POLL_INTERVAL_SECONDS = float(os.getenv("REFERRAL_POLL_INTERVAL_SECONDS", "10"))

# Rows handled per poll
BATCH_SIZE = 100


def referral_idempotency_key(new_user_id: str, side: str) -> str:
    """Key for one side of a referral bonus; ``side`` is "new" or "referrer"."""
    return f"referral:{new_user_id}:{side}"


async def _already_credited(session: AsyncSession, key: str) -> bool:
    result = await session.execute(select(Transaction.id).where(Transaction.idempotency_key == key))
    return result.scalar_one_or_none() is not None


class ReferralQueue:
    """Background worker that pays out referral bonuses from the outbox."""

    def __init__(self):
        self._worker_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self._database = None

    def start(self, database) -> None:
        """Start the background referral worker."""
        if not database.available:
            logger.warning("Referral worker not started: database unavailable")
            return
        self._database = database
        if self._worker_task is None or self._worker_task.done():
            self._stop_event.clear()
            self._worker_task = asyncio.create_task(self._poll_loop())
            logger.info("Referral worker started")

    def stop(self) -> None:
        """Stop the background referral worker."""
        self._stop_event.set()
        if self._worker_task and not self._worker_task.done():
            self._worker_task.cancel()
            logger.info("Referral worker stopped")

    async def _poll_loop(self) -> None:
        """Main loop: process the outbox, then sleep. Repeats until stopped."""
        while not self._stop_event.is_set():
            try:
                await self.process_pending(self._database)
            except Exception as e:
                logger.error(f"Error in referral worker: {e}", exc_info=True)

            # Wait for poll interval or until stop is signalled
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=POLL_INTERVAL_SECONDS)
                break
            except asyncio.TimeoutError:
                pass

    async def process_pending(self, database) -> Dict[str, int]:
        """
        Process every unprocessed referral once.

        Args:
            database: Storage client

        Returns:
            Dict with counts of credited and failed referrals
        """
        try:
            async with database.session() as session:
                result = await session.execute(
                    select(PendingReferral.id)
                    .where(PendingReferral.processed.is_(False))
                    .order_by(PendingReferral.created_at, PendingReferral.id)
                    .limit(BATCH_SIZE)
                )
                pending_ids = list(result.scalars().all())
        except ConfigurationError as e:
            logger.warning(f"Cannot read pending referrals: {e}")
            return {"credited": 0, "failed": 0}

        if not pending_ids:
            return {"credited": 0, "failed": 0}

        bonus = await get_referral_bonus(database)
        counts = {"credited": 0, "failed": 0}
        for referral_id in pending_ids:
            try:
                outcome = await self._process_one(database, referral_id, bonus)
            except Exception as e:
                # Row stays unprocessed and is retried on the next poll
                logger.error(f"Error processing referral {referral_id}: {e}", exc_info=True)
                continue
            if outcome:
                counts[outcome] += 1

        logger.info(
            f"Processed {len(pending_ids)} referral(s): "
            f"{counts['credited']} credited, {counts['failed']} failed"
        )
        return counts

    async def _process_one(self, database, referral_id: int, bonus) -> Optional[str]:
        async def _credit(session: AsyncSession) -> Optional[str]:
            referral = await session.get(PendingReferral, referral_id)
            if referral is None or referral.processed:
                return None

            new_user = await session.get(UserProfile, referral.new_user_id)
            result = await session.execute(
                select(UserProfile).where(UserProfile.referral_code == referral.referrer_code)
            )
            referrer = result.scalar_one_or_none()

            referral.processed = True
            referral.processed_at = utcnow()

            if new_user is None or referrer is None:
                referral.failure_reason = (
                    "New user no longer exists"
                    if new_user is None
                    else f"Unknown referral code {referral.referrer_code}"
                )
                return "failed"
            if referrer.id == new_user.id:
                referral.failure_reason = "Users cannot refer themselves"
                return "failed"

            if bonus > 0:
                sides = (
                    (new_user, "new", f"Referral bonus for joining with code {referral.referrer_code}"),
                    (referrer, "referrer", f"Referral bonus for inviting {new_user.username}"),
                )
                for user, side, description in sides:
                    key = referral_idempotency_key(new_user.id, side)
                    if await _already_credited(session, key):
                        continue
                    apply_balance_change(
                        session,
                        user,
                        WalletType.DEPOSIT.value,
                        bonus,
                        TransactionType.ADMIN_CREDIT.value,
                        description,
                        idempotency_key=key,
                    )
            await session.flush()
            return "credited"

        outcome = await run_in_transaction(
            database, _credit, description=f"process_referral({referral_id})"
        )
        if outcome == "failed":
            logger.warning(f"Referral {referral_id} could not be credited")
        elif outcome == "credited":
            logger.info(f"Credited referral bonus {bonus} for referral {referral_id}")
        return outcome


# Global singleton
_referral_queue = ReferralQueue()


def get_referral_queue() -> ReferralQueue:
    """Get the global referral worker instance."""
    return _referral_queue
