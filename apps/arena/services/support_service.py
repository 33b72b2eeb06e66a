"""
Support tickets and their chat messages.
"""

from typing import Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from arena.database.models import (
    IssueType,
    SenderType,
    SupportMessage,
    SupportTicket,
    SupportTicketStatus,
    Tournament,
)
from arena.database.transactions import run_in_transaction
from arena.services.errors import ConfigurationError, NotFound
from arena.services.ledger_service import get_user_for_update
from arena.utils.datetime_utils import isoformat, utcnow
import logging

logger = logging.getLogger(__name__)


def ticket_to_dict(ticket: SupportTicket) -> Dict:
    return {
        "id": ticket.id,
        "user_id": ticket.user_id,
        "user_name": ticket.user_name,
        "user_email": ticket.user_email,
        "issue_type": ticket.issue_type,
        "description": ticket.description,
        "status": ticket.status,
        "tournament_id": ticket.tournament_id,
        "tournament_name": ticket.tournament_name,
        "created_at": isoformat(ticket.created_at),
        "updated_at": isoformat(ticket.updated_at),
    }


def message_to_dict(message: SupportMessage) -> Dict:
    return {
        "id": message.id,
        "ticket_id": message.ticket_id,
        "sender_id": message.sender_id,
        "sender_type": message.sender_type,
        "message": message.message,
        "timestamp": isoformat(message.timestamp),
    }


async def create_support_ticket(
    database,
    user_id: str,
    issue_type: str,
    description: str,
    tournament_id: Optional[int] = None,
) -> Dict:
    """
    Open a support ticket for a user.

    The user's name and email, and the tournament's name when one is given,
    are copied onto the ticket.

    Raises:
        ValueError: If the issue type is unknown or the description is empty
        NotFound: If the user or tournament doesn't exist
    """
    if issue_type not in {t.value for t in IssueType}:
        raise ValueError(f"Invalid issue type: {issue_type}")
    if not description or not description.strip():
        raise ValueError("Description is required")

    async def _create(session: AsyncSession) -> Dict:
        user = await get_user_for_update(session, user_id)
        tournament_name = None
        if tournament_id is not None:
            tournament = await session.get(Tournament, tournament_id)
            if tournament is None:
                raise NotFound("Tournament does not exist.")
            tournament_name = tournament.name
        now = utcnow()
        ticket = SupportTicket(
            user_id=user.id,
            user_name=user.name,
            user_email=user.email,
            issue_type=issue_type,
            description=description.strip(),
            status=SupportTicketStatus.OPEN.value,
            tournament_id=tournament_id,
            tournament_name=tournament_name,
            created_at=now,
            updated_at=now,
        )
        session.add(ticket)
        await session.flush()
        return ticket_to_dict(ticket)

    ticket = await run_in_transaction(database, _create, description="create_support_ticket")
    logger.info(f"Support ticket {ticket['id']} opened by user {user_id} ({issue_type})")
    return ticket


async def add_support_message(
    database, ticket_id: int, sender_id: str, sender_type: str, message: str
) -> Dict:
    """
    Append a message to a ticket and bump the ticket's updated_at.

    The message is pushed to the ticket owner's live connections.

    Raises:
        ValueError: If the sender type is unknown or the message is empty
        NotFound: If the ticket doesn't exist
    """
    if sender_type not in {s.value for s in SenderType}:
        raise ValueError(f"Invalid sender type: {sender_type}")
    if not message or not message.strip():
        raise ValueError("Message cannot be empty")

    async def _add(session: AsyncSession) -> Dict:
        ticket = await session.get(SupportTicket, ticket_id)
        if ticket is None:
            raise NotFound("Support ticket not found")
        now = utcnow()
        entry = SupportMessage(
            ticket_id=ticket.id,
            sender_id=sender_id,
            sender_type=sender_type,
            message=message.strip(),
            timestamp=now,
        )
        session.add(entry)
        ticket.updated_at = now
        await session.flush()
        return {"owner_id": ticket.user_id, "message": message_to_dict(entry)}

    result = await run_in_transaction(
        database, _add, description=f"add_support_message({ticket_id})"
    )
    await _push_message(result["owner_id"], result["message"])
    return result["message"]


async def get_user_support_tickets(database, user_id: str) -> List[Dict]:
    """Fetch a user's tickets, most recently active first."""
    try:
        async with database.session() as session:
            result = await session.execute(
                select(SupportTicket)
                .where(SupportTicket.user_id == user_id)
                .order_by(SupportTicket.updated_at.desc(), SupportTicket.id.desc())
            )
            return [ticket_to_dict(t) for t in result.scalars().all()]
    except ConfigurationError as e:
        logger.warning(f"Cannot fetch support tickets for user {user_id}: {e}")
        return []


async def get_all_support_tickets(database, status: Optional[str] = None) -> List[Dict]:
    """Fetch every ticket for the admin panel, most recently active first."""
    try:
        async with database.session() as session:
            query = select(SupportTicket).order_by(
                SupportTicket.updated_at.desc(), SupportTicket.id.desc()
            )
            if status:
                query = query.where(SupportTicket.status == status)
            result = await session.execute(query)
            return [ticket_to_dict(t) for t in result.scalars().all()]
    except ConfigurationError as e:
        logger.warning(f"Cannot fetch support tickets: {e}")
        return []


async def get_support_ticket(database, ticket_id: int) -> Optional[Dict]:
    try:
        async with database.session() as session:
            ticket = await session.get(SupportTicket, ticket_id)
            return ticket_to_dict(ticket) if ticket else None
    except ConfigurationError as e:
        logger.warning(f"Cannot fetch support ticket {ticket_id}: {e}")
        return None


async def get_support_messages(database, ticket_id: int) -> List[Dict]:
    """Fetch a ticket's messages in the order they were sent."""
    try:
        async with database.session() as session:
            result = await session.execute(
                select(SupportMessage)
                .where(SupportMessage.ticket_id == ticket_id)
                .order_by(SupportMessage.timestamp, SupportMessage.id)
            )
            return [message_to_dict(m) for m in result.scalars().all()]
    except ConfigurationError as e:
        logger.warning(f"Cannot fetch messages for support ticket {ticket_id}: {e}")
        return []


async def update_ticket_status(database, ticket_id: int, status: str) -> Dict:
    """
    Mark a ticket open or solved.

    Raises:
        ValueError: If the status is unknown
        NotFound: If the ticket doesn't exist
    """
    if status not in {s.value for s in SupportTicketStatus}:
        raise ValueError(f"Invalid ticket status: {status}")

    async def _update(session: AsyncSession) -> Dict:
        ticket = await session.get(SupportTicket, ticket_id)
        if ticket is None:
            raise NotFound("Support ticket not found")
        ticket.status = status
        ticket.updated_at = utcnow()
        await session.flush()
        return ticket_to_dict(ticket)

    ticket = await run_in_transaction(
        database, _update, description=f"update_ticket_status({ticket_id})"
    )
    logger.info(f"Support ticket {ticket_id} marked {status}")
    return ticket


async def _push_message(owner_id: str, message: Dict) -> None:
    try:
        from arena.services.websocket_manager import get_websocket_manager

        await get_websocket_manager().send_to_user(
            owner_id, {"type": "support_message", **message}
        )
    except Exception as e:
        logger.warning(f"Failed to push support message {message['id']}: {e}")
