"""Support ticket route handlers for players."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from arena.api.auth_dependencies import get_current_user
from arena.api.routes import http_error
from arena.database.db import get_database
from arena.database.models import SenderType
from arena.models.schemas import SupportMessageCreateRequest, SupportTicketCreateRequest
from arena.services import support_service

logger = logging.getLogger(__name__)
router = APIRouter()


async def _get_own_ticket(database, ticket_id: int, user: dict) -> dict:
    ticket = await support_service.get_support_ticket(database, ticket_id)
    if ticket is None or ticket["user_id"] != user["id"]:
        raise HTTPException(status_code=404, detail="Support ticket not found")
    return ticket


@router.post("/api/support/tickets", status_code=201)
async def create_ticket(
    payload: SupportTicketCreateRequest,
    user: dict = Depends(get_current_user),
    database=Depends(get_database),
):
    """Open a support ticket."""
    try:
        return await support_service.create_support_ticket(
            database,
            user["id"],
            payload.issue_type,
            payload.description,
            tournament_id=payload.tournament_id,
        )
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error creating support ticket for {user['id']}: {e}")
        raise HTTPException(status_code=500, detail="Error creating support ticket")


@router.get("/api/support/tickets", response_model=List[dict])
async def list_my_tickets(
    user: dict = Depends(get_current_user),
    database=Depends(get_database),
):
    """List the caller's tickets, most recently active first."""
    try:
        return await support_service.get_user_support_tickets(database, user["id"])
    except Exception as e:
        logger.error(f"Error fetching support tickets for {user['id']}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching support tickets")


@router.get("/api/support/tickets/{ticket_id}")
async def get_ticket(
    ticket_id: int,
    user: dict = Depends(get_current_user),
    database=Depends(get_database),
):
    return await _get_own_ticket(database, ticket_id, user)


@router.get("/api/support/tickets/{ticket_id}/messages", response_model=List[dict])
async def get_ticket_messages(
    ticket_id: int,
    user: dict = Depends(get_current_user),
    database=Depends(get_database),
):
    """Get a ticket's conversation."""
    await _get_own_ticket(database, ticket_id, user)
    try:
        return await support_service.get_support_messages(database, ticket_id)
    except Exception as e:
        logger.error(f"Error fetching messages for ticket {ticket_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching messages")


@router.post("/api/support/tickets/{ticket_id}/messages", status_code=201)
async def post_ticket_message(
    ticket_id: int,
    payload: SupportMessageCreateRequest,
    user: dict = Depends(get_current_user),
    database=Depends(get_database),
):
    """Reply on one of the caller's tickets."""
    await _get_own_ticket(database, ticket_id, user)
    try:
        return await support_service.add_support_message(
            database, ticket_id, user["id"], SenderType.USER.value, payload.message
        )
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error posting message on ticket {ticket_id}: {e}")
        raise HTTPException(status_code=500, detail="Error posting message")
