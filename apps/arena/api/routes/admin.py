"""Admin panel route handlers: users, wallets, games, carousel, tournaments, withdrawals, support, settings."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from arena.api.auth_dependencies import require_admin
from arena.api.routes import MONEY_RATE_LIMIT, http_error, limiter
from arena.database.db import get_database
from arena.database.models import SenderType
from arena.models.schemas import (
    AdminUserUpdateRequest,
    BalanceChangeResponse,
    CarouselSlideCreateRequest,
    CarouselSlideUpdateRequest,
    GameCreateRequest,
    GameUpdateRequest,
    RoomDetailsRequest,
    SettingUpdateRequest,
    SettlementSummaryResponse,
    SubmitResultsRequest,
    SupportMessageCreateRequest,
    TicketStatusUpdateRequest,
    TournamentCreateRequest,
    TournamentUpdateRequest,
    UserProfileResponse,
    WalletAdjustRequest,
    WithdrawalResolveRequest,
    WithdrawalResponse,
)
from arena.services import (
    carousel_service,
    game_service,
    ledger_service,
    settings_service,
    settlement_service,
    support_service,
    tournament_service,
    user_service,
    withdrawal_service,
)

logger = logging.getLogger(__name__)
router = APIRouter()


# ---------------------------------------------------------------------------
# Users & wallets
# ---------------------------------------------------------------------------


@router.get("/api/admin/users", response_model=List[UserProfileResponse])
async def list_users(admin: dict = Depends(require_admin), database=Depends(get_database)):
    """List all users, newest first."""
    try:
        return await user_service.get_all_users(database)
    except Exception as e:
        logger.error(f"Error fetching users: {e}")
        raise HTTPException(status_code=500, detail="Error fetching users")


@router.get("/api/admin/users/{user_id}")
async def get_user(user_id: str, admin: dict = Depends(require_admin), database=Depends(get_database)):
    """Get a user's profile along with their transactions and joined tournaments."""
    try:
        profile = await user_service.get_user_profile(database, user_id)
        if profile is None:
            raise HTTPException(status_code=404, detail="User not found")
        return {
            **profile,
            "transactions": await ledger_service.get_user_transactions(database, user_id),
            "tournaments": await tournament_service.get_user_joined_tournaments(database, user_id),
        }
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error fetching user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Error fetching user")


@router.patch("/api/admin/users/{user_id}", response_model=UserProfileResponse)
async def update_user(
    user_id: str,
    payload: AdminUserUpdateRequest,
    admin: dict = Depends(require_admin),
    database=Depends(get_database),
):
    """Update a user's profile, role or status."""
    try:
        return await user_service.update_user_profile(
            database, user_id, payload.model_dump(exclude_unset=True), admin=True
        )
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error updating user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Error updating user")


@router.post("/api/admin/users/{user_id}/wallet", response_model=BalanceChangeResponse)
@limiter.limit(MONEY_RATE_LIMIT)
async def adjust_wallet(
    request: Request,
    user_id: str,
    payload: WalletAdjustRequest,
    admin: dict = Depends(require_admin),
    database=Depends(get_database),
):
    """Credit or debit one of a user's balances."""
    try:
        result = await ledger_service.adjust_balance(
            database, user_id, payload.wallet_type, payload.amount, payload.reason
        )
        logger.info(f"Admin {admin['id']} adjusted {payload.wallet_type} wallet of {user_id}")
        return result
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error adjusting wallet of {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Error adjusting wallet")


# ---------------------------------------------------------------------------
# Games
# ---------------------------------------------------------------------------


@router.post("/api/admin/games", status_code=201)
async def create_game(
    payload: GameCreateRequest,
    admin: dict = Depends(require_admin),
    database=Depends(get_database),
):
    try:
        return await game_service.add_game(database, payload.name, payload.image_url)
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error creating game: {e}")
        raise HTTPException(status_code=500, detail="Error creating game")


@router.put("/api/admin/games/{game_id}")
async def update_game(
    game_id: int,
    payload: GameUpdateRequest,
    admin: dict = Depends(require_admin),
    database=Depends(get_database),
):
    try:
        return await game_service.update_game(database, game_id, payload.model_dump(exclude_unset=True))
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error updating game {game_id}: {e}")
        raise HTTPException(status_code=500, detail="Error updating game")


@router.delete("/api/admin/games/{game_id}")
async def delete_game(game_id: int, admin: dict = Depends(require_admin), database=Depends(get_database)):
    try:
        await game_service.delete_game(database, game_id)
        return {"success": True}
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error deleting game {game_id}: {e}")
        raise HTTPException(status_code=500, detail="Error deleting game")


# ---------------------------------------------------------------------------
# Carousel
# ---------------------------------------------------------------------------


@router.get("/api/admin/carousel", response_model=List[dict])
async def list_carousel_slides(admin: dict = Depends(require_admin), database=Depends(get_database)):
    try:
        return await carousel_service.get_carousel_slides(database)
    except Exception as e:
        logger.error(f"Error fetching carousel slides: {e}")
        raise HTTPException(status_code=500, detail="Error fetching carousel slides")


@router.post("/api/admin/carousel", status_code=201)
async def create_carousel_slide(
    payload: CarouselSlideCreateRequest,
    admin: dict = Depends(require_admin),
    database=Depends(get_database),
):
    try:
        return await carousel_service.add_carousel_slide(
            database, payload.title, payload.description, payload.image_url, payload.hint
        )
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error creating carousel slide: {e}")
        raise HTTPException(status_code=500, detail="Error creating carousel slide")


@router.put("/api/admin/carousel/{slide_id}")
async def update_carousel_slide(
    slide_id: int,
    payload: CarouselSlideUpdateRequest,
    admin: dict = Depends(require_admin),
    database=Depends(get_database),
):
    try:
        return await carousel_service.update_carousel_slide(
            database, slide_id, payload.model_dump(exclude_unset=True)
        )
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error updating carousel slide {slide_id}: {e}")
        raise HTTPException(status_code=500, detail="Error updating carousel slide")


@router.delete("/api/admin/carousel/{slide_id}")
async def delete_carousel_slide(slide_id: int, admin: dict = Depends(require_admin), database=Depends(get_database)):
    try:
        await carousel_service.delete_carousel_slide(database, slide_id)
        return {"success": True}
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error deleting carousel slide {slide_id}: {e}")
        raise HTTPException(status_code=500, detail="Error deleting carousel slide")


# ---------------------------------------------------------------------------
# Tournaments
# ---------------------------------------------------------------------------


@router.get("/api/admin/tournaments", response_model=List[dict])
async def list_tournaments(
    status: Optional[str] = Query(default=None),
    admin: dict = Depends(require_admin),
    database=Depends(get_database),
):
    """List all tournaments, optionally filtered by status."""
    try:
        return await tournament_service.get_all_tournaments(database, status=status)
    except Exception as e:
        logger.error(f"Error fetching tournaments: {e}")
        raise HTTPException(status_code=500, detail="Error fetching tournaments")


@router.post("/api/admin/tournaments", status_code=201)
async def create_tournament(
    payload: TournamentCreateRequest,
    admin: dict = Depends(require_admin),
    database=Depends(get_database),
):
    try:
        return await tournament_service.create_tournament(database, **payload.model_dump())
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error creating tournament: {e}")
        raise HTTPException(status_code=500, detail="Error creating tournament")


@router.put("/api/admin/tournaments/{tournament_id}")
async def update_tournament(
    tournament_id: int,
    payload: TournamentUpdateRequest,
    admin: dict = Depends(require_admin),
    database=Depends(get_database),
):
    try:
        return await tournament_service.update_tournament(
            database, tournament_id, payload.model_dump(exclude_unset=True)
        )
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error updating tournament {tournament_id}: {e}")
        raise HTTPException(status_code=500, detail="Error updating tournament")


@router.delete("/api/admin/tournaments/{tournament_id}")
async def delete_tournament(
    tournament_id: int, admin: dict = Depends(require_admin), database=Depends(get_database)
):
    try:
        await tournament_service.delete_tournament(database, tournament_id)
        return {"success": True}
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error deleting tournament {tournament_id}: {e}")
        raise HTTPException(status_code=500, detail="Error deleting tournament")


@router.post("/api/admin/tournaments/{tournament_id}/start")
async def start_tournament(
    tournament_id: int,
    payload: RoomDetailsRequest,
    admin: dict = Depends(require_admin),
    database=Depends(get_database),
):
    """Start an upcoming tournament and publish its room."""
    try:
        return await tournament_service.start_tournament(
            database, tournament_id, payload.room_id, payload.room_password
        )
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error starting tournament {tournament_id}: {e}")
        raise HTTPException(status_code=500, detail="Error starting tournament")


@router.put("/api/admin/tournaments/{tournament_id}/room")
async def update_room(
    tournament_id: int,
    payload: RoomDetailsRequest,
    admin: dict = Depends(require_admin),
    database=Depends(get_database),
):
    try:
        return await tournament_service.update_room_details(
            database, tournament_id, payload.room_id, payload.room_password
        )
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error updating room of tournament {tournament_id}: {e}")
        raise HTTPException(status_code=500, detail="Error updating room details")


@router.post("/api/admin/tournaments/{tournament_id}/cancel")
async def cancel_tournament(
    tournament_id: int, admin: dict = Depends(require_admin), database=Depends(get_database)
):
    """Cancel a tournament. Entry fees are refunded separately through wallet adjustments."""
    try:
        return await tournament_service.cancel_tournament(database, tournament_id)
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error cancelling tournament {tournament_id}: {e}")
        raise HTTPException(status_code=500, detail="Error cancelling tournament")


@router.post("/api/admin/tournaments/{tournament_id}/results", response_model=SettlementSummaryResponse)
async def submit_results(
    tournament_id: int,
    payload: SubmitResultsRequest,
    admin: dict = Depends(require_admin),
    database=Depends(get_database),
):
    """Record results and pay out prizes in one step."""
    try:
        summary = await settlement_service.submit_results(
            database, tournament_id, [r.model_dump() for r in payload.results]
        )
        logger.info(f"Admin {admin['id']} settled tournament {tournament_id}")
        return summary
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error settling tournament {tournament_id}: {e}")
        raise HTTPException(status_code=500, detail="Error submitting results")


# ---------------------------------------------------------------------------
# Withdrawals
# ---------------------------------------------------------------------------


@router.get("/api/admin/withdrawals", response_model=List[WithdrawalResponse])
async def list_withdrawals(
    status: Optional[str] = Query(default=None),
    admin: dict = Depends(require_admin),
    database=Depends(get_database),
):
    try:
        return await withdrawal_service.get_all_withdrawal_requests(database, status=status)
    except Exception as e:
        logger.error(f"Error fetching withdrawal requests: {e}")
        raise HTTPException(status_code=500, detail="Error fetching withdrawal requests")


@router.post("/api/admin/withdrawals/{withdrawal_id}/resolve", response_model=WithdrawalResponse)
@limiter.limit(MONEY_RATE_LIMIT)
async def resolve_withdrawal(
    request: Request,
    withdrawal_id: int,
    payload: WithdrawalResolveRequest,
    admin: dict = Depends(require_admin),
    database=Depends(get_database),
):
    """Mark a pending withdrawal completed, or reject it and refund the winnings."""
    try:
        result = await withdrawal_service.resolve_withdrawal(
            database,
            withdrawal_id,
            payload.status,
            user_id=payload.user_id,
            amount=payload.amount,
        )
        return result["withdrawal"]
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error resolving withdrawal {withdrawal_id}: {e}")
        raise HTTPException(status_code=500, detail="Error resolving withdrawal")


# ---------------------------------------------------------------------------
# Support
# ---------------------------------------------------------------------------


@router.get("/api/admin/support/tickets", response_model=List[dict])
async def list_support_tickets(
    status: Optional[str] = Query(default=None),
    admin: dict = Depends(require_admin),
    database=Depends(get_database),
):
    try:
        return await support_service.get_all_support_tickets(database, status=status)
    except Exception as e:
        logger.error(f"Error fetching support tickets: {e}")
        raise HTTPException(status_code=500, detail="Error fetching support tickets")


@router.get("/api/admin/support/tickets/{ticket_id}")
async def get_support_ticket(
    ticket_id: int, admin: dict = Depends(require_admin), database=Depends(get_database)
):
    """Get a ticket with its conversation."""
    ticket = await support_service.get_support_ticket(database, ticket_id)
    if ticket is None:
        raise HTTPException(status_code=404, detail="Support ticket not found")
    ticket["messages"] = await support_service.get_support_messages(database, ticket_id)
    return ticket


@router.put("/api/admin/support/tickets/{ticket_id}/status")
async def update_support_ticket_status(
    ticket_id: int,
    payload: TicketStatusUpdateRequest,
    admin: dict = Depends(require_admin),
    database=Depends(get_database),
):
    try:
        return await support_service.update_ticket_status(database, ticket_id, payload.status)
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error updating support ticket {ticket_id}: {e}")
        raise HTTPException(status_code=500, detail="Error updating support ticket")


@router.post("/api/admin/support/tickets/{ticket_id}/messages", status_code=201)
async def reply_to_support_ticket(
    ticket_id: int,
    payload: SupportMessageCreateRequest,
    admin: dict = Depends(require_admin),
    database=Depends(get_database),
):
    try:
        return await support_service.add_support_message(
            database, ticket_id, admin["id"], SenderType.ADMIN.value, payload.message
        )
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error replying to support ticket {ticket_id}: {e}")
        raise HTTPException(status_code=500, detail="Error sending reply")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@router.get("/api/admin/settings")
async def get_settings(admin: dict = Depends(require_admin), database=Depends(get_database)):
    """Effective value of every runtime setting."""
    try:
        return await settings_service.get_all_settings(database)
    except Exception as e:
        logger.error(f"Error fetching settings: {e}")
        raise HTTPException(status_code=500, detail="Error fetching settings")


@router.put("/api/admin/settings/{key}")
async def update_setting(
    key: str,
    payload: SettingUpdateRequest,
    admin: dict = Depends(require_admin),
    database=Depends(get_database),
):
    if key not in settings_service.KNOWN_SETTINGS:
        raise HTTPException(status_code=404, detail=f"Unknown setting: {key}")
    try:
        await settings_service.set_setting(database, key, payload.value, updated_by=admin["id"])
        return {"key": key, "value": payload.value}
    except ValueError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error updating setting {key}: {e}")
        raise HTTPException(status_code=500, detail="Error updating setting")
