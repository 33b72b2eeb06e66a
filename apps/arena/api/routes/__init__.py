"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, error mapping, room masking) lives here; every sub-router
imports what it needs from this package.
"""

import os

from fastapi import APIRouter, HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)

# Limit for endpoints that move money
MONEY_RATE_LIMIT = os.getenv("MONEY_RATE_LIMIT", "10/minute")


# ---------------------------------------------------------------------------
# Shared error mapping
# ---------------------------------------------------------------------------
def http_error(error: ValueError) -> HTTPException:
    """Map a service error to its HTTP status; plain ValueErrors are 400s."""
    return HTTPException(status_code=getattr(error, "status_code", 400), detail=str(error))


def hide_room(tournament: dict) -> dict:
    """Room credentials are only shown to participants and admins."""
    return {**tournament, "room_id": None, "room_password": None}


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from arena.api.routes.users import router as users_router
from arena.api.routes.wallet import router as wallet_router
from arena.api.routes.games import router as games_router
from arena.api.routes.carousel import router as carousel_router
from arena.api.routes.tournaments import router as tournaments_router
from arena.api.routes.support import router as support_router
from arena.api.routes.admin import router as admin_router
from arena.api.routes.updates import router as updates_router

router = APIRouter()
router.include_router(users_router)
router.include_router(wallet_router)
router.include_router(games_router)
router.include_router(carousel_router)
router.include_router(tournaments_router)
router.include_router(support_router)
router.include_router(admin_router)
router.include_router(updates_router)
