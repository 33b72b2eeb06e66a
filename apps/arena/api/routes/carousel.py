"""Dashboard carousel route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from arena.database.db import get_database
from arena.services import carousel_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/carousel", response_model=List[dict])
async def list_carousel_slides(database=Depends(get_database)):
    """List the dashboard carousel slides."""
    try:
        return await carousel_service.get_carousel_slides(database)
    except Exception as e:
        logger.error(f"Error fetching carousel slides: {e}")
        raise HTTPException(status_code=500, detail="Error fetching carousel slides")
