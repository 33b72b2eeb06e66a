"""
Dashboard carousel service.
"""

from typing import Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from arena.database.models import CarouselSlide
from arena.database.transactions import run_in_transaction
from arena.services.errors import ConfigurationError, NotFound
import logging

logger = logging.getLogger(__name__)

SLIDE_FIELDS = {"title", "description", "image_url", "hint"}


def slide_to_dict(slide: CarouselSlide) -> Dict:
    return {
        "id": slide.id,
        "title": slide.title,
        "description": slide.description,
        "image_url": slide.image_url,
        "hint": slide.hint,
    }


async def get_carousel_slides(database) -> List[Dict]:
    """Fetch all carousel slides in the order they were added."""
    try:
        async with database.session() as session:
            result = await session.execute(select(CarouselSlide).order_by(CarouselSlide.id))
            return [slide_to_dict(slide) for slide in result.scalars().all()]
    except ConfigurationError as e:
        logger.warning(f"Cannot fetch carousel slides: {e}")
        return []


async def get_carousel_slide(database, slide_id: int) -> Optional[Dict]:
    try:
        async with database.session() as session:
            slide = await session.get(CarouselSlide, slide_id)
            return slide_to_dict(slide) if slide else None
    except ConfigurationError as e:
        logger.warning(f"Cannot fetch carousel slide {slide_id}: {e}")
        return None


async def add_carousel_slide(
    database, title: str, description: str, image_url: str, hint: Optional[str] = None
) -> Dict:
    """Add a slide to the end of the carousel."""
    if not title or not title.strip():
        raise ValueError("Slide title is required")

    async def _add(session: AsyncSession) -> Dict:
        slide = CarouselSlide(
            title=title.strip(),
            description=description,
            image_url=image_url,
            hint=hint,
        )
        session.add(slide)
        await session.flush()
        return slide_to_dict(slide)

    slide = await run_in_transaction(database, _add, description="add_carousel_slide")
    logger.info(f"Added carousel slide {slide['id']} ({slide['title']})")
    return slide


async def update_carousel_slide(database, slide_id: int, data: Dict) -> Dict:
    """Update some fields of a slide; unknown and null fields are ignored."""
    updates = {k: v for k, v in data.items() if v is not None and k in SLIDE_FIELDS}
    if "title" in updates and not updates["title"].strip():
        raise ValueError("Slide title is required")

    async def _update(session: AsyncSession) -> Dict:
        slide = await session.get(CarouselSlide, slide_id)
        if slide is None:
            raise NotFound("Carousel slide not found")
        for field, value in updates.items():
            setattr(slide, field, value)
        await session.flush()
        return slide_to_dict(slide)

    return await run_in_transaction(database, _update, description=f"update_carousel_slide({slide_id})")


async def delete_carousel_slide(database, slide_id: int) -> None:
    async def _delete(session: AsyncSession) -> None:
        slide = await session.get(CarouselSlide, slide_id)
        if slide is None:
            raise NotFound("Carousel slide not found")
        await session.delete(slide)

    await run_in_transaction(database, _delete, description=f"delete_carousel_slide({slide_id})")
    logger.info(f"Deleted carousel slide {slide_id}")
