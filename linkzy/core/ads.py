"""
Ad inventory CRUD.

Ads are rows in the `ads` table, pinned to one funnel page (1–4) and kept in
a per-page list ordered by `position`. `order` is the admin-facing sort hint
carried through the config document unchanged.
"""

import time
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from linkzy.core.errors import NotFoundError, ValidationError
from linkzy.core.funnel import FUNNEL_PAGES
from linkzy.core.short_code import generate_ad_id
from linkzy.core.urls import is_http_url
from linkzy.models.tables import Ad

import structlog

logger = structlog.get_logger()

MAX_TITLE_LENGTH = 255


@dataclass
class AdFields:
    title: str
    img: str
    link: str
    assigned_page: int
    order: int = 0


def validate_ad_fields(
    title: str | None,
    img: str | None,
    link: str | None,
    assigned_page,
    order=0,
) -> AdFields:
    if not (title or "").strip() or not img or not link or not assigned_page:
        raise ValidationError("Missing required fields")
    if len(title.strip()) > MAX_TITLE_LENGTH:
        raise ValidationError(f"Title must be at most {MAX_TITLE_LENGTH} characters")

    if not is_http_url(link) or not is_http_url(img):
        raise ValidationError("Invalid URL format")

    try:
        page = int(assigned_page)
    except (TypeError, ValueError):
        raise ValidationError("assignedPage must be 1-4")
    if isinstance(assigned_page, bool) or page not in FUNNEL_PAGES:
        raise ValidationError("assignedPage must be 1-4")

    try:
        order = int(order or 0)
    except (TypeError, ValueError):
        raise ValidationError("order must be an integer")

    return AdFields(title=title.strip(), img=img, link=link, assigned_page=page, order=order)


async def _next_position(db: AsyncSession, page: int) -> int:
    result = await db.execute(
        select(func.coalesce(func.max(Ad.position), -1)).where(Ad.page_number == page)
    )
    return result.scalar_one() + 1


async def get_ad(db: AsyncSession, ad_id: str) -> Ad:
    result = await db.execute(select(Ad).where(Ad.id == ad_id))
    ad = result.scalar_one_or_none()
    if ad is None:
        raise NotFoundError("Ad not found")
    return ad


async def create_ad(db: AsyncSession, fields: AdFields) -> Ad:
    ad = Ad(
        id=generate_ad_id(int(time.time() * 1000)),
        page_number=fields.assigned_page,
        title=fields.title,
        image_url=fields.img,
        link_url=fields.link,
        order=fields.order,
        position=await _next_position(db, fields.assigned_page),
    )
    db.add(ad)
    await db.commit()
    logger.info("ad_created", ad_id=ad.id, page=ad.page_number)
    return ad


async def update_ad(db: AsyncSession, ad_id: str, fields: AdFields) -> Ad:
    ad = await get_ad(db, ad_id)

    if ad.page_number != fields.assigned_page:
        ad.position = await _next_position(db, fields.assigned_page)
        ad.page_number = fields.assigned_page
    ad.title = fields.title
    ad.image_url = fields.img
    ad.link_url = fields.link
    ad.order = fields.order

    await db.commit()
    logger.info("ad_updated", ad_id=ad.id, page=ad.page_number)
    return ad


async def delete_ad(db: AsyncSession, ad_id: str):
    ad = await get_ad(db, ad_id)
    await db.delete(ad)
    await db.commit()
    logger.info("ad_deleted", ad_id=ad_id, page=ad.page_number)


async def move_ad(db: AsyncSession, ad_id: str, direction: str) -> Ad:
    """Swap the ad with its neighbour on the same page. No-op at either end."""
    if direction not in ("up", "down"):
        raise ValidationError("direction must be 'up' or 'down'")

    ad = await get_ad(db, ad_id)
    stmt = select(Ad).where(Ad.page_number == ad.page_number)
    if direction == "up":
        stmt = stmt.where(Ad.position < ad.position).order_by(Ad.position.desc())
    else:
        stmt = stmt.where(Ad.position > ad.position).order_by(Ad.position.asc())
    result = await db.execute(stmt.limit(1))
    neighbour = result.scalar_one_or_none()

    if neighbour is None:
        return ad

    ad.position, neighbour.position = neighbour.position, ad.position
    await db.commit()
    logger.info("ad_moved", ad_id=ad_id, direction=direction, position=ad.position)
    return ad
