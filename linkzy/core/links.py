"""
Short links — creation, lookup, resolution and counters.

resolve_short_code / increment_link_clicks are the two calls the funnel
needs; the rest serves the owner dashboard.

Counters are updated with single UPDATE statements (clicks = clicks + 1),
never read-modify-write, so concurrent visitors don't lose increments.
Earnings accrue at the current rates: cpm_rate per 1000 impressions,
cpc_rate per completed click.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from linkzy.config import get_settings
from linkzy.core.errors import NotFoundError, StoreError
from linkzy.core.funnel_config import CPC_RATE_KEY, CPM_RATE_KEY, get_rate
from linkzy.core.short_code import generate_short_code, is_well_formed
from linkzy.core.urls import normalize_destination_url
from linkzy.models.tables import Link

import structlog

logger = structlog.get_logger()


@dataclass
class LinkStats:
    total_links: int = 0
    total_clicks: int = 0
    total_impressions: int = 0
    total_earnings: float = 0.0


def short_url(short_code: str) -> str:
    return f"{get_settings().base_url}/s/{short_code}"


# --- Lookup ---

async def lookup_link(db: AsyncSession, code: str) -> Link:
    if not is_well_formed(code):
        raise NotFoundError("Short link not found")
    result = await db.execute(select(Link).where(Link.short_code == code))
    link = result.scalar_one_or_none()
    if link is None:
        raise NotFoundError("Short link not found")
    return link


async def resolve_short_code(db: AsyncSession, code: str) -> str:
    """Destination URL for `code`, exactly as stored. Read-only."""
    if not is_well_formed(code):
        raise NotFoundError("Short link not found")
    result = await db.execute(select(Link.original_url).where(Link.short_code == code))
    url = result.scalar_one_or_none()
    if url is None:
        raise NotFoundError("Short link not found")
    return url


# --- Counters ---

async def increment_link_clicks(db: AsyncSession, code: str):
    cpc = await get_rate(db, CPC_RATE_KEY)
    await db.execute(
        update(Link)
        .where(Link.short_code == code)
        .values(clicks=Link.clicks + 1, earnings=Link.earnings + Decimal(str(cpc)))
    )
    await db.commit()


async def record_impression(db: AsyncSession, code: str):
    cpm = await get_rate(db, CPM_RATE_KEY)
    await db.execute(
        update(Link)
        .where(Link.short_code == code)
        .values(impressions=Link.impressions + 1, earnings=Link.earnings + Decimal(str(cpm)) / 1000)
    )
    await db.commit()


async def _swallow(db: AsyncSession, event: str, coro, code: str) -> bool:
    try:
        await coro
        return True
    except SQLAlchemyError as exc:
        logger.warning(event, short_code=code, error=str(exc))
        try:
            await db.rollback()
        except SQLAlchemyError:
            pass
        return False


async def safe_increment_link_clicks(db: AsyncSession, code: str) -> bool:
    return await _swallow(db, "click_increment_failed", increment_link_clicks(db, code), code)


async def safe_record_impression(db: AsyncSession, code: str) -> bool:
    return await _swallow(db, "impression_record_failed", record_impression(db, code), code)


# --- Owner operations ---

async def create_link(db: AsyncSession, owner_id: UUID, url: str) -> Link:
    """Create a short link, retrying with a fresh code on unique-key conflict."""
    settings = get_settings()
    original_url = normalize_destination_url(url)

    for attempt in range(1, settings.short_code_max_attempts + 1):
        link = Link(
            id=uuid4(),
            owner_id=owner_id,
            original_url=original_url,
            short_code=generate_short_code(),
            clicks=0,
            impressions=0,
            earnings=0,
        )
        db.add(link)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.warning("short_code_collision", short_code=link.short_code, attempt=attempt)
            continue
        await db.refresh(link)
        logger.info("link_created", link_id=str(link.id), short_code=link.short_code,
                    owner_id=str(owner_id), attempts=attempt)
        return link

    raise StoreError("Could not allocate a unique short code")


async def list_links(db: AsyncSession, owner_id: UUID) -> list[Link]:
    result = await db.execute(
        select(Link).where(Link.owner_id == owner_id).order_by(Link.created_at.desc())
    )
    return list(result.scalars().all())


async def delete_link(db: AsyncSession, owner_id: UUID, link_id: UUID):
    result = await db.execute(
        delete(Link).where(Link.id == link_id, Link.owner_id == owner_id)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise NotFoundError("Link not found")
    await db.commit()
    logger.info("link_deleted", link_id=str(link_id), owner_id=str(owner_id))


def summarize_links(links: list[Link]) -> LinkStats:
    stats = LinkStats()
    for link in links:
        stats.total_links += 1
        stats.total_clicks += link.clicks or 0
        stats.total_impressions += link.impressions or 0
        stats.total_earnings += float(link.earnings or 0)
    return stats


def link_to_dict(link: Link) -> dict:
    return {
        "id": str(link.id),
        "original_url": link.original_url,
        "short_code": link.short_code,
        "short_url": short_url(link.short_code),
        "clicks": link.clicks or 0,
        "impressions": link.impressions or 0,
        "earnings": float(link.earnings or 0),
        "created_at": link.created_at.isoformat() if link.created_at else None,
    }
