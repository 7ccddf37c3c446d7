"""
Funnel analytics — append-only event recording and read-only roll-ups.

Recording:
  - record_page_visit / record_ad_click / record_download insert one row each
  - claim_download records the page-4 download once per completion token
  - safe_* wrappers are what the funnel calls: failures are logged and
    swallowed so a broken analytics table never blocks a visitor

Roll-ups (computed on read, nothing cached):
  - get_page_visits()     → {"1": n, "2": n, "3": n, "4": n}
  - get_ad_clicks()       → {ad_id: n}
  - get_total_downloads() → n
  - global_stats()        → platform-wide users / links / clicks / earnings
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from linkzy.core.funnel import FUNNEL_PAGES
from linkzy.models.tables import AdClick, AdVisit, Download, Link, Profile

import structlog

logger = structlog.get_logger()


# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------

async def record_page_visit(db: AsyncSession, page: int):
    db.add(AdVisit(page=page))
    await db.commit()


async def record_ad_click(db: AsyncSession, ad_id: str):
    db.add(AdClick(ad_id=ad_id))
    await db.commit()


async def record_download(db: AsyncSession, link_id: UUID | None = None, completion_token: str | None = None):
    db.add(Download(link_id=link_id, completion_token=completion_token))
    await db.commit()


async def _best_effort(db: AsyncSession, event: str, coro, **context) -> bool:
    try:
        await coro
        return True
    except SQLAlchemyError as exc:
        logger.warning(f"{event}_record_failed", error=str(exc), **context)
        try:
            await db.rollback()
        except SQLAlchemyError:
            pass
        return False


async def safe_record_page_visit(db: AsyncSession, page: int) -> bool:
    return await _best_effort(db, "page_visit", record_page_visit(db, page), page=page)


async def safe_record_ad_click(db: AsyncSession, ad_id: str) -> bool:
    return await _best_effort(db, "ad_click", record_ad_click(db, ad_id), ad_id=ad_id)


async def claim_download(db: AsyncSession, link_id: UUID, completion_token: str) -> bool:
    """Record the download for a page-4 token, once.

    Returns False when the token was already redeemed. Any other storage
    failure is logged and treated as a successful claim so the visitor
    still reaches the destination.
    """
    try:
        await record_download(db, link_id, completion_token)
        return True
    except IntegrityError:
        await db.rollback()
        logger.warning("completion_token_reused", link_id=str(link_id))
        return False
    except SQLAlchemyError as exc:
        logger.warning("download_record_failed", error=str(exc), link_id=str(link_id))
        try:
            await db.rollback()
        except SQLAlchemyError:
            pass
        return True


# ---------------------------------------------------------------------------
# Roll-ups
# ---------------------------------------------------------------------------

async def get_page_visits(db: AsyncSession) -> dict[str, int]:
    result = await db.execute(
        select(AdVisit.page, func.count(AdVisit.id).label("visits")).group_by(AdVisit.page)
    )
    visits = {str(page): 0 for page in FUNNEL_PAGES}
    for row in result.all():
        visits[str(row.page)] = row.visits
    return visits


async def get_ad_clicks(db: AsyncSession) -> dict[str, int]:
    result = await db.execute(
        select(AdClick.ad_id, func.count(AdClick.id).label("clicks"))
        .group_by(AdClick.ad_id)
        .order_by(func.count(AdClick.id).desc())
    )
    return {row.ad_id: row.clicks for row in result.all()}


async def get_total_downloads(db: AsyncSession) -> int:
    result = await db.execute(select(func.count(Download.id)))
    return result.scalar_one() or 0


async def analytics_snapshot(db: AsyncSession) -> dict:
    """The `analytics` section of the funnel config document."""
    return {
        "pageVisits": await get_page_visits(db),
        "adClicks": await get_ad_clicks(db),
        "totalDownloads": await get_total_downloads(db),
    }


async def global_stats(db: AsyncSession) -> dict:
    users_result = await db.execute(select(func.count(Profile.id)))
    links_result = await db.execute(
        select(
            func.count(Link.id).label("total_links"),
            func.coalesce(func.sum(Link.clicks), 0).label("total_clicks"),
            func.coalesce(func.sum(Link.earnings), 0).label("total_earnings"),
        )
    )
    links = links_result.one()
    return {
        "totalUsers": users_result.scalar_one() or 0,
        "totalLinks": links.total_links,
        "totalClicks": int(links.total_clicks),
        "totalEarnings": float(links.total_earnings),
    }
