"""
Dashboard API — Supabase-authenticated endpoints for link owners.
All queries scoped by auth.user_id.
"""

from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from linkzy.core.links import create_link, delete_link, link_to_dict, list_links, summarize_links
from linkzy.middleware.rate_limit import rate_limit_link_create
from linkzy.middleware.supabase_auth import SupabaseAuthContext, require_supabase_auth
from linkzy.models.database import get_db

router = APIRouter(prefix="/api", tags=["dashboard"])


class CreateLinkRequest(BaseModel):
    url: str


@router.get("/me")
async def me(auth: SupabaseAuthContext = Depends(require_supabase_auth)):
    return {
        "id": str(auth.user_id),
        "email": auth.email,
        "is_admin": auth.is_admin,
    }


@router.get("/links")
async def get_links(
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
    db: AsyncSession = Depends(get_db),
):
    """The caller's links, newest first."""
    links = await list_links(db, auth.user_id)
    return [link_to_dict(link) for link in links]


@router.post("/links", status_code=201)
async def post_link(
    req: CreateLinkRequest,
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
    db: AsyncSession = Depends(get_db),
):
    rate_limit_link_create(str(auth.user_id))
    link = await create_link(db, auth.user_id, req.url)
    return link_to_dict(link)


@router.delete("/links/{link_id}")
async def remove_link(
    link_id: UUID,
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
    db: AsyncSession = Depends(get_db),
):
    await delete_link(db, auth.user_id, link_id)
    return {"success": True}


@router.get("/links/stats")
async def link_stats(
    auth: SupabaseAuthContext = Depends(require_supabase_auth),
    db: AsyncSession = Depends(get_db),
):
    """Totals across the caller's links: count, clicks, impressions, earnings."""
    stats = summarize_links(await list_links(db, auth.user_id))
    return {
        "totalLinks": stats.total_links,
        "totalClicks": stats.total_clicks,
        "totalImpressions": stats.total_impressions,
        "totalEarnings": round(stats.total_earnings, 4),
    }
