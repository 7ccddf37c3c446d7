"""
Admin API — funnel configuration, ad inventory, rates, analytics, users.

Every endpoint requires an admin bearer token except POST /api/admin/analytics,
which the public funnel front end calls to record events.

The config document is versioned: GET returns an ETag, and a POST carrying
If-Match is refused with 412 when someone else saved in between. Without
If-Match the save is unconditional (last writer wins).
"""

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Header
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from linkzy.core import analytics
from linkzy.core.ads import create_ad, delete_ad, move_ad, update_ad, validate_ad_fields
from linkzy.core.errors import NotFoundError, ValidationError
from linkzy.core.funnel import parse_page
from linkzy.core.funnel_config import (
    CPC_RATE_KEY,
    CPM_RATE_KEY,
    ad_to_doc,
    get_rates,
    load_funnel_config,
    parse_funnel_config,
    save_funnel_config,
    set_rate,
    update_countdowns,
)
from linkzy.core.users import list_users, set_role
from linkzy.middleware.supabase_auth import SupabaseAuthContext, require_admin
from linkzy.models.database import get_db

import structlog

logger = structlog.get_logger()
router = APIRouter(prefix="/api/admin", tags=["admin"])


# --- Schemas ---

class AdRequest(BaseModel):
    title: str | None = None
    img: str | None = None
    link: str | None = None
    assignedPage: int | str | None = None
    order: int | str | None = 0


class MoveAdRequest(BaseModel):
    direction: Literal["up", "down"]


class AnalyticsEvent(BaseModel):
    type: str | None = None
    pageId: int | str | None = None
    adId: str | None = None


class RatesRequest(BaseModel):
    cpm_rate: float | str | None = None
    cpc_rate: float | str | None = None


class RoleRequest(BaseModel):
    role: str


# --- Helpers ---

def _etag(version: int) -> str:
    return f'"{version}"'


def _parse_if_match(value: str | None) -> int | None:
    if value is None or value.strip() in ("", "*"):
        return None
    raw = value.strip()
    if raw.startswith("W/"):
        raw = raw[2:]
    raw = raw.strip('"')
    try:
        return int(raw)
    except ValueError:
        raise ValidationError("If-Match must be a config version")


def _page(raw) -> int:
    try:
        return parse_page(raw)
    except NotFoundError:
        raise ValidationError("pageId must be 1-4")


def _config_response(document: dict, version: int) -> JSONResponse:
    return JSONResponse(content=document, headers={"ETag": _etag(version)})


# --- Funnel config ---

@router.get("/config")
async def get_config(
    auth: SupabaseAuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    document, version = await load_funnel_config(db)
    return _config_response(document, version)


@router.post("/config")
async def post_config(
    body=Body(...),
    if_match: str | None = Header(None),
    auth: SupabaseAuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    config = parse_funnel_config(body)
    version = await save_funnel_config(db, config, expected_version=_parse_if_match(if_match))
    logger.info("admin_config_saved", admin=str(auth.user_id), version=version)
    return JSONResponse(content={"success": True, "version": version}, headers={"ETag": _etag(version)})


@router.get("/config/export")
async def export_config(
    auth: SupabaseAuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    document, version = await load_funnel_config(db)
    return _config_response(document, version)


@router.post("/config/import")
async def import_config(
    body=Body(...),
    auth: SupabaseAuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    config = parse_funnel_config(body, require_analytics=True)
    version = await save_funnel_config(db, config)
    logger.info("admin_config_imported", admin=str(auth.user_id), version=version)
    return {"success": True, "version": version}


@router.put("/countdowns")
async def put_countdowns(
    body: dict[str, int] = Body(...),
    auth: SupabaseAuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    countdowns = {_page(page): seconds for page, seconds in body.items()}
    version = await update_countdowns(db, countdowns)
    return {"success": True, "version": version}


# --- Analytics ---

@router.post("/analytics")
async def post_analytics(
    event: AnalyticsEvent,
    db: AsyncSession = Depends(get_db),
):
    if event.type == "visit" and event.pageId:
        await analytics.record_page_visit(db, _page(event.pageId))
    elif event.type == "click" and event.adId:
        await analytics.record_ad_click(db, event.adId)
    elif event.type == "download":
        await analytics.record_download(db)
    else:
        raise ValidationError("Invalid analytics type or missing data")
    return {"success": True}


@router.get("/analytics")
async def get_analytics(
    auth: SupabaseAuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await analytics.analytics_snapshot(db)


@router.get("/stats")
async def get_stats(
    auth: SupabaseAuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await analytics.global_stats(db)


# --- Ads ---

@router.post("/ad")
async def post_ad(
    req: AdRequest,
    auth: SupabaseAuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    fields = validate_ad_fields(req.title, req.img, req.link, req.assignedPage, req.order)
    ad = await create_ad(db, fields)
    return {"success": True, "ad": ad_to_doc(ad), "assignedPage": ad.page_number}


@router.put("/ad/{ad_id}")
async def put_ad(
    ad_id: str,
    req: AdRequest,
    auth: SupabaseAuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    fields = validate_ad_fields(req.title, req.img, req.link, req.assignedPage, req.order)
    ad = await update_ad(db, ad_id, fields)
    return {"success": True, "ad": ad_to_doc(ad), "assignedPage": ad.page_number}


@router.delete("/ad/{ad_id}")
async def remove_ad(
    ad_id: str,
    auth: SupabaseAuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await delete_ad(db, ad_id)
    return {"success": True}


@router.post("/ad/{ad_id}/move")
async def post_move_ad(
    ad_id: str,
    req: MoveAdRequest,
    auth: SupabaseAuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    ad = await move_ad(db, ad_id, req.direction)
    return {"success": True, "position": ad.position}


# --- Rates ---

@router.get("/rates")
async def get_rate_settings(
    auth: SupabaseAuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await get_rates(db)


@router.put("/rates")
async def put_rate_settings(
    req: RatesRequest,
    auth: SupabaseAuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if req.cpm_rate is None and req.cpc_rate is None:
        raise ValidationError("Provide cpm_rate and/or cpc_rate")

    updated = {}
    if req.cpm_rate is not None:
        updated[CPM_RATE_KEY] = await set_rate(db, CPM_RATE_KEY, req.cpm_rate)
    if req.cpc_rate is not None:
        updated[CPC_RATE_KEY] = await set_rate(db, CPC_RATE_KEY, req.cpc_rate)
    return {"success": True, **updated}


# --- Users ---

@router.get("/users")
async def get_users(
    auth: SupabaseAuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await list_users(db)


@router.put("/users/{user_id}/role")
async def put_user_role(
    user_id: UUID,
    req: RoleRequest,
    auth: SupabaseAuthContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await set_role(db, user_id, req.role)
    return {"success": True, "role": req.role}
