"""
Short link entry + ad funnel — /s/{short_code}, /ad/{page_id}

Flow:
  1. GET  /s/{code}          → code must exist; count an impression;
                                302 to /ad/1?t=<token>
  2. GET  /ad/{n}?t=          → verify token for page n; load config;
                                record a page visit; render countdown + ads
                                with a fresh token (countdown starts now)
  3. POST /ad/{n}/next        → countdown must have run out;
                                n < 4 → 303 to /ad/{n+1}?t=<token>
                                n = 4 → resolve destination, redeem the token
                                        (one download), count one click,
                                        303 to destination
  4. GET  /ad/click/{ad_id}   → record the ad click, 302 to the sponsor

Anything that prevents the visitor from continuing (unknown code, bad page,
bad token, config failure) renders an error page that returns home after a
short delay. Impression/visit/click/download recording never blocks.
"""

from urllib.parse import quote

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from linkzy.api.pages import render_error_page, render_funnel_page
from linkzy.core.analytics import claim_download, safe_record_ad_click, safe_record_page_visit
from linkzy.core.ads import get_ad
from linkzy.core.errors import CountdownNotFinished, NotFoundError
from linkzy.core.funnel import FunnelStep, ensure_countdown_finished, next_page, parse_page, step_for
from linkzy.core.funnel_config import load_funnel_config
from linkzy.core.funnel_token import mint_funnel_token, verify_funnel_token
from linkzy.core.links import (
    lookup_link,
    resolve_short_code,
    safe_increment_link_clicks,
    safe_record_impression,
)
from linkzy.middleware.rate_limit import rate_limit_ip
from linkzy.models.database import get_db

import structlog

logger = structlog.get_logger()
router = APIRouter(tags=["funnel"])

SESSION_EXPIRED = "Session expired. Please try the link again."


def _funnel_url(page: int, token) -> str:
    return f"/ad/{page}?t={quote(str(token), safe='')}"


async def _load_step(db: AsyncSession, page: int) -> FunnelStep:
    try:
        config, _ = await load_funnel_config(db, with_analytics=False)
    except SQLAlchemyError as exc:
        logger.error("funnel_config_load_failed", page=page, error=str(exc))
        raise NotFoundError("Configuration error")
    return step_for(config, page)


@router.get("/s/{short_code}")
async def enter_funnel(
    request: Request,
    short_code: str,
    db: AsyncSession = Depends(get_db),
):
    rate_limit_ip(request)

    try:
        await resolve_short_code(db, short_code)
    except NotFoundError:
        logger.info("short_code_not_found", short_code=short_code)
        return render_error_page("Invalid or expired short link", status_code=404)
    except SQLAlchemyError as exc:
        logger.error("short_code_lookup_failed", short_code=short_code, error=str(exc))
        return render_error_page("Server error", status_code=500)

    await safe_record_impression(db, short_code)

    token = mint_funnel_token(short_code, 1)
    logger.info("funnel_entered", short_code=short_code)
    return RedirectResponse(url=_funnel_url(1, token), status_code=302)


@router.get("/ad/{page_id}")
async def funnel_page(
    page_id: str,
    t: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    try:
        page = parse_page(page_id)
    except NotFoundError as exc:
        return render_error_page(exc.message, status_code=404)

    token = verify_funnel_token(t, page)
    if token is None:
        return render_error_page(SESSION_EXPIRED, status_code=400)

    try:
        step = await _load_step(db, page)
    except NotFoundError as exc:
        return render_error_page(exc.message, status_code=404)

    await safe_record_page_visit(db, page)

    # Fresh token: the countdown for this page starts now (a reload restarts it)
    fresh = mint_funnel_token(token.short_code, page)
    return render_funnel_page(step, str(fresh))


@router.post("/ad/{page_id}/next")
async def funnel_next(
    page_id: str,
    t: str = Form(""),
    db: AsyncSession = Depends(get_db),
):
    try:
        page = parse_page(page_id)
    except NotFoundError as exc:
        return render_error_page(exc.message, status_code=404)

    token = verify_funnel_token(t, page)
    if token is None:
        return render_error_page(SESSION_EXPIRED, status_code=400)

    try:
        step = await _load_step(db, page)
    except NotFoundError as exc:
        return render_error_page(exc.message, status_code=404)

    try:
        ensure_countdown_finished(token, step.countdown)
    except CountdownNotFinished as exc:
        return render_funnel_page(step, t, remaining=exc.remaining, notice=exc.message, status_code=409)

    following = next_page(page)
    if following is not None:
        return RedirectResponse(
            url=_funnel_url(following, mint_funnel_token(token.short_code, following)),
            status_code=303,
        )

    # --- Done: resolve, count, record, leave ---
    code = token.short_code
    try:
        link = await lookup_link(db, code)
    except NotFoundError:
        logger.warning("funnel_destination_missing", short_code=code)
        return render_error_page("Link not found", status_code=404)
    except SQLAlchemyError as exc:
        logger.error("funnel_destination_failed", short_code=code, error=str(exc))
        return render_error_page("Redirect failed. Please try again.", status_code=500)

    destination = link.original_url
    link_id = link.id

    # The download row is keyed on the token signature, so a replayed
    # page-4 token counts nothing.
    if not await claim_download(db, link_id, token.signature):
        logger.warning("funnel_token_replayed", short_code=code)
        return render_error_page(SESSION_EXPIRED, status_code=400)
    await safe_increment_link_clicks(db, code)

    logger.info("funnel_completed", short_code=code, link_id=str(link_id))
    return RedirectResponse(url=destination, status_code=303)


@router.get("/ad/click/{ad_id}")
async def ad_click(
    ad_id: str,
    db: AsyncSession = Depends(get_db),
):
    try:
        ad = await get_ad(db, ad_id)
    except NotFoundError as exc:
        return render_error_page(exc.message, status_code=404)

    target = ad.link_url
    await safe_record_ad_click(db, ad_id)
    return RedirectResponse(url=target, status_code=302)
