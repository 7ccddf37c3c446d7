"""
Public short link JSON API.

GET  /api/s/{short_code}  → link data (no counters touched)
POST /api/track           → tracking beacon from the front end, logged only
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from linkzy.core.errors import ValidationError
from linkzy.core.links import lookup_link
from linkzy.models.database import get_db

import structlog

logger = structlog.get_logger()
router = APIRouter(prefix="/api", tags=["short-links"])


class TrackRequest(BaseModel):
    shortCode: str | None = None
    event: str | None = None


@router.get("/s/{short_code}")
async def get_short_link(
    short_code: str,
    db: AsyncSession = Depends(get_db),
):
    link = await lookup_link(db, short_code)
    return {
        "shortCode": short_code,
        "originalURL": link.original_url,
        "stats": {
            "clicks": link.clicks or 0,
            "impressions": link.impressions or 0,
            "earnings": float(link.earnings or 0),
        },
        "ownerId": str(link.owner_id),
    }


@router.post("/track")
async def track(req: TrackRequest):
    if not req.shortCode or not req.event:
        raise ValidationError("Missing shortCode or event")
    logger.info("track_event", short_code=req.shortCode, event=req.event)
    return {"success": True}
