"""
Funnel configuration store.

The admin panel reads and writes one JSON document:

    {
      "pages": [{"id": 1, "countdown": 5, "ads": [{id, title, img, link, order}]}, ... x4],
      "analytics": {"pageVisits": {...}, "adClicks": {...}, "totalDownloads": n}
    }

Storage is split:
  - config row `ad_funnel_config`  → page ids + countdowns, with a version
  - ads table                      → the ad inventory (one row per ad)
  - event tables                   → `analytics`, computed on read, ignored on write

Saving replaces the whole document (countdowns and every ad). Passing
expected_version turns the save into a conditional update; without it the
last writer wins.

Also holds the two rate singletons, `cpm_rate` and `cpc_rate`.
"""

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from linkzy.config import get_settings
from linkzy.core.analytics import analytics_snapshot
from linkzy.core.errors import ConflictError, ValidationError
from linkzy.core.funnel import FUNNEL_PAGES
from linkzy.core.urls import is_http_url
from linkzy.models.tables import Ad, ConfigEntry

import structlog

logger = structlog.get_logger()

FUNNEL_CONFIG_KEY = "ad_funnel_config"
CPM_RATE_KEY = "cpm_rate"
CPC_RATE_KEY = "cpc_rate"
RATE_KEYS = (CPM_RATE_KEY, CPC_RATE_KEY)


# --- Document schema ---

class AdDoc(BaseModel):
    # Bounds mirror the ads table columns
    id: str = Field(min_length=1, max_length=64)
    title: str = Field(max_length=255)
    img: str
    link: str
    order: int = 0


class PageDoc(BaseModel):
    id: int
    countdown: int
    ads: list[AdDoc] = Field(default_factory=list)


class AnalyticsDoc(BaseModel):
    pageVisits: dict[str, int] = Field(default_factory=dict)
    adClicks: dict[str, int] = Field(default_factory=dict)
    totalDownloads: int = 0


class FunnelConfig(BaseModel):
    pages: list[PageDoc]
    analytics: AnalyticsDoc = Field(default_factory=AnalyticsDoc)


def default_config() -> FunnelConfig:
    countdown = get_settings().default_countdown_seconds
    return FunnelConfig(
        pages=[PageDoc(id=page, countdown=countdown, ads=[]) for page in FUNNEL_PAGES],
        analytics=AnalyticsDoc(pageVisits={str(page): 0 for page in FUNNEL_PAGES}),
    )


def parse_funnel_config(raw, require_analytics: bool = False) -> FunnelConfig:
    """Validate an incoming document. Raises ValidationError with a readable message."""
    if not isinstance(raw, dict):
        raise ValidationError("Invalid config: expected a JSON object")

    pages = raw.get("pages")
    if not isinstance(pages, list) or len(pages) != len(FUNNEL_PAGES):
        raise ValidationError("Invalid config: pages must be array of length 4")
    if require_analytics and not raw.get("analytics"):
        raise ValidationError("Invalid configuration: analytics section missing")

    try:
        config = FunnelConfig.model_validate(raw)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(part) for part in first["loc"])
        raise ValidationError(f"Invalid config: {where}: {first['msg']}")

    if sorted(page.id for page in config.pages) != list(FUNNEL_PAGES):
        raise ValidationError("Invalid config: page ids must be 1, 2, 3 and 4")

    seen_ids = set()
    for page in config.pages:
        if page.countdown < 0:
            raise ValidationError(f"Invalid config: page {page.id} countdown must be >= 0")
        for ad in page.ads:
            if not ad.title.strip():
                raise ValidationError(f"Invalid config: ad {ad.id} is missing a title")
            if not is_http_url(ad.img) or not is_http_url(ad.link):
                raise ValidationError(f"Invalid URL format for ad {ad.id}")
            if ad.id in seen_ids:
                raise ValidationError(f"Invalid config: duplicate ad id {ad.id}")
            seen_ids.add(ad.id)

    return config


# --- Load / save ---

async def _get_entry(db: AsyncSession, key: str, for_update: bool = False) -> ConfigEntry | None:
    stmt = select(ConfigEntry).where(ConfigEntry.key == key)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


def ad_to_doc(ad: Ad) -> dict:
    return {"id": ad.id, "title": ad.title, "img": ad.image_url, "link": ad.link_url, "order": ad.order}


async def load_funnel_config(db: AsyncSession, with_analytics: bool = True) -> tuple[dict, int]:
    """Return (document, version). Version 0 means nothing has been saved yet."""
    entry = await _get_entry(db, FUNNEL_CONFIG_KEY)

    if entry is not None and isinstance(entry.value, dict) and isinstance(entry.value.get("pages"), list):
        page_rows = entry.value["pages"]
        version = entry.version
    else:
        page_rows = [{"id": p.id, "countdown": p.countdown} for p in default_config().pages]
        version = 0

    ads_result = await db.execute(select(Ad).order_by(Ad.page_number, Ad.position))
    ads_by_page: dict[int, list[dict]] = {}
    for ad in ads_result.scalars().all():
        ads_by_page.setdefault(ad.page_number, []).append(ad_to_doc(ad))

    pages = []
    for row in page_rows:
        page_id = row.get("id")
        pages.append({
            "id": page_id,
            "countdown": row.get("countdown"),
            "ads": ads_by_page.get(page_id, []),
        })

    document = {"pages": pages}
    if with_analytics:
        document["analytics"] = await analytics_snapshot(db)
    return document, version


async def save_funnel_config(
    db: AsyncSession,
    config: FunnelConfig,
    expected_version: int | None = None,
) -> int:
    """Replace countdowns and the whole ad inventory. Returns the new version."""
    entry = await _get_entry(db, FUNNEL_CONFIG_KEY, for_update=True)
    current_version = entry.version if entry is not None else 0

    if expected_version is not None and expected_version != current_version:
        raise ConflictError(
            f"Config was modified (version {current_version}, expected {expected_version}). Reload and retry."
        )

    value = {"pages": [{"id": page.id, "countdown": page.countdown} for page in config.pages]}
    new_version = current_version + 1
    if entry is None:
        db.add(ConfigEntry(key=FUNNEL_CONFIG_KEY, value=value, version=new_version))
    else:
        entry.value = value
        entry.version = new_version

    await db.execute(delete(Ad))
    for page in config.pages:
        for position, ad in enumerate(page.ads):
            db.add(Ad(
                id=ad.id,
                page_number=page.id,
                title=ad.title,
                image_url=ad.img,
                link_url=ad.link,
                order=ad.order,
                position=position,
            ))

    await db.commit()
    logger.info("funnel_config_saved", version=new_version,
                ads=sum(len(page.ads) for page in config.pages))
    return new_version


async def update_countdowns(db: AsyncSession, countdowns: dict[int, int]) -> int:
    """Rewrite only the per-page countdowns. Missing or zero values fall back to the default."""
    entry = await _get_entry(db, FUNNEL_CONFIG_KEY, for_update=True)
    default = get_settings().default_countdown_seconds

    pages = []
    for page in FUNNEL_PAGES:
        value = countdowns.get(page)
        if value is not None and value < 0:
            raise ValidationError(f"Countdown for page {page} must be >= 0")
        pages.append({"id": page, "countdown": value or default})

    if entry is None:
        entry = ConfigEntry(key=FUNNEL_CONFIG_KEY, value={"pages": pages}, version=1)
        db.add(entry)
    else:
        entry.value = {"pages": pages}
        entry.version = entry.version + 1

    await db.commit()
    logger.info("countdowns_saved", version=entry.version, countdowns={p["id"]: p["countdown"] for p in pages})
    return entry.version


# --- Rates ---

async def get_rate(db: AsyncSession, key: str) -> float:
    entry = await _get_entry(db, key)
    if entry is None:
        return 0.0
    try:
        return float(entry.value)
    except (TypeError, ValueError):
        logger.warning("rate_unparseable", key=key, value=entry.value)
        return 0.0


async def get_rates(db: AsyncSession) -> dict[str, float]:
    return {key: await get_rate(db, key) for key in RATE_KEYS}


def parse_rate(value) -> float:
    try:
        rate = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Rate must be a number")
    if rate != rate or rate < 0:  # NaN or negative
        raise ValidationError("Rate must be a non-negative number")
    return rate


async def set_rate(db: AsyncSession, key: str, value) -> float:
    if key not in RATE_KEYS:
        raise ValidationError(f"Unknown rate {key}")
    rate = parse_rate(value)

    entry = await _get_entry(db, key, for_update=True)
    if entry is None:
        db.add(ConfigEntry(key=key, value=rate, version=1))
    else:
        entry.value = rate
        entry.version = entry.version + 1

    await db.commit()
    logger.info("rate_updated", key=key, value=rate)
    return rate
