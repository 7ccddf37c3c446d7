"""
Ad-funnel state machine.

    Page(1) → Page(2) → Page(3) → Page(4) → Done

Each page shows a countdown and that page's ads. A visitor may only advance
once the countdown has run out AND they confirm (no auto-advance). Page 4's
confirmation finishes the funnel: the destination is resolved, one click is
counted, one download is recorded, and the visitor is sent on.

The countdown start is the `issued_at` of the page's funnel token, so
reloading a page mints a new token and restarts the countdown.
"""

import math
import time
from dataclasses import dataclass

from linkzy.core.errors import CountdownNotFinished, NotFoundError
from linkzy.core.funnel_token import FunnelToken

FUNNEL_PAGES = (1, 2, 3, 4)
LAST_PAGE = FUNNEL_PAGES[-1]
FALLBACK_COUNTDOWN_SECONDS = 10


@dataclass(frozen=True)
class FunnelStep:
    page: int
    countdown: int
    ads: list

    @property
    def is_last(self) -> bool:
        return self.page == LAST_PAGE

    @property
    def next_page(self) -> int | None:
        return next_page(self.page)


def parse_page(raw) -> int:
    """Page id from the URL. Anything but 1–4 is an invalid page."""
    try:
        page = int(raw)
    except (TypeError, ValueError):
        raise NotFoundError("Invalid page")
    if page not in FUNNEL_PAGES:
        raise NotFoundError("Invalid page")
    return page


def next_page(page: int) -> int | None:
    """Following page, or None when `page` is the last one (→ Done)."""
    if page >= LAST_PAGE:
        return None
    return page + 1


def countdown_for(page_config: dict | None) -> int:
    value = (page_config or {}).get("countdown")
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        return FALLBACK_COUNTDOWN_SECONDS
    return int(value)


def step_for(config: dict, page: int) -> FunnelStep:
    """Build the step for `page` from a funnel config document."""
    pages = config.get("pages") if isinstance(config, dict) else None
    if not isinstance(pages, list):
        raise NotFoundError("Configuration error")

    for page_config in pages:
        try:
            page_id = int(page_config.get("id"))
        except (AttributeError, TypeError, ValueError):
            continue
        if page_id == page:
            ads = page_config.get("ads")
            return FunnelStep(
                page=page,
                countdown=countdown_for(page_config),
                ads=ads if isinstance(ads, list) else [],
            )
    raise NotFoundError("Invalid page")


def countdown_remaining(token: FunnelToken, countdown: int, now: float | None = None) -> int:
    """Whole seconds the visitor still has to wait on this page."""
    remaining = countdown - token.elapsed(now if now is not None else time.time())
    return max(0, math.ceil(remaining))


def ensure_countdown_finished(token: FunnelToken, countdown: int, now: float | None = None):
    remaining = countdown_remaining(token, countdown, now)
    if remaining > 0:
        raise CountdownNotFinished(remaining)
