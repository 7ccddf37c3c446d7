"""
Rate limiter — in-memory sliding window.

Limits:
  - Per IP on the public short-link entry (/s/...): configurable (default 60/min)
  - Per user on link creation: configurable (default 20/min)
"""

import time
from fastapi import HTTPException, Request
from linkzy.config import get_settings

import structlog

logger = structlog.get_logger()

_memory_store: dict[str, list[float]] = {}


def _sliding_window_check(key: str, limit: int, window_seconds: int = 60) -> tuple[bool, int]:
    now = time.time()
    cutoff = now - window_seconds

    hits = [t for t in _memory_store.get(key, []) if t > cutoff]
    if len(hits) >= limit:
        _memory_store[key] = hits
        return False, 0

    hits.append(now)
    _memory_store[key] = hits
    return True, limit - len(hits)


def check_rate_limit(key: str, limit: int, window: int = 60):
    allowed, remaining = _sliding_window_check(key, limit, window)
    if not allowed:
        logger.info("rate_limited", key=key, limit=limit)
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded. Slow down.",
            headers={
                "Retry-After": str(window),
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": "0",
            },
        )
    return remaining


def reset_rate_limits():
    _memory_store.clear()


def _get_real_ip(request: Request) -> str:
    """Extract real client IP from x-forwarded-for or request."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ips = [ip.strip() for ip in forwarded.split(",")]
        for ip in ips:
            if not ip.startswith(("10.", "172.16.", "172.17.", "172.18.", "172.19.",
                                  "172.20.", "172.21.", "172.22.", "172.23.", "172.24.",
                                  "172.25.", "172.26.", "172.27.", "172.28.", "172.29.",
                                  "172.30.", "172.31.", "192.168.", "127.", "::1")):
                return ip
        return ips[0]
    return request.client.host if request.client else "unknown"


def rate_limit_ip(request: Request, limit: int | None = None):
    settings = get_settings()
    ip = _get_real_ip(request)
    return check_rate_limit(
        f"ip:{ip}",
        limit or settings.rate_limit_per_ip_per_minute,
    )


def rate_limit_link_create(user_id: str):
    return check_rate_limit(
        f"create:{user_id}",
        get_settings().rate_limit_link_create_per_minute,
    )
