"""
Funnel token minting & verification.

Carries the pending destination across /ad/1 → /ad/4 in the ?t= query param.

Format:  {short_code}:{page}:{issued_at}:{expiry}:{nonce}:{hmac_sig}
- short_code → the link being unlocked (destination resolved at step 4)
- page       → the funnel page this token was issued for
- issued_at  → unix timestamp when the page was served (countdown start)
- expiry     → unix timestamp after which the token is refused
- nonce      → random per-token value, so two visitors served the same page
               in the same second still get distinct tokens
- hmac_sig   → HMAC-SHA256(payload, secret), hex-truncated to 16 chars

A token is only good for the page it was issued for, so a visitor cannot
skip steps by editing the URL. Page-4 tokens are additionally single-use:
the download row stores the signature under a unique constraint.
"""

import hashlib
import hmac
import secrets
import time
from dataclasses import dataclass

from linkzy.config import get_settings

NONCE_BYTES = 8


def _sign(payload: str, secret: str) -> str:
    """HMAC-SHA256, truncated to 16 hex chars."""
    sig = hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()
    return sig[:16]


@dataclass(frozen=True)
class FunnelToken:
    short_code: str
    page: int
    issued_at: int
    expiry: int
    nonce: str
    signature: str

    def __str__(self) -> str:
        return (
            f"{self.short_code}:{self.page}:{self.issued_at}:{self.expiry}"
            f":{self.nonce}:{self.signature}"
        )

    @property
    def is_expired(self) -> bool:
        return time.time() > self.expiry

    def elapsed(self, now: float | None = None) -> float:
        return (now if now is not None else time.time()) - self.issued_at


def mint_funnel_token(short_code: str, page: int, now: int | None = None) -> FunnelToken:
    """Create a signed token for serving `page` of the funnel."""
    settings = get_settings()
    issued_at = int(now if now is not None else time.time())
    expiry = issued_at + settings.funnel_token_expiry_seconds
    nonce = secrets.token_hex(NONCE_BYTES)
    payload = f"{short_code}:{page}:{issued_at}:{expiry}:{nonce}"
    sig = _sign(payload, settings.funnel_secret)
    return FunnelToken(
        short_code=short_code, page=page, issued_at=issued_at, expiry=expiry, nonce=nonce, signature=sig,
    )


def verify_funnel_token(raw: str | None, page: int | None = None) -> FunnelToken | None:
    """Parse and verify a funnel token string.
    Returns FunnelToken if valid, unexpired and (when given) issued for `page`, else None."""
    if not raw:
        return None
    settings = get_settings()
    parts = raw.rsplit(":", 5)
    if len(parts) != 6:
        return None

    short_code, page_str, issued_str, expiry_str, nonce, sig = parts
    if not short_code or not nonce:
        return None
    try:
        token_page = int(page_str)
        issued_at = int(issued_str)
        expiry = int(expiry_str)
    except ValueError:
        return None

    expected = _sign(f"{short_code}:{token_page}:{issued_at}:{expiry}:{nonce}", settings.funnel_secret)
    if not hmac.compare_digest(sig, expected):
        return None

    token = FunnelToken(
        short_code=short_code, page=token_page, issued_at=issued_at, expiry=expiry,
        nonce=nonce, signature=sig,
    )
    if token.is_expired:
        return None
    if page is not None and token.page != page:
        return None
    return token
