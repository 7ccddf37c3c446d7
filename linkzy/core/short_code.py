"""
Short code generation.

Codes are random base-36 ([0-9a-z]), 6 characters by default (~2.2e9 space).
Uniqueness is enforced by the database index on links.short_code; callers
retry on conflict (see linkzy.core.links.create_link).
"""

import secrets
import string

from linkzy.config import get_settings

ALPHABET = string.digits + string.ascii_lowercase


def generate_short_code(length: int | None = None) -> str:
    n = length or get_settings().short_code_length
    return "".join(secrets.choice(ALPHABET) for _ in range(n))


def is_well_formed(code: str) -> bool:
    """Cheap shape check before touching the database."""
    return 0 < len(code) <= 32 and all(c in ALPHABET for c in code.lower())


def generate_ad_id(now_ms: int) -> str:
    """Ad ids look like ad_1718000000000_k3j9x0q2p."""
    suffix = "".join(secrets.choice(ALPHABET) for _ in range(9))
    return f"ad_{now_ms}_{suffix}"
