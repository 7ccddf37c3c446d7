"""URL checks shared by link creation and ad validation."""

import ipaddress
from urllib.parse import urlparse

from linkzy.core.errors import ValidationError

MAX_URL_LENGTH = 2048


def is_http_url(value) -> bool:
    """True for absolute http(s) URLs with a host."""
    if not isinstance(value, str) or not value:
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _ip_literal(host: str):
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return None
    # ::ffff:10.0.0.1 is the IPv4 address in disguise
    mapped = getattr(ip, "ipv4_mapped", None)
    return mapped or ip


def is_internal_host(host: str) -> bool:
    """Loopback, private, link-local and other non-routable hosts."""
    if host == "localhost" or host.endswith(".localhost"):
        return True
    ip = _ip_literal(host)
    if ip is None:
        return False
    return not ip.is_global or ip.is_multicast


def normalize_destination_url(url: str) -> str:
    """Validate and normalize a link destination.

    Adds https:// when no scheme is given, enforces the 2048 char limit,
    and refuses internal addresses (open-redirect into the private network).
    Only IP literals and localhost names count as internal: a domain such as
    10.com is an ordinary public host.
    """
    url = (url or "").strip()
    if not url:
        raise ValidationError("Please enter a valid URL")

    if not url.startswith(("https://", "http://")):
        url = "https://" + url

    if len(url) > MAX_URL_LENGTH:
        raise ValidationError("URL too long")

    if not is_http_url(url):
        raise ValidationError("Please enter a valid URL")

    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        raise ValidationError("Please enter a valid URL")

    if is_internal_host(host):
        raise ValidationError("URL cannot point to internal addresses")
    if "." not in host and _ip_literal(host) is None:
        raise ValidationError("Please enter a valid URL")

    return url
