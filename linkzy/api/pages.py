"""
Server-rendered HTML for the ad funnel.

Plain f-string templates: a funnel page (countdown, ad cards, confirm form)
and an error page that sends the visitor home after a short delay. Inline
script runs under a per-response CSP nonce.
"""

import secrets
from urllib.parse import quote

from fastapi.responses import HTMLResponse

from linkzy.config import get_settings
from linkzy.core.funnel import FUNNEL_PAGES, FunnelStep

_STYLE = """
body{margin:0;font-family:system-ui,-apple-system,Segoe UI,Roboto,sans-serif;background:#f8fafc;color:#0f172a}
header{background:#fff;border-bottom:1px solid #e2e8f0;padding:16px 24px;display:flex;justify-content:space-between;align-items:center}
main{max-width:960px;margin:0 auto;padding:40px 16px;text-align:center}
.steps span{display:inline-block;width:8px;height:8px;border-radius:50%;background:#cbd5e1;margin-left:4px}
.steps span.on{background:#4f46e5}
.countdown{font-size:48px;font-weight:700;margin:24px 0}
.ads{display:grid;grid-template-columns:repeat(auto-fill,minmax(240px,1fr));gap:16px;margin:32px 0;text-align:left}
.ad{background:#fff;border:1px solid #e2e8f0;border-radius:12px;overflow:hidden;text-decoration:none;color:inherit}
.ad img{width:100%;height:140px;object-fit:cover;display:block}
.ad p{margin:0;padding:12px;font-weight:600}
button{font-size:18px;padding:12px 28px;border:0;border-radius:10px;background:#4f46e5;color:#fff;cursor:pointer}
button:disabled{background:#94a3b8;cursor:not-allowed}
.notice{color:#b45309}
"""


def _html_escape(s) -> str:
    """Basic HTML escaping for text and attribute values."""
    return (
        str(s)
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#x27;")
    )


def _page_headers(nonce: str | None = None) -> dict:
    script_src = f"script-src 'nonce-{nonce}'; " if nonce else ""
    return {
        "Content-Security-Policy": (
            f"default-src 'none'; {script_src}style-src 'unsafe-inline'; img-src https: http: data:; "
            "form-action 'self'; frame-ancestors 'none'"
        ),
        "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
        "X-Robots-Tag": "noindex, nofollow",
    }


def _ad_card(ad: dict) -> str:
    ad_id = quote(str(ad.get("id", "")), safe="")
    return (
        f'<a class="ad" href="/ad/click/{ad_id}" target="_blank" rel="noopener sponsored">'
        f'<img src="{_html_escape(ad.get("img", ""))}" alt="{_html_escape(ad.get("title", ""))}" loading="lazy">'
        f'<p>{_html_escape(ad.get("title", ""))}</p></a>'
    )


def render_funnel_page(
    step: FunnelStep,
    token: str,
    remaining: int | None = None,
    notice: str | None = None,
    status_code: int = 200,
) -> HTMLResponse:
    settings = get_settings()
    nonce = secrets.token_urlsafe(16)
    wait = step.countdown if remaining is None else remaining

    dots = "".join(
        f'<span class="{"on" if page <= step.page else ""}"></span>' for page in FUNNEL_PAGES
    )
    ads = sorted(step.ads, key=lambda ad: ad.get("order", 0) if isinstance(ad, dict) else 0)
    ads_html = ""
    if ads:
        ads_html = (
            '<h3>Featured Offers</h3><div class="ads">'
            + "".join(_ad_card(ad) for ad in ads if isinstance(ad, dict))
            + "</div>"
        )
    label = "Get Your Download" if step.is_last else "Continue to Next Step"
    notice_html = f'<p class="notice">{_html_escape(notice)}</p>' if notice else ""

    html = f"""<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width,initial-scale=1">
<meta name="robots" content="noindex,nofollow">
<title>{_html_escape(settings.app_name)} — Step {step.page} of {len(FUNNEL_PAGES)}</title>
<style>{_STYLE}</style>
</head>
<body>
<header>
<strong>Software Download</strong>
<span class="steps">Step {step.page} of {len(FUNNEL_PAGES)} {dots}</span>
</header>
<main>
<h2>Preparing Your Download</h2>
<p>Your download will be ready in a moment. While you wait, check out these offers from our partners.</p>
{notice_html}
<div class="countdown" id="countdown" data-seconds="{wait}">{wait}</div>
{ads_html}
<form method="post" action="/ad/{step.page}/next">
<input type="hidden" name="t" value="{_html_escape(token)}">
<button type="submit" id="next"{" disabled" if wait > 0 else ""}>{label}</button>
</form>
<p id="hint">{"Next button will appear when countdown completes" if wait > 0 else ""}</p>
</main>
<script nonce="{nonce}">
(function() {{
  var el = document.getElementById("countdown");
  var btn = document.getElementById("next");
  var hint = document.getElementById("hint");
  var left = parseInt(el.getAttribute("data-seconds"), 10) || 0;
  if (left <= 0) return;
  var timer = setInterval(function() {{
    left -= 1;
    el.textContent = Math.max(left, 0);
    if (left <= 0) {{
      clearInterval(timer);
      btn.disabled = false;
      hint.textContent = "";
    }}
  }}, 1000);
}})();
</script>
</body>
</html>"""

    return HTMLResponse(content=html, status_code=status_code, headers=_page_headers(nonce))


def render_error_page(message: str, status_code: int = 404) -> HTMLResponse:
    """Show `message`, then navigate home after the configured delay."""
    settings = get_settings()
    delay = settings.error_redirect_delay_seconds
    home = _html_escape(settings.home_url)
    html = f"""<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width,initial-scale=1">
<meta name="robots" content="noindex,nofollow">
<meta http-equiv="refresh" content="{delay};url={home}">
<title>{_html_escape(message)}</title>
<style>{_STYLE}</style>
</head>
<body>
<main><p>{_html_escape(message)}</p><p><a href="{home}">Back to home</a></p></main>
</body>
</html>"""
    return HTMLResponse(content=html, status_code=status_code, headers=_page_headers())
