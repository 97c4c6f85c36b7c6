"""Article page fetch + main-text extraction.

Used to top up feed items that carry only a teaser. Text is capped at
`MAX_TEXT_CHARS` before it reaches the analyzer.
"""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

import requests
import trafilatura

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; BorderWatch/1.0)"
MAX_TEXT_CHARS = 5000
BROWSER_FALLBACK_STATUSES = (403, 503)


@dataclass(frozen=True)
class FulltextResult:
    text: Optional[str]
    status: str
    error: Optional[str] = None
    method: str = "trafilatura"

    @property
    def ok(self) -> bool:
        return self.status == "ok" and bool(self.text)


_BLOCKED_NETS = [
    ipaddress.ip_network(n)
    for n in (
        "127.0.0.0/8",
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "169.254.0.0/16",
        "0.0.0.0/8",
        "::1/128",
        "fc00::/7",
        "fe80::/10",
    )
]


def blocked_reason(url: str) -> Optional[str]:
    """Why `url` must not be fetched, or None when it is safe."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return "invalid_url"
    if parsed.scheme not in ("http", "https"):
        return "bad_scheme"
    host = (parsed.hostname or "").strip().lower()
    if not host:
        return "missing_host"
    if host in ("localhost", "localhost.localdomain"):
        return "blocked_host"
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return None
    if any(ip in net for net in _BLOCKED_NETS):
        return "blocked_private_ip"
    return None


def extract_text(html: str, method: str = "trafilatura") -> FulltextResult:
    if not html or not html.strip():
        return FulltextResult(text=None, status="empty", error="empty_html", method=method)
    text = trafilatura.extract(html, include_comments=False, include_tables=False)
    if not text:
        return FulltextResult(text=None, status="no_extract", error="no_extract", method=method)
    text = " ".join(text.split())[:MAX_TEXT_CHARS]
    return FulltextResult(text=text, status="ok", method=method)


def _browser_fetch(url: str, timeout: int) -> FulltextResult:
    from borderwatch.extraction.cloudflare import get_scraper

    result = get_scraper().scrape(url, timeout_ms=timeout * 1000)
    if not result.success:
        return FulltextResult(text=None, status="browser_failed", error=result.error, method="browser")
    return extract_text(result.content or "", method="browser")


def fetch_and_extract(
    url: str,
    *,
    timeout: int = 10,
    max_bytes: int = 2_000_000,
    browser_fallback: bool = False,
) -> FulltextResult:
    if not url:
        return FulltextResult(text=None, status="error", error="empty_url")
    reason = blocked_reason(url)
    if reason:
        return FulltextResult(text=None, status="blocked", error=reason)
    try:
        resp = requests.get(
            url,
            headers={"User-Agent": USER_AGENT},
            timeout=(5, timeout),
            allow_redirects=True,
            stream=True,
        )
        if resp.status_code >= 400:
            if browser_fallback and resp.status_code in BROWSER_FALLBACK_STATUSES:
                logger.info(f"HTTP {resp.status_code} from {url}; retrying with browser")
                return _browser_fetch(url, timeout)
            return FulltextResult(text=None, status=f"http_{resp.status_code}", error=f"http_{resp.status_code}")
        body = b""
        for chunk in resp.iter_content(chunk_size=64 * 1024):
            body += chunk
            if len(body) > max_bytes:
                return FulltextResult(text=None, status="too_large", error="too_large")
        try:
            html = body.decode(resp.encoding or "utf-8", errors="replace")
        except LookupError:
            html = body.decode("utf-8", errors="replace")
        return extract_text(html)
    except requests.RequestException as e:
        logger.warning(f"Full-text fetch failed for {url}: {e}")
        return FulltextResult(text=None, status="error", error=str(e))
