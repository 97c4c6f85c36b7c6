"""Facebook search client backed by the RapidAPI `facebook-scraper3` service.

Search is the primary path; the page/posts endpoint is only used for the
connection check and ad-hoc page lookups.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from borderwatch.ingestion.article_types import FacebookPost
from borderwatch.ingestion.feeds import parse_datetime

logger = logging.getLogger(__name__)

RAPIDAPI_BASE = "https://facebook-scraper3.p.rapidapi.com"
RETRYABLE_STATUS = {429, 500, 502, 503, 504}
CONNECTION_CHECK_PAGE_ID = "111975152184324"


@dataclass(frozen=True)
class MonitoredPage:
    id: str
    name: str
    url: str
    username: str


THAI_GOVERNMENT_PAGES = [
    MonitoredPage("139040889463495", "Royal Thai Government", "https://www.facebook.com/ThaiGovt", "ThaiGovt"),
    MonitoredPage("161207220571769", "Ministry of Foreign Affairs Thailand", "https://www.facebook.com/mfathailand", "mfathailand"),
    MonitoredPage("142699589063706", "Prime Minister of Thailand", "https://www.facebook.com/ThaiPM", "ThaiPM"),
]

CAMBODIAN_GOVERNMENT_PAGES = [
    MonitoredPage(
        "183726738320894",
        "Royal Government of Cambodia",
        "https://www.facebook.com/RoyalGovernmentofCambodia",
        "RoyalGovernmentofCambodia",
    ),
    MonitoredPage("157803177577987", "Ministry of Foreign Affairs Cambodia", "https://www.facebook.com/MFACambodia", "MFACambodia"),
    MonitoredPage(
        "111975152184324",
        "Samdech Hun Sen of Cambodia",
        "https://www.facebook.com/profile.php?id=111975152184324",
        "111975152184324",
    ),
    MonitoredPage(
        "2538115383099051",
        "Cambodia Government Spokesperson Unit",
        "https://www.facebook.com/profile.php?id=2538115383099051",
        "2538115383099051",
    ),
]

MONITORED_PAGES = THAI_GOVERNMENT_PAGES + CAMBODIAN_GOVERNMENT_PAGES

FACEBOOK_SEARCH_QUERIES = [
    # Government and diplomatic
    "Thailand Cambodia government",
    "Thai Cambodia diplomatic",
    "Thailand Cambodia border",
    "Hun Sen Thailand",
    "Prayuth Cambodia",
    "Thailand Cambodia conflict",
    "Thai Cambodia dispute",
    # Locations and issues
    "Preah Vihear Thailand",
    "Thailand Cambodia temple",
    "Thailand Cambodia trade",
    "Thai Cambodia cooperation",
    "Thailand Cambodia agreement",
    # Thai
    "รัฐบาลไทย กัมพูชา",
    "ไทย กัมพูชา ข้อพิพาท",
    "ไทย กัมพูชา พรมแดน",
    # Khmer
    "កម្ពុជា ថៃ",
    "រាជរដ្ឋាភិបាល កម្ពុជា ថៃ",
]

GOVERNMENT_QUERIES = [
    "Royal Thai Government",
    "Ministry Foreign Affairs Thailand",
    "Thai Government official",
    "Royal Government Cambodia",
    "Hun Sen Cambodia",
    "Cambodia Government",
    "Thailand Cambodia diplomatic",
    "Thai Cambodia official",
]


def is_retryable_error(exc: BaseException) -> bool:
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return exc.response.status_code in RETRYABLE_STATUS
    return False


def _posts_payload(data: Any) -> List[Dict[str, Any]]:
    if isinstance(data, list):
        return [p for p in data if isinstance(p, dict)]
    if isinstance(data, dict):
        posts = data.get("results") or data.get("data") or []
        if isinstance(posts, list):
            return [p for p in posts if isinstance(p, dict)]
    return []


def transform_search_post(raw: Dict[str, Any]) -> FacebookPost:
    author = raw.get("author") if isinstance(raw.get("author"), dict) else {}
    ts = raw.get("timestamp")
    try:
        created = datetime.fromtimestamp(float(ts), tz=timezone.utc) if ts else datetime.now(timezone.utc)
    except (TypeError, ValueError, OverflowError):
        created = datetime.now(timezone.utc)
    image = raw.get("image") if isinstance(raw.get("image"), dict) else None
    attachments = [{"type": "photo", "url": image.get("uri")}] if image else []
    return FacebookPost(
        id=str(raw.get("post_id") or raw.get("id") or ""),
        message=raw.get("message") or raw.get("text") or "",
        created_time=created,
        from_id=str(author.get("id") or "unknown"),
        from_name=author.get("name") or "Unknown User",
        link=raw.get("external_url") or None,
        permalink_url=raw.get("url") or None,
        full_picture=image.get("uri") if image else None,
        attachments=attachments,
    )


def transform_page_post(raw: Dict[str, Any]) -> FacebookPost:
    sender = raw.get("from") if isinstance(raw.get("from"), dict) else {}
    created = raw.get("created_time") or raw.get("time") or raw.get("timestamp")
    if isinstance(created, (int, float)):
        created_dt: Optional[datetime] = datetime.fromtimestamp(created, tz=timezone.utc)
    else:
        created_dt = parse_datetime(created)
    attachments = []
    for att in raw.get("attachments") or []:
        if isinstance(att, dict):
            attachments.append(
                {"type": att.get("type"), "url": att.get("url"), "title": att.get("title"), "description": att.get("description")}
            )
    return FacebookPost(
        id=str(raw.get("id") or raw.get("post_id") or ""),
        message=raw.get("message") or raw.get("text") or raw.get("content") or "",
        story=raw.get("story") or "",
        created_time=created_dt,
        from_id=sender.get("id") or raw.get("author_id"),
        from_name=sender.get("name") or raw.get("author_name") or raw.get("page_name"),
        link=raw.get("link") or raw.get("external_link"),
        permalink_url=raw.get("permalink_url") or raw.get("url") or raw.get("post_url"),
        attachments=attachments,
    )


def extract_post_content(post: FacebookPost) -> str:
    """Message and/or story plus any attachment titles and descriptions."""
    message = post.message or ""
    story = post.story or ""
    content = message
    if story and not message:
        content = story
    elif story and message:
        content = f"{message}\n\n{story}"

    attachment_texts = "\n".join(
        f"{att.get('title') or ''} {att.get('description') or ''}".strip()
        for att in post.attachments
        if att.get("title") or att.get("description")
    )
    if attachment_texts:
        content += f"\n\n{attachment_texts}"
    return content.strip()


def post_url(post: FacebookPost) -> str:
    return post.permalink_url or f"https://facebook.com/{post.id}"


class FacebookClient:
    def __init__(self, api_key: str, api_host: str = "facebook-scraper3.p.rapidapi.com", *, timeout: int = 15, base_url: str = RAPIDAPI_BASE):
        self.api_key = api_key
        self.api_host = api_host
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception(is_retryable_error),
        reraise=True,
    )
    def _get(self, path: str, params: Dict[str, Any], timeout: Optional[int] = None) -> Any:
        resp = requests.get(
            f"{self.base_url}/{path}",
            params=params,
            headers={"x-rapidapi-key": self.api_key, "x-rapidapi-host": self.api_host},
            timeout=timeout or self.timeout,
        )
        if resp.status_code >= 400:
            logger.warning(f"RapidAPI {path} returned HTTP {resp.status_code}")
        resp.raise_for_status()
        return resp.json()

    def search_posts(self, query: str, limit: int = 25) -> List[FacebookPost]:
        data = self._get("search/posts", {"query": query, "limit": limit})
        return [transform_search_post(p) for p in _posts_payload(data)]

    def get_page_posts(self, page_id: str, limit: int = 25, timeout: Optional[int] = None) -> List[FacebookPost]:
        data = self._get("page/posts", {"page_id": page_id, "limit": limit}, timeout=timeout)
        return [transform_page_post(p) for p in _posts_payload(data)]

    def test_connection(self) -> bool:
        try:
            self.get_page_posts(CONNECTION_CHECK_PAGE_ID, limit=1, timeout=10)
            return True
        except (requests.RequestException, ValueError) as e:
            logger.error(f"RapidAPI connection test failed: {e}")
            return False
