"""RSS fetching and the curated feed list monitored for border news."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, List, Optional

import feedparser
import requests

from borderwatch.ingestion.article_types import FeedSource, NewsItem

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; BorderWatch/1.0)"


NEWS_SOURCES: List[FeedSource] = [
    FeedSource("BBC News", "http://feeds.bbci.co.uk/news/world/rss.xml", "https://bbc.com"),
    FeedSource(
        "Channel News Asia",
        "https://www.channelnewsasia.com/api/v1/rss-outbound-feed?_format=xml&category=6511",
        "https://channelnewsasia.com",
    ),
    FeedSource("Al Jazeera", "https://www.aljazeera.com/xml/rss/all.xml", "https://aljazeera.com"),
    FeedSource("Associated Press", "https://feeds.apnews.com/rss/apf-topnews", "https://apnews.com"),
    FeedSource("CNN World", "http://rss.cnn.com/rss/edition.rss", "https://cnn.com"),
    FeedSource("Voice of America", "https://www.voanews.com/api/zp$qieve", "https://voanews.com"),
    # Regional
    FeedSource("Bangkok Post - Most Recent", "https://www.bangkokpost.com/rss/data/most-recent.xml", "https://bangkokpost.com"),
    FeedSource("Bangkok Post - Top Stories", "https://www.bangkokpost.com/rss/data/topstories.xml", "https://bangkokpost.com"),
    FeedSource("Bangkok Post - Thailand News", "https://www.bangkokpost.com/rss/data/thailand.xml", "https://bangkokpost.com"),
    FeedSource("Bangkok Post - Business", "https://www.bangkokpost.com/rss/data/business.xml", "https://bangkokpost.com"),
    FeedSource("Bangkok Post - World News", "https://www.bangkokpost.com/rss/data/world.xml", "https://bangkokpost.com"),
    FeedSource("The Nation Thailand", "https://www.nationthailand.com/rss", "https://nationthailand.com"),
    FeedSource("The Thaiger", "https://thethaiger.com/feed", "https://thethaiger.com"),
    FeedSource("The Thaiger - Business", "https://thethaiger.com/news/business/feed", "https://thethaiger.com"),
    FeedSource("The Pattaya News", "https://thepattayanews.com/feed", "https://thepattayanews.com"),
    FeedSource("Thai PBS World", "https://world.thaipbs.or.th/rss", "https://world.thaipbs.or.th"),
    FeedSource("Phnom Penh Post", "https://www.phnompenhpost.com/rss.xml", "https://phnompenhpost.com"),
    # Cambodia
    FeedSource("VOA Khmer", "https://khmer.voanews.com/api/epiqq", "https://khmer.voanews.com"),
    FeedSource("Cambodia Investment Review", "https://cambodiainvestmentreview.com/feed/", "https://cambodiainvestmentreview.com"),
    FeedSource("Asia Times Cambodia", "https://asiatimes.com/category/southeast-asia/cambodia/feed/", "https://asiatimes.com"),
    FeedSource("The Straits Times", "https://www.straitstimes.com/news/asia/rss.xml", "https://straitstimes.com"),
    FeedSource("Reuters Asia", "https://feeds.reuters.com/reuters/asiaNews", "https://reuters.com"),
    # Asia-Pacific
    FeedSource("Nikkei Asia", "https://asia.nikkei.com/rss/feed/nar", "https://asia.nikkei.com"),
    FeedSource("The Diplomat", "https://thediplomat.com/feed/", "https://thediplomat.com"),
    FeedSource("South China Morning Post", "https://www.scmp.com/rss/4/feed", "https://scmp.com"),
    # International
    FeedSource("France24", "https://www.france24.com/en/rss", "https://france24.com"),
    FeedSource("Deutsche Welle", "https://rss.dw.com/rdf/rss-en-all", "https://dw.com"),
    FeedSource("The Guardian World", "https://www.theguardian.com/world/rss", "https://theguardian.com"),
    FeedSource("The Independent World", "https://www.independent.co.uk/news/world/rss", "https://independent.co.uk"),
    FeedSource("Euronews", "https://www.euronews.com/rss", "https://euronews.com"),
]


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse RFC 822 or ISO 8601 timestamps into aware UTC datetimes."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    s = str(value).strip()
    if not s:
        return None
    try:
        parsed = parsedate_to_datetime(s)
    except (TypeError, ValueError):
        try:
            parsed = datetime.fromisoformat(s.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _entry_published(entry: Any) -> datetime:
    struct = entry.get("published_parsed") or entry.get("updated_parsed")
    if struct:
        return datetime(*struct[:6], tzinfo=timezone.utc)
    return parse_datetime(entry.get("published") or entry.get("updated")) or datetime.now(timezone.utc)


def _entry_content(entry: Any) -> str:
    contents = entry.get("content") or []
    for c in contents:
        value = c.get("value") if hasattr(c, "get") else None
        if value:
            return str(value).strip()
    return str(entry.get("summary") or "").strip()


class RSSFetcher:
    """Fetches one feed over HTTP and normalizes its entries into NewsItems.

    HTTP failures raise `requests.RequestException`; callers decide whether a
    failing feed aborts anything.
    """

    def __init__(self, timeout: int = 15, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self, feed_url: str) -> List[NewsItem]:
        resp = self.session.get(feed_url, headers={"User-Agent": USER_AGENT}, timeout=self.timeout)
        resp.raise_for_status()
        parsed = feedparser.parse(resp.content)
        if parsed.bozo and not parsed.entries:
            logger.warning(f"Feed {feed_url} could not be parsed: {parsed.get('bozo_exception')}")
            return []

        feed_title = parsed.feed.get("title") or "RSS Feed"
        feed_link = parsed.feed.get("link") or feed_url
        out: List[NewsItem] = []
        for entry in parsed.entries:
            link = entry.get("link")
            title = entry.get("title")
            if not link or not title:
                continue
            out.append(
                NewsItem(
                    title=str(title).strip(),
                    url=str(link).strip(),
                    published_at=_entry_published(entry),
                    description=str(entry.get("summary") or "").strip(),
                    content=_entry_content(entry),
                    author=entry.get("author") or None,
                    source_name=feed_title,
                    source_url=feed_link,
                    raw=dict(entry),
                )
            )
        return out
