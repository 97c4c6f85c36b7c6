"""NewsAPI.org fetcher used as an extra pseudo-source for news monitoring."""

from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional

import requests

from borderwatch.ingestion.article_types import NewsItem
from borderwatch.ingestion.feeds import parse_datetime

logger = logging.getLogger(__name__)

NEWSAPI_ENDPOINT = "https://newsapi.org/v2/everything"
EXCLUDED_DOMAINS = "facebook.com,twitter.com,instagram.com,youtube.com"
MIN_DELAY_SECONDS = 1.0


class NewsAPIFetcher:
    name = "newsapi"

    def __init__(self, api_key: str, *, timeout: int = 15, endpoint: str = NEWSAPI_ENDPOINT):
        self.api_key = api_key
        self.timeout = timeout
        self.endpoint = endpoint
        self._last_call: Dict[str, float] = {}

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _respect_rate_limit(self) -> None:
        last = self._last_call.get(self.name, 0.0)
        elapsed = time.monotonic() - last
        if elapsed < MIN_DELAY_SECONDS:
            time.sleep(MIN_DELAY_SECONDS - elapsed)
        self._last_call[self.name] = time.monotonic()

    def fetch(self, query: str = "Thailand Cambodia", page_size: int = 50, domains: Optional[List[str]] = None) -> List[NewsItem]:
        if not self.api_key:
            return []
        self._respect_rate_limit()
        params = {
            "q": query,
            "language": "en",
            "sortBy": "publishedAt",
            "pageSize": min(max(page_size, 1), 100),
            "excludeDomains": EXCLUDED_DOMAINS,
        }
        if domains:
            params["domains"] = ",".join(domains)
        headers = {"X-Api-Key": self.api_key, "User-Agent": "BorderWatch/1.0"}
        resp = requests.get(self.endpoint, params=params, headers=headers, timeout=self.timeout)
        if resp.status_code == 429:
            logger.warning("NewsAPI rate limited")
        resp.raise_for_status()
        data = resp.json() or {}
        out: List[NewsItem] = []
        for a in data.get("articles") or []:
            if not isinstance(a, dict):
                continue
            url = a.get("url") or ""
            title = a.get("title") or ""
            if not url or not title:
                continue
            src = a.get("source") if isinstance(a.get("source"), dict) else {}
            out.append(
                NewsItem(
                    title=str(title).strip(),
                    url=str(url).strip(),
                    published_at=parse_datetime(a.get("publishedAt")),
                    description=a.get("description") or "",
                    content=a.get("content") or "",
                    author=a.get("author") or None,
                    source_name=src.get("name") or "NewsAPI",
                    source_url=src.get("url") or None,
                    image_url=a.get("urlToImage") or None,
                    raw=a,
                )
            )
        logger.info(f"NewsAPI returned {len(out)} articles for '{query}' (total {data.get('totalResults')})")
        return out
