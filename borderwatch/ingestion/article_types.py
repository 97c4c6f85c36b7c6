"""Shared ingestion data types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class FeedSource:
    name: str
    rss_url: str
    website: str


@dataclass(frozen=True)
class NewsItem:
    """Normalized item returned by every news fetcher.

    `content` may be empty; the pipeline tops it up from the article page.
    """

    title: str
    url: str
    published_at: Optional[datetime] = None
    description: str = ""
    content: str = ""
    author: Optional[str] = None
    source_name: Optional[str] = None
    source_url: Optional[str] = None
    image_url: Optional[str] = None
    raw: Optional[Dict[str, Any]] = None

    @property
    def text(self) -> str:
        return self.content or self.description or ""


@dataclass(frozen=True)
class FacebookPost:
    id: str
    message: str = ""
    story: str = ""
    created_time: Optional[datetime] = None
    from_id: Optional[str] = None
    from_name: Optional[str] = None
    link: Optional[str] = None
    permalink_url: Optional[str] = None
    full_picture: Optional[str] = None
    attachments: List[Dict[str, Any]] = field(default_factory=list)
