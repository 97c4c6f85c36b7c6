"""Monitoring runs: fetch → keyword gate → dedup → analyze → store.

Each run is a straight sequential loop over its sources. Per-source failures
are written to `monitoring_logs` and the run carries on; per-item failures
only reach the Python logger.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from borderwatch.analysis.conflict_stats import ConflictStatisticsAnalyzer, store_conflict_analysis
from borderwatch.analysis.llm import AnalysisError, AnalysisResult, ContentAnalyzer
from borderwatch.extraction.fulltext import FulltextResult, fetch_and_extract
from borderwatch.ingestion.article_types import FacebookPost, FeedSource, NewsItem
from borderwatch.ingestion.facebook import (
    FACEBOOK_SEARCH_QUERIES,
    GOVERNMENT_QUERIES,
    FacebookClient,
    extract_post_content,
    post_url,
)
from borderwatch.ingestion.feeds import NEWS_SOURCES, RSSFetcher
from borderwatch.ingestion.news_apis import NewsAPIFetcher
from borderwatch.scoring.relevance import is_conflict_related, is_thailand_cambodia_related
from borderwatch.storage.repo import DatabaseError

logger = logging.getLogger(__name__)

NEWS_ARTICLE = "NEWS_ARTICLE"
FACEBOOK_POST = "FACEBOOK_POST"

MIN_CONTENT_CHARS = 100
TOPUP_BELOW_CHARS = 200
MIN_OFFICIAL_CONTENT_CHARS = 50
OFFICIAL_MIN_IMPORTANCE = 3
OFFICIAL_QUERY_DELAY = 1.0


class MonitorError(Exception):
    """A run could not start (for example the upstream API is unreachable)."""


@dataclass
class MonitorRun:
    total_processed: int = 0
    total_relevant: int = 0
    total_new: int = 0
    errors: int = 0
    summary: Dict[str, Any] = field(default_factory=dict)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def post_title(post: FacebookPost, label: Optional[str] = None) -> str:
    d = post.created_time or _utcnow()
    return f"{label or post.from_name or 'Unknown User'} - {d.month}/{d.day}/{d.year}"


def query_slug(query: str) -> str:
    return "-".join(query.split()).lower()


class BaseMonitor:
    source_type = NEWS_ARTICLE
    action_prefix = ""
    label = "Monitoring"

    def __init__(
        self,
        repo,
        analyzer: ContentAnalyzer,
        *,
        stats_analyzer: Optional[ConflictStatisticsAnalyzer] = None,
        min_relevance: int = 3,
        detailed_threshold: int = 6,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.repo = repo
        self.analyzer = analyzer
        self.stats_analyzer = stats_analyzer
        self.min_relevance = min_relevance
        self.detailed_threshold = detailed_threshold
        self.sleep = sleep

    def _action(self, name: str) -> str:
        return f"{self.action_prefix}{name}"

    def run(self) -> MonitorRun:
        self.repo.log(self.source_type, self._action("monitoring_started"), "INFO", f"{self.label} cycle started")
        try:
            result = self._run()
        except Exception as e:
            logger.error(f"{self.label} failed: {e}", exc_info=True)
            try:
                self.repo.log(self.source_type, self._action("monitoring_error"), "ERROR", str(e) or type(e).__name__, {"error": repr(e)})
            except DatabaseError as log_error:
                logger.error(f"Could not record {self.label.lower()} failure: {log_error}")
            raise
        self._log_completed(result)
        return result

    def _log_completed(self, result: MonitorRun) -> None:
        self.repo.log(
            self.source_type,
            self._action("monitoring_completed"),
            "SUCCESS",
            f"{self.label} completed. Processed {result.total_processed} items, found {result.total_relevant} relevant items",
            {"totalProcessed": result.total_processed, "totalRelevant": result.total_relevant},
        )

    def _run(self) -> MonitorRun:
        raise NotImplementedError

    def _detailed_analysis(self, article_id: int, content: str, title: str, analysis: AnalysisResult) -> None:
        if self.stats_analyzer is None or analysis.conflict_relevance < self.detailed_threshold:
            return
        try:
            stats = self.stats_analyzer.analyze(content, title)
            store_conflict_analysis(self.repo, article_id, stats)
        except (AnalysisError, DatabaseError) as e:
            logger.error(f"Conflict analysis failed for article {article_id}, keeping basic analysis: {e}")

    @staticmethod
    def _metadata(base: Dict[str, Any], analysis: AnalysisResult) -> Dict[str, Any]:
        out = dict(base)
        out.update(
            {
                "importance": analysis.importance,
                "conflictRelevance": analysis.conflict_relevance,
                "sentiment": analysis.sentiment,
            }
        )
        return out


class NewsMonitor(BaseMonitor):
    source_type = NEWS_ARTICLE
    label = "News monitoring"

    def __init__(
        self,
        repo,
        analyzer: ContentAnalyzer,
        *,
        rss: Optional[RSSFetcher] = None,
        newsapi: Optional[NewsAPIFetcher] = None,
        feeds: Sequence[FeedSource] = NEWS_SOURCES,
        fulltext: Optional[Callable[[str], FulltextResult]] = None,
        browser_fallback: bool = False,
        newsapi_query: str = "Thailand Cambodia",
        **kwargs: Any,
    ):
        super().__init__(repo, analyzer, **kwargs)
        self.rss = rss or RSSFetcher()
        self.newsapi = newsapi
        self.feeds = list(feeds)
        self.newsapi_query = newsapi_query
        self.fulltext = fulltext or (lambda url: fetch_and_extract(url, browser_fallback=browser_fallback))

    def _sources(self) -> List[FeedSource]:
        sources = list(self.feeds)
        if self.newsapi is not None and self.newsapi.enabled:
            sources.append(FeedSource(f"NewsAPI: {self.newsapi_query}", f"newsapi:{self.newsapi_query}", "https://newsapi.org"))
        return sources

    def _fetch(self, source: FeedSource) -> List[NewsItem]:
        if source.rss_url.startswith("newsapi:"):
            return self.newsapi.fetch(self.newsapi_query)
        return self.rss.fetch(source.rss_url)

    def _run(self) -> MonitorRun:
        result = MonitorRun()
        sources = self._sources()
        for source in sources:
            try:
                source_id = self.repo.upsert_source(source.name, NEWS_ARTICLE, source.rss_url, f"RSS feed from {source.name}")
                items = self._fetch(source)
                logger.info(f"Fetched {len(items)} articles from {source.name}")
                for item in items:
                    try:
                        if self._process_item(source, source_id, item):
                            result.total_relevant += 1
                    except Exception as e:
                        logger.error(f"Error processing article '{item.title}': {e}")
                result.total_processed += len(items)
            except Exception as e:
                logger.error(f"Error processing source {source.name}: {e}")
                self.repo.log(
                    NEWS_ARTICLE,
                    "source_processing",
                    "ERROR",
                    f"Error processing {source.name}: {e}",
                    {"sourceName": source.name, "sourceUrl": source.rss_url},
                )
        result.summary = {
            "success": True,
            "totalProcessed": result.total_processed,
            "totalRelevant": result.total_relevant,
            "sources": len(sources),
        }
        return result

    def _process_item(self, source: FeedSource, source_id: int, item: NewsItem) -> bool:
        """Returns True when the item was stored as an analyzed article."""
        if not is_thailand_cambodia_related(item.text, item.title):
            return False
        if self.repo.find_duplicate(url=item.url, title=item.title, source_id=source_id) is not None:
            logger.debug(f"Duplicate article skipped: {item.title}")
            return False

        content = item.text
        if len(content) < TOPUP_BELOW_CHARS and item.url:
            scraped = self.fulltext(item.url)
            if scraped.ok and len(scraped.text) > len(content):
                content = scraped.text
        if len(content) < MIN_CONTENT_CHARS:
            return False

        base_meta = {"author": item.author, "sourceWebsite": source.website, "imageUrl": item.image_url}
        published = item.published_at or _utcnow()
        article_id = self.repo.create_article(
            source_id=source_id,
            title=item.title,
            content=content,
            original_url=item.url,
            status="PROCESSING",
            published_at=published,
            metadata=base_meta,
        )
        analysis = self.analyzer.analyze(content, item.title)
        if analysis.conflict_relevance < self.min_relevance:
            self.repo.delete_article(article_id)
            return False
        self._detailed_analysis(article_id, content, item.title, analysis)

        self.repo.update_article_analysis(
            article_id,
            summary=analysis.summary,
            ai_analysis=analysis.to_dict(),
            tags=analysis.keywords,
            metadata=self._metadata(base_meta, analysis),
        )
        self.repo.create_timeline_event(
            article_id=article_id,
            event_type="news_article",
            event_date=published,
            title=f"{source.name}: {item.title}",
            description=analysis.summary,
            importance=analysis.importance,
        )
        logger.info(f"Processed relevant article: {item.title}")
        return True


class FacebookMonitor(BaseMonitor):
    source_type = FACEBOOK_POST
    label = "Facebook monitoring"

    def __init__(
        self,
        repo,
        analyzer: ContentAnalyzer,
        client: FacebookClient,
        *,
        queries: Sequence[str] = FACEBOOK_SEARCH_QUERIES,
        query_delay: float = 2.0,
        posts_per_query: int = 10,
        **kwargs: Any,
    ):
        super().__init__(repo, analyzer, **kwargs)
        self.client = client
        self.queries = list(queries)
        self.query_delay = query_delay
        self.posts_per_query = posts_per_query

    def _run(self) -> MonitorRun:
        if not self.client.test_connection():
            raise MonitorError("RapidAPI connection test failed")
        result = MonitorRun()
        for i, query in enumerate(self.queries):
            if i and self.query_delay > 0:
                self.sleep(self.query_delay)
            try:
                source_id = self.repo.upsert_source(
                    f"Facebook Search: {query}",
                    FACEBOOK_POST,
                    f"facebook-search:{query}",
                    f"Facebook search results for: {query}",
                )
                posts = self.client.search_posts(query, self.posts_per_query)
                logger.info(f"Found {len(posts)} posts for query '{query}'")
                for post in posts:
                    try:
                        if self._process_post(query, source_id, post):
                            result.total_relevant += 1
                    except Exception as e:
                        logger.error(f"Error processing post for query '{query}': {e}")
                result.total_processed += len(posts)
            except Exception as e:
                logger.error(f"Error processing search query '{query}': {e}")
                self.repo.log(
                    FACEBOOK_POST,
                    "search_processing",
                    "ERROR",
                    f"Error processing search query \"{query}\": {e}",
                    {"searchQuery": query},
                )
        result.summary = {
            "success": True,
            "totalProcessed": result.total_processed,
            "totalRelevant": result.total_relevant,
            "searchQueries": len(self.queries),
        }
        return result

    def _process_post(self, query: str, source_id: int, post: FacebookPost) -> bool:
        content = extract_post_content(post)
        if not content:
            return False
        if not is_conflict_related(content):
            return False
        title = post_title(post)
        url = post_url(post)
        if self.repo.find_duplicate(url=url, title=title, source_id=source_id, prefix_window_hours=None) is not None:
            logger.debug(f"Duplicate Facebook post skipped: {post.id}")
            return False

        analysis = self.analyzer.analyze(content, f"Facebook post from {post.from_name}")
        if analysis.conflict_relevance < self.min_relevance:
            return False

        published = post.created_time or _utcnow()
        article_id = self.repo.create_article(
            source_id=source_id,
            title=title,
            content=content,
            original_url=url,
            status="ANALYZED",
            published_at=published,
            summary=analysis.summary,
            ai_analysis=analysis.to_dict(),
            tags=analysis.keywords,
            metadata=self._metadata(
                {"postId": post.id, "searchQuery": query, "fromName": post.from_name, "fromId": post.from_id},
                analysis,
            ),
        )
        self._detailed_analysis(article_id, content, title, analysis)
        self.repo.create_timeline_event(
            article_id=article_id,
            event_type="facebook_post",
            event_date=published,
            title=f"Facebook: {post.from_name} posted about {query}",
            description=analysis.summary,
            importance=analysis.importance,
        )
        return True


class OfficialPagesMonitor(BaseMonitor):
    """Searches for posts by Thai and Cambodian government accounts.

    Every analyzed post is kept (no relevance gate) and its timeline event gets
    an importance of at least 3.
    """

    source_type = FACEBOOK_POST
    action_prefix = "official_pages_"
    label = "Official pages monitoring"

    def __init__(
        self,
        repo,
        analyzer: ContentAnalyzer,
        client: FacebookClient,
        *,
        queries: Sequence[str] = GOVERNMENT_QUERIES,
        query_delay: float = OFFICIAL_QUERY_DELAY,
        posts_per_query: int = 3,
        **kwargs: Any,
    ):
        super().__init__(repo, analyzer, **kwargs)
        self.client = client
        self.queries = list(queries)
        self.query_delay = query_delay
        self.posts_per_query = posts_per_query

    def _log_completed(self, result: MonitorRun) -> None:
        if result.errors > result.total_new:
            status = "ERROR"
        elif result.errors > 0:
            status = "WARNING"
        else:
            status = "SUCCESS"
        self.repo.log(
            FACEBOOK_POST,
            self._action("monitoring_completed"),
            status,
            f"Official pages monitoring completed. Created {result.total_new} new articles, {result.errors} errors",
            {
                "totalNew": result.total_new,
                "errors": result.errors,
                "queriesSearched": len(self.queries),
                "searchQueries": list(self.queries),
            },
        )

    def _run(self) -> MonitorRun:
        try:
            self.client.search_posts("test", 1)
        except Exception as e:
            raise MonitorError(f"RapidAPI connection failed: {e}") from e

        result = MonitorRun()
        for i, query in enumerate(self.queries):
            if i and self.query_delay > 0:
                self.sleep(self.query_delay)
            try:
                posts = self.client.search_posts(query, self.posts_per_query)
            except Exception as e:
                logger.error(f"Error searching for '{query}': {e}")
                result.errors += 1
                continue
            result.total_processed += len(posts)
            for post in posts:
                try:
                    if self._process_post(query, post):
                        result.total_new += 1
                except Exception as e:
                    logger.error(f"Error processing post from search '{query}': {e}")
                    result.errors += 1
        result.total_relevant = result.total_new
        result.summary = {
            "success": True,
            "totalNew": result.total_new,
            "errors": result.errors,
            "queriesSearched": len(self.queries),
            "message": f"Searched {len(self.queries)} government queries, found {result.total_new} new official posts",
        }
        return result

    def _process_post(self, query: str, post: FacebookPost) -> bool:
        content = extract_post_content(post)
        if len(content) < MIN_OFFICIAL_CONTENT_CHARS:
            return False
        slug = query_slug(query)
        source_id = self.repo.upsert_source(
            f"Facebook: {query}",
            FACEBOOK_POST,
            f"facebook-search:{slug}",
            f"Facebook posts related to: {query}",
        )
        url = post_url(post)
        if self.repo.find_duplicate(url=url, title=None, source_id=source_id, prefix_window_hours=None) is not None:
            return False

        analysis = self.analyzer.analyze(content, f"Official government-related post: {query}")
        published = post.created_time or _utcnow()
        title = post_title(post, label=query)
        article_id = self.repo.create_article(
            source_id=source_id,
            title=title,
            content=content,
            original_url=url,
            status="ANALYZED",
            published_at=published,
            summary=analysis.summary,
            ai_analysis=analysis.to_dict(),
            tags=analysis.keywords,
            metadata=self._metadata(
                {
                    "postId": post.id,
                    "searchQuery": query,
                    "fromName": post.from_name or "Unknown",
                    "fromId": post.from_id or "unknown",
                    "isOfficialSource": True,
                    "monitoringType": "official_search",
                },
                analysis,
            ),
        )
        self._detailed_analysis(article_id, content, title, analysis)
        self.repo.create_timeline_event(
            article_id=article_id,
            event_type="facebook_post",
            event_date=published,
            title=f"Official: {post.from_name or query} posted update",
            description=analysis.summary,
            importance=max(analysis.importance, OFFICIAL_MIN_IMPORTANCE),
        )
        return True
