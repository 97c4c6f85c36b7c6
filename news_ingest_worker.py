#!/usr/bin/env python3
"""BorderWatch monitoring worker.

Runs one monitoring cycle (or scheduled) covering:
- News feeds + NewsAPI
- Official government pages (Facebook search)
- Broad Facebook search

then rolls today's analyzed articles up into `conflict_analytics`. In
scheduled mode a current-situation refresh also runs every 12 hours.
"""

from __future__ import annotations

import atexit
import logging
import os
import time
from datetime import datetime, timezone
from typing import Dict, Optional

import schedule
from dotenv import load_dotenv

from borderwatch.analysis.conflict_stats import (
    ConflictStatisticsAnalyzer,
    SituationAnalyzer,
    generate_daily_analytics,
    refresh_situation_analytics,
)
from borderwatch.analysis.llm import ContentAnalyzer
from borderwatch.config import Settings
from borderwatch.extraction.cloudflare import close_scraper
from borderwatch.ingestion.facebook import FacebookClient
from borderwatch.ingestion.feeds import RSSFetcher
from borderwatch.ingestion.news_apis import NewsAPIFetcher
from borderwatch.pipeline.monitor import FacebookMonitor, NewsMonitor, OfficialPagesMonitor
from borderwatch.storage.analytics import ConflictAnalyticsStore
from borderwatch.storage.repo import DatabaseError, MonitorRepo
from borderwatch.storage.schema import ensure_schema

logger = logging.getLogger("news_ingest_worker")

SITUATION_REFRESH_HOURS = 12


def run_once(settings: Optional[Settings] = None) -> Dict[str, dict]:
    load_dotenv()
    settings = settings or Settings.from_env()
    ensure_schema(settings.pg_dsn)
    repo = MonitorRepo(settings.pg_dsn)

    analyzer = ContentAnalyzer(api_key=settings.openai_api_key, model=settings.ai_model)
    stats_analyzer = ConflictStatisticsAnalyzer(analyzer)
    common = {
        "stats_analyzer": stats_analyzer,
        "min_relevance": settings.min_conflict_relevance,
        "detailed_threshold": settings.detailed_analysis_threshold,
    }
    results: Dict[str, dict] = {}

    newsapi = NewsAPIFetcher(settings.news_api_key, timeout=settings.request_timeout) if settings.news_api_key else None
    news = NewsMonitor(
        repo,
        analyzer,
        rss=RSSFetcher(timeout=settings.request_timeout),
        newsapi=newsapi,
        browser_fallback=settings.enable_browser_fallback,
        **common,
    )
    results["news"] = _run_leg("news", news)

    if settings.facebook_enabled:
        client = FacebookClient(settings.rapidapi_key, settings.rapidapi_host, timeout=settings.request_timeout)
        results["officialPages"] = _run_leg("official pages", OfficialPagesMonitor(repo, analyzer, client, **common))
        results["facebook"] = _run_leg(
            "facebook",
            FacebookMonitor(repo, analyzer, client, query_delay=settings.facebook_query_delay, **common),
        )
    else:
        logger.info("RAPIDAPI_KEY not set; skipping Facebook monitoring")

    today = datetime.now(timezone.utc).date()
    results["analytics"] = _run_daily_analytics(repo, ConflictAnalyticsStore(settings.pg_dsn), stats_analyzer, today)
    logger.info(f"[monitor] cycle finished: {results}")
    return results


def _run_leg(name: str, monitor) -> dict:
    # A failed leg is already recorded in monitoring_logs by the monitor itself.
    try:
        return monitor.run().summary
    except Exception as e:
        logger.error(f"{name} monitoring failed: {e}")
        return {"success": False, "error": str(e)}


def _run_daily_analytics(repo, store, stats_analyzer, day) -> dict:
    try:
        row = generate_daily_analytics(store, stats_analyzer, day)
    except Exception as e:
        logger.error(f"Daily analytics for {day.isoformat()} failed: {e}", exc_info=True)
        try:
            repo.log("NEWS_ARTICLE", "daily_analytics", "ERROR", f"Daily analytics failed: {e}", {"date": day.isoformat(), "error": repr(e)})
        except DatabaseError as log_error:
            logger.error(f"Could not record daily analytics failure: {log_error}")
        return {"date": day.isoformat(), "generated": False, "error": str(e)}
    return {"date": day.isoformat(), "generated": row is not None}


def run_situation_update(settings: Optional[Settings] = None) -> dict:
    """Refresh today's analytics row from the model's current-situation snapshot."""
    settings = settings or Settings.from_env()
    repo = MonitorRepo(settings.pg_dsn)
    analyzer = SituationAnalyzer(ContentAnalyzer(api_key=settings.openai_api_key, model=settings.ai_model))
    today = datetime.now(timezone.utc).date()
    try:
        refresh_situation_analytics(repo, ConflictAnalyticsStore(settings.pg_dsn), analyzer, today, action="openai_analytics_cron")
    except Exception as e:
        logger.error(f"Situation analytics update failed: {e}")
        return {"success": False, "error": str(e)}
    return {"success": True, "date": today.isoformat()}


def _scheduled_cycle(settings: Settings) -> None:
    try:
        run_once(settings)
    except Exception as e:
        logger.error(f"Monitoring cycle failed: {e}", exc_info=True)


def run_scheduled() -> None:
    settings = Settings.from_env()
    _scheduled_cycle(settings)
    schedule.every(settings.monitor_interval_minutes).minutes.do(_scheduled_cycle, settings)
    schedule.every(SITUATION_REFRESH_HOURS).hours.do(run_situation_update, settings)
    while True:
        schedule.run_pending()
        time.sleep(5)


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    atexit.register(close_scraper)
    mode = (os.environ.get("INGEST_MODE") or "once").lower().strip()
    if mode in ("scheduled", "daemon"):
        run_scheduled()
    else:
        run_once()
