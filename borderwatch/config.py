"""Runtime configuration loaded from the environment (and `.env`)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_PG_DSN = "dbname=borderwatch user=borderwatch password=borderwatch host=localhost port=5432"


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Settings shared by the web app and the monitoring worker."""

    pg_dsn: str = DEFAULT_PG_DSN
    openai_api_key: str = ""
    ai_model: str = "gpt-4o-mini"
    news_api_key: str = ""
    rapidapi_key: str = ""
    rapidapi_host: str = "facebook-scraper3.p.rapidapi.com"
    request_timeout: int = 15
    facebook_query_delay: float = 2.0
    min_conflict_relevance: int = 3
    detailed_analysis_threshold: int = 6
    enable_browser_fallback: bool = False
    monitor_interval_minutes: int = 60
    port: int = 5002

    @classmethod
    def from_env(cls) -> 'Settings':
        load_dotenv()
        settings = cls(
            pg_dsn=os.getenv('PG_DSN', DEFAULT_PG_DSN),
            openai_api_key=os.getenv('OPENAI_API_KEY', ''),
            ai_model=os.getenv('AI_MODEL', 'gpt-4o-mini'),
            news_api_key=os.getenv('NEWS_API_KEY', ''),
            rapidapi_key=os.getenv('RAPIDAPI_KEY', ''),
            rapidapi_host=os.getenv('RAPIDAPI_HOST', 'facebook-scraper3.p.rapidapi.com'),
            request_timeout=int(os.getenv('REQUEST_TIMEOUT', '15')),
            facebook_query_delay=float(os.getenv('FACEBOOK_QUERY_DELAY', '2.0')),
            min_conflict_relevance=int(os.getenv('MIN_CONFLICT_RELEVANCE', '3')),
            detailed_analysis_threshold=int(os.getenv('DETAILED_ANALYSIS_THRESHOLD', '6')),
            enable_browser_fallback=_env_bool('ENABLE_BROWSER_FALLBACK', False),
            monitor_interval_minutes=int(os.getenv('MONITOR_INTERVAL_MINUTES', '60')),
            port=int(os.getenv('PORT', '5002')),
        )
        for problem in settings.validate():
            logger.warning(f"Configuration: {problem}")
        return settings

    def validate(self) -> List[str]:
        """Return configuration problems. None of them are fatal."""
        problems = []
        if not self.openai_api_key:
            problems.append("OPENAI_API_KEY is not set; monitoring runs cannot analyze content")
        elif not self.openai_api_key.startswith(('sk-', 'sk-proj-')):
            problems.append("OPENAI_API_KEY appears to be invalid (wrong format)")
        if not self.rapidapi_key:
            problems.append("RAPIDAPI_KEY is not set; Facebook monitoring is disabled")
        if self.request_timeout <= 0:
            problems.append("REQUEST_TIMEOUT must be positive")
        if not 1 <= self.min_conflict_relevance <= 10:
            problems.append("MIN_CONFLICT_RELEVANCE must be between 1 and 10")
        if not 1 <= self.detailed_analysis_threshold <= 10:
            problems.append("DETAILED_ANALYSIS_THRESHOLD must be between 1 and 10")
        if self.monitor_interval_minutes < 1:
            problems.append("MONITOR_INTERVAL_MINUTES must be at least 1")
        return problems

    @property
    def facebook_enabled(self) -> bool:
        return bool(self.rapidapi_key)
