"""Admin housekeeping: duplicate articles and noisy Facebook search logs."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List, Tuple

from borderwatch.ingestion.facebook import FACEBOOK_SEARCH_QUERIES

logger = logging.getLogger(__name__)

FUZZY_PREFIX_CHARS = 60
FUZZY_WINDOW = timedelta(hours=2)
FUZZY_LOOKBACK_DAYS = 7


def find_fuzzy_duplicates(articles: List[Dict[str, Any]]) -> List[int]:
    """Ids to remove among `articles` sharing source and lowercased title prefix.

    Within each (source, prefix) group the oldest article is kept and any
    article created within two hours of the last kept one is dropped.
    """
    groups: Dict[Tuple[Any, str], List[Dict[str, Any]]] = {}
    for a in articles:
        key = (a["source_id"], (a["title"] or "")[:FUZZY_PREFIX_CHARS].lower())
        groups.setdefault(key, []).append(a)

    remove: List[int] = []
    for members in groups.values():
        members.sort(key=lambda a: (a["created_at"], a["id"]))
        kept = members[0]
        for a in members[1:]:
            if a["created_at"] - kept["created_at"] < FUZZY_WINDOW:
                remove.append(a["id"])
            else:
                kept = a
    return remove


def cleanup_duplicates(repo) -> Dict[str, Any]:
    groups = repo.exact_duplicate_groups()
    exact_ids = [i for ids in groups for i in ids[1:]]
    removed = repo.delete_articles(exact_ids) if exact_ids else 0

    fuzzy_ids = find_fuzzy_duplicates(repo.recent_articles(days=FUZZY_LOOKBACK_DAYS))
    if fuzzy_ids:
        removed += repo.delete_articles(fuzzy_ids)

    result = {
        "success": True,
        "totalRemoved": removed,
        "exactDuplicates": len(groups),
        "fuzzyDuplicates": len(fuzzy_ids),
        "message": f"Successfully removed {removed} duplicate articles",
    }
    repo.log(
        "NEWS_ARTICLE",
        "cleanup_duplicates",
        "SUCCESS",
        f"Duplicate cleanup completed. Removed {removed} duplicate articles",
        {k: result[k] for k in ("totalRemoved", "exactDuplicates", "fuzzyDuplicates")},
    )
    logger.info(f"Duplicate cleanup removed {removed} articles")
    return result


def cleanup_facebook_logs(repo) -> Dict[str, Any]:
    patterns = ["Facebook Search", "Ministry of Foreign Affairs Thailand"] + list(FACEBOOK_SEARCH_QUERIES)
    deleted = repo.delete_logs_matching(patterns)
    repo.log(
        "NEWS_ARTICLE",
        "CLEANUP_FACEBOOK_LOGS",
        "SUCCESS",
        f"Removed {deleted} Facebook search log entries",
        {"deletedCount": deleted},
    )
    return {
        "success": True,
        "deletedCount": deleted,
        "message": f"Successfully removed {deleted} Facebook search log entries",
    }
