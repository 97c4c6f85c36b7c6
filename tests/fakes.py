"""In-memory stand-ins for the Postgres repository and the LLM analyzer, plus shared payloads."""

from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from borderwatch.analysis.llm import AnalysisResult


class FakeRepo:
    def __init__(self):
        self._ids = itertools.count(1)
        self.sources: Dict[int, Dict[str, Any]] = {}
        self.articles: Dict[int, Dict[str, Any]] = {}
        self.events: Dict[int, Dict[str, Any]] = {}
        self.logs: List[Dict[str, Any]] = []
        self.conflict_rows: List[tuple] = []

    def upsert_source(self, name, source_type, url, description=None):
        for sid, s in self.sources.items():
            if s["url"] == url:
                s.update(name=name, is_active=True)
                return sid
        sid = next(self._ids)
        self.sources[sid] = {"id": sid, "name": name, "type": source_type, "url": url, "description": description, "is_active": True}
        return sid

    def find_duplicate(self, *, url, title, source_id, prefix_window_hours=24):
        now = datetime.now(timezone.utc)
        for aid, a in sorted(self.articles.items()):
            if url and a["original_url"] == url:
                return aid
            if title is not None and a["title"] == title and a["source_id"] == source_id:
                return aid
            if (
                title
                and prefix_window_hours is not None
                and a["source_id"] == source_id
                and title[:50] in a["title"]
                and a["created_at"] >= now - timedelta(hours=prefix_window_hours)
            ):
                return aid
        return None

    def create_article(self, *, source_id, title, content, original_url, status="PENDING", published_at=None,
                       summary=None, ai_analysis=None, tags=None, metadata=None):
        aid = next(self._ids)
        self.articles[aid] = {
            "id": aid,
            "source_id": source_id,
            "title": title,
            "content": content,
            "original_url": original_url,
            "status": status,
            "published_at": published_at,
            "summary": summary,
            "ai_analysis": ai_analysis,
            "tags": list(tags or []),
            "metadata": dict(metadata or {}),
            "conflict_data": None,
            "created_at": datetime.now(timezone.utc),
        }
        return aid

    def update_article_analysis(self, article_id, *, summary, ai_analysis, tags, metadata, status="ANALYZED"):
        self.articles[article_id].update(summary=summary, ai_analysis=ai_analysis, tags=list(tags), metadata=metadata, status=status)

    def delete_article(self, article_id):
        self.delete_articles([article_id])

    def delete_articles(self, article_ids):
        ids = set(article_ids)
        for eid in [e for e, ev in self.events.items() if ev["article_id"] in ids]:
            del self.events[eid]
        removed = 0
        for aid in ids:
            if self.articles.pop(aid, None) is not None:
                removed += 1
        return removed

    def save_conflict_data(self, article_id, conflict_data):
        self.articles[article_id]["conflict_data"] = conflict_data

    def add_casualty_report(self, article_id, **fields):
        self.conflict_rows.append(("casualty_reports", article_id, fields))

    def add_weapon_usage(self, article_id, **fields):
        self.conflict_rows.append(("weapon_usages", article_id, fields))

    def add_population_impact(self, article_id, **fields):
        self.conflict_rows.append(("population_impacts", article_id, fields))

    def exact_duplicate_groups(self):
        groups: Dict[tuple, List[Dict[str, Any]]] = {}
        for a in self.articles.values():
            groups.setdefault((a["title"], a["source_id"]), []).append(a)
        return [
            [a["id"] for a in sorted(members, key=lambda a: (a["created_at"], a["id"]))]
            for members in groups.values()
            if len(members) > 1
        ]

    def recent_articles(self, days=7):
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        rows = [
            {k: a[k] for k in ("id", "title", "source_id", "created_at")}
            for a in self.articles.values()
            if a["created_at"] >= cutoff
        ]
        return sorted(rows, key=lambda a: (a["created_at"], a["id"]))

    def create_timeline_event(self, *, article_id, event_type, event_date, title, description=None, importance=1):
        eid = next(self._ids)
        self.events[eid] = {
            "id": eid,
            "article_id": article_id,
            "event_type": event_type,
            "event_date": event_date,
            "title": title,
            "description": description,
            "importance": max(1, min(int(importance), 5)),
        }
        return eid

    def log(self, source_type, action, status, message, metadata=None):
        self.logs.append({"source_type": source_type, "action": action, "status": status, "message": message, "metadata": metadata})

    def delete_logs_matching(self, patterns):
        pats = [p for p in patterns if p]
        keep = [l for l in self.logs if not any(p in l["action"] or p in (l["message"] or "") for p in pats)]
        deleted = len(self.logs) - len(keep)
        self.logs = keep
        return deleted

    # test helpers

    def actions(self) -> List[str]:
        return [l["action"] for l in self.logs]

    def last_log(self, action: str) -> Optional[Dict[str, Any]]:
        for entry in reversed(self.logs):
            if entry["action"] == action:
                return entry
        return None


def analysis(relevance: int = 7, importance: int = 3, summary: str = "Border talks resumed.") -> AnalysisResult:
    return AnalysisResult(
        summary=summary,
        keywords=["border", "talks"],
        sentiment="neutral",
        importance=importance,
        conflict_relevance=relevance,
    )


class FakeAnalyzer:
    """Returns canned results; `by_title` overrides the default per title substring."""

    def __init__(self, default: Optional[AnalysisResult] = None, by_title: Optional[Dict[str, AnalysisResult]] = None):
        self.default = default or analysis()
        self.by_title = by_title or {}
        self.calls: List[tuple] = []

    def analyze(self, content, title=None):
        self.calls.append((content, title))
        for needle, result in self.by_title.items():
            if needle in (title or ""):
                return result
        return self.default


def conflict_payload():
    return {
        "statistics": {
            "casualties": {"thailand": 2, "cambodia": 1, "total": 3, "verified": False},
            "population": {"affected": 1000, "displaced": 400, "areas": ["Surin"]},
            "weapons": {"types": ["artillery"], "activity": "shelling"},
            "economy": {"loss": None, "tradeDisruption": True, "borderStatus": "closed"},
            "diplomacy": {"tension": 7, "statements": 2, "meetings": 1},
            "confidence": 0.6,
        },
        "casualties": [
            {"location": "Surin", "date": "2025-07-24", "country": "THAILAND", "casualties": 2, "injured": 5, "confidence": 0.8}
        ],
        "weapons": [{"type": "artillery", "country": "CAMBODIA", "threatLevel": 7, "confidence": 0.5}],
        "impacts": [{"location": "Surin", "country": "THAILAND", "type": "DISPLACEMENT", "affected": 400, "severity": 6, "confidence": 0.9}],
        "summary": "Clashes along the border.",
        "keyDevelopments": ["Border closed"],
        "riskAssessment": 7,
        "overallConfidence": 0.7,
    }


def situation_payload():
    return {
        "casualties": {"total": 5, "thailand": 3, "cambodia": 2, "verified": True, "confidence": 0.8},
        "population": {"affected": 2000, "displaced": 1200, "affectedAreas": ["Surin", "Oddar Meanchey"], "confidence": 0.6},
        "weapons": {
            "types": ["artillery", "rockets"],
            "deployments": [{"type": "BM-21", "country": "CAMBODIA", "location": "Oddar Meanchey", "threatLevel": 8}],
            "confidence": 0.5,
        },
        "diplomatic": {
            "tension": 8,
            "borderStatus": "CLOSED",
            "recentStatements": ["Bangkok protests shelling", "Phnom Penh calls for talks"],
            "meetings": 1,
            "confidence": 0.7,
        },
        "risk": {"level": 7, "factors": ["troop build-up"], "escalationProbability": 0.4, "confidence": 0.6},
        "summary": "Border closed after overnight shelling.",
        "keyDevelopments": ["Border crossings closed"],
        "lastUpdated": "2025-07-24T06:00:00+00:00",
        "sources": "Wire reports",
        "overallConfidence": 0.65,
    }
