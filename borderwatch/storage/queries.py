"""Read-side Postgres queries backing the dashboard JSON API.

Rows are mapped into the camelCase shapes the dashboard templates and API
clients consume.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from borderwatch.storage.repo import pg_cursor


def _iso(value: Any) -> Any:
    return value.isoformat() if isinstance(value, (datetime, date)) else value


def row_to_source(row: Dict[str, Any]) -> Dict[str, Any]:
    out = {
        "id": row["id"],
        "name": row["name"],
        "type": row["type"],
        "url": row["url"],
        "description": row.get("description"),
        "isActive": row["is_active"],
    }
    if "article_count" in row:
        out["_count"] = {"articles": int(row["article_count"] or 0)}
    return out


def _row_to_article(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "sourceId": row["source_id"],
        "title": row["title"],
        "content": row["content"],
        "originalUrl": row.get("original_url"),
        "summary": row.get("summary"),
        "aiAnalysis": row.get("ai_analysis"),
        "status": row["status"],
        "tags": list(row.get("tags") or []),
        "metadata": row.get("metadata") or {},
        "publishedAt": _iso(row.get("published_at")),
        "createdAt": _iso(row.get("created_at")),
        "updatedAt": _iso(row.get("updated_at")),
        "source": {"name": row.get("source_name"), "type": row.get("source_type")},
    }


def _row_to_event(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "articleId": row["article_id"],
        "eventType": row["event_type"],
        "eventDate": _iso(row["event_date"]),
        "title": row["title"],
        "description": row.get("description"),
        "importance": row["importance"],
        "createdAt": _iso(row.get("created_at")),
        "article": {
            "id": row["article_id"],
            "title": row.get("article_title"),
            "originalUrl": row.get("original_url"),
            "source": {"name": row.get("source_name"), "type": row.get("source_type")},
        },
    }


def _row_to_log(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row["id"],
        "sourceType": row["source_type"],
        "action": row["action"],
        "status": row["status"],
        "message": row.get("message"),
        "metadata": row.get("metadata"),
        "createdAt": _iso(row.get("created_at")),
    }


def conflict_article_facts(conflict_data, casualties, weapons, impacts) -> Dict[str, Any]:
    """Per-article extraction rows plus a roll-up used by the detailed timeline."""
    return {
        "conflictData": conflict_data,
        "casualtyReports": [
            {k: r[k] for k in ("casualties", "injured", "country", "location", "confidence")} for r in casualties
        ],
        "weaponUsages": [
            {"weaponType": r["weapon_type"], "country": r["country"], "threatLevel": r["threat_level"], "confidence": r["confidence"]}
            for r in weapons
        ],
        "populationImpacts": [
            {"impactType": r["impact_type"], "affectedCount": r["affected_count"], "severity": r["severity"], "confidence": r["confidence"]}
            for r in impacts
        ],
        "conflictSummary": {
            "hasCasualties": bool(casualties),
            "totalCasualties": sum(r["casualties"] + r["injured"] for r in casualties),
            "hasWeapons": bool(weapons),
            "weaponCount": len(weapons),
            "highThreatWeapons": sum(1 for r in weapons if r["threat_level"] >= 7),
            "hasPopulationImpact": bool(impacts),
            "totalAffected": sum(r["affected_count"] for r in impacts),
            "maxSeverity": max([r["severity"] for r in impacts], default=0),
        },
    }


def timeline_stats(events: List[Dict[str, Any]], start: datetime, end: datetime, days: int) -> Dict[str, Any]:
    summaries = [e["article"]["conflictSummary"] for e in events]
    return {
        "totalEvents": len(events),
        "eventTypes": {
            "news": sum(1 for e in events if e["eventType"] == "news_article"),
            "facebook": sum(1 for e in events if e["eventType"] == "facebook_post"),
        },
        "importanceBreakdown": {
            "high": sum(1 for e in events if e["importance"] >= 4),
            "medium": sum(1 for e in events if e["importance"] == 3),
            "low": sum(1 for e in events if e["importance"] < 3),
        },
        "conflictAnalytics": {
            "eventsWithCasualties": sum(1 for s in summaries if s["hasCasualties"]),
            "eventsWithWeapons": sum(1 for s in summaries if s["hasWeapons"]),
            "eventsWithPopulationImpact": sum(1 for s in summaries if s["hasPopulationImpact"]),
            "totalCasualties": sum(s["totalCasualties"] for s in summaries),
            "totalAffected": sum(s["totalAffected"] for s in summaries),
        },
        "dateRange": {"start": start.isoformat(), "end": end.isoformat(), "days": days},
    }


@dataclass
class DashboardStore:
    pg_dsn: str

    def list_articles(
        self,
        *,
        page: int = 1,
        limit: int = 20,
        source_type: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        source_id: Optional[int] = None,
        source_name: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], Dict[str, int]]:
        page = max(1, int(page))
        limit = max(1, min(int(limit), 200))
        where = ["1=1"]
        params: List[Any] = []
        if source_type:
            where.append("s.type = %s")
            params.append(source_type)
        if source_id:
            where.append("a.source_id = %s")
            params.append(int(source_id))
        if source_name:
            where.append("s.name ILIKE %s")
            params.append(f"%{source_name}%")
        if status:
            where.append("a.status = %s")
            params.append(status)
        if search:
            where.append("(a.title ILIKE %s OR a.content ILIKE %s OR COALESCE(a.summary, '') ILIKE %s)")
            params.extend([f"%{search}%"] * 3)
        clause = " AND ".join(where)

        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(f"SELECT count(*) AS n FROM articles a JOIN sources s ON s.id = a.source_id WHERE {clause}", params)
            total = int(cur.fetchone()["n"])
            cur.execute(
                f"""
                SELECT a.*, s.name AS source_name, s.type AS source_type
                FROM articles a JOIN sources s ON s.id = a.source_id
                WHERE {clause}
                ORDER BY a.published_at DESC NULLS LAST, a.id DESC
                LIMIT %s OFFSET %s
                """,
                params + [limit, (page - 1) * limit],
            )
            rows = cur.fetchall()
        pagination = {"page": page, "limit": limit, "total": total, "totalPages": math.ceil(total / limit)}
        return [_row_to_article(r) for r in rows], pagination

    def get_article(self, article_id: int) -> Optional[Dict[str, Any]]:
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                """
                SELECT a.*, s.name AS source_name, s.type AS source_type
                FROM articles a JOIN sources s ON s.id = a.source_id
                WHERE a.id = %s
                """,
                (article_id,),
            )
            row = cur.fetchone()
        return _row_to_article(row) if row else None

    def list_timeline(
        self,
        *,
        limit: int = 50,
        event_type: Optional[str] = None,
        source_id: Optional[int] = None,
        source_name: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        return [_row_to_event(r) for r in self._timeline_rows(limit, event_type, source_id, source_name, since)]

    def _timeline_rows(self, limit, event_type, source_id, source_name, since) -> List[Dict[str, Any]]:
        limit = max(1, min(int(limit), 500))
        where = ["1=1"]
        params: List[Any] = []
        if since is not None:
            where.append("te.event_date >= %s")
            params.append(since)
        if event_type:
            where.append("te.event_type = %s")
            params.append(event_type)
        if source_id:
            where.append("a.source_id = %s")
            params.append(int(source_id))
        if source_name:
            where.append("s.name ILIKE %s")
            params.append(f"%{source_name}%")
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                f"""
                SELECT te.*, a.title AS article_title, a.original_url, a.conflict_data,
                       s.name AS source_name, s.type AS source_type
                FROM timeline_events te
                JOIN articles a ON a.id = te.article_id
                JOIN sources s ON s.id = a.source_id
                WHERE {' AND '.join(where)}
                ORDER BY te.event_date DESC, te.id DESC
                LIMIT %s
                """,
                params + [limit],
            )
            return list(cur.fetchall())

    def get_timeline_event(self, event_id: int) -> Optional[Dict[str, Any]]:
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                """
                SELECT te.*, a.title AS article_title, a.original_url,
                       s.name AS source_name, s.type AS source_type
                FROM timeline_events te
                JOIN articles a ON a.id = te.article_id
                JOIN sources s ON s.id = a.source_id
                WHERE te.id = %s
                """,
                (event_id,),
            )
            row = cur.fetchone()
        return _row_to_event(row) if row else None

    def list_sources(self, *, source_type: Optional[str] = None, active: Optional[bool] = None, with_counts: bool = False) -> List[Dict[str, Any]]:
        where = ["1=1"]
        params: List[Any] = []
        if source_type:
            where.append("s.type = %s")
            params.append(source_type)
        if active is not None:
            where.append("s.is_active = %s")
            params.append(active)
        count_col = ", (SELECT count(*) FROM articles a WHERE a.source_id = s.id) AS article_count" if with_counts else ""
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                f"""
                SELECT s.id, s.name, s.type, s.url, s.is_active, s.description{count_col}
                FROM sources s
                WHERE {' AND '.join(where)}
                ORDER BY s.type ASC, s.name ASC
                """,
                params,
            )
            rows = cur.fetchall()
        return [row_to_source(r) for r in rows]

    def stats(self) -> Dict[str, int]:
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                """
                SELECT
                  (SELECT count(*) FROM articles) AS total_articles,
                  (SELECT count(*) FROM articles WHERE created_at >= date_trunc('day', now())) AS today_articles,
                  (SELECT count(*) FROM sources WHERE is_active) AS active_sources,
                  (SELECT count(*) FROM articles WHERE status = 'PENDING') AS pending_analysis
                """
            )
            row = cur.fetchone()
        return {
            "totalArticles": int(row["total_articles"]),
            "todayArticles": int(row["today_articles"]),
            "activeSources": int(row["active_sources"]),
            "pendingAnalysis": int(row["pending_analysis"]),
        }

    def recent_status_counts(self, source_type: str, hours: int = 24) -> Dict[str, int]:
        """Article counts by status for one source type over the last `hours`."""
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                """
                SELECT a.status, count(*) AS n
                FROM articles a JOIN sources s ON s.id = a.source_id
                WHERE s.type = %s AND a.created_at >= now() - make_interval(hours => %s)
                GROUP BY a.status
                """,
                (source_type, hours),
            )
            rows = cur.fetchall()
        counts = {"PENDING": 0, "PROCESSING": 0, "ANALYZED": 0}
        for r in rows:
            counts[r["status"]] = int(r["n"])
        return counts

    def list_logs(self, *, limit: int = 50, source_type: Optional[str] = None) -> List[Dict[str, Any]]:
        limit = max(1, min(int(limit), 500))
        where = "WHERE source_type = %s" if source_type else ""
        params: List[Any] = [source_type] if source_type else []
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                f"SELECT * FROM monitoring_logs {where} ORDER BY created_at DESC, id DESC LIMIT %s",
                params + [limit],
            )
            rows = cur.fetchall()
        return [_row_to_log(r) for r in rows]

    def last_log(self, source_type: str, action: str) -> Optional[Dict[str, Any]]:
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                """
                SELECT * FROM monitoring_logs
                WHERE source_type = %s AND action = %s
                ORDER BY created_at DESC, id DESC
                LIMIT 1
                """,
                (source_type, action),
            )
            row = cur.fetchone()
        return _row_to_log(row) if row else None

    def get_source(self, source_id: int) -> Optional[Dict[str, Any]]:
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute("SELECT id, name, type, url, is_active, description FROM sources WHERE id = %s", (source_id,))
            row = cur.fetchone()
        return row_to_source(row) if row else None

    def detailed_timeline(
        self,
        *,
        days: int = 30,
        limit: int = 50,
        event_type: Optional[str] = None,
        source_id: Optional[int] = None,
        source_name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Timeline of the last `days` days with each article's extracted conflict rows."""
        end = now or datetime.now(timezone.utc)
        start = end - timedelta(days=days)
        rows = self._timeline_rows(limit, event_type, source_id, source_name, start)
        article_ids = sorted({r["article_id"] for r in rows})
        facts: Dict[str, Dict[int, List[Dict[str, Any]]]] = {"casualties": {}, "weapons": {}, "impacts": {}}
        if article_ids:
            with pg_cursor(self.pg_dsn) as cur:
                for key, sql in (
                    ("casualties", "SELECT article_id, casualties, injured, country, location, confidence FROM casualty_reports"),
                    ("weapons", "SELECT article_id, weapon_type, country, threat_level, confidence FROM weapon_usages"),
                    ("impacts", "SELECT article_id, impact_type, affected_count, severity, confidence FROM population_impacts"),
                ):
                    cur.execute(f"{sql} WHERE article_id = ANY(%s) ORDER BY id", (article_ids,))
                    for r in cur.fetchall():
                        facts[key].setdefault(r["article_id"], []).append(r)

        events = []
        for r in rows:
            event = _row_to_event(r)
            aid = r["article_id"]
            event["article"].update(
                conflict_article_facts(
                    r.get("conflict_data"),
                    facts["casualties"].get(aid, []),
                    facts["weapons"].get(aid, []),
                    facts["impacts"].get(aid, []),
                )
            )
            events.append(event)
        return {"events": events, "stats": timeline_stats(events, start, end, days), "success": True}
