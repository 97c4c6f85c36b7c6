"""Postgres store for the per-day `conflict_analytics` roll-up and the per-article extraction rows."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, List, Optional

from borderwatch.storage.repo import pg_cursor, serialize_row

ANALYTICS_COLUMNS = (
    "thailand_casualties",
    "cambodia_casualties",
    "total_casualties",
    "casualties_verified",
    "affected_population",
    "displaced_civilians",
    "affected_areas",
    "weapon_types_reported",
    "military_activity",
    "economic_loss",
    "trade_disruption",
    "border_status",
    "diplomatic_tension",
    "official_statements",
    "meetings_scheduled",
    "daily_summary",
    "key_developments",
    "risk_assessment",
    "confidence_score",
    "sources_analyzed",
    "verification_level",
)


_ARTICLE_COLS = "a.title AS article_title, a.published_at AS article_published_at, s.name AS source_name"
_ARTICLE_JOIN = "JOIN articles a ON a.id = r.article_id JOIN sources s ON s.id = a.source_id"


@dataclass
class ConflictAnalyticsStore:
    pg_dsn: str

    def upsert(self, day: date, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Insert or overwrite the row for `day` with the given columns."""
        cols = [c for c in ANALYTICS_COLUMNS if c in fields]
        params = {c: fields[c] for c in cols}
        params["date"] = day
        insert_cols = ["date"] + cols
        updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in cols)
        updates = f"{updates}, updated_at = now()" if updates else "updated_at = now()"
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                f"""
                INSERT INTO conflict_analytics ({', '.join(insert_cols)})
                VALUES ({', '.join(f'%({c})s' for c in insert_cols)})
                ON CONFLICT (date) DO UPDATE SET {updates}
                RETURNING *
                """,
                params,
            )
            return serialize_row(cur.fetchone())

    def get(self, day: date) -> Optional[Dict[str, Any]]:
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute("SELECT * FROM conflict_analytics WHERE date = %s", (day,))
            return serialize_row(cur.fetchone())

    def latest(self) -> Optional[Dict[str, Any]]:
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute("SELECT * FROM conflict_analytics ORDER BY date DESC LIMIT 1")
            return serialize_row(cur.fetchone())

    def articles_with_conflict_data(self, day: date) -> List[Dict[str, Any]]:
        start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        end = start + timedelta(days=1)
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                """
                SELECT id, title, summary, conflict_data, published_at
                FROM articles
                WHERE published_at >= %s AND published_at < %s AND conflict_data IS NOT NULL
                ORDER BY published_at ASC
                """,
                (start, end),
            )
            return list(cur.fetchall())

    def between(self, start: date, end: date, *, newest_first: bool = True) -> List[Dict[str, Any]]:
        order = "DESC" if newest_first else "ASC"
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                f"SELECT * FROM conflict_analytics WHERE date >= %s AND date <= %s ORDER BY date {order}",
                (start, end),
            )
            return [serialize_row(r) for r in cur.fetchall()]

    def recent_reports(self, since: datetime, limit: int = 10) -> Dict[str, List[Dict[str, Any]]]:
        """Latest casualty, weapon and population-impact rows with their article title and source."""
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                f"""
                SELECT r.*, {_ARTICLE_COLS}
                FROM casualty_reports r {_ARTICLE_JOIN}
                WHERE r.reported_date >= %s
                ORDER BY r.reported_date DESC, r.id DESC
                LIMIT %s
                """,
                (since, limit),
            )
            casualties = cur.fetchall()
            cur.execute(
                f"""
                SELECT r.*, {_ARTICLE_COLS}
                FROM weapon_usages r {_ARTICLE_JOIN}
                WHERE r.created_at >= %s
                ORDER BY r.created_at DESC, r.id DESC
                LIMIT %s
                """,
                (since, limit),
            )
            weapons = cur.fetchall()
            cur.execute(
                f"""
                SELECT r.*, {_ARTICLE_COLS}
                FROM population_impacts r {_ARTICLE_JOIN}
                WHERE r.created_at >= %s
                ORDER BY r.created_at DESC, r.id DESC
                LIMIT %s
                """,
                (since, limit),
            )
            impacts = cur.fetchall()
        return {
            "casualties": [
                {
                    "id": r["id"],
                    "location": r["location"],
                    "date": r["incident_date"].isoformat() if r.get("incident_date") else None,
                    "country": r["country"],
                    "casualties": r["casualties"],
                    "injured": r["injured"],
                    "cause": r.get("cause"),
                    "confidence": r["confidence"],
                    "source": r["source_name"],
                    "title": r["article_title"],
                }
                for r in casualties
            ],
            "weapons": [
                {
                    "id": r["id"],
                    "type": r["weapon_type"],
                    "name": r.get("weapon_name"),
                    "country": r["country"],
                    "location": r.get("location"),
                    "purpose": r.get("purpose"),
                    "threatLevel": r["threat_level"],
                    "confidence": r["confidence"],
                    "source": r["source_name"],
                    "title": r["article_title"],
                }
                for r in weapons
            ],
            "impacts": [
                {
                    "id": r["id"],
                    "location": r["location"],
                    "country": r["country"],
                    "type": r["impact_type"],
                    "affected": r["affected_count"],
                    "severity": r["severity"],
                    "description": r.get("description"),
                    "confidence": r["confidence"],
                    "source": r["source_name"],
                    "title": r["article_title"],
                }
                for r in impacts
            ],
        }
