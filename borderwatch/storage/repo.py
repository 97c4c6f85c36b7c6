"""Postgres repository for the monitoring write path.

Plain psycopg + SQL. Every call opens its own autocommit connection, so a
run's writes are individually durable and there is no surrounding
transaction.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb


class DatabaseError(Exception):
    """Raised when Postgres is unreachable or rejects a statement."""


@contextmanager
def pg_cursor(pg_dsn: str) -> Iterator[psycopg.Cursor]:
    try:
        with psycopg.connect(pg_dsn, autocommit=True) as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                yield cur
    except psycopg.Error as e:
        raise DatabaseError(str(e)) from e


def serialize_row(row: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Copy a row with date/datetime values rendered as ISO strings."""
    if row is None:
        return None
    out = {}
    for k, v in row.items():
        out[k] = v.isoformat() if isinstance(v, (datetime, date)) else v
    return out


SOURCE_FIELDS = ("name", "type", "url", "description", "is_active")


class MonitorRepo:
    def __init__(self, pg_dsn: str):
        self.pg_dsn = pg_dsn

    # sources

    def upsert_source(self, name: str, source_type: str, url: str, description: Optional[str] = None) -> int:
        """Create or reactivate the source keyed by `url`; returns its id."""
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                """
                INSERT INTO sources (name, type, url, description)
                VALUES (%(name)s, %(type)s, %(url)s, %(description)s)
                ON CONFLICT (url) DO UPDATE SET
                  name = EXCLUDED.name,
                  is_active = TRUE,
                  updated_at = now()
                RETURNING id
                """,
                {"name": name, "type": source_type, "url": url, "description": description},
            )
            return int(cur.fetchone()["id"])

    def create_source(self, name: str, source_type: str, url: str, description: Optional[str] = None, is_active: bool = True) -> Dict[str, Any]:
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                """
                INSERT INTO sources (name, type, url, description, is_active)
                VALUES (%(name)s, %(type)s, %(url)s, %(description)s, %(is_active)s)
                RETURNING *
                """,
                {"name": name, "type": source_type, "url": url, "description": description, "is_active": is_active},
            )
            return serialize_row(cur.fetchone())

    def update_source(self, source_id: int, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        updates = {k: v for k, v in fields.items() if k in SOURCE_FIELDS}
        if not updates:
            with pg_cursor(self.pg_dsn) as cur:
                cur.execute("SELECT * FROM sources WHERE id = %s", (source_id,))
                return serialize_row(cur.fetchone())
        assignments = ", ".join(f"{k} = %({k})s" for k in updates)
        params = dict(updates, id=source_id)
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                f"UPDATE sources SET {assignments}, updated_at = now() WHERE id = %(id)s RETURNING *",
                params,
            )
            return serialize_row(cur.fetchone())

    def delete_source(self, source_id: int) -> bool:
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute("DELETE FROM sources WHERE id = %s", (source_id,))
            return cur.rowcount > 0

    # articles

    def find_duplicate(self, *, url: Optional[str], title: Optional[str], source_id: int, prefix_window_hours: Optional[int] = 24) -> Optional[int]:
        """Id of an existing article matching by url, by (title, source), or by
        title prefix within `prefix_window_hours` (None disables the prefix rule)."""
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                """
                SELECT id FROM articles
                WHERE (%(url)s::text IS NOT NULL AND original_url = %(url)s)
                   OR (%(title)s::text IS NOT NULL AND title = %(title)s AND source_id = %(source_id)s)
                   OR (%(use_prefix)s
                       AND source_id = %(source_id)s
                       AND strpos(title, %(prefix)s) > 0
                       AND created_at >= now() - make_interval(hours => %(hours)s))
                ORDER BY id
                LIMIT 1
                """,
                {
                    "url": url or None,
                    "title": title,
                    "source_id": source_id,
                    "use_prefix": bool(title) and prefix_window_hours is not None,
                    "prefix": (title or "")[:50],
                    "hours": int(prefix_window_hours or 0),
                },
            )
            row = cur.fetchone()
            return int(row["id"]) if row else None

    def create_article(
        self,
        *,
        source_id: int,
        title: str,
        content: str,
        original_url: Optional[str],
        status: str = "PENDING",
        published_at: Optional[datetime] = None,
        summary: Optional[str] = None,
        ai_analysis: Optional[Dict[str, Any]] = None,
        tags: Optional[List[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                """
                INSERT INTO articles (
                  source_id, title, content, original_url, status, published_at,
                  summary, ai_analysis, tags, metadata
                )
                VALUES (
                  %(source_id)s, %(title)s, %(content)s, %(original_url)s, %(status)s, COALESCE(%(published_at)s, now()),
                  %(summary)s, %(ai_analysis)s, %(tags)s, %(metadata)s
                )
                RETURNING id
                """,
                {
                    "source_id": source_id,
                    "title": title,
                    "content": content or "",
                    "original_url": original_url,
                    "status": status,
                    "published_at": published_at,
                    "summary": summary,
                    "ai_analysis": Jsonb(ai_analysis) if ai_analysis is not None else None,
                    "tags": list(tags or []),
                    "metadata": Jsonb(metadata or {}),
                },
            )
            return int(cur.fetchone()["id"])

    def update_article_analysis(
        self,
        article_id: int,
        *,
        summary: str,
        ai_analysis: Dict[str, Any],
        tags: List[str],
        metadata: Dict[str, Any],
        status: str = "ANALYZED",
    ) -> None:
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                """
                UPDATE articles SET
                  summary = %(summary)s,
                  ai_analysis = %(ai_analysis)s,
                  tags = %(tags)s,
                  metadata = %(metadata)s,
                  status = %(status)s,
                  updated_at = now()
                WHERE id = %(id)s
                """,
                {
                    "id": article_id,
                    "summary": summary,
                    "ai_analysis": Jsonb(ai_analysis),
                    "tags": list(tags),
                    "metadata": Jsonb(metadata),
                    "status": status,
                },
            )

    def delete_article(self, article_id: int) -> None:
        self.delete_articles([article_id])

    def delete_articles(self, article_ids: Iterable[int]) -> int:
        ids = [int(i) for i in article_ids]
        if not ids:
            return 0
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute("DELETE FROM timeline_events WHERE article_id = ANY(%s)", (ids,))
            cur.execute("DELETE FROM articles WHERE id = ANY(%s)", (ids,))
            return cur.rowcount

    def save_conflict_data(self, article_id: int, conflict_data: Dict[str, Any]) -> None:
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                "UPDATE articles SET conflict_data = %s, updated_at = now() WHERE id = %s",
                (Jsonb(conflict_data), article_id),
            )

    def add_casualty_report(self, article_id: int, **fields: Any) -> None:
        self._insert_row("casualty_reports", article_id, fields)

    def add_weapon_usage(self, article_id: int, **fields: Any) -> None:
        self._insert_row("weapon_usages", article_id, fields)

    def add_population_impact(self, article_id: int, **fields: Any) -> None:
        self._insert_row("population_impacts", article_id, fields)

    def _insert_row(self, table: str, article_id: int, fields: Dict[str, Any]) -> None:
        cols = ["article_id"] + list(fields)
        placeholders = ", ".join(f"%({c})s" for c in cols)
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                f"INSERT INTO {table} ({', '.join(cols)}) VALUES ({placeholders})",
                dict(fields, article_id=article_id),
            )

    def exact_duplicate_groups(self) -> List[List[int]]:
        """Ids of articles sharing (title, source), oldest first within each group."""
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                """
                SELECT array_agg(id ORDER BY created_at ASC, id ASC) AS ids
                FROM articles
                GROUP BY title, source_id
                HAVING count(*) > 1
                """
            )
            return [list(r["ids"]) for r in cur.fetchall()]

    def recent_articles(self, days: int = 7) -> List[Dict[str, Any]]:
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                """
                SELECT id, title, source_id, created_at
                FROM articles
                WHERE created_at >= now() - make_interval(days => %s)
                ORDER BY created_at ASC, id ASC
                """,
                (days,),
            )
            return list(cur.fetchall())

    # timeline

    def create_timeline_event(
        self,
        *,
        article_id: int,
        event_type: str,
        event_date: datetime,
        title: str,
        description: Optional[str] = None,
        importance: int = 1,
    ) -> int:
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                """
                INSERT INTO timeline_events (article_id, event_type, event_date, title, description, importance)
                VALUES (%(article_id)s, %(event_type)s, %(event_date)s, %(title)s, %(description)s, %(importance)s)
                RETURNING id
                """,
                {
                    "article_id": article_id,
                    "event_type": event_type,
                    "event_date": event_date,
                    "title": title,
                    "description": description,
                    "importance": max(1, min(int(importance), 5)),
                },
            )
            return int(cur.fetchone()["id"])

    # monitoring logs

    def log(self, source_type: str, action: str, status: str, message: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                """
                INSERT INTO monitoring_logs (source_type, action, status, message, metadata)
                VALUES (%s, %s, %s, %s, %s)
                """,
                (source_type, action, status, message, Jsonb(metadata) if metadata is not None else None),
            )

    def delete_logs_matching(self, patterns: Iterable[str]) -> int:
        """Delete logs whose action or message contains any of `patterns`."""
        pats = [p for p in patterns if p]
        if not pats:
            return 0
        with pg_cursor(self.pg_dsn) as cur:
            cur.execute(
                """
                DELETE FROM monitoring_logs
                WHERE EXISTS (
                  SELECT 1 FROM unnest(%s::text[]) AS p
                  WHERE strpos(action, p) > 0 OR strpos(COALESCE(message, ''), p) > 0
                )
                """,
                (pats,),
            )
            return cur.rowcount
