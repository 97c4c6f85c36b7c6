"""Postgres schema management for BorderWatch.

Schema creation is idempotent (CREATE IF NOT EXISTS) and runs at web app
start-up and at the start of every worker cycle.
"""

from __future__ import annotations

from typing import Iterable, Optional

import psycopg


SCHEMA_STATEMENTS: list[str] = [
    """
    CREATE TABLE IF NOT EXISTS sources (
      id BIGSERIAL PRIMARY KEY,
      name TEXT NOT NULL,
      type TEXT NOT NULL CHECK (type IN ('NEWS_ARTICLE', 'FACEBOOK_POST')),
      url TEXT NOT NULL UNIQUE,
      description TEXT,
      is_active BOOLEAN NOT NULL DEFAULT TRUE,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS articles (
      id BIGSERIAL PRIMARY KEY,
      source_id BIGINT NOT NULL REFERENCES sources(id) ON DELETE CASCADE,
      title TEXT NOT NULL,
      content TEXT NOT NULL DEFAULT '',
      original_url TEXT,
      summary TEXT,
      ai_analysis JSONB,
      conflict_data JSONB,
      status TEXT NOT NULL DEFAULT 'PENDING' CHECK (status IN ('PENDING', 'PROCESSING', 'ANALYZED')),
      tags TEXT[] NOT NULL DEFAULT '{}',
      metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
      published_at TIMESTAMPTZ,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_articles_original_url ON articles (original_url);",
    "CREATE INDEX IF NOT EXISTS idx_articles_source_created ON articles (source_id, created_at DESC);",
    "CREATE INDEX IF NOT EXISTS idx_articles_status_created ON articles (status, created_at DESC);",
    """
    CREATE TABLE IF NOT EXISTS timeline_events (
      id BIGSERIAL PRIMARY KEY,
      article_id BIGINT NOT NULL REFERENCES articles(id) ON DELETE CASCADE,
      event_type TEXT NOT NULL,
      event_date TIMESTAMPTZ NOT NULL,
      title TEXT NOT NULL,
      description TEXT,
      importance INT NOT NULL DEFAULT 1 CHECK (importance BETWEEN 1 AND 5),
      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_timeline_events_date ON timeline_events (event_date DESC);",
    """
    CREATE TABLE IF NOT EXISTS monitoring_logs (
      id BIGSERIAL PRIMARY KEY,
      source_type TEXT NOT NULL,
      action TEXT NOT NULL,
      status TEXT NOT NULL CHECK (status IN ('INFO', 'SUCCESS', 'WARNING', 'ERROR')),
      message TEXT,
      metadata JSONB,
      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """,
    "CREATE INDEX IF NOT EXISTS idx_monitoring_logs_created ON monitoring_logs (created_at DESC);",
    """
    CREATE TABLE IF NOT EXISTS conflict_analytics (
      id BIGSERIAL PRIMARY KEY,
      date DATE NOT NULL UNIQUE,
      thailand_casualties INT NOT NULL DEFAULT 0,
      cambodia_casualties INT NOT NULL DEFAULT 0,
      total_casualties INT NOT NULL DEFAULT 0,
      casualties_verified BOOLEAN NOT NULL DEFAULT FALSE,
      affected_population INT NOT NULL DEFAULT 0,
      displaced_civilians INT NOT NULL DEFAULT 0,
      affected_areas TEXT[] NOT NULL DEFAULT '{}',
      weapon_types_reported TEXT[] NOT NULL DEFAULT '{}',
      military_activity TEXT,
      economic_loss DOUBLE PRECISION,
      trade_disruption BOOLEAN NOT NULL DEFAULT FALSE,
      border_status TEXT,
      diplomatic_tension INT NOT NULL DEFAULT 1,
      official_statements INT NOT NULL DEFAULT 0,
      meetings_scheduled INT NOT NULL DEFAULT 0,
      daily_summary TEXT,
      key_developments TEXT[] NOT NULL DEFAULT '{}',
      risk_assessment INT NOT NULL DEFAULT 1,
      confidence_score DOUBLE PRECISION NOT NULL DEFAULT 0,
      sources_analyzed INT NOT NULL DEFAULT 0,
      verification_level TEXT NOT NULL DEFAULT 'UNVERIFIED'
        CHECK (verification_level IN ('UNVERIFIED', 'PARTIAL', 'VERIFIED')),
      created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
      updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS casualty_reports (
      id BIGSERIAL PRIMARY KEY,
      article_id BIGINT NOT NULL REFERENCES articles(id) ON DELETE CASCADE,
      location TEXT NOT NULL DEFAULT '',
      incident_date DATE,
      reported_date TIMESTAMPTZ NOT NULL DEFAULT now(),
      country TEXT NOT NULL DEFAULT 'UNKNOWN',
      casualties INT NOT NULL DEFAULT 0,
      injured INT NOT NULL DEFAULT 0,
      cause TEXT,
      confidence DOUBLE PRECISION NOT NULL DEFAULT 0,
      verification_level TEXT NOT NULL DEFAULT 'UNVERIFIED'
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS weapon_usages (
      id BIGSERIAL PRIMARY KEY,
      article_id BIGINT NOT NULL REFERENCES articles(id) ON DELETE CASCADE,
      weapon_type TEXT NOT NULL,
      weapon_name TEXT,
      country TEXT NOT NULL DEFAULT 'UNKNOWN',
      location TEXT,
      purpose TEXT,
      threat_level INT NOT NULL DEFAULT 1,
      confidence DOUBLE PRECISION NOT NULL DEFAULT 0,
      verification_level TEXT NOT NULL DEFAULT 'UNVERIFIED',
      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS population_impacts (
      id BIGSERIAL PRIMARY KEY,
      article_id BIGINT NOT NULL REFERENCES articles(id) ON DELETE CASCADE,
      location TEXT NOT NULL DEFAULT '',
      country TEXT NOT NULL DEFAULT 'UNKNOWN',
      impact_type TEXT NOT NULL,
      affected_count INT NOT NULL DEFAULT 0,
      description TEXT,
      severity INT NOT NULL DEFAULT 1,
      confidence DOUBLE PRECISION NOT NULL DEFAULT 0,
      verification_level TEXT NOT NULL DEFAULT 'UNVERIFIED',
      created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    );
    """,
]


def ensure_schema(pg_dsn: str, *, statements: Optional[Iterable[str]] = None) -> None:
    """Ensure Postgres schema exists."""
    stmts = list(statements) if statements is not None else SCHEMA_STATEMENTS
    with psycopg.connect(pg_dsn, autocommit=True) as conn:
        with conn.cursor() as cur:
            for s in stmts:
                cur.execute(s)
