import os
import unittest
import uuid
from datetime import date, datetime, timezone

import psycopg

from borderwatch.analysis.conflict_stats import situation_to_fields
from borderwatch.storage.analytics import ConflictAnalyticsStore
from borderwatch.storage.queries import DashboardStore
from borderwatch.storage.repo import MonitorRepo
from borderwatch.storage.schema import ensure_schema
from tests.fakes import situation_payload


PG_DSN = os.environ.get("PG_DSN", "dbname=borderwatch user=borderwatch password=borderwatch host=localhost port=5432")


def _pg_available() -> bool:
    try:
        with psycopg.connect(PG_DSN, connect_timeout=2):
            return True
    except psycopg.Error:
        return False


@unittest.skipUnless(_pg_available(), "Postgres not reachable at PG_DSN")
class TestPostgresRoundTrip(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        ensure_schema(PG_DSN)
        cls.repo = MonitorRepo(PG_DSN)
        cls.store = DashboardStore(PG_DSN)
        cls.tag = uuid.uuid4().hex[:10]
        cls.source_id = cls.repo.upsert_source(f"E2E Feed {cls.tag}", "NEWS_ARTICLE", f"https://e2e.example/{cls.tag}/rss")

    @classmethod
    def tearDownClass(cls):
        cls.repo.delete_source(cls.source_id)

    def test_upsert_source_is_keyed_by_url(self):
        again = self.repo.upsert_source(f"E2E Feed {self.tag} renamed", "NEWS_ARTICLE", f"https://e2e.example/{self.tag}/rss")
        self.assertEqual(again, self.source_id)

    def test_article_event_and_dedup(self):
        url = f"https://e2e.example/{self.tag}/clash"
        title = f"Thailand Cambodia border clash {self.tag}"
        published = datetime(2025, 7, 24, 8, 0, tzinfo=timezone.utc)
        article_id = self.repo.create_article(
            source_id=self.source_id, title=title, content="Body", original_url=url, status="PROCESSING", published_at=published
        )
        self.repo.update_article_analysis(
            article_id,
            summary="Clash reported.",
            ai_analysis={"conflictRelevance": 8},
            tags=["border"],
            metadata={"importance": 4},
        )
        self.repo.create_timeline_event(
            article_id=article_id, event_type="news_article", event_date=published, title=title, importance=9
        )

        self.assertEqual(self.repo.find_duplicate(url=url, title="other", source_id=self.source_id), article_id)
        self.assertEqual(self.repo.find_duplicate(url=None, title=title, source_id=self.source_id), article_id)
        self.assertIsNone(self.repo.find_duplicate(url=f"{url}/none", title=None, source_id=self.source_id, prefix_window_hours=None))

        article = self.store.get_article(article_id)
        self.assertEqual(article["status"], "ANALYZED")
        self.assertEqual(article["aiAnalysis"], {"conflictRelevance": 8})
        self.assertEqual(article["source"]["type"], "NEWS_ARTICLE")

        events = self.store.list_timeline(source_id=self.source_id)
        self.assertEqual([e["articleId"] for e in events], [article_id])
        self.assertEqual(events[0]["importance"], 5)

        self.assertEqual(self.repo.delete_articles([article_id]), 1)
        self.assertIsNone(self.store.get_article(article_id))
        self.assertEqual(self.store.list_timeline(source_id=self.source_id), [])

    def test_logs_round_trip_and_cleanup(self):
        marker = f"Facebook Search e2e {self.tag}"
        self.repo.log("FACEBOOK_POST", "search_processing", "ERROR", marker, {"tag": self.tag})
        last = self.store.last_log("FACEBOOK_POST", "search_processing")
        self.assertEqual(last["message"], marker)
        self.assertGreaterEqual(self.repo.delete_logs_matching([marker]), 1)


@unittest.skipUnless(_pg_available(), "Postgres not reachable at PG_DSN")
class TestConflictAnalyticsUpsert(unittest.TestCase):
    DAY = date(1999, 1, 2)
    NEXT_DAY = date(1999, 1, 3)

    @classmethod
    def setUpClass(cls):
        ensure_schema(PG_DSN)
        cls.store = ConflictAnalyticsStore(PG_DSN)

    def tearDown(self):
        with psycopg.connect(PG_DSN, autocommit=True) as conn:
            conn.execute("DELETE FROM conflict_analytics WHERE date IN (%s, %s)", (self.DAY, self.NEXT_DAY))

    def test_second_upsert_wins(self):
        self.store.upsert(self.DAY, {"thailand_casualties": 1, "affected_areas": ["Surin"], "daily_summary": "first"})
        row = self.store.upsert(self.DAY, {"thailand_casualties": 4, "affected_areas": ["Oddar Meanchey"], "daily_summary": "second"})

        self.assertEqual(row["thailand_casualties"], 4)
        stored = self.store.get(self.DAY)
        self.assertEqual(stored["daily_summary"], "second")
        self.assertEqual(stored["affected_areas"], ["Oddar Meanchey"])
        self.assertEqual(stored["date"], "1999-01-02")
        with psycopg.connect(PG_DSN) as conn:
            count = conn.execute("SELECT count(*) FROM conflict_analytics WHERE date = %s", (self.DAY,)).fetchone()[0]
        self.assertEqual(count, 1)

    def test_situation_snapshot_upsert(self):
        self.store.upsert(self.DAY, {"sources_analyzed": 4, "verification_level": "PARTIAL"})
        row = self.store.upsert(self.DAY, situation_to_fields(situation_payload()))

        self.assertEqual(row["sources_analyzed"], 1)
        self.assertEqual(row["verification_level"], "VERIFIED")
        self.assertEqual(row["border_status"], "CLOSED")
        self.assertTrue(row["trade_disruption"])

    def test_between_orders_by_date(self):
        self.store.upsert(self.NEXT_DAY, {"total_casualties": 2})
        self.store.upsert(self.DAY, {"total_casualties": 1})

        newest = self.store.between(self.DAY, self.NEXT_DAY)
        oldest = self.store.between(self.DAY, self.NEXT_DAY, newest_first=False)

        self.assertEqual([r["date"] for r in newest], ["1999-01-03", "1999-01-02"])
        self.assertEqual([r["total_casualties"] for r in oldest], [1, 2])


if __name__ == "__main__":
    unittest.main()
