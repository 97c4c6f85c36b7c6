import unittest
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from unittest import mock

from borderwatch.storage.queries import DashboardStore, conflict_article_facts, timeline_stats

NOW = datetime(2025, 7, 24, 12, 0, tzinfo=timezone.utc)

CASUALTIES = [
    {"article_id": 1, "casualties": 2, "injured": 5, "country": "THAILAND", "location": "Surin", "confidence": 0.8},
    {"article_id": 1, "casualties": 1, "injured": 0, "country": "CAMBODIA", "location": "Oddar Meanchey", "confidence": 0.6},
]
WEAPONS = [
    {"article_id": 1, "weapon_type": "artillery", "country": "CAMBODIA", "threat_level": 7, "confidence": 0.5},
    {"article_id": 1, "weapon_type": "rifle", "country": "THAILAND", "threat_level": 3, "confidence": 0.5},
]
IMPACTS = [
    {"article_id": 1, "impact_type": "DISPLACEMENT", "affected_count": 400, "severity": 6, "confidence": 0.9},
    {"article_id": 1, "impact_type": "BORDER_CLOSURE", "affected_count": 100, "severity": 8, "confidence": 0.7},
]


def event_row(event_id, article_id, event_type="news_article", importance=3):
    return {
        "id": event_id,
        "article_id": article_id,
        "event_type": event_type,
        "event_date": NOW,
        "title": f"Event {event_id}",
        "importance": importance,
        "article_title": f"Article {article_id}",
        "source_name": "Khmer Times",
        "conflict_data": {"riskAssessment": 6} if article_id == 1 else None,
    }


class TestConflictArticleFacts(unittest.TestCase):
    def test_summary_counts(self):
        facts = conflict_article_facts({"riskAssessment": 6}, CASUALTIES, WEAPONS, IMPACTS)

        summary = facts["conflictSummary"]
        self.assertEqual(summary["totalCasualties"], 8)
        self.assertEqual(summary["weaponCount"], 2)
        self.assertEqual(summary["highThreatWeapons"], 1)
        self.assertEqual(summary["totalAffected"], 500)
        self.assertEqual(summary["maxSeverity"], 8)
        self.assertEqual(facts["weaponUsages"][0], {"weaponType": "artillery", "country": "CAMBODIA", "threatLevel": 7, "confidence": 0.5})
        self.assertNotIn("article_id", facts["casualtyReports"][0])

    def test_article_without_extraction(self):
        summary = conflict_article_facts(None, [], [], [])["conflictSummary"]
        self.assertFalse(summary["hasCasualties"] or summary["hasWeapons"] or summary["hasPopulationImpact"])
        self.assertEqual(summary["maxSeverity"], 0)


class TestTimelineStats(unittest.TestCase):
    def test_breakdowns(self):
        events = []
        for event_type, importance, casualties in (("news_article", 5, CASUALTIES), ("facebook_post", 3, []), ("news_article", 1, [])):
            events.append({
                "eventType": event_type,
                "importance": importance,
                "article": conflict_article_facts(None, casualties, [], []),
            })

        stats = timeline_stats(events, NOW - timedelta(days=7), NOW, 7)

        self.assertEqual(stats["totalEvents"], 3)
        self.assertEqual(stats["eventTypes"], {"news": 2, "facebook": 1})
        self.assertEqual(stats["importanceBreakdown"], {"high": 1, "medium": 1, "low": 1})
        self.assertEqual(stats["conflictAnalytics"]["eventsWithCasualties"], 1)
        self.assertEqual(stats["conflictAnalytics"]["totalCasualties"], 8)
        self.assertEqual(stats["dateRange"]["days"], 7)


class TestDetailedTimeline(unittest.TestCase):
    def test_attaches_facts_per_article(self):
        store = DashboardStore("dbname=unused")
        cur = mock.Mock()
        cur.fetchall.side_effect = [CASUALTIES, WEAPONS, IMPACTS]

        @contextmanager
        def fake_cursor(_dsn):
            yield cur

        rows = [event_row(10, 1, importance=5), event_row(11, 2, event_type="facebook_post")]
        with mock.patch.object(store, "_timeline_rows", return_value=rows) as timeline_rows, \
                mock.patch("borderwatch.storage.queries.pg_cursor", fake_cursor):
            out = store.detailed_timeline(days=7, limit=20, now=NOW)

        self.assertTrue(out["success"])
        self.assertEqual(timeline_rows.call_args.args, (20, None, None, None, NOW - timedelta(days=7)))
        first, second = out["events"]
        self.assertEqual(first["article"]["conflictData"], {"riskAssessment": 6})
        self.assertEqual(first["article"]["conflictSummary"]["totalCasualties"], 8)
        self.assertEqual(second["article"]["casualtyReports"], [])
        self.assertEqual(cur.execute.call_args_list[0].args[1], ([1, 2],))
        self.assertEqual(out["stats"]["eventTypes"], {"news": 1, "facebook": 1})

    def test_no_events_skips_fact_queries(self):
        store = DashboardStore("dbname=unused")
        with mock.patch.object(store, "_timeline_rows", return_value=[]), \
                mock.patch("borderwatch.storage.queries.pg_cursor") as cursor:
            out = store.detailed_timeline(now=NOW)

        cursor.assert_not_called()
        self.assertEqual(out["stats"]["totalEvents"], 0)


if __name__ == "__main__":
    unittest.main()
